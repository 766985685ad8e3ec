"""
Core modules of the book-adapted character recognizer.
"""

from .images import binarize, clip_to_foreground, scale_bitmap, thin_and_dilate, concatenate_horizontally
from .store import BitmapExample, CharacterClass, TemplateStore, merge_generating_sets
from .trainer import Trainer, train_store, average_examples
from .correlation import CorrelationScorer, MatchResult, SequenceResult, MAX_SCORE
from .outliers import ExampleRef, OutlierScore, find_outliers, remove_outliers, score_outliers
from .bootstrap import BootstrapHarvester, HarvestedSample, harvest, pad_generating_set, needs_bootstrap
from .decoder import LineDecoder, DecodeWorkspace
from .recognizer import Recognizer, RecogObserver, LifecycleState
from .io import load_bitmap, load_labeled_bitmaps, save_generating_set, save_store, load_store, save_json, load_json

__all__ = [
    # Images
    "binarize", "clip_to_foreground", "scale_bitmap", "thin_and_dilate", "concatenate_horizontally",
    # Store and training
    "BitmapExample", "CharacterClass", "TemplateStore", "merge_generating_sets",
    "Trainer", "train_store", "average_examples",
    # Matching
    "CorrelationScorer", "MatchResult", "SequenceResult", "MAX_SCORE",
    "LineDecoder", "DecodeWorkspace",
    # Curation
    "ExampleRef", "OutlierScore", "find_outliers", "remove_outliers", "score_outliers",
    "BootstrapHarvester", "HarvestedSample", "harvest", "pad_generating_set", "needs_bootstrap",
    # Facade
    "Recognizer", "RecogObserver", "LifecycleState",
    # IO
    "load_bitmap", "load_labeled_bitmaps", "save_generating_set", "save_store", "load_store", "save_json", "load_json",
]
