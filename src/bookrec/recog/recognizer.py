"""
Recognizer facade.

Ties together training, single-character identification, line decoding
and outlier detection behind one object with an explicit lifecycle:

    TRAINING  --finalize()-->  FINALIZED

Examples can only be added while training. Identification needs a
finalized store. A finalized recognizer is read-only and may be used from
several threads at once; each decode call owns its own workspace.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple, Sequence, Iterable, Set
from pathlib import Path
import numpy as np

from ..config import RecogConfig, SplitConfig
from ..exceptions import TrainingClosed, NotFinalized, NoTemplates
from .store import TemplateStore
from .trainer import Trainer
from .correlation import CorrelationScorer, MatchResult, SequenceResult, match_bitmap
from .decoder import LineDecoder
from .outliers import find_outliers, remove_outliers, score_outliers, ExampleRef, OutlierScore

logger = logging.getLogger(__name__)


class LifecycleState(Enum):
    TRAINING = "training"
    FINALIZED = "finalized"


class RecogObserver:
    """
    Receives intermediate artifacts from training and decoding.

    All hooks do nothing by default; subclass and override what you need.
    """

    def on_example_added(self, label: str, example) -> None:
        pass

    def on_class_averaged(self, class_index: int, character_class) -> None:
        pass

    def on_line_decoded(self, workspace) -> None:
        pass


class Recognizer:
    """
    Trainable template-matching character recognizer.

    Args:
        config: Recognizer configuration (defaults to RecogConfig())
        observer: Optional RecogObserver
    """

    def __init__(self, config: Optional[RecogConfig] = None, observer: Optional[RecogObserver] = None):
        self.config = (config or RecogConfig()).validate()
        self.observer = observer
        self._trainer: Optional[Trainer] = Trainer(self.config, observer)
        self._store: Optional[TemplateStore] = None
        self._scorer: Optional[CorrelationScorer] = None
        self._decoder: Optional[LineDecoder] = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_store(cls, store: TemplateStore, observer: Optional[RecogObserver] = None) -> "Recognizer":
        """Wrap an already finalized store."""
        recognizer = cls(store.config, observer)
        recognizer._set_store(store)
        return recognizer

    @classmethod
    def from_generating_set(
        cls,
        pairs: Iterable[Tuple[str, np.ndarray]],
        config: Optional[RecogConfig] = None,
        observer: Optional[RecogObserver] = None
    ) -> "Recognizer":
        """Train on (label, bitmap) pairs and finalize."""
        recognizer = cls(config, observer)
        recognizer.add_examples(pairs)
        recognizer.finalize()
        return recognizer

    @classmethod
    def load(cls, path, observer: Optional[RecogObserver] = None) -> "Recognizer":
        from .io import load_store
        return cls.from_store(load_store(path), observer)

    def save(self, path) -> Path:
        from .io import save_store
        return save_store(self.store, path)

    def _set_store(self, store: TemplateStore):
        self._store = store
        self._trainer = None
        self._scorer = CorrelationScorer(store.max_y_shift)
        self._decoder = LineDecoder(store, observer=self.observer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return LifecycleState.TRAINING if self._store is None else LifecycleState.FINALIZED

    @property
    def is_finalized(self) -> bool:
        return self._store is not None

    @property
    def store(self) -> TemplateStore:
        if self._store is None:
            raise NotFinalized("Recognizer is still training")
        return self._store

    @property
    def num_classes(self) -> int:
        if self._store is not None:
            return self._store.num_classes
        return self._trainer.num_classes

    @property
    def num_samples(self) -> int:
        if self._store is not None:
            return self._store.num_samples
        return self._trainer.num_samples

    def declare_labels(self, labels: Sequence[str]):
        if self._trainer is None:
            raise TrainingClosed()
        self._trainer.declare_labels(labels)

    def add_example(self, label: str, bitmap: np.ndarray) -> int:
        """Add one labeled example; returns its class index."""
        if self._trainer is None:
            raise TrainingClosed()
        return self._trainer.add_example(label, bitmap)

    def add_examples(self, pairs: Iterable[Tuple[str, np.ndarray]]) -> int:
        if self._trainer is None:
            raise TrainingClosed()
        return self._trainer.add_examples(pairs)

    def finalize(self) -> TemplateStore:
        """Compute averaged templates and switch to FINALIZED."""
        if self._trainer is None:
            raise TrainingClosed()
        self._set_store(self._trainer.finalize())
        return self._store

    # ------------------------------------------------------------------
    # Identification
    # ------------------------------------------------------------------

    def identify(self, bitmap: np.ndarray) -> MatchResult:
        """
        Best template for one character image.

        Raises:
            NotFinalized: If training is not finalized
            NoTemplates: If the store has no classes
            EmptyBitmap: If the image has no foreground
        """
        store = self.store
        if store.num_classes == 0:
            raise NoTemplates("Store has no classes")
        return match_bitmap(bitmap, store, self._scorer)

    def identify_many(self, bitmaps: Sequence[np.ndarray]) -> List[MatchResult]:
        return [self.identify(b) for b in bitmaps]

    def identify_line(self, bitmap: np.ndarray, split: Optional[SplitConfig] = None) -> SequenceResult:
        """
        Segment and label a line image.

        A blank line gives an empty result.

        Raises:
            NotFinalized: If training is not finalized
        """
        store = self.store
        decoder = self._decoder if split is None else LineDecoder(store, split, self.observer)
        return decoder.decode(bitmap)

    # ------------------------------------------------------------------
    # Curation
    # ------------------------------------------------------------------

    def find_outliers(self) -> Set[ExampleRef]:
        return find_outliers(self.store, self._scorer)

    def score_outliers(self) -> List[OutlierScore]:
        return score_outliers(self.store, self._scorer)

    def remove_outliers(self) -> List[Tuple[str, np.ndarray]]:
        return remove_outliers(self.store, self._scorer)

    def generating_set(self) -> List[Tuple[str, np.ndarray]]:
        return self.store.generating_set()

    def __repr__(self) -> str:
        return (f"Recognizer(state={self.state.value}, classes={self.num_classes}, "
                f"samples={self.num_samples})")
