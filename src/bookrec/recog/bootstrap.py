"""
Bootstrapping a recognizer for a new source.

A donor store trained on generic data labels unlabeled samples from the new
source by correlation. Samples matching a donor template well enough are
emitted, unscaled, with the donor's label; together they form the
generating set of a new store. The donor is never modified.

Padding tops up labels that have too few samples with samples from another
generating set.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import List, Optional, Tuple, Dict, Sequence
import numpy as np

from ..config import BootstrapConfig
from ..exceptions import EmptyBitmap
from .images import binarize, clip_to_foreground, scale_bitmap, erode_bitmap
from .store import TemplateStore
from .correlation import CorrelationScorer, prepare_sample

logger = logging.getLogger(__name__)


@dataclass
class HarvestedSample:
    """An accepted sample with the donor's label."""
    label: str
    bitmap: np.ndarray
    score: float
    sample_index: int

    def as_pair(self) -> Tuple[str, np.ndarray]:
        return self.label, self.bitmap


class BootstrapHarvester:
    """
    Labels samples from a new source with a donor store.

    Args:
        donor: Finalized generic store
        min_score: Acceptance threshold on the best correlation score
            (default: BootstrapConfig.min_score)
    """

    def __init__(self, donor: TemplateStore, min_score: Optional[float] = None):
        self.donor = donor
        self.min_score = BootstrapConfig().min_score if min_score is None else min_score
        self.scorer = CorrelationScorer(donor.max_y_shift)

    def harvest_scored(self, samples: Sequence[np.ndarray]) -> List[HarvestedSample]:
        """Accepted samples with their scores, in input order."""
        accepted = []
        rejected = 0
        for index, bitmap in enumerate(samples):
            try:
                _, prepared = prepare_sample(bitmap, self.donor)
            except EmptyBitmap:
                logger.debug(f"Sample {index} is blank; skipped")
                rejected += 1
                continue

            match = self.scorer.best_match(prepared, self.donor.candidates(), self.donor.labels)
            if match is None or match.score < self.min_score:
                rejected += 1
                continue

            accepted.append(HarvestedSample(
                label=match.label,
                bitmap=np.array(bitmap, copy=True),
                score=match.score,
                sample_index=index,
            ))

        logger.info(
            f"Harvested {len(accepted)} of {len(samples)} samples "
            f"(rejected {rejected}, min_score={self.min_score:.2f})"
        )
        return accepted

    def harvest(self, samples: Sequence[np.ndarray]) -> List[Tuple[str, np.ndarray]]:
        """(label, unscaled bitmap) pairs suitable for a fresh Trainer."""
        return [s.as_pair() for s in self.harvest_scored(samples)]


def harvest(
    donor: TemplateStore,
    samples: Sequence[np.ndarray],
    min_score: Optional[float] = None
) -> List[Tuple[str, np.ndarray]]:
    return BootstrapHarvester(donor, min_score).harvest(samples)


# ============================================================================
# Padding
# ============================================================================

def needs_bootstrap(generating: Sequence[Tuple[str, np.ndarray]], min_samples: int) -> bool:
    """True when the generating set is too small to train on by itself."""
    return len(generating) < min_samples


def pad_generating_set(
    generating: Sequence[Tuple[str, np.ndarray]],
    padding_source: Sequence[Tuple[str, np.ndarray]],
    config: Optional[BootstrapConfig] = None,
    threshold: int = 150
) -> List[Tuple[str, np.ndarray]]:
    """
    Pad labels that have fewer than `min_nopad` samples.

    Padding samples of the same label are taken in order from
    `padding_source` until the label has `max_afterpad` samples. Each is
    scaled to the median height of the label's own samples (of all samples
    when the label has none) and eroded `boot_iters` times.

    Returns:
        New generating set: the input pairs followed by the padding
    """
    config = config or BootstrapConfig()
    padded = [(label, np.array(bitmap, copy=True)) for label, bitmap in generating]

    heights: Dict[str, List[int]] = defaultdict(list)
    for label, bitmap in generating:
        clipped, _ = clip_to_foreground(binarize(np.asarray(bitmap), threshold))
        if clipped.size:
            heights[label].append(clipped.shape[0])
    all_heights = [h for hs in heights.values() for h in hs]
    counts = Counter(label for label, _ in generating)

    by_label: Dict[str, List[np.ndarray]] = defaultdict(list)
    for label, bitmap in padding_source:
        by_label[label].append(bitmap)

    added = 0
    for label in sorted(by_label, key=lambda l: (counts[l], l)):
        if counts[label] >= config.min_nopad:
            continue
        own = heights.get(label) or all_heights
        target_height = int(np.median(own)) if own else 0

        for bitmap in by_label[label]:
            if counts[label] >= config.max_afterpad:
                break
            clipped, _ = clip_to_foreground(binarize(np.asarray(bitmap), threshold))
            if clipped.size == 0:
                continue
            sample = scale_bitmap(clipped, 0, target_height)
            sample = erode_bitmap(sample, config.boot_iters)
            if not sample.any():
                continue
            padded.append((label, sample))
            counts[label] += 1
            added += 1

    logger.info(f"Padded generating set with {added} samples")
    return padded
