"""
Correlation matching of bitmaps against templates.

The score of an input against a template is

    score = overlap^2 / (count_input * count_template)

where overlap is the number of foreground pixels the two share once the
template is placed on the input with centroids aligned and shifted
vertically by the best of [-max_y_shift, +max_y_shift]. The score lies in
[0, 1] and is exactly 1.0 for a bitmap matched against itself.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import List, Optional, Tuple, Dict, Any, Iterable, Iterator
import numpy as np

from ..exceptions import EmptyBitmap
from .images import binarize, clip_to_foreground
from .store import BitmapExample, TemplateStore

logger = logging.getLogger(__name__)

# Score of a bitmap matched against itself
MAX_SCORE = 1.0


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class MatchResult:
    """Best template for a single character."""
    class_index: int
    score: float
    label: str
    example_index: int = -1   # -1 when matched against an averaged template
    x: int = 0                # template placement against the input
    y: int = 0
    width: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SequenceResult:
    """Decoded characters of a line, left to right."""
    matches: List[MatchResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.matches)

    def __iter__(self) -> Iterator[MatchResult]:
        return iter(self.matches)

    def __getitem__(self, index: int) -> MatchResult:
        return self.matches[index]

    @property
    def labels(self) -> List[str]:
        return [m.label for m in self.matches]

    @property
    def text(self) -> str:
        return "".join(self.labels)

    @property
    def is_empty(self) -> bool:
        return not self.matches

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "matches": [m.to_dict() for m in self.matches],
        }


# ============================================================================
# Scoring
# ============================================================================

def round_half_up(value: float) -> int:
    return int(np.floor(value + 0.5))


def overlap_count(a: np.ndarray, b: np.ndarray, dx: int, dy: int) -> int:
    """
    Foreground pixels shared by `a` and `b`, with `b`'s top-left corner
    placed at (dx, dy) in `a`'s coordinates.
    """
    ha, wa = a.shape[:2]
    hb, wb = b.shape[:2]
    x1, x2 = max(0, dx), min(wa, dx + wb)
    y1, y2 = max(0, dy), min(ha, dy + hb)
    if x1 >= x2 or y1 >= y2:
        return 0
    a_sl = a[y1:y2, x1:x2]
    b_sl = b[y1 - dy:y2 - dy, x1 - dx:x2 - dx]
    return int(np.count_nonzero(np.logical_and(a_sl, b_sl)))


def correlation(overlap: int, count_a: int, count_b: int) -> float:
    if count_a <= 0 or count_b <= 0:
        return 0.0
    return (overlap * overlap) / float(count_a * count_b)


def shift_order(max_y_shift: int) -> List[int]:
    """0, -1, +1, -2, +2, ... so ties resolve to the smallest shift."""
    shifts = [0]
    for s in range(1, max_y_shift + 1):
        shifts.extend((-s, s))
    return shifts


class CorrelationScorer:
    """
    Scores an input against templates with bounded vertical alignment search.

    Both operands must already be in the same representation (image or
    outline) and scale; this class only counts pixels.
    """

    def __init__(self, max_y_shift: int = 1):
        self.max_y_shift = max_y_shift

    @staticmethod
    def placement(sample: BitmapExample, template: BitmapExample) -> Tuple[int, int]:
        """Top-left of the template on the sample with centroids aligned."""
        dx = round_half_up(sample.centroid[0] - template.centroid[0])
        dy = round_half_up(sample.centroid[1] - template.centroid[1])
        return dx, dy

    def score(
        self,
        sample: BitmapExample,
        template: BitmapExample,
        max_y_shift: Optional[int] = None
    ) -> Tuple[float, int]:
        """
        Best correlation over vertical shifts.

        Args:
            sample: Input bitmap with centroid and count
            template: Template bitmap with centroid and count
            max_y_shift: Override for the scorer's shift range; 0 = centroid
                alignment only

        Returns:
            (best score, shift that achieved it)
        """
        if max_y_shift is None:
            max_y_shift = self.max_y_shift
        if sample.count == 0 or template.count == 0:
            return 0.0, 0

        dx, dy = self.placement(sample, template)
        best_score, best_shift = -1.0, 0
        for shift in shift_order(max_y_shift):
            overlap = overlap_count(sample.bitmap, template.bitmap, dx, dy + shift)
            value = correlation(overlap, sample.count, template.count)
            if value > best_score:
                best_score, best_shift = value, shift
        return best_score, best_shift

    def best_match(
        self,
        sample: BitmapExample,
        candidates: Iterable[Tuple[int, int, BitmapExample]],
        labels: List[str]
    ) -> Optional[MatchResult]:
        """
        Highest-scoring candidate; the first one wins ties.

        Args:
            sample: Prepared input
            candidates: (class index, example index, template) triples
            labels: Label of each class index

        Returns:
            MatchResult, or None when there are no candidates
        """
        best: Optional[MatchResult] = None
        for class_index, example_index, template in candidates:
            value, shift = self.score(sample, template)
            if best is None or value > best.score:
                dx, dy = self.placement(sample, template)
                best = MatchResult(
                    class_index=class_index,
                    score=value,
                    label=labels[class_index],
                    example_index=example_index,
                    x=dx,
                    y=dy + shift,
                    width=template.width,
                )
        return best


# ============================================================================
# Sample Preparation
# ============================================================================

def prepare_sample(bitmap: np.ndarray, store: TemplateStore) -> Tuple[np.ndarray, BitmapExample]:
    """
    Binarize, clip and scale a sample the way the store's templates were made.

    Returns:
        (clipped unscaled bitmap, prepared scaled example)

    Raises:
        EmptyBitmap: If the sample has no foreground
    """
    binary = binarize(np.asarray(bitmap), store.threshold)
    clipped, _ = clip_to_foreground(binary)
    if clipped.size == 0:
        raise EmptyBitmap("Sample has no foreground pixels")
    return clipped, BitmapExample.from_bitmap(store.prepare(clipped))


def match_bitmap(
    bitmap: np.ndarray,
    store: TemplateStore,
    scorer: Optional[CorrelationScorer] = None,
    usage=None
) -> Optional[MatchResult]:
    """Best template in `store` for one bitmap (None if the store is empty)."""
    if scorer is None:
        scorer = CorrelationScorer(store.max_y_shift)
    _, sample = prepare_sample(bitmap, store)
    return scorer.best_match(sample, store.candidates(usage), store.labels)
