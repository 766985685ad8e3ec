"""
Training of a template store.

The Trainer accepts labeled examples while in training mode and turns them
into a read-only TemplateStore on finalize(). Finalizing computes the
averaged templates of every class and closes the trainer for good.
"""

import logging
from typing import List, Optional, Tuple, Dict, Sequence, Iterable
import numpy as np

from ..config import RecogConfig, CharsetKind
from ..exceptions import TrainingClosed, EmptyClass, EmptyBitmap, InvalidConfiguration
from .images import binarize, clip_to_foreground
from .store import (
    BitmapExample, CharacterClass, TemplateStore,
    make_representation, scale_for_matching,
)
from .correlation import round_half_up

logger = logging.getLogger(__name__)


# ============================================================================
# Averaging
# ============================================================================

def average_examples(examples: Sequence[BitmapExample]) -> BitmapExample:
    """
    Pixel-wise mean of centroid-aligned examples, thresholded at one half.

    Examples are aligned on the rounded centroid offset relative to the
    first one, so near-identical examples are not jittered by rounding.
    The result is clipped to its foreground.
    """
    if not examples:
        raise ValueError("Cannot average zero examples")

    ref_x, ref_y = examples[0].centroid
    offsets = [
        (round_half_up(ref_x - ex.centroid[0]), round_half_up(ref_y - ex.centroid[1]))
        for ex in examples
    ]
    min_x = min(dx for dx, _ in offsets)
    min_y = min(dy for _, dy in offsets)
    width = max(dx + ex.width for (dx, _), ex in zip(offsets, examples)) - min_x
    height = max(dy + ex.height for (_, dy), ex in zip(offsets, examples)) - min_y

    accum = np.zeros((height, width), dtype=np.float32)
    for (dx, dy), ex in zip(offsets, examples):
        x, y = dx - min_x, dy - min_y
        accum[y:y + ex.height, x:x + ex.width] += ex.bitmap
    accum /= len(examples)

    average = (accum >= 0.5).astype(np.uint8)
    if not average.any():
        # No majority anywhere; keep the most common pixels
        average = (accum >= accum.max()).astype(np.uint8)

    clipped, _ = clip_to_foreground(average)
    return BitmapExample.from_bitmap(clipped)


def _within(value: int, low: Optional[int], high: Optional[int]) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


# ============================================================================
# Trainer
# ============================================================================

class _ClassBuilder:
    """Mutable examples of one label during training."""

    def __init__(self, label: str):
        self.label = label
        self.unscaled: List[BitmapExample] = []
        self.scaled: List[BitmapExample] = []

    def add(self, unscaled: BitmapExample, scaled: BitmapExample):
        self.unscaled.append(unscaled)
        self.scaled.append(scaled)


class Trainer:
    """
    Builds a TemplateStore from labeled examples.

    Usage:
        trainer = Trainer(config)
        trainer.add_example("a", bitmap)
        store = trainer.finalize()

    Only one thread may add examples at a time.
    """

    def __init__(self, config: Optional[RecogConfig] = None, observer=None):
        self.config = (config or RecogConfig()).validate()
        self.observer = observer
        self.representation = make_representation(self.config)
        self._classes: List[_ClassBuilder] = []
        self._label_index: Dict[str, int] = {}
        self._closed = False

        if self.config.template.charset_kind != CharsetKind.UNKNOWN:
            self.declare_labels(self.config.template.charset_kind.labels)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def num_classes(self) -> int:
        return len(self._classes)

    @property
    def num_samples(self) -> int:
        return sum(len(c.unscaled) for c in self._classes)

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self._classes]

    def _check_open(self):
        if self._closed:
            raise TrainingClosed()

    def _class_for(self, label: str) -> _ClassBuilder:
        index = self._label_index.get(label)
        if index is None:
            index = len(self._classes)
            self._classes.append(_ClassBuilder(label))
            self._label_index[label] = index
            logger.debug(f"New class {index}: {label!r}")
        return self._classes[index]

    def declare_labels(self, labels: Sequence[str]):
        """
        Create (empty) classes for a known label table, in order.

        Raises:
            TrainingClosed: If the trainer is finalized
            InvalidConfiguration: If the count disagrees with the expected
                charset size
        """
        self._check_open()
        expected = self.config.expected_charset_size
        if expected and len(labels) != expected:
            raise InvalidConfiguration(
                f"Declared {len(labels)} labels, expected charset size is {expected}"
            )
        for label in labels:
            self._class_for(label)

    def add_example(self, label: str, bitmap: np.ndarray) -> int:
        """
        Add one labeled example.

        The bitmap is binarized (if needed) and clipped to its foreground;
        centroid and pixel count are computed here, once.

        Args:
            label: Text of the character class
            bitmap: Binary, grayscale or color image of one character

        Returns:
            Class index of the example

        Raises:
            TrainingClosed: If the trainer is finalized
            EmptyBitmap: If the bitmap has no foreground
        """
        self._check_open()

        binary = binarize(np.asarray(bitmap), self.config.template.threshold)
        clipped, _ = clip_to_foreground(binary)
        if clipped.size == 0:
            raise EmptyBitmap(f"Example for {label!r} has no foreground pixels")

        unscaled = BitmapExample.from_bitmap(clipped)
        scaled = BitmapExample.from_bitmap(
            scale_for_matching(clipped, self.config, self.representation)
        )

        cls = self._class_for(label)
        cls.add(unscaled, scaled)
        if self.observer is not None:
            self.observer.on_example_added(label, unscaled)
        return self._label_index[label]

    def add_examples(self, pairs: Iterable[Tuple[str, np.ndarray]]) -> int:
        """Add (label, bitmap) pairs; returns the number added."""
        count = 0
        for label, bitmap in pairs:
            self.add_example(label, bitmap)
            count += 1
        return count

    def _averaging_set(self, cls: _ClassBuilder) -> List[int]:
        """Indices of examples whose sizes are within the averaging bounds."""
        a = self.config.averaging
        keep = [
            i for i, (u, s) in enumerate(zip(cls.unscaled, cls.scaled))
            if _within(u.width, a.min_width_u, a.max_width_u)
            and _within(u.height, a.min_height_u, a.max_height_u)
            and _within(s.width, a.min_width, a.max_width)
        ]
        if not keep:
            logger.warning(
                f"Size bounds exclude every example of {cls.label!r}; averaging all of them"
            )
            return list(range(len(cls.unscaled)))
        if len(keep) < len(cls.unscaled):
            logger.debug(
                f"Averaging {len(keep)}/{len(cls.unscaled)} examples of {cls.label!r}"
            )
        return keep

    def finalize(self) -> TemplateStore:
        """
        Compute averaged templates and close training.

        Returns:
            Read-only TemplateStore

        Raises:
            TrainingClosed: If called twice
            EmptyClass: If a declared class has no examples
        """
        self._check_open()

        for cls in self._classes:
            if not cls.unscaled:
                raise EmptyClass(cls.label)

        expected = self.config.expected_charset_size
        if expected and expected != len(self._classes):
            logger.warning(
                f"Expected {expected} classes for the charset, found {len(self._classes)}"
            )

        classes = []
        for index, cls in enumerate(self._classes):
            keep = self._averaging_set(cls)
            character_class = CharacterClass(
                label=cls.label,
                unscaled_examples=tuple(cls.unscaled),
                scaled_examples=tuple(cls.scaled),
                averaged_unscaled=average_examples([cls.unscaled[i] for i in keep]),
                averaged_scaled=average_examples([cls.scaled[i] for i in keep]),
            )
            classes.append(character_class)
            if self.observer is not None:
                self.observer.on_class_averaged(index, character_class)

        self._closed = True
        store = TemplateStore(self.config, classes)
        logger.info(
            f"Training finalized: {store.num_classes} classes, {store.num_samples} samples"
        )
        return store


def train_store(
    pairs: Iterable[Tuple[str, np.ndarray]],
    config: Optional[RecogConfig] = None,
    observer=None
) -> TemplateStore:
    """Train and finalize a store from a generating set."""
    trainer = Trainer(config, observer)
    trainer.add_examples(pairs)
    return trainer.finalize()
