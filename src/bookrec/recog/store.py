"""
Template store for the recognizer.

Provides:
- BitmapExample: a bitmap with its centroid and foreground count
- CharacterClass: the examples of one label plus averaged templates
- Representation and selection strategies (image/outline, all/average)
- TemplateStore: the finalized, read-only set of classes
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Dict, Any, Iterator, Sequence
import numpy as np

from ..config import RecogConfig, TemplateKind, TemplateUsage
from .images import centroid, foreground_count, scale_bitmap, thin_and_dilate

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass(frozen=True, eq=False)
class BitmapExample:
    """A stored bitmap; centroid and count are derived once, at insertion."""
    bitmap: np.ndarray
    centroid: Tuple[float, float]
    count: int

    @classmethod
    def from_bitmap(cls, bitmap: np.ndarray) -> "BitmapExample":
        bitmap = np.array(bitmap, dtype=np.uint8, copy=True)
        bitmap.setflags(write=False)
        return cls(bitmap=bitmap, centroid=centroid(bitmap), count=foreground_count(bitmap))

    @property
    def width(self) -> int:
        return self.bitmap.shape[1]

    @property
    def height(self) -> int:
        return self.bitmap.shape[0]


@dataclass(frozen=True, eq=False)
class CharacterClass:
    """All examples sharing one label, with their averaged templates."""
    label: str
    unscaled_examples: Tuple[BitmapExample, ...]
    scaled_examples: Tuple[BitmapExample, ...]
    averaged_unscaled: BitmapExample
    averaged_scaled: BitmapExample

    def __post_init__(self):
        if len(self.unscaled_examples) != len(self.scaled_examples):
            raise ValueError(
                f"Class {self.label!r}: {len(self.unscaled_examples)} unscaled vs "
                f"{len(self.scaled_examples)} scaled examples"
            )

    @property
    def num_examples(self) -> int:
        return len(self.unscaled_examples)


# ============================================================================
# Strategies
# ============================================================================

class ImageRepresentation:
    """Match the binarized bitmaps themselves."""
    kind = TemplateKind.IMAGE

    def prepare(self, bitmap: np.ndarray) -> np.ndarray:
        return bitmap


class OutlineRepresentation:
    """Match width-normalized outlines."""
    kind = TemplateKind.OUTLINE

    def __init__(self, dilation: int = 1):
        self.dilation = dilation

    def prepare(self, bitmap: np.ndarray) -> np.ndarray:
        return thin_and_dilate(bitmap, self.dilation)


class AllTemplates:
    """Every scaled example of every class is a candidate."""
    usage = TemplateUsage.ALL

    def candidates(self, classes: Sequence[CharacterClass]) -> Iterator[Tuple[int, int, BitmapExample]]:
        for class_index, cls in enumerate(classes):
            for example_index, example in enumerate(cls.scaled_examples):
                yield class_index, example_index, example


class AverageTemplates:
    """Only the averaged scaled template of each class is a candidate."""
    usage = TemplateUsage.AVERAGE

    def candidates(self, classes: Sequence[CharacterClass]) -> Iterator[Tuple[int, int, BitmapExample]]:
        for class_index, cls in enumerate(classes):
            yield class_index, -1, cls.averaged_scaled


def make_representation(config: RecogConfig):
    if config.template.template_kind == TemplateKind.OUTLINE:
        return OutlineRepresentation(config.template.outline_dilation)
    return ImageRepresentation()


def make_selection(usage: TemplateUsage):
    if usage == TemplateUsage.AVERAGE:
        return AverageTemplates()
    return AllTemplates()


def scale_for_matching(bitmap: np.ndarray, config: RecogConfig, representation) -> np.ndarray:
    """Scale a clipped unscaled bitmap per policy, then convert representation."""
    scaled = scale_bitmap(bitmap, config.template.scale_width, config.template.scale_height)
    return representation.prepare(scaled)


def char_code(label: str) -> int:
    """Unicode code point of a single-character label, -1 otherwise."""
    return ord(label) if len(label) == 1 else -1


# ============================================================================
# Template Store
# ============================================================================

class TemplateStore:
    """
    Finalized set of character classes.

    A store is read-only: classes cannot be added or changed. To add data,
    extract the generating set, extend it and train a new store.
    """

    def __init__(self, config: RecogConfig, classes: Sequence[CharacterClass]):
        self.config = config
        self._classes = tuple(classes)
        self._label_index: Dict[str, int] = {}
        for index, cls in enumerate(self._classes):
            self._label_index.setdefault(cls.label, index)
        self._tochar = tuple(char_code(cls.label) for cls in self._classes)

        # Strategies are selected once per store
        self.representation = make_representation(config)
        self.selection = make_selection(config.template.template_usage)

    @property
    def classes(self) -> Tuple[CharacterClass, ...]:
        return self._classes

    @property
    def num_classes(self) -> int:
        return len(self._classes)

    @property
    def num_samples(self) -> int:
        return sum(cls.num_examples for cls in self._classes)

    @property
    def labels(self) -> List[str]:
        return [cls.label for cls in self._classes]

    @property
    def scale_width(self) -> int:
        return self.config.template.scale_width

    @property
    def scale_height(self) -> int:
        return self.config.template.scale_height

    @property
    def template_kind(self) -> TemplateKind:
        return self.config.template.template_kind

    @property
    def template_usage(self) -> TemplateUsage:
        return self.config.template.template_usage

    @property
    def max_y_shift(self) -> int:
        return self.config.template.max_y_shift

    @property
    def threshold(self) -> int:
        return self.config.template.threshold

    def label_for_index(self, index: int) -> str:
        return self._classes[index].label

    def index_for_label(self, label: str) -> Optional[int]:
        return self._label_index.get(label)

    def char_code(self, index: int) -> int:
        return self._tochar[index]

    def candidates(self, usage: Optional[TemplateUsage] = None) -> Iterator[Tuple[int, int, BitmapExample]]:
        """Scaled templates to compare against, per the store's usage unless overridden."""
        selection = self.selection if usage is None else make_selection(usage)
        return selection.candidates(self._classes)

    def prepare(self, bitmap: np.ndarray) -> np.ndarray:
        """Scaled, representation-converted copy of a clipped unscaled bitmap."""
        return scale_for_matching(bitmap, self.config, self.representation)

    def generating_set(self) -> List[Tuple[str, np.ndarray]]:
        """(label, unscaled bitmap) pairs from which this store can be rebuilt."""
        return [
            (cls.label, example.bitmap.copy())
            for cls in self._classes
            for example in cls.unscaled_examples
        ]

    def summary(self) -> Dict[str, Any]:
        return {
            "num_classes": self.num_classes,
            "num_samples": self.num_samples,
            "scale": (self.scale_width, self.scale_height),
            "template_kind": self.template_kind.value,
            "template_usage": self.template_usage.value,
            "max_y_shift": self.max_y_shift,
            "labels": self.labels,
        }

    def __repr__(self) -> str:
        return (f"TemplateStore(classes={self.num_classes}, samples={self.num_samples}, "
                f"usage={self.template_usage.value})")


def merge_generating_sets(
    *generating_sets: Sequence[Tuple[str, np.ndarray]]
) -> List[Tuple[str, np.ndarray]]:
    """Join generating sets; recognizers are combined this way, never directly."""
    merged: List[Tuple[str, np.ndarray]] = []
    for pairs in generating_sets:
        merged.extend((label, np.array(bitmap, copy=True)) for label, bitmap in pairs)
    return merged
