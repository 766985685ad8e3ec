"""
Outlier detection on a finalized store.

Every example is scored against the averaged scaled template of every
class. An example whose best class differs from its own is an outlier.
This is the only place averaged templates pool a class into one shape;
the store itself is never modified.
"""

import logging
from dataclasses import dataclass, asdict
from typing import List, Set, Tuple, Dict, Any, Optional
import numpy as np

from .store import TemplateStore
from .correlation import CorrelationScorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExampleRef:
    """Position of an example in a store."""
    class_index: int
    example_index: int


@dataclass
class OutlierScore:
    """How one example compares against the averaged templates."""
    class_index: int
    example_index: int
    label: str
    own_score: float
    best_class_index: int
    best_label: str
    best_score: float

    @property
    def ref(self) -> ExampleRef:
        return ExampleRef(self.class_index, self.example_index)

    @property
    def is_outlier(self) -> bool:
        return self.best_class_index != self.class_index

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["is_outlier"] = self.is_outlier
        return data


def score_outliers(
    store: TemplateStore,
    scorer: Optional[CorrelationScorer] = None
) -> List[OutlierScore]:
    """
    Score every example of `store` against all averaged scaled templates.

    The scaled examples are the unscaled ones passed through the same
    scaling and representation as the averages, so they are compared at a
    common size.
    """
    if scorer is None:
        scorer = CorrelationScorer(store.max_y_shift)

    averages = [cls.averaged_scaled for cls in store.classes]
    results = []
    for class_index, cls in enumerate(store.classes):
        for example_index, example in enumerate(cls.scaled_examples):
            scores = [scorer.score(example, average)[0] for average in averages]
            best = int(np.argmax(scores))
            # A tie with the own class is not an outlier
            if scores[class_index] >= scores[best]:
                best = class_index
            results.append(OutlierScore(
                class_index=class_index,
                example_index=example_index,
                label=cls.label,
                own_score=scores[class_index],
                best_class_index=best,
                best_label=store.label_for_index(best),
                best_score=scores[best],
            ))
    return results


def find_outliers(store: TemplateStore, scorer: Optional[CorrelationScorer] = None) -> Set[ExampleRef]:
    """Examples better correlated with another class's average than with their own."""
    outliers = {s.ref for s in score_outliers(store, scorer) if s.is_outlier}
    logger.info(f"Found {len(outliers)} outliers among {store.num_samples} examples")
    return outliers


def remove_outliers(
    store: TemplateStore,
    scorer: Optional[CorrelationScorer] = None
) -> List[Tuple[str, np.ndarray]]:
    """Generating set of `store` without its outliers."""
    outliers = find_outliers(store, scorer)
    return [
        (cls.label, example.bitmap.copy())
        for class_index, cls in enumerate(store.classes)
        for example_index, example in enumerate(cls.unscaled_examples)
        if ExampleRef(class_index, example_index) not in outliers
    ]
