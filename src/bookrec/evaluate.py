"""
Evaluation of a recognizer on labeled samples.

Computes accuracy, mean correlation score, per-label counts and the
confusions between labels.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple, Sequence, Union

import numpy as np

from .exceptions import EmptyBitmap

logger = logging.getLogger(__name__)


@dataclass
class EvaluationMetrics:
    """Evaluation metrics for a labeled sample set."""
    total: int = 0
    correct: int = 0
    blank: int = 0
    accuracy: float = 0.0
    mean_score: float = 0.0

    # label -> [correct, total]
    per_label: Dict[str, List[int]] = field(default_factory=dict)
    # (expected, predicted) -> count
    confusions: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def label_accuracy(self, label: str) -> Optional[float]:
        correct, total = self.per_label.get(label, (0, 0))
        return correct / total if total else None


def evaluate_samples(
    recognizer,
    samples: Sequence[Tuple[str, np.ndarray]]
) -> EvaluationMetrics:
    """
    Identify each sample and compare with its label.

    Args:
        recognizer: Finalized Recognizer
        samples: (expected label, bitmap) pairs

    Returns:
        EvaluationMetrics
    """
    metrics = EvaluationMetrics()
    scores = []
    confusions: Counter = Counter()

    for expected, bitmap in samples:
        try:
            match = recognizer.identify(bitmap)
        except EmptyBitmap:
            metrics.blank += 1
            continue

        metrics.total += 1
        scores.append(match.score)
        stats = metrics.per_label.setdefault(expected, [0, 0])
        stats[1] += 1

        if match.label == expected:
            metrics.correct += 1
            stats[0] += 1
        else:
            confusions[f"{expected} -> {match.label}"] += 1

    if metrics.total:
        metrics.accuracy = metrics.correct / metrics.total
        metrics.mean_score = float(np.mean(scores))
    metrics.confusions = dict(confusions.most_common())

    logger.info(
        f"Evaluated {metrics.total} samples: accuracy {metrics.accuracy:.1%}, "
        f"mean score {metrics.mean_score:.3f}"
    )
    return metrics


def print_metrics(metrics: EvaluationMetrics, name: str = "Samples"):
    """Print metrics in a formatted way."""
    print(f"\n{'='*60}")
    print(f"Evaluation Results: {name}")
    print('='*60)
    print(f"  Samples: {metrics.total} (blank: {metrics.blank})")
    print(f"  Correct: {metrics.correct}")
    print(f"  Accuracy: {metrics.accuracy:.1%}")
    print(f"  Mean score: {metrics.mean_score:.3f}")

    if metrics.confusions:
        print("\n  Confusions:")
        for pair, count in metrics.confusions.items():
            print(f"    {pair}: {count}")
    print('='*60)


def save_report(metrics: EvaluationMetrics, output_path: Union[str, Path]) -> Path:
    from .recog.io import save_json
    path = save_json(metrics.to_dict(), output_path)
    logger.info(f"Report saved to: {path}")
    return path
