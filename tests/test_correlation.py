"""
Tests for correlation scoring and single-character identification.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestScoring:
    """Test the correlation score."""

    def test_self_match_is_maximum(self, zero_glyph):
        from bookrec.recog.correlation import CorrelationScorer, MAX_SCORE
        from bookrec.recog.store import BitmapExample

        example = BitmapExample.from_bitmap(zero_glyph)

        score, shift = CorrelationScorer(max_y_shift=0).score(example, example)

        assert score == MAX_SCORE
        assert shift == 0

    def test_score_range(self, zero_glyph, one_glyph):
        from bookrec.recog.correlation import CorrelationScorer
        from bookrec.recog.store import BitmapExample

        scorer = CorrelationScorer(max_y_shift=2)
        score, _ = scorer.score(BitmapExample.from_bitmap(zero_glyph), BitmapExample.from_bitmap(one_glyph))

        assert 0.0 <= score < 1.0

    def test_wider_shift_search_never_scores_lower(self, zero_glyph, one_glyph):
        from bookrec.recog.correlation import CorrelationScorer
        from bookrec.recog.store import BitmapExample

        sample = BitmapExample.from_bitmap(one_glyph)
        template = BitmapExample.from_bitmap(zero_glyph)
        scorer = CorrelationScorer()

        scores = [scorer.score(sample, template, max_y_shift=s)[0] for s in range(4)]

        assert scores == sorted(scores)

    def test_shift_recovers_vertical_offset(self):
        from bookrec.recog.correlation import CorrelationScorer
        from bookrec.recog.store import BitmapExample

        # Same shape, but an extra dot pulls the sample's centroid down
        template = np.zeros((10, 4), dtype=np.uint8)
        template[0:6, 1:3] = 1
        sample = np.zeros((10, 4), dtype=np.uint8)
        sample[0:6, 1:3] = 1
        sample[9, 0] = 1

        scorer = CorrelationScorer()
        a = BitmapExample.from_bitmap(sample)
        b = BitmapExample.from_bitmap(template)

        unshifted, _ = scorer.score(a, b, max_y_shift=0)
        shifted, shift = scorer.score(a, b, max_y_shift=1)

        assert shifted > unshifted
        assert shift == -1

    def test_empty_operand_scores_zero(self, zero_glyph):
        from bookrec.recog.correlation import CorrelationScorer
        from bookrec.recog.store import BitmapExample

        empty = BitmapExample.from_bitmap(np.zeros((4, 4), dtype=np.uint8))

        assert CorrelationScorer().score(empty, BitmapExample.from_bitmap(zero_glyph)) == (0.0, 0)

    def test_shift_order(self):
        from bookrec.recog.correlation import shift_order

        assert shift_order(0) == [0]
        assert shift_order(2) == [0, -1, 1, -2, 2]

    def test_overlap_outside_bounds(self, zero_glyph):
        from bookrec.recog.correlation import overlap_count

        assert overlap_count(zero_glyph, zero_glyph, 0, 0) == int(zero_glyph.sum())
        assert overlap_count(zero_glyph, zero_glyph, 20, 0) == 0
        assert overlap_count(zero_glyph, zero_glyph, 0, -16) == 0

    def test_round_half_up(self):
        from bookrec.recog.correlation import round_half_up

        assert round_half_up(0.5) == 1
        assert round_half_up(-0.5) == 0
        assert round_half_up(-1.2) == -1


class TestIdentify:
    """Test Recognizer.identify."""

    def test_two_class_scenario(self, digit_pairs, unscaled_config):
        from bookrec.recog.recognizer import Recognizer

        recognizer = Recognizer.from_generating_set(digit_pairs, unscaled_config)

        match = recognizer.identify(digit_pairs[0][1])

        assert match.class_index == 0
        assert match.label == "0"
        assert match.score == 1.0
        assert match.example_index == 0

    def test_exact_copy_without_shift_search(self, digit_pairs):
        from bookrec.recog.recognizer import Recognizer
        from bookrec.config import RecogConfig, TemplateConfig

        config = RecogConfig(template=TemplateConfig(scale_height=0, max_y_shift=0))
        recognizer = Recognizer.from_generating_set(digit_pairs, config)

        for label, bitmap in digit_pairs:
            match = recognizer.identify(bitmap)
            assert match.label == label
            assert match.score == 1.0

    def test_identify_with_scaling(self, digit_pairs, zero_glyph, one_glyph):
        """Default config scales to height 40; a larger rendering still matches."""
        import cv2
        from bookrec.recog.recognizer import Recognizer

        recognizer = Recognizer.from_generating_set(digit_pairs)
        big_zero = cv2.resize(zero_glyph, (20, 32), interpolation=cv2.INTER_NEAREST)
        big_one = cv2.resize(one_glyph, (20, 32), interpolation=cv2.INTER_NEAREST)

        assert recognizer.identify(big_zero).label == "0"
        assert recognizer.identify(big_one).label == "1"

    def test_average_usage(self, digit_pairs, zero_glyph):
        from bookrec.recog.recognizer import Recognizer
        from bookrec.config import RecogConfig, TemplateConfig, TemplateUsage

        config = RecogConfig(template=TemplateConfig(
            scale_height=0, template_usage=TemplateUsage.AVERAGE))
        recognizer = Recognizer.from_generating_set(digit_pairs, config)

        match = recognizer.identify(zero_glyph)

        assert match.label == "0"
        assert match.example_index == -1
        assert match.score == 1.0

    def test_outline_representation(self, digit_pairs, zero_glyph, one_glyph):
        from bookrec.recog.recognizer import Recognizer
        from bookrec.config import RecogConfig, TemplateConfig, TemplateKind

        config = RecogConfig(template=TemplateConfig(template_kind=TemplateKind.OUTLINE))
        recognizer = Recognizer.from_generating_set(digit_pairs, config)

        assert recognizer.identify(zero_glyph).label == "0"
        assert recognizer.identify(one_glyph).label == "1"

    def test_identify_before_finalize(self, zero_glyph):
        from bookrec.recog.recognizer import Recognizer
        from bookrec.exceptions import NotFinalized

        recognizer = Recognizer()
        recognizer.add_example("0", zero_glyph)

        with pytest.raises(NotFinalized):
            recognizer.identify(zero_glyph)

    def test_identify_without_classes(self, zero_glyph):
        from bookrec.recog.recognizer import Recognizer
        from bookrec.exceptions import NoTemplates

        recognizer = Recognizer()
        recognizer.finalize()

        with pytest.raises(NoTemplates):
            recognizer.identify(zero_glyph)

    def test_identify_blank(self, digit_recognizer):
        from bookrec.exceptions import EmptyBitmap

        with pytest.raises(EmptyBitmap):
            digit_recognizer.identify(np.zeros((16, 10), dtype=np.uint8))

    def test_identify_many(self, digit_recognizer, zero_glyph, one_glyph):
        results = digit_recognizer.identify_many([one_glyph, zero_glyph])

        assert [r.label for r in results] == ["1", "0"]

    def test_lifecycle(self, digit_pairs, zero_glyph):
        from bookrec.recog.recognizer import Recognizer, LifecycleState
        from bookrec.exceptions import TrainingClosed

        recognizer = Recognizer()
        assert recognizer.state == LifecycleState.TRAINING
        recognizer.add_examples(digit_pairs)
        recognizer.finalize()

        assert recognizer.state == LifecycleState.FINALIZED
        with pytest.raises(TrainingClosed):
            recognizer.add_example("0", zero_glyph)
        with pytest.raises(TrainingClosed):
            recognizer.declare_labels(["2"])
        assert recognizer.num_classes == 2
        assert recognizer.num_samples == len(digit_pairs)
