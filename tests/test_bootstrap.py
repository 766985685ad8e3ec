"""
Tests for bootstrap harvesting and padding.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestHarvest:
    """Test labeling new samples with a donor store."""

    @pytest.fixture
    def samples(self, zero_glyph, one_glyph):
        square = np.ones((16, 16), dtype=np.uint8)
        blank = np.zeros((16, 16), dtype=np.uint8)
        return [one_glyph, square, zero_glyph, blank]

    def test_accepts_confident_matches(self, digit_recognizer, samples):
        from bookrec.recog.bootstrap import BootstrapHarvester

        harvested = BootstrapHarvester(digit_recognizer.store, min_score=0.7).harvest_scored(samples)

        assert [h.label for h in harvested] == ["1", "0"]
        assert [h.sample_index for h in harvested] == [0, 2]
        assert all(h.score >= 0.7 for h in harvested)

    def test_default_min_score_from_config(self, digit_recognizer):
        from bookrec.config import BootstrapConfig
        from bookrec.recog.bootstrap import BootstrapHarvester

        assert BootstrapHarvester(digit_recognizer.store).min_score == BootstrapConfig().min_score
        assert BootstrapHarvester(digit_recognizer.store, 0.5).min_score == 0.5

    def test_emits_original_bitmaps(self, digit_recognizer, zero_glyph):
        from bookrec.recog.bootstrap import harvest

        page = np.full((30, 30), 255, dtype=np.uint8)
        page[5:21, 8:18][zero_glyph > 0] = 0

        pairs = harvest(digit_recognizer.store, [page], min_score=0.5)

        assert len(pairs) == 1
        label, bitmap = pairs[0]
        assert label == "0"
        np.testing.assert_array_equal(bitmap, page)
        assert bitmap is not page

    def test_threshold_is_respected_with_scaling(self, digit_pairs, samples):
        from bookrec.recog.recognizer import Recognizer
        from bookrec.recog.bootstrap import BootstrapHarvester

        donor = Recognizer.from_generating_set(digit_pairs)
        harvester = BootstrapHarvester(donor.store, min_score=0.8)

        for sample in harvester.harvest_scored(samples):
            assert sample.score >= 0.8

    def test_donor_is_not_modified(self, digit_recognizer, samples):
        from bookrec.recog.bootstrap import harvest

        before = digit_recognizer.store.num_samples
        harvest(digit_recognizer.store, samples)

        assert digit_recognizer.store.num_samples == before

    def test_harvest_trains_new_store(self, digit_recognizer, digit_pairs, unscaled_config):
        from bookrec.recog.bootstrap import harvest
        from bookrec.recog.recognizer import Recognizer

        pairs = harvest(digit_recognizer.store, [bitmap for _, bitmap in digit_pairs], min_score=0.9)
        fresh = Recognizer.from_generating_set(pairs, unscaled_config)

        assert fresh.store.labels == ["0", "1"]
        assert fresh.num_samples == len(digit_pairs)


class TestPadding:
    """Test topping up sparse labels."""

    def test_needs_bootstrap(self, digit_pairs):
        from bookrec.recog.bootstrap import needs_bootstrap

        assert needs_bootstrap(digit_pairs, 10)
        assert not needs_bootstrap(digit_pairs, 6)

    def test_pads_sparse_labels(self, zero_glyph, one_glyph):
        from bookrec.recog.bootstrap import pad_generating_set
        from bookrec.config import BootstrapConfig

        generating = [("0", zero_glyph)] * 4 + [("1", one_glyph)]
        big_one = np.kron(one_glyph, np.ones((2, 2), dtype=np.uint8))
        padding = [("1", big_one)] * 10 + [("0", zero_glyph)] * 10 + [("7", one_glyph)] * 2

        config = BootstrapConfig(min_nopad=3, max_afterpad=4)
        padded = pad_generating_set(generating, padding, config)

        labels = [label for label, _ in padded]
        assert labels[:5] == ["0"] * 4 + ["1"]
        assert labels.count("0") == 4
        assert labels.count("1") == 4
        # A label with no samples of its own is padded at the overall median height
        assert labels.count("7") == 2
        for label, bitmap in padded[5:]:
            assert bitmap.shape[0] == 16

    def test_padding_erosion(self, zero_glyph):
        from bookrec.recog.bootstrap import pad_generating_set
        from bookrec.config import BootstrapConfig

        config = BootstrapConfig(boot_iters=1, min_nopad=1, max_afterpad=1)

        padded = pad_generating_set([("0", zero_glyph)], [("8", zero_glyph)], config)

        label, bitmap = padded[-1]
        assert label == "8"
        assert 0 < bitmap.sum() < zero_glyph.sum()
