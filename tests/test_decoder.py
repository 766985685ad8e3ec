"""
Tests for line decoding.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


class TestLineDecoder:
    """Test segmentation and labeling of line images."""

    @pytest.fixture
    def line(self, digit_recognizer):
        """Averaged "0", "1", "0" with 3-column gaps."""
        from bookrec.recog.images import concatenate_horizontally

        classes = digit_recognizer.store.classes
        glyphs = [classes[i].averaged_unscaled.bitmap for i in (0, 1, 0)]
        return concatenate_horizontally(glyphs, gap=3)

    def test_decode_three_characters(self, digit_recognizer, line):
        bitmap, offsets = line

        result = digit_recognizer.identify_line(bitmap)

        assert result.labels == ["0", "1", "0"]
        assert len(result) == 3
        for match, x in zip(result, offsets):
            assert abs(match.x - x) <= 1
            assert match.score == pytest.approx(1.0)

    def test_decode_grayscale_line_with_margins(self, digit_recognizer, line):
        bitmap, offsets = line
        page = np.full((bitmap.shape[0] + 8, bitmap.shape[1] + 10), 255, dtype=np.uint8)
        page[4:-4, 5:-5][bitmap > 0] = 0

        result = digit_recognizer.identify_line(page)

        assert result.text == "010"
        assert [m.x for m in result] == [x + 5 for x in offsets]

    def test_blank_line(self, digit_recognizer):
        from bookrec.recog.decoder import LineDecoder

        decoder = LineDecoder(digit_recognizer.store)
        result, workspace = decoder.decode_with_workspace(np.zeros((16, 40), dtype=np.uint8))

        assert result.is_empty
        assert workspace is None

    def test_strict_filters_give_empty_result(self, digit_recognizer, line):
        from bookrec.config import SplitConfig

        bitmap, _ = line

        result = digit_recognizer.identify_line(bitmap, SplitConfig(min_split_width=50))

        assert result.is_empty
        assert result.text == ""

    def test_height_filter(self, digit_recognizer, line):
        from bookrec.config import SplitConfig

        bitmap, _ = line

        assert digit_recognizer.identify_line(bitmap, SplitConfig(max_split_height=10)).is_empty

    def test_workspace_per_call(self, digit_recognizer, line):
        from bookrec.recog.decoder import LineDecoder

        bitmap, _ = line
        decoder = LineDecoder(digit_recognizer.store)

        result_a, ws_a = decoder.decode_with_workspace(bitmap)
        result_b, ws_b = decoder.decode_with_workspace(bitmap)

        assert ws_a is not ws_b
        assert ws_a.trellis_score is not ws_b.trellis_score
        np.testing.assert_array_equal(ws_a.trellis_score, ws_b.trellis_score)
        assert result_a.labels == result_b.labels

    def test_workspace_contents(self, digit_recognizer, line):
        from bookrec.recog.decoder import LineDecoder

        bitmap, offsets = line
        _, ws = LineDecoder(digit_recognizer.store).decode_with_workspace(bitmap)

        assert ws.width == bitmap.shape[1]
        assert ws.num_templates == 2
        assert ws.counts.shape == (2, bitmap.shape[1])
        assert [m.x for m in ws.initial_path] == offsets
        assert [m.label for m in ws.rescored_path] == ["0", "1", "0"]
        # No placement may start on a blank column
        assert (ws.counts[:, ws.ink == 0] == -1).all()

    def test_rescoring_keeps_bounds(self, digit_recognizer, line):
        from bookrec.recog.decoder import LineDecoder

        bitmap, _ = line
        _, ws = LineDecoder(digit_recognizer.store).decode_with_workspace(bitmap)

        for initial, rescored in zip(ws.initial_path, ws.rescored_path):
            assert (initial.x, initial.width) == (rescored.x, rescored.width)
            assert initial.example_index == -1
            assert rescored.example_index >= 0

    def test_observer_receives_workspace(self, digit_pairs, unscaled_config, line):
        from bookrec.recog.recognizer import Recognizer, RecogObserver

        class Recorder(RecogObserver):
            def __init__(self):
                self.workspaces = []

            def on_line_decoded(self, workspace):
                self.workspaces.append(workspace)

        recorder = Recorder()
        recognizer = Recognizer.from_generating_set(digit_pairs, unscaled_config, observer=recorder)
        recognizer.identify_line(line[0])

        assert len(recorder.workspaces) == 1
        assert len(recorder.workspaces[0].initial_path) == 3

    def test_requires_finalized_store(self, zero_glyph):
        from bookrec.recog.recognizer import Recognizer
        from bookrec.exceptions import NotFinalized

        with pytest.raises(NotFinalized):
            Recognizer().identify_line(zero_glyph)

    def test_sequence_result_to_dict(self, digit_recognizer, line):
        result = digit_recognizer.identify_line(line[0])

        data = result.to_dict()

        assert data["text"] == "010"
        assert len(data["matches"]) == 3
        assert set(data["matches"][0]) >= {"class_index", "score", "label", "x", "y", "width"}
