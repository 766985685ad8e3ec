"""
Shared fixtures: small synthetic glyphs and trained recognizers.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


def make_zero():
    """16 rows x 10 columns ring, 2 pixels thick."""
    glyph = np.ones((16, 10), dtype=np.uint8)
    glyph[2:14, 2:8] = 0
    return glyph


def make_one():
    """16 x 10 stem with a flag and a full-width base."""
    glyph = np.zeros((16, 10), dtype=np.uint8)
    glyph[:, 4:6] = 1
    glyph[1, 3] = 1
    glyph[2, 2] = 1
    glyph[15, :] = 1
    return glyph


def variants(glyph, extra, missing):
    """The glyph, a copy with one extra pixel and a copy with one pixel missing."""
    added = glyph.copy()
    added[extra] = 1
    removed = glyph.copy()
    removed[missing] = 0
    return [glyph.copy(), added, removed]


@pytest.fixture
def zero_glyph():
    return make_zero()


@pytest.fixture
def one_glyph():
    return make_one()


@pytest.fixture
def digit_pairs():
    """Three examples each of "0" and "1"; averaging gives back the clean glyphs."""
    zeros = variants(make_zero(), (5, 3), (0, 5))
    ones = variants(make_one(), (8, 8), (0, 4))
    return [("0", g) for g in zeros] + [("1", g) for g in ones]


@pytest.fixture
def unscaled_config():
    """No scaling, one pixel of vertical search."""
    from bookrec.config import RecogConfig, TemplateConfig

    return RecogConfig(template=TemplateConfig(scale_width=0, scale_height=0, max_y_shift=1))


@pytest.fixture
def digit_recognizer(digit_pairs, unscaled_config):
    from bookrec.recog.recognizer import Recognizer

    return Recognizer.from_generating_set(digit_pairs, unscaled_config)
