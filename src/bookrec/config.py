"""
Configuration and constants for the book-adapted character recognizer.

This module provides:
- Global logging setup
- Template, averaging, splitting and bootstrap parameters
- Enumerations for template kind, template usage and character sets
- Validation and (de)serialization of recognizer settings
"""

import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any
import logging

from .exceptions import InvalidConfiguration

# ============================================================================
# Logging Configuration
# ============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("bookrec")


# ============================================================================
# Enumerations
# ============================================================================

class TemplateKind(Enum):
    """Representation used for matching."""
    IMAGE = "image"        # binarized scan
    OUTLINE = "outline"    # thinned to a skeleton, then dilated


class TemplateUsage(Enum):
    """Which templates are compared against an unknown sample."""
    ALL = "all"
    AVERAGE = "average"


class CharsetKind(Enum):
    """Limited character sets with a known number of classes."""
    UNKNOWN = "unknown"
    ARABIC_NUMERALS = "arabic_numerals"
    LC_ROMAN_NUMERALS = "lc_roman_numerals"
    UC_ROMAN_NUMERALS = "uc_roman_numerals"
    LC_ALPHA = "lc_alpha"
    UC_ALPHA = "uc_alpha"

    @property
    def size(self) -> int:
        return len(CHARSET_LABELS[self])

    @property
    def labels(self) -> List[str]:
        return list(CHARSET_LABELS[self])


CHARSET_LABELS = {
    CharsetKind.UNKNOWN: "",
    CharsetKind.ARABIC_NUMERALS: "0123456789",
    CharsetKind.LC_ROMAN_NUMERALS: "ivxlcdm",
    CharsetKind.UC_ROMAN_NUMERALS: "IVXLCDM",
    CharsetKind.LC_ALPHA: "abcdefghijklmnopqrstuvwxyz",
    CharsetKind.UC_ALPHA: "ABCDEFGHIJKLMNOPQRSTUVWXYZ",
}


# ============================================================================
# Processing Configuration
# ============================================================================

@dataclass
class TemplateConfig:
    """Template representation, scaling and matching configuration."""
    scale_width: int = 0      # 0 = no horizontal scaling
    scale_height: int = 40    # 0 = no vertical scaling
    template_kind: TemplateKind = TemplateKind.IMAGE
    template_usage: TemplateUsage = TemplateUsage.ALL
    threshold: int = 150      # gray values below this are foreground
    max_y_shift: int = 1      # vertical jiggle on centroid alignment
    outline_dilation: int = 1
    charset_kind: CharsetKind = CharsetKind.UNKNOWN
    charset_size: int = 0


@dataclass
class AveragingConfig:
    """Size bounds for examples that take part in averaging (None = no bound)."""
    min_width_u: Optional[int] = None
    max_width_u: Optional[int] = None
    min_height_u: Optional[int] = None
    max_height_u: Optional[int] = None
    # Bounds on the scaled examples
    min_width: Optional[int] = None
    max_width: Optional[int] = None


@dataclass
class SplitConfig:
    """Line decoding configuration."""
    min_split_width: int = 2
    min_split_height: int = 4
    max_split_height: int = 120
    # Placements scoring below this are not trellis transitions
    min_placement_score: float = 0.1
    # Cost per foreground pixel of a column left unexplained
    skip_penalty: float = 0.25


@dataclass
class BootstrapConfig:
    """Bootstrap harvesting and padding configuration."""
    boot_dir: Optional[str] = None
    boot_pattern: str = "*.png"
    boot_iters: int = 0       # 2x2 erosions applied to padding samples
    min_nopad: int = 3
    max_afterpad: int = 6
    min_samples: int = 10
    min_score: float = 0.75


@dataclass
class RecogConfig:
    """Main recognizer configuration."""
    template: TemplateConfig = field(default_factory=TemplateConfig)
    averaging: AveragingConfig = field(default_factory=AveragingConfig)
    split: SplitConfig = field(default_factory=SplitConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)

    debug_mode: bool = False    # run-time only; the CLI logs at DEBUG

    def validate(self) -> "RecogConfig":
        """Raise InvalidConfiguration on the first inconsistent setting."""
        t = self.template
        if t.scale_width < 0 or t.scale_height < 0:
            raise InvalidConfiguration(
                f"Scaling dimensions must be >= 0, got {t.scale_width}x{t.scale_height}"
            )
        if not 1 <= t.threshold <= 255:
            raise InvalidConfiguration(f"Threshold out of range 1..255: {t.threshold}")
        if t.max_y_shift < 0:
            raise InvalidConfiguration(f"max_y_shift must be >= 0, got {t.max_y_shift}")
        if t.outline_dilation < 0:
            raise InvalidConfiguration(
                f"outline_dilation must be >= 0, got {t.outline_dilation}"
            )
        if t.charset_size < 0:
            raise InvalidConfiguration(f"charset_size must be >= 0, got {t.charset_size}")
        if (t.charset_kind != CharsetKind.UNKNOWN and t.charset_size
                and t.charset_size != t.charset_kind.size):
            raise InvalidConfiguration(
                f"charset_size {t.charset_size} does not match "
                f"{t.charset_kind.value} ({t.charset_kind.size} labels)"
            )

        a = self.averaging
        for low, high, name in (
            (a.min_width_u, a.max_width_u, "unscaled width"),
            (a.min_height_u, a.max_height_u, "unscaled height"),
            (a.min_width, a.max_width, "scaled width"),
        ):
            if low is not None and high is not None and low > high:
                raise InvalidConfiguration(f"Inverted {name} bounds: {low} > {high}")

        s = self.split
        if min(s.min_split_width, s.min_split_height, s.max_split_height) < 0:
            raise InvalidConfiguration("Split sizes must be >= 0")
        if s.min_split_height > s.max_split_height:
            raise InvalidConfiguration(
                f"min_split_height {s.min_split_height} > max_split_height {s.max_split_height}"
            )
        if not 0.0 <= s.min_placement_score <= 1.0:
            raise InvalidConfiguration(
                f"min_placement_score must be in [0, 1], got {s.min_placement_score}"
            )
        if s.skip_penalty < 0:
            raise InvalidConfiguration(f"skip_penalty must be >= 0, got {s.skip_penalty}")

        b = self.bootstrap
        if not 0.0 <= b.min_score <= 1.0:
            raise InvalidConfiguration(f"Bootstrap min_score must be in [0, 1], got {b.min_score}")
        if b.boot_iters < 0 or b.min_nopad < 0 or b.max_afterpad < 0 or b.min_samples < 0:
            raise InvalidConfiguration("Bootstrap counts must be >= 0")

        return self

    @property
    def expected_charset_size(self) -> int:
        if self.template.charset_size:
            return self.template.charset_size
        return self.template.charset_kind.size

    def to_dict(self) -> Dict[str, Any]:
        """Persisted settings; bootstrap settings are run-time only."""
        template = asdict(self.template)
        template["template_kind"] = self.template.template_kind.value
        template["template_usage"] = self.template.template_usage.value
        template["charset_kind"] = self.template.charset_kind.value
        return {
            "template": template,
            "averaging": asdict(self.averaging),
            "split": asdict(self.split),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecogConfig":
        if not isinstance(data, dict):
            raise InvalidConfiguration(f"Configuration must be an object, got {type(data).__name__}")
        try:
            template = dict(data.get("template", {}))
            if "template_kind" in template:
                template["template_kind"] = TemplateKind(template["template_kind"])
            if "template_usage" in template:
                template["template_usage"] = TemplateUsage(template["template_usage"])
            if "charset_kind" in template:
                template["charset_kind"] = CharsetKind(template["charset_kind"])
            config = cls(
                template=TemplateConfig(**template),
                averaging=AveragingConfig(**data.get("averaging", {})),
                split=SplitConfig(**data.get("split", {})),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidConfiguration(f"Unreadable configuration: {e}")
        return config.validate()


# ============================================================================
# Default Configuration Instance
# ============================================================================

def get_config() -> RecogConfig:
    """Get the default recognizer configuration with environment overrides."""
    config = RecogConfig()

    if os.environ.get("BOOKREC_DEBUG", "").lower() == "true":
        config.debug_mode = True

    try:
        scale_height = os.environ.get("BOOKREC_SCALE_HEIGHT")
        if scale_height:
            config.template.scale_height = int(scale_height)

        max_y_shift = os.environ.get("BOOKREC_MAX_Y_SHIFT")
        if max_y_shift:
            config.template.max_y_shift = int(max_y_shift)

        min_score = os.environ.get("BOOKREC_MIN_SCORE")
        if min_score:
            config.bootstrap.min_score = float(min_score)
    except ValueError as e:
        raise InvalidConfiguration(f"Bad numeric environment override: {e}")

    boot_dir = os.environ.get("BOOKREC_BOOT_DIR")
    if boot_dir:
        config.bootstrap.boot_dir = boot_dir

    usage = os.environ.get("BOOKREC_TEMPLATE_USAGE")
    if usage:
        try:
            config.template.template_usage = TemplateUsage(usage.lower())
        except ValueError:
            raise InvalidConfiguration(f"Unknown template usage: {usage}")

    return config.validate()


# ============================================================================
# Persisted Format Version
# ============================================================================

RECOG_VERSION = 2
