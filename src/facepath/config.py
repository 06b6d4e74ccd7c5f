"""Configuration for the face analysis pipeline.

Example:
    >>> from facepath.config import PipelineConfig
    >>>
    >>> config = PipelineConfig(
    ...     detector="ssd",
    ...     attributes={"age", "gender", "emotion"},
    ...     anonymize="pixelate",
    ...     max_in_flight_frames=8,
    ... )
    >>> config.validate()
    >>>
    >>> # Or from YAML
    >>> config = PipelineConfig.from_yaml("facepath.yaml")
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple, Union

from facepath.attributes import AttributeKind
from facepath.errors import ConfigurationError


class AnonymizeMode(str, Enum):
    BLUR = "blur"
    PIXELATE = "pixelate"
    BLACKOUT = "blackout"
    OVERLAY = "overlay"


class QualityPolicy(str, Enum):
    """What to do with faces scoring below ``min_quality``."""

    FLAG = "flag"
    EXCLUDE = "exclude"


class OverflowPolicy(str, Enum):
    """Admission behaviour for live sources when the pipeline is full."""

    DROP = "drop"
    BLOCK = "block"


class CancelPolicy(str, Enum):
    """Handling of admitted frames when a run is cancelled."""

    DRAIN = "drain"
    ABANDON = "abandon"


def _parse_enum(enum_cls, value, option: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"Invalid {option}: {value!r} (choose from {choices})")


def _parse_attributes(value: Union[str, Iterable]) -> FrozenSet[AttributeKind]:
    if isinstance(value, str):
        value = [v for v in value.split(",") if v.strip()]
    try:
        return frozenset(AttributeKind.parse(v) for v in value)
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc


@dataclass
class PipelineConfig:
    """Options recognised by the pipeline.

    Attributes:
        detector: Detector variant name ("haar", "ssd", "scrfd", ...).
        detector_options: Extra keyword arguments for the detector.
        attributes: Attribute kinds to infer for each face.
        anonymize: Anonymization mode, or None to skip anonymization.
        cache_capacity: Maximum result cache entries. 0 disables storage.
        max_in_flight_frames: Bound on admitted but not yet emitted frames.
        min_quality: Usability threshold for quality scores.
        quality_policy: Flag or exclude faces below ``min_quality``.
        workers: Worker threads for detection and per-face analysis.
        live_overflow: Drop or block when a live source outpaces the pipeline.
        on_cancel: Drain or abandon admitted frames on cancellation.
        poll_interval: Seconds between polls of a live source with no frame ready.
        blackout_color: BGR fill colour for blackout mode.
        blur_kernel: Gaussian kernel size for blur mode (odd).
        pixelate_block: Block size in pixels for pixelate mode.
    """

    detector: str = "haar"
    detector_options: Dict[str, Any] = field(default_factory=dict)
    attributes: FrozenSet[AttributeKind] = field(
        default_factory=lambda: frozenset({AttributeKind.AGE, AttributeKind.GENDER})
    )
    anonymize: Optional[AnonymizeMode] = None
    cache_capacity: int = 1024
    max_in_flight_frames: int = 4
    min_quality: float = 0.5
    quality_policy: QualityPolicy = QualityPolicy.FLAG
    workers: int = 4
    live_overflow: OverflowPolicy = OverflowPolicy.DROP
    on_cancel: CancelPolicy = CancelPolicy.DRAIN
    poll_interval: float = 0.05
    blackout_color: Tuple[int, int, int] = (0, 0, 0)
    blur_kernel: int = 31
    pixelate_block: int = 10

    def __post_init__(self) -> None:
        self.attributes = _parse_attributes(self.attributes)
        if self.anonymize is not None and self.anonymize != "":
            self.anonymize = _parse_enum(AnonymizeMode, self.anonymize, "anonymize")
        else:
            self.anonymize = None
        self.quality_policy = _parse_enum(QualityPolicy, self.quality_policy, "quality_policy")
        self.live_overflow = _parse_enum(OverflowPolicy, self.live_overflow, "live_overflow")
        self.on_cancel = _parse_enum(CancelPolicy, self.on_cancel, "on_cancel")
        self.detector = str(self.detector).strip().lower()
        self.detector_options = dict(self.detector_options or {})
        if self.blackout_color is not None:
            self.blackout_color = tuple(self.blackout_color)

    def validate(self) -> None:
        """Check every option and option combination.

        Raises:
            ConfigurationError: On the first invalid option found.
        """
        from facepath.detectors import available_detectors

        if self.detector not in available_detectors():
            known = ", ".join(available_detectors())
            raise ConfigurationError(f"Unknown detector: {self.detector!r} (available: {known})")
        _require_int("cache_capacity", self.cache_capacity, minimum=0)
        _require_int("max_in_flight_frames", self.max_in_flight_frames, minimum=1)
        _require_int("workers", self.workers, minimum=1)
        if isinstance(self.min_quality, bool) or not isinstance(self.min_quality, (int, float)):
            raise ConfigurationError(f"min_quality must be a number, got {self.min_quality!r}")
        if not 0.0 <= self.min_quality <= 1.0:
            raise ConfigurationError(f"min_quality must be in [0, 1], got {self.min_quality}")
        if not isinstance(self.poll_interval, (int, float)) or self.poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be positive, got {self.poll_interval!r}")
        if self.anonymize is not None:
            _require_int("blur_kernel", self.blur_kernel, minimum=1)
            if self.blur_kernel % 2 == 0:
                raise ConfigurationError(f"blur_kernel must be odd, got {self.blur_kernel}")
            _require_int("pixelate_block", self.pixelate_block, minimum=1)
        if self.anonymize in (AnonymizeMode.BLACKOUT, AnonymizeMode.OVERLAY):
            color = self.blackout_color
            if len(color) != 3 or not all(isinstance(c, int) and 0 <= c <= 255 for c in color):
                raise ConfigurationError(f"blackout_color must be three ints in [0, 255], got {color!r}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create a PipelineConfig from a dictionary (e.g., loaded from YAML).

        Raises:
            ConfigurationError: On unknown keys or invalid values.
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config must be a mapping, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config option(s): {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "PipelineConfig":
        """Load a PipelineConfig from a YAML file.

        Raises:
            ConfigurationError: If the file is missing or not valid YAML.
        """
        import yaml

        try:
            with open(yaml_path) as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigurationError(f"Cannot read config file {yaml_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {yaml_path}: {exc}") from exc

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary for serialization."""
        return {
            "detector": self.detector,
            "detector_options": dict(self.detector_options),
            "attributes": sorted(k.value for k in self.attributes),
            "anonymize": self.anonymize.value if self.anonymize else None,
            "cache_capacity": self.cache_capacity,
            "max_in_flight_frames": self.max_in_flight_frames,
            "min_quality": self.min_quality,
            "quality_policy": self.quality_policy.value,
            "workers": self.workers,
            "live_overflow": self.live_overflow.value,
            "on_cancel": self.on_cancel.value,
            "poll_interval": self.poll_interval,
            "blackout_color": list(self.blackout_color),
            "blur_kernel": self.blur_kernel,
            "pixelate_block": self.pixelate_block,
        }


def _require_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")


__all__ = [
    "AnonymizeMode",
    "QualityPolicy",
    "OverflowPolicy",
    "CancelPolicy",
    "PipelineConfig",
]
