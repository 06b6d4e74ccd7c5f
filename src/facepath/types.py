"""Core data types shared by every pipeline stage.

Frames and regions are immutable once constructed and may be read by
several workers at once. FaceObservation and FrameResult are the output
records handed to sinks.

Example:
    >>> import numpy as np
    >>> frame = Frame(0, 0, np.zeros((480, 640, 3), np.uint8), SourceKind.IMAGE)
    >>> region = Region(600, 10, 100, 100, 0.9).clamp(frame.width, frame.height)
    >>> region.width
    40
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from facepath.attributes import AttributeSet


class SourceKind(str, Enum):
    IMAGE = "image"
    VIDEO_FRAME = "video_frame"
    CAMERA_FRAME = "camera_frame"


@dataclass(frozen=True)
class Frame:
    """A single timestamped frame.

    The pixel buffer is stored as a read-only view; writing to
    ``frame.pixels`` raises ``ValueError``.

    Attributes:
        sequence_no: Monotonic frame number assigned by the source.
        timestamp_ns: Time since the start of the source in nanoseconds.
        pixels: Image array, (H, W) grayscale or (H, W, C) with C in 1, 3, 4.
        source_kind: Which kind of input produced the frame.
    """

    sequence_no: int
    timestamp_ns: int
    pixels: np.ndarray = field(repr=False, compare=False)
    source_kind: SourceKind = SourceKind.IMAGE

    def __post_init__(self) -> None:
        pixels = self.pixels
        if not isinstance(pixels, np.ndarray):
            raise TypeError(f"Frame pixels must be a numpy array, got {type(pixels).__name__}")
        if pixels.ndim not in (2, 3) or (pixels.ndim == 3 and pixels.shape[2] not in (1, 3, 4)):
            raise ValueError(f"Unsupported frame shape: {pixels.shape}")
        if self.sequence_no < 0:
            raise ValueError(f"sequence_no must be non-negative, got {self.sequence_no}")
        view = pixels.view()
        view.flags.writeable = False
        object.__setattr__(self, "pixels", view)
        object.__setattr__(self, "source_kind", SourceKind(self.source_kind))

    @property
    def timestamp(self) -> float:
        """Timestamp in seconds."""
        return self.timestamp_ns / 1e9

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True)
class Region:
    """Face bounding box in frame pixel coordinates.

    Attributes:
        x: Left edge.
        y: Top edge.
        width: Box width.
        height: Box height.
        confidence: Detector confidence in [0, 1].
    """

    x: int
    y: int
    width: int
    height: int
    confidence: float = 1.0

    def __post_init__(self) -> None:
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Region origin must be non-negative: ({self.x}, {self.y})")
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Region size must be non-negative: {self.width}x{self.height}")
        conf = float(self.confidence)
        if not 0.0 <= conf <= 1.0:
            conf = min(max(conf, 0.0), 1.0)
        object.__setattr__(self, "confidence", conf)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def bbox(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.width, self.height)

    def contains_in(self, frame_width: int, frame_height: int) -> bool:
        """Whether the rectangle lies fully inside a frame of the given size."""
        return (
            self.x >= 0
            and self.y >= 0
            and self.x + self.width <= frame_width
            and self.y + self.height <= frame_height
        )

    @classmethod
    def from_box(
        cls,
        x: float,
        y: float,
        width: float,
        height: float,
        confidence: float,
        frame_width: int,
        frame_height: int,
    ) -> Optional["Region"]:
        """Build a region from a raw detector box, clipped to the frame.

        Raw boxes may start left of or above the frame.

        Returns:
            The clipped region, or None if nothing of it lies in the frame.

        Example:
            >>> Region.from_box(-10, 20, 50, 50, 0.8, 640, 480).bbox
            (0, 20, 40, 50)
        """
        left = int(round(x))
        top = int(round(y))
        x1 = max(0, left)
        y1 = max(0, top)
        x2 = min(frame_width, left + int(round(width)))
        y2 = min(frame_height, top + int(round(height)))
        if x2 <= x1 or y2 <= y1:
            return None
        return cls(x1, y1, x2 - x1, y2 - y1, float(confidence))

    def clamp(self, frame_width: int, frame_height: int) -> Optional["Region"]:
        """Clip the rectangle to frame bounds.

        Returns:
            The clipped region, or None if nothing of it remains.
        """
        return Region.from_box(
            self.x, self.y, self.width, self.height, self.confidence,
            frame_width, frame_height,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "confidence": round(self.confidence, 6),
        }


def sort_regions(regions: Iterable[Region]) -> List[Region]:
    """Order regions by descending confidence, then left-to-right, then top-down."""
    return sorted(regions, key=lambda r: (-r.confidence, r.x, r.y))


class QualityReason(str, Enum):
    TOO_SMALL = "too_small"
    TOO_BLURRY = "too_blurry"
    EXTREME_POSE = "extreme_pose"


@dataclass(frozen=True)
class QualityScore:
    """Usability score of a face region.

    Attributes:
        value: Overall score in [0, 1].
        reason: Why the score is below the usability threshold, if it is.
        sharpness: Sharpness component in [0, 1].
        size: Size component in [0, 1].
        pose: Pose component in [0, 1], when a head pose was known.
        refined: True when computed after attribute inference.
        brightness: Mean intensity in [0, 1]. Informational only.
        contrast: Intensity spread in [0, 1]. Informational only.
    """

    value: float
    reason: Optional[QualityReason] = None
    sharpness: float = 0.0
    size: float = 0.0
    pose: Optional[float] = None
    refined: bool = False
    brightness: Optional[float] = None
    contrast: Optional[float] = None

    @property
    def usable(self) -> bool:
        return self.reason is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "value": round(self.value, 4),
            "sharpness": round(self.sharpness, 4),
            "size": round(self.size, 4),
            "refined": self.refined,
        }
        if self.pose is not None:
            data["pose"] = round(self.pose, 4)
        if self.brightness is not None:
            data["brightness"] = round(self.brightness, 4)
        if self.contrast is not None:
            data["contrast"] = round(self.contrast, 4)
        if self.reason is not None:
            data["reason"] = self.reason.value
        return data


@dataclass(frozen=True)
class FaceObservation:
    """Finalized analysis record for one face in one frame.

    Attributes:
        frame_sequence_no: Sequence number of the parent frame.
        region: Face rectangle, always inside the parent frame.
        fingerprint: Content hash of the normalized crop.
        attributes: Inferred attributes. Failed kinds are absent.
        quality: Final quality score.
        anonymized_crop: Redacted copy of the region, when requested.
        diagnostics: Failure notes keyed by attribute kind or stage name.
        region_index: Position of the region in detector order.
        cached: True when attributes came from the cache or a shared computation.
    """

    frame_sequence_no: int
    region: Region
    fingerprint: str
    attributes: AttributeSet
    quality: QualityScore
    anonymized_crop: Optional[np.ndarray] = field(default=None, repr=False, compare=False)
    diagnostics: Mapping[str, str] = field(default_factory=dict)
    region_index: int = 0
    cached: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "diagnostics", MappingProxyType(dict(self.diagnostics)))
        if self.anonymized_crop is not None:
            crop = self.anonymized_crop.view()
            crop.flags.writeable = False
            object.__setattr__(self, "anonymized_crop", crop)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "frame": self.frame_sequence_no,
            "index": self.region_index,
            "region": self.region.to_dict(),
            "fingerprint": self.fingerprint,
            "attributes": self.attributes.to_dict(),
            "quality": self.quality.to_dict(),
            "cached": self.cached,
        }
        if self.diagnostics:
            data["diagnostics"] = dict(self.diagnostics)
        return data


class FrameStatus(str, Enum):
    FACES = "faces"
    NO_FACES = "no_faces"
    EXCLUDED = "excluded"
    FAILED = "failed"


@dataclass(frozen=True)
class FrameResult:
    """Per-frame output unit, emitted in sequence order.

    A frame with no detected faces yields a ``NO_FACES`` result with no
    observations. ``EXCLUDED`` means faces were found but all of them
    were dropped by the quality policy. ``FAILED`` carries the detection
    error for the frame.
    """

    sequence_no: int
    timestamp_ns: int
    source_kind: SourceKind
    frame_size: Tuple[int, int]
    status: FrameStatus
    observations: Tuple[FaceObservation, ...] = ()
    excluded: int = 0
    error: Optional[str] = None

    @property
    def no_faces(self) -> bool:
        return self.status is FrameStatus.NO_FACES

    @property
    def timestamp(self) -> float:
        return self.timestamp_ns / 1e9

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sequence_no": self.sequence_no,
            "timestamp_ns": self.timestamp_ns,
            "source_kind": self.source_kind.value,
            "frame_size": list(self.frame_size),
            "status": self.status.value,
            "faces": [obs.to_dict() for obs in self.observations],
        }
        if self.excluded:
            data["excluded"] = self.excluded
        if self.error:
            data["error"] = self.error
        return data


__all__ = [
    "SourceKind",
    "Frame",
    "Region",
    "sort_regions",
    "QualityReason",
    "QualityScore",
    "FaceObservation",
    "FrameStatus",
    "FrameResult",
]
