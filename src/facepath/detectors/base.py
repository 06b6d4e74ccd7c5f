"""Detector contract and shared detection plumbing."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Protocol, Tuple, Union

import numpy as np

from facepath.errors import DetectionError
from facepath.types import Frame, Region, SourceKind, sort_regions

logger = logging.getLogger(__name__)

# (x, y, width, height, confidence) in frame pixels, before clipping
RawBox = Tuple[float, float, float, float, float]


class FaceDetector(Protocol):
    """Protocol for face detectors.

    Implementations are swappable without touching pipeline logic.
    Examples: Haar cascade, OpenCV DNN SSD, InsightFace SCRFD.
    """

    name: str

    def detect(self, frame: Frame) -> List[Region]:
        """Detect faces in a frame.

        Returns:
            Regions inside the frame, ordered by descending confidence,
            then left-to-right, then top-down.

        Raises:
            DetectionError: Corrupt frame or model failure.
        """
        ...


class BaseDetector(ABC):
    """Implements the detector contract around a model-specific ``_detect``.

    Subclasses provide ``_load()`` (build the model) and
    ``_detect(model, pixels)`` (return raw boxes). This class handles
    frame validation, lazy loading, thread confinement of the model,
    clipping to frame bounds, confidence filtering and ordering.

    Models that are not thread-safe (most OpenCV objects) set
    ``per_thread = True`` and get one instance per worker thread.
    Otherwise one shared instance is used and calls are serialized.

    Args:
        min_confidence: Regions below this confidence are discarded.
    """

    name: str = "base"
    per_thread: bool = True

    def __init__(self, min_confidence: float = 0.0):
        if not 0.0 <= min_confidence <= 1.0:
            raise ValueError(f"min_confidence must be in [0, 1], got {min_confidence}")
        self._min_confidence = min_confidence
        self._local = threading.local()
        self._shared_model: Any = None
        self._lock = threading.Lock()

    @property
    def min_confidence(self) -> float:
        return self._min_confidence

    @abstractmethod
    def _load(self) -> Any:
        """Build the model. Raise ``DetectionError`` when it cannot be loaded."""

    @abstractmethod
    def _detect(self, model: Any, pixels: np.ndarray) -> Iterable[RawBox]:
        """Run the model on a BGR or grayscale uint8 image."""

    def initialize(self) -> None:
        """Load the model now instead of on the first frame."""
        self._model()

    def _load_checked(self) -> Any:
        try:
            model = self._load()
        except DetectionError:
            raise
        except Exception as exc:
            raise DetectionError(f"{self.name}: model load failed: {exc}") from exc
        logger.debug(f"{self.name} model loaded on {threading.current_thread().name}")
        return model

    def _model(self) -> Any:
        if self.per_thread:
            model = getattr(self._local, "model", None)
            if model is None:
                model = self._load_checked()
                self._local.model = model
            return model
        with self._lock:
            if self._shared_model is None:
                self._shared_model = self._load_checked()
            return self._shared_model

    def detect(self, frame: Union[Frame, np.ndarray]) -> List[Region]:
        if isinstance(frame, np.ndarray):
            frame = Frame(0, 0, frame, SourceKind.IMAGE)
        pixels = frame.pixels
        if pixels.size == 0:
            raise DetectionError(f"Frame {frame.sequence_no} is empty")
        if pixels.dtype != np.uint8:
            raise DetectionError(f"Frame {frame.sequence_no} has unsupported dtype {pixels.dtype}")

        model = self._model()
        try:
            if self.per_thread:
                raw = list(self._detect(model, pixels))
            else:
                with self._lock:
                    raw = list(self._detect(model, pixels))
        except DetectionError:
            raise
        except Exception as exc:
            raise DetectionError(
                f"{self.name} detection failed on frame {frame.sequence_no}: {exc}"
            ) from exc

        regions = []
        for x, y, w, h, conf in raw:
            if w <= 0 or h <= 0:
                continue
            region = Region.from_box(
                x, y, w, h, min(max(float(conf), 0.0), 1.0),
                frame.width, frame.height,
            )
            if region is None or region.confidence < self._min_confidence:
                continue
            regions.append(region)
        return sort_regions(regions)


__all__ = ["FaceDetector", "BaseDetector", "RawBox"]
