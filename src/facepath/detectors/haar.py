"""Haar cascade face detector (OpenCV)."""

import math
import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple, Union

import cv2
import numpy as np

from facepath.crop import to_gray
from facepath.detectors.base import BaseDetector, RawBox
from facepath.errors import DetectionError

DEFAULT_CASCADE = "haarcascade_frontalface_default.xml"


def _default_cascade_path() -> str:
    data = getattr(cv2, "data", None)
    if data is None:
        raise DetectionError("OpenCV build has no bundled Haar cascades; pass cascade_path")
    return os.path.join(data.haarcascades, DEFAULT_CASCADE)


class HaarCascadeDetector(BaseDetector):
    """Classical Viola-Jones detector.

    Confidence is the logistic of the cascade's final stage weight, so
    stronger detections score closer to 1.

    Args:
        cascade_path: Cascade XML file. Defaults to OpenCV's bundled
            frontal face cascade.
        scale_factor: Image pyramid step.
        min_neighbors: Overlapping detections required to keep a face.
        min_size: Smallest face (width, height) in pixels.
        min_confidence: Regions below this confidence are discarded.

    Example:
        >>> detector = HaarCascadeDetector()
        >>> regions = detector.detect(frame)
    """

    name = "haar"
    per_thread = True

    def __init__(
        self,
        cascade_path: Optional[Union[str, Path]] = None,
        scale_factor: float = 1.1,
        min_neighbors: int = 3,
        min_size: Tuple[int, int] = (30, 30),
        min_confidence: float = 0.0,
    ):
        super().__init__(min_confidence=min_confidence)
        if scale_factor <= 1.0:
            raise ValueError(f"scale_factor must be > 1, got {scale_factor}")
        self._cascade_path = str(cascade_path) if cascade_path else None
        self._scale_factor = scale_factor
        self._min_neighbors = min_neighbors
        self._min_size = tuple(min_size)

    def _load(self) -> Any:
        path = self._cascade_path or _default_cascade_path()
        if not Path(path).is_file():
            raise DetectionError(f"Haar cascade not found: {path}")
        classifier = cv2.CascadeClassifier(path)
        if classifier.empty():
            raise DetectionError(f"Cannot load Haar cascade: {path}")
        return classifier

    def _detect(self, model: Any, pixels: np.ndarray) -> Iterable[RawBox]:
        gray = to_gray(pixels)
        rects, _levels, weights = model.detectMultiScale3(
            gray,
            scaleFactor=self._scale_factor,
            minNeighbors=self._min_neighbors,
            minSize=self._min_size,
            outputRejectLevels=True,
        )
        if len(rects) == 0:
            return []
        weights = np.asarray(weights, dtype=np.float64).reshape(-1)
        return [
            (float(x), float(y), float(w), float(h), 1.0 / (1.0 + math.exp(-float(weight))))
            for (x, y, w, h), weight in zip(rects, weights)
        ]


__all__ = ["HaarCascadeDetector", "DEFAULT_CASCADE"]
