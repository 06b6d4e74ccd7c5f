"""OpenCV DNN ResNet-10 SSD face detector."""

from pathlib import Path
from typing import Any, Iterable, Optional, Tuple, Union

import cv2
import numpy as np

from facepath.crop import to_bgr
from facepath.detectors.base import BaseDetector, RawBox
from facepath.errors import DetectionError
from facepath.paths import resolve_model_path

DEFAULT_PROTOTXT = "deploy.prototxt"
DEFAULT_WEIGHTS = "res10_300x300_ssd_iter_140000.caffemodel"


class SsdResNetDetector(BaseDetector):
    """Learned single-shot detector run through ``cv2.dnn``.

    Args:
        prototxt: Caffe network definition. Resolved against the models
            directory when relative.
        weights: Caffe weights file.
        confidence_threshold: Minimum detection confidence.
        input_size: Network input (width, height).
        mean: Per-channel BGR mean subtracted from the input blob.
        net: Pre-loaded network object. When given, files are not read
            and the net is shared between threads under a lock.
        models_dir: Directory for relative model paths.
    """

    name = "ssd"

    def __init__(
        self,
        prototxt: Union[str, Path] = DEFAULT_PROTOTXT,
        weights: Union[str, Path] = DEFAULT_WEIGHTS,
        confidence_threshold: float = 0.5,
        input_size: Tuple[int, int] = (300, 300),
        mean: Tuple[float, float, float] = (104.0, 177.0, 123.0),
        net: Optional[Any] = None,
        models_dir: Optional[Union[str, Path]] = None,
    ):
        super().__init__(min_confidence=confidence_threshold)
        self._prototxt = prototxt
        self._weights = weights
        self._input_size = tuple(input_size)
        self._mean = tuple(mean)
        self._net = net
        self._models_dir = models_dir
        self.per_thread = net is None

    def _load(self) -> Any:
        if self._net is not None:
            return self._net
        proto = resolve_model_path(self._prototxt, self._models_dir)
        weights = resolve_model_path(self._weights, self._models_dir)
        for path in (proto, weights):
            if not path.is_file():
                raise DetectionError(f"SSD model file not found: {path}")
        try:
            return cv2.dnn.readNetFromCaffe(str(proto), str(weights))
        except cv2.error as exc:
            raise DetectionError(f"Cannot load SSD model {weights}: {exc}") from exc

    def _detect(self, model: Any, pixels: np.ndarray) -> Iterable[RawBox]:
        h, w = pixels.shape[:2]
        image = cv2.resize(to_bgr(pixels), self._input_size)
        blob = cv2.dnn.blobFromImage(image, 1.0, self._input_size, self._mean)
        model.setInput(blob)
        detections = np.asarray(model.forward()).reshape(-1, 7)

        boxes = []
        for row in detections:
            confidence = float(row[2])
            if confidence < self.min_confidence:
                continue
            x1, y1, x2, y2 = row[3] * w, row[4] * h, row[5] * w, row[6] * h
            boxes.append((x1, y1, x2 - x1, y2 - y1, confidence))
        return boxes


__all__ = ["SsdResNetDetector", "DEFAULT_PROTOTXT", "DEFAULT_WEIGHTS"]
