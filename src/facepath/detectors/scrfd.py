"""InsightFace SCRFD face detector."""

import contextlib
import io
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple, Union

import numpy as np

from facepath.crop import to_bgr
from facepath.detectors.base import BaseDetector, RawBox
from facepath.errors import DetectionError

logger = logging.getLogger(__name__)


class ScrfdDetector(BaseDetector):
    """Learned detector using InsightFace SCRFD (RetinaFace family).

    Requires the ``insightface`` extra. One model instance is shared
    between worker threads.

    Args:
        model_name: InsightFace model pack (default: "buffalo_l").
        det_size: Detection input size (width, height).
        det_thresh: Detection confidence threshold.
        device: "cpu" or "cuda[:N]".
        models_dir: Root directory for InsightFace model packs.
        app: Pre-built ``FaceAnalysis``-like object.

    Example:
        >>> detector = ScrfdDetector(device="cuda:0")
        >>> regions = detector.detect(frame)
    """

    name = "scrfd"
    per_thread = False

    def __init__(
        self,
        model_name: str = "buffalo_l",
        det_size: Tuple[int, int] = (640, 640),
        det_thresh: float = 0.5,
        device: str = "cpu",
        models_dir: Optional[Union[str, Path]] = None,
        app: Optional[Any] = None,
    ):
        super().__init__(min_confidence=det_thresh)
        self._model_name = model_name
        self._det_size = tuple(det_size)
        self._det_thresh = det_thresh
        self._device = device
        self._models_dir = Path(models_dir) if models_dir else None
        self._app = app

    def _load(self) -> Any:
        if self._app is not None:
            return self._app
        try:
            from insightface.app import FaceAnalysis
            import onnxruntime as ort
        except ImportError as exc:
            raise DetectionError(
                "insightface is required for the scrfd detector. "
                "Install with: pip install 'facepath[insightface]'"
            ) from exc

        ort.set_default_logger_severity(3)
        available = ort.get_available_providers()
        if self._device.startswith("cuda") and "CUDAExecutionProvider" in available:
            ctx_id = int(self._device.split(":")[-1]) if ":" in self._device else 0
            providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        else:
            if self._device.startswith("cuda"):
                logger.warning("CUDAExecutionProvider not available, falling back to CPU")
            ctx_id = -1
            providers = ["CPUExecutionProvider"]

        kwargs = dict(name=self._model_name, providers=providers, allowed_modules=["detection"])
        if self._models_dir is not None:
            kwargs["root"] = str(self._models_dir / "insightface")
        with contextlib.redirect_stdout(io.StringIO()):
            app = FaceAnalysis(**kwargs)
            app.prepare(ctx_id=ctx_id, det_size=self._det_size, det_thresh=self._det_thresh)
        logger.info(f"SCRFD initialized ({self._model_name}, providers={providers[0]})")
        return app

    def _detect(self, model: Any, pixels: np.ndarray) -> Iterable[RawBox]:
        faces = model.get(to_bgr(pixels))
        boxes = []
        for face in faces:
            x1, y1, x2, y2 = [float(v) for v in face.bbox[:4]]
            boxes.append((x1, y1, x2 - x1, y2 - y1, float(face.det_score)))
        return boxes


__all__ = ["ScrfdDetector"]
