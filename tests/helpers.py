"""Shared test helpers for facepath tests."""

import threading
import time
from pathlib import Path
from types import SimpleNamespace
from typing import Dict, Iterable, List, Optional, Sequence

import cv2
import numpy as np

from facepath.attributes import AttributeKind, AttributeSet
from facepath.detectors.base import BaseDetector
from facepath.errors import DetectionError

FACE_BOX = (50, 50, 100, 100, 0.99)


def create_test_video(path: Path, num_frames: int = 30, fps: int = 30) -> None:
    """Create a test video file.

    Args:
        path: Output path for the video file (.avi).
        num_frames: Number of frames to generate.
        fps: Frame rate of the video.
    """
    width, height = 320, 240
    fourcc = cv2.VideoWriter_fourcc(*"MJPG")
    writer = cv2.VideoWriter(str(path), fourcc, fps, (width, height))

    for i in range(num_frames):
        frame = np.zeros((height, width, 3), dtype=np.uint8)
        frame[:, :, 0] = (i * 3) % 256
        frame[:, :, 1] = (i * 2) % 256
        frame[:, :, 2] = (i * 1) % 256
        cv2.putText(
            frame, f"F{i}", (10, 30),
            cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 255, 255), 2,
        )
        writer.write(frame)

    writer.release()


def checkerboard(height: int, width: int, block: int = 10, value: int = 200) -> np.ndarray:
    """High-frequency BGR pattern that scores as sharp."""
    ys, xs = np.indices((height, width))
    board = (((ys // block) + (xs // block)) % 2 * value).astype(np.uint8)
    return np.repeat(board[:, :, np.newaxis], 3, axis=2)


def create_face_image(height: int = 200, width: int = 200, seed: Optional[int] = None) -> np.ndarray:
    """Image with a sharp textured patch where ``FACE_BOX`` points.

    A seed adds noise so that different images yield different crops.
    """
    image = np.full((height, width, 3), 90, dtype=np.uint8)
    x, y, w, h, _ = FACE_BOX
    image[y:y + h, x:x + w] = checkerboard(h, w)
    if seed is not None:
        rng = np.random.default_rng(seed)
        noise = rng.integers(0, 40, size=(h, w, 3), dtype=np.uint8)
        image[y:y + h, x:x + w] = np.clip(image[y:y + h, x:x + w].astype(np.int16) + noise, 0, 255)
    return image


class FakeDetector(BaseDetector):
    """Returns fixed boxes for every frame.

    Args:
        boxes: (x, y, w, h, confidence) boxes, or a callable of the frame
            sequence number returning them.
        delays: Seconds to sleep per frame sequence number.
        delay: Seconds to sleep for every frame.
        fail_on: Sequence numbers that raise DetectionError.
    """

    name = "fake"
    per_thread = True

    def __init__(
        self,
        boxes=(FACE_BOX,),
        delays: Optional[Dict[int, float]] = None,
        delay: float = 0.0,
        fail_on: Iterable[int] = (),
    ):
        super().__init__()
        self._boxes = boxes
        self._delays = delays or {}
        self._delay = delay
        self._fail_on = set(fail_on)
        self._calls_lock = threading.Lock()
        self._frame_seq = threading.local()
        self.calls: List[int] = []
        self.finished: List[int] = []
        self.active = 0
        self.peak_active = 0

    def _load(self):
        return object()

    def detect(self, frame):
        self._frame_seq.value = getattr(frame, "sequence_no", 0)
        return super().detect(frame)

    def _detect(self, model, pixels):
        seq = self._frame_seq.value
        with self._calls_lock:
            self.calls.append(seq)
            self.active += 1
            self.peak_active = max(self.peak_active, self.active)
        try:
            time.sleep(self._delays.get(seq, self._delay))
            if seq in self._fail_on:
                raise DetectionError(f"corrupt frame {seq}")
            boxes = self._boxes(seq) if callable(self._boxes) else self._boxes
            return list(boxes)
        finally:
            with self._calls_lock:
                self.active -= 1
                self.finished.append(seq)


class SequenceDetector:
    """Minimal duck-typed detector: regions per sequence number with delays."""

    name = "sequence"

    def __init__(self, regions, delays: Optional[Dict[int, float]] = None):
        self._regions = regions
        self._delays = delays or {}
        self._lock = threading.Lock()
        self.finished: List[int] = []

    def detect(self, frame):
        time.sleep(self._delays.get(frame.sequence_no, 0.0))
        with self._lock:
            self.finished.append(frame.sequence_no)
        return list(self._regions)


class FakeAnalyzer:
    """Returns fixed attributes and counts invocations.

    Args:
        values: Attribute values returned for every crop.
        kinds: Supported kinds (default: keys of ``values``).
        delay: Seconds to sleep per call.
        errors: Per-kind failure reasons added to every result.
    """

    def __init__(
        self,
        values=None,
        kinds: Optional[Sequence] = None,
        delay: float = 0.0,
        errors=None,
    ):
        self._values = dict(values if values is not None else {"age": 34, "gender": "female"})
        self._errors = dict(errors or {})
        names = kinds if kinds is not None else list(self._values) + list(self._errors)
        self.supported_kinds = frozenset(AttributeKind.parse(k) for k in names)
        self._delay = delay
        self._lock = threading.Lock()
        self.calls = 0
        self.loaded = False

    def load(self):
        self.loaded = True

    def infer(self, crop, kinds=None):
        with self._lock:
            self.calls += 1
        if self._delay:
            time.sleep(self._delay)
        result = AttributeSet(self._values, self._errors)
        return result if kinds is None else result.select(kinds)


class FakeCapture:
    """``cv2.VideoCapture`` stand-in serving a fixed list of images."""

    def __init__(self, images: Sequence[np.ndarray], fps: float = 10.0, opened: bool = True):
        self._images = list(images)
        self._fps = fps
        self._opened = opened
        self._index = 0
        self.released = False

    def isOpened(self):
        return self._opened

    def read(self):
        if self._index >= len(self._images):
            return False, None
        image = self._images[self._index]
        self._index += 1
        return True, image

    def get(self, prop):
        if prop == cv2.CAP_PROP_FPS:
            return self._fps
        if prop == cv2.CAP_PROP_FRAME_COUNT:
            return float(len(self._images))
        if prop == cv2.CAP_PROP_FRAME_WIDTH:
            return float(self._images[0].shape[1]) if self._images else 0.0
        if prop == cv2.CAP_PROP_FRAME_HEIGHT:
            return float(self._images[0].shape[0]) if self._images else 0.0
        if prop == cv2.CAP_PROP_POS_MSEC:
            # Position of the most recently decoded frame
            return max(self._index - 1, 0) * 1000.0 / self._fps
        return 0.0

    def set(self, prop, value):
        if prop == cv2.CAP_PROP_POS_MSEC:
            self._index = int(round(value * self._fps / 1000.0))
        return True

    def release(self):
        self.released = True


class FakeSession:
    """ONNX Runtime session stand-in returning fixed outputs."""

    def __init__(self, outputs: Sequence[np.ndarray]):
        self._outputs = [np.asarray(o) for o in outputs]
        self.inputs: List[Dict[str, np.ndarray]] = []

    def get_inputs(self):
        return [SimpleNamespace(name="input")]

    def run(self, output_names, feeds):
        self.inputs.append(feeds)
        return list(self._outputs)


def create_mock_frame(sequence_no: int = 0, t_ns: int = 0, image: Optional[np.ndarray] = None):
    """Create a Frame over a synthetic face image."""
    from facepath.types import Frame, SourceKind

    pixels = image if image is not None else create_face_image()
    return Frame(sequence_no, t_ns, pixels, SourceKind.VIDEO_FRAME)
