"""Live camera source with a background capture thread."""

import logging
import queue
import threading
import time
from typing import Any, Optional, Union

import cv2

from facepath.config import OverflowPolicy
from facepath.errors import FrameNotReady, SourceError
from facepath.sources.base import BaseSource
from facepath.types import Frame, SourceKind

logger = logging.getLogger(__name__)


class CameraSource(BaseSource):
    """Reads frames from a camera device on a background thread.

    Sequence numbers are assigned at capture time. With the ``drop``
    overflow policy, frames captured while the buffer is full are
    discarded, leaving gaps in the sequence but never reordering or
    repeating a number. With ``block`` the capture thread waits for
    room instead.

    Args:
        device: Camera index or stream URL.
        width: Requested capture width.
        height: Requested capture height.
        fps: Requested capture rate.
        buffer_size: Frames held between capture and ``read()``.
        overflow: "drop" or "block" when the buffer is full.
        max_read_failures: Consecutive failed reads before the stream ends
            with ``SourceError``.
        capture: Pre-built ``cv2.VideoCapture``-like object.

    Example:
        >>> with CameraSource(0, buffer_size=2) as cam:
        ...     try:
        ...         frame = cam.read(timeout=0.5)
        ...     except FrameNotReady:
        ...         pass
    """

    kind = SourceKind.CAMERA_FRAME
    live = True

    def __init__(
        self,
        device: Union[int, str] = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 30,
        buffer_size: int = 2,
        overflow: Union[str, OverflowPolicy] = OverflowPolicy.DROP,
        max_read_failures: int = 30,
        capture: Optional[Any] = None,
    ):
        super().__init__()
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {buffer_size}")
        self._device = device
        self._width = width
        self._height = height
        self._fps = fps
        self._overflow = OverflowPolicy(overflow)
        self._max_read_failures = max_read_failures
        self._cap = capture
        self._owns_capture = capture is None

        self._queue: "queue.Queue[Frame]" = queue.Queue(maxsize=buffer_size)
        self._stop = threading.Event()
        self._finished = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[SourceError] = None

        self.frames_captured = 0
        self.frames_dropped = 0

    def describe(self) -> str:
        return f"CameraSource(camera:{self._device})"

    def _open(self) -> None:
        if self._cap is None:
            self._cap = cv2.VideoCapture(self._device)
        if not self._cap.isOpened():
            raise SourceError("Camera unavailable", source=f"camera:{self._device}")
        if self._owns_capture:
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._width)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._height)
            self._cap.set(cv2.CAP_PROP_FPS, self._fps)

        self._thread = threading.Thread(
            target=self._capture_loop,
            name=f"facepath_camera_{self._device}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Camera {self._device} started (overflow={self._overflow.value})")

    def _capture_loop(self) -> None:
        sequence_no = 0
        failures = 0
        last_ts = -1
        start_ns = time.monotonic_ns()
        try:
            while not self._stop.is_set():
                ok, image = self._cap.read()
                if not ok or image is None:
                    failures += 1
                    if failures > self._max_read_failures:
                        self._error = SourceError(
                            f"Camera read failed {failures} times in a row",
                            source=f"camera:{self._device}",
                        )
                        logger.error(str(self._error))
                        return
                    time.sleep(0.01)
                    continue
                failures = 0

                ts = time.monotonic_ns() - start_ns
                if ts <= last_ts:
                    ts = last_ts + 1
                last_ts = ts
                frame = Frame(sequence_no, ts, image, SourceKind.CAMERA_FRAME)
                sequence_no += 1
                self.frames_captured += 1

                if self._overflow is OverflowPolicy.DROP:
                    try:
                        self._queue.put_nowait(frame)
                    except queue.Full:
                        self.frames_dropped += 1
                        logger.debug(f"Camera buffer full, dropped frame {frame.sequence_no}")
                else:
                    while not self._stop.is_set():
                        try:
                            self._queue.put(frame, timeout=0.1)
                            break
                        except queue.Full:
                            continue
        except Exception as exc:
            self._error = SourceError(f"Camera capture failed: {exc}", source=f"camera:{self._device}")
            logger.error(str(self._error))
        finally:
            self._finished.set()

    def read(self, timeout: Optional[float] = None) -> Optional[Frame]:
        self.open()
        if self._closed:
            return None
        try:
            if timeout is None or timeout <= 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            pass

        if self._finished.is_set() and self._queue.empty():
            if self._error is not None:
                raise self._error
            return None
        raise FrameNotReady(f"No frame ready from camera {self._device}")

    def _close(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
        if self.frames_dropped:
            logger.info(
                f"Camera {self._device}: {self.frames_captured} captured, "
                f"{self.frames_dropped} dropped"
            )


__all__ = ["CameraSource"]
