"""Video file source backed by OpenCV."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import cv2

from facepath.errors import SourceError
from facepath.sources.base import BaseSource, NS_PER_SECOND
from facepath.types import Frame, SourceKind

logger = logging.getLogger(__name__)

# Tolerance for floating-point PTS imprecision from video decoders.
# CAP_PROP_POS_MSEC is a float; truncation can land slightly below the
# target time and skip boundary frames when sampling.
_PTS_TOLERANCE_NS = 1_000_000  # 1 ms


@dataclass(frozen=True)
class VideoInfo:
    """Video metadata reported by the decoder."""

    width: int
    height: int
    fps: float
    frame_count: int

    @property
    def duration(self) -> float:
        if self.fps <= 0:
            return 0.0
        return self.frame_count / self.fps


class VideoFileSource(BaseSource):
    """Decodes a video file into timestamped frames.

    Sequence numbers are contiguous output indices starting at 0.
    Timestamps are decoder positions from the start of the file and
    strictly increase.

    Args:
        path: Video file path.
        fps: Target sampling rate (0 keeps every decoded frame).
        start_sec: Skip to this position before reading.
        end_sec: Stop after this position.
        resolution: Optional (width, height) to resize frames to.
        capture: Pre-built ``cv2.VideoCapture``-like object to read from.

    Example:
        >>> source = VideoFileSource("clip.mp4", fps=10, start_sec=5.0)
        >>> source.open()
        >>> source.info.fps
        30.0
    """

    kind = SourceKind.VIDEO_FRAME

    def __init__(
        self,
        path: Union[str, Path],
        fps: float = 0,
        start_sec: Optional[float] = None,
        end_sec: Optional[float] = None,
        resolution: Optional[Tuple[int, int]] = None,
        capture: Optional[Any] = None,
    ):
        super().__init__()
        if fps < 0:
            raise ValueError(f"fps must be >= 0, got {fps}")
        if start_sec is not None and end_sec is not None and end_sec < start_sec:
            raise ValueError(f"end_sec ({end_sec}) is before start_sec ({start_sec})")
        self._path = str(path)
        self._fps = fps
        self._start_ns = int(start_sec * NS_PER_SECOND) if start_sec else 0
        self._end_ns = int(end_sec * NS_PER_SECOND) if end_sec is not None else None
        self._resolution = resolution
        self._cap = capture
        self._frame_interval_ns = int(NS_PER_SECOND / fps) if fps > 0 else 0
        self._next_frame_time_ns = 0
        self._decoded = 0
        self._output_id = 0
        self._last_ts_ns = -1
        self._ended = False
        self.info: Optional[VideoInfo] = None

    def describe(self) -> str:
        return f"VideoFileSource({self._path})"

    def _open(self) -> None:
        if self._cap is None:
            if not Path(self._path).is_file():
                raise SourceError("Video file not found", source=self._path)
            self._cap = cv2.VideoCapture(self._path)
        if not self._cap.isOpened():
            raise SourceError("Cannot open video", source=self._path)

        self.info = VideoInfo(
            width=int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            fps=float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0),
            frame_count=int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT)),
        )
        if self._start_ns:
            self._cap.set(cv2.CAP_PROP_POS_MSEC, self._start_ns / 1_000_000)
        logger.info(
            f"Video {self._path}: {self.info.width}x{self.info.height} "
            f"@ {self.info.fps:.2f}fps, {self.info.frame_count} frames"
        )

    def _position_ns(self) -> int:
        pos_ms = self._cap.get(cv2.CAP_PROP_POS_MSEC)
        if pos_ms and pos_ms > 0:
            return int(pos_ms * 1_000_000)
        fps = self.info.fps if self.info else 0.0
        if fps > 0:
            return self._start_ns + int((self._decoded - 1) * NS_PER_SECOND / fps)
        return self._start_ns + (self._decoded - 1)

    def read(self, timeout: Optional[float] = None) -> Optional[Frame]:
        self.open()
        if self._ended or self._closed:
            return None

        while True:
            ok, image = self._cap.read()
            if not ok or image is None:
                self._ended = True
                if self._decoded == 0:
                    raise SourceError("No decodable frames (unsupported codec?)", source=self._path)
                return None
            self._decoded += 1

            t_ns = self._position_ns()
            if t_ns + _PTS_TOLERANCE_NS < self._start_ns:
                continue
            if self._end_ns is not None and t_ns > self._end_ns + _PTS_TOLERANCE_NS:
                self._ended = True
                return None

            # FPS sampling: skip frames until we reach the next target time
            if self._frame_interval_ns > 0:
                if t_ns + _PTS_TOLERANCE_NS < self._next_frame_time_ns:
                    continue
                self._next_frame_time_ns = t_ns + self._frame_interval_ns

            if self._resolution is not None:
                target_w, target_h = self._resolution
                if image.shape[1] != target_w or image.shape[0] != target_h:
                    image = cv2.resize(image, (target_w, target_h), interpolation=cv2.INTER_LINEAR)

            if t_ns <= self._last_ts_ns:
                t_ns = self._last_ts_ns + 1
            self._last_ts_ns = t_ns

            frame = Frame(self._output_id, t_ns, image, SourceKind.VIDEO_FRAME)
            self._output_id += 1
            return frame

    def _close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


__all__ = ["VideoInfo", "VideoFileSource"]
