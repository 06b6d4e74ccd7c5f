"""Output sinks for FrameResults.

Sinks receive FrameResults in sequence order and handle their output:
- MemorySink: In-memory list for tests/analysis
- CallbackSink: Forwards each result to a function
- JsonlSink: One JSON object per frame (file or stream)

Serialization is the sink's business; the pipeline only calls ``emit``.
"""

import base64
import json
import logging
import threading
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Optional, Protocol, Union

import cv2

from facepath.types import FaceObservation, FrameResult, FrameStatus

logger = logging.getLogger(__name__)


class ResultSink(Protocol):
    def emit(self, result: FrameResult) -> None:
        ...


class MemorySink:
    """Keeps every emitted result in memory."""

    def __init__(self) -> None:
        self.results: List[FrameResult] = []
        self._lock = threading.Lock()

    def emit(self, result: FrameResult) -> None:
        with self._lock:
            self.results.append(result)

    def observations(self) -> List[FaceObservation]:
        """All observations, in emission order."""
        with self._lock:
            return [obs for r in self.results for obs in r.observations]

    def sequence_numbers(self) -> List[int]:
        with self._lock:
            return [r.sequence_no for r in self.results]

    def no_face_frames(self) -> List[int]:
        with self._lock:
            return [r.sequence_no for r in self.results if r.status is FrameStatus.NO_FACES]

    def clear(self) -> None:
        with self._lock:
            self.results.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self.results)


class CallbackSink:
    """Calls ``fn(result)`` for every emitted result."""

    def __init__(self, fn: Callable[[FrameResult], Any]):
        self._fn = fn

    def emit(self, result: FrameResult) -> None:
        self._fn(result)


def encode_crop(pixels) -> str:
    """Encode an image as base64 PNG."""
    ok, buf = cv2.imencode(".png", pixels)
    if not ok:
        raise ValueError(f"Cannot encode crop of shape {pixels.shape}")
    return base64.b64encode(buf.tobytes()).decode("ascii")


class JsonlSink:
    """Writes one JSON object per frame.

    Args:
        target: File path (opened for writing) or a text stream.
        include_crops: Embed anonymized crops as base64 PNG under
            ``anonymized_crop`` in each face entry.

    Example:
        >>> with JsonlSink("results.jsonl") as sink:
        ...     pipeline.run("clip.mp4", sink)
    """

    def __init__(self, target: Union[str, Path, IO[str]], include_crops: bool = False):
        self._include_crops = include_crops
        self._lock = threading.Lock()
        if isinstance(target, (str, Path)):
            path = Path(target)
            path.parent.mkdir(parents=True, exist_ok=True)
            self._stream: Optional[IO[str]] = open(path, "w", encoding="utf-8")
            self._owns_stream = True
            self.path: Optional[Path] = path
        else:
            self._stream = target
            self._owns_stream = False
            self.path = None
        self.count = 0

    def emit(self, result: FrameResult) -> None:
        data = self._to_dict(result)
        line = json.dumps(data, ensure_ascii=False)
        with self._lock:
            if self._stream is None:
                raise ValueError("JsonlSink is closed")
            self._stream.write(line + "\n")
            self._stream.flush()
            self.count += 1

    def _to_dict(self, result: FrameResult) -> Dict[str, Any]:
        data = result.to_dict()
        if not self._include_crops:
            return data
        for face, obs in zip(data["faces"], result.observations):
            if obs.anonymized_crop is not None:
                face["anonymized_crop"] = encode_crop(obs.anonymized_crop)
        return data

    def close(self) -> None:
        with self._lock:
            if self._stream is None:
                return
            if self._owns_stream:
                self._stream.close()
                logger.info(f"Wrote {self.count} frames to {self.path}")
            self._stream = None

    def __enter__(self) -> "JsonlSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


__all__ = ["ResultSink", "MemorySink", "CallbackSink", "JsonlSink", "encode_crop"]
