"""Frame source contract."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Optional

from facepath.errors import FrameNotReady
from facepath.types import Frame, SourceKind

logger = logging.getLogger(__name__)

NS_PER_SECOND = 1_000_000_000


class BaseSource(ABC):
    """Produces frames in strictly increasing ``sequence_no`` order.

    ``read()`` returns the next frame, or None at end of stream. Live
    sources raise ``FrameNotReady`` when no frame is available yet.
    Sources fail with ``SourceError``; the failure is final for that
    instance.

    Example:
        >>> with VideoFileSource("clip.mp4", fps=10) as source:
        ...     for frame in source:
        ...         handle(frame)
    """

    kind: SourceKind = SourceKind.VIDEO_FRAME
    live: bool = False

    def __init__(self) -> None:
        self._opened = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    def open(self) -> None:
        """Acquire the underlying input. Calling it twice is a no-op."""
        if self._opened:
            return
        self._open()
        self._opened = True
        logger.debug(f"Opened {self.describe()}")

    def close(self) -> None:
        """Release the underlying input."""
        if self._opened and not self._closed:
            self._closed = True
            self._close()
            logger.debug(f"Closed {self.describe()}")

    @abstractmethod
    def read(self, timeout: Optional[float] = None) -> Optional[Frame]:
        """Return the next frame, or None at end of stream.

        Args:
            timeout: For live sources, seconds to wait for a frame. None
                means do not wait.

        Raises:
            FrameNotReady: Live source has no frame yet.
            SourceError: Input cannot be read.
        """

    def describe(self) -> str:
        return type(self).__name__

    def _open(self) -> None:
        pass

    def _close(self) -> None:
        pass

    def __enter__(self) -> "BaseSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[Frame]:
        self.open()
        while True:
            try:
                frame = self.read(timeout=0.1)
            except FrameNotReady:
                continue
            if frame is None:
                return
            yield frame


__all__ = ["BaseSource", "NS_PER_SECOND"]
