"""Source over frames or arrays supplied by the caller."""

import time
from collections.abc import Iterable, Iterator
from typing import Optional, Union

import numpy as np

from facepath.errors import SourceError
from facepath.sources.base import BaseSource, NS_PER_SECOND
from facepath.types import Frame, SourceKind


class IterableSource(BaseSource):
    """Wraps an iterable of arrays or ``Frame`` objects.

    Arrays are numbered from ``start_sequence``. Timestamps are derived
    from ``fps`` when given, otherwise from elapsed wall time. Frames are
    passed through but must arrive in strictly increasing sequence order.
    Exceptions raised by the iterable end the stream with ``SourceError``.

    Args:
        items: Arrays or frames.
        kind: Source kind stamped on frames built from arrays.
        start_sequence: First sequence number for arrays.
        fps: Nominal rate used to derive timestamps.
        live: Treat the source as live for admission control.

    Example:
        >>> source = IterableSource([img1, img2, img3], fps=30)
        >>> [f.sequence_no for f in source]
        [0, 1, 2]
    """

    def __init__(
        self,
        items: Iterable[Union[np.ndarray, Frame]],
        kind: SourceKind = SourceKind.VIDEO_FRAME,
        start_sequence: int = 0,
        fps: Optional[float] = None,
        live: bool = False,
    ):
        super().__init__()
        self._items = items
        self._iter: Optional[Iterator] = None
        self.kind = SourceKind(kind)
        self.live = live
        self._start_sequence = start_sequence
        self._next_sequence = start_sequence
        self._fps = fps
        self._last_sequence = -1
        self._last_ts_ns = -1
        self._start_ns = 0
        self._ended = False

    def _open(self) -> None:
        self._iter = iter(self._items)
        self._start_ns = time.monotonic_ns()

    def read(self, timeout: Optional[float] = None) -> Optional[Frame]:
        self.open()
        if self._ended or self._closed:
            return None
        try:
            item = next(self._iter)
        except StopIteration:
            self._ended = True
            return None
        except Exception as exc:
            self._ended = True
            raise SourceError(f"Frame producer failed: {exc}", source=self.describe()) from exc

        try:
            frame = self._to_frame(item)
        except (TypeError, ValueError) as exc:
            self._ended = True
            raise SourceError(f"Invalid frame: {exc}", source=self.describe()) from exc

        if frame.sequence_no <= self._last_sequence:
            self._ended = True
            raise SourceError(
                f"Frame sequence {frame.sequence_no} does not follow {self._last_sequence}",
                source=self.describe(),
            )
        self._last_sequence = frame.sequence_no
        self._last_ts_ns = frame.timestamp_ns
        return frame

    def _to_frame(self, item: Union[np.ndarray, Frame]) -> Frame:
        if isinstance(item, Frame):
            if item.timestamp_ns <= self._last_ts_ns:
                raise ValueError(f"timestamp {item.timestamp_ns} does not increase")
            self._next_sequence = item.sequence_no + 1
            return item

        sequence_no = self._next_sequence
        self._next_sequence += 1
        if self._fps:
            ts = int((sequence_no - self._start_sequence) * NS_PER_SECOND / self._fps)
        else:
            ts = time.monotonic_ns() - self._start_ns
        if ts <= self._last_ts_ns:
            ts = self._last_ts_ns + 1
        return Frame(sequence_no, ts, item, self.kind)


__all__ = ["IterableSource"]
