"""Structured diagnostics for pipeline stages.

The pipeline emits one ``StageRecord`` per stage transition of a frame
or a face region. Records go to a ``DiagnosticsSink``; the pipeline does
not format or transmit them itself.

Sinks:
- NullDiagnostics: Discards records
- MemoryDiagnostics: Thread-safe in-memory buffer for tests/analysis
- LoggingDiagnostics: Writes records to a logger at DEBUG level

Example:
    >>> diagnostics = MemoryDiagnostics()
    >>> pipeline = FacePipeline(detector, analyzer, diagnostics=diagnostics)
    >>> pipeline.run(source, sink)
    >>> slow = [r for r in diagnostics.get_records(Stage.INFERRING) if r.duration_ms > 50]
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Per-frame and per-region states of the pipeline."""

    QUEUED = "queued"
    DETECTING = "detecting"
    QUALITY_PREFILTER = "quality_prefilter"
    CACHE_LOOKUP = "cache_lookup"
    INFERRING = "inferring"
    CACHE_HIT = "cache_hit"
    QUALITY_REFINE = "quality_refine"
    ANONYMIZING = "anonymizing"
    COMPLETE = "complete"
    FRAME_ASSEMBLED = "frame_assembled"
    EMITTED = "emitted"
    DROPPED = "dropped"


@dataclass(frozen=True)
class StageRecord:
    """One stage outcome.

    Attributes:
        sequence_no: Frame the record belongs to.
        stage: Pipeline stage.
        outcome: "ok", "error", "excluded", "coalesced", "dropped", ...
        duration_ms: Time spent in the stage.
        region_index: Face index within the frame; None for frame-level stages.
        detail: Error message or other context.
        t_ns: Monotonic time the record was created.
    """

    sequence_no: int
    stage: Stage
    outcome: str = "ok"
    duration_ms: float = 0.0
    region_index: Optional[int] = None
    detail: Optional[str] = None
    t_ns: int = field(default_factory=time.monotonic_ns)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sequence_no": self.sequence_no,
            "stage": self.stage.value,
            "outcome": self.outcome,
            "duration_ms": round(self.duration_ms, 3),
        }
        if self.region_index is not None:
            data["region_index"] = self.region_index
        if self.detail:
            data["detail"] = self.detail
        return data


class DiagnosticsSink(Protocol):
    def record(self, record: StageRecord) -> None:
        ...


class NullDiagnostics:
    """Discards all records."""

    def record(self, record: StageRecord) -> None:
        pass


class MemoryDiagnostics:
    """Keeps records in memory.

    Args:
        max_records: Oldest records are discarded past this count (0 = unbounded).
    """

    def __init__(self, max_records: int = 0):
        self._max_records = max_records
        self._records: List[StageRecord] = []
        self._lock = threading.Lock()

    def record(self, record: StageRecord) -> None:
        with self._lock:
            self._records.append(record)
            if self._max_records and len(self._records) > self._max_records:
                del self._records[: len(self._records) - self._max_records]

    def get_records(self, stage: Optional[Stage] = None) -> List[StageRecord]:
        with self._lock:
            if stage is None:
                return list(self._records)
            return [r for r in self._records if r.stage is stage]

    def for_frame(self, sequence_no: int) -> List[StageRecord]:
        with self._lock:
            return [r for r in self._records if r.sequence_no == sequence_no]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class LoggingDiagnostics:
    """Writes each record to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.DEBUG):
        self._log = log or logging.getLogger("facepath.diagnostics")
        self._level = level

    def record(self, record: StageRecord) -> None:
        if not self._log.isEnabledFor(self._level):
            return
        region = f"/{record.region_index}" if record.region_index is not None else ""
        detail = f" ({record.detail})" if record.detail else ""
        self._log.log(
            self._level,
            f"[{record.sequence_no}{region}] {record.stage.value}: {record.outcome} "
            f"{record.duration_ms:.1f}ms{detail}",
        )


class Diagnostics:
    """Safe front end to a sink: a failing sink is logged and ignored."""

    def __init__(self, sink: Optional[DiagnosticsSink] = None):
        self._sink = sink if sink is not None else NullDiagnostics()
        self._enabled = not isinstance(self._sink, NullDiagnostics)
        self._warned = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def emit(
        self,
        sequence_no: int,
        stage: Stage,
        outcome: str = "ok",
        duration_ms: float = 0.0,
        region_index: Optional[int] = None,
        detail: Optional[str] = None,
    ) -> None:
        if not self._enabled:
            return
        try:
            self._sink.record(StageRecord(
                sequence_no=sequence_no,
                stage=stage,
                outcome=outcome,
                duration_ms=duration_ms,
                region_index=region_index,
                detail=detail,
            ))
        except Exception as exc:
            if not self._warned:
                logger.warning(f"Diagnostics sink failed, further failures logged at DEBUG: {exc}")
                self._warned = True
            else:
                logger.debug(f"Diagnostics sink failed: {exc}")


__all__ = [
    "Stage",
    "StageRecord",
    "DiagnosticsSink",
    "NullDiagnostics",
    "MemoryDiagnostics",
    "LoggingDiagnostics",
    "Diagnostics",
]
