"""Run counters for instrumentation."""

import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class StatsSnapshot:
    frames_read: int = 0
    frames_admitted: int = 0
    frames_dropped: int = 0
    frames_emitted: int = 0
    in_flight: int = 0
    peak_in_flight: int = 0
    detection_errors: int = 0
    inference_errors: int = 0
    inferences: int = 0
    cache_hits: int = 0
    coalesced: int = 0
    faces: int = 0
    regions_excluded: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PipelineStats:
    """Thread-safe counters for one pipeline run.

    ``in_flight`` counts frames admitted but not yet emitted;
    ``peak_in_flight`` is its maximum over the run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {
            name: 0 for name in StatsSnapshot.__dataclass_fields__
        }

    def add(self, **counts: int) -> None:
        with self._lock:
            for name, n in counts.items():
                if name not in self._counts:
                    raise KeyError(f"Unknown counter: {name}")
                self._counts[name] += n

    def frame_admitted(self) -> None:
        with self._lock:
            self._counts["frames_admitted"] += 1
            self._counts["in_flight"] += 1
            if self._counts["in_flight"] > self._counts["peak_in_flight"]:
                self._counts["peak_in_flight"] = self._counts["in_flight"]

    def frame_released(self, emitted: bool = True) -> None:
        with self._lock:
            self._counts["in_flight"] -= 1
            if emitted:
                self._counts["frames_emitted"] += 1

    def snapshot(self) -> StatsSnapshot:
        with self._lock:
            return StatsSnapshot(**self._counts)


__all__ = ["PipelineStats", "StatsSnapshot"]
