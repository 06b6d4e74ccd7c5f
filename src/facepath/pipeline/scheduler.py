"""FacePipeline - bounded-concurrency face analysis scheduler.

Drives frames through detection, quality scoring, cached attribute
inference and anonymization, and emits one FrameResult per admitted
frame in sequence order.

Architecture:
    Source ──→ [reader thread] ──admit (bounded)──→ [Thread Pool]
                                                       │
                                  detect(frame) ───────┤
                                                       ├── region 0 ─┐
                                                       ├── region 1 ─┼─→ assemble frame
                                                       └── region N ─┘        │
    Sink  ←── [ordering stage (consumer thread)] ←──── completions ←──────────┘

Per frame: Queued → Detecting → per region {QualityPrefilter →
CacheLookup → Inferring | CacheHit → QualityRefine → Anonymizing →
Complete} → FrameAssembled → Emitted.

Example:
    >>> from facepath import FacePipeline, PipelineConfig
    >>> from facepath.analyzers import build_analyzer
    >>>
    >>> config = PipelineConfig(detector="ssd", attributes={"age", "gender"})
    >>> pipeline = FacePipeline.from_config(config, build_analyzer(config.attributes))
    >>> with pipeline:
    ...     for result in pipeline.stream("clip.mp4"):
    ...         print(result.sequence_no, len(result.observations))
"""

import logging
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Set, Union

import numpy as np

from facepath.anonymize import Anonymizer
from facepath.attributes import AttributeKind, AttributeSet
from facepath.cache import CacheStats, LookupOutcome, ResultCache
from facepath.config import CancelPolicy, OverflowPolicy, PipelineConfig, QualityPolicy
from facepath.crop import crop_region, fingerprint
from facepath.errors import (
    CacheError,
    ConfigurationError,
    DetectionError,
    FrameNotReady,
    InferenceError,
    SourceError,
)
from facepath.observability import Diagnostics, DiagnosticsSink, Stage
from facepath.pipeline.reorder import ReorderBuffer
from facepath.pipeline.stats import PipelineStats, StatsSnapshot
from facepath.quality import QualityAssessor
from facepath.sources import BaseSource, ImageSource, open_source
from facepath.types import (
    FaceObservation,
    Frame,
    FrameResult,
    FrameStatus,
    QualityReason,
    QualityScore,
    Region,
)

logger = logging.getLogger(__name__)

SourceLike = Union[BaseSource, str, Path, int, np.ndarray]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


@dataclass
class RunSummary:
    """Outcome of ``FacePipeline.run``."""

    frames: int = 0
    faces: int = 0
    no_face_frames: int = 0
    failed_frames: int = 0
    excluded_regions: int = 0
    dropped_frames: int = 0
    cancelled: bool = False
    elapsed_sec: float = 0.0
    stats: StatsSnapshot = field(default_factory=StatsSnapshot)
    cache: Optional[CacheStats] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "frames": self.frames,
            "faces": self.faces,
            "no_face_frames": self.no_face_frames,
            "failed_frames": self.failed_frames,
            "excluded_regions": self.excluded_regions,
            "dropped_frames": self.dropped_frames,
            "cancelled": self.cancelled,
            "elapsed_sec": round(self.elapsed_sec, 3),
            "stats": self.stats.to_dict(),
        }
        if self.cache is not None:
            data["cache"] = {
                "hits": self.cache.hits,
                "misses": self.cache.misses,
                "coalesced": self.cache.coalesced,
                "evictions": self.cache.evictions,
                "size": self.cache.size,
            }
        return data


@dataclass
class _ReaderStopped:
    """Sentinel from the reader thread: no more frames will be admitted."""

    admitted: int
    error: Optional[SourceError] = None


class _FrameAssembly:
    """Collects per-region outcomes of one frame from pool callbacks."""

    def __init__(self, ticket: int, frame: Frame, regions: List[Region]):
        self.ticket = ticket
        self.frame = frame
        self.regions = regions
        self.outcomes: List[Optional[FaceObservation]] = [None] * len(regions)
        self.started = time.perf_counter()
        self._remaining = len(regions)
        self._lock = threading.Lock()

    def add(self, index: int, outcome: Optional[FaceObservation]) -> bool:
        """Record a region outcome. Returns True for the last region."""
        with self._lock:
            self.outcomes[index] = outcome
            self._remaining -= 1
            return self._remaining == 0


class PipelineRun:
    """One pass of a pipeline over one source.

    Iterate to receive FrameResults in sequence order. Created by
    ``FacePipeline.start``; the reader thread starts immediately.

    Thread Safety:
        - The reader thread owns the source
        - Pool workers run detection and per-region analysis
        - The iterating thread runs the ordering stage and releases slots
        - ``cancel()`` may be called from any thread
    """

    def __init__(self, pipeline: "FacePipeline", source: BaseSource):
        self._pipeline = pipeline
        self._config = pipeline.config
        self._source = source
        self._diag = pipeline._diagnostics
        self.stats = PipelineStats()

        self._executor = ThreadPoolExecutor(
            max_workers=self._config.workers,
            thread_name_prefix="facepath_",
        )
        self._slots = threading.BoundedSemaphore(self._config.max_in_flight_frames)
        self._completions: "queue.Queue[Any]" = queue.Queue()
        self._cancel = threading.Event()
        self._abandoned = threading.Event()
        self._shutdown_lock = threading.Lock()
        self._closed = False
        self._iterating = False
        self._started_at = time.perf_counter()
        self._finished_at: Optional[float] = None
        self.source_error: Optional[SourceError] = None

        self._reader = threading.Thread(
            target=self._read_loop,
            name="facepath_reader",
            daemon=True,
        )
        self._reader.start()
        logger.info(
            f"Pipeline run started: {source.describe()}, workers={self._config.workers}, "
            f"max_in_flight={self._config.max_in_flight_frames}"
        )

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def elapsed_sec(self) -> float:
        end = self._finished_at if self._finished_at is not None else time.perf_counter()
        return end - self._started_at

    def cancel(self) -> None:
        """Stop admitting frames. Admitted frames drain or are abandoned per config."""
        if not self._cancel.is_set():
            logger.info(f"Pipeline run cancelled (on_cancel={self._config.on_cancel.value})")
        self._cancel.set()

    def close(self) -> None:
        """Abandon the run and release its threads."""
        self._shutdown(abandon=True)

    def __enter__(self) -> "PipelineRun":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[FrameResult]:
        if self._iterating:
            raise RuntimeError("A PipelineRun can only be iterated once")
        self._iterating = True
        return self._consume()

    # ========== Reader ==========

    def _read_loop(self) -> None:
        source = self._source
        config = self._config
        drop_when_full = source.live and config.live_overflow is OverflowPolicy.DROP
        ticket = 0
        error: Optional[SourceError] = None
        try:
            source.open()
            while not self._cancel.is_set():
                try:
                    frame = source.read(timeout=config.poll_interval) if source.live else source.read()
                except FrameNotReady:
                    continue
                if frame is None:
                    break
                self.stats.add(frames_read=1)

                if drop_when_full:
                    if not self._slots.acquire(blocking=False):
                        self.stats.add(frames_dropped=1)
                        self._diag.emit(frame.sequence_no, Stage.DROPPED, "dropped", detail="pipeline full")
                        logger.debug(f"Dropped live frame {frame.sequence_no}: pipeline full")
                        continue
                elif not self._acquire_slot():
                    break

                self.stats.frame_admitted()
                self._diag.emit(frame.sequence_no, Stage.QUEUED)
                try:
                    self._executor.submit(self._process_frame, ticket, frame)
                except RuntimeError:
                    # Pool already shut down by an abandoning consumer
                    self.stats.frame_released(emitted=False)
                    self._slots.release()
                    break
                ticket += 1
        except SourceError as exc:
            error = exc
            logger.error(f"Source failed: {exc}")
        except Exception as exc:
            error = SourceError(f"Source failed: {exc}", source=source.describe())
            error.__cause__ = exc
            logger.error(f"Source failed: {exc}")
        finally:
            try:
                source.close()
            except Exception as exc:
                logger.warning(f"Error closing {source.describe()}: {exc}")
            self._completions.put(_ReaderStopped(ticket, error))

    def _acquire_slot(self) -> bool:
        while not self._cancel.is_set():
            if self._slots.acquire(timeout=self._config.poll_interval):
                return True
        return False

    # ========== Workers ==========

    def _process_frame(self, ticket: int, frame: Frame) -> None:
        if self._abandoned.is_set():
            return
        started = time.perf_counter()
        try:
            regions = self._pipeline.detector.detect(frame)
        except DetectionError as exc:
            self._fail_frame(ticket, frame, str(exc), started)
            return
        except Exception as exc:
            logger.error(f"Unexpected detector error on frame {frame.sequence_no}: {exc}")
            self._fail_frame(ticket, frame, f"{type(exc).__name__}: {exc}", started)
            return

        # Detectors outside this package may not clip to frame bounds
        regions = [r for r in (reg.clamp(frame.width, frame.height) for reg in regions) if r is not None]
        self._diag.emit(
            frame.sequence_no, Stage.DETECTING,
            duration_ms=_elapsed_ms(started), detail=f"{len(regions)} regions",
        )
        if not regions:
            self._complete(ticket, self._frame_result(frame, FrameStatus.NO_FACES), started)
            return

        assembly = _FrameAssembly(ticket, frame, list(regions))
        for index, region in enumerate(assembly.regions):
            try:
                future = self._executor.submit(self._analyze_region, frame, index, region)
            except RuntimeError:
                return
            future.add_done_callback(partial(self._region_done, assembly, index))

    def _fail_frame(self, ticket: int, frame: Frame, message: str, started: float) -> None:
        self.stats.add(detection_errors=1)
        logger.warning(f"Detection failed on frame {frame.sequence_no}: {message}")
        self._diag.emit(
            frame.sequence_no, Stage.DETECTING, "error",
            duration_ms=_elapsed_ms(started), detail=message,
        )
        self._complete(ticket, self._frame_result(frame, FrameStatus.FAILED, error=message), started)

    def _region_done(self, assembly: _FrameAssembly, index: int, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(f"Region {index} of frame {assembly.frame.sequence_no} crashed: {exc}")
            self._diag.emit(
                assembly.frame.sequence_no, Stage.COMPLETE, "error",
                region_index=index, detail=str(exc),
            )
            outcome = None
        else:
            outcome = future.result()
        if assembly.add(index, outcome):
            self._assemble(assembly)

    def _assemble(self, assembly: _FrameAssembly) -> None:
        observations = tuple(o for o in assembly.outcomes if o is not None)
        excluded = len(assembly.outcomes) - len(observations)
        status = FrameStatus.FACES if observations else FrameStatus.EXCLUDED
        result = self._frame_result(assembly.frame, status, observations, excluded)
        self._complete(assembly.ticket, result, assembly.started)

    def _frame_result(
        self,
        frame: Frame,
        status: FrameStatus,
        observations: tuple = (),
        excluded: int = 0,
        error: Optional[str] = None,
    ) -> FrameResult:
        return FrameResult(
            sequence_no=frame.sequence_no,
            timestamp_ns=frame.timestamp_ns,
            source_kind=frame.source_kind,
            frame_size=frame.size,
            status=status,
            observations=observations,
            excluded=excluded,
            error=error,
        )

    def _complete(self, ticket: int, result: FrameResult, started: float) -> None:
        self._diag.emit(
            result.sequence_no, Stage.FRAME_ASSEMBLED, result.status.value,
            duration_ms=_elapsed_ms(started),
        )
        self._completions.put((ticket, result))

    def _analyze_region(self, frame: Frame, index: int, region: Region) -> Optional[FaceObservation]:
        """Per-region stages. Returns None when the quality policy excludes the face."""
        pipeline = self._pipeline
        config = self._config
        seq = frame.sequence_no
        kinds = config.attributes
        diagnostics: Dict[str, str] = {}
        key = ""
        prefilter: Optional[QualityScore] = None

        try:
            crop = crop_region(frame, region)

            started = time.perf_counter()
            prefilter = pipeline.quality.prefilter(region, frame)
            self._diag.emit(
                seq, Stage.QUALITY_PREFILTER,
                "ok" if prefilter.usable else prefilter.reason.value,
                duration_ms=_elapsed_ms(started), region_index=index,
            )
            if not prefilter.usable and config.quality_policy is QualityPolicy.EXCLUDE:
                return self._exclude(seq, index, prefilter)

            started = time.perf_counter()
            key = fingerprint(crop)

            def compute(wanted: FrozenSet[AttributeKind] = kinds) -> AttributeSet:
                infer_started = time.perf_counter()
                self.stats.add(inferences=1)
                try:
                    result = pipeline.analyzer.infer(crop, wanted)
                except InferenceError as exc:
                    result = AttributeSet.failed(wanted, str(exc))
                except Exception as exc:
                    logger.error(f"Unexpected analyzer error on frame {seq}: {exc}")
                    result = AttributeSet.failed(wanted, f"{type(exc).__name__}: {exc}")
                if result.errors:
                    self.stats.add(inference_errors=len(result.errors))
                self._diag.emit(
                    seq, Stage.INFERRING,
                    "partial" if result.errors else "ok",
                    duration_ms=_elapsed_ms(infer_started), region_index=index,
                    detail="; ".join(f"{k.value}: {v}" for k, v in result.errors.items()) or None,
                )
                return result

            try:
                attributes, outcome = pipeline.cache.get_or_compute(
                    key, compute, store_if=lambda attrs: not attrs.errors,
                )
            except CacheError as exc:
                logger.warning(f"Cache failed for frame {seq} region {index}, inferring directly: {exc}")
                diagnostics["cache"] = str(exc)
                attributes, outcome = compute(), LookupOutcome.COMPUTED

            self._diag.emit(
                seq, Stage.CACHE_LOOKUP, outcome.value,
                duration_ms=_elapsed_ms(started), region_index=index,
            )
            cached = outcome is not LookupOutcome.COMPUTED
            if outcome is LookupOutcome.HIT:
                self.stats.add(cache_hits=1)
            elif outcome is LookupOutcome.COALESCED:
                self.stats.add(coalesced=1)
            if cached:
                self._diag.emit(seq, Stage.CACHE_HIT, outcome.value, region_index=index)

            # Entries written for other attribute sets may lack requested kinds
            missing = kinds - set(attributes) - set(attributes.errors)
            if missing and cached:
                logger.debug(
                    f"Cached result for frame {seq} region {index} lacks "
                    f"{', '.join(sorted(k.value for k in missing))}, inferring them"
                )
                extra = compute(frozenset(missing))
                if not extra.errors:
                    try:
                        pipeline.cache.extend(key, extra)
                    except CacheError as exc:
                        diagnostics["cache"] = str(exc)
                attributes = attributes.merge(extra)
            unanswered = kinds - set(attributes) - set(attributes.errors)
            if unanswered:
                attributes = attributes.merge(
                    AttributeSet.failed(unanswered, "analyzer returned no value")
                )

            attributes = attributes.select(kinds)
            for kind, reason in attributes.errors.items():
                diagnostics[kind.value] = reason

            started = time.perf_counter()
            quality = pipeline.quality.refine(prefilter, attributes)
            self._diag.emit(
                seq, Stage.QUALITY_REFINE,
                "ok" if quality.usable else quality.reason.value,
                duration_ms=_elapsed_ms(started), region_index=index,
            )
            if not quality.usable and config.quality_policy is QualityPolicy.EXCLUDE:
                return self._exclude(seq, index, quality)

            anonymized = None
            if pipeline.anonymizer is not None:
                started = time.perf_counter()
                try:
                    anonymized = pipeline.anonymizer.apply(crop)
                    outcome_name = "ok"
                except Exception as exc:
                    logger.warning(f"Anonymization failed on frame {seq} region {index}: {exc}")
                    diagnostics["anonymize"] = str(exc)
                    outcome_name = "error"
                self._diag.emit(
                    seq, Stage.ANONYMIZING, outcome_name,
                    duration_ms=_elapsed_ms(started), region_index=index,
                )

            observation = FaceObservation(
                frame_sequence_no=seq,
                region=region,
                fingerprint=key,
                attributes=attributes,
                quality=quality,
                anonymized_crop=anonymized,
                diagnostics=diagnostics,
                region_index=index,
                cached=cached,
            )
        except Exception as exc:
            logger.error(f"Analysis of frame {seq} region {index} failed: {exc}")
            diagnostics["error"] = f"{type(exc).__name__}: {exc}"
            observation = FaceObservation(
                frame_sequence_no=seq,
                region=region,
                fingerprint=key,
                attributes=AttributeSet.failed(kinds, "analysis aborted"),
                quality=prefilter or QualityScore(0.0, QualityReason.TOO_BLURRY),
                diagnostics=diagnostics,
                region_index=index,
            )
            self._diag.emit(seq, Stage.COMPLETE, "error", region_index=index, detail=str(exc))
            self.stats.add(faces=1)
            return observation

        self._diag.emit(seq, Stage.COMPLETE, "ok", region_index=index)
        self.stats.add(faces=1)
        return observation

    def _exclude(self, seq: int, index: int, score: QualityScore) -> None:
        self.stats.add(regions_excluded=1)
        self._diag.emit(
            seq, Stage.COMPLETE, "excluded", region_index=index,
            detail=f"quality {score.value:.2f} ({score.reason.value})",
        )
        return None

    # ========== Ordering stage ==========

    def _consume(self) -> Iterator[FrameResult]:
        reorder: ReorderBuffer[FrameResult] = ReorderBuffer()
        abandon_on_cancel = self._config.on_cancel is CancelPolicy.ABANDON
        admitted: Optional[int] = None
        emitted = 0
        finished = False
        try:
            while admitted is None or emitted < admitted:
                if self._abandoned.is_set():
                    return
                if abandon_on_cancel and self._cancel.is_set():
                    logger.info(f"Abandoning {self.stats.snapshot().in_flight} in-flight frames")
                    return
                try:
                    item = self._completions.get(timeout=self._config.poll_interval)
                except queue.Empty:
                    continue

                if isinstance(item, _ReaderStopped):
                    admitted = item.admitted
                    self.source_error = item.error
                    continue

                ticket, result = item
                for ready in reorder.push(ticket, result):
                    # Counter first so in_flight never exceeds the slot bound
                    self.stats.frame_released()
                    self._slots.release()
                    self._diag.emit(ready.sequence_no, Stage.EMITTED, ready.status.value)
                    emitted += 1
                    yield ready

            finished = True
            if self.source_error is not None:
                raise self.source_error
        finally:
            self._shutdown(abandon=not finished)

    def _shutdown(self, abandon: bool) -> None:
        with self._shutdown_lock:
            if self._closed:
                return
            self._closed = True
        if abandon:
            self._abandoned.set()
            self._cancel.set()
        self._executor.shutdown(wait=True, cancel_futures=abandon)
        self._reader.join(timeout=5.0)
        if self._reader.is_alive():
            logger.warning("Reader thread did not stop within 5s")
        self._finished_at = time.perf_counter()
        self._pipeline._run_finished(self)

        snap = self.stats.snapshot()
        logger.info(
            f"Pipeline run finished: {snap.frames_emitted} frames, {snap.faces} faces, "
            f"{snap.frames_dropped} dropped, {snap.detection_errors} detection errors "
            f"in {self.elapsed_sec:.2f}s"
        )


class FacePipeline:
    """Face analysis pipeline.

    Holds the stage strategies and the shared result cache. Each call to
    ``start``/``stream``/``run`` processes one source with its own
    worker pool; the cache persists across runs.

    Args:
        detector: Face detector (anything with ``detect(frame)``).
        analyzer: Attribute analyzer with ``supported_kinds`` and ``infer``.
        config: Pipeline options (defaults when None).
        quality: Quality assessor (default built from ``min_quality``).
        anonymizer: Anonymizer (default built from ``anonymize`` options).
        cache: Result cache, possibly shared with other pipelines using the
            same attribute kinds (default: new cache of ``cache_capacity``).
        diagnostics: Sink for per-stage records.

    Raises:
        ConfigurationError: Invalid options, or the analyzer cannot produce
            a requested attribute kind.
    """

    def __init__(
        self,
        detector: Any,
        analyzer: Any,
        config: Optional[PipelineConfig] = None,
        *,
        quality: Optional[QualityAssessor] = None,
        anonymizer: Optional[Anonymizer] = None,
        cache: Optional[ResultCache] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
    ):
        self.config = config or PipelineConfig()
        self.config.validate()
        if not callable(getattr(detector, "detect", None)):
            raise ConfigurationError(f"Detector {detector!r} has no detect() method")
        if not callable(getattr(analyzer, "infer", None)):
            raise ConfigurationError(f"Analyzer {analyzer!r} has no infer() method")

        supported = frozenset(
            AttributeKind.parse(k) for k in getattr(analyzer, "supported_kinds", ())
        )
        missing = self.config.attributes - supported
        if missing:
            names = ", ".join(sorted(k.value for k in missing))
            raise ConfigurationError(f"Analyzer cannot produce requested attributes: {names}")

        self.detector = detector
        self.analyzer = analyzer
        self.quality = quality or QualityAssessor(min_score=self.config.min_quality)
        if anonymizer is None and self.config.anonymize is not None:
            try:
                anonymizer = Anonymizer(
                    self.config.anonymize,
                    blur_kernel=self.config.blur_kernel,
                    pixelate_block=self.config.pixelate_block,
                    color=self.config.blackout_color,
                )
            except (TypeError, ValueError) as exc:
                raise ConfigurationError(f"Invalid anonymizer options: {exc}") from exc
        self.anonymizer = anonymizer
        self.cache = cache if cache is not None else ResultCache(self.config.cache_capacity)
        self._diagnostics = Diagnostics(diagnostics)
        self._runs: Set[PipelineRun] = set()
        self._runs_lock = threading.Lock()
        self._initialized = False

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        analyzer: Any,
        **kwargs: Any,
    ) -> "FacePipeline":
        """Build the configured detector and assemble a pipeline.

        ``config.detector_options`` are passed to the detector; other
        keyword arguments go to the constructor.
        """
        from facepath.detectors import create_detector

        config.validate()
        detector = create_detector(config.detector, **config.detector_options)
        return cls(detector, analyzer, config, **kwargs)

    def initialize(self) -> None:
        """Load analyzer models.

        Raises:
            ConfigurationError: A model failed to load.
        """
        if self._initialized:
            return
        load = getattr(self.analyzer, "load", None)
        if callable(load):
            try:
                load()
            except ConfigurationError:
                raise
            except Exception as exc:
                raise ConfigurationError(f"Analyzer failed to load: {exc}") from exc
        self._initialized = True
        logger.info(
            f"FacePipeline initialized: detector={getattr(self.detector, 'name', type(self.detector).__name__)}, "
            f"attributes={sorted(k.value for k in self.config.attributes)}, "
            f"anonymize={self.config.anonymize.value if self.config.anonymize else None}"
        )

    def __enter__(self) -> "FacePipeline":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel()

    def start(self, source: SourceLike) -> PipelineRun:
        """Begin processing ``source``; iterate the returned run for results."""
        self.initialize()
        run = PipelineRun(self, open_source(source))
        with self._runs_lock:
            self._runs.add(run)
        return run

    def stream(self, source: SourceLike) -> Iterator[FrameResult]:
        """Yield FrameResults for ``source`` in sequence order.

        Raises:
            SourceError: After every admitted frame has been yielded.
        """
        run = self.start(source)
        try:
            yield from run
        finally:
            run.close()

    def run(
        self,
        source: SourceLike,
        sink: Any,
        on_frame: Optional[Callable[[FrameResult], None]] = None,
    ) -> RunSummary:
        """Process ``source`` to completion, emitting every result to ``sink``.

        Args:
            source: Frame source or a target accepted by ``open_source``.
            sink: Object with ``emit(result)``.
            on_frame: Optional callback after each emission (progress etc.).

        Raises:
            SourceError: After admitted frames have been emitted.
        """
        summary = RunSummary()
        run = self.start(source)
        try:
            for result in run:
                sink.emit(result)
                summary.frames += 1
                summary.faces += len(result.observations)
                summary.excluded_regions += result.excluded
                if result.status is FrameStatus.NO_FACES:
                    summary.no_face_frames += 1
                elif result.status is FrameStatus.FAILED:
                    summary.failed_frames += 1
                if on_frame is not None:
                    on_frame(result)
        finally:
            run.close()
            snap = run.stats.snapshot()
            summary.dropped_frames = snap.frames_dropped
            summary.cancelled = run.cancelled
            summary.elapsed_sec = run.elapsed_sec
            summary.stats = snap
            summary.cache = self.cache.stats()
        return summary

    def process_image(self, image: Union[str, Path, np.ndarray]) -> FrameResult:
        """Analyze a single still image."""
        results = list(self.stream(ImageSource(image)))
        return results[0]

    def cancel(self) -> None:
        """Cancel every active run of this pipeline."""
        with self._runs_lock:
            runs = list(self._runs)
        for run in runs:
            run.cancel()

    def _run_finished(self, run: PipelineRun) -> None:
        with self._runs_lock:
            self._runs.discard(run)


__all__ = ["FacePipeline", "PipelineRun", "RunSummary"]
