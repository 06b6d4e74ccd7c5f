"""Process command for facepath CLI."""

import logging
import signal
import sys
from pathlib import Path

from facepath.errors import CacheError, ConfigurationError, SourceError

logger = logging.getLogger(__name__)

# Model-backed detectors that accept a models_dir option
_MODEL_DETECTORS = ("ssd", "scrfd", "retinaface")


def build_config(args):
    """PipelineConfig from --config plus command-line overrides."""
    from facepath.config import PipelineConfig

    config = PipelineConfig.from_yaml(args.config) if args.config else PipelineConfig()
    data = config.to_dict()
    overrides = {
        "detector": args.detector,
        "attributes": args.attributes,
        "anonymize": args.anonymize,
        "min_quality": args.min_quality,
        "workers": args.workers,
        "max_in_flight_frames": args.max_in_flight,
        "cache_capacity": args.cache_capacity,
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    if args.exclude_low_quality:
        data["quality_policy"] = "exclude"
    if args.models_dir and data["detector"] in _MODEL_DETECTORS:
        data["detector_options"].setdefault("models_dir", args.models_dir)
    return PipelineConfig.from_dict(data)


def _load_cache(path, capacity):
    from facepath.cache import ResultCache

    if path is None or not Path(path).exists():
        return ResultCache(capacity)
    try:
        return ResultCache.load(path, capacity=capacity)
    except CacheError as exc:
        logger.warning(f"Ignoring unusable cache file: {exc}")
        return ResultCache(capacity)


def run_process(args) -> int:
    """Run the face pipeline over a file or camera."""
    from facepath.analyzers import build_analyzer
    from facepath.pipeline import FacePipeline
    from facepath.sinks import JsonlSink
    from facepath.sources import open_source

    if (args.path is None) == (args.camera is None):
        print("Error: give either a PATH or --camera N", file=sys.stderr)
        return 2

    try:
        config = build_config(args)
        analyzer = build_analyzer(config.attributes, models_dir=args.models_dir)
        cache = _load_cache(args.cache_file, config.cache_capacity)
        pipeline = FacePipeline.from_config(config, analyzer, cache=cache)
        pipeline.initialize()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if args.camera is not None:
        target = args.camera
        source_options = {}
    else:
        target = args.path
        source_options = {"fps": args.fps} if args.fps else {}

    interrupted = [False]
    prev_handler = signal.getsignal(signal.SIGINT)

    def handle_sigint(signum, frame):
        # A second Ctrl+C goes to the previous handler
        if interrupted[0]:
            signal.signal(signal.SIGINT, prev_handler)
            raise KeyboardInterrupt
        interrupted[0] = True
        logger.info("Interrupted, finishing in-flight frames (Ctrl+C again to abort)")
        pipeline.cancel()

    def on_frame(result):
        if result.sequence_no and result.sequence_no % 100 == 0:
            logger.info(f"Processed frame {result.sequence_no}")

    sink = JsonlSink(args.output or sys.stdout, include_crops=args.include_crops)
    signal.signal(signal.SIGINT, handle_sigint)
    exit_code = 0
    summary = None
    try:
        source = open_source(target, **source_options)
        summary = pipeline.run(source, sink, on_frame=on_frame)
    except SourceError as exc:
        print(f"Source error: {exc}", file=sys.stderr)
        exit_code = 1
    finally:
        signal.signal(signal.SIGINT, prev_handler)
        sink.close()
        if args.cache_file:
            try:
                pipeline.cache.save(args.cache_file)
            except CacheError as exc:
                logger.warning(f"Cache not saved: {exc}")

    if summary is not None:
        _print_summary(summary)
    return exit_code


def _print_summary(summary) -> None:
    out = sys.stderr
    print("-" * 50, file=out)
    print(f"Frames:     {summary.frames} ({summary.no_face_frames} without faces, "
          f"{summary.failed_frames} failed, {summary.dropped_frames} dropped)", file=out)
    print(f"Faces:      {summary.faces} ({summary.excluded_regions} excluded)", file=out)
    if summary.cache is not None:
        print(f"Cache:      {summary.cache.hits} hits, {summary.cache.coalesced} coalesced, "
              f"{summary.cache.misses} misses ({summary.cache.hit_rate:.0%})", file=out)
    print(f"Time:       {summary.elapsed_sec:.2f}s" + (" (cancelled)" if summary.cancelled else ""), file=out)
