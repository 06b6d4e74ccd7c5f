"""facepath - Face detection and attribute analysis pipeline.

Quick Start:
    >>> from facepath import FacePipeline, PipelineConfig, MemorySink
    >>> from facepath.analyzers import build_analyzer
    >>>
    >>> config = PipelineConfig(detector="haar", attributes="age,gender")
    >>> pipeline = FacePipeline.from_config(config, build_analyzer(config.attributes))
    >>> sink = MemorySink()
    >>> summary = pipeline.run("clip.mp4", sink)
    >>> print(f"{summary.faces} faces in {summary.frames} frames")

Single image:
    >>> result = pipeline.process_image("portrait.jpg")
    >>> for face in result.observations:
    ...     print(face.region.bbox, dict(face.attributes))

Anonymization:
    >>> config = PipelineConfig(anonymize="pixelate")
"""

from facepath.attributes import AttributeKind, AttributeSet
from facepath.cache import ResultCache
from facepath.config import (
    AnonymizeMode,
    CancelPolicy,
    OverflowPolicy,
    PipelineConfig,
    QualityPolicy,
)
from facepath.errors import (
    CacheError,
    ConfigurationError,
    DetectionError,
    FacePathError,
    InferenceError,
    SourceError,
)
from facepath.observability import MemoryDiagnostics, Stage
from facepath.pipeline import FacePipeline, RunSummary
from facepath.sinks import CallbackSink, JsonlSink, MemorySink
from facepath.types import (
    FaceObservation,
    Frame,
    FrameResult,
    FrameStatus,
    QualityScore,
    Region,
    SourceKind,
)

__version__ = "0.1.0"

__all__ = [
    # Pipeline
    "FacePipeline",
    "RunSummary",
    "PipelineConfig",
    "AnonymizeMode",
    "QualityPolicy",
    "OverflowPolicy",
    "CancelPolicy",
    "ResultCache",
    # Data types
    "Frame",
    "Region",
    "SourceKind",
    "AttributeKind",
    "AttributeSet",
    "QualityScore",
    "FaceObservation",
    "FrameResult",
    "FrameStatus",
    # Sinks
    "MemorySink",
    "CallbackSink",
    "JsonlSink",
    "MemoryDiagnostics",
    "Stage",
    # Errors
    "FacePathError",
    "SourceError",
    "DetectionError",
    "InferenceError",
    "CacheError",
    "ConfigurationError",
]
