"""Error taxonomy for the face analysis pipeline.

Stage-local failures (detection, inference, cache) are contained by the
pipeline and surfaced as diagnostics on the affected frame or face.
Only ``SourceError`` and ``ConfigurationError`` terminate a run.

Example:
    >>> from facepath.errors import SourceError
    >>> try:
    ...     pipeline.run(source, sink)
    ... except SourceError as exc:
    ...     print(f"input failed: {exc}")
"""

from typing import Optional


class FacePathError(Exception):
    """Base class for all facepath errors."""


class SourceError(FacePathError):
    """Input could not be read (unreadable file, unsupported codec, camera unavailable).

    Fatal for the source instance that raised it. Retrying is the
    caller's decision.

    Attributes:
        source: Description of the failing input (path or device).
    """

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{message} [{source}]"
        super().__init__(message)


class DetectionError(FacePathError):
    """Face detection failed for one frame (corrupt frame, model load failure)."""


class InferenceError(FacePathError):
    """Attribute inference failed for a crop or an attribute kind."""


class CacheError(FacePathError):
    """Result cache failure. The pipeline treats it as a forced miss."""


class ConfigurationError(FacePathError):
    """Invalid option or option combination. Raised at startup only."""


class FrameNotReady(FacePathError):
    """A live source has no frame available yet. Not an error condition."""


__all__ = [
    "FacePathError",
    "SourceError",
    "DetectionError",
    "InferenceError",
    "CacheError",
    "ConfigurationError",
    "FrameNotReady",
]
