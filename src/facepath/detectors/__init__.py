"""Face detectors and the detector registry.

Example:
    >>> from facepath.detectors import create_detector
    >>> detector = create_detector("ssd", confidence_threshold=0.6)
    >>> regions = detector.detect(frame)
"""

import logging
from typing import Any, Callable, Dict, List

from facepath.detectors.base import BaseDetector, FaceDetector, RawBox
from facepath.detectors.haar import HaarCascadeDetector
from facepath.detectors.scrfd import ScrfdDetector
from facepath.detectors.ssd import SsdResNetDetector
from facepath.errors import ConfigurationError

logger = logging.getLogger(__name__)

DetectorFactory = Callable[..., FaceDetector]

_REGISTRY: Dict[str, DetectorFactory] = {
    "haar": HaarCascadeDetector,
    "ssd": SsdResNetDetector,
    "scrfd": ScrfdDetector,
    "retinaface": ScrfdDetector,
}


def register_detector(name: str, factory: DetectorFactory, replace: bool = False) -> None:
    """Register a detector factory under ``name``.

    Raises:
        ConfigurationError: If the name is taken and ``replace`` is False.
    """
    key = name.strip().lower()
    if key in _REGISTRY and not replace:
        raise ConfigurationError(f"Detector already registered: {key}")
    _REGISTRY[key] = factory
    logger.debug(f"Registered detector: {key}")


def available_detectors() -> List[str]:
    return sorted(_REGISTRY)


def create_detector(name: str, **options: Any) -> FaceDetector:
    """Build a registered detector.

    Raises:
        ConfigurationError: Unknown name or options the detector rejects.
    """
    key = name.strip().lower()
    factory = _REGISTRY.get(key)
    if factory is None:
        known = ", ".join(available_detectors())
        raise ConfigurationError(f"Unknown detector: {name!r} (available: {known})")
    try:
        return factory(**options)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid options for detector {key!r}: {exc}") from exc


__all__ = [
    "FaceDetector",
    "BaseDetector",
    "RawBox",
    "HaarCascadeDetector",
    "SsdResNetDetector",
    "ScrfdDetector",
    "register_detector",
    "available_detectors",
    "create_detector",
]
