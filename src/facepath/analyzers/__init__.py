"""Attribute analyzers.

Example:
    >>> from facepath.analyzers import build_analyzer
    >>> analyzer = build_analyzer({"age", "gender", "pose"})
    >>> analyzer.load()
    >>> attrs = analyzer.infer(face_crop)
"""

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from facepath.analyzers.base import AttributeAnalyzer, AttributeModel
from facepath.analyzers.composite import CompositeAnalyzer
from facepath.analyzers.onnx_models import (
    EMOTION_LABELS,
    ETHNICITY_LABELS,
    AgeGenderModel,
    EmotionModel,
    EthnicityModel,
    HeadPoseModel,
    LandmarkModel,
    OnnxAttributeModel,
    rotation_matrix_to_euler,
)
from facepath.attributes import AttributeKind
from facepath.errors import ConfigurationError

# Default sub-model per attribute kind, in priority order
_DEFAULT_MODELS = (
    AgeGenderModel,
    EmotionModel,
    LandmarkModel,
    HeadPoseModel,
    EthnicityModel,
)


def build_analyzer(
    kinds: Iterable[Union[str, AttributeKind]],
    models_dir: Optional[Union[str, Path]] = None,
    providers: Optional[Sequence[str]] = None,
) -> CompositeAnalyzer:
    """Assemble the default ONNX sub-models covering ``kinds``.

    Models are not loaded until ``load()`` is called.

    Raises:
        ConfigurationError: If no kinds are requested or a kind is unknown.
    """
    try:
        wanted = {AttributeKind.parse(k) for k in kinds}
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc
    if not wanted:
        raise ConfigurationError("No attribute kinds requested")

    models: List[AttributeModel] = []
    for model_cls in _DEFAULT_MODELS:
        if model_cls.kinds & wanted:
            models.append(model_cls(models_dir=models_dir, providers=providers))
    return CompositeAnalyzer(models)


__all__ = [
    "AttributeAnalyzer",
    "AttributeModel",
    "CompositeAnalyzer",
    "OnnxAttributeModel",
    "AgeGenderModel",
    "EmotionModel",
    "EthnicityModel",
    "LandmarkModel",
    "HeadPoseModel",
    "EMOTION_LABELS",
    "ETHNICITY_LABELS",
    "rotation_matrix_to_euler",
    "build_analyzer",
]
