"""ONNX Runtime reference attribute models.

Each model loads ``<models_dir>/<filename>`` on ``load()``. A pre-built
session (anything with ``get_inputs()`` and ``run()``) can be passed
instead, which is how the models are exercised without weight files.

Example:
    >>> model = AgeGenderModel(models_dir="/opt/models")
    >>> model.load()
    >>> model.predict(face_crop)
    {<AttributeKind.AGE: 'age'>: AgeEstimate(value=31.2, ...), ...}
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from facepath.analyzers.base import AttributeModel
from facepath.attributes import (
    AgeEstimate,
    AttributeKind,
    EmotionDistribution,
    EthnicityPrediction,
    GenderPrediction,
    HeadPose,
    Landmarks,
)
from facepath.crop import to_bgr, to_gray
from facepath.errors import InferenceError
from facepath.paths import resolve_model_path

logger = logging.getLogger(__name__)

# ImageNet normalization constants
IMAGENET_MEAN = np.array([0.485, 0.456, 0.406], dtype=np.float32)
IMAGENET_STD = np.array([0.229, 0.224, 0.225], dtype=np.float32)

EMOTION_LABELS = ("happy", "sad", "angry", "surprised", "fearful", "disgusted", "neutral")
ETHNICITY_LABELS = (
    "east_asian",
    "south_asian",
    "caucasian",
    "african",
    "latin_american",
    "middle_eastern",
    "other",
)


def softmax(logits: np.ndarray) -> np.ndarray:
    x = np.asarray(logits, dtype=np.float64).reshape(-1)
    x = x - x.max()
    e = np.exp(x)
    return e / e.sum()


def as_probabilities(values: np.ndarray) -> np.ndarray:
    """Pass through a probability vector, or softmax raw logits."""
    x = np.asarray(values, dtype=np.float64).reshape(-1)
    if x.size and np.all(x >= 0) and abs(float(x.sum()) - 1.0) < 1e-3:
        return x
    return softmax(x)


def rotation_matrix_to_euler(R: np.ndarray) -> Tuple[float, float, float]:
    """Convert a 3x3 rotation matrix to (yaw, pitch, roll) in degrees.

    Uses the convention: R = Rz(roll) @ Ry(yaw) @ Rx(pitch).
    """
    sy = math.sqrt(R[0, 0] ** 2 + R[1, 0] ** 2)

    if sy > 1e-6:
        pitch = math.atan2(R[2, 1], R[2, 2])
        yaw = math.atan2(-R[2, 0], sy)
        roll = math.atan2(R[1, 0], R[0, 0])
    else:
        pitch = math.atan2(-R[1, 2], R[1, 1])
        yaw = math.atan2(-R[2, 0], sy)
        roll = 0.0

    return (math.degrees(yaw), math.degrees(pitch), math.degrees(roll))


class OnnxAttributeModel(AttributeModel):
    """Shared session handling for ONNX sub-models.

    Args:
        model_path: Model file; relative paths resolve against ``models_dir``.
        models_dir: Directory holding model files (default: ``get_models_dir()``).
        session: Pre-built inference session.
        providers: ONNX Runtime execution providers.
    """

    filename: str = ""

    def __init__(
        self,
        model_path: Optional[Union[str, Path]] = None,
        models_dir: Optional[Union[str, Path]] = None,
        session: Optional[Any] = None,
        providers: Optional[Sequence[str]] = None,
    ):
        self._model_path = model_path
        self._models_dir = models_dir
        self._session = session
        self._providers = list(providers) if providers else ["CPUExecutionProvider"]

    @property
    def loaded(self) -> bool:
        return self._session is not None

    @property
    def model_path(self) -> Path:
        return resolve_model_path(self._model_path or self.filename, self._models_dir)

    def load(self) -> None:
        if self._session is not None:
            return

        import onnxruntime as ort

        path = self.model_path
        if not path.is_file():
            raise FileNotFoundError(f"{self.name} ONNX model not found at {path}")
        self._session = ort.InferenceSession(str(path), providers=self._providers)
        logger.info(f"{self.name} model loaded from {path}")

    def _run(self, tensor: np.ndarray) -> List[np.ndarray]:
        if self._session is None:
            raise InferenceError(f"{self.name} model is not loaded")
        input_name = self._session.get_inputs()[0].name
        return [np.asarray(o) for o in self._session.run(None, {input_name: tensor})]


def _bgr_tensor(crop: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Resize, scale to [0, 1], NCHW."""
    resized = cv2.resize(to_bgr(crop), size)
    img = resized.astype(np.float32) / 255.0
    return np.transpose(img, (2, 0, 1))[np.newaxis, ...]


def _imagenet_tensor(crop: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Resize, RGB, ImageNet normalize, NCHW."""
    rgb = cv2.cvtColor(to_bgr(crop), cv2.COLOR_BGR2RGB)
    resized = cv2.resize(rgb, size)
    img = resized.astype(np.float32) / 255.0
    img = (img - IMAGENET_MEAN) / IMAGENET_STD
    return np.transpose(img, (2, 0, 1))[np.newaxis, ...].astype(np.float32)


class AgeGenderModel(OnnxAttributeModel):
    """Joint age regression and gender classification.

    Input: 62x62 BGR scaled to [0, 1]. Outputs: age / 100, and gender
    probabilities ordered [male, female].
    """

    name = "age_gender"
    kinds = frozenset({AttributeKind.AGE, AttributeKind.GENDER})
    filename = "age_gender.onnx"
    input_size = (62, 62)

    def predict(self, crop: np.ndarray) -> Dict[AttributeKind, Any]:
        outputs = self._run(_bgr_tensor(crop, self.input_size))
        if len(outputs) < 2:
            raise InferenceError(f"{self.name} expected 2 outputs, got {len(outputs)}")

        age = float(outputs[0].reshape(-1)[0]) * 100.0
        probs = outputs[1].reshape(-1)
        if probs.size < 2:
            raise InferenceError(f"{self.name} gender output has {probs.size} values")
        probs = as_probabilities(probs[:2])
        if probs[0] > probs[1]:
            gender = GenderPrediction("male", float(probs[0]))
        else:
            gender = GenderPrediction("female", float(probs[1]))

        return {
            AttributeKind.AGE: AgeEstimate(value=max(age, 0.0)),
            AttributeKind.GENDER: gender,
        }


class EmotionModel(OnnxAttributeModel):
    """Facial expression classifier over 64x64 grayscale input."""

    name = "emotion"
    kinds = frozenset({AttributeKind.EMOTION})
    filename = "emotion.onnx"
    input_size = (64, 64)

    def __init__(self, *args: Any, labels: Sequence[str] = EMOTION_LABELS, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._labels = tuple(labels)

    def predict(self, crop: np.ndarray) -> Dict[AttributeKind, Any]:
        gray = cv2.resize(to_gray(crop), self.input_size).astype(np.float32)
        tensor = gray[np.newaxis, np.newaxis, ...]
        scores = self._run(tensor)[0].reshape(-1)
        if scores.size != len(self._labels):
            raise InferenceError(
                f"{self.name} produced {scores.size} scores for {len(self._labels)} labels"
            )
        probs = as_probabilities(scores)
        return {
            AttributeKind.EMOTION: EmotionDistribution.from_scores(dict(zip(self._labels, probs))),
        }


class EthnicityModel(OnnxAttributeModel):
    """Ethnicity classifier over 224x224 ImageNet-normalized RGB input."""

    name = "ethnicity"
    kinds = frozenset({AttributeKind.ETHNICITY})
    filename = "ethnicity.onnx"
    input_size = (224, 224)

    def __init__(self, *args: Any, labels: Sequence[str] = ETHNICITY_LABELS, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._labels = tuple(labels)

    def predict(self, crop: np.ndarray) -> Dict[AttributeKind, Any]:
        scores = self._run(_imagenet_tensor(crop, self.input_size))[0].reshape(-1)
        if scores.size != len(self._labels):
            raise InferenceError(
                f"{self.name} produced {scores.size} scores for {len(self._labels)} labels"
            )
        probs = as_probabilities(scores)
        return {
            AttributeKind.ETHNICITY: EthnicityPrediction.from_scores(dict(zip(self._labels, probs))),
        }


class LandmarkModel(OnnxAttributeModel):
    """Landmark regressor.

    The output is a flat vector of (x, y) pairs normalized to [0, 1]
    over the input, mapped back to crop pixel coordinates.
    """

    name = "landmarks"
    kinds = frozenset({AttributeKind.LANDMARKS})
    filename = "landmarks.onnx"
    input_size = (112, 112)

    def predict(self, crop: np.ndarray) -> Dict[AttributeKind, Any]:
        h, w = crop.shape[:2]
        flat = self._run(_bgr_tensor(crop, self.input_size))[0].reshape(-1)
        if flat.size == 0 or flat.size % 2:
            raise InferenceError(f"{self.name} produced {flat.size} values, expected (x, y) pairs")
        points = flat.reshape(-1, 2).astype(np.float64) * np.array([w, h], dtype=np.float64)
        return {AttributeKind.LANDMARKS: Landmarks.from_array(points)}


class HeadPoseModel(OnnxAttributeModel):
    """Head pose regressor.

    Accepts models emitting either a (yaw, pitch, roll) triple in degrees
    or a 3x3 rotation matrix (6DRepNet style).
    """

    name = "head_pose"
    kinds = frozenset({AttributeKind.POSE})
    filename = "head_pose.onnx"
    input_size = (224, 224)

    def predict(self, crop: np.ndarray) -> Dict[AttributeKind, Any]:
        out = self._run(_imagenet_tensor(crop, self.input_size))[0].reshape(-1)
        if out.size == 9:
            yaw, pitch, roll = rotation_matrix_to_euler(out.reshape(3, 3))
        elif out.size == 3:
            yaw, pitch, roll = (float(v) for v in out)
        else:
            raise InferenceError(f"{self.name} produced {out.size} values, expected 3 or 9")
        return {AttributeKind.POSE: HeadPose(yaw=yaw, pitch=pitch, roll=roll)}


__all__ = [
    "OnnxAttributeModel",
    "AgeGenderModel",
    "EmotionModel",
    "EthnicityModel",
    "LandmarkModel",
    "HeadPoseModel",
    "EMOTION_LABELS",
    "ETHNICITY_LABELS",
    "rotation_matrix_to_euler",
    "softmax",
]
