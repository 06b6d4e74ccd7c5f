"""Face attribute types.

An ``AttributeSet`` is an immutable mapping from ``AttributeKind`` to a
typed value. Attributes that were not requested or could not be inferred
are absent; failures are listed separately in ``AttributeSet.errors``.

Example:
    >>> attrs = AttributeSet({"age": 34, "gender": "female"})
    >>> attrs[AttributeKind.AGE].value
    34.0
    >>> AttributeKind.EMOTION in attrs
    False
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union

import numpy as np


class AttributeKind(str, Enum):
    """Attribute families an analyzer can produce."""

    AGE = "age"
    GENDER = "gender"
    EMOTION = "emotion"
    LANDMARKS = "landmarks"
    POSE = "pose"
    ETHNICITY = "ethnicity"

    @classmethod
    def parse(cls, value: Union[str, "AttributeKind"]) -> "AttributeKind":
        """Resolve a kind from its name, case-insensitively.

        Raises:
            ValueError: If the name is not a known attribute kind.
        """
        if isinstance(value, AttributeKind):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            known = ", ".join(k.value for k in cls)
            raise ValueError(f"Unknown attribute kind: {value!r} (known: {known})")


KindLike = Union[str, AttributeKind]


@dataclass(frozen=True)
class AgeEstimate:
    """Age as a point estimate with an optional range, in years."""

    value: float
    low: Optional[float] = None
    high: Optional[float] = None

    @classmethod
    def from_range(cls, low: float, high: float) -> "AgeEstimate":
        return cls(value=(float(low) + float(high)) / 2, low=float(low), high=float(high))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"value": self.value}
        if self.low is not None:
            data["low"] = self.low
        if self.high is not None:
            data["high"] = self.high
        return data


@dataclass(frozen=True)
class GenderPrediction:
    label: str
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"label": self.label}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        return data


@dataclass(frozen=True)
class EmotionDistribution:
    """Categorical distribution over emotion labels.

    Attributes:
        scores: (label, probability) pairs, highest probability first.
    """

    scores: Tuple[Tuple[str, float], ...]

    @classmethod
    def from_scores(cls, scores: Mapping) -> "EmotionDistribution":
        ordered = sorted(
            ((str(k), float(v)) for k, v in scores.items()),
            key=lambda item: (-item[1], item[0]),
        )
        return cls(scores=tuple(ordered))

    @property
    def dominant(self) -> Optional[str]:
        return self.scores[0][0] if self.scores else None

    @property
    def confidence(self) -> float:
        return self.scores[0][1] if self.scores else 0.0

    def as_dict(self) -> Dict[str, float]:
        return dict(self.scores)

    def to_dict(self) -> Dict[str, Any]:
        return {"dominant": self.dominant, "scores": self.as_dict()}


@dataclass(frozen=True)
class Landmarks:
    """Ordered 2D facial landmark points in crop pixel coordinates."""

    points: Tuple[Tuple[float, float], ...]

    @classmethod
    def from_array(cls, points: Any) -> "Landmarks":
        arr = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return cls(points=tuple((float(x), float(y)) for x, y in arr))

    def __len__(self) -> int:
        return len(self.points)

    def to_array(self) -> np.ndarray:
        return np.asarray(self.points, dtype=np.float32).reshape(-1, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {"points": [list(p) for p in self.points]}


@dataclass(frozen=True)
class HeadPose:
    """Head orientation as Euler angles in degrees."""

    yaw: float
    pitch: float
    roll: float

    def is_frontal(
        self,
        yaw_limit: float = 30.0,
        pitch_limit: float = 20.0,
        roll_limit: float = 20.0,
    ) -> bool:
        return (
            abs(self.yaw) <= yaw_limit
            and abs(self.pitch) <= pitch_limit
            and abs(self.roll) <= roll_limit
        )

    def direction(self) -> str:
        """Human-readable facing direction, e.g. ``"left and up"``."""
        parts = []
        if abs(self.yaw) > 30.0:
            parts.append("right" if self.yaw > 0 else "left")
        if abs(self.pitch) > 20.0:
            parts.append("up" if self.pitch > 0 else "down")
        if abs(self.roll) > 20.0:
            parts.append("clockwise" if self.roll > 0 else "counter-clockwise")
        return " and ".join(parts) if parts else "frontal"

    def to_dict(self) -> Dict[str, Any]:
        return {"yaw": self.yaw, "pitch": self.pitch, "roll": self.roll}


@dataclass(frozen=True)
class EthnicityPrediction:
    label: str
    confidence: Optional[float] = None
    distribution: Tuple[Tuple[str, float], ...] = ()

    @classmethod
    def from_scores(cls, scores: Mapping) -> "EthnicityPrediction":
        ordered = tuple(sorted(
            ((str(k), float(v)) for k, v in scores.items()),
            key=lambda item: (-item[1], item[0]),
        ))
        if not ordered:
            raise ValueError("ethnicity scores are empty")
        return cls(label=ordered[0][0], confidence=ordered[0][1], distribution=ordered)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"label": self.label}
        if self.confidence is not None:
            data["confidence"] = self.confidence
        if self.distribution:
            data["distribution"] = dict(self.distribution)
        return data


_VALUE_TYPES = {
    AttributeKind.AGE: AgeEstimate,
    AttributeKind.GENDER: GenderPrediction,
    AttributeKind.EMOTION: EmotionDistribution,
    AttributeKind.LANDMARKS: Landmarks,
    AttributeKind.POSE: HeadPose,
    AttributeKind.ETHNICITY: EthnicityPrediction,
}


def coerce_value(kind: AttributeKind, value: Any) -> Any:
    """Convert a plain value into the typed value for ``kind``.

    Raises:
        TypeError: If the value cannot represent the attribute.
    """
    expected = _VALUE_TYPES[kind]
    if isinstance(value, expected):
        return value

    if kind is AttributeKind.AGE:
        if isinstance(value, (int, float, np.integer, np.floating)):
            return AgeEstimate(value=float(value))
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return AgeEstimate.from_range(value[0], value[1])
        if isinstance(value, Mapping) and "value" in value:
            return AgeEstimate(
                value=float(value["value"]),
                low=value.get("low"),
                high=value.get("high"),
            )
    elif kind is AttributeKind.GENDER:
        if isinstance(value, str):
            return GenderPrediction(label=value)
        if isinstance(value, Mapping) and "label" in value:
            return GenderPrediction(label=str(value["label"]), confidence=value.get("confidence"))
    elif kind is AttributeKind.EMOTION:
        if isinstance(value, Mapping):
            scores = value.get("scores", value)
            return EmotionDistribution.from_scores(scores)
    elif kind is AttributeKind.LANDMARKS:
        if isinstance(value, Mapping) and "points" in value:
            value = value["points"]
        if isinstance(value, (list, tuple, np.ndarray)):
            return Landmarks.from_array(value)
    elif kind is AttributeKind.POSE:
        if isinstance(value, Mapping):
            return HeadPose(float(value["yaw"]), float(value["pitch"]), float(value["roll"]))
        if isinstance(value, (tuple, list, np.ndarray)) and len(value) == 3:
            return HeadPose(float(value[0]), float(value[1]), float(value[2]))
    elif kind is AttributeKind.ETHNICITY:
        if isinstance(value, str):
            return EthnicityPrediction(label=value)
        if isinstance(value, Mapping):
            if "label" in value:
                dist = value.get("distribution") or {}
                return EthnicityPrediction(
                    label=str(value["label"]),
                    confidence=value.get("confidence"),
                    distribution=tuple(
                        sorted(((str(k), float(v)) for k, v in dist.items()),
                               key=lambda item: (-item[1], item[0]))
                    ),
                )
            return EthnicityPrediction.from_scores(value)

    raise TypeError(f"Cannot use {type(value).__name__} as a {kind.value} attribute")


class AttributeSet(Mapping):
    """Immutable mapping of inferred face attributes.

    Args:
        values: Mapping of attribute kind (or kind name) to value. Plain
            values are coerced to the typed value classes.
        errors: Mapping of attribute kind to failure reason for kinds that
            were requested but could not be inferred.
    """

    __slots__ = ("_values", "_errors")

    def __init__(
        self,
        values: Optional[Mapping] = None,
        errors: Optional[Mapping] = None,
    ):
        typed: Dict[AttributeKind, Any] = {}
        for key, value in (values or {}).items():
            kind = AttributeKind.parse(key)
            if value is None:
                continue
            typed[kind] = coerce_value(kind, value)

        reasons: Dict[AttributeKind, str] = {}
        for key, reason in (errors or {}).items():
            kind = AttributeKind.parse(key)
            if kind not in typed:
                reasons[kind] = str(reason)

        self._values = MappingProxyType(typed)
        self._errors = MappingProxyType(reasons)

    @classmethod
    def failed(cls, kinds: Iterable[KindLike], reason: str) -> "AttributeSet":
        """An empty set where every requested kind failed for ``reason``."""
        return cls(errors={k: reason for k in kinds})

    def __getitem__(self, key: KindLike) -> Any:
        return self._values[AttributeKind.parse(key)]

    def __contains__(self, key: object) -> bool:
        try:
            return AttributeKind.parse(key) in self._values  # type: ignore[arg-type]
        except ValueError:
            return False

    def __iter__(self) -> Iterator[AttributeKind]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AttributeSet):
            return NotImplemented
        return dict(self._values) == dict(other._values) and dict(self._errors) == dict(other._errors)

    def __hash__(self) -> int:
        return hash((frozenset(self._values.items()), frozenset(self._errors.items())))

    def __repr__(self) -> str:
        names = ", ".join(k.value for k in self._values)
        if self._errors:
            failed = ", ".join(k.value for k in self._errors)
            return f"AttributeSet({names}; failed: {failed})"
        return f"AttributeSet({names})"

    @property
    def errors(self) -> Mapping:
        """Failure reason per attribute kind that is absent because it failed."""
        return self._errors

    @property
    def complete(self) -> bool:
        return not self._errors

    def select(self, kinds: Iterable[KindLike]) -> "AttributeSet":
        """Restrict the set (values and errors) to ``kinds``."""
        wanted = {AttributeKind.parse(k) for k in kinds}
        return AttributeSet(
            {k: v for k, v in self._values.items() if k in wanted},
            {k: e for k, e in self._errors.items() if k in wanted},
        )

    def merge(self, other: "AttributeSet") -> "AttributeSet":
        """Combine two sets. Values and errors already in this set win.

        Example:
            >>> AttributeSet({"age": 30}).merge(AttributeSet({"age": 50, "gender": "female"}))
            AttributeSet(age, gender)
        """
        values = dict(other._values)
        values.update(self._values)
        errors = dict(other._errors)
        errors.update(self._errors)
        return AttributeSet(values, errors)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {k.value: v.to_dict() for k, v in self._values.items()}
        if self._errors:
            data["_errors"] = {k.value: e for k, e in self._errors.items()}
        return data

    @classmethod
    def from_dict(cls, data: Mapping) -> "AttributeSet":
        values = {k: v for k, v in data.items() if k != "_errors"}
        return cls(values, data.get("_errors") or {})


__all__ = [
    "AttributeKind",
    "AgeEstimate",
    "GenderPrediction",
    "EmotionDistribution",
    "Landmarks",
    "HeadPose",
    "EthnicityPrediction",
    "AttributeSet",
    "coerce_value",
]
