"""Face region quality scoring.

Scores combine sharpness (Laplacian variance), region size and, once
attributes are known, head pose deviation. Scoring runs twice per face:
``prefilter`` before inference using size and sharpness only, and
``refine`` afterwards when a pose may be available. Brightness and
contrast are reported alongside but do not enter the score.

Example:
    >>> assessor = QualityAssessor(min_score=0.5)
    >>> score = assessor.prefilter(region, frame)
    >>> score.usable
    True
"""

import math
from typing import List, Optional, Tuple

import cv2
import numpy as np

from facepath.attributes import AttributeKind, AttributeSet, HeadPose
from facepath.crop import crop_region, to_gray
from facepath.types import Frame, QualityReason, QualityScore, Region


class QualityAssessor:
    """Deterministic quality scorer.

    Args:
        min_score: Scores below this get a reason code.
        min_face_size: Faces whose shorter side is smaller score 0 on size.
        reference_fraction: Linear fraction of the frame considered full size.
        full_size: Shorter side in pixels considered full size.
        sharpness_reference: Laplacian variance considered fully sharp.
        max_yaw: Yaw in degrees at which the pose component reaches 0.
        max_pitch: Pitch in degrees at which the pose component reaches 0.
        max_roll: Roll in degrees at which the pose component reaches 0.
    """

    def __init__(
        self,
        min_score: float = 0.5,
        min_face_size: int = 24,
        reference_fraction: float = 0.1,
        full_size: int = 112,
        sharpness_reference: float = 200.0,
        max_yaw: float = 90.0,
        max_pitch: float = 60.0,
        max_roll: float = 60.0,
    ):
        if not 0.0 <= min_score <= 1.0:
            raise ValueError(f"min_score must be in [0, 1], got {min_score}")
        self.min_score = min_score
        self._min_face_size = min_face_size
        self._reference_fraction = reference_fraction
        self._full_size = full_size
        self._sharpness_reference = sharpness_reference
        self._max_yaw = max_yaw
        self._max_pitch = max_pitch
        self._max_roll = max_roll

    def sharpness(self, crop: np.ndarray) -> float:
        """Laplacian variance relative to the reference, capped at 1."""
        if crop.size == 0:
            return 0.0
        gray = to_gray(crop)
        variance = float(cv2.Laplacian(gray, cv2.CV_64F).var())
        return min(1.0, variance / self._sharpness_reference)

    def exposure(self, crop: np.ndarray) -> Tuple[float, float]:
        """Brightness (mean) and contrast (standard deviation) of the crop in [0, 1]."""
        if crop.size == 0:
            return 0.0, 0.0
        gray = to_gray(crop)
        brightness = float(np.mean(gray)) / 255.0
        contrast = min(1.0, float(np.std(gray)) / 128.0)
        return brightness, contrast

    def size_score(self, region: Region, frame_width: int, frame_height: int) -> float:
        """Larger of the frame-relative and absolute size scores."""
        shorter = min(region.width, region.height)
        if shorter < self._min_face_size:
            return 0.0
        frame_area = frame_width * frame_height
        relative = 0.0
        if frame_area > 0:
            relative = min(1.0, math.sqrt(region.area / frame_area) / self._reference_fraction)
        absolute = min(1.0, shorter / self._full_size)
        return max(relative, absolute)

    def pose_score(self, pose: HeadPose) -> float:
        deviation = max(
            abs(pose.yaw) / self._max_yaw,
            abs(pose.pitch) / self._max_pitch,
            abs(pose.roll) / self._max_roll,
        )
        return min(1.0, max(0.0, 1.0 - deviation))

    def prefilter(self, region: Region, frame: Frame) -> QualityScore:
        """Cheap score from size and sharpness, computed before inference."""
        crop = crop_region(frame, region)
        sharp = self.sharpness(crop)
        size = self.size_score(region, frame.width, frame.height)
        brightness, contrast = self.exposure(crop)
        return self._combine(
            sharp, size, None, refined=False, brightness=brightness, contrast=contrast,
        )

    def refine(self, prefilter: QualityScore, attributes: Optional[AttributeSet]) -> QualityScore:
        """Fold the head pose, when inferred, into a prefilter score."""
        pose = None
        if attributes is not None and AttributeKind.POSE in attributes:
            pose = self.pose_score(attributes[AttributeKind.POSE])
        return self._combine(
            prefilter.sharpness, prefilter.size, pose, refined=True,
            brightness=prefilter.brightness, contrast=prefilter.contrast,
        )

    def score(
        self,
        region: Region,
        frame: Frame,
        attributes: Optional[AttributeSet] = None,
    ) -> QualityScore:
        """Full score for a region; includes pose when ``attributes`` has one."""
        base = self.prefilter(region, frame)
        if attributes is None:
            return base
        return self.refine(base, attributes)

    def _combine(
        self,
        sharpness: float,
        size: float,
        pose: Optional[float],
        refined: bool,
        brightness: Optional[float] = None,
        contrast: Optional[float] = None,
    ) -> QualityScore:
        components: List[Tuple[float, QualityReason]] = [
            (size, QualityReason.TOO_SMALL),
            (sharpness, QualityReason.TOO_BLURRY),
        ]
        if pose is not None:
            components.append((pose, QualityReason.EXTREME_POSE))

        product = 1.0
        for value, _ in components:
            product *= value
        value = product ** (1.0 / len(components)) if product > 0 else 0.0

        reason = None
        if value < self.min_score:
            reason = min(components, key=lambda c: c[0])[1]
        return QualityScore(
            value=value,
            reason=reason,
            sharpness=sharpness,
            size=size,
            pose=pose,
            refined=refined,
            brightness=brightness,
            contrast=contrast,
        )


__all__ = ["QualityAssessor"]
