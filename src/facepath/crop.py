"""Region cropping and face fingerprints."""

from __future__ import annotations

import hashlib
from typing import Tuple, Union

import cv2
import numpy as np

from facepath.types import Frame, Region

# Normalized crop used for fingerprinting: grayscale, fixed size
FINGERPRINT_SIZE: Tuple[int, int] = (64, 64)


def crop_region(image: Union[Frame, np.ndarray], region: Region) -> np.ndarray:
    """Return the pixels of ``region`` as a view into the frame buffer.

    Args:
        image: Frame or (H, W[, C]) array.
        region: Rectangle inside the image.

    Raises:
        ValueError: If the region does not lie within the image.
    """
    pixels = image.pixels if isinstance(image, Frame) else image
    h, w = pixels.shape[:2]
    if not region.contains_in(w, h):
        raise ValueError(f"Region {region.bbox} outside image bounds {w}x{h}")
    return pixels[region.y:region.y + region.height, region.x:region.x + region.width]


def to_gray(pixels: np.ndarray) -> np.ndarray:
    """Convert a BGR, BGRA or single-channel image to 2D grayscale."""
    if pixels.ndim == 2:
        return pixels
    channels = pixels.shape[2]
    if channels == 1:
        return pixels[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(pixels, cv2.COLOR_BGR2GRAY)


def to_bgr(pixels: np.ndarray) -> np.ndarray:
    """Convert a grayscale or BGRA image to 3-channel BGR."""
    if pixels.ndim == 2:
        return cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
    channels = pixels.shape[2]
    if channels == 1:
        return cv2.cvtColor(pixels[:, :, 0], cv2.COLOR_GRAY2BGR)
    if channels == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_BGRA2BGR)
    return pixels


def normalize_crop(crop: np.ndarray, size: Tuple[int, int] = FINGERPRINT_SIZE) -> np.ndarray:
    """Grayscale, resize and pack a crop into a contiguous uint8 array."""
    if crop.size == 0:
        raise ValueError("Cannot normalize an empty crop")
    gray = to_gray(crop)
    if gray.dtype != np.uint8:
        gray = np.clip(gray, 0, 255).astype(np.uint8)
    resized = cv2.resize(gray, size, interpolation=cv2.INTER_AREA)
    return np.ascontiguousarray(resized)


def fingerprint(crop: np.ndarray) -> str:
    """Deterministic content hash of a face crop.

    Bit-identical crops after normalization always yield the same
    fingerprint. This is a dedup key, not an identity across frames.

    Example:
        >>> key = fingerprint(crop_region(frame, region))
        >>> len(key)
        32
    """
    normalized = normalize_crop(crop)
    digest = hashlib.blake2b(digest_size=16)
    digest.update(f"{normalized.shape[1]}x{normalized.shape[0]}:".encode())
    digest.update(normalized.tobytes())
    return digest.hexdigest()


__all__ = ["FINGERPRINT_SIZE", "crop_region", "to_gray", "to_bgr", "normalize_crop", "fingerprint"]
