"""Face anonymization transforms.

Every transform returns a new buffer; the input crop (usually a view
into a frame) is never written to.

Example:
    >>> anonymizer = Anonymizer(AnonymizeMode.PIXELATE, pixelate_block=12)
    >>> redacted = anonymizer.apply(crop)
    >>> redacted.shape == crop.shape
    True
"""

import logging
from typing import Optional, Tuple, Union

import cv2
import numpy as np

from facepath.config import AnonymizeMode
from facepath.crop import to_bgr

logger = logging.getLogger(__name__)


def _from_bgr(bgr: np.ndarray, like: np.ndarray) -> np.ndarray:
    """Convert a BGR result back to the channel layout of ``like``."""
    if like.ndim == 2:
        return cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)
    channels = like.shape[2]
    if channels == 1:
        return cv2.cvtColor(bgr, cv2.COLOR_BGR2GRAY)[:, :, np.newaxis]
    if channels == 4:
        alpha = np.full(bgr.shape[:2] + (1,), 255, dtype=bgr.dtype)
        return np.concatenate([bgr, alpha], axis=2)
    return bgr


def default_glyph(size: int = 128) -> np.ndarray:
    """Smiley face glyph as a BGRA image with a transparent background."""
    glyph = np.zeros((size, size, 4), dtype=np.uint8)
    center = (size // 2, size // 2)
    radius = int(size * 0.46)
    cv2.circle(glyph, center, radius, (0, 215, 255, 255), -1, cv2.LINE_AA)
    eye_r = max(1, size // 14)
    for dx in (-size // 6, size // 6):
        cv2.circle(glyph, (center[0] + dx, int(size * 0.38)), eye_r, (40, 40, 40, 255), -1, cv2.LINE_AA)
    cv2.ellipse(
        glyph,
        (center[0], int(size * 0.56)),
        (size // 4, size // 6),
        0, 15, 165,
        (40, 40, 40, 255),
        max(1, size // 24),
        cv2.LINE_AA,
    )
    return glyph


class Anonymizer:
    """Produces redacted copies of face crops.

    Args:
        mode: Default mode used when ``apply`` is called without one.
        blur_kernel: Gaussian kernel size for blur (odd).
        pixelate_block: Block size in pixels for pixelate.
        color: BGR fill colour for blackout (and the overlay background).
        glyph: BGR or BGRA image pasted over the face in overlay mode.
            A smiley is drawn when None.
    """

    def __init__(
        self,
        mode: Union[str, AnonymizeMode] = AnonymizeMode.BLUR,
        blur_kernel: int = 31,
        pixelate_block: int = 10,
        color: Tuple[int, int, int] = (0, 0, 0),
        glyph: Optional[np.ndarray] = None,
    ):
        if blur_kernel < 1 or blur_kernel % 2 == 0:
            raise ValueError(f"blur_kernel must be a positive odd number, got {blur_kernel}")
        if pixelate_block < 1:
            raise ValueError(f"pixelate_block must be >= 1, got {pixelate_block}")
        self.mode = AnonymizeMode(mode)
        self._blur_kernel = blur_kernel
        self._pixelate_block = pixelate_block
        self._color = tuple(int(c) for c in color)
        self._glyph = glyph

    def apply(self, pixels: np.ndarray, mode: Optional[Union[str, AnonymizeMode]] = None) -> np.ndarray:
        """Return a redacted copy of ``pixels``."""
        mode = AnonymizeMode(mode) if mode is not None else self.mode
        if pixels.size == 0:
            return pixels.copy()
        if mode is AnonymizeMode.BLUR:
            return self.blur(pixels)
        if mode is AnonymizeMode.PIXELATE:
            return self.pixelate(pixels)
        if mode is AnonymizeMode.BLACKOUT:
            return self.blackout(pixels)
        return self.overlay(pixels)

    def blur(self, pixels: np.ndarray) -> np.ndarray:
        k = self._blur_kernel
        out = cv2.GaussianBlur(np.ascontiguousarray(pixels), (k, k), 0)
        if pixels.ndim == 3 and out.ndim == 2:
            out = out[:, :, np.newaxis]
        return out

    def pixelate(self, pixels: np.ndarray) -> np.ndarray:
        h, w = pixels.shape[:2]
        small_w = max(1, w // self._pixelate_block)
        small_h = max(1, h // self._pixelate_block)
        small = cv2.resize(pixels, (small_w, small_h), interpolation=cv2.INTER_LINEAR)
        out = cv2.resize(small, (w, h), interpolation=cv2.INTER_NEAREST)
        if pixels.ndim == 3 and out.ndim == 2:
            out = out[:, :, np.newaxis]
        return out

    def blackout(self, pixels: np.ndarray) -> np.ndarray:
        out = np.empty_like(pixels)
        if pixels.ndim == 2 or pixels.shape[2] == 1:
            out[...] = int(round(sum(self._color) / 3))
        elif pixels.shape[2] == 4:
            out[...] = self._color + (255,)
        else:
            out[...] = self._color
        return out

    def overlay(self, pixels: np.ndarray) -> np.ndarray:
        h, w = pixels.shape[:2]
        if self._glyph is None:
            base = to_bgr(self.blackout(pixels)).copy()
            glyph = default_glyph(max(h, w))
        else:
            base = to_bgr(pixels).copy()
            glyph = self._glyph
        glyph = cv2.resize(glyph, (w, h), interpolation=cv2.INTER_AREA)
        if glyph.ndim == 3 and glyph.shape[2] == 4:
            alpha = glyph[:, :, 3:4].astype(np.float32) / 255.0
            blended = glyph[:, :, :3].astype(np.float32) * alpha + base.astype(np.float32) * (1.0 - alpha)
            result = np.clip(blended, 0, 255).astype(np.uint8)
        else:
            result = to_bgr(glyph).copy()
        return _from_bgr(result, pixels)


__all__ = ["Anonymizer", "default_glyph"]
