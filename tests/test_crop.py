"""Tests for cropping and fingerprints."""

import numpy as np
import pytest

from facepath.crop import FINGERPRINT_SIZE, crop_region, fingerprint, normalize_crop, to_bgr, to_gray
from facepath.types import Frame, Region


class TestCropRegion:
    def test_crop_is_view(self, face_image):
        frame = Frame(0, 0, face_image)
        crop = crop_region(frame, Region(50, 50, 100, 100))
        assert crop.shape == (100, 100, 3)
        assert np.shares_memory(crop, face_image)

    def test_out_of_bounds(self, face_image):
        with pytest.raises(ValueError):
            crop_region(face_image, Region(150, 150, 100, 100))


class TestConversions:
    def test_gray_and_bgr(self):
        bgra = np.zeros((5, 5, 4), np.uint8)
        assert to_gray(bgra).shape == (5, 5)
        assert to_bgr(bgra).shape == (5, 5, 3)
        assert to_bgr(np.zeros((5, 5), np.uint8)).shape == (5, 5, 3)
        assert to_gray(np.zeros((5, 5, 1), np.uint8)).shape == (5, 5)

    def test_normalize(self, rng):
        crop = rng.integers(0, 255, size=(37, 51, 3), dtype=np.uint8)
        normalized = normalize_crop(crop)
        assert normalized.shape == FINGERPRINT_SIZE[::-1]
        assert normalized.dtype == np.uint8
        with pytest.raises(ValueError):
            normalize_crop(np.zeros((0, 4, 3), np.uint8))


class TestFingerprint:
    def test_identical_crops_match(self, face_image):
        a = crop_region(face_image, Region(50, 50, 100, 100))
        b = face_image.copy()[50:150, 50:150]
        assert fingerprint(a) == fingerprint(b)
        assert len(fingerprint(a)) == 32

    def test_different_crops_differ(self, rng):
        a = rng.integers(0, 255, size=(64, 64, 3), dtype=np.uint8)
        b = a.copy()
        b[10:20, 10:20] = 255 - b[10:20, 10:20]
        assert fingerprint(a) != fingerprint(b)

    def test_non_contiguous_view(self, face_image):
        view = face_image[50:150:1, 50:150]
        assert fingerprint(view) == fingerprint(np.ascontiguousarray(view))
