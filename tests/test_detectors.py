"""Tests for face detectors and the detector registry."""

import threading
from types import SimpleNamespace
from unittest.mock import Mock

import numpy as np
import pytest

from helpers import FakeDetector, create_mock_frame

from facepath.detectors import (
    BaseDetector,
    HaarCascadeDetector,
    ScrfdDetector,
    SsdResNetDetector,
    available_detectors,
    create_detector,
    register_detector,
)
from facepath.errors import ConfigurationError, DetectionError
from facepath.types import Frame, Region


def _ssd_net(rows):
    net = Mock()
    net.forward.return_value = np.asarray(rows, dtype=np.float32).reshape(1, 1, -1, 7)
    return net


class TestBaseDetector:
    def test_regions_clipped_and_sorted(self):
        detector = FakeDetector(boxes=[
            (150, 150, 100, 100, 0.7),
            (-20, 10, 60, 60, 0.9),
            (10, 10, 0, 30, 0.99),
        ])
        regions = detector.detect(create_mock_frame())
        assert [r.bbox for r in regions] == [(0, 10, 40, 60), (150, 150, 50, 50)]
        assert all(r.contains_in(200, 200) for r in regions)

    def test_accepts_array(self, face_image):
        assert len(FakeDetector().detect(face_image)) == 1

    def test_rejects_empty_and_float_frames(self):
        detector = FakeDetector()
        with pytest.raises(DetectionError, match="empty"):
            detector.detect(Frame(0, 0, np.zeros((0, 0, 3), np.uint8)))
        with pytest.raises(DetectionError, match="dtype"):
            detector.detect(np.zeros((10, 10, 3), np.float32))

    def test_detect_failure_wrapped(self):
        detector = FakeDetector(fail_on={3})
        with pytest.raises(DetectionError, match="corrupt frame 3"):
            detector.detect(create_mock_frame(sequence_no=3))

    def test_load_failure_wrapped(self):
        class Broken(BaseDetector):
            name = "broken"

            def _load(self):
                raise RuntimeError("weights missing")

            def _detect(self, model, pixels):
                return []

        with pytest.raises(DetectionError, match="model load failed: weights missing"):
            Broken().detect(np.zeros((10, 10, 3), np.uint8))

    def test_model_per_thread(self):
        loads = []

        class Counting(BaseDetector):
            name = "counting"
            per_thread = True

            def _load(self):
                model = object()
                loads.append(model)
                return model

            def _detect(self, model, pixels):
                return []

        detector = Counting()
        image = np.zeros((10, 10, 3), np.uint8)
        detector.detect(image)
        detector.detect(image)
        thread = threading.Thread(target=detector.detect, args=(image,))
        thread.start()
        thread.join()
        assert len(loads) == 2

    def test_invalid_min_confidence(self):
        with pytest.raises(ValueError):
            SsdResNetDetector(confidence_threshold=1.5, net=Mock())


class TestHaarCascadeDetector:
    def test_blank_frame_has_no_faces(self):
        detector = HaarCascadeDetector()
        assert detector.detect(np.full((240, 320, 3), 127, np.uint8)) == []

    def test_grayscale_frame(self):
        detector = HaarCascadeDetector()
        assert detector.detect(np.zeros((120, 160), np.uint8)) == []

    def test_missing_cascade(self, tmp_path):
        detector = HaarCascadeDetector(cascade_path=tmp_path / "none.xml")
        with pytest.raises(DetectionError, match="not found"):
            detector.detect(np.zeros((50, 50, 3), np.uint8))

    def test_invalid_scale_factor(self):
        with pytest.raises(ValueError):
            HaarCascadeDetector(scale_factor=1.0)


class TestSsdResNetDetector:
    def test_decodes_and_filters(self):
        net = _ssd_net([
            [0, 1, 0.9, 0.1, 0.1, 0.3, 0.4],
            [0, 1, 0.3, 0.0, 0.0, 0.5, 0.5],
            [0, 1, 0.95, 0.5, 0.5, 1.2, 0.9],
        ])
        detector = SsdResNetDetector(net=net)
        regions = detector.detect(np.zeros((200, 300, 3), np.uint8))

        assert [r.bbox for r in regions] == [(150, 100, 150, 80), (30, 20, 60, 60)]
        assert regions[0].confidence == pytest.approx(0.95)
        blob = net.setInput.call_args[0][0]
        assert blob.shape == (1, 3, 300, 300)

    def test_shared_net_not_per_thread(self):
        assert SsdResNetDetector(net=_ssd_net([])).per_thread is False
        assert SsdResNetDetector().per_thread is True

    def test_missing_model_files(self, tmp_path):
        detector = SsdResNetDetector(models_dir=tmp_path)
        with pytest.raises(DetectionError, match="not found"):
            detector.detect(np.zeros((50, 50, 3), np.uint8))


class TestScrfdDetector:
    def test_with_injected_app(self):
        app = Mock()
        app.get.return_value = [
            SimpleNamespace(bbox=np.array([10.0, 20.0, 50.0, 70.0]), det_score=0.8),
            SimpleNamespace(bbox=np.array([60.0, 20.0, 90.0, 60.0]), det_score=0.3),
        ]
        detector = ScrfdDetector(app=app, det_thresh=0.5)
        regions = detector.detect(np.zeros((100, 100, 3), np.uint8))
        assert regions == [Region(10, 20, 40, 50, 0.8)]


class TestRegistry:
    def test_builtin_names(self):
        assert {"haar", "ssd", "scrfd", "retinaface"} <= set(available_detectors())

    def test_create(self):
        detector = create_detector("HAAR", min_neighbors=5)
        assert isinstance(detector, HaarCascadeDetector)

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError, match="Unknown detector"):
            create_detector("mtcnn")

    def test_bad_options(self):
        with pytest.raises(ConfigurationError, match="Invalid options"):
            create_detector("haar", window=3)

    def test_register(self, monkeypatch):
        import facepath.detectors as detectors

        monkeypatch.setattr(detectors, "_REGISTRY", dict(detectors._REGISTRY))
        register_detector("fake", FakeDetector)
        assert isinstance(create_detector("fake"), FakeDetector)
        with pytest.raises(ConfigurationError, match="already registered"):
            register_detector("fake", FakeDetector)
        register_detector("fake", HaarCascadeDetector, replace=True)
        assert isinstance(create_detector("fake"), HaarCascadeDetector)
