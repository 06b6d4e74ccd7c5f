"""Tests for attribute analyzers."""

import numpy as np
import pytest

from helpers import FakeSession

from facepath.analyzers import (
    AgeGenderModel,
    AttributeModel,
    CompositeAnalyzer,
    EmotionModel,
    EthnicityModel,
    HeadPoseModel,
    LandmarkModel,
    build_analyzer,
    rotation_matrix_to_euler,
)
from facepath.attributes import AttributeKind, GenderPrediction
from facepath.errors import ConfigurationError, InferenceError


class StaticModel(AttributeModel):
    def __init__(self, name, output, kinds=None, fail=None, fail_load=False):
        self.name = name
        self._output = output
        self.kinds = frozenset(AttributeKind.parse(k) for k in (kinds or output))
        self._fail = fail
        self._fail_load = fail_load
        self.calls = 0

    def load(self):
        if self._fail_load:
            raise OSError("weights missing")

    def predict(self, crop):
        self.calls += 1
        if self._fail:
            raise self._fail
        return self._output


@pytest.fixture
def crop(rng):
    return rng.integers(0, 255, size=(100, 80, 3), dtype=np.uint8)


class TestOnnxModels:
    def test_age_gender(self, crop):
        session = FakeSession([np.array([[0.34]]), np.array([[0.2, 0.8]])])
        model = AgeGenderModel(session=session)
        result = model.predict(crop)

        assert result[AttributeKind.AGE].value == pytest.approx(34.0)
        gender = result[AttributeKind.GENDER]
        assert isinstance(gender, GenderPrediction)
        assert gender.label == "female"
        assert gender.confidence == pytest.approx(0.8)
        tensor = session.inputs[0]["input"]
        assert tensor.shape == (1, 3, 62, 62)
        assert tensor.max() <= 1.0

    def test_age_gender_male_from_logits(self, crop):
        session = FakeSession([np.array([0.2]), np.array([3.0, -1.0])])
        gender = AgeGenderModel(session=session).predict(crop)[AttributeKind.GENDER]
        assert gender.label == "male"
        assert 0.5 < gender.confidence < 1.0

    def test_emotion(self, crop):
        scores = np.array([[0.05, 0.05, 0.6, 0.1, 0.1, 0.05, 0.05]])
        session = FakeSession([scores])
        emotion = EmotionModel(session=session).predict(crop)[AttributeKind.EMOTION]
        assert emotion.dominant == "angry"
        assert session.inputs[0]["input"].shape == (1, 1, 64, 64)

    def test_emotion_label_mismatch(self, crop):
        with pytest.raises(InferenceError, match="labels"):
            EmotionModel(session=FakeSession([np.zeros(5)])).predict(crop)

    def test_ethnicity(self, crop):
        logits = np.array([0.1, 0.2, 3.0, 0.1, 0.0, 0.0, 0.0])
        eth = EthnicityModel(session=FakeSession([logits])).predict(crop)[AttributeKind.ETHNICITY]
        assert eth.label == "caucasian"
        assert len(eth.distribution) == 7

    def test_landmarks_scaled_to_crop(self, crop):
        session = FakeSession([np.array([[0.5, 0.5, 0.25, 0.75]])])
        landmarks = LandmarkModel(session=session).predict(crop)[AttributeKind.LANDMARKS]
        assert landmarks.points == ((40.0, 50.0), (20.0, 75.0))

    def test_head_pose_matrix_and_euler(self, crop):
        pose = HeadPoseModel(session=FakeSession([np.eye(3)])).predict(crop)[AttributeKind.POSE]
        assert (pose.yaw, pose.pitch, pose.roll) == pytest.approx((0.0, 0.0, 0.0))

        pose = HeadPoseModel(session=FakeSession([np.array([10.0, -5.0, 2.0])])).predict(crop)[AttributeKind.POSE]
        assert (pose.yaw, pose.pitch, pose.roll) == (10.0, -5.0, 2.0)

        with pytest.raises(InferenceError):
            HeadPoseModel(session=FakeSession([np.zeros(4)])).predict(crop)

    def test_rotation_matrix_yaw(self):
        theta = np.radians(30.0)
        ry = np.array([
            [np.cos(theta), 0.0, np.sin(theta)],
            [0.0, 1.0, 0.0],
            [-np.sin(theta), 0.0, np.cos(theta)],
        ])
        yaw, pitch, roll = rotation_matrix_to_euler(ry)
        assert yaw == pytest.approx(30.0)
        assert pitch == pytest.approx(0.0)
        assert roll == pytest.approx(0.0)

    def test_not_loaded(self, crop):
        with pytest.raises(InferenceError, match="not loaded"):
            AgeGenderModel().predict(crop)

    def test_missing_model_file(self, tmp_path):
        pytest.importorskip("onnxruntime")
        model = AgeGenderModel(models_dir=tmp_path)
        with pytest.raises(FileNotFoundError):
            model.load()

    def test_model_path_resolution(self, tmp_path):
        assert AgeGenderModel(models_dir=tmp_path).model_path == tmp_path / "age_gender.onnx"


class TestCompositeAnalyzer:
    def test_merges_models(self, crop):
        analyzer = CompositeAnalyzer([
            StaticModel("a", {"age": 34, "gender": "female"}),
            StaticModel("b", {"emotion": {"happy": 0.9, "sad": 0.1}}),
        ])
        attrs = analyzer.infer(crop)
        assert set(attrs) == {AttributeKind.AGE, AttributeKind.GENDER, AttributeKind.EMOTION}
        assert attrs.complete

    def test_partial_failure(self, crop):
        analyzer = CompositeAnalyzer([
            StaticModel("a", {"age": 34}),
            StaticModel("b", {}, kinds=["emotion", "pose"], fail=RuntimeError("cuda oom")),
        ])
        attrs = analyzer.infer(crop)
        assert attrs["age"].value == 34.0
        assert AttributeKind.EMOTION not in attrs
        assert attrs.errors[AttributeKind.EMOTION] == "b: cuda oom"
        assert attrs.errors[AttributeKind.POSE] == "b: cuda oom"

    def test_only_requested_models_run(self, crop):
        age = StaticModel("a", {"age": 34})
        emotion = StaticModel("b", {"emotion": {"happy": 1.0}})
        attrs = CompositeAnalyzer([age, emotion]).infer(crop, kinds=["age"])
        assert set(attrs) == {AttributeKind.AGE}
        assert emotion.calls == 0

    def test_first_model_wins(self, crop):
        first = StaticModel("a", {"age": 20})
        second = StaticModel("b", {"age": 60})
        assert CompositeAnalyzer([first, second]).infer(crop)["age"].value == 20.0
        assert second.calls == 0

    def test_fallback_after_failure(self, crop):
        broken = StaticModel("a", {}, kinds=["age"], fail=RuntimeError("boom"))
        backup = StaticModel("b", {"age": 40})
        attrs = CompositeAnalyzer([broken, backup]).infer(crop)
        assert attrs["age"].value == 40.0
        assert attrs.complete

    def test_missing_and_invalid_outputs(self, crop):
        analyzer = CompositeAnalyzer([
            StaticModel("a", {"age": "old", "unknown_key": 1}, kinds=["age", "gender"]),
        ])
        attrs = analyzer.infer(crop)
        assert "invalid age output" in attrs.errors[AttributeKind.AGE]
        assert "no gender output" in attrs.errors[AttributeKind.GENDER]

    def test_unsupported_kind(self, crop):
        attrs = CompositeAnalyzer([StaticModel("a", {"age": 1})]).infer(crop, kinds=["age", "ethnicity"])
        assert attrs.errors[AttributeKind.ETHNICITY] == "no model produces this attribute"

    def test_empty_crop(self):
        analyzer = CompositeAnalyzer([StaticModel("a", {"age": 1})])
        with pytest.raises(InferenceError):
            analyzer.infer(np.zeros((0, 0, 3), np.uint8))

    def test_load_failure_is_configuration_error(self):
        analyzer = CompositeAnalyzer([StaticModel("a", {"age": 1}, fail_load=True)])
        with pytest.raises(ConfigurationError, match="weights missing"):
            analyzer.load()

    def test_requires_models(self):
        with pytest.raises(ValueError):
            CompositeAnalyzer([])


class TestBuildAnalyzer:
    def test_selects_models(self):
        analyzer = build_analyzer(["age", "emotion"])
        assert [type(m) for m in analyzer.models] == [AgeGenderModel, EmotionModel]
        assert analyzer.supported_kinds == frozenset(
            {AttributeKind.AGE, AttributeKind.GENDER, AttributeKind.EMOTION}
        )

    def test_all_kinds(self):
        analyzer = build_analyzer(list(AttributeKind))
        assert analyzer.supported_kinds == frozenset(AttributeKind)

    def test_rejects_unknown_and_empty(self):
        with pytest.raises(ConfigurationError):
            build_analyzer(["age", "mood"])
        with pytest.raises(ConfigurationError):
            build_analyzer([])
