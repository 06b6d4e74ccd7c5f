"""Tests for attribute types and AttributeSet."""

import numpy as np
import pytest

from facepath.attributes import (
    AgeEstimate,
    AttributeKind,
    AttributeSet,
    EmotionDistribution,
    EthnicityPrediction,
    GenderPrediction,
    HeadPose,
    Landmarks,
    coerce_value,
)


class TestAttributeKind:
    def test_parse_case_insensitive(self):
        assert AttributeKind.parse(" Age ") is AttributeKind.AGE
        assert AttributeKind.parse(AttributeKind.POSE) is AttributeKind.POSE

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="Unknown attribute kind"):
            AttributeKind.parse("hair_colour")


class TestCoercion:
    def test_age_point_and_range(self):
        assert coerce_value(AttributeKind.AGE, 34) == AgeEstimate(34.0)
        age = coerce_value(AttributeKind.AGE, (30, 40))
        assert age.value == 35.0
        assert (age.low, age.high) == (30.0, 40.0)

    def test_gender_label_has_no_confidence(self):
        gender = coerce_value(AttributeKind.GENDER, "female")
        assert gender == GenderPrediction("female")
        assert gender.confidence is None

    def test_emotion_distribution_sorted(self):
        emotion = coerce_value(AttributeKind.EMOTION, {"sad": 0.2, "happy": 0.7, "neutral": 0.1})
        assert isinstance(emotion, EmotionDistribution)
        assert emotion.dominant == "happy"
        assert emotion.confidence == pytest.approx(0.7)
        assert [label for label, _ in emotion.scores] == ["happy", "sad", "neutral"]

    def test_landmarks_from_array(self):
        lm = coerce_value(AttributeKind.LANDMARKS, np.array([[1, 2], [3, 4]]))
        assert isinstance(lm, Landmarks)
        assert len(lm) == 2
        assert lm.to_array().shape == (2, 2)

    def test_pose_from_triple(self):
        pose = coerce_value(AttributeKind.POSE, (10.0, -5.0, 2.0))
        assert pose == HeadPose(10.0, -5.0, 2.0)

    def test_ethnicity_from_scores(self):
        eth = coerce_value(AttributeKind.ETHNICITY, {"east_asian": 0.6, "other": 0.4})
        assert isinstance(eth, EthnicityPrediction)
        assert eth.label == "east_asian"
        assert eth.confidence == pytest.approx(0.6)

    def test_invalid_value(self):
        with pytest.raises(TypeError):
            coerce_value(AttributeKind.POSE, "sideways")


class TestHeadPose:
    def test_frontal(self):
        pose = HeadPose(5.0, 3.0, -2.0)
        assert pose.is_frontal()
        assert pose.direction() == "frontal"

    def test_direction(self):
        assert HeadPose(-45.0, 25.0, 0.0).direction() == "left and up"
        assert HeadPose(40.0, -30.0, 25.0).direction() == "right and down and clockwise"
        assert not HeadPose(40.0, 0.0, 0.0).is_frontal()


class TestAttributeSet:
    def test_mapping_access(self):
        attrs = AttributeSet({"age": 34, "gender": "female"})
        assert attrs["age"].value == 34.0
        assert attrs[AttributeKind.GENDER].label == "female"
        assert AttributeKind.EMOTION not in attrs
        assert "nonsense" not in attrs
        assert len(attrs) == 2
        assert attrs.complete

    def test_none_values_are_absent(self):
        attrs = AttributeSet({"age": None, "gender": "male"})
        assert AttributeKind.AGE not in attrs
        assert len(attrs) == 1

    def test_failed(self):
        attrs = AttributeSet.failed(["age", "emotion"], "model crashed")
        assert len(attrs) == 0
        assert attrs.errors == {AttributeKind.AGE: "model crashed", AttributeKind.EMOTION: "model crashed"}
        assert not attrs.complete

    def test_error_ignored_when_value_present(self):
        attrs = AttributeSet({"age": 20}, {"age": "ignored", "emotion": "boom"})
        assert AttributeKind.AGE not in attrs.errors
        assert attrs.errors[AttributeKind.EMOTION] == "boom"

    def test_select(self):
        attrs = AttributeSet({"age": 20, "gender": "male"}, {"emotion": "boom"})
        selected = attrs.select(["age", "emotion"])
        assert set(selected) == {AttributeKind.AGE}
        assert set(selected.errors) == {AttributeKind.EMOTION}

    def test_merge(self):
        cached = AttributeSet({"age": 20, "gender": "male"})
        extra = AttributeSet({"age": 55, "emotion": {"happy": 1.0}}, {"pose": "no model"})
        merged = cached.merge(extra)
        assert merged["age"].value == 20.0
        assert set(merged) == {AttributeKind.AGE, AttributeKind.GENDER, AttributeKind.EMOTION}
        assert merged.errors == {AttributeKind.POSE: "no model"}

    def test_merge_value_clears_error(self):
        merged = AttributeSet(errors={"emotion": "timeout"}).merge(AttributeSet({"emotion": {"sad": 1.0}}))
        assert AttributeKind.EMOTION in merged
        assert merged.complete

    def test_immutable(self):
        attrs = AttributeSet({"age": 20})
        with pytest.raises(TypeError):
            attrs["age"] = 30  # type: ignore[index]

    def test_equality_and_hash(self):
        a = AttributeSet({"age": 20, "pose": (1.0, 2.0, 3.0)})
        b = AttributeSet({"pose": HeadPose(1.0, 2.0, 3.0), "age": AgeEstimate(20.0)})
        assert a == b
        assert hash(a) == hash(b)

    def test_dict_round_trip(self):
        attrs = AttributeSet(
            {
                "age": (30, 40),
                "gender": GenderPrediction("female", 0.9),
                "emotion": {"happy": 0.8, "sad": 0.2},
                "landmarks": [[1.0, 2.0], [3.0, 4.0]],
                "pose": (1.0, 2.0, 3.0),
                "ethnicity": {"caucasian": 0.7, "other": 0.3},
            },
            {},
        )
        data = attrs.to_dict()
        assert data["gender"] == {"label": "female", "confidence": 0.9}
        assert AttributeSet.from_dict(data) == attrs

    def test_errors_serialized(self):
        attrs = AttributeSet({"age": 20}, {"emotion": "boom"})
        data = attrs.to_dict()
        assert data["_errors"] == {"emotion": "boom"}
        assert AttributeSet.from_dict(data).errors == {AttributeKind.EMOTION: "boom"}
