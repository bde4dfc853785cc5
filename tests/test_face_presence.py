"""人脸存在性构造单元测试"""

from detectors.face_presence import make_presence, presence_from_detections
from models.data_models import BoundingBox


class TestMakePresence:

    def test_single_face(self):
        sample = make_presence(1, 0.93)
        assert sample.present is True
        assert sample.multiple is False
        assert sample.confidence == 0.93

    def test_no_face_zeroes_confidence(self):
        sample = make_presence(0, 0.8)
        assert sample.present is False
        assert sample.confidence == 0.0

    def test_negative_count_treated_as_absent(self):
        assert make_presence(-2, 0.5).present is False

    def test_bad_count_treated_as_absent(self):
        assert make_presence(float("nan"), 0.5).present is False
        assert make_presence(float("inf"), 0.5).present is False

    def test_confidence_clamped(self):
        assert make_presence(1, 3.0).confidence == 1.0
        assert make_presence(1, -1.0).confidence == 0.0
        assert make_presence(1, float("nan")).confidence == 0.0

    def test_multiple_faces_drop_box(self):
        box = BoundingBox(0, 0, 10, 10)
        sample = make_presence(2, 0.9, box)
        assert sample.multiple is True
        assert sample.bounding_box is None


class TestPresenceFromDetections:

    def test_empty(self):
        assert presence_from_detections([]).face_count == 0

    def test_single_detection_keeps_box(self):
        sample = presence_from_detections([
            {"score": 0.91, "box": {"x": 10, "y": 20, "width": 100, "height": 120}},
        ])
        assert sample.face_count == 1
        assert sample.confidence == 0.91
        assert sample.bounding_box == BoundingBox(10.0, 20.0, 110.0, 140.0)

    def test_multiple_uses_first_score(self):
        sample = presence_from_detections([{"score": 0.7}, {"score": 0.95}])
        assert sample.face_count == 2
        assert sample.confidence == 0.7

    def test_malformed_box_ignored(self):
        sample = presence_from_detections([{"score": 0.8, "box": {"x": 1}}])
        assert sample.bounding_box is None
