"""AttentionEngine 单元测试"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from config.settings import ConfigurationError, EngineConfig
from evaluators.attention_engine import AttentionEngine
from models.data_models import (
    POSE_ABSENT,
    AttentionLevel,
    AttentionScore,
    DetectedObject,
    FacePresenceSample,
    FocusCategory,
    PosePresent,
    PoseSample,
    ViolationKind,
)

FRAME_MS = 33.0


def _sample(category=FocusCategory.FOCUSED, pitch=0.0, yaw=0.0, roll=0.0):
    return PoseSample(
        pitch=pitch, yaw=yaw, roll=roll,
        eye_openness=0.3 if category == FocusCategory.FOCUSED else 0.1,
        looking_at_screen=category == FocusCategory.FOCUSED,
        category=category,
    )


def _pose(category=FocusCategory.FOCUSED, **angles):
    return PosePresent(_sample(category, **angles))


def _face(count=1, confidence=1.0):
    return FacePresenceSample(face_count=count, confidence=confidence)


def _obj(label="cell phone", prohibited=True, score=0.9):
    return DetectedObject(label=label, score=score, box=None, prohibited=prohibited)


def _kinds(engine):
    return [v.kind for v in engine.list_violations()]


@pytest.fixture
def engine(clock):
    return AttentionEngine(clock=clock)


class TestEndToEnd:

    def test_all_focused_is_excellent(self, engine, clock):
        for _ in range(10):
            score = engine.update(_pose(), _face(), [])
            clock.advance_ms(FRAME_MS)
        assert isinstance(score, AttentionScore)
        assert score.overall == 100
        assert score.level == AttentionLevel.EXCELLENT
        assert engine.list_violations() == []

    def test_nothing_detected(self, engine):
        score = engine.update(POSE_ABSENT, _face(count=0, confidence=0.0), [])
        assert score.gaze == 0
        assert score.head_pose == 0
        assert score.face_presence == 0
        assert score.objects == 100
        assert score.overall == 15
        assert score.level == AttentionLevel.CRITICAL
        assert _kinds(engine) == [ViolationKind.NO_FACE]

    def test_accepts_plain_sample_and_none(self, engine):
        assert engine.update(_sample(), _face()).overall == 100
        assert engine.update(None, _face()).gaze == 0


class TestHistory:

    def test_pose_absent_leaves_history_untouched(self, engine):
        engine.update(_pose(FocusCategory.AWAY), _face())
        engine.update(POSE_ABSENT, _face())
        assert engine.history == (FocusCategory.AWAY,)
        assert engine.distraction_streak == 1

    @given(st.lists(st.sampled_from(list(FocusCategory)), max_size=120))
    def test_history_never_exceeds_capacity(self, categories):
        engine = AttentionEngine(clock=lambda: 0.0)
        for category in categories:
            engine.update(_pose(category), _face())
            assert len(engine.history) <= 30
        assert list(engine.history) == categories[-30:]


class TestGazeScore:

    def test_first_frame_uses_own_category(self, engine):
        assert engine.update(_pose(FocusCategory.DISTRACTED), _face()).gaze == 50

    def test_mixed_window(self, engine):
        for _ in range(5):
            engine.update(_pose(FocusCategory.FOCUSED), _face())
        for _ in range(5):
            score = engine.update(_pose(FocusCategory.DISTRACTED), _face())
        assert score.gaze == 75

    def test_only_last_ten_frames_count(self, engine):
        for _ in range(20):
            engine.update(_pose(FocusCategory.AWAY), _face())
        for _ in range(10):
            score = engine.update(_pose(FocusCategory.FOCUSED), _face())
        assert score.gaze == 100

    def test_rounds_half_up(self, engine):
        engine.update(_pose(FocusCategory.AWAY), _face())
        engine.update(_pose(FocusCategory.AWAY), _face())
        engine.update(_pose(FocusCategory.AWAY), _face())
        # (0 + 0 + 0 + 50) / 4 = 12.5
        assert engine.update(_pose(FocusCategory.DISTRACTED), _face()).gaze == 13

    def test_empty_window_is_neutral(self, engine):
        assert engine._gaze_score(_sample()) == 50

    def test_absent_pose_scores_zero(self, engine):
        engine.update(_pose(), _face())
        assert engine.update(POSE_ABSENT, _face()).gaze == 0


class TestHeadPoseScore:

    def test_neutral_pose(self, engine):
        assert engine.update(_pose(), _face()).head_pose == 100

    def test_yaw_penalty(self, engine):
        # yaw 50, pitch 100, roll 100
        assert engine.update(_pose(yaw=20.0), _face()).head_pose == 83

    def test_extreme_pose_floors_at_zero(self, engine):
        score = engine.update(_pose(FocusCategory.AWAY, pitch=30.0, yaw=45.0, roll=20.0), _face())
        # pitch 100 - 99.9 = 0.1
        assert score.head_pose == 0

    def test_nan_angles_are_neutral(self, engine):
        score = engine.update(_pose(pitch=float("nan")), _face())
        assert score.head_pose == 100


class TestFacePresenceScore:

    def test_confidence_scaled(self, engine):
        assert engine.update(_pose(), _face(confidence=0.87)).face_presence == 87

    def test_no_face(self, engine):
        score = engine.update(_pose(), _face(count=0))
        assert score.face_presence == 0
        assert _kinds(engine) == [ViolationKind.NO_FACE]
        assert engine.list_violations()[0].severity.value == "high"

    def test_multiple_faces(self, engine):
        score = engine.update(_pose(), _face(count=2, confidence=0.99))
        assert score.face_presence == 30
        event = engine.list_violations()[0]
        assert event.kind == ViolationKind.MULTIPLE_FACES
        assert event.metadata == {"face_count": 2}
        assert event.description == "2 faces detected (expected 1)"

    def test_out_of_range_confidence_clamped(self, engine):
        assert engine.update(_pose(), _face(confidence=1.7)).face_presence == 100
        assert engine.update(_pose(), _face(confidence=float("nan"))).face_presence == 0


class TestObjectScore:

    @pytest.mark.parametrize("k,expected", [(0, 100), (1, 70), (2, 40), (3, 10), (4, 0), (6, 0)])
    def test_penalty_per_prohibited_object(self, engine, k, expected):
        objects = [_obj() for _ in range(k)] + [_obj("person", prohibited=False)]
        assert engine.update(_pose(), _face(), objects).objects == expected

    def test_allowed_objects_do_not_penalize(self, engine):
        score = engine.update(_pose(), _face(), [_obj("person", prohibited=False), _obj("cup", prohibited=False)])
        assert score.objects == 100
        assert engine.list_violations() == []

    def test_prohibited_object_violation(self, engine):
        engine.update(_pose(), _face(), [_obj("cell phone", score=0.8)])
        event = engine.list_violations()[0]
        assert event.kind == ViolationKind.PROHIBITED_OBJECT
        assert event.metadata == {"object": "cell phone", "confidence": 0.8}

    def test_same_frame_objects_collapse_to_one_event(self, engine):
        engine.update(_pose(), _face(), [_obj("cell phone"), _obj("book")])
        assert _kinds(engine) == [ViolationKind.PROHIBITED_OBJECT]

    @given(st.integers(min_value=0, max_value=12))
    def test_objects_score_formula(self, k):
        engine = AttentionEngine(clock=lambda: 0.0)
        score = engine.update(_pose(), _face(), [_obj() for _ in range(k)])
        assert score.objects == max(0, 100 - 30 * k)


class TestLevel:

    @pytest.mark.parametrize("overall,level", [
        (100, AttentionLevel.EXCELLENT),
        (90, AttentionLevel.EXCELLENT),
        (89, AttentionLevel.GOOD),
        (75, AttentionLevel.GOOD),
        (74, AttentionLevel.FAIR),
        (60, AttentionLevel.FAIR),
        (59, AttentionLevel.POOR),
        (40, AttentionLevel.POOR),
        (39, AttentionLevel.CRITICAL),
        (0, AttentionLevel.CRITICAL),
    ])
    def test_band_boundaries(self, engine, overall, level):
        assert engine.determine_level(overall) == level

    @given(
        st.lists(
            st.tuples(
                st.one_of(st.none(), st.sampled_from(list(FocusCategory))),
                st.integers(min_value=-1, max_value=4),
                st.floats(allow_nan=True, allow_infinity=False),
                st.integers(min_value=0, max_value=5),
            ),
            min_size=1,
            max_size=40,
        )
    )
    def test_overall_always_in_range(self, frames):
        engine = AttentionEngine(clock=lambda: 0.0)
        for category, count, confidence, k in frames:
            pose = POSE_ABSENT if category is None else _pose(category, yaw=12.0)
            score = engine.update(pose, _face(count, confidence), [_obj() for _ in range(k)])
            assert isinstance(score.overall, int)
            assert 0 <= score.overall <= 100
            for part in (score.gaze, score.head_pose, score.face_presence, score.objects):
                assert 0 <= part <= 100


class TestProlongedDistraction:

    def _run(self, engine, clock, category, frames):
        for _ in range(frames):
            engine.update(_pose(category), _face())
            clock.advance_ms(FRAME_MS)

    def test_below_threshold_no_violation(self, engine, clock):
        self._run(engine, clock, FocusCategory.DISTRACTED, 9)
        assert engine.distraction_streak == 9
        assert engine.list_violations() == []

    def test_threshold_raises_once(self, engine, clock):
        self._run(engine, clock, FocusCategory.AWAY, 10)
        events = engine.list_violations()
        assert [e.kind for e in events] == [ViolationKind.PROLONGED_DISTRACTION]
        assert events[0].severity.value == "medium"
        assert events[0].metadata == {"focus_state": "away", "duration": 10}

    def test_sustained_distraction_deduplicated_within_window(self, engine, clock):
        # 10 + 50 帧 ≈ 1.98 秒
        self._run(engine, clock, FocusCategory.DISTRACTED, 60)
        assert engine.stats().by_kind == {"prolonged_distraction": 1}
        assert engine.distraction_streak == 60

    def test_sustained_distraction_repeats_after_window(self, engine, clock):
        self._run(engine, clock, FocusCategory.DISTRACTED, 75)
        events = engine.list_violations()
        assert len(events) == 2
        assert events[0].metadata["duration"] > events[1].metadata["duration"]

    def test_focused_frame_resets_streak(self, engine, clock):
        self._run(engine, clock, FocusCategory.DISTRACTED, 9)
        self._run(engine, clock, FocusCategory.FOCUSED, 1)
        assert engine.distraction_streak == 0
        self._run(engine, clock, FocusCategory.DISTRACTED, 9)
        assert engine.list_violations() == []


class TestDedup:

    def test_identical_condition_twice_logged_once(self, engine, clock):
        engine.update(_pose(), _face(count=0))
        clock.advance_ms(500)
        engine.update(_pose(), _face(count=0))
        assert len(engine.list_violations()) == 1

        clock.advance_ms(1600)
        engine.update(_pose(), _face(count=0))
        assert len(engine.list_violations()) == 2

    def test_different_kinds_not_suppressed(self, engine):
        engine.update(_pose(), _face(count=0), [_obj()])
        engine.update(_pose(), _face(count=3))
        assert sorted(k.value for k in _kinds(engine)) == ["multiple_faces", "no_face", "prohibited_object"]


class TestQueries:

    def test_newest_first_and_limit(self, engine, clock):
        engine.update(_pose(), _face(count=0))
        clock.advance_ms(100)
        engine.update(_pose(), _face(count=2))
        clock.advance_ms(100)
        engine.update(_pose(), _face(), [_obj()])

        assert _kinds(engine) == [
            ViolationKind.PROHIBITED_OBJECT,
            ViolationKind.MULTIPLE_FACES,
            ViolationKind.NO_FACE,
        ]
        assert [v.kind for v in engine.list_violations(2)] == [
            ViolationKind.PROHIBITED_OBJECT,
            ViolationKind.MULTIPLE_FACES,
        ]

    def test_stats(self, engine, clock):
        engine.update(_pose(), _face(count=0))
        clock.advance_ms(100)
        engine.update(_pose(), _face(count=2), [_obj()])
        stats = engine.stats()
        assert stats.total == 3
        assert stats.by_kind == {"no_face": 1, "multiple_faces": 1, "prohibited_object": 1}
        assert stats.by_severity == {"high": 3}

    def test_clear_resets_everything(self, engine, clock):
        for _ in range(12):
            engine.update(_pose(FocusCategory.AWAY), _face(count=0))
        engine.clear()
        assert engine.history == ()
        assert engine.distraction_streak == 0
        assert engine.list_violations() == []
        assert engine.stats().total == 0

        # 清空后同类事件可立即重新记录
        engine.update(_pose(), _face(count=0))
        assert _kinds(engine) == [ViolationKind.NO_FACE]

    def test_engines_are_independent(self, clock):
        first = AttentionEngine(clock=clock)
        second = AttentionEngine(clock=clock)
        first.update(_pose(FocusCategory.AWAY), _face(count=0))
        assert second.history == ()
        assert second.list_violations() == []

    def test_violation_ids_unique(self, engine, clock):
        for _ in range(5):
            engine.update(_pose(), _face(count=0))
            clock.advance_ms(2500)
        ids = [v.id for v in engine.list_violations()]
        assert len(set(ids)) == len(ids) == 5


class TestConfiguration:

    @pytest.mark.parametrize("kwargs", [
        {"history_size": 0},
        {"history_size": -5},
        {"gaze_window": 40},
        {"distraction_threshold": 0},
        {"dedup_lookback": 0},
        {"dedup_window_ms": -1},
        {"gaze_weight": 0.5},
        {"objects_weight": -0.15, "gaze_weight": 0.65},
        {"good_cutoff": 95},
        {"poor_cutoff": 60},
    ])
    def test_invalid_config_rejected(self, kwargs):
        with pytest.raises(ConfigurationError):
            AttentionEngine(EngineConfig(**kwargs))

    def test_custom_threshold(self, clock):
        engine = AttentionEngine(EngineConfig(distraction_threshold=3), clock=clock)
        for _ in range(3):
            engine.update(_pose(FocusCategory.DISTRACTED), _face())
        assert _kinds(engine) == [ViolationKind.PROLONGED_DISTRACTION]
