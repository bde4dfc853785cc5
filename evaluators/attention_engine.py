"""注意力融合与违规检测模块，将逐帧信号汇总为综合评分和违规事件流"""

import logging
import math
import time
from collections import deque
from typing import Callable, List, Optional, Sequence, Tuple, Union

from config.settings import EngineConfig
from evaluators.violation_log import ViolationLog
from models.data_models import (
    AttentionLevel,
    AttentionScore,
    DetectedObject,
    FacePresenceSample,
    FocusCategory,
    Pose,
    PosePresent,
    PoseSample,
    Severity,
    ViolationEvent,
    ViolationKind,
    ViolationStats,
    as_pose,
)

logger = logging.getLogger(__name__)

# 无历史记录时的中性视线分
_NEUTRAL_GAZE = 50


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _finite(value: float) -> float:
    """NaN / 非数值按 0 处理"""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(value) else value


class AttentionEngine:
    """
    维护视线历史、连续分心计数和违规日志，逐帧输出 AttentionScore。

    每个监考会话持有独立实例；update() 非线程安全，须由调用方逐帧串行调用。
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            config: 引擎参数，非法时抛出 ConfigurationError
            clock: 返回当前时间（秒）的函数，用于违规去重
        """
        self.config = (config or EngineConfig()).validate()
        self._history = deque(maxlen=self.config.history_size)
        self._streak = 0
        self._log = ViolationLog(
            dedup_window_ms=self.config.dedup_window_ms,
            lookback=self.config.dedup_lookback,
            clock=clock,
        )

    @property
    def history(self) -> Tuple[FocusCategory, ...]:
        return tuple(self._history)

    @property
    def distraction_streak(self) -> int:
        return self._streak

    def update(
        self,
        pose: Union[Pose, PoseSample, None],
        face: FacePresenceSample,
        objects: Sequence[DetectedObject] = (),
    ) -> AttentionScore:
        """
        处理一帧信号。

        Args:
            pose: PosePresent / POSE_ABSENT（也接受 PoseSample 或 None）
            face: 人脸存在性结果
            objects: 物体检测结果，可为空

        Returns:
            AttentionScore
        """
        pose = as_pose(pose)
        sample = pose.sample if isinstance(pose, PosePresent) else None

        if sample is not None:
            self._track_focus(sample.category)

        gaze = self._gaze_score(sample)
        head_pose = self._head_pose_score(sample)
        face_presence = self._face_presence_score(face)
        objects_score = self._object_score(objects if objects is not None else ())

        cfg = self.config
        overall = _round_half_up(
            gaze * cfg.gaze_weight
            + head_pose * cfg.head_pose_weight
            + face_presence * cfg.face_presence_weight
            + objects_score * cfg.objects_weight
        )
        overall = max(0, min(100, overall))

        return AttentionScore(
            overall=overall,
            gaze=gaze,
            head_pose=head_pose,
            face_presence=face_presence,
            objects=objects_score,
            level=self.determine_level(overall),
        )

    def _track_focus(self, category: FocusCategory):
        """更新历史和连续分心计数；达到阈值后持续上报，由去重窗口限流"""
        self._history.append(category)

        if category == FocusCategory.FOCUSED:
            self._streak = 0
            return

        self._streak += 1
        if self._streak >= self.config.distraction_threshold:
            self._log.record(
                ViolationKind.PROLONGED_DISTRACTION,
                Severity.MEDIUM,
                f"Student distracted for {self._streak} frames",
                {"focus_state": category.value, "duration": self._streak},
            )

    def _gaze_score(self, sample: Optional[PoseSample]) -> int:
        if sample is None:
            return 0

        window = list(self._history)[-self.config.gaze_window:]
        if not window:
            return _NEUTRAL_GAZE

        focused = sum(1 for c in window if c == FocusCategory.FOCUSED)
        distracted = sum(1 for c in window if c == FocusCategory.DISTRACTED)
        return _round_half_up((focused * 100 + distracted * 50) / len(window))

    @staticmethod
    def _head_pose_score(sample: Optional[PoseSample]) -> int:
        if sample is None:
            return 0

        yaw_score = max(0.0, 100 - abs(_finite(sample.yaw)) * 2.5)       # ±40° 归零
        pitch_score = max(0.0, 100 - abs(_finite(sample.pitch)) * 3.33)  # ±30° 归零
        roll_score = max(0.0, 100 - abs(_finite(sample.roll)) * 5)       # ±20° 归零
        return _round_half_up((yaw_score + pitch_score + roll_score) / 3)

    def _face_presence_score(self, face: FacePresenceSample) -> int:
        if not face.present:
            self._log.record(ViolationKind.NO_FACE, Severity.HIGH, "No face detected in frame")
            return 0

        if face.multiple:
            self._log.record(
                ViolationKind.MULTIPLE_FACES,
                Severity.HIGH,
                f"{face.face_count} faces detected (expected 1)",
                {"face_count": face.face_count},
            )
            return _round_half_up(self.config.multiple_faces_score)

        confidence = max(0.0, min(1.0, _finite(face.confidence)))
        return _round_half_up(confidence * 100)

    def _object_score(self, objects: Sequence[DetectedObject]) -> int:
        prohibited = [obj for obj in objects if obj.prohibited]
        if not prohibited:
            return 100

        for obj in prohibited:
            self._log.record(
                ViolationKind.PROHIBITED_OBJECT,
                Severity.HIGH,
                f"Prohibited object detected: {obj.label}",
                {"object": obj.label, "confidence": obj.score},
            )
        return max(0, _round_half_up(100 - len(prohibited) * self.config.prohibited_penalty))

    def determine_level(self, overall: int) -> AttentionLevel:
        """分界值包含在较高等级内"""
        cfg = self.config
        if overall >= cfg.excellent_cutoff:
            return AttentionLevel.EXCELLENT
        if overall >= cfg.good_cutoff:
            return AttentionLevel.GOOD
        if overall >= cfg.fair_cutoff:
            return AttentionLevel.FAIR
        if overall >= cfg.poor_cutoff:
            return AttentionLevel.POOR
        return AttentionLevel.CRITICAL

    def list_violations(self, limit: Optional[int] = None) -> List[ViolationEvent]:
        """按时间倒序返回违规事件"""
        return self._log.recent(limit)

    def stats(self) -> ViolationStats:
        return self._log.stats()

    def clear(self):
        """重置历史、计数器和违规日志（新会话开始时调用）"""
        self._history.clear()
        self._streak = 0
        self._log.clear()
        logger.info("会话状态已重置")
