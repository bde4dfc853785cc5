"""单帧视线分类模块，根据头部姿态角和眼睛开合度判断注意力焦点"""

import math
from typing import Optional

from config.settings import ClassifierConfig
from models.data_models import FocusCategory, PoseSample


def _clamp(value: float, limit: float) -> float:
    """截断到 [-limit, limit]，NaN 视为 0"""
    if math.isnan(value):
        return 0.0
    return max(-limit, min(limit, value))


class SignalClassifier:
    """无状态分类器：姿态角 + EAR → PoseSample"""

    def __init__(self, config: Optional[ClassifierConfig] = None):
        """初始化阈值，非法配置在此处报错"""
        self.config = (config or ClassifierConfig()).validate()

    def classify(self, pitch: float, yaw: float, roll: float, eye_openness: float) -> PoseSample:
        """
        分类单帧姿态。

        角度先截断到各自范围（pitch ±30, yaw ±45, roll ±20），
        截断属于角度定义的一部分，不视为错误。

        Args:
            pitch: 俯仰角（度）
            yaw: 偏航角（度）
            roll: 翻滚角（度）
            eye_openness: 眼睛开合度 (EAR)，负数或 NaN 视为 0

        Returns:
            PoseSample(pitch, yaw, roll, eye_openness, looking_at_screen, category)
        """
        cfg = self.config
        pitch = _clamp(float(pitch), cfg.pitch_limit)
        yaw = _clamp(float(yaw), cfg.yaw_limit)
        roll = _clamp(float(roll), cfg.roll_limit)

        eye_openness = float(eye_openness)
        if math.isnan(eye_openness) or eye_openness < 0.0:
            eye_openness = 0.0

        looking_at_screen = (
            abs(yaw) < cfg.screen_yaw
            and abs(pitch) < cfg.screen_pitch
            and eye_openness > cfg.min_eye_openness
        )

        # 按顺序匹配，先命中者生效
        if looking_at_screen and eye_openness > cfg.focused_eye_openness:
            category = FocusCategory.FOCUSED
        elif abs(yaw) > cfg.away_yaw or abs(pitch) > cfg.away_pitch:
            category = FocusCategory.AWAY
        else:
            category = FocusCategory.DISTRACTED

        return PoseSample(
            pitch=pitch, yaw=yaw, roll=roll,
            eye_openness=eye_openness,
            looking_at_screen=looking_at_screen,
            category=category,
        )

    @staticmethod
    def no_signal() -> PoseSample:
        """未检测到人脸时的哨兵样本"""
        return PoseSample(
            pitch=0.0, yaw=0.0, roll=0.0,
            eye_openness=0.0,
            looking_at_screen=False,
            category=FocusCategory.AWAY,
        )
