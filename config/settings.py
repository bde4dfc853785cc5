"""阈值与权重配置，支持从 JSON 文件加载"""

import json
import logging
import math
from dataclasses import dataclass, field, fields, replace
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

# 考试场景下的违禁物品词表
DEFAULT_PROHIBITED_ITEMS: Tuple[str, ...] = (
    "cell phone",
    "mobile phone",
    "book",
    "laptop",
    "notebook",
    "paper",
    "keyboard",
    "mouse",
    "tablet",
    "remote",
)


class ConfigurationError(ValueError):
    """配置参数非法"""


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


@dataclass(frozen=True)
class ClassifierConfig:
    """单帧视线分类阈值（角度单位：度）"""
    screen_yaw: float = 20.0
    screen_pitch: float = 15.0
    away_yaw: float = 35.0
    away_pitch: float = 25.0
    min_eye_openness: float = 0.15
    focused_eye_openness: float = 0.20
    pitch_limit: float = 30.0
    yaw_limit: float = 45.0
    roll_limit: float = 20.0

    def validate(self) -> "ClassifierConfig":
        for f in fields(self):
            value = getattr(self, f.name)
            if not _is_number(value):
                raise ConfigurationError(f"{f.name} 必须为有限数值: {value!r}")
        for name in ("pitch_limit", "yaw_limit", "roll_limit", "screen_yaw", "screen_pitch"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} 必须大于 0: {getattr(self, name)}")
        if self.min_eye_openness < 0 or self.focused_eye_openness < 0:
            raise ConfigurationError("眼睛开合度阈值不能为负数")
        return self


@dataclass(frozen=True)
class EngineConfig:
    """融合评分与违规检测参数"""
    history_size: int = 30
    gaze_window: int = 10
    distraction_threshold: int = 10
    dedup_window_ms: float = 2000.0
    dedup_lookback: int = 5
    gaze_weight: float = 0.35
    head_pose_weight: float = 0.25
    face_presence_weight: float = 0.25
    objects_weight: float = 0.15
    excellent_cutoff: int = 90
    good_cutoff: int = 75
    fair_cutoff: int = 60
    poor_cutoff: int = 40
    multiple_faces_score: int = 30
    prohibited_penalty: int = 30

    @property
    def weights(self) -> Tuple[float, float, float, float]:
        return (self.gaze_weight, self.head_pose_weight, self.face_presence_weight, self.objects_weight)

    def validate(self) -> "EngineConfig":
        for f in fields(self):
            if not _is_number(getattr(self, f.name)):
                raise ConfigurationError(f"{f.name} 必须为有限数值: {getattr(self, f.name)!r}")
        for name in ("history_size", "gaze_window", "distraction_threshold", "dedup_lookback"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} 必须为正整数: {value!r}")
        if self.gaze_window > self.history_size:
            raise ConfigurationError(
                f"gaze_window ({self.gaze_window}) 不能大于 history_size ({self.history_size})"
            )
        if self.dedup_window_ms < 0:
            raise ConfigurationError(f"dedup_window_ms 不能为负数: {self.dedup_window_ms}")
        if any(w < 0 for w in self.weights):
            raise ConfigurationError(f"权重不能为负数: {self.weights}")
        if abs(sum(self.weights) - 1.0) > 1e-6:
            raise ConfigurationError(f"权重之和必须为 1: {sum(self.weights)}")
        cutoffs = (self.excellent_cutoff, self.good_cutoff, self.fair_cutoff, self.poor_cutoff)
        if any(c < 0 or c > 100 for c in cutoffs) or list(cutoffs) != sorted(cutoffs, reverse=True):
            raise ConfigurationError(f"等级分界必须位于 [0,100] 且递减: {cutoffs}")
        if len(set(cutoffs)) != len(cutoffs):
            raise ConfigurationError(f"等级分界不能重复: {cutoffs}")
        if not 0 <= self.multiple_faces_score <= 100:
            raise ConfigurationError(f"multiple_faces_score 必须位于 [0,100]: {self.multiple_faces_score}")
        if self.prohibited_penalty < 0:
            raise ConfigurationError(f"prohibited_penalty 不能为负数: {self.prohibited_penalty}")
        return self


@dataclass(frozen=True)
class Settings:
    """完整配置"""
    engine: EngineConfig = field(default_factory=EngineConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    prohibited_items: Tuple[str, ...] = DEFAULT_PROHIBITED_ITEMS


def _merge(base, data: Optional[dict]):
    """用 data 中的非空已知字段覆盖 base，未知字段忽略。"""
    if not isinstance(data, dict):
        return base
    known = {f.name for f in fields(base)}
    overrides = {
        key: value for key, value in data.items()
        if key in known and value is not None
    }
    return replace(base, **overrides)


def load_config(config_path: Optional[str] = None) -> Settings:
    """
    从 JSON 配置文件加载参数，缺失字段使用默认值。

    文件结构:
        {"engine": {...}, "classifier": {...}, "prohibited_items": [...]}

    Args:
        config_path: JSON 文件路径，None 时返回默认配置

    Returns:
        Settings

    Raises:
        ConfigurationError: 字段值非法时抛出
    """
    settings = Settings()

    if config_path is None:
        return settings

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        logger.warning("配置文件不存在 %s，使用默认参数", config_path)
        return settings
    except json.JSONDecodeError:
        logger.warning("配置文件格式错误 %s，使用默认参数", config_path)
        return settings

    if not isinstance(data, dict):
        logger.warning("配置文件顶层必须为对象 %s，使用默认参数", config_path)
        return settings

    engine = _merge(settings.engine, data.get("engine"))
    classifier = _merge(settings.classifier, data.get("classifier"))

    items = data.get("prohibited_items")
    if isinstance(items, list):
        prohibited_items = tuple(str(item) for item in items)
    else:
        prohibited_items = settings.prohibited_items

    return Settings(
        engine=engine.validate(),
        classifier=classifier.validate(),
        prohibited_items=prohibited_items,
    )
