"""核心数据模型定义"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


class FocusCategory(str, Enum):
    """单帧视觉注意力焦点分类 (VFOA)"""
    FOCUSED = "focused"
    DISTRACTED = "distracted"
    AWAY = "away"


class ViolationKind(str, Enum):
    """违规事件类型"""
    GAZE_AWAY = "gaze_away"
    MULTIPLE_FACES = "multiple_faces"
    NO_FACE = "no_face"
    PROHIBITED_OBJECT = "prohibited_object"
    PROLONGED_DISTRACTION = "prolonged_distraction"


class Severity(str, Enum):
    """违规严重程度"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AttentionLevel(str, Enum):
    """综合注意力等级"""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"


@dataclass(frozen=True)
class BoundingBox:
    """检测框，坐标单位与上游检测器一致"""
    xmin: float
    ymin: float
    xmax: float
    ymax: float

    def to_dict(self) -> dict:
        return {"xmin": self.xmin, "ymin": self.ymin, "xmax": self.xmax, "ymax": self.ymax}


@dataclass(frozen=True)
class PoseSample:
    """头部姿态与视线分类结果（单帧）"""
    pitch: float
    yaw: float
    roll: float
    eye_openness: float
    looking_at_screen: bool
    category: FocusCategory


@dataclass(frozen=True)
class PosePresent:
    """本帧存在姿态信号"""
    sample: PoseSample


@dataclass(frozen=True)
class PoseAbsent:
    """本帧没有姿态信号"""


POSE_ABSENT = PoseAbsent()

Pose = Union[PosePresent, PoseAbsent]


def as_pose(value: Union[Pose, PoseSample, None]) -> Pose:
    """将 PoseSample / None 规范化为 Pose 变体"""
    if isinstance(value, (PosePresent, PoseAbsent)):
        return value
    if isinstance(value, PoseSample):
        return PosePresent(value)
    return POSE_ABSENT


@dataclass(frozen=True)
class FacePresenceSample:
    """人脸存在性检测结果（单帧）"""
    face_count: int
    confidence: float
    bounding_box: Optional[BoundingBox] = None

    @property
    def present(self) -> bool:
        return self.face_count > 0

    @property
    def multiple(self) -> bool:
        return self.face_count > 1


@dataclass(frozen=True)
class DetectedObject:
    """物体检测结果"""
    label: str
    score: float
    box: Optional[BoundingBox]
    prohibited: bool


@dataclass(frozen=True)
class ViolationEvent:
    """违规事件，创建后不可变"""
    id: str
    timestamp: float
    kind: ViolationKind
    severity: Severity
    description: str
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            "kind": self.kind.value,
            "severity": self.severity.value,
            "description": self.description,
            "metadata": dict(self.metadata) if self.metadata else None,
        }


@dataclass(frozen=True)
class AttentionScore:
    """单帧综合注意力评分"""
    overall: int
    gaze: int
    head_pose: int
    face_presence: int
    objects: int
    level: AttentionLevel

    def to_dict(self) -> dict:
        return {
            "overall": self.overall,
            "gaze": self.gaze,
            "head_pose": self.head_pose,
            "face_presence": self.face_presence,
            "objects": self.objects,
            "level": self.level.value,
        }


@dataclass
class ViolationStats:
    """违规日志统计"""
    total: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    by_severity: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "by_kind": dict(self.by_kind),
            "by_severity": dict(self.by_severity),
        }
