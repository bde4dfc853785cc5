"""人脸存在性模块：将人脸检测器输出整理为 FacePresenceSample"""

import math
from typing import Mapping, Optional, Sequence

from models.data_models import BoundingBox, FacePresenceSample


def _confidence(value) -> float:
    """置信度截断到 [0, 1]，非法值视为 0"""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _box(detection: Mapping) -> Optional[BoundingBox]:
    box = detection.get("box")
    if not isinstance(box, Mapping):
        return None
    try:
        x, y = float(box["x"]), float(box["y"])
        return BoundingBox(xmin=x, ymin=y, xmax=x + float(box["width"]), ymax=y + float(box["height"]))
    except (KeyError, TypeError, ValueError):
        return None


def make_presence(face_count: int, confidence: float = 0.0,
                  bounding_box: Optional[BoundingBox] = None) -> FacePresenceSample:
    """构造 FacePresenceSample，负数人脸数按 0 处理"""
    try:
        face_count = max(0, int(face_count))
    except (TypeError, ValueError, OverflowError):
        face_count = 0
    if face_count == 0:
        return FacePresenceSample(face_count=0, confidence=0.0)
    return FacePresenceSample(
        face_count=face_count,
        confidence=_confidence(confidence),
        bounding_box=bounding_box if face_count == 1 else None,
    )


def presence_from_detections(detections: Sequence[Mapping]) -> FacePresenceSample:
    """
    汇总单帧人脸检测结果。

    Args:
        detections: [{"score": float, "box": {"x", "y", "width", "height"}}, ...]

    Returns:
        FacePresenceSample；多人脸时取第一个检测的置信度，不保留检测框
    """
    if not detections:
        return make_presence(0)
    first = detections[0]
    return make_presence(len(detections), first.get("score", 0.0), _box(first))
