"""违禁物品筛查模块：判定检测到的物体是否属于违禁词表"""

import math
from typing import Iterable, List, Mapping, Optional, Sequence

from config.settings import DEFAULT_PROHIBITED_ITEMS
from models.data_models import BoundingBox, DetectedObject


class ProhibitedItemMatcher:
    """不区分大小写的双向子串匹配"""

    def __init__(self, items: Optional[Iterable[str]] = None):
        vocabulary = DEFAULT_PROHIBITED_ITEMS if items is None else items
        self.items = tuple(item.strip().lower() for item in vocabulary if item and item.strip())

    def is_prohibited(self, label: str) -> bool:
        """标签包含词表项或被词表项包含即视为违禁，空标签不匹配"""
        normalized = (label or "").strip().lower()
        if not normalized:
            return False
        return any(item in normalized or normalized in item for item in self.items)

    def screen(self, detections: Sequence[Mapping]) -> List[DetectedObject]:
        """
        将检测器原始输出转换为 DetectedObject 列表，保持原有顺序。

        Args:
            detections: [{"label": str, "score": float, "box": {...}}, ...]

        Returns:
            List[DetectedObject]
        """
        objects = []
        for det in detections:
            label = str(det.get("label") or "")
            objects.append(DetectedObject(
                label=label,
                score=_score(det.get("score", 0.0)),
                box=_box(det.get("box")),
                prohibited=self.is_prohibited(label),
            ))
        return objects


def _score(value) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _box(box) -> Optional[BoundingBox]:
    if not isinstance(box, Mapping):
        return None
    try:
        return BoundingBox(
            xmin=float(box["xmin"]), ymin=float(box["ymin"]),
            xmax=float(box["xmax"]), ymax=float(box["ymax"]),
        )
    except (KeyError, TypeError, ValueError):
        return None
