"""违规事件日志：只追加，按类型和时间窗口去重"""

import itertools
import logging
import math
import time
from collections import Counter
from typing import Any, Callable, Dict, Iterator, List, Optional

from config.settings import ConfigurationError
from models.data_models import Severity, ViolationEvent, ViolationKind, ViolationStats

logger = logging.getLogger(__name__)


class ViolationLog:
    """保存违规事件；最近 lookback 条内存在同类型且在时间窗口内的事件时，新事件被丢弃。"""

    def __init__(
        self,
        dedup_window_ms: float = 2000.0,
        lookback: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            dedup_window_ms: 去重时间窗口（毫秒）
            lookback: 去重时检查的最近事件条数
            clock: 返回当前时间（秒）的函数

        Raises:
            ConfigurationError: lookback 小于 1 或时间窗口为负数时抛出
        """
        if isinstance(lookback, bool) or not isinstance(lookback, int) or lookback < 1:
            raise ConfigurationError(f"lookback 必须为正整数: {lookback!r}")
        if not dedup_window_ms >= 0:
            raise ConfigurationError(f"dedup_window_ms 不能为负数: {dedup_window_ms!r}")
        self.dedup_window_ms = dedup_window_ms
        self.lookback = lookback
        self._clock = clock
        self._events: List[ViolationEvent] = []
        self._seq = itertools.count(1)

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ViolationEvent]:
        return iter(self._events)

    def record(
        self,
        kind: ViolationKind,
        severity: Severity,
        description: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ViolationEvent]:
        """
        记录一条违规事件。

        Returns:
            新建的 ViolationEvent；被去重抑制时返回 None
        """
        now = self._clock()

        for previous in self._events[-self.lookback:]:
            if previous.kind == kind and (now - previous.timestamp) * 1000.0 < self.dedup_window_ms:
                logger.debug("抑制重复违规: %s", kind.value)
                return None

        event = ViolationEvent(
            id=f"{kind.value}_{int(now * 1000) if math.isfinite(now) else 0}_{next(self._seq)}",
            timestamp=now,
            kind=kind,
            severity=severity,
            description=description,
            metadata=metadata,
        )
        self._events.append(event)
        logger.warning("违规记录: [%s] %s", severity.value, description)
        return event

    def recent(self, limit: Optional[int] = None) -> List[ViolationEvent]:
        """按时间倒序返回事件，limit 为 None 时返回全部"""
        # 时间戳相同时后追加的排在前面
        ordered = sorted(reversed(self._events), key=lambda e: e.timestamp, reverse=True)
        if limit is None:
            return ordered
        return ordered[:max(0, limit)]

    def stats(self) -> ViolationStats:
        by_kind = Counter(e.kind.value for e in self._events)
        by_severity = Counter(e.severity.value for e in self._events)
        return ViolationStats(
            total=len(self._events),
            by_kind=dict(by_kind),
            by_severity=dict(by_severity),
        )

    def clear(self):
        self._events = []
