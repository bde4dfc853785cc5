"""注意力评分系统入口文件：回放逐帧感知信号记录并输出评分与违规日志"""

import argparse
import json
import logging
import math
import sys
from typing import Iterator, List, Optional

from config.settings import ConfigurationError, load_config
from detectors.face_presence import make_presence, presence_from_detections
from detectors.landmark_geometry import LandmarkPoseEstimator
from detectors.object_screen import ProhibitedItemMatcher
from detectors.signal_classifier import SignalClassifier
from evaluators.attention_engine import AttentionEngine
from models.data_models import POSE_ABSENT, AttentionScore, FacePresenceSample, Pose, PosePresent

logger = logging.getLogger(__name__)

# 未提供时间戳时按 30fps 推进
_FRAME_INTERVAL = 1.0 / 30.0

# head_points 未附带 frame_shape 时使用的图像尺寸 (h, w)
_DEFAULT_FRAME_SHAPE = (480, 640)


def _number(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def iter_frames(path: str) -> Iterator[dict]:
    """逐行读取 JSON Lines 记录，跳过空行和格式错误的行。"""
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                frame = json.loads(line)
            except json.JSONDecodeError:
                logger.warning("第 %d 行不是合法 JSON，已跳过", line_no)
                continue
            if not isinstance(frame, dict):
                logger.warning("第 %d 行不是 JSON 对象，已跳过", line_no)
                continue
            yield frame


class ReplaySession:
    """监考会话回放，协调分类器与融合引擎，使用记录中的时间戳驱动去重时钟。"""

    def __init__(self, config_path: Optional[str] = None):
        settings = load_config(config_path)

        self._now = 0.0
        self.classifier = SignalClassifier(settings.classifier)
        self.pose_estimator = LandmarkPoseEstimator(self.classifier)
        self.matcher = ProhibitedItemMatcher(settings.prohibited_items)
        self.engine = AttentionEngine(settings.engine, clock=lambda: self._now)
        self.scores: List[AttentionScore] = []

    def _pose(self, frame: dict) -> Pose:
        """优先使用 FaceMesh 关键点，其次是 solvePnP 六点，最后是已计算的姿态角。"""
        if "landmarks" in frame:
            return PosePresent(self.pose_estimator.estimate(frame["landmarks"]))

        if "head_points" in frame:
            return PosePresent(self.pose_estimator.estimate_pnp(
                frame["head_points"],
                frame.get("frame_shape") or _DEFAULT_FRAME_SHAPE,
                _number(frame.get("eye_openness")),
            ))

        pose = frame.get("pose")
        if not isinstance(pose, dict):
            return POSE_ABSENT
        return PosePresent(self.classifier.classify(
            _number(pose.get("pitch")),
            _number(pose.get("yaw")),
            _number(pose.get("roll")),
            _number(pose.get("eye_openness")),
        ))

    @staticmethod
    def _face(frame: dict) -> FacePresenceSample:
        if isinstance(frame.get("faces"), list):
            return presence_from_detections([d for d in frame["faces"] if isinstance(d, dict)])

        face = frame.get("face")
        if not isinstance(face, dict):
            return make_presence(0)
        return make_presence(_number(face.get("face_count")), _number(face.get("confidence")))

    def process_frame(self, frame: dict) -> AttentionScore:
        """处理单帧记录。"""
        if "t" in frame:
            t = _number(frame["t"], self._now)
            if math.isfinite(t):
                self._now = max(self._now, t)
        else:
            self._now += _FRAME_INTERVAL

        raw_objects = frame.get("objects")
        if not isinstance(raw_objects, list):
            raw_objects = []
        objects = self.matcher.screen([o for o in raw_objects if isinstance(o, dict)])

        score = self.engine.update(self._pose(frame), self._face(frame), objects)
        self.scores.append(score)
        return score

    def run(self, path: str, quiet: bool = False) -> List[AttentionScore]:
        """回放整个记录文件。"""
        for index, frame in enumerate(iter_frames(path)):
            score = self.process_frame(frame)
            if not quiet:
                print(f"帧 {index:5d}: 综合分 {score.overall:3d}  等级 {score.level.value}")
        return self.scores

    def report(self, limit: Optional[int] = None) -> dict:
        return {
            "scores": [s.to_dict() for s in self.scores],
            "violations": [v.to_dict() for v in self.engine.list_violations(limit)],
            "stats": self.engine.stats().to_dict(),
        }


def main(argv=None):
    parser = argparse.ArgumentParser(description="注意力评分与违规检测（记录回放）")
    parser.add_argument("frames", help="逐帧感知信号 JSON Lines 文件")
    parser.add_argument("--config", type=str, default=None, help="JSON 参数配置文件路径")
    parser.add_argument("--limit", type=int, default=None, help="最多输出的违规事件条数")
    parser.add_argument("--json", action="store_true", help="以 JSON 格式输出结果")
    parser.add_argument("--verbose", action="store_true", help="输出调试日志")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        session = ReplaySession(config_path=args.config)
    except ConfigurationError as e:
        print(f"配置错误: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        session.run(args.frames, quiet=args.json)
    except OSError as e:
        print(f"无法读取记录文件 {args.frames}: {e}", file=sys.stderr)
        sys.exit(1)

    report = session.report(args.limit)
    if args.json:
        print(json.dumps(report, ensure_ascii=False, indent=2))
        return

    print("\n违规记录（最新在前）:")
    for event in session.engine.list_violations(args.limit):
        print(f"  {event.to_dict()['timestamp']}  [{event.severity.value}] {event.kind.value}: {event.description}")
    stats = report["stats"]
    print(f"\n共 {stats['total']} 条违规  按类型: {stats['by_kind']}  按严重程度: {stats['by_severity']}")


if __name__ == "__main__":
    main()
