"""人脸关键点几何模块：由 FaceMesh 关键点计算头部姿态角和眼睛开合度"""

import math
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from detectors.signal_classifier import SignalClassifier
from models.data_models import PoseSample

# FaceMesh 关键点索引
NOSE_TIP = 1
CHIN = 152
LEFT_EYE_CORNER = 33
RIGHT_EYE_CORNER = 263

# (上, 下, 外眼角, 内眼角)
LEFT_EYE_INDICES = (159, 145, 33, 133)
RIGHT_EYE_INDICES = (386, 374, 362, 263)

_REQUIRED_LANDMARKS = max(RIGHT_EYE_INDICES + LEFT_EYE_INDICES + (NOSE_TIP, CHIN)) + 1

# atan2 的深度近似（归一化坐标）
_DEPTH = 0.1

# 3D 人脸模型点，相机坐标系：x 向右，y 向下，z 远离相机
_MODEL_POINTS = np.array([
    (0.0, 0.0, 0.0),          # 鼻尖
    (0.0, 330.0, 65.0),       # 下巴
    (-225.0, -170.0, 135.0),  # 左眼角
    (225.0, -170.0, 135.0),   # 右眼角
    (-150.0, 150.0, 125.0),   # 左嘴角
    (150.0, 150.0, 125.0),    # 右嘴角
], dtype=np.float64)


def _to_array(landmarks) -> Optional[np.ndarray]:
    """转换为 (N, 2) 数组；不是点列表、坐标不足两维或非数值时返回 None"""
    if not isinstance(landmarks, (list, tuple, np.ndarray)) or len(landmarks) < _REQUIRED_LANDMARKS:
        return None
    try:
        points = np.asarray([(p[0], p[1]) for p in landmarks], dtype=np.float64)
    except (TypeError, ValueError, IndexError, KeyError):
        return None
    if not np.all(np.isfinite(points)):
        return None
    return points


def head_angles(points: np.ndarray) -> Tuple[float, float, float]:
    """
    由鼻尖与双眼角计算 (pitch, yaw, roll)，单位为度，未截断。

    Args:
        points: (N, 2) 归一化关键点坐标

    Returns:
        (pitch, yaw, roll)
    """
    nose = points[NOSE_TIP]
    left_eye = points[LEFT_EYE_CORNER]
    right_eye = points[RIGHT_EYE_CORNER]
    eye_mid = (left_eye + right_eye) / 2.0

    yaw = math.degrees(math.atan2(nose[0] - eye_mid[0], _DEPTH))
    pitch = math.degrees(math.atan2(nose[1] - eye_mid[1], _DEPTH))
    roll = math.degrees(math.atan2(right_eye[1] - left_eye[1], right_eye[0] - left_eye[0]))

    return pitch, yaw, roll


def eye_openness(points: np.ndarray) -> float:
    """
    计算双眼平均开合度。

    公式: EAR = |top.y - bottom.y| / (|left.x - right.x| + 0.001)
    """
    ratios = []
    for top, bottom, outer, inner in (LEFT_EYE_INDICES, RIGHT_EYE_INDICES):
        height = abs(points[top][1] - points[bottom][1])
        width = abs(points[outer][0] - points[inner][0])
        ratios.append(height / (width + 0.001))
    return float(sum(ratios) / len(ratios))


class LandmarkPoseEstimator:
    """关键点 → PoseSample，角度截断与分类交由 SignalClassifier 完成"""

    def __init__(self, classifier: Optional[SignalClassifier] = None):
        self.classifier = classifier or SignalClassifier()

    def estimate(self, landmarks: Optional[Sequence]) -> PoseSample:
        """
        由 FaceMesh 关键点估计姿态。

        Args:
            landmarks: 468/478 个 (x, y[, z]) 归一化坐标；None 表示未检测到人脸

        Returns:
            PoseSample；关键点缺失时返回无信号样本
        """
        points = _to_array(landmarks) if landmarks is not None else None
        if points is None:
            return self.classifier.no_signal()

        pitch, yaw, roll = head_angles(points)
        return self.classifier.classify(pitch, yaw, roll, eye_openness(points))

    def estimate_pnp(
        self,
        face_points_2d: Sequence[Tuple[float, float]],
        frame_shape: Tuple,
        ear: float,
    ) -> PoseSample:
        """
        使用 solvePnP 估计头部姿态。

        Args:
            face_points_2d: 6 个像素坐标点（鼻尖、下巴、左右眼角、左右嘴角）
            frame_shape: 图像尺寸 (h, w, c) 或 (h, w)
            ear: 眼睛开合度

        Returns:
            PoseSample；输入不合法或求解失败时角度为 0
        """
        try:
            image_points = np.array(face_points_2d, dtype=np.float64)
            h, w = float(frame_shape[0]), float(frame_shape[1])
        except (TypeError, ValueError, IndexError):
            return self.classifier.classify(0.0, 0.0, 0.0, ear)
        if image_points.shape != (len(_MODEL_POINTS), 2) or not np.all(np.isfinite(image_points)) \
                or not (h > 0 and w > 0):
            return self.classifier.classify(0.0, 0.0, 0.0, ear)

        # 构建相机内参矩阵
        focal_length = max(h, w)
        camera_matrix = np.array([
            [focal_length, 0, w / 2.0],
            [0, focal_length, h / 2.0],
            [0, 0, 1],
        ], dtype=np.float64)
        dist_coeffs = np.zeros((4, 1), dtype=np.float64)

        try:
            success, rotation_vector, _ = cv2.solvePnP(
                _MODEL_POINTS, image_points, camera_matrix, dist_coeffs,
                flags=cv2.SOLVEPNP_ITERATIVE,
            )
        except cv2.error:
            success = False

        if not success:
            return self.classifier.classify(0.0, 0.0, 0.0, ear)

        rotation_matrix, _ = cv2.Rodrigues(rotation_vector)
        pitch, yaw, roll = self._rotation_matrix_to_euler(rotation_matrix)
        return self.classifier.classify(pitch, yaw, roll, ear)

    @staticmethod
    def _rotation_matrix_to_euler(rotation_matrix: np.ndarray) -> Tuple[float, float, float]:
        """
        从相机坐标系下的旋转矩阵提取 (pitch, yaw, roll)，单位为度。

        R = Rz(roll) · Ry(yaw) · Rx(pitch)。符号与 head_angles 一致：
        低头 pitch 为正，鼻尖偏向图像右侧 yaw 为正，右眼偏低 roll 为正。
        """
        sy = math.sqrt(rotation_matrix[0, 0] ** 2 + rotation_matrix[1, 0] ** 2)

        if sy > 1e-6:
            pitch = math.atan2(rotation_matrix[2, 1], rotation_matrix[2, 2])
            yaw = math.atan2(-rotation_matrix[2, 0], sy)
            roll = math.atan2(rotation_matrix[1, 0], rotation_matrix[0, 0])
        else:
            pitch = math.atan2(-rotation_matrix[1, 2], rotation_matrix[1, 1])
            yaw = math.atan2(-rotation_matrix[2, 0], sy)
            roll = 0.0

        # 绕 y 轴正向旋转时鼻尖移向图像左侧
        return math.degrees(pitch), -math.degrees(yaw), math.degrees(roll)
