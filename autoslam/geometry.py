"""Rotation and rigid-body helpers on 3D vectors and 3x3 rotation matrices."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

_SMALL_ANGLE = 1e-10


def _vec3(v) -> np.ndarray:
    return np.asarray(v, dtype=float).reshape(3)


def hat(v) -> np.ndarray:
    """Skew-symmetric matrix such that hat(a) @ b == cross(a, b)."""
    x, y, z = _vec3(v)
    return np.array([[0.0, -z, y], [z, 0.0, -x], [-y, x, 0.0]])


def exp_so3(omega) -> np.ndarray:
    """Rotation matrix of the rotation vector ``omega`` (Rodrigues' formula)."""
    w = _vec3(omega)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _SMALL_ANGLE:
        return np.eye(3) + k
    return (
        np.eye(3)
        + math.sin(theta) / theta * k
        + (1.0 - math.cos(theta)) / (theta * theta) * (k @ k)
    )


def log_so3(rotation) -> np.ndarray:
    """Rotation vector of a rotation matrix, with angle in [0, pi]."""
    q = matrix_to_quaternion(rotation)
    w, v = q[0], q[1:]
    n = float(np.linalg.norm(v))
    if n < _SMALL_ANGLE:
        return 2.0 / w * v
    theta = 2.0 * math.atan2(n, w)
    return theta / n * v


def right_jacobian(omega) -> np.ndarray:
    """Right Jacobian of SO(3) at the rotation vector ``omega``."""
    w = _vec3(omega)
    theta = float(np.linalg.norm(w))
    k = hat(w)
    if theta < _SMALL_ANGLE:
        return np.eye(3) - 0.5 * k
    theta2 = theta * theta
    return (
        np.eye(3)
        - (1.0 - math.cos(theta)) / theta2 * k
        + (theta - math.sin(theta)) / (theta2 * theta) * (k @ k)
    )


def rot_z(angle: float) -> np.ndarray:
    """Rotation of ``angle`` radians about the z axis."""
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


def matrix_to_quaternion(rotation) -> np.ndarray:
    """Unit quaternion (w, x, y, z) with w >= 0 for a rotation matrix."""
    m = np.asarray(rotation, dtype=float).reshape(3, 3)
    diag_sum = float(m[0, 0] + m[1, 1] + m[2, 2])
    if diag_sum > 0.0:
        s = 2.0 * math.sqrt(diag_sum + 1.0)
        q = [0.25 * s, (m[2, 1] - m[1, 2]) / s, (m[0, 2] - m[2, 0]) / s, (m[1, 0] - m[0, 1]) / s]
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = 2.0 * math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2])
        q = [(m[2, 1] - m[1, 2]) / s, 0.25 * s, (m[0, 1] + m[1, 0]) / s, (m[0, 2] + m[2, 0]) / s]
    elif m[1, 1] > m[2, 2]:
        s = 2.0 * math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2])
        q = [(m[0, 2] - m[2, 0]) / s, (m[0, 1] + m[1, 0]) / s, 0.25 * s, (m[1, 2] + m[2, 1]) / s]
    else:
        s = 2.0 * math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1])
        q = [(m[1, 0] - m[0, 1]) / s, (m[0, 2] + m[2, 0]) / s, (m[1, 2] + m[2, 1]) / s, 0.25 * s]
    quat = np.array(q)
    quat /= np.linalg.norm(quat)
    return -quat if quat[0] < 0.0 else quat


def quaternion_to_matrix(q) -> np.ndarray:
    """Rotation matrix of a quaternion (w, x, y, z); the quaternion is normalised first."""
    quat = np.asarray(q, dtype=float).reshape(4)
    norm = np.linalg.norm(quat)
    if norm == 0.0:
        raise ValueError("zero quaternion has no rotation")
    w, x, y, z = quat / norm
    return np.array(
        [
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ]
    )


def mean_and_var_diag(values: Iterable) -> tuple[np.ndarray, np.ndarray]:
    """Mean and per-component sample variance (divided by n - 1) of vectors."""
    data = np.array([np.asarray(v, dtype=float) for v in values])
    if len(data) < 2:
        raise ValueError("at least two samples are needed for a variance")
    mean = data.mean(axis=0)
    var = ((data - mean) ** 2).sum(axis=0) / (len(data) - 1)
    return mean, var


@dataclass(eq=False)
class Pose:
    """Rigid-body transform: rotation matrix and translation vector."""

    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def __post_init__(self) -> None:
        self.rotation = np.array(self.rotation, dtype=float).reshape(3, 3)
        self.translation = np.array(self.translation, dtype=float).reshape(3)

    def inverse(self) -> Pose:
        rt = self.rotation.T
        return Pose(rt, -rt @ self.translation)

    def matrix(self) -> np.ndarray:
        m = np.eye(4)
        m[:3, :3] = self.rotation
        m[:3, 3] = self.translation
        return m

    def __matmul__(self, other):
        if isinstance(other, Pose):
            return Pose(self.rotation @ other.rotation, self.rotation @ other.translation + self.translation)
        return self.rotation @ _vec3(other) + self.translation