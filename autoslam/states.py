"""Sensor readings and the navigation state."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from autoslam.geometry import Pose


def _zeros() -> np.ndarray:
    return np.zeros(3)


def _as_vec(v) -> np.ndarray:
    return np.array(v, dtype=float).reshape(3)


@dataclass(eq=False)
class IMU:
    """Gyroscope (rad/s) and accelerometer (m/s^2) reading."""

    timestamp: float = 0.0
    gyro: np.ndarray = field(default_factory=_zeros)
    acce: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.gyro = _as_vec(self.gyro)
        self.acce = _as_vec(self.acce)


@dataclass
class Odom:
    """Wheel encoder pulses over one measurement span."""

    timestamp: float = 0.0
    left_pulse: float = 0.0
    right_pulse: float = 0.0


@dataclass(eq=False)
class GNSS:
    """GNSS/RTK reading together with its converted UTM pose."""

    unix_time: float = 0.0
    lat_lon_alt: np.ndarray = field(default_factory=_zeros)
    heading: float = 0.0
    heading_valid: bool = False
    utm_valid: bool = False
    utm_pose: Pose = field(default_factory=Pose)

    def __post_init__(self) -> None:
        self.lat_lon_alt = _as_vec(self.lat_lon_alt)


@dataclass(eq=False)
class NavState:
    """Navigation state: rotation, position, velocity and IMU biases."""

    timestamp: float = 0.0
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    position: np.ndarray = field(default_factory=_zeros)
    velocity: np.ndarray = field(default_factory=_zeros)
    bg: np.ndarray = field(default_factory=_zeros)
    ba: np.ndarray = field(default_factory=_zeros)

    def __post_init__(self) -> None:
        self.rotation = np.array(self.rotation, dtype=float).reshape(3, 3)
        self.position = _as_vec(self.position)
        self.velocity = _as_vec(self.velocity)
        self.bg = _as_vec(self.bg)
        self.ba = _as_vec(self.ba)

    def pose(self) -> Pose:
        return Pose(self.rotation, self.position)