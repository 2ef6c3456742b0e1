"""Estimates IMU biases, noise and gravity while the vehicle stands still."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

import numpy as np

from autoslam.geometry import mean_and_var_diag
from autoslam.states import IMU, Odom

logger = logging.getLogger(__name__)

_MIN_SAMPLES = 10


@dataclass
class StaticIMUInitOptions:
    init_time_seconds: float = 10.0
    init_imu_queue_max_size: int = 2000
    static_odom_pulse: int = 5
    max_static_gyro_var: float = 0.5
    max_static_acce_var: float = 0.05
    gravity_norm: float = 9.81
    use_speed_for_static_checking: bool = True


class StaticIMUInit:
    """Collects IMU readings while static and estimates initial biases.

    With wheel odometry the vehicle counts as static only while both wheel
    pulse counts stay below a threshold; without it, the vehicle is assumed
    to be still at the start.
    """

    def __init__(self, options: StaticIMUInitOptions | None = None):
        self.options = options or StaticIMUInitOptions()
        self.init_success = False
        self.cov_gyro = np.zeros(3)
        self.cov_acce = np.zeros(3)
        self.init_bg = np.zeros(3)
        self.init_ba = np.zeros(3)
        self.gravity = np.zeros(3)
        self.is_static = False
        self._imu_queue: deque[IMU] = deque()
        self._current_time = 0.0
        self._init_start_time = 0.0

    def add_imu(self, imu: IMU) -> bool:
        """Add a reading; True only once initialisation has already succeeded."""
        if self.init_success:
            return True

        if self.options.use_speed_for_static_checking and not self.is_static:
            logger.warning("waiting for the vehicle to stand still")
            self._imu_queue.clear()
            return False

        if not self._imu_queue:
            self._init_start_time = imu.timestamp

        self._imu_queue.append(imu)

        if imu.timestamp - self._init_start_time > self.options.init_time_seconds:
            self._try_init()

        while len(self._imu_queue) > self.options.init_imu_queue_max_size:
            self._imu_queue.popleft()

        self._current_time = imu.timestamp
        return False

    def add_odom(self, odom: Odom) -> bool:
        """Update the static flag from wheel pulses."""
        if self.init_success:
            return True
        limit = self.options.static_odom_pulse
        self.is_static = odom.left_pulse < limit and odom.right_pulse < limit
        self._current_time = odom.timestamp
        return True

    def _try_init(self) -> bool:
        if len(self._imu_queue) < _MIN_SAMPLES:
            return False

        mean_gyro, self.cov_gyro = mean_and_var_diag(imu.gyro for imu in self._imu_queue)
        mean_acce, self.cov_acce = mean_and_var_diag(imu.acce for imu in self._imu_queue)

        logger.info("mean acce: %s", mean_acce)
        self.gravity = -mean_acce / np.linalg.norm(mean_acce) * self.options.gravity_norm

        mean_acce, self.cov_acce = mean_and_var_diag(imu.acce + self.gravity for imu in self._imu_queue)

        gyro_noise = float(np.linalg.norm(self.cov_gyro))
        if gyro_noise > self.options.max_static_gyro_var:
            logger.error("gyro noise too large: %s > %s", gyro_noise, self.options.max_static_gyro_var)
            return False

        acce_noise = float(np.linalg.norm(self.cov_acce))
        if acce_noise > self.options.max_static_acce_var:
            logger.error("accelerometer noise too large: %s > %s", acce_noise, self.options.max_static_acce_var)
            return False

        self.init_bg = mean_gyro
        self.init_ba = mean_acce
        logger.info(
            "IMU initialised after %.3f s, bg = %s, ba = %s, gyro var = %s, acce var = %s, gravity = %s",
            self._current_time - self._init_start_time,
            self.init_bg,
            self.init_ba,
            self.cov_gyro,
            self.cov_acce,
            self.gravity,
        )
        self.init_success = True
        return True