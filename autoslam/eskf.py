"""Error-state Kalman filter fusing IMU, wheel odometry, GNSS and pose observations.

The 18-dimensional error state is ordered p, v, theta, bg, ba, g.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from autoslam.geometry import Pose, exp_so3, hat, log_so3
from autoslam.states import GNSS, IMU, NavState, Odom

logger = logging.getLogger(__name__)

_DIM = 18


@dataclass
class ESKFOptions:
    """Noise and sensor parameters; IMU noise terms are already discrete-time."""

    imu_dt: float = 0.01
    gyro_var: float = 1e-5
    acce_var: float = 1e-2
    bias_gyro_var: float = 1e-6
    bias_acce_var: float = 1e-4

    odom_var: float = 0.5
    odom_span: float = 0.1
    wheel_radius: float = 0.155
    circle_pulse: float = 1024.0

    gnss_pos_noise: float = 0.1
    gnss_height_noise: float = 0.1
    gnss_ang_noise: float = math.radians(1.0)

    update_bias_gyro: bool = True
    update_bias_acce: bool = True


class ESKF:
    """Error-state Kalman filter with a nominal state and an 18x18 covariance."""

    def __init__(self, options: ESKFOptions | None = None):
        self.options = options or ESKFOptions()
        self.current_time = 0.0
        self.position = np.zeros(3)
        self.velocity = np.zeros(3)
        self.rotation = np.eye(3)
        self.bg = np.zeros(3)
        self.ba = np.zeros(3)
        self.gravity = np.array([0.0, 0.0, -9.8])
        self.cov = np.eye(_DIM)
        self._dx = np.zeros(_DIM)
        self._q = np.zeros((_DIM, _DIM))
        self._odom_noise = np.zeros((3, 3))
        self._gnss_noise = np.zeros((6, 6))
        self._first_gnss = True
        self._build_noise(self.options)

    def set_initial_conditions(
        self,
        options: ESKFOptions,
        init_bg,
        init_ba,
        gravity=(0.0, 0.0, -9.8),
    ) -> None:
        """Set noise options, initial biases and gravity; resets the covariance."""
        self._build_noise(options)
        self.options = options
        self.bg = np.array(init_bg, dtype=float).reshape(3)
        self.ba = np.array(init_ba, dtype=float).reshape(3)
        self.gravity = np.array(gravity, dtype=float).reshape(3)
        self.cov = np.eye(_DIM) * 1e-4

    def _build_noise(self, options: ESKFOptions) -> None:
        ev, et = options.acce_var, options.gyro_var
        eg, ea = options.bias_gyro_var, options.bias_acce_var
        self._q = np.diag([0, 0, 0, ev, ev, ev, et, et, et, eg, eg, eg, ea, ea, ea, 0, 0, 0]).astype(float)

        # The odometry noise comes from the options already in effect.
        o2 = self.options.odom_var * self.options.odom_var
        self._odom_noise = np.diag([o2, o2, o2])

        gp2 = options.gnss_pos_noise**2
        gh2 = options.gnss_height_noise**2
        ga2 = options.gnss_ang_noise**2
        self._gnss_noise = np.diag([gp2, gp2, gh2, ga2, ga2, ga2])

    def predict(self, imu: IMU) -> bool:
        """Propagate with one IMU reading; False if the time gap was too large."""
        if imu.timestamp < self.current_time:
            raise ValueError(f"IMU timestamp {imu.timestamp} is earlier than filter time {self.current_time}")

        dt = imu.timestamp - self.current_time
        if dt > 5 * self.options.imu_dt:
            logger.info("skip this imu because dt = %s", dt)
            self.current_time = imu.timestamp
            return False

        acc = imu.acce - self.ba
        gyr = imu.gyro - self.bg
        acc_world = self.rotation @ acc
        new_p = self.position + self.velocity * dt + 0.5 * acc_world * dt * dt + 0.5 * self.gravity * dt * dt
        new_v = self.velocity + acc_world * dt + self.gravity * dt
        new_r = self.rotation @ exp_so3(gyr * dt)

        self.rotation = new_r
        self.velocity = new_v
        self.position = new_p

        f = np.eye(_DIM)
        f[0:3, 3:6] = np.eye(3) * dt
        f[3:6, 6:9] = -self.rotation @ hat(acc) * dt
        f[3:6, 12:15] = -self.rotation * dt
        f[3:6, 15:18] = np.eye(3) * dt
        f[6:9, 6:9] = exp_so3(-gyr * dt)
        f[6:9, 9:12] = -np.eye(3) * dt

        self._dx = f @ self._dx
        self.cov = f @ self.cov @ f.T + self._q
        self.current_time = imu.timestamp
        return True

    def observe_wheel_speed(self, odom: Odom) -> None:
        """Correct the velocity with the mean forward speed of both wheels."""
        if odom.timestamp < self.current_time:
            raise ValueError(f"odometry timestamp {odom.timestamp} is earlier than filter time {self.current_time}")

        h = np.zeros((3, _DIM))
        h[0:3, 3:6] = np.eye(3)
        k = self.cov @ h.T @ np.linalg.inv(h @ self.cov @ h.T + self._odom_noise)

        o = self.options
        scale = o.wheel_radius / o.circle_pulse * 2 * math.pi / o.odom_span
        average_vel = 0.5 * (odom.left_pulse * scale + odom.right_pulse * scale)
        vel_world = self.rotation @ np.array([average_vel, 0.0, 0.0])

        self._dx = k @ (vel_world - self.velocity)
        self.cov = (np.eye(_DIM) - k @ h) @ self.cov
        self._update_and_reset()

    def observe_gps(self, gnss: GNSS) -> None:
        """Use a GNSS pose; the first one sets the state directly."""
        if gnss.unix_time < self.current_time:
            raise ValueError(f"GNSS time {gnss.unix_time} is earlier than filter time {self.current_time}")

        if self._first_gnss:
            self.rotation = gnss.utm_pose.rotation.copy()
            self.position = gnss.utm_pose.translation.copy()
            self._first_gnss = False
            self.current_time = gnss.unix_time
            return

        if not gnss.heading_valid:
            raise ValueError("GNSS observation needs a valid heading")
        self.observe_se3(gnss.utm_pose, self.options.gnss_pos_noise, self.options.gnss_ang_noise)
        self.current_time = gnss.unix_time

    def observe_se3(self, pose: Pose, trans_noise: float = 0.1, ang_noise: float = math.radians(1.0)) -> None:
        """Correct position and rotation with an observed pose."""
        h = np.zeros((6, _DIM))
        h[0:3, 0:3] = np.eye(3)
        h[3:6, 6:9] = np.eye(3)

        v = np.diag([trans_noise] * 3 + [ang_noise] * 3)
        k = self.cov @ h.T @ np.linalg.inv(h @ self.cov @ h.T + v)

        innov = np.concatenate(
            (pose.translation - self.position, log_so3(self.rotation.T @ pose.rotation))
        )
        self._dx = k @ innov
        self.cov = (np.eye(_DIM) - k @ h) @ self.cov
        self._update_and_reset()

    def _update_and_reset(self) -> None:
        dx = self._dx
        self.position = self.position + dx[0:3]
        self.velocity = self.velocity + dx[3:6]
        self.rotation = self.rotation @ exp_so3(dx[6:9])
        if self.options.update_bias_gyro:
            self.bg = self.bg + dx[9:12]
        if self.options.update_bias_acce:
            self.ba = self.ba + dx[12:15]
        self.gravity = self.gravity + dx[15:18]
        self._project_cov()
        self._dx = np.zeros(_DIM)

    def _project_cov(self) -> None:
        j = np.eye(_DIM)
        j[6:9, 6:9] = np.eye(3) - 0.5 * hat(self._dx[6:9])
        self.cov = j @ self.cov @ j.T

    def nominal_state(self) -> NavState:
        return NavState(self.current_time, self.rotation, self.position, self.velocity, self.bg, self.ba)

    def nominal_pose(self) -> Pose:
        return Pose(self.rotation, self.position)

    def set_state(self, state: NavState, gravity) -> None:
        """Overwrite the nominal state and gravity."""
        self.current_time = state.timestamp
        self.rotation = state.rotation.copy()
        self.position = state.position.copy()
        self.velocity = state.velocity.copy()
        self.bg = state.bg.copy()
        self.ba = state.ba.copy()
        self.gravity = np.array(gravity, dtype=float).reshape(3)

    def set_cov(self, cov) -> None:
        cov = np.array(cov, dtype=float)
        if cov.shape != (_DIM, _DIM):
            raise ValueError(f"covariance must be {_DIM}x{_DIM}, got {cov.shape}")
        self.cov = cov