"""IMU preintegration with first-order bias corrections."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from autoslam.geometry import exp_so3, hat, right_jacobian
from autoslam.states import IMU, NavState


def _zeros() -> np.ndarray:
    return np.zeros(3)


@dataclass(eq=False)
class PreintegrationOptions:
    """Initial biases and measurement noise standard deviations."""

    init_bg: np.ndarray = field(default_factory=_zeros)
    init_ba: np.ndarray = field(default_factory=_zeros)
    noise_gyro: float = 1e-2
    noise_acce: float = 1e-1


class IMUPreintegration:
    """Accumulates relative rotation, velocity and position from IMU readings.

    Also keeps the Jacobians of these increments with respect to the biases
    and the covariance of the increments (ordered R, v, p).
    """

    def __init__(self, options: PreintegrationOptions | None = None):
        options = options or PreintegrationOptions()
        self.bg = np.array(options.init_bg, dtype=float).reshape(3)
        self.ba = np.array(options.init_ba, dtype=float).reshape(3)
        ng2 = options.noise_gyro**2
        na2 = options.noise_acce**2
        self.noise_gyro_acce = np.diag([ng2, ng2, ng2, na2, na2, na2])

        self.dt = 0.0
        self.cov = np.zeros((9, 9))

        self.dR = np.eye(3)
        self.dv = np.zeros(3)
        self.dp = np.zeros(3)

        self.dR_dbg = np.zeros((3, 3))
        self.dV_dbg = np.zeros((3, 3))
        self.dV_dba = np.zeros((3, 3))
        self.dP_dbg = np.zeros((3, 3))
        self.dP_dba = np.zeros((3, 3))

    def integrate(self, imu: IMU, dt: float) -> None:
        """Add one IMU reading held for ``dt`` seconds."""
        gyr = imu.gyro - self.bg
        acc = imu.acce - self.ba
        dr = self.dR

        self.dp = self.dp + self.dv * dt + 0.5 * dr @ acc * dt * dt
        self.dv = self.dv + dr @ acc * dt

        a = np.eye(9)
        b = np.zeros((9, 6))
        acc_hat = hat(acc)
        dt2 = dt * dt

        a[3:6, 0:3] = -dr * dt @ acc_hat
        a[6:9, 0:3] = -0.5 * dr @ acc_hat * dt2
        a[6:9, 3:6] = dt * np.eye(3)

        b[3:6, 3:6] = dr * dt
        b[6:9, 3:6] = 0.5 * dr * dt2

        self.dP_dba = self.dP_dba + self.dV_dba * dt - 0.5 * dr * dt2
        self.dP_dbg = self.dP_dbg + self.dV_dbg * dt - 0.5 * dr * dt2 @ acc_hat @ self.dR_dbg
        self.dV_dba = self.dV_dba - dr * dt
        self.dV_dbg = self.dV_dbg - dr * dt @ acc_hat @ self.dR_dbg

        omega = gyr * dt
        right_j = right_jacobian(omega)
        delta_r = exp_so3(omega)
        self.dR = dr @ delta_r

        a[0:3, 0:3] = delta_r.T
        b[0:3, 0:3] = right_j * dt

        self.cov = a @ self.cov @ a.T + b @ self.noise_gyro_acce @ b.T
        self.dR_dbg = delta_r.T @ self.dR_dbg - right_j * dt
        self.dt += dt

    def delta_rotation(self, bg) -> np.ndarray:
        """Rotation increment corrected to the gyro bias ``bg``."""
        return self.dR @ exp_so3(self.dR_dbg @ (np.asarray(bg, dtype=float) - self.bg))

    def delta_velocity(self, bg, ba) -> np.ndarray:
        """Velocity increment corrected to the biases ``bg`` and ``ba``."""
        dbg = np.asarray(bg, dtype=float) - self.bg
        dba = np.asarray(ba, dtype=float) - self.ba
        return self.dv + self.dV_dbg @ dbg + self.dV_dba @ dba

    def delta_position(self, bg, ba) -> np.ndarray:
        """Position increment corrected to the biases ``bg`` and ``ba``."""
        dbg = np.asarray(bg, dtype=float) - self.bg
        dba = np.asarray(ba, dtype=float) - self.ba
        return self.dp + self.dP_dbg @ dbg + self.dP_dba @ dba

    def predict(self, start: NavState, gravity=(0.0, 0.0, -9.81)) -> NavState:
        """State reached from ``start`` after the integrated interval."""
        g = np.asarray(gravity, dtype=float).reshape(3)
        r = start.rotation
        rj = r @ self.dR
        vj = r @ self.dv + start.velocity + g * self.dt
        pj = r @ self.dp + start.position + start.velocity * self.dt + 0.5 * g * self.dt * self.dt
        return NavState(start.timestamp + self.dt, rj, pj, vj, self.bg, self.ba)