"""Simulation of a vehicle driving in a circle."""

from __future__ import annotations

import argparse
import itertools
import math
import time
from typing import Iterator

import numpy as np

from autoslam.geometry import exp_so3, matrix_to_quaternion, quaternion_to_matrix
from autoslam.states import NavState


def _quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    w1, x1, y1, z1 = a
    w2, x2, y2, z2 = b
    return np.array(
        [
            w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
            w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
            w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
            w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        ]
    )


def simulate_circular_motion(
    angular_velocity_deg: float = 10.0,
    linear_velocity: float = 5.0,
    dt: float = 0.05,
    use_quaternion: bool = False,
    steps: int | None = None,
) -> Iterator[NavState]:
    """Yield the state after each step; runs forever when ``steps`` is None."""
    omega = np.array([0.0, 0.0, math.radians(angular_velocity_deg)])
    v_body = np.array([linear_velocity, 0.0, 0.0])
    rotation = np.eye(3)
    position = np.zeros(3)

    counter = itertools.count() if steps is None else range(steps)
    for step in counter:
        v_world = rotation @ v_body
        position = position + v_world * dt
        if use_quaternion:
            dq = np.concatenate(([1.0], 0.5 * omega * dt))
            rotation = quaternion_to_matrix(_quat_multiply(matrix_to_quaternion(rotation), dq))
        else:
            rotation = rotation @ exp_so3(omega * dt)
        yield NavState((step + 1) * dt, rotation, position, v_world)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Simulate a vehicle moving in a circle.")
    parser.add_argument("--angular-velocity", type=float, default=10.0, help="angular velocity in deg/s")
    parser.add_argument("--linear-velocity", type=float, default=5.0, help="forward speed in m/s")
    parser.add_argument("--use-quaternion", action="store_true", help="update rotation with quaternions")
    parser.add_argument("--dt", type=float, default=0.05, help="time step in seconds")
    parser.add_argument("--steps", type=int, default=200, help="number of steps to simulate")
    parser.add_argument("--realtime", action="store_true", help="sleep one time step between updates")
    args = parser.parse_args(argv)

    for state in simulate_circular_motion(
        args.angular_velocity, args.linear_velocity, args.dt, args.use_quaternion, args.steps
    ):
        x, y, z = state.position
        print(f"pose: {x:.6f} {y:.6f} {z:.6f}")
        if args.realtime:
            time.sleep(args.dt)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())