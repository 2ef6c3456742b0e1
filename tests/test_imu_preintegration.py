import math

import numpy as np
import pytest

from autoslam.eskf import ESKF, ESKFOptions
from autoslam.geometry import log_so3, matrix_to_quaternion, rot_z
from autoslam.imu_integration import IMUIntegration
from autoslam.imu_preintegration import IMUPreintegration, PreintegrationOptions
from autoslam.states import IMU, NavState

IMU_TIME_SPAN = 0.01
GRAVITY = np.array([0.0, 0.0, -9.8])


def _check_against_direct(gyro, acce):
    start = NavState(0.0)
    pre = IMUPreintegration()
    direct = IMUIntegration(GRAVITY, np.zeros(3), np.zeros(3))
    for i in range(1, 101):
        imu = IMU(IMU_TIME_SPAN * i, gyro, acce)
        pre.integrate(imu, IMU_TIME_SPAN)
        this_status = pre.predict(start, GRAVITY)
        direct.add_imu(imu)
        reference = direct.nav_state()

        assert np.allclose(reference.position, this_status.position, atol=1e-2)
        assert np.allclose(reference.velocity, this_status.velocity, atol=1e-2)
        q_ref = matrix_to_quaternion(reference.rotation)
        q_pre = matrix_to_quaternion(this_status.rotation)
        assert np.allclose(q_ref, q_pre, atol=1e-4)
    return pre, start


def test_rotation_matches_direct_integration():
    pre, start = _check_against_direct([0.0, 0.0, math.pi], -GRAVITY)
    end_status = pre.predict(start)
    # One second at 180 deg/s turns the vehicle half way round.
    assert np.allclose(end_status.rotation, rot_z(math.pi), atol=1e-9)
    assert end_status.timestamp == pytest.approx(1.0)


def test_acceleration_matches_direct_integration():
    pre, start = _check_against_direct([0.0, 0.0, 0.0], np.array([0.1, 0.0, 0.0]) - GRAVITY)
    end_status = pre.predict(start, GRAVITY)
    assert np.allclose(end_status.rotation, np.eye(3))
    assert end_status.velocity[0] == pytest.approx(0.1, abs=1e-9)
    assert end_status.position[0] == pytest.approx(0.05, abs=1e-9)


def test_matches_eskf_prediction():
    eskf = ESKF()
    eskf.set_initial_conditions(ESKFOptions(), [0.001, -0.002, 0.0005], [0.01, 0.02, -0.01])
    last_state = eskf.nominal_state()
    pre = IMUPreintegration(PreintegrationOptions(last_state.bg, last_state.ba))

    for i in range(1, 101):
        t = IMU_TIME_SPAN * i
        imu = IMU(t, [0.1 * math.sin(t), 0.05, 0.3], [0.5 * math.cos(t), 0.2, 9.8])
        current_time = eskf.nominal_state().timestamp
        eskf.predict(imu)
        pre.integrate(imu, imu.timestamp - current_time)

        pred_pre = pre.predict(last_state, eskf.gravity)
        pred_eskf = eskf.nominal_state()
        assert np.linalg.norm(pred_pre.position - pred_eskf.position) < 1e-2
        assert np.linalg.norm(log_so3(pred_pre.rotation.T @ pred_eskf.rotation)) < 1e-2
        assert np.linalg.norm(pred_pre.velocity - pred_eskf.velocity) < 1e-2


def _integrate(options, steps=100):
    pre = IMUPreintegration(options)
    for i in range(1, steps + 1):
        t = IMU_TIME_SPAN * i
        pre.integrate(IMU(t, [0.2, -0.1, 0.5], [0.3 + 0.1 * t, -0.2, 9.7]), IMU_TIME_SPAN)
    return pre


def test_deltas_at_own_bias_are_raw_increments():
    pre = _integrate(PreintegrationOptions([0.01, 0.0, 0.0], [0.0, 0.1, 0.0]))
    assert np.allclose(pre.delta_rotation(pre.bg), pre.dR)
    assert np.allclose(pre.delta_velocity(pre.bg, pre.ba), pre.dv)
    assert np.allclose(pre.delta_position(pre.bg, pre.ba), pre.dp)
    assert pre.dt == pytest.approx(1.0)


def test_gyro_bias_correction_is_first_order_accurate():
    base = _integrate(PreintegrationOptions())
    new_bg = np.array([1e-3, -2e-3, 1.5e-3])
    shifted = _integrate(PreintegrationOptions(init_bg=new_bg))
    assert np.allclose(base.delta_rotation(new_bg), shifted.dR, atol=1e-4)
    assert np.allclose(base.delta_velocity(new_bg, np.zeros(3)), shifted.dv, atol=1e-4)
    assert np.allclose(base.delta_position(new_bg, np.zeros(3)), shifted.dp, atol=1e-4)


def test_acce_bias_correction_is_exact():
    base = _integrate(PreintegrationOptions())
    new_ba = np.array([0.05, -0.03, 0.02])
    shifted = _integrate(PreintegrationOptions(init_ba=new_ba))
    assert np.allclose(base.delta_velocity(np.zeros(3), new_ba), shifted.dv, atol=1e-9)
    assert np.allclose(base.delta_position(np.zeros(3), new_ba), shifted.dp, atol=1e-9)
    assert np.allclose(base.delta_rotation(np.zeros(3)), shifted.dR)


def test_covariance_is_symmetric_and_positive():
    pre = _integrate(PreintegrationOptions())
    assert np.allclose(pre.cov, pre.cov.T)
    assert np.all(np.linalg.eigvalsh(pre.cov) > 0.0)


def test_predict_carries_biases_and_time():
    pre = _integrate(PreintegrationOptions([0.01, 0.02, 0.03], [0.1, 0.2, 0.3]), steps=10)
    state = pre.predict(NavState(5.0))
    assert state.timestamp == pytest.approx(5.1)
    assert np.allclose(state.bg, [0.01, 0.02, 0.03])
    assert np.allclose(state.ba, [0.1, 0.2, 0.3])


def test_empty_preintegration_predicts_start():
    start = NavState(2.0, rot_z(0.4), [1, 2, 3], [0.5, 0.0, 0.0])
    state = IMUPreintegration().predict(start)
    assert state.timestamp == 2.0
    assert np.allclose(state.rotation, start.rotation)
    assert np.allclose(state.position, start.position)
    assert np.allclose(state.velocity, start.velocity)