import numpy as np
import pytest

from autoslam.eskf import ESKF, ESKFOptions
from autoslam.geometry import Pose, log_so3, rot_z
from autoslam.states import GNSS, IMU, NavState, Odom


def _initialised(options=None):
    eskf = ESKF()
    eskf.set_initial_conditions(options or ESKFOptions(), np.zeros(3), np.zeros(3))
    return eskf


def _diag_sum(matrix):
    return float(np.diagonal(matrix).sum())


def test_default_state_is_identity_at_origin():
    eskf = ESKF()
    state = eskf.nominal_state()
    assert np.allclose(state.rotation, np.eye(3))
    assert np.allclose(state.position, 0.0)
    assert np.allclose(state.velocity, 0.0)
    assert np.allclose(eskf.gravity, [0.0, 0.0, -9.8])
    assert np.allclose(eskf.cov, np.eye(18))


def test_set_initial_conditions():
    eskf = ESKF()
    eskf.set_initial_conditions(ESKFOptions(), [0.01, 0.02, 0.03], [0.1, 0.2, 0.3], [0.0, 0.0, -9.81])
    assert np.allclose(eskf.bg, [0.01, 0.02, 0.03])
    assert np.allclose(eskf.ba, [0.1, 0.2, 0.3])
    assert np.allclose(eskf.gravity, [0.0, 0.0, -9.81])
    assert np.allclose(eskf.cov, np.eye(18) * 1e-4)


def test_predict_skips_large_gap():
    eskf = _initialised()
    assert eskf.predict(IMU(1.0, [0, 0, 0], [0, 0, 9.8])) is False
    assert eskf.nominal_state().timestamp == 1.0
    assert np.allclose(eskf.nominal_state().position, 0.0)


def test_predict_rejects_earlier_timestamp():
    eskf = _initialised()
    eskf.predict(IMU(1.0, [0, 0, 0], [0, 0, 9.8]))
    with pytest.raises(ValueError):
        eskf.predict(IMU(0.5, [0, 0, 0], [0, 0, 9.8]))


def test_stationary_imu_keeps_state_and_grows_cov():
    eskf = _initialised()
    sum_before = _diag_sum(eskf.cov)
    for i in range(1, 11):
        assert eskf.predict(IMU(0.01 * i, [0, 0, 0], [0, 0, 9.8]))
    state = eskf.nominal_state()
    assert np.allclose(state.position, 0.0, atol=1e-12)
    assert np.allclose(state.velocity, 0.0, atol=1e-12)
    assert np.allclose(state.rotation, np.eye(3))
    assert _diag_sum(eskf.cov) > sum_before
    assert np.allclose(eskf.cov, eskf.cov.T)


def test_predict_rotates_with_gyro():
    eskf = _initialised()
    for i in range(1, 11):
        eskf.predict(IMU(0.01 * i, [0, 0, 1.0], [0, 0, 9.8]))
    yaw = log_so3(eskf.nominal_state().rotation)[2]
    assert yaw == pytest.approx(0.1, abs=1e-9)


def test_observe_se3_pulls_state_toward_observation():
    eskf = _initialised()
    cov_before = eskf.cov[0, 0]
    eskf.observe_se3(Pose(rot_z(0.1), [1.0, 0.0, 0.0]))
    state = eskf.nominal_state()
    assert 0.0 < state.position[0] < 1.0
    yaw = log_so3(state.rotation)[2]
    assert 0.0 < yaw < 0.1
    assert eskf.cov[0, 0] < cov_before


def test_first_gps_sets_pose():
    eskf = _initialised()
    gnss = GNSS(unix_time=5.0, heading_valid=True, utm_pose=Pose(rot_z(0.3), [1.0, 2.0, 3.0]))
    eskf.observe_gps(gnss)
    state = eskf.nominal_state()
    assert np.allclose(state.rotation, rot_z(0.3))
    assert np.allclose(state.position, [1.0, 2.0, 3.0])
    assert state.timestamp == 5.0


def test_second_gps_without_heading_is_rejected():
    eskf = _initialised()
    eskf.observe_gps(GNSS(unix_time=1.0, heading_valid=True))
    with pytest.raises(ValueError):
        eskf.observe_gps(GNSS(unix_time=2.0, heading_valid=False))


def test_gps_before_filter_time_is_rejected():
    eskf = _initialised()
    eskf.predict(IMU(3.0, [0, 0, 0], [0, 0, 9.8]))
    with pytest.raises(ValueError):
        eskf.observe_gps(GNSS(unix_time=1.0, heading_valid=True))


def test_second_gps_updates_time_and_moves_state():
    eskf = _initialised()
    eskf.observe_gps(GNSS(unix_time=1.0, heading_valid=True))
    eskf.observe_gps(GNSS(unix_time=2.0, heading_valid=True, utm_pose=Pose(np.eye(3), [2.0, 0.0, 0.0])))
    state = eskf.nominal_state()
    assert state.timestamp == 2.0
    assert 0.0 < state.position[0] < 2.0


def test_wheel_speed_moves_velocity_forward():
    eskf = ESKF()
    eskf.observe_wheel_speed(Odom(0.0, 100, 100))
    v = eskf.nominal_state().velocity
    assert v[0] > 0.0
    assert v[1] == pytest.approx(0.0, abs=1e-12)
    assert v[2] == pytest.approx(0.0, abs=1e-12)


def test_wheel_speed_rejects_old_odometry():
    eskf = _initialised()
    eskf.predict(IMU(2.0, [0, 0, 0], [0, 0, 9.8]))
    with pytest.raises(ValueError):
        eskf.observe_wheel_speed(Odom(1.0, 10, 10))


def test_bias_updates_can_be_disabled():
    options = ESKFOptions(update_bias_gyro=False, update_bias_acce=False)
    eskf = ESKF()
    eskf.set_initial_conditions(options, [0.01, 0.0, 0.0], [0.0, 0.02, 0.0])
    for i in range(1, 21):
        eskf.predict(IMU(0.01 * i, [0.3, 0.1, 0.2], [0.5, 0.1, 9.8]))
    eskf.observe_se3(Pose(rot_z(0.2), [1.0, 1.0, 0.0]))
    assert np.allclose(eskf.bg, [0.01, 0.0, 0.0])
    assert np.allclose(eskf.ba, [0.0, 0.02, 0.0])


def test_set_state_and_cov_round_trip():
    eskf = ESKF()
    state = NavState(3.0, rot_z(0.5), [1, 2, 3], [0.1, 0.2, 0.3], [0.01, 0, 0], [0, 0.02, 0])
    eskf.set_state(state, [0.0, 0.0, -9.81])
    got = eskf.nominal_state()
    assert got.timestamp == 3.0
    assert np.allclose(got.rotation, rot_z(0.5))
    assert np.allclose(got.position, [1, 2, 3])
    assert np.allclose(got.velocity, [0.1, 0.2, 0.3])
    assert np.allclose(got.bg, [0.01, 0, 0])
    assert np.allclose(got.ba, [0, 0.02, 0])
    assert np.allclose(eskf.gravity, [0.0, 0.0, -9.81])
    assert np.allclose(eskf.nominal_pose().matrix(), state.pose().matrix())

    cov = np.eye(18) * 1e-4
    cov[6:18, 6:18] = np.eye(12) * 1e-6
    eskf.set_cov(cov)
    assert np.array_equal(eskf.cov, cov)


def test_set_cov_rejects_wrong_shape():
    with pytest.raises(ValueError):
        ESKF().set_cov(np.eye(6))