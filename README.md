# autoslam

Building blocks for localisation and mapping on a vehicle, in plain Python
with NumPy:

- **Rotations and poses** (`autoslam.geometry`): `hat`, `exp_so3`,
  `log_so3`, `right_jacobian`, `rot_z`, `matrix_to_quaternion`,
  `quaternion_to_matrix`, `mean_and_var_diag` and a rigid-body `Pose`
  (with `inverse()`, `matrix()` and composition through `@`).
- **Sensor records** (`autoslam.states`): `IMU`, `Odom` and `GNSS` readings
  and the `NavState` navigation state.
- **Pure IMU dead reckoning** (`autoslam.imu_integration.IMUIntegration`).
  Readings whose time gap is outside (0, 0.1) seconds only advance the clock.
- **Static IMU initialisation** (`autoslam.static_imu_init.StaticIMUInit`):
  estimates gyro and accelerometer biases, their variances and the gravity
  vector while the vehicle stands still. With
  `use_speed_for_static_checking` on (the default), readings are only
  collected while `add_odom` reports both wheel pulse counts below
  `static_odom_pulse`.
- **Error-state Kalman filter** (`autoslam.eskf.ESKF`): an 18-dimensional
  filter (position, velocity, rotation, both biases, gravity) predicted from
  IMU readings and corrected by wheel speed (`observe_wheel_speed`), GNSS
  (`observe_gps`, the first reading sets the pose directly) or a full pose
  (`observe_se3`).
- **IMU preintegration** (`autoslam.imu_preintegration.IMUPreintegration`)
  with first-order bias correction (`delta_rotation`, `delta_velocity`,
  `delta_position`) and `predict` from a start state.
- **Nearest-neighbour search on point clouds** (N×3 arrays):
  brute force (`autoslam.bfnn`), hash grids in 2D and 3D
  (`autoslam.gridnn.GridNN` with `NearbyType`), a k-d tree
  (`autoslam.kdtree.KdTree`) and an octree (`autoslam.octo_tree.OctoTree`).
  The k-d tree searches approximately by default (`set_enable_ann`, alpha
  0.1); the octree searches exactly unless `set_approximate` is called.
  Multi-point search results are lists of `(neighbour index, query index)`
  pairs, with `autoslam.bfnn.INVALID_ID` (-1) where no neighbour was found.
  Grid cells are found by rounding the raw coordinates, so they are one unit
  wide whatever the `resolution` given.
- **Cloud projections** (`autoslam.projection`): a bird's-eye image and a
  lidar range image as RGB arrays, written to disk with `save_image`.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Examples

Integrate IMU readings with known biases:

```python
import numpy as np
from autoslam.states import IMU
from autoslam.imu_integration import IMUIntegration

integ = IMUIntegration(
    gravity=np.array([0.0, 0.0, -9.8]),
    init_bg=np.zeros(3),
    init_ba=np.zeros(3),
)
for reading in imu_readings:   # IMU records, in time order
    integ.add_imu(reading)
state = integ.nav_state()
```

Run the Kalman filter once the static initialiser has succeeded:

```python
from autoslam.static_imu_init import StaticIMUInit, StaticIMUInitOptions
from autoslam.eskf import ESKF, ESKFOptions

init = StaticIMUInit(StaticIMUInitOptions(use_speed_for_static_checking=False))
for reading in imu_readings:
    init.add_imu(reading)
    if init.init_success:
        break

eskf = ESKF(ESKFOptions())
eskf.set_initial_conditions(ESKFOptions(), init.init_bg, init.init_ba, init.gravity)
# eskf.predict(imu) for every later IMU reading,
# eskf.observe_gps(gnss) or eskf.observe_se3(pose, 0.1, 0.01) for observations
state = eskf.nominal_state()
```

Find nearest neighbours in a point cloud:

```python
from autoslam.kdtree import KdTree
from autoslam.bfnn import bfnn_point

tree = KdTree()
tree.build_tree(cloud)
neighbours = tree.get_closest_point(query_point, 5)
nearest = bfnn_point(cloud, query_point)
```

Project a cloud to images:

```python
from autoslam.projection import generate_bev_image, generate_range_image, save_image

save_image(generate_bev_image(cloud, 0.1, 0.2, 2.5), "bev.png")
save_image(generate_range_image(scan, 0.3, 16, 15.0, 1.128), "range_image.png")
```

## Command line

`autoslam-motion` simulates a vehicle driving in a circle at a constant
angular and linear velocity and prints its position at every step:

```
autoslam-motion --help
autoslam-motion --angular-velocity 10 --linear-velocity 5 --steps 200
```

Options: `--angular-velocity` (deg/s), `--linear-velocity` (m/s), `--dt`,
`--steps`, `--use-quaternion` and `--realtime` (sleep one step between
lines).

## What it does not do

- It reads no data files: point clouds, IMU, odometry and GNSS readings are
  passed in as arrays and records.
- It does not convert latitude and longitude to UTM; a `GNSS` record's
  `utm_pose` must be filled in by the caller.
- It has no graphical display; states and positions are returned or printed.
- It has no graph optimisation and no scan matching against a map.