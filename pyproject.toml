[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "autoslam"
version = "0.1.0"
description = "Inertial navigation, error-state Kalman filtering, IMU preintegration and point-cloud nearest-neighbour search for vehicle localisation"
requires-python = ">=3.10"
dependencies = [
    "numpy",
    "pillow",
]
keywords = [
    "slam",
    "imu",
    "eskf",
    "kalman-filter",
    "preintegration",
    "kd-tree",
    "octree",
    "nearest-neighbour",
    "point-cloud",
    "lidar",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
autoslam-motion = "autoslam.motion:main"

[tool.hatch.build.targets.wheel]
packages = ["autoslam"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
