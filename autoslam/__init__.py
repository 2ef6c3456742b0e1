"""IMU integration, Kalman filtering, preintegration and point-cloud search for vehicle localisation."""

__version__ = "0.1.0"