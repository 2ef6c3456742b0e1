"""Bird's-eye-view and range images of point clouds."""

from __future__ import annotations

import colorsys
import math

import numpy as np
from PIL import Image

BEV_BACKGROUND = (255, 255, 255)
BEV_POINT_COLOR = (79, 143, 227)
"""RGB colour of occupied cells in a bird's-eye-view image."""

_RANGE_SATURATION = 255
_RANGE_VALUE = 127


def _as_cloud(cloud) -> np.ndarray:
    arr = np.atleast_2d(np.asarray(cloud, dtype=float))
    if arr.size == 0:
        raise ValueError("cannot build an image from an empty cloud")
    if arr.shape[1] < 3:
        raise ValueError("points need at least three coordinates")
    return arr[:, :3]


def generate_bev_image(cloud, resolution: float = 0.1, min_z: float = 0.2, max_z: float = 2.5) -> np.ndarray:
    """Top-down RGB image of the points whose height lies in [min_z, max_z]."""
    pts = _as_cloud(cloud)
    min_x, min_y = pts[:, 0].min(), pts[:, 1].min()
    max_x, max_y = pts[:, 0].max(), pts[:, 1].max()

    inv_r = 1.0 / resolution
    rows = int((max_y - min_y) * inv_r)
    cols = int((max_x - min_x) * inv_r)

    x_center = 0.5 * (max_x + min_x)
    y_center = 0.5 * (max_y + min_y)
    x_center_image = cols // 2
    y_center_image = rows // 2

    image = np.empty((rows, cols, 3), dtype=np.uint8)
    image[:] = BEV_BACKGROUND

    for x_pt, y_pt, z_pt in pts:
        x = int((x_pt - x_center) * inv_r + x_center_image)
        y = int((y_pt - y_center) * inv_r + y_center_image)
        if not (0 <= x < cols and 0 <= y < rows) or z_pt < min_z or z_pt > max_z:
            continue
        image[y, x] = BEV_POINT_COLOR
    return image


def _range_color(range_: float) -> tuple[int, int, int]:
    # Hue is stored as a byte in half-degree units, as in 8-bit HSV images.
    hue_byte = int(range_ / 100 * 255.0) % 256
    hue = (hue_byte * 2 % 360) / 360.0
    r, g, b = colorsys.hsv_to_rgb(hue, _RANGE_SATURATION / 255.0, _RANGE_VALUE / 255.0)
    return round(r * 255), round(g * 255), round(b * 255)


def generate_range_image(
    cloud,
    azimuth_resolution_deg: float = 0.3,
    elevation_rows: int = 16,
    elevation_range: float = 15.0,
    lidar_height: float = 1.128,
) -> np.ndarray:
    """RGB range image: columns by azimuth, rows by elevation with up at the top.

    Each hit is coloured by its horizontal range through the hue.
    """
    pts = _as_cloud(cloud)
    cols = int(360 / azimuth_resolution_deg)
    rows = elevation_rows
    ele_resolution = elevation_range * 2 / elevation_rows

    image = np.zeros((rows, cols, 3), dtype=np.uint8)
    for x_pt, y_pt, z_pt in pts:
        range_ = math.hypot(x_pt, y_pt)
        if range_ == 0.0:
            continue
        ratio = (z_pt - lidar_height) / range_
        if not -1.0 <= ratio <= 1.0:
            continue
        azimuth = math.degrees(math.atan2(y_pt, x_pt))
        elevation = math.degrees(math.asin(ratio))
        if azimuth < 0:
            azimuth += 360

        x = int(azimuth / azimuth_resolution_deg)
        y = int((elevation + elevation_range) / ele_resolution + 0.5)
        if 0 <= x < cols and 0 <= y < rows:
            image[rows - 1 - y, x] = _range_color(range_)
    return image


def save_image(image, path) -> None:
    """Write an RGB image array to ``path``; the format follows the file suffix."""
    Image.fromarray(np.asarray(image, dtype=np.uint8)).save(path)