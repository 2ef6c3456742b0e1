"""Nearest-neighbour search through a hash grid of 2D or 3D cells."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

import numpy as np

from autoslam.bfnn import INVALID_ID, bfnn_point

logger = logging.getLogger(__name__)


class NearbyType(Enum):
    CENTER = "center"
    NEARBY4 = "nearby4"
    NEARBY8 = "nearby8"
    NEARBY6 = "nearby6"


_NEARBY_2D = {
    NearbyType.CENTER: [(0, 0)],
    NearbyType.NEARBY4: [(0, 0), (-1, 0), (1, 0), (0, 1), (0, -1)],
    NearbyType.NEARBY8: [
        (0, 0), (-1, 0), (1, 0), (0, 1), (0, -1),
        (-1, -1), (-1, 1), (1, -1), (1, 1),
    ],
}

_NEARBY_3D = {
    NearbyType.CENTER: [(0, 0, 0)],
    NearbyType.NEARBY6: [
        (0, 0, 0), (-1, 0, 0), (1, 0, 0), (0, 1, 0),
        (0, -1, 0), (0, 0, -1), (0, 0, 1),
    ],
}


def _as_cloud(cloud) -> np.ndarray:
    arr = np.atleast_2d(np.asarray(cloud, dtype=float))
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.shape[1] < 3:
        raise ValueError("points need at least three coordinates")
    return arr[:, :3]


class GridNN:
    """Grid-based nearest neighbour over the first ``dim`` coordinates of each point."""

    def __init__(self, dim: int = 2, resolution: float = 0.1, nearby_type: NearbyType = NearbyType.NEARBY4):
        if dim not in (2, 3):
            raise ValueError(f"grid dimension must be 2 or 3, got {dim}")
        self.dim = dim
        self.resolution = resolution
        self.inv_resolution = 1.0 / resolution

        if dim == 2 and nearby_type == NearbyType.NEARBY6:
            logger.info("2D grid does not support nearby6, using nearby4 instead.")
            nearby_type = NearbyType.NEARBY4
        elif dim == 3 and nearby_type not in (NearbyType.NEARBY6, NearbyType.CENTER):
            logger.info("3D grid does not support nearby4/8, using nearby6 instead.")
            nearby_type = NearbyType.NEARBY6
        self.nearby_type = nearby_type

        table = _NEARBY_2D if dim == 2 else _NEARBY_3D
        self.nearby_grids = list(table[nearby_type])
        self.grids: dict[tuple[int, ...], list[int]] = {}
        self._cloud: np.ndarray | None = None

    def _pos_to_grid(self, pt) -> tuple[int, ...]:
        # Cells are found by rounding the raw coordinates (half away from zero);
        # the resolution does not scale the key.
        coords = np.asarray(pt, dtype=float).reshape(-1)[: self.dim]
        rounded = np.sign(coords) * np.floor(np.abs(coords) + 0.5)
        return tuple(int(c) for c in rounded)

    def set_point_cloud(self, cloud) -> None:
        """Index every point of ``cloud`` by its grid cell."""
        pts = _as_cloud(cloud)
        self.grids = {}
        for idx, pt in enumerate(pts):
            self.grids.setdefault(self._pos_to_grid(pt), []).append(idx)
        self._cloud = pts
        logger.info("grids: %d", len(self.grids))

    def get_closest_point(self, pt) -> tuple[int, np.ndarray] | None:
        """(index, point) of the nearest point in the neighbouring cells, or None."""
        if self._cloud is None:
            raise RuntimeError("no point cloud has been set")
        key = self._pos_to_grid(pt)
        candidates: list[int] = []
        for delta in self.nearby_grids:
            cell = tuple(k + d for k, d in zip(key, delta))
            candidates.extend(self.grids.get(cell, ()))
        if not candidates:
            return None
        local = bfnn_point(self._cloud[candidates], pt)
        idx = candidates[local]
        return idx, self._cloud[idx].copy()

    def get_closest_point_for_cloud(self, ref, query) -> list[tuple[int, int]]:
        """Pairs (nearest index, query index) for the query points that found a neighbour."""
        matches = []
        for idx, pt in enumerate(_as_cloud(query)):
            found = self.get_closest_point(pt)
            if found is not None:
                matches.append((found[0], idx))
        return matches

    def get_closest_point_for_cloud_mt(self, ref, query) -> list[tuple[int, int]]:
        """One pair per query point, (INVALID_ID, INVALID_ID) where none was found."""
        pts = _as_cloud(query)

        def match(idx: int) -> tuple[int, int]:
            found = self.get_closest_point(pts[idx])
            if found is None:
                return INVALID_ID, INVALID_ID
            return found[0], idx

        with ThreadPoolExecutor() as executor:
            return list(executor.map(match, range(len(pts))))