"""Brute-force nearest-neighbour search in point clouds."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, TypeVar

import numpy as np

T = TypeVar("T")

INVALID_ID = -1
"""Index used in match lists where no neighbour was found."""


def _as_cloud(cloud) -> np.ndarray:
    arr = np.atleast_2d(np.asarray(cloud, dtype=float))
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.shape[1] < 3:
        raise ValueError("points need at least three coordinates")
    return arr[:, :3]


def _as_point(point) -> np.ndarray:
    return np.asarray(point, dtype=float).reshape(-1)[:3]


def _squared_distances(cloud: np.ndarray, point) -> np.ndarray:
    if len(cloud) == 0:
        raise ValueError("cannot search an empty cloud")
    diff = cloud - _as_point(point)
    return np.einsum("ij,ij->i", diff, diff)


def _parallel_map(func: Callable[[int], T], count: int) -> list[T]:
    with ThreadPoolExecutor() as executor:
        return list(executor.map(func, range(count)))


def bfnn_point(cloud, point) -> int:
    """Index of the point in ``cloud`` closest to ``point``; the first one on ties."""
    return int(np.argmin(_squared_distances(_as_cloud(cloud), point)))


def bfnn_point_k(cloud, point, k: int = 5) -> list[int]:
    """Indices of the ``k`` points closest to ``point``, nearest first."""
    pts = _as_cloud(cloud)
    if k > len(pts):
        raise ValueError(f"cannot find {k} neighbours in a cloud of {len(pts)} points")
    order = np.argsort(_squared_distances(pts, point), kind="stable")
    return [int(i) for i in order[:k]]


def bfnn_cloud(cloud1, cloud2) -> list[tuple[int, int]]:
    """For every point of ``cloud2`` the pair (nearest index in ``cloud1``, its own index)."""
    target = _as_cloud(cloud1)
    query = _as_cloud(cloud2)
    return [(bfnn_point(target, p), i) for i, p in enumerate(query)]


def bfnn_cloud_mt(cloud1, cloud2) -> list[tuple[int, int]]:
    """Same as :func:`bfnn_cloud`, with the queries spread over threads."""
    target = _as_cloud(cloud1)
    query = _as_cloud(cloud2)
    return _parallel_map(lambda i: (bfnn_point(target, query[i]), i), len(query))


def bfnn_cloud_mt_k(cloud1, cloud2, k: int = 5) -> list[tuple[int, int]]:
    """``k`` pairs (neighbour in ``cloud1``, query index) for every point of ``cloud2``."""
    target = _as_cloud(cloud1)
    query = _as_cloud(cloud2)
    groups = _parallel_map(
        lambda i: [(j, i) for j in bfnn_point_k(target, query[i], k)], len(query)
    )
    return [pair for group in groups for pair in group]