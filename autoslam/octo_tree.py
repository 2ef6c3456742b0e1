"""An octree over 3D points with exact or approximate k-nearest-neighbour search."""

from __future__ import annotations

import heapq
import logging
import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from autoslam.bfnn import INVALID_ID

logger = logging.getLogger(__name__)


def _as_cloud(cloud) -> np.ndarray:
    arr = np.atleast_2d(np.asarray(cloud, dtype=float))
    if arr.size == 0:
        return np.zeros((0, 3))
    if arr.shape[1] < 3:
        raise ValueError("points need at least three coordinates")
    return arr[:, :3]


class Box3D:
    """Axis-aligned box given by its bounds on each axis."""

    def __init__(
        self,
        min_x: float = 0.0,
        max_x: float = 0.0,
        min_y: float = 0.0,
        max_y: float = 0.0,
        min_z: float = 0.0,
        max_z: float = 0.0,
    ):
        self.min = np.array([min_x, min_y, min_z], dtype=float)
        self.max = np.array([max_x, max_y, max_z], dtype=float)

    def __repr__(self) -> str:
        return f"Box3D(min={self.min.tolist()}, max={self.max.tolist()})"

    def inside(self, pt) -> bool:
        """True if ``pt`` lies in the box, borders included."""
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        return bool(np.all(p <= self.max) and np.all(p >= self.min))

    def distance(self, pt) -> float:
        """Largest distance of ``pt`` outside the box along any single axis; 0 inside."""
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        below = self.min - p
        above = p - self.max
        return float(max(0.0, below.max(), above.max()))


class OctoTreeNode:
    """Octree node; a leaf holds one point index, or -1 when it is empty."""

    def __init__(self, node_id: int = -1, box: Box3D | None = None):
        self.id = node_id
        self.point_idx = -1
        self.box = box if box is not None else Box3D()
        self.children: list[OctoTreeNode] | None = None

    def is_leaf(self) -> bool:
        return self.children is None


class OctoTree:
    """Octree that splits every node holding more than one point into eight octants.

    Approximate search is off by default. When on, a sibling octant is only
    visited when its squared box distance is below ``alpha`` times the
    current k-th best squared distance.
    """

    def __init__(self):
        self.root: OctoTreeNode | None = None
        self.nodes: dict[int, OctoTreeNode] = {}
        self.approximate = False
        self.alpha = 1.0
        self._cloud = np.zeros((0, 3))
        self._size = 0
        self._next_id = 0

    def __len__(self) -> int:
        """Number of leaves holding a point."""
        return self._size

    def clear(self) -> None:
        self.root = None
        self.nodes = {}
        self._cloud = np.zeros((0, 3))
        self._size = 0
        self._next_id = 0

    def set_approximate(self, use_ann: bool = True, alpha: float = 0.1) -> None:
        self.approximate = use_ann
        self.alpha = alpha

    def _new_node(self, box: Box3D | None = None) -> OctoTreeNode:
        node = OctoTreeNode(self._next_id, box)
        self._next_id += 1
        self.nodes[node.id] = node
        return node

    def build_tree(self, cloud) -> None:
        """Build the tree from ``cloud``; identical points collapse into one leaf."""
        pts = _as_cloud(cloud)
        if len(pts) == 0:
            raise ValueError("cannot build a tree from an empty cloud")
        self.clear()
        self._cloud = pts

        lo, hi = pts.min(axis=0), pts.max(axis=0)
        self.root = self._new_node(Box3D(lo[0], hi[0], lo[1], hi[1], lo[2], hi[2]))

        stack: list[tuple[OctoTreeNode, np.ndarray]] = [(self.root, np.arange(len(pts)))]
        while stack:
            node, idx = stack.pop()
            if len(idx) == 0:
                continue
            coords = pts[idx]
            if len(idx) == 1 or np.all(coords == coords[0]):
                self._size += 1
                node.point_idx = int(idx[0])
                continue
            children_idx = self._expand(node, idx)
            for child, child_idx in reversed(list(zip(node.children, children_idx))):
                stack.append((child, child_idx))

    def _expand(self, node: OctoTreeNode, parent_idx: np.ndarray) -> list[np.ndarray]:
        b = node.box
        cx, cy, cz = 0.5 * (b.min + b.max)
        (x0, y0, z0), (x1, y1, z1) = b.min, b.max
        boxes = [
            Box3D(x0, cx, y0, cy, z0, cz),
            Box3D(cx, x1, y0, cy, z0, cz),
            Box3D(x0, cx, cy, y1, z0, cz),
            Box3D(cx, x1, cy, y1, z0, cz),
            Box3D(x0, cx, y0, cy, cz, z1),
            Box3D(cx, x1, y0, cy, cz, z1),
            Box3D(x0, cx, cy, y1, cz, z1),
            Box3D(cx, x1, cy, y1, cz, z1),
        ]
        node.children = [self._new_node(box) for box in boxes]

        buckets: list[list[int]] = [[] for _ in range(8)]
        for i in parent_idx:
            pt = self._cloud[i]
            for bucket, child in zip(buckets, node.children):
                if child.box.inside(pt):
                    bucket.append(int(i))
                    break
        return [np.array(bucket, dtype=int) for bucket in buckets]

    def get_closest_point(self, pt, k: int = 5) -> list[int]:
        """Indices of the ``k`` nearest points, nearest first."""
        if k < 1:
            raise ValueError("k must be at least 1")
        if k > self._size:
            raise ValueError(f"cannot set k larger than cloud size: {k}, {self._size}")
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        heap: list[tuple[float, int, OctoTreeNode]] = []

        # Entries are (check_first, node): checked entries are visited only if still worth it.
        stack: list[tuple[bool, OctoTreeNode]] = [(False, self.root)]
        while stack:
            check, node = stack.pop()
            if check and not self._need_expand(p, node, heap, k):
                continue
            if node.is_leaf():
                if node.point_idx != -1:
                    self._add_leaf(p, node, heap, k)
                continue

            first = self._closest_child(p, node)
            for i in reversed(range(8)):
                if i != first:
                    stack.append((True, node.children[i]))
            stack.append((False, node.children[first]))

        return [n.point_idx for _, _, n in sorted(heap, key=lambda e: -e[0])]

    @staticmethod
    def _closest_child(p: np.ndarray, node: OctoTreeNode) -> int:
        best, min_dis = -1, math.inf
        for i, child in enumerate(node.children):
            if child.box.inside(p):
                return i
            d = child.box.distance(p)
            if d < min_dis:
                best, min_dis = i, d
        return best

    def _add_leaf(self, p: np.ndarray, node: OctoTreeNode, heap: list, k: int) -> None:
        diff = p - self._cloud[node.point_idx]
        dis2 = float(diff @ diff)
        entry = (-dis2, node.id, node)
        if len(heap) < k:
            heapq.heappush(heap, entry)
        elif dis2 < -heap[0][0]:
            heapq.heapreplace(heap, entry)

    def _need_expand(self, p: np.ndarray, node: OctoTreeNode, heap: list, k: int) -> bool:
        if len(heap) < k:
            return True
        d = node.box.distance(p)
        limit = -heap[0][0]
        if self.approximate:
            limit *= self.alpha
        return d * d < limit

    def get_closest_point_mt(self, cloud, k: int = 5) -> list[tuple[int, int]]:
        """``k`` pairs (neighbour index, query index) per query point, INVALID_ID where missing."""
        pts = _as_cloud(cloud)

        def query(i: int) -> list[tuple[int, int]]:
            try:
                found = self.get_closest_point(pts[i], k)
            except ValueError as err:
                logger.error("%s", err)
                found = []
            return [(found[j] if j < len(found) else INVALID_ID, i) for j in range(k)]

        with ThreadPoolExecutor() as executor:
            groups = list(executor.map(query, range(len(pts))))
        return [pair for group in groups for pair in group]