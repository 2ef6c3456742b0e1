"""A k-d tree over 3D points with exact or approximate k-nearest-neighbour search."""

from __future__ import annotations

import heapq
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

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


@dataclass(eq=False)
class KdTreeNode:
    id: int = -1
    point_idx: int = 0
    axis_index: int = 0
    split_thresh: float = 0.0
    left: KdTreeNode | None = None
    right: KdTreeNode | None = None

    def is_leaf(self) -> bool:
        return self.left is None and self.right is None


class KdTree:
    """Binary tree splitting on the axis of largest spread at its mean.

    Approximate search is on by default: a subtree on the far side of a
    split is only visited when its squared distance is below ``alpha``
    times the current k-th best squared distance.
    """

    def __init__(self):
        self.root: KdTreeNode | None = None
        self.nodes: dict[int, KdTreeNode] = {}
        self.approximate = True
        self.alpha = 0.1
        self._cloud = np.zeros((0, 3))
        self._size = 0
        self._next_id = 0

    def __len__(self) -> int:
        """Number of leaves, i.e. of indexed points."""
        return self._size

    def clear(self) -> None:
        self.root = None
        self.nodes = {}
        self._cloud = np.zeros((0, 3))
        self._size = 0
        self._next_id = 0

    def set_enable_ann(self, use_ann: bool = True, alpha: float = 0.1) -> None:
        self.approximate = use_ann
        self.alpha = alpha

    def _new_node(self) -> KdTreeNode:
        node = KdTreeNode(id=self._next_id)
        self._next_id += 1
        self.nodes[node.id] = node
        return node

    def build_tree(self, cloud) -> None:
        """Build the tree from ``cloud``; duplicate points collapse into one leaf."""
        pts = _as_cloud(cloud)
        if len(pts) == 0:
            raise ValueError("cannot build a tree from an empty cloud")
        self.clear()
        self._cloud = pts

        # Depth-first: a left subtree is complete before its right sibling is created.
        stack: list[tuple[KdTreeNode | None, str, np.ndarray]] = [(None, "", np.arange(len(pts)))]
        while stack:
            parent, side, idx = stack.pop()
            node = self._new_node()
            if parent is None:
                self.root = node
            else:
                setattr(parent, side, node)
            split = self._split(idx)
            if split is None:
                self._size += 1
                node.point_idx = int(idx[0])
                continue
            node.axis_index, node.split_thresh, left, right = split
            stack.append((node, "right", right))
            stack.append((node, "left", left))

    def _split(self, idx: np.ndarray):
        if len(idx) == 1:
            return None
        coords = self._cloud[idx]
        mean = coords.mean(axis=0)
        var = coords.var(axis=0, ddof=1)
        axis = int(np.argmax(var))
        thresh = float(mean[axis])
        mask = coords[:, axis] < thresh
        left, right = idx[mask], idx[~mask]
        if len(left) == 0 or len(right) == 0:
            return None
        return axis, thresh, left, right

    def get_closest_point(self, pt, k: int = 5) -> list[int]:
        """Indices of the ``k`` nearest points, nearest first."""
        if k < 1:
            raise ValueError("k must be at least 1")
        if k > self._size:
            raise ValueError(f"cannot set k larger than cloud size: {k}, {self._size}")
        p = np.asarray(pt, dtype=float).reshape(-1)[:3]
        heap: list[tuple[float, int, KdTreeNode]] = []

        stack: list[tuple[bool, KdTreeNode, KdTreeNode | None]] = [(False, self.root, None)]
        while stack:
            expand, node, other = stack.pop()
            if expand:
                if self._need_expand(p, node, heap, k):
                    stack.append((False, other, None))
                continue
            if node.is_leaf():
                self._add_leaf(p, node, heap, k)
                continue
            if p[node.axis_index] < node.split_thresh:
                this_side, that_side = node.left, node.right
            else:
                this_side, that_side = node.right, node.left
            stack.append((True, node, that_side))
            stack.append((False, this_side, None))

        return [node.point_idx for _, _, node in sorted(heap, key=lambda e: -e[0])]

    def _add_leaf(self, p: np.ndarray, node: KdTreeNode, heap: list, k: int) -> None:
        diff = p - self._cloud[node.point_idx]
        dis2 = float(diff @ diff)
        entry = (-dis2, node.id, node)
        if len(heap) < k:
            heapq.heappush(heap, entry)
        elif dis2 < -heap[0][0]:
            heapq.heapreplace(heap, entry)

    def _need_expand(self, p: np.ndarray, node: KdTreeNode, heap: list, k: int) -> bool:
        if len(heap) < k:
            return True
        d = p[node.axis_index] - node.split_thresh
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

    def describe(self) -> list[str]:
        """One line per node, ordered by node id."""
        lines = []
        for node_id in sorted(self.nodes):
            node = self.nodes[node_id]
            if node.is_leaf():
                lines.append(f"leaf node: {node.id}, idx: {node.point_idx}")
            else:
                lines.append(f"node: {node.id}, axis: {node.axis_index}, th: {node.split_thresh}")
        return lines