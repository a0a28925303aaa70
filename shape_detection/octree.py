"""Adaptive octree used to index a point cloud.

Nodes, entries and child-slot arrays are stored in :class:`Pool` objects so
that repeated runs recycle the same Python objects. Nodes reference each
other through integer ids (their position inside the node pool) instead of
direct object references, which keeps the parent/child relation free of
ownership cycles.

Every node keeps the entries of all points inserted at or below it. This
costs ``O(depth)`` list slots per point but makes "all points under this
node" an ``O(1)`` query, which the shape detector relies on when drawing
spatially coherent samples.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import numpy as np

from .geometry import Cube

T = TypeVar("T")

ROOT = 0


class Pool(Generic[T]):
    """Recycling allocator handing out a prefix of its backing storage.

    ``data[:size]`` are live objects. Everything past ``size`` is free and has
    been passed through ``reset`` so that it holds no stale references.
    """

    def __init__(self, factory: Callable[[], T], reset: Callable[[T], None]) -> None:
        self._factory = factory
        self._reset = reset
        self.data: List[T] = []
        self.size = 0

    def grow(self) -> T:
        """Check out a clean object, reusing free storage when available."""

        if self.size < len(self.data):
            item = self.data[self.size]
            self._reset(item)
        else:
            item = self._factory()
            self.data.append(item)
        self.size += 1
        return item

    def release_last(self, count: int = 1) -> None:
        """Return the ``count`` most recently checked out objects to the pool."""

        if count < 0 or count > self.size:
            raise ValueError(f"Cannot release {count} objects from a pool of size {self.size}")
        for item in self.data[self.size - count:self.size]:
            self._reset(item)
        self.size -= count

    def reset(self) -> None:
        """Release every live object while keeping the backing storage."""

        self.release_last(self.size)

    def live(self) -> List[T]:
        return self.data[:self.size]

    def __getitem__(self, index: int) -> T:
        if index < 0 or index >= self.size:
            raise IndexError(f"Pool index {index} out of range for size {self.size}")
        return self.data[index]

    def __len__(self) -> int:
        return self.size


class IndexEntry:
    """A point stored in the octree together with caller data."""

    __slots__ = ("point", "payload", "index")

    def __init__(self) -> None:
        self.point: Optional[np.ndarray] = None
        self.payload: Any = None
        self.index = -1

    def reset(self) -> None:
        self.point = None
        self.payload = None
        self.index = -1


class OctreeNode:
    """A cube of space, optionally divided into eight children.

    ``children`` is ``None`` for a leaf. For an internal node it is a list of
    eight slots, each either ``None`` or the id of a child node.
    """

    __slots__ = ("space", "divider", "children", "entries", "parent")

    def __init__(self) -> None:
        self.space: Optional[Cube] = None
        self.divider: Optional[np.ndarray] = None
        self.children: Optional[List[Optional[int]]] = None
        self.entries: List[IndexEntry] = []
        self.parent: Optional[int] = None

    def reset(self) -> None:
        self.space = None
        self.divider = None
        self.children = None
        self.entries.clear()
        self.parent = None

    def is_leaf(self) -> bool:
        return self.children is None

    def point_count(self) -> int:
        return len(self.entries)

    def get_child_index(self, point: np.ndarray) -> int:
        """Return the octant (0-7) of ``point`` relative to this node's divider.

        Bit 0 is set when ``x >= divider.x``, bit 1 for y and bit 2 for z.
        """

        divider = self.divider
        index = 0
        if point[0] >= divider[0]:
            index |= 1
        if point[1] >= divider[1]:
            index |= 2
        if point[2] >= divider[2]:
            index |= 4
        return index


def _new_children() -> List[Optional[int]]:
    return [None] * 8


def _reset_children(children: List[Optional[int]]) -> None:
    for i in range(8):
        children[i] = None


class Octree:
    """Octree which splits a leaf once it holds more than ``max_points`` entries.

    A split only happens if the leaf's entries would land in at least two
    different octants. Leaves filled with coincident points therefore stay
    leaves no matter how many points they receive.
    """

    def __init__(self, max_points: int = 20) -> None:
        if max_points < 1:
            raise ValueError("max_points must be positive")
        self.max_points = max_points
        self.storage_nodes: Pool[OctreeNode] = Pool(OctreeNode, OctreeNode.reset)
        self.storage_entries: Pool[IndexEntry] = Pool(IndexEntry, IndexEntry.reset)
        self.storage_children: Pool[List[Optional[int]]] = Pool(_new_children, _reset_children)
        self._leaf_of: Dict[int, int] = {}
        self.initialize(Cube(np.zeros(3), np.ones(3)))

    def initialize(self, bounds: Cube) -> None:
        """Reset the tree to a single leaf covering ``bounds``."""

        self.storage_entries.reset()
        self.storage_children.reset()
        self.storage_nodes.reset()
        self._leaf_of.clear()

        root = self.storage_nodes.grow()
        root.space = bounds.copy()
        root.divider = root.space.center()

    @property
    def root(self) -> OctreeNode:
        return self.storage_nodes[ROOT]

    def node(self, node_id: int) -> OctreeNode:
        return self.storage_nodes[node_id]

    def all_nodes(self) -> List[OctreeNode]:
        return self.storage_nodes.live()

    def get_child_index(self, point: np.ndarray, node_id: int = ROOT) -> int:
        return self.storage_nodes[node_id].get_child_index(point)

    def add_point(self, point: np.ndarray, payload: Any = None, index: int = -1) -> IndexEntry:
        """Insert ``point`` and return the entry created for it.

        The point must lie inside the bounds given to :meth:`initialize`.
        ``index`` is the point's position in the caller's cloud; when it is
        non-negative the containing leaf can later be looked up with
        :meth:`leaf_of`.
        """

        entry = self.storage_entries.grow()
        entry.point = point
        entry.payload = payload
        entry.index = index

        node_id = ROOT
        while True:
            node = self.storage_nodes[node_id]
            node.entries.append(entry)
            if node.children is None:
                self._record_leaf(entry, node_id)
                if len(node.entries) > self.max_points:
                    # a leaf already over capacity failed its last split attempt,
                    # so its older entries all share one octant
                    self._try_split(node_id, single_octant=len(node.entries) - 1 > self.max_points)
                return entry

            octant = node.get_child_index(point)
            child_id = node.children[octant]
            if child_id is None:
                child_id = self._checkout_child(node_id, octant)
            node_id = child_id

    def leaf_of(self, index: int) -> int:
        """Return the id of the leaf currently holding cloud index ``index``."""

        return self._leaf_of[index]

    def path_to_root(self, node_id: int) -> List[int]:
        """Return node ids from ``node_id`` up to and including the root."""

        path = [node_id]
        parent = self.storage_nodes[node_id].parent
        while parent is not None:
            path.append(parent)
            parent = self.storage_nodes[parent].parent
        return path

    def depth(self, node_id: int) -> int:
        return len(self.path_to_root(node_id)) - 1

    def _record_leaf(self, entry: IndexEntry, node_id: int) -> None:
        if entry.index >= 0:
            self._leaf_of[entry.index] = node_id

    def _checkout_child(self, parent_id: int, octant: int) -> int:
        parent = self.storage_nodes[parent_id]
        child_id = self.storage_nodes.size
        child = self.storage_nodes.grow()
        child.space = parent.space.octant(octant, parent.divider)
        child.divider = child.space.center()
        child.parent = parent_id
        parent.children[octant] = child_id
        return child_id

    def _try_split(self, node_id: int, single_octant: bool = False) -> None:
        """Split leaf ``node_id`` if its entries occupy two or more octants.

        ``single_octant`` states that all entries but the newest are known to
        share one octant, so only the newest one needs to be classified.
        """

        node = self.storage_nodes[node_id]
        entries = node.entries

        if single_octant:
            first = node.get_child_index(entries[0].point)
            last = node.get_child_index(entries[-1].point)
            if last == first:
                return
            octants = [first] * (len(entries) - 1) + [last]
        else:
            octants = [node.get_child_index(entry.point) for entry in entries]
            if len(set(octants)) < 2:
                return

        node.children = self.storage_children.grow()
        for entry, octant in zip(entries, octants):
            child_id = node.children[octant]
            if child_id is None:
                child_id = self._checkout_child(node_id, octant)
            self.storage_nodes[child_id].entries.append(entry)
            self._record_leaf(entry, child_id)

        for child_id in node.children:
            if child_id is not None and len(self.storage_nodes[child_id].entries) > self.max_points:
                self._try_split(child_id)
