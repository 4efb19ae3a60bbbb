"""Tree composer — reconstructs grouped, ordered forests from flat records."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from tree_composer.errors import (
    CrossGroupReference,
    CycleDetected,
    DepthLimitExceeded,
    DuplicateIdentifier,
    InvalidKey,
    UnknownGroupKeyRequested,
)
from tree_composer.records import Node

logger = logging.getLogger(__name__)

GroupKey = Hashable


@dataclass
class TreeNode:
    """A Node with its ordered child TreeNodes attached."""

    node: Node
    children: List[TreeNode] = field(default_factory=list)

    @property
    def id(self) -> Hashable:
        return self.node.id


@dataclass
class ComposeOptions:
    """Options controlling composition."""

    group_keys: Optional[Sequence[GroupKey]] = None
    reject_cross_group: bool = False
    max_depth: Optional[int] = None  # None: unbounded depth


def sibling_sort_key(node: Node) -> Tuple[bool, Any, Hashable]:
    """Order by ``order`` ascending, then ``id``; missing orders sort last.

    A NaN order never compares, so it counts as missing.
    """
    order = node.order
    missing = order is None or (isinstance(order, float) and math.isnan(order))
    return (missing, 0 if missing else order, node.id)


def _group_sort_key(key: GroupKey) -> Any:
    return key.value if isinstance(key, Enum) else key


def _ordered(items: Iterable[Any], key: Any, what: str) -> List[Any]:
    try:
        return sorted(items, key=key)
    except TypeError as exc:
        raise InvalidKey(f"{what} cannot be ordered against each other: {exc}") from exc


def sort_group_keys(keys: Iterable[GroupKey]) -> List[GroupKey]:
    """Sort group keys ascending; enum members sort by their value.

    Raises InvalidKey when the keys are not mutually orderable.
    """
    return _ordered(keys, _group_sort_key, "Group keys")


def group_by_key(nodes: Iterable[Node]) -> Dict[GroupKey, List[Node]]:
    """Group nodes by group_key into a dict, keeping input order per bucket."""
    groups: Dict[GroupKey, List[Node]] = {}
    for node in nodes:
        try:
            groups.setdefault(node.group_key, []).append(node)
        except TypeError:
            raise InvalidKey(f"Group key {node.group_key!r} is not hashable") from None
    return groups


def index_by_id(nodes: Iterable[Node]) -> Dict[Hashable, Node]:
    """Index nodes by id.

    Raises DuplicateIdentifier listing every id that occurs more than once,
    and InvalidKey for an unhashable id or parent id.
    """
    index: Dict[Hashable, Node] = {}
    duplicates: Dict[Hashable, None] = {}
    for node in nodes:
        try:
            seen = node.id in index
            hash(node.parent_id)
        except TypeError:
            raise InvalidKey(
                f"Node id {node.id!r} or its parent id {node.parent_id!r} is not hashable"
            ) from None
        if seen:
            duplicates[node.id] = None
            continue
        index[node.id] = node
    if duplicates:
        raise DuplicateIdentifier(duplicates)
    return index


def iter_depth_first(roots: Sequence[TreeNode]) -> Iterator[Tuple[int, TreeNode]]:
    """Yield ``(depth, node)`` pairs in pre-order; roots have depth 0."""
    stack = [(0, root) for root in reversed(roots)]
    while stack:
        depth, tree_node = stack.pop()
        yield depth, tree_node
        for child in reversed(tree_node.children):
            stack.append((depth + 1, child))


def count_nodes(roots: Sequence[TreeNode]) -> int:
    """Total number of nodes in a forest, roots included."""
    return sum(1 for _ in iter_depth_first(roots))


def _partition(
    index: Dict[Hashable, Node], group_key: GroupKey
) -> Tuple[List[Node], Dict[Hashable, List[Node]]]:
    """Split a bucket into sorted roots and a parent id → sorted children map.

    A node whose parent id does not resolve inside the bucket is promoted to
    a root rather than dropped.
    """
    roots: List[Node] = []
    children: Dict[Hashable, List[Node]] = {}
    orphans = 0

    for node in index.values():
        pid = node.parent_id
        if pid is not None and pid in index:
            children.setdefault(pid, []).append(node)
        else:
            if pid is not None:
                orphans += 1
            roots.append(node)

    if orphans:
        logger.info(
            "Group %r: %d node(s) with unresolved parent promoted to roots",
            group_key,
            orphans,
        )

    what = f"Node ids or orders in group {group_key!r}"
    roots = _ordered(roots, sibling_sort_key, what)
    children = {
        pid: _ordered(siblings, sibling_sort_key, what) for pid, siblings in children.items()
    }
    return roots, children


def _materialize(
    root: Node, children: Dict[Hashable, List[Node]], group_key: GroupKey
) -> TreeNode:
    """Build the full subtree under ``root``.

    Walks with an explicit stack so tree height is not limited by the
    interpreter recursion limit. Ids on the current path are tracked and a
    revisit raises CycleDetected.
    """
    top = TreeNode(node=root)
    path: Set[Hashable] = {root.id}
    stack = [(top, iter(children.get(root.id, ())))]

    while stack:
        parent, pending = stack[-1]
        child = next(pending, None)
        if child is None:
            stack.pop()
            path.discard(parent.node.id)
            continue
        if child.id in path:
            raise CycleDetected(child.id, group_key)
        tree_child = TreeNode(node=child)
        parent.children.append(tree_child)
        path.add(child.id)
        stack.append((tree_child, iter(children.get(child.id, ()))))

    return top


def _materialize_levels(
    roots: List[Node], children: Dict[Hashable, List[Node]], max_depth: int
) -> List[TreeNode]:
    """Attach nodes level by level, stopping after ``max_depth`` levels."""
    forest = [TreeNode(node=root) for root in roots]
    frontier = forest
    for _level in range(1, max_depth):
        next_frontier: List[TreeNode] = []
        for tree_node in frontier:
            for child in children.get(tree_node.node.id, ()):
                tree_child = TreeNode(node=child)
                tree_node.children.append(tree_child)
                next_frontier.append(tree_child)
        if not next_frontier:
            break
        frontier = next_frontier
    return forest


def _diagnose_unreached(
    index: Dict[Hashable, Node],
    reached: Set[Hashable],
    group_key: GroupKey,
    max_depth: Optional[int],
) -> None:
    """Explain why some nodes of a bucket never made it into the forest.

    Every unreached node either sits on or below a parent cycle, or (in
    bounded mode only) lies deeper than ``max_depth``. Cycles win.
    """
    cleared: Set[Hashable] = set(reached)
    unreached = _ordered(
        (n for n in index.values() if n.id not in reached),
        lambda n: n.id,
        f"Node ids in group {group_key!r}",
    )

    for node in unreached:
        chain: List[Hashable] = []
        on_chain: Set[Hashable] = set()
        current: Optional[Node] = node
        while current is not None and current.id not in cleared:
            if current.id in on_chain:
                raise CycleDetected(current.id, group_key)
            chain.append(current.id)
            on_chain.add(current.id)
            current = index.get(current.parent_id)
        cleared.update(chain)

    if max_depth is not None:
        raise DepthLimitExceeded(group_key, max_depth)


def compose_group(
    nodes: Sequence[Node],
    group_key: GroupKey = None,
    max_depth: Optional[int] = None,
) -> List[TreeNode]:
    """Compose the forest of a single bucket of nodes sharing one group key.

    With ``max_depth`` set, only that many levels are attached (roots are
    level 1); data deeper than that raises DepthLimitExceeded instead of
    being dropped.
    """
    return _compose_bucket(index_by_id(nodes), group_key, max_depth)


def _compose_bucket(
    index: Dict[Hashable, Node], group_key: GroupKey, max_depth: Optional[int]
) -> List[TreeNode]:
    if max_depth is not None and max_depth < 1:
        raise ValueError(f"max_depth must be at least 1, got {max_depth}")

    roots, children = _partition(index, group_key)

    if max_depth is None:
        forest = [_materialize(root, children, group_key) for root in roots]
    else:
        forest = _materialize_levels(roots, children, max_depth)

    reached = {tree_node.node.id for _, tree_node in iter_depth_first(forest)}
    if len(reached) != len(index):
        _diagnose_unreached(index, reached, group_key, max_depth)
    return forest


def _bucket_index(index: Dict[Hashable, Node]) -> Dict[GroupKey, Dict[Hashable, Node]]:
    """Split a global id index into one id index per group key."""
    buckets: Dict[GroupKey, Dict[Hashable, Node]] = {}
    for node_id, node in index.items():
        try:
            bucket = buckets.setdefault(node.group_key, {})
        except TypeError:
            raise InvalidKey(f"Group key {node.group_key!r} is not hashable") from None
        bucket[node_id] = node
    return buckets


def _check_cross_group(
    buckets: Dict[GroupKey, Dict[Hashable, Node]],
    keys: Sequence[GroupKey],
    index: Dict[Hashable, Node],
) -> None:
    for key in keys:
        offenders = [
            node
            for node in buckets[key].values()
            if node.parent_id is not None
            and node.parent_id in index
            and index[node.parent_id].group_key != key
        ]
        if offenders:
            first = _ordered(offenders, lambda n: n.id, f"Node ids in group {key!r}")[0]
            raise CrossGroupReference(first.id, first.parent_id, first.group_key)


def compose(
    nodes: Iterable[Node], options: Optional[ComposeOptions] = None
) -> Dict[GroupKey, List[TreeNode]]:
    """Compose flat nodes into one ordered forest per group key.

    Returns a dict mapping each group key (ascending) to its root TreeNodes.

    - Duplicate ids anywhere in the input raise DuplicateIdentifier before
      any tree is built
    - Orphans (parent id not found in their group) are treated as roots
    - Siblings and roots are sorted by (order, id)
    - Parent cycles raise CycleDetected; nothing is returned
    - Unhashable ids or keys, or ids in one group (or group keys) that
      cannot be compared, raise InvalidKey
    - The input is never mutated
    """
    if options is None:
        options = ComposeOptions()

    nodes = list(nodes)
    index = index_by_id(nodes)
    buckets = _bucket_index(index)

    if options.group_keys is None:
        selected = list(buckets)
    else:
        try:
            missing = [key for key in options.group_keys if key not in buckets]
        except TypeError as exc:
            raise InvalidKey(f"Requested group keys are not hashable: {exc}") from None
        if missing:
            raise UnknownGroupKeyRequested(missing)
        selected = list(dict.fromkeys(options.group_keys))
    selected = sort_group_keys(selected)

    if options.reject_cross_group:
        _check_cross_group(buckets, selected, index)

    forests: Dict[GroupKey, List[TreeNode]] = {}
    for key in selected:
        forests[key] = _compose_bucket(buckets[key], key, options.max_depth)
    return forests


def compose_shallow(
    nodes: Iterable[Node], max_depth: int = 2, options: Optional[ComposeOptions] = None
) -> Dict[GroupKey, List[TreeNode]]:
    """Bounded-depth composition for callers known to have shallow data.

    Attaches roots, their children, and so on up to ``max_depth`` levels.
    Gives the same result as compose() when the data fits the bound.
    """
    return compose(nodes, replace(options or ComposeOptions(), max_depth=max_depth))
