"""Forest statistics — per-group and overall counts for composed forests."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from tree_composer.composer import TreeNode, iter_depth_first


@dataclass
class GroupStatistics:
    group_key: Any
    roots: int
    nodes: int
    leaves: int
    max_depth: int
    orphans: int


@dataclass
class ForestStatistics:
    total_nodes: int
    total_roots: int
    total_orphans: int
    groups: List[GroupStatistics] = field(default_factory=list)


def _group_statistics(group_key: Any, roots: List[TreeNode]) -> GroupStatistics:
    """Walk one forest and count its nodes, leaves and depth.

    Depth counts levels, so a forest of bare roots has depth 1 and an empty
    forest has depth 0. A root whose record names a parent is an orphan that
    was promoted.
    """
    nodes = leaves = max_depth = 0
    for depth, tree_node in iter_depth_first(roots):
        nodes += 1
        if not tree_node.children:
            leaves += 1
        max_depth = max(max_depth, depth + 1)
    orphans = sum(1 for r in roots if r.node.parent_id is not None)
    return GroupStatistics(
        group_key=group_key,
        roots=len(roots),
        nodes=nodes,
        leaves=leaves,
        max_depth=max_depth,
        orphans=orphans,
    )


def compute_statistics(forests: Dict[Any, List[TreeNode]]) -> ForestStatistics:
    """Compute aggregate statistics from a composed group → forest mapping."""
    groups = [_group_statistics(key, roots) for key, roots in forests.items()]
    return ForestStatistics(
        total_nodes=sum(g.nodes for g in groups),
        total_roots=sum(g.roots for g in groups),
        total_orphans=sum(g.orphans for g in groups),
        groups=groups,
    )
