"""
Pytest configuration and Hypothesis strategies for property-based testing.

This module provides custom Hypothesis strategies for generating flat,
parent-pointer record sets: single forests with known structure, several
groups sharing one input, and orphaned records.
"""

from typing import Any

from hypothesis import strategies as st

from tree_composer.records import Node

# ============================================================================
# Basic Building Blocks
# ============================================================================


group_keys = st.sampled_from(["menu", "product", "blog", "faq", "region"])

# Orders collide on purpose so the id tie-break gets exercised
orders = st.one_of(st.none(), st.integers(min_value=0, max_value=3))


@st.composite
def payload(draw) -> dict[str, Any]:
    """
    Generate a small opaque payload.

    Returns:
        Dict with a name and an active flag
    """
    return {
        "name": draw(st.sampled_from(["Home", "Phones", "Books", "News", "Help"])),
        "active": draw(st.booleans()),
    }


# ============================================================================
# Forest Strategies
# ============================================================================


@st.composite
def node_forest(
    draw,
    group_key: str | None = None,
    max_roots: int = 3,
    max_depth: int = 3,
    max_children: int = 3,
) -> list[Node]:
    """
    Generate a single group's forest as a flat list of Nodes.

    Ids are unique integers; the structure is a valid forest (no cycles)
    and every parent_id resolves inside the list.

    Args:
        group_key: Group key for every node (drawn when None)
        max_roots: Maximum number of roots
        max_depth: Maximum tree depth below each root
        max_children: Maximum children per node

    Returns:
        List of Nodes in generation (pre-order) order
    """
    if group_key is None:
        group_key = draw(group_keys)

    # Build the shape first, ids are assigned afterwards
    shape: list[int | None] = []

    def generate_subtree(parent_index: int | None, depth: int) -> None:
        index = len(shape)
        shape.append(parent_index)
        if depth < max_depth:
            num_children = draw(st.integers(min_value=0, max_value=max_children))
            for _ in range(num_children):
                generate_subtree(index, depth + 1)

    num_roots = draw(st.integers(min_value=1, max_value=max_roots))
    for _ in range(num_roots):
        generate_subtree(None, 0)

    ids = draw(
        st.lists(
            st.integers(min_value=1, max_value=1_000_000),
            min_size=len(shape),
            max_size=len(shape),
            unique=True,
        )
    )

    return [
        Node(
            id=ids[i],
            parent_id=None if parent_index is None else ids[parent_index],
            group_key=group_key,
            order=draw(orders),
            payload=draw(payload()),
        )
        for i, parent_index in enumerate(shape)
    ]


@st.composite
def multi_group_nodes(draw, max_groups: int = 3) -> list[Node]:
    """
    Generate forests for several distinct groups with globally unique ids.

    Args:
        max_groups: Maximum number of distinct group keys

    Returns:
        Shuffled flat list of Nodes from every group
    """
    keys = draw(st.lists(group_keys, min_size=1, max_size=max_groups, unique=True))
    nodes: list[Node] = []
    offset = 0
    for key in keys:
        forest = draw(node_forest(group_key=key, max_depth=2))
        # Shift ids so groups never collide
        shifted = [
            Node(
                id=n.id + offset,
                parent_id=None if n.parent_id is None else n.parent_id + offset,
                group_key=n.group_key,
                order=n.order,
                payload=n.payload,
            )
            for n in forest
        ]
        nodes.extend(shifted)
        offset += 10_000_000
    return draw(st.permutations(nodes))


@st.composite
def forest_with_orphans(draw) -> list[Node]:
    """
    Generate a forest where some nodes point at parents that don't exist.

    Returns:
        List of Nodes; orphan ids are negative so they never clash
    """
    nodes = draw(node_forest(group_key="menu"))
    num_orphans = draw(st.integers(min_value=1, max_value=3))
    for i in range(num_orphans):
        nodes.append(
            Node(
                id=-(i + 1),
                parent_id=-(i + 1000),
                group_key="menu",
                order=draw(orders),
            )
        )
    return draw(st.permutations(nodes))
