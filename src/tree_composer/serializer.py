"""Forest serializer — turns composed forests into JSON-ready structures."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from tree_composer.composer import TreeNode


@dataclass
class SerializeOptions:
    """Options controlling forest serialization."""

    indent: Optional[int] = None
    include_payload: bool = True
    flatten_payload: bool = False  # merge dict payload keys into the node object
    children_key: str = "children"


def _serialize(obj: Any) -> Any:
    """Recursively serialize dataclasses, enums, and primitives to JSON-safe types."""
    if isinstance(obj, Enum):
        return _serialize(obj.value)
    if hasattr(obj, "__dataclass_fields__"):
        return {k: _serialize(getattr(obj, k)) for k in obj.__dataclass_fields__}
    if isinstance(obj, (list, tuple)):
        return [_serialize(item) for item in obj]
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    return obj


def _node_fields(tree_node: TreeNode, options: SerializeOptions) -> Dict[str, Any]:
    node = tree_node.node
    fields: Dict[str, Any] = {}
    if options.include_payload and options.flatten_payload and isinstance(node.payload, dict):
        fields.update(_serialize(node.payload))
    fields.update(
        {
            "id": _serialize(node.id),
            "parent_id": _serialize(node.parent_id),
            "group_key": _serialize(node.group_key),
            "order": node.order,
        }
    )
    if options.include_payload and not (options.flatten_payload and isinstance(node.payload, dict)):
        fields["payload"] = _serialize(node.payload)
    return fields


def tree_to_dict(root: TreeNode, options: SerializeOptions | None = None) -> Dict[str, Any]:
    """Convert one TreeNode and its subtree to nested dicts.

    Uses an explicit stack so arbitrarily deep trees convert.
    """
    if options is None:
        options = SerializeOptions()

    top = _node_fields(root, options)
    top[options.children_key] = []
    stack = [(root, top)]
    while stack:
        tree_node, out = stack.pop()
        for child in tree_node.children:
            child_out = _node_fields(child, options)
            child_out[options.children_key] = []
            out[options.children_key].append(child_out)
            stack.append((child, child_out))
    return top


def _group_label(key: Any) -> str:
    value = _serialize(key)
    return value if isinstance(value, str) else json.dumps(value)


def forest_to_dict(
    forests: Dict[Any, List[TreeNode]], options: SerializeOptions | None = None
) -> Dict[str, List[Dict[str, Any]]]:
    """Convert a group → forest mapping into a JSON-safe dict.

    Group keys become strings: strings as-is, enums by value, anything else
    as its JSON text (so ``1`` becomes ``"1"``). Raises ValueError when two
    distinct keys map to the same label, e.g. ``1`` and ``"1"``.
    """
    result: Dict[str, List[Dict[str, Any]]] = {}
    owners: Dict[str, Any] = {}
    for key, roots in forests.items():
        label = _group_label(key)
        if label in owners:
            raise ValueError(
                f"Group keys {owners[label]!r} and {key!r} both serialize as {label!r}"
            )
        owners[label] = key
        result[label] = [tree_to_dict(root, options) for root in roots]
    return result


def dumps_forest(
    forests: Dict[Any, List[TreeNode]], options: SerializeOptions | None = None
) -> str:
    """Serialize a group → forest mapping to a JSON string."""
    if options is None:
        options = SerializeOptions()
    data = forest_to_dict(forests, options)
    if options.indent is None:
        return json.dumps(data, separators=(",", ":"))
    return json.dumps(data, indent=options.indent)
