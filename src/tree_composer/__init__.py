"""Compose flat parent-pointer records into grouped, ordered forests."""

__version__ = "0.1.0"

from tree_composer.composer import (  # noqa: E402
    ComposeOptions,
    TreeNode,
    compose,
    compose_group,
    compose_shallow,
)
from tree_composer.errors import (  # noqa: E402
    CompositionError,
    CrossGroupReference,
    CycleDetected,
    DepthLimitExceeded,
    DuplicateIdentifier,
    InvalidKey,
    UnknownGroupKeyRequested,
)
from tree_composer.records import Node  # noqa: E402

__all__ = [
    "ComposeOptions",
    "CompositionError",
    "CrossGroupReference",
    "CycleDetected",
    "DepthLimitExceeded",
    "DuplicateIdentifier",
    "InvalidKey",
    "Node",
    "TreeNode",
    "UnknownGroupKeyRequested",
    "__version__",
    "compose",
    "compose_group",
    "compose_shallow",
]
