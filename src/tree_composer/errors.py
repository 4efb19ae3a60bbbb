"""Composition errors raised by the tree composer."""

from __future__ import annotations

from typing import Any, Iterable, List


class CompositionError(ValueError):
    """Base class for every error raised while composing a forest."""


class DuplicateIdentifier(CompositionError):
    """Two or more input nodes share the same id."""

    def __init__(self, identifiers: Iterable[Any]):
        self.identifiers: List[Any] = list(identifiers)
        shown = ", ".join(repr(i) for i in self.identifiers[:10])
        more = len(self.identifiers) - 10
        if more > 0:
            shown += f" (and {more} more)"
        super().__init__(f"Duplicate node id(s): {shown}")

    @property
    def identifier(self) -> Any:
        return self.identifiers[0]


class CycleDetected(CompositionError):
    """A node's ancestor chain revisits a node already on the path."""

    def __init__(self, identifier: Any, group_key: Any = None):
        self.identifier = identifier
        self.group_key = group_key
        super().__init__(
            f"Cycle detected at node id {identifier!r} in group {group_key!r}"
        )


class UnknownGroupKeyRequested(CompositionError):
    """Requested group keys are not present in the input."""

    def __init__(self, keys: Iterable[Any]):
        self.keys: List[Any] = list(keys)
        shown = ", ".join(repr(k) for k in self.keys)
        super().__init__(f"Unknown group key(s) requested: {shown}")


class CrossGroupReference(CompositionError):
    """A node's parent exists in the input but belongs to another group."""

    def __init__(self, identifier: Any, parent_id: Any, group_key: Any):
        self.identifier = identifier
        self.parent_id = parent_id
        self.group_key = group_key
        super().__init__(
            f"Node {identifier!r} in group {group_key!r} references parent "
            f"{parent_id!r} from a different group"
        )


class DepthLimitExceeded(CompositionError):
    """A group is deeper than the bounded composition was told to expect."""

    def __init__(self, group_key: Any, max_depth: int):
        self.group_key = group_key
        self.max_depth = max_depth
        super().__init__(
            f"Group {group_key!r} has nodes deeper than max_depth={max_depth}"
        )


class InvalidKey(CompositionError):
    """Ids or group keys are unhashable or cannot be ordered against each other."""
