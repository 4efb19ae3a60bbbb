"""Forest cache — optional memoization of composed forests.

Entries are keyed by ``(group_key, fingerprint)`` plus the composition
options that change the outcome (``reject_cross_group``, ``max_depth``).
The fingerprint identifies one snapshot of the flat record set. The composer
itself knows nothing about this layer.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections import OrderedDict
from dataclasses import replace
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from tree_composer.composer import (
    ComposeOptions,
    GroupKey,
    TreeNode,
    compose,
    group_by_key,
    sort_group_keys,
)
from tree_composer.errors import UnknownGroupKeyRequested
from tree_composer.records import Node

logger = logging.getLogger(__name__)

# (group key, snapshot fingerprint or version, reject_cross_group, max_depth)
CacheKey = Tuple[GroupKey, Hashable, bool, Optional[int]]


def _cache_key(group_key: GroupKey, fingerprint: Hashable, options: ComposeOptions) -> CacheKey:
    return (group_key, fingerprint, options.reject_cross_group, options.max_depth)


def _record_digest(node: Node) -> str:
    record = [node.id, node.parent_id, node.group_key, node.order, node.payload]
    text = json.dumps(record, sort_keys=True, default=repr)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def snapshot_fingerprint(nodes: Iterable[Node]) -> str:
    """Return an order-independent SHA-256 fingerprint of a record set."""
    digest = hashlib.sha256()
    for record_digest in sorted(_record_digest(n) for n in nodes):
        digest.update(record_digest.encode("ascii"))
    return digest.hexdigest()


class ForestCache:
    """
    LRU cache of composed forests.

    Cached forests are shared between callers and must be treated as
    read-only. Safe to use from several threads.

    Example:
        >>> cache = ForestCache(max_entries=64)
        >>> forests = cache.get_or_compose(nodes, group_keys=["menu"])
        >>> again = cache.get_or_compose(nodes, group_keys=["menu"])  # Cache hit
    """

    def __init__(self, max_entries: int = 128):
        if max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {max_entries}")
        self._entries: "OrderedDict[CacheKey, List[TreeNode]]" = OrderedDict()
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _lookup(self, key: CacheKey) -> Optional[List[TreeNode]]:
        with self._lock:
            forest = self._entries.get(key)
            if forest is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return forest

    def _store(self, key: CacheKey, forest: List[TreeNode]) -> None:
        with self._lock:
            self._entries[key] = forest
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Cache EVICT: group %r", evicted[0])

    def get_or_compose(
        self,
        nodes: Sequence[Node],
        group_keys: Optional[Sequence[GroupKey]] = None,
        version: Optional[Hashable] = None,
        options: Optional[ComposeOptions] = None,
    ) -> Dict[GroupKey, List[TreeNode]]:
        """
        Return forests for the requested groups, composing only cache misses.

        Args:
            nodes: Complete flat record set (one snapshot).
            group_keys: Groups to return; defaults to every group present.
            version: Caller-supplied snapshot version. When omitted the
                     records are fingerprinted.
            options: Composition options; ``group_keys`` in here is ignored.
                     The other options are part of the cache key.

        Returns:
            Mapping of group key to forest, in the same key order compose()
            would produce.
        """
        nodes = list(nodes)
        options = options or ComposeOptions()
        fingerprint = version if version is not None else snapshot_fingerprint(nodes)
        present = group_by_key(nodes)
        if group_keys is None:
            wanted = list(present)
        else:
            missing = [key for key in group_keys if key not in present]
            if missing:
                raise UnknownGroupKeyRequested(missing)
            wanted = list(dict.fromkeys(group_keys))

        found: Dict[GroupKey, List[TreeNode]] = {}
        to_compose: List[GroupKey] = []
        for key in wanted:
            forest = self._lookup(_cache_key(key, fingerprint, options))
            if forest is None:
                logger.debug("Cache MISS: group %r", key)
                to_compose.append(key)
            else:
                logger.debug("Cache HIT: group %r", key)
                found[key] = forest

        if to_compose:
            composed = compose(nodes, replace(options, group_keys=to_compose))
            for key, forest in composed.items():
                self._store(_cache_key(key, fingerprint, options), forest)
                found[key] = forest

        return {key: found[key] for key in sort_group_keys(wanted)}
