"""Flat record set loader — parses NDJSON node records."""

from __future__ import annotations

import gzip
import json
import math
import sys
import warnings
from dataclasses import dataclass
from typing import IO, Any, Hashable, Optional, Union

Order = Union[int, float]

_PARENT_KEYS = ("parent_id", "parentId", "parent")
_GROUP_KEYS = ("group_key", "groupKey", "group")
_ORDER_KEYS = ("order", "sort_order", "sortOrder")
_KNOWN_KEYS = frozenset(("id", "payload") + _PARENT_KEYS + _GROUP_KEYS + _ORDER_KEYS)


@dataclass(frozen=True)
class Node:
    """A single record of a flat, self-referencing record set."""

    id: Hashable
    parent_id: Optional[Hashable]
    group_key: Hashable
    order: Optional[Order] = None
    payload: Any = None


def _first_present(obj: dict[str, Any], keys: tuple[str, ...]) -> tuple[bool, Any]:
    for key in keys:
        if key in obj:
            return True, obj[key]
    return False, None


def _coerce_order(value: Any) -> Optional[Order]:
    """Convert an order value to a number.

    Accepts ints, floats, numeric strings and null. Booleans are rejected
    even though they are ints to Python, and so are NaN and infinities.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid order value {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Invalid order value {value!r}")
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            raise ValueError(f"Invalid order value {value!r}") from None
        if not math.isfinite(number):
            raise ValueError(f"Invalid order value {value!r}")
        return number
    raise ValueError(f"Invalid order value {value!r}")


def parse_record(obj: Any) -> Node:
    """Convert one decoded JSON object into a Node.

    Raises ValueError if the object has no ``id`` or no group key, or if the
    id or parent id is a JSON array or object.
    """
    if not isinstance(obj, dict):
        raise ValueError("Record is not a JSON object")
    if obj.get("id") is None:
        raise ValueError("Record is missing 'id'")
    if isinstance(obj["id"], (list, dict)):
        raise ValueError(f"Record has an unhashable id {obj['id']!r}")

    found, group_key = _first_present(obj, _GROUP_KEYS)
    if not found or group_key is None:
        raise ValueError(f"Record {obj['id']!r} is missing a group key")
    if isinstance(group_key, (list, dict)):
        raise ValueError(f"Record {obj['id']!r} has an unhashable group key")

    _, parent_id = _first_present(obj, _PARENT_KEYS)
    if isinstance(parent_id, (list, dict)):
        raise ValueError(f"Record {obj['id']!r} has an unhashable parent id")
    _, order = _first_present(obj, _ORDER_KEYS)

    if "payload" in obj:
        payload = obj["payload"]
    else:
        # Anything we don't recognise travels as the payload
        payload = {k: v for k, v in obj.items() if k not in _KNOWN_KEYS}

    return Node(
        id=obj["id"],
        parent_id=parent_id,
        group_key=group_key,
        order=_coerce_order(order),
        payload=payload,
    )


def parse_line(line: str) -> list[Node]:
    """Parse a single NDJSON line holding a record or an array of records.

    Raises ValueError if the JSON is malformed or a record is invalid.
    """
    data = json.loads(line)

    if isinstance(data, dict):
        return [parse_record(data)]
    if isinstance(data, list):
        return [parse_record(item) for item in data]
    raise ValueError("Line is neither a JSON object nor an array")


def parse_stream(stream: IO, strict: bool = False) -> list[Node]:
    """Parse an NDJSON stream, returning all records in input order.

    Malformed lines are skipped with a warning unless ``strict`` is set,
    in which case the first malformed line raises ValueError.
    """
    nodes: list[Node] = []
    for line_num, line in enumerate(stream, start=1):
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.strip()
        if not line:
            continue
        try:
            nodes.extend(parse_line(line))
        except (json.JSONDecodeError, ValueError) as exc:
            if strict:
                raise ValueError(f"Malformed line {line_num}: {exc}") from exc
            warnings.warn(
                f"Skipping malformed line {line_num}: {exc}",
                stacklevel=2,
            )
    return nodes


def parse_file(path: str, strict: bool = False) -> list[Node]:
    """Parse an NDJSON record file (plain or gzip-compressed).

    Supports:
    - Plain text files
    - Gzip-compressed ``.gz`` files
    - ``-`` for stdin
    """
    if path == "-":
        return parse_stream(sys.stdin, strict=strict)

    if path.endswith(".gz"):
        with gzip.open(path, "rt", encoding="utf-8") as f:
            return parse_stream(f, strict=strict)

    with open(path, encoding="utf-8") as f:
        return parse_stream(f, strict=strict)
