"""ParseQuery — builder for Parse REST ``where`` constraints."""

from __future__ import annotations

import json
import re
from datetime import date, datetime, timezone
from typing import Any


def encode_value(value: Any) -> Any:
    """Encode Python values into Parse REST JSON (dates → ``Date`` objects)."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        iso = value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        return {"__type": "Date", "iso": iso}
    if isinstance(value, date):
        return encode_value(datetime(value.year, value.month, value.day))
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    if isinstance(value, dict):
        return {k: encode_value(v) for k, v in value.items()}
    return value


def decode_value(value: Any) -> Any:
    """Decode Parse REST JSON (``Date`` objects → ISO strings)."""
    if isinstance(value, dict):
        if value.get("__type") == "Date":
            return value.get("iso")
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


# ── Atomic update operators ─────────────────────────────────


def increment(amount: int = 1) -> dict[str, Any]:
    return {"__op": "Increment", "amount": amount}


def add_unique(*items: Any) -> dict[str, Any]:
    return {"__op": "AddUnique", "objects": list(items)}


def remove(*items: Any) -> dict[str, Any]:
    return {"__op": "Remove", "objects": list(items)}


class ParseQuery:
    """Chainable query against one Parse class.

    Constraints on the same key are merged, so
    ``q.greater_than_or_equal_to("rating", 4).less_than("rating", 5)``
    renders ``{"rating": {"$gte": 4, "$lt": 5}}``.
    """

    def __init__(self, class_name: str) -> None:
        self.class_name = class_name
        self._where: dict[str, Any] = {}
        self._order: list[str] = []
        self._limit: int | None = None
        self._skip: int | None = None

    # ── Constraints ─────────────────────────────────────────

    def equal_to(self, key: str, value: Any) -> ParseQuery:
        self._where[key] = encode_value(value)
        return self

    def not_equal_to(self, key: str, value: Any) -> ParseQuery:
        return self._op(key, "$ne", value)

    def greater_than(self, key: str, value: Any) -> ParseQuery:
        return self._op(key, "$gt", value)

    def greater_than_or_equal_to(self, key: str, value: Any) -> ParseQuery:
        return self._op(key, "$gte", value)

    def less_than(self, key: str, value: Any) -> ParseQuery:
        return self._op(key, "$lt", value)

    def less_than_or_equal_to(self, key: str, value: Any) -> ParseQuery:
        return self._op(key, "$lte", value)

    def contained_in(self, key: str, values: list[Any]) -> ParseQuery:
        return self._op(key, "$in", list(values))

    def contains_all(self, key: str, values: list[Any]) -> ParseQuery:
        return self._op(key, "$all", list(values))

    def matches(self, key: str, text: str, ignore_case: bool = True) -> ParseQuery:
        """Substring match; ``text`` is matched literally."""
        self._op(key, "$regex", re.escape(text))
        if ignore_case:
            self._where[key]["$options"] = "i"
        return self

    def or_(self, *queries: ParseQuery) -> ParseQuery:
        """AND this query with the OR of ``queries``' constraints."""
        self._where["$or"] = [q._where for q in queries]
        return self

    # ── Modifiers ───────────────────────────────────────────

    def ascending(self, key: str) -> ParseQuery:
        self._order.append(key)
        return self

    def descending(self, key: str) -> ParseQuery:
        self._order.append(f"-{key}")
        return self

    def limit(self, n: int) -> ParseQuery:
        self._limit = n
        return self

    def skip(self, n: int) -> ParseQuery:
        self._skip = n
        return self

    # ── Rendering ───────────────────────────────────────────

    @property
    def where(self) -> dict[str, Any]:
        return self._where

    def to_params(self) -> dict[str, Any]:
        """Render as REST query-string parameters."""
        params: dict[str, Any] = {}
        if self._where:
            params["where"] = json.dumps(self._where, separators=(",", ":"))
        if self._order:
            params["order"] = ",".join(self._order)
        if self._limit is not None:
            params["limit"] = self._limit
        if self._skip is not None:
            params["skip"] = self._skip
        return params

    def _op(self, key: str, op: str, value: Any) -> ParseQuery:
        current = self._where.get(key)
        if not isinstance(current, dict) or "__type" in current:
            current = {}
        current[op] = encode_value(value)
        self._where[key] = current
        return self

    def __repr__(self) -> str:
        return f"ParseQuery({self.class_name!r}, {self.to_params()!r})"
