"""Shared fixtures — in-memory Parse backend, config, store."""

from __future__ import annotations

import itertools
import operator
import re
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from mabar.core.config.schema import Config
from mabar.core.parse.query import ParseQuery, decode_value, encode_value
from mabar.memory.store import MemoryStore

_COMPARE = {
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}


def _get(obj: dict[str, Any], key: str) -> Any:
    value: Any = obj
    for part in key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def _check(op: str, value: Any, arg: Any, cond: dict[str, Any]) -> bool:
    if op == "$regex":
        flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
        return value is not None and re.search(arg, str(value), flags) is not None
    if op == "$all":
        return isinstance(value, list) and all(a in value for a in arg)
    if op == "$in":
        return value in arg
    if op == "$ne":
        return value != arg
    if value is None:
        return False
    return _COMPARE[op](value, arg)


def _matches(obj: dict[str, Any], where: dict[str, Any]) -> bool:
    for key, cond in where.items():
        if key == "$or":
            if not any(_matches(obj, sub) for sub in cond):
                return False
            continue
        value = _get(obj, key)
        if isinstance(cond, dict) and "__type" not in cond:
            for op, arg in cond.items():
                if op == "$options":
                    continue
                if not _check(op, value, decode_value(arg), cond):
                    return False
        elif value != decode_value(cond):
            return False
    return True


def _sort_key(value: Any) -> tuple[int, Any]:
    return (1, 0) if value is None else (0, value)


class FakeParse:
    """Parse server in memory, same async surface as ``ParseClient``.

    Objects are stored the way the REST API returns them (dates as ISO
    strings), so repository mapping code runs unchanged.
    """

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.users: dict[str, dict[str, Any]] = {}
        self.updates: list[tuple[str, str, dict[str, Any]]] = []
        self.created: list[tuple[str, dict[str, Any]]] = []
        self.before_update: Callable[[], None] | None = None
        self._ids = itertools.count(1)

    # ── Test helpers ────────────────────────────────────────

    def seed(self, class_name: str, **fields: Any) -> dict[str, Any]:
        object_id = fields.pop("objectId", None) or f"{class_name.lower()}{next(self._ids)}"
        obj = decode_value(encode_value({**fields, "objectId": object_id}))
        self.objects[class_name][object_id] = obj
        return obj

    def login(self, token: str, username: str, object_id: str | None = None) -> dict[str, Any]:
        user = {"objectId": object_id or f"user-{username}", "username": username}
        self.users[token] = user
        return user

    # ── ParseClient surface ─────────────────────────────────

    async def find(self, query: ParseQuery, session_token: str | None = None) -> list[dict]:
        rows = [
            dict(o) for o in self.objects[query.class_name].values() if _matches(o, query.where)
        ]
        params = query.to_params()
        for key in reversed([k for k in params.get("order", "").split(",") if k]):
            rows.sort(key=lambda o: _sort_key(_get(o, key.lstrip("-"))), reverse=key.startswith("-"))
        if params.get("limit") is not None:
            rows = rows[: params["limit"]]
        return rows

    async def first(self, query: ParseQuery, session_token: str | None = None) -> dict | None:
        rows = await self.find(query.limit(1), session_token)
        return rows[0] if rows else None

    async def count(self, query: ParseQuery, session_token: str | None = None) -> int:
        return len(await self.find(query, session_token))

    async def get(
        self, class_name: str, object_id: str, session_token: str | None = None
    ) -> dict | None:
        obj = self.objects[class_name].get(object_id)
        return dict(obj) if obj else None

    async def create(
        self, class_name: str, data: dict[str, Any], session_token: str | None = None
    ) -> dict[str, Any]:
        object_id = f"{class_name.lower()}{next(self._ids)}"
        created = {"objectId": object_id, "createdAt": datetime.now(timezone.utc).isoformat()}
        self.objects[class_name][object_id] = decode_value(encode_value({**data, **created}))
        self.created.append((class_name, data))
        return {**data, **created}

    async def update(
        self,
        class_name: str,
        object_id: str,
        data: dict[str, Any],
        session_token: str | None = None,
    ) -> dict[str, Any]:
        if self.before_update is not None:
            hook, self.before_update = self.before_update, None
            hook()
        obj = self.objects[class_name][object_id]
        for key, value in data.items():
            op = value.get("__op") if isinstance(value, dict) else None
            if op == "Increment":
                obj[key] = (obj.get(key) or 0) + value["amount"]
            elif op == "AddUnique":
                current = list(obj.get(key) or [])
                current.extend(v for v in value["objects"] if v not in current)
                obj[key] = current
            elif op == "Remove":
                obj[key] = [v for v in obj.get(key) or [] if v not in value["objects"]]
            else:
                obj[key] = decode_value(encode_value(value))
        self.updates.append((class_name, object_id, data))
        return {"updatedAt": datetime.now(timezone.utc).isoformat()}

    async def current_user(self, session_token: str | None) -> dict | None:
        if not session_token:
            return None
        return self.users.get(session_token)

    async def health(self) -> bool:
        return True


def tomorrow_at(hour: int) -> datetime:
    """Tomorrow at ``hour`` UTC."""
    day = datetime.now(timezone.utc).date() + timedelta(days=1)
    return datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc)


@pytest.fixture
def fake_parse() -> FakeParse:
    return FakeParse()


@pytest.fixture
def seeded_parse(fake_parse) -> FakeParse:
    """Three Jakarta venues, two players, one open session."""
    fake_parse.seed(
        "Venue",
        objectId="v-kemang",
        name="Kemang Padel Club",
        isActive=True,
        address={"city": "Jakarta", "area": "Kemang"},
        pricing={"hourlyRate": 200_000},
        facilities=["parking", "showers"],
        rating=4.6,
        courtCount=2,
    )
    fake_parse.seed(
        "Venue",
        objectId="v-senayan",
        name="Senayan Padel Arena",
        isActive=True,
        address={"city": "Jakarta", "area": "Senayan"},
        pricing={"hourlyRate": 150_000},
        facilities=["parking"],
        rating=4.2,
        courtCount=4,
    )
    fake_parse.seed(
        "Venue",
        objectId="v-closed",
        name="Old Kemang Court",
        isActive=False,
        address={"city": "Jakarta", "area": "Kemang"},
        pricing={"hourlyRate": 90_000},
        rating=3.1,
        courtCount=1,
    )
    fake_parse.seed(
        "PlayerProfile",
        objectId="p-budi",
        userId="user-budi",
        personalInfo={"name": "Budi"},
        preferences={
            "skillLevel": "intermediate",
            "preferredAreas": ["Kemang"],
            "playingTimes": ["Evening (6-10 PM)"],
        },
    )
    fake_parse.seed(
        "PlayerProfile",
        objectId="p-sari",
        userId="user-sari",
        personalInfo={"name": "Sari"},
        preferences={
            "skillLevel": "beginner",
            "preferredAreas": ["Senayan"],
            "playingTimes": ["Morning (6 AM-12 PM)"],
        },
    )
    fake_parse.seed(
        "Session",
        objectId="s-open",
        venueId="v-kemang",
        venueName="Kemang Padel Club",
        timeSlot="evening_early",
        date=tomorrow_at(11).date().isoformat(),
        startTime=tomorrow_at(11),
        endTime=tomorrow_at(12),
        currentPlayers=["budi", "andi", "rina"],
        maxPlayers=4,
        openSlots=1,
        skillLevel="intermediate",
        status="open",
        pricePerPlayer=50_000,
        expiresAt=tomorrow_at(11),
    )
    return fake_parse


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        assistant={"model": "openai/gpt-test", "max_cards": 3},
        parse={"app_id": "app", "rest_api_key": "key"},
        database={"path": str(tmp_path / "mabar.db")},
    )


@pytest.fixture
def store(tmp_path) -> MemoryStore:
    return MemoryStore(str(tmp_path / "store.db"))
