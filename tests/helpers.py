"""Test doubles and canned payloads shared across the suite."""

from __future__ import annotations

import json
from typing import Any

import requests
from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

API_BASE = "https://api.example.test"


class FakeRedis:
    """In-memory stand-in for the handful of redis-py calls the seeder makes."""

    def __init__(self) -> None:
        self.sets: dict[str, set[str]] = {}
        self.values: dict[str, str] = {}

    def sadd(self, key: str, *members: str) -> int:
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(str(member) for member in members)
        return len(bucket) - before

    def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    def set(self, key: str, value: str, nx: bool = False) -> bool | None:
        if nx and key in self.values:
            return None
        self.values[key] = str(value)
        return True

    def get(self, key: str) -> str | None:
        return self.values.get(key)


class FakeResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self) -> Any:
        return self.payload


class Outcomes:
    """Successive answers for one URL; the last one repeats."""

    def __init__(self, *values: Any) -> None:
        self.values = list(values)

    def next(self) -> Any:
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


class FakeHttp:
    """
    Serves canned JSON by URL. Exception instances are raised instead of returned.
    Unknown URLs answer 404.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.routes: dict[str, Any] = dict(routes or {})
        self.calls: list[str] = []

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.calls.append(url)
        if url not in self.routes:
            return FakeResponse(None, status_code=404)
        outcome = self.routes[url]
        if isinstance(outcome, Outcomes):
            outcome = outcome.next()
        if isinstance(outcome, Exception):
            raise outcome
        return FakeResponse(outcome)


def count_rows(session_factory: sessionmaker, table: str) -> int:
    with session_factory() as session:
        return int(session.execute(text(f'SELECT COUNT(*) FROM "{table}"')).scalar_one())


def fetch_json_value(session_factory: sessionmaker, table: str, key: str) -> Any:
    with session_factory() as session:
        raw = session.execute(
            text(f'SELECT "value" FROM {table} WHERE "key" = :key'),
            {"key": key},
        ).scalar_one_or_none()
    return None if raw is None else json.loads(raw)


def sample_event_payloads() -> tuple[dict, dict]:
    """One event owned by 42 with two stacks; only the first stack carries news."""
    listed = {
        "id": 7,
        "name": "River flood",
        "status": "admitted",
        "ownerId": 42,
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-03T06:00:00.000Z",
    }
    detail = {
        **listed,
        "stacks": [
            {
                "id": 100,
                "title": "Water rises",
                "order": 0,
                "status": "admitted",
                "news": [
                    {
                        "id": 1000,
                        "url": "https://news.example.test/1000",
                        "source": "Daily",
                        "title": "Levels climb",
                        "time": "2024-01-02T10:20:30.000Z",
                    }
                ],
            },
            {"id": 101, "title": "Clean up", "order": 1, "status": "admitted", "news": []},
        ],
        "offshelfNews": [],
        "tags": [],
    }
    return listed, detail


def sample_api_routes() -> dict[str, Any]:
    listed, detail = sample_event_payloads()
    return {
        f"{API_BASE}/event?page=1": {"eventList": [listed]},
        f"{API_BASE}/event?page=2": {"eventList": []},
        f"{API_BASE}/event/7": detail,
    }
