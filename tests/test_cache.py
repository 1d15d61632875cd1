"""Tests for the Redis name lookups and star counters."""

from __future__ import annotations

import json

from surge_seed.cache import client_name_key, event_name_key, seed_lookup_caches, star_count_key
from surge_seed.clients import assign_pseudo_users
from surge_seed.models import ScrapedDataset
from tests.helpers import FakeRedis

PREFIX = "test-"


def _dataset() -> ScrapedDataset:
    dataset = ScrapedDataset()
    dataset.add_event({"id": 7, "name": "River flood", "ownerId": 42})
    dataset.add_event({"id": 8, "name": "Unowned"})
    return dataset


def test_lookup_keys_resolve_names_to_ids() -> None:
    dataset = _dataset()
    users = assign_pseudo_users(dataset.owner_ids)
    redis_client = FakeRedis()

    written = seed_lookup_caches(redis_client, PREFIX, dataset, users)

    assert written == 2 + 2 + 2
    assert json.loads(redis_client.get(client_name_key(PREFIX, "surge"))) == 1
    assert json.loads(redis_client.get(client_name_key(PREFIX, users[0].username))) == 42
    assert redis_client.get(event_name_key(PREFIX, "River flood", 42)) == "7"
    assert redis_client.get(event_name_key(PREFIX, "Unowned", 1)) == "8"
    assert redis_client.get(star_count_key(PREFIX, 7)) == "0"


def test_existing_star_count_is_preserved() -> None:
    dataset = _dataset()
    redis_client = FakeRedis()
    redis_client.set(star_count_key(PREFIX, 7), "12")

    written = seed_lookup_caches(redis_client, PREFIX, dataset, assign_pseudo_users(dataset.owner_ids))

    assert redis_client.get(star_count_key(PREFIX, 7)) == "12"
    assert redis_client.get(star_count_key(PREFIX, 8)) == "0"
    assert written == 5


def test_unnamed_events_get_no_name_lookup() -> None:
    dataset = ScrapedDataset()
    dataset.add_event({"id": 9, "ownerId": 42})
    redis_client = FakeRedis()

    written = seed_lookup_caches(redis_client, PREFIX, dataset, assign_pseudo_users(dataset.owner_ids))

    assert not any("event-name-mem-" in key for key in redis_client.values)
    assert redis_client.get(star_count_key(PREFIX, 9)) == "0"
    assert written == 2 + 1
