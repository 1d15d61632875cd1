from __future__ import annotations

import json
import logging
from typing import Sequence

import redis

from surge_seed.clients import PseudoUser, administrator
from surge_seed.config import SeedConfig
from surge_seed.models import ADMIN_ID, ScrapedDataset

logger = logging.getLogger(__name__)


def build_redis_client(config: SeedConfig) -> redis.Redis:
    client = redis.Redis(
        host=config.redis_host,
        port=config.redis_port,
        db=config.redis_db,
        decode_responses=True,
    )
    client.ping()
    logger.info("Connected to Redis at %s:%s db=%s", config.redis_host, config.redis_port, config.redis_db)
    return client


def client_name_key(prefix: str, username: str) -> str:
    return f"{prefix}client-name-mem-{username}"


def event_name_key(prefix: str, name: str, owner_id: int) -> str:
    return f"{prefix}event-name-mem-{name}@{owner_id}"


def star_count_key(prefix: str, event_id: int) -> str:
    return f"{prefix}event-star-count-mem-{event_id}"


def seed_lookup_caches(
    client,
    prefix: str,
    dataset: ScrapedDataset,
    pseudo_users: Sequence[PseudoUser],
) -> int:
    """
    Populate the name→id lookups the application reads before hitting Postgres, and
    create a zero star counter for every event that does not have one yet.
    """
    written = 0
    for user in [administrator(), *pseudo_users]:
        client.set(client_name_key(prefix, user.username), json.dumps(user.id))
        written += 1
    logger.info("cache.client_names entries=%s", len(pseudo_users) + 1)

    named = 0
    for event_id, event in dataset.events.items():
        name = event.get("name")
        if not name:
            continue
        owner_id = int(event.get("ownerId") or ADMIN_ID)
        client.set(event_name_key(prefix, name, owner_id), json.dumps(event_id))
        named += 1
    written += named
    logger.info("cache.event_names entries=%s skipped_unnamed=%s", named, len(dataset.events) - named)

    for event_id in dataset.events:
        if client.set(star_count_key(prefix, event_id), "0", nx=True):
            written += 1
    logger.info("cache.star_counts events=%s", len(dataset.events))
    return written
