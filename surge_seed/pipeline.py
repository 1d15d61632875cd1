from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import requests
from sqlalchemy.orm import sessionmaker

from surge_seed import db
from surge_seed.acl import RedisAclStore, SqlAclStore, build_acl_graph, seed_acl
from surge_seed.cache import build_redis_client, seed_lookup_caches
from surge_seed.clients import assign_pseudo_users, hash_password, load_existing_clients
from surge_seed.collector import RemoteCollector
from surge_seed.config import SeedConfig
from surge_seed.materializer import materialize, utc_now_iso
from surge_seed.models import ScrapedDataset, SeedStats

logger = logging.getLogger(__name__)


def collect(
    config: SeedConfig,
    *,
    http: requests.Session | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ScrapedDataset:
    collector = RemoteCollector(
        config.api_base,
        http=http,
        max_pages=config.max_event_pages,
        request_delay=config.request_delay,
        timeout=config.request_timeout,
        sleep=sleep,
    )
    logger.info("Scraping %s (max %s pages)", config.api_base, config.max_event_pages)
    return collector.collect()


def run_seed(
    config: SeedConfig,
    *,
    http: requests.Session | None = None,
    session_factory: Optional[sessionmaker] = None,
    redis_client=None,
    password_hash: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
    now: Optional[str] = None,
) -> SeedStats:
    """
    Scrape the source API once and seed Postgres and Redis from the result.

    The relational load is a single transaction. ACL and cache writes follow and are
    not rolled back if they fail.
    """
    stats = SeedStats()
    now = now or utc_now_iso()

    dataset = collect(config, http=http, sleep=sleep)

    if session_factory is None:
        db.configure(config.database_url)
        session_factory = db.get_session_factory()

    with db.session_scope(session_factory) as session:
        pseudo_users = assign_pseudo_users(dataset.owner_ids, load_existing_clients(session))
        for user in pseudo_users:
            logger.info("pipeline.pseudo_user id=%s nickname=%s username=%s", user.id, user.nickname, user.username)
        materialize(
            session,
            dataset,
            pseudo_users,
            password_hash=password_hash or hash_password(config.seed_password),
            now=now,
            stats=stats,
        )
    logger.info("pipeline.relational committed")

    if redis_client is None:
        redis_client = build_redis_client(config)

    graph = build_acl_graph(dataset, pseudo_users)
    with db.session_scope(session_factory) as session:
        stats.acl_users, stats.acl_roles = seed_acl(
            graph,
            RedisAclStore(redis_client, config.acl_prefix),
            SqlAclStore(session, now=now),
        )
    stats.cache_keys_written = seed_lookup_caches(redis_client, config.redis_prefix, dataset, pseudo_users)
    logger.info("pipeline.cache committed keys=%s", stats.cache_keys_written)
    return stats
