from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from surge_seed.clients import PseudoUser, administrator, ensure_client, users_by_id
from surge_seed.commits import (
    CommitIndex,
    build_commit_snapshot,
    stack_order,
    time_of_day,
)
from surge_seed.db import advance_sequence
from surge_seed.models import ADMIN_ID, Record, ScrapedDataset, SeedStats

logger = logging.getLogger(__name__)

COMMIT_SUMMARY = "Seed commit"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _insert(session: Session, statement: str, params: dict) -> bool:
    return bool(session.execute(text(statement), params).rowcount)


def events_in_dependency_order(events: dict[int, Record]) -> list[Record]:
    """
    Order events so every parent precedes its children.

    A parent that is not part of `events` does not constrain ordering. Members of a
    parent cycle keep their collection order once nothing else can be placed.
    """
    ordered: list[Record] = []
    placed: set[int] = set()
    pending = list(events.values())
    while pending:
        remaining: list[Record] = []
        for event in pending:
            parent_id = event.get("parentId")
            if parent_id and int(parent_id) in events and int(parent_id) not in placed:
                remaining.append(event)
                continue
            ordered.append(event)
            placed.add(int(event["id"]))
        if len(remaining) == len(pending):
            ordered.extend(remaining)
            break
        pending = remaining
    return ordered


def _insert_clients(
    session: Session,
    pseudo_users: list[PseudoUser],
    *,
    password_hash: str,
    now: str,
    stats: SeedStats,
) -> None:
    for user in [administrator(), *pseudo_users]:
        if ensure_client(session, user, password_hash=password_hash, now=now):
            stats.clients_inserted += 1
        logger.debug("materializer.client id=%s username=%s", user.id, user.username)
    advance_sequence(session, "client")
    logger.info("materializer.clients total=%s inserted=%s", len(pseudo_users) + 1, stats.clients_inserted)


def _insert_tags(session: Session, tags: Iterable[Record], *, now: str, stats: SeedStats) -> None:
    for tag in tags:
        if _insert(
            session,
            """
            INSERT INTO tag (
                id, name, slug, description, "hierarchyPath", "redirectToId",
                "parentId", status, "createdAt", "updatedAt"
            )
            VALUES (
                :id, :name, :slug, :description, :hierarchy_path, :redirect_to_id,
                :parent_id, :status, :created_at, :updated_at
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                "id": int(tag["id"]),
                "name": tag.get("name"),
                "slug": tag.get("slug") or None,
                "description": tag.get("description") or None,
                "hierarchy_path": tag.get("hierarchyPath") or None,
                "redirect_to_id": tag.get("redirectToId") or None,
                "parent_id": tag.get("parentId") or None,
                "status": tag.get("status") or "visible",
                "created_at": tag.get("createdAt") or now,
                "updated_at": tag.get("updatedAt") or now,
            },
        ):
            stats.tags_inserted += 1
    advance_sequence(session, "tag")


def _insert_events(session: Session, dataset: ScrapedDataset, *, now: str, stats: SeedStats) -> None:
    index = CommitIndex(dataset)
    for event in events_in_dependency_order(dataset.events):
        parent_id = index.scraped_parent_id(event)
        if parent_id is None and event.get("parentId"):
            stats.warn(
                f"Event id={event['id']}: parent event {event['parentId']} was not scraped; parentId left empty."
            )
        if _insert(
            session,
            """
            INSERT INTO event (
                id, name, pinyin, description, status, "needContributor",
                "ownerId", "parentId", "createdAt", "updatedAt"
            )
            VALUES (
                :id, :name, :pinyin, :description, :status, :need_contributor,
                :owner_id, :parent_id, :created_at, :updated_at
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                "id": int(event["id"]),
                "name": event.get("name"),
                "pinyin": event.get("pinyin") or None,
                "description": event.get("description") or None,
                "status": event.get("status") or "pending",
                "need_contributor": bool(event.get("needContributor")),
                "owner_id": int(event.get("ownerId") or ADMIN_ID),
                "parent_id": parent_id,
                "created_at": event.get("createdAt") or now,
                "updated_at": event.get("updatedAt") or now,
            },
        ):
            stats.events_inserted += 1
    advance_sequence(session, "event")


def _insert_stacks(session: Session, stacks: Iterable[Record], *, now: str, stats: SeedStats) -> None:
    for stack in stacks:
        if _insert(
            session,
            """
            INSERT INTO stack (
                id, title, description, status, "order", time,
                "eventId", "stackEventId", "createdAt", "updatedAt"
            )
            VALUES (
                :id, :title, :description, :status, :stack_order, :time,
                :event_id, :stack_event_id, :created_at, :updated_at
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                "id": int(stack["id"]),
                "title": stack.get("title"),
                "description": stack.get("description") or None,
                "status": stack.get("status") or "pending",
                "stack_order": stack_order(stack),
                "time": stack.get("time") or None,
                "event_id": int(stack["eventId"]),
                "stack_event_id": stack.get("stackEventId") or None,
                "created_at": stack.get("createdAt") or now,
                "updated_at": stack.get("updatedAt") or now,
            },
        ):
            stats.stacks_inserted += 1
    advance_sequence(session, "stack")


def _insert_news(session: Session, news_items: Iterable[Record], *, now: str, stats: SeedStats) -> None:
    for news in news_items:
        if _insert(
            session,
            """
            INSERT INTO news (
                id, url, source, title, abstract, time, status, comment,
                "createdAt", "updatedAt"
            )
            VALUES (
                :id, :url, :source, :title, :abstract, :time, :status, :comment,
                :created_at, :updated_at
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                "id": int(news["id"]),
                "url": news.get("url"),
                "source": news.get("source") or "",
                "title": news.get("title") or "",
                "abstract": news.get("abstract") or None,
                "time": news.get("time") or now,
                "status": news.get("status") or "pending",
                "comment": news.get("comment") or None,
                "created_at": news.get("createdAt") or now,
                "updated_at": news.get("updatedAt") or now,
            },
        ):
            stats.news_inserted += 1
    advance_sequence(session, "news")


def _insert_associations(session: Session, dataset: ScrapedDataset, *, now: str, stats: SeedStats) -> None:
    for link in dataset.event_stack_news:
        if _insert(
            session,
            """
            INSERT INTO "eventStackNews" ("eventId", "stackId", "newsId", "createdAt", "updatedAt")
            VALUES (:event_id, :stack_id, :news_id, :created_at, :updated_at)
            ON CONFLICT DO NOTHING
            """,
            {
                "event_id": link.event_id,
                "stack_id": link.stack_id,
                "news_id": link.news_id,
                "created_at": now,
                "updated_at": now,
            },
        ):
            stats.event_stack_news_inserted += 1

    for link in dataset.event_tags:
        if _insert(
            session,
            """
            INSERT INTO "eventTag" ("eventId", "tagId", "createdAt", "updatedAt")
            VALUES (:event_id, :tag_id, :created_at, :updated_at)
            ON CONFLICT DO NOTHING
            """,
            {"event_id": link.event_id, "tag_id": link.tag_id, "created_at": now, "updated_at": now},
        ):
            stats.event_tags_inserted += 1


def _insert_header_images(session: Session, images: Iterable[Record], *, now: str, stats: SeedStats) -> None:
    for image in images:
        if _insert(
            session,
            """
            INSERT INTO "headerImage" (
                id, "imageUrl", source, "sourceUrl", "eventId", "createdAt", "updatedAt"
            )
            VALUES (
                :id, :image_url, :source, :source_url, :event_id, :created_at, :updated_at
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                "id": image["id"],
                "image_url": image["imageUrl"],
                "source": image["source"],
                "source_url": image["sourceUrl"],
                "event_id": image["eventId"],
                "created_at": image.get("createdAt") or now,
                "updated_at": image.get("updatedAt") or now,
            },
        ):
            stats.header_images_inserted += 1
    advance_sequence(session, "headerImage")


def _backfill_latest_news(session: Session, dataset: ScrapedDataset, stats: SeedStats) -> None:
    for event in dataset.events.values():
        news_id = event.get("latestAdmittedNewsId")
        if not news_id:
            continue
        if int(news_id) not in dataset.news:
            stats.latest_news_skipped += 1
            continue
        session.execute(
            text('UPDATE event SET "latestAdmittedNewsId" = :news_id WHERE id = :id'),
            {"news_id": int(news_id), "id": int(event["id"])},
        )
        stats.latest_news_updated += 1
    logger.info(
        "materializer.latest_news updated=%s skipped=%s (news not in scraped data)",
        stats.latest_news_updated,
        stats.latest_news_skipped,
    )


def _insert_commits(
    session: Session,
    dataset: ScrapedDataset,
    pseudo_users: list[PseudoUser],
    *,
    now: str,
    stats: SeedStats,
) -> int:
    index = CommitIndex(dataset)
    known_users = users_by_id(pseudo_users)
    commit_id = 0
    for commit_id, event in enumerate(dataset.events.values(), start=1):
        snapshot = build_commit_snapshot(event, index, known_users, now=now)
        if _insert(
            session,
            """
            INSERT INTO "commit" (
                id, summary, data, "isForkCommit", time, "authorId", "eventId",
                "createdAt", "updatedAt"
            )
            VALUES (
                :id, :summary, :data, :is_fork_commit, :time, :author_id, :event_id,
                :created_at, :updated_at
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                "id": commit_id,
                "summary": COMMIT_SUMMARY,
                "data": json.dumps(snapshot, ensure_ascii=False),
                "is_fork_commit": False,
                "time": time_of_day(snapshot["commitTime"]),
                "author_id": snapshot["ownerId"],
                "event_id": snapshot["id"],
                "created_at": snapshot["createdAt"],
                "updated_at": snapshot["updatedAt"],
            },
        ):
            stats.commits_inserted += 1
    if commit_id:
        advance_sequence(session, "commit")
    return commit_id


def materialize(
    session: Session,
    dataset: ScrapedDataset,
    pseudo_users: list[PseudoUser],
    *,
    password_hash: str,
    now: Optional[str] = None,
    stats: Optional[SeedStats] = None,
) -> SeedStats:
    """
    Load the scraped graph into the relational store, parents before children.

    Runs inside the caller's transaction; the caller commits or rolls back. Rows that
    already exist are left untouched, so repeating a run inserts nothing new.
    """
    now = now or utc_now_iso()
    stats = stats or SeedStats()

    _insert_clients(session, pseudo_users, password_hash=password_hash, now=now, stats=stats)
    _insert_tags(session, dataset.tags.values(), now=now, stats=stats)
    logger.info("materializer.tags total=%s inserted=%s", len(dataset.tags), stats.tags_inserted)
    _insert_events(session, dataset, now=now, stats=stats)
    logger.info("materializer.events total=%s inserted=%s", len(dataset.events), stats.events_inserted)
    _insert_stacks(session, dataset.stacks.values(), now=now, stats=stats)
    logger.info("materializer.stacks total=%s inserted=%s", len(dataset.stacks), stats.stacks_inserted)
    _insert_news(session, dataset.news.values(), now=now, stats=stats)
    logger.info("materializer.news total=%s inserted=%s", len(dataset.news), stats.news_inserted)
    _insert_associations(session, dataset, now=now, stats=stats)
    logger.info(
        "materializer.links event_stack_news=%s event_tags=%s",
        stats.event_stack_news_inserted,
        stats.event_tags_inserted,
    )
    _insert_header_images(session, dataset.header_images, now=now, stats=stats)
    _backfill_latest_news(session, dataset, stats)
    commit_count = _insert_commits(session, dataset, pseudo_users, now=now, stats=stats)
    logger.info("materializer.commits total=%s inserted=%s", commit_count, stats.commits_inserted)
    return stats
