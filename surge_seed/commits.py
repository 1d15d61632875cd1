from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional

from surge_seed.clients import PseudoUser, owner_summary
from surge_seed.models import ADMIN_ID, Record, ScrapedDataset

DEFAULT_STACK_ORDER = -1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_timestamp(raw_value: Any) -> datetime | None:
    value = str(raw_value or "").strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def stack_order(stack: Record) -> int:
    order = stack.get("order")
    return DEFAULT_STACK_ORDER if order is None else int(order)


def time_of_day(raw_value: Any) -> str:
    """
    UTC time-of-day portion of an ISO timestamp, as HH:MM:SS.mmm.
    """
    parsed = parse_timestamp(raw_value)
    if parsed is None:
        raise ValueError(f"Cannot derive a commit time from {raw_value!r}")
    utc = parsed.astimezone(timezone.utc)
    return f"{utc:%H:%M:%S}.{utc.microsecond // 1000:03d}"


class CommitIndex:
    """
    Per-event lookups over a dataset, built once so every snapshot is assembled
    without rescanning the association lists.
    """

    def __init__(self, dataset: ScrapedDataset) -> None:
        self.dataset = dataset
        self.stacks_by_event: dict[int, list[Record]] = defaultdict(list)
        self.news_ids_by_stack: dict[tuple[int, int], list[int]] = defaultdict(list)
        self.tag_ids_by_event: dict[int, list[int]] = defaultdict(list)
        self.header_image_by_event: dict[int, Record] = {}

        for stack in dataset.stacks.values():
            self.stacks_by_event[int(stack["eventId"])].append(stack)
        for link in dataset.event_stack_news:
            self.news_ids_by_stack[(link.event_id, link.stack_id)].append(link.news_id)
        for link in dataset.event_tags:
            self.tag_ids_by_event[link.event_id].append(link.tag_id)
        for image in dataset.header_images:
            self.header_image_by_event.setdefault(int(image["eventId"]), image)

    def stack_news(self, event_id: int, stack_id: int) -> list[Record]:
        news_map = self.dataset.news
        items = [news_map[news_id] for news_id in self.news_ids_by_stack.get((event_id, stack_id), []) if news_id in news_map]
        return sorted(items, key=lambda item: parse_timestamp(item.get("time")) or _EPOCH, reverse=True)

    def ordered_stacks(self, event_id: int) -> list[Record]:
        stacks = sorted(self.stacks_by_event.get(event_id, []), key=stack_order)
        resolved: list[Record] = []
        for stack in stacks:
            news = self.stack_news(event_id, int(stack["id"]))
            resolved.append({**stack, "news": news, "newsCount": len(news)})
        return resolved

    def tags(self, event_id: int) -> list[Record]:
        tag_map = self.dataset.tags
        return [tag_map[tag_id] for tag_id in self.tag_ids_by_event.get(event_id, []) if tag_id in tag_map]

    def scraped_parent_id(self, event: Record) -> Optional[int]:
        """Parent event id, or None when the parent is not part of the dataset."""
        parent_id = event.get("parentId")
        if not parent_id or int(parent_id) not in self.dataset.events:
            return None
        return int(parent_id)

    def latest_admitted_news(self, event: Record) -> Optional[Record]:
        news_id = event.get("latestAdmittedNewsId")
        if not news_id:
            return None
        return self.dataset.news.get(int(news_id))


def resolve_commit_time(
    stacks: list[Record],
    latest_news: Optional[Record],
    event: Record,
    now: str,
) -> str:
    if stacks and stacks[0].get("time"):
        return stacks[0]["time"]
    if stacks and stacks[0].get("news") and stacks[0]["news"][0].get("time"):
        return stacks[0]["news"][0]["time"]
    if latest_news and latest_news.get("time"):
        return latest_news["time"]
    return event.get("updatedAt") or now


def build_commit_snapshot(
    event: Record,
    index: CommitIndex,
    known_users: dict[int, PseudoUser],
    *,
    now: str,
) -> dict[str, Any]:
    event_id = int(event["id"])
    owner_id = int(event.get("ownerId") or ADMIN_ID)
    stacks = index.ordered_stacks(event_id)
    latest_news = index.latest_admitted_news(event)
    image = index.header_image_by_event.get(event_id)

    return {
        "id": event_id,
        "name": event.get("name"),
        "pinyin": event.get("pinyin") or None,
        "description": event.get("description") or None,
        "status": event.get("status") or "admitted",
        "needContributor": bool(event.get("needContributor")),
        "ownerId": owner_id,
        "parentId": index.scraped_parent_id(event),
        "latestAdmittedNewsId": latest_news["id"] if latest_news else None,
        "headerImage": (
            {
                "id": image["id"],
                "imageUrl": image["imageUrl"],
                "source": image["source"],
                "sourceUrl": image["sourceUrl"],
                "eventId": event_id,
            }
            if image
            else None
        ),
        "latestAdmittedNews": latest_news,
        "stacks": stacks,
        "tags": index.tags(event_id),
        "offshelfNews": [],
        "owner": owner_summary(owner_id, known_users),
        "stackCount": len(stacks),
        "newsCount": sum(stack["newsCount"] for stack in stacks),
        "contribution": [],
        "contributors": [],
        "commitTime": resolve_commit_time(stacks, latest_news, event, now),
        "createdAt": event.get("createdAt") or now,
        "updatedAt": event.get("updatedAt") or now,
    }
