from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ADMIN_ID = 1

Record = dict[str, Any]


@dataclass(frozen=True)
class EventStackNews:
    event_id: int
    stack_id: int
    news_id: int


@dataclass(frozen=True)
class EventTag:
    event_id: int
    tag_id: int


@dataclass
class ScrapedDataset:
    """
    In-memory entity graph collected from the source API.

    Entity maps are keyed by source id and keep insertion order; a later record for the
    same id replaces the earlier one. Association lists only ever grow and never hold
    the same tuple twice.
    """

    events: dict[int, Record] = field(default_factory=dict)
    stacks: dict[int, Record] = field(default_factory=dict)
    news: dict[int, Record] = field(default_factory=dict)
    tags: dict[int, Record] = field(default_factory=dict)
    header_images: list[Record] = field(default_factory=list)
    event_stack_news: list[EventStackNews] = field(default_factory=list)
    event_tags: list[EventTag] = field(default_factory=list)
    owner_ids: set[int] = field(default_factory=set)
    _header_image_ids: set[int] = field(default_factory=set, init=False, repr=False)
    _event_stack_news_keys: set[EventStackNews] = field(default_factory=set, init=False, repr=False)
    _event_tag_keys: set[EventTag] = field(default_factory=set, init=False, repr=False)

    def add_event(self, event: Record) -> int:
        event_id = int(event["id"])
        self.events[event_id] = event
        owner_id = event.get("ownerId")
        if owner_id:
            self.owner_ids.add(int(owner_id))
        return event_id

    def add_tag(self, event_id: int, tag: Record) -> None:
        tag_id = int(tag["id"])
        self.tags[tag_id] = tag
        link = EventTag(event_id=event_id, tag_id=tag_id)
        if link in self._event_tag_keys:
            return
        self._event_tag_keys.add(link)
        self.event_tags.append(link)

    def add_stack(self, event_id: int, stack: Record) -> int:
        stack_id = int(stack["id"])
        self.stacks[stack_id] = {**stack, "eventId": event_id}
        return stack_id

    def add_news(self, news: Record) -> int:
        news_id = int(news["id"])
        self.news[news_id] = news
        return news_id

    def link_stack_news(self, event_id: int, stack_id: int, news_id: int) -> None:
        link = EventStackNews(event_id=event_id, stack_id=stack_id, news_id=news_id)
        if link in self._event_stack_news_keys:
            return
        self._event_stack_news_keys.add(link)
        self.event_stack_news.append(link)

    def add_header_image(self, event_id: int, image: Record) -> bool:
        image_id = image.get("id")
        if not image_id or not image.get("imageUrl"):
            return False
        image_id = int(image_id)
        if image_id in self._header_image_ids:
            return False
        self._header_image_ids.add(image_id)
        self.header_images.append(
            {
                "id": image_id,
                "eventId": event_id,
                "imageUrl": image["imageUrl"],
                "source": image.get("source") or "",
                "sourceUrl": image.get("sourceUrl") or None,
                "createdAt": image.get("createdAt"),
                "updatedAt": image.get("updatedAt"),
            }
        )
        return True

    def sorted_owner_ids(self) -> list[int]:
        return sorted(self.owner_ids)

    def totals(self) -> dict[str, int]:
        return {
            "events": len(self.events),
            "stacks": len(self.stacks),
            "news": len(self.news),
            "tags": len(self.tags),
            "header_images": len(self.header_images),
            "event_stack_news": len(self.event_stack_news),
            "event_tags": len(self.event_tags),
            "owners": len(self.owner_ids),
        }


@dataclass
class SeedStats:
    clients_inserted: int = 0
    tags_inserted: int = 0
    events_inserted: int = 0
    stacks_inserted: int = 0
    news_inserted: int = 0
    event_stack_news_inserted: int = 0
    event_tags_inserted: int = 0
    header_images_inserted: int = 0
    latest_news_updated: int = 0
    latest_news_skipped: int = 0
    commits_inserted: int = 0
    acl_users: int = 0
    acl_roles: int = 0
    cache_keys_written: int = 0
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
