from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from surge_seed.config import (
    DEFAULT_API_BASE,
    MAX_EVENT_PAGES,
    REQUEST_DELAY_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    normalize_api_base,
)
from surge_seed.models import Record, ScrapedDataset

logger = logging.getLogger(__name__)

FETCH_ATTEMPTS = 3
EVENT_LIST_FIELD = "eventList"
_NESTED_DETAIL_KEYS = ("stacks", "offshelfNews", "tags", "headerImage")


def _log_failed_attempt(retry_state: RetryCallState) -> None:
    url = retry_state.args[0] if retry_state.args else "?"
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "collector.fetch.retry attempt=%s url=%s error=%s",
        retry_state.attempt_number,
        url,
        exc,
    )


def _records(raw_value: Any) -> list[Record]:
    if not isinstance(raw_value, list):
        return []
    return [item for item in raw_value if isinstance(item, dict) and item.get("id")]


def _page_items(response: Any) -> list[Any]:
    # The list endpoint answers either with a bare array or {"eventList": [...]}.
    if isinstance(response, dict):
        response = response.get(EVENT_LIST_FIELD)
    return response if isinstance(response, list) else []


class RemoteCollector:
    """
    Scrape events, stacks, news, tags and header images from the public API.

    Every request is issued sequentially and followed by a short delay. Each transport
    call gets up to three attempts with a linearly growing pause between them.
    """

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        *,
        http: requests.Session | None = None,
        max_pages: int = MAX_EVENT_PAGES,
        request_delay: float = REQUEST_DELAY_SECONDS,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_base = normalize_api_base(api_base)
        self.http = http or requests.Session()
        self.max_pages = max_pages
        self.request_delay = request_delay
        self.timeout = timeout
        self._sleep = sleep

    def _get_json(self, url: str) -> Any:
        response = self.http.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def fetch_json(self, url: str) -> Any:
        retryer = Retrying(
            stop=stop_after_attempt(FETCH_ATTEMPTS),
            wait=wait_incrementing(start=2, increment=2),
            retry=retry_if_exception_type(requests.RequestException),
            sleep=self._sleep,
            before_sleep=_log_failed_attempt,
            reraise=True,
        )
        return retryer(self._get_json, url)

    def _pause(self) -> None:
        if self.request_delay > 0:
            self._sleep(self.request_delay)

    def collect(self) -> ScrapedDataset:
        dataset = ScrapedDataset()
        self.collect_event_list(dataset)
        self.collect_event_details(dataset)
        totals = dataset.totals()
        logger.info(
            "collector.totals %s",
            " ".join(f"{key}={value}" for key, value in totals.items()),
        )
        logger.info("collector.owners ids=%s", ",".join(str(i) for i in dataset.sorted_owner_ids()))
        return dataset

    def collect_event_list(self, dataset: ScrapedDataset) -> int:
        pages_read = 0
        for page in range(1, self.max_pages + 1):
            url = f"{self.api_base}/event?page={page}"
            try:
                response = self.fetch_json(url)
            except requests.RequestException as exc:
                logger.warning("collector.page page=%s failed, stopping pagination: %s", page, exc)
                break
            items = _page_items(response)
            if not items:
                logger.info("collector.page page=%s empty, done", page)
                break
            # Items without an id are skipped; they do not end pagination.
            for item in _records(items):
                self._harvest_listed_event(dataset, item)
            pages_read += 1
            logger.info("collector.page page=%s items=%s events=%s", page, len(items), len(dataset.events))
            self._pause()
        return pages_read

    def _harvest_listed_event(self, dataset: ScrapedDataset, item: Record) -> None:
        event_id = dataset.add_event(item)
        for tag in _records(item.get("tags")):
            dataset.add_tag(event_id, tag)
        header_image = item.get("headerImage")
        if isinstance(header_image, dict):
            dataset.add_header_image(event_id, header_image)

    def collect_event_details(self, dataset: ScrapedDataset) -> int:
        event_ids = list(dataset.events)
        fetched = 0
        for idx, event_id in enumerate(event_ids, start=1):
            url = f"{self.api_base}/event/{event_id}"
            try:
                detail = self.fetch_json(url)
            except requests.RequestException as exc:
                logger.warning(
                    "collector.detail [%s/%s] event=%s skipped: %s", idx, len(event_ids), event_id, exc
                )
                self._pause()
                continue
            if isinstance(detail, dict):
                self._harvest_event_detail(dataset, event_id, detail)
                fetched += 1
            logger.info(
                "collector.detail [%s/%s] event=%s stacks=%s news=%s",
                idx,
                len(event_ids),
                event_id,
                len(dataset.stacks),
                len(dataset.news),
            )
            self._pause()
        return fetched

    def _harvest_event_detail(self, dataset: ScrapedDataset, event_id: int, detail: Record) -> None:
        if detail.get("id") and int(detail["id"]) == event_id:
            dataset.add_event({key: value for key, value in detail.items() if key not in _NESTED_DETAIL_KEYS})

        for stack in _records(detail.get("stacks")):
            stack_id = dataset.add_stack(event_id, stack)
            for news in _records(stack.get("news")):
                news_id = dataset.add_news(news)
                dataset.link_stack_news(event_id, stack_id, news_id)

        for news in _records(detail.get("offshelfNews")):
            dataset.add_news(news)

        for tag in _records(detail.get("tags")):
            dataset.add_tag(event_id, tag)

        header_image = detail.get("headerImage")
        if isinstance(header_image, dict):
            dataset.add_header_image(event_id, header_image)
