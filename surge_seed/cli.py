from __future__ import annotations

import argparse
import logging
from pathlib import Path

import requests
from dotenv import load_dotenv
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from surge_seed.config import SeedConfig
from surge_seed.models import SeedStats
from surge_seed.pipeline import run_seed


def _print_summary(stats: SeedStats, config: SeedConfig) -> None:
    print("Seed completed.")
    print(f"- api source: {config.api_base}")
    print(f"- clients inserted: {stats.clients_inserted}")
    print(f"- tags inserted: {stats.tags_inserted}")
    print(f"- events inserted: {stats.events_inserted}")
    print(f"- stacks inserted: {stats.stacks_inserted}")
    print(f"- news inserted: {stats.news_inserted}")
    print(f"- event-stack-news links inserted: {stats.event_stack_news_inserted}")
    print(f"- event-tag links inserted: {stats.event_tags_inserted}")
    print(f"- header images inserted: {stats.header_images_inserted}")
    print(
        f"- latest admitted news: updated {stats.latest_news_updated}, "
        f"skipped {stats.latest_news_skipped} (news not in scraped data)"
    )
    print(f"- commits inserted: {stats.commits_inserted}")
    print(f"- acl users: {stats.acl_users}, acl roles: {stats.acl_roles}")
    print(f"- cache keys written: {stats.cache_keys_written}")
    if stats.warnings:
        print("- warnings:")
        for warning in stats.warnings:
            print(f"  - {warning}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Seed the local Postgres database and Redis ACL cache from the public event API.",
    )
    parser.add_argument(
        "--api-base",
        default=None,
        help="Source API base URL. Defaults to API_BASE env or the production API.",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="dotenv file to load before opening Postgres/Redis connections.",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Safety cap on event list pages to scrape.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING...).",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    env_path = Path(args.env_file).expanduser().resolve()
    if env_path.is_file():
        load_dotenv(env_path, override=True)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = SeedConfig.from_env(api_base=args.api_base).with_overrides(max_event_pages=args.max_pages)
        stats = run_seed(config)
    except (requests.RequestException, SQLAlchemyError, RedisError, OSError, ValueError) as exc:
        logging.getLogger(__name__).error("Seed failed", exc_info=True)
        print(f"Seed failed: {exc}")
        return 1
    _print_summary(stats, config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
