"""Integration tests for loading a scraped dataset into the migrated schema."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import text

from surge_seed import db, materializer
from surge_seed.clients import assign_pseudo_users
from surge_seed.materializer import events_in_dependency_order, materialize
from surge_seed.models import ScrapedDataset
from tests.helpers import count_rows, sample_event_payloads

NOW = "2024-06-01T12:00:00+00:00"


def _sample_dataset() -> ScrapedDataset:
    listed, detail = sample_event_payloads()
    dataset = ScrapedDataset()
    dataset.add_event(listed)
    for stack in detail["stacks"]:
        stack_id = dataset.add_stack(7, stack)
        for news in stack["news"]:
            dataset.link_stack_news(7, stack_id, dataset.add_news(news))
    dataset.add_tag(7, {"id": 3, "name": "Flood"})
    dataset.add_header_image(7, {"id": 4, "imageUrl": "https://img.example.test/4.jpg"})
    return dataset


def _run(session_factory, dataset: ScrapedDataset):
    with db.session_scope(session_factory) as session:
        return materialize(
            session,
            dataset,
            assign_pseudo_users(dataset.owner_ids),
            password_hash="hashed",
            now=NOW,
        )


def test_materialize_inserts_full_graph(session_factory, sequence_calls) -> None:
    stats = _run(session_factory, _sample_dataset())

    assert stats.clients_inserted == 2
    assert stats.events_inserted == 1
    assert stats.stacks_inserted == 2
    assert stats.news_inserted == 1
    assert stats.event_stack_news_inserted == 1
    assert stats.event_tags_inserted == 1
    assert stats.header_images_inserted == 1
    assert stats.commits_inserted == 1
    assert count_rows(session_factory, "client") == 2
    assert count_rows(session_factory, "eventTag") == 1
    assert sequence_calls == {
        "client_id_seq": 42,
        "tag_id_seq": 3,
        "event_id_seq": 7,
        "stack_id_seq": 101,
        "news_id_seq": 1000,
        "headerImage_id_seq": 4,
        "commit_id_seq": 1,
    }


def test_pseudo_user_rows_carry_placeholder_identity(session_factory) -> None:
    _run(session_factory, _sample_dataset())

    with session_factory() as session:
        row = session.execute(
            text('SELECT username, nickname, email, role, "emailVerified" FROM client WHERE id = 42')
        ).one()
        admin = session.execute(text("SELECT username, email, role FROM client WHERE id = 1")).one()

    assert row.username == "swiftfox"
    assert row.nickname == "Swift Fox"
    assert row.email == "swiftfox@local"
    assert row.role == "contributor"
    assert bool(row.emailVerified) is True
    assert tuple(admin) == ("surge", "surge@local", "admin")


def test_second_run_inserts_nothing(session_factory) -> None:
    _run(session_factory, _sample_dataset())

    stats = _run(session_factory, _sample_dataset())

    assert stats.clients_inserted == 0
    assert stats.events_inserted == 0
    assert stats.stacks_inserted == 0
    assert stats.news_inserted == 0
    assert stats.event_stack_news_inserted == 0
    assert stats.commits_inserted == 0
    assert count_rows(session_factory, "event") == 1
    assert count_rows(session_factory, "commit") == 1


def test_commit_row_holds_snapshot_and_time_of_day(session_factory) -> None:
    _run(session_factory, _sample_dataset())

    with session_factory() as session:
        row = session.execute(
            text('SELECT id, summary, data, time, "authorId", "eventId" FROM "commit"')
        ).one()

    data = row.data if isinstance(row.data, dict) else json.loads(row.data)
    assert row.id == 1
    assert row.summary == "Seed commit"
    assert row.authorId == 42
    assert row.eventId == 7
    assert str(row.time).startswith("10:20:30")
    assert data["stackCount"] == 2
    assert data["newsCount"] == 1
    assert data["stacks"][0]["news"][0]["id"] == 1000
    assert data["headerImage"]["id"] == 4


def test_child_event_listed_before_parent_is_inserted_after_it(session_factory) -> None:
    dataset = ScrapedDataset()
    dataset.add_event({"id": 20, "name": "Child", "parentId": 10})
    dataset.add_event({"id": 10, "name": "Parent"})

    stats = _run(session_factory, dataset)

    assert stats.events_inserted == 2
    with session_factory() as session:
        parent_id = session.execute(text('SELECT "parentId" FROM event WHERE id = 20')).scalar_one()
    assert parent_id == 10


def test_unscraped_parent_is_cleared_with_warning(session_factory) -> None:
    dataset = ScrapedDataset()
    dataset.add_event({"id": 20, "name": "Child", "parentId": 999})

    stats = _run(session_factory, dataset)

    with session_factory() as session:
        parent_id = session.execute(text('SELECT "parentId" FROM event WHERE id = 20')).scalar_one()
        raw = session.execute(text('SELECT data FROM "commit" WHERE "eventId" = 20')).scalar_one()
    data = raw if isinstance(raw, dict) else json.loads(raw)
    assert parent_id is None
    assert data["parentId"] is None
    assert len(stats.warnings) == 1
    assert "999" in stats.warnings[0]


def test_latest_admitted_news_is_backfilled_only_when_scraped(session_factory) -> None:
    dataset = _sample_dataset()
    dataset.events[7]["latestAdmittedNewsId"] = 1000
    dataset.add_event({"id": 8, "name": "Dangling", "latestAdmittedNewsId": 5555})

    stats = _run(session_factory, dataset)

    assert stats.latest_news_updated == 1
    assert stats.latest_news_skipped == 1
    with session_factory() as session:
        values = dict(session.execute(text('SELECT id, "latestAdmittedNewsId" FROM event')).all())
    assert values == {7: 1000, 8: None}


def test_failure_rolls_back_every_table(session_factory, monkeypatch) -> None:
    def _explode(*args, **kwargs):
        raise RuntimeError("commit step failed")

    monkeypatch.setattr(materializer, "_insert_commits", _explode)

    with pytest.raises(RuntimeError):
        _run(session_factory, _sample_dataset())

    for table in ("client", "tag", "event", "stack", "news", "eventStackNews", "headerImage"):
        assert count_rows(session_factory, table) == 0


def test_unparseable_commit_time_aborts_the_load(session_factory) -> None:
    dataset = ScrapedDataset()
    dataset.add_event({"id": 1, "name": "Broken", "updatedAt": "yesterday"})

    with pytest.raises(ValueError):
        _run(session_factory, dataset)

    assert count_rows(session_factory, "event") == 0


def test_empty_dataset_seeds_only_the_administrator(session_factory, sequence_calls) -> None:
    stats = _run(session_factory, ScrapedDataset())

    assert stats.clients_inserted == 1
    assert stats.commits_inserted == 0
    assert "commit_id_seq" not in sequence_calls
    assert sequence_calls["event_id_seq"] == 1


def test_dependency_order_keeps_cycles() -> None:
    events = {
        1: {"id": 1, "parentId": 2},
        2: {"id": 2, "parentId": 1},
        3: {"id": 3, "parentId": 4},
        4: {"id": 4},
    }

    ordered = [event["id"] for event in events_in_dependency_order(events)]

    assert ordered == [4, 3, 1, 2]
