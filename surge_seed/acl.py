from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence

from sqlalchemy import text
from sqlalchemy.orm import Session

from surge_seed.clients import PseudoUser
from surge_seed.models import ADMIN_ID, ScrapedDataset

logger = logging.getLogger(__name__)

ADMINS_ROLE = "admins"
CONTRIBUTORS_ROLE = "contributors"

EVENT_VIEW_PERMISSIONS: tuple[str, ...] = ("view",)
EVENT_EDIT_PERMISSIONS: tuple[str, ...] = ("edit", "makeCommit")
EVENT_MANAGE_PERMISSIONS: tuple[str, ...] = ("addViewer", "removeViewer", "addEditor", "removeEditor")
ROLE_EDIT_PERMISSIONS: tuple[str, ...] = ("edit",)


def role_resource(user_id: int) -> str:
    return f"role-{user_id}"


def role_edit_role(user_id: int) -> str:
    return f"role-{user_id}-edit-role"


def event_resource(event_id: int) -> str:
    return f"event-{event_id}"


def event_role(event_id: int, level: str) -> str:
    return f"event-{event_id}-{level}-role"


@dataclass
class AclGraph:
    """
    Role/permission graph in the shape the access-control backend stores it.

    `user_roles` and `role_users` are kept as mirror images by `add_user_roles`.
    Parent edges are stored as given; nothing is flattened.
    """

    user_roles: dict[int, set[str]] = field(default_factory=lambda: defaultdict(set))
    role_users: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))
    allows: dict[tuple[str, str], set[str]] = field(default_factory=lambda: defaultdict(set))
    parents: dict[str, set[str]] = field(default_factory=lambda: defaultdict(set))

    def add_user_roles(self, user_id: int, *roles: str) -> None:
        for role in roles:
            self.user_roles[int(user_id)].add(role)
            self.role_users[role].add(str(user_id))

    def allow(self, role: str, resource: str, permissions: Iterable[str]) -> None:
        self.allows[(role, resource)].update(permissions)

    def add_role_parents(self, role: str, *parent_roles: str) -> None:
        self.parents[role].update(parent_roles)


def build_acl_graph(dataset: ScrapedDataset, pseudo_users: Sequence[PseudoUser]) -> AclGraph:
    graph = AclGraph()

    graph.add_user_roles(ADMIN_ID, ADMINS_ROLE)
    for user in pseudo_users:
        graph.add_user_roles(user.id, CONTRIBUTORS_ROLE)

    # Every account may edit its own role resource.
    for user_id in [ADMIN_ID, *(user.id for user in pseudo_users)]:
        edit_role = role_edit_role(user_id)
        graph.allow(edit_role, role_resource(user_id), ROLE_EDIT_PERMISSIONS)
        graph.add_user_roles(user_id, edit_role)

    for event_id, event in dataset.events.items():
        resource = event_resource(event_id)
        view_role = event_role(event_id, "view")
        edit_role = event_role(event_id, "edit")
        manage_role = event_role(event_id, "manage")
        owner_role = event_role(event_id, "owner")

        graph.allow(view_role, resource, EVENT_VIEW_PERMISSIONS)
        graph.allow(edit_role, resource, EVENT_EDIT_PERMISSIONS)
        graph.add_role_parents(edit_role, view_role)
        graph.allow(manage_role, resource, EVENT_MANAGE_PERMISSIONS)
        graph.add_role_parents(manage_role, edit_role)
        graph.add_role_parents(owner_role, manage_role)

        graph.add_user_roles(int(event.get("ownerId") or ADMIN_ID), owner_role)

    return graph


class AclStore(Protocol):
    def add_allows(self, role: str, resource: str, permissions: Sequence[str]) -> None: ...

    def add_role_parents(self, role: str, parent_roles: Sequence[str]) -> None: ...

    def add_user_roles(self, user_id: str, roles: Sequence[str]) -> None: ...

    def add_role_users(self, role: str, user_ids: Sequence[str]) -> None: ...


class RedisAclStore:
    """
    Cache-store side of the ACL: one Redis set per bucket key, appended with SADD.
    """

    def __init__(self, client, prefix: str) -> None:
        self.client = client
        self.prefix = prefix

    def allows_key(self, role: str, resource: str) -> str:
        return f"{self.prefix}_allows_{role}@{resource}"

    def parents_key(self, role: str) -> str:
        return f"{self.prefix}_parents@{role}"

    def users_key(self, user_id: str) -> str:
        return f"{self.prefix}_users@{user_id}"

    def roles_key(self, role: str) -> str:
        return f"{self.prefix}_roles@{role}"

    def add_allows(self, role: str, resource: str, permissions: Sequence[str]) -> None:
        self.client.sadd(self.allows_key(role, resource), *permissions)

    def add_role_parents(self, role: str, parent_roles: Sequence[str]) -> None:
        self.client.sadd(self.parents_key(role), *parent_roles)

    def add_user_roles(self, user_id: str, roles: Sequence[str]) -> None:
        self.client.sadd(self.users_key(user_id), *roles)

    def add_role_users(self, role: str, user_ids: Sequence[str]) -> None:
        self.client.sadd(self.roles_key(role), *user_ids)


class SqlAclStore:
    """
    Relational side of the ACL: key/value tables holding JSON arrays, upserted on key
    with the full value replaced.
    """

    def __init__(self, session: Session, *, now: str) -> None:
        self.session = session
        self.now = now

    def _upsert(self, table: str, key: str, values: Sequence[str]) -> None:
        self.session.execute(
            text(
                f"""
                INSERT INTO {table} ("key", "value", "createdAt", "updatedAt")
                VALUES (:key, :value, :created_at, :updated_at)
                ON CONFLICT ("key") DO UPDATE
                SET "value" = EXCLUDED."value",
                    "updatedAt" = EXCLUDED."updatedAt"
                """
            ),
            {"key": key, "value": json.dumps(list(values)), "created_at": self.now, "updated_at": self.now},
        )

    def add_allows(self, role: str, resource: str, permissions: Sequence[str]) -> None:
        self._upsert("acl_allows", f"{role}@{resource}", permissions)

    def add_role_parents(self, role: str, parent_roles: Sequence[str]) -> None:
        self._upsert("acl_parents", role, parent_roles)

    def add_user_roles(self, user_id: str, roles: Sequence[str]) -> None:
        self._upsert("acl_users", user_id, roles)

    def add_role_users(self, role: str, user_ids: Sequence[str]) -> None:
        self._upsert("acl_roles", role, user_ids)


def seed_acl(graph: AclGraph, cache_store: AclStore, relational_store: AclStore) -> tuple[int, int]:
    """
    Write `graph` to both stores, one logical unit at a time, cache store first.

    The two writes are not atomic: an error raised by the relational store after the
    cache write leaves the stores diverged until the next run re-applies both.
    Returns (users written, roles written).
    """
    for (role, resource), permissions in graph.allows.items():
        values = sorted(permissions)
        cache_store.add_allows(role, resource, values)
        relational_store.add_allows(role, resource, values)
    for role, parent_roles in graph.parents.items():
        values = sorted(parent_roles)
        cache_store.add_role_parents(role, values)
        relational_store.add_role_parents(role, values)
    logger.info("acl.permissions allows=%s parents=%s", len(graph.allows), len(graph.parents))

    for user_id, roles in graph.user_roles.items():
        values = sorted(roles)
        cache_store.add_user_roles(str(user_id), values)
        relational_store.add_user_roles(str(user_id), values)
    for role, user_ids in graph.role_users.items():
        values = sorted(user_ids, key=int)
        cache_store.add_role_users(role, values)
        relational_store.add_role_users(role, values)
    logger.info("acl.assignments users=%s roles=%s", len(graph.user_roles), len(graph.role_users))
    return len(graph.user_roles), len(graph.role_users)
