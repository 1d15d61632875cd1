from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import bcrypt
from sqlalchemy import text
from sqlalchemy.orm import Session

from surge_seed.models import ADMIN_ID
from surge_seed.pseudonyms import generate_pseudonyms, username_for

_PLACEHOLDER_DOMAIN = "local"
ADMIN_USERNAME = "surge"
ADMIN_NICKNAME = "Surge"
PASSWORD_SALT_ROUNDS = 10


@dataclass(frozen=True)
class PseudoUser:
    id: int
    username: str
    nickname: str
    role: str = "contributor"

    @property
    def email(self) -> str:
        return f"{self.username}@{_PLACEHOLDER_DOMAIN}"

    def summary(self) -> dict[str, Any]:
        """
        Public owner object embedded in commit snapshots.
        """
        return {
            "id": self.id,
            "username": self.username,
            "nickname": self.nickname,
            "avatar": None,
            "description": None,
        }


def administrator() -> PseudoUser:
    return PseudoUser(id=ADMIN_ID, username=ADMIN_USERNAME, nickname=ADMIN_NICKNAME, role="admin")


def assign_pseudo_users(
    owner_ids: Iterable[int],
    existing: Optional[dict[int, PseudoUser]] = None,
) -> list[PseudoUser]:
    """
    Pair every distinct non-administrator owner id, in ascending order, with a pseudonym.

    Ids found in `existing` (rows already stored by an earlier run) keep their stored
    names. The remaining ids take, in order, the generated pseudonyms whose username is
    not held by any existing row, so a grown owner set never reuses a stored username.
    """
    existing = existing or {}
    sorted_ids = sorted({int(owner_id) for owner_id in owner_ids if int(owner_id) != ADMIN_ID})
    taken = {user.username for user in existing.values()}
    fresh_names = iter(
        pseudonym
        for pseudonym in generate_pseudonyms(len(sorted_ids) + len(taken))
        if username_for(pseudonym) not in taken
    )

    users: list[PseudoUser] = []
    for owner_id in sorted_ids:
        stored = existing.get(owner_id)
        if stored is not None:
            users.append(stored)
            continue
        pseudonym = next(fresh_names)
        users.append(PseudoUser(id=owner_id, username=username_for(pseudonym), nickname=pseudonym))
    return users


def load_existing_clients(session: Session) -> dict[int, PseudoUser]:
    """
    Clients already present in the relational store, keyed by id.
    """
    rows = session.execute(text("SELECT id, username, nickname, role FROM client")).all()
    return {
        int(row.id): PseudoUser(
            id=int(row.id),
            username=row.username,
            nickname=row.nickname or row.username,
            role=row.role or "contributor",
        )
        for row in rows
    }


def users_by_id(pseudo_users: Iterable[PseudoUser]) -> dict[int, PseudoUser]:
    resolved = {ADMIN_ID: administrator()}
    for user in pseudo_users:
        resolved[user.id] = user
    return resolved


def owner_summary(owner_id: Optional[int], known_users: dict[int, PseudoUser]) -> Optional[dict[str, Any]]:
    user = known_users.get(int(owner_id or ADMIN_ID))
    return user.summary() if user else None


def hash_password(password: str, rounds: int = PASSWORD_SALT_ROUNDS) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def ensure_client(session: Session, user: PseudoUser, *, password_hash: str, now: str) -> bool:
    """
    Insert a row in client for `user` unless one with that id already exists.
    Returns True when a row was inserted.
    """
    result = session.execute(
        text(
            """
            INSERT INTO client (
                id, username, nickname, email, password, role,
                "emailVerified", settings, "createdAt", "updatedAt"
            )
            VALUES (
                :id, :username, :nickname, :email, :password, :role,
                :email_verified, :settings, :created_at, :updated_at
            )
            ON CONFLICT (id) DO NOTHING
            """
        ),
        {
            "id": user.id,
            "username": user.username,
            "nickname": user.nickname,
            "email": user.email,
            "password": password_hash,
            "role": user.role,
            "email_verified": True,
            "settings": json.dumps({}),
            "created_at": now,
            "updated_at": now,
        },
    )
    return bool(result.rowcount)
