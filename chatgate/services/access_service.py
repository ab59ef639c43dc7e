"""
Authorization sets, linked identities, and the identity resolver.

Owner status follows one-hop identity links; the authorized user and group
sets are keyed by the literal identifier and are not shared across links.
"""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import or_

from chatgate.audit import log_event
from chatgate.audit_constants import (
    EVENT_ACCESS_GRANTED,
    EVENT_ACCESS_REVOKED,
    EVENT_IDENTITY_LINKED,
    EVENT_IDENTITY_UNLINKED,
)
from chatgate.errors import ValidationIssue
from chatgate.models import AuthorizedGroup, AuthorizedUser, LinkedIdentity
from chatgate.validators import validate_identifier


# =============================================================================
# Authorized users and groups
# =============================================================================

def is_user_authorized(db, user_id: str) -> bool:
    return db.get(AuthorizedUser, user_id) is not None


def authorize_user(db, user_id: str, actor_id: Optional[str] = None) -> bool:
    """Add a user; returns False when already present."""
    user_id = validate_identifier(user_id, "user_id")
    if db.get(AuthorizedUser, user_id) is not None:
        return False
    db.add(AuthorizedUser(user_id=user_id))
    log_event(
        db,
        event_type=EVENT_ACCESS_GRANTED,
        target_type="user",
        target_ids=[user_id],
        actor_id=actor_id,
    )
    return True


def deauthorize_user(db, user_id: str, actor_id: Optional[str] = None) -> bool:
    removed = db.query(AuthorizedUser).filter(AuthorizedUser.user_id == user_id).delete()
    if removed:
        log_event(
            db,
            event_type=EVENT_ACCESS_REVOKED,
            target_type="user",
            target_ids=[user_id],
            actor_id=actor_id,
        )
    return bool(removed)


def list_users(db) -> list[str]:
    rows = (
        db.query(AuthorizedUser.user_id)
        .order_by(AuthorizedUser.added_at.desc(), AuthorizedUser.user_id.asc())
        .all()
    )
    return [row[0] for row in rows]


def is_group_authorized(db, group_id: str) -> bool:
    return db.get(AuthorizedGroup, group_id) is not None


def authorize_group(db, group_id: str, actor_id: Optional[str] = None) -> bool:
    group_id = validate_identifier(group_id, "group_id")
    if db.get(AuthorizedGroup, group_id) is not None:
        return False
    db.add(AuthorizedGroup(group_id=group_id))
    log_event(
        db,
        event_type=EVENT_ACCESS_GRANTED,
        target_type="group",
        target_ids=[group_id],
        actor_id=actor_id,
        conversation_id=group_id,
    )
    return True


def deauthorize_group(db, group_id: str, actor_id: Optional[str] = None) -> bool:
    removed = db.query(AuthorizedGroup).filter(AuthorizedGroup.group_id == group_id).delete()
    if removed:
        log_event(
            db,
            event_type=EVENT_ACCESS_REVOKED,
            target_type="group",
            target_ids=[group_id],
            actor_id=actor_id,
            conversation_id=group_id,
        )
    return bool(removed)


def list_groups(db) -> list[str]:
    rows = (
        db.query(AuthorizedGroup.group_id)
        .order_by(AuthorizedGroup.added_at.desc(), AuthorizedGroup.group_id.asc())
        .all()
    )
    return [row[0] for row in rows]


# =============================================================================
# Linked identities
# =============================================================================

def link_identities(db, primary_id: str, linked_id: str, actor_id: Optional[str] = None) -> bool:
    primary_id = validate_identifier(primary_id, "primary_id")
    linked_id = validate_identifier(linked_id, "linked_id")
    if primary_id == linked_id:
        raise ValidationIssue(
            "cannot link an identifier to itself",
            field="linked_id",
            error_type="invalid",
        )
    if db.get(LinkedIdentity, (primary_id, linked_id)) is not None:
        return False
    db.add(LinkedIdentity(primary_id=primary_id, linked_id=linked_id))
    log_event(
        db,
        event_type=EVENT_IDENTITY_LINKED,
        target_type="identity",
        target_ids=[primary_id, linked_id],
        actor_id=actor_id or primary_id,
    )
    return True


def unlink_identities(db, primary_id: str, linked_id: str, actor_id: Optional[str] = None) -> bool:
    removed = (
        db.query(LinkedIdentity)
        .filter(LinkedIdentity.primary_id == primary_id)
        .filter(LinkedIdentity.linked_id == linked_id)
        .delete()
    )
    if removed:
        log_event(
            db,
            event_type=EVENT_IDENTITY_UNLINKED,
            target_type="identity",
            target_ids=[primary_id, linked_id],
            actor_id=actor_id or primary_id,
        )
    return bool(removed)


def linked_identities(db, identifier: str) -> set[str]:
    """
    Return ``identifier`` plus every identifier paired with it directly.

    Only one hop: with pairs A-B and B-C, the result for A is {A, B}.
    """
    rows = (
        db.query(LinkedIdentity.primary_id, LinkedIdentity.linked_id)
        .filter(
            or_(
                LinkedIdentity.primary_id == identifier,
                LinkedIdentity.linked_id == identifier,
            )
        )
        .all()
    )
    found = {identifier}
    for primary_id, linked_id in rows:
        found.add(primary_id)
        found.add(linked_id)
    return found


# =============================================================================
# Identity resolver
# =============================================================================

def is_owner(db, sender_id: str, owner_ids: Iterable[str]) -> bool:
    owners = set(owner_ids)
    if not owners:
        return False
    if sender_id in owners:
        return True
    return not owners.isdisjoint(linked_identities(db, sender_id))


def is_authorized(
    db,
    sender_id: str,
    conversation_id: str,
    is_group: bool,
    owner_ids: Iterable[str],
) -> bool:
    if is_owner(db, sender_id, owner_ids):
        return True
    if is_group and is_group_authorized(db, conversation_id):
        return True
    return is_user_authorized(db, sender_id)
