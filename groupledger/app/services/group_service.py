"""
services/group_service.py — Groups and memberships.

Authorization rules:
  - Read group data:   members only (FORBIDDEN, 403; non-members get 403, not 404)
  - Add a member:      group creator only
  - Remove a member:   creator may remove anyone but themselves; a member may leave
  - Delete the group:  creator only, and only while it has no expenses or settlements

Removing a member does not rewrite history: their expenses and settlements
stay in the group and keep counting in every balance.

Layer rules:
  - No Flask imports. Session is passed in.
  - Commits are the route's job; only flush here.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.notification import NotificationKind
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.user import User
from groupledger.app.services import notification_service

logger = logging.getLogger(__name__)


# ── Access helpers (shared with the other services) ────────────────────────

def get_group_or_404(group_id: int, session: Session) -> Group:
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def is_member(group_id: int, user_id: int, session: Session) -> bool:
    return session.execute(
        select(Membership.id).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).first() is not None


def require_member(group_id: int, user_id: int, session: Session) -> None:
    if not is_member(group_id, user_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def get_group_for_member(group_id: int, user_id: int, session: Session) -> Group:
    """GROUP_NOT_FOUND (404) first, then FORBIDDEN (403)."""
    group = get_group_or_404(group_id, session)
    require_member(group_id, user_id, session)
    return group


def get_member_ids(group_id: int, session: Session) -> list[int]:
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def get_members(group_id: int, session: Session) -> list[User]:
    stmt = (
        select(User)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


# ── Serialization ──────────────────────────────────────────────────────────

def _build_member_dict(user: User) -> dict:
    return {"id": user.id, "name": user.name, "email": user.email}


def _build_group_dict(group: Group, members: list[User] | None = None) -> dict:
    data = {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_by_user_id": group.created_by_user_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }
    if members is not None:
        data["members"] = [_build_member_dict(m) for m in members]
    return data


def _load_users(user_ids: Iterable[int], session: Session) -> list[User]:
    """Loads every user in `user_ids`; USER_NOT_FOUND (404) names the first missing one."""
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return []
    found = {
        u.id: u
        for u in session.execute(select(User).where(User.id.in_(wanted))).scalars().all()
    }
    for uid in wanted:
        if uid not in found:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {uid} does not exist.",
                404,
                field="member_ids",
            )
    return [found[uid] for uid in wanted]


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        name: str,
        creator_id: int,
        session: Session,
        description: str | None = None,
        member_ids: Iterable[int] = (),
) -> dict:
    """
    Creates a group. The creator becomes its administrator and first member;
    every id in `member_ids` is added too and notified.

    Raises:
      AppError(USER_NOT_FOUND, 404) — an id in member_ids does not exist.
    """
    creator = session.get(User, creator_id)
    if creator is None:
        raise AppError(ErrorCode.USER_NOT_FOUND, f"User {creator_id} not found.", 404)

    others = _load_users((uid for uid in member_ids if uid != creator_id), session)

    group = Group(
        name=name.strip(),
        description=description,
        created_by_user_id=creator_id,
    )
    session.add(group)
    session.flush()

    for user in [creator, *others]:
        session.add(Membership(user_id=user.id, group_id=group.id))
    session.flush()

    notification_service.notify_many(
        (u.id for u in others),
        f'{creator.name} added you to the group "{group.name}"',
        session,
        kind=NotificationKind.GROUP,
    )

    session.refresh(group)
    logger.info("group %s created by user %s with %d members", group.id, creator_id, len(others) + 1)
    return _build_group_dict(group, [creator, *others])


def list_groups(user_id: int, session: Session) -> list[dict]:
    """Groups the user belongs to, oldest first, with a member count."""
    member_count = (
        select(Membership.group_id, func.count(Membership.id).label("member_count"))
        .group_by(Membership.group_id)
        .subquery()
    )
    stmt = (
        select(Group, member_count.c.member_count)
        .join(Membership, Group.id == Membership.group_id)
        .join(member_count, member_count.c.group_id == Group.id)
        .where(Membership.user_id == user_id)
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    return [
        {**_build_group_dict(group), "member_count": count}
        for group, count in session.execute(stmt).all()
    ]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    group = get_group_for_member(group_id, caller_id, session)
    return _build_group_dict(group, get_members(group_id, session))


def add_member(
        group_id: int,
        caller_id: int,
        session: Session,
        target_user_id: int | None = None,
        email: str | None = None,
) -> dict:
    """
    Adds a user (by id or by email) to a group. Creator only.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)        — caller is not the creator
      AppError(USER_NOT_FOUND, 404)
      AppError(ALREADY_MEMBER, 409)
    """
    group = get_group_or_404(group_id, session)

    if caller_id != group.created_by_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the group creator may add members.",
            403,
        )

    if target_user_id is not None:
        target = session.get(User, target_user_id)
    else:
        target = session.execute(
            select(User).where(User.email == (email or "").strip().lower())
        ).scalar_one_or_none()

    if target is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id if target_user_id is not None else email} does not exist.",
            404,
        )

    if is_member(group_id, target.id, session):
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target.id} is already a member of group {group_id}.",
            409,
        )

    membership = Membership(user_id=target.id, group_id=group_id)
    session.add(membership)
    session.flush()
    session.refresh(membership)

    caller = session.get(User, caller_id)
    notification_service.notify(
        target.id,
        f'You were added to group "{group.name}" by {caller.name if caller else "a member"}',
        session,
        kind=NotificationKind.GROUP,
    )

    return {
        "group_id": group_id,
        "user_id": target.id,
        "name": target.name,
        "email": target.email,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)             — caller is neither the creator nor the target
      AppError(CREATOR_CANNOT_LEAVE, 422)  — the creator is always a member
      AppError(USER_NOT_FOUND, 404)        — target is not a member
    """
    group = get_group_for_member(group_id, caller_id, session)

    is_creator = caller_id == group.created_by_user_id
    if not (is_creator or caller_id == target_user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you created it.",
            403,
        )

    if target_user_id == group.created_by_user_id:
        raise AppError(
            ErrorCode.CREATOR_CANNOT_LEAVE,
            "The group creator cannot leave the group. Delete the group instead.",
            422,
        )

    membership = session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == target_user_id,
        )
    ).scalar_one_or_none()

    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    session.delete(membership)
    session.flush()


def delete_group(group_id: int, caller_id: int, session: Session) -> list[int]:
    """
    Deletes an empty group and its memberships. Creator only.

    A group that has ever recorded an expense (deleted ones included) or a
    settlement is kept: that history is what its balances are made of.

    Returns: the ids of the users who were members, for the caller to notify.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)
      AppError(GROUP_HAS_LEDGER_ENTRIES, 409)
    """
    group = get_group_or_404(group_id, session)

    if caller_id != group.created_by_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            "Only the group creator may delete the group.",
            403,
        )

    has_expenses = session.execute(
        select(Expense.id).where(Expense.group_id == group_id).limit(1)
    ).first() is not None
    has_settlements = session.execute(
        select(Settlement.id).where(Settlement.group_id == group_id).limit(1)
    ).first() is not None

    if has_expenses or has_settlements:
        raise AppError(
            ErrorCode.GROUP_HAS_LEDGER_ENTRIES,
            f"Group {group_id} has expenses or settlements and cannot be deleted.",
            409,
        )

    member_ids = get_member_ids(group_id, session)
    session.delete(group)
    session.flush()

    logger.info("group %s deleted by user %s", group_id, caller_id)
    return member_ids
