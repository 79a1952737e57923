"""
services/notification_service.py — In-app notifications.

Other services call notify()/notify_many() as a side effect of a ledger
event, inside the same transaction, so a rolled-back expense or settlement
never leaves a notification behind.

Layer rules:
  - No Flask imports. Session is passed in. Only flush.
"""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.notification import Notification, NotificationKind


def _build_notification_dict(n: Notification) -> dict:
    return {
        "id": n.id,
        "message": n.message,
        "kind": NotificationKind(n.kind).value,
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


def notify(
        user_id: int,
        message: str,
        session: Session,
        kind: NotificationKind = NotificationKind.GENERAL,
) -> Notification:
    notification = Notification(user_id=user_id, message=message, kind=kind)
    session.add(notification)
    session.flush()
    return notification


def notify_many(
        user_ids: Iterable[int],
        message: str,
        session: Session,
        kind: NotificationKind = NotificationKind.GENERAL,
        exclude: int | None = None,
) -> int:
    """Sends the same message to every user in `user_ids` except `exclude`."""
    count = 0
    for uid in sorted(set(user_ids)):
        if uid == exclude:
            continue
        session.add(Notification(user_id=uid, message=message, kind=kind))
        count += 1
    session.flush()
    return count


def list_notifications(
        user_id: int,
        session: Session,
        unread_only: bool = False,
) -> dict:
    """The caller's notifications, newest first, plus the unread count."""
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())

    notifications = session.execute(stmt).scalars().all()
    unread = session.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read.is_(False),
        )
    ).scalar_one()

    return {
        "notifications": [_build_notification_dict(n) for n in notifications],
        "unread_count": unread,
    }


def mark_as_read(notification_id: int, user_id: int, session: Session) -> dict:
    """
    Raises:
        AppError(NOTIFICATION_NOT_FOUND, 404) — missing, or owned by someone
        else. Both look the same so ids cannot be enumerated.
    """
    notification = session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise AppError(
            ErrorCode.NOTIFICATION_NOT_FOUND,
            f"Notification {notification_id} not found.",
            404,
        )

    notification.is_read = True
    session.flush()
    return _build_notification_dict(notification)


def mark_all_as_read(user_id: int, session: Session) -> int:
    result = session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    session.flush()
    return result.rowcount or 0
