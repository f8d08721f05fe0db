from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.doctrack.constants import (
    ACTION_COMPLETE,
    ACTION_DESCRIPTIONS,
    ACTION_REJECT,
    NOTIFICATION_TYPES,
)
from app.doctrack.errors import NotFound, ValidationError
from app.doctrack.models import User
from app.doctrack.modules.notifications.feed import queue_event, user_channel
from app.doctrack.modules.notifications.models import Notification

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.doctrack.modules.documents.models import Document, Movement

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


def _changed(s: "Session", user_id: int, event_name: str, **extra) -> None:
    queue_event(s, user_channel(user_id), "notifications", event_name, **extra)


def create_notification(
    s: "Session",
    *,
    user_id: int,
    title: str,
    message: str,
    document_id: int | None = None,
    document_code: str | None = None,
    type: str = "info",
) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValidationError("Tipo de notificación no válido")
    n = Notification(
        user_id=user_id,
        document_id=document_id,
        document_code=document_code,
        title=title,
        message=message,
        type=type,
        read=False,
    )
    s.add(n)
    s.flush()
    _changed(s, user_id, "INSERT", id=n.id)
    return n


def notify_movement(s: "Session", document: "Document", movement: "Movement", actor: User) -> list[Notification]:
    """Notify active members of the destination department (except the actor)."""
    if movement.action == ACTION_COMPLETE:
        ntype = "success"
    elif movement.action == ACTION_REJECT:
        ntype = "error"
    else:
        ntype = "info"
    verb = ACTION_DESCRIPTIONS.get(movement.action, "actualizado")

    recipients = (
        s.query(User)
        .filter(User.department_id == movement.to_department_id)
        .filter(User.is_active.is_(True))
        .filter(User.id != actor.id)
        .all()
    )
    created = []
    for user in recipients:
        created.append(
            create_notification(
                s,
                user_id=user.id,
                document_id=document.id,
                document_code=document.document_code,
                title=f"Documento {document.document_code}",
                message=f"El documento {document.document_code} ha sido {verb} por {actor.display_name}",
                type=ntype,
            )
        )
    if created:
        logger.info("notified %d users about document=%s action=%s", len(created), document.document_code, movement.action)
    return created


def list_notifications(
    s: "Session",
    user_id: int,
    *,
    read: bool | None = None,
    limit: int = DEFAULT_LIST_LIMIT,
) -> list[Notification]:
    q = s.query(Notification).filter(Notification.user_id == user_id)
    if read is not None:
        q = q.filter(Notification.read.is_(read))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(s: "Session", user_id: int) -> int:
    return int(
        s.execute(
            select(func.count(Notification.id))
            .where(Notification.user_id == user_id)
            .where(Notification.read.is_(False))
        ).scalar_one()
    )


def _get_own(s: "Session", user_id: int, notification_id: int) -> Notification:
    n = s.get(Notification, notification_id)
    if not n or n.user_id != user_id:
        raise NotFound("Notificación no encontrada")
    return n


def mark_read(s: "Session", user_id: int, notification_id: int) -> Notification:
    n = _get_own(s, user_id, notification_id)
    if not n.read:
        n.read = True
        _changed(s, user_id, "UPDATE", id=n.id)
    return n


def mark_all_read(s: "Session", user_id: int) -> int:
    unread = (
        s.query(Notification)
        .filter(Notification.user_id == user_id)
        .filter(Notification.read.is_(False))
        .all()
    )
    for n in unread:
        n.read = True
    if unread:
        _changed(s, user_id, "UPDATE", count=len(unread))
    return len(unread)


def delete_notification(s: "Session", user_id: int, notification_id: int) -> None:
    n = _get_own(s, user_id, notification_id)
    s.delete(n)
    _changed(s, user_id, "DELETE", id=notification_id)


def delete_read(s: "Session", user_id: int) -> int:
    read_rows = (
        s.query(Notification)
        .filter(Notification.user_id == user_id)
        .filter(Notification.read.is_(True))
        .all()
    )
    for n in read_rows:
        s.delete(n)
    if read_rows:
        _changed(s, user_id, "DELETE", count=len(read_rows))
    return len(read_rows)


def check_notifications_table(s: "Session") -> tuple[bool, str | None]:
    """Probe the notifications table; returns (ok, error details)."""
    try:
        s.execute(select(Notification.id).limit(1)).first()
        return True, None
    except Exception as e:
        s.rollback()
        logger.error("notifications table check failed: %s", e)
        return False, str(e)
