from __future__ import annotations

from flask import Blueprint, Response, current_app, request, stream_with_context

from app.doctrack.auth import AuthSession
from app.doctrack.db import db_session
from app.doctrack.modules.notifications.feed import feed, sse_stream, user_channel
from app.doctrack.modules.notifications.service import (
    check_notifications_table,
    delete_notification,
    delete_read,
    list_notifications,
    mark_all_read,
    mark_read,
    unread_count,
)
from app.doctrack.rbac import require_login
from app.doctrack.utils import json_ok, parse_int

bp = Blueprint("notifications", __name__)


@bp.get("/api/notifications")
@require_login
def notifications_list(auth: AuthSession):
    s = db_session()
    status = (request.args.get("status") or "all").strip().lower()
    read = {"unread": False, "read": True}.get(status)
    limit = parse_int(request.args.get("limit")) or 50
    limit = max(1, min(limit, 200))

    rows = list_notifications(s, auth.user_id, read=read, limit=limit)
    return json_ok(
        notifications=[n.to_dict() for n in rows],
        unread_count=unread_count(s, auth.user_id),
    )


@bp.post("/api/notifications/<int:notification_id>/read")
@require_login
def notifications_mark_read(notification_id: int, auth: AuthSession):
    s = db_session()
    n = mark_read(s, auth.user_id, notification_id)
    s.commit()
    return json_ok(notification=n.to_dict())


@bp.post("/api/notifications/read-all")
@require_login
def notifications_mark_all_read(auth: AuthSession):
    s = db_session()
    count = mark_all_read(s, auth.user_id)
    s.commit()
    return json_ok(updated=count)


@bp.delete("/api/notifications/read")
@require_login
def notifications_delete_read(auth: AuthSession):
    s = db_session()
    count = delete_read(s, auth.user_id)
    s.commit()
    return json_ok(deleted=count)


@bp.delete("/api/notifications/<int:notification_id>")
@require_login
def notifications_delete(notification_id: int, auth: AuthSession):
    s = db_session()
    delete_notification(s, auth.user_id, notification_id)
    s.commit()
    return json_ok()


@bp.get("/api/notifications/stream")
@require_login
def notifications_stream(auth: AuthSession):
    sub = feed.subscribe(user_channel(auth.user_id))
    current_app.logger.debug("notification stream opened user_id=%s", auth.user_id)
    return Response(
        stream_with_context(sse_stream(sub)),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@bp.get("/api/setup-notifications")
def setup_notifications():
    """Health check for the notifications table."""
    s = db_session()
    ok, details = check_notifications_table(s)
    if not ok:
        return {
            "success": False,
            "error": "Error al verificar la tabla de notificaciones",
            "details": details,
        }
    return {"success": True, "message": "Sistema de notificaciones configurado correctamente"}
