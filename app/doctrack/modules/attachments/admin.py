from __future__ import annotations

from flask import Blueprint, Response, current_app, request, send_file, stream_with_context

from app.doctrack.auth import AuthSession
from app.doctrack.db import db_session
from app.doctrack.errors import AttachmentRejected, NotFound
from app.doctrack.modules.attachments.service import (
    delete_attachment,
    get_attachment,
    list_attachments,
    upload_attachment,
)
from app.doctrack.modules.documents.service import get_document
from app.doctrack.modules.notifications.feed import document_channel, feed, sse_stream
from app.doctrack.rbac import require_login
from app.doctrack.storage import StorageError, storage_from_config
from app.doctrack.utils import json_ok, optional_str, parse_bool

bp = Blueprint("attachments", __name__)


@bp.get("/api/documents/<int:document_id>/attachments")
@require_login
def attachments_list(document_id: int, auth: AuthSession):
    s = db_session()
    document = get_document(s, document_id)
    return json_ok(attachments=[a.to_dict() for a in list_attachments(s, document.id)])


@bp.post("/api/documents/<int:document_id>/attachments")
@require_login
def attachments_upload(document_id: int, auth: AuthSession):
    s = db_session()
    document = get_document(s, document_id)

    f = request.files.get("file")
    if not f or not f.filename:
        raise AttachmentRejected("Por favor, selecciona un archivo")

    attachment = upload_attachment(
        s,
        storage_from_config(current_app.config),
        document,
        auth.user,
        filename=f.filename,
        data=f.read(),
        content_type=f.mimetype,
        description=optional_str(request.form.get("description")),
        is_main_document=parse_bool(request.form.get("isMainDocument") or request.form.get("is_main_document")),
        max_bytes=int(current_app.config.get("ATTACHMENT_MAX_BYTES") or 5 * 1024 * 1024),
    )
    s.commit()
    return json_ok(201, attachment=attachment.to_dict())


@bp.delete("/api/attachments/<int:attachment_id>")
@require_login
def attachments_delete(attachment_id: int, auth: AuthSession):
    s = db_session()
    attachment = get_attachment(s, attachment_id)
    document = get_document(s, attachment.document_id)
    delete_attachment(s, storage_from_config(current_app.config), attachment, document)
    s.commit()
    current_app.logger.info("Attachment %s deleted by user_id=%s", attachment_id, auth.user_id)
    return json_ok(has_attachments=document.has_attachments)


@bp.get("/api/attachments/<int:attachment_id>/download")
@require_login
def attachments_download(attachment_id: int, auth: AuthSession):
    s = db_session()
    attachment = get_attachment(s, attachment_id)
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(attachment.file_path)
    except StorageError as e:
        current_app.logger.error("Attachment blob missing id=%s key=%s: %s", attachment.id, attachment.file_path, e)
        raise NotFound("No se pudo encontrar el archivo") from e
    return send_file(
        fobj,
        mimetype=attachment.file_type,
        as_attachment=True,
        download_name=attachment.file_name,
        max_age=0,
    )


@bp.get("/api/documents/<int:document_id>/attachments/stream")
@require_login
def attachments_stream(document_id: int, auth: AuthSession):
    s = db_session()
    document = get_document(s, document_id)
    sub = feed.subscribe(document_channel(document.id))
    return Response(
        stream_with_context(sse_stream(sub)),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
