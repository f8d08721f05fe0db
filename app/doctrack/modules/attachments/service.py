from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from werkzeug.utils import secure_filename

from app.doctrack.constants import (
    ALLOWED_ATTACHMENT_EXTENSIONS,
    ALLOWED_ATTACHMENT_MIME_TYPES,
    ATTACHMENT_MAX_BYTES,
    EXTENSION_MIME_TYPES,
)
from app.doctrack.errors import AttachmentRejected, DocTrackError, Forbidden, NotFound, StorageUnavailable
from app.doctrack.modules.attachments.models import Attachment
from app.doctrack.modules.notifications.feed import document_channel, queue_event
from app.doctrack.storage import BucketNotFound, StorageError, StoragePermissionDenied

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.doctrack.models import User
    from app.doctrack.modules.documents.models import Document
    from app.doctrack.storage import Storage

logger = logging.getLogger(__name__)

MSG_TOO_LARGE = "El archivo excede el tamaño máximo permitido (5MB)"
MSG_BAD_TYPE = "Tipo de archivo no permitido. Solo se permiten PDF, Word y Excel"
MSG_BUCKET_MISSING = (
    "El almacenamiento para archivos no está configurado. "
    "El administrador debe crear el bucket de adjuntos."
)
MSG_UPLOAD_DENIED = (
    "No tienes permisos para subir archivos. "
    "El administrador debe configurar las políticas de seguridad del almacenamiento."
)
MSG_UPLOAD_FAILED = (
    "Error al subir el archivo. Asegúrate de que el archivo no exceda los 5MB "
    "y sea de un formato permitido (PDF, Word, Excel)."
)


def file_extension(filename: str | None) -> str:
    name = (filename or "").strip()
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def validate_upload(filename: str | None, size_bytes: int, *, max_bytes: int = ATTACHMENT_MAX_BYTES) -> str:
    """
    Check size and type before any storage call. Returns the lower-cased extension.

    The extension decides: a declared MIME type never makes a disallowed
    extension acceptable.
    """
    if not filename or not filename.strip():
        raise AttachmentRejected("Por favor, selecciona un archivo")
    if size_bytes <= 0:
        raise AttachmentRejected("El archivo está vacío")
    if size_bytes > max_bytes:
        raise AttachmentRejected(MSG_TOO_LARGE)
    ext = file_extension(filename)
    if ext not in ALLOWED_ATTACHMENT_EXTENSIONS:
        raise AttachmentRejected(MSG_BAD_TYPE)
    return ext


def resolve_content_type(declared: str | None, ext: str) -> str:
    declared = (declared or "").strip().lower()
    if declared in ALLOWED_ATTACHMENT_MIME_TYPES:
        return declared
    return EXTENSION_MIME_TYPES[ext]


def build_storage_key(document_id: int, ext: str, now_ms: int | None = None) -> str:
    """`<document_id>/<epoch ms>-<6 hex chars>.<ext>`; the suffix keeps same-millisecond uploads apart."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{document_id}/{now_ms}-{secrets.token_hex(3)}.{ext}"


def list_attachments(s: "Session", document_id: int) -> list[Attachment]:
    return (
        s.query(Attachment)
        .filter(Attachment.document_id == document_id)
        .order_by(Attachment.created_at.desc(), Attachment.id.desc())
        .all()
    )


def get_attachment(s: "Session", attachment_id: int) -> Attachment:
    a = s.get(Attachment, attachment_id)
    if not a:
        raise NotFound("No se pudo encontrar el archivo")
    return a


def _next_version(s: "Session", document_id: int, file_name: str) -> int:
    current = s.execute(
        select(func.max(Attachment.version))
        .where(Attachment.document_id == document_id)
        .where(Attachment.file_name == file_name)
    ).scalar_one()
    return (current or 0) + 1


def upload_attachment(
    s: "Session",
    storage: "Storage",
    document: "Document",
    user: "User",
    *,
    filename: str,
    data: bytes,
    content_type: str | None = None,
    description: str | None = None,
    is_main_document: bool = False,
    max_bytes: int = ATTACHMENT_MAX_BYTES,
) -> Attachment:
    ext = validate_upload(filename, len(data), max_bytes=max_bytes)
    file_type = resolve_content_type(content_type, ext)
    file_name = secure_filename(filename) or f"documento.{ext}"
    key = build_storage_key(document.id, ext)

    try:
        storage.put_bytes(key, data, content_type=file_type)
    except BucketNotFound as e:
        logger.error("attachment upload failed (bucket missing) document=%s: %s", document.id, e)
        raise StorageUnavailable(MSG_BUCKET_MISSING) from e
    except StoragePermissionDenied as e:
        logger.error("attachment upload denied document=%s: %s", document.id, e)
        raise Forbidden(MSG_UPLOAD_DENIED) from e
    except StorageError as e:
        logger.exception("attachment upload failed document=%s", document.id)
        raise DocTrackError(MSG_UPLOAD_FAILED) from e

    if is_main_document:
        (
            s.query(Attachment)
            .filter(Attachment.document_id == document.id)
            .filter(Attachment.is_main_document.is_(True))
            .update({Attachment.is_main_document: False}, synchronize_session="fetch")
        )

    now = datetime.utcnow()
    attachment = Attachment(
        document_id=document.id,
        file_name=file_name,
        file_type=file_type,
        file_size=len(data),
        file_path=key,
        uploaded_by=user.id,
        description=(description or "").strip() or None,
        is_main_document=is_main_document,
        version=_next_version(s, document.id, file_name),
        created_at=now,
        updated_at=now,
    )
    s.add(attachment)
    document.has_attachments = True
    document.updated_at = now
    s.flush()

    queue_event(s, document_channel(document.id), "attachments", "INSERT", id=attachment.id)
    logger.info(
        "attachment uploaded id=%s document=%s key=%s size=%s", attachment.id, document.id, key, attachment.file_size
    )
    return attachment


def delete_attachment(s: "Session", storage: "Storage", attachment: Attachment, document: "Document") -> None:
    """
    Remove the blob and the row; clear `has_attachments` when none remain.

    A failed blob delete is logged and does not stop the row delete.
    """
    try:
        storage.delete(attachment.file_path)
    except StorageError as e:
        logger.warning("attachment blob delete failed id=%s key=%s: %s", attachment.id, attachment.file_path, e)

    attachment_id = attachment.id
    s.delete(attachment)
    s.flush()

    remaining = s.execute(
        select(func.count(Attachment.id)).where(Attachment.document_id == document.id)
    ).scalar_one()
    if remaining == 0:
        document.has_attachments = False
    document.updated_at = datetime.utcnow()

    queue_event(s, document_channel(document.id), "attachments", "DELETE", id=attachment_id)
    logger.info("attachment deleted id=%s document=%s remaining=%s", attachment_id, document.id, remaining)
