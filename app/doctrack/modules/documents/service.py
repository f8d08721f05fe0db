"""
Document lifecycle: creation, movements (routing + status changes) and lookups.

Every status change goes through `record_movement`, which appends a Movement
row and updates the parent Document inside the caller's transaction. Callers
commit once, so the log and the document's cached status/department either
both change or neither does.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from app.doctrack.constants import (
    ACTION_CREATE,
    ACTION_TO_STATUS,
    ACTIONS_REQUIRING_DESTINATION,
    DOCUMENT_CODE_PREFIX,
    DOCUMENT_STATUSES,
)
from app.doctrack.errors import (
    Conflict,
    DepartmentMismatch,
    InvalidAction,
    MissingDestination,
    NotFound,
    ValidationError,
)
from app.doctrack.models import Department
from app.doctrack.modules.documents.models import Document, Movement

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.doctrack.models import User

logger = logging.getLogger(__name__)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("to_base36 expects a non-negative integer")
    if n == 0:
        return "0"
    out = []
    while n:
        n, rem = divmod(n, 36)
        out.append(_BASE36[rem])
    return "".join(reversed(out))


def generate_document_code(now_ms: int | None = None) -> str:
    """DOC-<base36 epoch ms>-<3 random base36 chars>, upper-cased."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(3))
    return f"{DOCUMENT_CODE_PREFIX}{to_base36(now_ms)}-{suffix}".upper()


def normalize_document_code(code: str | None) -> str:
    return (code or "").strip().upper()


def is_scannable_code(code: str | None) -> bool:
    # Scanning only checks the prefix; codes typed by hand may use any suffix.
    return normalize_document_code(code).startswith(DOCUMENT_CODE_PREFIX)


def resulting_status(action: str) -> str:
    try:
        return ACTION_TO_STATUS[action]
    except KeyError:
        raise InvalidAction() from None


def requires_destination(action: str) -> bool:
    if action not in ACTION_TO_STATUS:
        raise InvalidAction()
    return action in ACTIONS_REQUIRING_DESTINATION


def _get_department(s: "Session", department_id: int | None) -> Department:
    dept = s.get(Department, department_id) if department_id is not None else None
    if not dept:
        raise NotFound("Departamento no encontrado")
    return dept


def record_movement(
    s: "Session",
    document: Document,
    actor: "User",
    action: str,
    to_department_id: int | None = None,
    notes: str | None = None,
    *,
    enforce_department: bool = True,
    initial: bool = False,
) -> Movement:
    """
    Append a movement for `document` and apply its status/department change.

    Raises InvalidAction, MissingDestination, NotFound or DepartmentMismatch
    before anything is written. Not idempotent: repeated calls append repeated
    movements. Terminal statuses are not guarded here. The "creacion" action is
    only accepted with `initial=True`, for the first movement of a document.
    """
    action = (action or "").strip()
    new_status = resulting_status(action)
    if (action == ACTION_CREATE) != initial:
        raise InvalidAction()

    if enforce_department and actor.department_id != document.department_id:
        raise DepartmentMismatch()

    if action in ACTIONS_REQUIRING_DESTINATION:
        if to_department_id is None:
            raise MissingDestination()
        destination = _get_department(s, to_department_id)
    else:
        destination = _get_department(s, document.department_id)

    from_department_id = None if action == ACTION_CREATE else document.department_id
    now = datetime.utcnow()

    movement = Movement(
        document_id=document.id,
        from_department_id=from_department_id,
        to_department_id=destination.id,
        action=action,
        notes=(notes or "").strip() or None,
        user_id=actor.id,
        created_at=now,
    )
    s.add(movement)

    document.status = new_status
    document.department_id = destination.id
    document.department = destination
    document.updated_at = now
    s.flush()

    logger.info(
        "movement recorded document=%s action=%s from=%s to=%s status=%s user=%s",
        document.document_code,
        action,
        from_department_id,
        destination.id,
        new_status,
        actor.id,
    )
    return movement


def create_document(
    s: "Session",
    actor: "User",
    *,
    title: str,
    department_id: int | None,
    description: str | None = None,
    document_code: str | None = None,
) -> Document:
    """Create a document in `department_id` together with its "creacion" movement."""
    title = (title or "").strip()
    if not title or department_id is None:
        raise ValidationError("Todos los campos son requeridos")

    code = normalize_document_code(document_code) or generate_document_code()
    if not code.startswith(DOCUMENT_CODE_PREFIX):
        raise ValidationError(f"El código del documento debe comenzar con {DOCUMENT_CODE_PREFIX}")
    if s.execute(select(Document.id).where(Document.document_code == code)).first():
        raise Conflict("Ya existe un documento con ese código")

    department = _get_department(s, department_id)
    now = datetime.utcnow()
    document = Document(
        document_code=code,
        title=title,
        description=(description or "").strip() or None,
        status=ACTION_TO_STATUS[ACTION_CREATE],
        department_id=department.id,
        created_by=actor.id,
        has_attachments=False,
        created_at=now,
        updated_at=now,
    )
    document.department = department
    s.add(document)
    s.flush()

    record_movement(
        s,
        document,
        actor,
        ACTION_CREATE,
        to_department_id=department.id,
        notes="Documento creado en el sistema",
        enforce_department=False,
        initial=True,
    )
    return document


def get_document(s: "Session", document_id: int | None) -> Document:
    doc = s.get(Document, document_id) if document_id is not None else None
    if not doc:
        raise NotFound("Documento no encontrado")
    return doc


def get_document_by_code(s: "Session", code: str | None) -> Document:
    normalized = normalize_document_code(code)
    doc = s.query(Document).filter(Document.document_code == normalized).one_or_none() if normalized else None
    if not doc:
        raise NotFound("Documento no encontrado")
    return doc


def get_document_movements(s: "Session", document_id: int) -> list[Movement]:
    """Movement history in the order it was recorded (oldest first)."""
    return (
        s.query(Movement)
        .filter(Movement.document_id == document_id)
        .order_by(Movement.created_at.asc(), Movement.id.asc())
        .all()
    )


def list_documents(
    s: "Session",
    *,
    status: str | None = None,
    department_id: int | None = None,
    search: str | None = None,
    limit: int | None = None,
) -> list[Document]:
    q = s.query(Document)
    if status:
        if status not in DOCUMENT_STATUSES:
            raise ValidationError("Estado no válido")
        q = q.filter(Document.status == status)
    if department_id is not None:
        q = q.filter(Document.department_id == department_id)
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(or_(Document.document_code.ilike(like), Document.title.ilike(like)))
    q = q.order_by(Document.created_at.desc(), Document.id.desc())
    if limit:
        q = q.limit(limit)
    return q.all()
