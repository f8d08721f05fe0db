from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from app.doctrack.errors import Conflict, NotFound, ValidationError
from app.doctrack.models import Department, User
from app.doctrack.modules.documents.models import Document, Movement

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def validate_department_payload(payload: dict) -> list[str]:
    errors = []
    if not (payload.get("name") or "").strip():
        errors.append("El nombre es requerido")
    return errors


def list_departments(s: "Session") -> list[Department]:
    return s.query(Department).order_by(Department.name.asc()).all()


def get_department(s: "Session", department_id: int) -> Department:
    d = s.get(Department, department_id)
    if not d:
        raise NotFound("Departamento no encontrado")
    return d


def _ensure_unique_name(s: "Session", name: str, exclude_id: int | None = None) -> None:
    q = s.query(Department.id).filter(func.lower(Department.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Department.id != exclude_id)
    if q.first():
        raise Conflict("Ya existe un departamento con ese nombre")


def create_department(s: "Session", payload: dict) -> Department:
    errors = validate_department_payload(payload)
    if errors:
        raise ValidationError(errors[0])
    name = payload["name"].strip()
    _ensure_unique_name(s, name)

    now = datetime.utcnow()
    d = Department(
        name=name,
        description=(payload.get("description") or "").strip() or None,
        created_at=now,
        updated_at=now,
    )
    s.add(d)
    s.flush()
    logger.info("department created id=%s name=%s", d.id, d.name)
    return d


def update_department(s: "Session", department: Department, payload: dict) -> Department:
    errors = validate_department_payload(payload)
    if errors:
        raise ValidationError(errors[0])
    name = payload["name"].strip()
    _ensure_unique_name(s, name, exclude_id=department.id)

    department.name = name
    department.description = (payload.get("description") or "").strip() or None
    department.updated_at = datetime.utcnow()
    return department


def delete_department(s: "Session", department: Department) -> None:
    """Delete a department that no document, user or movement references."""
    docs = s.execute(select(func.count(Document.id)).where(Document.department_id == department.id)).scalar_one()
    if docs:
        raise Conflict("Hay documentos asociados a este departamento")
    users = s.execute(select(func.count(User.id)).where(User.department_id == department.id)).scalar_one()
    if users:
        raise Conflict("Hay usuarios asociados a este departamento")
    moves = s.execute(
        select(func.count(Movement.id)).where(
            (Movement.to_department_id == department.id) | (Movement.from_department_id == department.id)
        )
    ).scalar_one()
    if moves:
        raise Conflict("El departamento figura en el historial de movimientos")

    s.delete(department)
    logger.info("department deleted id=%s name=%s", department.id, department.name)
