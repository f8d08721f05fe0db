from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from werkzeug.security import generate_password_hash

from app.doctrack.constants import ROLE_USER, USER_ROLES
from app.doctrack.errors import Conflict, NotFound, ValidationError
from app.doctrack.models import Department, User
from app.doctrack.modules.attachments.models import Attachment
from app.doctrack.modules.documents.models import Document, Movement
from app.doctrack.utils import parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_user_payload(payload: dict, *, require_name: bool = True) -> list[str]:
    errors = []
    email = normalize_email(payload.get("email"))
    if not email:
        errors.append("Email es requerido")
    elif not _EMAIL_RE.match(email):
        errors.append("Email no válido")
    if require_name and not (payload.get("full_name") or "").strip():
        errors.append("El nombre es requerido")
    role = (payload.get("role") or "").strip()
    if role and role not in USER_ROLES:
        errors.append(f"Rol no válido. Debe ser uno de: {', '.join(USER_ROLES)}")
    return errors


def _resolve_department_id(s: "Session", raw) -> int | None:
    if raw in (None, ""):
        return None
    try:
        department_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("Departamento no válido") from None
    if not s.get(Department, department_id):
        raise NotFound("Departamento no encontrado")
    return department_id


def list_users(s: "Session") -> list[User]:
    return s.query(User).order_by(User.full_name.asc(), User.email.asc()).all()


def get_user(s: "Session", user_id: int) -> User:
    u = s.get(User, user_id)
    if not u:
        raise NotFound("Usuario no encontrado")
    return u


def create_user(s: "Session", payload: dict, *, password: str, must_change_password: bool = True) -> User:
    """Create a login-capable user. Raises Conflict when the email is taken."""
    errors = validate_user_payload(payload, require_name=False)
    if errors:
        raise ValidationError(errors[0])
    email = normalize_email(payload.get("email"))
    if s.query(User.id).filter(User.email == email).first():
        raise Conflict("El usuario con este correo ya existe.")

    now = datetime.utcnow()
    user = User(
        email=email,
        full_name=(payload.get("full_name") or "").strip(),
        password_hash=generate_password_hash(password),
        department_id=_resolve_department_id(s, payload.get("department_id")),
        role=(payload.get("role") or ROLE_USER).strip(),
        is_active=True,
        must_change_password=must_change_password,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    logger.info("user created id=%s email=%s role=%s", user.id, user.email, user.role)
    return user


def update_user(s: "Session", user: User, payload: dict) -> User:
    errors = validate_user_payload(payload)
    if errors:
        raise ValidationError(errors[0])

    email = normalize_email(payload.get("email"))
    if email != user.email and s.query(User.id).filter(User.email == email).first():
        raise Conflict("El usuario con este correo ya existe.")

    user.email = email
    user.full_name = payload["full_name"].strip()
    if "department_id" in payload:
        user.department_id = _resolve_department_id(s, payload["department_id"])
        user.department = s.get(Department, user.department_id) if user.department_id else None
    if (payload.get("role") or "").strip():
        user.role = payload["role"].strip()
    if "is_active" in payload:
        user.is_active = parse_bool(payload["is_active"])
    user.updated_at = datetime.utcnow()
    return user


def update_profile(s: "Session", user: User, payload: dict) -> User:
    full_name = (payload.get("full_name") or "").strip()
    if not full_name:
        raise ValidationError("El nombre es requerido")
    user.full_name = full_name
    user.updated_at = datetime.utcnow()
    return user


def delete_user(s: "Session", user: User) -> None:
    """Delete a user that has not created documents or recorded movements."""
    docs = s.execute(select(func.count(Document.id)).where(Document.created_by == user.id)).scalar_one()
    if docs:
        raise Conflict("Hay documentos asociados a este usuario")
    moves = s.execute(select(func.count(Movement.id)).where(Movement.user_id == user.id)).scalar_one()
    if moves:
        raise Conflict("El usuario figura en el historial de movimientos; desactívalo en su lugar")
    uploads = s.execute(select(func.count(Attachment.id)).where(Attachment.uploaded_by == user.id)).scalar_one()
    if uploads:
        raise Conflict("Hay archivos adjuntos subidos por este usuario; desactívalo en su lugar")
    s.delete(user)
    logger.info("user deleted id=%s email=%s", user.id, user.email)
