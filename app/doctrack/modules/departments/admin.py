from __future__ import annotations

from flask import Blueprint

from app.doctrack.auth import AuthSession
from app.doctrack.constants import ROLE_ADMIN
from app.doctrack.db import db_session
from app.doctrack.modules.departments.service import (
    create_department,
    delete_department,
    get_department,
    list_departments,
    update_department,
)
from app.doctrack.rbac import require_login, require_role
from app.doctrack.utils import json_ok, request_payload

bp = Blueprint("departments", __name__)


@bp.get("/api/departments")
@require_login
def departments_list(auth: AuthSession):
    s = db_session()
    return json_ok(departments=[d.to_dict() for d in list_departments(s)])


@bp.post("/api/departments")
@require_role(ROLE_ADMIN)
def departments_create(auth: AuthSession):
    s = db_session()
    d = create_department(s, request_payload())
    s.commit()
    return json_ok(201, department=d.to_dict(), message="Departamento creado correctamente")


@bp.put("/api/departments/<int:department_id>")
@require_role(ROLE_ADMIN)
def departments_update(department_id: int, auth: AuthSession):
    s = db_session()
    d = update_department(s, get_department(s, department_id), request_payload())
    s.commit()
    return json_ok(department=d.to_dict(), message="Departamento actualizado correctamente")


@bp.delete("/api/departments/<int:department_id>")
@require_role(ROLE_ADMIN)
def departments_delete(department_id: int, auth: AuthSession):
    s = db_session()
    delete_department(s, get_department(s, department_id))
    s.commit()
    return json_ok(message="Departamento eliminado correctamente")
