from __future__ import annotations

from flask import Blueprint, current_app

from app.doctrack.auth import AuthSession
from app.doctrack.constants import ROLE_ADMIN
from app.doctrack.db import db_session
from app.doctrack.errors import Conflict
from app.doctrack.modules.users.mailer import MailerError, credentials_email_html, email_client_from_config
from app.doctrack.modules.users.service import (
    create_user,
    delete_user,
    get_user,
    list_users,
    update_profile,
    update_user,
)
from app.doctrack.rbac import require_login, require_role
from app.doctrack.utils import json_ok, request_payload

bp = Blueprint("users", __name__)


def _user_fields(data: dict) -> dict:
    fields = {
        "email": data.get("email"),
        "full_name": data.get("full_name") or data.get("fullName"),
        "role": data.get("role"),
    }
    # absent keys leave the stored value alone on update
    if "department_id" in data or "departmentId" in data:
        fields["department_id"] = data.get("department_id", data.get("departmentId"))
    if "is_active" in data:
        fields["is_active"] = data["is_active"]
    return fields


@bp.get("/api/users")
@require_login
def users_list(auth: AuthSession):
    s = db_session()
    return json_ok(users=[u.to_dict() for u in list_users(s)])


@bp.post("/api/users/invite")
@require_role(ROLE_ADMIN)
def users_invite(auth: AuthSession):
    """Create a user with the default password and optionally email the credentials."""
    s = db_session()
    payload = _user_fields(request_payload())
    password = current_app.config["DEFAULT_USER_PASSWORD"]

    user = create_user(s, payload, password=password, must_change_password=True)
    s.commit()
    current_app.logger.info("User invited id=%s by user_id=%s", user.id, auth.user_id)

    email_sent = False
    email_error = None
    client = email_client_from_config(current_app.config)
    if client is not None:
        login_url = current_app.config.get("APP_BASE_URL", "").rstrip("/") + "/auth/login"
        try:
            client.send(
                to=user.email,
                subject="Tu cuenta ha sido creada",
                html=credentials_email_html(
                    full_name=user.full_name, email=user.email, password=password, login_url=login_url
                ),
            )
            email_sent = True
        except MailerError as e:
            current_app.logger.error("Credentials email failed user_id=%s: %s", user.id, e)
            email_error = "No se pudo enviar el correo con las credenciales"

    return json_ok(
        201,
        message=f"Usuario creado con la contraseña temporal {password}. Debe cambiarla al iniciar sesión.",
        user=user.to_dict(),
        email_sent=email_sent,
        email_error=email_error,
    )


@bp.put("/api/users/<int:user_id>")
@require_role(ROLE_ADMIN)
def users_update(user_id: int, auth: AuthSession):
    s = db_session()
    user = update_user(s, get_user(s, user_id), _user_fields(request_payload()))
    s.commit()
    return json_ok(user=user.to_dict(), message="Usuario actualizado correctamente")


@bp.delete("/api/users/<int:user_id>")
@require_role(ROLE_ADMIN)
def users_delete(user_id: int, auth: AuthSession):
    if user_id == auth.user_id:
        raise Conflict("No puedes eliminar tu propio usuario")
    s = db_session()
    delete_user(s, get_user(s, user_id))
    s.commit()
    return json_ok(message="Usuario eliminado correctamente")


@bp.get("/api/profile")
@require_login
def profile_get(auth: AuthSession):
    return json_ok(user=auth.user.to_dict())


@bp.post("/api/profile")
@require_login
def profile_update(auth: AuthSession):
    s = db_session()
    user = update_profile(s, get_user(s, auth.user_id), request_payload())
    s.commit()
    return json_ok(user=user.to_dict(), message="Perfil actualizado correctamente")
