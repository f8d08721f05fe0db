from __future__ import annotations

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app.doctrack.db import db_session
from app.doctrack.models import User
from app.doctrack.security import ensure_csrf_token
from app.doctrack.utils import clean_str, json_error, json_ok, request_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
_MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class AuthSession:
    """
    The authenticated caller of one request.

    Built once per request by load_current_user() and handed to views by the
    rbac decorators; service functions receive `auth.user` explicitly.
    """

    user: User
    request_id: str

    @property
    def user_id(self) -> int:
        return self.user.id

    @property
    def department_id(self) -> int | None:
        return self.user.department_id

    @property
    def role(self) -> str:
        return self.user.role


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def load_current_user() -> None:
    """
    Resolves g.auth (an AuthSession or None) from the signed session cookie.
    Also assigns a per-request request_id for log correlation.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.auth = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            return
        g.auth = AuthSession(user=user, request_id=g.request_id)
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)


def _session_payload(auth: AuthSession | None) -> dict:
    return {
        "authenticated": auth is not None,
        "user": auth.user.to_dict() if auth else None,
        "csrf_token": ensure_csrf_token(),
    }


@bp.get("/session")
def session_get():
    return json_ok(**_session_payload(getattr(g, "auth", None)))


@bp.post("/login")
def login_post():
    data = request_payload()
    email = clean_str(data.get("email")).lower()
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return json_error("Demasiados intentos de inicio de sesión. Espera 5 minutos.", 429)

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            current_app.logger.info("Login failed email=%s ip=%s", email, ip)
            return json_error("Credenciales inválidas", 401)

        session.clear()
        session["user_id"] = user.id
        session.permanent = True
        _login_attempts[ip].clear()
        current_app.logger.info("Login ok user_id=%s", user.id)
        g.auth = AuthSession(user=user, request_id=g.request_id)
        return json_ok(**_session_payload(g.auth))
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    auth: AuthSession | None = getattr(g, "auth", None)
    if auth:
        current_app.logger.info("Logout user_id=%s", auth.user_id)
    session.clear()
    return json_ok()


@bp.post("/password")
def change_password():
    auth: AuthSession | None = getattr(g, "auth", None)
    if not auth:
        return json_error("No autorizado", 401)

    data = request_payload()
    current_password = data.get("current_password") or ""
    new_password = data.get("new_password") or ""

    if not check_password_hash(auth.user.password_hash, current_password):
        return json_error("La contraseña actual no es correcta", 400)
    if len(new_password) < _MIN_PASSWORD_LENGTH:
        return json_error(f"La nueva contraseña debe tener al menos {_MIN_PASSWORD_LENGTH} caracteres", 400)

    s = db_session()
    user = s.get(User, auth.user_id)
    user.password_hash = generate_password_hash(new_password)
    user.must_change_password = False
    user.updated_at = datetime.utcnow()
    s.commit()
    current_app.logger.info("Password changed user_id=%s", user.id)
    return json_ok(message="Contraseña actualizada correctamente")
