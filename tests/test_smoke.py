import pytest
from werkzeug.security import generate_password_hash

from app.doctrack import create_app
from app.doctrack.db import session_scope
from app.doctrack.models import Base, Department, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "EMAIL_PROVIDER_API_KEY"):
        monkeypatch.delenv(k, raising=False)

    from app.doctrack import auth

    auth._login_attempts.clear()
    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        d = Department(name="Mesa de Partes")
        s.add(d)
        s.flush()
        s.add(
            User(
                email="admin@example.com",
                full_name="Admin",
                password_hash=generate_password_hash("pw"),
                department_id=d.id,
                role="admin",
                is_active=True,
            )
        )
        s.add(
            User(
                email="inactive@example.com",
                password_hash=generate_password_hash("pw"),
                department_id=d.id,
                is_active=False,
            )
        )

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_anonymous_session_and_api_access(client):
    r = client.get("/auth/session")
    assert r.status_code == 200
    assert r.json["authenticated"] is False
    assert r.json["csrf_token"]

    r = client.get("/api/documents")
    assert r.status_code == 401
    assert r.json["success"] is False


def test_login_and_session(client):
    r = client.post("/auth/login", json={"email": "ADMIN@example.com ", "password": "pw"})
    assert r.status_code == 200
    assert r.json["user"]["email"] == "admin@example.com"
    assert r.json["user"]["department_name"] == "Mesa de Partes"

    r = client.get("/auth/session")
    assert r.json["authenticated"] is True
    assert r.json["user"]["role"] == "admin"

    r = client.get("/api/documents")
    assert r.status_code == 200
    assert r.json["documents"] == []


def test_login_rejects_bad_credentials_and_inactive_users(client):
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "nope"})
    assert r.status_code == 401
    assert r.json["error"] == "Credenciales inválidas"

    r = client.post("/auth/login", json={"email": "inactive@example.com", "password": "pw"})
    assert r.status_code == 401


def test_mutations_require_csrf_token(client):
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    token = r.json["csrf_token"]

    r = client.post("/api/departments", json={"name": "Legal"})
    assert r.status_code == 400

    r = client.post("/api/departments", json={"name": "Legal"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 201


def test_change_password_clears_flag(client):
    app = client.application
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "admin@example.com").one()
        u.must_change_password = True

    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.json["user"]["must_change_password"] is True

    r = client.post("/auth/password", json={"current_password": "pw", "new_password": "short"})
    assert r.status_code == 400

    r = client.post("/auth/password", json={"current_password": "pw", "new_password": "a-longer-secret"})
    assert r.status_code == 200

    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "admin@example.com").one()
        assert u.must_change_password is False

    client.post("/auth/logout")
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "a-longer-secret"})
    assert r.status_code == 200


def test_unknown_route_returns_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["success"] is False
