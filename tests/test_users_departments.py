import pytest
from werkzeug.security import check_password_hash, generate_password_hash

from app.doctrack import create_app
from app.doctrack.db import session_scope
from app.doctrack.models import Base, Department, User
from app.doctrack.modules.documents.service import create_document
from app.doctrack.modules.users.mailer import EmailClient, MailerError, credentials_email_html


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("EMAIL_PROVIDER_API_KEY", raising=False)
    monkeypatch.delenv("DEFAULT_USER_PASSWORD", raising=False)

    from app.doctrack import auth

    auth._login_attempts.clear()
    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        d = Department(name="Mesa de Partes")
        s.add(d)
        s.flush()
        s.add_all(
            [
                User(email="admin@example.com", full_name="Admin", password_hash=generate_password_hash("pw"), department_id=d.id, role="admin"),
                User(email="op@example.com", full_name="Operador", password_hash=generate_password_hash("pw"), department_id=d.id, role="operator"),
            ]
        )

    return app.test_client()


def _login(client, email="admin@example.com", password="pw") -> dict:
    client.post("/auth/logout")
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200
    return {"X-CSRF-Token": r.json["csrf_token"]}


class _FakeResponse:
    def __init__(self, status_code, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


def test_invite_creates_user_with_default_password(client):
    headers = _login(client)
    with session_scope(client.application) as s:
        dept_id = s.query(Department).one().id

    r = client.post(
        "/api/users/invite",
        json={"email": "Nuevo@Example.com", "full_name": "Nuevo", "department_id": dept_id, "role": "supervisor"},
        headers=headers,
    )
    assert r.status_code == 201
    assert r.json["user"]["email"] == "nuevo@example.com"
    assert r.json["user"]["must_change_password"] is True
    assert r.json["email_sent"] is False
    assert "123456789" in r.json["message"]

    with session_scope(client.application) as s:
        u = s.query(User).filter(User.email == "nuevo@example.com").one()
        assert check_password_hash(u.password_hash, "123456789")
        assert u.role == "supervisor"

    r = client.post("/api/users/invite", json={"email": "nuevo@example.com"}, headers=headers)
    assert r.status_code == 409
    assert r.json["error"] == "El usuario con este correo ya existe."

    r = client.post("/api/users/invite", json={"email": "no-es-correo"}, headers=headers)
    assert r.status_code == 400

    r = client.post("/api/users/invite", json={"email": "x@example.com", "role": "root"}, headers=headers)
    assert r.status_code == 400


def test_invite_sends_credentials_email(client, monkeypatch):
    client.application.config["EMAIL_PROVIDER_API_KEY"] = "re_test"
    sent = []

    def fake_post(url, json=None, headers=None, timeout=None):
        sent.append((url, json, headers))
        return _FakeResponse(200, {"id": "email-1"})

    monkeypatch.setattr("app.doctrack.modules.users.mailer.requests.post", fake_post)
    headers = _login(client)
    r = client.post("/api/users/invite", json={"email": "mail@example.com", "full_name": "Correo"}, headers=headers)
    assert r.status_code == 201
    assert r.json["email_sent"] is True
    url, body, hdrs = sent[0]
    assert body["to"] == ["mail@example.com"]
    assert "123456789" in body["html"]
    assert hdrs["Authorization"] == "Bearer re_test"


def test_invite_keeps_user_when_email_fails(client, monkeypatch):
    client.application.config["EMAIL_PROVIDER_API_KEY"] = "re_test"
    monkeypatch.setattr(
        "app.doctrack.modules.users.mailer.requests.post",
        lambda *a, **kw: _FakeResponse(422, text="invalid from"),
    )
    headers = _login(client)
    r = client.post("/api/users/invite", json={"email": "fail@example.com"}, headers=headers)
    assert r.status_code == 201
    assert r.json["email_sent"] is False
    assert r.json["email_error"]
    with session_scope(client.application) as s:
        assert s.query(User).filter(User.email == "fail@example.com").count() == 1


def test_email_client_errors():
    client = EmailClient(api_key="k", sender="a@b.c", url="http://127.0.0.1:9/emails", timeout_seconds=1)
    with pytest.raises(MailerError):
        client.send(to="x@example.com", subject="s", html="<p>x</p>")
    html = credentials_email_html(full_name="<b>Ana</b>", email="ana@example.com", password="123456789", login_url="http://x/auth/login")
    assert "<b>Ana</b>" not in html
    assert "&lt;b&gt;Ana&lt;/b&gt;" in html


def test_admin_only_user_management(client):
    headers = _login(client, "op@example.com")
    r = client.post("/api/users/invite", json={"email": "z@example.com"}, headers=headers)
    assert r.status_code == 403
    r = client.post("/api/departments", json={"name": "Legal"}, headers=headers)
    assert r.status_code == 403

    # listing is open to any signed-in user
    assert client.get("/api/users").status_code == 200
    assert client.get("/api/departments").status_code == 200


def test_update_and_delete_users(client):
    headers = _login(client)
    with session_scope(client.application) as s:
        op = s.query(User).filter(User.email == "op@example.com").one()
        admin = s.query(User).filter(User.email == "admin@example.com").one()
        op_id, admin_id, dept_id = op.id, admin.id, op.department_id

    r = client.put(
        f"/api/users/{op_id}",
        json={"email": "op@example.com", "full_name": "Operadora", "department_id": "", "role": "user", "is_active": "false"},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json["user"]["full_name"] == "Operadora"
    assert r.json["user"]["department_id"] is None
    assert r.json["user"]["is_active"] is False

    r = client.put(f"/api/users/{op_id}", json={"email": "admin@example.com", "full_name": "X"}, headers=headers)
    assert r.status_code == 409

    assert client.delete(f"/api/users/{admin_id}", headers=headers).status_code == 409

    # a user with documents cannot be deleted
    with session_scope(client.application) as s:
        op = s.get(User, op_id)
        op.department_id = dept_id
        create_document(s, op, title="Suyo", department_id=dept_id)
    r = client.delete(f"/api/users/{op_id}", headers=headers)
    assert r.status_code == 409

    r = client.post("/api/users/invite", json={"email": "tmp@example.com"}, headers=headers)
    r = client.delete(f"/api/users/{r.json['user']['id']}", headers=headers)
    assert r.status_code == 200


def test_profile_update(client):
    headers = _login(client, "op@example.com")
    r = client.post("/api/profile", json={"full_name": "  Nombre Nuevo "}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["full_name"] == "Nombre Nuevo"
    assert client.get("/api/profile").json["user"]["full_name"] == "Nombre Nuevo"

    r = client.post("/api/profile", json={"full_name": ""}, headers=headers)
    assert r.status_code == 400


def test_department_crud_and_delete_guard(client):
    headers = _login(client)

    r = client.post("/api/departments", json={"name": "Legal", "description": "Asesoría"}, headers=headers)
    assert r.status_code == 201
    legal_id = r.json["department"]["id"]

    r = client.post("/api/departments", json={"name": "legal"}, headers=headers)
    assert r.status_code == 409

    r = client.post("/api/departments", json={"name": " "}, headers=headers)
    assert r.status_code == 400

    r = client.put(f"/api/departments/{legal_id}", json={"name": "Legal y Contratos"}, headers=headers)
    assert r.status_code == 200
    assert r.json["department"]["name"] == "Legal y Contratos"

    names = [d["name"] for d in client.get("/api/departments").json["departments"]]
    assert names == sorted(names)

    # department with users (and documents) is protected
    with session_scope(client.application) as s:
        mesa_id = s.query(Department).filter(Department.name == "Mesa de Partes").one().id
    assert client.delete(f"/api/departments/{mesa_id}", headers=headers).status_code == 409

    assert client.delete(f"/api/departments/{legal_id}", headers=headers).status_code == 200
    assert client.delete(f"/api/departments/{legal_id}", headers=headers).status_code == 404


def test_update_without_department_keeps_it(client):
    headers = _login(client)
    with session_scope(client.application) as s:
        op = s.query(User).filter(User.email == "op@example.com").one()
        op_id, dept_id = op.id, op.department_id

    r = client.put(f"/api/users/{op_id}", json={"email": "op@example.com", "full_name": "Operador Dos"}, headers=headers)
    assert r.status_code == 200
    assert r.json["user"]["full_name"] == "Operador Dos"
    assert r.json["user"]["department_id"] == dept_id

    r = client.put(f"/api/users/{op_id}", json={"email": "op@example.com", "full_name": "Operador Dos", "departmentId": None}, headers=headers)
    assert r.json["user"]["department_id"] is None
