from datetime import datetime, timedelta

import pytest
from werkzeug.security import generate_password_hash

from app.doctrack import create_app
from app.doctrack.db import session_scope
from app.doctrack.errors import ValidationError
from app.doctrack.models import Base, Department, User
from app.doctrack.modules.documents.models import Document, Movement
from app.doctrack.modules.stats.service import compute_stats, parse_range, trend_interval_days

NOW = datetime(2026, 3, 10, 12, 0, 0)


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))

    from app.doctrack import auth

    auth._login_attempts.clear()
    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        a = Department(name="Archivo")
        b = Department(name="Legal")
        s.add_all([a, b])
        s.flush()
        admin = User(email="admin@example.com", full_name="Admin", password_hash=generate_password_hash("pw"), department_id=a.id, role="admin")
        op = User(email="op@example.com", full_name="Operador", password_hash=generate_password_hash("pw"), department_id=b.id, role="operator")
        s.add_all([admin, op])
        s.flush()

        def doc(code, status, dept, created):
            d = Document(document_code=code, title=code, status=status, department_id=dept.id, created_by=admin.id, created_at=created, updated_at=created)
            s.add(d)
            s.flush()
            return d

        def move(d, action, user, to, at, frm=None):
            s.add(Movement(document_id=d.id, action=action, user_id=user.id, from_department_id=frm, to_department_id=to.id, created_at=at))

        d1_at = NOW - timedelta(days=2, hours=4)
        d1 = doc("DOC-S-1", "completado", b, d1_at)
        move(d1, "creacion", admin, a, d1_at)
        move(d1, "derivado", admin, b, d1_at + timedelta(hours=1), frm=a.id)
        move(d1, "completado", op, b, d1_at + timedelta(hours=10), frm=b.id)

        d2_at = NOW - timedelta(days=1)
        d2 = doc("DOC-S-2", "pendiente", a, d2_at)
        move(d2, "creacion", admin, a, d2_at)

        # outside the 7 and 30 day windows
        old_at = NOW - timedelta(days=60)
        d3 = doc("DOC-S-3", "rechazado", a, old_at)
        move(d3, "creacion", admin, a, old_at)
        move(d3, "rechazado", admin, a, old_at + timedelta(hours=2), frm=a.id)

    return app.test_client()


def _login(client) -> None:
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200


def test_range_parsing_and_intervals():
    assert parse_range(None) == 30
    assert parse_range("90") == 90
    with pytest.raises(ValidationError):
        parse_range("45")
    with pytest.raises(ValidationError):
        parse_range("abc")
    assert [trend_interval_days(d) for d in (7, 30, 90, 180, 365)] == [1, 1, 7, 7, 30]


def test_compute_stats_over_last_week(client):
    with session_scope(client.application) as s:
        stats = compute_stats(s, days=7, now=NOW)

    assert stats["placeholder"] is False
    assert stats["totals"] == {"documents": 2, "movements": 4, "active_users": 2, "avg_processing_hours": 10.0}
    assert {r["name"]: r["value"] for r in stats["by_status"]} == {
        "pendiente": 1,
        "en_proceso": 0,
        "completado": 1,
        "rechazado": 0,
    }
    assert {r["name"]: r["value"] for r in stats["by_department"]} == {"Archivo": 1, "Legal": 1}
    assert {r["name"]: r["value"] for r in stats["by_action"]} == {"creacion": 2, "derivado": 1, "completado": 1}
    assert stats["top_users"][0]["name"] == "Admin"
    assert stats["top_users"][0]["value"] == 3
    assert {r["name"]: r["value"] for r in stats["by_role"]} == {"admin": 75.0, "operator": 25.0}
    assert len(stats["by_hour"]) == 24
    assert sum(r["movements"] for r in stats["by_hour"]) == 4
    assert stats["processing_times"] == [{"id": stats["processing_times"][0]["id"], "name": "Legal", "hours": 10.0, "documents": 1}]

    assert len(stats["trend"]) == 8
    assert sum(b["documents"] for b in stats["trend"]) == 2
    assert sum(b["movements"] for b in stats["trend"]) == 4


def test_compute_stats_wider_window_and_department_filter(client):
    with session_scope(client.application) as s:
        wide = compute_stats(s, days=90, now=NOW)
        legal_id = s.query(Department).filter(Department.name == "Legal").one().id
        legal = compute_stats(s, days=90, department_id=legal_id, now=NOW)

    assert wide["totals"]["documents"] == 3
    assert wide["totals"]["avg_processing_hours"] == 6.0
    assert len(wide["trend"]) == 90 // 7 + 1

    assert legal["totals"]["documents"] == 1
    assert legal["totals"]["movements"] == 2


def test_stats_endpoints(client):
    assert client.get("/api/stats").status_code == 401
    _login(client)

    r = client.get("/api/stats?days=365")
    assert r.status_code == 200
    assert r.json["stats"]["placeholder"] is False
    assert r.json["stats"]["range_days"] == 365

    assert client.get("/api/stats?days=12").status_code == 400

    r = client.get("/api/stats/export.csv?days=365")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    assert "Documentos por estado" in r.data.decode("utf-8")

    r = client.get("/api/dashboard")
    assert r.status_code == 200
    assert r.json["counts"] == {"documents": 3, "users": 2, "departments": 2, "movements": 6}
    assert len(r.json["recent_documents"]) == 3
    assert r.json["recent_documents"][0]["document_code"] == "DOC-S-2"
    assert len(r.json["recent_movements"]) == 5
