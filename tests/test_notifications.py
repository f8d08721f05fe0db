import pytest
from werkzeug.security import generate_password_hash

from app.doctrack import create_app
from app.doctrack.db import session_scope
from app.doctrack.errors import NotFound, ValidationError
from app.doctrack.models import Base, Department, User
from app.doctrack.modules.notifications.feed import ChangeFeed, feed, user_channel
from app.doctrack.modules.notifications.models import Notification
from app.doctrack.modules.notifications.service import create_notification, mark_read


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
        a = Department(name="Mesa de Partes")
        b = Department(name="Legal")
        s.add_all([a, b])
        s.flush()
        s.add_all(
            [
                User(email="admin@example.com", full_name="Admin", password_hash=generate_password_hash("pw"), department_id=a.id, role="admin"),
                User(email="beto@example.com", full_name="Beto", password_hash=generate_password_hash("pw"), department_id=b.id),
                User(email="carla@example.com", full_name="Carla", password_hash=generate_password_hash("pw"), department_id=b.id),
                User(email="off@example.com", full_name="Inactivo", password_hash=generate_password_hash("pw"), department_id=b.id, is_active=False),
            ]
        )

    return app.test_client()


def _login(client, email="admin@example.com") -> dict:
    client.post("/auth/logout")
    r = client.post("/auth/login", json={"email": email, "password": "pw"})
    assert r.status_code == 200
    return {"X-CSRF-Token": r.json["csrf_token"]}


def _ids(app) -> dict:
    with session_scope(app) as s:
        out = {u.email.split("@")[0]: u.id for u in s.query(User).all()}
        out.update({d.name: d.id for d in s.query(Department).all()})
        return out


def test_movements_notify_destination_department(client):
    app = client.application
    ids = _ids(app)
    headers = _login(client)

    r = client.post("/api/documents", json={"title": "Oficio", "departmentId": ids["Mesa de Partes"]}, headers=headers)
    doc = r.json["document"]
    client.post(
        "/api/documents/movement",
        json={"documentId": doc["id"], "action": "derivado", "toDepartmentId": ids["Legal"]},
        headers=headers,
    )

    with session_scope(app) as s:
        rows = s.query(Notification).order_by(Notification.user_id).all()
        assert [n.user_id for n in rows] == [ids["beto"], ids["carla"]]
        assert {n.type for n in rows} == {"info"}
        assert all(doc["document_code"] in n.message for n in rows)

    # completion by beto notifies carla only, with the success type
    headers = _login(client, "beto@example.com")
    client.post("/api/documents/movement", json={"documentId": doc["id"], "action": "completado"}, headers=headers)
    client.post("/api/documents/movement", json={"documentId": doc["id"], "action": "rechazado"}, headers=headers)

    with session_scope(app) as s:
        carla = s.query(Notification).filter(Notification.user_id == ids["carla"]).order_by(Notification.id).all()
        assert [n.type for n in carla] == ["info", "success", "error"]
        assert s.query(Notification).filter(Notification.user_id == ids["beto"]).count() == 1


def test_list_filter_mark_and_delete(client):
    app = client.application
    ids = _ids(app)
    with session_scope(app) as s:
        for i in range(3):
            create_notification(s, user_id=ids["beto"], title=f"N{i}", message="m")
        create_notification(s, user_id=ids["carla"], title="otra", message="m")

    headers = _login(client, "beto@example.com")
    r = client.get("/api/notifications")
    assert r.status_code == 200
    assert len(r.json["notifications"]) == 3
    assert r.json["unread_count"] == 3
    first_id = r.json["notifications"][0]["id"]

    r = client.post(f"/api/notifications/{first_id}/read", headers=headers)
    assert r.json["notification"]["read"] is True

    assert len(client.get("/api/notifications?status=unread").json["notifications"]) == 2
    assert len(client.get("/api/notifications?status=read").json["notifications"]) == 1
    assert len(client.get("/api/notifications?limit=1").json["notifications"]) == 1

    r = client.delete("/api/notifications/read", headers=headers)
    assert r.json["deleted"] == 1

    r = client.post("/api/notifications/read-all", headers=headers)
    assert r.json["updated"] == 2
    assert client.get("/api/notifications").json["unread_count"] == 0

    # another user's notification is invisible
    with session_scope(app) as s:
        other_id = s.query(Notification).filter(Notification.user_id == ids["carla"]).one().id
    assert client.post(f"/api/notifications/{other_id}/read", headers=headers).status_code == 404
    assert client.delete(f"/api/notifications/{other_id}", headers=headers).status_code == 404

    remaining = client.get("/api/notifications").json["notifications"]
    r = client.delete(f"/api/notifications/{remaining[0]['id']}", headers=headers)
    assert r.status_code == 200
    assert len(client.get("/api/notifications").json["notifications"]) == 1


def test_service_validation(client):
    ids = _ids(client.application)
    with session_scope(client.application) as s:
        with pytest.raises(ValidationError):
            create_notification(s, user_id=ids["beto"], title="t", message="m", type="loud")
        n = create_notification(s, user_id=ids["beto"], title="t", message="m")
        with pytest.raises(NotFound):
            mark_read(s, ids["carla"], n.id)


def test_setup_notifications_reports_table_state(client):
    r = client.get("/api/setup-notifications")
    assert r.status_code == 200
    assert r.json["success"] is True

    engine = client.application.extensions["sqlalchemy_engine"]
    Notification.__table__.drop(bind=engine)
    r = client.get("/api/setup-notifications")
    assert r.json["success"] is False
    assert r.json["details"]


def test_events_publish_only_after_commit(client):
    ids = _ids(client.application)
    channel = user_channel(ids["beto"])
    with feed.subscribe(channel) as sub:
        with session_scope(client.application) as s:
            create_notification(s, user_id=ids["beto"], title="t", message="m")
            assert sub.get(timeout=0) is None
        event = sub.get(timeout=1)
        assert event["table"] == "notifications"
        assert event["event"] == "INSERT"

        with pytest.raises(RuntimeError):
            with session_scope(client.application) as s:
                create_notification(s, user_id=ids["beto"], title="t", message="m")
                raise RuntimeError("boom")
        assert sub.get(timeout=0) is None
    assert feed.subscriber_count(channel) == 0


def test_change_feed_fanout():
    f = ChangeFeed()
    a = f.subscribe("user:1")
    b = f.subscribe("user:1")
    c = f.subscribe("user:2")
    assert f.publish("user:1", {"table": "notifications", "event": "UPDATE"}) == 2
    assert a.get(timeout=0)["event"] == "UPDATE"
    assert b.get(timeout=0)["event"] == "UPDATE"
    assert c.get(timeout=0) is None
    a.close()
    assert f.subscriber_count("user:1") == 1

