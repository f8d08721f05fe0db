import os
import sys
from datetime import datetime
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.doctrack.constants import ROLE_ADMIN  # noqa: E402
from app.doctrack.models import Department, User  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402

DEFAULT_DEPARTMENTS = ("Administración", "Mesa de Partes")


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the default departments and the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@doctrack.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///doctrack.db").strip()

    # Direct engine/session so release can run this without importing app.wsgi.
    with script_session(db_url) as s:
        now = datetime.utcnow()
        departments: dict[str, Department] = {}
        for name in DEFAULT_DEPARTMENTS:
            d = s.query(Department).filter(Department.name == name).one_or_none()
            if not d:
                d = Department(name=name, created_at=now, updated_at=now)
                s.add(d)
                s.flush()
            departments[name] = d

        admin = s.query(User).filter(User.email == admin_email).one_or_none()
        if not admin:
            admin = User(
                email=admin_email,
                full_name="Administrador",
                password_hash=generate_password_hash(admin_password),
                department_id=departments[DEFAULT_DEPARTMENTS[0]].id,
                role=ROLE_ADMIN,
                is_active=True,
                must_change_password=False,
                created_at=now,
                updated_at=now,
            )
            s.add(admin)
        elif admin.role != ROLE_ADMIN:
            admin.role = ROLE_ADMIN
            admin.updated_at = now


def main() -> None:
    """
    Local dev helper: create tables directly and seed.
    Production uses `alembic upgrade head` followed by seed_only().
    """
    from app.doctrack.models import Base
    from scripts._db_utils import create_script_engine

    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///doctrack.db").strip()
    engine = create_script_engine(db_url)
    Base.metadata.create_all(engine)
    engine.dispose()
    seed_only(database_url=db_url)
    print("Initialized database and seeded admin user.")


if __name__ == "__main__":
    main()
