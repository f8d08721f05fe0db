"""departments, users, documents, movements, attachments, notifications

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "departments" not in existing_tables:
        op.create_table(
            "departments",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("name", name="uq_departments_name"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("full_name", sa.String(length=255), nullable=False, server_default=""),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column(
                "department_id",
                sa.Integer(),
                sa.ForeignKey("departments.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="user"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("document_code", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pendiente"),
            sa.Column(
                "department_id",
                sa.Integer(),
                sa.ForeignKey("departments.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("has_attachments", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
            sa.UniqueConstraint("document_code", name="uq_documents_document_code"),
            sa.CheckConstraint(
                "status IN ('pendiente', 'en_proceso', 'completado', 'rechazado')",
                name="ck_documents_status",
            ),
        )
        op.create_index("idx_documents_department", "documents", ["department_id"])
        op.create_index("idx_documents_created_at", "documents", ["created_at"])

    if "movements" not in existing_tables:
        op.create_table(
            "movements",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False),
            sa.Column(
                "from_department_id",
                sa.Integer(),
                sa.ForeignKey("departments.id", ondelete="RESTRICT"),
                nullable=True,
            ),
            sa.Column(
                "to_department_id",
                sa.Integer(),
                sa.ForeignKey("departments.id", ondelete="RESTRICT"),
                nullable=False,
            ),
            sa.Column("action", sa.String(length=32), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
        )
        op.create_index("idx_movements_document_created", "movements", ["document_id", "created_at"])
        op.create_index("idx_movements_created_at", "movements", ["created_at"])

    if "attachments" not in existing_tables:
        op.create_table(
            "attachments",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("file_type", sa.String(length=128), nullable=False, server_default="application/octet-stream"),
            sa.Column("file_size", sa.Integer(), nullable=False),
            sa.Column("file_path", sa.String(length=512), nullable=False),
            sa.Column("uploaded_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_main_document", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            *_timestamps(),
        )
        op.create_index("idx_attachments_document", "attachments", ["document_id"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=True),
            sa.Column("document_code", sa.String(length=64), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("message", sa.Text(), nullable=False, server_default=""),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="info"),
            sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
        )
        op.create_index("idx_notifications_user_read", "notifications", ["user_id", "read"])
        op.create_index("idx_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    for table in ("notifications", "attachments", "movements", "documents", "users", "departments"):
        op.drop_table(table)
