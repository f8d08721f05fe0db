from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.doctrack.constants import TERMINAL_STATUSES
from app.doctrack.models import Base, Department, User


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pendiente', 'en_proceso', 'completado', 'rechazado')",
            name="ck_documents_status",
        ),
        Index("idx_documents_department", "department_id"),
        Index("idx_documents_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # pendiente / en_proceso / completado / rechazado
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pendiente")

    # Mirrors to_department_id of the latest movement.
    department_id: Mapped[int] = mapped_column(ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    has_attachments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    department: Mapped[Department] = relationship(foreign_keys=[department_id], lazy="selectin")
    creator: Mapped[User] = relationship(foreign_keys=[created_by], lazy="selectin")

    movements: Mapped[list["Movement"]] = relationship(
        "Movement",
        back_populates="document",
        order_by=lambda: [Movement.created_at, Movement.id],
        lazy="select",
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_code": self.document_code,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "is_terminal": self.is_terminal,
            "department_id": self.department_id,
            "department_name": self.department.name if self.department else None,
            "created_by": self.created_by,
            "created_by_name": self.creator.display_name if self.creator else None,
            "has_attachments": self.has_attachments,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Movement(Base):
    """
    Append-only routing log. Rows are inserted by the movement service and never updated.
    """

    __tablename__ = "movements"
    __table_args__ = (
        Index("idx_movements_document_created", "document_id", "created_at"),
        Index("idx_movements_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="RESTRICT"), nullable=False)
    # NULL only for the initial "creacion" movement
    from_department_id: Mapped[int | None] = mapped_column(
        ForeignKey("departments.id", ondelete="RESTRICT"),
        nullable=True,
    )
    to_department_id: Mapped[int] = mapped_column(ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False)

    action: Mapped[str] = mapped_column(String(32), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    document: Mapped[Document] = relationship(back_populates="movements", lazy="selectin")
    from_department: Mapped[Department | None] = relationship(foreign_keys=[from_department_id], lazy="selectin")
    to_department: Mapped[Department] = relationship(foreign_keys=[to_department_id], lazy="selectin")
    user: Mapped[User] = relationship(foreign_keys=[user_id], lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_id": self.document_id,
            "from_department_id": self.from_department_id,
            "from_department": (
                {"id": self.from_department.id, "name": self.from_department.name} if self.from_department else None
            ),
            "to_department_id": self.to_department_id,
            "to_department": {"id": self.to_department.id, "name": self.to_department.name} if self.to_department else None,
            "action": self.action,
            "notes": self.notes,
            "user_id": self.user_id,
            "user": {"id": self.user.id, "full_name": self.user.display_name} if self.user else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
