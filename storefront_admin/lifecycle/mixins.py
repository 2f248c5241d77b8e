"""
SQLAlchemy mixins for trashable tables.

These mixins add the shared trash columns to SQLAlchemy models and keep
``is_deleted`` and ``deleted_at`` consistent at the database level.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Select, select
from sqlalchemy.orm import Mapped, declared_attr, mapped_column


class TrashableMixin:
    """
    Mixin to add trash columns to SQLAlchemy models.

    Provides:
    - ``is_deleted`` / ``deleted_at`` columns
    - A check constraint that ``deleted_at`` is set exactly when ``is_deleted``
    - Select helpers for active and trashed rows

    Usage:
        class Product(Base, TrashableMixin):
            __tablename__ = "products"
            id = mapped_column(String(36), primary_key=True)
    """

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @declared_attr.directive
    def __table_args__(cls) -> Any:
        """Add the deletion consistency constraint."""
        table_name = getattr(cls, "__tablename__", cls.__name__.lower())
        return (
            CheckConstraint(
                "(is_deleted = false AND deleted_at IS NULL) OR "
                "(is_deleted = true AND deleted_at IS NOT NULL)",
                name=f"ck_{table_name}_deletion_consistency",
            ),
        )

    @classmethod
    def select_active(cls) -> Select[Any]:
        """Select statement for rows not in the trash."""
        return select(cls).where(cls.is_deleted.is_(False))

    @classmethod
    def select_trashed(cls) -> Select[Any]:
        """Select statement for rows in the trash, newest first."""
        return (
            select(cls)
            .where(cls.is_deleted.is_(True))
            .order_by(cls.deleted_at.desc())
        )
