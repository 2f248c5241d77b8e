"""
SQL storage backend for the admin console.

Declares the storefront tables that share the trash lifecycle, the site
settings table and user role assignments, and serves them through the
``EntityStore`` / ``SettingsStore`` contracts.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from ..lifecycle.exceptions import StoreError
from ..lifecycle.mixins import TrashableMixin
from ..lifecycle.retention import utcnow
from .base import EntityStore, Record, SettingsStore

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    def to_dict(self) -> Record:
        """Convert the row to a plain record."""
        return {
            column.name: getattr(self, column.name) for column in self.__table__.columns
        }


class ProductDB(TrashableMixin, Base):
    """SQLAlchemy model for products."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    regular_price: Mapped[float] = mapped_column(Float, default=0.0)
    discount_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    stock_status: Mapped[str] = mapped_column(String(20), default="in_stock")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class BlogPostDB(TrashableMixin, Base):
    """SQLAlchemy model for blog posts."""

    __tablename__ = "blog_posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[str] = mapped_column(String(100), default="Admin")
    status: Mapped[str] = mapped_column(String(20), default="draft")
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ProfileDB(TrashableMixin, Base):
    """SQLAlchemy model for user profiles (employees and customers)."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class PageDB(TrashableMixin, Base):
    """SQLAlchemy model for site pages."""

    __tablename__ = "pages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    page_type: Mapped[str] = mapped_column(String(20), default="custom")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ActivityLogDB(TrashableMixin, Base):
    """SQLAlchemy model for activity log entries."""

    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    user_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True
    )


class SiteSettingDB(Base):
    """SQLAlchemy model for key-value site settings."""

    __tablename__ = "site_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class UserRoleDB(Base):
    """SQLAlchemy model for role assignments."""

    __tablename__ = "user_roles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (Index("idx_user_roles_user", "user_id"),)


class RolePermissionDB(Base):
    """SQLAlchemy model for per-role action grants."""

    __tablename__ = "role_permissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    permission: Mapped[str] = mapped_column(String(100), nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("role", "permission", name="uq_role_permissions_role_permission"),
    )


TABLE_MODELS: Dict[str, Type[Any]] = {
    model.__tablename__: model
    for model in (
        ProductDB,
        BlogPostDB,
        ProfileDB,
        PageDB,
        ActivityLogDB,
        UserRoleDB,
        RolePermissionDB,
    )
}

SqlActionHandler = Callable[[Session, Mapping[str, Any]], Dict[str, Any]]


def delete_user_action(session: Session, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Remove a user account together with its profile and role rows."""
    user_id = payload.get("user_id")
    if not user_id:
        return {"error": "user_id is required"}

    removed_roles = session.execute(
        delete(UserRoleDB).where(UserRoleDB.user_id == user_id)
    ).rowcount
    removed_profiles = session.execute(
        delete(ProfileDB).where(ProfileDB.user_id == user_id)
    ).rowcount

    if not removed_profiles and not removed_roles:
        return {"error": f"User {user_id} not found"}

    return {"success": True, "user_id": user_id}


class SQLEntityStore(EntityStore, SettingsStore):
    """SQL database storage backend for entities and settings."""

    def __init__(self, connection_string: str):
        """
        Initialize SQL entity storage.

        Args:
            connection_string: Database connection string
        """
        self.connection_string = connection_string
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None  # type: ignore[type-arg]
        self._actions: Dict[str, SqlActionHandler] = {"delete-user": delete_user_action}

    async def initialize(self) -> None:
        """Initialize the database."""
        if self.connection_string.startswith("sqlite"):
            # SQLite doesn't support pool_size and max_overflow
            self.engine = create_engine(self.connection_string, pool_pre_ping=True)
        else:
            self.engine = create_engine(
                self.connection_string,
                pool_pre_ping=True,
                pool_size=10,
                max_overflow=20,
            )

        Base.metadata.create_all(bind=self.engine)

        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, bind=self.engine
        )

    def register_action(self, name: str, handler: SqlActionHandler) -> None:
        """Register a backend action handler called with ``(session, payload)``."""
        self._actions[name] = handler

    def _session(self) -> Session:
        if self.SessionLocal is None:  # nosec B101
            raise RuntimeError("Storage not initialized. Call initialize() first.")
        return self.SessionLocal()

    def _model(self, table: str) -> Type[Any]:
        try:
            return TABLE_MODELS[table]
        except KeyError:
            raise StoreError(f"Unknown table {table}") from None

    @staticmethod
    def _column(model: Type[Any], name: str) -> Any:
        column = getattr(model, name, None)
        if column is None:
            raise StoreError(f"Unknown column {model.__tablename__}.{name}")
        return column

    def _where(self, model: Type[Any], filters: Optional[Mapping[str, Any]]) -> List[Any]:
        return [self._column(model, k) == v for k, v in (filters or {}).items()]

    async def list(
        self, table: str, filters: Optional[Mapping[str, Any]] = None
    ) -> List[Record]:
        model = self._model(table)
        criteria = dict(filters or {})
        if issubclass(model, TrashableMixin) and "is_deleted" in criteria:
            if criteria.pop("is_deleted"):
                stmt = model.select_trashed()
            else:
                stmt = model.select_active().order_by(model.created_at)
        else:
            stmt = select(model)
            if hasattr(model, "created_at"):
                stmt = stmt.order_by(model.created_at)
        stmt = stmt.where(*self._where(model, criteria))

        try:
            with self._session() as session:
                return [row.to_dict() for row in session.scalars(stmt)]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list {table}: {e}")
            raise StoreError(str(e)) from e

    async def get(
        self, table: str, entity_id: str, id_field: str = "id"
    ) -> Optional[Record]:
        model = self._model(table)
        stmt = select(model).where(self._column(model, id_field) == entity_id)

        try:
            with self._session() as session:
                row = session.scalars(stmt).first()
                return row.to_dict() if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(str(e), entity_id=entity_id) from e

    async def insert(self, table: str, fields: Mapping[str, Any]) -> Record:
        model = self._model(table)

        try:
            with self._session() as session:
                row = model(**dict(fields))
                session.add(row)
                session.commit()
                session.refresh(row)
                return row.to_dict()
        except (SQLAlchemyError, TypeError) as e:
            logger.error(f"Failed to insert into {table}: {e}")
            raise StoreError(str(e)) from e

    async def update(
        self,
        table: str,
        entity_id: str,
        fields: Mapping[str, Any],
        id_field: str = "id",
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        model = self._model(table)
        stmt = (
            update(model)
            .where(self._column(model, id_field) == entity_id, *self._where(model, expected))
            .values(**dict(fields))
        )

        try:
            with self._session() as session:
                result = session.execute(stmt)
                session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as e:
            logger.error(f"Failed to update {table} {entity_id}: {e}")
            raise StoreError(str(e), entity_id=entity_id) from e

    async def remove(self, table: str, entity_id: str, id_field: str = "id") -> bool:
        model = self._model(table)
        stmt = delete(model).where(self._column(model, id_field) == entity_id)

        try:
            with self._session() as session:
                result = session.execute(stmt)
                session.commit()
                return bool(result.rowcount)
        except SQLAlchemyError as e:
            logger.error(f"Failed to remove {table} {entity_id}: {e}")
            raise StoreError(str(e), entity_id=entity_id) from e

    async def remove_where(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        older_than: Optional[Tuple[str, datetime]] = None,
    ) -> int:
        model = self._model(table)
        conditions = self._where(model, filters)
        if older_than is not None:
            column, cutoff = older_than
            conditions.append(self._column(model, column) < cutoff)

        try:
            with self._session() as session:
                result = session.execute(delete(model).where(*conditions))
                session.commit()
                return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            logger.error(f"Failed to remove rows from {table}: {e}")
            raise StoreError(str(e)) from e

    async def invoke_action(self, name: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        handler = self._actions.get(name)
        if handler is None:
            return {"error": f"Unknown action {name}"}

        try:
            with self._session() as session:
                result = handler(session, payload)
                if result.get("error"):
                    session.rollback()
                else:
                    session.commit()
                return result
        except SQLAlchemyError as e:
            logger.error(f"Backend action {name} failed: {e}")
            return {"error": f"Backend action {name} failed", "details": [str(e)]}

    async def get_setting(self, key: str) -> Any:
        try:
            with self._session() as session:
                row = session.get(SiteSettingDB, key)
                return row.value if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def set_setting(self, key: str, value: Any) -> None:
        try:
            with self._session() as session:
                row = session.get(SiteSettingDB, key)
                if row is None:
                    session.add(SiteSettingDB(key=key, value=value))
                else:
                    row.value = value
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to store setting {key}: {e}")
            raise StoreError(str(e)) from e
