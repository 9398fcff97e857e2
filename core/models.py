"""Declarative base and shared column mixins."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import declarative_base, declared_attr

Base = declarative_base()


def new_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class SoftDeleteMixin:
    """Rows carrying ``deleted_at`` are hidden from ORM selects by ``core.database``."""

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def soft_delete(self) -> None:
        self.deleted_at = utcnow()


class TenantMixin:
    @declared_attr
    def tenant_id(cls):
        return Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
