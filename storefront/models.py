"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.

Tables are declared without a schema; storage.Database maps them into
DB_SCHEMA at connection time when one is configured.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from storefront.storage import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AuthUser(Base):
    """
    Credentials record created by the register_user procedure.

    password_hash is empty for accounts created through an external
    (OAuth) provider.
    """
    __tablename__ = "auth_users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True)  # same id as auth_users.id
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    role = Column(String(64), nullable=False, default="customer")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class UserSession(Base):
    __tablename__ = "user_sessions"

    token = Column(String(128), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class StoreTheme(Base):
    """
    Storefront colour theme.

    At most one row has is_active = true once an activation call completes.
    """
    __tablename__ = "store_theme_colors"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    primary_color = Column(String(32), nullable=False)
    primary_hover_color = Column(String(32), nullable=False)
    interactive_color = Column(String(32), nullable=False, default="#EF4444")
    button_color = Column(String(32), nullable=False)
    button_hover_color = Column(String(32), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class WhatsAppMessage(Base):
    """
    Append-only WhatsApp message log.

    id is assigned in insertion order and breaks created_at ties.
    message_id is the provider's id and makes webhook redelivery idempotent.
    """
    __tablename__ = "whatsapp_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(String(255), nullable=True, unique=True)
    from_number = Column(String(64), nullable=False, index=True)
    customer_name = Column(String(255), nullable=True)
    message_text = Column(Text, nullable=False)
    message_type = Column(String(16), nullable=False)  # incoming | outgoing
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now, index=True)
