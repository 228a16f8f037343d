import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Generator, List, Optional, Tuple

from fastapi import Request
from sqlalchemy import create_engine, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()


class Database:
    """
    Engine and session factory for the relational store.

    Created once by the application lifespan and handed to request handlers
    through get_db(); nothing in this module holds a process-wide engine.
    """

    def __init__(self, url: str, schema: Optional[str] = None, echo: bool = False):
        connect_args = {}
        if url.startswith("sqlite"):
            # check_same_thread=False is required for SQLite to work with FastAPI's threadpool
            connect_args["check_same_thread"] = False

        engine = create_engine(url, connect_args=connect_args, echo=echo, pool_pre_ping=True)
        if schema:
            engine = engine.execution_options(schema_translate_map={None: schema})

        self.url = url
        self.schema = schema
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def init_db(self) -> None:
        """
        Create all tables.
        Called during application startup.
        """
        logger.debug(f"Initializing database (schema={self.schema})")
        try:
            # Import models to register them with Base.metadata
            from storefront import models  # noqa: F401

            Base.metadata.create_all(bind=self.engine)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def session(self) -> Session:
        return self.SessionLocal()

    def check_health(self) -> bool:
        """Return True if the store answers a trivial query."""
        try:
            with self.SessionLocal() as db:
                db.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session from the application's Database and closes it after use.
    """
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Registration Procedure
# =============================================================================

def register_user(db: Session, email: str, password_hash: str, name: str) -> Dict[str, Any]:
    """
    Create an account and its profile in one transaction.

    Args:
        db: Database session
        email: Login email (unique)
        password_hash: Already-hashed password
        name: Display name stored on the profile

    Returns:
        {"success": True, "user": {...}} on creation, or
        {"success": False, "error": "..."} when the procedure rejects the input.

    Raises:
        SQLAlchemyError: the store itself failed; the transaction is rolled back.
    """
    from storefront.models import AuthUser, UserProfile

    email = email.strip().lower()
    logger.info(f"register_user: {email}")

    if "@" not in email:
        return {"success": False, "error": "Invalid email address"}

    existing = db.execute(select(AuthUser.id).where(AuthUser.email == email)).first()
    if existing is not None:
        logger.info(f"register_user: email already registered: {email}")
        return {"success": False, "error": "Email is already registered"}

    try:
        user = AuthUser(email=email, password_hash=password_hash)
        db.add(user)
        db.flush()
        profile = UserProfile(id=user.id, email=email, name=name, role="customer")
        db.add(profile)
        db.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration of the same email
        db.rollback()
        return {"success": False, "error": "Email is already registered"}
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(f"register_user: created user {user.id}")
    return {
        "success": True,
        "user": {"id": user.id, "email": email, "name": profile.name, "role": profile.role},
    }


# =============================================================================
# Users, Profiles and Sessions
# =============================================================================

def get_auth_user_by_email(db: Session, email: str):
    from storefront.models import AuthUser

    stmt = select(AuthUser).where(AuthUser.email == email.strip().lower())
    return db.execute(stmt).scalars().first()


def get_user_profile(db: Session, user_id: str):
    from storefront.models import UserProfile

    return db.get(UserProfile, user_id)


def create_user_session(db: Session, user_id: str, ttl_seconds: int) -> str:
    """Persist a new opaque session token for user_id and return it."""
    from storefront.models import UserSession

    token = secrets.token_urlsafe(32)
    expires_at = _now() + timedelta(seconds=max(60, ttl_seconds))
    db.add(UserSession(token=token, user_id=user_id, expires_at=expires_at))
    db.commit()
    return token


def get_user_session(db: Session, token: str):
    """
    Return the live session row for token, or None.
    Expired rows are deleted on lookup.
    """
    from storefront.models import UserSession

    row = db.get(UserSession, token)
    if row is None:
        return None
    expires_at = row.expires_at
    if expires_at.tzinfo is None:
        # SQLite hands back naive datetimes
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at < _now():
        db.delete(row)
        db.commit()
        return None
    return row


def delete_user_session(db: Session, token: str) -> None:
    from storefront.models import UserSession

    row = db.get(UserSession, token)
    if row is not None:
        db.delete(row)
        db.commit()


# =============================================================================
# WhatsApp Message Repository Functions
# =============================================================================

@dataclass
class MessageLog:
    """
    Result of reading the message log.

    A degraded log carries no rows and the reason the read failed; callers
    serve it as an empty success instead of an error.
    """
    messages: List[Any] = field(default_factory=list)
    degraded: bool = False
    reason: Optional[str] = None

    @classmethod
    def ok(cls, messages: List[Any]) -> "MessageLog":
        return cls(messages=list(messages))

    @classmethod
    def degrade(cls, reason: str) -> "MessageLog":
        return cls(messages=[], degraded=True, reason=reason)


def query_messages(db: Session, phone: Optional[str] = None) -> MessageLog:
    """
    Read the message log ordered by created_at ASC, id ASC.

    Args:
        db: Database session
        phone: Only messages whose from_number equals phone

    Returns:
        MessageLog; degraded when the store is unreachable or the table is missing.
    """
    from storefront.models import WhatsAppMessage

    logger.info(f"Querying messages: phone={phone}")
    try:
        stmt = select(WhatsAppMessage)
        if phone:
            stmt = stmt.where(WhatsAppMessage.from_number == phone)
        stmt = stmt.order_by(WhatsAppMessage.created_at.asc(), WhatsAppMessage.id.asc())
        rows = db.execute(stmt).scalars().all()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Message query failed, serving empty log: {e}")
        return MessageLog.degrade(str(e.__class__.__name__))

    logger.debug(f"Retrieved {len(rows)} messages")
    return MessageLog.ok(rows)


def record_message(
    db: Session,
    from_number: str,
    message_text: str,
    message_type: str,
    customer_name: Optional[str] = None,
    message_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> Tuple[bool, bool]:
    """
    Append a message to the log (idempotent on provider message_id).

    Returns:
        Tuple of (success: bool, is_duplicate: bool)
        - (True, False): Message recorded
        - (True, True): message_id already recorded
        - (False, False): Error occurred
    """
    from storefront.models import WhatsAppMessage

    logger.info(f"Recording {message_type} message: id={message_id}, number={from_number}")
    try:
        message = WhatsAppMessage(
            message_id=message_id,
            from_number=from_number,
            customer_name=customer_name,
            message_text=message_text,
            message_type=message_type,
            is_read=False,
            created_at=created_at or _now(),
        )
        db.add(message)
        db.commit()
        return (True, False)

    except IntegrityError:
        db.rollback()
        logger.info(f"Duplicate message detected: {message_id}")
        return (True, True)

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to record message {message_id}: {e}")
        return (False, False)


# =============================================================================
# Theme Repository Functions
# =============================================================================

def list_themes(db: Session) -> list:
    from storefront.models import StoreTheme

    stmt = select(StoreTheme).order_by(StoreTheme.created_at.asc())
    return list(db.execute(stmt).scalars().all())


def create_theme(db: Session, **values):
    from storefront.models import StoreTheme

    theme = StoreTheme(is_active=False, is_default=False, **values)
    db.add(theme)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(theme)
    return theme


def update_theme(db: Session, theme_id: str, **values) -> int:
    """Update the given columns (None values are skipped); returns matched rows."""
    from storefront.models import StoreTheme

    changes = {k: v for k, v in values.items() if v is not None}
    if not changes:
        return 0
    try:
        result = db.execute(update(StoreTheme).where(StoreTheme.id == theme_id).values(**changes))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return result.rowcount


def delete_theme(db: Session, theme_id: str) -> int:
    from storefront.models import StoreTheme

    try:
        theme = db.get(StoreTheme, theme_id)
        if theme is None:
            return 0
        db.delete(theme)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return 1


def theme_exists(db: Session, theme_id: str) -> bool:
    from storefront.models import StoreTheme

    return db.execute(select(StoreTheme.id).where(StoreTheme.id == theme_id)).first() is not None


def deactivate_all_themes(db: Session) -> int:
    """Set is_active = false on every theme and commit."""
    from storefront.models import StoreTheme

    try:
        result = db.execute(update(StoreTheme).values(is_active=False))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return result.rowcount


def set_theme_active(db: Session, theme_id: str) -> int:
    """Set is_active = true on theme_id and commit; returns matched rows."""
    from storefront.models import StoreTheme

    try:
        result = db.execute(
            update(StoreTheme).where(StoreTheme.id == theme_id).values(is_active=True)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return result.rowcount
