"""Session helpers (issue tokens, cookies, session lookup)."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session as DBSession

from storefront import storage
from storefront.errors import Unauthorized

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session"


@dataclass
class SessionUser:
    id: str
    email: str
    role: str


@dataclass
class Session:
    token: str
    user: SessionUser


def request_token(request: Request) -> Optional[str]:
    """Bearer token from the Authorization header, else the session cookie."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE_NAME) or None


class IdentityProvider:
    """Issues and resolves opaque session tokens stored in user_sessions."""

    def __init__(self, ttl_seconds: int, secure_cookies: bool = False):
        self.ttl_seconds = ttl_seconds
        self.secure_cookies = secure_cookies

    def issue(self, db: DBSession, user_id: str) -> str:
        return storage.create_user_session(db, user_id, self.ttl_seconds)

    def get_session(self, request: Request, db: DBSession) -> Optional[Session]:
        token = request_token(request)
        if not token:
            return None
        row = storage.get_user_session(db, token)
        if row is None:
            return None
        profile = storage.get_user_profile(db, row.user_id)
        email = profile.email if profile else ""
        role = profile.role if profile else "customer"
        return Session(token=token, user=SessionUser(id=row.user_id, email=email, role=role))

    def revoke(self, db: DBSession, token: str) -> None:
        storage.delete_user_session(db, token)

    def set_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            SESSION_COOKIE_NAME,
            token,
            httponly=True,
            secure=self.secure_cookies,
            samesite="lax",
            max_age=self.ttl_seconds,
            path="/",
        )

    def clear_cookie(self, response: Response) -> None:
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_optional_session(
    request: Request,
    db: DBSession = Depends(storage.get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Optional[Session]:
    return identity.get_session(request, db)


def require_session(session: Optional[Session] = Depends(get_optional_session)) -> Session:
    if session is None or not session.user.id:
        raise Unauthorized()
    return session
