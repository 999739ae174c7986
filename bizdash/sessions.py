"""
bizdash/sessions.py

Server-held sessions.

The browser cookie carries only an opaque random token. The session dict
(Flask-Login's "_user_id", the CSRF token, ...) lives in a SessionStore keyed
by that token:

- SessionStore: the storage contract (load / save / delete / purge_expired).
- DatabaseSessionStore: user_sessions table; tokens are stored as SHA-256
  digests, each save is a single-row upsert committed on its own.
- ServerSideSessionInterface: Flask SessionInterface that wires a store into
  the request cycle. Plug it in with app.session_interface = ...

Expired rows are treated as absent (and removed on access); `flask purge-sessions`
removes the rest.
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from flask.sessions import SessionInterface, SessionMixin
from werkzeug.datastructures import CallbackDict

from .models import UserSession, utcnow

logger = logging.getLogger(__name__)


def new_token() -> str:
    return secrets.token_urlsafe(32)


# ---------------------------------------------------------------------
# Store contract + database implementation
# ---------------------------------------------------------------------
class SessionStore(ABC):
    """Persistence contract for session dicts keyed by token."""

    @abstractmethod
    def load(self, token: str) -> Optional[dict[str, Any]]:
        """Return the session dict, or None when unknown or expired."""

    @abstractmethod
    def save(self, token: str, data: dict[str, Any], expires_at: datetime) -> None:
        """Create or replace the record for token."""

    @abstractmethod
    def delete(self, token: str) -> None:
        """Remove the record for token (no error when absent)."""

    @abstractmethod
    def purge_expired(self) -> int:
        """Delete expired records; return how many were removed."""


def _user_id_from(data: dict[str, Any]) -> Optional[int]:
    raw = data.get("_user_id")
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


class DatabaseSessionStore(SessionStore):
    """SessionStore over the user_sessions table."""

    def __init__(self, database):
        self._db = database

    @staticmethod
    def _key(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    def load(self, token: str) -> Optional[dict[str, Any]]:
        session = self._db.session
        row = session.get(UserSession, self._key(token))
        if row is None:
            return None

        if row.expires_at <= utcnow():
            session.delete(row)
            session.commit()
            return None

        try:
            data = json.loads(row.data or "{}")
        except ValueError:
            logger.warning("Discarding unreadable session record for user %s", row.user_id)
            return None
        return data if isinstance(data, dict) else None

    def save(self, token: str, data: dict[str, Any], expires_at: datetime) -> None:
        session = self._db.session
        key = self._key(token)
        row = session.get(UserSession, key)
        if row is None:
            row = UserSession(token=key)
            session.add(row)

        row.data = json.dumps(data, default=str)
        row.user_id = _user_id_from(data)
        row.expires_at = expires_at
        session.commit()

    def delete(self, token: str) -> None:
        session = self._db.session
        session.query(UserSession).filter_by(token=self._key(token)).delete(synchronize_session=False)
        session.commit()

    def purge_expired(self) -> int:
        session = self._db.session
        removed = (
            session.query(UserSession)
            .filter(UserSession.expires_at <= utcnow())
            .delete(synchronize_session=False)
        )
        session.commit()
        return removed


# ---------------------------------------------------------------------
# Flask integration
# ---------------------------------------------------------------------
class ServerSession(CallbackDict, SessionMixin):
    """Session dict that remembers its token and whether it changed."""

    def __init__(self, initial=None, token: Optional[str] = None, new: bool = False):
        def on_update(self_):
            self_.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.token = token or new_token()
        self.new = new
        self.modified = False
        self.previous_token: Optional[str] = None

    def rotate(self) -> None:
        """Move the session to a fresh token (call on login)."""
        if not self.new and self.previous_token is None:
            self.previous_token = self.token
        self.token = new_token()
        self.modified = True


class ServerSideSessionInterface(SessionInterface):
    """Flask session interface backed by a SessionStore."""

    def __init__(self, store: SessionStore):
        self.store = store

    def open_session(self, app, request) -> ServerSession:
        token = request.cookies.get(self.get_cookie_name(app))
        if token:
            data = self.store.load(token)
            if data is not None:
                return ServerSession(data, token=token)
        return ServerSession(new=True)

    def save_session(self, app, session: ServerSession, response) -> None:
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)
        secure = self.get_cookie_secure(app)
        samesite = self.get_cookie_samesite(app)
        httponly = self.get_cookie_httponly(app)

        if session.previous_token:
            self.store.delete(session.previous_token)
            session.previous_token = None

        if not session:
            if session.modified and not session.new:
                self.store.delete(session.token)
                response.delete_cookie(
                    name, domain=domain, path=path, secure=secure, samesite=samesite, httponly=httponly
                )
                response.vary.add("Cookie")
            return

        if not self.should_set_cookie(app, session):
            return

        self.store.save(session.token, dict(session), utcnow() + app.permanent_session_lifetime)
        response.set_cookie(
            name,
            session.token,
            expires=self.get_expiration_time(app, session),
            httponly=httponly,
            domain=domain,
            path=path,
            secure=secure,
            samesite=samesite,
        )
        response.vary.add("Cookie")
