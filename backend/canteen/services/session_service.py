# Overview: Service-layer operations for login sessions; opaque bearer tokens with idle and absolute expiry.

"""
Session Token Management Service

A login hands the client a random 64-char hex token. Only its SHA-256 hash
is stored, so a leaked sessions table cannot be replayed. Tokens high in
entropy do not need a slow hash the way passwords do.

A session dies when any of these happens:
- SESSION_ABSOLUTE_TIMEOUT_HOURS after creation (default 24h)
- SESSION_IDLE_TIMEOUT_HOURS without a request (default 2h)
- Logout, or the owning account being blocked
"""

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..errors import NotFoundError
from ..extensions import db
from ..models import SessionToken, User
from canteen.time_utils import utcnow


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=current_app.config.get(key, default))


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_live(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def _mark_revoked(session: SessionToken, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Open a session for `user_id`.

    Returns (session_record, plaintext_token); the plaintext is never stored.
    """
    if db.session.get(User, user_id) is None:
        raise NotFoundError(f"User {user_id} not found")

    token = generate_token()
    now = utcnow()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _hours("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, token


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its active user, or None.

    Idle sessions and sessions of blocked users are revoked on the way out.
    A successful check refreshes last_used_at.
    """
    session = _find_live(token)
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > _hours("SESSION_IDLE_TIMEOUT_HOURS", 2):
        _mark_revoked(session, "Idle timeout", now)
        db.session.commit()
        return None

    user = session.user
    if user is None or not user.is_active:
        _mark_revoked(session, "User account deactivated", now)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke one session. False when the token was not live."""
    session = _find_live(token)
    if session is None:
        return False
    _mark_revoked(session, reason)
    db.session.commit()
    return True


def revoke_user_sessions(user_id: int, reason: str) -> int:
    """Revoke every live session of a user without committing; returns how many."""
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        _mark_revoked(session, reason, now)
    return len(sessions)
