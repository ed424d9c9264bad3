# Overview: Bearer session tokens bridging the external identity provider.

"""
Session Token Management Service

WHY: The identity provider authenticates people; this service turns a known
uid into a revocable, time-limited bearer token and carries the branch the
user selected for the session.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute timeout from SESSION_TTL_HOURS
- Revocable on logout
"""

import secrets
import hashlib
import logging
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, UserProfile, Branch
from ..permissions import ROLE_ADMIN
from pharmaledger.time_utils import utcnow
from .permission_service import Actor, actor_from_profile


logger = logging.getLogger("pharmaledger.session")


class SessionError(Exception):
    """Raised for session operation errors."""
    pass


@dataclass
class SessionContext:
    """Complete session context returned by validate_session."""
    user: UserProfile
    session: SessionToken
    actor: Actor


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(uid: str, active_branch_id: int | None = None) -> tuple[SessionToken, str]:
    """
    Create new session token for an active user profile.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    user = db.session.query(UserProfile).filter_by(uid=uid).first()
    if not user:
        raise SessionError("User not found")
    if not user.is_active:
        raise SessionError("User is not active")

    plaintext_token = generate_token()
    now = utcnow()
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 12))

    session = SessionToken(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.flush()

    if active_branch_id is not None:
        _apply_active_branch(session, user, active_branch_id)

    db.session.commit()
    logger.info("Session issued for uid=%s", uid)

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired or revoked, or the user
    profile is deactivated.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < utcnow():
        return None

    user = session.user
    if not user or not user.is_active:
        return None

    return SessionContext(
        user=user,
        session=session,
        actor=actor_from_profile(user, session),
    )


def _apply_active_branch(session: SessionToken, user: UserProfile, branch_id: int) -> None:
    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if not branch:
        raise SessionError("Branch not found")

    assigned = {a.branch_id for a in user.assignments}
    if user.role != ROLE_ADMIN and assigned and branch_id not in assigned:
        raise SessionError("User is not assigned to this branch")

    session.active_branch_id = branch_id


def set_active_branch(token: str, branch_id: int | None) -> SessionToken:
    """Select (or clear, with None) the branch the session operates on."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if not session:
        raise SessionError("Session not found")

    if branch_id is None:
        session.active_branch_id = None
    else:
        _apply_active_branch(session, session.user, branch_id)

    db.session.commit()
    return session


def revoke_session(token: str) -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_all_user_sessions(uid: str) -> int:
    """Revoke all active sessions for a user. Returns count revoked."""
    user = db.session.query(UserProfile).filter_by(uid=uid).first()
    if not user:
        return 0

    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(
        user_id=user.id,
        is_revoked=False,
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now

    db.session.commit()
    return len(sessions)
