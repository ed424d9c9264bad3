# Overview: User profiles and per-branch role assignments.

"""
User Profiles

The identity provider owns credentials; this service keeps the local
profile (display name, role, active flag) and the branches each user works
at. actor=None is the trusted CLI path (bootstrap of the first admin).
"""

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DomainError
from ..models import Branch, UserBranchAssignment, UserProfile
from ..permissions import ROLES
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, require_text, validate_payload
from .permission_service import Actor, require_capability
from .session_service import revoke_all_user_sessions


logger = logging.getLogger("pharmaledger.users")

USER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"display_name", "email", "role", "is_active"},
)


class UserError(DomainError):
    """Raised for user management errors."""
    pass


def _authorize(actor: Actor | None) -> None:
    if actor is not None:
        require_capability(actor, "MANAGE_USERS")


def _validate_role(role: str) -> str:
    role = (role or "").upper()
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    return role


def get_user(uid: str) -> UserProfile | None:
    return db.session.query(UserProfile).filter_by(uid=uid).first()


def _require_user(uid: str) -> UserProfile:
    user = get_user(uid)
    if not user:
        raise UserError("User not found", not_found=True)
    return user


def list_users() -> list[UserProfile]:
    return db.session.query(UserProfile).order_by(UserProfile.display_name.asc()).all()


def create_user(uid: str, display_name: str, role: str, email: str | None = None, actor: Actor | None = None) -> UserProfile:
    _authorize(actor)
    uid = require_text("uid", uid)
    display_name = require_text("display_name", display_name)
    role = _validate_role(role)

    if get_user(uid):
        raise ConflictError(f"User {uid} already exists")

    user = UserProfile(uid=uid, display_name=display_name, email=email, role=role, is_active=True)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"User {uid} already exists") from exc

    logger.info("User created: uid=%s role=%s", uid, role)
    return user


def update_user(uid: str, patch: dict, actor: Actor | None = None) -> UserProfile:
    """Deactivating a user also revokes every open session."""
    _authorize(actor)
    clean = validate_payload(model=UserProfile, payload=patch, policy=USER_UPDATE_POLICY, partial=True)
    if "role" in clean:
        clean["role"] = _validate_role(clean["role"])

    user = _require_user(uid)
    for key, value in clean.items():
        setattr(user, key, value)
    db.session.commit()

    if clean.get("is_active") is False:
        revoked = revoke_all_user_sessions(uid)
        logger.info("User %s deactivated; %d sessions revoked", uid, revoked)
    return user


def assign_branch(uid: str, branch_id: int, role: str, actor: Actor | None = None) -> UserBranchAssignment:
    """Give a user a role at a branch (replacing any previous role there)."""
    _authorize(actor)
    role = _validate_role(role)
    user = _require_user(uid)

    if not db.session.query(Branch).filter_by(id=branch_id).first():
        raise UserError("Branch not found", not_found=True)

    assignment = db.session.query(UserBranchAssignment).filter_by(user_id=user.id, branch_id=branch_id).first()
    if assignment:
        assignment.role = role
    else:
        assignment = UserBranchAssignment(user_id=user.id, branch_id=branch_id, role=role)
        db.session.add(assignment)

    db.session.commit()
    logger.info("User %s assigned to branch %s as %s", uid, branch_id, role)
    return assignment


def unassign_branch(uid: str, branch_id: int, actor: Actor | None = None) -> bool:
    _authorize(actor)
    user = _require_user(uid)

    assignment = db.session.query(UserBranchAssignment).filter_by(user_id=user.id, branch_id=branch_id).first()
    if not assignment:
        return False

    db.session.delete(assignment)
    db.session.commit()
    return True
