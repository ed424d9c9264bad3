# Overview: Capability checks and branch resolution for the acting user.

"""
Capability Checking and Branch Context

WHY: Every core operation receives an explicit Actor and checks exactly one
capability at entry, scoped to the branch it touches. Nothing is read from
ambient globals inside services.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit capability grant
- Log denials only: grants are not logged
- Admins hold every capability on every branch
- Other roles resolve from the role assigned at that branch; unscoped
  checks (branch_id=None) use the profile role
"""

import logging
from dataclasses import dataclass, field

from ..models import UserProfile, SessionToken
from ..permissions import ROLE_ADMIN, get_role_permissions, validate_permission_code
from ..validation import ValidationError


logger = logging.getLogger("pharmaledger.permissions")


class PermissionDeniedError(Exception):
    """Raised when the actor lacks the required capability."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class BranchSelectionRequired(ValidationError):
    """The actor works at several branches and none is selected."""


@dataclass(frozen=True)
class Actor:
    """
    Acting user for one operation.

    branch_roles maps branch_id -> role for assigned branches.
    """
    uid: str
    display_name: str
    role: str
    branch_roles: dict = field(default_factory=dict)
    active_branch_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def role_at(self, branch_id: int | None) -> str | None:
        if self.is_admin:
            return ROLE_ADMIN
        if branch_id is None:
            return self.role
        # Unassigned branches grant nothing
        return self.branch_roles.get(branch_id)


def actor_from_profile(profile: UserProfile, session: SessionToken | None = None) -> Actor:
    return Actor(
        uid=profile.uid,
        display_name=profile.display_name,
        role=profile.role,
        branch_roles={a.branch_id: a.role for a in profile.assignments},
        active_branch_id=session.active_branch_id if session else None,
    )


def get_actor_capabilities(actor: Actor, branch_id: int | None = None) -> set[str]:
    role = actor.role_at(branch_id)
    if role is None:
        return set()
    return get_role_permissions(role)


def has_capability(actor: Actor, code: str, branch_id: int | None = None) -> bool:
    return code in get_actor_capabilities(actor, branch_id)


def require_capability(actor: Actor | None, code: str, branch_id: int | None = None) -> None:
    """
    Raise PermissionDeniedError unless the actor holds `code` at `branch_id`.

    branch_id=None checks the capability without a branch scope (catalog and
    supplier operations).
    """
    if not validate_permission_code(code):
        raise ValueError(f"Unknown capability: {code}")

    if actor is None:
        logger.warning("Capability %s denied: no authenticated actor", code)
        raise PermissionDeniedError("Authentication required", details={"required_permission": code})

    if has_capability(actor, code, branch_id):
        return

    logger.warning(
        "Capability %s denied for uid=%s role=%s branch_id=%s",
        code, actor.uid, actor.role, branch_id,
    )
    raise PermissionDeniedError(
        f"Missing capability {code}",
        details={"required_permission": code, "branch_id": branch_id},
    )


def resolve_branch_id(actor: Actor, branch_id: int | None = None, *, fallback_to_main: bool = False) -> int:
    """
    Branch an operation runs against.

    Order: explicit argument, session's active branch, the only assigned
    branch. fallback_to_main then tries the main branch.
    """
    if branch_id is not None:
        return branch_id
    if actor.active_branch_id is not None:
        return actor.active_branch_id
    if len(actor.branch_roles) == 1:
        return next(iter(actor.branch_roles))

    if fallback_to_main:
        from .branch_service import get_main_branch
        main = get_main_branch()
        if main is not None:
            return main.id

    raise BranchSelectionRequired("Select an active branch first")


def scoped_branch_id(actor: Actor, branch_id: int | None = None) -> int | None:
    """
    Branch filter for read queries.

    Admins may read across all branches (None); everyone else reads one
    resolved branch.
    """
    if actor.is_admin:
        return branch_id
    return resolve_branch_id(actor, branch_id)
