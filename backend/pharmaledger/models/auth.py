from __future__ import annotations

from ..extensions import db
from pharmaledger.time_utils import to_utc_z


class UserProfile(db.Model):
    """
    Local profile of a user authenticated by the external identity provider.

    WHY: Every ledger movement is attributed to a uid and display name.
    The profile's role applies to every branch unless an assignment
    overrides it for a specific branch.
    """
    __tablename__ = "user_profiles"
    __table_args__ = (
        db.UniqueConstraint("uid", name="uq_user_profiles_uid"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uid = db.Column(db.String(128), nullable=False, index=True)
    display_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    role = db.Column(db.String(32), nullable=False, default="CASHIER")
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    assignments = db.relationship(
        "UserBranchAssignment",
        backref="user",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uid": self.uid,
            "display_name": self.display_name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "branches": [a.to_dict() for a in self.assignments],
            "created_at": to_utc_z(self.created_at),
        }


class UserBranchAssignment(db.Model):
    """Which branches a user works at, and with which role there."""
    __tablename__ = "user_branch_assignments"
    __table_args__ = (
        db.UniqueConstraint("user_id", "branch_id", name="uq_user_branch_assignments"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user_profiles.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    role = db.Column(db.String(32), nullable=False)

    branch = db.relationship("Branch", backref=db.backref("user_assignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "role": self.role,
        }


class SessionToken(db.Model):
    """
    Bearer session token.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute timeout from SESSION_TTL_HOURS
    - Revocable on logout

    active_branch_id is the branch the user explicitly selected for this
    session; operations without an explicit branch run against it.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user_profiles.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    active_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("UserProfile", backref=db.backref("session_tokens", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "active_branch_id": self.active_branch_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
