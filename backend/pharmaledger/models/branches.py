from __future__ import annotations

from ..extensions import db
from pharmaledger.time_utils import to_utc_z


class Branch(db.Model):
    """
    Physical pharmacy location.

    MAIN BRANCH: Exactly one branch carries is_main once any branch exists.
    The partial unique index makes a second designation fail at the storage
    layer; promotion clears the old flag before setting the new one.

    Each branch owns its own register sessions and, optionally, a local
    stock pool (BranchStock).
    """
    __tablename__ = "branches"
    __table_args__ = (
        db.Index(
            "uq_branches_single_main",
            "is_main",
            unique=True,
            sqlite_where=db.text("is_main = 1"),
            postgresql_where=db.text("is_main"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    address = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    is_main = db.Column(db.Boolean, nullable=False, default=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Branch id={self.id} name={self.name!r} main={self.is_main}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "is_main": self.is_main,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class BranchStock(db.Model):
    """
    Branch-local stock pool for one product.

    Distinct from Product.current_stock (central/unassigned stock).
    Created lazily by the first transfer of a product into a branch.
    """
    __tablename__ = "branch_stocks"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "product_id", name="uq_branch_stocks_branch_product"),
        db.CheckConstraint("current_stock >= 0", name="ck_branch_stocks_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("stocks", lazy=True))
    product = db.relationship("Product", backref=db.backref("branch_stocks", lazy=True, cascade="all, delete-orphan"))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "product_id": self.product_id,
            "product_name": self.product.commercial_name if self.product else None,
            "current_stock": self.current_stock,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
