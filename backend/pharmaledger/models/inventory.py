from __future__ import annotations

from ..extensions import db
from pharmaledger.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data with the central stock counter.

    STOCK INVARIANT: current_stock >= 0 (check constraint). After creation it
    is only mutated by sale creation/deletion, stock transfers and restocks,
    never by a plain product update.

    BARCODE: natural external key, unique across the catalog.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("min_stock >= 0", name="ck_products_min_stock_non_negative"),
        db.Index("ix_products_commercial_name", "commercial_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    barcode = db.Column(db.String(64), nullable=False, index=True)
    commercial_name = db.Column(db.String(255), nullable=False)
    generic_name = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(120), nullable=False)
    supplier = db.Column(db.String(255), nullable=True)
    laboratory = db.Column(db.String(255), nullable=True)
    presentation = db.Column(db.String(120), nullable=True)
    concentration = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    # Home branch; NULL means not yet assigned
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    expiration_date = db.Column(db.Date, nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(32), nullable=True)
    location = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    branch = db.relationship("Branch", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.commercial_name!r}>"

    @property
    def is_low_stock(self) -> bool:
        return self.min_stock > 0 and self.current_stock <= self.min_stock

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "commercial_name": self.commercial_name,
            "generic_name": self.generic_name,
            "category": self.category,
            "supplier": self.supplier,
            "laboratory": self.laboratory,
            "presentation": self.presentation,
            "concentration": self.concentration,
            "selling_price_cents": self.selling_price_cents,
            "cost_price_cents": self.cost_price_cents,
            "current_stock": self.current_stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "branch_id": self.branch_id,
            "expiration_date": self.expiration_date.isoformat() if self.expiration_date else None,
            "batch_number": self.batch_number,
            "unit": self.unit,
            "location": self.location,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class _LookupValue:
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }


class Category(_LookupValue, db.Model):
    """Product category shown in the catalog form."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}


class Presentation(_LookupValue, db.Model):
    """Dosage form (tablet, syrup, ampoule...)."""
    __tablename__ = "presentations"
    __table_args__ = {"sqlite_autoincrement": True}


class Concentration(_LookupValue, db.Model):
    """Strength label (500 mg, 5 mg/ml...)."""
    __tablename__ = "concentrations"
    __table_args__ = {"sqlite_autoincrement": True}


class StockTransfer(db.Model):
    """
    Audit record of one central -> branch stock transfer.

    Written in the same transaction that moves the quantities.
    """
    __tablename__ = "stock_transfers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    target_branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    user_uid = db.Column(db.String(128), nullable=False)
    user_name = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    target_branch = db.relationship("Branch", backref=db.backref("incoming_transfers", lazy=True))
    lines = db.relationship(
        "StockTransferLine",
        backref="transfer",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="StockTransferLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "target_branch_id": self.target_branch_id,
            "user_uid": self.user_uid,
            "user_name": self.user_name,
            "occurred_at": to_utc_z(self.occurred_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class StockTransferLine(db.Model):
    __tablename__ = "stock_transfer_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    # No FK: the audit line outlives a deleted product
    product_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
        }
