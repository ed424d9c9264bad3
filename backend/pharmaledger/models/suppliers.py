from __future__ import annotations

from ..extensions import db
from pharmaledger.time_utils import to_utc_z


PAYMENT_TYPE_CREDITO = "credito"
PAYMENT_TYPE_CONTADO = "contado"
PURCHASE_PAYMENT_TYPES = (PAYMENT_TYPE_CREDITO, PAYMENT_TYPE_CONTADO)


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    contact_person = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    ruc_nit = db.Column(db.String(64), nullable=True)  # Tax identifier
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "ruc_nit": self.ruc_nit,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Purchase(db.Model):
    """
    Supplier invoice.

    PAYMENT TYPES:
    - contado: paid on the spot; an Expense is created with the purchase
    - credito: due_date required; the Expense is created by mark-as-paid

    Linked expenses point back through Expense.purchase_id.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.CheckConstraint("total_amount_cents > 0", name="ck_purchases_amount_positive"),
        db.CheckConstraint("item_count >= 0", name="ck_purchases_item_count_non_negative"),
        db.Index("ix_purchases_supplier_date", "supplier_id", "purchase_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)
    item_count = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    payment_type = db.Column(db.String(16), nullable=False)
    purchase_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)

    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)

    user_uid = db.Column(db.String(128), nullable=False)
    user_name = db.Column(db.String(255), nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    supplier = db.relationship("Supplier", backref=db.backref("purchases", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "branch_id": self.branch_id,
            "invoice_number": self.invoice_number,
            "item_count": self.item_count,
            "total_amount_cents": self.total_amount_cents,
            "payment_type": self.payment_type,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_paid": self.is_paid,
            "payment_date": to_utc_z(self.payment_date) if self.payment_date else None,
            "user_uid": self.user_uid,
            "user_name": self.user_name,
            "timestamp": to_utc_z(self.timestamp),
            "version_id": self.version_id,
        }
