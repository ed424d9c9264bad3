from __future__ import annotations

from ..extensions import db
from pharmaledger.time_utils import to_utc_z


PAYMENT_METHODS = ("efectivo", "qr", "transferencia", "tarjeta", "online")
SALE_CHANNELS = ("pos", "online")
ONLINE_ORDER_STATUSES = ("pending", "processing", "completed", "rejected")


class Sale(db.Model):
    """
    Completed checkout (POS) or storefront order (online).

    TOTALS INVARIANT: sum(item.total_price) - total_discount = final_total.
    Items are immutable after creation; only the status of online orders
    changes afterwards.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_total_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, default="efectivo")
    channel = db.Column(db.String(16), nullable=False, default="pos", index=True)
    status = db.Column(db.String(16), nullable=True, index=True)  # online orders only

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    user_uid = db.Column(db.String(128), nullable=False)
    user_name = db.Column(db.String(255), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    branch = db.relationship("Branch", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "items": [item.to_dict() for item in self.items],
            "subtotal_cents": self.subtotal_cents,
            "total_discount_cents": self.total_discount_cents,
            "final_total_cents": self.final_total_cents,
            "payment_method": self.payment_method,
            "channel": self.channel,
            "status": self.status,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "user_uid": self.user_uid,
            "user_name": self.user_name,
            "date": to_utc_z(self.date),
        }


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    # No FK: the product may be deleted later, the snapshot name stays
    product_id = db.Column(db.Integer, nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_price_cents": self.total_price_cents,
        }
