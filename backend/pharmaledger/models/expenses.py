from __future__ import annotations

from ..extensions import db
from pharmaledger.time_utils import to_utc_z


NURSING_SERVICE_TYPES = (
    "Curación",
    "Inyectable",
    "Suero",
    "Sacada de Puntos",
    "Toma de Presión",
    "Toma de Glucosa",
    "Consulta",
)


class Expense(db.Model):
    """
    Cash paid out of a branch.

    purchase_id links expenses generated by supplier purchases (contado
    purchases and credito payments). Those are owned by the purchase and
    removed together with it.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    concept = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    category = db.Column(db.String(120), nullable=False)

    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=True, index=True)

    user_uid = db.Column(db.String(128), nullable=False)
    user_name = db.Column(db.String(255), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    branch = db.relationship("Branch", backref=db.backref("expenses", lazy=True))
    purchase = db.relationship("Purchase", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "concept": self.concept,
            "amount_cents": self.amount_cents,
            "category": self.category,
            "purchase_id": self.purchase_id,
            "user_uid": self.user_uid,
            "user_name": self.user_name,
            "date": to_utc_z(self.date),
        }


class NursingRecord(db.Model):
    """Billed nursing service (injection, wound care, blood pressure...)."""
    __tablename__ = "nursing_records"
    __table_args__ = (
        db.CheckConstraint("cost_cents > 0", name="ck_nursing_records_cost_positive"),
        db.Index("ix_nursing_records_branch_date", "branch_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    service_type = db.Column(db.String(64), nullable=False, index=True)
    patient_name = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    cost_cents = db.Column(db.Integer, nullable=False)

    user_uid = db.Column(db.String(128), nullable=False)
    user_name = db.Column(db.String(255), nullable=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    branch = db.relationship("Branch", backref=db.backref("nursing_records", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "service_type": self.service_type,
            "patient_name": self.patient_name,
            "notes": self.notes,
            "cost_cents": self.cost_cents,
            "user_uid": self.user_uid,
            "user_name": self.user_name,
            "date": to_utc_z(self.date),
        }
