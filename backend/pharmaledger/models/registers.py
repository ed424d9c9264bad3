from __future__ import annotations

from ..extensions import db
from pharmaledger.time_utils import to_utc_z


REGISTER_STATUS_OPEN = "OPEN"
REGISTER_STATUS_CLOSED = "CLOSED"

ENTRY_TYPE_SALE = "sale"
ENTRY_TYPE_EXPENSE = "expense"
ENTRY_TYPE_INCOME = "income"
ENTRY_TYPE_INITIAL = "initial"
ENTRY_TYPES = (ENTRY_TYPE_SALE, ENTRY_TYPE_EXPENSE, ENTRY_TYPE_INCOME, ENTRY_TYPE_INITIAL)


class CashRegisterSummary(db.Model):
    """
    One cash-register session of a branch, with its running totals.

    LIFECYCLE:
    - OPEN: accepts ledger adjustments from sales, expenses and nursing services
    - CLOSED: counted; difference = actual - expected. Never reopened.

    INVARIANT: expected_balance = opening_balance + total_income - total_expense.
    The partial unique index on branch_id (status = 'OPEN') allows at most one
    open session per branch, even under concurrent opens.
    """
    __tablename__ = "cash_register_summaries"
    __table_args__ = (
        db.Index(
            "uq_cash_register_summaries_one_open_per_branch",
            "branch_id",
            unique=True,
            sqlite_where=db.text("status = 'OPEN'"),
            postgresql_where=db.text("status = 'OPEN'"),
        ),
        db.Index("ix_cash_register_summaries_branch_opened", "branch_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=REGISTER_STATUS_OPEN, index=True)

    # All amounts in cents
    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_income_cents = db.Column(db.Integer, nullable=False, default=0)
    total_expense_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    actual_balance_cents = db.Column(db.Integer, nullable=True)  # Set when closing
    difference_cents = db.Column(db.Integer, nullable=True)  # actual - expected

    opened_by_uid = db.Column(db.String(128), nullable=False)
    opened_by_name = db.Column(db.String(255), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    closed_by_uid = db.Column(db.String(128), nullable=True)
    closed_by_name = db.Column(db.String(255), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch", backref=db.backref("register_summaries", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_open(self) -> bool:
        return self.status == REGISTER_STATUS_OPEN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "status": self.status,
            "opening_balance_cents": self.opening_balance_cents,
            "total_income_cents": self.total_income_cents,
            "total_expense_cents": self.total_expense_cents,
            "expected_balance_cents": self.expected_balance_cents,
            "actual_balance_cents": self.actual_balance_cents,
            "difference_cents": self.difference_cents,
            "opened_by_uid": self.opened_by_uid,
            "opened_by_name": self.opened_by_name,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by_uid": self.closed_by_uid,
            "closed_by_name": self.closed_by_name,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class CashRegisterEntry(db.Model):
    """
    Append-only cash movement log.

    Reversals are new rows with a negative amount; rows are never edited.
    summary_id is the session that was open when the movement happened
    (NULL when the branch had no open register).
    """
    __tablename__ = "cash_register_entries"
    __table_args__ = (
        db.Index("ix_cash_register_entries_summary_ts", "summary_id", "timestamp"),
        db.Index("ix_cash_register_entries_branch_ts", "branch_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    summary_id = db.Column(db.Integer, db.ForeignKey("cash_register_summaries.id"), nullable=True, index=True)

    entry_type = db.Column(db.String(16), nullable=False, index=True)  # sale, expense, income, initial
    amount_cents = db.Column(db.Integer, nullable=False)
    concept = db.Column(db.String(255), nullable=False)

    user_uid = db.Column(db.String(128), nullable=False)
    user_name = db.Column(db.String(255), nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    # Plain references: the linked record may be deleted while its entries stay.
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    expense_id = db.Column(db.Integer, nullable=True, index=True)
    nursing_record_id = db.Column(db.Integer, nullable=True, index=True)

    summary = db.relationship("CashRegisterSummary", backref=db.backref("entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "summary_id": self.summary_id,
            "entry_type": self.entry_type,
            "amount_cents": self.amount_cents,
            "concept": self.concept,
            "user_uid": self.user_uid,
            "user_name": self.user_name,
            "timestamp": to_utc_z(self.timestamp),
            "sale_id": self.sale_id,
            "expense_id": self.expense_id,
            "nursing_record_id": self.nursing_record_id,
        }
