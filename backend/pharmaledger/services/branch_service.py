# Overview: Branch directory; main-branch designation and guarded deletion.

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DomainError
from ..models import (
    Branch,
    BranchStock,
    Product,
    Sale,
    Expense,
    NursingRecord,
    CashRegisterSummary,
    CashRegisterEntry,
    Purchase,
    StockTransfer,
    UserBranchAssignment,
    SessionToken,
)
from ..models.registers import REGISTER_STATUS_OPEN
from ..validation import ConflictError, ModelValidationPolicy, require_text, validate_payload
from .concurrency import lock_for_update, run_with_retry
from .permission_service import Actor, require_capability


logger = logging.getLogger("pharmaledger.branches")

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={"name", "address", "phone"},
    required_on_create={"name", "address"},
)


class BranchError(DomainError):
    """Raised for branch operation errors."""
    pass


def list_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.created_at, Branch.id).all()


def get_branch(branch_id: int) -> Branch | None:
    return db.session.query(Branch).filter_by(id=branch_id).first()


def _oldest_branch_query():
    return db.session.query(Branch).order_by(Branch.created_at, Branch.id)


def get_main_branch() -> Branch | None:
    """
    The designated main branch.

    Falls back to the oldest branch when none is designated (legacy data);
    None only when no branches exist.
    """
    main = db.session.query(Branch).filter_by(is_main=True).first()
    if main:
        return main
    return _oldest_branch_query().first()


def create_branch(name: str, address: str, actor: Actor, phone: str | None = None) -> Branch:
    """Create a branch. Without a designated main branch, the new one becomes main."""
    require_capability(actor, "MANAGE_BRANCHES")
    patch = validate_payload(
        model=Branch,
        payload={"name": require_text("name", name), "address": require_text("address", address), "phone": phone},
        policy=BRANCH_POLICY,
        partial=False,
    )

    def _op():
        if db.session.query(Branch).filter_by(name=patch["name"]).first():
            raise ConflictError(f"Branch '{patch['name']}' already exists")

        has_main = db.session.query(Branch).filter_by(is_main=True).first() is not None
        branch = Branch(**patch, is_main=not has_main)
        db.session.add(branch)
        db.session.commit()
        return branch

    try:
        branch = run_with_retry(_op)
    except IntegrityError as exc:
        raise ConflictError("Branch name or main designation conflict") from exc

    logger.info("Branch created: id=%s name=%r main=%s", branch.id, branch.name, branch.is_main)
    return branch


def update_branch(branch_id: int, patch: dict, actor: Actor) -> Branch:
    """Update name/address/phone. The main designation changes only through promotion."""
    require_capability(actor, "MANAGE_BRANCHES")
    clean = validate_payload(model=Branch, payload=patch, policy=BRANCH_POLICY, partial=True)

    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch:
            raise BranchError("Branch not found", not_found=True)

        new_name = clean.get("name")
        if new_name and new_name != branch.name:
            if db.session.query(Branch).filter(Branch.name == new_name, Branch.id != branch_id).first():
                raise ConflictError(f"Branch '{new_name}' already exists")

        for key, value in clean.items():
            setattr(branch, key, value)

        db.session.commit()
        return branch

    return run_with_retry(_op)


def promote_main_branch(branch_id: int, actor: Actor) -> Branch:
    """
    Make `branch_id` the main branch in one transaction.

    The previous designation is cleared and flushed before the new one is set,
    so the single-main index never sees two rows.
    """
    require_capability(actor, "MANAGE_BRANCHES")

    def _op():
        target = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not target:
            raise BranchError("Branch not found", not_found=True)
        if target.is_main:
            return target

        current = lock_for_update(db.session.query(Branch).filter_by(is_main=True)).all()
        for branch in current:
            branch.is_main = False
        db.session.flush()

        target.is_main = True
        db.session.commit()
        return target

    branch = run_with_retry(_op)
    logger.info("Main branch is now %s (%r)", branch.id, branch.name)
    return branch


def _history_blockers(branch_id: int) -> list[str]:
    checks = (
        ("sales", Sale),
        ("expenses", Expense),
        ("nursing records", NursingRecord),
        ("register sessions", CashRegisterSummary),
        ("register entries", CashRegisterEntry),
        ("purchases", Purchase),
    )
    blockers = [
        label for label, model in checks
        if db.session.query(model.id).filter(model.branch_id == branch_id).first() is not None
    ]
    if db.session.query(StockTransfer.id).filter_by(target_branch_id=branch_id).first() is not None:
        blockers.append("stock transfers")
    return blockers


def delete_branch(branch_id: int, actor: Actor) -> None:
    """
    Delete a branch that never operated.

    Refused while the branch has an open register, positive branch stock, or
    any recorded history. Deleting the main branch promotes the oldest
    remaining branch. Products homed at the branch become unassigned.
    """
    require_capability(actor, "MANAGE_BRANCHES")

    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch:
            raise BranchError("Branch not found", not_found=True)

        open_summary = db.session.query(CashRegisterSummary).filter_by(
            branch_id=branch_id,
            status=REGISTER_STATUS_OPEN,
        ).first()
        if open_summary:
            raise BranchError("Close the cash register of this branch before deleting it")

        stocked = db.session.query(BranchStock).filter(
            BranchStock.branch_id == branch_id,
            BranchStock.current_stock > 0,
        ).count()
        if stocked:
            raise BranchError(
                "Branch still holds stock",
                details={"products_with_stock": stocked},
            )

        blockers = _history_blockers(branch_id)
        if blockers:
            raise BranchError(
                "Branch has recorded history and cannot be deleted",
                details={"history": blockers},
            )

        was_main = branch.is_main

        for stock in db.session.query(BranchStock).filter_by(branch_id=branch_id).all():
            db.session.delete(stock)
        for assignment in db.session.query(UserBranchAssignment).filter_by(branch_id=branch_id).all():
            db.session.delete(assignment)
        for session in db.session.query(SessionToken).filter_by(active_branch_id=branch_id).all():
            session.active_branch_id = None
        for product in db.session.query(Product).filter_by(branch_id=branch_id).all():
            product.branch_id = None

        db.session.delete(branch)
        db.session.flush()

        successor = None
        if was_main:
            successor = _oldest_branch_query().first()
            if successor:
                successor.is_main = True

        db.session.commit()
        return successor

    successor = run_with_retry(_op)
    logger.info(
        "Branch %s deleted%s",
        branch_id,
        f"; main branch is now {successor.id}" if successor else "",
    )


def assign_orphan_products_to_main_branch(actor: Actor) -> int:
    """Home every product without a branch at the main branch. Returns the count."""
    require_capability(actor, "MANAGE_BRANCHES")

    def _op():
        main = get_main_branch()
        if not main:
            raise BranchError("No branches exist")

        orphans = db.session.query(Product).filter(Product.branch_id.is_(None)).all()
        for product in orphans:
            product.branch_id = main.id

        db.session.commit()
        return len(orphans)

    count = run_with_retry(_op)
    logger.info("Assigned %d orphan products to the main branch", count)
    return count
