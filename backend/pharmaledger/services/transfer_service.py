"""
Stock Transfer Service

WHY: Central stock (Product.current_stock) is distributed to branches,
which then hold their own pool (BranchStock).

DESIGN:
- One transaction per transfer; all rows are read before anything is written
- Quantities for the same product are summed before checking availability
- Any failure (unknown product, insufficient central stock) leaves zero
  side effects
- A StockTransfer record is written in the same transaction
"""

import logging

from ..extensions import db
from ..errors import DomainError
from ..models import Branch, BranchStock, Product, StockTransfer, StockTransferLine
from pharmaledger.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .permission_service import Actor, require_capability
from .products_service import aggregate_quantities


logger = logging.getLogger("pharmaledger.transfers")


class TransferError(DomainError):
    """Raised for transfer operation errors."""
    pass


def transfer_stock(target_branch_id: int, items: list[dict], actor: Actor) -> StockTransfer:
    """
    Move units from central stock into a branch's stock pool.

    Args:
        target_branch_id: Receiving branch
        items: [{product_id, quantity}]; quantities > 0

    Raises:
        TransferError: unknown branch/products or insufficient central stock
            (details list every offending product)
    """
    require_capability(actor, "TRANSFER_STOCK", target_branch_id)
    quantities = aggregate_quantities(items)

    def _op():
        branch = db.session.query(Branch).filter_by(id=target_branch_id).first()
        if not branch:
            raise TransferError("Target branch not found", not_found=True)

        # Reads first
        products = lock_for_update(
            db.session.query(Product).filter(Product.id.in_(quantities.keys()))
        ).all()
        by_id = {p.id: p for p in products}

        stocks = lock_for_update(
            db.session.query(BranchStock).filter(
                BranchStock.branch_id == target_branch_id,
                BranchStock.product_id.in_(quantities.keys()),
            )
        ).all()
        stock_by_product = {s.product_id: s for s in stocks}

        problems = []
        for product_id, quantity in quantities.items():
            product = by_id.get(product_id)
            if product is None:
                problems.append({"product_id": product_id, "reason": "not_found"})
            elif product.current_stock < quantity:
                problems.append({
                    "product_id": product_id,
                    "product_name": product.commercial_name,
                    "requested_quantity": quantity,
                    "available": product.current_stock,
                    "reason": "insufficient_stock",
                })
        if problems:
            raise TransferError("Cannot transfer stock", details={"items": problems})

        # Writes
        transfer = StockTransfer(
            target_branch_id=target_branch_id,
            user_uid=actor.uid,
            user_name=actor.display_name,
            occurred_at=utcnow(),
        )
        db.session.add(transfer)

        for product_id, quantity in quantities.items():
            by_id[product_id].current_stock -= quantity

            stock = stock_by_product.get(product_id)
            if stock is None:
                stock = BranchStock(branch_id=target_branch_id, product_id=product_id, current_stock=0)
                db.session.add(stock)
            stock.current_stock += quantity

            transfer.lines.append(StockTransferLine(product_id=product_id, quantity=quantity))

        db.session.commit()
        return transfer

    transfer = run_with_retry(_op)
    logger.info(
        "Stock transfer %s to branch %s: %d products by %s",
        transfer.id, target_branch_id, len(quantities), actor.uid,
    )
    return transfer


def get_branch_stock(branch_id: int) -> list[BranchStock]:
    return (
        db.session.query(BranchStock)
        .filter_by(branch_id=branch_id)
        .order_by(BranchStock.product_id)
        .all()
    )


def get_total_stock(product_id: int) -> dict:
    """
    Central, per-branch and total units of a product.

    Sales draw from central stock; branch pools record what was handed over.
    """
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise TransferError("Product not found", not_found=True)

    branches = {
        s.branch_id: s.current_stock
        for s in db.session.query(BranchStock).filter_by(product_id=product_id).all()
    }
    return {
        "product_id": product.id,
        "central": product.current_stock,
        "branches": branches,
        "total": product.current_stock + sum(branches.values()),
    }


def list_transfers(branch_id: int | None = None) -> list[StockTransfer]:
    query = db.session.query(StockTransfer)
    if branch_id is not None:
        query = query.filter_by(target_branch_id=branch_id)
    return query.order_by(StockTransfer.occurred_at.desc(), StockTransfer.id.desc()).all()
