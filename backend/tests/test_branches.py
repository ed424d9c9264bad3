"""
Branch directory tests: main-branch designation and guarded deletion.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from pharmaledger.extensions import db
from pharmaledger.models import Branch, Product
from pharmaledger.services import branch_service, register_service, sales_service, transfer_service
from pharmaledger.services.branch_service import BranchError
from pharmaledger.services.permission_service import PermissionDeniedError
from pharmaledger.validation import ConflictError


def test_first_branch_becomes_main(branch, other_branch):
    assert branch.is_main is True
    assert other_branch.is_main is False
    assert branch_service.get_main_branch().id == branch.id


def test_duplicate_name(admin, branch):
    with pytest.raises(ConflictError):
        branch_service.create_branch(name="Centro", address="Otra", actor=admin)


def test_promote_moves_the_flag(admin, branch, other_branch):
    branch_service.promote_main_branch(other_branch.id, admin)

    mains = db.session.query(Branch).filter_by(is_main=True).all()
    assert [b.id for b in mains] == [other_branch.id]


def test_single_main_index(admin, branch, other_branch):
    other_branch.is_main = True
    with pytest.raises(IntegrityError):
        db.session.commit()
    db.session.rollback()


def test_delete_main_promotes_oldest_remaining(admin, branch, other_branch):
    main_id = branch.id
    branch_service.delete_branch(main_id, admin)

    assert branch_service.get_branch(main_id) is None
    assert branch_service.get_main_branch().id == other_branch.id
    assert branch_service.get_branch(other_branch.id).is_main is True


def test_delete_refused_with_open_register(admin, branch, other_branch):
    register_service.open_register(0, admin, branch_id=other_branch.id)
    with pytest.raises(BranchError, match="cash register"):
        branch_service.delete_branch(other_branch.id, admin)


def test_delete_refused_with_branch_stock(admin, other_branch, product):
    transfer_service.transfer_stock(other_branch.id, [{"product_id": product["id"], "quantity": 1}], admin)
    with pytest.raises(BranchError) as exc_info:
        branch_service.delete_branch(other_branch.id, admin)
    assert exc_info.value.details == {"products_with_stock": 1}


def test_delete_refused_with_history(admin, other_branch, product):
    sales_service.create_sale(
        other_branch.id,
        [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}],
        admin,
    )
    with pytest.raises(BranchError) as exc_info:
        branch_service.delete_branch(other_branch.id, admin)
    assert "sales" in exc_info.value.details["history"]


def test_delete_unhomes_products(admin, branch, other_branch):
    from conftest import make_product
    product = make_product(admin, barcode="NORTE-1", branch_id=other_branch.id)

    branch_service.delete_branch(other_branch.id, admin)

    assert db.session.query(Product).filter_by(id=product["id"]).one().branch_id is None
    assert branch_service.assign_orphan_products_to_main_branch(admin) == 1
    assert db.session.query(Product).filter_by(id=product["id"]).one().branch_id == branch.id


def test_cashier_cannot_manage_branches(cashier, branch):
    with pytest.raises(PermissionDeniedError):
        branch_service.create_branch(name="Sur", address="x", actor=cashier)
    with pytest.raises(PermissionDeniedError):
        branch_service.delete_branch(branch.id, cashier)
