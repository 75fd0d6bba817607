from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException

from conftest import create_branch, create_company, create_item, create_user
from retail_api.api.v1.endpoints import branches as branches_router
from retail_api.api.v1.endpoints.context import CompanyContext
from retail_api.models.auth import UserBranch
from retail_api.models.inventory import Item, StockTransfer
from retail_api.schemas.inventory import StockTransferCreate
from retail_api.services import stock_transfer


@pytest.fixture()
def source_and_target(db_session, company):
    source = create_branch(db_session, company, name="Centro", is_main=True)
    target = create_branch(db_session, company, name="Norte")
    return source, target


def _stock(db, item_id):
    return db.query(Item).filter(Item.id == item_id).one().stock_quantity


def test_transfer_clones_item_into_branch_without_it(db_session, source_and_target):
    source, target = source_and_target
    product = create_item(db_session, source, code="SKU-1", stock=10, description="Caja x100")

    outcome = stock_transfer.transfer_stock(
        db_session, source_branch=source, product_id=product.id, target_branch_id=target.id, quantity=4
    )

    assert outcome.created_item is True
    assert _stock(db_session, product.id) == 6

    clone = db_session.query(Item).filter(Item.branch_id == target.id).one()
    assert clone.id != product.id
    assert clone.code == "SKU-1"
    assert clone.name == product.name
    assert clone.description == "Caja x100"
    assert clone.company_id == product.company_id
    assert clone.stock_quantity == 4
    assert outcome.transfer.created_item is True
    assert outcome.transfer.target_item_id == clone.id


def test_transfer_increments_existing_item_with_same_code(db_session, source_and_target):
    source, target = source_and_target
    product = create_item(db_session, source, code="SKU-1", stock=10)
    existing = create_item(db_session, target, code="SKU-1", stock=2)

    outcome = stock_transfer.transfer_stock(
        db_session, source_branch=source, product_id=product.id, target_branch_id=target.id, quantity=10
    )

    assert outcome.created_item is False
    assert outcome.target_item.id == existing.id
    assert _stock(db_session, product.id) == 0
    assert _stock(db_session, existing.id) == 12
    assert db_session.query(Item).filter(Item.branch_id == target.id).count() == 1


def test_insufficient_stock_is_rejected_before_any_write(db_session, source_and_target):
    source, target = source_and_target
    product = create_item(db_session, source, stock=3)

    with pytest.raises(stock_transfer.InsufficientStockError) as exc_info:
        stock_transfer.transfer_stock(
            db_session, source_branch=source, product_id=product.id, target_branch_id=target.id, quantity=5
        )

    assert exc_info.value.available == 3
    assert "3 unidades" in str(exc_info.value)
    assert _stock(db_session, product.id) == 3
    assert db_session.query(Item).filter(Item.branch_id == target.id).count() == 0
    assert db_session.query(StockTransfer).count() == 0


def test_failure_after_decrement_rolls_back_both_branches(db_session, source_and_target, monkeypatch):
    source, target = source_and_target
    product = create_item(db_session, source, code="SKU-1", stock=10)
    existing = create_item(db_session, target, code="SKU-1", stock=2)

    def broken_history(**kwargs):
        raise RuntimeError("history unavailable")

    monkeypatch.setattr(stock_transfer, "StockTransfer", broken_history)

    with pytest.raises(RuntimeError):
        stock_transfer.transfer_stock(
            db_session, source_branch=source, product_id=product.id, target_branch_id=target.id, quantity=4
        )

    assert _stock(db_session, product.id) == 10
    assert _stock(db_session, existing.id) == 2


def test_failed_clone_leaves_source_unchanged(db_session, source_and_target, monkeypatch):
    source, target = source_and_target
    product = create_item(db_session, source, stock=10)

    def broken_clone(*args, **kwargs):
        raise RuntimeError("clone failed")

    monkeypatch.setattr(stock_transfer, "_clone_item", broken_clone)

    with pytest.raises(RuntimeError):
        stock_transfer.transfer_stock(
            db_session, source_branch=source, product_id=product.id, target_branch_id=target.id, quantity=4
        )

    assert _stock(db_session, product.id) == 10
    assert db_session.query(Item).filter(Item.branch_id == target.id).count() == 0


@pytest.mark.parametrize("quantity", [0, -2])
def test_non_positive_quantity_is_rejected(db_session, source_and_target, quantity):
    source, target = source_and_target
    product = create_item(db_session, source)

    with pytest.raises(stock_transfer.StockTransferError):
        stock_transfer.transfer_stock(
            db_session, source_branch=source, product_id=product.id, target_branch_id=target.id, quantity=quantity
        )


def test_missing_selection_is_rejected(db_session, source_and_target):
    source, target = source_and_target

    with pytest.raises(stock_transfer.StockTransferError):
        stock_transfer.transfer_stock(
            db_session, source_branch=source, product_id=None, target_branch_id=target.id, quantity=1
        )


def test_target_must_differ_from_source(db_session, source_and_target):
    source, _ = source_and_target
    product = create_item(db_session, source)

    with pytest.raises(stock_transfer.StockTransferError):
        stock_transfer.transfer_stock(
            db_session, source_branch=source, product_id=product.id, target_branch_id=source.id, quantity=1
        )


def test_target_in_other_company_or_inactive_is_rejected(db_session, source_and_target):
    source, _ = source_and_target
    product = create_item(db_session, source)
    other_company = create_company(db_session, name="Other Co")
    foreign = create_branch(db_session, other_company, name="Foreign")
    closed = create_branch(db_session, source.company, name="Closed", status="inactive")

    for target_id in (foreign.id, closed.id):
        with pytest.raises(stock_transfer.StockTransferError):
            stock_transfer.transfer_stock(
                db_session, source_branch=source, product_id=product.id, target_branch_id=target_id, quantity=1
            )
    assert _stock(db_session, product.id) == 10


def test_unknown_target_branch_is_not_found(db_session, source_and_target):
    source, _ = source_and_target
    product = create_item(db_session, source)

    with pytest.raises(LookupError):
        stock_transfer.transfer_stock(
            db_session, source_branch=source, product_id=product.id, target_branch_id=uuid.uuid4(), quantity=1
        )


def test_transfer_endpoint_reports_result_and_history(db_session, source_and_target, global_admin):
    source, target = source_and_target
    product = create_item(db_session, source, stock=7)
    context = CompanyContext(user=global_admin, company=source.company, branch=source)

    result = branches_router.create_transfer(
        transfer_in=StockTransferCreate(product_id=product.id, target_branch_id=target.id, quantity=5),
        branch=source,
        db=db_session,
        context=context,
    )

    assert result.source_remaining == 2
    assert result.target_quantity == 5
    assert result.created_item is True

    history = branches_router.read_transfers(branch=target, db=db_session, context=context, limit=100)
    assert len(history.transfers) == 1
    assert history.transfers[0].quantity == 5
    assert history.transfers[0].created_by == global_admin.id

    candidates = branches_router.read_transfer_candidates(branch=source, db=db_session, context=context)
    assert [c.id for c in candidates] == [product.id]


def test_transfer_endpoint_maps_insufficient_stock_to_400(db_session, source_and_target, global_admin):
    source, target = source_and_target
    product = create_item(db_session, source, stock=1)
    context = CompanyContext(user=global_admin, company=source.company, branch=source)

    with pytest.raises(HTTPException) as exc_info:
        branches_router.create_transfer(
            transfer_in=StockTransferCreate(product_id=product.id, target_branch_id=target.id, quantity=2),
            branch=source,
            db=db_session,
            context=context,
        )

    assert exc_info.value.status_code == 400
    assert "1 unidades" in exc_info.value.detail


def test_candidates_skip_items_without_stock(db_session, source_and_target):
    source, _ = source_and_target
    in_stock = create_item(db_session, source, code="A", name="Arandela", stock=3)
    create_item(db_session, source, code="B", name="Broca", stock=0)

    candidates = stock_transfer.list_transfer_candidates(db_session, source.id)

    assert [c.id for c in candidates] == [in_stock.id]


def test_source_branch_must_be_accessible_to_user(db_session, source_and_target, company):
    source, target = source_and_target
    user = create_user(db_session, email="ana@example.com", companies=[company])
    db_session.add(UserBranch(user_id=user.id, branch_id=target.id))
    db_session.commit()
    context = CompanyContext(user=user, company=company, branch=target)

    with pytest.raises(HTTPException) as exc_info:
        branches_router.get_source_branch(branch_id=source.id, db=db_session, context=context)
    assert exc_info.value.status_code == 403

    assert branches_router.get_source_branch(branch_id=target.id, db=db_session, context=context).id == target.id
