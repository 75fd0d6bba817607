from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import HTTPException

from conftest import create_branch, create_company, create_item, create_user
from retail_api.api.v1.endpoints import item_groups as groups_router
from retail_api.api.v1.endpoints import items as items_router
from retail_api.api.v1.endpoints.context import CompanyContext
from retail_api.models.auth import UserBranch
from retail_api.models.inventory import Item, ItemGroup
from retail_api.schemas.inventory import ItemCreate, ItemGroupCreate, ItemGroupUpdate, ItemInDB, ItemUpdate
from retail_api.services.item_groups import validate_parent


@pytest.fixture()
def context(db_session, company, global_admin):
    branch = create_branch(db_session, company, name="Centro", is_main=True)
    return CompanyContext(user=global_admin, company=company, branch=branch)


def _list_items(db, context, **filters):
    params = {"limit": 100, "skip": 0, "search": None, "branch_id": None, "item_group_id": None}
    params.update(filters)
    return items_router.read_items(db=db, context=context, **params)


def test_item_code_is_unique_per_branch(db_session, context):
    norte = create_branch(db_session, context.company, name="Norte")
    payload = {"name": "Martillo", "code": "MAR-1", "price": Decimal("9.90"), "stock_quantity": 3}

    items_router.create_item(item_in=ItemCreate(**payload, branch_id=context.branch.id), db=db_session, context=context)
    with pytest.raises(HTTPException) as exc_info:
        items_router.create_item(item_in=ItemCreate(**payload, branch_id=context.branch.id), db=db_session, context=context)
    assert exc_info.value.status_code == 400

    other = items_router.create_item(item_in=ItemCreate(**payload, branch_id=norte.id), db=db_session, context=context)
    assert other.branch_id == norte.id


def test_items_list_is_branch_scoped_with_search_and_group_filter(db_session, context):
    group = ItemGroup(company_id=context.company.id, name="Herramientas")
    db_session.add(group)
    db_session.commit()
    create_item(db_session, context.branch, code="MAR-1", name="Martillo", item_group_id=group.id)
    create_item(db_session, context.branch, code="TOR-1", name="Tornillo")
    norte = create_branch(db_session, context.company, name="Norte")
    create_item(db_session, norte, code="MAR-1", name="Martillo")

    assert [i.code for i in _list_items(db_session, context)] == ["MAR-1", "TOR-1"]
    assert [i.name for i in _list_items(db_session, context, search="tor")] == ["Tornillo"]
    assert [i.name for i in _list_items(db_session, context, search="mar-")] == ["Martillo"]
    assert [i.code for i in _list_items(db_session, context, item_group_id=group.id)] == ["MAR-1"]
    assert len(_list_items(db_session, context, branch_id=norte.id)) == 1
    assert len(_list_items(db_session, context, limit=1, skip=1)) == 1


def test_items_list_needs_a_branch(db_session, company, global_admin):
    context = CompanyContext(user=global_admin, company=company, branch=None)

    with pytest.raises(HTTPException) as exc_info:
        _list_items(db_session, context)
    assert exc_info.value.status_code == 428


def test_item_of_other_company_is_forbidden(db_session, context):
    other = create_company(db_session, name="Other Co")
    foreign = create_item(db_session, create_branch(db_session, other, name="Foreign"))

    with pytest.raises(HTTPException) as exc_info:
        items_router.read_item(item_id=foreign.id, db=db_session, context=context)
    assert exc_info.value.status_code == 403


def test_item_update_and_serialization(db_session, context):
    item = create_item(db_session, context.branch, code="MAR-1", stock=3)

    updated = items_router.update_item(
        item_id=item.id, item_in=ItemUpdate(price=Decimal("15.00"), stock_quantity=8), db=db_session, context=context
    )

    data = ItemInDB.model_validate(updated).model_dump()
    assert data["price"] == 15.0
    assert data["stock_quantity"] == 8
    assert isinstance(data["created_at"], str)

    items_router.delete_item(item_id=item.id, db=db_session, context=context)
    assert db_session.query(Item).count() == 0


def test_item_group_parent_cannot_create_cycle(db_session, context):
    root = groups_router.create_item_group(group_in=ItemGroupCreate(name="Ferretería"), db=db_session, context=context)
    child = groups_router.create_item_group(
        group_in=ItemGroupCreate(name="Tornillería", parent_id=root.id), db=db_session, context=context
    )

    with pytest.raises(HTTPException) as exc_info:
        groups_router.update_item_group(
            group_id=root.id, group_in=ItemGroupUpdate(parent_id=child.id), db=db_session, context=context
        )
    assert exc_info.value.status_code == 400

    with pytest.raises(ValueError):
        validate_parent(db_session, context.company.id, root.id, group_id=root.id)


def test_item_group_parent_must_belong_to_company(db_session, context):
    other = create_company(db_session, name="Other Co")
    foreign = ItemGroup(company_id=other.id, name="Ajeno")
    db_session.add(foreign)
    db_session.commit()

    with pytest.raises(HTTPException) as exc_info:
        groups_router.create_item_group(
            group_in=ItemGroupCreate(name="Local", parent_id=foreign.id), db=db_session, context=context
        )
    assert exc_info.value.status_code == 404


def test_deleting_group_reparents_children_and_ungroups_items(db_session, context):
    root = groups_router.create_item_group(group_in=ItemGroupCreate(name="Ferretería"), db=db_session, context=context)
    middle = groups_router.create_item_group(
        group_in=ItemGroupCreate(name="Fijaciones", parent_id=root.id), db=db_session, context=context
    )
    leaf = groups_router.create_item_group(
        group_in=ItemGroupCreate(name="Tornillos", parent_id=middle.id), db=db_session, context=context
    )
    item = create_item(db_session, context.branch, item_group_id=middle.id)

    groups_router.remove_item_group(group_id=middle.id, db=db_session, context=context)

    db_session.expire_all()
    assert db_session.query(ItemGroup).filter(ItemGroup.id == leaf.id).one().parent_id == root.id
    assert db_session.query(Item).filter(Item.id == item.id).one().item_group_id is None


def test_item_group_search(db_session, context):
    groups_router.create_item_group(group_in=ItemGroupCreate(name="Pinturas"), db=db_session, context=context)
    groups_router.create_item_group(
        group_in=ItemGroupCreate(name="Varios", description="Pinceles y rodillos"), db=db_session, context=context
    )

    found = groups_router.read_item_groups(db=db_session, context=context, search="PINC")
    assert [g.name for g in found] == ["Varios"]
    assert len(groups_router.read_item_groups(db=db_session, context=context, search=None)) == 2


def test_items_of_unlinked_branch_are_forbidden(db_session, context):
    norte = create_branch(db_session, context.company, name="Norte")
    create_item(db_session, context.branch, code="MAR-1")
    user = create_user(db_session, email="ana@example.com", companies=[context.company])
    db_session.add(UserBranch(user_id=user.id, branch_id=norte.id))
    db_session.commit()
    restricted = CompanyContext(user=user, company=context.company, branch=norte)

    with pytest.raises(HTTPException) as exc_info:
        _list_items(db_session, restricted, branch_id=context.branch.id)
    assert exc_info.value.status_code == 403
    assert _list_items(db_session, restricted, branch_id=norte.id) == []


def test_item_update_ignores_explicit_nulls(db_session, context):
    item = create_item(db_session, context.branch, code="MAR-1", name="Martillo", stock=3)

    updated = items_router.update_item(
        item_id=item.id,
        item_in=ItemUpdate(name=None, code=None, stock_quantity=None, description="Mango de fibra"),
        db=db_session,
        context=context,
    )

    assert updated.name == "Martillo"
    assert updated.code == "MAR-1"
    assert updated.stock_quantity == 3
    assert updated.description == "Mango de fibra"
