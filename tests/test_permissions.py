from __future__ import annotations

import pytest
from fastapi import HTTPException

from conftest import create_branch, create_company, create_user
from retail_api.api.v1.endpoints import roles as roles_router
from retail_api.api.v1.endpoints.context import CompanyContext
from retail_api.models.auth import COMPANY_ADMIN, Role, UserBranch, UserCompany
from retail_api.schemas.auth import ModulePermissionsUpdate, RoleAssignment, RoleCreate, RoleUpdate
from retail_api.services import permissions
from retail_api.services.users import assign_role


def test_select_all_and_clear_all_toggle_every_action():
    matrix = permissions.create_empty_permissions()

    matrix = permissions.set_module_permissions(matrix, "inventory", all_actions=True)
    assert matrix["inventory"] == {"read": True, "write": True, "delete": True, "export": True}
    assert matrix["sales"] == permissions.empty_module_permissions()

    matrix = permissions.set_module_permissions(matrix, "inventory", all_actions=False)
    assert matrix["inventory"] == {"read": False, "write": False, "delete": False, "export": False}


def test_single_actions_are_applied_individually():
    matrix = permissions.set_module_permissions({}, "reports", read=True, export=None)

    assert matrix["reports"] == {"read": True, "write": False, "delete": False, "export": False}


def test_unknown_module_is_rejected():
    with pytest.raises(ValueError):
        permissions.set_module_permissions({}, "payroll", all_actions=True)


def test_default_roles_are_seeded_once(db_session):
    assert permissions.seed_default_roles(db_session) == 3
    assert permissions.seed_default_roles(db_session) == 0

    manager = db_session.query(Role).filter(Role.role_type == "manager").one()
    assert manager.is_default is True
    assert manager.company_id is None
    assert permissions.has_permission(manager.permissions, "settings", "delete")


def test_user_can_follows_assigned_role(db_session, company):
    user = create_user(db_session, email="ana@example.com", companies=[company])
    assert permissions.user_can(db_session, user, company.id, "inventory", "read") is False

    role = Role(
        role_name="Bodega",
        permissions=permissions.set_module_permissions({}, "inventory", read=True),
        company_id=company.id,
    )
    db_session.add(role)
    db_session.commit()
    assign_role(db_session, role=role, user_id=user.id, company_id=company.id)

    assert permissions.user_can(db_session, user, company.id, "inventory", "read") is True
    assert permissions.user_can(db_session, user, company.id, "inventory", "write") is False


def test_company_admin_can_everything_only_in_own_company(db_session, company):
    other = create_company(db_session, name="Other Co")
    admin = create_user(db_session, email="boss@example.com", system_role=COMPANY_ADMIN, companies=[company])

    assert permissions.user_can(db_session, admin, company.id, "roles", "delete") is True
    assert permissions.user_can(db_session, admin, other.id, "roles", "read") is False


def test_assignment_upserts_company_and_branch_links(db_session, company):
    centro = create_branch(db_session, company, name="Centro")
    norte = create_branch(db_session, company, name="Norte")
    user = create_user(db_session, email="ana@example.com", companies=[company])
    first = Role(role_name="Cajero", company_id=company.id, permissions={})
    second = Role(role_name="Supervisor", company_id=company.id, permissions={})
    db_session.add_all([first, second])
    db_session.commit()

    assign_role(db_session, role=first, user_id=user.id, company_id=company.id, branch_ids=[centro.id])
    assign_role(db_session, role=second, user_id=user.id, company_id=company.id, branch_ids=[centro.id, norte.id])

    link = db_session.query(UserCompany).filter(UserCompany.user_id == user.id).one()
    assert link.role_id == second.id
    assert link.role == "Supervisor"
    branch_links = db_session.query(UserBranch).filter(UserBranch.user_id == user.id).all()
    assert sorted(str(b.branch_id) for b in branch_links) == sorted([str(centro.id), str(norte.id)])
    assert {b.role_id for b in branch_links} == {second.id}


def test_assignment_rejects_branch_of_other_company(db_session, company):
    other = create_company(db_session, name="Other Co")
    foreign = create_branch(db_session, other, name="Foreign")
    user = create_user(db_session, email="ana@example.com", companies=[company])
    role = Role(role_name="Cajero", company_id=company.id, permissions={})
    db_session.add(role)
    db_session.commit()

    with pytest.raises(LookupError):
        assign_role(db_session, role=role, user_id=user.id, company_id=company.id, branch_ids=[foreign.id])
    assert db_session.query(UserBranch).count() == 0


def test_role_endpoints_create_toggle_module_and_protect_defaults(db_session, company, global_admin):
    permissions.seed_default_roles(db_session)
    context = CompanyContext(user=global_admin, company=company)

    role = roles_router.create_role(
        role_in=RoleCreate(role_name="Bodega", permissions={"inventory": {"read": True}}),
        db=db_session,
        context=context,
    )
    assert role.company_id == company.id
    assert role.permissions["inventory"]["read"] is True
    assert set(role.permissions) == set(permissions.AVAILABLE_MODULES)

    updated = roles_router.update_module_permissions(
        role_id=role.id, module="inventory", payload=ModulePermissionsUpdate(all=True), db=db_session, context=context
    )
    assert all(updated.permissions["inventory"].values())

    listing = roles_router.get_all_roles(db=db_session, context=context)
    assert len(listing["roles"]) == 4

    manager = db_session.query(Role).filter(Role.role_type == "manager").one()
    with pytest.raises(HTTPException) as exc_info:
        roles_router.delete_role(role_id=manager.id, db=db_session, context=context)
    assert exc_info.value.status_code == 400


def test_role_assignment_endpoint(db_session, company, global_admin):
    branch = create_branch(db_session, company, name="Centro")
    user = create_user(db_session, email="ana@example.com", companies=[company])
    role = Role(role_name="Cajero", company_id=company.id, permissions={})
    db_session.add(role)
    db_session.commit()
    context = CompanyContext(user=global_admin, company=company)

    result = roles_router.create_role_assignment(
        role_id=role.id,
        assignment=RoleAssignment(user_id=user.id, company_id=company.id, branch_ids=[branch.id]),
        db=db_session,
        context=context,
    )

    assert result.branch_ids == [branch.id]
    assert result.role_id == role.id


def test_role_update_ignores_explicit_nulls(db_session, company, global_admin):
    context = CompanyContext(user=global_admin, company=company)
    role = roles_router.create_role(
        role_in=RoleCreate(role_name="Bodega", permissions={"inventory": {"read": True}}),
        db=db_session,
        context=context,
    )

    updated = roles_router.update_role(
        role_id=role.id,
        role_in=RoleUpdate(role_name=None, role_type=None, permissions=None, description="Personal de bodega"),
        db=db_session,
        context=context,
    )

    assert updated.role_name == "Bodega"
    assert updated.role_type == "custom"
    assert updated.permissions["inventory"]["read"] is True
    assert updated.description == "Personal de bodega"
