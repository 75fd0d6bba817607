from __future__ import annotations

import pytest
from fastapi import HTTPException

from conftest import create_branch, create_company, create_user
from retail_api.api.v1.endpoints import auth as auth_router
from retail_api.api.v1.endpoints import users as users_router
from retail_api.core.security import MAGIC_LINK_TOKEN_TYPE, create_access_token, decode_token
from retail_api.models.auth import COMPANY_ADMIN, User, UserBranch, UserCompany
from retail_api.schemas.auth import MagicLinkLogin, ResendInvite, UserInvite, UserLogin, UserUpdate
from retail_api.services.users import invite_user


def _token_from(link: str) -> str:
    return link.split("token=", 1)[1]


def test_invite_creates_account_links_and_one_time_link(db_session, company):
    branch = create_branch(db_session, company, name="Centro")

    user, invitation = invite_user(
        db_session, email="Nuevo@Example.com", company_id=company.id, branch_ids=[branch.id, branch.id]
    )

    assert user.email == "nuevo@example.com"
    assert db_session.query(UserCompany).filter(UserCompany.user_id == user.id).count() == 1
    assert db_session.query(UserBranch).filter(UserBranch.user_id == user.id).count() == 1

    token_data = decode_token(_token_from(invitation.action_link), expected_type=MAGIC_LINK_TOKEN_TYPE)
    assert token_data.sub == str(user.id)
    assert token_data.jti == user.login_link_jti


def test_invite_existing_email_is_rejected_without_side_effects(db_session, company):
    create_user(db_session, email="ana@example.com", companies=[company])

    with pytest.raises(ValueError):
        invite_user(db_session, email="ANA@example.com", company_id=company.id)
    assert db_session.query(User).count() == 1


def test_invite_with_foreign_branch_creates_nothing(db_session, company):
    other = create_company(db_session, name="Other Co")
    foreign = create_branch(db_session, other, name="Foreign")

    with pytest.raises(LookupError):
        invite_user(db_session, email="nuevo@example.com", company_id=company.id, branch_ids=[foreign.id])
    assert db_session.query(User).count() == 0


def test_magic_link_can_only_be_used_once(db_session, company):
    user, invitation = invite_user(db_session, email="nuevo@example.com", company_id=company.id)
    payload = MagicLinkLogin(token=_token_from(invitation.action_link))

    tokens = auth_router.login_with_magic_link(payload=payload, db=db_session)
    assert tokens["system_role"] == "user"
    assert decode_token(tokens["access_token"]).sub == str(user.id)

    with pytest.raises(HTTPException) as exc_info:
        auth_router.login_with_magic_link(payload=payload, db=db_session)
    assert exc_info.value.status_code == 401


def test_resend_invite_replaces_previous_link(db_session, company, global_admin):
    _, first = invite_user(db_session, email="nuevo@example.com", company_id=company.id)

    second = users_router.resend_invite(payload=ResendInvite(email="nuevo@example.com"), db=db_session, admin=global_admin)

    with pytest.raises(HTTPException):
        auth_router.login_with_magic_link(payload=MagicLinkLogin(token=_token_from(first.action_link)), db=db_session)
    tokens = auth_router.login_with_magic_link(
        payload=MagicLinkLogin(token=_token_from(second.action_link)), db=db_session
    )
    assert tokens["token_type"] == "bearer"


def test_access_token_cannot_be_used_as_magic_link(db_session, company):
    user = create_user(db_session, email="ana@example.com", companies=[company])
    tokens = auth_router.login_for_access_token(user_in=UserLogin(email="ana@example.com", password="secret123"), db=db_session)

    with pytest.raises(HTTPException) as exc_info:
        auth_router.login_with_magic_link(payload=MagicLinkLogin(token=tokens["access_token"]), db=db_session)
    assert exc_info.value.status_code == 401
    assert auth_router.get_current_user(db=db_session, token=tokens["access_token"]).id == user.id


def test_refresh_token_resolves_user_and_rotates_pair(db_session, company):
    user = create_user(db_session, email="ana@example.com", companies=[company])
    tokens = auth_router.login_for_access_token(user_in=UserLogin(email="ana@example.com", password="secret123"), db=db_session)

    refreshed = auth_router.refresh_access_token(refresh_token=tokens["refresh_token"], db=db_session)

    assert decode_token(refreshed["access_token"]).sub == str(user.id)
    assert auth_router.read_users_me(
        current_user=auth_router.get_current_user(db=db_session, token=refreshed["access_token"])
    ).email == "ana@example.com"


def test_token_with_malformed_user_id_is_unauthorized(db_session):
    with pytest.raises(HTTPException) as exc_info:
        auth_router.get_current_user(db=db_session, token=create_access_token(subject="not-a-uuid"))
    assert exc_info.value.status_code == 401


def test_invite_endpoint_rejects_duplicates_with_conflict(db_session, company, global_admin):
    created = users_router.invite(
        user_in=UserInvite(email="nuevo@example.com", company_id=company.id), db=db_session, admin=global_admin
    )
    assert created.user.companies[0].company_id == company.id

    with pytest.raises(HTTPException) as exc_info:
        users_router.invite(
            user_in=UserInvite(email="nuevo@example.com", company_id=company.id), db=db_session, admin=global_admin
        )
    assert exc_info.value.status_code == 409


def test_company_admin_is_limited_to_own_companies(db_session, company):
    other = create_company(db_session, name="Other Co")
    boss = create_user(db_session, email="boss@example.com", system_role=COMPANY_ADMIN, companies=[company])
    peer = create_user(db_session, email="peer@example.com", system_role=COMPANY_ADMIN, companies=[company])
    outsider = create_user(db_session, email="out@example.com", companies=[other])
    staff = create_user(db_session, email="staff@example.com", companies=[company])

    listed = users_router.read_users(db=db_session, admin=boss, company_id=None)
    assert {u.email for u in listed} == {"boss@example.com", "peer@example.com", "staff@example.com"}

    with pytest.raises(HTTPException) as exc_info:
        users_router.invite(
            user_in=UserInvite(email="x@example.com", company_id=other.id), db=db_session, admin=boss
        )
    assert exc_info.value.status_code == 403

    for target in (peer, outsider):
        with pytest.raises(HTTPException) as exc_info:
            users_router.delete_user(user_id=target.id, db=db_session, admin=boss)
        assert exc_info.value.status_code == 403

    users_router.delete_user(user_id=staff.id, db=db_session, admin=boss)
    assert db_session.query(User).filter(User.id == staff.id).count() == 0


def test_admin_cannot_delete_self(db_session, global_admin):
    with pytest.raises(HTTPException) as exc_info:
        users_router.delete_user(user_id=global_admin.id, db=db_session, admin=global_admin)
    assert exc_info.value.status_code == 403


def test_only_global_admin_changes_system_role(db_session, company):
    boss = create_user(db_session, email="boss@example.com", system_role=COMPANY_ADMIN, companies=[company])
    staff = create_user(db_session, email="staff@example.com", companies=[company])

    with pytest.raises(HTTPException) as exc_info:
        users_router.update_user(
            user_id=staff.id, user_in=UserUpdate(system_role="company_admin"), db=db_session, current_user=boss
        )
    assert exc_info.value.status_code == 403

    updated = users_router.update_user(
        user_id=staff.id, user_in=UserUpdate(first_name="Sofía"), db=db_session, current_user=boss
    )
    assert updated.first_name == "Sofía"
