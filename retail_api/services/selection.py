"""Flujo de selección de compañía/sucursal y resolución del contexto activo."""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from retail_api.models.auth import ADMIN_ROLES, GLOBAL_ADMIN, User, UserBranch, UserCompany
from retail_api.models.platform import Branch, Company
from retail_api.schemas.platform import ActiveContext, BranchInDB, CompanyInDB, SelectionState, UserCompanyInDB
from retail_api.services.branches import list_company_branches

logger = logging.getLogger(__name__)


class ContextRequiredError(LookupError):
    """No hay compañía seleccionada para el request."""


def _company_view(company: Company, user: User, role: Optional[str]) -> UserCompanyInDB:
    data = CompanyInDB.model_validate(company).model_dump()
    return UserCompanyInDB(**data, is_default=company.id == user.default_company_id, role=role)


def list_user_companies(db: Session, user: User) -> List[UserCompanyInDB]:
    """Compañías del usuario con su marca de defecto y su rol. Global Admin ve todas."""
    if user.system_role == GLOBAL_ADMIN:
        companies = db.query(Company).order_by(Company.name).all()
        return [_company_view(company, user, GLOBAL_ADMIN) for company in companies]

    rows = (
        db.query(UserCompany, Company)
        .join(Company, Company.id == UserCompany.company_id)
        .filter(UserCompany.user_id == user.id)
        .order_by(Company.name)
        .all()
    )
    return [_company_view(company, user, link.role) for link, company in rows]


def has_company_access(db: Session, user: User, company_id: UUID) -> bool:
    if user.system_role == GLOBAL_ADMIN:
        return True
    return (
        db.query(UserCompany)
        .filter(UserCompany.user_id == user.id, UserCompany.company_id == company_id)
        .first()
        is not None
    )


def accessible_branches(db: Session, user: User, company: Company) -> List[Branch]:
    """
    Sucursales de la compañía a las que el usuario tiene acceso: las vinculadas
    en user_branches o, si no tiene vínculos en esta compañía, todas.
    """
    branches = list_company_branches(db, company)
    if user.system_role in ADMIN_ROLES:
        return branches

    linked_ids = {
        branch_id
        for (branch_id,) in db.query(UserBranch.branch_id)
        .join(Branch, Branch.id == UserBranch.branch_id)
        .filter(UserBranch.user_id == user.id, Branch.company_id == company.id)
        .all()
    }
    if not linked_ids:
        return branches
    return [branch for branch in branches if branch.id in linked_ids]


def select_context(db: Session, user: User, company_id: UUID, branch_id: UUID) -> ActiveContext:
    """Valida el acceso y persiste compañía/sucursal como predeterminadas del usuario."""
    company = db.query(Company).filter(Company.id == company_id).first()
    if company is None:
        raise LookupError("Compañía no encontrada.")
    if not has_company_access(db, user, company_id):
        raise PermissionError("Acceso denegado a esta compañía.")

    branch = next((b for b in accessible_branches(db, user, company) if b.id == branch_id), None)
    if branch is None:
        raise PermissionError("La sucursal no existe o no tienes acceso a ella.")

    user.default_company_id = company.id
    user.default_branch_id = branch.id
    db.add(user)
    db.commit()
    logger.info("Contexto seleccionado: usuario=%s compañía=%s sucursal=%s", user.id, company.id, branch.id)

    return ActiveContext(
        company_id=company.id,
        company_name=company.name,
        branch_id=branch.id,
        branch_name=branch.name,
    )


def resolve_selection(db: Session, user: User, company_id: Optional[UUID] = None) -> SelectionState:
    """
    Estado del flujo de selección. Con una sola compañía disponible se
    selecciona sola; con una sola sucursal accesible también, y el contexto
    queda persistido (avance automático).
    """
    companies = list_user_companies(db, user)
    state = SelectionState(companies=companies)

    if company_id is None:
        if len(companies) == 1:
            company_id = companies[0].id
        elif user.default_company_id and any(c.id == user.default_company_id for c in companies):
            company_id = user.default_company_id

    if company_id is None:
        return state

    selected = next((c for c in companies if c.id == company_id), None)
    if selected is None:
        raise PermissionError("Acceso denegado a esta compañía.")
    state.selected_company = selected

    company = db.query(Company).filter(Company.id == company_id).first()
    branches = accessible_branches(db, user, company)
    state.branches = [BranchInDB.model_validate(branch) for branch in branches]

    chosen = None
    if len(branches) == 1:
        chosen = branches[0]
    elif user.default_company_id == company.id and user.default_branch_id:
        chosen = next((b for b in branches if b.id == user.default_branch_id), None)

    if chosen is not None:
        if user.default_company_id != company.id or user.default_branch_id != chosen.id:
            select_context(db, user, company.id, chosen.id)
        state.selected_branch = BranchInDB.model_validate(chosen)
        state.selected_company = selected.model_copy(update={"is_default": True})
        state.complete = True

    return state


def resolve_active_context(
    db: Session,
    user: User,
    company_id: Optional[UUID] = None,
    branch_id: Optional[UUID] = None,
) -> Tuple[Company, Optional[Branch]]:
    """
    Compañía/sucursal activas del request: las indicadas explícitamente o, si
    faltan, las predeterminadas del usuario.
    """
    if company_id is None:
        company_id = user.default_company_id
        if branch_id is None:
            branch_id = user.default_branch_id
    if company_id is None:
        raise ContextRequiredError("Seleccione una compañía y una sucursal primero.")

    company = db.query(Company).filter(Company.id == company_id).first()
    if company is None:
        raise LookupError("Compañía no encontrada.")
    if not has_company_access(db, user, company.id):
        raise PermissionError("Acceso denegado a esta compañía.")

    branch = None
    if branch_id is not None:
        branch = next((b for b in accessible_branches(db, user, company) if b.id == branch_id), None)
        if branch is None:
            raise PermissionError("La sucursal no existe o no tienes acceso a ella.")
    return company, branch
