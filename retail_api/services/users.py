"""Invitaciones de usuarios y asignación de roles (escrituras sobre varias tablas)."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from retail_api.core.security import (
    build_magic_link,
    create_magic_link_token,
    generate_random_password,
    generate_token_id,
    get_password_hash,
)
from retail_api.models.auth import STANDARD_USER, Role, User, UserBranch, UserCompany
from retail_api.models.platform import Branch, Company
from retail_api.schemas.auth import InvitationLink, UserCompanyLink, UserInDB

logger = logging.getLogger(__name__)


def user_to_schema(user: User) -> UserInDB:
    """Mapea un User (sin hash) con sus compañías y sucursales vinculadas."""
    companies = [
        UserCompanyLink(
            company_id=link.company_id,
            company_name=link.company.name if link.company is not None else None,
            role=link.role,
            role_id=link.role_id,
        )
        for link in user.company_links
    ]
    return UserInDB(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_active=user.is_active,
        system_role=user.system_role,
        default_company_id=user.default_company_id,
        default_branch_id=user.default_branch_id,
        companies=companies,
        branch_ids=[link.branch_id for link in user.branch_links],
        created_at=user.created_at,
    )


def generate_invitation(db: Session, user: User) -> InvitationLink:
    """Emite un nuevo enlace de acceso; el anterior deja de ser válido."""
    jti = generate_token_id()
    user.login_link_jti = jti
    db.add(user)
    db.commit()

    token = create_magic_link_token(subject=str(user.id), jti=jti)
    link = build_magic_link(token)
    # Sin envío de correo: el enlace queda en el log y se devuelve al administrador
    logger.info("Enlace de acceso generado para %s", user.email)
    return InvitationLink(email=user.email, action_link=link)


def _validate_branches(db: Session, company_id: UUID, branch_ids: Iterable[UUID]) -> List[UUID]:
    unique_ids = list(dict.fromkeys(branch_ids))
    if not unique_ids:
        return []
    found = {
        branch_id
        for (branch_id,) in db.query(Branch.id)
        .filter(Branch.id.in_(unique_ids), Branch.company_id == company_id)
        .all()
    }
    missing = [branch_id for branch_id in unique_ids if branch_id not in found]
    if missing:
        raise LookupError("Una o más sucursales no existen o no pertenecen a la compañía indicada.")
    return unique_ids


def get_assignable_role(db: Session, role_id: UUID, company_id: UUID) -> Role:
    role = db.query(Role).filter(Role.id == role_id).first()
    if role is None:
        raise LookupError("Rol no encontrado.")
    if role.company_id is not None and role.company_id != company_id:
        raise ValueError("El rol no pertenece a la compañía indicada.")
    return role


def invite_user(
    db: Session,
    *,
    email: str,
    company_id: UUID,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: str = STANDARD_USER,
    role_id: Optional[UUID] = None,
    branch_ids: Iterable[UUID] = (),
    system_role: str = STANDARD_USER,
):
    """
    Crea la cuenta (contraseña aleatoria), el vínculo con la compañía y los
    vínculos con sucursales en una sola transacción. Devuelve (user, invitación).
    """
    email = email.lower()
    if db.query(User).filter(User.email == email).first():
        raise ValueError(f"El correo {email} ya está registrado.")

    if db.query(Company).filter(Company.id == company_id).first() is None:
        raise LookupError("Compañía no encontrada.")

    branch_ids = _validate_branches(db, company_id, branch_ids)
    assigned_role = get_assignable_role(db, role_id, company_id) if role_id else None

    try:
        user = User(
            email=email,
            first_name=first_name,
            last_name=last_name,
            password_hash=get_password_hash(generate_random_password()),
            system_role=system_role,
            is_active=True,
        )
        db.add(user)
        db.flush()

        db.add(
            UserCompany(
                user_id=user.id,
                company_id=company_id,
                role_id=assigned_role.id if assigned_role else None,
                role=assigned_role.role_name if assigned_role else role,
            )
        )
        for branch_id in branch_ids:
            db.add(UserBranch(user_id=user.id, branch_id=branch_id, role_id=role_id))
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Error creando el usuario invitado %s", email)
        raise

    db.refresh(user)
    logger.info("Usuario invitado: %s (compañía %s, %s sucursales)", email, company_id, len(branch_ids))
    return user, generate_invitation(db, user)


def resend_invitation(db: Session, email: str) -> InvitationLink:
    user = db.query(User).filter(User.email == email.lower()).first()
    if user is None:
        raise LookupError("Usuario no encontrado.")
    if not user.is_active:
        raise ValueError("La cuenta de usuario está inactiva.")
    return generate_invitation(db, user)


def assign_role(
    db: Session,
    *,
    role: Role,
    user_id: UUID,
    company_id: UUID,
    branch_ids: Iterable[UUID] = (),
) -> List[UUID]:
    """
    Asigna `role` al usuario en la compañía (upsert de user_companies) y en las
    sucursales indicadas (upsert de user_branches), en una sola transacción.
    """
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise LookupError("Usuario no encontrado.")
    if db.query(Company).filter(Company.id == company_id).first() is None:
        raise LookupError("Compañía no encontrada.")
    if role.company_id is not None and role.company_id != company_id:
        raise ValueError("El rol no pertenece a la compañía indicada.")
    branch_ids = _validate_branches(db, company_id, branch_ids)

    try:
        link = (
            db.query(UserCompany)
            .filter(UserCompany.user_id == user_id, UserCompany.company_id == company_id)
            .first()
        )
        if link is None:
            link = UserCompany(user_id=user_id, company_id=company_id)
            db.add(link)
        link.assigned_role = role
        link.role = role.role_name

        for branch_id in branch_ids:
            branch_link = (
                db.query(UserBranch)
                .filter(UserBranch.user_id == user_id, UserBranch.branch_id == branch_id)
                .first()
            )
            if branch_link is None:
                branch_link = UserBranch(user_id=user_id, branch_id=branch_id)
                db.add(branch_link)
            branch_link.role_id = role.id
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Error asignando el rol %s al usuario %s", role.id, user_id)
        raise

    logger.info("Rol %s asignado a %s en la compañía %s", role.role_name, user_id, company_id)
    return branch_ids
