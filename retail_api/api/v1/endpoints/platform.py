# retail_api/api/v1/endpoints/platform.py
# type: ignore
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from retail_api.api.v1.endpoints.auth import get_current_user, get_global_admin
from retail_api.api.v1.endpoints.context import check_permission, drop_null_fields, raise_http_from
from retail_api.database import get_db
from retail_api.models.auth import COMPANY_ADMIN, User
from retail_api.models.platform import MAIN_BRANCH_NAME, Branch, Company
from retail_api.schemas.platform import (
    BranchCreate,
    BranchInDB,
    BranchUpdate,
    CompanyCreate,
    CompanyCreated,
    CompanyInDB,
    CompanyUpdate,
    UserCompanyInDB,
)
from retail_api.services import branches as branch_service
from retail_api.services.selection import accessible_branches, has_company_access, list_user_companies
from retail_api.services.users import invite_user

logger = logging.getLogger(__name__)

router = APIRouter()

# ***************************************************************
# Dependencias de Permisos Reutilizables
# ***************************************************************

def check_company_access(
    company_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Verifica permiso de LECTURA/LISTADO en esta compañía.
    Permite: Global Admin o cualquier usuario vinculado a la compañía.
    """
    if not has_company_access(db, current_user, company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acceso denegado a esta compañía.")
    return current_user


def get_company_or_404(db: Session, company_id: UUID) -> Company:
    company = db.query(Company).filter(Company.id == company_id).first()
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Compañía no encontrada.")
    return company


def get_branch_or_404(db: Session, branch_id: UUID) -> Branch:
    branch = db.query(Branch).filter(Branch.id == branch_id).first()
    if not branch:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sucursal no encontrada.")
    return branch

# ***************************************************************
# 1. Endpoints para COMPANY (CRUD)
# ***************************************************************

@router.post("/companies", response_model=CompanyCreated, status_code=status.HTTP_201_CREATED, tags=["Companies"])
def create_company(
    company_in: CompanyCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_global_admin)
):
    """
    Crea una nueva compañía con su sucursal principal y, opcionalmente,
    invita a su administrador. Requiere global_admin.
    """
    if db.query(Company).filter(Company.slug == company_in.slug).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Slug ya existe.")
    if db.query(Company).filter(Company.name == company_in.name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ya existe una compañía con este nombre.")

    admin_in = company_in.admin_user
    if admin_in and db.query(User).filter(User.email == admin_in.email.lower()).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"El correo {admin_in.email} ya está registrado.",
        )

    db_company = Company(**company_in.model_dump(exclude={"admin_user"}))
    db.add(db_company)
    db.flush()
    db.add(Branch(company_id=db_company.id, name=MAIN_BRANCH_NAME, is_main_branch=True))

    # Compañía, sucursal principal e invitación se confirman juntas: la
    # invitación hace el commit; si falla, se revierte también la compañía.
    invitation = None
    if admin_in:
        try:
            _, invitation = invite_user(
                db,
                email=admin_in.email,
                first_name=admin_in.first_name,
                last_name=admin_in.last_name,
                company_id=db_company.id,
                role=COMPANY_ADMIN,
                system_role=COMPANY_ADMIN,
            )
        except (LookupError, ValueError) as exc:
            db.rollback()
            logger.warning("Alta de compañía %s revertida: %s", company_in.slug, exc)
            raise_http_from(exc)
        except Exception:
            db.rollback()
            logger.exception("Error al crear la compañía %s", company_in.slug)
            raise
    else:
        db.commit()

    db.refresh(db_company)
    logger.info("Compañía creada: %s (%s)", db_company.name, db_company.id)

    data = CompanyInDB.model_validate(db_company).model_dump()
    return CompanyCreated(**data, admin_invitation=invitation)


@router.get("/companies", response_model=List[UserCompanyInDB], tags=["Companies"])
def read_companies(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """
    Lista compañías.
    - Global Admin: Lista todas.
    - Otros Roles: Solo las compañías a las que están vinculados.
    """
    return list_user_companies(db, user)


@router.get("/companies/{company_id}", response_model=CompanyInDB, tags=["Companies"])
def read_company(
    company_id: UUID,
    db: Session = Depends(get_db),
    user: User = Depends(check_company_access)
):
    """Obtiene una compañía por ID. Requiere estar vinculado o ser Global Admin."""
    return get_company_or_404(db, company_id)


@router.patch("/companies/{company_id}", response_model=CompanyInDB, tags=["Companies"])
def update_company(
    company_id: UUID,
    company_in: CompanyUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_global_admin)
):
    """Actualiza una compañía existente. Requiere Global Admin."""
    company = get_company_or_404(db, company_id)

    update_data = drop_null_fields(company_in.model_dump(exclude_unset=True), "name", "slug", "has_branches")

    if 'slug' in update_data and update_data['slug'] != company.slug:
        if db.query(Company).filter(Company.slug == update_data['slug']).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Slug ya existe.")
    if 'name' in update_data and update_data['name'] != company.name:
        if db.query(Company).filter(Company.name == update_data['name']).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ya existe una compañía con este nombre.")

    for key, value in update_data.items():
        setattr(company, key, value)

    db.add(company)
    db.commit()
    db.refresh(company)
    return company


@router.delete("/companies/{company_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Companies"])
def delete_company(
    company_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(get_global_admin)
):
    """
    Elimina una compañía por su ID junto con sus sucursales, artículos,
    grupos, roles propios y vínculos de usuarios. SOLO Global Admin.
    """
    company = get_company_or_404(db, company_id)

    try:
        db.query(User).filter(User.default_company_id == company_id).update(
            {User.default_company_id: None, User.default_branch_id: None}, synchronize_session=False
        )
        db.delete(company)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Error al eliminar la compañía %s", company_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al eliminar la compañía: Verifique las dependencias de la DB. Detalle: {str(e)}"
        )

    logger.info("Compañía eliminada: %s", company_id)
    return

# ***************************************************************
# 2. Endpoints para BRANCH (CRUD)
# ***************************************************************

@router.post("/companies/{company_id}/branches", response_model=BranchInDB, status_code=status.HTTP_201_CREATED, tags=["Branches"])
def create_branch(
    company_id: UUID,
    branch_in: BranchCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Crea una nueva sucursal para una compañía. Si se marca como principal,
    las demás sucursales dejan de serlo; la primera sucursal siempre es principal.
    """
    get_company_or_404(db, company_id)
    check_permission(db, current_user, company_id, "branches", "write")

    data = branch_in.model_dump(mode="json")
    has_branches = db.query(Branch).filter(Branch.company_id == company_id).count() > 0
    if not has_branches:
        data["is_main_branch"] = True

    db_branch = Branch(**data, company_id=company_id)
    db.add(db_branch)
    db.flush()
    if db_branch.is_main_branch:
        branch_service.unset_main_branches(db, company_id, keep_branch_id=db_branch.id)
    db.commit()
    db.refresh(db_branch)
    logger.info("Sucursal creada: %s en la compañía %s", db_branch.name, company_id)
    return db_branch


@router.get("/companies/{company_id}/branches", response_model=List[BranchInDB], tags=["Branches"])
def read_branches(
    company_id: UUID,
    db: Session = Depends(get_db),
    user: User = Depends(check_company_access)
):
    """
    Lista las sucursales de una compañía a las que el usuario tiene acceso.
    Si la compañía no tiene ninguna, se crea la sucursal principal.
    """
    company = get_company_or_404(db, company_id)
    return accessible_branches(db, user, company)


@router.get("/branches/{branch_id}", response_model=BranchInDB, tags=["Branches"])
def read_branch(
    branch_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    branch = get_branch_or_404(db, branch_id)
    if not has_company_access(db, current_user, branch.company_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Acceso denegado a esta compañía.")
    return branch


@router.patch("/branches/{branch_id}", response_model=BranchInDB, tags=["Branches"])
def update_branch(
    branch_id: UUID,
    branch_in: BranchUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Actualiza una sucursal existente (permiso 'write' sobre 'branches')."""
    branch = get_branch_or_404(db, branch_id)
    check_permission(db, current_user, branch.company_id, "branches", "write")

    update_data = drop_null_fields(
        branch_in.model_dump(exclude_unset=True, mode="json"), "name", "status", "is_main_branch"
    )

    if update_data.get("is_main_branch") is False and branch.is_main_branch:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No se puede desmarcar la sucursal principal. Marque otra sucursal como principal en su lugar.",
        )

    for key, value in update_data.items():
        setattr(branch, key, value)

    if update_data.get("is_main_branch"):
        branch_service.unset_main_branches(db, branch.company_id, keep_branch_id=branch.id)

    db.add(branch)
    db.commit()
    db.refresh(branch)
    return branch


@router.delete("/companies/{company_id}/branches/{branch_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Branches"])
def delete_branch(
    company_id: UUID,
    branch_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Elimina una sucursal. Se bloquea mientras tenga artículos asociados
    (hay que transferirlos o eliminarlos primero).
    """
    branch = db.query(Branch).filter(
        Branch.id == branch_id,
        Branch.company_id == company_id
    ).first()

    if not branch:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sucursal no encontrada o no pertenece a esta compañía")

    check_permission(db, current_user, company_id, "branches", "delete")

    try:
        branch_service.delete_branch(db, branch)
    except ValueError as e:
        logger.warning("Borrado de sucursal bloqueado: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        db.rollback()
        logger.exception("Error al eliminar la sucursal %s", branch_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al eliminar la sucursal: Verifique las dependencias de la DB. Detalle: {str(e)}"
        )

    return
