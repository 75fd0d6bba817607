# retail_api/api/v1/endpoints/roles.py
# type: ignore

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from retail_api.api.v1.endpoints.context import (
    CompanyContext,
    check_permission,
    drop_null_fields,
    raise_http_from,
    require_permission,
)
from retail_api.database import get_db
from retail_api.models.auth import Role, UserBranch, UserCompany
from retail_api.schemas.auth import (
    ModulePermissionsUpdate,
    RoleAssignment,
    RoleAssignmentResult,
    RoleCreate,
    RoleInDB,
    RoleList,
    RoleUpdate,
)
from retail_api.services.permissions import AVAILABLE_MODULES, normalize_permissions, set_module_permissions
from retail_api.services.users import assign_role

logger = logging.getLogger(__name__)

router = APIRouter()

# ***************************************************************
# DEPENDENCIAS
# ***************************************************************

def get_role_and_check_access(role_id: UUID, db: Session, context: CompanyContext) -> Role:
    """Un rol es visible si es global (predeterminado) o de la compañía activa."""
    role = db.query(Role).filter(Role.id == role_id).first()
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rol no encontrado.")
    if role.company_id is not None and role.company_id != context.company.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado. El rol no pertenece a la compañía activa."
        )
    return role


def get_editable_role(role_id: UUID, db: Session, context: CompanyContext) -> Role:
    role = get_role_and_check_access(role_id, db, context)
    if role.is_default:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Los roles predeterminados no se pueden modificar ni eliminar."
        )
    return role


def _name_taken(db: Session, role_name: str, company_id: UUID, exclude_id: UUID = None) -> bool:
    query = db.query(Role).filter(Role.role_name == role_name, Role.company_id == company_id)
    if exclude_id is not None:
        query = query.filter(Role.id != exclude_id)
    return query.first() is not None


def _dump_permissions(permissions) -> dict:
    return normalize_permissions({module: actions.model_dump() for module, actions in permissions.items()})

# ***************************************************************
# 1. Listar Roles y catálogo de módulos
# ***************************************************************

@router.get("/", response_model=RoleList, tags=["Roles"])
def get_all_roles(
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("roles", "read")),
):
    """
    Lista los roles disponibles en la compañía activa: los propios y los
    predeterminados (globales).
    """
    roles = (
        db.query(Role)
        .filter(or_(Role.company_id == context.company.id, Role.company_id.is_(None)))
        .order_by(Role.is_default.desc(), Role.role_name)
        .all()
    )
    return {"roles": [RoleInDB.model_validate(r) for r in roles]}


@router.get("/modules", response_model=List[str], tags=["Roles"])
def get_modules(context: CompanyContext = Depends(require_permission("roles", "read"))):
    """Módulos sobre los que se pueden otorgar permisos."""
    return list(AVAILABLE_MODULES)

# ***************************************************************
# 2. CRUD de Roles
# ***************************************************************

@router.post("/", response_model=RoleInDB, status_code=status.HTTP_201_CREATED, tags=["Roles"])
def create_role(
    role_in: RoleCreate,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("roles", "write")),
):
    """Crea un rol personalizado en la compañía activa."""
    if role_in.company_id is not None and role_in.company_id != context.company.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Solo se pueden crear roles en la compañía activa."
        )
    company_id = context.company.id

    if _name_taken(db, role_in.role_name, company_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ya existe un rol con este nombre en la compañía.")

    try:
        permissions = _dump_permissions(role_in.permissions)
    except ValueError as exc:
        raise_http_from(exc)

    db_role = Role(
        role_name=role_in.role_name,
        role_type=role_in.role_type.value,
        description=role_in.description,
        permissions=permissions,
        is_default=False,
        company_id=company_id,
    )
    db.add(db_role)
    db.commit()
    db.refresh(db_role)
    logger.info("Rol creado: %s (compañía %s)", db_role.role_name, company_id)
    return db_role


@router.get("/{role_id}", response_model=RoleInDB, tags=["Roles"])
def read_role(
    role_id: UUID,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("roles", "read")),
):
    return get_role_and_check_access(role_id, db, context)


@router.patch("/{role_id}", response_model=RoleInDB, tags=["Roles"])
def update_role(
    role_id: UUID,
    role_in: RoleUpdate,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("roles", "write")),
):
    """Actualiza nombre, tipo, descripción o la matriz completa de permisos."""
    db_role = get_editable_role(role_id, db, context)
    update_data = drop_null_fields(role_in.model_dump(exclude_unset=True), "role_name", "role_type", "permissions")

    if "role_name" in update_data and update_data["role_name"] != db_role.role_name:
        if _name_taken(db, update_data["role_name"], db_role.company_id, exclude_id=db_role.id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Ya existe un rol con este nombre en la compañía.")

    if role_in.permissions is not None:
        try:
            update_data["permissions"] = _dump_permissions(role_in.permissions)
        except ValueError as exc:
            raise_http_from(exc)
    if role_in.role_type is not None:
        update_data["role_type"] = role_in.role_type.value

    for key, value in update_data.items():
        setattr(db_role, key, value)

    db.add(db_role)
    db.commit()
    db.refresh(db_role)
    return db_role


@router.patch("/{role_id}/permissions/{module}", response_model=RoleInDB, tags=["Roles"])
def update_module_permissions(
    role_id: UUID,
    module: str,
    payload: ModulePermissionsUpdate,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("roles", "write")),
):
    """
    Actualiza los permisos de un módulo. all=true / all=false marca o
    desmarca read, write, delete y export a la vez.
    """
    db_role = get_editable_role(role_id, db, context)
    try:
        db_role.permissions = set_module_permissions(
            db_role.permissions,
            module,
            all_actions=payload.all,
            read=payload.read,
            write=payload.write,
            delete=payload.delete,
            export=payload.export,
        )
    except ValueError as exc:
        raise_http_from(exc)

    db.add(db_role)
    db.commit()
    db.refresh(db_role)
    return db_role


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Roles"])
def delete_role(
    role_id: UUID,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("roles", "delete")),
):
    """Elimina un rol personalizado; los usuarios que lo tenían quedan sin rol asignado."""
    db_role = get_editable_role(role_id, db, context)

    try:
        db.query(UserCompany).filter(UserCompany.role_id == db_role.id).update(
            {UserCompany.role_id: None}, synchronize_session=False
        )
        db.query(UserBranch).filter(UserBranch.role_id == db_role.id).update(
            {UserBranch.role_id: None}, synchronize_session=False
        )
        db.delete(db_role)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Error al eliminar el rol %s", role_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error al eliminar el rol. Detalle: {str(e)}"
        )

    logger.info("Rol eliminado: %s", role_id)
    return

# ***************************************************************
# 3. Asignación de Roles
# ***************************************************************

@router.post("/{role_id}/assignments", response_model=RoleAssignmentResult, tags=["Roles"])
def create_role_assignment(
    role_id: UUID,
    assignment: RoleAssignment,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("roles", "write")),
):
    """
    Asigna el rol a un usuario en una compañía y en las sucursales indicadas
    (vínculos compañía y sucursal en una sola transacción).
    """
    role = get_role_and_check_access(role_id, db, context)
    if assignment.company_id != context.company.id:
        check_permission(db, context.user, assignment.company_id, "roles", "write")

    try:
        branch_ids = assign_role(
            db,
            role=role,
            user_id=assignment.user_id,
            company_id=assignment.company_id,
            branch_ids=assignment.branch_ids,
        )
    except (LookupError, ValueError) as exc:
        raise_http_from(exc)

    return RoleAssignmentResult(
        user_id=assignment.user_id,
        role_id=role.id,
        company_id=assignment.company_id,
        branch_ids=branch_ids,
    )
