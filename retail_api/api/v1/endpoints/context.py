# retail_api/api/v1/endpoints/context.py
# type: ignore

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from retail_api.api.v1.endpoints.auth import get_current_user
from retail_api.database import get_db
from retail_api.models.auth import User
from retail_api.models.platform import Branch, Company
from retail_api.schemas.platform import ActiveContext, ContextSelect, SelectionState
from retail_api.services import selection
from retail_api.services.permissions import user_can

router = APIRouter()


@dataclass
class CompanyContext:
    """Contexto activo del request: usuario, compañía y (opcional) sucursal."""
    user: User
    company: Company
    branch: Optional[Branch] = None


def raise_http_from(exc: Exception):
    """Traduce las excepciones de los servicios a HTTPException."""
    if isinstance(exc, selection.ContextRequiredError):
        raise HTTPException(status_code=status.HTTP_428_PRECONDITION_REQUIRED, detail=str(exc)) from exc
    if isinstance(exc, LookupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, PermissionError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc

# ***************************************************************
# Dependencias de contexto y permisos
# ***************************************************************
def get_active_context(
    x_company_id: Optional[UUID] = Header(None),
    x_branch_id: Optional[UUID] = Header(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CompanyContext:
    """
    Resuelve la compañía/sucursal activas desde los headers X-Company-Id /
    X-Branch-Id o, si faltan, desde las predeterminadas del usuario.
    """
    try:
        company, branch = selection.resolve_active_context(db, current_user, x_company_id, x_branch_id)
    except (LookupError, PermissionError) as exc:
        raise_http_from(exc)
    return CompanyContext(user=current_user, company=company, branch=branch)


def check_permission(db: Session, user: User, company_id: UUID, module: str, action: str) -> None:
    if not user_can(db, user, company_id, module, action):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Acceso denegado. Se requiere permiso '{action}' sobre el módulo '{module}'.",
        )


def check_branch_access(db: Session, context: CompanyContext, branch: Branch) -> None:
    """La sucursal debe estar entre las accesibles para el usuario en la compañía activa."""
    allowed_ids = {b.id for b in selection.accessible_branches(db, context.user, context.company)}
    if branch.id not in allowed_ids:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado. No tiene acceso a esta sucursal.",
        )


def drop_null_fields(update_data: dict, *keys: str) -> dict:
    """Quita de un PATCH los `null` explícitos de columnas NOT NULL."""
    for key in keys:
        if key in update_data and update_data[key] is None:
            update_data.pop(key)
    return update_data


def require_permission(module: str, action: str):
    """Fábrica de dependencias: exige `action` sobre `module` en la compañía activa."""
    def dependency(
        context: CompanyContext = Depends(get_active_context),
        db: Session = Depends(get_db),
    ) -> CompanyContext:
        check_permission(db, context.user, context.company.id, module, action)
        return context

    return dependency

# ***************************************************************
# Endpoints del flujo de selección
# ***************************************************************
@router.get("/selection", response_model=SelectionState)
def read_selection(
    company_id: Optional[UUID] = Query(None, description="Compañía elegida (si hay varias)."),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Compañías y sucursales disponibles para el usuario. Si solo hay una
    compañía o una sucursal, se selecciona automáticamente.
    """
    try:
        return selection.resolve_selection(db, current_user, company_id)
    except (LookupError, PermissionError) as exc:
        raise_http_from(exc)


@router.post("/select", response_model=ActiveContext)
def select_context(
    payload: ContextSelect,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Persiste compañía y sucursal como contexto predeterminado del usuario."""
    try:
        return selection.select_context(db, current_user, payload.company_id, payload.branch_id)
    except (LookupError, PermissionError) as exc:
        raise_http_from(exc)


@router.get("", response_model=ActiveContext)
def read_active_context(context: CompanyContext = Depends(get_active_context)):
    """Contexto activo del usuario."""
    return ActiveContext(
        company_id=context.company.id,
        company_name=context.company.name,
        branch_id=context.branch.id if context.branch else None,
        branch_name=context.branch.name if context.branch else None,
    )
