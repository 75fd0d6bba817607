# retail_api/api/v1/endpoints/users.py
# type: ignore

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from retail_api.api.v1.endpoints.auth import get_current_user
from retail_api.api.v1.endpoints.context import drop_null_fields, raise_http_from
from retail_api.core.security import get_password_hash
from retail_api.database import get_db
from retail_api.models.auth import ADMIN_ROLES, COMPANY_ADMIN, GLOBAL_ADMIN, User, UserCompany
from retail_api.schemas.auth import InvitationLink, ResendInvite, UserInDB, UserInvitation, UserInvite, UserUpdate
from retail_api.services.users import invite_user, resend_invitation, user_to_schema

logger = logging.getLogger(__name__)

router = APIRouter()

# ***************************************************************
# DEPENDENCIAS DE PERMISOS Y ACCESO
# ***************************************************************

def get_admin_user(current_user: User = Depends(get_current_user)):
    """Requiere que el usuario sea global_admin o company_admin."""
    if current_user.system_role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado. Se requiere rol 'admin' (Global o Company)."
        )
    return current_user


def _company_ids(db: Session, user: User) -> set:
    return {
        company_id
        for (company_id,) in db.query(UserCompany.company_id).filter(UserCompany.user_id == user.id).all()
    }


def get_user_and_check_access(
    user_id: UUID,
    db: Session,
    current_user: User,
    is_update_or_delete: bool = False
) -> User:
    """
    Busca un usuario por ID y verifica que el usuario actual tenga permiso para acceder a él.
    """
    user = db.query(User).filter(User.id == user_id).first()

    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Usuario no encontrado.")

    # Auto-acceso (lectura/modificación)
    if user.id == current_user.id:
        return user

    if current_user.system_role not in ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado. No tienes permisos para acceder a otros usuarios."
        )

    if current_user.system_role == COMPANY_ADMIN:
        # Solo usuarios que compartan al menos una compañía
        if not _company_ids(db, user) & _company_ids(db, current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Acceso denegado. El usuario no pertenece a tus compañías."
            )

        if is_update_or_delete and user.system_role in ADMIN_ROLES:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Acceso denegado. No puedes modificar/eliminar un usuario con rol '{user.system_role}'."
            )

    return user

# ***************************************************************
# 1. Listar Usuarios (GET /api/v1/users/)
# ***************************************************************
@router.get("/", response_model=List[UserInDB], tags=["Users"])
def read_users(
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
    company_id: Optional[UUID] = Query(None, description="Filtrar por ID de compañía"),
):
    """
    Lista usuarios con sus compañías.
    - Global Admin: todos (o los de una compañía).
    - Company Admin: los que comparten alguna de sus compañías.
    """
    query = db.query(User)

    if admin.system_role == COMPANY_ADMIN:
        allowed = _company_ids(db, admin)
        if company_id is not None and company_id not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Acceso denegado. Company Admin solo puede listar usuarios de sus compañías."
            )
        scope = [company_id] if company_id is not None else list(allowed)
        query = query.join(UserCompany, UserCompany.user_id == User.id).filter(UserCompany.company_id.in_(scope))
    elif company_id:
        query = query.join(UserCompany, UserCompany.user_id == User.id).filter(UserCompany.company_id == company_id)

    users = query.distinct().order_by(User.email).all()
    return [user_to_schema(user) for user in users]

# ***************************************************************
# 2. Invitar Usuario (POST /api/v1/users/invite)
# ***************************************************************
@router.post("/invite", response_model=UserInvitation, status_code=status.HTTP_201_CREATED, tags=["Users"])
def invite(
    user_in: UserInvite,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """
    Crea la cuenta (contraseña aleatoria) con sus vínculos de compañía y
    sucursales, y devuelve un enlace de acceso de un solo uso.
    """
    if admin.system_role == COMPANY_ADMIN and user_in.company_id not in _company_ids(db, admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Un Company Admin solo puede invitar usuarios a sus propias compañías."
        )

    if db.query(User).filter(User.email == user_in.email.lower()).first():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"El correo {user_in.email} ya está registrado."
        )

    try:
        user, invitation = invite_user(
            db,
            email=user_in.email,
            first_name=user_in.first_name,
            last_name=user_in.last_name,
            company_id=user_in.company_id,
            role=user_in.role,
            role_id=user_in.role_id,
            branch_ids=user_in.branch_ids,
        )
    except (LookupError, ValueError) as exc:
        raise_http_from(exc)

    return UserInvitation(user=user_to_schema(user), invitation=invitation)


@router.post("/resend-invite", response_model=InvitationLink, tags=["Users"])
def resend_invite(
    payload: ResendInvite,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """Emite un nuevo enlace de acceso; el anterior deja de ser válido."""
    target = db.query(User).filter(User.email == payload.email.lower()).first()
    if target is not None:
        get_user_and_check_access(target.id, db, admin)

    try:
        return resend_invitation(db, payload.email)
    except (LookupError, ValueError) as exc:
        raise_http_from(exc)

# ***************************************************************
# 3. Buscar Usuario por ID (GET /api/v1/users/{user_id})
# ***************************************************************
@router.get("/{user_id}", response_model=UserInDB, tags=["Users"])
def read_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Obtiene la información de un usuario por su ID, respetando el RBAC."""
    db_user = get_user_and_check_access(user_id, db, current_user, is_update_or_delete=False)
    return user_to_schema(db_user)

# ***************************************************************
# 4. Actualizar Usuario (PATCH /api/v1/users/{user_id})
# ***************************************************************
@router.patch("/{user_id}", response_model=UserInDB, tags=["Users"])
def update_user(
    user_id: UUID,
    user_in: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Actualiza campos de un usuario, con restricciones de acceso/rol."""
    db_user = get_user_and_check_access(user_id, db, current_user, is_update_or_delete=True)

    update_data = drop_null_fields(
        user_in.model_dump(exclude_unset=True), "email", "is_active", "password", "system_role"
    )

    if "system_role" in update_data:
        if current_user.system_role != GLOBAL_ADMIN:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Solo un Global Admin puede cambiar el rol de sistema.")
        update_data["system_role"] = user_in.system_role.value

    if "is_active" in update_data and db_user.id == current_user.id and not update_data["is_active"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No puedes desactivar tu propia cuenta.")

    if "password" in update_data:
        update_data["password_hash"] = get_password_hash(update_data.pop("password"))

    if "email" in update_data:
        update_data["email"] = update_data["email"].lower()
        if update_data["email"] != db_user.email:
            if db.query(User).filter(User.email == update_data["email"]).first():
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="El correo ya está registrado.")

    for key, value in update_data.items():
        setattr(db_user, key, value)

    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return user_to_schema(db_user)

# ***************************************************************
# 5. Eliminar Usuario (DELETE /api/v1/users/{user_id})
# ***************************************************************
@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Users"])
def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user)
):
    """Elimina un usuario (y sus vínculos) por ID, respetando el RBAC."""
    db_user = get_user_and_check_access(user_id, db, admin, is_update_or_delete=True)

    if db_user.id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="No puedes eliminar tu propia cuenta de administrador."
        )

    db.delete(db_user)
    db.commit()
    logger.info("Usuario eliminado: %s por %s", user_id, admin.id)
    return
