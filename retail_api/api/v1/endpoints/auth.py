# retail_api/api/v1/endpoints/auth.py
# type: ignore

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from retail_api.core.security import (
    ACCESS_TOKEN_TYPE,
    MAGIC_LINK_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    reusable_oauth2,
    verify_password,
)
from retail_api.database import get_db
from retail_api.models.auth import GLOBAL_ADMIN, User
from retail_api.schemas.auth import MagicLinkLogin, Token, UserInDB, UserLogin
from retail_api.services.users import user_to_schema

logger = logging.getLogger(__name__)

router = APIRouter()

# ***************************************************************
# Dependencias para obtener el usuario autenticado
# ***************************************************************
def _get_user_from_token(db: Session, token: str, token_type: str) -> User:
    token_data = decode_token(token, expected_type=token_type)
    if token_data.sub is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token no contiene ID de usuario.")
    try:
        user_id = uuid.UUID(token_data.sub)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token con ID de usuario inválido.",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user = db.query(User).filter(User.id == user_id).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuario no encontrado o inactivo.")
    return user


def get_current_user(
    db: Session = Depends(get_db), token: str = Depends(reusable_oauth2)
) -> User:
    """Decodifica el ACCESS TOKEN, obtiene el ID del usuario y lo busca en la DB."""
    return _get_user_from_token(db, token, ACCESS_TOKEN_TYPE)


def get_global_admin(current_user: User = Depends(get_current_user)):
    """Verifica si el usuario actual tiene el rol de global_admin."""
    if current_user.system_role != GLOBAL_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado. Se requiere rol 'global_admin'."
        )
    return current_user


def _issue_tokens(user: User) -> dict:
    """Par access/refresh (rotación de refresh token en cada emisión)."""
    return {
        "access_token": create_access_token(subject=str(user.id)),
        "refresh_token": create_refresh_token(subject=str(user.id)),
        "token_type": "bearer",
        "system_role": user.system_role,
    }

# ***************************************************************
# 1. Login
# ***************************************************************
@router.post("/login", response_model=Token)
def login_for_access_token(user_in: UserLogin, db: Session = Depends(get_db)):
    """Autentica un usuario y devuelve un token JWT y un Refresh Token."""
    user = db.query(User).filter(User.email == user_in.email.lower()).first()

    if not user or not verify_password(user_in.password, user.password_hash):
        logger.warning("Login fallido para %s", user_in.email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Correo o contraseña incorrectos.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="La cuenta de usuario está inactiva.",
        )

    return _issue_tokens(user)

# ***************************************************************
# 2. Refresh (Token Rotation)
# ***************************************************************
@router.post("/refresh", response_model=Token)
def refresh_access_token(
    # Se espera el refresh_token en el header 'Authorization: Bearer <token>'
    refresh_token: str = Depends(reusable_oauth2),
    db: Session = Depends(get_db)
):
    """
    Refresca el token de acceso JWT usando un Refresh Token.
    Devuelve un nuevo access_token y un nuevo refresh_token.
    """
    current_user = _get_user_from_token(db, refresh_token, REFRESH_TOKEN_TYPE)
    return _issue_tokens(current_user)

# ***************************************************************
# 3. Enlace de acceso de un solo uso (invitaciones)
# ***************************************************************
@router.post("/magic-link", response_model=Token)
def login_with_magic_link(payload: MagicLinkLogin, db: Session = Depends(get_db)):
    """Canjea el token de un enlace de invitación por un par de tokens (un solo uso)."""
    token_data = decode_token(payload.token, expected_type=MAGIC_LINK_TOKEN_TYPE)
    user = _get_user_from_token(db, payload.token, MAGIC_LINK_TOKEN_TYPE)

    if not token_data.jti or token_data.jti != user.login_link_jti:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="El enlace de acceso ya fue utilizado o fue reemplazado por uno nuevo.",
        )

    user.login_link_jti = None
    db.add(user)
    db.commit()
    logger.info("Acceso por enlace de invitación: %s", user.email)
    return _issue_tokens(user)

# ***************************************************************
# 4. Usuario autenticado
# ***************************************************************
@router.get("/me", response_model=UserInDB)
def read_users_me(current_user: User = Depends(get_current_user)):
    """Obtiene la información del usuario autenticado."""
    return user_to_schema(current_user)
