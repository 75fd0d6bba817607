# retail_api/core/security.py
# type: ignore
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from fastapi import HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

from retail_api.core.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    MAGIC_LINK_BASE_URL,
    MAGIC_LINK_EXPIRE_MINUTES,
    REFRESH_TOKEN_EXPIRE_DAYS,
    SECRET_KEY,
)
from retail_api.schemas.auth import TokenPayload

# ***************************************************************
# 1. Configuración de Seguridad
# ***************************************************************

# Contexto para hashing de contraseñas
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Tipos de token (claim "type")
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
MAGIC_LINK_TOKEN_TYPE = "magic_link"

# Esquema de autenticación para FastAPI (para endpoints protegidos)
reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl="/api/v1/auth/login"
)

# ***************************************************************
# 2. Funciones de Hashing de Contraseñas
# ***************************************************************

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica si una contraseña en texto plano coincide con el hash."""
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Genera el hash de una contraseña en texto plano."""
    return pwd_context.hash(password)

def generate_random_password() -> str:
    """Contraseña aleatoria para cuentas creadas por invitación."""
    return secrets.token_urlsafe(12)

# ***************************************************************
# 3. Funciones de Creación y Verificación de JWT
# ***************************************************************

def _create_token(
    subject: Union[str, Any], token_type: str, expires_delta: timedelta, jti: Optional[str] = None
) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode = {"exp": expire, "sub": str(subject), "type": token_type}
    if jti is not None:
        to_encode["jti"] = jti
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def create_access_token(subject: Union[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Crea un nuevo token de acceso JWT."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    return _create_token(subject, ACCESS_TOKEN_TYPE, expires_delta)

def create_refresh_token(subject: Union[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Crea un nuevo token de refresco JWT."""
    if expires_delta is None:
        expires_delta = timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS)
    return _create_token(subject, REFRESH_TOKEN_TYPE, expires_delta)

def create_magic_link_token(
    subject: Union[str, Any], jti: str, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Crea el token de un enlace de acceso de un solo uso (invitaciones).
    El jti se guarda en el usuario y se invalida al canjearlo.
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=MAGIC_LINK_EXPIRE_MINUTES)
    return _create_token(subject, MAGIC_LINK_TOKEN_TYPE, expires_delta, jti=jti)

def generate_token_id() -> str:
    return secrets.token_hex(16)

def build_magic_link(token: str) -> str:
    """Arma la URL que el frontend usa para canjear el token."""
    return f"{MAGIC_LINK_BASE_URL}?token={token}"


def decode_token(token: str, expected_type: Optional[str] = None) -> TokenPayload:
    """
    Decodifica y valida un token JWT. Lanza HTTPException 401 si falla
    o si el tipo de token no es el esperado.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        token_data = TokenPayload(**payload)
    except (JWTError, ValidationError, TypeError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Credenciales inválidas o token expirado.",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    if expected_type is not None and token_data.type != expected_type:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Tipo de token inválido para esta operación.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return token_data
