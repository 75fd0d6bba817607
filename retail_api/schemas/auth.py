# retail_api/schemas/auth.py
#type: ignore

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_serializer

# ***************************************************************
# 1. Schemas de Autenticación (JWT)
# ***************************************************************
class Token(BaseModel):
    """Modelo para la respuesta de un token de acceso."""
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    system_role: str

class TokenPayload(BaseModel):
    """Modelo para la carga útil (payload) del JWT."""
    sub: Optional[str] = None
    exp: Optional[int] = None
    type: Optional[str] = None
    jti: Optional[str] = None

class UserLogin(BaseModel):
    """Schema para la solicitud de login."""
    email: EmailStr
    password: str

class MagicLinkLogin(BaseModel):
    """Canje de un enlace de acceso de un solo uso."""
    token: str

# ***************************************************************
# 2. Schemas de Usuario (Request/Response)
# ***************************************************************
class SystemRole(str, Enum):
    GLOBAL_ADMIN = "global_admin"
    COMPANY_ADMIN = "company_admin"
    USER = "user"


class UserBase(BaseModel):
    """Base para la creación y lectura de usuarios."""
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    is_active: bool = True

    model_config = {
        "from_attributes": True,
    }


class UserUpdate(BaseModel):
    """Schema para la actualización de un usuario (campos opcionales)."""
    email: Optional[EmailStr] = None
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None
    system_role: Optional[SystemRole] = None
    password: Optional[str] = Field(None, min_length=6)


class UserCompanyLink(BaseModel):
    """Compañía asociada a un usuario (con su rol dentro de ella)."""
    company_id: UUID
    company_name: Optional[str] = None
    role: str
    role_id: Optional[UUID] = None


class UserInDB(UserBase):
    """Schema para la representación del usuario desde la DB (sin hash)."""
    id: UUID
    system_role: str
    default_company_id: Optional[UUID] = None
    default_branch_id: Optional[UUID] = None
    companies: List[UserCompanyLink] = []
    branch_ids: List[UUID] = []
    created_at: datetime

    @field_serializer('created_at', when_used='always')
    def serialize_datetime(self, value: datetime) -> str:
        """Convierte datetime de la base de datos a string ISO 8601 para la respuesta."""
        return value.isoformat()


class UserInvite(BaseModel):
    """Invitación de un usuario a una compañía (y opcionalmente a sucursales)."""
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    company_id: UUID
    role: str = Field("user", max_length=100, description="Etiqueta del rol dentro de la compañía")
    role_id: Optional[UUID] = None
    branch_ids: List[UUID] = []


class ResendInvite(BaseModel):
    email: EmailStr


class InvitationLink(BaseModel):
    """Respuesta de invitación: el enlace de acceso de un solo uso."""
    email: EmailStr
    action_link: str


class UserInvitation(BaseModel):
    user: UserInDB
    invitation: InvitationLink

# ***************************************************************
# 3. Schemas de Roles y Permisos
# ***************************************************************
class RoleType(str, Enum):
    MANAGER = "manager"
    INVENTORY_MANAGER = "inventory_manager"
    SALES_MANAGER = "sales_manager"
    CUSTOM = "custom"


class ModulePermissions(BaseModel):
    """Acciones permitidas sobre un módulo."""
    read: bool = False
    write: bool = False
    delete: bool = False
    export: bool = False


class ModulePermissionsUpdate(BaseModel):
    """
    Actualización de permisos de un módulo.
    all=True/False marca o desmarca las cuatro acciones a la vez
    ("seleccionar todo" / "limpiar todo"); tiene prioridad sobre los flags individuales.
    """
    all: Optional[bool] = None
    read: Optional[bool] = None
    write: Optional[bool] = None
    delete: Optional[bool] = None
    export: Optional[bool] = None


class RoleBase(BaseModel):
    """Esquema base para representar un Rol."""
    role_name: str = Field(..., min_length=1, max_length=100)
    role_type: RoleType = RoleType.CUSTOM
    description: Optional[str] = None


class RoleCreate(RoleBase):
    permissions: Dict[str, ModulePermissions] = {}
    company_id: Optional[UUID] = None


class RoleUpdate(BaseModel):
    role_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role_type: Optional[RoleType] = None
    description: Optional[str] = None
    permissions: Optional[Dict[str, ModulePermissions]] = None


class RoleInDB(RoleBase):
    """Esquema extendido para devolver el Rol con su ID."""
    id: UUID
    permissions: Dict[str, ModulePermissions]
    is_default: bool
    company_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleList(BaseModel):
    """Esquema para la respuesta del endpoint que lista roles."""
    roles: list[RoleInDB]


class RoleAssignment(BaseModel):
    """Asignación de un rol a un usuario para una compañía y un conjunto de sucursales."""
    user_id: UUID
    company_id: UUID
    branch_ids: List[UUID] = []


class RoleAssignmentResult(BaseModel):
    user_id: UUID
    role_id: UUID
    company_id: UUID
    branch_ids: List[UUID]
