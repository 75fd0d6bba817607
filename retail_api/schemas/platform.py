# retail_api/schemas/platform.py
# type: ignore
from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from retail_api.schemas.auth import InvitationLink

# ***************************************************************
# 1. Schemas para COMPANY
# ***************************************************************
class CompanyBase(BaseModel):
    """Base para la creación y lectura de Compañías."""
    name: str = Field(..., max_length=100)
    slug: str = Field(..., max_length=50, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    financial_year_start: Optional[date] = None
    book_start_date: Optional[date] = None
    has_branches: bool = True
    currency: Optional[str] = Field(None, max_length=10)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    tax_id: Optional[str] = Field(None, max_length=50)


class CompanyAdminUser(BaseModel):
    """Administrador opcional que se invita al crear la compañía."""
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)


class CompanyCreate(CompanyBase):
    """Schema de entrada para crear una Compañía."""
    admin_user: Optional[CompanyAdminUser] = None


class CompanyUpdate(BaseModel):
    """Schema de entrada para actualizar una Compañía (todos opcionales)."""
    name: Optional[str] = Field(None, max_length=100)
    slug: Optional[str] = Field(None, max_length=50, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    financial_year_start: Optional[date] = None
    book_start_date: Optional[date] = None
    has_branches: Optional[bool] = None
    currency: Optional[str] = Field(None, max_length=10)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = None
    tax_id: Optional[str] = Field(None, max_length=50)


class CompanyInDB(CompanyBase):
    """Schema de salida para una Compañía (incluye ID y metadata de la DB)."""
    id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CompanyCreated(CompanyInDB):
    """Compañía creada, con el enlace de invitación del administrador (si se pidió)."""
    admin_invitation: Optional[InvitationLink] = None


class UserCompanyInDB(CompanyInDB):
    """Compañía vista desde un usuario: incluye su marca de defecto y su rol."""
    is_default: bool = False
    role: Optional[str] = None

# ***************************************************************
# 2. Schemas para BRANCH (Sucursal)
# ***************************************************************
class BranchStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class BranchBase(BaseModel):
    """Base para la creación y lectura de Sucursales."""
    name: str = Field(..., min_length=1, max_length=100)
    address: Optional[str] = Field(None)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    is_main_branch: bool = False
    status: BranchStatus = BranchStatus.ACTIVE


class BranchCreate(BranchBase):
    """Schema de entrada para crear una Sucursal."""
    # company_id no se pide en el request, se toma del path
    pass


class BranchUpdate(BaseModel):
    """Schema de entrada para actualizar una Sucursal (todos opcionales)."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    address: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[EmailStr] = None
    is_main_branch: Optional[bool] = None
    status: Optional[BranchStatus] = None


class BranchInDB(BranchBase):
    """Schema de salida para una Sucursal."""
    id: UUID
    company_id: UUID

    model_config = ConfigDict(from_attributes=True)

# ***************************************************************
# 3. Schemas del flujo de selección (contexto activo)
# ***************************************************************
class ContextSelect(BaseModel):
    company_id: UUID
    branch_id: UUID


class ActiveContext(BaseModel):
    """Compañía/sucursal activas del usuario."""
    company_id: UUID
    company_name: str
    branch_id: Optional[UUID] = None
    branch_name: Optional[str] = None


class SelectionState(BaseModel):
    """
    Estado del flujo de selección. Con una sola compañía (o sucursal)
    disponible, se selecciona automáticamente; complete=True indica que
    el contexto quedó persistido como predeterminado del usuario.
    """
    companies: List[UserCompanyInDB]
    selected_company: Optional[UserCompanyInDB] = None
    branches: List[BranchInDB] = []
    selected_branch: Optional[BranchInDB] = None
    complete: bool = False
