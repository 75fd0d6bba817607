# retail_api/schemas/inventory.py
# type: ignore

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer

# -------------------------------------------------------------------
# Item Groups
# -------------------------------------------------------------------

class ItemGroupBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[UUID] = None

    model_config = {
        "from_attributes": True,
    }


class ItemGroupCreate(ItemGroupBase):
    pass


class ItemGroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[UUID] = None


class ItemGroupInDB(ItemGroupBase):
    id: UUID
    company_id: UUID
    created_at: datetime
    updated_at: datetime

# -------------------------------------------------------------------
# Items (Productos)
# -------------------------------------------------------------------

class ItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=50, description="Código/SKU (único por sucursal)")
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0, decimal_places=2, description="Precio de venta")
    cost_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)
    stock_quantity: int = Field(0, ge=0)
    item_group_id: Optional[UUID] = None
    is_active: bool = True

    model_config = {
        "from_attributes": True,
    }

    # Decimal -> float para la salida JSON
    @field_serializer('price', 'cost_price', 'tax_rate')
    def serialize_decimal(self, value: Optional[Decimal]) -> Optional[float]:
        return float(value) if value is not None else None


class ItemCreate(ItemBase):
    branch_id: UUID = Field(..., description="Sucursal dueña de las existencias.")


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    cost_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)
    stock_quantity: Optional[int] = Field(None, ge=0)
    item_group_id: Optional[UUID] = None
    is_active: Optional[bool] = None


class ItemInDB(ItemBase):
    id: UUID
    company_id: UUID
    branch_id: UUID
    created_at: datetime
    updated_at: datetime

    @field_serializer('created_at', 'updated_at')
    def serialize_datetime(self, value: datetime) -> str:
        return value.isoformat()

# -------------------------------------------------------------------
# Transferencias entre sucursales
# -------------------------------------------------------------------

class TransferCandidate(BaseModel):
    """Artículo de la sucursal origen disponible para transferir."""
    id: UUID
    name: str
    code: str
    stock_quantity: int

    model_config = {
        "from_attributes": True,
    }


class StockTransferCreate(BaseModel):
    # Opcionales a propósito: la validación de selección devuelve un mensaje propio
    product_id: Optional[UUID] = None
    target_branch_id: Optional[UUID] = None
    quantity: int = 1
    notes: Optional[str] = None


class StockTransferResult(BaseModel):
    transfer_id: UUID
    source_item_id: UUID
    target_item_id: UUID
    quantity: int
    source_remaining: int
    target_quantity: int
    created_item: bool
    message: str


class StockTransferInDB(BaseModel):
    id: UUID
    company_id: UUID
    source_branch_id: Optional[UUID] = None
    target_branch_id: Optional[UUID] = None
    source_item_id: Optional[UUID] = None
    target_item_id: Optional[UUID] = None
    item_code: str
    item_name: str
    quantity: int
    created_item: bool
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime

    model_config = {
        "from_attributes": True,
    }


class StockTransferList(BaseModel):
    transfers: List[StockTransferInDB]
