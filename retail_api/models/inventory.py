# retail_api/models/inventory.py
# type: ignore

import uuid

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from retail_api.database import Base
from retail_api.models.auth import utcnow


class ItemGroup(Base):
    """Grupo (categoría) de artículos, anidable mediante parent_id."""
    __tablename__ = "item_groups"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    company_id = Column(UUID(as_uuid=True), ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)
    parent_id = Column(UUID(as_uuid=True), ForeignKey("item_groups.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="item_groups")
    parent = relationship("ItemGroup", remote_side=[id], back_populates="children")
    children = relationship("ItemGroup", back_populates="parent")
    items = relationship("Item", back_populates="item_group")


class Item(Base):
    """Artículo/producto con existencias propias de una sucursal."""
    __tablename__ = "items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    company_id = Column(UUID(as_uuid=True), ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id", ondelete="CASCADE"), nullable=False, index=True)
    item_group_id = Column(UUID(as_uuid=True), ForeignKey("item_groups.id", ondelete="SET NULL"), nullable=True)

    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)

    # NUMERIC(10,2) para precisión financiera
    price = Column(Numeric(10, 2), nullable=False)
    cost_price = Column(Numeric(10, 2), nullable=True)
    tax_rate = Column(Numeric(5, 2), nullable=True)

    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="items")
    branch = relationship("Branch", back_populates="items")
    item_group = relationship("ItemGroup", back_populates="items")

    # El código es único dentro de cada sucursal (la transferencia lo usa como clave)
    __table_args__ = (
        UniqueConstraint("code", "branch_id", name="uq_item_code_branch"),
    )


class StockTransfer(Base):
    """Historial de transferencias de existencias entre sucursales."""
    __tablename__ = "stock_transfers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)
    source_branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id", ondelete="SET NULL"), nullable=True, index=True)
    target_branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id", ondelete="SET NULL"), nullable=True, index=True)
    source_item_id = Column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="SET NULL"), nullable=True)
    target_item_id = Column(UUID(as_uuid=True), ForeignKey("items.id", ondelete="SET NULL"), nullable=True)

    item_code = Column(String(50), nullable=False)
    item_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    created_item = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)

    created_by = Column(UUID(as_uuid=True), ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
