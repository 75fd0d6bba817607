# retail_api/models/platform.py
# type: ignore

from uuid import uuid4

from sqlalchemy import TIMESTAMP, Boolean, Column, Date, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from retail_api.database import Base
from retail_api.models.auth import utcnow


# ***************************************************************
# 1. Company (Plataforma/SaaS Nivel Superior)
# ***************************************************************
class Company(Base):
    """
    Representa una Compañía (tenant) de la plataforma.
    Un usuario Global Admin gestiona esto.
    """
    __tablename__ = "company"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), unique=True, nullable=False)
    slug = Column(String(50), unique=True, nullable=False)  # Identificador URL-friendly

    # Configuración contable
    financial_year_start = Column(Date, nullable=True)
    book_start_date = Column(Date, nullable=True)
    has_branches = Column(Boolean, default=True, nullable=False)
    currency = Column(String(10), nullable=True)

    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    address = Column(String, nullable=True)
    tax_id = Column(String(50), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, nullable=False)

    # Relaciones
    branches = relationship("Branch", back_populates="company", cascade="all, delete-orphan")
    user_links = relationship("UserCompany", back_populates="company", cascade="all, delete-orphan")
    roles = relationship("Role", back_populates="company", cascade="all, delete-orphan")
    items = relationship("Item", back_populates="company", cascade="all, delete-orphan")
    item_groups = relationship("ItemGroup", back_populates="company", cascade="all, delete-orphan")


# ***************************************************************
# 2. Branch (Sucursal o Punto de Venta Físico)
# ***************************************************************
BRANCH_ACTIVE = "active"
BRANCH_INACTIVE = "inactive"
MAIN_BRANCH_NAME = "Main Branch"


class Branch(Base):
    """
    Representa una sucursal física perteneciente a una Compañía.
    Como máximo una sucursal por compañía tiene is_main_branch=True.
    """
    __tablename__ = "branch"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    address = Column(String, nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    is_main_branch = Column(Boolean, default=False, nullable=False)
    status = Column(String(20), default=BRANCH_ACTIVE, nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow, nullable=False)

    # Relaciones
    company = relationship("Company", back_populates="branches")
    user_links = relationship("UserBranch", back_populates="branch", cascade="all, delete-orphan")
    items = relationship("Item", back_populates="branch")
