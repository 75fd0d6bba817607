# retail_api/models/auth.py
# type: ignore

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, TIMESTAMP, Boolean, Column, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from retail_api.database import Base


def utcnow():
    return datetime.now(timezone.utc)


# Roles de sistema (nivel plataforma, independientes de los roles de permisos)
GLOBAL_ADMIN = "global_admin"
COMPANY_ADMIN = "company_admin"
STANDARD_USER = "user"
SYSTEM_ROLES = (GLOBAL_ADMIN, COMPANY_ADMIN, STANDARD_USER)
ADMIN_ROLES = (GLOBAL_ADMIN, COMPANY_ADMIN)


class Role(Base):
    """
    Rol con matriz de permisos por módulo ({modulo: {read, write, delete, export}}).
    company_id NULL = rol disponible para todas las compañías.
    """
    __tablename__ = "roles"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_id = Column(UUID(as_uuid=True), ForeignKey("company.id", ondelete="CASCADE"), nullable=True, index=True)

    role_name = Column(String(100), nullable=False)
    role_type = Column(String(30), nullable=False, default="custom")
    description = Column(Text, nullable=True)
    permissions = Column(JSON, nullable=False, default=dict)
    is_default = Column(Boolean, default=False, nullable=False)

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="roles")

    __table_args__ = (
        UniqueConstraint("role_name", "company_id", name="uq_role_name_company"),
    )


class User(Base):
    __tablename__ = "user"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    password_hash = Column(String(255), nullable=False)

    system_role = Column(String(30), nullable=False, default=STANDARD_USER)
    is_active = Column(Boolean, default=True)

    # Contexto por defecto (flujo de selección compañía/sucursal)
    default_company_id = Column(UUID(as_uuid=True), ForeignKey("company.id", ondelete="SET NULL"), nullable=True)
    default_branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id", ondelete="SET NULL"), nullable=True)

    # jti del último enlace de acceso emitido (None = sin enlace pendiente)
    login_link_jti = Column(String(64), nullable=True)

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    company_links = relationship("UserCompany", back_populates="user", cascade="all, delete-orphan")
    branch_links = relationship("UserBranch", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_global_admin(self) -> bool:
        return self.system_role == GLOBAL_ADMIN

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class UserCompany(Base):
    """Vínculo usuario ↔ compañía, con el rol asignado dentro de la compañía."""
    __tablename__ = "user_companies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(UUID(as_uuid=True), ForeignKey("company.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(UUID(as_uuid=True), ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    role = Column(String(100), nullable=False, default=STANDARD_USER)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    user = relationship("User", back_populates="company_links")
    company = relationship("Company", back_populates="user_links")
    assigned_role = relationship("Role")

    __table_args__ = (
        UniqueConstraint("user_id", "company_id", name="uq_user_company"),
    )


class UserBranch(Base):
    """Vínculo usuario ↔ sucursal (acceso restringido a sucursales concretas)."""
    __tablename__ = "user_branches"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    branch_id = Column(UUID(as_uuid=True), ForeignKey("branch.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = Column(UUID(as_uuid=True), ForeignKey("roles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    user = relationship("User", back_populates="branch_links")
    branch = relationship("Branch", back_populates="user_links")

    __table_args__ = (
        UniqueConstraint("user_id", "branch_id", name="uq_user_branch"),
    )
