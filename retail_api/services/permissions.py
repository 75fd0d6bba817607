"""Matriz de permisos por módulo y roles predeterminados."""
from __future__ import annotations

import logging
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from retail_api.models.auth import COMPANY_ADMIN, GLOBAL_ADMIN, Role, User, UserCompany

logger = logging.getLogger(__name__)

PERMISSION_ACTIONS = ("read", "write", "delete", "export")

AVAILABLE_MODULES = (
    "dashboard",
    "users",
    "roles",
    "companies",
    "branches",
    "inventory",
    "sales",
    "purchases",
    "accounting",
    "reports",
    "settings",
)


def empty_module_permissions() -> Dict[str, bool]:
    return {action: False for action in PERMISSION_ACTIONS}


def full_module_permissions() -> Dict[str, bool]:
    return {action: True for action in PERMISSION_ACTIONS}


def create_empty_permissions(modules=AVAILABLE_MODULES) -> Dict[str, Dict[str, bool]]:
    return {module: empty_module_permissions() for module in modules}


def normalize_permissions(permissions: Optional[dict]) -> Dict[str, Dict[str, bool]]:
    """Completa la matriz con todos los módulos y acciones (faltantes = False)."""
    normalized = create_empty_permissions()
    for module, actions in (permissions or {}).items():
        if module not in normalized:
            raise ValueError(f"Módulo de permisos desconocido: '{module}'.")
        for action in PERMISSION_ACTIONS:
            normalized[module][action] = bool((actions or {}).get(action, False))
    return normalized


def set_module_permissions(
    permissions: Optional[dict],
    module: str,
    *,
    all_actions: Optional[bool] = None,
    **actions: Optional[bool],
) -> Dict[str, Dict[str, bool]]:
    """
    Devuelve una copia de la matriz con los permisos de `module` actualizados.

    all_actions=True/False marca o desmarca read/write/delete/export a la vez
    ("seleccionar todo" / "limpiar todo"). Si no se indica, se aplican solo las
    acciones explícitas (las que no son None).
    """
    updated = normalize_permissions(permissions)
    if module not in updated:
        raise ValueError(f"Módulo de permisos desconocido: '{module}'.")

    if all_actions is not None:
        updated[module] = {action: all_actions for action in PERMISSION_ACTIONS}
        return updated

    for action, value in actions.items():
        if action not in PERMISSION_ACTIONS:
            raise ValueError(f"Acción de permiso desconocida: '{action}'.")
        if value is not None:
            updated[module][action] = bool(value)
    return updated


def has_permission(permissions: Optional[dict], module: str, action: str) -> bool:
    if not permissions or module not in permissions:
        return False
    return bool(permissions[module].get(action, False))


# ***************************************************************
# Roles predeterminados (se siembran al iniciar la app)
# ***************************************************************

def _template(read=(), write=(), delete=(), export=()) -> Dict[str, Dict[str, bool]]:
    permissions = create_empty_permissions()
    for action, modules in (("read", read), ("write", write), ("delete", delete), ("export", export)):
        for module in modules:
            permissions[module][action] = True
    return permissions


DEFAULT_ROLE_TEMPLATES = {
    "manager": (
        "Manager",
        "Acceso completo a la operación de la compañía.",
        {module: full_module_permissions() for module in AVAILABLE_MODULES},
    ),
    "inventory_manager": (
        "Inventory Manager",
        "Gestión de inventario, sucursales y compras.",
        _template(
            read=("dashboard", "branches", "inventory", "purchases", "reports"),
            write=("inventory", "purchases"),
            delete=("inventory",),
            export=("inventory", "reports"),
        ),
    ),
    "sales_manager": (
        "Sales Manager",
        "Gestión de ventas e informes.",
        _template(
            read=("dashboard", "inventory", "sales", "reports"),
            write=("sales",),
            delete=("sales",),
            export=("sales", "reports"),
        ),
    ),
}


def seed_default_roles(db: Session) -> int:
    """Crea los roles predeterminados que falten. Devuelve cuántos se crearon."""
    created = 0
    for role_type, (role_name, description, permissions) in DEFAULT_ROLE_TEMPLATES.items():
        exists = (
            db.query(Role)
            .filter(Role.role_type == role_type, Role.is_default.is_(True), Role.company_id.is_(None))
            .first()
        )
        if exists:
            continue
        db.add(
            Role(
                role_name=role_name,
                role_type=role_type,
                description=description,
                permissions=permissions,
                is_default=True,
                company_id=None,
            )
        )
        created += 1
    if created:
        db.commit()
        logger.info("Roles predeterminados creados: %s", created)
    return created


# ***************************************************************
# Chequeo de permisos de un usuario dentro de una compañía
# ***************************************************************

def get_membership(db: Session, user: User, company_id: UUID) -> Optional[UserCompany]:
    return (
        db.query(UserCompany)
        .filter(UserCompany.user_id == user.id, UserCompany.company_id == company_id)
        .first()
    )


def user_can(db: Session, user: User, company_id: UUID, module: str, action: str) -> bool:
    """
    global_admin puede todo; company_admin puede todo en sus compañías;
    el resto depende del rol asignado en la compañía.
    """
    if user.system_role == GLOBAL_ADMIN:
        return True
    membership = get_membership(db, user, company_id)
    if membership is None:
        return False
    if user.system_role == COMPANY_ADMIN:
        return True
    if membership.assigned_role is None:
        return False
    return has_permission(membership.assigned_role.permissions, module, action)
