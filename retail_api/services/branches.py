"""Reglas de sucursales: sucursal principal y borrado seguro."""
from __future__ import annotations

import logging
from typing import List
from uuid import UUID

from sqlalchemy.orm import Session

from retail_api.models.auth import User
from retail_api.models.inventory import Item, StockTransfer
from retail_api.models.platform import MAIN_BRANCH_NAME, Branch, Company

logger = logging.getLogger(__name__)


def list_company_branches(db: Session, company: Company) -> List[Branch]:
    """
    Sucursales de la compañía ordenadas por nombre. Si la compañía aún no tiene
    ninguna, se crea la sucursal principal por defecto.
    """
    branches = db.query(Branch).filter(Branch.company_id == company.id).order_by(Branch.name).all()
    if branches:
        return branches

    main_branch = Branch(company_id=company.id, name=MAIN_BRANCH_NAME, is_main_branch=True)
    db.add(main_branch)
    db.commit()
    db.refresh(main_branch)
    logger.info("Sucursal principal creada para la compañía %s", company.id)
    return [main_branch]


def unset_main_branches(db: Session, company_id: UUID, keep_branch_id: UUID = None) -> None:
    """Quita la marca de principal a las demás sucursales (sin commit)."""
    query = db.query(Branch).filter(Branch.company_id == company_id, Branch.is_main_branch.is_(True))
    if keep_branch_id is not None:
        query = query.filter(Branch.id != keep_branch_id)
    for branch in query.all():
        branch.is_main_branch = False


def count_branch_items(db: Session, branch_id: UUID) -> int:
    return db.query(Item).filter(Item.branch_id == branch_id).count()


def delete_branch(db: Session, branch: Branch) -> None:
    """
    Elimina una sucursal. Se bloquea si aún tiene artículos asociados.
    Limpia los contextos por defecto y el historial que apuntan a ella. Si era
    la principal, la primera sucursal restante (por nombre) pasa a serlo.
    """
    item_count = count_branch_items(db, branch.id)
    if item_count > 0:
        raise ValueError(
            f"La sucursal tiene {item_count} artículos asociados. "
            "Transfiera o elimine estos artículos primero."
        )

    db.query(User).filter(User.default_branch_id == branch.id).update(
        {User.default_branch_id: None}, synchronize_session=False
    )
    db.query(StockTransfer).filter(StockTransfer.source_branch_id == branch.id).update(
        {StockTransfer.source_branch_id: None}, synchronize_session=False
    )
    db.query(StockTransfer).filter(StockTransfer.target_branch_id == branch.id).update(
        {StockTransfer.target_branch_id: None}, synchronize_session=False
    )
    successor = None
    if branch.is_main_branch:
        successor = (
            db.query(Branch)
            .filter(Branch.company_id == branch.company_id, Branch.id != branch.id)
            .order_by(Branch.name)
            .first()
        )
        if successor is not None:
            successor.is_main_branch = True
            db.add(successor)

    db.delete(branch)
    db.commit()
    logger.info("Sucursal eliminada: %s", branch.id)
    if successor is not None:
        logger.info("Nueva sucursal principal de la compañía %s: %s", branch.company_id, successor.id)
