"""Transferencia de existencias de un artículo entre dos sucursales de una compañía."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from retail_api.models.auth import User
from retail_api.models.inventory import Item, StockTransfer
from retail_api.models.platform import BRANCH_INACTIVE, Branch

logger = logging.getLogger(__name__)

# Columnas que no se copian al clonar un artículo en la sucursal destino
_CLONE_EXCLUDED_COLUMNS = {"id", "branch_id", "stock_quantity", "created_at", "updated_at"}


class StockTransferError(ValueError):
    """Transferencia rechazada por una regla de negocio."""


class InsufficientStockError(StockTransferError):
    def __init__(self, available: int, requested: int):
        self.available = available
        self.requested = requested
        super().__init__(f"Solo hay {available} unidades disponibles para transferir (solicitadas: {requested}).")


@dataclass
class TransferOutcome:
    transfer: StockTransfer
    source_item: Item
    target_item: Item
    created_item: bool


def list_transfer_candidates(db: Session, source_branch_id: UUID) -> List[Item]:
    """Artículos de la sucursal origen con existencias (id, nombre, código, existencias), por nombre."""
    return (
        db.query(Item)
        .filter(Item.branch_id == source_branch_id, Item.stock_quantity > 0)
        .order_by(Item.name)
        .all()
    )


def list_transfers(db: Session, branch_id: UUID, limit: int = 100) -> List[StockTransfer]:
    """Historial de transferencias donde la sucursal es origen o destino (más recientes primero)."""
    return (
        db.query(StockTransfer)
        .filter(or_(StockTransfer.source_branch_id == branch_id, StockTransfer.target_branch_id == branch_id))
        .order_by(StockTransfer.created_at.desc())
        .limit(limit)
        .all()
    )


def _clone_item(source: Item, target_branch_id: UUID, quantity: int) -> Item:
    data = {
        column.key: getattr(source, column.key)
        for column in Item.__table__.columns
        if column.key not in _CLONE_EXCLUDED_COLUMNS
    }
    return Item(**data, branch_id=target_branch_id, stock_quantity=quantity)


def _validate_request(
    db: Session,
    source_branch: Branch,
    product_id: Optional[UUID],
    target_branch_id: Optional[UUID],
    quantity: int,
) -> Branch:
    if not target_branch_id or not product_id or quantity is None or quantity <= 0:
        raise StockTransferError("Seleccione un producto, una sucursal destino e ingrese una cantidad válida.")

    if target_branch_id == source_branch.id:
        raise StockTransferError("La sucursal destino debe ser distinta de la sucursal origen.")

    target_branch = db.query(Branch).filter(Branch.id == target_branch_id).first()
    if target_branch is None:
        raise LookupError("Sucursal destino no encontrada.")
    if target_branch.company_id != source_branch.company_id:
        raise StockTransferError("La sucursal destino no pertenece a la misma compañía.")
    if target_branch.status == BRANCH_INACTIVE:
        raise StockTransferError(f"La sucursal destino '{target_branch.name}' está inactiva.")
    return target_branch


def transfer_stock(
    db: Session,
    *,
    source_branch: Branch,
    product_id: Optional[UUID],
    target_branch_id: Optional[UUID],
    quantity: int,
    user: Optional[User] = None,
    notes: Optional[str] = None,
) -> TransferOutcome:
    """
    Mueve `quantity` unidades de un artículo de `source_branch` a la sucursal destino.

    Si la sucursal destino ya tiene un artículo con el mismo código, se suma a sus
    existencias; si no, se clona el artículo origen con la cantidad transferida y un
    nuevo id. Descuento, abono e historial se confirman en una única transacción:
    ante cualquier fallo se revierte todo.
    """
    target_branch = _validate_request(db, source_branch, product_id, target_branch_id, quantity)

    # Relectura de existencias con bloqueo de fila (no-op en SQLite)
    product = (
        db.query(Item)
        .filter(Item.id == product_id, Item.branch_id == source_branch.id)
        .with_for_update()
        .first()
    )
    if product is None:
        raise LookupError("Producto no encontrado en la sucursal origen.")

    available = product.stock_quantity or 0
    if available < quantity:
        logger.warning(
            "Transferencia rechazada por existencias insuficientes: item=%s disponible=%s solicitado=%s",
            product.id, available, quantity,
        )
        raise InsufficientStockError(available, quantity)

    target_item = (
        db.query(Item)
        .filter(Item.code == product.code, Item.branch_id == target_branch.id)
        .with_for_update()
        .first()
    )

    try:
        product.stock_quantity = available - quantity

        created_item = target_item is None
        if created_item:
            target_item = _clone_item(product, target_branch.id, quantity)
            db.add(target_item)
        else:
            target_item.stock_quantity = (target_item.stock_quantity or 0) + quantity
        db.flush()

        record = StockTransfer(
            company_id=source_branch.company_id,
            source_branch_id=source_branch.id,
            target_branch_id=target_branch.id,
            source_item_id=product.id,
            target_item_id=target_item.id,
            item_code=product.code,
            item_name=product.name,
            quantity=quantity,
            created_item=created_item,
            notes=notes or f"Transferencia de {quantity} unidades de {product.name}",
            created_by=user.id if user is not None else None,
        )
        db.add(record)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "Transferencia revertida: item=%s origen=%s destino=%s cantidad=%s",
            product_id, source_branch.id, target_branch_id, quantity,
        )
        raise

    db.refresh(product)
    db.refresh(target_item)
    db.refresh(record)
    logger.info(
        "Transferidas %s unidades de %s (%s) de %s a %s",
        quantity, product.name, product.code, source_branch.id, target_branch.id,
    )
    return TransferOutcome(transfer=record, source_item=product, target_item=target_item, created_item=created_item)
