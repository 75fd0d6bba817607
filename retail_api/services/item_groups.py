"""Jerarquía de grupos de artículos."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from retail_api.models.inventory import ItemGroup

logger = logging.getLogger(__name__)


def validate_parent(db: Session, company_id: UUID, parent_id: Optional[UUID], group_id: Optional[UUID] = None) -> None:
    """
    El padre debe existir en la misma compañía y no puede ser el propio
    grupo ni uno de sus descendientes.
    """
    if parent_id is None:
        return

    parent = db.query(ItemGroup).filter(ItemGroup.id == parent_id, ItemGroup.company_id == company_id).first()
    if parent is None:
        raise LookupError("El grupo padre no existe en esta compañía.")
    if group_id is None:
        return

    seen = set()
    current = parent
    while current is not None and current.id not in seen:
        if current.id == group_id:
            raise ValueError("Un grupo no puede ser su propio ancestro.")
        seen.add(current.id)
        current = current.parent


def delete_item_group(db: Session, group: ItemGroup) -> None:
    """
    Elimina el grupo. Los subgrupos pasan al padre del grupo eliminado y los
    artículos quedan sin grupo.
    """
    try:
        for child in list(group.children):
            child.parent = group.parent
        for item in list(group.items):
            item.item_group = None
        db.delete(group)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Error eliminando el grupo de artículos %s", group.id)
        raise
    logger.info("Grupo de artículos eliminado: %s", group.id)
