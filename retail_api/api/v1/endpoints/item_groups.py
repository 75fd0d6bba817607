# retail_api/api/v1/endpoints/item_groups.py
# type: ignore

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from retail_api.api.v1.endpoints.context import CompanyContext, drop_null_fields, raise_http_from, require_permission
from retail_api.database import get_db
from retail_api.models.inventory import ItemGroup
from retail_api.schemas.inventory import ItemGroupCreate, ItemGroupInDB, ItemGroupUpdate
from retail_api.services.item_groups import delete_item_group, validate_parent

router = APIRouter()


def get_group_or_404(group_id: UUID, db: Session, context: CompanyContext) -> ItemGroup:
    group = db.query(ItemGroup).filter(
        ItemGroup.id == group_id,
        ItemGroup.company_id == context.company.id
    ).first()
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Grupo de artículos no encontrado.")
    return group


@router.get("/", response_model=List[ItemGroupInDB], tags=["Item Groups"])
def read_item_groups(
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "read")),
    search: Optional[str] = Query(None, description="Buscar por nombre o descripción."),
):
    """Grupos de artículos de la compañía activa, ordenados por nombre."""
    query = db.query(ItemGroup).filter(ItemGroup.company_id == context.company.id)
    if search:
        search_pattern = f"%{search}%"
        query = query.filter(or_(ItemGroup.name.ilike(search_pattern), ItemGroup.description.ilike(search_pattern)))
    return query.order_by(ItemGroup.name).all()


@router.post("/", response_model=ItemGroupInDB, status_code=status.HTTP_201_CREATED, tags=["Item Groups"])
def create_item_group(
    group_in: ItemGroupCreate,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "write")),
):
    try:
        validate_parent(db, context.company.id, group_in.parent_id)
    except (LookupError, ValueError) as exc:
        raise_http_from(exc)

    db_group = ItemGroup(**group_in.model_dump(), company_id=context.company.id)
    db.add(db_group)
    db.commit()
    db.refresh(db_group)
    return db_group


@router.get("/{group_id}", response_model=ItemGroupInDB, tags=["Item Groups"])
def read_item_group(
    group_id: UUID,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "read")),
):
    return get_group_or_404(group_id, db, context)


@router.patch("/{group_id}", response_model=ItemGroupInDB, tags=["Item Groups"])
def update_item_group(
    group_id: UUID,
    group_in: ItemGroupUpdate,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "write")),
):
    """Actualiza un grupo. El nuevo padre no puede generar un ciclo."""
    db_group = get_group_or_404(group_id, db, context)
    update_data = drop_null_fields(group_in.model_dump(exclude_unset=True), "name")

    if "parent_id" in update_data:
        try:
            validate_parent(db, context.company.id, update_data["parent_id"], group_id=db_group.id)
        except (LookupError, ValueError) as exc:
            raise_http_from(exc)

    for key, value in update_data.items():
        setattr(db_group, key, value)

    db.add(db_group)
    db.commit()
    db.refresh(db_group)
    return db_group


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Item Groups"])
def remove_item_group(
    group_id: UUID,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "delete")),
):
    """Elimina un grupo; sus subgrupos suben un nivel y sus artículos quedan sin grupo."""
    db_group = get_group_or_404(group_id, db, context)
    delete_item_group(db, db_group)
    return
