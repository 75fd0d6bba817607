# retail_api/api/v1/endpoints/items.py
# type: ignore

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from retail_api.api.v1.endpoints.context import (
    CompanyContext,
    check_branch_access,
    drop_null_fields,
    require_permission,
)
from retail_api.database import get_db
from retail_api.models.inventory import Item, ItemGroup
from retail_api.models.platform import Branch
from retail_api.schemas.inventory import ItemCreate, ItemInDB, ItemUpdate

router = APIRouter()

# ***************************************************************
# DEPENDENCIAS ESPECÍFICAS PARA ARTÍCULOS
# ***************************************************************

def get_item_and_check_access(item_id: UUID, db: Session, context: CompanyContext) -> Item:
    """Busca un artículo por ID y verifica que pertenezca a la compañía activa."""
    item = db.query(Item).filter(Item.id == item_id).first()

    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Artículo no encontrado.")

    if item.company_id != context.company.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado. El artículo no pertenece a la compañía activa."
        )
    return item


def _check_branch(db: Session, context: CompanyContext, branch_id: UUID) -> Branch:
    branch = db.query(Branch).filter(Branch.id == branch_id, Branch.company_id == context.company.id).first()
    if not branch:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="La sucursal no existe o no pertenece a la compañía activa."
        )
    check_branch_access(db, context, branch)
    return branch


def _check_item_group(db: Session, context: CompanyContext, item_group_id: Optional[UUID]) -> None:
    if item_group_id is None:
        return
    group = db.query(ItemGroup).filter(ItemGroup.id == item_group_id, ItemGroup.company_id == context.company.id).first()
    if not group:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Grupo de artículos no encontrado.")


def _code_taken(db: Session, code: str, branch_id: UUID, exclude_id: Optional[UUID] = None) -> bool:
    query = db.query(Item).filter(Item.code == code, Item.branch_id == branch_id)
    if exclude_id is not None:
        query = query.filter(Item.id != exclude_id)
    return query.first() is not None

# ***************************************************************
# 1. Crear Artículo (POST /)
# ***************************************************************
@router.post("/", response_model=ItemInDB, status_code=status.HTTP_201_CREATED, tags=["Items"])
def create_item(
    item_in: ItemCreate,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "write")),
):
    """
    Crea un artículo en una sucursal de la compañía activa.
    El código debe ser único dentro de la sucursal.
    """
    _check_branch(db, context, item_in.branch_id)
    _check_item_group(db, context, item_in.item_group_id)

    if _code_taken(db, item_in.code, item_in.branch_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Ya existe un artículo con este código en esta sucursal."
        )

    db_item = Item(**item_in.model_dump(), company_id=context.company.id)
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    return db_item

# ***************************************************************
# 2. Listar Artículos (GET /)
# ***************************************************************
@router.get("/", response_model=List[ItemInDB], tags=["Items"])
def read_items(
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "read")),
    limit: int = Query(100, gt=0),
    skip: int = Query(0, ge=0),
    search: Optional[str] = Query(None, description="Buscar por nombre o código."),
    branch_id: Optional[UUID] = Query(None, description="Sucursal (por defecto, la activa)."),
    item_group_id: Optional[UUID] = Query(None, description="Filtrar por grupo de artículos."),
):
    """
    Lista los artículos de una sucursal: la indicada o la sucursal activa.
    """
    if branch_id is None:
        if context.branch is None:
            raise HTTPException(
                status_code=status.HTTP_428_PRECONDITION_REQUIRED,
                detail="Seleccione una sucursal primero."
            )
        branch_id = context.branch.id
    else:
        _check_branch(db, context, branch_id)

    query = db.query(Item).filter(Item.branch_id == branch_id)

    if item_group_id:
        query = query.filter(Item.item_group_id == item_group_id)

    if search:
        search_pattern = f"%{search}%"
        query = query.filter(or_(Item.name.ilike(search_pattern), Item.code.ilike(search_pattern)))

    return query.order_by(Item.name).offset(skip).limit(limit).all()

# ***************************************************************
# 3. Leer Artículo por ID (GET /{item_id})
# ***************************************************************
@router.get("/{item_id}", response_model=ItemInDB, tags=["Items"])
def read_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "read")),
):
    return get_item_and_check_access(item_id, db, context)

# ***************************************************************
# 4. Actualizar Artículo (PATCH /{item_id})
# ***************************************************************
@router.patch("/{item_id}", response_model=ItemInDB, tags=["Items"])
def update_item(
    item_id: UUID,
    item_in: ItemUpdate,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "write")),
):
    """Actualiza campos de un artículo de la compañía activa."""
    db_item = get_item_and_check_access(item_id, db, context)

    update_data = drop_null_fields(
        item_in.model_dump(exclude_unset=True), "name", "code", "price", "stock_quantity", "is_active"
    )

    if "code" in update_data and update_data["code"] != db_item.code:
        if _code_taken(db, update_data["code"], db_item.branch_id, exclude_id=db_item.id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Ya existe otro artículo con este código en esta sucursal."
            )

    if "item_group_id" in update_data:
        _check_item_group(db, context, update_data["item_group_id"])

    for key, value in update_data.items():
        setattr(db_item, key, value)

    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    return db_item

# ***************************************************************
# 5. Eliminar Artículo (DELETE /{item_id})
# ***************************************************************
@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Items"])
def delete_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(require_permission("inventory", "delete")),
):
    db_item = get_item_and_check_access(item_id, db, context)
    db.delete(db_item)
    db.commit()
    return
