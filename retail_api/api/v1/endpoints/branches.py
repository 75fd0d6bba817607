# retail_api/api/v1/endpoints/branches.py
# type: ignore
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from retail_api.api.v1.endpoints.context import (
    CompanyContext,
    check_branch_access,
    check_permission,
    get_active_context,
    raise_http_from,
)
from retail_api.database import get_db
from retail_api.models.platform import Branch
from retail_api.schemas.inventory import (
    StockTransferCreate,
    StockTransferInDB,
    StockTransferList,
    StockTransferResult,
    TransferCandidate,
)
from retail_api.services import stock_transfer

logger = logging.getLogger(__name__)

router = APIRouter()


def get_source_branch(
    branch_id: UUID,
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(get_active_context),
) -> Branch:
    """La sucursal origen debe pertenecer a la compañía activa y ser accesible para el usuario."""
    branch = db.query(Branch).filter(Branch.id == branch_id).first()
    if not branch or branch.company_id != context.company.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Sucursal no encontrada en la compañía activa.",
        )
    check_branch_access(db, context, branch)
    return branch

# ***************************************************************
# Transferencia de existencias entre sucursales
# ***************************************************************

@router.get("/{branch_id}/transfer-candidates", response_model=List[TransferCandidate], tags=["Transfers"])
def read_transfer_candidates(
    branch: Branch = Depends(get_source_branch),
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(get_active_context),
):
    """Artículos de la sucursal origen que pueden transferirse."""
    check_permission(db, context.user, branch.company_id, "inventory", "read")
    return stock_transfer.list_transfer_candidates(db, branch.id)


@router.post("/{branch_id}/transfers", response_model=StockTransferResult, tags=["Transfers"])
def create_transfer(
    transfer_in: StockTransferCreate,
    branch: Branch = Depends(get_source_branch),
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(get_active_context),
):
    """
    Transfiere existencias de un artículo a otra sucursal de la misma compañía.
    Descuento, abono (o alta del artículo) e historial son atómicos.
    """
    check_permission(db, context.user, branch.company_id, "inventory", "write")

    try:
        outcome = stock_transfer.transfer_stock(
            db,
            source_branch=branch,
            product_id=transfer_in.product_id,
            target_branch_id=transfer_in.target_branch_id,
            quantity=transfer_in.quantity,
            user=context.user,
            notes=transfer_in.notes,
        )
    except (LookupError, ValueError) as exc:
        raise_http_from(exc)
    except Exception as e:
        logger.exception("Error inesperado en la transferencia desde %s", branch.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"No se pudo completar la transferencia. Detalle: {str(e)}"
        )

    if outcome.created_item:
        message = f"Se creó el artículo en la sucursal destino con {outcome.target_item.stock_quantity} unidades."
    else:
        message = f"Existencias actualizadas: la sucursal destino ahora tiene {outcome.target_item.stock_quantity} unidades."

    return StockTransferResult(
        transfer_id=outcome.transfer.id,
        source_item_id=outcome.source_item.id,
        target_item_id=outcome.target_item.id,
        quantity=outcome.transfer.quantity,
        source_remaining=outcome.source_item.stock_quantity,
        target_quantity=outcome.target_item.stock_quantity,
        created_item=outcome.created_item,
        message=message,
    )


@router.get("/{branch_id}/transfers", response_model=StockTransferList, tags=["Transfers"])
def read_transfers(
    branch: Branch = Depends(get_source_branch),
    db: Session = Depends(get_db),
    context: CompanyContext = Depends(get_active_context),
    limit: int = Query(100, gt=0, le=500),
):
    """Historial de transferencias de la sucursal (como origen o destino)."""
    check_permission(db, context.user, branch.company_id, "inventory", "read")
    transfers = stock_transfer.list_transfers(db, branch.id, limit=limit)
    return StockTransferList(transfers=[StockTransferInDB.model_validate(t) for t in transfers])
