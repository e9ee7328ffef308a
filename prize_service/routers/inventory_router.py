import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import crud
from ..auth import get_current_admin
from ..config import LOW_STOCK_THRESHOLD
from ..database import get_db
from ..dependencies import get_ledger
from ..ledger import (
    InvalidQuantity,
    InventoryLedger,
    RecordNotFound,
    Rejection,
    TransientStoreError,
)
from ..messaging import publish_reservation_events, publish_stock_level_events
from ..retry import call_with_retry
from ..schemas import (
    AdjustRequest,
    AssignRequest,
    AvailabilityOut,
    InventoryOut,
    ReservationOut,
    ReserveRequest,
    RestockRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["Inventory"])

SERVICE_UNAVAILABLE = "Service temporarily unavailable, please try again later"


def _not_found(e: RecordNotFound):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _unavailable():
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"message": SERVICE_UNAVAILABLE},
    )


@router.get("/", response_model=list[InventoryOut])
def list_inventory(
    agent_id: Optional[str] = Query(None, description="Filter by agent ID"),
    product_id: Optional[str] = Query(None, description="Filter by product ID"),
    available_only: bool = Query(False, description="Only rows with available quantity > 0"),
    db: Session = Depends(get_db),
):
    return crud.get_inventory(db, agent_id=agent_id, product_id=product_id, available_only=available_only)


@router.post("/check-stock", response_model=AvailabilityOut)
def check_stock(body: ReserveRequest, ledger: InventoryLedger = Depends(get_ledger)):
    """Advisory availability check used to decide what goes on the wheel."""
    try:
        availability = ledger.check_availability(body.agent_id, body.product_id)
    except TransientStoreError:
        _unavailable()
    return {
        "available": availability.available,
        "quantity": availability.quantity,
        "product_name": availability.product_name,
    }


@router.get("/current-wheel")
def current_wheel(
    agent_id: str = Query(..., min_length=1, description="Agent ID to build the wheel for"),
    db: Session = Depends(get_db),
):
    return crud.current_wheel(db, agent_id)


# -----------------------------
# Admin: assignment and adjustments
# -----------------------------

@router.post("/", response_model=InventoryOut, status_code=status.HTTP_201_CREATED)
def assign_inventory(
    body: AssignRequest,
    current_admin: Dict = Depends(get_current_admin),
    ledger: InventoryLedger = Depends(get_ledger),
):
    try:
        result = ledger.assign(body.agent_id, body.product_id, body.quantity)
    except RecordNotFound as e:
        _not_found(e)
    except InvalidQuantity as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreError:
        _unavailable()

    if isinstance(result, Rejection):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Inventory already exists for this agent and product. Use restock or adjust to change it.",
        )
    return result


@router.post("/restock", response_model=InventoryOut)
def restock_inventory(
    body: RestockRequest,
    current_admin: Dict = Depends(get_current_admin),
    ledger: InventoryLedger = Depends(get_ledger),
):
    try:
        return ledger.restock(body.agent_id, body.product_id, body.quantity)
    except RecordNotFound as e:
        _not_found(e)
    except InvalidQuantity as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreError:
        _unavailable()


@router.patch("/{agent_id}/{product_id}", response_model=InventoryOut)
def adjust_inventory(
    agent_id: str,
    product_id: str,
    body: AdjustRequest,
    current_admin: Dict = Depends(get_current_admin),
    ledger: InventoryLedger = Depends(get_ledger),
):
    try:
        record = ledger.adjust(
            agent_id,
            product_id,
            body.available_quantity,
            new_total=body.total_quantity,
        )
    except RecordNotFound as e:
        _not_found(e)
    except InvalidQuantity as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransientStoreError:
        _unavailable()

    publish_stock_level_events(record, LOW_STOCK_THRESHOLD)
    return record


@router.post("/distribute", response_model=ReservationOut)
def distribute_unit(
    body: ReserveRequest,
    current_admin: Dict = Depends(get_current_admin),
    ledger: InventoryLedger = Depends(get_ledger),
):
    """Hand out one unit outside of a spin (e.g. a walk-in giveaway)."""
    try:
        result = call_with_retry(ledger.reserve_unit, body.agent_id, body.product_id)
    except RecordNotFound as e:
        _not_found(e)
    except TransientStoreError:
        _unavailable()

    if isinstance(result, Rejection):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Insufficient stock", "available": result.available, "requested": 1},
        )

    publish_reservation_events(result, LOW_STOCK_THRESHOLD)
    return {
        "success": True,
        "agent_id": result.agent_id,
        "product_id": result.product_id,
        "product_name": result.product_name,
        "remaining_available": result.remaining_available,
        "distributed_quantity": result.new_distributed,
    }


# -----------------------------
# Admin: read-only reports
# -----------------------------

@router.get("/summary")
def inventory_summary(
    agent_id: Optional[str] = Query(None, description="Filter by agent ID"),
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return crud.inventory_summary(db, agent_id=agent_id)


@router.get("/low-stock")
def low_stock(
    threshold: int = Query(LOW_STOCK_THRESHOLD, ge=0, description="Stock level threshold"),
    agent_id: Optional[str] = Query(None, description="Filter by agent ID"),
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return crud.low_stock_report(db, threshold=threshold, agent_id=agent_id)


@router.get("/distribution")
def distribution(
    agent_id: Optional[str] = Query(None, description="Filter by agent ID"),
    product_id: Optional[str] = Query(None, description="Filter by product ID"),
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return crud.prize_distribution(db, agent_id=agent_id, product_id=product_id)
