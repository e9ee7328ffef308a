import datetime as dt
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .. import crud
from ..auth import get_current_admin
from ..config import LOW_STOCK_THRESHOLD
from ..database import get_db
from ..dependencies import get_ledger
from ..ledger import InventoryLedger, RecordNotFound, Rejection, SpinEntry, TransientStoreError
from ..messaging import publish_reservation_events
from ..prizes import is_product_win, resolve_product_id
from ..retry import call_with_retry
from ..schemas import SpinResultOut, SpinSubmission, SpinSubmissionOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/spin-results", tags=["Spin Results"])


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "message": "Service temporarily unavailable, please try again later"},
    )


@router.post("/", response_model=SpinSubmissionOut, status_code=status.HTTP_201_CREATED)
def submit_spin(
    body: SpinSubmission,
    db: Session = Depends(get_db),
    ledger: InventoryLedger = Depends(get_ledger),
):
    """Record the outcome of a spin.

    A product win takes one unit from the agent's stock and stores the
    result in the same transaction. When the agent has nothing left the
    player gets "No prize available" and nothing is recorded.
    """
    try:
        agent = call_with_retry(ledger.get_agent, body.agent_id) if body.agent_id else None
    except TransientStoreError:
        logger.error("Giving up on agent lookup for agent_id=%s", body.agent_id)
        return _unavailable()
    if body.agent_id and agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")

    product_id: Optional[str] = None
    if body.is_win and is_product_win(body.prize):
        product_id = resolve_product_id(body.prize)

    if product_id is None:
        spin = crud.create_spin_result(
            db,
            {
                "name": body.name,
                "email": body.email,
                "location": body.location,
                "agent_id": body.agent_id,
                "agent_name": agent.name if agent else None,
                "prize": body.prize,
                "is_win": False,
            },
        )
        return {"message": "Spin result recorded successfully", "data": spin}

    if agent is None:
        raise HTTPException(status_code=400, detail="agent_id is required for a prize win")

    entry = SpinEntry(
        name=body.name,
        email=body.email,
        location=body.location,
        prize=body.prize,
        agent_name=agent.name,
    )
    try:
        result = call_with_retry(ledger.reserve_unit, agent.agent_id, product_id, spin=entry)
    except RecordNotFound:
        raise HTTPException(
            status_code=404,
            detail=f"No '{product_id}' inventory assigned to agent {agent.agent_id}",
        )
    except TransientStoreError:
        logger.error("Giving up on spin for agent_id=%s product_id=%s", agent.agent_id, product_id)
        return _unavailable()

    if isinstance(result, Rejection):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "No prize available"},
        )

    publish_reservation_events(result, LOW_STOCK_THRESHOLD)
    return {
        "message": "Spin result recorded successfully",
        "data": crud.get_spin_result(db, result.spin_result_id),
        "remaining_available": result.remaining_available,
        "distributed_quantity": result.new_distributed,
        "product_name": result.product_name,
    }


@router.get("/", response_model=list[SpinResultOut])
def list_spin_results(
    from_date: Optional[dt.date] = Query(None, description="Start date (YYYY-MM-DD)"),
    to_date: Optional[dt.date] = Query(None, description="End date (YYYY-MM-DD)"),
    skip: int = Query(0, ge=0),
    limit: int = Query(1000, ge=1, le=10000),
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return crud.get_spin_results(db, from_date=from_date, to_date=to_date, skip=skip, limit=limit)


@router.get("/stats")
def spin_statistics(
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return crud.spin_stats(db)


@router.delete("/{spin_id}")
def delete_spin_result(
    spin_id: int,
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    if not crud.delete_spin_result(db, spin_id):
        raise HTTPException(status_code=404, detail=f"Spin result with ID {spin_id} not found")
    return {"success": True, "message": f"Spin result with ID {spin_id} deleted successfully"}


@router.delete("/")
def delete_all_spin_results(
    current_admin: Dict = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    deleted = crud.delete_all_spin_results(db)
    return {"success": True, "deleted": deleted}
