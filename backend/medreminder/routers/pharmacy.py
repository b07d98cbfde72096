"""Pharmacy stock API endpoints."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_current_user_id, get_stock_ledger, get_store
from ..exceptions import StockReadError, StockWriteError
from ..schemas.stock import RefillRequest, StockAdjustRequest, StockHistoryResponse
from ..services.stock_ledger import StockLedgerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pharmacy-medicines", tags=["pharmacy"])


async def _require_owned_item(store, user_id: str, medicine_id: str):
    level = await store.get_stock(medicine_id)
    if level is None or level.user_id != user_id:
        raise HTTPException(status_code=404, detail="Medicine not found")
    return level


@router.get("/history", response_model=List[StockHistoryResponse])
async def get_stock_history(
    medicine_id: Optional[str] = Query(None, alias="medicineId"),
    limit: int = Query(100),
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
):
    """Stock movements for the caller's pharmacy, newest first."""
    limit = min(max(limit, 1), 200)
    history = await store.list_stock_history(user_id, medicine_id=medicine_id, limit=limit)
    return [StockHistoryResponse.model_validate(h) for h in history]


@router.post("/{medicine_id}/initial-stock", response_model=StockHistoryResponse)
async def record_initial_stock(
    medicine_id: str,
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
    ledger: StockLedgerService = Depends(get_stock_ledger),
):
    """Log the stock a newly added pharmacy item starts with."""
    await _require_owned_item(store, user_id, medicine_id)
    try:
        entry = await ledger.record_initial_stock(medicine_id, note="Initial stock")
    except (StockReadError, StockWriteError) as e:
        logger.error(f"Initial stock not recorded for {medicine_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to record stock")
    return StockHistoryResponse.model_validate(entry)


@router.post("/{medicine_id}/refill", response_model=StockHistoryResponse)
async def refill_stock(
    medicine_id: str,
    request: RefillRequest,
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
    ledger: StockLedgerService = Depends(get_stock_ledger),
):
    """Add a refill to the stock on hand."""
    await _require_owned_item(store, user_id, medicine_id)
    try:
        entry = await ledger.refill(medicine_id, request.amount, note=request.note)
    except (StockReadError, StockWriteError) as e:
        logger.error(f"Refill failed for {medicine_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update stock")
    return StockHistoryResponse.model_validate(entry)


@router.post("/{medicine_id}/adjust", response_model=Optional[StockHistoryResponse])
async def adjust_stock(
    medicine_id: str,
    request: StockAdjustRequest,
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
    ledger: StockLedgerService = Depends(get_stock_ledger),
):
    """Set the stock on hand after a manual count; null when it already matched."""
    await _require_owned_item(store, user_id, medicine_id)
    try:
        entry = await ledger.set_stock_level(medicine_id, request.available_stock, note=request.note)
    except (StockReadError, StockWriteError) as e:
        logger.error(f"Stock adjustment failed for {medicine_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update stock")
    return StockHistoryResponse.model_validate(entry) if entry else None
