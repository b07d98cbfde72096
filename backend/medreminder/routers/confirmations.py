"""Dose confirmation API endpoints."""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_confirmation_service, get_current_user_id, get_store
from ..schemas.confirmation import ConfirmationCreate, ConfirmationResponse, ConfirmationResult
from ..schemas.stock import StockHistoryResponse
from ..services.confirmations import ConfirmationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/confirmations", tags=["confirmations"])


@router.post("", response_model=ConfirmationResult)
async def save_confirmation(
    request: ConfirmationCreate,
    user_id: str = Depends(get_current_user_id),
    service: ConfirmationService = Depends(get_confirmation_service),
):
    """Record whether a dose was taken.

    Changing a dose to taken uses up stock; changing it back returns the stock.
    Saving the same answer twice leaves stock alone.
    """
    outcome = await service.confirm(
        user_id=user_id,
        medicine_id=request.medicine_id,
        scheduled_datetime=request.scheduled_datetime,
        taken=request.taken,
        skipped=request.skipped,
        notes=request.notes,
    )

    return ConfirmationResult(
        success=True,
        confirmation=ConfirmationResponse.model_validate(outcome.confirmation),
        stock_entry=(
            StockHistoryResponse.model_validate(outcome.stock_entry)
            if outcome.stock_entry
            else None
        ),
        stock_error=outcome.stock_error,
    )


@router.get("", response_model=List[ConfirmationResponse])
async def list_confirmations(
    medicine_id: Optional[str] = Query(None, alias="medicineId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
):
    """List the caller's confirmations, newest dose first."""
    confirmations = await store.list_confirmations(
        user_id,
        medicine_id=medicine_id,
        start=start_date,
        end=end_date,
    )
    return [ConfirmationResponse.model_validate(c) for c in confirmations]


@router.get("/dose", response_model=ConfirmationResponse)
async def get_dose_confirmation(
    medicine_id: str = Query(..., alias="medicineId"),
    scheduled_datetime: datetime = Query(..., alias="scheduledDatetime"),
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
):
    """The caller's answer for one scheduled dose."""
    confirmation = await store.get_existing_confirmation(user_id, medicine_id, scheduled_datetime)
    if confirmation is None:
        raise HTTPException(status_code=404, detail="Confirmation not found")
    return ConfirmationResponse.model_validate(confirmation)
