"""Notification dispatch and queue API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from ..dependencies import (
    get_current_user_id,
    get_dispatcher,
    get_queue_advancer,
    get_store,
    get_websocket_user_id,
    verify_cron_secret,
)
from ..exceptions import AdvancementError
from ..schemas.notification import DispatchSummary, QueueEntryResponse, ScheduleResponse
from ..services.dispatcher import NotificationDispatcher
from ..services.queue_advancer import QueueAdvancer
from ..services.websocket_manager import websocket_manager
from ..utils.time_utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])
ws_router = APIRouter(tags=["notifications"])


@router.post("/dispatch", response_model=DispatchSummary, dependencies=[Depends(verify_cron_secret)])
async def dispatch_notifications(
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Send every notification due now.

    Meant to be called by a cron-like trigger every 1-5 minutes.
    """
    summary = await dispatcher.run()
    return DispatchSummary(**summary.to_dict())


@router.get("/queue", response_model=List[QueueEntryResponse])
async def list_queue(
    pending: bool = Query(False, description="Only entries not yet sent"),
    limit: int = Query(100, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
):
    """List the caller's queued notifications, soonest first."""
    entries = await store.list_queue_entries(user_id, pending_only=pending, limit=limit)
    return [QueueEntryResponse.model_validate(e) for e in entries]


@router.post("/schedule/{medicine_id}", response_model=ScheduleResponse)
async def schedule_medicine(
    medicine_id: str,
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
    advancer: QueueAdvancer = Depends(get_queue_advancer),
):
    """Queue the first upcoming dose of a newly created medicine.

    Later doses are queued by the dispatcher as each confirmation goes out.
    """
    medicine = await store.get_medicine(medicine_id)
    if medicine is None or medicine.user_id != user_id:
        raise HTTPException(status_code=404, detail="Medicine not found")

    try:
        scheduled = await advancer.seed(medicine, utc_now())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AdvancementError as e:
        logger.error(str(e))
        raise HTTPException(status_code=500, detail="Failed to schedule medicine")

    return ScheduleResponse(medicine_id=medicine_id, scheduled_datetime=scheduled)


@ws_router.websocket("/ws/notifications")
async def notifications_socket(
    websocket: WebSocket,
    user_id: str = Depends(get_websocket_user_id),
):
    """Stream the caller's dispatch results while the page is open."""
    await websocket_manager.connect(user_id, websocket)
    try:
        while True:
            # Client messages are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await websocket_manager.disconnect(user_id, websocket)
