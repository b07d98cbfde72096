"""Object wiring shared by the routers and the in-process scheduler."""
import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException, WebSocket, WebSocketException, status

from .config import settings
from .database import async_session
from .services.confirmations import ConfirmationService
from .services.dispatcher import NotificationDispatcher
from .services.push_sender import PushConfig, PushSenderService, WebPushTransport
from .services.queue_advancer import QueueAdvancer
from .services.stock_ledger import StockLedgerService
from .services.websocket_manager import websocket_manager
from .stores.sql import SqlStore


def build_dispatcher(store, transport: WebPushTransport) -> NotificationDispatcher:
    """Assemble a dispatcher whose results are also pushed to open WebSockets."""
    dispatcher = NotificationDispatcher(
        queue=store,
        medicines=store,
        push_sender=PushSenderService(store, transport),
        advancer=QueueAdvancer(store),
    )
    dispatcher.add_listener(websocket_manager.broadcast_dispatch_result)
    return dispatcher


def default_dispatcher() -> NotificationDispatcher:
    """Dispatcher on the application database, used by the scheduler."""
    return build_dispatcher(SqlStore(async_session), WebPushTransport(PushConfig.from_settings()))


def get_store() -> SqlStore:
    """Dependency to get the store backed by the application database."""
    return SqlStore(async_session)


def get_push_transport() -> WebPushTransport:
    return WebPushTransport(PushConfig.from_settings())


def get_dispatcher(
    store=Depends(get_store),
    transport: WebPushTransport = Depends(get_push_transport),
) -> NotificationDispatcher:
    return build_dispatcher(store, transport)


def get_queue_advancer(store=Depends(get_store)) -> QueueAdvancer:
    return QueueAdvancer(store)


def get_stock_ledger(store=Depends(get_store)) -> StockLedgerService:
    return StockLedgerService(store)


def get_confirmation_service(
    store=Depends(get_store),
    ledger: StockLedgerService = Depends(get_stock_ledger),
) -> ConfirmationService:
    return ConfirmationService(store, store, ledger)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity as forwarded by the authentication layer in front of this service."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id


async def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    """Reject dispatch calls without the shared secret, when one is configured."""
    if not settings.cron_secret:
        return
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret, settings.cron_secret):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


async def get_websocket_user_id(websocket: WebSocket) -> str:
    """get_current_user_id for WebSocket handshakes; closes with 1008 when the header is missing."""
    user_id = websocket.headers.get("x-user-id")
    if not user_id:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="Unauthorized")
    return user_id
