"""SQLAlchemy implementation of the store protocols.

Each call opens its own session from the factory, like the dispatcher's other
database work, so a failure in one entry never poisons the next one's session.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain import (
    Confirmation,
    Medicine,
    NewQueueEntry,
    QueueEntry,
    StockHistoryEntry,
    StockLevel,
    Subscription,
    new_id,
)
from ..exceptions import DuplicateQueueEntryError
from ..models import (
    MedicineConfirmation,
    NotificationQueueEntry,
    PharmacyMedicine,
    PharmacyStockHistory,
    PushSubscription,
    UserMedicine,
)
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

CONFIRMATION_KEY = ["user_id", "medicine_id", "scheduled_datetime"]


def _to_queue_entry(row: NotificationQueueEntry) -> QueueEntry:
    return QueueEntry(
        id=row.id,
        user_id=row.user_id,
        medicine_id=row.medicine_id,
        scheduled_datetime=ensure_utc(row.scheduled_datetime),
        notification_type=row.notification_type,
        minutes_before=row.minutes_before or 0,
        sent_at=ensure_utc(row.sent_at) if row.sent_at else None,
        error=row.error,
    )


def _to_medicine(row: UserMedicine) -> Medicine:
    return Medicine(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        occurrence=row.occurrence,
        meal_timing=row.meal_timing,
        dosage=row.dosage,
        timing=row.timing,
        scheduled_date=row.scheduled_date,
        timezone=row.timezone,
        pharmacy_medicine_id=row.pharmacy_medicine_id,
        dose_amount=Decimal(str(row.dose_amount)) if row.dose_amount is not None else None,
        dose_unit=row.dose_unit,
    )


def _to_subscription(row: PushSubscription) -> Subscription:
    return Subscription(user_id=row.user_id, endpoint=row.endpoint, p256dh=row.p256dh, auth=row.auth)


def _to_history(row: PharmacyStockHistory) -> StockHistoryEntry:
    return StockHistoryEntry(
        id=row.id,
        user_id=row.user_id,
        medicine_id=row.medicine_id,
        delta=Decimal(str(row.delta)),
        before_stock=Decimal(str(row.before_stock)),
        after_stock=Decimal(str(row.after_stock)),
        stock_unit=row.stock_unit,
        source=row.source,
        note=row.note,
        created_at=ensure_utc(row.created_at) if row.created_at else None,
    )


def _to_confirmation(row: MedicineConfirmation) -> Confirmation:
    return Confirmation(
        id=row.id,
        user_id=row.user_id,
        medicine_id=row.medicine_id,
        scheduled_datetime=ensure_utc(row.scheduled_datetime),
        taken=bool(row.taken),
        skipped=bool(row.skipped),
        notes=row.notes,
        confirmed_at=ensure_utc(row.confirmed_at) if row.confirmed_at else None,
    )


def _dialect_insert(session: AsyncSession):
    """INSERT construct with ON CONFLICT support for the session's database."""
    if session.bind.dialect.name == "postgresql":
        return postgresql.insert
    return sqlite.insert


def _history_row(row: StockHistoryEntry) -> PharmacyStockHistory:
    return PharmacyStockHistory(
        user_id=row.user_id,
        medicine_id=row.medicine_id,
        delta=row.delta,
        before_stock=row.before_stock,
        after_stock=row.after_stock,
        stock_unit=row.stock_unit,
        source=row.source,
        note=row.note,
    )


class SqlStore:
    """Queue, medicine, subscription, pharmacy and confirmation store on one database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # Queue store

    async def fetch_pending_queue_entries(
        self, limit: int, scheduled_after: Optional[datetime] = None
    ) -> List[QueueEntry]:
        async with self._session_factory() as session:
            query = select(NotificationQueueEntry).where(NotificationQueueEntry.sent_at.is_(None))
            if scheduled_after is not None:
                query = query.where(
                    NotificationQueueEntry.scheduled_datetime >= ensure_utc(scheduled_after)
                )
            result = await session.execute(
                query
                .order_by(NotificationQueueEntry.scheduled_datetime)
                .limit(limit)
            )
            return [_to_queue_entry(row) for row in result.scalars().all()]

    async def insert_queue_entry(self, row: NewQueueEntry) -> QueueEntry:
        async with self._session_factory() as session:
            entry = NotificationQueueEntry(
                user_id=row.user_id,
                medicine_id=row.medicine_id,
                scheduled_datetime=ensure_utc(row.scheduled_datetime),
                notification_type=row.notification_type,
                minutes_before=row.minutes_before,
            )
            session.add(entry)
            try:
                await retry_on_lock(session.commit)
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateQueueEntryError(
                    f"{row.notification_type} for {row.medicine_id} at "
                    f"{row.scheduled_datetime.isoformat()} already queued"
                ) from e
            return _to_queue_entry(entry)

    async def insert_queue_entries(self, rows: Sequence[NewQueueEntry]) -> List[QueueEntry]:
        inserted = []
        for row in rows:
            try:
                inserted.append(await self.insert_queue_entry(row))
            except DuplicateQueueEntryError as e:
                logger.debug(f"Skipping duplicate queue entry: {e}")
        return inserted

    async def mark_sent(self, entry_id: str, sent_at: datetime, error: Optional[str] = None) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(NotificationQueueEntry)
                .where(NotificationQueueEntry.id == entry_id)
                .values(sent_at=ensure_utc(sent_at), error=error)
            )
            await retry_on_lock(session.commit)

    async def list_queue_entries(
        self, user_id: str, pending_only: bool = False, limit: int = 100
    ) -> List[QueueEntry]:
        async with self._session_factory() as session:
            query = select(NotificationQueueEntry).where(NotificationQueueEntry.user_id == user_id)
            if pending_only:
                query = query.where(NotificationQueueEntry.sent_at.is_(None))
            result = await session.execute(
                query.order_by(NotificationQueueEntry.scheduled_datetime).limit(limit)
            )
            return [_to_queue_entry(row) for row in result.scalars().all()]

    # Medicine store

    async def get_medicine(self, medicine_id: str) -> Optional[Medicine]:
        async with self._session_factory() as session:
            row = await session.get(UserMedicine, medicine_id)
            return _to_medicine(row) if row else None

    # Subscription store

    async def list_subscriptions(self, user_id: str) -> List[Subscription]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PushSubscription).where(PushSubscription.user_id == user_id)
            )
            return [_to_subscription(row) for row in result.scalars().all()]

    async def delete_subscription(self, endpoint: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(PushSubscription).where(PushSubscription.endpoint == endpoint))
            await retry_on_lock(session.commit)

    async def upsert_subscription(
        self,
        user_id: str,
        endpoint: str,
        p256dh: str,
        auth: str,
        user_agent: Optional[str] = None,
    ) -> Subscription:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PushSubscription).where(
                    PushSubscription.user_id == user_id,
                    PushSubscription.endpoint == endpoint,
                )
            )
            existing = result.scalar_one_or_none()

            if existing:
                existing.p256dh = p256dh
                existing.auth = auth
                existing.user_agent = user_agent
                existing.updated_at = utc_now()
                row = existing
            else:
                row = PushSubscription(
                    user_id=user_id,
                    endpoint=endpoint,
                    p256dh=p256dh,
                    auth=auth,
                    user_agent=user_agent,
                )
                session.add(row)

            await retry_on_lock(session.commit)
            return _to_subscription(row)

    async def remove_user_subscription(self, user_id: str, endpoint: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(PushSubscription).where(
                    PushSubscription.user_id == user_id,
                    PushSubscription.endpoint == endpoint,
                )
            )
            await retry_on_lock(session.commit)
            return result.rowcount > 0

    # Pharmacy store

    async def get_stock(self, pharmacy_medicine_id: str) -> Optional[StockLevel]:
        async with self._session_factory() as session:
            row = await session.get(PharmacyMedicine, pharmacy_medicine_id)
            if row is None:
                return None
            return StockLevel(
                medicine_id=row.id,
                user_id=row.user_id,
                stock=Decimal(str(row.available_stock or 0)),
                unit=row.stock_unit or "tablet",
                version=row.version or 0,
            )

    async def set_stock(self, pharmacy_medicine_id: str, new_stock: Decimal) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(PharmacyMedicine)
                .where(PharmacyMedicine.id == pharmacy_medicine_id)
                .values(available_stock=new_stock, version=PharmacyMedicine.version + 1)
            )
            await retry_on_lock(session.commit)

    async def append_stock_history(self, row: StockHistoryEntry) -> StockHistoryEntry:
        async with self._session_factory() as session:
            history = _history_row(row)
            session.add(history)
            await retry_on_lock(session.commit)
            return _to_history(history)

    async def record_stock_change(
        self,
        pharmacy_medicine_id: str,
        expected_version: int,
        row: StockHistoryEntry,
    ) -> Optional[StockHistoryEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                update(PharmacyMedicine)
                .where(
                    PharmacyMedicine.id == pharmacy_medicine_id,
                    PharmacyMedicine.version == expected_version,
                )
                .values(available_stock=row.after_stock, version=PharmacyMedicine.version + 1)
            )
            if result.rowcount != 1:
                await session.rollback()
                return None

            history = _history_row(row)
            session.add(history)
            await retry_on_lock(session.commit)
            return _to_history(history)

    async def list_stock_history(
        self, user_id: str, medicine_id: Optional[str] = None, limit: int = 100
    ) -> List[StockHistoryEntry]:
        async with self._session_factory() as session:
            query = select(PharmacyStockHistory).where(PharmacyStockHistory.user_id == user_id)
            if medicine_id:
                query = query.where(PharmacyStockHistory.medicine_id == medicine_id)
            result = await session.execute(
                query.order_by(PharmacyStockHistory.created_at.desc()).limit(limit)
            )
            return [_to_history(row) for row in result.scalars().all()]

    # Confirmation store

    async def get_existing_confirmation(
        self, user_id: str, medicine_id: str, scheduled_datetime: datetime
    ) -> Optional[Confirmation]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MedicineConfirmation).where(
                    MedicineConfirmation.user_id == user_id,
                    MedicineConfirmation.medicine_id == medicine_id,
                    MedicineConfirmation.scheduled_datetime == ensure_utc(scheduled_datetime),
                )
            )
            row = result.scalar_one_or_none()
            return _to_confirmation(row) if row else None

    async def upsert_confirmation(self, row: Confirmation) -> Tuple[Confirmation, bool]:
        """Insert-or-update keyed on the dose, reporting the taken flag it replaced.

        The first statement is a write, so concurrent callers for the same
        dose queue on the row (or SQLite's write lock) and each sees the
        flag the previous one left behind.
        """
        dose = (
            MedicineConfirmation.user_id == row.user_id,
            MedicineConfirmation.medicine_id == row.medicine_id,
            MedicineConfirmation.scheduled_datetime == ensure_utc(row.scheduled_datetime),
        )
        answer = {
            "taken": row.taken,
            "skipped": row.skipped,
            "notes": row.notes,
            "confirmed_at": row.confirmed_at or utc_now(),
        }

        async with self._session_factory() as session:
            insert = _dialect_insert(session)
            created = await session.execute(
                insert(MedicineConfirmation)
                .values(
                    id=new_id(),
                    user_id=row.user_id,
                    medicine_id=row.medicine_id,
                    scheduled_datetime=ensure_utc(row.scheduled_datetime),
                    **answer,
                )
                .on_conflict_do_nothing(index_elements=CONFIRMATION_KEY)
                .returning(MedicineConfirmation.id)
            )
            if created.scalar_one_or_none() is not None:
                previous_taken = False
            else:
                flipped = await session.execute(
                    update(MedicineConfirmation)
                    .where(*dose, MedicineConfirmation.taken == (not row.taken))
                    .values(**answer)
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount == 1:
                    previous_taken = not row.taken
                else:
                    previous_taken = row.taken
                    await session.execute(
                        update(MedicineConfirmation)
                        .where(*dose)
                        .values(**answer)
                        .execution_options(synchronize_session=False)
                    )

            result = await session.execute(select(MedicineConfirmation).where(*dose))
            record = result.scalar_one()
            await retry_on_lock(session.commit)
            return _to_confirmation(record), previous_taken

    async def list_confirmations(
        self,
        user_id: str,
        medicine_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Confirmation]:
        async with self._session_factory() as session:
            query = select(MedicineConfirmation).where(MedicineConfirmation.user_id == user_id)
            if medicine_id:
                query = query.where(MedicineConfirmation.medicine_id == medicine_id)
            if start:
                query = query.where(MedicineConfirmation.scheduled_datetime >= ensure_utc(start))
            if end:
                query = query.where(MedicineConfirmation.scheduled_datetime <= ensure_utc(end))
            result = await session.execute(
                query.order_by(MedicineConfirmation.scheduled_datetime.desc())
            )
            return [_to_confirmation(row) for row in result.scalars().all()]
