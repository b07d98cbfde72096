import asyncio
from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from medreminder.database import Base
from medreminder.domain import Confirmation, NewQueueEntry, StockHistoryEntry
from medreminder.exceptions import DuplicateQueueEntryError
from medreminder.models import PharmacyMedicine, UserMedicine
from medreminder.services.confirmations import ConfirmationService
from medreminder.services.stock_ledger import StockLedgerService
from medreminder.stores.sql import SqlStore

from .factories import USER_ID, utc


@pytest_asyncio.fixture
async def sql_store(tmp_path):
    # File database, so concurrent sessions get separate connections
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'medreminder.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        session.add(UserMedicine(
            id="med-1",
            user_id=USER_ID,
            name="Metformin",
            dosage="500mg",
            occurrence="daily",
            scheduled_date=date(2024, 1, 1),
            timing="09:00",
            meal_timing="after",
            pharmacy_medicine_id="pharm-1",
            dose_amount=Decimal("1"),
        ))
        session.add(PharmacyMedicine(
            id="pharm-1",
            user_id=USER_ID,
            name="Metformin",
            available_stock=Decimal("10"),
            stock_unit="tablet",
        ))
        await session.commit()

    yield SqlStore(session_factory)
    await engine.dispose()


def _row(notification_type: str = "confirmation", day: int = 1) -> NewQueueEntry:
    return NewQueueEntry(
        user_id=USER_ID,
        medicine_id="med-1",
        scheduled_datetime=utc(2024, 1, day, 9, 0),
        notification_type=notification_type,
        minutes_before=0 if notification_type == "confirmation" else 30,
    )


@pytest.mark.asyncio
async def test_queue_slot_is_unique(sql_store: SqlStore) -> None:
    await sql_store.insert_queue_entry(_row())
    with pytest.raises(DuplicateQueueEntryError):
        await sql_store.insert_queue_entry(_row())

    inserted = await sql_store.insert_queue_entries([_row(), _row("reminder")])
    assert [e.notification_type for e in inserted] == ["reminder"]


@pytest.mark.asyncio
async def test_fetch_pending_orders_and_filters(sql_store: SqlStore) -> None:
    later = await sql_store.insert_queue_entry(_row(day=3))
    earlier = await sql_store.insert_queue_entry(_row(day=2))
    sent = await sql_store.insert_queue_entry(_row(day=1))
    await sql_store.mark_sent(sent.id, utc(2024, 1, 1, 9, 0))

    pending = await sql_store.fetch_pending_queue_entries(10)
    assert [e.id for e in pending] == [earlier.id, later.id]
    assert pending[0].scheduled_datetime == utc(2024, 1, 2, 9, 0)

    recent = await sql_store.fetch_pending_queue_entries(10, scheduled_after=utc(2024, 1, 2, 12, 0))
    assert [e.id for e in recent] == [later.id]


@pytest.mark.asyncio
async def test_mark_sent_records_error(sql_store: SqlStore) -> None:
    entry = await sql_store.insert_queue_entry(_row())
    await sql_store.mark_sent(entry.id, utc(2024, 1, 1, 9, 1), error="No active subscriptions")

    [stored] = await sql_store.list_queue_entries(USER_ID)
    assert stored.sent_at == utc(2024, 1, 1, 9, 1)
    assert stored.error == "No active subscriptions"
    assert await sql_store.list_queue_entries(USER_ID, pending_only=True) == []


@pytest.mark.asyncio
async def test_get_medicine(sql_store: SqlStore) -> None:
    medicine = await sql_store.get_medicine("med-1")
    assert medicine.occurrence == "daily"
    assert medicine.dose_amount == Decimal("1")
    assert medicine.pharmacy_medicine_id == "pharm-1"
    assert await sql_store.get_medicine("missing") is None


@pytest.mark.asyncio
async def test_subscription_upsert_and_removal(sql_store: SqlStore) -> None:
    await sql_store.upsert_subscription(USER_ID, "https://push.example.com/a", "k1", "a1")
    await sql_store.upsert_subscription(USER_ID, "https://push.example.com/a", "k2", "a2")

    [subscription] = await sql_store.list_subscriptions(USER_ID)
    assert subscription.p256dh == "k2"

    assert await sql_store.remove_user_subscription("other-user", subscription.endpoint) is False
    assert await sql_store.remove_user_subscription(USER_ID, subscription.endpoint) is True
    assert await sql_store.list_subscriptions(USER_ID) == []


@pytest.mark.asyncio
async def test_stock_compare_and_swap(sql_store: SqlStore) -> None:
    level = await sql_store.get_stock("pharm-1")
    assert level.stock == Decimal("10")

    row = StockHistoryEntry(
        user_id=USER_ID,
        medicine_id="pharm-1",
        delta=Decimal("-1"),
        before_stock=Decimal("10"),
        after_stock=Decimal("9"),
        stock_unit="tablet",
        source="taken",
    )
    written = await sql_store.record_stock_change("pharm-1", level.version, row)
    assert written.id is not None

    # Same expected version again loses
    assert await sql_store.record_stock_change("pharm-1", level.version, row) is None

    after = await sql_store.get_stock("pharm-1")
    assert after.stock == Decimal("9")
    assert after.version == level.version + 1
    assert len(await sql_store.list_stock_history(USER_ID)) == 1


@pytest.mark.asyncio
async def test_ledger_on_database(sql_store: SqlStore) -> None:
    ledger = StockLedgerService(sql_store)
    await ledger.apply_confirmation_stock_effect(False, True, Decimal("1"), "pharm-1")
    await ledger.refill("pharm-1", 5)

    history = await sql_store.list_stock_history(USER_ID, medicine_id="pharm-1", limit=1)
    assert len(history) == 1
    assert (await sql_store.get_stock("pharm-1")).stock == Decimal("14")


@pytest.mark.asyncio
async def test_confirmation_upsert_keeps_one_row_per_dose(sql_store: SqlStore) -> None:
    dose = utc(2024, 1, 1, 9, 0)
    first, previous = await sql_store.upsert_confirmation(
        Confirmation(user_id=USER_ID, medicine_id="med-1", scheduled_datetime=dose, taken=True)
    )
    assert previous is False

    second, previous = await sql_store.upsert_confirmation(
        Confirmation(user_id=USER_ID, medicine_id="med-1", scheduled_datetime=dose, taken=False, skipped=True)
    )
    assert previous is True
    assert first.id == second.id
    assert second.taken is False
    assert second.skipped is True

    third, previous = await sql_store.upsert_confirmation(
        Confirmation(user_id=USER_ID, medicine_id="med-1", scheduled_datetime=dose, taken=False, notes="late")
    )
    assert previous is False
    assert third.notes == "late"

    existing = await sql_store.get_existing_confirmation(USER_ID, "med-1", dose)
    assert (existing.id, existing.taken, existing.notes) == (first.id, False, "late")

    listed = await sql_store.list_confirmations(USER_ID, start=utc(2024, 1, 1), end=utc(2024, 1, 2))
    assert len(listed) == 1


def _confirmations(store: SqlStore) -> ConfirmationService:
    return ConfirmationService(store, store, StockLedgerService(store))


@pytest.mark.asyncio
async def test_concurrent_first_confirmations_use_one_dose(sql_store: SqlStore) -> None:
    service = _confirmations(sql_store)
    dose = utc(2024, 1, 1, 9, 0)

    outcomes = await asyncio.gather(
        service.confirm(USER_ID, "med-1", dose, taken=True),
        service.confirm(USER_ID, "med-1", dose, taken=True),
    )

    assert len({o.confirmation.id for o in outcomes}) == 1
    assert [o.stock_entry is not None for o in outcomes].count(True) == 1
    assert (await sql_store.get_stock("pharm-1")).stock == Decimal("9")
    assert len(await sql_store.list_stock_history(USER_ID)) == 1


@pytest.mark.asyncio
async def test_concurrent_repeated_taken_moves_stock_once(sql_store: SqlStore) -> None:
    service = _confirmations(sql_store)
    dose = utc(2024, 1, 1, 9, 0)
    await service.confirm(USER_ID, "med-1", dose, taken=False)

    await asyncio.gather(
        service.confirm(USER_ID, "med-1", dose, taken=True),
        service.confirm(USER_ID, "med-1", dose, taken=True),
    )

    assert (await sql_store.get_stock("pharm-1")).stock == Decimal("9")
    history = await sql_store.list_stock_history(USER_ID)
    assert [h.delta for h in history] == [Decimal("-1")]
