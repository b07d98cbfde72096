from decimal import Decimal

import pytest

from medreminder.domain import StockLevel
from medreminder.exceptions import StockReadError, StockWriteError
from medreminder.services.stock_ledger import (
    REVERTED_TAKEN_NOTE,
    StockLedgerService,
    compute_confirmation_effect,
)
from medreminder.stores.memory import InMemoryStore

from .factories import USER_ID


def _level(stock, version: int = 0) -> StockLevel:
    return StockLevel(medicine_id="pharm-1", user_id=USER_ID, stock=Decimal(str(stock)), unit="tablet", version=version)


def test_taken_decrements_by_dose() -> None:
    entry = compute_confirmation_effect(False, True, Decimal("1"), _level(10))
    assert entry.delta == Decimal("-1")
    assert entry.before_stock == Decimal("10")
    assert entry.after_stock == Decimal("9")
    assert entry.source == "taken"
    assert entry.note is None


def test_taken_clamps_at_zero() -> None:
    entry = compute_confirmation_effect(False, True, Decimal("2"), _level("0.5"))
    assert entry.after_stock == Decimal("0")
    assert entry.delta == Decimal("-2")


def test_revert_restores_dose() -> None:
    entry = compute_confirmation_effect(True, False, Decimal("1"), _level(9))
    assert entry.delta == Decimal("1")
    assert entry.after_stock == Decimal("10")
    assert entry.source == "manual_adjustment"
    assert entry.note == REVERTED_TAKEN_NOTE


def test_revert_never_leaves_negative_stock() -> None:
    entry = compute_confirmation_effect(True, False, Decimal("1"), _level(-5))
    assert entry.delta == Decimal("1")
    assert entry.before_stock == Decimal("-5")
    assert entry.after_stock == Decimal("0")


@pytest.mark.parametrize("flag", [True, False])
def test_unchanged_flag_has_no_effect(flag: bool) -> None:
    assert compute_confirmation_effect(flag, flag, Decimal("1"), _level(10)) is None


def test_non_positive_dose_is_rejected() -> None:
    with pytest.raises(ValueError, match="dose_amount"):
        compute_confirmation_effect(False, True, Decimal("0"), _level(10))


@pytest.mark.asyncio
async def test_taken_then_untaken_matches_worked_example(stocked_store: InMemoryStore) -> None:
    ledger = StockLedgerService(stocked_store)

    taken = await ledger.apply_confirmation_stock_effect(False, True, Decimal("1"), "pharm-1")
    assert (taken.delta, taken.before_stock, taken.after_stock, taken.source) == (
        Decimal("-1"), Decimal("10"), Decimal("9"), "taken",
    )
    assert stocked_store.stock["pharm-1"].stock == Decimal("9")

    reverted = await ledger.apply_confirmation_stock_effect(True, False, Decimal("1"), "pharm-1")
    assert (reverted.delta, reverted.before_stock, reverted.after_stock, reverted.source) == (
        Decimal("1"), Decimal("9"), Decimal("10"), "manual_adjustment",
    )
    assert stocked_store.stock["pharm-1"].stock == Decimal("10")


@pytest.mark.asyncio
async def test_toggle_nets_one_decrement(stocked_store: InMemoryStore) -> None:
    ledger = StockLedgerService(stocked_store)
    await ledger.apply_confirmation_stock_effect(False, True, 1, "pharm-1")
    await ledger.apply_confirmation_stock_effect(True, False, 1, "pharm-1")
    await ledger.apply_confirmation_stock_effect(False, True, 1, "pharm-1")

    assert stocked_store.stock["pharm-1"].stock == Decimal("9")
    assert len(stocked_store.stock_history) == 3


@pytest.mark.asyncio
async def test_history_chains_before_and_after(stocked_store: InMemoryStore) -> None:
    ledger = StockLedgerService(stocked_store)
    await ledger.refill("pharm-1", 5)
    await ledger.apply_confirmation_stock_effect(False, True, 2, "pharm-1")
    await ledger.set_stock_level("pharm-1", 20)

    history = stocked_store.stock_history
    for previous, current in zip(history, history[1:]):
        assert current.before_stock == previous.after_stock
    for row in history:
        assert row.before_stock + row.delta == row.after_stock
    assert history[-1].after_stock == stocked_store.stock["pharm-1"].stock


class RacingStore(InMemoryStore):
    """Loses the compare-and-swap a fixed number of times to a concurrent writer."""

    def __init__(self, losses: int):
        super().__init__()
        self.losses = losses

    async def record_stock_change(self, pharmacy_medicine_id, expected_version, row):
        if self.losses > 0:
            self.losses -= 1
            # Another writer takes one tablet between our read and our write
            level = self.stock[pharmacy_medicine_id]
            await self.set_stock(pharmacy_medicine_id, level.stock - 1)
        return await super().record_stock_change(pharmacy_medicine_id, expected_version, row)


@pytest.mark.asyncio
async def test_cas_retry_rereads_stock() -> None:
    store = RacingStore(losses=1)
    store.add_pharmacy_item("pharm-1", USER_ID, 10)
    ledger = StockLedgerService(store, max_attempts=3)

    entry = await ledger.apply_confirmation_stock_effect(False, True, 1, "pharm-1")

    assert entry.before_stock == Decimal("9")
    assert entry.after_stock == Decimal("8")
    assert store.stock["pharm-1"].stock == Decimal("8")


@pytest.mark.asyncio
async def test_cas_gives_up_after_max_attempts() -> None:
    store = RacingStore(losses=5)
    store.add_pharmacy_item("pharm-1", USER_ID, 10)
    ledger = StockLedgerService(store, max_attempts=2)

    with pytest.raises(StockWriteError):
        await ledger.refill("pharm-1", 1)
    assert store.stock_history == []


@pytest.mark.asyncio
async def test_missing_item_is_a_read_error(store: InMemoryStore) -> None:
    ledger = StockLedgerService(store)
    with pytest.raises(StockReadError):
        await ledger.apply_confirmation_stock_effect(False, True, 1, "missing")


@pytest.mark.asyncio
async def test_record_initial_stock(stocked_store: InMemoryStore) -> None:
    entry = await StockLedgerService(stocked_store).record_initial_stock("pharm-1")
    assert entry.source == "initial_stock"
    assert entry.before_stock == Decimal("0")
    assert entry.after_stock == Decimal("10")
    assert entry.delta == Decimal("10")
    assert entry.id is not None


@pytest.mark.asyncio
async def test_refill_requires_positive_amount(stocked_store: InMemoryStore) -> None:
    with pytest.raises(ValueError):
        await StockLedgerService(stocked_store).refill("pharm-1", 0)


@pytest.mark.asyncio
async def test_set_stock_level_to_same_value_is_a_no_op(stocked_store: InMemoryStore) -> None:
    ledger = StockLedgerService(stocked_store)
    assert await ledger.set_stock_level("pharm-1", 10) is None
    assert stocked_store.stock_history == []

    entry = await ledger.set_stock_level("pharm-1", 4, note="counted")
    assert entry.delta == Decimal("-6")
    assert entry.source == "manual_adjustment"
    assert entry.note == "counted"
