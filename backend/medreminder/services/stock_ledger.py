"""Stock ledger - pharmacy stock movements and their append-only history.

The pharmacy item's available_stock is the running total. Every change to it
is written together with one history row whose before/after pair matches the
item's stock immediately before and after the write.

Dose confirmations only move stock on a change of the taken flag:

    previous  new     effect
    False     True    -dose_amount, clamped at zero, source "taken"
    True      False   +dose_amount, floored at zero, source "manual_adjustment",
                      note "reverted_taken"
    same      same    nothing

so toggling taken / not taken / taken nets to exactly one decrement.
"""
import logging
from decimal import Decimal
from enum import Enum
from typing import Optional

from ..config import settings
from ..domain import StockHistoryEntry, StockLevel
from ..exceptions import StockReadError, StockWriteError
from ..stores.base import PharmacyStore

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

REVERTED_TAKEN_NOTE = "reverted_taken"


class StockSource(str, Enum):
    """Why a stock movement happened."""
    INITIAL_STOCK = "initial_stock"
    REFILL = "refill"
    TAKEN = "taken"
    MANUAL_ADJUSTMENT = "manual_adjustment"


def _decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def compute_confirmation_effect(
    previous_taken: bool,
    new_taken: bool,
    dose_amount,
    item: StockLevel,
) -> Optional[StockHistoryEntry]:
    """Stock movement caused by a confirmation changing from previous_taken to new_taken.

    Returns None when the taken flag did not change.
    """
    if bool(previous_taken) == bool(new_taken):
        return None

    dose = _decimal(dose_amount)
    if dose <= ZERO:
        raise ValueError(f"dose_amount must be positive, got {dose}")

    before = item.stock
    if new_taken:
        return StockHistoryEntry(
            user_id=item.user_id,
            medicine_id=item.medicine_id,
            delta=-dose,
            before_stock=before,
            after_stock=max(ZERO, before - dose),
            stock_unit=item.unit,
            source=StockSource.TAKEN.value,
        )

    return StockHistoryEntry(
        user_id=item.user_id,
        medicine_id=item.medicine_id,
        delta=dose,
        before_stock=before,
        after_stock=max(ZERO, before + dose),
        stock_unit=item.unit,
        source=StockSource.MANUAL_ADJUSTMENT.value,
        note=REVERTED_TAKEN_NOTE,
    )


class StockLedgerService:
    """Applies stock movements through a PharmacyStore with compare-and-swap retries."""

    def __init__(self, store: PharmacyStore, max_attempts: Optional[int] = None):
        self._store = store
        self._max_attempts = max(1, max_attempts or settings.stock_write_retries)

    async def _read(self, pharmacy_medicine_id: str) -> StockLevel:
        try:
            level = await self._store.get_stock(pharmacy_medicine_id)
        except Exception as e:
            raise StockReadError(f"Failed to read stock for {pharmacy_medicine_id}: {e}") from e
        if level is None:
            raise StockReadError(f"Pharmacy medicine {pharmacy_medicine_id} not found")
        return level

    async def _apply(self, pharmacy_medicine_id: str, build_entry) -> Optional[StockHistoryEntry]:
        """Read, build the history row, and compare-and-swap until it sticks.

        build_entry(level) returns the row to write, or None for no movement.
        """
        for attempt in range(1, self._max_attempts + 1):
            level = await self._read(pharmacy_medicine_id)
            entry = build_entry(level)
            if entry is None:
                return None

            try:
                written = await self._store.record_stock_change(pharmacy_medicine_id, level.version, entry)
            except Exception as e:
                raise StockWriteError(f"Failed to write stock for {pharmacy_medicine_id}: {e}") from e

            if written is not None:
                logger.info(
                    f"Stock {written.source} for {pharmacy_medicine_id}: "
                    f"{written.before_stock} -> {written.after_stock} {written.stock_unit}"
                )
                return written

            logger.warning(
                f"Concurrent stock update on {pharmacy_medicine_id}, retrying "
                f"(attempt {attempt}/{self._max_attempts})"
            )

        raise StockWriteError(
            f"Stock for {pharmacy_medicine_id} changed concurrently {self._max_attempts} times"
        )

    async def apply_confirmation_stock_effect(
        self,
        previous_taken: bool,
        new_taken: bool,
        dose_amount,
        pharmacy_medicine_id: str,
    ) -> Optional[StockHistoryEntry]:
        """Apply (or reverse) a dose's effect on stock; None when nothing changed."""
        if bool(previous_taken) == bool(new_taken):
            return None
        return await self._apply(
            pharmacy_medicine_id,
            lambda level: compute_confirmation_effect(previous_taken, new_taken, dose_amount, level),
        )

    async def record_initial_stock(
        self, pharmacy_medicine_id: str, note: Optional[str] = None
    ) -> StockHistoryEntry:
        """Log the stock a newly created pharmacy item starts with."""
        level = await self._read(pharmacy_medicine_id)
        entry = StockHistoryEntry(
            user_id=level.user_id,
            medicine_id=level.medicine_id,
            delta=level.stock,
            before_stock=ZERO,
            after_stock=level.stock,
            stock_unit=level.unit,
            source=StockSource.INITIAL_STOCK.value,
            note=note,
        )
        try:
            return await self._store.append_stock_history(entry)
        except Exception as e:
            raise StockWriteError(f"Failed to record initial stock for {pharmacy_medicine_id}: {e}") from e

    async def refill(
        self, pharmacy_medicine_id: str, amount, note: Optional[str] = None
    ) -> StockHistoryEntry:
        """Add a refill to the stock on hand."""
        amount = _decimal(amount)
        if amount <= ZERO:
            raise ValueError(f"refill amount must be positive, got {amount}")

        def build(level: StockLevel) -> StockHistoryEntry:
            return StockHistoryEntry(
                user_id=level.user_id,
                medicine_id=level.medicine_id,
                delta=amount,
                before_stock=level.stock,
                after_stock=level.stock + amount,
                stock_unit=level.unit,
                source=StockSource.REFILL.value,
                note=note,
            )

        return await self._apply(pharmacy_medicine_id, build)

    async def set_stock_level(
        self, pharmacy_medicine_id: str, new_stock, note: Optional[str] = None
    ) -> Optional[StockHistoryEntry]:
        """Overwrite the stock on hand after a manual count; None if it already matched."""
        new_stock = _decimal(new_stock)
        if new_stock < ZERO:
            raise ValueError(f"stock cannot be negative, got {new_stock}")

        def build(level: StockLevel) -> Optional[StockHistoryEntry]:
            delta = new_stock - level.stock
            if delta == ZERO:
                return None
            return StockHistoryEntry(
                user_id=level.user_id,
                medicine_id=level.medicine_id,
                delta=delta,
                before_stock=level.stock,
                after_stock=new_stock,
                stock_unit=level.unit,
                source=StockSource.MANUAL_ADJUSTMENT.value,
                note=note,
            )

        return await self._apply(pharmacy_medicine_id, build)
