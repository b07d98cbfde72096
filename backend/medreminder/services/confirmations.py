"""Dose confirmation - records taken/skipped and keeps pharmacy stock in step."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..domain import Confirmation, StockHistoryEntry
from ..exceptions import StockReadError, StockWriteError
from ..stores.base import ConfirmationStore, MedicineStore
from ..utils.time_utils import ensure_utc, utc_now
from .stock_ledger import StockLedgerService

logger = logging.getLogger(__name__)


@dataclass
class ConfirmationOutcome:
    """The saved confirmation plus whatever happened to stock."""
    confirmation: Confirmation
    stock_entry: Optional[StockHistoryEntry] = None
    stock_error: Optional[str] = None


class ConfirmationService:
    """Saves a dose confirmation, then applies its stock effect.

    The confirmation is the primary record and is committed first. A stock
    failure is logged and reported on the outcome but leaves the confirmation
    in place.
    """

    def __init__(
        self,
        confirmations: ConfirmationStore,
        medicines: MedicineStore,
        ledger: StockLedgerService,
    ):
        self._confirmations = confirmations
        self._medicines = medicines
        self._ledger = ledger

    async def confirm(
        self,
        user_id: str,
        medicine_id: str,
        scheduled_datetime: datetime,
        taken: bool,
        skipped: bool = False,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ConfirmationOutcome:
        scheduled_datetime = ensure_utc(scheduled_datetime)

        # previous_taken is reported by the write itself
        saved, previous_taken = await self._confirmations.upsert_confirmation(
            Confirmation(
                user_id=user_id,
                medicine_id=medicine_id,
                scheduled_datetime=scheduled_datetime,
                taken=bool(taken),
                skipped=bool(skipped),
                notes=notes or None,
                confirmed_at=now or utc_now(),
            )
        )
        outcome = ConfirmationOutcome(confirmation=saved)

        if previous_taken == saved.taken:
            return outcome

        medicine = await self._medicines.get_medicine(medicine_id)
        if medicine is None or medicine.user_id != user_id:
            logger.warning(f"Confirmation for unknown medicine {medicine_id}, stock untouched")
            return outcome
        if not medicine.pharmacy_medicine_id or not medicine.dose_amount:
            return outcome

        try:
            outcome.stock_entry = await self._ledger.apply_confirmation_stock_effect(
                previous_taken,
                saved.taken,
                medicine.dose_amount,
                medicine.pharmacy_medicine_id,
            )
        except (StockReadError, StockWriteError) as e:
            logger.error(f"Stock not adjusted for confirmation of {medicine_id}: {e}")
            outcome.stock_error = str(e)

        return outcome
