from decimal import Decimal

import pytest

from medreminder.stores.memory import InMemoryStore

from .factories import USER_ID, FakeTransport, make_medicine


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def stocked_store(store: InMemoryStore) -> InMemoryStore:
    """A store holding one daily medicine linked to a pharmacy item with 10 tablets."""
    store.add_pharmacy_item("pharm-1", USER_ID, 10)
    store.add_medicine(
        make_medicine(pharmacy_medicine_id="pharm-1", dose_amount=Decimal("1"), dose_unit="tablet")
    )
    return store
