"""Shared test fixtures for branch-ledger.

Storage fixtures run against a SQLite file in the test's tmp_path so every
connection sees the same database.
"""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine

from branch_ledger.manifest import (
    AllocationLedger,
    Direction,
    Item,
    ManifestDataService,
    ManifestEntry,
    ManifestService,
)


class TickingClock:
    """Returns a fixed start time, one minute later on every call."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + timedelta(minutes=1)
        return value


@pytest.fixture()
def clock() -> TickingClock:
    return TickingClock(datetime(2025, 3, 14, 9, 30))


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield engine
    engine.dispose()


@pytest.fixture()
def data_service(engine) -> ManifestDataService:
    service = ManifestDataService(engine)
    service.ensure_schema()
    return service


@pytest.fixture()
def service(data_service, clock) -> ManifestService:
    return ManifestService(data_service=data_service, clock=clock)


@pytest.fixture()
def ledger(clock) -> AllocationLedger:
    return AllocationLedger(clock=clock)


def make_entry(*items: Item, direction: Direction = Direction.INCOMING,
               number: str = "BOL-2025-001", entry_id: str = "entry-1") -> ManifestEntry:
    return ManifestEntry(
        entry_id=entry_id,
        direction=direction,
        origin_branch_id="branch-famagusta",
        origin_branch_name="Famagusta",
        manifest_number=number,
        items=list(items),
        created_at=datetime(2025, 3, 14, 9, 0),
    )


@pytest.fixture()
def incoming_entry() -> ManifestEntry:
    return make_entry(
        Item(order_index=0, description="Boxes of tiles", total_quantity=10,
             item_id="item-a", value=100, currency="USD",
             recipient_name="Ali", destination_region="Nicosia"),
        Item(order_index=1, description="Olive oil", total_quantity=5,
             item_id="item-b", value=20, currency="TRY"),
    )


@pytest.fixture()
def entry_factory():
    """Build in-memory entries without touching the store."""
    return make_entry
