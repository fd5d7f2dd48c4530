"""Pytest fixtures for staff pay engine tests."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from staff_pay_engine.calculators.invoice_builder import InvoiceBatchBuilder
from staff_pay_engine.calculators.rate_table import RateEntry, RateTable, StaffDirectory
from staff_pay_engine.calculators.types import WorkItem
from staff_pay_engine.services.coordinator import InvoicingCoordinator
from staff_pay_engine.services.invoice_store import InMemoryInvoiceStore
from staff_pay_engine.services.pay_config import StaticPayConfigLoader
from staff_pay_engine.services.work_ledger import InMemoryWorkLedger

FIXED_NOW = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


def make_item(item_id: int, staff_key: str = "S1", task_type: str = "Play-by-play", **fields) -> WorkItem:
    """Build a done, unpaid work item with overridable fields."""
    defaults = {
        "league": "V-League",
        "round": "R1",
        "team1": "Ha Noi",
        "team2": "Hai Phong",
        "evidence_link": f"https://example.com/e/{item_id}",
        "completion_date": "2024-03-01",
        "status": "Done",
        "paid_state": "",
    }
    defaults.update(fields)
    return WorkItem(item_id=item_id, staff_key=staff_key, task_type=task_type, **defaults)


class SequentialSuffix:
    """Deterministic invoice number suffixes: 000001, 000002, ..."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        return f"{self.calls:06X}"


@pytest.fixture
def rates() -> RateTable:
    """Play-by-play 100,000 (S1 custom 150,000), Highlights 80,000."""
    return RateTable(
        [
            RateEntry(
                task_type="Play-by-play",
                default_rate=Decimal("100000"),
                custom_rates={"S1": Decimal("150000")},
            ),
            RateEntry(task_type="Highlights", default_rate=Decimal("80000")),
        ]
    )


@pytest.fixture
def staff() -> StaffDirectory:
    """S1 and S1-alt share a legal name; S2 maps; S9 is unmapped."""
    return StaffDirectory(
        {
            "S1": "Nguyen Van A",
            "S1-alt": "Nguyen Van A",
            "S2": "Tran Thi B",
        }
    )


@pytest.fixture
def work_items() -> list[WorkItem]:
    """Mixed ledger: eligible, paid, invoiced, not done and unknown type rows."""
    return [
        make_item(1, "S1", "Play-by-play"),
        make_item(2, "S1-alt", "Play-by-play"),
        make_item(3, "S2", "Highlights"),
        make_item(4, "S2", "Highlights", paid_state="Paid"),
        make_item(5, "S2", "Highlights", paid_state="Invoiced"),
        make_item(6, "S1", "Play-by-play", status="In progress"),
        make_item(7, "S9", "Commentary"),
    ]


@pytest.fixture
def ledger(work_items) -> InMemoryWorkLedger:
    return InMemoryWorkLedger(work_items)


@pytest.fixture
def invoice_store() -> InMemoryInvoiceStore:
    return InMemoryInvoiceStore()


@pytest.fixture
def builder() -> InvoiceBatchBuilder:
    return InvoiceBatchBuilder(prefix="INV", suffix_factory=SequentialSuffix())


@pytest.fixture
def coordinator(ledger, rates, staff, invoice_store, builder) -> InvoicingCoordinator:
    """Coordinator over in-memory backends with a fixed clock."""
    return InvoicingCoordinator(
        ledger=ledger,
        config_loader=StaticPayConfigLoader(rates, staff),
        invoice_store=invoice_store,
        builder=builder,
        clock=lambda: FIXED_NOW,
    )
