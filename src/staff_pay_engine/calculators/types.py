"""Type definitions for the selection → aggregation → invoice pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

DONE_STATUS = "Done"
PAID_STATE = "Paid"
INVOICED_STATE = "Invoiced"

# paid_state values that make a work item ineligible for invoicing
BILLED_STATES = frozenset({PAID_STATE, INVOICED_STATE})


def _text(value: Any) -> str:
    """Coerce a loosely typed cell value to str ('' for missing)."""
    if value is None:
        return ""
    return str(value)


class RateSource(str, Enum):
    """Provenance of a resolved rate."""

    CUSTOM = "custom"
    DEFAULT = "default"
    NONE = "none"


@dataclass(frozen=True)
class WorkItem:
    """One row of billable work as read from the work ledger."""

    item_id: int
    staff_key: str = ""
    task_type: str = ""
    league: str = ""
    round: str = ""
    team1: str = ""
    team2: str = ""
    evidence_link: str = ""
    completion_date: str = ""
    status: str = ""
    paid_state: str = ""

    @property
    def is_eligible(self) -> bool:
        """Done and not yet paid or invoiced."""
        return self.status == DONE_STATUS and self.paid_state not in BILLED_STATES

    @property
    def teams(self) -> str:
        return f"{self.team1} vs {self.team2}"

    @classmethod
    def from_row(cls, item_id: int, row: Mapping[str, Any]) -> WorkItem:
        """Build a WorkItem from a loosely typed row, blank for missing fields."""
        return cls(
            item_id=item_id,
            staff_key=_text(row.get("staff_key")),
            task_type=_text(row.get("task_type")),
            league=_text(row.get("league")),
            round=_text(row.get("round")),
            team1=_text(row.get("team1")),
            team2=_text(row.get("team2")),
            evidence_link=_text(row.get("evidence_link")),
            completion_date=_text(row.get("completion_date")),
            status=_text(row.get("status")),
            paid_state=_text(row.get("paid_state")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "staff_key": self.staff_key,
            "task_type": self.task_type,
            "league": self.league,
            "round": self.round,
            "team1": self.team1,
            "team2": self.team2,
            "evidence_link": self.evidence_link,
            "completion_date": self.completion_date,
            "status": self.status,
            "paid_state": self.paid_state,
        }


@dataclass(frozen=True)
class ResolvedTask:
    """A work item with its resolved rate."""

    item: WorkItem
    rate: Decimal
    rate_source: RateSource

    @property
    def has_valid_rate(self) -> bool:
        return self.rate > 0

    @property
    def task_type(self) -> str:
        return self.item.task_type

    def to_dict(self) -> dict[str, Any]:
        data = self.item.to_dict()
        data.update(
            rate=str(self.rate),
            rate_source=self.rate_source.value,
            has_valid_rate=self.has_valid_rate,
        )
        return data


@dataclass
class PaymentRecord:
    """All resolved tasks owed to one legal payee."""

    staff_key: str  # staff key of the first task seen for this payee
    legal_name: str
    has_mapping: bool
    tasks: list[ResolvedTask] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        """Sum of resolved task rates."""
        return sum((task.rate for task in self.tasks), Decimal("0"))

    @property
    def task_count(self) -> int:
        return len(self.tasks)

    @property
    def item_ids(self) -> list[int]:
        return [task.item.item_id for task in self.tasks]

    def count_by_source(self, source: RateSource) -> int:
        return sum(1 for task in self.tasks if task.rate_source == source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "staff_key": self.staff_key,
            "legal_name": self.legal_name,
            "has_mapping": self.has_mapping,
            "total_amount": str(self.total_amount),
            "task_count": self.task_count,
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass(frozen=True)
class NoRateTask:
    """A work item whose task type has no rate entry."""

    item_id: int
    staff_key: str
    task_type: str
    league: str
    round: str
    teams: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "staff_key": self.staff_key,
            "task_type": self.task_type,
            "league": self.league,
            "round": self.round,
            "teams": self.teams,
        }


@dataclass
class ResolutionErrors:
    """Non-fatal resolution gaps accumulated during aggregation."""

    unmatched_task_types: set[str] = field(default_factory=set)
    unmatched_staff_keys: set[str] = field(default_factory=set)
    tasks_with_no_rate: list[NoRateTask] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(
            self.unmatched_task_types or self.unmatched_staff_keys or self.tasks_with_no_rate
        )

    def to_dict(self) -> dict[str, Any]:
        """Serializable form; sets are flattened to sorted lists."""
        return {
            "unmatched_task_types": sorted(self.unmatched_task_types),
            "unmatched_staff_keys": sorted(self.unmatched_staff_keys),
            "tasks_with_no_rate": [task.to_dict() for task in self.tasks_with_no_rate],
        }


@dataclass
class AggregationResult:
    """Payments keyed by legal name plus the errors met on the way."""

    payments: dict[str, PaymentRecord]
    errors: ResolutionErrors

    @property
    def grand_total(self) -> Decimal:
        return sum((p.total_amount for p in self.payments.values()), Decimal("0"))

    @property
    def task_count(self) -> int:
        return sum(p.task_count for p in self.payments.values())


@dataclass(frozen=True)
class InvoiceLine:
    """One payee row of an invoice batch."""

    invoice_number: str
    issued_at: datetime
    legal_name: str
    staff_key: str
    work_summary: str
    total_amount: Decimal
    evidence_links: str
    task_count: int
    item_ids: tuple[int, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_number": self.invoice_number,
            "issued_at": self.issued_at.isoformat(),
            "legal_name": self.legal_name,
            "staff_key": self.staff_key,
            "work_summary": self.work_summary,
            "total_amount": str(self.total_amount),
            "evidence_links": self.evidence_links,
            "task_count": self.task_count,
            "item_ids": list(self.item_ids),
        }


@dataclass(frozen=True)
class InvoiceBatch:
    """Invoice lines emitted by one invocation, sharing one invoice number."""

    invoice_number: str
    issued_at: datetime
    lines: tuple[InvoiceLine, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total_amount(self) -> Decimal:
        return sum((line.total_amount for line in self.lines), Decimal("0"))

    @property
    def item_ids(self) -> list[int]:
        return [item_id for line in self.lines for item_id in line.item_ids]

    def to_dict(self) -> dict[str, Any]:
        return {
            "invoice_number": self.invoice_number,
            "issued_at": self.issued_at.isoformat(),
            "total_amount": str(self.total_amount),
            "lines": [line.to_dict() for line in self.lines],
        }
