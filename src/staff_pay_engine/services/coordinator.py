"""Invoicing coordinator: preview and commit of invoice batches.

Run stages: selected → aggregated → batch_built → ledger_updated.

Commit claims items with a compare-and-set inside the ledger's unit of work,
builds the batch from the claimed items only, and emits it before the unit
closes. A failed emission reverts every claim of the run, so no item stays
marked invoiced without a recorded invoice.

When claims become visible depends on the ledger. The SQL ledger publishes
them when the unit commits. The in-memory ledger applies each claim at once,
so a concurrent run sees it as a conflict, and reverts it if the unit fails.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from staff_pay_engine.calculators.aggregator import PaymentAggregator
from staff_pay_engine.calculators.invoice_builder import InvoiceBatchBuilder
from staff_pay_engine.calculators.selector import UnpaidWorkSelector
from staff_pay_engine.calculators.summary import build_summary
from staff_pay_engine.calculators.types import (
    INVOICED_STATE,
    AggregationResult,
    InvoiceBatch,
    PaymentRecord,
    ResolutionErrors,
    WorkItem,
)
from staff_pay_engine.services.invoice_store import InvoiceEmissionError, InvoiceStore
from staff_pay_engine.services.pay_config import PayConfig, PayConfigLoader
from staff_pay_engine.services.state_machine import (
    InvoicingRunStateMachine,
    InvoicingRunStatus,
)
from staff_pay_engine.services.work_ledger import LedgerWriteError, WorkLedger, WriteStatus

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PreviewHandle:
    """Caller-held token tying a commit to what its preview showed.

    Pins the item set (with the paid_state observed for each item) and the
    fingerprint of the rate/staff configuration the preview used.
    """

    handle_id: UUID
    created_at: datetime
    config_fingerprint: str
    observed: tuple[tuple[int, str], ...] = ()

    @property
    def item_ids(self) -> list[int]:
        return [item_id for item_id, _ in self.observed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "handle_id": str(self.handle_id),
            "created_at": self.created_at.isoformat(),
            "config_fingerprint": self.config_fingerprint,
            "items": [
                {"item_id": item_id, "paid_state": paid_state}
                for item_id, paid_state in self.observed
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PreviewHandle:
        created_at = data["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return cls(
            handle_id=UUID(str(data["handle_id"])),
            created_at=created_at,
            config_fingerprint=data["config_fingerprint"],
            observed=tuple(
                (int(item["item_id"]), str(item.get("paid_state") or ""))
                for item in data.get("items", [])
            ),
        )


@dataclass
class PreviewResult:
    """What a commit would produce, without touching the ledger."""

    handle: PreviewHandle
    aggregation: AggregationResult
    summary: dict[str, Any]
    batch: InvoiceBatch
    status: InvoicingRunStatus

    @property
    def payments(self) -> dict[str, PaymentRecord]:
        return self.aggregation.payments

    @property
    def errors(self) -> ResolutionErrors:
        return self.aggregation.errors

    @property
    def nothing_to_do(self) -> bool:
        return not self.aggregation.payments

    def to_dict(self) -> dict[str, Any]:
        return {
            "nothing_to_do": self.nothing_to_do,
            "status": self.status.value,
            "handle": self.handle.to_dict(),
            "summary": self.summary,
            "payments": {name: p.to_dict() for name, p in self.payments.items()},
            "batch": self.batch.to_dict(),
        }


class CommitOutcome(str, Enum):
    """Outcome of a commit call."""

    INVOICED = "invoiced"
    NOTHING_TO_DO = "nothing_to_do"
    LEDGER_WRITE_FAILED = "ledger_write_failed"
    EMISSION_FAILED = "emission_failed"
    STALE_PREVIEW = "stale_preview"


@dataclass
class CommitResult:
    """Result of a commit call.

    ``failed_item_ids`` are the items that are still unbilled because of a
    write or emission failure; retry with ``preview(only_item_ids=...)``.
    ``skipped_item_ids`` were already claimed elsewhere and need nothing.
    """

    outcome: CommitOutcome
    status: InvoicingRunStatus
    aggregation: AggregationResult = field(
        default_factory=lambda: AggregationResult(payments={}, errors=ResolutionErrors())
    )
    invoice_batch: InvoiceBatch | None = None
    claimed_item_ids: list[int] = field(default_factory=list)
    skipped_item_ids: list[int] = field(default_factory=list)
    failed_item_ids: list[int] = field(default_factory=list)
    message: str = ""

    @property
    def payments(self) -> dict[str, PaymentRecord]:
        return self.aggregation.payments

    @property
    def errors(self) -> ResolutionErrors:
        return self.aggregation.errors

    @property
    def summary(self) -> dict[str, Any]:
        return build_summary(self.aggregation)

    @property
    def success(self) -> bool:
        return self.outcome in (CommitOutcome.INVOICED, CommitOutcome.NOTHING_TO_DO)

    @property
    def needs_retry(self) -> bool:
        return bool(self.failed_item_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "status": self.status.value,
            "message": self.message,
            "invoice_batch": self.invoice_batch.to_dict() if self.invoice_batch else None,
            "summary": self.summary,
            "payments": {name: p.to_dict() for name, p in self.payments.items()},
            "claimed_item_ids": list(self.claimed_item_ids),
            "skipped_item_ids": list(self.skipped_item_ids),
            "failed_item_ids": list(self.failed_item_ids),
        }


@dataclass(frozen=True)
class LedgerStatus:
    """Unpaid work count at a point in time."""

    unpaid_tasks: int
    last_check: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"unpaid_tasks": self.unpaid_tasks, "last_check": self.last_check.isoformat()}


class InvoicingCoordinator:
    """Orchestrates selection → aggregation → batch build → ledger update.

    Operations:
    - preview: build payments and a draft batch, returning a PreviewHandle
    - commit: claim, invoice and mark the work pinned by a handle (or all
      eligible work when no handle is given)
    - status: count unpaid work
    """

    def __init__(
        self,
        ledger: WorkLedger,
        config_loader: PayConfigLoader,
        invoice_store: InvoiceStore,
        builder: InvoiceBatchBuilder | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ledger = ledger
        self.config_loader = config_loader
        self.invoice_store = invoice_store
        self.builder = builder or InvoiceBatchBuilder()
        self.selector = UnpaidWorkSelector()
        self.aggregator = PaymentAggregator()
        self.clock = clock

    def status(self) -> LedgerStatus:
        return LedgerStatus(unpaid_tasks=self.ledger.count_unpaid(), last_check=self.clock())

    def preview(self, only_item_ids: Collection[int] | None = None) -> PreviewResult:
        """Compute payments and a draft batch. Never mutates the ledger.

        Raises:
            ConfigurationError: If the rate table or staff directory is missing
        """
        config = self.config_loader.load()

        run = InvoicingRunStateMachine()
        items = self.selector.select(self.ledger.read_all(), only_item_ids)
        now = self.clock()
        aggregation, batch = self._aggregate_and_build(run, items, config, now)

        handle = PreviewHandle(
            handle_id=uuid4(),
            created_at=now,
            config_fingerprint=config.fingerprint,
            observed=tuple((item.item_id, item.paid_state) for item in items),
        )
        logger.info(
            "Preview %s: %d tasks, %d payees",
            handle.handle_id,
            aggregation.task_count,
            len(aggregation.payments),
        )
        return PreviewResult(
            handle=handle,
            aggregation=aggregation,
            summary=build_summary(aggregation),
            batch=batch,
            status=run.status,
        )

    def commit(self, handle: PreviewHandle | None = None) -> CommitResult:
        """Invoice eligible work and mark it "Invoiced" in the ledger.

        Safe to call repeatedly: items already invoiced are skipped.

        Raises:
            ConfigurationError: If the rate table or staff directory is missing
        """
        config = self.config_loader.load()
        run = InvoicingRunStateMachine()

        if handle is not None and handle.config_fingerprint != config.fingerprint:
            run.fail()
            return CommitResult(
                outcome=CommitOutcome.STALE_PREVIEW,
                status=run.status,
                message="Pay configuration changed since preview; preview again",
            )

        now = self.clock()
        invoice_number = self.builder.generate_invoice_number(now)
        claimed: list[WorkItem] = []
        skipped: list[int] = []
        failed: list[int] = []

        try:
            with self.ledger.unit_of_work() as transaction:
                candidates = self._candidates(handle, skipped)
                if not candidates:
                    return CommitResult(
                        outcome=CommitOutcome.NOTHING_TO_DO,
                        status=run.status,
                        skipped_item_ids=skipped,
                        message="No unpaid work found",
                    )

                for item in candidates:
                    result = self.ledger.set_paid_state(
                        item.item_id,
                        INVOICED_STATE,
                        expected=item.paid_state,
                        invoice_number=invoice_number,
                    )
                    if result.status == WriteStatus.UPDATED:
                        claimed.append(item)
                    elif result.status == WriteStatus.CONFLICT:
                        logger.info(
                            "Item %s already claimed (paid_state=%r), skipping",
                            item.item_id,
                            result.current_state,
                        )
                        skipped.append(item.item_id)
                    else:
                        logger.warning("Item %s not updated: %s", item.item_id, result.error)
                        failed.append(item.item_id)

                if not claimed:
                    outcome = CommitOutcome.NOTHING_TO_DO
                    if failed:
                        run.fail()
                        outcome = CommitOutcome.LEDGER_WRITE_FAILED
                    return CommitResult(
                        outcome=outcome,
                        status=run.status,
                        skipped_item_ids=skipped,
                        failed_item_ids=failed,
                        message="No work item could be claimed",
                    )

                aggregation, batch = self._aggregate_and_build(
                    run, claimed, config, now, invoice_number
                )
                self.invoice_store.emit(batch, transaction)
        except InvoiceEmissionError as exc:
            logger.error("Invoice emission failed, claims reverted: %s", exc)
            run.fail()
            return CommitResult(
                outcome=CommitOutcome.EMISSION_FAILED,
                status=run.status,
                skipped_item_ids=skipped,
                failed_item_ids=[item.item_id for item in claimed] + failed,
                message=str(exc),
            )
        except LedgerWriteError as exc:
            logger.error("Ledger update failed: %s", exc)
            run.fail()
            return CommitResult(
                outcome=CommitOutcome.LEDGER_WRITE_FAILED,
                status=run.status,
                skipped_item_ids=skipped,
                failed_item_ids=[item.item_id for item in claimed] + failed,
                message=str(exc),
            )

        run.transition_to(InvoicingRunStatus.LEDGER_UPDATED)
        logger.info(
            "Invoice %s issued: %d lines, %d items, total %s",
            batch.invoice_number,
            len(batch.lines),
            len(claimed),
            batch.total_amount,
        )
        return CommitResult(
            outcome=CommitOutcome.INVOICED,
            status=run.status,
            aggregation=aggregation,
            invoice_batch=batch,
            claimed_item_ids=[item.item_id for item in claimed],
            skipped_item_ids=skipped,
            failed_item_ids=failed,
            message="Invoices created and work marked as invoiced",
        )

    def _candidates(self, handle: PreviewHandle | None, skipped: list[int]) -> list[WorkItem]:
        """Eligible items to claim, re-read from the ledger.

        Handle items whose paid_state moved since the preview are skipped.
        """
        snapshot = self.ledger.read_all()
        if handle is None:
            return self.selector.select(snapshot)

        current = {item.item_id: item for item in snapshot}
        candidates = []
        for item_id, observed_state in handle.observed:
            item = current.get(item_id)
            if item is not None and item.is_eligible and item.paid_state == observed_state:
                candidates.append(item)
            else:
                skipped.append(item_id)
        return candidates

    def _aggregate_and_build(
        self,
        run: InvoicingRunStateMachine,
        items: list[WorkItem],
        config: PayConfig,
        now: datetime,
        invoice_number: str | None = None,
    ) -> tuple[AggregationResult, InvoiceBatch]:
        aggregation = self.aggregator.aggregate(items, config.rates, config.staff)
        run.transition_to(InvoicingRunStatus.AGGREGATED)
        batch = self.builder.build(aggregation.payments, now, invoice_number)
        run.transition_to(InvoicingRunStatus.BATCH_BUILT)
        return aggregation, batch
