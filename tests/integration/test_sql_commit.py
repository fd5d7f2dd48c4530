"""Commit + idempotency with the SQL ledger and invoice store.

Goal: commit is safe under retries and never double-invoices.
"""

import threading
from collections import Counter
from decimal import Decimal

from sqlalchemy import func, select

from staff_pay_engine.calculators.invoice_builder import InvoiceBatchBuilder
from staff_pay_engine.models import InvoiceLineRecord, WorkLogEntry
from staff_pay_engine.services.coordinator import CommitOutcome, InvoicingCoordinator
from staff_pay_engine.services.invoice_store import InvoiceEmissionError, SqlInvoiceStore
from staff_pay_engine.services.pay_config import SqlPayConfigLoader
from staff_pay_engine.services.state_machine import InvoicingRunStatus
from staff_pay_engine.services.work_ledger import SqlWorkLedger

from ..conftest import FIXED_NOW, SequentialSuffix
from .conftest import ELIGIBLE_IDS, IN_PROGRESS_ID, PAID_ID


class BrokenInvoiceStore(SqlInvoiceStore):
    """Writes the invoice lines, then fails before the batch is confirmed."""

    def emit(self, batch, transaction=None):
        super().emit(batch, transaction)
        raise InvoiceEmissionError(batch.invoice_number, "export rejected")


def _coordinator(factory, store=None):
    return InvoicingCoordinator(
        ledger=SqlWorkLedger(factory),
        config_loader=SqlPayConfigLoader(factory),
        invoice_store=store or SqlInvoiceStore(factory),
        builder=InvoiceBatchBuilder(suffix_factory=SequentialSuffix()),
        clock=lambda: FIXED_NOW,
    )


def _rows(factory):
    with factory() as session:
        return {
            row.work_log_id: row
            for row in session.execute(select(WorkLogEntry)).scalars()
        }


def _line_count(factory):
    with factory() as session:
        return session.scalar(select(func.count()).select_from(InvoiceLineRecord))


class TestSqlCommitBasics:
    """Test basic commit behaviour."""

    def test_preview_matches_seed(self, seeded_db):
        result = _coordinator(seeded_db).preview()

        assert result.handle.item_ids == ELIGIBLE_IDS
        assert Decimal(result.summary["grand_total"]) == Decimal("380000")
        assert list(result.payments) == ["Nguyen Van A", "Tran Thi B"]
        assert _line_count(seeded_db) == 0, "Preview records no invoice"

    def test_commit_marks_rows_and_records_lines(self, seeded_db):
        result = _coordinator(seeded_db).commit()

        assert result.outcome == CommitOutcome.INVOICED
        assert result.status == InvoicingRunStatus.LEDGER_UPDATED

        rows = _rows(seeded_db)
        for item_id in ELIGIBLE_IDS:
            assert rows[item_id].paid_state == "Invoiced"
            assert rows[item_id].invoice_number == result.invoice_batch.invoice_number
        assert rows[PAID_ID].paid_state == "Paid"
        assert rows[IN_PROGRESS_ID].paid_state == ""
        assert _line_count(seeded_db) == 2

        stored = SqlInvoiceStore(seeded_db).find_lines(
            invoice_number=result.invoice_batch.invoice_number
        )
        assert sum((line.total_amount for line in stored), Decimal("0")) == Decimal("380000")

    def test_commit_is_idempotent(self, seeded_db):
        """A second commit finds nothing and writes nothing."""
        coordinator = _coordinator(seeded_db)
        coordinator.commit()

        second = coordinator.commit()

        assert second.outcome == CommitOutcome.NOTHING_TO_DO
        assert _line_count(seeded_db) == 2

    def test_status_counts_unpaid(self, seeded_db):
        coordinator = _coordinator(seeded_db)
        assert coordinator.status().unpaid_tasks == 3

        coordinator.commit()

        assert coordinator.status().unpaid_tasks == 0


class TestSqlCommitRaces:
    """Interleaved previews and commits."""

    def test_second_commit_of_same_preview_skips(self, seeded_db):
        """Two operators preview the same work; only the first commit invoices it."""
        first = _coordinator(seeded_db)
        second = _coordinator(seeded_db)
        handle_a = first.preview().handle
        handle_b = second.preview().handle

        result_a = first.commit(handle_a)
        result_b = second.commit(handle_b)

        assert result_a.outcome == CommitOutcome.INVOICED
        assert result_b.outcome == CommitOutcome.NOTHING_TO_DO
        assert sorted(result_b.skipped_item_ids) == ELIGIBLE_IDS
        assert _line_count(seeded_db) == 2

    def test_row_changed_between_read_and_write_conflicts(self, seeded_db):
        """A stale observed paid_state makes the write a conflict, not an overwrite."""
        ledger = SqlWorkLedger(seeded_db)
        ledger.set_paid_state(3, "Paid", expected="")

        result = ledger.set_paid_state(3, "Invoiced", expected="")

        assert result.updated is False
        assert result.current_state == "Paid"


class TestSqlEmissionFailure:
    """Emission failure leaves no trace."""

    def test_claims_and_lines_are_rolled_back(self, seeded_db):
        coordinator = _coordinator(seeded_db, BrokenInvoiceStore(seeded_db))

        result = coordinator.commit()

        assert result.outcome == CommitOutcome.EMISSION_FAILED
        assert sorted(result.failed_item_ids) == ELIGIBLE_IDS
        rows = _rows(seeded_db)
        assert all(rows[i].paid_state == "" for i in ELIGIBLE_IDS)
        assert all(rows[i].invoice_number is None for i in ELIGIBLE_IDS)
        assert _line_count(seeded_db) == 0

    def test_retry_after_emission_failure(self, seeded_db):
        _coordinator(seeded_db, BrokenInvoiceStore(seeded_db)).commit()

        result = _coordinator(seeded_db).commit()

        assert result.outcome == CommitOutcome.INVOICED
        assert sorted(result.claimed_item_ids) == ELIGIBLE_IDS


def _seed_extra_rows(factory, count):
    """Add ``count`` done, unpaid S1 rows; return every eligible id."""
    with factory() as session:
        session.add_all(
            WorkLogEntry(
                staff_key="S1",
                task_type="Play-by-play",
                league="V-League",
                round="R3",
                team1="Ha Noi",
                team2="Hai Phong",
                evidence_link=f"https://example.com/extra/{n}",
                completion_date="2024-03-10",
                status="Done",
                paid_state="",
            )
            for n in range(count)
        )
        session.commit()
        return sorted(
            session.scalars(
                select(WorkLogEntry.work_log_id).where(
                    WorkLogEntry.status == "Done", WorkLogEntry.paid_state == ""
                )
            )
        )


def _run_together(coordinators, call):
    """Start ``call(coordinator)`` on one thread per coordinator at the same moment."""
    barrier = threading.Barrier(len(coordinators))
    results = []
    errors = []
    lock = threading.Lock()

    def run(coordinator):
        barrier.wait()
        try:
            result = call(coordinator)
        except Exception as exc:  # reported by the assertion below
            with lock:
                errors.append(exc)
            return
        with lock:
            results.append(result)

    threads = [threading.Thread(target=run, args=(c,)) for c in coordinators]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == [], f"Commit raised: {errors}"
    assert len(results) == len(coordinators)
    return results


class TestSqlConcurrentCommits:
    """Threads committing against one SQLite file at the same time."""

    def test_each_row_invoiced_exactly_once(self, seeded_db):
        eligible = _seed_extra_rows(seeded_db, 60)
        coordinators = [
            InvoicingCoordinator(
                ledger=SqlWorkLedger(seeded_db),
                config_loader=SqlPayConfigLoader(seeded_db),
                invoice_store=SqlInvoiceStore(seeded_db),
                builder=InvoiceBatchBuilder(),
            )
            for _ in range(4)
        ]

        results = _run_together(coordinators, lambda c: c.commit())

        failed = [i for r in results for i in r.failed_item_ids]
        assert failed == [], "A busy database is waited on, not reported as a write failure"
        assert all(
            r.outcome in (CommitOutcome.INVOICED, CommitOutcome.NOTHING_TO_DO) for r in results
        )

        claimed = Counter(i for r in results for i in r.claimed_item_ids)
        assert sorted(claimed) == eligible
        assert set(claimed.values()) == {1}, "No row claimed by two runs"

        rows = _rows(seeded_db)
        assert all(rows[i].paid_state == "Invoiced" for i in eligible)

        stored = SqlInvoiceStore(seeded_db).find_lines()
        invoiced = Counter(i for line in stored for i in line.item_ids)
        assert invoiced == claimed

    def test_concurrent_commits_of_one_preview(self, seeded_db):
        """Runs holding the same handle: one invoices, the rest skip every item."""
        coordinators = [_coordinator(seeded_db) for _ in range(3)]
        handle = coordinators[0].preview().handle

        results = _run_together(coordinators, lambda c: c.commit(handle))

        invoiced = [r for r in results if r.outcome == CommitOutcome.INVOICED]
        assert len(invoiced) == 1
        assert sorted(invoiced[0].claimed_item_ids) == ELIGIBLE_IDS
        for result in results:
            if result is invoiced[0]:
                continue
            assert result.outcome == CommitOutcome.NOTHING_TO_DO
            assert sorted(result.skipped_item_ids) == ELIGIBLE_IDS
            assert result.failed_item_ids == []
        assert _line_count(seeded_db) == 2
