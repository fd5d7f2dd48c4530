"""Work ledger: source of work items and sink for paid-state writes.

Notes:
- Writes are compare-and-set per item: a write only lands when the row
  still holds the paid_state the caller observed.
- Moving an item to "Invoiced" is refused once it is "Paid" or "Invoiced",
  so re-invoicing is a no-op rather than a double charge.
- ``unit_of_work`` groups writes; leaving it with an exception reverts every
  write made inside it.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from staff_pay_engine.calculators.types import BILLED_STATES, INVOICED_STATE, WorkItem
from staff_pay_engine.models import WorkLogEntry

logger = logging.getLogger(__name__)


class WriteStatus(str, Enum):
    """Outcome of a single paid-state write."""

    UPDATED = "updated"
    CONFLICT = "conflict"  # row no longer holds the observed state
    FAILED = "failed"  # I/O failure, safe to retry


@dataclass(frozen=True)
class WriteResult:
    """Result of a compare-and-set on one work item."""

    item_id: int
    status: WriteStatus
    current_state: str | None = None
    error: str | None = None

    @property
    def updated(self) -> bool:
        return self.status == WriteStatus.UPDATED


class LedgerWriteError(Exception):
    """Raised when a unit of work cannot be made durable."""

    def __init__(self, message: str, item_ids: list[int] | None = None):
        self.item_ids = item_ids or []
        super().__init__(message)


class WorkLedger(ABC):
    """Source of work records and sink for paid-state writes."""

    @abstractmethod
    def read_all(self) -> list[WorkItem]:
        """Return every work item in ledger order."""

    @abstractmethod
    def set_paid_state(
        self,
        item_id: int,
        value: str,
        *,
        expected: str,
        invoice_number: str | None = None,
    ) -> WriteResult:
        """Set paid_state to ``value`` if it still equals ``expected``."""

    @abstractmethod
    def unit_of_work(self) -> Any:
        """Context manager grouping writes; yields a backend transaction handle."""

    def count_unpaid(self) -> int:
        return sum(1 for item in self.read_all() if item.is_eligible)


class InMemoryWorkLedger(WorkLedger):
    """Thread-safe in-memory ledger.

    Writes land immediately, even inside ``unit_of_work``. Each thread keeps
    its own undo log there; a revert only touches items still holding the
    value this thread wrote.
    """

    def __init__(self, items: Iterable[WorkItem] = ()):
        self._items: dict[int, WorkItem] = {item.item_id: item for item in items}
        self._invoice_numbers: dict[int, str] = {}
        self._lock = threading.RLock()
        self._local = threading.local()

    def read_all(self) -> list[WorkItem]:
        with self._lock:
            return list(self._items.values())

    def invoice_number_for(self, item_id: int) -> str | None:
        return self._invoice_numbers.get(item_id)

    def set_paid_state(
        self,
        item_id: int,
        value: str,
        *,
        expected: str,
        invoice_number: str | None = None,
    ) -> WriteResult:
        with self._lock:
            current = self._items.get(item_id)
            if current is None:
                return WriteResult(item_id, WriteStatus.FAILED, error="Unknown work item")

            if current.paid_state != expected or (
                value == INVOICED_STATE and current.paid_state in BILLED_STATES
            ):
                return WriteResult(item_id, WriteStatus.CONFLICT, current.paid_state)

            self._items[item_id] = replace(current, paid_state=value)
            previous_number = self._invoice_numbers.get(item_id)
            if invoice_number is not None:
                self._invoice_numbers[item_id] = invoice_number

            undo = getattr(self._local, "undo", None)
            if undo is not None:
                undo.append((item_id, expected, value, previous_number))

            return WriteResult(item_id, WriteStatus.UPDATED, value)

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        if getattr(self._local, "undo", None) is not None:
            # Nested: the outermost unit owns the undo log
            yield None
            return

        self._local.undo = []
        try:
            yield None
        except Exception:
            self._revert(self._local.undo)
            raise
        finally:
            self._local.undo = None

    def _revert(self, undo: list[tuple[int, str, str, str | None]]) -> None:
        with self._lock:
            for item_id, expected, written, previous_number in reversed(undo):
                current = self._items.get(item_id)
                if current is not None and current.paid_state == written:
                    self._items[item_id] = replace(current, paid_state=expected)
                    if previous_number is None:
                        self._invoice_numbers.pop(item_id, None)
                    else:
                        self._invoice_numbers[item_id] = previous_number

    def copy(self) -> InMemoryWorkLedger:
        """Independent copy of the current ledger state."""
        with self._lock:
            clone = InMemoryWorkLedger(self._items.values())
            clone._invoice_numbers = dict(self._invoice_numbers)
            return clone


def _row_to_item(row: Any) -> WorkItem:
    return WorkItem.from_row(row["work_log_id"], row)


class SqlWorkLedger(WorkLedger):
    """Work ledger backed by the ``work_log`` table.

    Outside a unit of work every call runs in its own short session. Inside
    one, all reads and writes share the unit's session and become visible
    together when it commits. Units of work are serialized on SQLite (the
    transaction starts as a writer), so a unit that waited behind another
    reads its committed claims and reports them as conflicts. Each write runs
    in a SAVEPOINT so a failing row is reported without aborting the others.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory
        self._local = threading.local()

    @property
    def current_session(self) -> Session | None:
        return getattr(self._local, "session", None)

    def read_all(self) -> list[WorkItem]:
        query = select(WorkLogEntry.__table__).order_by(WorkLogEntry.work_log_id)

        session = self.current_session
        if session is not None:
            return [_row_to_item(row) for row in session.execute(query).mappings()]

        with self.session_factory() as own_session:
            return [_row_to_item(row) for row in own_session.execute(query).mappings()]

    def set_paid_state(
        self,
        item_id: int,
        value: str,
        *,
        expected: str,
        invoice_number: str | None = None,
    ) -> WriteResult:
        session = self.current_session
        if session is not None:
            return self._compare_and_set(session, item_id, value, expected, invoice_number)

        with self.session_factory() as own_session:
            result = self._compare_and_set(own_session, item_id, value, expected, invoice_number)
            try:
                own_session.commit()
            except SQLAlchemyError as exc:
                logger.exception("Commit failed for paid_state write on item %s", item_id)
                own_session.rollback()
                return WriteResult(item_id, WriteStatus.FAILED, error=str(exc))
            return result

    def _compare_and_set(
        self,
        session: Session,
        item_id: int,
        value: str,
        expected: str,
        invoice_number: str | None,
    ) -> WriteResult:
        conditions = [WorkLogEntry.work_log_id == item_id]
        if expected == "":
            conditions.append(or_(WorkLogEntry.paid_state.is_(None), WorkLogEntry.paid_state == ""))
        else:
            conditions.append(WorkLogEntry.paid_state == expected)
        if value == INVOICED_STATE:
            conditions.append(
                or_(
                    WorkLogEntry.paid_state.is_(None),
                    WorkLogEntry.paid_state.notin_(sorted(BILLED_STATES)),
                )
            )

        values: dict[str, Any] = {"paid_state": value}
        if invoice_number is not None:
            values["invoice_number"] = invoice_number
            values["invoiced_at"] = datetime.now(timezone.utc)

        stmt = (
            update(WorkLogEntry)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            with session.begin_nested():
                result = session.execute(stmt)
                rowcount = result.rowcount
                if rowcount == 1:
                    return WriteResult(item_id, WriteStatus.UPDATED, value)
                current = session.scalar(
                    select(WorkLogEntry.paid_state).where(WorkLogEntry.work_log_id == item_id)
                )
        except SQLAlchemyError as exc:
            logger.exception("paid_state write failed for item %s", item_id)
            return WriteResult(item_id, WriteStatus.FAILED, error=str(exc))

        return WriteResult(item_id, WriteStatus.CONFLICT, current)

    @contextmanager
    def unit_of_work(self) -> Iterator[Session]:
        if self.current_session is not None:
            yield self.current_session
            return

        session = self.session_factory()
        try:
            # SQLite takes the write lock at BEGIN; concurrent units serialize here
            session.connection(execution_options={"sqlite_begin": "IMMEDIATE"})
        except SQLAlchemyError as exc:
            session.close()
            raise LedgerWriteError(f"Ledger transaction could not start: {exc}") from exc

        self._local.session = session
        try:
            try:
                yield session
            except Exception:
                session.rollback()
                raise
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise LedgerWriteError(f"Ledger commit failed: {exc}") from exc
        finally:
            self._local.session = None
            session.close()
