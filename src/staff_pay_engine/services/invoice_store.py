"""Invoice batch emission and invoice lookup."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from staff_pay_engine.calculators.types import InvoiceBatch, InvoiceLine
from staff_pay_engine.models import InvoiceLineRecord

logger = logging.getLogger(__name__)

DEFAULT_DAYS_BACK = 30


class InvoiceEmissionError(Exception):
    """Raised when an invoice batch cannot be recorded."""

    def __init__(self, invoice_number: str, reason: str):
        self.invoice_number = invoice_number
        self.reason = reason
        super().__init__(f"Invoice {invoice_number} could not be emitted: {reason}")


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class InvoiceStore(ABC):
    """Receives emitted invoice batches and answers invoice lookups."""

    @abstractmethod
    def emit(self, batch: InvoiceBatch, transaction: Any = None) -> None:
        """Record every line of the batch or raise InvoiceEmissionError.

        ``transaction`` is the handle yielded by the ledger's unit of work,
        letting a store write in the same transaction as the ledger claims.
        """

    @abstractmethod
    def find_lines(
        self,
        invoice_number: str | None = None,
        days_back: int = DEFAULT_DAYS_BACK,
        now: datetime | None = None,
    ) -> list[InvoiceLine]:
        """Lines of one invoice, or of every invoice issued in the last N days."""

    @abstractmethod
    def latest_invoice_number(self) -> str | None:
        """Number of the most recently issued invoice."""


class InMemoryInvoiceStore(InvoiceStore):
    """Invoice store kept in process memory."""

    def __init__(self) -> None:
        self.lines: list[InvoiceLine] = []
        self._lock = threading.Lock()

    def emit(self, batch: InvoiceBatch, transaction: Any = None) -> None:
        with self._lock:
            self.lines.extend(batch.lines)

    def find_lines(
        self,
        invoice_number: str | None = None,
        days_back: int = DEFAULT_DAYS_BACK,
        now: datetime | None = None,
    ) -> list[InvoiceLine]:
        with self._lock:
            lines = list(self.lines)
        if invoice_number is not None:
            return [line for line in lines if line.invoice_number == invoice_number]
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_back)
        return [line for line in lines if _as_utc(line.issued_at) >= cutoff]

    def latest_invoice_number(self) -> str | None:
        with self._lock:
            if not self.lines:
                return None
            return max(self.lines, key=lambda line: _as_utc(line.issued_at)).invoice_number


def _record_to_line(record: InvoiceLineRecord) -> InvoiceLine:
    return InvoiceLine(
        invoice_number=record.invoice_number,
        issued_at=_as_utc(record.issued_at),
        legal_name=record.contractor,
        staff_key=record.staff_key,
        work_summary=record.work_done,
        total_amount=record.total,
        evidence_links=record.evidence_links,
        task_count=record.task_count,
        item_ids=tuple(record.item_ids or ()),
    )


class SqlInvoiceStore(InvoiceStore):
    """Invoice store backed by the ``invoice_line`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def emit(self, batch: InvoiceBatch, transaction: Any = None) -> None:
        if isinstance(transaction, Session):
            self._write(transaction, batch)
            return

        with self.session_factory() as session:
            self._write(session, batch)
            try:
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise InvoiceEmissionError(batch.invoice_number, str(exc)) from exc

    def _write(self, session: Session, batch: InvoiceBatch) -> None:
        try:
            session.add_all(
                InvoiceLineRecord(
                    invoice_number=line.invoice_number,
                    issued_at=line.issued_at,
                    contractor=line.legal_name,
                    staff_key=line.staff_key,
                    work_done=line.work_summary,
                    total=line.total_amount,
                    evidence_links=line.evidence_links,
                    task_count=line.task_count,
                    item_ids=list(line.item_ids),
                )
                for line in batch.lines
            )
            session.flush()
        except SQLAlchemyError as exc:
            raise InvoiceEmissionError(batch.invoice_number, str(exc)) from exc

        logger.info(
            "Recorded invoice %s with %d lines", batch.invoice_number, len(batch.lines)
        )

    def find_lines(
        self,
        invoice_number: str | None = None,
        days_back: int = DEFAULT_DAYS_BACK,
        now: datetime | None = None,
    ) -> list[InvoiceLine]:
        query = select(InvoiceLineRecord)
        if invoice_number is not None:
            query = query.where(InvoiceLineRecord.invoice_number == invoice_number)
        else:
            cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days_back)
            query = query.where(InvoiceLineRecord.issued_at >= cutoff)
        query = query.order_by(InvoiceLineRecord.issued_at, InvoiceLineRecord.invoice_line_id)

        with self.session_factory() as session:
            return [_record_to_line(record) for record in session.execute(query).scalars()]

    def latest_invoice_number(self) -> str | None:
        query = (
            select(InvoiceLineRecord.invoice_number)
            .order_by(
                InvoiceLineRecord.issued_at.desc(),
                InvoiceLineRecord.invoice_line_id.desc(),
            )
            .limit(1)
        )
        with self.session_factory() as session:
            return session.scalar(query)
