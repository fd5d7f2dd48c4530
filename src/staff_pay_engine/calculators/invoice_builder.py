"""Invoice batch builder: one shared invoice number, one line per payee."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from uuid import uuid4

from staff_pay_engine.calculators.types import (
    InvoiceBatch,
    InvoiceLine,
    PaymentRecord,
    ResolvedTask,
)


def random_suffix() -> str:
    """Six uppercase hex characters, enough to keep same-day numbers apart."""
    return uuid4().hex[:6].upper()


class InvoiceBatchBuilder:
    """Turns aggregated payments into an InvoiceBatch.

    Invoice number format: ``{prefix}-{YYYYMMDD}-{suffix}``, generated once
    per ``build`` call and shared by every line of the batch.

    Per payee:
    - work summary: one ``"{count} x {task_type}"`` line per task type
    - evidence block: per task type a ``"{task_type} ({count} tasks):"``
      header followed by a numbered list of evidence links

    Task types keep the order of their first occurrence.
    """

    def __init__(
        self,
        prefix: str = "INV",
        suffix_factory: Callable[[], str] = random_suffix,
    ):
        self.prefix = prefix
        self.suffix_factory = suffix_factory

    def generate_invoice_number(self, now: datetime) -> str:
        return f"{self.prefix}-{now:%Y%m%d}-{self.suffix_factory()}"

    def build(
        self,
        payments: Mapping[str, PaymentRecord],
        now: datetime,
        invoice_number: str | None = None,
    ) -> InvoiceBatch:
        number = invoice_number or self.generate_invoice_number(now)
        lines = tuple(
            self.build_line(record, number, now)
            for record in payments.values()
            if record.tasks
        )
        return InvoiceBatch(invoice_number=number, issued_at=now, lines=lines)

    @classmethod
    def build_line(
        cls,
        record: PaymentRecord,
        invoice_number: str,
        issued_at: datetime,
    ) -> InvoiceLine:
        by_type = cls.group_by_type(record.tasks)
        return InvoiceLine(
            invoice_number=invoice_number,
            issued_at=issued_at,
            legal_name=record.legal_name,
            staff_key=record.staff_key,
            work_summary=cls.work_summary(by_type),
            total_amount=record.total_amount,
            evidence_links=cls.evidence_block(by_type),
            task_count=record.task_count,
            item_ids=tuple(record.item_ids),
        )

    @staticmethod
    def group_by_type(tasks: list[ResolvedTask]) -> dict[str, list[ResolvedTask]]:
        """Group tasks by task type, in first-occurrence order."""
        grouped: dict[str, list[ResolvedTask]] = {}
        for task in tasks:
            grouped.setdefault(task.task_type, []).append(task)
        return grouped

    @staticmethod
    def work_summary(by_type: Mapping[str, list[ResolvedTask]]) -> str:
        """E.g. "3 x 1-Side - Basic\\n35 x LEAGUE - BASIC"."""
        return "\n".join(f"{len(tasks)} x {task_type}" for task_type, tasks in by_type.items())

    @staticmethod
    def evidence_block(by_type: Mapping[str, list[ResolvedTask]]) -> str:
        blocks = []
        for task_type, tasks in by_type.items():
            header = f"{task_type} ({len(tasks)} tasks):"
            links = "\n".join(
                f"  {index}. {task.item.evidence_link}"
                for index, task in enumerate(tasks, start=1)
            )
            blocks.append(f"{header}\n{links}")
        return "\n\n".join(blocks)
