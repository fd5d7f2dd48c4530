"""Rate resolution and per-payee aggregation."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal

from staff_pay_engine.calculators.rate_table import RateTable, StaffDirectory
from staff_pay_engine.calculators.types import (
    AggregationResult,
    NoRateTask,
    PaymentRecord,
    RateSource,
    ResolutionErrors,
    ResolvedTask,
    WorkItem,
)


class PaymentAggregator:
    """Groups selected work into per-payee payment records.

    Pipeline per item (ledger order):
    1) Resolve legal name (falls back to the raw staff key)
    2) Resolve rate: custom > default > none (0)
    3) Upsert the payee's record, keyed by legal name

    Every item contributes to exactly one record, including items with no
    valid rate. Resolution gaps are accumulated, never raised.
    """

    def aggregate(
        self,
        items: Iterable[WorkItem],
        rates: RateTable,
        staff: StaffDirectory,
    ) -> AggregationResult:
        payments: dict[str, PaymentRecord] = {}
        errors = ResolutionErrors()

        for item in items:
            legal_name = staff.lookup(item.staff_key)
            has_mapping = legal_name is not None
            if not has_mapping:
                errors.unmatched_staff_keys.add(item.staff_key)
                legal_name = item.staff_key

            task = self.resolve_task(item, rates, errors)

            record = payments.get(legal_name)
            if record is None:
                record = PaymentRecord(
                    staff_key=item.staff_key,
                    legal_name=legal_name,
                    has_mapping=has_mapping,
                )
                payments[legal_name] = record
            record.tasks.append(task)

        return AggregationResult(payments=payments, errors=errors)

    @staticmethod
    def resolve_task(
        item: WorkItem,
        rates: RateTable,
        errors: ResolutionErrors,
    ) -> ResolvedTask:
        """Resolve the rate for one item, recording a gap when the type is unknown."""
        if not rates.has_type(item.task_type):
            errors.unmatched_task_types.add(item.task_type)
            errors.tasks_with_no_rate.append(
                NoRateTask(
                    item_id=item.item_id,
                    staff_key=item.staff_key,
                    task_type=item.task_type,
                    league=item.league,
                    round=item.round,
                    teams=item.teams,
                )
            )
            return ResolvedTask(item=item, rate=Decimal("0"), rate_source=RateSource.NONE)

        custom = rates.custom_rate(item.task_type, item.staff_key)
        if custom is not None:
            return ResolvedTask(item=item, rate=custom, rate_source=RateSource.CUSTOM)

        return ResolvedTask(
            item=item,
            rate=rates.default_rate(item.task_type),
            rate_source=RateSource.DEFAULT,
        )
