"""Run summaries: the serializable summary and the operator text summary."""

from __future__ import annotations

from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from staff_pay_engine.calculators.types import (
    AggregationResult,
    PaymentRecord,
    RateSource,
)

# Currencies invoiced without minor units
ZERO_DECIMAL_CURRENCIES = frozenset({"VND", "JPY", "KRW"})


def format_currency(amount: Decimal, currency: str = "VND") -> str:
    """Format an amount with thousands separators and a currency code."""
    places = Decimal("1") if currency in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")
    rounded = amount.quantize(places, rounding=ROUND_HALF_UP)
    return f"{rounded:,} {currency}"


def build_summary(result: AggregationResult) -> dict[str, Any]:
    """Serializable run summary.

    Always holds task/payee counts, the grand total and the three error
    collections as lists.
    """
    summary: dict[str, Any] = {
        "total_tasks": result.task_count,
        "total_staff": len(result.payments),
        "grand_total": str(result.grand_total),
    }
    summary.update(result.errors.to_dict())
    return summary


def format_payment_summary(
    payments: Mapping[str, PaymentRecord],
    currency: str = "VND",
) -> str:
    """Human readable payment summary for operator review."""
    lines = ["Payment Summary:", ""]
    grand_total = Decimal("0")

    for payment in payments.values():
        name = payment.legal_name
        if not payment.has_mapping:
            name += " (No legal name mapping)"
        lines.append(f"{name}:")
        lines.append(f"  Tasks: {payment.task_count}")

        custom = payment.count_by_source(RateSource.CUSTOM)
        default = payment.count_by_source(RateSource.DEFAULT)
        no_rate = sum(1 for task in payment.tasks if not task.has_valid_rate)
        if custom:
            lines.append(f"    - {custom} with custom rate")
        if default:
            lines.append(f"    - {default} with default rate")
        if no_rate:
            lines.append(f"    - {no_rate} with NO RATE")

        lines.append(f"  Total: {format_currency(payment.total_amount, currency)}")
        lines.append("")
        grand_total += payment.total_amount

    lines.append(f"Grand Total: {format_currency(grand_total, currency)}")
    return "\n".join(lines)
