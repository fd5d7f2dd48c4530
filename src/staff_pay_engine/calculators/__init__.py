"""Pure calculation pipeline: selection, rate resolution, aggregation, invoicing."""

from staff_pay_engine.calculators.aggregator import PaymentAggregator
from staff_pay_engine.calculators.invoice_builder import InvoiceBatchBuilder
from staff_pay_engine.calculators.rate_table import RateTable, StaffDirectory
from staff_pay_engine.calculators.selector import UnpaidWorkSelector

__all__ = [
    "PaymentAggregator",
    "InvoiceBatchBuilder",
    "RateTable",
    "StaffDirectory",
    "UnpaidWorkSelector",
]
