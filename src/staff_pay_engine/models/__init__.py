"""SQLAlchemy ORM models."""

from staff_pay_engine.models.base import Base, TimestampMixin
from staff_pay_engine.models.invoice import InvoiceLineRecord
from staff_pay_engine.models.pay_config import PayRateEntry, StaffMapping
from staff_pay_engine.models.work_log import WorkLogEntry

__all__ = [
    "Base",
    "TimestampMixin",
    "InvoiceLineRecord",
    "PayRateEntry",
    "StaffMapping",
    "WorkLogEntry",
]
