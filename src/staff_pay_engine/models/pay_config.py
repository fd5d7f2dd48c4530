"""Pay configuration tables: rate entries and staff name mapping."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from staff_pay_engine.models.base import Base, TimestampMixin


class PayRateEntry(Base, TimestampMixin):
    """Rate row for a task type.

    The first row seen for a task type supplies its default rate. Rows that
    also name a staff key with a custom rate register a per-staff override.
    """

    __tablename__ = "pay_rate_entry"

    pay_rate_entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    default_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    staff_key: Mapped[str | None] = mapped_column(String, nullable=True)
    custom_rate: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)


class StaffMapping(Base, TimestampMixin):
    """Staff key to legal (payee) name."""

    __tablename__ = "staff_mapping"

    staff_key: Mapped[str] = mapped_column(String, primary_key=True)
    legal_name: Mapped[str] = mapped_column(String, nullable=False)
