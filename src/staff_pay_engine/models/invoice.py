"""Persisted invoice lines."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from staff_pay_engine.models.base import Base, TimestampMixin


class InvoiceLineRecord(Base, TimestampMixin):
    """One payee line of an emitted invoice batch."""

    __tablename__ = "invoice_line"

    invoice_line_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_number: Mapped[str] = mapped_column(String, nullable=False, index=True)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    contractor: Mapped[str] = mapped_column(String, nullable=False)
    staff_key: Mapped[str] = mapped_column(String, nullable=False)
    work_done: Mapped[str] = mapped_column(Text, nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    evidence_links: Mapped[str] = mapped_column(Text, nullable=False)
    task_count: Mapped[int] = mapped_column(Integer, nullable=False)
    item_ids: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
