"""Work log rows: the shared ledger of billable work."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from staff_pay_engine.models.base import Base, TimestampMixin


class WorkLogEntry(Base, TimestampMixin):
    """One row of the work log.

    ``status`` and ``paid_state`` are free text. Only the coordinator writes
    ``paid_state`` (to "Invoiced"); rows are never deleted by the engine.
    """

    __tablename__ = "work_log"

    work_log_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    staff_key: Mapped[str | None] = mapped_column(String, nullable=True)
    task_type: Mapped[str | None] = mapped_column(String, nullable=True)
    league: Mapped[str | None] = mapped_column(String, nullable=True)
    round: Mapped[str | None] = mapped_column(String, nullable=True)
    team1: Mapped[str | None] = mapped_column(String, nullable=True)
    team2: Mapped[str | None] = mapped_column(String, nullable=True)
    evidence_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_date: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str | None] = mapped_column(String, nullable=True)
    paid_state: Mapped[str | None] = mapped_column(String, nullable=True)

    # Set together with paid_state = "Invoiced"
    invoice_number: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    invoiced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
