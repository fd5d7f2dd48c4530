"""Loading of the rate table and staff directory snapshot for a run."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import cached_property

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from staff_pay_engine.calculators.rate_table import (
    RateTable,
    StaffDirectory,
    config_fingerprint,
)
from staff_pay_engine.models import PayRateEntry, StaffMapping

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when the rate table or staff directory source is unavailable.

    Fatal: a run aborts before reading the ledger.
    """

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source} unavailable: {reason}")


@dataclass(frozen=True)
class PayConfig:
    """One rate/staff configuration snapshot."""

    rates: RateTable
    staff: StaffDirectory

    @cached_property
    def fingerprint(self) -> str:
        return config_fingerprint(self.rates, self.staff)


class PayConfigLoader(ABC):
    """Source of the pay configuration snapshot."""

    @abstractmethod
    def load(self) -> PayConfig:
        """Load the snapshot, raising ConfigurationError when a source is missing."""


class StaticPayConfigLoader(PayConfigLoader):
    """Loader over an already built rate table and staff directory."""

    def __init__(self, rates: RateTable | None, staff: StaffDirectory | None):
        self.rates = rates
        self.staff = staff

    def load(self) -> PayConfig:
        if self.rates is None:
            raise ConfigurationError("rate table", "not configured")
        if self.staff is None:
            raise ConfigurationError("staff directory", "not configured")
        return PayConfig(rates=self.rates, staff=self.staff)


class SqlPayConfigLoader(PayConfigLoader):
    """Loads pay config from the ``pay_rate_entry`` and ``staff_mapping`` tables.

    An unreadable table or an empty rate table is a configuration error; an
    empty staff mapping is not (every payee falls back to its staff key).
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    def load(self) -> PayConfig:
        with self.session_factory() as session:
            try:
                rate_rows = session.execute(
                    select(PayRateEntry).order_by(PayRateEntry.pay_rate_entry_id)
                ).scalars().all()
            except SQLAlchemyError as exc:
                raise ConfigurationError("rate table", str(exc)) from exc

            try:
                staff_rows = session.execute(select(StaffMapping)).scalars().all()
            except SQLAlchemyError as exc:
                raise ConfigurationError("staff directory", str(exc)) from exc

        if not rate_rows:
            raise ConfigurationError("rate table", "no pay rate entries found")

        rates = RateTable.from_rows(
            {
                "task_type": row.task_type,
                "default_rate": row.default_rate,
                "staff_key": row.staff_key,
                "custom_rate": row.custom_rate,
            }
            for row in rate_rows
        )
        staff = StaffDirectory.from_rows(
            {"staff_key": row.staff_key, "legal_name": row.legal_name} for row in staff_rows
        )
        logger.debug(
            "Loaded pay config: %d task types, %d staff mappings", len(rates), len(staff)
        )
        return PayConfig(rates=rates, staff=staff)
