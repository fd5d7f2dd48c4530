"""Pay rate resolution by task type with per-staff overrides."""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

_NON_NUMERIC = re.compile(r"[^\d.-]")


def parse_rate(value: Any) -> Decimal | None:
    """Parse a rate cell, ignoring currency symbols and separators.

    "150,000 ₫" -> Decimal("150000"). Returns None for blank, unparseable
    or non-finite (NaN, infinity) input.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        rate = value
    elif isinstance(value, (int, float)):
        rate = Decimal(str(value))
    else:
        cleaned = _NON_NUMERIC.sub("", str(value))
        if not cleaned:
            return None
        try:
            rate = Decimal(cleaned)
        except InvalidOperation:
            return None

    return rate if rate.is_finite() else None


@dataclass
class RateEntry:
    """Default rate for a task type plus per-staff custom rates."""

    task_type: str
    default_rate: Decimal | None
    custom_rates: dict[str, Decimal] = field(default_factory=dict)


class RateTable:
    """Resolves an amount for a (task type, staff key) pair.

    Rate selection priority:
    1. Custom rate for the staff key, when registered
    2. Default rate for the task type
    A task type with no entry has no rate at all (see ``has_type``).
    """

    def __init__(self, entries: Iterable[RateEntry] = ()):
        self._entries: dict[str, RateEntry] = {}
        for entry in entries:
            self._entries[entry.task_type] = entry

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> RateTable:
        """Build a table from pay config rows.

        Each row may carry ``task_type``, ``default_rate``, ``staff_key`` and
        ``custom_rate``. The first row for a task type sets its default rate;
        a custom rate is registered only when both the staff key and a
        non-zero custom rate are present.
        """
        entries: dict[str, RateEntry] = {}
        for row in rows:
            task_type = row.get("task_type")
            if task_type is None:
                continue
            task_type = str(task_type)

            entry = entries.get(task_type)
            if entry is None:
                entry = RateEntry(
                    task_type=task_type,
                    default_rate=parse_rate(row.get("default_rate")),
                )
                entries[task_type] = entry

            staff_key = row.get("staff_key")
            custom_rate = parse_rate(row.get("custom_rate"))
            if staff_key and custom_rate:
                entry.custom_rates[str(staff_key)] = custom_rate

        return cls(entries.values())

    def has_type(self, task_type: str) -> bool:
        return task_type in self._entries

    def default_rate(self, task_type: str) -> Decimal:
        """Default rate for a known task type (0 when unparseable)."""
        rate = self._entries[task_type].default_rate
        return rate if rate is not None else Decimal("0")

    def custom_rate(self, task_type: str, staff_key: str) -> Decimal | None:
        entry = self._entries.get(task_type)
        if entry is None:
            return None
        return entry.custom_rates.get(staff_key)

    @property
    def task_types(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            task_type: {
                "default_rate": str(entry.default_rate) if entry.default_rate is not None else None,
                "custom_rates": {k: str(v) for k, v in entry.custom_rates.items()},
            }
            for task_type, entry in self._entries.items()
        }


class StaffDirectory:
    """Maps an internal staff key to a canonical legal name."""

    def __init__(self, mapping: Mapping[str, str] | None = None):
        self._mapping: dict[str, str] = {}
        for key, legal_name in (mapping or {}).items():
            if key and legal_name:
                self._mapping[str(key)] = str(legal_name)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> StaffDirectory:
        """Build from ``staff_key``/``legal_name`` rows, skipping blanks."""
        return cls({row.get("staff_key"): row.get("legal_name") for row in rows})

    def lookup(self, staff_key: str) -> str | None:
        return self._mapping.get(staff_key)

    def __len__(self) -> int:
        return len(self._mapping)

    def to_dict(self) -> dict[str, str]:
        return dict(self._mapping)


def config_fingerprint(rates: RateTable, staff: StaffDirectory) -> str:
    """Deterministic hash of a rate/staff configuration snapshot."""
    data = {"rates": rates.to_dict(), "staff": staff.to_dict()}
    json_str = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(json_str.encode()).hexdigest()[:32]
