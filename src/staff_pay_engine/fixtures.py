"""Load fixture data (work log, pay rates, staff mapping) into the database.

Fixture files are JSON objects with three optional lists:

    {
      "work_log": [{"staff_key": "S1", "task_type": "Play-by-play", ...}],
      "pay_rates": [{"task_type": "Play-by-play", "default_rate": "100000",
                     "staff_key": "S1", "custom_rate": "150000"}],
      "staff": [{"staff_key": "S1", "legal_name": "Nguyen Van A"}]
    }
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from sqlalchemy.orm import Session

from staff_pay_engine.calculators.rate_table import parse_rate
from staff_pay_engine.models import PayRateEntry, StaffMapping, WorkLogEntry

logger = logging.getLogger(__name__)

DEFAULT_FIXTURE_FILE = Path(__file__).parent / "data" / "seed_minimal.json"

WORK_LOG_FIELDS = (
    "staff_key",
    "task_type",
    "league",
    "round",
    "team1",
    "team2",
    "evidence_link",
    "completion_date",
    "status",
    "paid_state",
)


def _optional_text(value: Any) -> str | None:
    return None if value is None else str(value)


def load_fixture_data(session: Session, data: Mapping[str, Any]) -> dict[str, int]:
    """Add fixture rows to the session. The caller commits.

    Returns the number of rows added per table.
    """
    work_rows = [
        WorkLogEntry(**{name: _optional_text(row.get(name)) for name in WORK_LOG_FIELDS})
        for row in data.get("work_log", [])
    ]
    rate_rows = [
        PayRateEntry(
            task_type=str(row["task_type"]),
            default_rate=parse_rate(row.get("default_rate")),
            staff_key=_optional_text(row.get("staff_key")),
            custom_rate=parse_rate(row.get("custom_rate")),
        )
        for row in data.get("pay_rates", [])
    ]
    staff_rows = [
        StaffMapping(staff_key=str(row["staff_key"]), legal_name=str(row["legal_name"]))
        for row in data.get("staff", [])
    ]

    session.add_all(work_rows)
    session.add_all(rate_rows)
    session.add_all(staff_rows)
    session.flush()

    counts = {
        "work_log": len(work_rows),
        "pay_rates": len(rate_rows),
        "staff": len(staff_rows),
    }
    logger.info("Loaded fixtures: %s", counts)
    return counts


def load_fixture_file(session: Session, path: Path = DEFAULT_FIXTURE_FILE) -> dict[str, int]:
    """Load a JSON fixture file into the session."""
    data = json.loads(path.read_text(encoding="utf-8"))
    return load_fixture_data(session, data)
