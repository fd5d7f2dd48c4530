"""Invoicing run state machine with transition validation."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum


class InvoicingRunStatus(str, Enum):
    """Invoicing run status values."""

    SELECTED = "selected"
    AGGREGATED = "aggregated"
    BATCH_BUILT = "batch_built"
    LEDGER_UPDATED = "ledger_updated"
    FAILED = "failed"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InvoicingRunStateMachine:
    """State machine for one preview or commit run.

    Allowed transitions:
    - selected → aggregated
    - aggregated → batch_built
    - batch_built → ledger_updated (commit only)
    - any non-terminal state → failed

    A preview stops at batch_built; only a commit reaches ledger_updated.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        InvoicingRunStatus.SELECTED: [InvoicingRunStatus.AGGREGATED, InvoicingRunStatus.FAILED],
        InvoicingRunStatus.AGGREGATED: [InvoicingRunStatus.BATCH_BUILT, InvoicingRunStatus.FAILED],
        InvoicingRunStatus.BATCH_BUILT: [
            InvoicingRunStatus.LEDGER_UPDATED,
            InvoicingRunStatus.FAILED,
        ],
        InvoicingRunStatus.LEDGER_UPDATED: [],  # Terminal state
        InvoicingRunStatus.FAILED: [],  # Terminal state
    }

    TERMINAL = {
        InvoicingRunStatus.LEDGER_UPDATED,
        InvoicingRunStatus.FAILED,
    }

    def __init__(self, status: InvoicingRunStatus = InvoicingRunStatus.SELECTED):
        self.status = status
        self.history: list[tuple[InvoicingRunStatus, datetime]] = [
            (status, datetime.now(timezone.utc))
        ]

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    def transition_to(self, to_status: InvoicingRunStatus) -> None:
        self.validate_transition(self.status, to_status)
        self.status = to_status
        self.history.append((to_status, datetime.now(timezone.utc)))

    def fail(self) -> None:
        """Move to FAILED unless already terminal."""
        if not self.is_terminal(self.status):
            self.transition_to(InvoicingRunStatus.FAILED)
