"""Staff pay engine services."""

from staff_pay_engine.services.coordinator import (
    CommitOutcome,
    CommitResult,
    InvoicingCoordinator,
    PreviewHandle,
    PreviewResult,
)
from staff_pay_engine.services.invoice_store import (
    InMemoryInvoiceStore,
    InvoiceEmissionError,
    SqlInvoiceStore,
)
from staff_pay_engine.services.pay_config import (
    ConfigurationError,
    SqlPayConfigLoader,
    StaticPayConfigLoader,
)
from staff_pay_engine.services.state_machine import (
    InvalidTransitionError,
    InvoicingRunStateMachine,
    InvoicingRunStatus,
)
from staff_pay_engine.services.work_ledger import (
    InMemoryWorkLedger,
    LedgerWriteError,
    SqlWorkLedger,
)

__all__ = [
    "CommitOutcome",
    "CommitResult",
    "InvoicingCoordinator",
    "PreviewHandle",
    "PreviewResult",
    "InMemoryInvoiceStore",
    "InvoiceEmissionError",
    "SqlInvoiceStore",
    "ConfigurationError",
    "SqlPayConfigLoader",
    "StaticPayConfigLoader",
    "InvalidTransitionError",
    "InvoicingRunStateMachine",
    "InvoicingRunStatus",
    "InMemoryWorkLedger",
    "LedgerWriteError",
    "SqlWorkLedger",
]
