"""FastAPI dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from staff_pay_engine.calculators.invoice_builder import InvoiceBatchBuilder
from staff_pay_engine.config import get_settings
from staff_pay_engine.database import init_db
from staff_pay_engine.services.coordinator import InvoicingCoordinator
from staff_pay_engine.services.invoice_store import InvoiceStore, SqlInvoiceStore
from staff_pay_engine.services.pay_config import PayConfigLoader, SqlPayConfigLoader
from staff_pay_engine.services.work_ledger import SqlWorkLedger


def get_session_factory() -> sessionmaker[Session]:
    """Session factory bound to the configured database."""
    _, factory = init_db()
    return factory


def get_db_session(
    factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> Generator[Session, None, None]:
    """Get database session dependency."""
    with factory() as session:
        yield session


def get_invoice_store(
    factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> InvoiceStore:
    return SqlInvoiceStore(factory)


def get_pay_config_loader(
    factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
) -> PayConfigLoader:
    return SqlPayConfigLoader(factory)


def get_coordinator(
    factory: Annotated[sessionmaker[Session], Depends(get_session_factory)],
    invoice_store: Annotated[InvoiceStore, Depends(get_invoice_store)],
    config_loader: Annotated[PayConfigLoader, Depends(get_pay_config_loader)],
) -> InvoicingCoordinator:
    """Coordinator wired to the SQL ledger, pay config and invoice store."""
    return InvoicingCoordinator(
        ledger=SqlWorkLedger(factory),
        config_loader=config_loader,
        invoice_store=invoice_store,
        builder=InvoiceBatchBuilder(prefix=get_settings().invoice_prefix),
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[Session, Depends(get_db_session)]
Coordinator = Annotated[InvoicingCoordinator, Depends(get_coordinator)]
Invoices = Annotated[InvoiceStore, Depends(get_invoice_store)]
PayConfigSource = Annotated[PayConfigLoader, Depends(get_pay_config_loader)]
