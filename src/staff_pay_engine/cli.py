"""Staff pay engine command line interface.

Provides operational tools for:
- Database setup and fixture loading
- Invoice preview and commit
- Unpaid work status
- Invoice lookup

Usage:
    python -m staff_pay_engine.cli init-db [--seed-file PATH]
    python -m staff_pay_engine.cli preview [--item-id N ...] [--text]
    python -m staff_pay_engine.cli commit [--handle-file PATH]
    python -m staff_pay_engine.cli status
    python -m staff_pay_engine.cli invoices [--invoice-number X | --latest | --days-back N]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

from sqlalchemy.orm import Session, sessionmaker

from staff_pay_engine.calculators.invoice_builder import InvoiceBatchBuilder
from staff_pay_engine.calculators.summary import format_payment_summary
from staff_pay_engine.config import get_settings
from staff_pay_engine.database import get_engine
from staff_pay_engine.fixtures import DEFAULT_FIXTURE_FILE, load_fixture_file
from staff_pay_engine.models import Base
from staff_pay_engine.services.coordinator import InvoicingCoordinator, PreviewHandle
from staff_pay_engine.services.invoice_store import DEFAULT_DAYS_BACK, SqlInvoiceStore
from staff_pay_engine.services.pay_config import ConfigurationError, SqlPayConfigLoader
from staff_pay_engine.services.work_ledger import SqlWorkLedger

logger = logging.getLogger(__name__)


class StaffPayCli:
    """Staff pay engine command line interface."""

    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self.parser = self._build_parser()
        self._session_factory = session_factory

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m staff_pay_engine.cli",
            description="Contractor invoicing tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # init-db command
        init_db = subparsers.add_parser(
            "init-db",
            help="Create tables and optionally load fixture data",
        )
        init_db.add_argument(
            "--seed",
            action="store_true",
            help=f"Load the bundled fixture file ({DEFAULT_FIXTURE_FILE.name})",
        )
        init_db.add_argument(
            "--seed-file",
            type=Path,
            help="Load fixture data from this JSON file",
        )

        # preview command
        preview = subparsers.add_parser(
            "preview",
            help="Show what a commit would invoice, without changing anything",
        )
        preview.add_argument(
            "--item-id",
            type=int,
            action="append",
            dest="item_ids",
            help="Restrict to this work item (repeatable)",
        )
        preview.add_argument(
            "--handle-file",
            type=Path,
            help="Write the preview handle to this file for a later commit",
        )
        preview.add_argument(
            "--text",
            action="store_true",
            help="Print the operator payment summary instead of JSON",
        )

        # commit command
        commit = subparsers.add_parser(
            "commit",
            help="Invoice eligible work and mark it as invoiced",
        )
        commit.add_argument(
            "--handle-file",
            type=Path,
            help="Commit exactly the work pinned by a saved preview handle",
        )

        # status command
        subparsers.add_parser(
            "status",
            help="Count work done but not yet paid or invoiced",
        )

        # invoices command
        invoices = subparsers.add_parser(
            "invoices",
            help="Look up issued invoices",
        )
        group = invoices.add_mutually_exclusive_group()
        group.add_argument(
            "--invoice-number",
            type=str,
            help="Show one invoice",
        )
        group.add_argument(
            "--latest",
            action="store_true",
            help="Show the most recent invoice",
        )
        group.add_argument(
            "--days-back",
            type=int,
            default=DEFAULT_DAYS_BACK,
            help=f"Show invoices issued in the last N days (default: {DEFAULT_DAYS_BACK})",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "preview": self._cmd_preview,
            "commit": self._cmd_commit,
            "status": self._cmd_status,
            "invoices": self._cmd_invoices,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except ConfigurationError as exc:
            print(f"Configuration error: {exc}", file=sys.stderr)
            return 2

    def _factory(self, args: argparse.Namespace) -> sessionmaker[Session]:
        if self._session_factory is None:
            engine = get_engine(args.database_url)
            Base.metadata.create_all(engine)
            self._session_factory = sessionmaker(engine, expire_on_commit=False, autoflush=False)
        return self._session_factory

    def _coordinator(self, args: argparse.Namespace) -> InvoicingCoordinator:
        factory = self._factory(args)
        return InvoicingCoordinator(
            ledger=SqlWorkLedger(factory),
            config_loader=SqlPayConfigLoader(factory),
            invoice_store=SqlInvoiceStore(factory),
            builder=InvoiceBatchBuilder(prefix=get_settings().invoice_prefix),
        )

    @staticmethod
    def _print_json(data: Any) -> None:
        print(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create tables and load fixtures."""
        factory = self._factory(args)
        seed_file = args.seed_file or (DEFAULT_FIXTURE_FILE if args.seed else None)
        if seed_file is None:
            print("Database initialized.")
            return 0

        if not seed_file.exists():
            print(f"Error: Seed file not found: {seed_file}", file=sys.stderr)
            return 1

        with factory() as session:
            counts = load_fixture_file(session, seed_file)
            session.commit()

        print(f"Loaded fixtures from: {seed_file}")
        for table, count in counts.items():
            print(f"  {table}: {count}")
        return 0

    def _cmd_preview(self, args: argparse.Namespace) -> int:
        """Preview the next invoice batch."""
        result = self._coordinator(args).preview(only_item_ids=args.item_ids)

        if args.handle_file:
            args.handle_file.write_text(json.dumps(result.handle.to_dict(), indent=2))
            logger.info("Preview handle written to %s", args.handle_file)

        if args.text:
            if result.nothing_to_do:
                print("No unpaid work found.")
            else:
                print(format_payment_summary(result.payments, get_settings().currency))
            return 0

        self._print_json(result.to_dict())
        return 0

    def _cmd_commit(self, args: argparse.Namespace) -> int:
        """Commit invoices and mark work as invoiced."""
        handle = None
        if args.handle_file:
            handle = PreviewHandle.from_dict(json.loads(args.handle_file.read_text()))

        result = self._coordinator(args).commit(handle)
        self._print_json(result.to_dict())
        return 0 if result.success else 1

    def _cmd_status(self, args: argparse.Namespace) -> int:
        """Show unpaid work count."""
        self._print_json(self._coordinator(args).status().to_dict())
        return 0

    def _cmd_invoices(self, args: argparse.Namespace) -> int:
        """Look up issued invoices."""
        store = SqlInvoiceStore(self._factory(args))

        invoice_number = args.invoice_number
        if args.latest:
            invoice_number = store.latest_invoice_number()
            if invoice_number is None:
                print("No invoices found.", file=sys.stderr)
                return 1

        lines = store.find_lines(invoice_number=invoice_number, days_back=args.days_back)
        self._print_json([line.to_dict() for line in lines])
        return 0


def main() -> None:
    """CLI entry point."""
    logging.basicConfig(level=get_settings().log_level)
    cli = StaffPayCli()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
