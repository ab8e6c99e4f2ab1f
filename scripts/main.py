#!/usr/bin/env python3
"""
StockLedger - Main Orchestrator Script
Stock and party-ledger reconciliation
"""

import argparse
import sys
from pathlib import Path
from datetime import datetime

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stockledger.utils.logger import setup_logging, get_logger
from stockledger.config.settings import load_config
from stockledger.core.exceptions import StockLedgerError
from stockledger.core.ledger_engine import LedgerEngine
from stockledger.core.stock_engine import StockReconciliationEngine
from stockledger.core.units import display_bags
from stockledger.db.core import SQLStore
from stockledger.importers.item_importer import ItemImporter
from stockledger.models.records import PartyType
from stockledger.utils.report_generator import generate_ledger_report

logger = get_logger(__name__)

class StockLedgerOrchestrator:
    """Wires configuration, store and engines for command-line use."""

    def __init__(self, config_path: str = "config/settings.yaml"):
        self.config = load_config(config_path)
        self.store = SQLStore(self.config.database)
        self.stock = StockReconciliationEngine(self.store, self.config.stock)
        self.ledger = LedgerEngine(self.store)

        logger.info(f"StockLedger initialized against {self.store.url}")

    def bootstrap(self) -> None:
        bardana = self.stock.ensure_bardana()
        print(f"{bardana.product_name}: {display_bags(bardana.stock_bags)} bags")

    def show_parties(self, party_type: str) -> None:
        if party_type == "all":
            parties = self.ledger.all_parties()
        else:
            parties = self.ledger.parties_by_type(PartyType(party_type))

        for party in parties:
            print(f"{party.name:<24} {party.phone_number:<14} {party.party_type.value:<9} "
                  f"{party.balance:>12,.2f}  {party.last_transaction_date or '-'}")
        if not parties:
            print("No parties found")

    def show_balance(self, name: str, phone: str, party_type: str) -> None:
        balance = self.ledger.balance_for(name, phone, PartyType(party_type))
        print(f"{name} ({phone}): {balance:,.2f}")

    def show_stock(self, name: str) -> None:
        print(f"{name}: {self.stock.current_stock_kg(name)} kg")

    def show_low_stock(self) -> None:
        items = self.stock.low_stock_items()
        for item in items:
            print(f"{item.product_name:<30} {display_bags(item.stock_bags):>10} bags "
                  f"(alert at {display_bags(item.low_stock_bags)})")
        if not items:
            print("No items below their low-stock level")

    def import_items(self, file_path: str, chunk_size: int = None) -> None:
        importer = ItemImporter(self.stock, self.config.importer.__dict__)
        stats = importer.run_import(file_path, chunk_size)
        print(f"Imported {stats.records_written} items "
              f"({stats.already_present} already present, {stats.rows_rejected} rejected)")

    def write_report(self, output_path: str = None) -> str:
        output_path = output_path or str(
            Path(self.config.file_paths.report_dir) / f"ledger_{datetime.now():%Y%m%d_%H%M%S}.txt"
        )
        generate_ledger_report(self.ledger.all_parties(), self.stock.list_items(), output_path)
        print(f"Report written to {output_path}")
        return output_path

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="StockLedger - stock and party-ledger reconciliation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/main.py bootstrap
  python scripts/main.py parties --type customer
  python scripts/main.py balance Alice 555 --type customer
  python scripts/main.py stock Widget
  python scripts/main.py import-items data/input/items.xlsx
  python scripts/main.py report
        """
    )

    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to configuration file"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to the configured level)"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("bootstrap", help="Create the universal Bardana item if missing")

    parties = sub.add_parser("parties", help="List party balances")
    parties.add_argument("--type", choices=["customer", "supplier", "all"], default="all")

    balance = sub.add_parser("balance", help="Balance of one party")
    balance.add_argument("name")
    balance.add_argument("phone")
    balance.add_argument("--type", choices=["customer", "supplier"], default="customer")

    stock = sub.add_parser("stock", help="Current stock of one item in kg")
    stock.add_argument("name")

    sub.add_parser("low-stock", help="Items at or below their low-stock level")

    import_items = sub.add_parser("import-items", help="Import items with opening stock from CSV/XLSX")
    import_items.add_argument("file")
    import_items.add_argument("--chunk-size", type=int, help="Override default chunk size")

    report = sub.add_parser("report", help="Write a party balance and stock report")
    report.add_argument("--output", help="Report file path")

    return parser

def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except StockLedgerError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(log_level=args.log_level or config.log_level, log_dir=config.file_paths.log_dir)
    logger.info(f"StockLedger starting at {datetime.now()}")

    try:
        orchestrator = StockLedgerOrchestrator(args.config)

        if args.command == "bootstrap":
            orchestrator.bootstrap()
        elif args.command == "parties":
            orchestrator.show_parties(args.type)
        elif args.command == "balance":
            orchestrator.show_balance(args.name, args.phone, args.type)
        elif args.command == "stock":
            orchestrator.show_stock(args.name)
        elif args.command == "low-stock":
            orchestrator.show_low_stock()
        elif args.command == "import-items":
            orchestrator.import_items(args.file, args.chunk_size)
        elif args.command == "report":
            orchestrator.write_report(args.output)

    except StockLedgerError as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
