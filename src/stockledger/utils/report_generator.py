from typing import Dict, Any, List
from datetime import datetime
from pathlib import Path
import pandas as pd
from stockledger.core.units import display_bags, display_kg
from stockledger.models.records import Item, PartyBalance
from stockledger.utils.logger import get_logger

logger = get_logger(__name__)

PARTY_COLUMNS = ['name', 'phone_number', 'party_type', 'total_billed', 'total_paid',
                 'balance', 'last_transaction_date']

def parties_to_frame(parties: List[PartyBalance]) -> pd.DataFrame:
    """Party balances as a DataFrame, in the order given."""
    return pd.DataFrame([p.to_dict() for p in parties], columns=['id'] + PARTY_COLUMNS)

def generate_ledger_report(
    parties: List[PartyBalance],
    items: List[Item],
    output_path: str,
    additional_info: Dict[str, Any] = None
) -> None:
    """Write a plain-text party balance and stock report."""

    logger.info(f"Generating ledger report: {output_path}")
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    frame = parties_to_frame(parties)
    receivable = frame.loc[(frame['party_type'] == 'customer') & (frame['balance'] > 0), 'balance'].sum()
    payable = frame.loc[(frame['party_type'] == 'supplier') & (frame['balance'] > 0), 'balance'].sum()

    with open(output_path, 'w', encoding='utf-8') as f:
        f.write("STOCKLEDGER - PARTY & STOCK REPORT\n")
        f.write("=" * 60 + "\n")
        f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write("\n")

        f.write("PARTY BALANCES\n")
        f.write("-" * 30 + "\n")
        if frame.empty:
            f.write("No parties\n")
        else:
            for row in frame.itertuples(index=False):
                f.write(f"{row.name:<24} {row.phone_number:<14} {row.party_type:<9} "
                        f"billed {row.total_billed:>12,.2f}  paid {row.total_paid:>12,.2f}  "
                        f"balance {row.balance:>12,.2f}\n")
        f.write(f"\nTotal receivable: {receivable:,.2f}\n")
        f.write(f"Total payable: {payable:,.2f}\n")
        f.write("\n")

        f.write("STOCK\n")
        f.write("-" * 30 + "\n")
        for item in items:
            flag = "  LOW" if item.is_low_stock else ""
            universal = " (universal)" if item.is_universal else ""
            f.write(f"{item.product_name + universal:<36} {display_bags(item.stock_bags):>10} bags "
                    f"{display_kg(item.stock_bags):>8} kg{flag}\n")

        if additional_info:
            f.write("\nADDITIONAL INFORMATION\n")
            f.write("-" * 30 + "\n")
            for key, value in additional_info.items():
                f.write(f"{key}: {value}\n")

    logger.info("Report generated successfully")
