import pandas as pd
from pathlib import Path
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from .allocator import to_money
from .datatypes import Bill, Direction, Settlement, SplitType
from .records import EPOCH, parse_timestamp, format_timestamp

logger = logging.getLogger(__name__)

# Column order of the bills export
BILL_COLUMNS = [
    'Id',
    'Date',
    'Name',
    'Amount',
    'Currency',
    'Payer',
    'Split With',
    'Split Type',
    'Split Amounts',
    'Note',
]

SETTLEMENT_COLUMNS = [
    'Id',
    'Date',
    'Amount',
    'Payer',
    'Receiver',
    'Direction',
    'Note',
]


def write_bills(csv_path: Path, bills: List[Bill]) -> None:
    """Write bills to CSV, replacing any existing file"""
    logger.info(f"Writing {len(bills)} bills to {csv_path}")
    df = pd.DataFrame([_bill_to_row(b) for b in bills], columns=BILL_COLUMNS)
    df.to_csv(csv_path, index=False)


def read_bills(csv_path: Path) -> List[Bill]:
    """Read bills from CSV; unreadable amounts are kept as None"""
    if not csv_path.exists():
        logger.info(f"Bills file {csv_path} does not exist, returning no bills")
        return []

    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    logger.debug(f"Read {len(df)} rows from {csv_path}")

    bills = []
    for _, row in df.iterrows():
        bills.append(Bill(
            id=_text(row.get('Id')) or None,
            date=parse_timestamp(_text(row.get('Date'))) or EPOCH,
            name=_text(row.get('Name')),
            amount=_parse_money(row.get('Amount')),
            currency=_text(row.get('Currency')) or 'USD',
            payer=_text(row.get('Payer')),
            split_with=tuple(p.strip() for p in _text(row.get('Split With')).split(';') if p.strip()),
            split_type=SplitType.parse(_text(row.get('Split Type'))),
            split_amounts=_parse_split_amounts(row.get('Split Amounts')),
            note=_text(row.get('Note')),
        ))

    logger.info(f"Converted {len(bills)} CSV rows to bills")
    return bills


def write_settlements(csv_path: Path, settlements: List[Settlement]) -> None:
    logger.info(f"Writing {len(settlements)} settlements to {csv_path}")
    rows = [{
        'Id': s.id,
        'Date': format_timestamp(s.date),
        'Amount': _format_money(s.amount),
        'Payer': s.payer_name,
        'Receiver': s.receiver_name,
        'Direction': s.direction.value if s.direction else '',
        'Note': s.note,
    } for s in settlements]
    pd.DataFrame(rows, columns=SETTLEMENT_COLUMNS).to_csv(csv_path, index=False)


def read_settlements(csv_path: Path) -> List[Settlement]:
    """Read settlements from CSV; an unknown or empty direction reads as None"""
    if not csv_path.exists():
        logger.info(f"Settlements file {csv_path} does not exist, returning no settlements")
        return []

    df = pd.read_csv(csv_path, dtype=str, keep_default_na=False)
    logger.debug(f"Read {len(df)} rows from {csv_path}")

    settlements = []
    for _, row in df.iterrows():
        settlements.append(Settlement(
            id=_text(row.get('Id')) or None,
            date=parse_timestamp(_text(row.get('Date'))) or EPOCH,
            amount=_parse_money(row.get('Amount')),
            payer_name=_text(row.get('Payer')),
            receiver_name=_text(row.get('Receiver')),
            direction=Direction.parse(_text(row.get('Direction'))),
            note=_text(row.get('Note')),
        ))

    logger.info(f"Converted {len(settlements)} CSV rows to settlements")
    return settlements


def _bill_to_row(bill: Bill) -> dict:
    return {
        'Id': bill.id,
        'Date': format_timestamp(bill.date),
        'Name': bill.name,
        'Amount': _format_money(bill.amount),
        'Currency': bill.currency,
        'Payer': bill.payer,
        'Split With': ';'.join(bill.split_with),
        'Split Type': bill.split_type.value,
        'Split Amounts': ';'.join(f'{p}:{v}' for p, v in bill.split_amounts.items()),
        'Note': bill.note,
    }


def _text(value) -> str:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ''
    return str(value).strip()


def _format_money(amount):
    """Format money amount with $ prefix"""
    if amount is None:
        return ''
    if amount < 0:
        return f'-${abs(amount):.2f}'
    return f'${amount:.2f}'


def _parse_money(money_str) -> Optional[Decimal]:
    """Parse money string, remove $ prefix and convert to Decimal"""
    money = to_money(_text(money_str).replace('-$', '-'))
    if money is None and _text(money_str):
        logger.warning(f"Could not parse money amount: {money_str}")
    return money


def _parse_split_amounts(value) -> Dict[str, Decimal]:
    """Parse 'name:value;name:value' pairs"""
    out = {}
    for pair in _text(value).split(';'):
        if ':' not in pair:
            continue
        person, raw = pair.rsplit(':', 1)
        money = to_money(raw)
        if money is None:
            logger.warning(f"Could not parse split amount for {person.strip()}: {raw}")
            continue
        out[person.strip()] = money
    return out
