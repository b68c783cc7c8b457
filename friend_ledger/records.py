"""
Conversion between stored JSON records and ledger datatypes.

Stored records use the app's camelCase field names (splitWith, payerName...).
Parsing is lenient: a bad amount becomes None so the bill simply contributes
nothing, and a bad timestamp falls back to the epoch with a warning.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from .allocator import to_money
from .datatypes import Bill, Direction, Friend, Settlement, SplitType

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse ISO strings, epoch millis or datetimes into naive UTC datetimes"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        dt = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        try:
            dt = date_parser.isoparse(str(value).strip())
        except (ValueError, OverflowError):
            try:
                dt = date_parser.parse(str(value))
            except (ValueError, OverflowError):
                logger.warning(f"Could not parse date: {value!r}")
                return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def format_timestamp(dt: datetime) -> str:
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f'{dt.microsecond // 1000:03d}Z'


def _money_out(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else f'{value:.2f}'


def _split_amounts_in(raw) -> Dict[str, Decimal]:
    if not isinstance(raw, dict):
        return {}
    out = {}
    for person, value in raw.items():
        money = to_money(value)
        if money is None:
            logger.debug(f"Ignoring unreadable split amount for {person}: {value!r}")
            continue
        out[str(person)] = money
    return out


def bill_from_record(record: Dict[str, Any]) -> Bill:
    split_with = record.get('splitWith') or []
    if isinstance(split_with, str):
        split_with = [split_with]
    return Bill(
        amount=to_money(record.get('amount')),
        payer=str(record.get('payer') or ''),
        split_with=tuple(str(p) for p in split_with),
        split_type=SplitType.parse(record.get('splitType')),
        split_amounts=_split_amounts_in(record.get('splitAmounts')),
        date=parse_timestamp(record.get('date')) or parse_timestamp(record.get('createdAt')) or EPOCH,
        currency=record.get('currency') or 'USD',
        id=None if record.get('id') is None else str(record.get('id')),
        name=record.get('name') or '',
        note=record.get('note') or '',
    )


def bill_to_record(bill: Bill) -> Dict[str, Any]:
    return {
        'id': bill.id,
        'name': bill.name,
        'amount': _money_out(bill.amount),
        'currency': bill.currency,
        'payer': bill.payer,
        'splitWith': list(bill.split_with),
        'splitType': bill.split_type.value,
        'splitAmounts': {p: str(v) for p, v in bill.split_amounts.items() if v is not None},
        'date': format_timestamp(bill.date),
        'note': bill.note,
    }


def settlement_from_record(record: Dict[str, Any]) -> Settlement:
    return Settlement(
        amount=to_money(record.get('amount')),
        date=parse_timestamp(record.get('date')) or EPOCH,
        payer_name=str(record.get('payerName') or ''),
        receiver_name=str(record.get('receiverName') or ''),
        direction=Direction.parse(record.get('direction')),
        note=record.get('note') or '',
        id=None if record.get('id') is None else str(record.get('id')),
    )


def settlement_to_record(settlement: Settlement) -> Dict[str, Any]:
    record = {
        'id': settlement.id,
        'amount': _money_out(settlement.amount),
        'date': format_timestamp(settlement.date),
        'payerName': settlement.payer_name,
        'receiverName': settlement.receiver_name,
        'note': settlement.note,
    }
    if settlement.direction is not None:
        record['direction'] = settlement.direction.value
    return record


def friend_from_record(record: Dict[str, Any]) -> Friend:
    return Friend(
        name=str(record.get('name', '')).strip(),
        email=record.get('email') or None,
        emoji=record.get('emoji') or '👤',
        last_activity=parse_timestamp(record.get('lastActivity')),
    )


def friend_to_record(friend: Friend) -> Dict[str, Any]:
    return {
        'name': friend.name,
        'email': friend.email,
        'emoji': friend.emoji,
        'lastActivity': format_timestamp(friend.last_activity) if friend.last_activity else None,
    }


def bills_from_records(records: List[Dict[str, Any]]) -> List[Bill]:
    bills = []
    for record in records:
        if not isinstance(record, dict):
            logger.warning(f"Skipping malformed bill record: {record!r}")
            continue
        bills.append(bill_from_record(record))
    return bills


def settlements_from_records(records: List[Dict[str, Any]]) -> List[Settlement]:
    settlements = []
    for record in records:
        if not isinstance(record, dict):
            logger.warning(f"Skipping malformed settlement record: {record!r}")
            continue
        settlements.append(settlement_from_record(record))
    return settlements
