"""
Bill history views: search, period filters and sorting for the list of
recorded expenses.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from .datatypes import Bill, ZERO

logger = logging.getLogger(__name__)

PERIODS = ('all', 'thisMonth', 'thisWeek')
BILL_SORTS = ('date', 'amount', 'name')


def search_bills(bills: Iterable[Bill], query: str) -> List[Bill]:
    """Case-insensitive match on name, payer, note, amount or any participant"""
    query = (query or '').strip().lower()
    if not query:
        return list(bills)
    out = []
    for bill in bills:
        fields = [bill.name, bill.payer, bill.note, '' if bill.amount is None else str(bill.amount)]
        fields.extend(bill.split_with)
        if any(query in (text or '').lower() for text in fields):
            out.append(bill)
    return out


def _week_start(now: datetime) -> datetime:
    # weeks start on Sunday
    days_since_sunday = (now.weekday() + 1) % 7
    return (now - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)


def filter_bills(bills: Iterable[Bill], period: str = 'all', now: Optional[datetime] = None,
                 start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[Bill]:
    """
    Keep bills in the given period and, when set, within [start, end].

    thisMonth is the calendar month of now, thisWeek runs from the most recent
    Sunday. An end date without a time covers that whole day.
    """
    if period not in PERIODS:
        raise ValueError(f"Unknown period {period!r}, expected one of {', '.join(PERIODS)}")
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    if end is not None and end.time() == datetime.min.time():
        end = end + timedelta(days=1) - timedelta(microseconds=1)

    out = []
    for bill in bills:
        if period == 'thisMonth' and (bill.date.year, bill.date.month) != (now.year, now.month):
            continue
        if period == 'thisWeek' and bill.date < _week_start(now):
            continue
        if start is not None and bill.date < start:
            continue
        if end is not None and bill.date > end:
            continue
        out.append(bill)
    logger.debug(f"{len(out)} bills left after filtering on {period}")
    return out


def sort_bills(bills: Iterable[Bill], sort_by: str = 'date') -> List[Bill]:
    """Newest first, largest first, or alphabetical by name"""
    if sort_by not in BILL_SORTS:
        raise ValueError(f"Unknown sort {sort_by!r}, expected one of {', '.join(BILL_SORTS)}")
    if sort_by == 'amount':
        return sorted(bills, key=lambda b: b.amount if b.amount is not None else ZERO, reverse=True)
    if sort_by == 'name':
        return sorted(bills, key=lambda b: (b.name or '').lower())
    return sorted(bills, key=lambda b: b.date, reverse=True)
