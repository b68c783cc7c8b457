"""
Friends list views: per-friend balances, search, filters, sorting and the
summary figures shown above the list.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .datatypes import Bill, Friend, Money, ZERO
from .reconcile import SettlementBook, compute_net_balance

logger = logging.getLogger(__name__)

FILTERS = ('all', 'settled', 'owes', 'recent', 'highBalance')
SORTS = ('name', 'balance', 'activity')

CURRENCY_SYMBOLS = {
    'USD': '$',
    'CAD': 'C$',
    'INR': '₹',
    'MXN': 'Mex$',
}


class FriendHasBalanceError(ValueError):
    """Raised when removing a friend who still has an open balance"""

    def __init__(self, name: str, balance: Money):
        self.name = name
        self.balance = balance
        super().__init__(f"{name} has an outstanding balance of ${abs(balance):.2f}. "
                         f"Please settle all bills before removing them.")


def currency_symbol(code: Optional[str]) -> str:
    return CURRENCY_SYMBOLS.get(code or '', '')


def friend_balances(bills: List[Bill], settlements: Optional[SettlementBook],
                    current_user: str, roster: Iterable[Friend]) -> Dict[str, Money]:
    """Net balance with every friend on the roster, positive when they owe you"""
    balances = {}
    for friend in roster:
        if friend.name == current_user:
            continue
        balances[friend.name] = compute_net_balance(bills, settlements, current_user, friend.name)
    return balances


def search_friends(friends: Iterable[Friend], query: str) -> List[Friend]:
    query = (query or '').strip().lower()
    if not query:
        return list(friends)
    return [f for f in friends
            if query in f.name.lower() or (f.email and query in f.email.lower())]


def filter_friends(friends: Iterable[Friend], balances: Dict[str, Money], filter_by: str = 'all',
                   now: Optional[datetime] = None, tolerance: Decimal = Decimal('0.01'),
                   high_balance: Decimal = Decimal('20'), recent_days: int = 30) -> List[Friend]:
    friends = list(friends)
    if filter_by == 'all':
        return friends
    if filter_by not in FILTERS:
        raise ValueError(f"Unknown filter {filter_by!r}, expected one of {', '.join(FILTERS)}")

    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    out = []
    for friend in friends:
        balance = abs(balances.get(friend.name, ZERO))
        if filter_by == 'settled':
            keep = balance < tolerance
        elif filter_by == 'owes':
            keep = balance >= tolerance
        elif filter_by == 'highBalance':
            keep = balance >= high_balance
        else:
            keep = (friend.last_activity is not None
                    and friend.last_activity > now - timedelta(days=recent_days))
        if keep:
            out.append(friend)
    return out


def sort_friends(friends: Iterable[Friend], balances: Dict[str, Money], sort_by: str = 'name') -> List[Friend]:
    if sort_by not in SORTS:
        raise ValueError(f"Unknown sort {sort_by!r}, expected one of {', '.join(SORTS)}")
    if sort_by == 'balance':
        return sorted(friends, key=lambda f: abs(balances.get(f.name, ZERO)), reverse=True)
    if sort_by == 'activity':
        return sorted(friends, key=lambda f: f.last_activity or datetime.min, reverse=True)
    return sorted(friends, key=lambda f: f.name.lower())


def summary_stats(friends: Iterable[Friend], balances: Dict[str, Money],
                  tolerance: Decimal = Decimal('0.01')) -> Dict[str, object]:
    """Totals for the header of the friends list"""
    total_owed = sum((b for b in balances.values() if b > 0), ZERO)
    total_owe = sum((-b for b in balances.values() if b < 0), ZERO)
    return {
        'total_friends': len(list(friends)),
        'active_balances': sum(1 for b in balances.values() if abs(b) > tolerance),
        'total_owed': total_owed,
        'total_owe': total_owe,
    }


def balance_text(balance: Money, name: str, symbol: str = '$',
                 tolerance: Decimal = Decimal('0.01')) -> str:
    """Status line for a friend, from the current user's side"""
    if abs(balance) < tolerance:
        return "Settled up"
    if balance > 0:
        return f"{name} owes you {symbol}{abs(balance):.2f}"
    return f"You owe {name} {symbol}{abs(balance):.2f}"


def ensure_removable(name: str, balances: Dict[str, Money], tolerance: Decimal = Decimal('0.01')) -> None:
    balance = balances.get(name, ZERO)
    if abs(balance) > tolerance:
        logger.warning(f"Refusing to remove {name}: outstanding balance {balance}")
        raise FriendHasBalanceError(name, balance)
