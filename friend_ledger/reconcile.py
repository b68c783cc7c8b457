"""
Ledger reconciliation.

Balances are never stored. Every figure here is recomputed from the full list
of bills and the settlement book (pair key -> settlements between that pair)
whenever the caller decides its inputs changed. Nothing in this module raises
on bad records: a bill or settlement that cannot be read contributes zero.

Sign convention throughout: a positive net means the counterparty owes the
reference party.
"""

import hashlib
import json
import logging
from collections import OrderedDict, defaultdict
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from .allocator import compute_individual_amounts, to_money, _r
from .datatypes import (
    Bill, BalanceOverview, Direction, FriendDetail, Money, OthersBalance,
    Settlement, ZERO, pair_key,
)

logger = logging.getLogger(__name__)

SETTLED_TOLERANCE = Decimal('0.01')

SettlementBook = Mapping[str, Sequence[Settlement]]


@dataclass(frozen=True)
class SettlementStep:
    """One settlement applied during a replay"""
    settlement: Settlement
    orientation: int        # +1 reference party paid, -1 counterparty paid
    net_before: Money
    net_after: Money

    @property
    def overflow(self) -> Money:
        """Part of the payment that went beyond what the payer owed"""
        owed_by_payer = max(-self.orientation * self.net_before, ZERO)
        return max(to_money(self.settlement.amount) - owed_by_payer, ZERO)

    @property
    def flipped(self) -> bool:
        return self.net_before * self.net_after < 0


# -------------------- bill side --------------------

def _usable(bill: Bill) -> bool:
    amount = to_money(getattr(bill, 'amount', None))
    if amount is None or amount <= 0 or not getattr(bill, 'split_with', None):
        logger.debug(f"Skipping bill {getattr(bill, 'id', None)!r}: unusable amount or split")
        return False
    return True


def shared_bills(bills: Iterable[Bill], a: str, b: str) -> List[Bill]:
    """Usable bills in which both people take part, as payer or participant"""
    return [bill for bill in bills if _usable(bill) and bill.involves(a) and bill.involves(b)]


def _bill_net(bills: Iterable[Bill], party: str, counterparty: str) -> Money:
    net = ZERO
    for bill in bills:
        amounts = compute_individual_amounts(bill)
        if bill.payer == party and counterparty in bill.split_with:
            net += amounts.get(counterparty, ZERO)
        elif bill.payer == counterparty and party in bill.split_with:
            net -= amounts.get(party, ZERO)
    return _r(net)


# -------------------- settlement side --------------------

def order_settlements(settlements: Sequence[Settlement]) -> List[Settlement]:
    """
    Chronological order for replay.

    Settlements sharing a timestamp are ordered by id, and settlements without
    an id keep their stored order (the sort is stable).
    """
    return sorted(settlements, key=lambda s: (s.date, s.id is None, s.id or ''))


def settlement_orientation(settlement: Settlement, party: str, counterparty: str,
                           current_user: str) -> int:
    """
    +1 when party paid counterparty, -1 for the reverse, 0 when it can't be told.

    An explicit direction is relative to the current user, so it only decides
    when the current user is one of the two parties. Otherwise the payer name
    does.
    """
    if settlement.direction is not None and current_user in (party, counterparty):
        paid_by_user = settlement.direction is Direction.USER_TO_FRIEND
        if party == current_user:
            return 1 if paid_by_user else -1
        return -1 if paid_by_user else 1
    if settlement.payer_name == party:
        return 1
    if settlement.payer_name == counterparty:
        return -1
    return 0


def replay_settlements(opening: Money, settlements: Sequence[Settlement], party: str,
                       counterparty: str, current_user: str) -> List[SettlementStep]:
    """
    Apply settlements in the order given, starting from the opening net.

    A payment first clears what the payer owes; anything beyond that is
    overflow and leaves the other side owing it back.
    """
    steps = []
    net = _r(opening)
    for settlement in settlements:
        amount = to_money(settlement.amount)
        if amount is None or amount <= 0:
            logger.debug(f"Skipping settlement {settlement.id!r}: unusable amount")
            continue
        orientation = settlement_orientation(settlement, party, counterparty, current_user)
        if orientation == 0:
            logger.warning(f"Skipping settlement {settlement.id!r}: payer {settlement.payer_name!r} "
                           f"is neither {party!r} nor {counterparty!r}")
            continue
        after = _r(net + orientation * amount)
        steps.append(SettlementStep(settlement, orientation, net, after))
        net = after
    return steps


def _pair_settlements(settlements: Optional[SettlementBook], a: str, b: str) -> List[Settlement]:
    if not settlements:
        return []
    return list(settlements.get(pair_key(a, b), ()))


def applicable_settlements(settlements: Optional[SettlementBook], bills: Sequence[Bill],
                           a: str, b: str) -> List[Settlement]:
    """
    Settlements between a and b that count against their current bills.

    Anything dated before their first shared bill belongs to an earlier
    relationship and is dropped. Without a shared bill nothing applies.
    """
    shared = shared_bills(bills, a, b)
    if not shared:
        return []
    first_bill_date = min(bill.date for bill in shared)
    history = [s for s in _pair_settlements(settlements, a, b) if s.date >= first_bill_date]
    return order_settlements(history)


def _settle_small(net: Money) -> Money:
    net = _r(net)
    return ZERO if abs(net) < SETTLED_TOLERANCE else net


# -------------------- public API --------------------

def pair_history(bills: Sequence[Bill], settlements: Optional[SettlementBook],
                 party: str, counterparty: str,
                 current_user: Optional[str] = None) -> Tuple[Money, List[SettlementStep]]:
    """Opening net from bills plus the chronological settlement trail for one pair"""
    current_user = party if current_user is None else current_user
    shared = shared_bills(bills, party, counterparty)
    if party == counterparty or not shared:
        return ZERO, []
    opening = _bill_net(shared, party, counterparty)
    history = applicable_settlements(settlements, shared, party, counterparty)
    return opening, replay_settlements(opening, history, party, counterparty, current_user)


def _pair_net(bills, settlements, party, counterparty, current_user) -> Money:
    opening, steps = pair_history(bills, settlements, party, counterparty, current_user)
    return _settle_small(steps[-1].net_after if steps else opening)


def compute_net_balance(bills: Sequence[Bill], settlements: Optional[SettlementBook],
                        current_user: str, friend: str) -> Money:
    """
    Signed balance between the current user and one friend.

    Positive means the friend owes the current user. Exactly zero when the two
    share no bill, whatever settlements are on record.
    """
    return _pair_net(bills, settlements, current_user, friend, current_user)


def compute_pair_overview(bills: Sequence[Bill], settlements: Optional[SettlementBook],
                          current_user: str, friend: str) -> BalanceOverview:
    return BalanceOverview.from_net(compute_net_balance(bills, settlements, current_user, friend))


def compute_others_balances(bills: Sequence[Bill], settlements: Optional[SettlementBook],
                            friend: str, current_user: str) -> OthersBalance:
    """
    The friend's balances with everyone except the current user.

    The breakdown maps each other person to a signed amount, positive when
    that person owes the friend. A bill paid by someone else entirely creates
    no debt between the friend and the other participants.
    """
    opening = defaultdict(Decimal)
    candidates = []
    for bill in bills:
        if not _usable(bill) or not bill.involves(friend):
            continue
        amounts = compute_individual_amounts(bill)
        for person in (bill.payer, *bill.split_with):
            if person in (current_user, friend) or person in candidates:
                continue
            candidates.append(person)
        if bill.payer == friend:
            for participant in bill.split_with:
                if participant not in (current_user, friend):
                    opening[participant] += amounts.get(participant, ZERO)
        elif bill.payer != current_user and friend in bill.split_with:
            opening[bill.payer] -= amounts.get(friend, ZERO)

    breakdown = {}
    for person in candidates:
        history = applicable_settlements(settlements, bills, friend, person)
        steps = replay_settlements(opening[person], history, friend, person, current_user)
        net = _settle_small(steps[-1].net_after if steps else opening[person])
        if net != ZERO:
            breakdown[person] = net

    friend_owes_others = _r(sum((-v for v in breakdown.values() if v < 0), ZERO))
    others_owe_friend = _r(sum((v for v in breakdown.values() if v > 0), ZERO))
    return OthersBalance(friend_owes_others, others_owe_friend, breakdown)


def friend_currency(bills: Iterable[Bill], friend: str) -> Optional[str]:
    """Currency of the first bill the friend takes part in"""
    for bill in bills:
        if bill.involves(friend) and bill.currency:
            return bill.currency
    return None


def compute_friend_detail(bills: Sequence[Bill], settlements: Optional[SettlementBook],
                          current_user: str, friend: str,
                          default_currency: str = 'USD') -> FriendDetail:
    """
    Everything the friend detail view shows.

    On one's own profile the pairwise view has nothing to compare against, so
    the overview mirrors the totals with everyone else instead.
    """
    others = compute_others_balances(bills, settlements, friend, current_user)
    if friend == current_user:
        overview = BalanceOverview(you_owe_friend=others.friend_owes_others,
                                   friend_owes_you=others.others_owe_friend)
    else:
        overview = compute_pair_overview(bills, settlements, current_user, friend)
    currency = friend_currency(bills, friend) or default_currency
    return FriendDetail(friend=friend, overview=overview, others=others, currency=currency)


# -------------------- memoisation --------------------

def fingerprint(bills: Sequence[Bill], settlements: Optional[SettlementBook], *names: str) -> str:
    """Stable hash of reconciliation inputs"""
    payload = {
        'bills': [asdict(b) for b in bills],
        'settlements': {k: [asdict(s) for s in v] for k, v in sorted((settlements or {}).items())},
        'names': list(names),
    }
    blob = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(blob.encode('utf-8')).hexdigest()


class BalanceCache:
    """
    Recompute only when the inputs change.

    Entries are keyed on a fingerprint of bills, settlements and names, and the
    oldest entry is evicted once maxsize is reached.
    """

    def __init__(self, maxsize: int = 128):
        self.maxsize = maxsize
        self.hits = 0
        self.misses = 0
        self._entries: 'OrderedDict[str, object]' = OrderedDict()

    def _lookup(self, key, compute):
        if key in self._entries:
            self.hits += 1
            self._entries.move_to_end(key)
            return self._entries[key]
        self.misses += 1
        value = compute()
        self._entries[key] = value
        if len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)
        return value

    def net_balance(self, bills, settlements, current_user: str, friend: str) -> Money:
        key = 'net:' + fingerprint(bills, settlements, current_user, friend)
        return self._lookup(key, lambda: compute_net_balance(bills, settlements, current_user, friend))

    def friend_detail(self, bills, settlements, current_user: str, friend: str,
                      default_currency: str = 'USD') -> FriendDetail:
        key = 'detail:' + fingerprint(bills, settlements, current_user, friend, default_currency)
        return self._lookup(key, lambda: compute_friend_detail(
            bills, settlements, current_user, friend, default_currency))

    def clear(self) -> None:
        self._entries.clear()
        self.hits = self.misses = 0

    def __len__(self):
        return len(self._entries)
