from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Tuple
from datetime import datetime

Money = Decimal       # keep full-precision cents

ZERO = Money('0')

SETTLEMENTS_NS = 'settlements_'
FRIENDS_NS = 'friends_'
CHAT_NS = 'chat_'


class SplitType(str, Enum):
    EQUAL = 'equal'
    EXACT = 'exact'
    PERCENTAGE = 'percentage'

    @classmethod
    def parse(cls, value) -> 'SplitType':
        """Unknown or missing split types fall back to an equal split"""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.EQUAL


class Direction(str, Enum):
    USER_TO_FRIEND = 'user_to_friend'   # current user paid the friend
    FRIEND_TO_USER = 'friend_to_user'   # friend paid the current user

    @classmethod
    def parse(cls, value) -> Optional['Direction']:
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Bill:
    amount: Optional[Money]               # None when the stored value was unparsable
    payer: str
    split_with: Tuple[str, ...]           # deduplicated, first occurrence wins
    date: datetime                        # naive UTC
    split_type: SplitType = SplitType.EQUAL
    split_amounts: Dict[str, Money] = field(default_factory=dict)
    currency: str = 'USD'
    id: Optional[str] = None
    name: str = ''
    note: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'split_with', tuple(dict.fromkeys(self.split_with or ())))
        object.__setattr__(self, 'split_type', SplitType.parse(self.split_type))

    def involves(self, person: str) -> bool:
        return self.payer == person or person in self.split_with


@dataclass(frozen=True)
class Settlement:
    amount: Optional[Money]
    date: datetime                        # naive UTC
    payer_name: str
    receiver_name: str = ''
    direction: Optional[Direction] = None  # None on legacy records
    note: str = ''                         # payment method, free text
    id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'direction', Direction.parse(self.direction))


@dataclass
class Friend:
    name: str
    email: Optional[str] = None
    emoji: str = '👤'
    last_activity: Optional[datetime] = None


@dataclass(frozen=True)
class BalanceOverview:
    """Two-sided view of one relationship, as shown in the balance overview"""
    you_owe_friend: Money = ZERO
    friend_owes_you: Money = ZERO

    @property
    def net(self) -> Money:
        return self.friend_owes_you - self.you_owe_friend

    @classmethod
    def from_net(cls, net: Money) -> 'BalanceOverview':
        if net > 0:
            return cls(you_owe_friend=ZERO, friend_owes_you=net)
        if net < 0:
            return cls(you_owe_friend=-net, friend_owes_you=ZERO)
        return cls()


@dataclass(frozen=True)
class OthersBalance:
    friend_owes_others: Money = ZERO
    others_owe_friend: Money = ZERO
    breakdown: Dict[str, Money] = field(default_factory=dict)  # person → signed, + means they owe the friend


@dataclass(frozen=True)
class FriendDetail:
    friend: str
    overview: BalanceOverview
    others: OthersBalance
    currency: str = 'USD'


def pair_key(a: str, b: str) -> str:
    """Canonical key for an unordered pair of participants"""
    return '_'.join(sorted([a, b]))


def namespaced_key(namespace: str, a: str, b: str) -> str:
    return f'{namespace}{pair_key(a, b)}'
