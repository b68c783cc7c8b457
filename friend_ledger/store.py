"""
Key-value persistence for bills, friends and settlements.

Values are JSON strings. Settlement histories live under one key per
unordered pair of people ("settlements_" + sorted names joined by "_"), and
new settlements are only ever appended.
"""

import json
import logging
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

from .allocator import BillValidationError
from .datatypes import Bill, Friend, Settlement, SETTLEMENTS_NS, namespaced_key, pair_key
from .records import (
    bill_to_record, bills_from_records, friend_from_record, friend_to_record,
    settlement_to_record, settlements_from_records,
)

logger = logging.getLogger(__name__)

BILLS_KEY = 'bills'
FRIENDS_KEY = 'friends'


class KeyValueStore(Protocol):
    """String store: get returns None for a missing key"""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...


class MemoryStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value


class JsonFileStore:
    """One file per key inside a directory"""

    def __init__(self, directory: Path):
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = ''.join(c if c.isalnum() or c in '-_.' else '_' for c in key)
        return self.directory / f'{safe}.json'

    def get(self, key):
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding='utf-8')

    def set(self, key, value):
        path = self._path(key)
        tmp = path.with_suffix('.tmp')
        tmp.write_text(value, encoding='utf-8')
        tmp.replace(path)
        logger.debug(f"Wrote {len(value)} bytes to {path}")


def _load_list(store: KeyValueStore, key: str) -> list:
    raw = store.get(key)
    if raw is None:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.error(f"Stored value for {key} is not valid JSON: {e}")
        raise
    if not isinstance(data, list):
        logger.warning(f"Stored value for {key} is not a list, ignoring it")
        return []
    return data


def _save_list(store: KeyValueStore, key: str, records: list) -> None:
    store.set(key, json.dumps(records, ensure_ascii=False))


# -------------------- bills --------------------

def load_bills(store: KeyValueStore) -> List[Bill]:
    bills = bills_from_records(_load_list(store, BILLS_KEY))
    logger.debug(f"Loaded {len(bills)} bills")
    return bills


def save_bills(store: KeyValueStore, bills: Iterable[Bill]) -> None:
    _save_list(store, BILLS_KEY, [bill_to_record(b) for b in bills])


def add_bill(store: KeyValueStore, bill: Bill) -> List[Bill]:
    bills = load_bills(store) + [bill]
    save_bills(store, bills)
    logger.info(f"Added bill {bill.name or bill.id} ({bill.amount} {bill.currency}) paid by {bill.payer}")
    return bills


class BillNotFoundError(KeyError):
    """Raised when no stored bill has the given id"""


def _find_bill(bills: List[Bill], bill_id: str) -> Bill:
    for bill in bills:
        if bill.id == bill_id:
            return bill
    raise BillNotFoundError(bill_id)


def delete_bill(store: KeyValueStore, bill_id: str) -> Bill:
    """
    Remove one bill by id and return it.

    Settlement histories are left alone: a settlement that no longer has a
    shared bill to count against simply stops applying.
    """
    bills = load_bills(store)
    bill = _find_bill(bills, bill_id)
    save_bills(store, [b for b in bills if b is not bill])
    logger.info(f"Deleted bill {bill.name or bill.id} ({bill.amount} {bill.currency})")
    return bill


def duplicate_bill(store: KeyValueStore, bill_id: str, new_id: str, when: datetime) -> Bill:
    """Append a copy of a stored bill under a new id, dated when"""
    bills = load_bills(store)
    original = _find_bill(bills, bill_id)
    if not original.name or original.amount is None or not original.payer:
        raise BillValidationError(["Cannot duplicate incomplete bill data"])
    copy = replace(original, id=new_id, name=f"{original.name} (Copy)", date=when)
    save_bills(store, bills + [copy])
    logger.info(f"Duplicated bill {original.id} as {new_id}")
    return copy


# -------------------- friends --------------------

def load_friends(store: KeyValueStore) -> List[Friend]:
    friends = []
    for record in _load_list(store, FRIENDS_KEY):
        if isinstance(record, dict) and str(record.get('name', '')).strip():
            friends.append(friend_from_record(record))
    return friends


def save_friends(store: KeyValueStore, friends: Iterable[Friend]) -> None:
    _save_list(store, FRIENDS_KEY, [friend_to_record(f) for f in friends])


# -------------------- settlements --------------------

def settlements_key(a: str, b: str) -> str:
    return namespaced_key(SETTLEMENTS_NS, a, b)


def load_settlements(store: KeyValueStore, a: str, b: str) -> List[Settlement]:
    return settlements_from_records(_load_list(store, settlements_key(a, b)))


def save_settlements(store: KeyValueStore, a: str, b: str, settlements: Iterable[Settlement]) -> None:
    _save_list(store, settlements_key(a, b), [settlement_to_record(s) for s in settlements])


def append_settlement(store: KeyValueStore, a: str, b: str, settlement: Settlement) -> List[Settlement]:
    history = load_settlements(store, a, b) + [settlement]
    save_settlements(store, a, b, history)
    logger.info(f"Recorded settlement of {settlement.amount} from {settlement.payer_name} "
                f"to {settlement.receiver_name}")
    return history


def load_settlement_book(store: KeyValueStore, names: Iterable[str]) -> Dict[str, List[Settlement]]:
    """Settlement histories for every pair among the given names"""
    people = sorted(set(names))
    book = {}
    for i, a in enumerate(people):
        for b in people[i + 1:]:
            history = load_settlements(store, a, b)
            if history:
                book[pair_key(a, b)] = history
    return book
