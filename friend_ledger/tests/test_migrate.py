"""
Tests for the settlement direction backfill.
"""
import json
from decimal import Decimal
from datetime import datetime

from friend_ledger.datatypes import Bill, Direction, Settlement, pair_key
from friend_ledger.migrate import infer_direction, migrate_store, normalize_settlements
from friend_ledger.reconcile import compute_net_balance
from friend_ledger.store import MemoryStore, load_settlements, settlements_key


def _legacy(payer, receiver="", amount="10.00", settlement_id=None):
    return Settlement(amount=Decimal(amount), date=datetime(2025, 2, 1),
                      payer_name=payer, receiver_name=receiver, id=settlement_id)


class TestNormalizeSettlements:

    def test_infers_from_payer(self):
        assert infer_direction(_legacy("You"), "You", "Alice") is Direction.USER_TO_FRIEND
        assert infer_direction(_legacy("Alice"), "You", "Alice") is Direction.FRIEND_TO_USER
        assert infer_direction(_legacy("Mallory"), "You", "Alice") is None

    def test_receiver_alone_does_not_decide(self):
        assert infer_direction(_legacy("", receiver="You"), "You", "Alice") is None
        assert infer_direction(_legacy("Mallory", receiver="Alice"), "You", "Alice") is None

    def test_backfills_only_missing_directions(self):
        explicit = Settlement(amount=Decimal("5.00"), date=datetime(2025, 2, 2), payer_name="You",
                              direction=Direction.FRIEND_TO_USER)
        records = [_legacy("You", settlement_id="1"), explicit, _legacy("Mallory", settlement_id="3")]

        updated, backfilled = normalize_settlements(records, "You", "Alice")

        assert backfilled == 1
        assert updated[0].direction is Direction.USER_TO_FRIEND
        assert updated[0].id == "1"
        assert updated[1] is explicit
        assert updated[2].direction is None
        # originals are untouched
        assert records[0].direction is None

    def test_backfill_leaves_balances_unchanged(self):
        bills = [Bill(amount=Decimal("40.00"), payer="Alice", split_with=("You", "Alice"),
                      date=datetime(2025, 1, 1))]
        history = [
            _legacy("Mallory", receiver="Alice", amount="20.00", settlement_id="m"),
            _legacy("", receiver="You", amount="3.00", settlement_id="r"),
            _legacy("You", receiver="Alice", amount="7.00", settlement_id="y"),
            _legacy("Alice", receiver="You", amount="2.00", settlement_id="a"),
        ]
        before = compute_net_balance(bills, {pair_key("You", "Alice"): history}, "You", "Alice")

        updated, backfilled = normalize_settlements(history, "You", "Alice")
        after = compute_net_balance(bills, {pair_key("You", "Alice"): updated}, "You", "Alice")

        assert backfilled == 2
        assert before == after == Decimal("-15.00")


def test_migrate_store_rewrites_changed_histories():
    store = MemoryStore({
        settlements_key("You", "Alice"): json.dumps([
            {"id": "1", "amount": "12.00", "date": "2025-02-01T00:00:00.000Z", "payerName": "Alice"},
            {"id": "2", "amount": "3.00", "date": "2025-02-03T00:00:00.000Z", "payerName": "You",
             "direction": "user_to_friend"},
        ]),
        settlements_key("You", "Bob"): json.dumps([
            {"id": "3", "amount": "4.00", "date": "2025-02-01T00:00:00.000Z", "payerName": "You",
             "direction": "user_to_friend"},
        ]),
    })
    bob_before = store.get(settlements_key("You", "Bob"))

    assert migrate_store(store, "You", ["You", "Alice", "Bob", "Carol"]) == 1

    alice = load_settlements(store, "You", "Alice")
    assert [s.direction for s in alice] == [Direction.FRIEND_TO_USER, Direction.USER_TO_FRIEND]
    assert store.get(settlements_key("You", "Bob")) == bob_before
    assert migrate_store(store, "You", ["Alice", "Bob"]) == 0
