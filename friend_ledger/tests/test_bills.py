"""
Bill history views: search, period and date-range filters, sorting.
"""
from decimal import Decimal
from datetime import datetime

import pytest

from friend_ledger.bills import filter_bills, search_bills, sort_bills
from friend_ledger.datatypes import Bill


def _bill(bill_id, name, amount, when, payer="You", split_with=("You", "Alice"), note=""):
    return Bill(id=bill_id, name=name, amount=None if amount is None else Decimal(amount),
                payer=payer, split_with=split_with, date=when, note=note)


# Wednesday 2025-06-18
NOW = datetime(2025, 6, 18, 12, 0)

BILLS = [
    _bill("1", "Groceries", "84.20", datetime(2025, 6, 16, 9, 0), note="weekly shop"),
    _bill("2", "cabin", "300.00", datetime(2025, 6, 2), payer="Bob", split_with=("You", "Bob", "Carol")),
    _bill("3", "Taxi", None, datetime(2025, 5, 30, 23, 0)),
    _bill("4", "Brunch", "42.00", datetime(2025, 6, 14, 11, 0), payer="Alice"),
]


class TestSearchBills:

    def test_empty_query_keeps_everything(self):
        assert search_bills(BILLS, "  ") == BILLS

    def test_matches_name_payer_note_and_participants(self):
        assert [b.id for b in search_bills(BILLS, "CABIN")] == ["2"]
        assert [b.id for b in search_bills(BILLS, "alice")] == ["1", "3", "4"]
        assert [b.id for b in search_bills(BILLS, "weekly")] == ["1"]
        assert [b.id for b in search_bills(BILLS, "carol")] == ["2"]

    def test_matches_amount_text(self):
        assert [b.id for b in search_bills(BILLS, "84.2")] == ["1"]


class TestFilterBills:

    def test_this_month(self):
        assert [b.id for b in filter_bills(BILLS, "thisMonth", now=NOW)] == ["1", "2", "4"]

    def test_this_week_starts_on_sunday(self):
        assert [b.id for b in filter_bills(BILLS, "thisWeek", now=NOW)] == ["1"]

    def test_date_range_includes_the_whole_end_day(self):
        kept = filter_bills(BILLS, start=datetime(2025, 5, 30), end=datetime(2025, 6, 14), now=NOW)
        assert [b.id for b in kept] == ["2", "3", "4"]

    def test_unknown_period_is_rejected(self):
        with pytest.raises(ValueError):
            filter_bills(BILLS, "lastYear")


class TestSortBills:

    def test_newest_first_by_default(self):
        assert [b.id for b in sort_bills(BILLS)] == ["1", "4", "2", "3"]

    def test_largest_amount_first_with_missing_amounts_last(self):
        assert [b.id for b in sort_bills(BILLS, "amount")] == ["2", "1", "4", "3"]

    def test_name_ignores_case(self):
        assert [b.id for b in sort_bills(BILLS, "name")] == ["4", "2", "1", "3"]
