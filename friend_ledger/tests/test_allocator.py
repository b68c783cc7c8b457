"""
Split calculator tests: equal, exact and percentage bills, plus the checks
applied when a bill is created.
"""
from decimal import Decimal
from datetime import datetime

import pytest

from friend_ledger.allocator import (
    BillValidationError, compute_individual_amounts, to_money, validate_bill,
)
from friend_ledger.datatypes import Bill, SplitType

WHEN = datetime(2025, 3, 1, 12, 0)


def _bill(amount, split_with, split_type=SplitType.EQUAL, split_amounts=None, payer="You"):
    return Bill(
        amount=amount,
        payer=payer,
        split_with=tuple(split_with),
        split_type=split_type,
        split_amounts=split_amounts or {},
        date=WHEN,
    )


class TestComputeIndividualAmounts:

    def test_equal_split_three_ways(self):
        """90.00 over three people is exactly 30.00 each"""
        bill = _bill(Decimal("90.00"), ["You", "Alice", "Bob"])
        amounts = compute_individual_amounts(bill)

        assert amounts == {"You": Decimal("30.00"), "Alice": Decimal("30.00"), "Bob": Decimal("30.00")}
        assert sum(amounts.values()) == Decimal("90.00")

    def test_equal_split_rounds_to_cents(self):
        bill = _bill(Decimal("100.00"), ["You", "Alice", "Bob"])
        amounts = compute_individual_amounts(bill)

        assert set(amounts.values()) == {Decimal("33.33")}

    def test_equal_split_ignores_duplicate_participants(self):
        bill = _bill(Decimal("50.00"), ["Alice", "Bob", "Alice"])

        assert bill.split_with == ("Alice", "Bob")
        assert compute_individual_amounts(bill) == {"Alice": Decimal("25.00"), "Bob": Decimal("25.00")}

    def test_empty_split_yields_no_amounts(self):
        bill = _bill(Decimal("40.00"), [])
        assert compute_individual_amounts(bill) == {}

    def test_percentage_split(self):
        """200.00 at 30/70 gives 60.00 and 140.00"""
        bill = _bill(Decimal("200.00"), ["A", "B"], SplitType.PERCENTAGE,
                     {"A": Decimal("30"), "B": Decimal("70")})

        assert compute_individual_amounts(bill) == {"A": Decimal("60.00"), "B": Decimal("140.00")}

    def test_percentage_split_missing_participant_owes_nothing(self):
        bill = _bill(Decimal("80.00"), ["A", "B"], SplitType.PERCENTAGE, {"A": Decimal("100")})

        assert compute_individual_amounts(bill) == {"A": Decimal("80.00"), "B": Decimal("0.00")}

    def test_exact_split_is_returned_as_given(self):
        bill = _bill(Decimal("75.00"), ["You", "Alice"], SplitType.EXACT,
                     {"You": Decimal("25.50"), "Alice": Decimal("49.50")})

        assert compute_individual_amounts(bill) == {"You": Decimal("25.50"), "Alice": Decimal("49.50")}

    def test_unknown_split_type_falls_back_to_equal(self):
        bill = _bill(Decimal("60.00"), ["A", "B"], split_type="custom")

        assert bill.split_type is SplitType.EQUAL
        assert compute_individual_amounts(bill) == {"A": Decimal("30.00"), "B": Decimal("30.00")}


class TestValidateBill:

    def test_valid_equal_bill_passes(self):
        bill = _bill(Decimal("30.00"), ["You", "Alice"])
        assert validate_bill(bill) is bill

    def test_exact_amounts_must_match_total(self):
        bill = _bill(Decimal("100.00"), ["You", "Alice"], SplitType.EXACT,
                     {"You": Decimal("40.00"), "Alice": Decimal("50.00")})

        with pytest.raises(BillValidationError) as excinfo:
            validate_bill(bill)
        assert "don't match total" in str(excinfo.value)

    def test_exact_amounts_within_a_cent_are_accepted(self):
        bill = _bill(Decimal("100.00"), ["You", "Alice"], SplitType.EXACT,
                     {"You": Decimal("33.33"), "Alice": Decimal("66.66")})
        validate_bill(bill)

    def test_percentages_must_add_to_100(self):
        bill = _bill(Decimal("100.00"), ["A", "B"], SplitType.PERCENTAGE,
                     {"A": Decimal("30"), "B": Decimal("60")})

        with pytest.raises(BillValidationError, match="100%"):
            validate_bill(bill)

    def test_collects_every_problem(self):
        bill = _bill(Decimal("0"), [], payer="")

        with pytest.raises(BillValidationError) as excinfo:
            validate_bill(bill)
        assert excinfo.value.problems == [
            "Amount must be greater than 0",
            "Please select who paid",
            "Please select who to split with",
        ]

    def test_cannot_split_with_only_the_payer(self):
        bill = _bill(Decimal("10.00"), ["You"], payer="You")

        with pytest.raises(BillValidationError, match="only yourself"):
            validate_bill(bill)

    def test_amount_too_large(self):
        bill = _bill(Decimal("1000000"), ["You", "Alice"])

        with pytest.raises(BillValidationError, match="too large"):
            validate_bill(bill)


def test_to_money_handles_bad_input():
    assert to_money("$12.50") == Decimal("12.50")
    assert to_money(12.5) == Decimal("12.5")
    assert to_money("abc") is None
    assert to_money("") is None
    assert to_money(None) is None
    assert to_money("NaN") is None
