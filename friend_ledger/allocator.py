from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Dict, List, Optional
import logging

from .datatypes import Bill, Money, SplitType, ZERO

logger = logging.getLogger(__name__)

MAX_BILL_AMOUNT = Decimal('999999')
SPLIT_TOLERANCE = Decimal('0.01')
HUNDRED = Decimal('100')


class BillValidationError(ValueError):
    """Raised when a bill is rejected at creation time"""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__('; '.join(problems))


def compute_individual_amounts(bill: Bill) -> Dict[str, Money]:
    """
    Work out what each participant owes for one bill.

    equal      -> amount / participants, rounded to cents for everyone
    exact      -> the stored split amounts, as given
    percentage -> amount * percent / 100 per participant, rounded to cents

    Bills with no participants yield an empty mapping. Callers are expected to
    skip bills with a non-positive amount before getting here.
    """
    amount = to_money(bill.amount) or ZERO

    if bill.split_type is SplitType.EXACT:
        return {p: to_money(v) or ZERO for p, v in bill.split_amounts.items()}

    if bill.split_type is SplitType.PERCENTAGE:
        return {
            p: _r(amount * (to_money(bill.split_amounts.get(p)) or ZERO) / HUNDRED)
            for p in bill.split_with
        }

    # Rule – equal (also the fallback for unknown split types)
    if not bill.split_with:
        return {}
    share = _r(amount / Decimal(len(bill.split_with)))
    return {p: share for p in bill.split_with}


def validate_bill(bill: Bill) -> Bill:
    """
    Reject inconsistent bills before they are stored.

    The reconciliation engine accepts whatever it is given; this is the single
    place where split totals are checked against the bill amount.
    """
    problems = []
    amount = to_money(bill.amount)

    if amount is None:
        problems.append("Please enter a valid amount")
    elif amount <= 0:
        problems.append("Amount must be greater than 0")
    elif amount > MAX_BILL_AMOUNT:
        problems.append("Amount is too large")

    if not bill.payer:
        problems.append("Please select who paid")

    if not bill.split_with:
        problems.append("Please select who to split with")
    elif bill.split_with == (bill.payer,):
        problems.append("Can't split with only yourself")

    if bill.split_type is SplitType.EXACT and amount is not None:
        total = sum((to_money(v) or ZERO for v in bill.split_amounts.values()), ZERO)
        if abs(total - amount) > SPLIT_TOLERANCE:
            problems.append(f"Split amounts don't match total ({total:.2f} vs {amount:.2f})")
    elif bill.split_type is SplitType.PERCENTAGE:
        total = sum((to_money(v) or ZERO for v in bill.split_amounts.values()), ZERO)
        if abs(total - HUNDRED) > SPLIT_TOLERANCE:
            problems.append(f"Percentages must add up to 100% (got {total}%)")

    if problems:
        logger.warning(f"Rejected bill {bill.name or bill.id or ''}: {'; '.join(problems)}")
        raise BillValidationError(problems)
    return bill


# -------------------- helpers --------------------

def to_money(value) -> Optional[Money]:
    """Coerce a stored amount to Decimal; None when it cannot be read"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    clean = str(value).replace('$', '').replace(',', '').strip()
    if clean == '':
        return None
    try:
        money = Decimal(clean)
    except InvalidOperation:
        logger.debug(f"Could not parse money amount: {value!r}")
        return None
    return money if money.is_finite() else None


def _r(x):  # round 2dp HALF_UP
    return Decimal(x).quantize(Decimal('0.01'), ROUND_HALF_UP)
