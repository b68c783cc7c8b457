"""
One-time backfill of settlement directions.

Older settlement records only carry a payer name. This pass derives the
explicit direction for them once, so the reconciliation code never has to
guess again. Like the rest of the ledger updates it returns new records and
leaves existing entries with a direction untouched.
"""

import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple

from .datatypes import Direction, Settlement, SETTLEMENTS_NS, namespaced_key
from .store import load_settlements, save_settlements

logger = logging.getLogger(__name__)


def infer_direction(settlement: Settlement, current_user: str, friend: str) -> Optional[Direction]:
    """Direction from the payer name, None when it matches neither party"""
    if settlement.payer_name == current_user:
        return Direction.USER_TO_FRIEND
    if settlement.payer_name == friend:
        return Direction.FRIEND_TO_USER
    return None


def normalize_settlements(settlements: Iterable[Settlement], current_user: str,
                          friend: str) -> Tuple[List[Settlement], int]:
    """
    Return settlements with a direction on every record that can be resolved,
    plus the number of records that were backfilled.
    """
    out = []
    backfilled = 0
    for settlement in settlements:
        if settlement.direction is not None:
            out.append(settlement)
            continue
        direction = infer_direction(settlement, current_user, friend)
        if direction is None:
            logger.warning(f"Cannot infer direction for settlement {settlement.id!r} "
                           f"between {current_user} and {friend} (payer {settlement.payer_name!r})")
            out.append(settlement)
            continue
        out.append(replace(settlement, direction=direction))
        backfilled += 1
        logger.debug(f"Backfilled {direction.value} on settlement {settlement.id!r}")
    return out, backfilled


def migrate_store(store, current_user: str, friends: Iterable[str]) -> int:
    """
    Run the backfill over every stored settlement history of the current user.

    Only histories that actually change are written back.
    """
    total = 0
    for friend in friends:
        if friend == current_user:
            continue
        existing = load_settlements(store, current_user, friend)
        if not existing:
            continue
        updated, backfilled = normalize_settlements(existing, current_user, friend)
        if backfilled:
            save_settlements(store, current_user, friend, updated)
            logger.info(f"Backfilled {backfilled} settlement direction(s) in "
                        f"{namespaced_key(SETTLEMENTS_NS, current_user, friend)}")
        total += backfilled
    logger.info(f"Settlement migration complete: {total} record(s) updated")
    return total
