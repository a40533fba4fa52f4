"""Suggest transfers that settle a group's net balances."""

import heapq
import logging
from collections.abc import Iterable, Mapping

from .exceptions import ImbalancedLedgerError
from .models import Transfer

logger = logging.getLogger(__name__)


def suggest_settlements(balances: Mapping[str, int]) -> list[Transfer]:
    """
    Propose a short list of transfers that brings every balance to zero.

    Greedy: match the largest debtor against the largest creditor, settle
    the smaller of the two amounts, and repeat. Each step zeroes at least
    one person, so there are at most n - 1 transfers. Ties are broken by
    user_id so the suggestion is deterministic.

    Args:
        balances: Signed kobo per user (positive = owed to them)

    Returns:
        Ordered list of transfers

    Raises:
        ImbalancedLedgerError: If the balances do not sum to zero
    """
    imbalance = sum(balances.values())
    if imbalance != 0:
        raise ImbalancedLedgerError(imbalance)

    # Max-heaps keyed on magnitude via negation
    debtors = [(amount, user_id) for user_id, amount in balances.items() if amount < 0]
    creditors = [
        (-amount, user_id) for user_id, amount in balances.items() if amount > 0
    ]
    heapq.heapify(debtors)
    heapq.heapify(creditors)

    transfers = []
    while debtors and creditors:
        debt, debtor = heapq.heappop(debtors)
        credit, creditor = heapq.heappop(creditors)

        amount = min(-debt, -credit)
        transfers.append(
            Transfer(from_user_id=debtor, to_user_id=creditor, amount=amount)
        )

        if -debt > amount:
            heapq.heappush(debtors, (debt + amount, debtor))
        if -credit > amount:
            heapq.heappush(creditors, (credit + amount, creditor))

    logger.debug(f"Suggested {len(transfers)} transfers for {len(balances)} users")

    return transfers


def apply_transfers(
    balances: Mapping[str, int], transfers: Iterable[Transfer]
) -> dict[str, int]:
    """Return the balances that remain after the given transfers are made."""
    remaining = dict(balances)
    for transfer in transfers:
        remaining[transfer.from_user_id] = (
            remaining.get(transfer.from_user_id, 0) + transfer.amount
        )
        remaining[transfer.to_user_id] = (
            remaining.get(transfer.to_user_id, 0) - transfer.amount
        )
    return remaining
