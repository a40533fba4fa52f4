"""Fold a group's ledger entries into who-owes-whom balances.

Balances are always a projection over the append-only ledger. Only the
final sums matter, so entries may be replayed in any order.
"""

import logging
from collections.abc import Iterable, Mapping

from .exceptions import ImbalancedLedgerError, UnresolvedBillError
from .models import EntryType, LedgerEntry
from .money import Money

logger = logging.getLogger(__name__)

Pair = tuple[str, str]  # (debtor, creditor)


def _expense_debts(
    entry: LedgerEntry, resolved_bills: Mapping[str, Mapping[str, int]]
) -> Iterable[tuple[str, int]]:
    """Yield (participant, owed) for an expense entry."""
    if entry.bill_id is not None:
        if entry.bill_id not in resolved_bills:
            raise UnresolvedBillError(entry.bill_id)
        owed = resolved_bills[entry.bill_id]
        bill_total = sum(owed.values())
        if bill_total != entry.amount:
            raise ImbalancedLedgerError(
                entry.amount - bill_total,
                f"Expense {entry.entry_id} records {entry.amount} kobo but bill "
                f"{entry.bill_id} resolves to {bill_total} kobo",
            )
        return owed.items()

    shares = Money(entry.amount).split_evenly(len(entry.split_among))
    return [(user_id, share.kobo) for user_id, share in zip(entry.split_among, shares)]


def aggregate_balances(
    entries: Iterable[LedgerEntry],
    resolved_bills: Mapping[str, Mapping[str, int]],
) -> dict[Pair, int]:
    """
    Compute who owes whom within a group.

    Steps:
    1. Each expense attributes every participant's owed share as a debt to
       the entry's payer (the payer's own share is not a debt)
    2. Each payment or settlement reduces the payer's debt to the recipient
    3. Opposite debts between the same two people are netted

    Args:
        entries: All ledger entries for the group
        resolved_bills: Per-user owed amounts keyed by bill_id (see resolver)

    Returns:
        Mapping of (debtor, creditor) to a positive kobo amount. Each pair of
        users appears at most once.

    Raises:
        UnresolvedBillError: If an expense links a bill missing from resolved_bills
        ImbalancedLedgerError: If an expense amount disagrees with its bill, or
            a bill is recorded by more than one expense
    """
    raw: dict[Pair, int] = {}

    def add(debtor: str, creditor: str, amount: int) -> None:
        if debtor == creditor or amount == 0:
            return
        raw[(debtor, creditor)] = raw.get((debtor, creditor), 0) + amount

    recorded_bills: set[str] = set()
    for entry in entries:
        if entry.entry_type == "expense":
            if entry.bill_id is not None:
                if entry.bill_id in recorded_bills:
                    raise ImbalancedLedgerError(
                        entry.amount,
                        f"Bill {entry.bill_id} is recorded by more than one expense",
                    )
                recorded_bills.add(entry.bill_id)
            for user_id, owed in _expense_debts(entry, resolved_bills):
                add(user_id, entry.payer_id, owed)
        else:
            # recipient_id is guaranteed by LedgerEntry validation
            add(entry.recipient_id, entry.payer_id, entry.amount)  # type: ignore[arg-type]

    netted: dict[Pair, int] = {}
    for debtor, creditor in sorted(raw):
        if (creditor, debtor) in netted or (debtor, creditor) in netted:
            continue
        net = raw[(debtor, creditor)] - raw.get((creditor, debtor), 0)
        if net > 0:
            netted[(debtor, creditor)] = net
        elif net < 0:
            netted[(creditor, debtor)] = -net

    return dict(sorted(netted.items()))


def net_balances(pairwise: Mapping[Pair, int]) -> dict[str, int]:
    """
    Collapse pairwise debts into one signed balance per user.

    Positive means the group owes this user; negative means they owe.

    Raises:
        ImbalancedLedgerError: If the balances do not sum to zero
    """
    net: dict[str, int] = {}
    for (debtor, creditor), amount in pairwise.items():
        net[debtor] = net.get(debtor, 0) - amount
        net[creditor] = net.get(creditor, 0) + amount

    imbalance = sum(net.values())
    if imbalance != 0:
        raise ImbalancedLedgerError(imbalance)

    return {user_id: amount for user_id, amount in sorted(net.items()) if amount != 0}


def summarize_entries(entries: Iterable[LedgerEntry]) -> dict[EntryType, int]:
    """Total kobo recorded per entry type, for audit display."""
    totals: dict[EntryType, int] = {"expense": 0, "payment": 0, "settlement": 0}
    for entry in entries:
        totals[entry.entry_type] += entry.amount
    return totals
