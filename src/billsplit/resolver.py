"""Resolve bill items into per-user owed amounts.

Everything here is a pure function of its inputs.
"""

import logging
from collections.abc import Mapping, Sequence

from .exceptions import BillTotalMismatchError, InvalidShareError, UnassignedItemError
from .models import AssignmentStatus, Bill, BillItem, BillReport, ItemAssignment, ItemReport
from .money import Money

logger = logging.getLogger(__name__)


def resolve_item(
    item: BillItem, assignments: Sequence[ItemAssignment]
) -> dict[str, int]:
    """
    Compute what each assignee owes for one bill item.

    The line total (price * quantity) is split by share percentage so the
    owed amounts always add up to exactly the line total.

    Args:
        item: The bill item
        assignments: Assignments for this item, in insertion order

    Returns:
        Mapping of user_id to owed kobo

    Raises:
        UnassignedItemError: If the item has no assignments
        InvalidShareError: If the percentages do not total 100
    """
    if not assignments:
        raise UnassignedItemError(item.item_id, item.name)

    stray = [a for a in assignments if a.item_id != item.item_id]
    if stray:
        raise ValueError(
            f"Assignment {stray[0].assignment_id} belongs to item "
            f"{stray[0].item_id}, not {item.item_id}"
        )

    total = sum(a.share_percentage for a in assignments)
    if total != 100:
        raise InvalidShareError(total, item.item_id)

    shares = Money(item.line_total).split_by_percentages(
        [a.share_percentage for a in assignments]
    )

    owed: dict[str, int] = {}
    for assignment, share in zip(assignments, shares):
        owed[assignment.user_id] = owed.get(assignment.user_id, 0) + share.kobo

    return owed


def assignment_status(assignments: Sequence[ItemAssignment]) -> AssignmentStatus:
    """Classify an item's assignments as unassigned, under, complete or over."""
    if not assignments:
        return "unassigned"
    total = sum(a.share_percentage for a in assignments)
    if total < 100:
        return "under"
    if total > 100:
        return "over"
    return "complete"


def items_total(items: Sequence[BillItem]) -> int:
    """Sum of price * quantity across items."""
    return sum(item.line_total for item in items)


def check_bill_total(bill: Bill, items: Sequence[BillItem]) -> None:
    """
    Enforce that a bill's total equals the sum of its items.

    A bill with no items yet is allowed any total (manual entry).

    Raises:
        BillTotalMismatchError: If items exist and their sum differs
    """
    if not items:
        return
    computed = items_total(items)
    if computed != bill.total_amount:
        raise BillTotalMismatchError(bill.total_amount, computed, bill.bill_id)


def resolve_bill(
    bill: Bill,
    items: Sequence[BillItem],
    assignments_by_item: Mapping[str, Sequence[ItemAssignment]],
) -> dict[str, int]:
    """
    Compute what each participant owes for a whole bill.

    Args:
        bill: The bill
        items: The bill's items
        assignments_by_item: Assignments keyed by item_id

    Returns:
        Mapping of user_id to owed kobo, summing to the bill total

    Raises:
        ValueError: If the bill has no items to split
        BillTotalMismatchError: If the items do not add up to the bill total
        UnassignedItemError: If any item has no assignments
        InvalidShareError: If any item's percentages do not total 100
    """
    if not items:
        raise ValueError(f"Bill {bill.bill_id} has no items to split")
    check_bill_total(bill, items)

    owed: dict[str, int] = {}
    for item in items:
        item_owed = resolve_item(item, assignments_by_item.get(item.item_id, ()))
        for user_id, amount in item_owed.items():
            owed[user_id] = owed.get(user_id, 0) + amount

    logger.debug(
        f"Resolved bill {bill.bill_id}: {len(items)} items across {len(owed)} users"
    )
    return owed


def build_bill_report(
    bill: Bill,
    items: Sequence[BillItem],
    assignments_by_item: Mapping[str, Sequence[ItemAssignment]],
) -> BillReport:
    """
    Describe the split state of every item without raising on bad shares.

    Items that resolve cleanly carry their owed amounts; the others are
    reported with their status so the caller can prompt for a fix.
    """
    reports = []
    for item in items:
        assignments = assignments_by_item.get(item.item_id, ())
        status = assignment_status(assignments)
        owed = resolve_item(item, assignments) if status == "complete" else {}
        reports.append(
            ItemReport(
                item=item,
                assigned_percentage=sum(a.share_percentage for a in assignments),
                status=status,
                owed=owed,
            )
        )
    return BillReport(bill=bill, items=reports, items_total=items_total(items))
