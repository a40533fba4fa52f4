"""Service layer that composes the database and the ledger core.

The core modules (resolver, ledger, settlement) are pure; this module
fetches a consistent snapshot from the database, runs them, and appends the
resulting ledger entries.
"""

import logging
from collections.abc import Iterable, Sequence

from .config import Settings
from .db import Database, new_id
from .exceptions import (
    BillAlreadyFinalizedError,
    GroupMembershipError,
    ImbalancedLedgerError,
)
from .ledger import Pair, aggregate_balances, net_balances
from .models import (
    Bill,
    BillItem,
    BillReport,
    EntryType,
    ItemAssignment,
    LedgerEntry,
    ParsedReceipt,
    Transfer,
)
from .receipt import check_receipt_total
from .resolver import build_bill_report, resolve_bill
from .settlement import suggest_settlements

logger = logging.getLogger(__name__)


class LedgerService:
    """Service for splitting bills and settling group balances."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Groups
    # ========================================================================

    def remove_member(self, group_id: str, user_id: str):
        """
        Remove a user from a group once they are settled up.

        Raises:
            GroupMembershipError: If the user still owes or is owed money,
                or is the group's last member
        """
        balance = self.get_net_balances(group_id).get(user_id, 0)
        if balance:
            raise GroupMembershipError(
                f"User {user_id} still has a balance of {balance} kobo in group "
                f"{group_id}, settle up before leaving"
            )
        self.db.remove_member(group_id, user_id)
        logger.info(f"Removed {user_id} from group {group_id}")

    # ========================================================================
    # Bills
    # ========================================================================

    def create_bill(
        self, creator_id: str, total_amount: int, group_id: str | None = None
    ) -> Bill:
        """Create an empty pending bill for manual entry."""
        if group_id:
            self._require_members(group_id, [creator_id])
        return self.db.create_bill(
            creator_id=creator_id, total_amount=total_amount, group_id=group_id
        )

    def import_receipt(
        self,
        creator_id: str,
        receipt: ParsedReceipt,
        group_id: str | None = None,
        receipt_image_url: str | None = None,
    ) -> tuple[Bill, list[BillItem]]:
        """
        Create a pending bill from a parsed receipt.

        Raises:
            BillTotalMismatchError: If the receipt's items do not add up to its total
        """
        check_receipt_total(receipt)
        if group_id:
            self._require_members(group_id, [creator_id])

        bill = self.db.create_bill(
            creator_id=creator_id,
            total_amount=receipt.total,
            group_id=group_id,
            receipt_image_url=receipt_image_url,
        )
        items = [
            self.db.add_bill_item(bill.bill_id, item.name, item.price, item.quantity)
            for item in receipt.items
        ]

        logger.info(f"Imported receipt as bill {bill.bill_id} with {len(items)} items")
        return bill, items

    def assign_item(
        self, item_id: str, shares: Sequence[tuple[str, int]]
    ) -> list[ItemAssignment]:
        """
        Replace an item's assignments.

        For bills in a group, every assignee must be a member of that group.
        """
        item = self.db.get_bill_item(item_id)
        bill = self.db.get_bill(item.bill_id)
        if bill.group_id:
            self._require_members(bill.group_id, [user_id for user_id, _ in shares])
        return self.db.set_item_assignments(item_id, shares)

    def _load_bill(
        self, bill_id: str
    ) -> tuple[Bill, list[BillItem], dict[str, list[ItemAssignment]]]:
        bill = self.db.get_bill(bill_id)
        items = self.db.get_bill_items(bill_id)
        assignments = {
            item.item_id: self.db.get_item_assignments(item.item_id) for item in items
        }
        return bill, items, assignments

    def resolve_bill(self, bill_id: str) -> dict[str, int]:
        """Compute what each participant owes for a bill."""
        return resolve_bill(*self._load_bill(bill_id))

    def bill_report(self, bill_id: str) -> BillReport:
        """Describe how far each item on a bill is from being fully split."""
        return build_bill_report(*self._load_bill(bill_id))

    def finalize_bill(
        self, bill_id: str, payer_id: str, description: str | None = None
    ) -> LedgerEntry:
        """
        Record a fully split bill in its group's ledger and mark it completed.

        Args:
            bill_id: The bill to finalize
            payer_id: Who paid the bill
            description: Optional ledger description

        Returns:
            The appended expense entry

        Raises:
            BillAlreadyFinalizedError: If the bill is already completed
            UnassignedItemError, InvalidShareError, BillTotalMismatchError:
                If the bill is not ready to split
            GroupMembershipError: If the payer or an assignee is no longer a member
        """
        bill, items, assignments = self._load_bill(bill_id)
        if bill.status == "completed":
            raise BillAlreadyFinalizedError(bill_id)
        if not bill.group_id:
            raise ValueError(f"Bill {bill_id} is not in a group, so there is no ledger")

        owed = resolve_bill(bill, items, assignments)
        self._require_members(bill.group_id, [payer_id, *owed])

        entry = LedgerEntry(
            entry_id=new_id(),
            group_id=bill.group_id,
            entry_type="expense",
            payer_id=payer_id,
            amount=bill.total_amount,
            bill_id=bill_id,
            description=description or f"Bill {bill_id[:8]}",
        )
        self.db.finalize_bill(entry)

        logger.info(
            f"Finalized bill {bill_id}: {bill.total_amount} kobo paid by {payer_id}, "
            f"split across {len(owed)} users"
        )
        return entry

    # ========================================================================
    # Balances
    # ========================================================================

    def _resolved_bills(self, entries: Iterable[LedgerEntry]) -> dict[str, dict[str, int]]:
        bill_ids = {entry.bill_id for entry in entries if entry.bill_id}
        return {bill_id: self.resolve_bill(bill_id) for bill_id in sorted(bill_ids)}

    def get_pairwise_balances(self, group_id: str) -> dict[Pair, int]:
        """Who owes whom in a group, as (debtor, creditor) -> kobo."""
        self.db.get_group(group_id)
        entries = self.db.get_ledger_entries(group_id)
        try:
            return aggregate_balances(entries, self._resolved_bills(entries))
        except ImbalancedLedgerError as e:
            logger.error(f"Ledger for group {group_id} is inconsistent: {e}")
            raise

    def get_net_balances(self, group_id: str) -> dict[str, int]:
        """Signed balance per user in a group (positive = owed to them)."""
        pairwise = self.get_pairwise_balances(group_id)
        try:
            return net_balances(pairwise)
        except ImbalancedLedgerError as e:
            logger.error(f"Net balances for group {group_id} do not sum to zero: {e}")
            raise

    def suggest_settlements(self, group_id: str) -> list[Transfer]:
        """Suggest transfers that would settle every balance in a group."""
        balances = self.get_net_balances(group_id)
        try:
            transfers = suggest_settlements(balances)
        except ImbalancedLedgerError as e:
            logger.error(f"Cannot settle group {group_id}: {e}")
            raise

        logger.info(f"Suggested {len(transfers)} transfers for group {group_id}")
        return transfers

    # ========================================================================
    # Ledger writes
    # ========================================================================

    def add_shared_expense(
        self,
        group_id: str,
        payer_id: str,
        amount: int,
        description: str,
        split_among: Sequence[str] | None = None,
    ) -> LedgerEntry:
        """
        Record an expense without a bill, split evenly.

        Defaults to splitting across every current member of the group.
        """
        if split_among is None:
            split_among = [m.user_id for m in self.db.get_group_members(group_id)]
        self._require_members(group_id, [payer_id, *split_among])
        entry = LedgerEntry(
            entry_id=new_id(),
            group_id=group_id,
            entry_type="expense",
            payer_id=payer_id,
            amount=amount,
            description=description,
            split_among=tuple(split_among),
        )
        return self.db.append_ledger_entry(entry)

    def record_payment(
        self,
        group_id: str,
        payer_id: str,
        recipient_id: str,
        amount: int,
        description: str = "",
        entry_type: EntryType = "payment",
    ) -> LedgerEntry:
        """Record money handed from payer to recipient."""
        if entry_type == "expense":
            raise ValueError("Use finalize_bill or add_shared_expense for expenses")
        self._require_members(group_id, [payer_id, recipient_id])
        entry = LedgerEntry(
            entry_id=new_id(),
            group_id=group_id,
            entry_type=entry_type,
            payer_id=payer_id,
            recipient_id=recipient_id,
            amount=amount,
            description=description,
        )
        self.db.append_ledger_entry(entry)
        logger.info(f"Recorded {entry_type}: {payer_id} -> {recipient_id} {amount} kobo")
        return entry

    def record_settlements(
        self, group_id: str, transfers: Iterable[Transfer]
    ) -> list[LedgerEntry]:
        """
        Record suggested transfers as settlement entries.

        Every transfer is checked before anything is written, and the entries
        are appended in one transaction, so a plan is recorded whole or not
        at all.
        """
        transfers = list(transfers)
        self._require_members(
            group_id,
            [user_id for t in transfers for user_id in (t.from_user_id, t.to_user_id)],
        )
        entries = [
            LedgerEntry(
                entry_id=new_id(),
                group_id=group_id,
                entry_type="settlement",
                payer_id=transfer.from_user_id,
                recipient_id=transfer.to_user_id,
                amount=transfer.amount,
                description="Settle up",
            )
            for transfer in transfers
        ]
        self.db.append_ledger_entries(entries)
        logger.info(f"Recorded {len(entries)} settlements for group {group_id}")
        return entries

    def _require_members(self, group_id: str, user_ids: Iterable[str]):
        group = self.db.get_group(group_id)
        if group.archived:
            raise GroupMembershipError(f"Group {group.name} is archived")
        members = {m.user_id for m in self.db.get_group_members(group_id)}
        outsiders = sorted(set(user_ids) - members)
        if outsiders:
            raise GroupMembershipError(
                f"Not members of group {group.name}: {', '.join(outsiders)}"
            )
