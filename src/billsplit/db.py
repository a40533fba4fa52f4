"""SQLite database operations for BillSplit."""

import json
import sqlite3
import uuid
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from .exceptions import BillAlreadyFinalizedError, GroupMembershipError, NotFoundError
from .models import (
    Bill,
    BillItem,
    BillStatus,
    Group,
    GroupMember,
    ItemAssignment,
    LedgerEntry,
    User,
)


def new_id() -> str:
    """Generate a record ID."""
    return str(uuid.uuid4())


class Database:
    """SQLite database manager."""

    def __init__(self, db_path: Path | str):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
                user_id TEXT PRIMARY KEY,
                full_name TEXT NOT NULL,
                payment_customer_id TEXT,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS user_groups (
                group_id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                creator_id TEXT NOT NULL REFERENCES users(user_id),
                archived INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS group_members (
                group_id TEXT NOT NULL REFERENCES user_groups(group_id),
                user_id TEXT NOT NULL REFERENCES users(user_id),
                joined_at TIMESTAMP NOT NULL,
                PRIMARY KEY (group_id, user_id)
            );

            CREATE TABLE IF NOT EXISTS bills (
                bill_id TEXT PRIMARY KEY,
                creator_id TEXT NOT NULL REFERENCES users(user_id),
                group_id TEXT REFERENCES user_groups(group_id),
                total_amount INTEGER NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                receipt_image_url TEXT,
                created_at TIMESTAMP NOT NULL
            );

            CREATE TABLE IF NOT EXISTS bill_items (
                item_id TEXT PRIMARY KEY,
                bill_id TEXT NOT NULL REFERENCES bills(bill_id),
                name TEXT NOT NULL,
                price INTEGER NOT NULL,
                quantity INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS item_assignments (
                assignment_id TEXT PRIMARY KEY,
                item_id TEXT NOT NULL REFERENCES bill_items(item_id),
                user_id TEXT NOT NULL REFERENCES users(user_id),
                share_percentage INTEGER NOT NULL
            );

            -- Append-only: entries are never updated or deleted
            CREATE TABLE IF NOT EXISTS ledger_entries (
                entry_id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL REFERENCES user_groups(group_id),
                entry_type TEXT NOT NULL,
                payer_id TEXT NOT NULL REFERENCES users(user_id),
                recipient_id TEXT REFERENCES users(user_id),
                bill_id TEXT REFERENCES bills(bill_id),
                amount INTEGER NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                split_among TEXT NOT NULL DEFAULT '[]',
                created_at TIMESTAMP NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_ledger_group
                ON ledger_entries (group_id, created_at);

            -- A bill is recorded in the ledger by at most one expense
            CREATE UNIQUE INDEX IF NOT EXISTS idx_ledger_bill_expense
                ON ledger_entries (bill_id)
                WHERE entry_type = 'expense' AND bill_id IS NOT NULL;
            """
        )
        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # User operations
    # ========================================================================

    def create_user(
        self,
        full_name: str,
        user_id: str | None = None,
        payment_customer_id: str | None = None,
    ) -> User:
        """Create a user profile."""
        user = User(
            user_id=user_id or new_id(),
            full_name=full_name,
            payment_customer_id=payment_customer_id,
        )
        self.conn.execute(
            """
            INSERT INTO users (user_id, full_name, payment_customer_id, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (
                user.user_id,
                user.full_name,
                user.payment_customer_id,
                user.created_at.isoformat(),
            ),
        )
        self.conn.commit()
        return user

    def get_user(self, user_id: str) -> User:
        """Get a user by ID."""
        row = self.conn.execute(
            "SELECT * FROM users WHERE user_id = ?", (user_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("User", user_id)
        return _row_to_user(row)

    def list_users(self) -> list[User]:
        """Get all users."""
        rows = self.conn.execute("SELECT * FROM users ORDER BY full_name").fetchall()
        return [_row_to_user(row) for row in rows]

    # ========================================================================
    # Group operations
    # ========================================================================

    def create_group(self, name: str, creator_id: str) -> Group:
        """Create a group with its creator as the first member."""
        self.get_user(creator_id)
        group = Group(group_id=new_id(), name=name, creator_id=creator_id)
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO user_groups (group_id, name, creator_id, archived, created_at)
                VALUES (?, ?, ?, 0, ?)
                """,
                (group.group_id, group.name, group.creator_id, group.created_at.isoformat()),
            )
            self.conn.execute(
                "INSERT INTO group_members (group_id, user_id, joined_at) VALUES (?, ?, ?)",
                (group.group_id, creator_id, group.created_at.isoformat()),
            )
        return group

    def get_group(self, group_id: str) -> Group:
        """Get a group by ID."""
        row = self.conn.execute(
            "SELECT * FROM user_groups WHERE group_id = ?", (group_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("Group", group_id)
        return _row_to_group(row)

    def list_groups(self) -> list[Group]:
        """Get all groups."""
        rows = self.conn.execute(
            "SELECT * FROM user_groups ORDER BY created_at"
        ).fetchall()
        return [_row_to_group(row) for row in rows]

    def list_groups_for_user(self, user_id: str) -> list[Group]:
        """Get all groups the user is a member of."""
        rows = self.conn.execute(
            """
            SELECT g.* FROM user_groups g
            JOIN group_members m ON m.group_id = g.group_id
            WHERE m.user_id = ?
            ORDER BY g.created_at
            """,
            (user_id,),
        ).fetchall()
        return [_row_to_group(row) for row in rows]

    def archive_group(self, group_id: str) -> Group:
        """Archive a group. Its ledger entries are kept for audit."""
        self.get_group(group_id)
        self.conn.execute("UPDATE user_groups SET archived = 1 WHERE group_id = ?", (group_id,))
        self.conn.commit()
        return self.get_group(group_id)

    def add_member(self, group_id: str, user_id: str) -> GroupMember:
        """Add a user to a group. Adding an existing member is a no-op."""
        self.get_group(group_id)
        self.get_user(user_id)
        member = GroupMember(group_id=group_id, user_id=user_id)
        self.conn.execute(
            """
            INSERT INTO group_members (group_id, user_id, joined_at)
            VALUES (?, ?, ?)
            ON CONFLICT(group_id, user_id) DO NOTHING
            """,
            (group_id, user_id, member.joined_at.isoformat()),
        )
        self.conn.commit()
        return member

    def remove_member(self, group_id: str, user_id: str):
        """Remove a user from a group, refusing to leave it empty."""
        member_ids = [m.user_id for m in self.get_group_members(group_id)]
        if user_id not in member_ids:
            raise GroupMembershipError(f"User {user_id} is not in group {group_id}")
        if len(member_ids) == 1:
            raise GroupMembershipError(
                f"Cannot remove the last member of group {group_id}"
            )
        self.conn.execute(
            "DELETE FROM group_members WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        )
        self.conn.commit()

    def get_group_members(self, group_id: str) -> list[GroupMember]:
        """Get members of a group in join order."""
        rows = self.conn.execute(
            """
            SELECT * FROM group_members WHERE group_id = ?
            ORDER BY joined_at, rowid
            """,
            (group_id,),
        ).fetchall()
        return [
            GroupMember(
                group_id=row["group_id"],
                user_id=row["user_id"],
                joined_at=datetime.fromisoformat(row["joined_at"]),
            )
            for row in rows
        ]

    # ========================================================================
    # Bill operations
    # ========================================================================

    def create_bill(
        self,
        creator_id: str,
        total_amount: int,
        group_id: str | None = None,
        receipt_image_url: str | None = None,
    ) -> Bill:
        """Create a pending bill."""
        bill = Bill(
            bill_id=new_id(),
            creator_id=creator_id,
            group_id=group_id,
            total_amount=total_amount,
            receipt_image_url=receipt_image_url,
        )
        self.conn.execute(
            """
            INSERT INTO bills (
                bill_id, creator_id, group_id, total_amount, status,
                receipt_image_url, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                bill.bill_id,
                bill.creator_id,
                bill.group_id,
                bill.total_amount,
                bill.status,
                bill.receipt_image_url,
                bill.created_at.isoformat(),
            ),
        )
        self.conn.commit()
        return bill

    def get_bill(self, bill_id: str) -> Bill:
        """Get a bill by ID."""
        row = self.conn.execute(
            "SELECT * FROM bills WHERE bill_id = ?", (bill_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("Bill", bill_id)
        return _row_to_bill(row)

    def list_bills(self, group_id: str | None = None) -> list[Bill]:
        """Get bills, newest first, optionally for one group."""
        if group_id:
            rows = self.conn.execute(
                "SELECT * FROM bills WHERE group_id = ? ORDER BY created_at DESC",
                (group_id,),
            ).fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM bills ORDER BY created_at DESC"
            ).fetchall()
        return [_row_to_bill(row) for row in rows]

    def set_bill_status(self, bill_id: str, status: BillStatus) -> Bill:
        """Update a bill's status."""
        self.get_bill(bill_id)
        with self.conn:
            self._update_bill_status(bill_id, status)
        return self.get_bill(bill_id)

    def _update_bill_status(self, bill_id: str, status: BillStatus):
        self.conn.execute(
            "UPDATE bills SET status = ? WHERE bill_id = ?", (status, bill_id)
        )

    def add_bill_item(
        self, bill_id: str, name: str, price: int, quantity: int = 1
    ) -> BillItem:
        """Add a line item to a pending bill."""
        bill = self.get_bill(bill_id)
        if bill.status != "pending":
            raise BillAlreadyFinalizedError(
                bill_id, f"Cannot add items to completed bill {bill_id}"
            )
        item = BillItem(
            item_id=new_id(), bill_id=bill_id, name=name, price=price, quantity=quantity
        )
        self.conn.execute(
            """
            INSERT INTO bill_items (item_id, bill_id, name, price, quantity)
            VALUES (?, ?, ?, ?, ?)
            """,
            (item.item_id, item.bill_id, item.name, item.price, item.quantity),
        )
        self.conn.commit()
        return item

    def get_bill_item(self, item_id: str) -> BillItem:
        """Get a bill item by ID."""
        row = self.conn.execute(
            "SELECT * FROM bill_items WHERE item_id = ?", (item_id,)
        ).fetchone()
        if not row:
            raise NotFoundError("Bill item", item_id)
        return _row_to_item(row)

    def get_bill_items(self, bill_id: str) -> list[BillItem]:
        """Get a bill's items in the order they were added."""
        rows = self.conn.execute(
            "SELECT * FROM bill_items WHERE bill_id = ? ORDER BY rowid", (bill_id,)
        ).fetchall()
        return [_row_to_item(row) for row in rows]

    # ========================================================================
    # Item assignment operations
    # ========================================================================

    def set_item_assignments(
        self, item_id: str, shares: Sequence[tuple[str, int]]
    ) -> list[ItemAssignment]:
        """
        Replace an item's assignments with (user_id, share_percentage) pairs.

        The replacement is atomic; the last writer wins. Percentages are not
        required to total 100 here so a partial split can be saved and shown
        as under-assigned.
        """
        item = self.get_bill_item(item_id)
        if self.get_bill(item.bill_id).status != "pending":
            raise BillAlreadyFinalizedError(
                item.bill_id, f"Cannot reassign items on completed bill {item.bill_id}"
            )
        assignments = [
            ItemAssignment(
                assignment_id=new_id(),
                item_id=item_id,
                user_id=user_id,
                share_percentage=percentage,
            )
            for user_id, percentage in shares
        ]
        with self.conn:
            self.conn.execute("DELETE FROM item_assignments WHERE item_id = ?", (item_id,))
            self.conn.executemany(
                """
                INSERT INTO item_assignments (
                    assignment_id, item_id, user_id, share_percentage
                ) VALUES (?, ?, ?, ?)
                """,
                [
                    (a.assignment_id, a.item_id, a.user_id, a.share_percentage)
                    for a in assignments
                ],
            )
        return assignments

    def get_item_assignments(self, item_id: str) -> list[ItemAssignment]:
        """Get an item's assignments in insertion order."""
        rows = self.conn.execute(
            "SELECT * FROM item_assignments WHERE item_id = ? ORDER BY rowid",
            (item_id,),
        ).fetchall()
        return [
            ItemAssignment(
                assignment_id=row["assignment_id"],
                item_id=row["item_id"],
                user_id=row["user_id"],
                share_percentage=row["share_percentage"],
            )
            for row in rows
        ]

    # ========================================================================
    # Ledger operations
    # ========================================================================

    def _insert_ledger_entry(self, entry: LedgerEntry):
        try:
            self.conn.execute(
                """
                INSERT INTO ledger_entries (
                    entry_id, group_id, entry_type, payer_id, recipient_id,
                    bill_id, amount, description, split_among, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.entry_id,
                    entry.group_id,
                    entry.entry_type,
                    entry.payer_id,
                    entry.recipient_id,
                    entry.bill_id,
                    entry.amount,
                    entry.description,
                    json.dumps(list(entry.split_among)),
                    entry.created_at.isoformat(),
                ),
            )
        except sqlite3.IntegrityError as e:
            if entry.bill_id and "ledger_entries.bill_id" in str(e):
                raise BillAlreadyFinalizedError(
                    entry.bill_id, f"Bill {entry.bill_id} is already in the ledger"
                ) from e
            raise

    def append_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """Append an entry to a group's ledger."""
        with self.conn:
            self._insert_ledger_entry(entry)
        return entry

    def append_ledger_entries(self, entries: Sequence[LedgerEntry]) -> list[LedgerEntry]:
        """Append several entries in one transaction: all of them or none."""
        with self.conn:
            for entry in entries:
                self._insert_ledger_entry(entry)
        return list(entries)

    def finalize_bill(self, entry: LedgerEntry) -> LedgerEntry:
        """
        Record a bill's expense entry and mark the bill completed atomically.

        Raises:
            BillAlreadyFinalizedError: If the bill is already completed or
                already has an expense in the ledger
        """
        if entry.entry_type != "expense" or entry.bill_id is None:
            raise ValueError("A bill is finalized by an expense entry linked to it")
        if self.get_bill(entry.bill_id).status == "completed":
            raise BillAlreadyFinalizedError(entry.bill_id)
        with self.conn:
            self._insert_ledger_entry(entry)
            self._update_bill_status(entry.bill_id, "completed")
        return entry

    def get_ledger_entries(self, group_id: str) -> list[LedgerEntry]:
        """Get a group's ledger entries in creation order."""
        rows = self.conn.execute(
            """
            SELECT * FROM ledger_entries WHERE group_id = ?
            ORDER BY created_at, rowid
            """,
            (group_id,),
        ).fetchall()
        return [
            LedgerEntry(
                entry_id=row["entry_id"],
                group_id=row["group_id"],
                entry_type=row["entry_type"],
                payer_id=row["payer_id"],
                recipient_id=row["recipient_id"],
                bill_id=row["bill_id"],
                amount=row["amount"],
                description=row["description"],
                split_among=tuple(json.loads(row["split_among"])),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        user_id=row["user_id"],
        full_name=row["full_name"],
        payment_customer_id=row["payment_customer_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_group(row: sqlite3.Row) -> Group:
    return Group(
        group_id=row["group_id"],
        name=row["name"],
        creator_id=row["creator_id"],
        archived=bool(row["archived"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_bill(row: sqlite3.Row) -> Bill:
    return Bill(
        bill_id=row["bill_id"],
        creator_id=row["creator_id"],
        group_id=row["group_id"],
        total_amount=row["total_amount"],
        status=row["status"],
        receipt_image_url=row["receipt_image_url"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_item(row: sqlite3.Row) -> BillItem:
    return BillItem(
        item_id=row["item_id"],
        bill_id=row["bill_id"],
        name=row["name"],
        price=row["price"],
        quantity=row["quantity"],
    )
