"""Tests for the SQLite store."""

import sqlite3
from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest

from billsplit.db import Database
from billsplit.exceptions import (
    BillAlreadyFinalizedError,
    GroupMembershipError,
    NotFoundError,
)
from billsplit.models import LedgerEntry


@pytest.fixture
def db(tmp_path):
    """Create a temporary database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def people(db):
    return {name: db.create_user(name) for name in ("Ada", "Bayo", "Chidi")}


class TestUsers:
    def test_create_and_get(self, db):
        user = db.create_user("Ada", payment_customer_id="cus_123")
        assert db.get_user(user.user_id) == user

    def test_explicit_id(self, db):
        user = db.create_user("Ada", user_id="auth-uuid-1")
        assert user.user_id == "auth-uuid-1"

    def test_missing_user(self, db):
        with pytest.raises(NotFoundError, match="User nope not found"):
            db.get_user("nope")

    def test_list_sorted_by_name(self, db, people):
        assert [u.full_name for u in db.list_users()] == ["Ada", "Bayo", "Chidi"]


class TestGroups:
    def test_creator_is_first_member(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        members = db.get_group_members(group.group_id)
        assert [m.user_id for m in members] == [people["Ada"].user_id]

    def test_add_member_is_idempotent(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        db.add_member(group.group_id, people["Bayo"].user_id)
        db.add_member(group.group_id, people["Bayo"].user_id)
        assert len(db.get_group_members(group.group_id)) == 2

    def test_cannot_remove_last_member(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        with pytest.raises(GroupMembershipError, match="last member"):
            db.remove_member(group.group_id, people["Ada"].user_id)

    def test_remove_member(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        db.add_member(group.group_id, people["Bayo"].user_id)
        db.remove_member(group.group_id, people["Ada"].user_id)
        assert [m.user_id for m in db.get_group_members(group.group_id)] == [
            people["Bayo"].user_id
        ]

    def test_remove_non_member(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        with pytest.raises(GroupMembershipError, match="not in group"):
            db.remove_member(group.group_id, people["Chidi"].user_id)

    def test_list_groups_for_user(self, db, people):
        flat = db.create_group("Flatmates", people["Ada"].user_id)
        db.create_group("Work", people["Bayo"].user_id)
        assert [g.group_id for g in db.list_groups_for_user(people["Ada"].user_id)] == [
            flat.group_id
        ]
        assert len(db.list_groups()) == 2

    def test_archive_keeps_ledger(self, db, people):
        group = db.create_group("Trip", people["Ada"].user_id)
        db.add_member(group.group_id, people["Bayo"].user_id)
        db.append_ledger_entry(
            LedgerEntry(
                entry_id="e1",
                group_id=group.group_id,
                entry_type="payment",
                payer_id=people["Bayo"].user_id,
                recipient_id=people["Ada"].user_id,
                amount=500,
            )
        )
        archived = db.archive_group(group.group_id)
        assert archived.archived
        assert len(db.get_ledger_entries(group.group_id)) == 1


class TestBills:
    def test_items_keep_insertion_order(self, db, people):
        bill = db.create_bill(people["Ada"].user_id, total_amount=90000)
        db.add_bill_item(bill.bill_id, "Jollof Rice", 50000)
        db.add_bill_item(bill.bill_id, "Soda", 20000, quantity=2)

        items = db.get_bill_items(bill.bill_id)
        assert [(i.name, i.line_total) for i in items] == [
            ("Jollof Rice", 50000),
            ("Soda", 40000),
        ]

    def test_no_items_on_completed_bill(self, db, people):
        bill = db.create_bill(people["Ada"].user_id, total_amount=100)
        db.set_bill_status(bill.bill_id, "completed")
        with pytest.raises(BillAlreadyFinalizedError):
            db.add_bill_item(bill.bill_id, "Late item", 100)

    def test_assignments_replace_previous(self, db, people):
        bill = db.create_bill(people["Ada"].user_id, total_amount=1000)
        item = db.add_bill_item(bill.bill_id, "Pizza", 1000)
        ada, bayo = people["Ada"].user_id, people["Bayo"].user_id

        db.set_item_assignments(item.item_id, [(ada, 100)])
        db.set_item_assignments(item.item_id, [(bayo, 30), (ada, 70)])

        assignments = db.get_item_assignments(item.item_id)
        assert [(a.user_id, a.share_percentage) for a in assignments] == [
            (bayo, 30),
            (ada, 70),
        ]

    def test_partial_assignment_can_be_saved(self, db, people):
        bill = db.create_bill(people["Ada"].user_id, total_amount=1000)
        item = db.add_bill_item(bill.bill_id, "Pizza", 1000)
        db.set_item_assignments(item.item_id, [(people["Ada"].user_id, 40)])
        assert db.get_item_assignments(item.item_id)[0].share_percentage == 40

    def test_list_bills_for_group(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        db.create_bill(people["Ada"].user_id, total_amount=100, group_id=group.group_id)
        db.create_bill(people["Ada"].user_id, total_amount=200)
        assert [b.total_amount for b in db.list_bills(group.group_id)] == [100]
        assert len(db.list_bills()) == 2


class TestLedger:
    def test_entries_come_back_in_time_order(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        db.add_member(group.group_id, people["Bayo"].user_id)
        ada, bayo = people["Ada"].user_id, people["Bayo"].user_id
        start = datetime(2025, 1, 1, tzinfo=UTC)

        for i, offset in enumerate([2, 0, 1]):
            db.append_ledger_entry(
                LedgerEntry(
                    entry_id=f"e{i}",
                    group_id=group.group_id,
                    entry_type="expense",
                    payer_id=ada,
                    amount=100 * (i + 1),
                    split_among=(ada, bayo),
                    created_at=start + timedelta(hours=offset),
                )
            )

        entries = db.get_ledger_entries(group.group_id)
        assert [e.entry_id for e in entries] == ["e1", "e2", "e0"]
        assert entries[0].split_among == (ada, bayo)
        assert entries[0].created_at == start

    def test_no_update_or_delete_api(self, db):
        assert not any(
            name.startswith(("delete_ledger", "update_ledger", "delete_group"))
            for name in dir(db)
        )


class TestAtomicWrites:
    """Multi-row writes land whole or not at all."""

    @pytest.fixture
    def group_bill(self, db, people):
        group = db.create_group("Flatmates", people["Ada"].user_id)
        db.add_member(group.group_id, people["Bayo"].user_id)
        bill = db.create_bill(
            people["Ada"].user_id, total_amount=1000, group_id=group.group_id
        )
        return group, bill

    def expense_for(self, group, bill, payer, entry_id="e1"):
        return LedgerEntry(
            entry_id=entry_id,
            group_id=group.group_id,
            entry_type="expense",
            payer_id=payer,
            amount=bill.total_amount,
            bill_id=bill.bill_id,
        )

    def test_finalize_bill_marks_completed(self, db, people, group_bill):
        group, bill = group_bill
        db.finalize_bill(self.expense_for(group, bill, people["Ada"].user_id))

        assert db.get_bill(bill.bill_id).status == "completed"
        assert len(db.get_ledger_entries(group.group_id)) == 1

    def test_finalize_bill_rolls_back_on_failure(self, db, people, group_bill):
        group, bill = group_bill
        entry = self.expense_for(group, bill, people["Ada"].user_id)

        with patch.object(
            db, "_update_bill_status", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(sqlite3.OperationalError):
                db.finalize_bill(entry)

        assert db.get_ledger_entries(group.group_id) == []
        assert db.get_bill(bill.bill_id).status == "pending"

        db.finalize_bill(entry)
        assert len(db.get_ledger_entries(group.group_id)) == 1

    def test_second_expense_for_bill_rejected(self, db, people, group_bill):
        group, bill = group_bill
        ada = people["Ada"].user_id
        db.append_ledger_entry(self.expense_for(group, bill, ada))

        with pytest.raises(BillAlreadyFinalizedError):
            db.append_ledger_entry(self.expense_for(group, bill, ada, entry_id="e2"))
        assert len(db.get_ledger_entries(group.group_id)) == 1

    def test_append_entries_all_or_nothing(self, db, people, group_bill):
        group, _ = group_bill
        ada, bayo = people["Ada"].user_id, people["Bayo"].user_id
        settlements = [
            LedgerEntry(
                entry_id=entry_id,
                group_id=group.group_id,
                entry_type="settlement",
                payer_id=bayo,
                recipient_id=ada,
                amount=100,
            )
            for entry_id in ("s1", "s2", "s1")
        ]

        with pytest.raises(sqlite3.IntegrityError):
            db.append_ledger_entries(settlements)
        assert db.get_ledger_entries(group.group_id) == []

        db.append_ledger_entries(settlements[:2])
        assert [e.entry_id for e in db.get_ledger_entries(group.group_id)] == ["s1", "s2"]
