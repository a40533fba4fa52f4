"""Tests for resolving bill items into owed amounts."""

import random

import pytest

from billsplit.exceptions import (
    BillTotalMismatchError,
    InvalidShareError,
    UnassignedItemError,
)
from billsplit.models import Bill, BillItem, ItemAssignment
from billsplit.resolver import (
    assignment_status,
    build_bill_report,
    check_bill_total,
    resolve_bill,
    resolve_item,
)


def make_item(item_id: str = "item-1", price: int = 1000, quantity: int = 1) -> BillItem:
    return BillItem(
        item_id=item_id, bill_id="bill-1", name=f"Item {item_id}", price=price, quantity=quantity
    )


def make_assignments(item_id: str, shares: list[tuple[str, int]]) -> list[ItemAssignment]:
    return [
        ItemAssignment(
            assignment_id=f"{item_id}-a{i}",
            item_id=item_id,
            user_id=user_id,
            share_percentage=pct,
        )
        for i, (user_id, pct) in enumerate(shares)
    ]


def random_percentages(rng: random.Random, n: int) -> list[int]:
    """n positive integer percentages totalling 100."""
    cuts = sorted(rng.sample(range(1, 100), n - 1))
    bounds = [0, *cuts, 100]
    return [b - a for a, b in zip(bounds, bounds[1:])]


class TestResolveItem:
    """Resolving a single item."""

    def test_fifty_fifty(self):
        item = make_item(price=2850)
        owed = resolve_item(item, make_assignments("item-1", [("A", 50), ("B", 50)]))
        assert owed == {"A": 1425, "B": 1425}

    def test_thirds(self):
        item = make_item(price=1000)
        owed = resolve_item(
            item, make_assignments("item-1", [("A", 33), ("B", 33), ("C", 34)])
        )
        assert owed == {"A": 330, "B": 330, "C": 340}

    def test_quantity_multiplies_price(self):
        item = make_item(price=200, quantity=2)
        owed = resolve_item(item, make_assignments("item-1", [("A", 100)]))
        assert owed == {"A": 400}

    def test_residual_to_largest_remainder(self):
        item = make_item(price=1001)
        owed = resolve_item(
            item, make_assignments("item-1", [("A", 33), ("B", 33), ("C", 34)])
        )
        # 330.33, 330.33, 340.34 -> floors 330, 330, 340, residual 1 to C (.34)
        assert owed == {"A": 330, "B": 330, "C": 341}
        assert sum(owed.values()) == 1001

    def test_duplicate_user_accumulates(self):
        item = make_item(price=1000)
        owed = resolve_item(
            item, make_assignments("item-1", [("A", 25), ("B", 50), ("A", 25)])
        )
        assert owed == {"A": 500, "B": 500}

    def test_no_assignments(self):
        with pytest.raises(UnassignedItemError, match="Item item-1"):
            resolve_item(make_item(), [])

    def test_shares_summing_to_99(self):
        with pytest.raises(InvalidShareError) as exc_info:
            resolve_item(make_item(), make_assignments("item-1", [("A", 50), ("B", 49)]))
        assert exc_info.value.total == 99

    def test_shares_over_100(self):
        with pytest.raises(InvalidShareError):
            resolve_item(make_item(), make_assignments("item-1", [("A", 60), ("B", 60)]))

    def test_assignment_for_another_item(self):
        with pytest.raises(ValueError, match="belongs to item"):
            resolve_item(make_item(), make_assignments("item-2", [("A", 100)]))

    @pytest.mark.parametrize("n", range(1, 21))
    def test_sum_is_exact_for_any_group_size(self, n):
        """Owed amounts always add up to price * quantity."""
        rng = random.Random(n)
        for _ in range(25):
            item = make_item(price=rng.randint(0, 500_000), quantity=rng.randint(1, 12))
            percentages = random_percentages(rng, n)
            assignments = make_assignments(
                "item-1", [(f"user-{i}", pct) for i, pct in enumerate(percentages)]
            )
            owed = resolve_item(item, assignments)
            assert sum(owed.values()) == item.price * item.quantity


class TestAssignmentStatus:
    """Surfacing under- and over-assigned items."""

    def test_statuses(self):
        assert assignment_status([]) == "unassigned"
        assert assignment_status(make_assignments("i", [("A", 40)])) == "under"
        assert assignment_status(make_assignments("i", [("A", 40), ("B", 60)])) == "complete"
        assert assignment_status(make_assignments("i", [("A", 70), ("B", 60)])) == "over"


class TestResolveBill:
    """Resolving a whole bill."""

    @pytest.fixture
    def items(self):
        return [make_item("rice", price=50000), make_item("soda", price=20000, quantity=2)]

    @pytest.fixture
    def assignments(self):
        return {
            "rice": make_assignments("rice", [("A", 50), ("B", 50)]),
            "soda": make_assignments("soda", [("B", 100)]),
        }

    def test_sums_items_per_user(self, items, assignments):
        bill = Bill(bill_id="bill-1", creator_id="A", total_amount=90000)
        owed = resolve_bill(bill, items, assignments)
        assert owed == {"A": 25000, "B": 65000}

    def test_total_must_match_items(self, items, assignments):
        bill = Bill(bill_id="bill-1", creator_id="A", total_amount=120000)
        with pytest.raises(BillTotalMismatchError) as exc_info:
            resolve_bill(bill, items, assignments)
        assert exc_info.value.items_total == 90000

    def test_unassigned_item_blocks_bill(self, items, assignments):
        bill = Bill(bill_id="bill-1", creator_id="A", total_amount=90000)
        del assignments["soda"]
        with pytest.raises(UnassignedItemError):
            resolve_bill(bill, items, assignments)

    def test_bill_without_items(self):
        bill = Bill(bill_id="bill-1", creator_id="A", total_amount=100)
        with pytest.raises(ValueError, match="no items"):
            resolve_bill(bill, [], {})

    def test_check_bill_total_allows_empty_bill(self):
        check_bill_total(Bill(bill_id="b", creator_id="A", total_amount=500), [])


class TestBillReport:
    """Reporting item state without raising."""

    def test_report_mixes_statuses(self):
        items = [make_item("rice", price=1000), make_item("soda", price=500)]
        bill = Bill(bill_id="bill-1", creator_id="A", total_amount=1500)
        report = build_bill_report(
            bill, items, {"rice": make_assignments("rice", [("A", 40)])}
        )

        assert [r.status for r in report.items] == ["under", "unassigned"]
        assert report.items[0].assigned_percentage == 40
        assert report.items[0].owed == {}
        assert report.items_total == 1500
        assert not report.is_ready

    def test_ready_report(self):
        items = [make_item("rice", price=1000)]
        bill = Bill(bill_id="bill-1", creator_id="A", total_amount=1000)
        report = build_bill_report(
            bill, items, {"rice": make_assignments("rice", [("A", 50), ("B", 50)])}
        )

        assert report.is_ready
        assert report.items[0].owed == {"A": 500, "B": 500}
