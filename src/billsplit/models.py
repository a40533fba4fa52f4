"""Pydantic domain models for BillSplit.

All amounts are integer kobo. The hosted backend stores naira as numbers,
so conversion happens at the client boundary, never in these models.
"""

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

BillStatus = Literal["pending", "completed"]
EntryType = Literal["expense", "payment", "settlement"]
AssignmentStatus = Literal["unassigned", "under", "complete", "over"]


def utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# People and groups
# ============================================================================


class User(BaseModel):
    """A user profile. Identity is fixed once created."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    full_name: str
    payment_customer_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Group(BaseModel):
    """A named collection of users sharing expenses."""

    group_id: str
    name: str
    creator_id: str
    archived: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class GroupMember(BaseModel):
    """A user's membership in a group."""

    group_id: str
    user_id: str
    joined_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Bills
# ============================================================================


class Bill(BaseModel):
    """One receipt or expense event."""

    bill_id: str
    creator_id: str
    group_id: str | None = None
    total_amount: int = Field(ge=0)
    status: BillStatus = "pending"
    receipt_image_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class BillItem(BaseModel):
    """One line item of a bill. Price is per unit."""

    item_id: str
    bill_id: str
    name: str
    price: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)

    @property
    def line_total(self) -> int:
        return self.price * self.quantity


class ItemAssignment(BaseModel):
    """Assigns a percentage of one bill item to one user."""

    assignment_id: str
    item_id: str
    user_id: str
    share_percentage: int = Field(gt=0, le=100)


# ============================================================================
# Ledger
# ============================================================================


class LedgerEntry(BaseModel):
    """An immutable record of money movement within a group.

    - expense: payer_id paid for a bill (bill_id) or for an ad-hoc expense
      shared evenly by split_among.
    - payment / settlement: payer_id handed amount to recipient_id. They
      aggregate identically; the type only distinguishes them for audit.
    """

    model_config = ConfigDict(frozen=True)

    entry_id: str
    group_id: str
    entry_type: EntryType
    payer_id: str
    amount: int = Field(gt=0)
    description: str = ""
    bill_id: str | None = None
    recipient_id: str | None = None
    split_among: tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_shape(self) -> "LedgerEntry":
        if self.entry_type == "expense":
            if self.recipient_id is not None:
                raise ValueError("expense entries cannot have a recipient")
            if self.bill_id is None and not self.split_among:
                raise ValueError("expense entries need a bill_id or split_among")
        else:
            if self.recipient_id is None:
                raise ValueError(f"{self.entry_type} entries need a recipient_id")
            if self.recipient_id == self.payer_id:
                raise ValueError(f"{self.entry_type} payer and recipient must differ")
        return self


class Transfer(BaseModel):
    """A suggested transfer of money between two users."""

    model_config = ConfigDict(frozen=True)

    from_user_id: str
    to_user_id: str
    amount: int = Field(gt=0)


# ============================================================================
# Reports
# ============================================================================


class ItemReport(BaseModel):
    """How far one bill item is from being fully split."""

    item: BillItem
    assigned_percentage: int
    status: AssignmentStatus
    owed: dict[str, int] = Field(default_factory=dict)


class BillReport(BaseModel):
    """Assignment state of every item on a bill."""

    bill: Bill
    items: list[ItemReport]
    items_total: int

    @property
    def is_ready(self) -> bool:
        """True when every item is fully split and the total matches."""
        return (
            bool(self.items)
            and self.items_total == self.bill.total_amount
            and all(report.status == "complete" for report in self.items)
        )


# ============================================================================
# Receipt OCR
# ============================================================================


class ParsedReceiptItem(BaseModel):
    """One line item as read off a receipt."""

    name: str
    price: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)


class ParsedReceipt(BaseModel):
    """Receipt contents returned by the OCR function."""

    total: int = Field(ge=0)
    items: list[ParsedReceiptItem] = Field(default_factory=list)


# ============================================================================
# Auth
# ============================================================================


class AuthSession(BaseModel):
    """A signed-in backend session."""

    access_token: str
    refresh_token: str | None = None
    user_id: str
    email: str | None = None
    expires_at: datetime | None = None
