"""Custom exceptions for BillSplit."""


class BillSplitError(Exception):
    """Base exception for all BillSplit errors."""

    pass


class ConfigurationError(BillSplitError):
    """Raised when configuration is invalid or missing."""

    pass


class NotFoundError(BillSplitError):
    """Raised when a requested record does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} {record_id} not found")


class CurrencyMismatchError(BillSplitError):
    """Raised when combining amounts in different currencies."""

    pass


# ============================================================================
# Split errors (user-facing: the UI should block progress and prompt)
# ============================================================================


class UnassignedItemError(BillSplitError):
    """Raised when a bill item has no assignments. Split this item before proceeding."""

    def __init__(self, item_id: str, item_name: str | None = None):
        self.item_id = item_id
        self.item_name = item_name
        label = f"'{item_name}' ({item_id})" if item_name else item_id
        super().__init__(f"Item {label} has not been split between anyone yet")


class InvalidShareError(BillSplitError):
    """Raised when share percentages do not total exactly 100."""

    def __init__(self, total: int, item_id: str | None = None):
        self.total = total
        self.item_id = item_id
        where = f" for item {item_id}" if item_id else ""
        super().__init__(
            f"Shares{where} add up to {total}%, adjust them so they total 100%"
        )


class BillTotalMismatchError(BillSplitError):
    """Raised when a bill's total differs from the sum of its items."""

    def __init__(self, bill_total: int, items_total: int, bill_id: str | None = None):
        self.bill_total = bill_total
        self.items_total = items_total
        self.bill_id = bill_id
        label = f"Bill {bill_id}" if bill_id else "Bill"
        super().__init__(
            f"{label} total is {bill_total} kobo but its items add up to "
            f"{items_total} kobo"
        )


# ============================================================================
# Ledger errors (internal invariant violations: never user-facing)
# ============================================================================


class LedgerError(BillSplitError):
    """Base class for ledger integrity errors."""

    pass


class ImbalancedLedgerError(LedgerError):
    """Raised when balances do not sum to zero.

    This indicates a bug in ledger writes and aborts the calculation.
    """

    def __init__(self, imbalance: int, message: str | None = None):
        self.imbalance = imbalance
        super().__init__(
            message or f"Ledger balances do not sum to zero (off by {imbalance} kobo)"
        )


class UnresolvedBillError(LedgerError):
    """Raised when an expense entry links a bill with no resolved shares."""

    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Expense references bill {bill_id} but it was not resolved")


# ============================================================================
# Workflow errors
# ============================================================================


class BillAlreadyFinalizedError(BillSplitError):
    """Raised when attempting to finalize a bill that is already completed."""

    def __init__(self, bill_id: str, message: str | None = None):
        self.bill_id = bill_id
        super().__init__(message or f"Bill {bill_id} has already been finalized")


class GroupMembershipError(BillSplitError):
    """Raised when a membership change would break group invariants."""

    pass


class NotAuthenticatedError(BillSplitError):
    """Raised when an operation needs a signed-in user."""

    pass


class APIError(BillSplitError):
    """Base class for API-related errors."""

    pass


class BackendAPIError(APIError):
    """Raised when a hosted backend request fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
