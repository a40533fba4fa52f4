"""Turn OCR output into bill item drafts."""

import logging
from decimal import Decimal
from typing import Any

from pydantic import ValidationError

from .exceptions import BillTotalMismatchError
from .models import ParsedReceipt, ParsedReceiptItem
from .money import to_kobo

logger = logging.getLogger(__name__)


def _quantity(value: Any) -> int:
    """Parse an OCR quantity, defaulting to 1. Fractions are rejected."""
    if value is None or value == "":
        return 1
    quantity = Decimal(str(value))
    if quantity != quantity.to_integral_value():
        raise ValueError(f"Malformed receipt data: quantity {value} is not a whole number")
    return int(quantity)


def parse_receipt_payload(payload: dict[str, Any]) -> ParsedReceipt:
    """
    Parse a receipt returned by the process-receipt function.

    Accepts either the full response envelope ({"ok": true, "parsed": {...}})
    or the bare parsed object ({"total": ..., "items": [...]}). Amounts are
    naira and are converted to kobo.

    Args:
        payload: Decoded JSON

    Returns:
        Parsed receipt in kobo

    Raises:
        ValueError: If the envelope reports failure or the data is malformed
    """
    if "parsed" in payload or "ok" in payload:
        if not payload.get("ok", True):
            raise ValueError(f"Receipt processing failed: {payload.get('error')}")
        payload = payload.get("parsed") or {}

    if "total" not in payload:
        raise ValueError("Receipt has no total")

    try:
        items = [
            ParsedReceiptItem(
                name=str(raw["name"]).strip(),
                price=to_kobo(raw["price"]),
                quantity=_quantity(raw.get("quantity")),
            )
            for raw in payload.get("items") or []
        ]
        receipt = ParsedReceipt(total=to_kobo(payload["total"]), items=items)
    except (KeyError, TypeError, ArithmeticError, ValidationError) as e:
        raise ValueError(f"Malformed receipt data: {e}") from e

    logger.info(f"Parsed receipt with {len(receipt.items)} items, total {receipt.total}")
    return receipt


def check_receipt_total(receipt: ParsedReceipt) -> None:
    """
    Verify the receipt's stated total matches its line items.

    Raises:
        BillTotalMismatchError: If items exist and do not add up to the total
    """
    if not receipt.items:
        return
    computed = sum(item.price * item.quantity for item in receipt.items)
    if computed != receipt.total:
        raise BillTotalMismatchError(receipt.total, computed)
