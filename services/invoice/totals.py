"""Totals derivation for invoice line items.

All numeric leniency lives in :func:`coerce_number`: anything that is not a
finite number (or a string holding one) counts as zero, and derived values
that overflow are zeroed the same way, so a half-typed form never produces
NaN in the preview. Totals are recomputed from scratch on
every call and keep full float precision; rounding is a display concern
(see ``services.invoice.currency``).
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from services.invoice.currency import CURRENCY_CODES
from services.invoice.schema import (
    DEFAULT_CURRENCY,
    MAX_ITEMS,
    Invoice,
    InvoiceFormData,
    InvoiceItem,
    LineItemInput,
)
from services.shared.errors import ValidationError


def coerce_number(value: Any) -> float:
    """Coerce a raw form value to a float.

    Args:
        value: Number, numeric string, or anything else

    Returns:
        The numeric value, or 0.0 for missing/non-numeric/non-finite input
    """
    if value is None or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            number = float(text)
        except ValueError:
            return 0.0
    else:
        return 0.0

    return number if math.isfinite(number) else 0.0


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def line_amount(quantity: Any, rate: Any) -> float:
    """Amount for one line: quantity times rate after coercion."""
    return _finite(coerce_number(quantity) * coerce_number(rate))


@dataclass(frozen=True)
class Totals:
    """Derived totals for an ordered list of items."""

    items: tuple[InvoiceItem, ...]
    subtotal: float
    tax_amount: float
    total: float
    tax_rate: float
    shipping: float


def compute_totals(
    items: Sequence[LineItemInput],
    tax_rate: Any = 0,
    shipping: Any = None,
) -> Totals:
    """Derive line amounts, subtotal, tax and grand total.

    Args:
        items: Raw line items in display order
        tax_rate: Tax percentage (e.g. 8 for 8%)
        shipping: Optional flat shipping charge

    Returns:
        Totals with item order preserved; all zeros for an empty list
    """
    derived = tuple(
        InvoiceItem(
            id=str(index),
            description=item.description,
            issue_date=item.issue_date,
            quantity=coerce_number(item.quantity),
            rate=coerce_number(item.rate),
            amount=line_amount(item.quantity, item.rate),
        )
        for index, item in enumerate(items)
    )

    rate = coerce_number(tax_rate)
    shipping_amount = coerce_number(shipping)

    subtotal = _finite(sum((item.amount for item in derived), 0.0))
    tax_amount = _finite(subtotal * rate / 100)
    total = _finite(subtotal + tax_amount + shipping_amount)

    return Totals(
        items=derived,
        subtotal=subtotal,
        tax_amount=tax_amount,
        total=total,
        tax_rate=rate,
        shipping=shipping_amount,
    )


def build_invoice(form: InvoiceFormData, invoice_id: str = "preview") -> Invoice:
    """Build the invoice view-model from form state.

    Preview, PDF and email all go through this function so they share the
    same derivation.

    Args:
        form: Current form snapshot
        invoice_id: Ephemeral identifier for this derivation

    Returns:
        Fully derived Invoice

    Raises:
        ValidationError: If the item count is outside 1..5 or the currency
            is not supported
    """
    if not form.items:
        raise ValidationError("At least one item is required", field="items")
    if len(form.items) > MAX_ITEMS:
        raise ValidationError(f"Maximum {MAX_ITEMS} items allowed", field="items")

    currency = form.currency or DEFAULT_CURRENCY
    if currency not in CURRENCY_CODES:
        raise ValidationError(f"Unsupported currency: {currency}", field="currency")

    totals = compute_totals(form.items, form.tax_rate, form.shipping)

    return Invoice(
        id=invoice_id,
        invoice_number=form.invoice_number or "",
        invoice_name=form.invoice_name or "",
        date=form.date or "",
        due_date=form.due_date or "",
        sender=form.sender,
        recipient=form.recipient,
        items=list(totals.items),
        subtotal=totals.subtotal,
        tax_rate=totals.tax_rate,
        tax_amount=totals.tax_amount,
        total=totals.total,
        currency=currency,
        notes=form.notes,
        payment_instructions=form.payment_instructions,
        logo=form.logo,
        shipping=totals.shipping,
    )
