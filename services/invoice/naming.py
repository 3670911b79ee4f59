"""Short human-readable invoice labels."""

from services.invoice.schema import ParsedInvoice

FALLBACK_INVOICE_NAME = "Invoice"
MAX_NAME_WORDS = 5


def generate_invoice_name(parsed: ParsedInvoice) -> str:
    """Build a label from item descriptions, recipient name and date.

    Args:
        parsed: Extracted invoice fields

    Returns:
        First five words of the joined parts, or ``Invoice`` if none exist
    """
    parts: list[str] = []

    if parsed.items:
        parts.append(", ".join(item.description or "" for item in parsed.items))
    if parsed.recipient and parsed.recipient.name:
        parts.append(parsed.recipient.name)
    if parsed.date:
        parts.append(parsed.date)

    words = " ".join(parts).split()
    return " ".join(words[:MAX_NAME_WORDS]) or FALLBACK_INVOICE_NAME
