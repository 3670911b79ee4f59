"""Declarative validation rules for the invoice form.

Company fields are described once in :data:`COMPANY_FIELDS`; the same list
drives validation for both the sender and the recipient and can be served
to the client to render inputs.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from services.invoice.schema import MAX_ITEMS, Company, InvoiceFormData
from services.invoice.totals import coerce_number

_EMAIL_ADAPTER: TypeAdapter[str] = TypeAdapter(EmailStr)
PHONE_PATTERN = re.compile(r"^[+\d\s()-]+$")

MAX_LOGO_DATA_URI_LENGTH = 7_000_000

# A validator returns an error message or None.
Validator = Callable[[str], str | None]


@dataclass(frozen=True)
class FieldSpec:
    """One form input: key, label, HTML input type and validator."""

    key: str
    label: str
    input_type: str
    validator: Validator


def is_valid_email(value: str | None) -> bool:
    """Check that an address has a valid user@domain.tld shape."""
    if not value:
        return False
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except PydanticValidationError:
        return False
    return True


def _text(label: str, max_length: int, required: bool = True) -> Validator:
    def validate(value: str) -> str | None:
        value = value or ""
        if required and not value:
            return f"{label} is required"
        if len(value) > max_length:
            return f"{label} is too long"
        return None

    return validate


def _email(value: str) -> str | None:
    value = value or ""
    if len(value) < 5:
        return "Email is too short"
    if len(value) > 100:
        return "Email is too long"
    if not is_valid_email(value):
        return "Invalid email address"
    if "script" in value:
        return "Email contains invalid characters"
    return None


def _phone(value: str) -> str | None:
    value = value or ""
    message = _text("Phone number", 20)(value)
    if message:
        return message
    if not PHONE_PATTERN.match(value):
        return "Phone number contains invalid characters"
    return None


COMPANY_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("name", "Company name", "text", _text("Company name", 100)),
    FieldSpec("email", "Email", "email", _email),
    FieldSpec("address", "Address", "text", _text("Address", 200)),
    FieldSpec("address2", "Address line 2", "text", _text("Address", 200, required=False)),
    FieldSpec("city", "City", "text", _text("City", 100)),
    FieldSpec("postal_code", "Postal code", "text", _text("Postal code", 20)),
    FieldSpec("country", "Country", "text", _text("Country", 100)),
    FieldSpec("state", "State", "text", _text("State", 100)),
    FieldSpec("phone", "Phone", "tel", _phone),
)


def _wire_key(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.title() for part in rest)


def validate_company(company: Company, prefix: str) -> dict[str, str]:
    """Validate one party against :data:`COMPANY_FIELDS`.

    Args:
        company: Sender or recipient
        prefix: Field path prefix, ``sender`` or ``recipient``

    Returns:
        Mapping of ``prefix.fieldName`` to error message
    """
    errors: dict[str, str] = {}
    for spec in COMPANY_FIELDS:
        message = spec.validator(getattr(company, spec.key) or "")
        if message:
            errors[f"{prefix}.{_wire_key(spec.key)}"] = message
    return errors


def _number_range(value: Any, label: str, maximum: float) -> str | None:
    number = coerce_number(value)
    if number < 0:
        return f"{label} must be positive"
    if number > maximum:
        return f"{label} is too large"
    return None


def validate_invoice_form(form: InvoiceFormData) -> dict[str, str]:
    """Validate a full form snapshot.

    Args:
        form: Form state

    Returns:
        Mapping of dotted field path to error message; empty if valid
    """
    errors: dict[str, str] = {}

    if form.invoice_number and len(form.invoice_number) > 50:
        errors["invoiceNumber"] = "Invoice number is too long"
    name_error = _text("Invoice name", 100)(form.invoice_name)
    if name_error:
        errors["invoiceName"] = name_error
    if not form.date:
        errors["date"] = "Date is required"
    if not form.due_date:
        errors["dueDate"] = "Due date is required"

    errors.update(validate_company(form.sender, "sender"))
    errors.update(validate_company(form.recipient, "recipient"))

    if not form.items:
        errors["items"] = "At least one item is required"
    elif len(form.items) > MAX_ITEMS:
        errors["items"] = f"Maximum {MAX_ITEMS} items allowed"

    for index, item in enumerate(form.items[:MAX_ITEMS]):
        prefix = f"items.{index}"
        message = _text("Description", 500)(item.description)
        if message:
            errors[f"{prefix}.description"] = message
        if not item.issue_date:
            errors[f"{prefix}.issueDate"] = "Issue date is required"
        message = _number_range(item.quantity, "Quantity", 1_000_000)
        if message:
            errors[f"{prefix}.quantity"] = message
        message = _number_range(item.rate, "Rate", 1_000_000_000)
        if message:
            errors[f"{prefix}.rate"] = message

    if coerce_number(form.tax_rate) < 0:
        errors["taxRate"] = "Tax rate must be positive"

    currency_error = _text("Currency", 10)(form.currency)
    if currency_error:
        errors["currency"] = currency_error

    if form.notes and len(form.notes) > 1000:
        errors["notes"] = "Notes are too long"
    if form.payment_instructions and len(form.payment_instructions) > 1000:
        errors["paymentInstructions"] = "Payment instructions are too long"

    if form.logo:
        if not form.logo.startswith("data:image/"):
            errors["logo"] = "Invalid image format"
        elif len(form.logo) > MAX_LOGO_DATA_URI_LENGTH:
            errors["logo"] = "Image size is too large"

    message = _number_range(form.shipping, "Shipping", 1_000_000)
    if message:
        errors["shipping"] = message.replace("is too large", "cost is too large")

    return errors
