"""Invoice data models.

Wire format is camelCase (``invoiceNumber``, ``taxRate``); attributes are
snake_case. Models accept either on input.
"""

from datetime import date, timedelta
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_ITEMS = 5
DEFAULT_CURRENCY = "USD"


class CamelModel(BaseModel):
    """Base model with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _today() -> str:
    return date.today().isoformat()


def _in_thirty_days() -> str:
    return (date.today() + timedelta(days=30)).isoformat()


class Company(CamelModel):
    """Sender or recipient party as typed into the form."""

    name: str = ""
    email: str = ""
    address: str = ""
    address2: str | None = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""
    state: str = ""
    phone: str = ""

    def has_contact_details(self) -> bool:
        """True if at least one of name, email or phone is filled in."""
        return any(value.strip() for value in (self.name, self.email, self.phone))


class LineItemInput(CamelModel):
    """Raw line item from the form; quantity and rate are unvalidated."""

    description: str = ""
    issue_date: str = Field(default_factory=_today)
    quantity: Any = 1
    rate: Any = 0


class InvoiceItem(CamelModel):
    """Line item with its derived amount."""

    id: str
    description: str = ""
    issue_date: str = ""
    quantity: float
    rate: float
    amount: float


class InvoiceFormData(CamelModel):
    """Lenient snapshot of the invoice form.

    Numeric fields accept anything the browser sends; the totals engine
    coerces them.
    """

    invoice_number: str | None = None
    invoice_name: str = ""
    date: str = Field(default_factory=_today)
    due_date: str = Field(default_factory=_in_thirty_days)
    sender: Company = Field(default_factory=Company)
    recipient: Company = Field(default_factory=Company)
    items: list[LineItemInput] = Field(default_factory=lambda: [LineItemInput()])
    tax_rate: Any = 0
    currency: str = DEFAULT_CURRENCY
    notes: str | None = None
    payment_instructions: str | None = None
    logo: str | None = None
    shipping: Any = 0


class Invoice(CamelModel):
    """Fully derived invoice view-model used for preview, PDF and email.

    Never persisted; rebuilt from form state for every use.
    """

    id: str
    invoice_number: str = ""
    invoice_name: str = ""
    date: str = ""
    due_date: str = ""
    sender: Company
    recipient: Company
    items: list[InvoiceItem] = Field(min_length=1, max_length=MAX_ITEMS)
    subtotal: float
    tax_rate: float
    tax_amount: float
    total: float
    currency: str = DEFAULT_CURRENCY
    notes: str | None = None
    payment_instructions: str | None = None
    logo: str | None = None
    shipping: float = 0.0


def _optional_number(value: Any) -> Any:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


class ParsedParty(CamelModel):
    """Party as returned by the language model; every field nullable."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )

    name: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = Field(
        default=None,
        validation_alias=AliasChoices("postalCode", "zipCode", "postal_code"),
        serialization_alias="postalCode",
    )
    country: str | None = None
    email: str | None = None
    phone: str | None = None

    def has_values(self) -> bool:
        return any(value for value in self.model_dump().values())


class ParsedItem(CamelModel):
    """Line item as returned by the language model."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )

    description: str | None = None
    quantity: float | None = None
    rate: float | None = None

    @field_validator("quantity", "rate", mode="before")
    @classmethod
    def coerce_number(cls, value: Any) -> Any:
        return _optional_number(value)


class ParsedInvoice(CamelModel):
    """Structured fields extracted from free text.

    Every field is always present in the JSON response; fields not found in
    the source text are null.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True
    )

    invoice_number: str | None = None
    invoice_name: str | None = None
    date: str | None = None
    due_date: str | None = None
    sender: ParsedParty | None = None
    recipient: ParsedParty | None = None
    items: list[ParsedItem] | None = None
    tax_rate: float | None = None
    currency: str | None = None
    notes: str | None = None
    payment_instructions: str | None = None
    shipping: float | None = None

    # Post-validation flags
    warning: str | None = None
    low_confidence: bool = False
    truncated: bool = False

    @field_validator("tax_rate", "shipping", mode="before")
    @classmethod
    def coerce_number(cls, value: Any) -> Any:
        return _optional_number(value)

    def has_invoice_data(self) -> bool:
        """True if any semantically meaningful field was extracted."""
        return bool(
            self.invoice_number
            or self.date
            or self.due_date
            or (self.sender and self.sender.has_values())
            or (self.recipient and self.recipient.has_values())
            or (self.items and any(item.description for item in self.items))
        )
