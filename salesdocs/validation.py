"""
salesdocs/validation.py

Boundary validation for document payloads (JSON body or form data).

Rules:
- At least one line item on create, and on update when "items" is sent.
- quantity: numeric, finite, >= 0; rounded to 4 decimals (kg, hours, ...).
- unit_price: numeric, finite, >= 0, at most 2 decimal places.
- Percents: numeric and finite; values outside [0, 100] are clamped and
  rounded to 4 decimals, never rejected.
- Invoice lines carry no line discount (VAT is computed per line only).
- Derived fields sent by the client (vat_value, amount, subtotal, discount,
  vat_amount, total_amount) and reference_id are ignored.

Errors are collected per field and raised together as ValidationError, e.g.
    {"items[1].quantity": "must be >= 0", "issue_date": "is required"}
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from .calculations import HUNDRED, clamp, rate
from .errors import ValidationError
from .kinds import DocumentKind
from .utils import clean_text, decimal_places, parse_date, parse_decimal, parse_optional_int

TEXT_FIELDS = ("description", "payment_term", "cost_center", "terms_and_conditions", "notes")
DATE_FIELDS = ("issue_date", "due_date", "supply_date")

# Accepted aliases for line fields (legacy form names).
LINE_ALIASES = {
    "quantity": ("quantity", "qty"),
    "unit_price": ("unit_price", "unitPrice"),
    "discount_percent": ("discount_percent", "discountPercent"),
    "vat_percent": ("vat_percent", "vatPercent"),
    "product_id": ("product_id", "productId", "productService"),
}


def _first_present(data: dict, names: tuple):
    for name in names:
        if name in data:
            return data[name]
    return None


def _amount_input(raw, field: str, errors: dict, max_places: int | None) -> Decimal | None:
    try:
        value = parse_decimal(raw)
    except ValueError as exc:
        errors[field] = str(exc)
        return None
    if value is None:
        errors[field] = "is required"
        return None
    if value < 0:
        errors[field] = "must be >= 0"
        return None
    if max_places is None:
        return rate(value)
    if decimal_places(value) > max_places:
        errors[field] = f"at most {max_places} decimal places"
        return None
    return value


def _percent_input(raw, field: str, errors: dict) -> Decimal | None:
    try:
        value = parse_decimal(raw)
    except ValueError as exc:
        errors[field] = str(exc)
        return None
    if value is None:
        return None
    return rate(clamp(value, Decimal("0"), HUNDRED))


def parse_line_items(raw_items, kind: DocumentKind, errors: dict) -> list[dict]:
    if raw_items is not None and not isinstance(raw_items, list):
        errors["items"] = "must be a list"
        return []
    if not raw_items:
        errors["items"] = "at least one line item is required"
        return []

    items = []
    for index, raw in enumerate(raw_items):
        prefix = f"items[{index}]"
        if not isinstance(raw, dict):
            errors[prefix] = "must be an object"
            continue

        quantity = _amount_input(
            _first_present(raw, LINE_ALIASES["quantity"]), f"{prefix}.quantity", errors, max_places=None
        )
        unit_price = _amount_input(
            _first_present(raw, LINE_ALIASES["unit_price"]), f"{prefix}.unit_price", errors, max_places=2
        )
        discount_percent = _percent_input(
            _first_present(raw, LINE_ALIASES["discount_percent"]), f"{prefix}.discount_percent", errors
        )
        vat_percent = _percent_input(
            _first_present(raw, LINE_ALIASES["vat_percent"]), f"{prefix}.vat_percent", errors
        )

        if kind is DocumentKind.INVOICE and discount_percent:
            errors[f"{prefix}.discount_percent"] = "line discounts are not supported on invoices"

        raw_product = _first_present(raw, LINE_ALIASES["product_id"])
        product_id = parse_optional_int(raw_product)
        if clean_text(raw_product) is not None and product_id is None:
            errors[f"{prefix}.product_id"] = "must be an integer id"

        items.append(
            {
                "product_id": product_id,
                "description": clean_text(raw.get("description")),
                "unit": clean_text(raw.get("unit")),
                "quantity": quantity,
                "unit_price": unit_price,
                "discount_percent": discount_percent or Decimal("0"),
                "vat_percent": vat_percent,
            }
        )
    return items


def parse_document_payload(payload: dict, kind: DocumentKind, partial: bool = False) -> dict:
    """
    Validate and convert a document payload.

    partial=False (create): missing issue_date defaults to today, status is
    always "draft", items are required.
    partial=True (update): only keys present in the payload are returned.
    """
    kind = DocumentKind(kind)
    if not isinstance(payload, dict):
        raise ValidationError({"_": "payload must be an object"})

    errors: dict = {}
    data: dict = {}

    def present(key: str) -> bool:
        return not partial or key in payload

    for field in TEXT_FIELDS:
        if present(field):
            data[field] = clean_text(payload.get(field))
    if "cost_center" in data and data["cost_center"] is None:
        data["cost_center"] = "Main Center"

    for field in DATE_FIELDS:
        if present(field):
            try:
                data[field] = parse_date(payload.get(field))
            except ValueError as exc:
                errors[field] = str(exc)

    if not partial and data.get("issue_date") is None and "issue_date" not in errors:
        data["issue_date"] = date.today()
    if partial and "issue_date" in data and data["issue_date"] is None:
        errors["issue_date"] = "is required"

    issue_date = data.get("issue_date")
    due_date = data.get("due_date")
    if issue_date and due_date and due_date < issue_date:
        errors["due_date"] = "must not be before issue_date"

    if present("customer_id"):
        raw_customer = payload.get("customer_id")
        customer_id = parse_optional_int(raw_customer)
        if clean_text(raw_customer) is not None and customer_id is None:
            errors["customer_id"] = "must be an integer id"
        data["customer_id"] = customer_id

    if present("discount_percent"):
        value = _percent_input(payload.get("discount_percent"), "discount_percent", errors)
        data["discount_percent"] = value if value is not None else Decimal("0")

    if present("vat_percent"):
        data["vat_percent"] = _percent_input(payload.get("vat_percent"), "vat_percent", errors)

    if partial:
        if "status" in payload:
            status = clean_text(payload.get("status"))
            if status not in kind.statuses:
                errors["status"] = f"must be one of: {', '.join(kind.statuses)}"
            else:
                data["status"] = status
    else:
        data["status"] = "draft"

    if present("items"):
        data["items"] = parse_line_items(payload.get("items"), kind, errors)

    if errors:
        raise ValidationError(errors)
    return data
