"""
salesdocs/kinds.py

Document kinds and their aggregation modes.

Quotations, proforma invoices and invoices share one line-item/document model.
The kind is the discriminant: it selects the reference format (see
sequencing.py), the totals formula (see calculations.py) and the allowed
status values.
"""

from __future__ import annotations

from enum import Enum


class AggregationMode(str, Enum):
    # Per-line discounts plus an additional document discount on the gross subtotal.
    BLENDED = "blended"
    # VAT per line only; document discount applies only when explicitly supplied.
    LINE_VAT = "line_vat"


class DocumentKind(str, Enum):
    QUOTATION = "quotation"
    PROFORMA_INVOICE = "proforma_invoice"
    INVOICE = "invoice"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def url_slug(self) -> str:
        return _URL_SLUGS[self]

    @property
    def mode(self) -> AggregationMode:
        if self is DocumentKind.INVOICE:
            return AggregationMode.LINE_VAT
        return AggregationMode.BLENDED

    @property
    def statuses(self) -> tuple:
        if self is DocumentKind.INVOICE:
            return INVOICE_STATUSES
        return OFFER_STATUSES

    @classmethod
    def from_slug(cls, slug: str) -> "DocumentKind":
        for kind, value in _URL_SLUGS.items():
            if value == slug:
                return kind
        raise ValueError(f"Unknown document kind: {slug}")


OFFER_STATUSES = ("draft", "sent", "accepted", "declined", "expired")
INVOICE_STATUSES = ("draft", "sent", "paid", "not_paid", "overdue")

_LABELS = {
    DocumentKind.QUOTATION: "Quotation",
    DocumentKind.PROFORMA_INVOICE: "Proforma invoice",
    DocumentKind.INVOICE: "Invoice",
}

_URL_SLUGS = {
    DocumentKind.QUOTATION: "quotations",
    DocumentKind.PROFORMA_INVOICE: "proforma-invoices",
    DocumentKind.INVOICE: "invoices",
}
