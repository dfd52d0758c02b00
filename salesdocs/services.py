"""
salesdocs/services.py

Document lifecycle: create, update, delete, totals preview, dashboard stats.

Flow for create:
    validated payload -> lines -> recalc_totals() -> reference allocation
    (scan + insert, retried on collision) -> audit -> commit

IMPORTANT:
- Totals are never taken from the client. recalc_totals() runs on every
  create and update, before anything is flushed.
- reference_id and ownership are fixed at creation; update never touches them.
- A document whose totals are not finite is never committed.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from .audit import log_action, serialize_model
from .calculations import DEFAULT_VAT_PERCENT, LineItem, aggregate, to_decimal
from .errors import InvalidAmountError, ValidationError
from .extensions import db
from .kinds import DocumentKind
from .models import Customer, DocumentLine, Expense, Product, SalesDocument
from .sequencing import DEFAULT_ALLOCATION_ATTEMPTS, allocate_reference, next_reference
from .storage import SqlAlchemyDocumentStore
from .tenancy import TenantScope, stamp_scope

logger = logging.getLogger(__name__)

DOCUMENT_FIELDS = (
    "customer_id",
    "description",
    "issue_date",
    "due_date",
    "supply_date",
    "payment_term",
    "cost_center",
    "status",
    "discount_percent",
    "vat_percent",
    "terms_and_conditions",
    "notes",
)


# ---------------------------------------------------------------------
# Config helpers
# ---------------------------------------------------------------------
def _default_vat_percent() -> Decimal:
    return to_decimal(current_app.config.get("DEFAULT_VAT_PERCENT"), DEFAULT_VAT_PERCENT)


def _reference_start(kind: DocumentKind) -> int | None:
    if kind is DocumentKind.INVOICE:
        return int(current_app.config.get("INVOICE_REFERENCE_START", 1))
    return None


def _allocation_attempts() -> int:
    return int(current_app.config.get("REFERENCE_ALLOCATION_ATTEMPTS", DEFAULT_ALLOCATION_ATTEMPTS))


# ---------------------------------------------------------------------
# Tenant-scoped reference checks
# ---------------------------------------------------------------------
def _check_customer(scope: TenantScope, customer_id: int | None) -> None:
    if customer_id is None:
        return
    exists = Customer.query.filter(scope.filter(Customer), Customer.id == customer_id).first()
    if exists is None:
        raise ValidationError({"customer_id": "unknown customer"})


def _check_products(scope: TenantScope, items: list[dict]) -> None:
    wanted = {item["product_id"] for item in items if item.get("product_id") is not None}
    if not wanted:
        return
    found = {
        row[0]
        for row in db.session.query(Product.id)
        .filter(scope.filter(Product), Product.id.in_(wanted))
        .all()
    }
    errors = {
        f"items[{index}].product_id": "unknown product"
        for index, item in enumerate(items)
        if item.get("product_id") is not None and item["product_id"] not in found
    }
    if errors:
        raise ValidationError(errors)


def _ensure_finite(document: SalesDocument) -> None:
    for field in ("subtotal", "discount", "vat_amount", "total_amount"):
        value = getattr(document, field)
        if value is None or not Decimal(value).is_finite():
            raise InvalidAmountError(f"Computed {field} is not a finite number")


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------
def _build_lines(items: list[dict]) -> list[DocumentLine]:
    return [
        DocumentLine(
            line_no=index,
            product_id=item.get("product_id"),
            description=item.get("description"),
            unit=item.get("unit"),
            quantity=item["quantity"],
            unit_price=item["unit_price"],
            discount_percent=item.get("discount_percent") or Decimal("0"),
            vat_percent=item.get("vat_percent"),
        )
        for index, item in enumerate(items, start=1)
    ]


def _build_document(scope: TenantScope, kind: DocumentKind, data: dict, reference_id: str) -> SalesDocument:
    document = SalesDocument(kind=kind.value, reference_id=reference_id)
    stamp_scope(document, scope)

    for field in DOCUMENT_FIELDS:
        if field in data:
            setattr(document, field, data[field])
    document.status = "draft"
    if document.discount_percent is None:
        document.discount_percent = Decimal("0")
    if not document.cost_center:
        document.cost_center = "Main Center"

    document.lines = _build_lines(data.get("items") or [])
    document.recalc_totals(default_vat_percent=_default_vat_percent())
    _ensure_finite(document)
    return document


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------
def preview_reference(scope: TenantScope, kind: DocumentKind, store=None) -> str:
    """Next reference as of now. Not reserved; creation may still get a later one."""
    kind = DocumentKind(kind)
    store = store or SqlAlchemyDocumentStore()
    return next_reference(store, scope, kind, start=_reference_start(kind))


def create_document(scope: TenantScope, kind: DocumentKind, data: dict, store=None) -> SalesDocument:
    kind = DocumentKind(kind)
    if not data.get("items"):
        raise ValidationError({"items": "at least one line item is required"})

    _check_customer(scope, data.get("customer_id"))
    _check_products(scope, data["items"])

    store = store or SqlAlchemyDocumentStore()

    def create(reference_id: str) -> SalesDocument:
        # Fresh instance per attempt: a failed flush expunges the previous one.
        document = _build_document(scope, kind, data, reference_id)
        return store.insert(document)

    document = allocate_reference(
        store,
        scope,
        kind,
        create,
        attempts=_allocation_attempts(),
        start=_reference_start(kind),
    )

    log_action(document, "CREATE", scope, after=serialize_model(document))
    db.session.commit()

    logger.info("Created %s %s for %s", kind.value, document.reference_id, scope)
    return document


def update_document(scope: TenantScope, document: SalesDocument, data: dict) -> SalesDocument:
    if "items" in data and not data["items"]:
        raise ValidationError({"items": "at least one line item is required"})
    if "customer_id" in data:
        _check_customer(scope, data["customer_id"])
    if "items" in data:
        _check_products(scope, data["items"])

    # A partial update may send only one of the two dates.
    issue_date = data.get("issue_date", document.issue_date)
    due_date = data.get("due_date", document.due_date)
    if issue_date and due_date and due_date < issue_date:
        raise ValidationError({"due_date": "must not be before issue_date"})

    before = serialize_model(document)

    for field in DOCUMENT_FIELDS:
        if field in data:
            setattr(document, field, data[field])
    if document.discount_percent is None:
        document.discount_percent = Decimal("0")
    if not document.cost_center:
        document.cost_center = "Main Center"

    if "items" in data:
        document.lines.clear()
        db.session.flush()
        document.lines.extend(_build_lines(data["items"]))

    try:
        document.recalc_totals(default_vat_percent=_default_vat_percent())
        _ensure_finite(document)
    except InvalidAmountError:
        db.session.rollback()
        raise

    db.session.flush()
    log_action(document, "UPDATE", scope, before=before, after=serialize_model(document))
    db.session.commit()

    logger.info("Updated %s %s for %s", document.kind, document.reference_id, scope)
    return document


def delete_document(scope: TenantScope, document: SalesDocument, store=None) -> None:
    store = store or SqlAlchemyDocumentStore()
    before = serialize_model(document)
    reference_id = document.reference_id

    log_action(document, "DELETE", scope, before=before)
    store.delete(document)
    db.session.commit()

    logger.info("Deleted %s %s for %s", document.kind, reference_id, scope)


def preview_totals(kind: DocumentKind, data: dict) -> dict:
    """Stateless totals for an unsaved document (form live preview)."""
    kind = DocumentKind(kind)
    items = data.get("items") or []
    totals = aggregate(
        [
            LineItem(
                quantity=item["quantity"],
                unit_price=item["unit_price"],
                discount_percent=item.get("discount_percent") or Decimal("0"),
                vat_percent=item.get("vat_percent"),
            )
            for item in items
        ],
        document_discount_percent=data.get("discount_percent"),
        document_vat_percent=data.get("vat_percent"),
        mode=kind.mode,
        default_vat_percent=_default_vat_percent(),
    )
    return {
        "kind": kind.value,
        "subtotal": f"{totals.subtotal:.2f}",
        "discount": f"{totals.discount:.2f}",
        "vat_amount": f"{totals.vat_amount:.2f}",
        "total_amount": f"{totals.total_amount:.2f}",
        "items": [
            {"vat_value": f"{line.vat_value:.2f}", "amount": f"{line.amount:.2f}"}
            for line in totals.lines
        ],
    }


# ---------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------
def financial_stats(scope: TenantScope, today: date | None = None) -> dict:
    """Dashboard figures; monthly_expenses counts expenses dated from the 1st of this month."""
    invoices = SalesDocument.query.filter(
        scope.filter(SalesDocument),
        SalesDocument.kind == DocumentKind.INVOICE.value,
    )

    total_revenue = (
        invoices.filter(SalesDocument.status == "paid")
        .with_entities(func.coalesce(func.sum(SalesDocument.total_amount), 0))
        .scalar()
    )
    active_invoices = invoices.filter(SalesDocument.status != "paid").count()

    customers = Customer.query.filter(scope.filter(Customer))
    total_customers = customers.count()
    total_outstanding = customers.with_entities(
        func.coalesce(func.sum(Customer.opening_balance), 0)
    ).scalar()

    month_start = (today or date.today()).replace(day=1)
    monthly_expenses = (
        db.session.query(func.coalesce(func.sum(Expense.amount), 0))
        .filter(scope.filter(Expense), Expense.expense_date >= month_start)
        .scalar()
    )

    def _count(kind: DocumentKind) -> int:
        return SalesDocument.query.filter(
            scope.filter(SalesDocument), SalesDocument.kind == kind.value
        ).count()

    return {
        "total_revenue": f"{to_decimal(total_revenue):.2f}",
        "active_invoices": active_invoices,
        "total_customers": total_customers,
        "total_outstanding": f"{to_decimal(total_outstanding):.2f}",
        "monthly_expenses": f"{to_decimal(monthly_expenses):.2f}",
        "quotations": _count(DocumentKind.QUOTATION),
        "proforma_invoices": _count(DocumentKind.PROFORMA_INVOICE),
        "invoices": _count(DocumentKind.INVOICE),
    }
