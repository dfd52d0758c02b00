"""
salesdocs/blueprints/documents/routes.py

Sales document routes (JSON API).

Includes, for each kind (/api/quotations, /api/proforma-invoices, /api/invoices):
- List with per-column server-side filtering
- Next reference preview
- Get / Create / Update / Delete
Plus:
- POST /api/calculate     stateless totals preview
- GET  /api/dashboard/stats

IMPORTANT:
- Every route runs inside the caller's tenant scope. Documents of another
  tenant are reported as 404.
- Totals in the request body are ignored; they are always recomputed.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import login_required

from ...errors import ValidationError
from ...kinds import DocumentKind
from ...models import SalesDocument
from ...services import (
    create_document,
    delete_document,
    financial_stats,
    preview_reference,
    preview_totals,
    update_document,
)
from ...storage import SqlAlchemyDocumentStore
from ...tenancy import current_scope, tenant_required
from ...utils import parse_date, parse_decimal, parse_optional_int, request_payload
from ...validation import parse_document_payload

documents_bp = Blueprint("documents", __name__, url_prefix="/api")

KIND_RULE = "<any(quotations, 'proforma-invoices', invoices):slug>"


# ---------------------------------------------------------------------
# List filtering (server-side)
# ---------------------------------------------------------------------
def _apply_list_filters(q):
    """Apply per-column filters from the query string."""
    errors = {}

    customer_id = parse_optional_int(request.args.get("customer_id"))
    if customer_id:
        q = q.filter(SalesDocument.customer_id == customer_id)

    status = (request.args.get("status") or "").strip()
    if status:
        q = q.filter(SalesDocument.status == status)

    date_filters = (
        ("issue_date_from", SalesDocument.issue_date, ">="),
        ("issue_date_to", SalesDocument.issue_date, "<="),
        ("due_date_from", SalesDocument.due_date, ">="),
        ("due_date_to", SalesDocument.due_date, "<="),
    )
    for arg, column, op in date_filters:
        try:
            value = parse_date(request.args.get(arg))
        except ValueError as exc:
            errors[arg] = str(exc)
            continue
        if value is not None:
            q = q.filter(column >= value if op == ">=" else column <= value)

    for arg, op in (("min_amount", ">="), ("max_amount", "<=")):
        try:
            value = parse_decimal(request.args.get(arg))
        except ValueError as exc:
            errors[arg] = str(exc)
            continue
        if value is not None:
            column = SalesDocument.total_amount
            q = q.filter(column >= value if op == ">=" else column <= value)

    if errors:
        raise ValidationError(errors)
    return q


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------
@documents_bp.route(f"/{KIND_RULE}")
@login_required
@tenant_required
def list_documents(slug: str):
    kind = DocumentKind.from_slug(slug)
    store = SqlAlchemyDocumentStore()

    q = _apply_list_filters(store.scoped_query(current_scope(), kind))
    documents = q.order_by(SalesDocument.created_at.desc(), SalesDocument.id.desc()).all()

    return jsonify([doc.to_dict(include_lines=False) for doc in documents])


@documents_bp.route(f"/{KIND_RULE}/next-reference")
@login_required
@tenant_required
def next_reference(slug: str):
    kind = DocumentKind.from_slug(slug)
    return jsonify({"reference": preview_reference(current_scope(), kind)})


@documents_bp.route(f"/{KIND_RULE}/<int:document_id>")
@login_required
@tenant_required
def get_document(slug: str, document_id: int):
    kind = DocumentKind.from_slug(slug)
    document = SqlAlchemyDocumentStore().get(current_scope(), kind, document_id)
    return jsonify(document.to_dict())


@documents_bp.route(f"/{KIND_RULE}", methods=["POST"])
@login_required
@tenant_required
def create(slug: str):
    kind = DocumentKind.from_slug(slug)
    data = parse_document_payload(request_payload(), kind)
    document = create_document(current_scope(), kind, data)
    return jsonify(document.to_dict()), 201


@documents_bp.route(f"/{KIND_RULE}/<int:document_id>", methods=["PUT", "PATCH"])
@login_required
@tenant_required
def update(slug: str, document_id: int):
    kind = DocumentKind.from_slug(slug)
    scope = current_scope()
    document = SqlAlchemyDocumentStore().get(scope, kind, document_id)

    data = parse_document_payload(request_payload(), kind, partial=True)
    document = update_document(scope, document, data)
    return jsonify(document.to_dict())


@documents_bp.route(f"/{KIND_RULE}/<int:document_id>", methods=["DELETE"])
@login_required
@tenant_required
def delete(slug: str, document_id: int):
    kind = DocumentKind.from_slug(slug)
    scope = current_scope()
    store = SqlAlchemyDocumentStore()

    document = store.get(scope, kind, document_id)
    delete_document(scope, document, store=store)
    return jsonify({"message": f"{kind.label} deleted successfully"})


# ---------------------------------------------------------------------
# Calculation preview / dashboard
# ---------------------------------------------------------------------
@documents_bp.route("/calculate", methods=["POST"])
@login_required
@tenant_required
def calculate():
    """Totals for an unsaved document; used by forms for live preview."""
    payload = request_payload()
    try:
        kind = DocumentKind(payload.get("kind") or DocumentKind.QUOTATION.value)
    except ValueError:
        raise ValidationError({"kind": "must be one of: " + ", ".join(k.value for k in DocumentKind)})

    data = parse_document_payload(payload, kind)
    return jsonify(preview_totals(kind, data))


@documents_bp.route("/dashboard/stats")
@login_required
@tenant_required
def dashboard_stats():
    return jsonify(financial_stats(current_scope()))
