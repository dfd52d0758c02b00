"""
salesdocs/blueprints/masterdata/routes.py

Master data routes: customers, products, units (JSON API).

Scope:
- CRUD per tenant for Customer, Product, Unit
- Next customer code (numeric, starting at 22) and next product code (Prod-001)
- Total outstanding (sum of customer opening balances)

CACHE:
- List reads go through the per-app ScopedListCache, keyed by (entity, scope).
- Every create/update/delete invalidates the same key before responding.

AUDIT:
- CREATE/UPDATE/DELETE is audited via salesdocs/audit.py.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict

from flask import Blueprint, jsonify
from flask_login import login_required
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ...audit import log_action, serialize_model
from ...calculations import DEFAULT_VAT_PERCENT, HUNDRED, clamp, to_decimal
from ...errors import ConflictError, NotFoundError, ValidationError
from ...extensions import db, get_list_cache
from ...models import Customer, DocumentLine, Product, SalesDocument, Unit
from ...sequencing import highest_reference_number
from ...tenancy import TenantScope, current_scope, stamp_scope, tenant_required
from ...utils import clean_text, parse_decimal, parse_optional_int, request_payload

masterdata_bp = Blueprint("masterdata", __name__, url_prefix="/api")

CUSTOMER_CODE_START = 22
PRODUCT_CODE_PREFIX = "Prod-"
PRODUCT_CODE_WIDTH = 3

CUSTOMER_STATUSES = ("active", "inactive")
PRODUCT_TYPES = ("product", "service", "expense", "recipe")


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------
def _cached_list(entity: str, loader: Callable[[], list]) -> list:
    return get_list_cache().get_or_load((entity, current_scope()), loader)


def _invalidate(entity: str) -> None:
    get_list_cache().invalidate((entity, current_scope()))


def _get_scoped(model, record_id: int, label: str):
    record = model.query.filter(current_scope().filter(model), model.id == record_id).first()
    if record is None:
        raise NotFoundError(f"{label} not found")
    return record


def _flush_or_conflict(message: str) -> None:
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


def _decimal_field(payload: dict, field: str, errors: Dict[str, str], minimum=Decimal("0")):
    try:
        value = parse_decimal(payload.get(field))
    except ValueError as exc:
        errors[field] = str(exc)
        return None
    if value is not None and minimum is not None and value < minimum:
        errors[field] = f"must be >= {minimum}"
        return None
    return value


def next_customer_code(scope: TenantScope) -> str:
    codes = db.session.query(Customer.code).filter(scope.filter(Customer)).all()
    highest = highest_reference_number((row[0] for row in codes), "")
    return str(max(highest + 1, CUSTOMER_CODE_START))


def next_product_code(scope: TenantScope) -> str:
    codes = db.session.query(Product.product_code).filter(scope.filter(Product)).all()
    highest = highest_reference_number((row[0] for row in codes), PRODUCT_CODE_PREFIX)
    return f"{PRODUCT_CODE_PREFIX}{str(highest + 1).zfill(PRODUCT_CODE_WIDTH)}"


# ----------------------------------------------------------------------
# CUSTOMERS
# ----------------------------------------------------------------------
CUSTOMER_TEXT_FIELDS = (
    "email",
    "phone",
    "account",
    "vat_registration_number",
    "street_name",
    "city",
    "country",
    "postal_code",
)


def _apply_customer_payload(customer: Customer, payload: dict, partial: bool) -> None:
    errors: Dict[str, str] = {}

    if not partial or "customer_name" in payload:
        name = clean_text(payload.get("customer_name"))
        if not name:
            errors["customer_name"] = "is required"
        customer.customer_name = name

    for field in CUSTOMER_TEXT_FIELDS:
        if not partial or field in payload:
            setattr(customer, field, clean_text(payload.get(field)))
    if not customer.account:
        customer.account = "Accounts Receivables"

    if not partial or "opening_balance" in payload:
        balance = _decimal_field(payload, "opening_balance", errors, minimum=None)
        customer.opening_balance = balance if balance is not None else Decimal("0.00")

    if not partial or "status" in payload:
        status = clean_text(payload.get("status")) or "active"
        if status not in CUSTOMER_STATUSES:
            errors["status"] = "must be 'active' or 'inactive'"
        customer.status = status

    if "code" in payload and clean_text(payload.get("code")):
        customer.code = clean_text(payload.get("code"))

    if errors:
        raise ValidationError(errors)


@masterdata_bp.route("/customers")
@login_required
@tenant_required
def list_customers():
    def load():
        customers = (
            Customer.query.filter(current_scope().filter(Customer))
            .order_by(Customer.created_at.desc(), Customer.id.desc())
            .all()
        )
        return [c.to_dict() for c in customers]

    return jsonify(_cached_list("customers", load))


@masterdata_bp.route("/customers/next-code")
@login_required
@tenant_required
def customer_next_code():
    return jsonify({"code": next_customer_code(current_scope())})


@masterdata_bp.route("/customers/total-outstanding")
@login_required
@tenant_required
def customers_total_outstanding():
    total = (
        db.session.query(func.coalesce(func.sum(Customer.opening_balance), 0))
        .filter(current_scope().filter(Customer))
        .scalar()
    )
    return jsonify({"total_outstanding": f"{to_decimal(total):.2f}"})


@masterdata_bp.route("/customers/<int:customer_id>")
@login_required
@tenant_required
def get_customer(customer_id: int):
    return jsonify(_get_scoped(Customer, customer_id, "Customer").to_dict())


@masterdata_bp.route("/customers", methods=["POST"])
@login_required
@tenant_required
def create_customer():
    scope = current_scope()
    payload = request_payload()

    customer = Customer()
    stamp_scope(customer, scope)
    _apply_customer_payload(customer, payload, partial=False)
    if not customer.code:
        customer.code = next_customer_code(scope)

    db.session.add(customer)
    _flush_or_conflict(f"Customer code {customer.code} already exists")
    log_action(customer, "CREATE", scope, after=serialize_model(customer))
    db.session.commit()
    _invalidate("customers")

    return jsonify(customer.to_dict()), 201


@masterdata_bp.route("/customers/<int:customer_id>", methods=["PUT", "PATCH"])
@login_required
@tenant_required
def update_customer(customer_id: int):
    scope = current_scope()
    customer = _get_scoped(Customer, customer_id, "Customer")
    before = serialize_model(customer)

    _apply_customer_payload(customer, request_payload(), partial=True)
    _flush_or_conflict(f"Customer code {customer.code} already exists")
    log_action(customer, "UPDATE", scope, before=before, after=serialize_model(customer))
    db.session.commit()
    _invalidate("customers")

    return jsonify(customer.to_dict())


@masterdata_bp.route("/customers/<int:customer_id>", methods=["DELETE"])
@login_required
@tenant_required
def delete_customer(customer_id: int):
    scope = current_scope()
    customer = _get_scoped(Customer, customer_id, "Customer")

    # Documents keep their totals; they just lose the customer link.
    SalesDocument.query.filter(
        scope.filter(SalesDocument), SalesDocument.customer_id == customer.id
    ).update({SalesDocument.customer_id: None}, synchronize_session=False)

    log_action(customer, "DELETE", scope, before=serialize_model(customer))
    db.session.delete(customer)
    db.session.commit()
    _invalidate("customers")

    return jsonify({"message": "Customer deleted successfully"})


# ----------------------------------------------------------------------
# PRODUCTS
# ----------------------------------------------------------------------
PRODUCT_TEXT_FIELDS = ("name_arabic", "description", "unit", "barcode")


def _apply_product_payload(product: Product, payload: dict, partial: bool) -> None:
    errors: Dict[str, str] = {}

    if not partial or "name_english" in payload:
        name = clean_text(payload.get("name_english"))
        if not name:
            errors["name_english"] = "is required"
        product.name_english = name

    for field in PRODUCT_TEXT_FIELDS:
        if not partial or field in payload:
            setattr(product, field, clean_text(payload.get(field)))

    if not partial or "category" in payload:
        product.category = clean_text(payload.get("category")) or "Default Category"

    if not partial or "type" in payload:
        product_type = clean_text(payload.get("type")) or "product"
        if product_type not in PRODUCT_TYPES:
            errors["type"] = f"must be one of: {', '.join(PRODUCT_TYPES)}"
        product.type = product_type

    for field in ("buying_price", "selling_price"):
        if not partial or field in payload:
            value = _decimal_field(payload, field, errors)
            setattr(product, field, value if value is not None else Decimal("0.00"))

    if not partial or "vat_percent" in payload:
        vat = _decimal_field(payload, "vat_percent", errors, minimum=None)
        product.vat_percent = (
            clamp(vat, Decimal("0"), HUNDRED) if vat is not None else DEFAULT_VAT_PERCENT
        )

    if not partial or "quantity" in payload:
        raw_quantity = payload.get("quantity")
        quantity = parse_optional_int(raw_quantity)
        if clean_text(raw_quantity) is not None and quantity is None:
            errors["quantity"] = "must be an integer"
        product.quantity = quantity or 0

    if "product_code" in payload and clean_text(payload.get("product_code")):
        product.product_code = clean_text(payload.get("product_code"))

    if errors:
        raise ValidationError(errors)


@masterdata_bp.route("/products")
@login_required
@tenant_required
def list_products():
    def load():
        products = (
            Product.query.filter(current_scope().filter(Product))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .all()
        )
        return [p.to_dict() for p in products]

    return jsonify(_cached_list("products", load))


@masterdata_bp.route("/products/next-code")
@login_required
@tenant_required
def product_next_code():
    return jsonify({"product_code": next_product_code(current_scope())})


@masterdata_bp.route("/products/<int:product_id>")
@login_required
@tenant_required
def get_product(product_id: int):
    return jsonify(_get_scoped(Product, product_id, "Product").to_dict())


@masterdata_bp.route("/products", methods=["POST"])
@login_required
@tenant_required
def create_product():
    scope = current_scope()

    product = Product()
    stamp_scope(product, scope)
    _apply_product_payload(product, request_payload(), partial=False)
    if not product.product_code:
        product.product_code = next_product_code(scope)

    db.session.add(product)
    _flush_or_conflict(f"Product code {product.product_code} already exists")
    log_action(product, "CREATE", scope, after=serialize_model(product))
    db.session.commit()
    _invalidate("products")
    _invalidate("units")

    return jsonify(product.to_dict()), 201


@masterdata_bp.route("/products/<int:product_id>", methods=["PUT", "PATCH"])
@login_required
@tenant_required
def update_product(product_id: int):
    scope = current_scope()
    product = _get_scoped(Product, product_id, "Product")
    before = serialize_model(product)

    _apply_product_payload(product, request_payload(), partial=True)
    _flush_or_conflict(f"Product code {product.product_code} already exists")
    log_action(product, "UPDATE", scope, before=before, after=serialize_model(product))
    db.session.commit()
    _invalidate("products")
    _invalidate("units")

    return jsonify(product.to_dict())


@masterdata_bp.route("/products/<int:product_id>", methods=["DELETE"])
@login_required
@tenant_required
def delete_product(product_id: int):
    scope = current_scope()
    product = _get_scoped(Product, product_id, "Product")

    DocumentLine.query.filter(DocumentLine.product_id == product.id).update(
        {DocumentLine.product_id: None}, synchronize_session=False
    )

    log_action(product, "DELETE", scope, before=serialize_model(product))
    db.session.delete(product)
    db.session.commit()
    _invalidate("products")
    _invalidate("units")

    return jsonify({"message": "Product deleted successfully"})


# ----------------------------------------------------------------------
# UNITS
# ----------------------------------------------------------------------
def _product_count_by_unit(scope: TenantScope) -> Dict[str, int]:
    rows = (
        db.session.query(Product.unit, func.count(Product.id))
        .filter(scope.filter(Product))
        .group_by(Product.unit)
        .all()
    )
    return {unit: count for unit, count in rows if unit}


def _apply_unit_payload(unit: Unit, payload: dict, partial: bool) -> None:
    errors: Dict[str, str] = {}

    for field in ("name", "symbol"):
        if not partial or field in payload:
            value = clean_text(payload.get(field))
            if not value:
                errors[field] = "is required"
            setattr(unit, field, value)

    if not partial or "type" in payload:
        unit.type = clean_text(payload.get("type")) or "Unit"
    if not partial or "description" in payload:
        unit.description = clean_text(payload.get("description"))
    if "is_active" in payload:
        unit.is_active = bool(payload.get("is_active"))

    if errors:
        raise ValidationError(errors)


@masterdata_bp.route("/units")
@login_required
@tenant_required
def list_units():
    def load():
        scope = current_scope()
        counts = _product_count_by_unit(scope)
        units = Unit.query.filter(scope.filter(Unit)).order_by(Unit.name.asc()).all()
        return [dict(u.to_dict(), product_count=counts.get(u.name, 0)) for u in units]

    return jsonify(_cached_list("units", load))


@masterdata_bp.route("/units/<int:unit_id>")
@login_required
@tenant_required
def get_unit(unit_id: int):
    return jsonify(_get_scoped(Unit, unit_id, "Unit").to_dict())


@masterdata_bp.route("/units", methods=["POST"])
@login_required
@tenant_required
def create_unit():
    scope = current_scope()

    unit = Unit(is_active=True)
    stamp_scope(unit, scope)
    _apply_unit_payload(unit, request_payload(), partial=False)

    db.session.add(unit)
    _flush_or_conflict(f"Unit {unit.name} already exists")
    log_action(unit, "CREATE", scope, after=serialize_model(unit))
    db.session.commit()
    _invalidate("units")

    return jsonify(unit.to_dict()), 201


@masterdata_bp.route("/units/<int:unit_id>", methods=["PUT", "PATCH"])
@login_required
@tenant_required
def update_unit(unit_id: int):
    scope = current_scope()
    unit = _get_scoped(Unit, unit_id, "Unit")
    before = serialize_model(unit)
    old_name = unit.name

    _apply_unit_payload(unit, request_payload(), partial=True)
    _flush_or_conflict(f"Unit {unit.name} already exists")

    # Products refer to units by name.
    renamed = unit.name != old_name
    if renamed:
        Product.query.filter(scope.filter(Product), Product.unit == old_name).update(
            {Product.unit: unit.name}, synchronize_session=False
        )

    log_action(unit, "UPDATE", scope, before=before, after=serialize_model(unit))
    db.session.commit()
    _invalidate("units")
    if renamed:
        _invalidate("products")

    return jsonify(unit.to_dict())


@masterdata_bp.route("/units/<int:unit_id>", methods=["DELETE"])
@login_required
@tenant_required
def delete_unit(unit_id: int):
    scope = current_scope()
    unit = _get_scoped(Unit, unit_id, "Unit")

    in_use = _product_count_by_unit(scope).get(unit.name, 0)
    if in_use:
        raise ConflictError(f"Unit {unit.name} is used by {in_use} product(s)")

    log_action(unit, "DELETE", scope, before=serialize_model(unit))
    db.session.delete(unit)
    db.session.commit()
    _invalidate("units")

    return jsonify({"message": "Unit deleted successfully"})
