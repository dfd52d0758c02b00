"""
Sales Documents – Domain Models

Includes:
- Tenant accounts: CompanyUser (organization) and IndividualUser (individual)
- Tenant-owned master data: Customer, Product, Unit, Expense
- SalesDocument (quotation | proforma_invoice | invoice) with ordered DocumentLine rows
- AuditLog

Ownership:
- Every tenant-owned row has company_user_id and individual_user_id.
  Exactly one is set (CHECK constraint); see tenancy.py.

Totals:
- SalesDocument.subtotal/discount/vat_amount/total_amount and
  DocumentLine.vat_value/amount are derived. They are only ever written by
  SalesDocument.recalc_totals(), which delegates to calculations.aggregate().

IMPORTANT:
- reference_id is assigned once at creation (sequencing.py) and never updated.
- (owner, kind, reference_id) is unique; the sequencer relies on it.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from flask_login import UserMixin
from sqlalchemy.orm import declared_attr
from werkzeug.security import generate_password_hash, check_password_hash

from .calculations import DEFAULT_VAT_PERCENT, LineItem, aggregate, to_decimal
from .extensions import db
from .kinds import DocumentKind


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _fmt_money(value) -> str:
    return f"{to_decimal(value):.2f}"


def _fmt_rate(value) -> str:
    # Quantities and percents: up to 4 decimals, at least 2 ("0.125", "15.00")
    whole, _, frac = f"{to_decimal(value):.4f}".partition(".")
    return f"{whole}.{frac.rstrip('0').ljust(2, '0')}"


def _fmt_date(value) -> str | None:
    return value.isoformat() if value else None


def _owner_check(table_name: str):
    return db.CheckConstraint(
        "(company_user_id IS NULL) <> (individual_user_id IS NULL)",
        name=f"ck_{table_name}_single_owner",
    )


class TenantOwnedMixin:
    """Ownership columns shared by every tenant-scoped table."""

    @declared_attr
    def company_user_id(cls):
        return db.Column(
            db.Integer,
            db.ForeignKey("company_users.id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        )

    @declared_attr
    def individual_user_id(cls):
        return db.Column(
            db.Integer,
            db.ForeignKey("individual_users.id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        )


# ---------------------------------------------------------------------
# Tenant accounts
# ---------------------------------------------------------------------
class AccountMixin(UserMixin):
    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(120))
    last_name = db.Column(db.String(120))

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Flask-Login id prefix; keeps the two account tables apart in one session.
    login_prefix = ""

    def get_id(self) -> str:
        return f"{self.login_prefix}:{self.id}"

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)


class CompanyUser(AccountMixin, db.Model):
    """Organization tenant account."""

    __tablename__ = "company_users"

    login_prefix = "company"
    is_organization = True

    company_name = db.Column(db.String(255), nullable=False)

    @property
    def display_name(self) -> str:
        return self.company_name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_type": "organization",
            "email": self.email,
            "company_name": self.company_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def __repr__(self):
        return f"<CompanyUser {self.email}>"


class IndividualUser(AccountMixin, db.Model):
    """Individual tenant account."""

    __tablename__ = "individual_users"

    login_prefix = "individual"
    is_organization = False

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or self.email

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_type": "individual",
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    def __repr__(self):
        return f"<IndividualUser {self.email}>"


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
class Customer(TenantOwnedMixin, db.Model):
    __tablename__ = "customers"

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(30), nullable=False)
    customer_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    account = db.Column(db.String(120), nullable=False, default="Accounts Receivables")
    vat_registration_number = db.Column(db.String(50))
    opening_balance = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    street_name = db.Column(db.String(255))
    city = db.Column(db.String(100))
    country = db.Column(db.String(100))
    postal_code = db.Column(db.String(20))

    status = db.Column(db.String(20), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("company_user_id", "code", name="uq_customer_company_code"),
        db.UniqueConstraint("individual_user_id", "code", name="uq_customer_individual_code"),
        _owner_check("customers"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "customer_name": self.customer_name,
            "email": self.email,
            "phone": self.phone,
            "account": self.account,
            "vat_registration_number": self.vat_registration_number,
            "opening_balance": _fmt_money(self.opening_balance),
            "street_name": self.street_name,
            "city": self.city,
            "country": self.country,
            "postal_code": self.postal_code,
            "status": self.status,
        }

    def __repr__(self):
        return f"<Customer {self.code} - {self.customer_name}>"


class Unit(TenantOwnedMixin, db.Model):
    __tablename__ = "units"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(80), nullable=False)
    symbol = db.Column(db.String(20), nullable=False)
    type = db.Column(db.String(40), nullable=False, default="Unit")
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        db.UniqueConstraint("company_user_id", "name", name="uq_unit_company_name"),
        db.UniqueConstraint("individual_user_id", "name", name="uq_unit_individual_name"),
        _owner_check("units"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "type": self.type,
            "description": self.description,
            "is_active": self.is_active,
        }


class Product(TenantOwnedMixin, db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    product_code = db.Column(db.String(30), nullable=False)
    name_english = db.Column(db.String(255), nullable=False)
    name_arabic = db.Column(db.String(255))
    category = db.Column(db.String(120), nullable=False, default="Default Category")
    description = db.Column(db.Text)
    # product, service, expense, recipe
    type = db.Column(db.String(20), nullable=False, default="product")

    quantity = db.Column(db.Integer, default=0)
    buying_price = db.Column(db.Numeric(12, 2), default=Decimal("0.00"))
    selling_price = db.Column(db.Numeric(12, 2), default=Decimal("0.00"))
    vat_percent = db.Column(db.Numeric(5, 2), nullable=False, default=DEFAULT_VAT_PERCENT)
    unit = db.Column(db.String(80), default="Box")
    barcode = db.Column(db.String(80))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("company_user_id", "product_code", name="uq_product_company_code"),
        db.UniqueConstraint("individual_user_id", "product_code", name="uq_product_individual_code"),
        _owner_check("products"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name_english": self.name_english,
            "name_arabic": self.name_arabic,
            "category": self.category,
            "description": self.description,
            "type": self.type,
            "quantity": self.quantity,
            "buying_price": _fmt_money(self.buying_price),
            "selling_price": _fmt_money(self.selling_price),
            "vat_percent": _fmt_money(self.vat_percent),
            "unit": self.unit,
            "barcode": self.barcode,
        }


class Expense(TenantOwnedMixin, db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)

    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    category = db.Column(db.String(120), nullable=False)
    expense_date = db.Column(db.Date, nullable=False, default=date.today, index=True)
    receipt_url = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (_owner_check("expenses"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "amount": _fmt_money(self.amount),
            "category": self.category,
            "date": _fmt_date(self.expense_date),
            "receipt_url": self.receipt_url,
        }

    def __repr__(self):
        return f"<Expense {self.category} {self.amount}>"


# ---------------------------------------------------------------------
# Sales documents
# ---------------------------------------------------------------------
class SalesDocument(TenantOwnedMixin, db.Model):
    """Quotation, proforma invoice or invoice; `kind` is the discriminant."""

    __tablename__ = "sales_documents"

    id = db.Column(db.Integer, primary_key=True)

    kind = db.Column(db.String(30), nullable=False, index=True)
    reference_id = db.Column(db.String(30), nullable=False, index=True)

    customer_id = db.Column(
        db.Integer,
        db.ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    description = db.Column(db.Text)
    issue_date = db.Column(db.Date, nullable=False, index=True)
    due_date = db.Column(db.Date, nullable=True, index=True)
    supply_date = db.Column(db.Date, nullable=True)
    payment_term = db.Column(db.String(80))
    cost_center = db.Column(db.String(120), nullable=False, default="Main Center")

    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    # Document-level inputs
    discount_percent = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("0.00"))
    vat_percent = db.Column(db.Numeric(7, 4), nullable=True)

    # Derived aggregates (recalc_totals only)
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    terms_and_conditions = db.Column(db.Text)
    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = db.relationship("Customer")

    lines = db.relationship(
        "DocumentLine",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="DocumentLine.line_no",
    )

    __table_args__ = (
        db.UniqueConstraint("company_user_id", "kind", "reference_id", name="uq_document_company_reference"),
        db.UniqueConstraint("individual_user_id", "kind", "reference_id", name="uq_document_individual_reference"),
        _owner_check("sales_documents"),
    )

    @property
    def document_kind(self) -> DocumentKind:
        return DocumentKind(self.kind)

    def recalc_totals(self, default_vat_percent=DEFAULT_VAT_PERCENT):
        """
        Recompute every derived field from the current lines.

        Lines get the clamped inputs actually used, plus the VAT rate applied,
        vat_value and amount. A line without its own VAT percent keeps
        vat_percent NULL, so a later document VAT change reaches it.
        Must run after any change to lines or document discount/VAT percent.
        """
        items = [
            LineItem(
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_percent=line.discount_percent,
                vat_percent=line.vat_percent,
            )
            for line in self.lines
        ]

        totals = aggregate(
            items,
            document_discount_percent=self.discount_percent,
            document_vat_percent=self.vat_percent,
            mode=self.document_kind.mode,
            default_vat_percent=default_vat_percent,
        )

        for line, result in zip(self.lines, totals.lines):
            line.quantity = result.quantity
            line.unit_price = result.unit_price
            line.discount_percent = result.discount_percent
            if line.vat_percent is not None:
                line.vat_percent = result.vat_percent
            line.applied_vat_percent = result.vat_percent
            line.vat_value = result.vat_value
            line.amount = result.amount

        self.subtotal = totals.subtotal
        self.discount = totals.discount
        self.vat_amount = totals.vat_amount
        self.total_amount = totals.total_amount
        return totals

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "kind": self.kind,
            "reference_id": self.reference_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.customer_name if self.customer else None,
            "description": self.description,
            "issue_date": _fmt_date(self.issue_date),
            "due_date": _fmt_date(self.due_date),
            "supply_date": _fmt_date(self.supply_date),
            "payment_term": self.payment_term,
            "cost_center": self.cost_center,
            "status": self.status,
            "discount_percent": _fmt_rate(self.discount_percent),
            "vat_percent": _fmt_rate(self.vat_percent) if self.vat_percent is not None else None,
            "subtotal": _fmt_money(self.subtotal),
            "discount": _fmt_money(self.discount),
            "vat_amount": _fmt_money(self.vat_amount),
            "total_amount": _fmt_money(self.total_amount),
            "terms_and_conditions": self.terms_and_conditions,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data

    def __repr__(self):
        return f"<SalesDocument {self.kind} {self.reference_id}>"


class DocumentLine(db.Model):
    __tablename__ = "document_lines"

    id = db.Column(db.Integer, primary_key=True)

    document_id = db.Column(
        db.Integer,
        db.ForeignKey("sales_documents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    line_no = db.Column(db.Integer, nullable=False, default=1)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    description = db.Column(db.Text)
    unit = db.Column(db.String(80))

    quantity = db.Column(db.Numeric(14, 4), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("0.00"))
    vat_percent = db.Column(db.Numeric(7, 4), nullable=True)

    # Derived (recalc_totals only)
    applied_vat_percent = db.Column(db.Numeric(7, 4), nullable=False, default=Decimal("0.00"))
    vat_value = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    document = db.relationship("SalesDocument", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "line_no": self.line_no,
            "product_id": self.product_id,
            "description": self.description,
            "unit": self.unit,
            "quantity": _fmt_rate(self.quantity),
            "unit_price": _fmt_money(self.unit_price),
            "discount_percent": _fmt_rate(self.discount_percent),
            "vat_percent": _fmt_rate(self.vat_percent) if self.vat_percent is not None else None,
            "applied_vat_percent": _fmt_rate(self.applied_vat_percent),
            "vat_value": _fmt_money(self.vat_value),
            "amount": _fmt_money(self.amount),
        }


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Who changed which tenant record, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    # Plain integers: audit rows outlive deleted accounts.
    company_user_id = db.Column(db.Integer, nullable=True, index=True)
    individual_user_id = db.Column(db.Integer, nullable=True, index=True)
    actor_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
