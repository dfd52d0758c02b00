"""
salesdocs/blueprints/expenses/routes.py

Expense routes (JSON API): list, create, delete per tenant.

Expenses feed the dashboard's monthly_expenses figure (services.financial_stats).
The list is cached like the master data lists and invalidated on every write.
"""

from __future__ import annotations

from typing import Dict

from flask import Blueprint, jsonify
from flask_login import login_required

from ...audit import log_action, serialize_model
from ...errors import NotFoundError, ValidationError
from ...extensions import db, get_list_cache
from ...models import Expense
from ...tenancy import current_scope, stamp_scope, tenant_required
from ...utils import clean_text, decimal_places, parse_date, parse_decimal, request_payload

expenses_bp = Blueprint("expenses", __name__, url_prefix="/api")


def _apply_expense_payload(expense: Expense, payload: dict) -> None:
    errors: Dict[str, str] = {}

    for field in ("description", "category"):
        value = clean_text(payload.get(field))
        if not value:
            errors[field] = "is required"
        setattr(expense, field, value)

    try:
        amount = parse_decimal(payload.get("amount"))
    except ValueError as exc:
        errors["amount"] = str(exc)
    else:
        if amount is None:
            errors["amount"] = "is required"
        elif amount < 0:
            errors["amount"] = "must be >= 0"
        elif decimal_places(amount) > 2:
            errors["amount"] = "at most 2 decimal places"
        else:
            expense.amount = amount

    try:
        expense_date = parse_date(payload.get("date"))
    except ValueError as exc:
        errors["date"] = str(exc)
    else:
        if expense_date is not None:
            expense.expense_date = expense_date

    expense.receipt_url = clean_text(payload.get("receipt_url"))

    if errors:
        raise ValidationError(errors)


@expenses_bp.route("/expenses")
@login_required
@tenant_required
def list_expenses():
    scope = current_scope()

    def load():
        expenses = (
            Expense.query.filter(scope.filter(Expense))
            .order_by(Expense.expense_date.desc(), Expense.id.desc())
            .all()
        )
        return [e.to_dict() for e in expenses]

    return jsonify(get_list_cache().get_or_load(("expenses", scope), load))


@expenses_bp.route("/expenses", methods=["POST"])
@login_required
@tenant_required
def create_expense():
    scope = current_scope()

    expense = Expense()
    stamp_scope(expense, scope)
    _apply_expense_payload(expense, request_payload())

    db.session.add(expense)
    db.session.flush()
    log_action(expense, "CREATE", scope, after=serialize_model(expense))
    db.session.commit()
    get_list_cache().invalidate(("expenses", scope))

    return jsonify(expense.to_dict()), 201


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@login_required
@tenant_required
def delete_expense(expense_id: int):
    scope = current_scope()
    expense = Expense.query.filter(scope.filter(Expense), Expense.id == expense_id).first()
    if expense is None:
        raise NotFoundError("Expense not found")

    log_action(expense, "DELETE", scope, before=serialize_model(expense))
    db.session.delete(expense)
    db.session.commit()
    get_list_cache().invalidate(("expenses", scope))

    return jsonify({"message": "Expense deleted successfully"})
