"""
Authentication Routes

Provides:
- POST /auth/register    (organization or individual tenant account)
- POST /auth/login
- POST /auth/logout
- GET  /auth/me
- GET  /auth/csrf-token

Rules:
- Two account types: CompanyUser (organization) and IndividualUser (individual).
- Login stores exactly one tenant key in the session (see tenancy.py) and
  removes the other, so a session never carries two identities.
- Only active accounts may log in.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy.exc import IntegrityError

from ...errors import ConflictError, UnauthenticatedError, ValidationError
from ...extensions import db
from ...models import CompanyUser, IndividualUser
from ...seed import seed_default_units
from ...tenancy import SESSION_INDIVIDUAL_KEY, SESSION_ORGANIZATION_KEY, resolve_scope
from ...utils import clean_text, request_payload

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

ACCOUNT_TYPES = {
    "organization": CompanyUser,
    "individual": IndividualUser,
}

MIN_PASSWORD_LENGTH = 6


def _start_tenant_session(account) -> None:
    """Log the account in and store its tenant key (clearing the other one)."""
    login_user(account)
    if account.is_organization:
        session[SESSION_ORGANIZATION_KEY] = account.id
        session.pop(SESSION_INDIVIDUAL_KEY, None)
    else:
        session[SESSION_INDIVIDUAL_KEY] = account.id
        session.pop(SESSION_ORGANIZATION_KEY, None)


def _end_tenant_session() -> None:
    logout_user()
    session.pop(SESSION_ORGANIZATION_KEY, None)
    session.pop(SESSION_INDIVIDUAL_KEY, None)


def _account_model(raw_type: str | None):
    account_type = (raw_type or "").strip().lower()
    model = ACCOUNT_TYPES.get(account_type)
    if model is None:
        raise ValidationError({"account_type": "must be 'organization' or 'individual'"})
    return model


# ============================================================
# REGISTER
# ============================================================

@auth_bp.route("/register", methods=["POST"])
def register():
    """Create a tenant account, seed its default units and log it in."""
    payload = request_payload()
    model = _account_model(payload.get("account_type"))

    errors = {}
    email = (clean_text(payload.get("email")) or "").lower()
    password = payload.get("password") or ""
    company_name = clean_text(payload.get("company_name"))

    if not email or "@" not in email:
        errors["email"] = "a valid email is required"
    if len(password) < MIN_PASSWORD_LENGTH:
        errors["password"] = f"at least {MIN_PASSWORD_LENGTH} characters"
    if model is CompanyUser and not company_name:
        errors["company_name"] = "is required"
    if errors:
        raise ValidationError(errors)

    account = model(
        email=email,
        first_name=clean_text(payload.get("first_name")),
        last_name=clean_text(payload.get("last_name")),
        is_active=True,
    )
    if model is CompanyUser:
        account.company_name = company_name
    account.set_password(password)

    db.session.add(account)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("An account with this email already exists")

    _start_tenant_session(account)
    seed_default_units(resolve_scope(session))
    db.session.commit()

    logger.info("Registered %s account %s", payload.get("account_type"), email)
    return jsonify(account.to_dict()), 201


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate an account.

    account_type is optional; without it the organization table is tried
    first, then the individual one.
    """
    payload = request_payload()
    email = (clean_text(payload.get("email")) or "").lower()
    password = payload.get("password") or ""

    if payload.get("account_type"):
        models = [_account_model(payload.get("account_type"))]
    else:
        models = [CompanyUser, IndividualUser]

    account = None
    for model in models:
        candidate = model.query.filter_by(email=email).first()
        if candidate and candidate.check_password(password):
            account = candidate
            break

    if account is None:
        raise UnauthenticatedError("Invalid credentials")
    if not account.is_active:
        raise UnauthenticatedError("Account is inactive")

    _start_tenant_session(account)
    return jsonify(account.to_dict())


# ============================================================
# LOGOUT / ME / CSRF
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out and drop the tenant identity."""
    _end_tenant_session()
    return jsonify({"message": "Logged out"})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.route("/csrf-token")
def csrf_token():
    """Token for the X-CSRFToken header on mutating requests."""
    return jsonify({"csrf_token": generate_csrf()})
