"""
salesdocs/seed.py

Seed default units of measure for tenant accounts.

Rules:
- Safe to run multiple times (idempotent per tenant and unit name).
- Runs on registration for the new tenant, and for every account via the
  `seed-units` CLI command.
- Does not commit; the caller controls the transaction.
"""

from __future__ import annotations

from .extensions import db
from .models import CompanyUser, IndividualUser, Unit
from .tenancy import TenantScope, stamp_scope


DEFAULT_UNITS = [
    # name, symbol, type
    ("Piece", "pc", "Unit"),
    ("Box", "box", "Unit"),
    ("Kilogram", "kg", "Weight"),
    ("Liter", "l", "Volume"),
    ("Meter", "m", "Length"),
    ("Hour", "hr", "Time"),
]


def seed_default_units(scope: TenantScope) -> int:
    """Add missing default units for one tenant. Returns the number added."""
    existing = {
        row[0]
        for row in db.session.query(Unit.name).filter(scope.filter(Unit)).all()
    }

    added = 0
    for name, symbol, unit_type in DEFAULT_UNITS:
        if name in existing:
            continue
        unit = Unit(name=name, symbol=symbol, type=unit_type, is_active=True)
        stamp_scope(unit, scope)
        db.session.add(unit)
        added += 1
    return added


def seed_units_for_all_accounts() -> int:
    added = 0
    for account in CompanyUser.query.order_by(CompanyUser.id.asc()).all():
        added += seed_default_units(TenantScope(tenant_id=account.id, is_organization=True))
    for account in IndividualUser.query.order_by(IndividualUser.id.asc()).all():
        added += seed_default_units(TenantScope(tenant_id=account.id, is_organization=False))
    db.session.commit()
    return added
