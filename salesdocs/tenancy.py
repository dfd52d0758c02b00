"""
salesdocs/tenancy.py

Tenant isolation helpers.

Every document, customer, product and unit belongs to exactly one tenant:
- an organization account (CompanyUser)  -> company_user_id column
- an individual account (IndividualUser) -> individual_user_id column

Key rules:
- The scope is resolved once per request from the session and stored on flask.g.
- No default tenant exists. A missing identity is an UnauthenticatedError.
- Every create stamps the owning column and leaves the other one NULL.
- Every read/list/update/delete filters by the owning column. A record of
  another tenant is reported as "not found", never as "forbidden".

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint
  collisions. We use functools.wraps everywhere.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Mapping

from flask import g, session

from .errors import UnauthenticatedError

logger = logging.getLogger(__name__)

SESSION_ORGANIZATION_KEY = "company_user_id"
SESSION_INDIVIDUAL_KEY = "individual_user_id"

ORGANIZATION_COLUMN = "company_user_id"
INDIVIDUAL_COLUMN = "individual_user_id"


@dataclass(frozen=True)
class TenantScope:
    tenant_id: int
    is_organization: bool

    @property
    def owner_column(self) -> str:
        return ORGANIZATION_COLUMN if self.is_organization else INDIVIDUAL_COLUMN

    @property
    def other_column(self) -> str:
        return INDIVIDUAL_COLUMN if self.is_organization else ORGANIZATION_COLUMN

    def filter(self, model):
        return scope_filter(model, self.is_organization, self.tenant_id)

    def __str__(self) -> str:
        return f"{'organization' if self.is_organization else 'individual'}:{self.tenant_id}"


def _session_id(value: Any):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def resolve_scope(session_data: Mapping[str, Any]) -> TenantScope:
    """
    Resolve the tenant scope from a session mapping.

    The organization identity wins if both keys are somehow present; the
    login route always clears the other key.
    """
    company_user_id = _session_id(session_data.get(SESSION_ORGANIZATION_KEY))
    if company_user_id is not None:
        return TenantScope(tenant_id=company_user_id, is_organization=True)

    individual_user_id = _session_id(session_data.get(SESSION_INDIVIDUAL_KEY))
    if individual_user_id is not None:
        return TenantScope(tenant_id=individual_user_id, is_organization=False)

    raise UnauthenticatedError("Authentication required")


def scope_filter(model, is_organization: bool, tenant_id: int):
    """SQLAlchemy predicate restricting `model` rows to one tenant."""
    column = ORGANIZATION_COLUMN if is_organization else INDIVIDUAL_COLUMN
    return getattr(model, column) == tenant_id


def stamp_scope(instance, scope: TenantScope) -> None:
    """Set the owning column of a new row and clear the other one."""
    setattr(instance, scope.owner_column, scope.tenant_id)
    setattr(instance, scope.other_column, None)


def belongs_to(instance, scope: TenantScope) -> bool:
    return (
        getattr(instance, scope.owner_column, None) == scope.tenant_id
        and getattr(instance, scope.other_column, None) is None
    )


def current_scope() -> TenantScope:
    """Scope resolved for the current request (tenant_required must have run)."""
    scope = g.get("tenant_scope")
    if scope is None:
        scope = resolve_scope(session)
        g.tenant_scope = scope
    return scope


def tenant_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: resolve the tenant scope or fail the request with 401."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            g.tenant_scope = resolve_scope(session)
        except UnauthenticatedError:
            logger.info("Rejected request without tenant identity")
            raise
        return view_func(*args, **kwargs)

    return wrapper
