"""
salesdocs/audit.py

Audit trail for tenant records (documents, customers, products, units).

Each entry records:
- the acting account (email snapshot, kept even if the account is removed)
- the owning tenant, in the same ownership column the record uses
- the action and JSON snapshots of the row before/after the change
- the client IP

IMPORTANT:
- log_action() only adds the entry to db.session. The caller commits it
  together with the change, so an entry never exists without its change.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog
from .tenancy import TenantScope


def _safe_str(value: Any) -> Optional[str]:
    # Decimal, date and datetime all have a lossless str()
    if value is None:
        return None
    return str(value)


def _column_snapshot(instance: Any) -> Dict[str, Optional[str]]:
    return {column.name: _safe_str(getattr(instance, column.name)) for column in instance.__table__.columns}


def serialize_model(instance: Any) -> Dict[str, Any]:
    """
    Snapshot a model row as {column: str}.

    Relationships are skipped, except document lines: they are listed under
    "lines" with their derived vat_value/amount.
    """
    data: Dict[str, Any] = _column_snapshot(instance)

    lines = getattr(instance, "lines", None)
    if lines is not None:
        data["lines"] = [_column_snapshot(line) for line in lines]
    return data


def log_action(
    entity: Any,
    action: str,
    scope: TenantScope,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Stage one audit entry for `entity` (which must already have an id).

    action is CREATE, UPDATE or DELETE. The IP is request.remote_addr; run
    behind ProxyFix when a reverse proxy sits in front of the app.
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError(f"Cannot audit unsaved {entity.__class__.__name__}; flush it first")

    in_request = has_request_context()
    actor = current_user.email if in_request and current_user.is_authenticated else None

    entry = AuditLog(
        actor_snapshot=actor,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action).upper(),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if in_request else None,
    )
    setattr(entry, scope.owner_column, scope.tenant_id)
    db.session.add(entry)
    return entry
