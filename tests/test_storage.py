from __future__ import annotations

import pytest

from salesdocs.errors import ReferenceConflictError
from salesdocs.extensions import db
from salesdocs.kinds import DocumentKind
from salesdocs.models import CompanyUser, SalesDocument
from salesdocs.services import create_document
from salesdocs.storage import SqlAlchemyDocumentStore
from salesdocs.tenancy import TenantScope
from salesdocs.validation import parse_document_payload

from .conftest import PASSWORD


class StaleScanStore(SqlAlchemyDocumentStore):
    """Reports an empty table for the first `stale_scans` scans, like a concurrent writer got there first."""

    def __init__(self, stale_scans: int):
        super().__init__()
        self.stale_scans = stale_scans
        self.scans = 0

    def find_max_reference_number(self, scope, kind, prefix):
        self.scans += 1
        if self.scans <= self.stale_scans:
            return 0
        return super().find_max_reference_number(scope, kind, prefix)


def _payload() -> dict:
    return parse_document_payload({"items": [{"quantity": 1, "unit_price": 10}]}, DocumentKind.QUOTATION)


def _company_scope() -> TenantScope:
    user = CompanyUser(email="store@acme.test", company_name="Acme")
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return TenantScope(user.id, True)


def test_unique_violation_is_retried_with_a_fresh_scan(app) -> None:
    with app.app_context():
        scope = _company_scope()
        first = create_document(scope, DocumentKind.QUOTATION, _payload())
        assert first.reference_id == "QUO00001"

        store = StaleScanStore(stale_scans=1)
        second = create_document(scope, DocumentKind.QUOTATION, _payload(), store=store)

        assert second.reference_id == "QUO00002"
        assert store.scans == 2
        references = sorted(d.reference_id for d in SalesDocument.query.all())
        assert references == ["QUO00001", "QUO00002"]


def test_persistent_collisions_give_a_retryable_conflict(app) -> None:
    with app.app_context():
        scope = _company_scope()
        create_document(scope, DocumentKind.QUOTATION, _payload())

        store = StaleScanStore(stale_scans=100)
        with pytest.raises(ReferenceConflictError) as excinfo:
            create_document(scope, DocumentKind.QUOTATION, _payload(), store=store)

        assert excinfo.value.retryable is True
        assert excinfo.value.http_status == 409
        assert store.scans == app.config["REFERENCE_ALLOCATION_ATTEMPTS"]
        assert SalesDocument.query.count() == 1
