"""
salesdocs/storage.py

SQLAlchemy-backed storage collaborator for sales documents.

Provides the narrow interface the sequencer needs (see sequencing.DocumentStore)
plus the scoped lookups the routes use. Every query goes through the tenant
scope predicate; there is no unscoped getter.

IMPORTANT:
- insert() flushes; the caller commits (together with the audit entry).
  A unique-constraint violation on (owner, kind, reference_id)
  rolls the session back and raises DuplicateReferenceError, which
  sequencing.allocate_reference() turns into a retry.
- Other IntegrityErrors are re-raised unchanged.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from .errors import DuplicateReferenceError, NotFoundError
from .extensions import db
from .kinds import DocumentKind
from .models import SalesDocument
from .sequencing import highest_reference_number
from .tenancy import TenantScope

_REFERENCE_CONSTRAINTS = ("uq_document_company_reference", "uq_document_individual_reference")


def _is_reference_collision(exc: IntegrityError) -> bool:
    message = str(exc.orig).lower()
    if any(name in message for name in _REFERENCE_CONSTRAINTS):
        return True
    # SQLite reports the columns, not the constraint name.
    return "unique" in message and "reference_id" in message


class SqlAlchemyDocumentStore:
    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # -----------------------------------------------------------------
    # Queries
    # -----------------------------------------------------------------
    def scoped_query(self, scope: TenantScope, kind: DocumentKind):
        return SalesDocument.query.filter(
            scope.filter(SalesDocument),
            SalesDocument.kind == DocumentKind(kind).value,
        )

    def list_by_tenant_and_kind(self, scope: TenantScope, kind: DocumentKind) -> list:
        return (
            self.scoped_query(scope, kind)
            .options(joinedload(SalesDocument.customer), selectinload(SalesDocument.lines))
            .order_by(SalesDocument.created_at.desc(), SalesDocument.id.desc())
            .all()
        )

    def get(self, scope: TenantScope, kind: DocumentKind, document_id: int) -> SalesDocument:
        document = self.scoped_query(scope, kind).filter(SalesDocument.id == document_id).first()
        if document is None:
            raise NotFoundError(f"{DocumentKind(kind).label} not found")
        return document

    def find_max_reference_number(self, scope: TenantScope, kind: DocumentKind, prefix: str) -> int:
        """Scan every reference of the tenant + kind and return the highest number."""
        rows = (
            self.session.query(SalesDocument.reference_id)
            .filter(
                scope.filter(SalesDocument),
                SalesDocument.kind == DocumentKind(kind).value,
            )
            .all()
        )
        return highest_reference_number((row[0] for row in rows), prefix)

    # -----------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------
    def insert(self, document: SalesDocument) -> SalesDocument:
        self.session.add(document)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            if _is_reference_collision(exc):
                raise DuplicateReferenceError(document.reference_id) from exc
            raise
        return document

    def delete(self, document: SalesDocument) -> None:
        self.session.delete(document)
