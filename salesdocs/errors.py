"""
salesdocs/errors.py

Exception hierarchy for the sales documents service.

Every error carries the HTTP status it maps to. The app factory registers a
single handler for SalesDocsError that renders:

    {"message": "...", "errors": {...}, "retryable": bool}

IMPORTANT:
- Errors are raised where the problem is detected and handled once, in the
  app factory. Routes do not catch them.
"""

from __future__ import annotations

from typing import Dict, Optional


class SalesDocsError(Exception):
    """Base class for all domain errors."""

    http_status = 500
    retryable = False

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = dict(errors or {})

    def to_dict(self) -> dict:
        payload = {"message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        if self.retryable:
            payload["retryable"] = True
        return payload


class ValidationError(SalesDocsError):
    """Field-level input errors, keyed by field path (e.g. items[0].quantity)."""

    http_status = 400

    def __init__(self, errors: Dict[str, str], message: str = "Validation failed"):
        super().__init__(message, errors)


class InvalidAmountError(SalesDocsError, ValueError):
    """A monetary input or result is not a finite number."""

    http_status = 400


class UnauthenticatedError(SalesDocsError):
    """No organization or individual identity in the session."""

    http_status = 401


class NotFoundError(SalesDocsError):
    """Record does not exist within the caller's tenant scope."""

    http_status = 404


class ConflictError(SalesDocsError):
    """Request conflicts with the current state of a record."""

    http_status = 409


class ReferenceConflictError(ConflictError):
    """Reference allocation kept colliding; the client may retry."""

    retryable = True


class DuplicateReferenceError(SalesDocsError):
    """
    Insert hit the (owner, kind, reference_id) unique constraint.

    Internal: the sequencer catches it and retries with a fresh scan.
    """

    http_status = 409

    def __init__(self, reference_id: str):
        super().__init__(f"Reference {reference_id} already exists")
        self.reference_id = reference_id
