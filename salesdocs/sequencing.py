"""
salesdocs/sequencing.py

Per-tenant sequential reference numbers (QUO00007, PROFORMA0003, INV008).

The next number is derived from the highest existing number for the
tenant + kind. Two concurrent creations can derive the same number, so
allocation relies on the (owner, kind, reference_id) unique constraint:
the insert fails with DuplicateReferenceError, the scan is repeated and the
insert retried, up to a bounded number of attempts.

IMPORTANT:
- The reference format (prefix + zero-padded width) is an external contract.
  Do not change widths; PDF templates and customers rely on them.
- Malformed stored references are skipped with a warning, never fatal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol, TypeVar

from .errors import DuplicateReferenceError, ReferenceConflictError
from .kinds import DocumentKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_ALLOCATION_ATTEMPTS = 3


@dataclass(frozen=True)
class ReferenceFormat:
    prefix: str
    width: int
    start: int = 1

    def format(self, number: int) -> str:
        return f"{self.prefix}{str(number).zfill(self.width)}"


REFERENCE_FORMATS = {
    DocumentKind.QUOTATION: ReferenceFormat("QUO", 5),
    DocumentKind.PROFORMA_INVOICE: ReferenceFormat("PROFORMA", 4),
    DocumentKind.INVOICE: ReferenceFormat("INV", 3),
}


class DocumentStore(Protocol):
    """Storage collaborator used by the sequencer (see storage.py)."""

    def list_by_tenant_and_kind(self, scope, kind: DocumentKind) -> list: ...

    def find_max_reference_number(self, scope, kind: DocumentKind, prefix: str) -> int: ...

    def insert(self, document) -> None: ...


def parse_reference_number(reference: Optional[str], prefix: str) -> Optional[int]:
    """Return the numeric suffix of `reference`, or None if it is not prefix + digits."""
    if not reference or not reference.startswith(prefix):
        return None
    suffix = reference[len(prefix):]
    if not (suffix.isascii() and suffix.isdigit()):
        return None
    return int(suffix)


def highest_reference_number(references: Iterable[Optional[str]], prefix: str) -> int:
    """Max parsable suffix among `references` (0 when none parse)."""
    highest = 0
    for reference in references:
        number = parse_reference_number(reference, prefix)
        if number is None:
            logger.warning("Skipping malformed reference %r (expected prefix %s)", reference, prefix)
            continue
        if number > highest:
            highest = number
    return highest


def next_reference(store: DocumentStore, scope, kind: DocumentKind, start: Optional[int] = None) -> str:
    """
    Derive the next reference for `kind` within `scope`.

    Numbering begins at `start` (the kind's default when None); after that it
    is highest existing number + 1.
    """
    fmt = REFERENCE_FORMATS[DocumentKind(kind)]
    first = fmt.start if start is None else int(start)

    highest = store.find_max_reference_number(scope, kind, fmt.prefix)
    return fmt.format(max(highest + 1, first))


def allocate_reference(
    store: DocumentStore,
    scope,
    kind: DocumentKind,
    create: Callable[[str], T],
    attempts: int = DEFAULT_ALLOCATION_ATTEMPTS,
    start: Optional[int] = None,
) -> T:
    """
    Compute the next reference and pass it to `create`, which must insert the
    row and raise DuplicateReferenceError on a unique-constraint collision.

    Returns whatever `create` returns. Raises ReferenceConflictError once
    `attempts` collisions have happened.
    """
    attempts = max(1, int(attempts))
    last_reference = None

    for attempt in range(1, attempts + 1):
        reference = next_reference(store, scope, kind, start=start)
        try:
            return create(reference)
        except DuplicateReferenceError:
            last_reference = reference
            logger.warning(
                "Reference %s collided for %s (attempt %d/%d)", reference, scope, attempt, attempts
            )

    logger.error("Reference allocation for %s %s gave up after %d attempts", kind, scope, attempts)
    raise ReferenceConflictError(
        f"Could not allocate a unique reference (last tried {last_reference}); please retry."
    )
