from __future__ import annotations

"""
Interfaces for the collaborators surrounding the calculation engine.

The engine never performs I/O; the editor and the HTTP service depend on these
protocols so the SQL-backed repository can be swapped for any other store or
lookup service.
"""

from typing import Optional, Protocol, Sequence, runtime_checkable

from .models import CostRecord, ProjectDocument


@runtime_checkable
class CostLookup(Protocol):
    """Returns candidate cost records for a free-text query."""

    def search(self, text: str) -> Sequence[CostRecord]:
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """
    Saves and loads project documents by opaque identifier.

    Implementations receive documents whose lines are already recalculated and
    may index leaf costs from them without recomputing anything.
    """

    def save(self, document_id: str, document: ProjectDocument, *, name: Optional[str] = None) -> None:
        ...

    def load(self, document_id: str) -> Optional[ProjectDocument]:
        ...
