"""Project document storage and cost-memory lookup."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from ..models import IMPORT_DEFAULT_CATEGORY, IMPORT_DEFAULT_UNIT, CostRecord, ProjectDocument
from ..observability.privacy import describe_document
from ..recalculation import recalculate
from ..schemas import document_from_dict, document_to_dict
from ..settings import DEFAULT_SEARCH_LIMIT
from ..tree_index import build_tree_index
from .models import CostMemoryEntry, ProjectRecord

logger = logging.getLogger(__name__)


class ProjectRepository:
    """Thin repository that encapsulates persistence operations."""

    def __init__(self, db: Session, *, search_limit: int = DEFAULT_SEARCH_LIMIT):
        self._db = db
        self._search_limit = search_limit

    def save(self, document_id: str, document: ProjectDocument, *, name: str | None = None) -> ProjectRecord:
        """
        Store a document and re-index its leaf costs in one transaction.

        The lines are recalculated before storage so the stored document and
        the cost index always carry derived totals.
        """
        document = replace(document, lines=tuple(recalculate(document.lines)))
        payload = document_to_dict(document)

        record = self._db.get(ProjectRecord, document_id)
        if record is None:
            record = ProjectRecord(id=document_id)
        record.name = name or record.name or document.meta.donor or document_id
        record.donor = document.meta.donor or None
        record.currency = document.meta.currency or None
        record.data_json = payload
        self._db.add(record)

        self._db.execute(delete(CostMemoryEntry).where(CostMemoryEntry.source_project_id == document_id))
        indexed = self._index_costs(document_id, document)

        self._db.commit()
        self._db.refresh(record)
        logger.info(
            {
                "event": "project_saved",
                "project_id": document_id,
                "indexed_costs": indexed,
                **describe_document(payload),
            }
        )
        return record

    def load(self, document_id: str) -> ProjectDocument | None:
        record = self._db.get(ProjectRecord, document_id)
        if record is None:
            return None
        return document_from_dict(record.data_json)

    def get_record(self, document_id: str) -> ProjectRecord | None:
        return self._db.get(ProjectRecord, document_id)

    def delete(self, document_id: str) -> bool:
        record = self._db.get(ProjectRecord, document_id)
        if record is None:
            return False
        self._db.delete(record)
        self._db.commit()
        logger.info({"event": "project_deleted", "project_id": document_id})
        return True

    def list_projects(self) -> list[ProjectRecord]:
        statement = select(ProjectRecord).order_by(ProjectRecord.updated_at.desc(), ProjectRecord.id)
        return list(self._db.scalars(statement))

    def search_costs(self, text: str, limit: int | None = None) -> list[CostRecord]:
        """Case-insensitive substring search over description and category, newest year first."""
        query = (text or "").strip()
        if not query:
            return []

        pattern = f"%{query}%"
        statement = (
            select(CostMemoryEntry)
            .where(or_(CostMemoryEntry.description.ilike(pattern), CostMemoryEntry.category.ilike(pattern)))
            .order_by(CostMemoryEntry.year.desc(), CostMemoryEntry.id.desc())
            .limit(limit or self._search_limit)
        )
        return [
            CostRecord(
                description=entry.description,
                category=entry.category,
                unit=entry.unit,
                unit_cost=entry.unit_cost,
                currency=entry.currency or "",
                year=entry.year,
                donor=entry.donor or "",
                sector=entry.sector or "",
            )
            for entry in self._db.scalars(statement)
        ]

    def search(self, text: str) -> list[CostRecord]:
        return self.search_costs(text)

    def _index_costs(self, document_id: str, document: ProjectDocument) -> int:
        index = build_tree_index(document.lines)
        year = datetime.now(timezone.utc).year
        indexed = 0
        for line in document.lines:
            if not line.description.strip() or line.unit_cost <= 0 or index.has_children(line.id):
                continue
            self._db.add(
                CostMemoryEntry(
                    description=line.description.strip(),
                    category=line.category or IMPORT_DEFAULT_CATEGORY,
                    unit=line.unit or IMPORT_DEFAULT_UNIT,
                    unit_cost=line.unit_cost,
                    currency=document.meta.currency or None,
                    year=year,
                    sector=document.meta.sector or None,
                    donor=document.meta.donor or None,
                    source_project_id=document_id,
                )
            )
            indexed += 1
        return indexed
