"""
Budget Engine Service exposes the calculation engine over HTTP.

Clients post whole project documents (the `{meta, sections, lines}` shape the
editor persists) and get them back recalculated, summarized or filtered.
Projects can be stored, listed, exported to Excel and mined for historical
unit costs.
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from .aggregation import format_amount, summarize_budget
from .editor import BudgetEditor
from .errors import (
    BudgetEngineError,
    CycleError,
    FieldNotEditableError,
    LockedFieldError,
    StructureError,
)
from .export import export_filename, export_workbook
from .models import ImportCandidate
from .mutations import import_candidates
from .observability.privacy import describe_document
from .observability.telemetry import CORRELATION_ID_HEADER, request_context, setup_telemetry
from .persistence.database import get_session, init_db
from .persistence.repository import ProjectRepository
from .recalculation import recalculate
from .schemas import ProjectDocumentPayload, document_to_dict
from .settings import EngineSettings, load_engine_settings
from .visibility import visible_line_ids

logger = logging.getLogger(__name__)

SERVICE_NAME = "budget-engine-service"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_ERROR_CODES = {
    CycleError: "parent_cycle",
    StructureError: "invalid_structure",
    LockedFieldError: "field_locked",
    FieldNotEditableError: "field_not_editable",
}

app = FastAPI(title="Budget Engine Service")
setup_telemetry(app, service_name=SERVICE_NAME)


class FilterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: ProjectDocumentPayload
    filter_text: str = Field(default="", alias="filter")


class ImportCandidatePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str
    category: Optional[str] = None
    unit: Optional[str] = None
    quantity: Optional[float] = None
    unit_cost: Optional[float] = Field(default=None, alias="unitCost")
    notes: Optional[str] = None

    def to_dataclass(self) -> ImportCandidate:
        return ImportCandidate(**self.model_dump())


class ImportRequest(BaseModel):
    document: ProjectDocumentPayload = Field(default_factory=ProjectDocumentPayload)
    candidates: List[ImportCandidatePayload] = Field(default_factory=list)


class MutationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: ProjectDocumentPayload
    operation: Literal["add_line", "edit", "delete", "duplicate", "move", "set_parent", "paste"]
    line_id: Optional[str] = Field(default=None, alias="lineId")
    section_id: Optional[str] = Field(default=None, alias="sectionId")
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    field_name: Optional[str] = Field(default=None, alias="field")
    value: Any = None
    text: str = ""


class SectionSummaryModel(BaseModel):
    section_id: str
    name: str
    subtotal: float
    subtotal_label: str
    share: float
    share_label: str
    cap_type: str
    cap_limit: Optional[float] = None
    over_cap: bool


class SummaryResponseModel(BaseModel):
    grand_total: float
    grand_total_label: str
    currency: str
    sections: List[SectionSummaryModel]


class CostRecordModel(BaseModel):
    description: str
    category: str
    unit: str
    unit_cost: float
    currency: str
    year: Optional[int] = None
    donor: str
    sector: str


class ProjectListItem(BaseModel):
    id: str
    name: str
    donor: Optional[str] = None
    currency: Optional[str] = None
    updated_at: Optional[str] = None


def error_response(status_code: int, error_code: str, details: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error_code, "details": details},
    )


def get_settings() -> EngineSettings:
    """FastAPI dependency returning the environment-driven engine settings."""
    return load_engine_settings()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    with request_context(request) as request_id:
        response = await call_next(request)
        response.headers.setdefault(CORRELATION_ID_HEADER, request_id)
        return response


@app.exception_handler(BudgetEngineError)
async def budget_engine_error_handler(request: Request, exc: BudgetEngineError) -> JSONResponse:
    error_code = next((code for kind, code in _ERROR_CODES.items() if isinstance(exc, kind)), "budget_engine_error")
    logger.warning(
        {
            "event": "budget_engine_error",
            "request_id": getattr(request.state, "request_id", None),
            "path": request.url.path,
            "error": error_code,
        }
    )
    return error_response(400, error_code, str(exc))


@app.on_event("startup")
def on_startup() -> None:
    """Initialize persistence before serving requests."""
    init_db()


@app.get("/health")
def health_check() -> dict:
    """Reports service uptime so orchestrators can confirm the engine is available."""
    return {"status": "ok", "service": SERVICE_NAME}


@app.post("/recalculate")
def recalculate_document(payload: ProjectDocumentPayload) -> Dict[str, Any]:
    """
    Recalculate every total in the posted document.
    Returns the same document shape with derived unit costs and totals filled in.
    """
    document = payload.to_dataclass()
    lines = recalculate(document.lines)
    return document_to_dict(replace(document, lines=tuple(lines)))


@app.post("/summary", response_model=SummaryResponseModel)
def summarize_document(payload: ProjectDocumentPayload) -> SummaryResponseModel:
    """
    Compute the grand total and per-section subtotal, share and cap status.
    The posted lines are recalculated first, so stale totals never leak into the summary.
    """
    document = payload.to_dataclass()
    summary = summarize_budget(recalculate(document.lines), document.sections)
    return SummaryResponseModel(
        grand_total=summary.grand_total,
        grand_total_label=format_amount(summary.grand_total),
        currency=document.meta.currency,
        sections=[
            SectionSummaryModel(
                section_id=item.section_id,
                name=item.name,
                subtotal=item.subtotal,
                subtotal_label=format_amount(item.subtotal),
                share=item.share,
                share_label=item.share_label,
                cap_type=item.cap_type,
                cap_limit=item.cap_limit,
                over_cap=item.over_cap,
            )
            for item in summary.sections
        ],
    )


@app.post("/filter")
def filter_document(payload: FilterRequest) -> Dict[str, Any]:
    """Return the ids of lines visible under a description/category filter, in document order."""
    document = payload.document.to_dataclass()
    visible = visible_line_ids(document.lines, payload.filter_text)
    return {"visible_ids": [line.id for line in document.lines if line.id in visible]}


@app.post("/import")
def import_into_document(payload: ImportRequest) -> Dict[str, Any]:
    """
    Append candidate rows to a document as top-level lines grouped by category.
    Returns the recalculated document plus the number of lines added.
    """
    document = payload.document.to_dataclass()
    sections, lines = import_candidates(
        document.sections,
        document.lines,
        [candidate.to_dataclass() for candidate in payload.candidates],
    )
    result = replace(document, sections=tuple(sections), lines=tuple(recalculate(lines)))
    added = len(result.lines) - len(document.lines)
    logger.info({"event": "candidates_imported", "added": added, **describe_document(document_to_dict(result))})
    return {"added": added, "document": document_to_dict(result)}


@app.post("/mutate")
def mutate_document(payload: MutationRequest, settings: EngineSettings = Depends(get_settings)) -> Dict[str, Any]:
    """
    Apply one editing operation to the posted document and return it recalculated.
    Contract violations (cycles, locked unit costs, excess nesting) come back as 400 errors.
    """
    editor = BudgetEditor(payload.document.to_dataclass(), settings=settings)
    created_id = _apply_mutation(editor, payload)
    logger.info({"event": "document_mutated", "operation": payload.operation, "line_id": payload.line_id})
    return {
        "document": document_to_dict(editor.to_document()),
        "active_row_id": editor.active_row_id,
        "created_id": created_id,
    }


@app.get("/projects", response_model=List[ProjectListItem])
def list_projects(db: Session = Depends(get_session)) -> List[ProjectListItem]:
    repo = ProjectRepository(db)
    return [
        ProjectListItem(
            id=record.id,
            name=record.name,
            donor=record.donor,
            currency=record.currency,
            updated_at=record.updated_at.isoformat() if record.updated_at else None,
        )
        for record in repo.list_projects()
    ]


@app.get("/projects/{project_id}", response_model=None)
def get_project(project_id: str, db: Session = Depends(get_session)) -> Dict[str, Any] | JSONResponse:
    document = ProjectRepository(db).load(project_id)
    if document is None:
        return error_response(404, "project_not_found", "Project not found.")
    return document_to_dict(document)


@app.put("/projects/{project_id}")
def save_project(
    project_id: str,
    payload: ProjectDocumentPayload,
    name: Optional[str] = None,
    db: Session = Depends(get_session),
) -> Dict[str, Any]:
    """
    Store a project document (recalculated before storage) and re-index its leaf costs.
    Returns the stored document.
    """
    repo = ProjectRepository(db)
    record = repo.save(project_id, payload.to_dataclass(), name=name)
    return {"id": record.id, "name": record.name, "document": record.data_json}


@app.delete("/projects/{project_id}", response_model=None)
def delete_project(project_id: str, db: Session = Depends(get_session)) -> Dict[str, Any] | JSONResponse:
    if not ProjectRepository(db).delete(project_id):
        return error_response(404, "project_not_found", "Project not found.")
    return {"id": project_id, "deleted": True}


@app.get("/projects/{project_id}/export", response_model=None)
def export_project(project_id: str, db: Session = Depends(get_session)) -> Response:
    document = ProjectRepository(db).load(project_id)
    if document is None:
        return error_response(404, "project_not_found", "Project not found.")
    filename = export_filename(document.meta)
    return Response(
        content=export_workbook(document),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/costs/search", response_model=List[CostRecordModel])
def search_costs(
    q: str = Query(default=""),
    limit: Optional[int] = Query(default=None, ge=1),
    db: Session = Depends(get_session),
    settings: EngineSettings = Depends(get_settings),
) -> List[CostRecordModel]:
    """Look up historical unit costs whose description or category contains `q`."""
    repo = ProjectRepository(db, search_limit=settings.search_limit)
    return [
        CostRecordModel(
            description=record.description,
            category=record.category,
            unit=record.unit,
            unit_cost=record.unit_cost,
            currency=record.currency,
            year=record.year,
            donor=record.donor,
            sector=record.sector,
        )
        for record in repo.search_costs(q, limit=limit)
    ]


def _apply_mutation(editor: BudgetEditor, payload: MutationRequest) -> Optional[str]:
    """Dispatch a mutation request onto the editor; returns the id of a created line, if any."""
    operation = payload.operation
    if operation == "add_line":
        return editor.add_line(_require(payload.section_id, "sectionId"), payload.parent_id).id

    line_id = _require(payload.line_id, "lineId")
    if operation == "edit":
        editor.edit(line_id, _require(payload.field_name, "field"), payload.value)
    elif operation == "delete":
        editor.delete(line_id)
    elif operation == "duplicate":
        return editor.duplicate(line_id)
    elif operation == "move":
        editor.move_to_section(line_id, _require(payload.section_id, "sectionId"))
    elif operation == "set_parent":
        editor.set_parent(line_id, payload.parent_id)
    elif operation == "paste":
        editor.paste(line_id, _require(payload.field_name, "field"), payload.text)
    return None


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise StructureError(f"'{name}' is required for this operation")
    return value
