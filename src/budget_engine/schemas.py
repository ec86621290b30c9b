"""
Pydantic models for the persisted project document.

The document keeps the camelCase shape `{meta, sections, lines}` written by the
desktop editor so stored projects load unchanged; `to_dataclass` and
`from_dataclass` convert to the engine's internal types.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import Line, ProjectDocument, ProjectMetadata, Section
from .numeric_input import sanitize_number


def _lenient_number(value: Any) -> float:
    return sanitize_number(value)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ProjectMetadataPayload(_CamelModel):
    donor: str = ""
    country: str = ""
    currency: str = "PEN"
    sector: str = ""
    duration: int = 12
    usd_rate: float = Field(default=3.75, alias="usdRate")
    eur_rate: float = Field(default=4.05, alias="eurRate")

    @field_validator("usd_rate", "eur_rate", mode="before")
    @classmethod
    def _coerce_rate(cls, value: Any) -> float:
        return _lenient_number(value)

    @field_validator("duration", mode="before")
    @classmethod
    def _coerce_duration(cls, value: Any) -> int:
        return int(_lenient_number(value))


class SectionPayload(_CamelModel):
    id: str
    name: str
    collapsed: bool = False
    cap_type: Literal["none", "fixed-amount", "percent-of-grand-total"] = Field(default="none", alias="capType")
    cap_value: float = Field(default=0.0, alias="capValue")

    @field_validator("cap_value", mode="before")
    @classmethod
    def _coerce_cap(cls, value: Any) -> float:
        return _lenient_number(value)


class LinePayload(_CamelModel):
    id: str
    section_id: str = Field(alias="sectionId")
    parent_id: str | None = Field(default=None, alias="parentId")
    category: str = ""
    description: str = ""
    notes: str | None = None
    show_notes: bool = Field(default=False, alias="showNotes")
    quantity: float = 1.0
    frequency: float = 1.0
    unit: str = ""
    unit_cost: float = 0.0
    total: float = 0.0
    selected: bool = False

    @field_validator("quantity", "frequency", "unit_cost", "total", mode="before")
    @classmethod
    def _coerce_number(cls, value: Any) -> float:
        return _lenient_number(value)

    @field_validator("parent_id", mode="before")
    @classmethod
    def _blank_parent(cls, value: Any) -> str | None:
        # The editor writes "" for lines that were promoted to top level.
        return value or None


class ProjectDocumentPayload(_CamelModel):
    meta: ProjectMetadataPayload = Field(default_factory=ProjectMetadataPayload)
    sections: list[SectionPayload] = Field(default_factory=list)
    lines: list[LinePayload] = Field(default_factory=list)

    def to_dataclass(self) -> ProjectDocument:
        """Convert validated payload into the internal dataclass representation."""
        return ProjectDocument(
            meta=ProjectMetadata(**self.meta.model_dump()),
            sections=tuple(Section(**section.model_dump()) for section in self.sections),
            lines=tuple(Line(**line.model_dump()) for line in self.lines),
        )

    @classmethod
    def from_dataclass(cls, document: ProjectDocument) -> "ProjectDocumentPayload":
        return cls(
            meta=ProjectMetadataPayload.model_validate(asdict(document.meta)),
            sections=[SectionPayload.model_validate(asdict(section)) for section in document.sections],
            lines=[LinePayload.model_validate(asdict(line)) for line in document.lines],
        )

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the persisted camelCase keys, omitting unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


def document_to_dict(document: ProjectDocument) -> dict[str, Any]:
    return ProjectDocumentPayload.from_dataclass(document).to_json_dict()


def document_from_dict(payload: dict[str, Any]) -> ProjectDocument:
    return ProjectDocumentPayload.model_validate(payload).to_dataclass()

