"""SQLAlchemy models for saved projects and the cost-memory index."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Float, ForeignKey, Integer, JSON, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class ProjectRecord(Base):
    """A saved budget document plus the columns used for listing it."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    donor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)

    # Full {meta, sections, lines} document exactly as the editor exchanges it
    data_json: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    cost_entries: Mapped[List["CostMemoryEntry"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="CostMemoryEntry.id",
    )


class CostMemoryEntry(Base):
    """Leaf cost indexed from a saved project for later lookup."""

    __tablename__ = "cost_memory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    category: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    unit: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    unit_cost: Mapped[float] = mapped_column(Float, nullable=False)
    currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sector: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    donor: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source_project_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )

    project: Mapped["ProjectRecord"] = relationship(back_populates="cost_entries")
