"""SQLModel ORM tables for pipeline storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class Organization(SQLModel, table=True):
    __tablename__ = "organizations"  # type: ignore[bad-override]

    organization_id: str = Field(primary_key=True)
    slug: str = Field(unique=True, index=True)
    name: str
    website: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Document(SQLModel, table=True):
    __tablename__ = "documents"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "organization_id",
            "content_hash",
            name="uq_documents_organization_hash",
        ),
        Index("idx_documents_queue", "processed", "organization_id"),
        Index("idx_documents_unclassified", "source_type", "processed", "organization_id"),
    )

    document_id: str = Field(primary_key=True)
    organization_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("organizations.organization_id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        ),
    )
    source_url: str
    source_type: str = Field(index=True)
    title: str | None = None
    raw_text: str | None = Field(default=None, sa_column=Column(Text))
    content_hash: str = Field(index=True)
    processed: bool = Field(default=False)
    crawled_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )


class Entity(SQLModel, table=True):
    __tablename__ = "entities"  # type: ignore[bad-override]

    entity_id: str = Field(primary_key=True)
    organization_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("organizations.organization_id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        ),
    )
    source_document_id: str | None = Field(
        default=None,
        sa_column=Column(ForeignKey("documents.document_id"), nullable=True, index=True),
    )
    entity_type: str = Field(index=True)
    name: str
    role: str | None = None
    attributes_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Signal(SQLModel, table=True):
    __tablename__ = "signals"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_signals_organization_time", "organization_id", "created_at"),)

    signal_id: str = Field(primary_key=True)
    organization_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("organizations.organization_id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        ),
    )
    document_id: str | None = Field(
        default=None,
        sa_column=Column(ForeignKey("documents.document_id"), nullable=True, index=True),
    )
    severity: str = Field(index=True)
    category: str = Field(index=True)
    summary: str = Field(sa_column=Column(Text, nullable=False))
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class Briefing(SQLModel, table=True):
    __tablename__ = "briefings"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_briefings_organization_time", "organization_id", "created_at"),
    )

    briefing_id: str = Field(primary_key=True)
    organization_id: str = Field(
        sa_column=Column(
            ForeignKey("organizations.organization_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    summary_json: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class BriefingRun(SQLModel, table=True):
    __tablename__ = "briefing_runs"  # type: ignore[bad-override]
    __table_args__ = (
        Index("idx_briefing_runs_organization_time", "organization_id", "created_at"),
    )

    run_id: str = Field(primary_key=True)
    organization_id: str = Field(
        sa_column=Column(
            ForeignKey("organizations.organization_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    status: str = Field(index=True)
    briefing_id: str | None = None
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class PipelineRun(SQLModel, table=True):
    __tablename__ = "pipeline_runs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_pipeline_runs_stage_time", "stage", "created_at"),)

    run_id: str = Field(primary_key=True)
    organization_id: str | None = Field(
        default=None,
        sa_column=Column(
            ForeignKey("organizations.organization_id", ondelete="CASCADE"),
            nullable=True,
            index=True,
        ),
    )
    stage: str = Field(index=True)
    status: str = Field(index=True)
    attempted_count: int = 0
    succeeded_count: int = 0
    error_message: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class RequestLimit(SQLModel, table=True):
    __tablename__ = "request_limits"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(unique=True, index=True)
    window_start: datetime = Field(
        sa_column=Column(DateTime(timezone=True), index=True, nullable=False),
    )
    count: int = 0
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
