"""Initial pipeline schema: organizations, documents, derived records and audit runs."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("website", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("organization_id"),
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)

    op.create_table(
        "documents",
        sa.Column("document_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("source_url", sa.String(), nullable=False),
        sa.Column("source_type", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("raw_text", sa.Text(), nullable=True),
        sa.Column("content_hash", sa.String(), nullable=False),
        sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("crawled_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["organization_id"],
            ["organizations.organization_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("document_id"),
        sa.UniqueConstraint(
            "organization_id",
            "content_hash",
            name="uq_documents_organization_hash",
        ),
    )
    op.create_index("ix_documents_organization_id", "documents", ["organization_id"])
    op.create_index("ix_documents_source_type", "documents", ["source_type"])
    op.create_index("ix_documents_content_hash", "documents", ["content_hash"])
    op.create_index("ix_documents_crawled_at", "documents", ["crawled_at"])
    op.create_index("idx_documents_queue", "documents", ["processed", "organization_id"])
    op.create_index(
        "idx_documents_unclassified",
        "documents",
        ["source_type", "processed", "organization_id"],
    )

    op.create_table(
        "entities",
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("source_document_id", sa.String(), nullable=True),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("attributes_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["organization_id"],
            ["organizations.organization_id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(["source_document_id"], ["documents.document_id"]),
        sa.PrimaryKeyConstraint("entity_id"),
    )
    op.create_index("ix_entities_organization_id", "entities", ["organization_id"])
    op.create_index("ix_entities_source_document_id", "entities", ["source_document_id"])
    op.create_index("ix_entities_entity_type", "entities", ["entity_type"])

    op.create_table(
        "signals",
        sa.Column("signal_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("document_id", sa.String(), nullable=True),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["organization_id"],
            ["organizations.organization_id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(["document_id"], ["documents.document_id"]),
        sa.PrimaryKeyConstraint("signal_id"),
    )
    op.create_index("ix_signals_organization_id", "signals", ["organization_id"])
    op.create_index("ix_signals_document_id", "signals", ["document_id"])
    op.create_index("ix_signals_severity", "signals", ["severity"])
    op.create_index("ix_signals_category", "signals", ["category"])
    op.create_index(
        "idx_signals_organization_time",
        "signals",
        ["organization_id", "created_at"],
    )

    op.create_table(
        "briefings",
        sa.Column("briefing_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("summary_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["organization_id"],
            ["organizations.organization_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("briefing_id"),
    )
    op.create_index("ix_briefings_organization_id", "briefings", ["organization_id"])
    op.create_index(
        "idx_briefings_organization_time",
        "briefings",
        ["organization_id", "created_at"],
    )

    op.create_table(
        "briefing_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("briefing_id", sa.String(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["organization_id"],
            ["organizations.organization_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_briefing_runs_organization_id", "briefing_runs", ["organization_id"])
    op.create_index("ix_briefing_runs_status", "briefing_runs", ["status"])
    op.create_index(
        "idx_briefing_runs_organization_time",
        "briefing_runs",
        ["organization_id", "created_at"],
    )

    op.create_table(
        "pipeline_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("organization_id", sa.String(), nullable=True),
        sa.Column("stage", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("attempted_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("succeeded_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["organization_id"],
            ["organizations.organization_id"],
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_pipeline_runs_organization_id", "pipeline_runs", ["organization_id"])
    op.create_index("ix_pipeline_runs_stage", "pipeline_runs", ["stage"])
    op.create_index("ix_pipeline_runs_status", "pipeline_runs", ["status"])
    op.create_index("idx_pipeline_runs_stage_time", "pipeline_runs", ["stage", "created_at"])

    op.create_table(
        "request_limits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_request_limits_key", "request_limits", ["key"], unique=True)
    op.create_index("ix_request_limits_window_start", "request_limits", ["window_start"])


def downgrade() -> None:
    op.drop_table("request_limits")
    op.drop_table("pipeline_runs")
    op.drop_table("briefing_runs")
    op.drop_table("briefings")
    op.drop_table("signals")
    op.drop_table("entities")
    op.drop_table("documents")
    op.drop_table("organizations")
