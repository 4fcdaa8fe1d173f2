from __future__ import annotations

import sqlite3
from datetime import timedelta

import allure
import pytest
from sqlalchemy import inspect

from conftest import add_doc, add_org, add_signal
from health_recon.storage.common import utc_now
from health_recon.store.models import (
    EntityType,
    EntityWrite,
    PipelineRunStatus,
    PipelineRunWrite,
    PipelineStage,
    RunRecordWrite,
    RunStatus,
    SignalCategory,
    SignalSeverity,
    SignalWrite,
    SourceKind,
    StoreError,
)
from health_recon.store.repository import DocumentStore, content_hash_for

pytestmark = [
    allure.epic("Document Store"),
    allure.feature("Persistence & Migrations"),
]


def test_schema_is_migrated_to_head(store: DocumentStore) -> None:
    with sqlite3.connect(store.db_path) as connection:
        row = connection.execute("SELECT version_num FROM alembic_version").fetchone()
    assert row == ("20261019_0001",)

    tables = set(inspect(store.engine).get_table_names())
    assert {
        "organizations",
        "documents",
        "entities",
        "signals",
        "briefings",
        "briefing_runs",
        "pipeline_runs",
        "request_limits",
    } <= tables


def test_init_schema_is_idempotent(store: DocumentStore) -> None:
    add_org(store, "acme")
    store.init_schema()

    assert [org.slug for org in store.list_organizations()] == ["acme"]


def test_organizations_are_listed_by_slug_and_filterable(store: DocumentStore) -> None:
    add_org(store, "zeta")
    add_org(store, "acme")
    add_org(store, "mercy")

    assert [org.slug for org in store.list_organizations()] == ["acme", "mercy", "zeta"]
    assert [org.slug for org in store.list_organizations(["zeta", "acme"])] == ["acme", "zeta"]
    assert store.fetch_organization_by_slug("missing") is None


def test_duplicate_slug_is_a_store_error(store: DocumentStore) -> None:
    add_org(store, "acme")

    with pytest.raises(StoreError):
        add_org(store, "acme")


def test_add_document_deduplicates_per_organization(store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    beta = add_org(store, "beta")
    first = add_doc(store, url="https://acme.org/news", text="Same", organization=acme)
    again = add_doc(store, url="https://acme.org/news", text="Same", organization=acme)
    other = add_doc(store, url="https://acme.org/news", text="Same", organization=beta)

    assert again.document_id == first.document_id
    assert other.document_id != first.document_id
    assert first.content_hash == content_hash_for("https://acme.org/news", "Same")


def test_unprocessed_documents_are_oldest_first_and_bounded(store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    now = utc_now()
    newest = add_doc(store, url="https://a/3", organization=acme, crawled_at=now)
    oldest = add_doc(
        store,
        url="https://a/1",
        organization=acme,
        crawled_at=now - timedelta(hours=2),
    )
    middle = add_doc(
        store,
        url="https://a/2",
        organization=acme,
        crawled_at=now - timedelta(hours=1),
    )
    add_doc(store, url="https://a/4", organization=acme, processed=True)

    batch = store.fetch_unprocessed_documents(acme.organization_id, 2)
    assert [doc.document_id for doc in batch] == [oldest.document_id, middle.document_id]
    everything = store.fetch_unprocessed_documents(None, 10)
    assert newest.document_id in {doc.document_id for doc in everything}
    assert len(everything) == 3


def test_mark_processed_is_conditional(store: DocumentStore) -> None:
    document = add_doc(store, url="https://a/1")

    assert store.mark_processed(document.document_id) is True
    assert store.mark_processed(document.document_id) is False
    assert store.get_document(document.document_id).processed is True


def test_assign_organization_only_links_unassociated_documents(store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    beta = add_org(store, "beta")
    news = add_doc(store, url="https://news/1", source_type=SourceKind.NEWS, processed=True)

    assert [doc.document_id for doc in store.fetch_unclassified_news(10)] == [news.document_id]
    assert store.assign_organization(
        document_id=news.document_id,
        organization_id=acme.organization_id,
    )
    assert not store.assign_organization(
        document_id=news.document_id,
        organization_id=beta.organization_id,
    )
    assert store.get_document(news.document_id).organization_id == acme.organization_id
    assert store.fetch_unclassified_news(10) == []


def test_assign_organization_carries_extracted_rows(store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    news = add_doc(store, url="https://news/2", source_type=SourceKind.NEWS, processed=True)
    store.insert_signal(
        organization_id=None,
        document_id=news.document_id,
        signal=SignalWrite(
            category=SignalCategory.LEADERSHIP_CHANGE,
            severity=SignalSeverity.MEDIUM,
            summary="Acme names interim CEO",
        ),
    )
    store.insert_entity(
        organization_id=None,
        document_id=news.document_id,
        entity=EntityWrite(entity_type=EntityType.PERSON, name="Lee Park", role="CEO"),
    )

    store.assign_organization(document_id=news.document_id, organization_id=acme.organization_id)

    now = utc_now()
    inputs = store.fetch_windowed_inputs(acme.organization_id, now - timedelta(hours=24), now)
    assert [signal.summary for signal in inputs.signals] == ["Acme names interim CEO"]
    with sqlite3.connect(store.db_path) as connection:
        entity_orgs = connection.execute(
            "SELECT organization_id FROM entities WHERE source_document_id = ?",
            (news.document_id,),
        ).fetchall()
    assert entity_orgs == [(acme.organization_id,)]


def test_windowed_inputs_respect_bounds(store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    now = utc_now()
    add_signal(store, acme, "fresh", created_at=now - timedelta(hours=1))
    add_signal(store, acme, "stale", created_at=now - timedelta(hours=30))
    add_doc(store, url="https://a/old", organization=acme, crawled_at=now - timedelta(days=3))

    inputs = store.fetch_windowed_inputs(acme.organization_id, now - timedelta(hours=24), now)

    assert [signal.summary for signal in inputs.signals] == ["fresh"]
    assert inputs.documents == []
    assert not inputs.is_empty


def test_entities_keep_attributes(store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    document = add_doc(store, url="https://a/1", organization=acme)
    store.insert_entity(
        organization_id=acme.organization_id,
        document_id=document.document_id,
        entity=EntityWrite(
            entity_type=EntityType.PERSON,
            name="Dana Ruiz",
            role="CIO",
            attributes={"start": "2026-10"},
        ),
    )

    assert store.count_entities(document_id=document.document_id) == 1
    assert store.count_entities() == 1


def test_briefings_and_run_records_round_out_the_audit_trail(store: DocumentStore) -> None:
    acme = add_org(store, "acme")
    briefing = store.insert_briefing(
        organization_id=acme.organization_id,
        bullets=["One", "Two"],
        narrative="Summary",
    )
    run_id = store.insert_run_record(
        RunRecordWrite(
            organization_id=acme.organization_id,
            status=RunStatus.SUCCESS,
            briefing_id=briefing.briefing_id,
        ),
    )
    store.insert_pipeline_run(
        PipelineRunWrite(
            stage=PipelineStage.EXTRACTION,
            status=PipelineRunStatus.SUCCESS,
            organization_id=acme.organization_id,
            attempted_count=3,
            succeeded_count=2,
        ),
    )

    latest = store.latest_briefing(acme.organization_id)
    assert latest is not None
    assert latest.bullets == ["One", "Two"]
    assert latest.narrative == "Summary"
    assert store.has_briefing_since(acme.organization_id, utc_now() - timedelta(minutes=5))
    assert not store.has_briefing_since(acme.organization_id, utc_now() + timedelta(minutes=5))

    (record,) = store.list_run_records(organization_id=acme.organization_id)
    assert record.run_id == run_id
    assert record.briefing_id == briefing.briefing_id
    (run,) = store.list_pipeline_runs(stage=PipelineStage.EXTRACTION)
    assert (run.attempted_count, run.succeeded_count) == (3, 2)
    assert store.list_pipeline_runs(stage=PipelineStage.CLASSIFICATION) == []
