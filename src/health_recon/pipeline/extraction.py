"""Extraction stage: unprocessed documents to entities and signals."""

from __future__ import annotations

import logging

from health_recon.inference.base import JSON_OBJECT_FORMAT, InferenceGateway
from health_recon.inference.models import InferenceError, OutputValidationError
from health_recon.pipeline.models import ExtractedRecords, ExtractionSummary
from health_recon.pipeline.prompts import build_extraction_prompt
from health_recon.pipeline.validator import parse_extraction
from health_recon.store.base import DocumentStoreAdapter
from health_recon.store.models import DocumentView, StoreError

logger = logging.getLogger(__name__)


class ExtractionStage:
    """Turn a bounded batch of unprocessed documents into derived records.

    A document is marked processed only after every entity and signal parsed
    from its response was inserted. Inserts that succeeded before a later
    failure are kept, so a retry may duplicate them.
    """

    def __init__(
        self,
        *,
        store: DocumentStoreAdapter,
        gateway: InferenceGateway,
        batch_size: int = 3,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.batch_size = batch_size

    def run(self, *, organization_id: str | None = None) -> ExtractionSummary:
        """Process one batch; a failed initial fetch propagates as `StoreError`."""

        documents = self.store.fetch_unprocessed_documents(organization_id, self.batch_size)
        summary = ExtractionSummary(processed=len(documents))
        for document in documents:
            try:
                succeeded = self.process_document(document)
            except Exception:  # noqa: BLE001
                logger.exception("Unexpected error extracting document %s", document.document_id)
                succeeded = False
            if succeeded:
                summary.succeeded += 1
            else:
                summary.failed += 1
        logger.info(
            "Extraction batch finished: processed=%d succeeded=%d failed=%d",
            summary.processed,
            summary.succeeded,
            summary.failed,
        )
        return summary

    def process_document(self, document: DocumentView) -> bool:
        """Return True when the document ended up marked processed by this call."""

        try:
            raw_output = self.gateway.infer(build_extraction_prompt(document), JSON_OBJECT_FORMAT)
            records = parse_extraction(raw_output)
        except InferenceError as error:
            logger.warning(
                "Extraction inference failed for document %s (%s): %s",
                document.document_id,
                error.kind.value,
                error,
            )
            return False
        except OutputValidationError as error:
            logger.warning(
                "Extraction output rejected for document %s: %s",
                document.document_id,
                error,
            )
            return False

        if not self._persist_records(document, records):
            return False

        try:
            marked = self.store.mark_processed(document.document_id)
        except StoreError:
            logger.exception("Failed to mark document %s processed", document.document_id)
            return False
        if not marked:
            logger.info("Document %s was already marked processed", document.document_id)
        return marked

    def _persist_records(self, document: DocumentView, records: ExtractedRecords) -> bool:
        all_inserted = True
        for entity in records.entities:
            try:
                self.store.insert_entity(
                    organization_id=document.organization_id,
                    document_id=document.document_id,
                    entity=entity,
                )
            except StoreError as error:
                logger.error(
                    "Failed to insert entity %r for document %s: %s",
                    entity.name,
                    document.document_id,
                    error,
                )
                all_inserted = False
        for signal in records.signals:
            try:
                self.store.insert_signal(
                    organization_id=document.organization_id,
                    document_id=document.document_id,
                    signal=signal,
                )
            except StoreError as error:
                logger.error(
                    "Failed to insert signal for document %s: %s",
                    document.document_id,
                    error,
                )
                all_inserted = False
        return all_inserted
