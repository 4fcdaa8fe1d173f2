"""Classification stage: link unassociated news documents to an organization."""

from __future__ import annotations

import logging

from health_recon.inference.base import JSON_OBJECT_FORMAT, InferenceGateway
from health_recon.pipeline.models import ClassificationSummary
from health_recon.pipeline.prompts import build_classification_prompt
from health_recon.pipeline.validator import parse_classification
from health_recon.store.base import DocumentStoreAdapter
from health_recon.store.models import DocumentView, OrganizationView

logger = logging.getLogger(__name__)


class ClassificationStage:
    """Ask the model which organization each unlinked news document refers to.

    A missing guess or an unknown slug leaves the document unassociated; that
    is an expected outcome, not an error.
    """

    def __init__(
        self,
        *,
        store: DocumentStoreAdapter,
        gateway: InferenceGateway,
        batch_size: int = 100,
        max_chars: int = 20_000,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.batch_size = batch_size
        self.max_chars = max_chars

    def run(self) -> ClassificationSummary:
        documents = self.store.fetch_unclassified_news(self.batch_size)
        summary = ClassificationSummary(total=len(documents))
        if not documents:
            return summary

        organizations = self.store.list_organizations()
        if not organizations:
            logger.info("No organizations registered; %d news documents left as is", len(documents))
            return summary
        by_slug = {organization.slug: organization for organization in organizations}

        for document in documents:
            try:
                if self._classify_document(document, organizations, by_slug):
                    summary.classified += 1
            except Exception:  # noqa: BLE001
                logger.exception("Classification failed for document %s", document.document_id)

        logger.info(
            "Classification batch finished: classified=%d total=%d",
            summary.classified,
            summary.total,
        )
        return summary

    def _classify_document(
        self,
        document: DocumentView,
        organizations: list[OrganizationView],
        by_slug: dict[str, OrganizationView],
    ) -> bool:
        text = document.raw_text or ""
        if not text.strip():
            logger.debug("Skipping document %s without text", document.document_id)
            return False

        prompt = build_classification_prompt(organizations, text, max_chars=self.max_chars)
        slug = parse_classification(self.gateway.infer(prompt, JSON_OBJECT_FORMAT))
        if slug is None:
            return False
        organization = by_slug.get(slug)
        if organization is None:
            logger.info(
                "Model guessed unknown organization %r for document %s",
                slug,
                document.document_id,
            )
            return False

        assigned = self.store.assign_organization(
            document_id=document.document_id,
            organization_id=organization.organization_id,
        )
        if assigned:
            logger.info("Classified document %s as %s", document.document_id, slug)
        return assigned
