"""Prompt builders for the extraction, classification and briefing stages."""

from __future__ import annotations

from health_recon.store.models import DocumentView, OrganizationView, WindowedInputs

EXTRACTION_INSTRUCTIONS = (
    "You extract structured entities and signals about a healthcare system from a single "
    "webpage. Only return valid JSON matching the specified schema. Do not include any "
    "explanatory text."
)
EXTRACTION_SCHEMA_HINT = (
    'Return a JSON object {"entities": [...], "signals": [...]}. Each entity has "type" '
    "(person, facility, initiative, vendor or technology), \"name\", optional \"role\" and "
    'optional "attributes" object. Each signal has "category" (leadership_change, strategy, '
    'technology, finance, workforce, ai or epic_migration), "severity" (low, medium or '
    'high), "summary" and optional "details" object.'
)

CLASSIFICATION_INSTRUCTIONS = (
    "Given a news article text and a list of health systems, return the slug of the system "
    "the article most likely refers to. Return null if none. Only return valid JSON with a "
    "'slug' field (string or null)."
)
TRUNCATION_MARKER = "\n\n[Content truncated...]"

BRIEFING_INSTRUCTIONS = (
    "You are a briefing assistant summarizing healthcare system activity. "
    "Respond with concise JSON."
)
BRIEFING_OUTPUT_REQUEST = (
    "Produce a JSON object with keys `bullets` (array of short bullet strings) and "
    "`narrative` (succinct paragraph). Be specific and avoid repetition."
)


def build_extraction_prompt(document: DocumentView) -> str:
    parts = [
        EXTRACTION_INSTRUCTIONS,
        EXTRACTION_SCHEMA_HINT,
        "Extract entities and signals from the following document.",
        f"Title: {document.title or ''}",
        f"URL: {document.source_url}",
        document.raw_text or "",
    ]
    return "\n\n".join(part for part in parts if part)


def build_classification_prompt(
    organizations: list[OrganizationView],
    text: str,
    *,
    max_chars: int,
) -> str:
    """Ask which organization an article refers to; long text is truncated with a marker."""

    capped = text[:max_chars] + TRUNCATION_MARKER if len(text) > max_chars else text
    systems_list = "\n".join(f"{item.slug}: {item.name}" for item in organizations)
    parts = [
        CLASSIFICATION_INSTRUCTIONS,
        "Available systems:",
        systems_list,
        "Article text:",
        capped,
    ]
    return "\n\n".join(part for part in parts if part)


def build_briefing_prompt(
    organization: OrganizationView,
    inputs: WindowedInputs,
    *,
    window_hours: int,
) -> str:
    signal_lines = "\n".join(
        f"- [{signal.category.value}] ({signal.severity.value}) {signal.summary}"
        for signal in inputs.signals
    )
    document_lines = "\n".join(
        f"- {document.title or 'Untitled'} — {document.source_url}"
        for document in inputs.documents
    )
    window_label = f"last {window_hours} hours"
    return "\n\n".join(
        [
            BRIEFING_INSTRUCTIONS,
            f"System: {organization.name}",
            f"Signals from {window_label}:",
            signal_lines or "- None",
            f"Documents from {window_label}:",
            document_lines or "- None",
            BRIEFING_OUTPUT_REQUEST,
        ],
    )
