"""Controllers for pipeline, audit and maintenance CLI commands."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from health_recon.config import Settings
from health_recon.inference.base import InferenceGateway
from health_recon.inference.openai_gateway import build_inference_gateway
from health_recon.pipeline.orchestrator import PipelineOrchestrator
from health_recon.ratelimit.limiter import RateLimiter, build_rate_limiter
from health_recon.ratelimit.stores import SqlCounterStore
from health_recon.storage.common import utc_now
from health_recon.store.models import DocumentCreate, OrganizationCreate, SourceKind
from health_recon.store.repository import DocumentStore

GatewayFactory = Callable[[Settings, RateLimiter], InferenceGateway]


@dataclass(slots=True)
class ExtractCommand:
    """CLI inputs for one extraction batch."""

    db_path: Path | None
    slug: str | None
    all_organizations: bool


@dataclass(slots=True)
class ClassifyCommand:
    """CLI inputs for one classification batch."""

    db_path: Path | None


@dataclass(slots=True)
class BriefingCommand:
    """CLI inputs for one organization's briefing."""

    db_path: Path | None
    slug: str


@dataclass(slots=True)
class BriefingsCommand:
    """CLI inputs for a briefing batch."""

    db_path: Path | None
    slugs: tuple[str, ...]
    pause_seconds: float | None


@dataclass(slots=True)
class RunsListCommand:
    """CLI inputs for audit listing."""

    db_path: Path | None
    kind: str
    slug: str | None
    limit: int


@dataclass(slots=True)
class OrgAddCommand:
    """CLI inputs for registering an organization."""

    db_path: Path | None
    slug: str
    name: str
    website: str | None


@dataclass(slots=True)
class DocAddCommand:
    """CLI inputs for adding a document by hand."""

    db_path: Path | None
    source_url: str
    source_type: str
    title: str | None
    text_path: Path
    slug: str | None
    processed: bool


@dataclass(slots=True)
class RateLimitStatsCommand:
    """CLI inputs for rate-limit statistics."""

    db_path: Path | None
    hours: int


@dataclass(slots=True)
class RateLimitPruneCommand:
    """CLI inputs for pruning old rate-limit windows."""

    db_path: Path | None
    hours: int | None


def _default_gateway_factory(settings: Settings, limiter: RateLimiter) -> InferenceGateway:
    return build_inference_gateway(settings, limiter=limiter)


class PipelineCliController:
    """Coordinates pipeline command execution."""

    def __init__(self, gateway_factory: GatewayFactory | None = None) -> None:
        self.gateway_factory = gateway_factory or _default_gateway_factory

    def extract(self, command: ExtractCommand) -> list[str]:
        settings = self._pipeline_settings(command.db_path)
        with _store(settings) as store:
            orchestrator = self._orchestrator(settings, store)
            if command.all_organizations:
                batch = orchestrator.run_extraction_for_all()
                return [
                    "Extraction completed: "
                    f"organizations={batch.total_systems} successful={batch.successful} "
                    f"failed={batch.failed} processed={batch.processed}",
                ]
            if command.slug is not None:
                summary = orchestrator.run_extraction_for_organization(command.slug)
                scope = command.slug
            else:
                summary = orchestrator.run_extraction()
                scope = "all"
        return [
            f"Extraction completed: scope={scope} processed={summary.processed} "
            f"succeeded={summary.succeeded} failed={summary.failed}",
        ]

    def classify(self, command: ClassifyCommand) -> list[str]:
        settings = self._pipeline_settings(command.db_path)
        with _store(settings) as store:
            summary = self._orchestrator(settings, store).run_classification()
        return [f"Classification completed: classified={summary.classified} total={summary.total}"]

    def briefing(self, command: BriefingCommand) -> tuple[list[str], bool]:
        settings = self._pipeline_settings(command.db_path)
        with _store(settings) as store:
            outcome = self._orchestrator(settings, store).run_briefing(command.slug)
        line = f"Briefing {command.slug}: status={outcome.status.value}"
        if outcome.briefing_id is not None:
            line += f" briefing_id={outcome.briefing_id}"
        if outcome.error_message is not None:
            line += f" error={outcome.error_message}"
        return [line], outcome.failure_kind is None

    def briefings(self, command: BriefingsCommand) -> list[str]:
        settings = self._pipeline_settings(command.db_path)
        with _store(settings) as store:
            orchestrator = self._orchestrator(
                settings,
                store,
                pause_seconds=command.pause_seconds,
            )
            result = orchestrator.run_briefings(list(command.slugs) or None)
        lines = [
            "Briefings completed: "
            f"total={result.total_systems} successful={result.successful} "
            f"failed={result.failed} skipped={result.skipped}",
        ]
        for item in result.results:
            detail = item.briefing_id or item.reason or item.error or "-"
            state = "ok" if item.success else ("skipped" if item.skipped else "failed")
            lines.append(f"  {item.slug}: {state} {detail}")
        return lines

    def list_runs(self, command: RunsListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            organization_id = None
            if command.slug is not None:
                organization = store.fetch_organization_by_slug(command.slug)
                if organization is None:
                    raise ValueError(f"Unknown organization: {command.slug}")
                organization_id = organization.organization_id
            if command.kind == "briefing":
                records = store.list_run_records(
                    organization_id=organization_id,
                    limit=command.limit,
                )
                if not records:
                    return ["No briefing runs recorded."]
                return [
                    f"{record.created_at.isoformat()} {record.status.value} "
                    f"run_id={record.run_id} briefing_id={record.briefing_id or '-'} "
                    f"error={record.error_message or '-'}"
                    for record in records
                ]
            runs = [
                run
                for run in store.list_pipeline_runs(limit=command.limit)
                if organization_id is None or run.organization_id == organization_id
            ]
        if not runs:
            return ["No pipeline runs recorded."]
        return [
            f"{run.created_at.isoformat()} {run.stage.value} {run.status.value} "
            f"attempted={run.attempted_count} succeeded={run.succeeded_count} "
            f"error={run.error_message or '-'}"
            for run in runs
        ]

    def add_organization(self, command: OrgAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings) as store:
            if store.fetch_organization_by_slug(command.slug) is not None:
                raise ValueError(f"Organization already exists: {command.slug}")
            organization = store.add_organization(
                OrganizationCreate(
                    slug=command.slug,
                    name=command.name,
                    website=command.website,
                ),
            )
        return [f"Organization added: slug={organization.slug} id={organization.organization_id}"]

    def list_organizations(self, db_path: Path | None) -> list[str]:
        settings = Settings.from_env(db_path=db_path)
        with _store(settings) as store:
            organizations = store.list_organizations()
        if not organizations:
            return ["No organizations registered."]
        return [
            f"{organization.slug}\t{organization.name}\t{organization.website or '-'}"
            for organization in organizations
        ]

    def add_document(self, command: DocAddCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        try:
            source_type = SourceKind(command.source_type)
        except ValueError as error:
            raise ValueError(f"Unsupported source type: {command.source_type}") from error
        raw_text = command.text_path.read_text("utf-8")
        with _store(settings) as store:
            organization_id = None
            if command.slug is not None:
                organization = store.fetch_organization_by_slug(command.slug)
                if organization is None:
                    raise ValueError(f"Unknown organization: {command.slug}")
                organization_id = organization.organization_id
            document, created = store.add_document(
                DocumentCreate(
                    source_url=command.source_url,
                    source_type=source_type,
                    raw_text=raw_text,
                    organization_id=organization_id,
                    title=command.title,
                    processed=command.processed,
                ),
            )
        status = "added" if created else "duplicate"
        return [f"Document {status}: id={document.document_id} hash={document.content_hash[:12]}"]

    def rate_limit_stats(self, command: RateLimitStatsCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _store(settings), _sql_limiter(settings) as limiter:
            stats = limiter.stats(
                since=utc_now() - timedelta(hours=command.hours),
                limit=settings.rate_limit.limit,
            )
        lines = [
            f"Rate limits (last {command.hours}h): active_keys={stats.active_keys} "
            f"requests={stats.total_requests} at_limit={stats.keys_at_limit}",
        ]
        lines.extend(f"  {key}: {count}" for key, count in stats.top_keys)
        return lines

    def rate_limit_prune(self, command: RateLimitPruneCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        hours = command.hours if command.hours is not None else settings.rate_limit.retention_hours
        if hours < 0:
            raise ValueError("--hours must be >= 0.")
        with _store(settings), _sql_limiter(settings) as limiter:
            removed = limiter.prune(older_than=timedelta(hours=hours))
        return [f"Rate-limit windows pruned: removed={removed} older_than_hours={hours}"]

    def _pipeline_settings(self, db_path: Path | None) -> Settings:
        settings = Settings.from_env(db_path=db_path)
        settings.validate_for_inference()
        settings.validate_for_pipeline()
        return settings

    def _orchestrator(
        self,
        settings: Settings,
        store: DocumentStore,
        *,
        pause_seconds: float | None = None,
    ) -> PipelineOrchestrator:
        gateway = self.gateway_factory(settings, build_rate_limiter(settings))
        return PipelineOrchestrator(
            settings=settings,
            store=store,
            gateway=gateway,
            pause_seconds=pause_seconds,
        )


@contextmanager
def _store(settings: Settings) -> Iterator[DocumentStore]:
    store = DocumentStore(settings.db_path)
    try:
        store.init_schema()
        yield store
    finally:
        store.close()


@contextmanager
def _sql_limiter(settings: Settings) -> Iterator[RateLimiter]:
    counter_store = SqlCounterStore(settings.db_path)
    try:
        yield RateLimiter(counter_store)
    finally:
        counter_store.close()
