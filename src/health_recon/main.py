"""CLI entrypoint for health-recon."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click
import uvicorn

from health_recon import __version__
from health_recon.api.app import create_app
from health_recon.config import ConfigError, Settings
from health_recon.pipeline.controllers import (
    BriefingCommand,
    BriefingsCommand,
    ClassifyCommand,
    DocAddCommand,
    ExtractCommand,
    OrgAddCommand,
    PipelineCliController,
    RateLimitPruneCommand,
    RateLimitStatsCommand,
    RunsListCommand,
)
from health_recon.store.models import OrganizationNotFound, SourceKind, StoreError

click.rich_click.USE_MARKDOWN = True
PIPELINE_CONTROLLER = PipelineCliController()

ResultT = TypeVar("ResultT")


@click.group()
@click.version_option(version=__version__, prog_name="health-recon")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for pipeline diagnostics on stderr.",
)
def health_recon(log_level: str) -> None:
    """Healthcare sales-intelligence pipeline CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@health_recon.group()
def pipeline() -> None:
    """Extraction, classification and briefing commands."""


@pipeline.command("extract")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--slug", default=None, help="Only process documents of this organization.")
@click.option(
    "--all-organizations",
    is_flag=True,
    default=False,
    help="Run one audited extraction batch per registered organization.",
)
def pipeline_extract(db_path: Path | None, slug: str | None, all_organizations: bool) -> None:
    """Extract entities and signals from unprocessed documents."""

    if slug is not None and all_organizations:
        raise click.UsageError("--slug and --all-organizations are mutually exclusive.")
    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.extract(
                ExtractCommand(
                    db_path=db_path,
                    slug=slug,
                    all_organizations=all_organizations,
                ),
            ),
        ),
    )


@pipeline.command("classify")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def pipeline_classify(db_path: Path | None) -> None:
    """Link unassociated news documents to registered organizations."""

    _emit_lines(
        _guarded(lambda: PIPELINE_CONTROLLER.classify(ClassifyCommand(db_path=db_path))),
    )


@pipeline.command("briefing")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("slug")
def pipeline_briefing(db_path: Path | None, slug: str) -> None:
    """Synthesize today's briefing for one organization."""

    lines, success = _guarded(
        lambda: PIPELINE_CONTROLLER.briefing(BriefingCommand(db_path=db_path, slug=slug)),
    )
    _emit_lines(lines)
    if not success:
        raise click.ClickException(f"Briefing failed for {slug}.")


@pipeline.command("briefings")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--slug",
    "slugs",
    multiple=True,
    help="Organization slug. Can be repeated; defaults to every organization.",
)
@click.option(
    "--pause-seconds",
    type=click.FloatRange(min=0),
    default=None,
    help="Pause between organizations that call the model.",
)
def pipeline_briefings(
    db_path: Path | None,
    slugs: tuple[str, ...],
    pause_seconds: float | None,
) -> None:
    """Synthesize briefings for a batch of organizations."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.briefings(
                BriefingsCommand(db_path=db_path, slugs=slugs, pause_seconds=pause_seconds),
            ),
        ),
    )


@health_recon.group()
def runs() -> None:
    """Run audit commands."""


@runs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--kind",
    type=click.Choice(["briefing", "pipeline"], case_sensitive=False),
    default="briefing",
    show_default=True,
    help="Briefing run records or stage pipeline runs.",
)
@click.option("--slug", default=None, help="Optional organization filter.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
    help="Max number of runs to print.",
)
def runs_list(db_path: Path | None, kind: str, slug: str | None, limit: int) -> None:
    """List recent runs, newest first."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.list_runs(
                RunsListCommand(db_path=db_path, kind=kind.lower(), slug=slug, limit=limit),
            ),
        ),
    )


@health_recon.group()
def org() -> None:
    """Organization registry commands."""


@org.command("add")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--website", default=None, help="Organization website.")
@click.argument("slug")
@click.argument("name")
def org_add(db_path: Path | None, website: str | None, slug: str, name: str) -> None:
    """Register an organization by slug and display name."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.add_organization(
                OrgAddCommand(db_path=db_path, slug=slug, name=name, website=website),
            ),
        ),
    )


@org.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def org_list(db_path: Path | None) -> None:
    """List registered organizations ordered by slug."""

    _emit_lines(_guarded(lambda: PIPELINE_CONTROLLER.list_organizations(db_path)))


@health_recon.group()
def doc() -> None:
    """Document commands."""


@doc.command("add")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--url", "source_url", required=True, help="Source URL of the document.")
@click.option(
    "--source-type",
    type=click.Choice([kind.value for kind in SourceKind], case_sensitive=False),
    default=SourceKind.NEWS.value,
    show_default=True,
    help="Kind of source the text came from.",
)
@click.option("--title", default=None, help="Optional document title.")
@click.option("--slug", default=None, help="Organization the document belongs to.")
@click.option(
    "--processed/--unprocessed",
    default=False,
    show_default=True,
    help="Store the document as already processed.",
)
@click.argument("text_path", type=click.Path(path_type=Path, exists=True, dir_okay=False))
def doc_add(  # noqa: PLR0913
    db_path: Path | None,
    source_url: str,
    source_type: str,
    title: str | None,
    slug: str | None,
    processed: bool,
    text_path: Path,
) -> None:
    """Add a document whose raw text is read from TEXT_PATH."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.add_document(
                DocAddCommand(
                    db_path=db_path,
                    source_url=source_url,
                    source_type=source_type.lower(),
                    title=title,
                    text_path=text_path,
                    slug=slug,
                    processed=processed,
                ),
            ),
        ),
    )


@health_recon.group()
def ratelimit() -> None:
    """Request throttle maintenance commands."""


@ratelimit.command("stats")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--hours",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Only count windows started within this many hours.",
)
def ratelimit_stats(db_path: Path | None, hours: int) -> None:
    """Show persisted rate-limit counters."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.rate_limit_stats(
                RateLimitStatsCommand(db_path=db_path, hours=hours),
            ),
        ),
    )


@ratelimit.command("prune")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--hours",
    type=click.IntRange(min=0),
    default=None,
    help="Delete windows older than this. Defaults to HEALTH_RECON_RATE_LIMIT_RETENTION_HOURS.",
)
def ratelimit_prune(db_path: Path | None, hours: int | None) -> None:
    """Delete stale persisted rate-limit windows."""

    _emit_lines(
        _guarded(
            lambda: PIPELINE_CONTROLLER.rate_limit_prune(
                RateLimitPruneCommand(db_path=db_path, hours=hours),
            ),
        ),
    )


@health_recon.command("serve")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--host", default=None, help="Bind host. Defaults to HEALTH_RECON_HOST.")
@click.option("--port", type=click.IntRange(min=1, max=65535), default=None, help="Bind port.")
def serve(db_path: Path | None, host: str | None, port: int | None) -> None:
    """Serve the HTTP triggers with uvicorn."""

    settings = _guarded(lambda: Settings.from_env(db_path=db_path))
    app = _guarded(lambda: create_app(settings))
    uvicorn.run(
        app,
        host=host or settings.trigger.host,
        port=port or settings.trigger.port,
    )


def _guarded(action: Callable[[], ResultT]) -> ResultT:
    try:
        return action()
    except (ConfigError, OrganizationNotFound, StoreError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    health_recon()
