"""CLI entrypoint for social-jobs."""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from social_jobs import __version__
from social_jobs.queue.controllers import (
    InspectJobCommand,
    JobEnqueueCommand,
    LeadAddCommand,
    ListJobsCommand,
    ListOutputsCommand,
    ProfileSetCommand,
    ReapCommand,
    RetryJobCommand,
    SocialJobsCliController,
    StatusCommand,
    WorkerCommand,
)
from social_jobs.queue.models import GENERATE_ASSETS, JobStatus

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SocialJobsCliController()
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
DB_PATH_HELP = "SQLite DB path (defaults to SOCIAL_DB_PATH)."


@click.group()
@click.version_option(version=__version__, prog_name="social-jobs")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=lambda: os.getenv("SOCIAL_LOG_LEVEL", "INFO").upper(),
    show_default="SOCIAL_LOG_LEVEL or INFO",
    help="Logging verbosity.",
)
def social_jobs(log_level: str) -> None:
    """Social content job queue CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@social_jobs.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--once", is_flag=True, default=False, help="Process at most one job and exit.")
@click.option(
    "--max-jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Exit after processing this many jobs.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=None,
    help="Exit after this many consecutive empty polls (default: run until stopped).",
)
def worker(
    db_path: Path | None,
    once: bool,
    max_jobs: int | None,
    max_idle_polls: int | None,
) -> None:
    """Run a queue worker until SIGINT/SIGTERM."""

    _run(
        lambda: CONTROLLER.run_worker(
            WorkerCommand(
                db_path=db_path,
                once=once,
                max_jobs=max_jobs,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


@social_jobs.group()
def jobs() -> None:
    """Job queue commands."""


@jobs.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--type", "job_type", default=GENERATE_ASSETS, show_default=True, help="Job type.")
@click.option("--org-id", required=True, help="Tenant the job belongs to.")
@click.option("--lead-id", default=None, help="Referenced lead id.")
@click.option("--activity-id", default=None, help="Source activity id.")
@click.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Attempt budget (defaults to SOCIAL_MAX_ATTEMPTS).",
)
@click.option("--payload", "payload_json", default=None, help="Job payload as a JSON object.")
def jobs_enqueue(  # noqa: PLR0913
    db_path: Path | None,
    job_type: str,
    org_id: str,
    lead_id: str | None,
    activity_id: str | None,
    max_attempts: int | None,
    payload_json: str | None,
) -> None:
    """Enqueue a job."""

    _run(
        lambda: CONTROLLER.enqueue(
            JobEnqueueCommand(
                db_path=db_path,
                job_type=job_type,
                org_id=org_id,
                lead_id=lead_id,
                activity_id=activity_id,
                max_attempts=max_attempts,
                payload_json=payload_json,
            ),
        ),
    )


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option(
    "--status",
    type=click.Choice([status.value for status in JobStatus]),
    default=None,
    help="Filter by status.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
    help="Max number of jobs to print.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List recent jobs."""

    _run(
        lambda: CONTROLLER.list_jobs(
            ListJobsCommand(db_path=db_path, status=status, limit=limit),
        ),
    )


@jobs.command("inspect")
@click.argument("job_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
def jobs_inspect(job_id: str, db_path: Path | None) -> None:
    """Show one job with its event history."""

    _run(lambda: CONTROLLER.inspect_job(InspectJobCommand(db_path=db_path, job_id=job_id)))


@jobs.command("retry")
@click.argument("job_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
def jobs_retry(job_id: str, db_path: Path | None) -> None:
    """Re-queue a failed job with a fresh attempt budget."""

    _run(lambda: CONTROLLER.retry_job(RetryJobCommand(db_path=db_path, job_id=job_id)))


@jobs.command("reap")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option(
    "--stuck-after-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Lock age threshold (defaults to SOCIAL_STUCK_AFTER_MS).",
)
def jobs_reap(db_path: Path | None, stuck_after_seconds: float | None) -> None:
    """Requeue running jobs whose lock is older than the threshold."""

    _run(
        lambda: CONTROLLER.reap(
            ReapCommand(db_path=db_path, stuck_after_seconds=stuck_after_seconds),
        ),
    )


@jobs.command("status")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
def jobs_status(db_path: Path | None) -> None:
    """Show job counts per status."""

    _run(lambda: CONTROLLER.status(StatusCommand(db_path=db_path)))


@social_jobs.group()
def outputs() -> None:
    """Generated output commands."""


@outputs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--org-id", default=None, help="Filter by org.")
@click.option("--source-id", default=None, help="Filter by source entity (activity or lead).")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=1000),
    default=50,
    show_default=True,
    help="Max number of outputs to print.",
)
def outputs_list(
    db_path: Path | None,
    org_id: str | None,
    source_id: str | None,
    limit: int,
) -> None:
    """List stored outputs, most recently updated first."""

    _run(
        lambda: CONTROLLER.list_outputs(
            ListOutputsCommand(db_path=db_path, org_id=org_id, source_id=source_id, limit=limit),
        ),
    )


@social_jobs.group()
def profiles() -> None:
    """Vertical prompt profile commands."""


@profiles.command("set")
@click.argument("vertical_key")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--prompt-system", default=None, help="System prompt override.")
@click.option("--prompt-user-prefix", default=None, help="Text prepended to the user prompt.")
@click.option("--tone", default=None, help="Copy tone.")
@click.option("--audience", default=None, help="Target audience.")
@click.option("--brand-rules", "brand_rules_json", default=None, help="Brand rules JSON object.")
@click.option("--image-style", "image_style_rules", multiple=True, help="Image style rule.")
@click.option("--hashtag", "hashtag_seed", multiple=True, help="Seed hashtag.")
@click.option("--cta", "cta_library", multiple=True, help="Suggested call to action.")
@click.option("--inactive", is_flag=True, default=False, help="Store the profile as inactive.")
def profiles_set(  # noqa: PLR0913
    vertical_key: str,
    db_path: Path | None,
    prompt_system: str | None,
    prompt_user_prefix: str | None,
    tone: str | None,
    audience: str | None,
    brand_rules_json: str | None,
    image_style_rules: tuple[str, ...],
    hashtag_seed: tuple[str, ...],
    cta_library: tuple[str, ...],
    inactive: bool,
) -> None:
    """Create or replace a vertical profile."""

    _run(
        lambda: CONTROLLER.set_profile(
            ProfileSetCommand(
                db_path=db_path,
                vertical_key=vertical_key,
                prompt_system=prompt_system,
                prompt_user_prefix=prompt_user_prefix,
                tone=tone,
                audience=audience,
                brand_rules_json=brand_rules_json,
                image_style_rules=image_style_rules,
                hashtag_seed=hashtag_seed,
                cta_library=cta_library,
                active=not inactive,
            ),
        ),
    )


@social_jobs.group()
def leads() -> None:
    """Lead context commands."""


@leads.command("add")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help=DB_PATH_HELP)
@click.option("--org-id", required=True, help="Tenant the lead belongs to.")
@click.option("--lead-id", required=True, help="Lead identifier.")
@click.option("--name", default=None)
@click.option("--company", default=None)
@click.option("--city", default=None)
@click.option("--country", default=None)
@click.option("--notes", default=None)
@click.option("--source", default=None)
def leads_add(  # noqa: PLR0913
    db_path: Path | None,
    org_id: str,
    lead_id: str,
    name: str | None,
    company: str | None,
    city: str | None,
    country: str | None,
    notes: str | None,
    source: str | None,
) -> None:
    """Store lead context used by generate_post jobs."""

    _run(
        lambda: CONTROLLER.add_lead(
            LeadAddCommand(
                db_path=db_path,
                org_id=org_id,
                lead_id=lead_id,
                name=name,
                company=company,
                city=city,
                country=country,
                notes=notes,
                source=source,
            ),
        ),
    )


def _run(action: Callable[[], list[str]]) -> None:
    try:
        lines = action()
    except (RuntimeError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    social_jobs()
