"""Thin CLI wrapper for conveyor.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
import sys
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from conveyor import __version__
from conveyor.config import get_settings, print_settings_json

app = typer.Typer(
    name="conveyor",
    help="Conveyor - build docker images from git commits and publish them",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(level: str) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"conveyor version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """Conveyor - build docker images from git commits and publish them."""
    configure_logging(get_settings().log_level)


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    status_mode = "GitHub API" if settings.github_token else "print only (no token)"
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Build directory:     {settings.build_dir}")
    console.print(f"  Keep build dirs:     {settings.keep_build_dir}")
    console.print(f"  Database URL:        {settings.db_url}")
    console.print()
    console.print("[bold]Source:[/bold]")
    console.print(f"  Remote URL:          {settings.remote_url_template}")
    console.print(f"  Clone depth:         {settings.clone_depth}")
    console.print()
    console.print("[bold]Registry:[/bold]")
    console.print(f"  Registry:            {settings.docker_registry or 'docker.io'}")
    console.print(f"  Username:            {settings.docker_username or '(none)'}")
    console.print()
    console.print("[bold]Statuses:[/bold]")
    console.print(f"  Mode:                {status_mode}")
    console.print(f"  API URL:             {settings.github_api_url}")
    console.print(f"  Strict:              {settings.strict_status}")
    console.print()
    console.print("[bold]Logs:[/bold]")
    console.print(f"  Log store:           {settings.log_store}")
    console.print(f"  Logs directory:      {settings.logs_dir}")
    console.print(f"  Logs URL:            {settings.logs_url or '(none)'}")
    console.print(f"  Log level:           {settings.log_level}")
    console.print()
    console.print("[bold]Retries and timeouts:[/bold]")
    console.print(f"  Status retries:      {settings.status_retries}")
    console.print(f"  Push retries:        {settings.push_retries}")
    console.print(f"  Retry backoff (s):   {settings.retry_backoff}")
    console.print(f"  Stage timeout (s):   {settings.stage_timeout}")
    console.print(f"  HTTP timeout (s):    {settings.http_timeout}")


def _build_to_dict(build: Any) -> dict[str, Any]:
    """Convert a build record to a dictionary."""
    return {
        "id": build.id,
        "repository": build.repository,
        "branch": build.branch,
        "commit": build.commit,
        "status": build.status,
        "requested_at": build.requested_at.isoformat() if build.requested_at else None,
        "started_at": build.started_at.isoformat() if build.started_at else None,
        "finished_at": build.finished_at.isoformat() if build.finished_at else None,
        "log_name": build.log_name,
        "error_stage": build.error_stage,
        "error_message": build.error_message,
        "artifacts": [a.image for a in build.artifacts],
    }


builds_app = typer.Typer(help="Build and publish images")
app.add_typer(builds_app, name="build")


@builds_app.command("run")
def build_run(
    repository: Annotated[
        str, typer.Argument(help="Repository to build, as owner/name")
    ],
    commit: Annotated[
        str,
        typer.Option("--commit", "-c", help="Commit to build"),
    ],
    branch: Annotated[
        str,
        typer.Option("--branch", "-b", help="Branch the commit belongs to"),
    ],
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Do not echo build output"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output result as JSON"),
    ] = False,
) -> None:
    """Check out, build, tag and push an image for one commit."""
    from conveyor.builds.service import build_resources, run_build
    from conveyor.db import (
        create_all_tables,
        get_engine,
        get_session,
        get_session_factory,
    )
    from conveyor.source.git import InvalidRefError
    from conveyor.status.reporter import InvalidRepositoryError

    settings = get_settings()
    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    factory = get_session_factory(engine)

    echo = None if quiet or json_output else sys.stdout.buffer
    # Keep stdout parseable when emitting JSON
    status_fallback = sys.stderr if json_output else None

    try:
        with build_resources(settings, status_fallback=status_fallback) as (
            orchestrator,
            log_store,
        ):
            with get_session(factory) as session:
                build, outcome = run_build(
                    session,
                    repository=repository,
                    commit=commit,
                    branch=branch,
                    orchestrator=orchestrator,
                    log_store=log_store,
                    echo=echo,
                )
                result = _build_to_dict(build)
    except (InvalidRepositoryError, InvalidRefError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=2) from None

    if json_output:
        typer.echo(json.dumps(result, indent=2))
    elif outcome.succeeded:
        console.print(
            f"[green]Build #{result['id']} succeeded: {repository}:{commit}[/green]"
        )
    else:
        console.print(
            f"[red]Build #{result['id']} failed: {result['error_message']}[/red]"
        )

    if not outcome.succeeded:
        raise typer.Exit(code=1)


@builds_app.command("list")
def builds_list(
    repository: Annotated[
        str | None,
        typer.Option("--repository", "-r", help="Filter by repository"),
    ] = None,
    status: Annotated[
        str | None,
        typer.Option(
            "--status", "-s", help="Filter by status (pending/running/succeeded/failed)"
        ),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of records to return"),
    ] = 100,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List build records."""
    from conveyor.builds.service import list_builds
    from conveyor.db import (
        create_all_tables,
        get_engine,
        get_session,
        get_session_factory,
    )
    from conveyor.types import BuildStatus

    # Parse status filter
    status_filter: BuildStatus | None = None
    if status:
        try:
            status_filter = BuildStatus(status)
        except ValueError:
            console.print(f"[red]Invalid status: {status}[/red]")
            console.print("Valid values: pending, running, succeeded, failed")
            raise typer.Exit(code=1) from None

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with get_session(factory) as session:
        builds = list_builds(
            session, repository=repository, status=status_filter, limit=limit
        )

        if not builds:
            if json_output:
                typer.echo("[]")
            else:
                console.print("[yellow]No build records found[/yellow]")
            return

        if json_output:
            typer.echo(json.dumps([_build_to_dict(b) for b in builds], indent=2))
            return

        console.print(f"[bold]Found {len(builds)} build(s):[/bold]")
        console.print()
        for b in builds:
            status_color = {
                "succeeded": "green",
                "failed": "red",
                "running": "blue",
                "pending": "yellow",
            }.get(b.status, "white")
            console.print(f"  [{status_color}]Build #{b.id}[/{status_color}]")
            console.print(f"    Repository: {b.repository}")
            console.print(f"    Branch: {b.branch}")
            console.print(f"    Commit: {b.commit}")
            console.print(f"    Status: {b.status}")
            console.print(
                f"    Requested: {b.requested_at.isoformat() if b.requested_at else 'N/A'}"
            )
            if b.error_message:
                console.print(f"    Error: {b.error_message}")
            console.print()


artifacts_app = typer.Typer(help="Inspect build artifacts")
app.add_typer(artifacts_app, name="artifacts")


@artifacts_app.command("list")
def artifacts_list(
    build_id: Annotated[int, typer.Argument(help="Build ID")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """List images produced by a build."""
    from conveyor.builds.service import BuildNotFoundError, get_build_artifacts
    from conveyor.db import (
        create_all_tables,
        get_engine,
        get_session,
        get_session_factory,
    )

    engine = get_engine()
    create_all_tables(engine)
    factory = get_session_factory(engine)

    with get_session(factory) as session:
        try:
            artifacts = get_build_artifacts(session, build_id)
        except BuildNotFoundError:
            console.print(f"[red]Build not found: {build_id}[/red]")
            raise typer.Exit(code=1) from None

        if json_output:
            output = [
                {
                    "id": a.id,
                    "build_id": a.build_id,
                    "image": a.image,
                    "created_at": a.created_at.isoformat() if a.created_at else None,
                }
                for a in artifacts
            ]
            typer.echo(json.dumps(output, indent=2))
            return

        if not artifacts:
            console.print(f"[yellow]No artifacts for build {build_id}[/yellow]")
            return

        console.print(f"[bold]Artifacts for build #{build_id}:[/bold]")
        for a in artifacts:
            console.print(f"  {a.image}")


if __name__ == "__main__":
    app()
