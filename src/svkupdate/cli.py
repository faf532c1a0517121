"""SVK Update CLI: keep a project's SVK skills in step with the SVK repository.

Commands:
    update      Check for a new SVK release and reinstall changed skills (default)
    status      Show what this project has installed
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .installer import Orchestrator
from .metadata import MetadataError, MetadataStore
from .prompt import PromptHandler
from .source import GitSourceRepository
from .updater import UpdateFailed, UpdateManager

console = Console()

EXIT_FAILED = 1
EXIT_PARTIAL = 3


def _default_project_root() -> Path:
    """Resolve the project root, respecting the SVK_PROJECT_ROOT env var.

    Returns:
        Path: The project directory (default: current working directory).
    """
    env = os.environ.get("SVK_PROJECT_ROOT")
    if env:
        return Path(env).expanduser()
    return Path.cwd()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="svk-update")
@click.pass_context
def main(ctx: click.Context) -> None:
    """SVK Update: selective reinstallation of SVK skills.

    With no command, runs `update`.
    """
    if ctx.invoked_subcommand is None:
        # parse an empty argument list so option envvars apply as they do for `update`
        with update.make_context("update", [], parent=ctx) as sub_ctx:
            update.invoke(sub_ctx)


@main.command()
@click.option(
    "--project-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project the skills are installed into (default: SVK_PROJECT_ROOT or cwd).",
)
@click.option(
    "--repo",
    envvar="SVK_REPO",
    default=None,
    help="SVK repository clone to record on first run (skips the prompt).",
)
@click.option("--check", is_flag=True, help="Show the update plan without changing anything.")
@click.option(
    "--fetch-timeout",
    type=float,
    default=60.0,
    show_default=True,
    envvar="SVK_FETCH_TIMEOUT",
    help="Seconds before fetching tags is abandoned.",
)
@click.option(
    "--install-timeout",
    type=float,
    default=None,
    envvar="SVK_INSTALL_TIMEOUT",
    help="Seconds before a skill's install script is killed (default: no limit).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every git and install command.")
def update(
    project_root: Optional[Path] = None,
    repo: Optional[str] = None,
    check: bool = False,
    fetch_timeout: float = 60.0,
    install_timeout: Optional[float] = None,
    verbose: bool = False,
) -> None:
    """Check for a new SVK release and reinstall the skills that changed."""
    _configure_logging(verbose)
    prompt = PromptHandler(console)
    manager = UpdateManager(
        project_root or _default_project_root(),
        prompt=prompt,
        repo_path=repo,
        repository_factory=lambda path: GitSourceRepository(path, fetch_timeout=fetch_timeout),
        orchestrator_factory=lambda path: Orchestrator(path, install_timeout=install_timeout),
        check_only=check,
    )
    try:
        report = manager.run()
    except UpdateFailed as exc:
        prompt.failure(exc.headline, str(exc.cause))
        sys.exit(EXIT_FAILED)

    if report.partial:
        sys.exit(EXIT_PARTIAL)


@main.command()
@click.option(
    "--project-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project the skills are installed into (default: SVK_PROJECT_ROOT or cwd).",
)
def status(project_root: Optional[Path]) -> None:
    """Show the SVK version and skills recorded for this project."""
    store = MetadataStore(project_root or _default_project_root())
    prompt = PromptHandler(console)
    try:
        metadata = store.load()
    except MetadataError as exc:
        prompt.failure("Could not read SVK installation metadata", str(exc))
        sys.exit(EXIT_FAILED)
    prompt.show_metadata(metadata, str(store.path))


if __name__ == "__main__":
    main()
