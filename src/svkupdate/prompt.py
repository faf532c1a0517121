"""SVK Update prompt handler: operator input and human-readable status output.

Nothing here gates execution: the plan is displayed and the update proceeds.
The only blocking call is the repository-path prompt on first run.
"""

from __future__ import annotations

from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .models import ChangeSet, InstallationMetadata, SkillOutcome, SkillResult, UpdateReport

RELEASE_NOTES_LINES = 15


class ConfigurationError(ValueError):
    """No usable source repository path is known."""


class PromptHandler:
    """Console front-end for an update run.

    Args:
        console: Rich console to print to (default: stdout).
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console()

    def prompt_for_repo_path(self) -> str:
        """Ask the operator where the SVK source repository is cloned.

        Raises:
            ConfigurationError: If the operator enters nothing.
        """
        self.console.print("[yellow]No SVK installation metadata found for this project.[/yellow]")
        path = click.prompt(
            "Path to your local clone of the SVK repository",
            default="",
            show_default=False,
        ).strip()
        if not path:
            raise ConfigurationError(
                "No SVK repository path given. Re-run and enter the path to your SVK clone, "
                "or pass --repo."
            )
        return path

    # -- plan --------------------------------------------------------------

    def confirm_plan(
        self,
        from_version: str,
        to_version: str,
        change_set: ChangeSet,
        release_notes: str = "",
    ) -> None:
        """Show the version transition and which skills will be reinstalled."""
        if from_version == to_version:
            self.console.print(
                f"\n[cyan bold]SVK {escape(to_version)}[/cyan bold]: retrying previously failed skills"
            )
        else:
            self.console.print(
                f"\n[cyan bold]SVK update available:[/cyan bold] {escape(from_version)} -> "
                f"[green]{escape(to_version)}[/green]"
            )

        if release_notes:
            lines = release_notes.strip().splitlines()
            excerpt = lines[:RELEASE_NOTES_LINES]
            self.console.print("\n  [bold]Release notes:[/bold]")
            for line in excerpt:
                self.console.print(f"    {escape(line)}")
            if len(lines) > RELEASE_NOTES_LINES:
                self.console.print(f"    [dim]... ({len(lines) - RELEASE_NOTES_LINES} more lines)[/dim]")

        if change_set.fallback:
            self.console.print(
                "\n  [dim]No installed skills are tracked yet; updating every changed skill "
                "with an install script.[/dim]"
            )

        table = Table(title="Update plan")
        table.add_column("Skill", style="cyan")
        table.add_column("Action")
        for skill in change_set.to_update:
            action = "[yellow]retry[/yellow]" if skill in change_set.retrying else "[green]update[/green]"
            table.add_row(skill, action)
        for skill in change_set.unchanged:
            table.add_row(skill, "[dim]unchanged, skipping[/dim]")
        for skill in change_set.missing:
            table.add_row(skill, "[red]not in source repository, skipping[/red]")

        if table.row_count:
            self.console.print(table)
        else:
            self.console.print("\n  [dim]No skill files changed; only the recorded version will move.[/dim]")

        for skill in change_set.missing:
            self.console.print(
                f"[yellow]Warning:[/yellow] installed skill '{escape(skill)}' no longer exists "
                f"in the SVK repository at {escape(to_version)}."
            )

    # -- terminal states ---------------------------------------------------

    def up_to_date(self, version: str) -> None:
        self.console.print(f"[green]SVK is up to date[/green] (v{escape(version)}).")

    def no_releases(self) -> None:
        self.console.print(
            "[yellow]The SVK repository has no release tags.[/yellow] Nothing to compare against."
        )

    def check_only(self) -> None:
        self.console.print("\n[dim]Check only: no files were changed.[/dim]")

    def skill_result(self, result: SkillResult) -> None:
        version = f" v{escape(result.version)}" if result.version else ""
        if result.outcome == SkillOutcome.SUCCESS:
            self.console.print(f"  [green]Updated:[/green] {escape(result.skill)}{version}")
        elif result.outcome == SkillOutcome.FAILED:
            self.console.print(f"  [red]Failed:[/red]  {escape(result.skill)}: {escape(result.message)}")
        else:
            self.console.print(f"  [yellow]Skipped:[/yellow] {escape(result.skill)}: {escape(result.message)}")

    def summary(self, report: UpdateReport) -> None:
        change_set = report.change_set or ChangeSet()
        self.console.print(
            f"\n[green bold]SVK updated to {escape(report.to_version or '?')}[/green bold]"
        )
        self.console.print(f"  Updated: {', '.join(report.succeeded) or '-'}")
        not_touched = change_set.unchanged + change_set.missing + report.skipped
        self.console.print(f"  Skipped: {', '.join(sorted(not_touched)) or '-'}")
        if report.failed:
            self.console.print(f"  [red]Failed:  {', '.join(report.failed)}[/red]")
            self.console.print(
                "  [dim]Failed skills are retried on the next run of svk-update.[/dim]"
            )
        self.console.print(
            "\nRestart any running agent session that uses these skills "
            "to pick up the changes."
        )

    def failure(self, headline: str, detail: str) -> None:
        self.console.print(f"[red bold]{escape(headline)}[/red bold]")
        if detail:
            self.console.print(f"  {escape(detail)}")

    def show_metadata(self, metadata: Optional[InstallationMetadata], path: str) -> None:
        if metadata is None:
            self.console.print(f"[dim]No SVK metadata at {escape(path)}.[/dim]")
            return
        self.console.print(f"\n[cyan bold]SVK installation[/cyan bold] ({escape(path)})")
        self.console.print(f"  Repository: {escape(metadata.source_repo_path)}")
        self.console.print(f"  Version:    {escape(metadata.installed_version)}")
        installed_at = metadata.installed_at.isoformat() if metadata.installed_at else "-"
        self.console.print(f"  Updated:    {installed_at}")
        self.console.print(f"  Skills:     {', '.join(sorted(metadata.installed_skills)) or '-'}")
        if metadata.failed_skills:
            self.console.print(f"  [red]Failed:     {', '.join(sorted(metadata.failed_skills))}[/red]")
