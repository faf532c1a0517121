"""SVK Update manager: one update run from metadata load to metadata save.

States:
    IDLE -> CHECKING_METADATA -> FETCHING_REMOTE -> COMPARING_VERSIONS
        -> UP_TO_DATE | NO_RELEASES                       (terminal, nothing written)
        -> RESOLVING_CHANGES -> PLANNED                   (terminal, --check)
        -> RESOLVING_CHANGES -> REINSTALLING -> PERSISTING_STATE -> DONE
    any step -> FAILED (UpdateFailed carries the step)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .comparator import decide
from .installer import Orchestrator
from .metadata import MetadataError, MetadataStore
from .models import (
    InstallationMetadata,
    RunState,
    SkillOutcome,
    UpdateReport,
    UpdateStatus,
)
from .prompt import ConfigurationError, PromptHandler
from .resolver import resolve
from .source import CheckoutError, FetchError, GitSourceRepository, RepositoryError, SourceRepository

logger = logging.getLogger("svkupdate.updater")


class UpdateFailed(RuntimeError):
    """An update run stopped at ``step``.

    Attributes:
        step: The state the run was in when it failed.
        headline: One-line operator message, unique per cause.
        cause: The underlying exception.
        report: What the run had done before failing.
    """

    def __init__(
        self,
        step: RunState,
        headline: str,
        cause: Exception,
        report: Optional[UpdateReport] = None,
    ) -> None:
        super().__init__(f"{headline}: {cause}")
        self.step = step
        self.headline = headline
        self.cause = cause
        self.report = report


class UpdateManager:
    """Bring a project's installed SVK skills up to date with the source repository.

    Args:
        project_root: Project the skills are installed into.
        store: Metadata store (default: <project_root>/.claude/svk-meta.json).
        prompt: Operator front-end (default: console PromptHandler).
        repo_path: Source repository to record on first run instead of prompting.
        repository_factory: Builds the SourceRepository for a path.
        orchestrator_factory: Builds the Orchestrator for a checked-out path.
        check_only: Stop after showing the plan; change nothing.
    """

    def __init__(
        self,
        project_root: Path,
        *,
        store: Optional[MetadataStore] = None,
        prompt: Optional[PromptHandler] = None,
        repo_path: Optional[str] = None,
        repository_factory: Callable[[Path], SourceRepository] = GitSourceRepository,
        orchestrator_factory: Callable[[Path], Orchestrator] = Orchestrator,
        check_only: bool = False,
    ) -> None:
        self.project_root = Path(project_root).expanduser().resolve()
        self.store = store or MetadataStore(self.project_root)
        self.prompt = prompt or PromptHandler()
        self.repo_path = repo_path
        self.repository_factory = repository_factory
        self.orchestrator_factory = orchestrator_factory
        self.check_only = check_only
        self.state = RunState.IDLE
        self.report = UpdateReport()

    def _enter(self, state: RunState) -> None:
        logger.debug("%s -> %s", self.state.value, state.value)
        self.state = state
        self.report.state = state

    def _fail(self, headline: str, cause: Exception) -> UpdateFailed:
        step = self.state
        self.report.failed_step = step
        self._enter(RunState.FAILED)
        logger.error("%s (%s): %s", headline, step.value, cause)
        return UpdateFailed(step, headline, cause, self.report)

    def run(self) -> UpdateReport:
        """Execute one update run.

        Returns:
            UpdateReport: The terminal state and what was done.

        Raises:
            UpdateFailed: On any unrecoverable error. Per-skill install
                failures are not errors; they are reported in the result.
        """
        self.report = UpdateReport()
        self.state = RunState.IDLE

        self._enter(RunState.CHECKING_METADATA)
        metadata = self._load_metadata()
        repo = self._open_repository(metadata)

        self._enter(RunState.FETCHING_REMOTE)
        try:
            repo.fetch_tags()
        except FetchError as exc:
            raise self._fail(
                "Could not check for updates: fetching tags from the SVK repository failed", exc
            )
        except RepositoryError as exc:
            raise self._fail("The SVK repository path is not a usable git clone", exc)

        self._enter(RunState.COMPARING_VERSIONS)
        try:
            latest = repo.latest_tag()
        except RepositoryError as exc:
            raise self._fail("Could not list tags in the SVK repository", exc)

        decision = decide(metadata.installed_version, latest)
        self.report.from_version = metadata.installed_version

        if decision.status == UpdateStatus.NO_RELEASES:
            self._enter(RunState.NO_RELEASES)
            self.prompt.no_releases()
            return self.report

        latest = decision.latest
        if latest is None:
            raise self._fail(
                "Could not list tags in the SVK repository",
                RepositoryError(f"no tag found for status {decision.status.value}"),
            )
        self.report.to_version = latest.version

        if decision.status == UpdateStatus.UP_TO_DATE and not metadata.failed_skills:
            self._enter(RunState.UP_TO_DATE)
            self.prompt.up_to_date(latest.version)
            return self.report

        self._enter(RunState.RESOLVING_CHANGES)
        try:
            from_tag = (
                repo.resolve_tag(metadata.installed_version)
                if metadata.has_known_version
                else None
            )
            available = repo.skill_dirs(latest.name)
            installable = repo.installable_skills(latest.name)

            if decision.status == UpdateStatus.UP_TO_DATE:
                changed: set[str] = set()
            elif from_tag is None:
                logger.info(
                    "Installed version %r has no tag; treating every skill as changed",
                    metadata.installed_version,
                )
                changed = set(available)
            else:
                changed = repo.changed_top_level_dirs(from_tag, latest.name)

            notes = ""
            if decision.status == UpdateStatus.UPDATE_AVAILABLE:
                notes = repo.release_notes(latest.name, since=from_tag)
        except RepositoryError as exc:
            raise self._fail("Could not compute which skills changed", exc)

        change_set = resolve(
            changed,
            metadata.installed_skills,
            installable=installable,
            available=available,
            pending=metadata.failed_skills,
        )
        self.report.change_set = change_set
        self.report.release_notes = notes
        self.prompt.confirm_plan(metadata.installed_version, latest.version, change_set, notes)

        if self.check_only:
            self._enter(RunState.PLANNED)
            self.prompt.check_only()
            return self.report

        self._enter(RunState.REINSTALLING)
        try:
            repo.checkout(latest.name)
        except CheckoutError as exc:
            raise self._fail(f"Could not check out SVK {latest.name}", exc)

        orchestrator = self.orchestrator_factory(repo.path)
        self.report.results = orchestrator.apply(
            change_set, self.project_root, on_result=self.prompt.skill_result
        )

        self._enter(RunState.PERSISTING_STATE)
        updated = self._next_metadata(metadata, latest.version)
        try:
            self.store.save(updated)
        except MetadataError as exc:
            if self.report.succeeded:
                raise self._fail(
                    "Skills were updated on disk but the tracking state could not be saved; "
                    f"{self.store.path} still records version {metadata.installed_version}",
                    exc,
                )
            raise self._fail(f"Could not save the new SVK version to {self.store.path}", exc)

        self._enter(RunState.DONE)
        self.prompt.summary(self.report)
        return self.report

    def _load_metadata(self) -> InstallationMetadata:
        try:
            metadata = self.store.load()
        except MetadataError as exc:
            raise self._fail("Could not read SVK installation metadata", exc)
        if metadata is not None:
            return metadata

        try:
            repo_path = self.repo_path or self.prompt.prompt_for_repo_path()
        except ConfigurationError as exc:
            raise self._fail("No SVK repository configured", exc)

        try:
            metadata = self.store.initialize(repo_path)
        except MetadataError as exc:
            raise self._fail("Could not create SVK installation metadata", exc)
        logger.info("Created %s for repository %s", self.store.path, repo_path)
        return metadata

    def _open_repository(self, metadata: InstallationMetadata) -> SourceRepository:
        repo_path = Path(metadata.source_repo_path).expanduser()
        if not repo_path.is_absolute():
            repo_path = self.project_root / repo_path
        if not repo_path.is_dir():
            raise self._fail(
                "SVK repository not found",
                ConfigurationError(
                    f"{repo_path} does not exist; fix sourceRepoPath in {self.store.path}"
                ),
            )
        return self.repository_factory(repo_path)

    def _next_metadata(
        self, metadata: InstallationMetadata, new_version: str
    ) -> InstallationMetadata:
        succeeded = {r.skill for r in self.report.results if r.outcome == SkillOutcome.SUCCESS}
        failed = {r.skill for r in self.report.results if r.outcome == SkillOutcome.FAILED}
        return metadata.model_copy(
            update={
                "installed_version": new_version,
                "installed_skills": set(metadata.installed_skills) | succeeded,
                "failed_skills": failed,
                "installed_at": datetime.now(timezone.utc),
            }
        )
