"""SVK Update installers: run each changed skill's own install entry point.

A skill directory in the source repository exposes exactly one entry point
that takes the project root as its only argument:

    dinhs-bulwark/install.sh     ->  bash install.sh <project_root>
    some-skill/install.py        ->  python install.py <project_root>

The orchestrator never looks inside these scripts; it only records whether
each one succeeded.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path
from typing import Callable, Optional, Protocol

from .models import ChangeSet, SkillOutcome, SkillResult, read_skill_version

logger = logging.getLogger("svkupdate.installer")


class InstallError(RuntimeError):
    """A skill's install entry point failed."""


class Installer(Protocol):
    """Uniform interface over a skill's install procedure."""

    skill: str

    def install(self, project_root: Path) -> None: ...


class ScriptInstaller:
    """Runs an install script from inside the skill directory.

    Args:
        skill_dir: The skill's directory in the source repository.
        script: Entry point file name within ``skill_dir``.
        timeout: Seconds before the script is killed, None for no limit.
    """

    interpreter: tuple[str, ...] = ()

    def __init__(self, skill_dir: Path, script: str, timeout: Optional[float] = None) -> None:
        self.skill_dir = skill_dir
        self.skill = skill_dir.name
        self.script = skill_dir / script
        self.timeout = timeout

    def command(self, project_root: Path) -> list[str]:
        return [*self.interpreter, str(self.script), str(project_root)]

    def install(self, project_root: Path) -> None:
        """Run the script; raise InstallError on a non-zero exit or timeout."""
        cmd = self.command(project_root)
        logger.debug("Installing %s: %s", self.skill, " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=self.skill_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise InstallError(f"{self.script.name} timed out after {self.timeout:g}s") from exc
        except OSError as exc:
            raise InstallError(f"Could not run {self.script.name}: {exc}") from exc

        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip().splitlines()
            tail = detail[-1] if detail else "no output"
            raise InstallError(f"{self.script.name} exited with {result.returncode}: {tail}")


class ShellScriptInstaller(ScriptInstaller):
    interpreter = ("bash",)

    def __init__(self, skill_dir: Path, timeout: Optional[float] = None) -> None:
        super().__init__(skill_dir, "install.sh", timeout)


class PythonScriptInstaller(ScriptInstaller):
    interpreter = (sys.executable,)

    def __init__(self, skill_dir: Path, timeout: Optional[float] = None) -> None:
        super().__init__(skill_dir, "install.py", timeout)


InstallerFactory = Callable[[Path], Optional[Installer]]


def find_installer(skill_dir: Path, timeout: Optional[float] = None) -> Optional[Installer]:
    """Pick the installer for a skill directory from the entry point it ships.

    Returns:
        Installer or None if the directory is missing or has no entry point.
    """
    if (skill_dir / "install.sh").is_file():
        return ShellScriptInstaller(skill_dir, timeout)
    if (skill_dir / "install.py").is_file():
        return PythonScriptInstaller(skill_dir, timeout)
    return None


class Orchestrator:
    """Reinstall every skill of a change-set, one at a time.

    A failing skill is recorded and the remaining skills are still attempted.

    Args:
        repo_path: Root of the source repository (already checked out).
        installer_factory: Maps a skill directory to its Installer.
        install_timeout: Per-skill timeout passed to the default factory.
    """

    def __init__(
        self,
        repo_path: Path,
        installer_factory: Optional[InstallerFactory] = None,
        install_timeout: Optional[float] = None,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.installer_factory = installer_factory or (
            lambda skill_dir: find_installer(skill_dir, install_timeout)
        )

    def apply(
        self,
        change_set: ChangeSet,
        project_root: Path,
        on_result: Optional[Callable[[SkillResult], None]] = None,
    ) -> list[SkillResult]:
        """Run the installers for ``change_set.to_update`` in order.

        Args:
            change_set: Output of the resolver.
            project_root: Passed to every install entry point.
            on_result: Called after each skill, for progress output.

        Returns:
            list[SkillResult]: One entry per skill, in change-set order.
        """
        results: list[SkillResult] = []
        for skill in change_set.to_update:
            result = self._install_one(skill, project_root)
            results.append(result)
            if on_result is not None:
                on_result(result)
        return results

    def _install_one(self, skill: str, project_root: Path) -> SkillResult:
        skill_dir = self.repo_path / skill
        version: Optional[str] = None
        try:
            version = read_skill_version(skill_dir)
            installer = self.installer_factory(skill_dir)
            if installer is None:
                logger.warning("Skill '%s' has no install entry point in %s", skill, self.repo_path)
                return SkillResult(
                    skill=skill,
                    outcome=SkillOutcome.SKIPPED,
                    message="no install entry point",
                    version=version,
                )
            installer.install(project_root)
        except Exception as exc:
            logger.error("Install of '%s' failed: %s", skill, exc)
            return SkillResult(
                skill=skill, outcome=SkillOutcome.FAILED, message=str(exc), version=version
            )

        logger.info("Installed %s%s", skill, f" v{version}" if version else "")
        return SkillResult(skill=skill, outcome=SkillOutcome.SUCCESS, version=version)
