"""Shared fixtures: throwaway SVK source repositories built with real git."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from textwrap import dedent
from typing import Callable

import pytest

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")

INSTALL_SH = """\
#!/bin/bash
set -e
TARGET="${{1:-.}}"
mkdir -p "$TARGET/.claude/skills/{name}"
cp SKILL.md "$TARGET/.claude/skills/{name}/SKILL.md"
"""

FAILING_INSTALL_SH = """\
#!/bin/bash
echo "cannot install {name}" >&2
exit 4
"""


def run_git(repo: Path, *args: str) -> str:
    """Run git in ``repo`` with a fixed identity and no signing."""
    result = subprocess.run(
        [
            "git", "-C", str(repo),
            "-c", "user.name=SVK Tests",
            "-c", "user.email=tests@example.invalid",
            "-c", "commit.gpgsign=false",
            "-c", "tag.gpgsign=false",
            *args,
        ],
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def write_skill(repo: Path, name: str, version: str = "1.0.0", failing: bool = False,
                with_installer: bool = True) -> Path:
    """Create or overwrite a skill directory in a source repository."""
    skill_dir = repo / name
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(dedent(f"""\
        ---
        name: {name}
        version: "{version}"
        ---

        # {name}
        """))
    if with_installer:
        template = FAILING_INSTALL_SH if failing else INSTALL_SH
        (skill_dir / "install.sh").write_text(template.format(name=name))
    return skill_dir


def commit_all(repo: Path, message: str, tag: str | None = None, tag_message: str | None = None) -> None:
    run_git(repo, "add", "-A")
    run_git(repo, "commit", "--quiet", "-m", message)
    if tag and tag_message:
        run_git(repo, "tag", "-a", tag, "-m", tag_message)
    elif tag:
        run_git(repo, "tag", tag)


@pytest.fixture
def git() -> Callable[..., str]:
    return run_git


@pytest.fixture
def empty_repo(tmp_path: Path) -> Path:
    """A git repository with one commit and no tags."""
    repo = tmp_path / "svk"
    repo.mkdir()
    run_git(repo, "init", "--quiet")
    (repo / "README.md").write_text("# SVK\n")
    write_skill(repo, "alpha")
    commit_all(repo, "initial")
    return repo


@pytest.fixture
def svk_repo(tmp_path: Path) -> Path:
    """A source repository with two releases.

    v1.0.0: alpha, beta, gamma (all with install.sh), docs/ (no installer)
    v1.1.0: alpha and beta changed, README changed, gamma untouched
    """
    repo = tmp_path / "svk"
    repo.mkdir()
    run_git(repo, "init", "--quiet")
    (repo / "README.md").write_text("# SVK\n")
    (repo / "docs").mkdir()
    (repo / "docs" / "index.md").write_text("docs\n")
    for name in ("alpha", "beta", "gamma"):
        write_skill(repo, name)
    commit_all(repo, "Release 1.0.0", tag="v1.0.0")

    write_skill(repo, "alpha", version="1.1.0")
    write_skill(repo, "beta", version="1.1.0")
    (repo / "README.md").write_text("# SVK\n\nNow with more skills.\n")
    commit_all(repo, "Improve alpha and beta", tag="v1.1.0",
               tag_message="SVK 1.1.0\n\nAlpha and beta detection improvements.")
    return repo


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """An empty project directory that skills get installed into."""
    root = tmp_path / "project"
    root.mkdir()
    return root
