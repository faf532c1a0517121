"""SVK Update source repository: read-only queries against the local SVK clone.

Everything except checkout() works on git objects (tags, trees, diffs), never
on the working tree, so the change-set can be computed and shown before the
clone is touched.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional, Protocol

from .models import VersionTag, normalize_version

logger = logging.getLogger("svkupdate.source")

INSTALL_ENTRYPOINTS = ("install.sh", "install.py")


class RepositoryError(RuntimeError):
    """A git command against the source repository failed."""


class CheckoutError(RepositoryError):
    """The working tree could not be moved to the requested tag."""


class FetchError(ConnectionError):
    """Remote tags could not be fetched (offline, unreachable, timed out)."""


class SourceRepository(Protocol):
    """Operations the updater needs from the versioned source of skills."""

    path: Path

    def fetch_tags(self) -> None: ...

    def latest_tag(self) -> Optional[VersionTag]: ...

    def resolve_tag(self, version: str) -> Optional[str]: ...

    def changed_top_level_dirs(self, from_tag: str, to_tag: str) -> set[str]: ...

    def skill_dirs(self, tag: str) -> set[str]: ...

    def installable_skills(self, tag: str) -> set[str]: ...

    def release_notes(self, tag: str, since: Optional[str] = None) -> str: ...

    def checkout(self, tag: str) -> None: ...


class GitSourceRepository:
    """SourceRepository backed by a local git clone.

    Args:
        path: The clone's root directory.
        fetch_timeout: Seconds before a fetch is abandoned as unreachable.
    """

    def __init__(self, path: Path, fetch_timeout: Optional[float] = 60.0) -> None:
        self.path = Path(path).expanduser()
        self.fetch_timeout = fetch_timeout

    def _git(self, *args: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        """Run a git command in the clone and return the completed process.

        Raises:
            RepositoryError: If git is missing or exits non-zero.
        """
        cmd = ["git", "-C", str(self.path), *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except FileNotFoundError as exc:
            raise RepositoryError("git executable not found on PATH") from exc
        if result.returncode != 0:
            raise RepositoryError(
                f"git {' '.join(args)} failed (rc={result.returncode}): {result.stderr.strip()}"
            )
        return result

    def _lines(self, *args: str) -> list[str]:
        return [line.strip() for line in self._git(*args).stdout.splitlines() if line.strip()]

    def remotes(self) -> list[str]:
        return self._lines("remote")

    def fetch_tags(self) -> None:
        """Sync remote tags into the clone.

        A clone without any remote is its own source of truth and is not
        fetched.

        Raises:
            FetchError: If the remote cannot be reached.
        """
        if not self.remotes():
            logger.info("No remote configured for %s, using local tags", self.path)
            return
        try:
            self._git("fetch", "--tags", "--force", "--quiet", timeout=self.fetch_timeout)
        except subprocess.TimeoutExpired as exc:
            raise FetchError(
                f"Fetching tags for {self.path} timed out after {self.fetch_timeout:g}s"
            ) from exc
        except RepositoryError as exc:
            raise FetchError(f"Could not fetch tags for {self.path}: {exc}") from exc

    def tags(self) -> list[VersionTag]:
        """All tags, highest version first."""
        return [VersionTag(name=name) for name in self._lines("tag", "--list", "--sort=-v:refname")]

    def latest_tag(self) -> Optional[VersionTag]:
        tags = self.tags()
        return tags[0] if tags else None

    def resolve_tag(self, version: str) -> Optional[str]:
        """Find the tag that names an installed version, with or without 'v'."""
        wanted = normalize_version(version)
        for tag in self.tags():
            if tag.version == wanted:
                return tag.name
        return None

    def changed_top_level_dirs(self, from_tag: str, to_tag: str) -> set[str]:
        """First path segments of every file that differs between two tags.

        Files at the repository root have no directory segment and are ignored.
        """
        changed: set[str] = set()
        for path in self._lines("diff", "--name-only", "--no-renames", from_tag, to_tag, "--"):
            head, sep, _ = path.partition("/")
            if sep and head:
                changed.add(head)
        return changed

    def skill_dirs(self, tag: str) -> set[str]:
        """Top-level directories in the tree of ``tag``."""
        return {name for name in self._lines("ls-tree", "-d", "--name-only", tag)
                if not name.startswith(".")}

    def installable_skills(self, tag: str) -> set[str]:
        """Top-level directories at ``tag`` that contain an install entry point."""
        found: set[str] = set()
        for path in self._lines("ls-tree", "-r", "--name-only", tag):
            parts = path.split("/")
            if len(parts) == 2 and parts[1] in INSTALL_ENTRYPOINTS:
                found.add(parts[0])
        return found

    def release_notes(self, tag: str, since: Optional[str] = None) -> str:
        """Annotation of ``tag``, or commit subjects since ``since`` for lightweight tags."""
        annotation = self._git(
            "for-each-ref", "--format=%(objecttype) %(contents)", f"refs/tags/{tag}"
        ).stdout.strip()
        kind, _, body = annotation.partition(" ")
        if kind == "tag" and body.strip():
            return body.strip()

        rev_range = f"{since}..{tag}" if since else tag
        return "\n".join(
            f"- {subject}" for subject in self._lines("log", "--format=%s", "-n", "20", rev_range)
        )

    def checkout(self, tag: str) -> None:
        """Move the clone's working tree to ``tag``.

        Raises:
            CheckoutError: If git refuses (unknown tag, local changes in the way).
        """
        try:
            self._git("checkout", "--quiet", tag)
        except RepositoryError as exc:
            raise CheckoutError(f"Could not check out {tag} in {self.path}: {exc}") from exc
        logger.info("Checked out %s in %s", tag, self.path)
