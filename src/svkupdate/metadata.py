"""SVK Update metadata store: reads and atomically writes .claude/svk-meta.json.

File layout (canonical keys; legacy snake_case keys are accepted on load):
    {
      "sourceRepoPath": "/home/me/solana-vulnerability-kit",
      "installedVersion": "1.1.0",
      "installedSkills": ["dinhs-bulwark", "svk-update"],
      "installedAt": "2026-10-18T09:12:44Z",
      "failedSkills": []
    }
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from . import META_RELATIVE_PATH, UNKNOWN_VERSION
from .models import InstallationMetadata

logger = logging.getLogger("svkupdate.metadata")


class MetadataError(OSError):
    """The state file exists but cannot be read, or cannot be written."""


class MetadataStore:
    """Load and save the installation metadata of one project.

    Args:
        project_root: The project the skills are installed into.
        path: Override for the state file location.
    """

    def __init__(self, project_root: Path, path: Optional[Path] = None) -> None:
        self.project_root = Path(project_root).expanduser()
        self.path = path or self.project_root / META_RELATIVE_PATH

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[InstallationMetadata]:
        """Read the state file.

        Returns:
            InstallationMetadata, or None when no state file exists (first run).

        Raises:
            MetadataError: If the file exists but is unreadable or malformed.
        """
        if not self.path.exists():
            logger.debug("No metadata at %s", self.path)
            return None

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise MetadataError(f"Cannot read {self.path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise MetadataError(
                f"{self.path} must contain a JSON object, got {type(raw).__name__}"
            )

        try:
            return InstallationMetadata.model_validate(raw)
        except ValidationError as exc:
            raise MetadataError(f"Invalid metadata in {self.path}: {exc}") from exc

    def save(self, metadata: InstallationMetadata) -> Path:
        """Persist metadata, replacing the previous file atomically.

        The new content goes to a temporary file in the same directory and is
        renamed over the old one, so readers see either the old or the new
        file and never a partial write.

        Raises:
            MetadataError: If the file could not be written. The previous
                file is left untouched.
        """
        payload = json.dumps(metadata.to_json_dict(), indent=2) + "\n"
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise MetadataError(f"Cannot write {self.path}: {exc}") from exc

        logger.info("Saved metadata: version %s, %d skills",
                    metadata.installed_version, len(metadata.installed_skills))
        return self.path

    def initialize(self, source_repo_path: str) -> InstallationMetadata:
        """Create and persist first-run metadata pointing at the source repository.

        Written before anything else happens, so a failed first update still
        leaves a re-runnable state file.
        """
        metadata = InstallationMetadata(
            source_repo_path=source_repo_path,
            installed_version=UNKNOWN_VERSION,
            installed_skills=set(),
        )
        self.save(metadata)
        return metadata
