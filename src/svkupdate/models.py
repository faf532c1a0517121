"""SVK Update data models: the svk-meta.json schema and per-run values as Pydantic models.

Only InstallationMetadata is persisted. Everything else (tags, decisions,
change-sets, per-skill results) is recomputed on every run.
"""

from __future__ import annotations

import enum
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

from . import UNKNOWN_VERSION

# snake_case keys written by the skills' own install.sh scripts
LEGACY_KEYS = frozenset(
    {
        "svk_repo",
        "source_repo_path",
        "installed_version",
        "installed_skills",
        "installed_at",
        "updated_at",
        "failed_skills",
    }
)

# skill lists that install.sh appends to alongside ours; both sides are kept
_MERGED_SKILL_KEYS = (("installedSkills", "installed_skills"), ("failedSkills", "failed_skills"))


def normalize_version(value: str) -> str:
    """Strip whitespace and a leading 'v' so '1.2.0' and 'v1.2.0' compare equal."""
    value = value.strip()
    if len(value) > 1 and value[0] in "vV" and value[1].isdigit():
        return value[1:]
    return value


class InstallationMetadata(BaseModel):
    """What the project has installed from the source repository.

    Unknown keys are kept as extras so files written by newer tools survive
    a load/save round trip.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    source_repo_path: str = Field(
        validation_alias=AliasChoices("sourceRepoPath", "source_repo_path", "svk_repo"),
        serialization_alias="sourceRepoPath",
        description="Path to the local clone of the source repository",
    )
    installed_version: str = Field(
        default=UNKNOWN_VERSION,
        validation_alias=AliasChoices("installedVersion", "installed_version"),
        serialization_alias="installedVersion",
    )
    installed_skills: set[str] = Field(
        default_factory=set,
        validation_alias=AliasChoices("installedSkills", "installed_skills"),
        serialization_alias="installedSkills",
    )
    installed_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("installedAt", "installed_at", "updated_at"),
        serialization_alias="installedAt",
        description="Last successful update; diagnostics only",
    )
    failed_skills: set[str] = Field(
        default_factory=set,
        validation_alias=AliasChoices("failedSkills", "failed_skills"),
        serialization_alias="failedSkills",
        description="Skills whose reinstall failed on the last run",
    )

    @model_validator(mode="before")
    @classmethod
    def merge_legacy_skill_lists(cls, data: Any) -> Any:
        """Union camelCase and snake_case skill lists when a file has both."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for canonical, legacy in _MERGED_SKILL_KEYS:
            if canonical in data and legacy in data:
                ours = data[canonical] or []
                theirs = data.pop(legacy) or []
                data[canonical] = sorted(set(ours) | set(theirs))
        return data

    @field_validator("source_repo_path")
    @classmethod
    def validate_repo_path(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("sourceRepoPath must not be empty")
        return v.strip()

    @field_validator("installed_version", mode="before")
    @classmethod
    def validate_version(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return UNKNOWN_VERSION
        return str(v).strip()

    @field_serializer("installed_skills", "failed_skills")
    def serialize_skill_set(self, skills: set[str]) -> list[str]:
        return sorted(skills)

    @property
    def has_known_version(self) -> bool:
        return self.installed_version != UNKNOWN_VERSION

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with the canonical camelCase keys, folding legacy keys away."""
        data = self.model_dump(mode="json", by_alias=True)
        for key in LEGACY_KEYS:
            data.pop(key, None)
        return data


class VersionTag(BaseModel):
    """One tag of the source repository, e.g. 'v1.1.0'."""

    model_config = ConfigDict(frozen=True)

    name: str

    @property
    def version(self) -> str:
        """The tag name without its leading 'v'."""
        return normalize_version(self.name)

    def __str__(self) -> str:
        return self.name


class UpdateStatus(str, enum.Enum):
    """Outcome of comparing the installed version with the latest tag."""

    UP_TO_DATE = "up_to_date"
    NO_RELEASES = "no_releases"
    UPDATE_AVAILABLE = "update_available"


class UpdateDecision(BaseModel):
    status: UpdateStatus
    latest: Optional[VersionTag] = None


class ChangeSet(BaseModel):
    """Skills to reinstall this run, plus the sets shown to the operator."""

    to_update: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    missing: list[str] = Field(
        default_factory=list, description="Installed skills absent from the latest tag"
    )
    retrying: list[str] = Field(
        default_factory=list, description="Previously failed skills queued again"
    )
    fallback: bool = Field(
        default=False, description="No skills were tracked; every changed installable skill is queued"
    )

    @property
    def is_empty(self) -> bool:
        return not self.to_update


class SkillOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkillResult(BaseModel):
    """Result of reinstalling one skill."""

    skill: str
    outcome: SkillOutcome
    message: str = ""
    version: Optional[str] = Field(default=None, description="Version from the skill's SKILL.md")


class RunState(str, enum.Enum):
    """States of a single update run."""

    IDLE = "idle"
    CHECKING_METADATA = "checking_metadata"
    FETCHING_REMOTE = "fetching_remote"
    COMPARING_VERSIONS = "comparing_versions"
    UP_TO_DATE = "up_to_date"
    NO_RELEASES = "no_releases"
    RESOLVING_CHANGES = "resolving_changes"
    PLANNED = "planned"
    REINSTALLING = "reinstalling"
    PERSISTING_STATE = "persisting_state"
    DONE = "done"
    FAILED = "failed"


class UpdateReport(BaseModel):
    """Everything a finished run did, for rendering and exit codes."""

    state: RunState = RunState.IDLE
    failed_step: Optional[RunState] = None
    from_version: Optional[str] = None
    to_version: Optional[str] = None
    change_set: Optional[ChangeSet] = None
    results: list[SkillResult] = Field(default_factory=list)
    release_notes: str = ""

    def _with_outcome(self, outcome: SkillOutcome) -> list[str]:
        return [r.skill for r in self.results if r.outcome == outcome]

    @property
    def succeeded(self) -> list[str]:
        return self._with_outcome(SkillOutcome.SUCCESS)

    @property
    def failed(self) -> list[str]:
        return self._with_outcome(SkillOutcome.FAILED)

    @property
    def skipped(self) -> list[str]:
        return self._with_outcome(SkillOutcome.SKIPPED)

    @property
    def partial(self) -> bool:
        """True when the run finished but at least one skill failed to install."""
        return self.state == RunState.DONE and bool(self.failed)


def read_skill_version(skill_dir: Path) -> Optional[str]:
    """Read the ``version:`` field from a skill's SKILL.md front matter.

    Args:
        skill_dir: The skill directory inside the source repository.

    Returns:
        The version string, or None when SKILL.md or the field is absent
        or the front matter is not valid YAML.
    """
    skill_md = skill_dir / "SKILL.md"
    if not skill_md.is_file():
        return None

    text = skill_md.read_text(encoding="utf-8", errors="replace")
    if not text.startswith("---"):
        return None
    parts = text.split("---", 2)
    if len(parts) < 3:
        return None

    try:
        front = yaml.safe_load(parts[1])
    except yaml.YAMLError:
        return None
    if not isinstance(front, dict) or front.get("version") is None:
        return None
    return str(front["version"])
