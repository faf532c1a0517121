"""SVK Update comparator: decide whether the latest tag is newer than what's installed."""

from __future__ import annotations

from typing import Optional

from .models import UpdateDecision, UpdateStatus, VersionTag, normalize_version


def decide(installed: str, latest: Optional[VersionTag]) -> UpdateDecision:
    """Compare the installed version with the latest tag of the source repository.

    Args:
        installed: Version recorded in the metadata ("unknown" on first run).
        latest: Highest tag in the repository, or None when it has no tags.

    Returns:
        UpdateDecision: NO_RELEASES for an untagged repository whatever is
        installed, UP_TO_DATE when both sides name the same version
        ('1.2.0' equals 'v1.2.0'), UPDATE_AVAILABLE otherwise.
    """
    if latest is None:
        return UpdateDecision(status=UpdateStatus.NO_RELEASES)
    if normalize_version(installed) == latest.version:
        return UpdateDecision(status=UpdateStatus.UP_TO_DATE, latest=latest)
    return UpdateDecision(status=UpdateStatus.UPDATE_AVAILABLE, latest=latest)
