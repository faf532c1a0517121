"""SVK Update resolver: which installed skills need reinstalling.

Pure set arithmetic over skill names; no git, no filesystem.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .models import ChangeSet


def resolve(
    changed_dirs: Iterable[str],
    installed_skills: Iterable[str],
    *,
    installable: Optional[Iterable[str]] = None,
    available: Optional[Iterable[str]] = None,
    pending: Iterable[str] = (),
) -> ChangeSet:
    """Compute the change-set for one run.

    Args:
        changed_dirs: Top-level directories with file changes between the
            installed and the latest tag.
        installed_skills: Skills the project has installed. When empty,
            every changed directory that is also ``installable`` is queued.
        installable: Directories at the latest tag with an install entry
            point. None means "assume every changed directory is installable".
        available: Directories present at the latest tag. Installed skills
            outside it are reported as missing and never queued.
        pending: Skills that failed on a previous run and should be retried.

    Returns:
        ChangeSet with sorted lists.
    """
    changed = set(changed_dirs)
    installed = set(installed_skills)
    installable_set = set(installable) if installable is not None else None
    available_set = set(available) if available is not None else None

    missing: set[str] = set()
    if available_set is not None:
        missing = installed - available_set

    fallback = not installed
    if fallback:
        to_update = changed if installable_set is None else changed & installable_set
    else:
        to_update = (changed & installed) - missing

    retrying = set(pending) - to_update - missing
    if available_set is not None:
        retrying &= available_set
    to_update |= retrying

    unchanged = installed - changed - missing - retrying

    return ChangeSet(
        to_update=sorted(to_update),
        unchanged=sorted(unchanged),
        missing=sorted(missing),
        retrying=sorted(retrying),
        fallback=fallback,
    )
