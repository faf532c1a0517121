"""SVK Update: selective reinstallation of versioned SVK skills.

Compares the version recorded in a project's .claude/svk-meta.json with the
latest tag of the source repository and reinstalls only the skills whose
files changed between the two.
"""

__version__ = "0.1.0"

META_RELATIVE_PATH = ".claude/svk-meta.json"

UNKNOWN_VERSION = "unknown"
