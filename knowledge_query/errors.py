"""Exception taxonomy for knowledge store queries.

This module provides:
- KnowledgeQueryError: Base exception for all query failures
- InvalidParameterError: A caller-supplied filter fails a structural constraint
- NotFoundError: The configured store location does not exist
- StorageError: The store exists but cannot be read
- QueryError: An inconsistent filter reached the query engine
"""

from __future__ import annotations

import os
from pathlib import Path


class KnowledgeQueryError(Exception):
    """Base exception for knowledge query operations."""

    pass


class InvalidParameterError(KnowledgeQueryError):
    """A filter value failed validation before the store was touched."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"Invalid parameter '{field}': {message}")


class NotFoundError(KnowledgeQueryError):
    """The knowledge database could not be located."""

    def __init__(
        self,
        searched: list[Path] | Path,
        expected: str = "<project-root>/.aiknowsys/knowledge.db",
    ) -> None:
        if isinstance(searched, Path):
            searched = [searched]
        self.searched = list(searched)
        self.expected = expected

        lines = ["Database not found", ""]
        lines.extend(f"Searched: {path}" for path in self.searched)
        lines.append(f"Current directory: {os.getcwd()}")
        lines.append("")
        lines.append("Troubleshooting:")
        lines.append("  1. Run 'npx aiknowsys migrate-to-sqlite' to create the database")
        lines.append("  2. Make sure you're in a project using AIKnowSys")
        lines.append("  3. Pass an explicit dbPath pointing at an existing knowledge.db")
        lines.append("")
        lines.append(f"Expected database location: {expected}")
        super().__init__("\n".join(lines))


# Sub-cases of StorageError, detected from the underlying sqlite message
CORRUPT = "corrupt"
PERMISSION = "permission"
LOCKED = "locked"
UNKNOWN = "unknown"

_REASON_HEADLINES = {
    CORRUPT: "Database file is corrupted or invalid",
    PERMISSION: "Permission denied reading database",
    LOCKED: "Database is locked by another process",
    UNKNOWN: "Database operation failed",
}

_REASON_STEPS = {
    CORRUPT: [
        "Backup current database: mv {path} {path}.backup",
        "Recreate database: npx aiknowsys migrate-to-sqlite",
        "If data is critical, try SQLite recovery tools",
    ],
    PERMISSION: [
        "Check file permissions: ls -la {path}",
        "Make sure the file and its directory are readable",
        "Check the file system is not mounted without read access",
    ],
    LOCKED: [
        "Check for other processes: lsof {path}",
        "Wait a moment and retry",
        "Check for stale lock files: ls -la {path}*",
    ],
    UNKNOWN: [
        "Check database exists: ls -la {path}",
        'Verify database integrity: sqlite3 {path} "PRAGMA integrity_check;"',
        "Try recreating database: npx aiknowsys migrate-to-sqlite",
    ],
}


def classify_storage_failure(message: str) -> str:
    """Map a sqlite error message to a StorageError sub-case.

    Args:
        message: The original error text.

    Returns:
        One of CORRUPT, PERMISSION, LOCKED or UNKNOWN.
    """
    lowered = message.lower()
    if "not a database" in lowered or "malformed" in lowered or "corrupt" in lowered:
        return CORRUPT
    if (
        "unable to open" in lowered
        or "permission" in lowered
        or "readonly" in lowered
        or "access" in lowered
    ):
        return PERMISSION
    if "locked" in lowered or "busy" in lowered:
        return LOCKED
    return UNKNOWN


class StorageError(KnowledgeQueryError):
    """The store exists but could not be read."""

    def __init__(
        self,
        path: Path | str,
        operation: str,
        original: str,
        reason: str | None = None,
    ) -> None:
        self.path = str(path)
        self.operation = operation
        self.original = original
        self.reason = reason or classify_storage_failure(original)

        lines = [
            _REASON_HEADLINES[self.reason],
            "",
            f"Operation: {operation}",
            f"Database path: {self.path}",
            f"Original error: {original}",
            "",
            "Troubleshooting:",
        ]
        for i, step in enumerate(_REASON_STEPS[self.reason], 1):
            lines.append(f"  {i}. {step.format(path=self.path)}")
        super().__init__("\n".join(lines))


class QueryError(KnowledgeQueryError):
    """An internally inconsistent filter reached the query engine."""

    pass
