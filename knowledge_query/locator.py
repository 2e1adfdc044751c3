"""Locating the knowledge database on disk."""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import NotFoundError
from .normalizer import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)


def find_knowledge_db(
    start_dir: Path | str | None = None,
    relative_path: str = DEFAULT_DB_PATH,
) -> Path:
    """Find the knowledge database by walking up the directory tree.

    Args:
        start_dir: Directory to start from (defaults to the current directory).
        relative_path: Location of the database relative to a project root.

    Returns:
        Absolute path to the first database found.

    Raises:
        NotFoundError: If no ancestor directory contains the database.

    Example:
        find_knowledge_db("/home/user/project/src/utils")
        # -> /home/user/project/.aiknowsys/knowledge.db
    """
    start = Path(start_dir or Path.cwd()).resolve()
    searched: list[Path] = []

    for directory in (start, *start.parents):
        candidate = directory / relative_path
        searched.append(candidate)
        if candidate.is_file():
            logger.debug(f"Found knowledge database at {candidate}")
            return candidate

    raise NotFoundError(searched, expected=f"<project-root>/{relative_path}")


def resolve_db_path(
    db_path: str,
    start_dir: Path | str | None = None,
    auto_locate: bool = True,
    default_db_path: str = DEFAULT_DB_PATH,
) -> Path:
    """Turn a configured or caller-supplied db path into an absolute path.

    Absolute paths and relative paths that exist under ``start_dir`` are
    used as-is. The default relative location is additionally searched for
    in parent directories when ``auto_locate`` is set.

    Raises:
        NotFoundError: If the database cannot be found.
    """
    base = Path(start_dir or Path.cwd()).resolve()
    path = Path(db_path).expanduser()
    candidate = path if path.is_absolute() else base / path

    if candidate.is_file():
        return candidate

    if auto_locate and not path.is_absolute() and db_path == default_db_path:
        return find_knowledge_db(base, default_db_path)

    raise NotFoundError([candidate], expected=str(candidate))
