"""
File system access for the Claude Code usage-data tree.

The tree holds one directory per project, each containing ``.jsonl`` logs.
"""

from pathlib import Path
from typing import List

LOG_SUFFIX = ".jsonl"


def list_project_dirs(projects_dir: Path) -> List[Path]:
    """Return project directories sorted by name.

    Raises:
        OSError: If the directory cannot be listed
    """
    return sorted(
        (entry for entry in projects_dir.iterdir() if entry.is_dir()),
        key=lambda p: p.name,
    )


def list_log_files(project_dir: Path) -> List[Path]:
    """Return the ``.jsonl`` files of a project directory sorted by name.

    Raises:
        OSError: If the directory cannot be listed
    """
    return sorted(
        (entry for entry in project_dir.iterdir()
         if entry.suffix == LOG_SUFFIX and entry.is_file()),
        key=lambda p: p.name,
    )


def read_lines(path: Path) -> List[str]:
    """Read a log file and return its non-blank lines.

    Invalid UTF-8 bytes are replaced so they only damage their own line.

    Raises:
        OSError: If the file cannot be read
    """
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return [line for line in f.read().splitlines() if line.strip()]
