"""
Current-project detection.

Lets the report default to the project the user is standing in.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Tuple

logger = logging.getLogger(__name__)

PROJECT_INDICATORS = [
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    ".git",
    ".gitignore",
    "README.md",
    "README.rst",
    "Cargo.toml",
    "go.mod",
    "requirements.txt",
    "pyproject.toml",
    "Gemfile",
    "composer.json",
    "pom.xml",
    "build.gradle",
    "Makefile",
    "CMakeLists.txt",
]

# Directory names that are never a project on their own
_NOT_PROJECT_NAMES = {"", ".", "/", "Users", "home"}


def is_project_directory(directory: Path) -> bool:
    """True if the directory holds any common project marker."""
    directory = Path(directory)
    return any((directory / indicator).exists() for indicator in PROJECT_INDICATORS)


def detect_current_project(directory: Path) -> Optional[str]:
    """Project name for a directory.

    Uses the ``name`` of a package.json when present, otherwise the
    directory's own name.
    """
    directory = Path(directory)

    package_json = directory / "package.json"
    if package_json.is_file():
        try:
            with open(package_json, "r", encoding="utf-8") as f:
                name = json.load(f).get("name")
            if isinstance(name, str) and name:
                return name
        except (OSError, ValueError, AttributeError) as e:
            logger.debug("Ignoring unreadable %s: %s", package_json, e)

    if directory.name not in _NOT_PROJECT_NAMES:
        return directory.name
    return None


def project_aware_filter(
    project_filter: Optional[str],
    all_projects: bool = False,
    cwd: Optional[Path] = None,
) -> Tuple[Optional[str], bool]:
    """Work out the effective project filter.

    Args:
        project_filter: Filter given explicitly by the user
        all_projects: Disable auto-detection entirely
        cwd: Directory to detect from (defaults to the process cwd)

    Returns:
        (filter, auto_detected) pair
    """
    if all_projects:
        return None, False
    if project_filter:
        return project_filter, False

    directory = Path(cwd) if cwd is not None else Path.cwd()
    if is_project_directory(directory):
        detected = detect_current_project(directory)
        if detected:
            return detected, True
    return None, False
