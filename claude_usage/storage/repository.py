"""
Repository for reading usage records.

Scans the Claude Code projects directory, parses each JSONL log line and
prices the assistant messages that carry usage data.
"""

import json
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from claude_usage.config.loader import Settings, load_settings
from claude_usage.core.pricing import ModelPricing, PricingTable, calculate_cost
from claude_usage.core.token_counter import TokenUsage

from .files import list_log_files, list_project_dirs, read_lines
from .models import UsageRecord

logger = logging.getLogger(__name__)

# Source field names per token category, in priority order
INPUT_TOKEN_FIELDS = ("input_tokens",)
OUTPUT_TOKEN_FIELDS = ("output_tokens",)
CACHE_WRITE_TOKEN_FIELDS = ("cache_creation_input_tokens", "cache_write_tokens")
CACHE_READ_TOKEN_FIELDS = ("cache_read_input_tokens", "cache_read_tokens")

CLAUDE_NOT_FOUND_HELP = """\
Claude Code configuration not found!

To fix this, you need to install and run Claude Code first:

1. Install Claude Code:
   - run: npm install -g @anthropic-ai/claude-code

2. Authenticate Claude Code:
   - Run: claude
   - Follow the authentication prompts
   - Sign in with your Claude account

3. Use Claude Code at least once:
   - Start a conversation: claude "Hello, world!"
   - Or run interactively: claude
   - This will create the {config_path} configuration file

4. Then run this tool again:
   - claude-usage report

Need help?
   - Claude Code docs: https://docs.anthropic.com/en/docs/claude-code/settings
"""


class ClaudeConfigNotFoundError(FileNotFoundError):
    """Raised when there is no Claude Code installation to read from."""

    def __init__(self, config_path: Path):
        super().__init__(CLAUDE_NOT_FOUND_HELP.format(config_path=config_path))
        self.config_path = config_path


@dataclass
class FileScan:
    """Outcome of reading a single log file."""
    path: Path
    records: List[UsageRecord] = field(default_factory=list)
    lines_read: int = 0
    malformed_lines: int = 0
    lines_without_usage: int = 0
    readable: bool = True


@dataclass
class ScanResult:
    """Records read from the whole tree plus what had to be discarded."""
    records: List[UsageRecord] = field(default_factory=list)
    files_read: int = 0
    lines_read: int = 0
    malformed_lines: int = 0
    lines_without_usage: int = 0
    unreadable_paths: List[Path] = field(default_factory=list)

    @property
    def discarded_lines(self) -> int:
        """Lines that produced no record, for whatever reason."""
        return self.malformed_lines + self.lines_without_usage

    def merge(self, scan: FileScan) -> None:
        if not scan.readable:
            self.unreadable_paths.append(scan.path)
            return
        self.records.extend(scan.records)
        self.files_read += 1
        self.lines_read += scan.lines_read
        self.malformed_lines += scan.malformed_lines
        self.lines_without_usage += scan.lines_without_usage


def parse_line(line: str) -> Optional[Dict[str, Any]]:
    """Decode one JSONL line, returning None unless it is a JSON object."""
    try:
        data = json.loads(line)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def get_usage(entry: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the nested ``message.usage`` object, if the entry has one."""
    message = entry.get("message")
    if not isinstance(message, dict):
        return None
    usage = message.get("usage")
    if not isinstance(usage, dict):
        return None
    return usage


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into UTC; naive values are taken as UTC.

    Timestamps that fall outside the representable range once shifted to
    UTC are treated as absent.
    """
    if not isinstance(value, str) or not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        return None


def project_from_cwd(cwd: Any) -> Optional[str]:
    """Last path segment of a working directory, accepting / or \\ separators."""
    if not isinstance(cwd, str):
        return None
    parts = [part for part in cwd.replace("\\", "/").split("/") if part]
    return parts[-1] if parts else None


def _as_count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and math.isfinite(value):
        return max(int(value), 0)
    return 0


def extract_token_count(usage: Dict[str, Any], names: Tuple[str, ...]) -> int:
    """First non-zero count among the aliased field names, else 0."""
    for name in names:
        count = _as_count(usage.get(name))
        if count:
            return count
    return 0


def extract_token_usage(usage: Dict[str, Any]) -> TokenUsage:
    return TokenUsage(
        input_tokens=extract_token_count(usage, INPUT_TOKEN_FIELDS),
        output_tokens=extract_token_count(usage, OUTPUT_TOKEN_FIELDS),
        cache_write_tokens=extract_token_count(usage, CACHE_WRITE_TOKEN_FIELDS),
        cache_read_tokens=extract_token_count(usage, CACHE_READ_TOKEN_FIELDS),
    )


def resolve_project_name(entries: List[Dict[str, Any]], fallback: str) -> str:
    """Project name for a file: the cwd of its first usage line, else ``fallback``."""
    for entry in entries:
        if get_usage(entry) is None:
            continue
        name = project_from_cwd(entry.get("cwd"))
        if name:
            return name
    return fallback


def scan_file(path: Path, pricing: Optional[PricingTable] = None) -> FileScan:
    """Read one log file into priced usage records.

    Unreadable files are reported through ``FileScan.readable`` rather than
    raised, and malformed lines are counted and skipped.

    Args:
        path: JSONL log file inside a project directory
        pricing: Table used to price each record; None prices everything at 0

    Returns:
        FileScan with the records in line order
    """
    try:
        lines = read_lines(path)
    except OSError as e:
        logger.debug("Skipping unreadable file %s: %s", path, e)
        return FileScan(path=path, readable=False)

    scan = FileScan(path=path, lines_read=len(lines))
    entries = []
    for line in lines:
        entry = parse_line(line)
        if entry is None:
            scan.malformed_lines += 1
        else:
            entries.append(entry)

    project = resolve_project_name(entries, fallback=path.parent.name)
    resolved: Dict[Optional[str], Optional[ModelPricing]] = {}

    for entry in entries:
        usage = get_usage(entry)
        if usage is None:
            scan.lines_without_usage += 1
            continue

        message = entry["message"]
        model = message.get("model")
        if not isinstance(model, str) or not model:
            model = None
        role = message.get("role")
        if not isinstance(role, str):
            role = None

        if model not in resolved:
            resolved[model] = pricing.resolve(model) if pricing is not None else None

        tokens = extract_token_usage(usage)
        scan.records.append(UsageRecord(
            project=project,
            timestamp=parse_timestamp(entry.get("timestamp")),
            role=role,
            model=model,
            input_tokens=tokens.input_tokens,
            output_tokens=tokens.output_tokens,
            cache_write_tokens=tokens.cache_write_tokens,
            cache_read_tokens=tokens.cache_read_tokens,
            cost=calculate_cost(tokens, resolved[model]),
        ))

    if scan.malformed_lines:
        logger.debug("Skipped %d malformed lines in %s", scan.malformed_lines, path)
    return scan


class UsageRepository:
    """Read-only access to the Claude Code usage logs.

    The repository never writes to the logs; each scan re-reads the tree.
    """

    def __init__(
        self,
        projects_dir: Path,
        config_path: Optional[Path] = None,
        max_workers: int = 8,
    ):
        """Initialize the repository.

        Args:
            projects_dir: Directory with one sub-directory per project
            config_path: Claude Code config file whose absence means Claude
                Code was never run; None skips the check
            max_workers: Threads used to read log files
        """
        self.projects_dir = Path(projects_dir)
        self.config_path = Path(config_path) if config_path is not None else None
        self.max_workers = max_workers

    @classmethod
    def from_settings(cls, settings: Settings) -> "UsageRepository":
        return cls(
            projects_dir=settings.projects_dir,
            config_path=settings.config_file,
            max_workers=settings.max_workers,
        )

    def ensure_configured(self) -> None:
        """Raise ClaudeConfigNotFoundError if Claude Code has never been set up."""
        if self.config_path is not None and not self.config_path.exists():
            raise ClaudeConfigNotFoundError(self.config_path)

    def discover_files(self, result: ScanResult) -> List[Path]:
        """List log files in discovery order, recording unreadable directories."""
        if not self.projects_dir.is_dir():
            logger.debug("Projects directory %s does not exist", self.projects_dir)
            return []

        try:
            project_dirs = list_project_dirs(self.projects_dir)
        except OSError as e:
            logger.debug("Cannot list %s: %s", self.projects_dir, e)
            result.unreadable_paths.append(self.projects_dir)
            return []

        files = []
        for project_dir in project_dirs:
            try:
                files.extend(list_log_files(project_dir))
            except OSError as e:
                logger.debug("Skipping unreadable project directory %s: %s", project_dir, e)
                result.unreadable_paths.append(project_dir)
        return files

    def scan(self, pricing: Optional[PricingTable] = None) -> ScanResult:
        """Read every log file and return priced records in discovery order.

        Files are read in parallel; each worker returns its own FileScan and
        the results are merged in file order afterwards.

        Raises:
            ClaudeConfigNotFoundError: If the Claude Code config file is missing
        """
        self.ensure_configured()

        result = ScanResult()
        files = self.discover_files(result)
        if not files:
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            for file_scan in executor.map(partial(scan_file, pricing=pricing), files):
                result.merge(file_scan)

        logger.debug(
            "Read %d records from %d files (%d lines discarded, %d unreadable paths)",
            len(result.records), result.files_read,
            result.discarded_lines, len(result.unreadable_paths),
        )
        return result

    def load_records(self, pricing: Optional[PricingTable] = None) -> List[UsageRecord]:
        """Convenience wrapper returning only the records of a scan."""
        return self.scan(pricing).records


def get_repository(settings: Optional[Settings] = None) -> UsageRepository:
    """Build a repository from settings, loading the defaults when none are given."""
    if settings is None:
        settings = load_settings()
    return UsageRepository.from_settings(settings)
