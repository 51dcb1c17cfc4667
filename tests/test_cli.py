"""
Tests for the CLI interface.
"""
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from claude_usage.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from claude_usage.config.loader import Settings
from claude_usage.core.pricing import FALLBACK_PRICING
from claude_usage.storage.models import UsageRecord
from claude_usage.storage.repository import ClaudeConfigNotFoundError, ScanResult

runner = CliRunner()

UTC = timezone.utc

RECORDS = [
    UsageRecord(
        project="web-app",
        timestamp=datetime(2025, 6, 1, 10, 0, tzinfo=UTC),
        role="assistant",
        model="claude-sonnet-4-20250514",
        input_tokens=1200,
        output_tokens=300,
        cost=Decimal("0.0081"),
    ),
    UsageRecord(
        project="api",
        timestamp=datetime(2025, 6, 2, 10, 0, tzinfo=UTC),
        role="assistant",
        model="claude-opus-4-20250514",
        input_tokens=4000,
        output_tokens=1000,
        cost=Decimal("0.135"),
    ),
]


@pytest.fixture(autouse=True)
def wide_console():
    """Render tables wide enough that cells are never truncated."""
    with patch('claude_usage.cli.main.console', Console(width=200)), \
            patch('claude_usage.cli.main.err_console', Console(width=200, stderr=True)):
        yield


@pytest.fixture
def mock_settings():
    """Use fixed settings instead of the user's configuration."""
    with patch('claude_usage.cli.main.load_settings') as mock:
        mock.return_value = Settings(
            claude_dir=Path("/nonexistent/.claude"),
            config_file=Path("/nonexistent/.claude.json"),
        )
        yield mock


@pytest.fixture
def mock_pricing():
    """Mock the pricing resolver so no network access happens."""
    with patch('claude_usage.cli.main.PricingResolver') as mock_cls:
        mock_cls.return_value.fetch.return_value = FALLBACK_PRICING
        yield mock_cls


@pytest.fixture
def mock_repository():
    """Create a mock repository for testing."""
    with patch('claude_usage.cli.main.get_repository') as mock_repo:
        mock_repo.return_value.scan.return_value = ScanResult(records=list(RECORDS), files_read=2)
        yield mock_repo


class TestReportCommand:
    """Test the report command."""

    def test_report_lists_messages(self, mock_settings, mock_pricing, mock_repository):
        result = runner.invoke(app, ["report", "--all", "--group", "none"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "web-app" in result.output
        assert "api" in result.output
        assert "claude-opus-4-20250514" in result.output
        assert "Total:" in result.output
        assert "2 messages" in result.output

    def test_report_prices_with_resolved_table(self, mock_settings, mock_pricing, mock_repository):
        runner.invoke(app, ["report", "--all"])

        mock_repository.return_value.scan.assert_called_once_with(FALLBACK_PRICING)
        mock_pricing.return_value.fetch.assert_called_once_with(use_cache=True)

    def test_no_cache_flag(self, mock_settings, mock_pricing, mock_repository):
        runner.invoke(app, ["report", "--all", "--no-cache"])
        mock_pricing.return_value.fetch.assert_called_once_with(use_cache=False)

    def test_project_filter(self, mock_settings, mock_pricing, mock_repository):
        result = runner.invoke(app, ["report", "--project", "WEB", "--group", "project"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "web-app" in result.output
        assert "claude-opus-4-20250514" not in result.output

    def test_grouped_by_day_shows_dates(self, mock_settings, mock_pricing, mock_repository):
        result = runner.invoke(app, ["report", "--all", "--group", "day", "--sort", "cost"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "2025-06-01" in result.output
        assert "2025-06-02" in result.output
        assert result.output.index("api") < result.output.index("web-app")

    def test_invalid_sort_field(self, mock_settings, mock_pricing, mock_repository):
        result = runner.invoke(app, ["report", "--all", "--sort", "size"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid sort field: size" in result.output
        mock_pricing.return_value.fetch.assert_not_called()

    def test_invalid_sort_order(self, mock_settings, mock_pricing, mock_repository):
        result = runner.invoke(app, ["report", "--all", "--order", "sideways"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid sort order: sideways" in result.output

    def test_invalid_time_filter(self, mock_settings, mock_pricing, mock_repository):
        result = runner.invoke(app, ["report", "--all", "--time", "banana"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid time filter format: banana" in result.output
        mock_repository.return_value.scan.assert_not_called()

    def test_missing_claude_config(self, mock_settings, mock_pricing, mock_repository):
        mock_repository.return_value.scan.side_effect = ClaudeConfigNotFoundError(
            Path("/nonexistent/.claude.json")
        )

        result = runner.invoke(app, ["report", "--all"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Claude Code configuration not found" in result.output
        assert "npm install -g @anthropic-ai/claude-code" in result.output

    def test_no_usage_found(self, mock_settings, mock_pricing, mock_repository):
        mock_repository.return_value.scan.return_value = ScanResult()

        result = runner.invoke(app, ["report", "--all"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No Claude Code usage found" in result.output

    def test_skipped_lines_reported(self, mock_settings, mock_pricing, mock_repository):
        mock_repository.return_value.scan.return_value = ScanResult(
            records=list(RECORDS), files_read=2, malformed_lines=3,
        )

        result = runner.invoke(app, ["report", "--all"])

        assert "Skipped 3 malformed lines" in result.output

    def test_bad_settings_file(self, mock_pricing, mock_repository):
        result = runner.invoke(app, ["--config", "/nonexistent/config.yaml", "report", "--all"])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading configuration" in result.output


class TestModelsCommand:
    """Test the models command."""

    def test_lists_models_with_prices(self, mock_settings, mock_pricing):
        result = runner.invoke(app, ["models"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "claude-3-5-sonnet-latest" in result.output
        assert "$3.00" in result.output
        assert "$15.00" in result.output
        assert f"{len(FALLBACK_PRICING)} models" in result.output

    def test_filter_models(self, mock_settings, mock_pricing):
        result = runner.invoke(app, ["models", "--filter", "haiku"])

        assert "claude-3-haiku-20240307" in result.output
        assert "claude-3-opus-latest" not in result.output
        assert "3 models" in result.output


class TestProjectsCommand:
    """Test the projects command."""

    def test_lists_projects(self, mock_settings, mock_repository):
        result = runner.invoke(app, ["projects"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "web-app" in result.output
        assert "api" in result.output
        mock_repository.return_value.scan.assert_called_once_with(pricing=None)

    def test_no_projects(self, mock_settings, mock_repository):
        mock_repository.return_value.scan.return_value = ScanResult()

        result = runner.invoke(app, ["projects"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No projects with usage data found" in result.output


class TestMain:
    """Test the top-level command."""

    def test_no_subcommand_shows_hint(self):
        result = runner.invoke(app, [])
        assert result.exit_code == EXIT_CODE_PASS
        assert "--help" in result.output
