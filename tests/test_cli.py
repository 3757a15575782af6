"""Tests for the command line interface."""

import pytest
from typer.testing import CliRunner

from price_agent.cli import ingest
from price_agent.cli.main import app
from price_agent.core.enums import RunState
from price_agent.ingestion.orchestrator import RunStats
from price_agent.ingestion.registry import reset_default_registry

runner = CliRunner()


@pytest.fixture(autouse=True)
def bundled_registry(monkeypatch):
    """Use the bundled sources.yaml for every test."""
    monkeypatch.delenv("SOURCES_CONFIG_PATH", raising=False)
    reset_default_registry()
    yield
    reset_default_registry()


class TestMainCommands:
    """Tests for top-level commands."""

    def test_version(self) -> None:
        """Test the version banner."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Price Agent v0.1.0" in result.output


class TestSourcesCommands:
    """Tests for `ingest sources`."""

    def test_list(self) -> None:
        """Test that enabled sources are listed."""
        result = runner.invoke(app, ["ingest", "sources", "list"])
        assert result.exit_code == 0
        assert "lenta" in result.output
        assert "static-demo" not in result.output

    def test_show_unknown(self) -> None:
        """Test an unknown slug exits with an error."""
        result = runner.invoke(app, ["ingest", "sources", "show", "auchan"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_show(self) -> None:
        """Test source details."""
        result = runner.invoke(app, ["ingest", "sources", "show", "magnit"])
        assert result.exit_code == 0
        assert "Adapter: magnit" in result.output

    @pytest.mark.parametrize("command", ["enable", "disable"])
    def test_no_in_memory_toggles(self, command: str) -> None:
        """Test that sources are switched in sources.yaml, not through the CLI."""
        result = runner.invoke(app, ["ingest", "sources", command, "lenta"])
        assert result.exit_code != 0


class TestRunCommand:
    """Tests for `ingest run`."""

    def test_unknown_store(self) -> None:
        """Test that an unknown store aborts before scraping."""
        result = runner.invoke(app, ["ingest", "run", "-s", "auchan"])
        assert result.exit_code == 1
        assert "Store 'auchan' not found" in result.output

    def test_run_success(self, monkeypatch) -> None:
        """Test a successful run prints totals."""
        calls = []

        async def fake_run(store_slugs, force):
            calls.append((store_slugs, force))
            return [RunStats(store="lenta", state=RunState.DONE, total_scraped=12, matched=7, inserted=7)]

        monkeypatch.setattr(ingest, "_run_stores", fake_run)

        result = runner.invoke(app, ["ingest", "run", "-s", "lenta"])

        assert result.exit_code == 0
        assert calls == [(["lenta"], False)]
        assert "scraped=12" in result.output

    def test_run_failure_exit_code(self, monkeypatch) -> None:
        """Test that a failed store makes the command fail."""

        async def fake_run(store_slugs, force):
            stats = RunStats(store="magnit")
            stats.fail("blocked")
            return [stats]

        monkeypatch.setattr(ingest, "_run_stores", fake_run)

        result = runner.invoke(app, ["ingest", "run"])

        assert result.exit_code == 1
        assert "blocked" in result.output

    def test_disabled_store_declined(self, monkeypatch) -> None:
        """Test that declining the prompt skips a disabled store."""
        monkeypatch.setattr(ingest, "_run_stores", None)

        result = runner.invoke(app, ["ingest", "run", "-s", "static-demo"], input="n\n")

        assert result.exit_code == 0
        assert "disabled" in result.output


class TestJobsCommands:
    """Tests for `ingest jobs`."""

    def test_status_not_found(self, monkeypatch) -> None:
        """Test the message for an unknown job."""

        async def fake_status(job_id):
            return None

        monkeypatch.setattr(ingest, "get_job_status", fake_status)

        result = runner.invoke(app, ["ingest", "jobs", "status", "nope"])

        assert result.exit_code == 1
        assert "not found" in result.output
