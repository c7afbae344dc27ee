"""
Test the record store management commands.
"""

from typer.testing import CliRunner

from scripts.manage_db import app, sample_events, sample_health_checks


runner = CliRunner()


def _url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def test_sample_data():
    assert [event.event_type for event in sample_events()] == [
        "ApiKeyUpdated", "UsersBatchUpdated", "LimitChanged"
    ]
    current, older = sample_health_checks()
    assert current.timestamp > older.timestamp
    assert older.details.user_count == 48


def test_init_seed_status(tmp_path):
    url = _url(tmp_path)

    result = runner.invoke(app, ["init", "--database-url", url])
    assert result.exit_code == 0, result.output
    assert "initialized" in result.output

    result = runner.invoke(app, ["seed", "--database-url", url])
    assert result.exit_code == 0, result.output
    assert "3 contract events inserted" in result.output
    assert "2 health checks inserted" in result.output

    result = runner.invoke(app, ["status", "--database-url", url])
    assert result.exit_code == 0, result.output
    assert "3 rows" in result.output


def test_health_and_reset(tmp_path):
    url = _url(tmp_path)

    result = runner.invoke(app, ["health", "--database-url", url])
    assert result.exit_code == 0, result.output
    assert "healthy" in result.output

    result = runner.invoke(app, ["reset", "--database-url", url], input="n\n")
    assert "cancelled" in result.output

    result = runner.invoke(app, ["reset", "--database-url", url, "--yes"])
    assert result.exit_code == 0, result.output


def test_health_fails_on_unreachable_store(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}"

    result = runner.invoke(app, ["health", "--database-url", url])

    assert result.exit_code == 1
    assert "failed" in result.output
