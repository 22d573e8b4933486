"""
Tests for CLI commands.
"""

import json

import pytest
from click.testing import CliRunner

from chatkeep.cli.main import cli


@pytest.fixture
def runner():
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def invoke(runner, sessions_dir):
    """Invoke the CLI against the temporary sessions directory."""

    def _invoke(*args):
        return runner.invoke(cli, ["--sessions-dir", str(sessions_dir), *args])

    return _invoke


class TestCliHelp:
    """Tests for CLI help commands."""

    def test_main_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Chatkeep" in result.output
        assert "search" in result.output
        assert "cleanup" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "chatkeep, version" in result.output


class TestNewCommand:
    def test_new_session(self, invoke, store):
        result = invoke("new", "--title", "Trip")

        assert result.exit_code == 0
        assert "Created session" in result.output
        sessions = store.list_sessions()
        assert len(sessions) == 1
        assert sessions[0].title == "Trip"


class TestSayCommand:
    def test_appends_message(self, invoke, store):
        session = store.create_session()

        result = invoke("say", session.id, "--content", "Hello there")

        assert result.exit_code == 0
        loaded = store.load_session(session.id)
        assert loaded.message_count == 1
        assert loaded.title == "Hello there"

    def test_image_message(self, invoke, store):
        session = store.create_session()

        result = invoke(
            "say", session.id, "-r", "assistant", "-c", "A fox",
            "--type", "image", "--image-url", "/fox.png",
        )

        assert result.exit_code == 0
        assert store.load_session(session.id).messages[0].image_url == "/fox.png"

    def test_image_without_url_is_usage_error(self, invoke, store):
        session = store.create_session()

        result = invoke("say", session.id, "-c", "A fox", "--type", "image")

        assert result.exit_code == 2
        assert store.load_session(session.id).message_count == 0

    def test_unknown_session(self, invoke):
        result = invoke("say", "missing", "-c", "hi")
        assert result.exit_code == 1
        assert "Session not found" in result.output


class TestShowCommand:
    def test_show(self, invoke, store):
        session = store.create_session()
        store.append_message(session.id, {"role": "user", "content": "Hello"})

        result = invoke("show", session.id)

        assert result.exit_code == 0
        assert "Hello" in result.output

    def test_show_json(self, invoke, store):
        session = store.create_session()
        store.append_message(session.id, {"role": "user", "content": "Hello"})

        result = invoke("show", session.id, "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["id"] == session.id
        assert data["messageCount"] == 1

    def test_show_missing(self, invoke):
        result = invoke("show", "missing")
        assert result.exit_code == 1


class TestListAndSearch:
    def test_list_json(self, invoke, store):
        a = store.create_session("Alpha")
        b = store.create_session("Beta")
        store.append_message(a.id, {"role": "user", "content": "bump"})

        result = invoke("list", "--json")

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert [s["id"] for s in data] == [a.id, b.id]
        assert set(data[0]) == {"id", "title", "updatedAt", "messageCount"}

    def test_list_table(self, invoke, store):
        store.create_session("Alpha")

        result = invoke("list")

        assert result.exit_code == 0
        assert "Alpha" in result.output
        assert "now" in result.output

    def test_list_empty(self, invoke):
        result = invoke("list")
        assert result.exit_code == 0
        assert "No sessions found" in result.output

    def test_search_json(self, invoke, store):
        match = store.create_session("Cooking")
        store.append_message(match.id, {"role": "user", "content": "Best PASTA sauce?"})
        store.create_session("Travel")

        result = invoke("search", "pasta", "--json")

        assert result.exit_code == 0
        assert [s["id"] for s in json.loads(result.output)] == [match.id]

    def test_blank_search_returns_nothing(self, invoke, store):
        store.create_session("Anything")

        result = invoke("search", "  ", "--json")

        assert result.exit_code == 0
        assert json.loads(result.output) == []


class TestDeleteCommand:
    def test_delete(self, invoke, store):
        session = store.create_session()

        result = invoke("delete", session.id)
        assert result.exit_code == 0
        assert store.load_session(session.id) is None

        result = invoke("delete", session.id)
        assert result.exit_code == 1


class TestCleanupCommand:
    def test_cleanup_keeps_recent(self, invoke, store):
        store.create_session()

        result = invoke("cleanup", "--days", "30")

        assert result.exit_code == 0
        assert "Removed 0 session(s)" in result.output
        assert len(store.list_sessions()) == 1

    def test_cleanup_uses_configured_retention(self, invoke, store, sessions_dir):
        session = store.create_session()
        record = json.loads((sessions_dir / f"{session.id}.json").read_text())
        record["updatedAt"] = "2020-01-01T00:00:00Z"
        (sessions_dir / f"{session.id}.json").write_text(json.dumps(record))

        result = invoke("cleanup")

        assert result.exit_code == 0
        assert "Removed 1 session(s)" in result.output
        assert store.list_sessions() == []

    def test_huge_age_removes_nothing(self, invoke, store):
        store.create_session()

        result = invoke("cleanup", "--days", "1000000")

        assert result.exit_code == 0
        assert "Removed 0 session(s)" in result.output
        assert len(store.list_sessions()) == 1

    def test_negative_days_rejected(self, invoke):
        result = invoke("cleanup", "--days", "-1")
        assert result.exit_code == 2


class TestExportCommand:
    def test_export_markdown_to_file(self, invoke, store, temp_dir):
        session = store.create_session()
        store.append_message(session.id, {"role": "user", "content": "Hello"})
        out = temp_dir / "chat.md"

        result = invoke("export", session.id, "--output", str(out))

        assert result.exit_code == 0
        assert out.read_text().startswith("# Hello")

    def test_export_json(self, invoke, store):
        session = store.create_session("Trip")

        result = invoke("export", session.id, "--format", "json")

        assert result.exit_code == 0
        assert json.loads(result.output)["title"] == "Trip"


class TestConfigOption:
    def test_config_file_selects_directory(self, runner, temp_dir):
        sessions = temp_dir / "from-config"
        config = temp_dir / "chatkeep.yaml"
        config.write_text(f"sessions_dir: {sessions}\n")

        result = runner.invoke(cli, ["--config", str(config), "new"])

        assert result.exit_code == 0
        assert len(list(sessions.glob("*.json"))) == 1

    def test_invalid_config_exits(self, runner, temp_dir):
        config = temp_dir / "chatkeep.yaml"
        config.write_text("retention_days: -1\n")

        result = runner.invoke(cli, ["--config", str(config), "list"])

        assert result.exit_code == 1
        assert "retention_days" in result.output
