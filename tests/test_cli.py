"""Integration tests for CLI commands."""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import toml
from typer.testing import CliRunner

from component_rag import __version__
from component_rag.cli import app

runner = CliRunner()


@pytest.fixture
def config_file(temp_dir: Path, monkeypatch) -> Path:
    """Point the CLI at a temporary config that embeds with the hash backend."""
    path = temp_dir / "config.toml"
    path.write_text('[embeddings]\nprovider = "hash"\n')
    monkeypatch.setattr("component_rag.config.CONFIG_FILE", path)
    for var in ("OLLAMA_URL", "OPENAI_API_KEY", "COMPONENT_RAG_INDEX"):
        monkeypatch.delenv(var, raising=False)
    return path


@pytest.fixture
def index_file(config_file: Path, temp_dir: Path, sample_app_path: Path) -> Path:
    path = temp_dir / "index.json"
    result = runner.invoke(app, ["index", str(sample_app_path), "--output", str(path)])
    assert result.exit_code == 0, result.output
    return path


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


class TestIndexCommand:
    """Tests for 'crag index'."""

    def test_index_project(self, index_file: Path):
        doc = json.loads(index_file.read_text())
        assert len(doc["components"]) == 5
        assert doc["dim"] == 768

    def test_index_reports_stats(self, config_file: Path, temp_dir: Path, sample_app_path: Path):
        out = temp_dir / "out.json"
        result = runner.invoke(app, ["index", str(sample_app_path), "-o", str(out), "--provider", "hash", "--no-sort"])

        assert result.exit_code == 0
        assert "Components: 5" in result.stdout
        assert "1 skipped" in result.stdout
        names = [c["name"] for c in json.loads(out.read_text())["components"]]
        assert names[0] == "Counter"
        assert names[-1] == "ThemeToggle"

    def test_unknown_provider(self, config_file: Path, sample_app_path: Path):
        result = runner.invoke(app, ["index", str(sample_app_path), "--provider", "bert"])
        assert result.exit_code == 1

    def test_index_nonexistent_path(self, config_file: Path):
        result = runner.invoke(app, ["index", "/nonexistent/path"])
        assert result.exit_code != 0


class TestSearchCommand:
    """Tests for 'crag search'."""

    def test_search_json(self, index_file: Path):
        result = runner.invoke(app, ["search", "data fetching list", "--index", str(index_file), "--json", "-k", "2"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["query"] == "data fetching list"
        assert payload["scope"] == "all"
        assert payload["count"] == 5
        assert len(payload["results"]) == 2
        assert set(payload["results"][0]) == {"name", "file", "score", "preview"}

    def test_search_scope(self, index_file: Path):
        result = runner.invoke(app, ["search", "counter", "--index", str(index_file), "--scope", "examples", "--json"])

        assert result.exit_code == 0
        assert [h["name"] for h in json.loads(result.stdout)["results"]] == ["Counter"]

    def test_search_table(self, index_file: Path):
        result = runner.invoke(app, ["search", "navigation", "--index", str(index_file)])
        assert result.exit_code == 0
        assert "Score" in result.stdout

    def test_unknown_scope(self, index_file: Path):
        result = runner.invoke(app, ["search", "nav", "--index", str(index_file), "--scope", "vendor"])
        assert result.exit_code == 1

    def test_empty_query(self, index_file: Path):
        result = runner.invoke(app, ["search", "  ", "--index", str(index_file)])
        assert result.exit_code == 1

    def test_missing_index(self, config_file: Path, temp_dir: Path):
        result = runner.invoke(app, ["search", "nav", "--index", str(temp_dir / "none.json")])
        assert result.exit_code == 1


class TestAnswerCommand:
    """Tests for 'crag answer'."""

    def test_answer_json(self, index_file: Path, monkeypatch):
        provider = MagicMock()
        provider.generate.return_value = "Use ErrorBoundary."
        monkeypatch.setattr("component_rag.cli.create_provider", lambda cfg: provider)

        result = runner.invoke(app, ["answer", "catch errors", "--index", str(index_file), "--json"])

        assert result.exit_code == 0
        payload = json.loads(result.stdout)
        assert payload["answer"] == "Use ErrorBoundary."
        assert len(payload["used"]) == 4

    def test_generation_unavailable(self, index_file: Path):
        """The network guard makes the default Ollama generator fail."""
        result = runner.invoke(app, ["answer", "catch errors", "--index", str(index_file)])
        assert result.exit_code == 1


class TestShowCommand:
    """Tests for 'crag show'."""

    def test_show_component(self, index_file: Path):
        result = runner.invoke(app, ["show", "Nav", "src/components/Nav.jsx", "--index", str(index_file)])
        assert result.exit_code == 0
        assert "Nav (function) in Nav.jsx" in result.stdout

    def test_show_missing(self, index_file: Path):
        result = runner.invoke(app, ["show", "Nope", "src/components/Nav.jsx", "--index", str(index_file)])
        assert result.exit_code == 1


class TestConfigCommands:
    """Tests for 'crag config ...'."""

    def test_set_embedding(self, config_file: Path):
        result = runner.invoke(app, ["config", "set-embedding", "ollama", "--model", "mxbai-embed-large"])

        assert result.exit_code == 0
        saved = toml.load(config_file)
        assert saved["embeddings"]["provider"] == "ollama"
        assert saved["embeddings"]["ollama_model"] == "mxbai-embed-large"

    def test_set_llm_keeps_embeddings(self, config_file: Path):
        result = runner.invoke(app, ["config", "set-llm", "openai", "--api-key", "sk-test"])

        assert result.exit_code == 0
        saved = toml.load(config_file)
        assert saved["llm"]["provider"] == "openai"
        assert saved["embeddings"]["provider"] == "hash"

    def test_set_llm_unknown(self, config_file: Path):
        result = runner.invoke(app, ["config", "set-llm", "groq"])
        assert result.exit_code == 1

    def test_show(self, config_file: Path):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Embeddings" in result.stdout
