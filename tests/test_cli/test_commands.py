from pathlib import Path

from typer.testing import CliRunner

import reasonloop.config as config_module
from reasonloop import __version__
from reasonloop.cli import app
from reasonloop.config import set_config

runner = CliRunner()


def _isolate(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")


def test_version_command():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert f"reasonloop v{__version__}" in result.stdout


def test_providers_command_lists_registry():
    result = runner.invoke(app, ["providers"])

    assert result.exit_code == 0
    for name in ("openai", "anthropic", "google", "openrouter", "ollama"):
        assert name in result.stdout


def test_run_with_unsupported_provider_exits_nonzero(monkeypatch, tmp_path: Path):
    _isolate(monkeypatch, tmp_path)
    try:
        result = runner.invoke(app, ["run", "hello", "--model", "acme/model-1"])
    finally:
        set_config(None)

    assert result.exit_code == 1


def test_run_rejects_too_small_iteration_budget(monkeypatch, tmp_path: Path):
    _isolate(monkeypatch, tmp_path)
    try:
        result = runner.invoke(app, ["run", "hello", "--max-iterations", "1"])
    finally:
        set_config(None)

    assert result.exit_code == 2


def test_run_with_invalid_config_file_exits_with_usage_error(tmp_path: Path):
    config_path = tmp_path / "broken.yaml"
    config_path.write_text("model: [not, a, mapping]\n", encoding="utf-8")

    result = runner.invoke(app, ["run", "hello", "--config", str(config_path)])

    assert result.exit_code == 2
