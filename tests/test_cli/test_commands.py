from pathlib import Path

import pytest
from conftest import write_skill
from typer.testing import CliRunner

from clawhub_skills import __version__
from clawhub_skills.main import app, main

runner = CliRunner()


@pytest.fixture(autouse=True)
def keep_test_logging(monkeypatch):
    # Commands reconfigure structlog globally; keep the session configuration.
    monkeypatch.setattr("clawhub_skills.main.configure_logging", lambda config=None: None)


def write_config(tmp_path: Path) -> Path:
    path = tmp_path / "clawhub.yaml"
    path.write_text(
        (
            f"skills:\n  dir: {tmp_path / 'skills'}\n"
            "hub:\n  registry_url: https://hub.invalid\n"
            "sync:\n  enabled: false\n"
            "logging:\n  level: WARNING\n"
        ),
        encoding="utf-8",
    )
    return path


def test_version_command():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert f"v{__version__}" in result.output


def test_console_script_entry_point(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["clawhub-skills", "version"])

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == 0
    assert f"v{__version__}" in capsys.readouterr().out


def test_list_shows_installed_skills(tmp_path: Path):
    config_path = write_config(tmp_path)
    write_skill(tmp_path / "skills", "pdf", "PDF Tools", "Work with PDF files.")

    result = runner.invoke(app, ["list", "-c", str(config_path)])

    assert result.exit_code == 0
    assert "pdf" in result.output
    assert "local" in result.output


def test_list_with_no_skills(tmp_path: Path):
    config_path = write_config(tmp_path)

    result = runner.invoke(app, ["list", "-c", str(config_path)])

    assert result.exit_code == 0
    assert "No skills installed" in result.output


def test_offline_catalog_with_empty_cache(tmp_path: Path):
    config_path = write_config(tmp_path)

    result = runner.invoke(app, ["catalog", "--offline", "-c", str(config_path)])

    assert result.exit_code == 0
    assert "0 skills" in result.output
