"""Unit tests for config commands."""

import tomllib
from pathlib import Path

from winreboot.cli.main import app
from winreboot.core.paths import get_config_path
from typer.testing import CliRunner

runner = CliRunner()


class TestConfigPath:
    """Tests for winreboot config path."""

    def test_default_location(self) -> None:
        result = runner.invoke(app, ["config", "path"])

        assert result.exit_code == 0
        assert result.stdout.strip() == str(get_config_path())

    def test_explicit_config(self, tmp_path: Path) -> None:
        path = tmp_path / "alt.toml"

        result = runner.invoke(app, ["--config", str(path), "config", "path"])

        assert result.stdout.strip() == str(path)


class TestConfigInit:
    """Tests for winreboot config init."""

    def test_writes_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "new.toml"

        result = runner.invoke(app, ["--config", str(path), "config", "init"])

        assert result.exit_code == 0
        with open(path, "rb") as f:
            assert tomllib.load(f)["split_size_mb"] == 3800

    def test_refuses_overwrite(self, config_file: Path) -> None:
        before = config_file.read_text()

        result = runner.invoke(app, ["--config", str(config_file), "config", "init"])

        assert result.exit_code == 1
        assert "already exists" in result.output
        assert config_file.read_text() == before

    def test_force_overwrites(self, config_file: Path) -> None:
        result = runner.invoke(app, ["--config", str(config_file), "config", "init", "--force"])

        assert result.exit_code == 0
        assert "volume_label" in config_file.read_text()


class TestConfigShow:
    """Tests for winreboot config show."""

    def test_shows_effective_values(self, config_file: Path) -> None:
        result = runner.invoke(app, ["--config", str(config_file), "config", "show"])

        assert result.exit_code == 0
        assert "split_size_mb" in result.stdout
        assert "3800" in result.stdout

    def test_invalid_config(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("split_size_mb = 99999\n")

        result = runner.invoke(app, ["--config", str(path), "config", "show"])

        assert result.exit_code == 1
        assert "Invalid config content" in result.output
