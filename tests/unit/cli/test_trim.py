"""Unit tests for trim command."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from winreboot.cli.main import app
from winreboot.core.errors import MissingDependencyError
from winreboot.core.pipeline import PipelineOptions, PipelineResult
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture
def pipeline_cls() -> Iterator[MagicMock]:
    with (
        patch("winreboot.cli.commands.trim.install_signal_handlers"),
        patch("winreboot.cli.commands.trim.Pipeline") as mock_cls,
    ):
        yield mock_cls


def passed_options(pipeline_cls: MagicMock) -> PipelineOptions:
    return pipeline_cls.return_value.run.call_args.args[0]


class TestTrimCommand:
    """Tests for winreboot trim."""

    def test_defaults(self, pipeline_cls: MagicMock, tmp_path: Path) -> None:
        pipeline_cls.return_value.run.return_value = PipelineResult(
            output_iso=tmp_path / "out.iso", registry_bypass=True
        )

        result = runner.invoke(app, ["trim", str(tmp_path / "win11.iso")])

        assert result.exit_code == 0
        assert "Output ISO" in result.stdout
        options = passed_options(pipeline_cls)
        assert options.preset == "minimal"
        assert options.registry_bypass is True
        assert options.image_index is None
        assert options.mode is None

    def test_options_passed_through(self, pipeline_cls: MagicMock, tmp_path: Path) -> None:
        pipeline_cls.return_value.run.return_value = PipelineResult()
        drivers = tmp_path / "drivers"

        result = runner.invoke(
            app,
            [
                "trim",
                str(tmp_path / "win11.iso"),
                "--preset",
                "aggressive",
                "--image-index",
                "6",
                "--skip-reg",
                "--drivers-dir",
                str(drivers),
                "-o",
                str(tmp_path / "tiny.iso"),
            ],
        )

        assert result.exit_code == 0
        options = passed_options(pipeline_cls)
        assert options.preset == "aggressive"
        assert options.image_index == 6
        assert options.registry_bypass is False
        assert options.drivers_dir == drivers
        assert options.output_iso == tmp_path / "tiny.iso"

    def test_index_zero_services_all(self, pipeline_cls: MagicMock, tmp_path: Path) -> None:
        pipeline_cls.return_value.run.return_value = PipelineResult()

        runner.invoke(app, ["trim", str(tmp_path / "win11.iso"), "-i", "0"])

        assert passed_options(pipeline_cls).image_index is None

    def test_error_exit_code_and_hint(self, pipeline_cls: MagicMock, tmp_path: Path) -> None:
        pipeline_cls.return_value.run.side_effect = MissingDependencyError(["wimlib-imagex"])

        result = runner.invoke(app, ["trim", str(tmp_path / "win11.iso")])

        assert result.exit_code == 10
        assert "Hint" in result.output
