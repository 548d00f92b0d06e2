"""Unit tests for check command."""

from unittest.mock import MagicMock, patch

from winreboot.cli.commands.check import missing_essentials
from winreboot.cli.main import app
from winreboot.core.capabilities import ALL_TOOLS, Capabilities
from typer.testing import CliRunner

runner = CliRunner()


class TestMissingEssentials:
    """Tests for missing_essentials function."""

    def test_all_present(self) -> None:
        assert missing_essentials(Capabilities.of("wimlib-imagex", "genisoimage")) == []

    def test_nothing_installed(self) -> None:
        assert missing_essentials(Capabilities.of()) == ["wimlib-imagex", "xorriso"]


class TestCheckCommand:
    """Tests for winreboot check."""

    @patch("winreboot.cli.commands.check.detect_capabilities")
    def test_everything_installed(self, mock_detect: MagicMock) -> None:
        mock_detect.return_value = Capabilities.of(*ALL_TOOLS)

        result = runner.invoke(app, ["check"])

        assert result.exit_code == 0
        assert "All essential tools are installed" in result.stdout

    @patch("winreboot.cli.commands.check.detect_capabilities")
    def test_missing_wimlib(self, mock_detect: MagicMock) -> None:
        """A missing essential tool exits with the dependency exit code."""
        mock_detect.return_value = Capabilities.of("7z", "xorriso")

        result = runner.invoke(app, ["check"])

        assert result.exit_code == 10
        assert "wimlib-imagex" in result.output

    @patch("winreboot.cli.commands.check.detect_capabilities")
    def test_optional_tools_do_not_fail(self, mock_detect: MagicMock) -> None:
        mock_detect.return_value = Capabilities.of("wimlib-imagex", "xorriso")

        result = runner.invoke(app, ["check"])

        assert result.exit_code == 0
        assert "missing" in result.stdout
