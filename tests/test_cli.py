"""
Test suite for CLI interface

Tests CLI commands, argument parsing, and integration with the
investigation controller using the mock LLM and mock data source.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from conftest import make_plan
from invengine import config as config_module
from invengine.cli import cli
from invengine.config import set_config


@pytest.fixture(autouse=True)
def cli_config(test_config):
    """Run every command against the test configuration"""
    saved = config_module._config
    set_config(test_config)
    with patch("invengine.cli.initialize_observability"):
        yield test_config
    config_module._config = saved


class TestCLICommands:
    """Test CLI command functionality"""

    def setup_method(self):
        """Setup test fixtures"""
        self.runner = CliRunner()

    def test_cli_group_help(self):
        """Test CLI group help command"""
        result = self.runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "investigate" in result.output
        assert "validate-plan" in result.output
        assert "config" in result.output

    def test_cli_version(self):
        """Test CLI version display"""
        result = self.runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "0.1.0" in result.output


class TestInvestigateCommand:
    """Test investigate CLI command"""

    def setup_method(self):
        """Setup test fixtures"""
        self.runner = CliRunner()

    def test_investigate_runs_to_completion(self):
        """Test a full investigation against the mock backends"""
        result = self.runner.invoke(cli, ["investigate", "API responses are slow"])

        assert result.exit_code == 0, result.output
        assert "Type: performance" in result.output
        assert "Baseline Performance" in result.output
        assert "[in-progress] phases 1/2" in result.output
        assert "[completed] phases 2/2" in result.output
        assert "Primary Cause:" in result.output

    def test_investigate_with_type(self):
        """Test --type skips classification"""
        result = self.runner.invoke(
            cli, ["investigate", "Orders DB calls fail", "--type", "dependencies"]
        )

        assert result.exit_code == 0, result.output
        assert "Type: dependencies" in result.output

    def test_investigate_invalid_type(self):
        """Test unknown investigation types are rejected by click"""
        result = self.runner.invoke(cli, ["investigate", "x", "--type", "network"])

        assert result.exit_code != 0

    def test_investigate_blank_problem(self):
        """Test blank problems fail cleanly"""
        result = self.runner.invoke(cli, ["investigate", "   "])

        assert result.exit_code == 1
        assert "Investigation failed" in result.output

    def test_investigate_export_to_file(self, tmp_path):
        """Test exporting the report to a file"""
        output = tmp_path / "report.md"

        result = self.runner.invoke(
            cli,
            [
                "investigate",
                "API responses are slow",
                "--export-format",
                "markdown",
                "--output",
                str(output),
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Report written to" in result.output
        assert output.read_text(encoding="utf-8").startswith("# Investigation Report")

    def test_investigate_export_json_to_stdout(self):
        """Test exporting JSON without an output file"""
        result = self.runner.invoke(
            cli, ["investigate", "API responses are slow", "--export-format", "json"]
        )

        assert result.exit_code == 0, result.output
        assert '"root_cause_analysis"' in result.output


class TestValidatePlanCommand:
    """Test validate-plan CLI command"""

    def setup_method(self):
        """Setup test fixtures"""
        self.runner = CliRunner()

    def test_valid_plan(self, tmp_path):
        """Test a structurally valid plan"""
        plan_file = tmp_path / "plan.json"
        plan_file.write_text(make_plan([[("requests | count", True)]]).model_dump_json())

        result = self.runner.invoke(cli, ["validate-plan", "--plan-file", str(plan_file)])

        assert result.exit_code == 0
        assert "Plan is valid (1 phases, 1 queries)" in result.output

    def test_invalid_plan(self, tmp_path):
        """Test issues are listed and the exit code is 1"""
        plan_file = tmp_path / "plan.json"
        plan_file.write_text(
            make_plan([[("requests | count", True)], []], estimated_total_time=7200)
            .model_dump_json()
        )

        result = self.runner.invoke(cli, ["validate-plan", "--plan-file", str(plan_file)])

        assert result.exit_code == 1
        assert 'Phase "Phase 2" has no queries' in result.output
        assert "Investigation time is quite long" in result.output

    def test_unreadable_plan(self, tmp_path):
        """Test malformed plan files"""
        plan_file = tmp_path / "plan.json"
        plan_file.write_text(json.dumps({"phases": "nope"}))

        result = self.runner.invoke(cli, ["validate-plan", "--plan-file", str(plan_file)])

        assert result.exit_code == 1
        assert "Could not read plan" in result.output

    def test_missing_plan_file(self):
        """Test click rejects nonexistent files"""
        result = self.runner.invoke(cli, ["validate-plan", "--plan-file", "nonexistent.json"])

        assert result.exit_code != 0


class TestConfigCommand:
    """Test config CLI command"""

    def setup_method(self):
        """Setup test fixtures"""
        self.runner = CliRunner()

    def test_config_show_yaml(self):
        """Test config show in YAML format"""
        result = self.runner.invoke(cli, ["config", "--show"])

        assert result.exit_code == 0
        assert "Current invengine Configuration" in result.output
        assert "datasource:" in result.output

    def test_config_show_json(self):
        """Test config show in JSON format"""
        result = self.runner.invoke(cli, ["config", "--show", "--format", "json"])

        assert result.exit_code == 0
        assert '"datasource"' in result.output

    def test_config_without_show(self):
        """Test usage hint without --show"""
        result = self.runner.invoke(cli, ["config"])

        assert result.exit_code == 0
        assert "Use --show" in result.output
