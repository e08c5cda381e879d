"""
Unit tests for the command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from regionfit.cli import cli
from regionfit.config import Config, RuleSystemConfig, StorageConfig
from regionfit.system import RuleConfigurationSystem


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path / "rule_data")


def invoke(runner, data_dir, *args):
    return runner.invoke(cli, ["--data-dir", data_dir, "--log-level", "ERROR", *args])


class TestRulesCommands:
    """Tests for the rules command group."""

    def test_list_seeds_defaults(self, runner, data_dir):
        result = invoke(runner, data_dir, "rules", "list")

        assert result.exit_code == 0
        assert "gdpr-compliance-check" in result.output
        assert "10 rules" in result.output

    def test_list_by_region(self, runner, data_dir):
        result = invoke(runner, data_dir, "rules", "list", "--region", "US")

        assert "ccpa-compliance-check" in result.output
        assert "gdpr-compliance-check" not in result.output

    def test_list_as_json_sorted(self, runner, data_dir):
        result = invoke(
            runner, data_dir, "rules", "list", "--sort-by", "priority", "--desc", "--as-json"
        )

        rules = json.loads(result.stdout)
        assert rules[0]["id"] == "gdpr-compliance-check"
        assert len(rules) == 10

    def test_list_without_defaults(self, runner, data_dir):
        result = runner.invoke(
            cli, ["--data-dir", data_dir, "--log-level", "ERROR", "--no-defaults", "rules", "list"]
        )
        assert result.output.strip() == "0 rules"

    def test_show(self, runner, data_dir):
        result = invoke(runner, data_dir, "rules", "show", "multi-currency-support")

        assert result.exit_code == 0
        assert json.loads(result.stdout)["actions"]["category"] == "userExperience"

    def test_show_unknown(self, runner, data_dir):
        result = invoke(runner, data_dir, "rules", "show", "no-such-rule")

        assert result.exit_code == 1
        assert "Rule not found" in result.output

    def test_versions_and_restore(self, runner, data_dir):
        invoke(runner, data_dir, "rules", "list")
        system = RuleConfigurationSystem(
            Config(
                rules=RuleSystemConfig(auto_backup=False),
                storage=StorageConfig(backend="file", data_dir=data_dir),
            )
        )
        system.update_rule("gdpr-compliance-check", {"weight": 45})
        system.close()

        versions = invoke(runner, data_dir, "rules", "versions", "gdpr-compliance-check")
        restored = invoke(runner, data_dir, "rules", "restore", "gdpr-compliance-check", "1.1.0")
        shown = invoke(runner, data_dir, "rules", "show", "gdpr-compliance-check")

        assert "1.1.0" in versions.output
        assert "1.1.1" in versions.output
        assert "Restored gdpr-compliance-check from 1.1.0 as v1.1.2" in restored.output
        assert json.loads(shown.stdout)["weight"] == 30

    def test_versions_unknown(self, runner, data_dir):
        result = invoke(runner, data_dir, "rules", "versions", "no-such-rule")

        assert result.exit_code == 1
        assert "No version history" in result.output

    def test_restore_unknown_version(self, runner, data_dir):
        result = invoke(runner, data_dir, "rules", "restore", "gdpr-compliance-check", "9.9.9")

        assert result.exit_code == 1
        assert "not found" in result.output


class TestBundleCommands:
    """Tests for export and import."""

    def test_export_to_stdout(self, runner, data_dir):
        result = invoke(runner, data_dir, "export", "--include-ab-tests")

        bundle = json.loads(result.stdout)
        assert bundle["count"] == 10
        assert bundle["abTests"] == []
        assert "versions" not in bundle

    def test_export_then_import(self, runner, data_dir, tmp_path):
        bundle_file = tmp_path / "bundle.json"
        exported = invoke(runner, data_dir, "export", "-o", str(bundle_file), "--include-versions")

        target = str(tmp_path / "target")
        first = runner.invoke(
            cli,
            ["--data-dir", target, "--log-level", "ERROR", "--no-defaults", "import", str(bundle_file)],
        )
        second = runner.invoke(
            cli, ["--data-dir", target, "--log-level", "ERROR", "import", str(bundle_file)]
        )

        assert "Exported 10 rules" in exported.output
        assert "Imported 10, updated 0, skipped 0" in first.output
        assert "Imported 0, updated 0, skipped 10" in second.output

    def test_import_overwrite(self, runner, data_dir, tmp_path):
        bundle_file = tmp_path / "bundle.json"
        bundle_file.write_text(
            json.dumps({"rules": [{"id": "gdpr-compliance-check", "weight": 50}]})
        )

        result = invoke(runner, data_dir, "import", str(bundle_file), "--overwrite")

        assert "Imported 0, updated 1, skipped 0" in result.output

    def test_import_reports_errors(self, runner, data_dir, tmp_path):
        bundle_file = tmp_path / "bundle.json"
        bundle_file.write_text(json.dumps({"rules": [{"id": "bad", "category": "weather"}]}))

        result = invoke(runner, data_dir, "import", str(bundle_file))

        assert "Imported 0, updated 0, skipped 0" in result.output
        assert "Invalid category" in result.output

    def test_import_invalid_bundle(self, runner, data_dir, tmp_path):
        bundle_file = tmp_path / "bundle.json"
        bundle_file.write_text(json.dumps({"items": []}))

        result = invoke(runner, data_dir, "import", str(bundle_file))

        assert result.exit_code == 1
        assert "rules array required" in result.output


class TestEvaluateCommand:
    """Tests for evaluate."""

    @pytest.fixture
    def snapshot_file(self, tmp_path):
        path = tmp_path / "page.json"
        path.write_text(
            json.dumps(
                {
                    "url": "https://shop.example.de",
                    "meta": {"viewport": "width=device-width"},
                    "ecommerce": {"currencies": ["EUR"], "payment_methods": ["visa"]},
                }
            )
        )
        return str(path)

    def test_evaluate(self, runner, data_dir, snapshot_file):
        result = invoke(runner, data_dir, "evaluate", snapshot_file, "--region", "DE")

        data = json.loads(result.stdout)
        assert result.exit_code == 0
        assert data["categories"]["compliance"]["score"] == 75
        assert data["categories"]["userExperience"]["score"] == 80
        assert "crossBorder" not in data["categories"]

    def test_evaluate_five_bucket(self, runner, data_dir, snapshot_file):
        result = invoke(
            runner, data_dir, "evaluate", snapshot_file, "--region", "DE", "--five-bucket"
        )

        data = json.loads(result.stdout)
        assert data["categories"]["crossBorder"]["score"] == 80
        assert data["categories"]["userExperience"]["score"] == 100

    def test_region_required(self, runner, data_dir, snapshot_file):
        result = invoke(runner, data_dir, "evaluate", snapshot_file)
        assert result.exit_code != 0
