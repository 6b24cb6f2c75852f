"""
CLI interface tests for dep-bumper.
Tests the command-line interface and main entry points.
"""

import json
from unittest.mock import patch

import httpx
import pytest
from click.testing import CliRunner

from conftest import build_registry_packuments, registry_handler
from dep_bumper.checker import UpdateChecker
from dep_bumper.credentials import NpmConfig
from dep_bumper.error_handling import ManifestWriteError
from dep_bumper.main import cli


def checker_factory(handler):
    """Build real checkers that talk to a mock registry."""

    def factory(policy, **kwargs):
        return UpdateChecker(
            policy, npm_config=NpmConfig(), transport=httpx.MockTransport(handler), **kwargs
        )

    return factory


def parse_json_output(result):
    # The report is always a single line; anything else is diagnostics
    return json.loads(result.stdout.strip().splitlines()[-1])


def strip_age(payload):
    for section in payload.get("results", {}).values():
        for data in section.values():
            data.pop("age", None)
    return payload


@pytest.fixture
def mock_registry():
    handler = registry_handler(build_registry_packuments())
    with patch("dep_bumper.main.get_update_checker", side_effect=checker_factory(handler)):
        yield


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "dep-bumper" in result.output.lower()

    def test_cli_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_check_help_lists_options(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["check", "--help"])

        assert result.exit_code == 0
        for option in ("--update", "--prerelease", "--greatest", "--release", "--patch", "--minor"):
            assert option in result.output


class TestCheckCommand:
    """Test the check command end to end against a mock registry."""

    def test_json_latest(self, mock_registry, sample_package_json):
        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-j", "-f", str(sample_package_json)])

        assert result.exit_code == 0
        payload = strip_age(parse_json_output(result))
        assert payload["results"]["dependencies"]["noty"] == {
            "old": "3.1.0",
            "new": "3.2.0-beta",
            "info": "https://github.com/needim/noty",
        }
        assert payload["results"]["peerDependencies"]["@babel/preset-env"]["new"] == "~7.7.6"
        assert "message" not in payload

    def test_greatest_flag_without_value(self, mock_registry, sample_package_json):
        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-g", "-j", "-f", str(sample_package_json)])

        assert result.exit_code == 0
        dependencies = parse_json_output(result)["results"]["dependencies"]
        assert dependencies["noty"]["new"] == "3.1.4"
        assert "svgstore" not in dependencies

    def test_greatest_scoped_to_packages(self, mock_registry, sample_package_json):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["check", "-j", "-f", str(sample_package_json), "--greatest", "noty"]
        )

        dependencies = parse_json_output(result)["results"]["dependencies"]
        assert dependencies["noty"]["new"] == "3.1.4"
        assert dependencies["svgstore"]["new"] == "^3.0.0-2"

    def test_patch(self, mock_registry, sample_package_json):
        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-P", "-j", "-f", str(sample_package_json)])

        payload = strip_age(parse_json_output(result))
        assert payload["results"] == {
            "dependencies": {
                "gulp-sourcemaps": {
                    "old": "2.0.0",
                    "new": "2.0.1",
                    "info": "https://github.com/floridoo/gulp-sourcemaps",
                },
                "svgstore": {
                    "old": "^3.0.0",
                    "new": "^3.0.0-2",
                    "info": "https://github.com/svgstore/svgstore",
                },
                "html-webpack-plugin": {
                    "old": "4.0.0-alpha.2",
                    "new": "4.0.0-beta.11",
                    "info": "https://github.com/jantimon/html-webpack-plugin",
                },
                "noty": {
                    "old": "3.1.0",
                    "new": "3.1.4",
                    "info": "https://github.com/needim/noty",
                },
            }
        }

    def test_include_and_types(self, mock_registry, sample_package_json):
        runner = CliRunner()
        result = runner.invoke(
            cli,
            ["check", "-j", "-f", str(sample_package_json), "-t", "peerDependencies"],
        )

        payload = parse_json_output(result)
        assert list(payload["results"]) == ["peerDependencies"]

        result = runner.invoke(
            cli, ["check", "-j", "-f", str(sample_package_json), "-i", "noty,prismjs"]
        )
        assert sorted(parse_json_output(result)["results"]["dependencies"]) == ["noty", "prismjs"]

    def test_update_writes_manifest(self, mock_registry, sample_package_json):
        runner = CliRunner()
        result = runner.invoke(
            cli, ["check", "-u", "-j", "-f", str(sample_package_json), "-i", "noty"]
        )

        assert result.exit_code == 0
        payload = parse_json_output(result)
        assert payload["message"] == "package.json updated"

        written = sample_package_json.read_text(encoding="utf-8")
        data = json.loads(written)
        assert data["dependencies"]["noty"] == "3.2.0-beta"
        assert data["dependencies"]["prismjs"] == "1.0.0"
        assert written.startswith('{\n  "dependencies": {\n')

    def test_write_failure_still_reports_results(self, mock_registry, temp_dir):
        manifest = temp_dir / "package.json"
        manifest.write_text(json.dumps({"dependencies": {"noty": "3.1.0"}}), encoding="utf-8")
        failure = ManifestWriteError("Error writing manifest: Permission denied")
        runner = CliRunner()

        with patch("dep_bumper.main.write_manifest", side_effect=failure):
            result = runner.invoke(cli, ["check", "-u", "-j", "-f", str(manifest)])

        assert result.exit_code == 1
        payload = parse_json_output(result)
        assert payload["error"] == "Error writing manifest: Permission denied"
        assert payload["results"]["dependencies"]["noty"]["new"] == "3.2.0-beta"
        assert "message" not in payload

        with patch("dep_bumper.main.write_manifest", side_effect=failure):
            result = runner.invoke(cli, ["check", "-u", "-n", "-f", str(manifest)])

        assert result.exit_code == 1
        assert "3.2.0-beta" in result.stdout
        assert "ManifestWriteError: Error writing manifest" in result.stdout
        assert "package.json updated" not in result.stdout
        assert json.loads(manifest.read_text(encoding="utf-8"))["dependencies"]["noty"] == "3.1.0"

    def test_up_to_date(self, mock_registry, temp_dir):
        manifest = temp_dir / "package.json"
        manifest.write_text(json.dumps({"dependencies": {"prismjs": "1.17.1"}}), encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-j", "-f", str(temp_dir)])

        assert result.exit_code == 0
        assert parse_json_output(result) == {
            "message": "All packages are up to date.",
            "results": {},
        }

    def test_error_on_outdated(self, mock_registry, sample_package_json):
        runner = CliRunner()

        result = runner.invoke(cli, ["check", "-E", "-j", "-f", str(sample_package_json)])
        assert result.exit_code == 2

        result = runner.invoke(cli, ["check", "-U", "-j", "-f", str(sample_package_json)])
        assert result.exit_code == 0

    def test_error_on_unchanged(self, mock_registry, temp_dir):
        manifest = temp_dir / "package.json"
        manifest.write_text(json.dumps({"dependencies": {"prismjs": "1.17.1"}}), encoding="utf-8")
        runner = CliRunner()

        result = runner.invoke(cli, ["check", "-U", "-j", "-f", str(manifest)])
        assert result.exit_code == 2

        result = runner.invoke(cli, ["check", "-E", "-j", "-f", str(manifest)])
        assert result.exit_code == 0

    def test_missing_manifest(self, temp_dir):
        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-j", "-f", str(temp_dir / "nope")])

        assert result.exit_code == 1
        payload = parse_json_output(result)
        assert payload["error"].startswith("Unable to open")

    def test_registry_failure_is_fatal(self, mock_registry, temp_dir):
        manifest = temp_dir / "package.json"
        manifest.write_text(json.dumps({"dependencies": {"not-published": "1.0.0"}}), encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-E", "-j", "-f", str(manifest)])

        assert result.exit_code == 1
        assert "not-published" in parse_json_output(result)["error"]

    def test_table_output(self, mock_registry, temp_dir):
        manifest = temp_dir / "package.json"
        manifest.write_text(json.dumps({"dependencies": {"noty": "3.1.0"}}), encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-n", "-f", str(manifest)])

        assert result.exit_code == 0
        for column in ("NAME", "OLD", "NEW", "AGE", "INFO"):
            assert column in result.stdout
        assert "noty" in result.stdout
        assert "3.2.0-beta" in result.stdout

    def test_table_update_banner(self, mock_registry, temp_dir):
        manifest = temp_dir / "package.json"
        manifest.write_text(json.dumps({"dependencies": {"noty": "3.1.0"}}), encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-u", "-n", "-f", str(manifest)])

        assert result.exit_code == 0
        assert "package.json updated" in result.stdout

    def test_no_packages(self, temp_dir):
        manifest = temp_dir / "package.json"
        manifest.write_text(json.dumps({"name": "empty"}), encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-j", "-f", str(manifest)])

        assert result.exit_code == 1
        assert parse_json_output(result) == {"error": "No packages found"}

    def test_invalid_sockets(self, sample_package_json):
        runner = CliRunner()
        result = runner.invoke(cli, ["check", "-S", "0", "-f", str(sample_package_json)])

        assert result.exit_code == 1


class TestConfigCommands:
    def test_config_init(self):
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["config", "init"])
            assert result.exit_code == 0

            with open(".dep-bumper.json", encoding="utf-8") as f:
                data = json.load(f)
            assert data["update"]["max_sockets"] == 64

            result = runner.invoke(cli, ["config", "init"])
            assert "already exists" in result.output

    def test_config_show(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert "Max Sockets: 64" in result.output
        assert "https://registry.npmjs.org" in result.output

    def test_config_validate(self, temp_dir):
        good = temp_dir / "good.yaml"
        good.write_text("update:\n  max_sockets: 8\n", encoding="utf-8")
        bad = temp_dir / "bad.yaml"
        bad.write_text("update:\n  max_sockets: 0\n", encoding="utf-8")

        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", str(good)])
        assert result.exit_code == 0
        assert "is valid" in result.output

        result = runner.invoke(cli, ["config", "validate", str(bad)])
        assert result.exit_code == 1
        assert "max_sockets" in result.output
