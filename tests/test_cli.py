"""
Tests for CLI commands — exit codes and output of run, plan, targets
and toolchain.
"""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from buildrig import __version__
from buildrig.main import cli

SIMPLE_BUILD = """\
    name: demo
    default: pack
    targets:
      compile:
        action: "echo compiling"
      test:
        depends_on: compile
        action: "echo testing"
      pack:
        depends_on: [test]
        action: "echo packing"
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("API_KEY", "BUILDRIG_LOG_FILE", "BUILDRIG_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _invoke(runner: CliRunner, path: Path, *args: str):
    return runner.invoke(cli, ["-c", str(path), *args])


class TestGlobal:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "self-bootstrapping build pipeline orchestrator" in result.output
        for command in ("run", "plan", "targets", "toolchain"):
            assert command in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


# ── run ──────────────────────────────────────────────────────────────


class TestRun:
    def test_success(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "run")
        assert result.exit_code == 0, result.output
        assert "✓ pack" in result.output
        assert "Result: 3/3 succeeded, 0 failed, 0 skipped" in result.output

    def test_json_report(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "run", "test", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["exit_code"] == 0
        assert data["plan"] == ["compile", "test"]
        assert data["report"]["status"] == "ok"

    def test_action_failure_exits_1(self, runner, write_build):
        path = write_build("""\
            targets:
              compile:
                action: "exit 7"
              pack:
                depends_on: compile
                action: "echo packing"
        """)
        result = _invoke(runner, path, "run", "pack")
        assert result.exit_code == 1
        assert "✗ compile" in result.output
        assert "1 failed, 1 skipped" in result.output

    def test_optional_target_failure_exits_0(self, runner, write_build):
        path = write_build("""\
            targets:
              compile:
                action: "echo ok"
              announce:
                depends_on: compile
                load_bearing: false
                action: "exit 1"
        """)
        result = _invoke(runner, path, "run", "announce")
        assert result.exit_code == 0

    def test_missing_parameter_exits_3(self, runner, write_build):
        path = write_build("""\
            parameters:
              api_key: {secret: true}
            targets:
              publish:
                requires:
                  - parameter: api_key
                action: "echo publishing"
        """)
        result = _invoke(runner, path, "run", "publish")
        assert result.exit_code == 3
        assert "api_key" in result.output

    def test_parameter_argument_satisfies_precondition(self, runner, write_build):
        path = write_build("""\
            parameters:
              api_key: {secret: true}
            targets:
              publish:
                requires:
                  - parameter: api_key
                action: "echo publishing"
        """)
        result = _invoke(runner, path, "run", "publish", "-p", "api_key=k-123")
        assert result.exit_code == 0

    def test_missing_parameter_beside_fan_out_exits_3(self, runner, write_build):
        path = write_build("""\
            parameters:
              api_key: {secret: true}
            targets:
              pack:
                matrix:
                  project: [Core, Cli]
                action: "echo pack {project}"
              publish:
                requires:
                  - parameter: api_key
                action: "echo publishing"
        """)
        result = _invoke(runner, path, "run")
        assert result.exit_code == 3
        assert "api_key" in result.output

    def test_json_report_masks_secrets(self, runner, write_build):
        path = write_build("""\
            parameters:
              api_key: {secret: true}
            targets:
              publish:
                action: "true push --key {api_key}"
        """)
        result = _invoke(runner, path, "run", "publish", "-p", "api_key=S3CRET-TOKEN", "--json")
        assert result.exit_code == 0
        assert "S3CRET-TOKEN" not in result.output
        data = json.loads(result.output)
        [receipt] = data["report"]["targets"][0]["receipts"]
        assert receipt["metadata"]["command"] == "true push --key ***"

    def test_absolute_glob_axis_exits_4(self, runner, write_build):
        path = write_build("""\
            targets:
              publish:
                matrix:
                  package:
                    glob: "/opt/feed/*.nupkg"
                action: "echo {package}"
        """)
        result = _invoke(runner, path, "run", "publish")
        assert result.exit_code == 4
        assert "glob pattern must be relative" in result.output

    def test_cycle_exits_4(self, runner, write_build):
        path = write_build("""\
            targets:
              a: {depends_on: b, action: "echo a"}
              b: {depends_on: a, action: "echo b"}
        """)
        result = _invoke(runner, path, "run", "a")
        assert result.exit_code == 4
        assert "Cycle detected" in result.output

    def test_unknown_target_exits_4(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "run", "ghost")
        assert result.exit_code == 4
        assert "ghost" in result.output

    def test_bad_param_syntax_exits_4(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "run", "-p", "novalue")
        assert result.exit_code == 4

    def test_missing_build_file_exits_4(self, runner, tmp_path: Path):
        result = _invoke(runner, tmp_path / "absent.yml", "run")
        assert result.exit_code == 4

    def test_invalid_parallelism_is_usage_error(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "run", "-j", "0")
        assert result.exit_code == 2

    def test_toolchain_failure_exits_5(self, runner, write_build, tmp_path: Path):
        path = write_build(f"""\
            toolchain:
              command: buildrig-test-runtime-that-does-not-exist
              install_url: {(tmp_path / "missing-install.sh").as_uri()}
            targets:
              compile:
                action: "echo compiling"
        """)
        result = _invoke(runner, path, "run", "compile")
        assert result.exit_code == 5
        assert "Failed to download install routine" in result.output

    def test_deadline_exits_6(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "run", "--deadline", "0")
        assert result.exit_code == 6
        assert "0 succeeded" in result.output

    def test_dry_run_executes_nothing(self, runner, write_build, tmp_path: Path):
        marker = tmp_path / "marker"
        path = write_build(f"""\
            targets:
              touch:
                action: "touch {marker}"
        """)
        result = _invoke(runner, path, "run", "touch", "--dry-run")
        assert result.exit_code == 0
        assert "[dry-run]" in result.output
        assert not marker.exists()

    def test_mock_mode(self, runner, write_build):
        path = write_build("""\
            targets:
              notify:
                action:
                  adapter: webhook
                  params: {url: "https://chat.invalid/hook", text: hi}
        """)
        result = _invoke(runner, path, "run", "notify", "--mock")
        assert result.exit_code == 0
        assert "[mock]" in result.output


# ── plan / targets ───────────────────────────────────────────────────


class TestPlan:
    def test_plan_order(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "plan")
        assert result.exit_code == 0
        lines = [line.strip() for line in result.output.splitlines() if line.strip()[:1].isdigit()]
        assert lines == ["1. compile", "2. test", "3. pack"]

    def test_plan_json(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "plan", "test", "--json")
        data = json.loads(result.output)
        assert data["valid"] is True
        assert [t["name"] for t in data["plan"]] == ["compile", "test"]

    def test_plan_cycle(self, runner, write_build):
        path = write_build("""\
            targets:
              a: {depends_on: b}
              b: {depends_on: a}
        """)
        result = _invoke(runner, path, "plan", "a")
        assert result.exit_code == 4
        assert "Invalid build graph" in result.output

    def test_targets_lists_default(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "targets")
        assert result.exit_code == 0
        assert "pack (default)" in result.output
        assert "depends on: compile" in result.output

    def test_targets_json(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "targets", "--json")
        data = json.loads(result.output)
        assert [t["name"] for t in data["targets"]] == ["compile", "test", "pack"]


# ── toolchain ────────────────────────────────────────────────────────


class TestToolchainCommand:
    def test_no_toolchain_declared(self, runner, write_build):
        result = _invoke(runner, write_build(SIMPLE_BUILD), "toolchain")
        assert result.exit_code == 4
        assert "declares no toolchain" in result.output

    def test_no_install_reports_missing(self, runner, write_build):
        path = write_build("""\
            toolchain:
              command: buildrig-test-runtime-that-does-not-exist
              install_url: https://example.invalid/install.sh
            targets: {}
        """)
        result = _invoke(runner, path, "toolchain", "--no-install")
        assert result.exit_code == 0
        assert "No system or cached toolchain" in result.output
