"""
Tests for the run use case — orchestration from build.yml to exit code.
"""

import json
from pathlib import Path

from buildrig.adapters.function import FunctionAdapter
from buildrig.adapters.registry import AdapterRegistry
from buildrig.core.engine.executor import ExecutionReport, TargetOutcome
from buildrig.core.errors import MissingRequiredParameter, RunHalted, ToolchainBootstrapFailure
from buildrig.core.models.target import TargetState
from buildrig.core.toolchain.bootstrap import Toolchain, ToolchainSpec
from buildrig.core.use_cases.plan import list_targets, show_plan
from buildrig.core.use_cases.run import (
    EXIT_CONFIG,
    EXIT_FAILED,
    EXIT_OK,
    EXIT_PRECONDITION,
    EXIT_TOOLCHAIN,
    exit_code_for,
    run_build,
)
from buildrig.core.use_cases.toolchain import resolve_toolchain

TOOLCHAIN_BUILD = """\
    name: widgets
    parameters:
      configuration: {default: Debug}
    toolchain:
      command: dotnet
      install_url: https://dot.net/v1/dotnet-install.sh
      env:
        DOTNET_NOLOGO: 1
    targets:
      compile:
        action:
          adapter: record
          params:
            exe: "{toolchain}"
            config: "{configuration}"
      pack:
        depends_on: compile
        matrix:
          project: [Core, Cli]
        action:
          adapter: record
          params:
            line: "pack {project} -c {configuration}"
"""


class FakeResolver:
    """Stands in for the bootstrap resolver; counts how it was used."""

    calls: list[str] = []
    fail = False

    def __init__(self, decl, root: Path, environ=None):
        self.decl = decl
        self.root = root
        self.install_dir = root / ".buildrig/temp/toolchain"

    def resolve(self) -> Toolchain:
        FakeResolver.calls.append("resolve")
        if FakeResolver.fail:
            raise ToolchainBootstrapFailure("install routine exited with code 1")
        return Toolchain(
            executable=self.install_dir / self.decl.command,
            source="installed",
            spec=ToolchainSpec(channel="Current"),
        )

    def find_system(self):
        FakeResolver.calls.append("find_system")
        return None

    def find_cached(self, spec):
        FakeResolver.calls.append("find_cached")
        return None

    def resolve_spec(self) -> ToolchainSpec:
        return ToolchainSpec(channel="Current")


def _recording_registry():
    seen: list[dict] = []

    def record(params):
        seen.append(params)
        return True, ""

    registry = AdapterRegistry()
    registry.register(FunctionAdapter("record", record))
    return registry, seen


def _reset_fake():
    FakeResolver.calls = []
    FakeResolver.fail = False


class TestRunBuild:
    def test_full_run(self, write_build, tmp_path: Path):
        _reset_fake()
        registry, seen = _recording_registry()
        result = run_build(
            targets=["pack"],
            config_path=write_build(TOOLCHAIN_BUILD),
            configuration="Release",
            registry=registry,
            environ={},
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_OK, result.error
        assert result.plan.names == ["compile", "pack"]
        assert result.toolchain.source == "installed"
        assert seen[0]["exe"] == str(tmp_path / ".buildrig/temp/toolchain/dotnet")
        assert seen[0]["config"] == "Release"
        assert sorted(p["line"] for p in seen[1:]) == ["pack Cli -c Release", "pack Core -c Release"]
        assert result.to_dict()["report"]["status"] == "ok"

    def test_environment_parameters(self, write_build):
        _reset_fake()
        registry, seen = _recording_registry()
        result = run_build(
            targets=["compile"],
            config_path=write_build(TOOLCHAIN_BUILD),
            registry=registry,
            environ={"CONFIGURATION": "release"},
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_OK
        assert seen[0]["config"] == "Release"

    def test_bootstrap_failure(self, write_build):
        _reset_fake()
        FakeResolver.fail = True
        registry, seen = _recording_registry()
        result = run_build(
            config_path=write_build(TOOLCHAIN_BUILD),
            registry=registry,
            environ={},
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_TOOLCHAIN
        assert result.error_type == "ToolchainBootstrapFailure"
        assert result.report is None
        assert seen == []

    def test_graph_errors_precede_bootstrap(self, write_build):
        _reset_fake()
        result = run_build(
            targets=["ghost"],
            config_path=write_build(TOOLCHAIN_BUILD),
            environ={},
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_CONFIG
        assert result.error_type == "UnknownTarget"
        assert FakeResolver.calls == []

    def test_no_bootstrap_never_installs(self, write_build):
        _reset_fake()
        registry, _ = _recording_registry()
        result = run_build(
            targets=["compile"],
            config_path=write_build(TOOLCHAIN_BUILD),
            bootstrap=False,
            registry=registry,
            environ={},
            resolver_factory=FakeResolver,
        )
        assert "resolve" not in FakeResolver.calls
        assert FakeResolver.calls == ["find_system", "find_cached"]
        assert result.toolchain is None
        assert result.exit_code == EXIT_OK

    def test_invalid_configuration_is_config_error(self, write_build):
        _reset_fake()
        result = run_build(
            config_path=write_build(TOOLCHAIN_BUILD),
            configuration="Profile",
            environ={},
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_CONFIG

    def test_mock_mode(self, write_build):
        _reset_fake()
        result = run_build(
            config_path=write_build(TOOLCHAIN_BUILD),
            mock_mode=True,
            environ={},
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_OK
        assert len(result.report.outcomes["pack"].receipts) == 2

    def test_failed_action(self, write_build):
        _reset_fake()
        registry = AdapterRegistry()
        registry.register(FunctionAdapter("record", lambda p: (False, "compiler error CS1002")))
        result = run_build(
            targets=["pack"],
            config_path=write_build(TOOLCHAIN_BUILD),
            registry=registry,
            environ={},
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_FAILED
        assert result.report.state("pack").value == "skipped"


class TestInspection:
    def test_show_plan(self, write_build):
        result = show_plan(["pack"], config_path=write_build(TOOLCHAIN_BUILD))
        assert result.valid
        assert result.plan.names == ["compile", "pack"]
        assert result.to_dict()["plan"][1]["matrix"] == {"project": ["Core", "Cli"]}

    def test_list_targets(self, write_build):
        result = list_targets(config_path=write_build(TOOLCHAIN_BUILD))
        assert result.graph.names() == ["compile", "pack"]
        assert result.plan.names == ["compile", "pack"]

    def test_resolve_toolchain(self, write_build):
        _reset_fake()
        result = resolve_toolchain(
            config_path=write_build(TOOLCHAIN_BUILD),
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_OK
        assert result.to_dict()["source"] == "installed"
        assert result.to_dict()["spec"] == "channel Current"

    def test_resolve_toolchain_failure(self, write_build):
        _reset_fake()
        FakeResolver.fail = True
        result = resolve_toolchain(
            config_path=write_build(TOOLCHAIN_BUILD),
            resolver_factory=FakeResolver,
        )
        assert result.exit_code == EXIT_TOOLCHAIN
        assert "exited with code 1" in result.error


PUBLISH_BUILD = """\
    parameters:
      api_key: {secret: true}
    targets:
      pack:
        matrix:
          project: [Core, Cli]
        action: "true pack {project}"
      publish:
        requires:
          - parameter: api_key
        action: "true push --key {api_key}"
"""


class TestRunOutcomes:
    def test_missing_parameter_beside_fan_out_is_precondition_exit(self, write_build):
        result = run_build(config_path=write_build(PUBLISH_BUILD), environ={})
        assert result.exit_code == EXIT_PRECONDITION
        assert result.report.state("publish").value == "failed"
        assert result.report.state("pack").value == "skipped"
        assert result.report.outcomes["pack"].reason.startswith("run halted")

    def test_cut_short_target_does_not_decide_exit_code(self):
        report = ExecutionReport(
            outcomes={
                "publish": TargetOutcome(
                    "publish", TargetState.FAILED, error=MissingRequiredParameter("api_key")
                ),
                "pack": TargetOutcome(
                    "pack", TargetState.FAILED, error=RunHalted("pack", "load-bearing target 'publish' failed")
                ),
            }
        )
        assert exit_code_for(report) == EXIT_PRECONDITION

    def test_secret_never_reaches_json(self, write_build):
        result = run_build(
            targets=["publish"],
            config_path=write_build(PUBLISH_BUILD),
            arguments={"api_key": "S3CRET-TOKEN"},
            environ={},
        )
        assert result.exit_code == EXIT_OK, result.error
        [receipt] = result.report.outcomes["publish"].receipts
        assert "S3CRET-TOKEN" in receipt.metadata["command"]
        dumped = json.dumps(result.to_dict())
        assert "S3CRET-TOKEN" not in dumped
        assert "--key ***" in dumped
