"""
Tests for parameter resolution and the pinned-version manifest.
"""

from pathlib import Path

import pytest

from buildrig.core.config.manifest import Manifest, scan_value
from buildrig.core.config.parameters import (
    Configuration,
    ParameterResolver,
    default_configuration,
    is_local_build,
    parse_assignments,
)
from buildrig.core.errors import MissingRequiredParameter, ParameterError
from buildrig.core.models.build import ParameterDecl

# ── Manifest ─────────────────────────────────────────────────────────


class TestManifestScan:
    def test_reads_version(self):
        assert scan_value('{"sdk": {"version": "8.0.100"}}', "version") == "8.0.100"

    def test_first_match_wins(self):
        text = '{"version": "6.0.1", "other": {"version": "7.0.2"}}'
        assert scan_value(text, "version") == "6.0.1"

    def test_malformed_content_still_scanned(self):
        text = '{ "sdk": { "version": "8.0.100", , // comment\n'
        assert scan_value(text, "version") == "8.0.100"

    def test_missing_key(self):
        assert scan_value('{"rollForward": "latestMajor"}', "version") is None

    def test_missing_file(self, tmp_path: Path):
        assert Manifest(tmp_path / "global.json").get("version") is None

    def test_manifest_object(self, tmp_path: Path):
        path = tmp_path / "global.json"
        path.write_text('{"sdk": {"version": "8.0.100", "rollForward": "major"}}')
        manifest = Manifest(path)
        assert manifest.exists
        assert manifest.get("version") == "8.0.100"
        assert manifest.get("rollForward") == "major"
        assert manifest.get("absent") is None

    def test_manifest_absent(self, tmp_path: Path):
        manifest = Manifest(tmp_path / "nope.json")
        assert not manifest.exists
        assert manifest.get("version") is None


# ── Resolver ─────────────────────────────────────────────────────────


class TestParameterResolver:
    def test_argument_beats_environment(self):
        resolver = ParameterResolver(
            declarations={"feed": ParameterDecl(default="nuget.org")},
            arguments={"feed": "local"},
            environ={"FEED": "env-feed"},
        )
        param = resolver.resolve("feed")
        assert param.value == "local"
        assert param.source == "argument"

    def test_environment_beats_default(self):
        resolver = ParameterResolver(
            declarations={"feed": ParameterDecl(default="nuget.org")},
            environ={"FEED": "env-feed"},
        )
        param = resolver.resolve("feed")
        assert param.value == "env-feed"
        assert param.source == "environment"

    def test_declared_default(self):
        resolver = ParameterResolver(
            declarations={"feed": ParameterDecl(default="nuget.org")},
            environ={},
        )
        param = resolver.resolve("feed")
        assert param.value == "nuget.org"
        assert param.source == "default"

    def test_declared_default_argument(self):
        resolver = ParameterResolver(environ={})
        assert resolver.resolve("undeclared", "fallback").value == "fallback"

    def test_explicit_env_name(self):
        resolver = ParameterResolver(
            declarations={"api_key": ParameterDecl(env="NUGET_API_KEY")},
            environ={"API_KEY": "wrong", "NUGET_API_KEY": "right"},
        )
        assert resolver.resolve("api_key").value == "right"

    def test_empty_values_count_as_absent(self):
        resolver = ParameterResolver(
            declarations={"feed": ParameterDecl(default="nuget.org")},
            arguments={"feed": ""},
            environ={"FEED": ""},
        )
        param = resolver.resolve("feed")
        assert param.value == "nuget.org"
        assert param.source == "default"

    def test_manifest_source(self, tmp_path: Path):
        path = tmp_path / "global.json"
        path.write_text('{"sdk": {"version": "8.0.100"}}')
        resolver = ParameterResolver(
            declarations={"sdk_version": ParameterDecl(manifest_key="version", default="6.0")},
            environ={},
            manifest=Manifest(path),
        )
        param = resolver.resolve("sdk_version")
        assert param.value == "8.0.100"
        assert param.source == "manifest"

    def test_absent_parameter(self):
        resolver = ParameterResolver(declarations={"token": ParameterDecl()}, environ={})
        param = resolver.resolve("token")
        assert param.value is None
        assert not param.present


class TestParameterSnapshot:
    def test_snapshot_is_read_only(self):
        snapshot = ParameterResolver(arguments={"a": "1"}, environ={}).snapshot()
        with pytest.raises(TypeError):
            snapshot["a"] = "2"  # type: ignore[index]

    def test_undeclared_lookup_returns_none(self):
        snapshot = ParameterResolver(environ={}).snapshot()
        assert snapshot.value("nothing") is None

    def test_require_missing(self):
        snapshot = ParameterResolver(declarations={"token": ParameterDecl()}, environ={}).snapshot()
        with pytest.raises(MissingRequiredParameter) as exc:
            snapshot.require("token")
        assert exc.value.parameter == "token"
        assert "token" in str(exc.value)

    def test_require_present(self):
        snapshot = ParameterResolver(arguments={"token": "abc"}, environ={}).snapshot()
        assert snapshot.require("token") == "abc"

    def test_secret_masked_in_dict(self):
        snapshot = ParameterResolver(
            declarations={"token": ParameterDecl(secret=True)},
            arguments={"token": "s3cr3t"},
            environ={},
        ).snapshot()
        data = snapshot.to_dict()
        assert data["token"]["value"] == "***"
        assert data["token"]["source"] == "argument"
        assert snapshot.value("token") == "s3cr3t"

    def test_configuration_always_present(self):
        snapshot = ParameterResolver(environ={}).snapshot()
        assert snapshot.value("configuration") == "Debug"
        assert snapshot.configuration is Configuration.DEBUG

    def test_configuration_normalised(self):
        snapshot = ParameterResolver(arguments={"configuration": "release"}, environ={}).snapshot()
        assert snapshot.value("configuration") == "Release"

    def test_invalid_configuration(self):
        resolver = ParameterResolver(arguments={"configuration": "Profile"}, environ={})
        with pytest.raises(ParameterError):
            resolver.snapshot()

    def test_template_values(self):
        snapshot = ParameterResolver(
            declarations={"token": ParameterDecl()},
            arguments={"feed": "local"},
            environ={},
        ).snapshot()
        values = snapshot.template_values()
        assert values["feed"] == "local"
        assert "token" not in values


# ── Configuration ────────────────────────────────────────────────────


class TestConfiguration:
    def test_local_is_debug(self):
        assert is_local_build({})
        assert default_configuration({}) is Configuration.DEBUG

    def test_server_is_release(self):
        assert not is_local_build({"GITHUB_ACTIONS": "true"})
        assert default_configuration({"TF_BUILD": "True"}) is Configuration.RELEASE

    def test_falsy_marker_is_local(self):
        assert is_local_build({"CI": "false"})
        assert is_local_build({"CI": "0", "TF_BUILD": ""})
        assert default_configuration({"CI": "False"}) is Configuration.DEBUG

    def test_ci_default_flows_into_snapshot(self):
        snapshot = ParameterResolver(environ={"CI": "1"}).snapshot()
        assert snapshot.value("configuration") == "Release"

    def test_parse_case_insensitive(self):
        assert Configuration.parse("DEBUG") is Configuration.DEBUG
        assert Configuration.parse(" release ") is Configuration.RELEASE


class TestParseAssignments:
    def test_pairs(self):
        assert parse_assignments(["a=1", "b=x=y", "c="]) == {"a": "1", "b": "x=y", "c": ""}

    def test_missing_equals(self):
        with pytest.raises(ParameterError):
            parse_assignments(["novalue"])

    def test_empty_key(self):
        with pytest.raises(ParameterError):
            parse_assignments(["=value"])
