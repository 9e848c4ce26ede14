"""Tests for normal_build.errors — the build error hierarchy."""

import pytest

from normal_build.errors import (
    ArtifactError,
    BuildError,
    CompileError,
    ConfigurationError,
    PackagingError,
    StateTransitionError,
    UnsupportedOperation,
)


class TestBuildError:
    def test_basic_construction(self):
        err = BuildError("something broke")
        assert str(err) == "something broke"
        assert err.message == "something broke"
        assert err.detail == {}

    def test_to_dict(self):
        d = BuildError("fail", detail={"x": 1}).to_dict()
        assert d == {"error": "BuildError", "message": "fail", "x": 1}

    @pytest.mark.parametrize("cls", [
        ConfigurationError, PackagingError, UnsupportedOperation,
    ])
    def test_subclasses_are_build_errors(self, cls):
        assert issubclass(cls, BuildError)


class TestConfigurationError:
    def test_path_in_detail(self):
        err = ConfigurationError("missing", path="/p/package.json")
        assert err.path == "/p/package.json"
        assert err.to_dict()["path"] == "/p/package.json"

    def test_no_path(self):
        assert "path" not in ConfigurationError("missing").to_dict()


class TestCompileError:
    def test_message_is_raw_diagnostic(self):
        raw = "src/a.ts(1,7): error TS2322: Type 'string' is not assignable.\n"
        err = CompileError("tsc", raw, 2)
        assert str(err) == raw
        assert err.tool == "tsc"
        assert err.exit_code == 2

    def test_empty_diagnostic_falls_back(self):
        err = CompileError("etsc", "", 1)
        assert "etsc exited with code 1" in str(err)


class TestPackagingError:
    def test_package_detail(self):
        err = PackagingError("not installed", package="left-pad")
        assert err.to_dict()["package"] == "left-pad"
        assert err.reason == "not installed"


class TestArtifactError:
    def test_message(self):
        err = ArtifactError(".serverless/x.zip", "disk full")
        assert ".serverless/x.zip" in str(err)
        assert "disk full" in str(err)


class TestUnsupportedOperation:
    def test_default_message(self):
        err = UnsupportedOperation("deploy-function")
        assert "deploy-function" in str(err)
        assert err.event == "deploy-function"

    def test_custom_message(self):
        assert str(UnsupportedOperation("x", "nope")) == "nope"


class TestStateTransitionError:
    def test_fields(self):
        err = StateTransitionError("idle", "running")
        assert err.current == "idle"
        assert err.target == "running"
        assert "idle -> running" in str(err)
