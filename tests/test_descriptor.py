"""Tests for normal_build.descriptor — manifest and bundler config loading."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from normal_build.descriptor import (
    DEFAULT_WATCH_PATTERNS,
    load_bundler_directives,
    load_project_descriptor,
)
from normal_build.errors import ConfigurationError
from tests.conftest import write_json


# ---------------------------------------------------------------------------
# load_project_descriptor
# ---------------------------------------------------------------------------


class TestProjectDescriptor:
    def test_defaults(self, make_project):
        root = make_project(tsconfig={})
        d = load_project_descriptor(root)
        assert d.root == root.resolve()
        assert d.output_directory == root.resolve() / "dist"
        assert d.watch_patterns == DEFAULT_WATCH_PATTERNS
        assert d.runtime_dependencies == {"a": "1.0.0", "b": "2.0.0"}
        assert d.service_name == "demo-service"
        assert d.manifest_path == root.resolve() / "package.json"

    def test_out_dir_from_tsconfig(self, make_project):
        root = make_project(tsconfig={"compilerOptions": {"outDir": "build"}})
        d = load_project_descriptor(root)
        assert d.output_directory == root.resolve() / "build"

    def test_out_dir_dot_slash(self, make_project):
        root = make_project(tsconfig={"compilerOptions": {"outDir": "./out/lambda"}})
        d = load_project_descriptor(root)
        assert d.output_directory == root.resolve() / "out" / "lambda"

    def test_include_patterns(self, make_project):
        root = make_project(tsconfig={"include": ["src/**/*.ts", "lib/*.ts"]})
        assert load_project_descriptor(root).watch_patterns == ("src/**/*.ts", "lib/*.ts")

    def test_empty_include_kept_empty(self, make_project):
        root = make_project(tsconfig={"include": []})
        assert load_project_descriptor(root).watch_patterns == ()

    def test_service_name_override(self, make_project):
        root = make_project()
        assert load_project_descriptor(root, service_name="api").service_name == "api"

    def test_no_dependencies(self, make_project):
        root = make_project()
        write_json(root / "package.json", {"name": "bare"})
        assert load_project_descriptor(root).runtime_dependencies == {}

    def test_tsconfig_with_comments(self, make_project):
        root = make_project()
        (root / "tsconfig.json").write_text(
            '{\n'
            '  // compiler settings\n'
            '  "compilerOptions": { "outDir": "build", /* emitted JS */ },\n'
            '  "include": ["src/**/*.ts",],\n'
            '}\n',
            encoding="utf-8",
        )
        d = load_project_descriptor(root)
        assert d.output_directory.name == "build"
        assert d.watch_patterns == ("src/**/*.ts",)

    def test_missing_package_json(self, make_project):
        root = make_project()
        (root / "package.json").unlink()
        with pytest.raises(ConfigurationError, match="package.json"):
            load_project_descriptor(root)

    def test_missing_tsconfig(self, make_project):
        root = make_project()
        (root / "tsconfig.json").unlink()
        with pytest.raises(ConfigurationError, match="tsconfig"):
            load_project_descriptor(root)

    def test_malformed_package_json(self, make_project):
        root = make_project()
        (root / "package.json").write_text("{nope", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            load_project_descriptor(root)

    def test_bad_dependencies_shape(self, make_project):
        root = make_project()
        write_json(root / "package.json", {"dependencies": ["a", "b"]})
        with pytest.raises(ConfigurationError, match="dependencies"):
            load_project_descriptor(root)

    def test_bad_include_shape(self, make_project):
        root = make_project(tsconfig={"include": "src"})
        with pytest.raises(ConfigurationError, match="include"):
            load_project_descriptor(root)

    def test_frozen(self, make_project):
        d = load_project_descriptor(make_project())
        with pytest.raises(Exception):
            d.service_name = "other"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# load_bundler_directives
# ---------------------------------------------------------------------------


class TestBundlerDirectives:
    def test_absent_config_defaults(self, make_project):
        d = load_bundler_directives(make_project())
        assert d.bundle_enabled is False
        assert d.external_names == frozenset()
        assert d.self_contained is False

    def test_json_config(self, make_project):
        root = make_project(bundler={"esbuild": {"bundle": True, "external": ["a", "c"], "minify": True}})
        d = load_bundler_directives(root)
        assert d.bundle_enabled is True
        assert d.external_names == frozenset({"a", "c"})

    def test_self_contained(self, make_project):
        root = make_project(bundler={"esbuild": {"bundle": True}})
        assert load_bundler_directives(root).self_contained is True

    def test_missing_esbuild_section(self, make_project):
        root = make_project(bundler={"prebuild": None})
        d = load_bundler_directives(root)
        assert d.bundle_enabled is False

    def test_malformed_external(self, make_project):
        root = make_project(bundler={"esbuild": {"bundle": True, "external": "fastify"}})
        with pytest.raises(ConfigurationError, match="Malformed"):
            load_bundler_directives(root)

    def test_malformed_json(self, make_project):
        root = make_project()
        (root / "etsc.config.json").write_text("module.exports = {}", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_bundler_directives(root)

    def test_js_config_evaluated_with_node(self, make_project):
        root = make_project()
        (root / "etsc.config.js").write_text("module.exports = {esbuild: {}};", encoding="utf-8")
        payload = json.dumps({"esbuild": {"bundle": True, "external": ["fastify"]}})
        completed = MagicMock(returncode=0, stdout=payload, stderr="")
        with patch("normal_build.descriptor.subprocess.run", return_value=completed) as run:
            d = load_bundler_directives(root, node_command="node18")
        argv = run.call_args.args[0]
        assert argv[0] == "node18"
        assert argv[-1] == str(root.resolve() / "etsc.config.js")
        assert d.external_names == frozenset({"fastify"})

    def test_js_config_node_failure(self, make_project):
        root = make_project()
        (root / "etsc.config.js").write_text("syntax error(", encoding="utf-8")
        completed = MagicMock(returncode=1, stdout="", stderr="SyntaxError: Unexpected token")
        with patch("normal_build.descriptor.subprocess.run", return_value=completed):
            with pytest.raises(ConfigurationError, match="SyntaxError"):
                load_bundler_directives(root)

    def test_js_config_node_missing(self, make_project):
        root = make_project()
        (root / "etsc.config.js").write_text("module.exports = {};", encoding="utf-8")
        with patch("normal_build.descriptor.subprocess.run", side_effect=FileNotFoundError("node")):
            with pytest.raises(ConfigurationError, match="Unable to evaluate"):
                load_bundler_directives(root)

    def test_json_takes_precedence_over_js(self, make_project):
        root = make_project(bundler={"esbuild": {"bundle": False}})
        (root / "etsc.config.js").write_text("module.exports = {esbuild: {bundle: true}};", encoding="utf-8")
        with patch("normal_build.descriptor.subprocess.run") as run:
            d = load_bundler_directives(root)
        run.assert_not_called()
        assert d.bundle_enabled is False
