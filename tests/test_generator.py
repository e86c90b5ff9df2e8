"""
tests/test_generator.py
Integration tests for schemagen.generator.SchemaGenerator.

Tests cover:
- Default phase order and a full run over the reference schema
- Strict / non-strict plugin validation
- Schema errors, merge conflicts and cancellation
- Input loading, config overrides and writing
- Determinism and plugin isolation
"""

from __future__ import annotations

import json
import pathlib
import warnings
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import pytest

from schemagen.config import GeneratorConfig
from schemagen.context import LogCapture, StructuredLogger
from schemagen.errors import (
    GenerationCancelledError,
    GenerationConflictError,
    PhaseExecutionError,
    PluginRegistrationError,
    PluginValidationError,
    PluginValidationWarning,
    SchemaError,
)
from schemagen.generator import (
    GenerationResult,
    SchemaGenerator,
    load_schema_file,
    parse_raw_input,
)
from schemagen.models import SchemaDefinition
from schemagen.phases import CancellationToken, FunctionPhase, PhaseHook, PhaseState, RunState
from schemagen.plugins.base import PluginSettings
from schemagen.plugins.registry import PluginRegistry

from conftest import StaticPlugin


# ===========================================================================
# Helpers
# ===========================================================================


def _generate(
    generator: SchemaGenerator,
    schema: SchemaDefinition,
    cancellation: Optional[CancellationToken] = None,
) -> GenerationResult:
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", PluginValidationWarning)
        return generator.generate(schema, cancellation)


def _config(*plugin_ids: str, **overrides: Any) -> GeneratorConfig:
    return GeneratorConfig(
        plugins=[PluginSettings(id=pid) for pid in plugin_ids], **overrides
    )


# ===========================================================================
# Full run
# ===========================================================================


class TestFullRun:
    def test_default_phase_order(self, blog_config: GeneratorConfig) -> None:
        generator = SchemaGenerator(blog_config)
        runner = generator.build_runner(generator.build_registry())
        assert runner.order == [
            "analysis",
            "entity_order",
            "plugin_validation",
            "plugin_generation",
            "merge",
            "manifest",
        ]

    def test_blog_run_succeeds(
        self,
        blog_schema: SchemaDefinition,
        blog_config: GeneratorConfig,
        captured_log: Tuple[StructuredLogger, LogCapture],
    ) -> None:
        log, capture = captured_log
        result = _generate(SchemaGenerator(blog_config, logger=log), blog_schema)

        assert result.success
        assert result.run.state is RunState.COMPLETED
        assert result.run.skipped == []
        assert result.analysis["PostTag"].is_junction_table
        assert result.manifest is not None
        assert result.manifest.project_name == "blog-api"
        assert result.manifest.plugins == (
            "jwt-service",
            "google-auth",
            "usage-tracker",
            "full-text-search",
        )
        assert capture.find("phase.completed", phase="manifest")

    def test_entity_order_respects_to_one_relations(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        order = _generate(SchemaGenerator(blog_config), blog_schema).entity_order
        assert sorted(order) == sorted(blog_schema.entity_names)
        assert order.index("Author") < order.index("Post") < order.index("PostTag")
        assert order.index("Tag") < order.index("PostTag")
        assert order.index("Post") < order.index("Comment")

    def test_shared_auth_package_kept_once(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        result = _generate(SchemaGenerator(blog_config), blog_schema)
        assert result.aggregate is not None
        init = result.aggregate.files["auth/__init__.py"]
        assert init.contributors == ("jwt-service", "google-auth")

    def test_schema_diagnostics_are_collected(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        diagnostics = _generate(SchemaGenerator(blog_config), blog_schema).schema_diagnostics
        assert not diagnostics.has_errors
        assert [d.context["entity"] for d in diagnostics.by_code("SCHEMA_COMPOSITE_KEY")] == [
            "PostTag"
        ]

    def test_identical_inputs_identical_manifest(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        first = _generate(SchemaGenerator(blog_config), blog_schema)
        second = _generate(SchemaGenerator(blog_config), blog_schema)
        assert first.manifest is not None and second.manifest is not None
        assert first.manifest.to_json() == second.manifest.to_json()

    def test_disabling_one_plugin_leaves_others_unchanged(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        full = _generate(SchemaGenerator(blog_config), blog_schema).manifest
        reduced = _generate(
            SchemaGenerator(blog_config.with_plugin_disabled("usage-tracker")), blog_schema
        ).manifest
        assert full is not None and reduced is not None

        assert "usage-tracker" not in reduced.plugins
        assert not any(path.startswith("monitoring/") for path in reduced.file_hashes)
        for path, digest in reduced.file_hashes.items():
            assert full.file_hashes[path] == digest

        full_data, reduced_data = full.to_dict(), reduced.to_dict()
        for section in ("routes", "env_vars", "dependencies", "middleware", "health_checks"):
            assert all(entry["plugin"] != "usage-tracker" for entry in reduced_data[section])
            for entry in reduced_data[section]:
                assert entry in full_data[section]
        assert [r for r in full_data["routes"] if r["plugin"] != "usage-tracker"] == (
            reduced_data["routes"]
        )
        assert [e for e in full_data["env_vars"] if e["plugin"] != "usage-tracker"] == (
            reduced_data["env_vars"]
        )
        assert {r.plugin for r in full.routes} - {r.plugin for r in reduced.routes} == {
            "usage-tracker"
        }

    def test_blog_run_collects_health_checks_and_scripts(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        result = _generate(SchemaGenerator(blog_config), blog_schema)
        manifest = result.manifest
        assert manifest is not None
        assert [h.id for h in manifest.health_checks] == [
            "full-text-search",
            "google-auth",
            "jwt-service",
            "usage-tracker",
        ]
        assert [(s.name, s.plugin) for s in manifest.scripts] == [("jwt-secret", "jwt-service")]
        me = next(r for r in manifest.routes if r.path == "/auth/me")
        assert me.middleware == ("require_auth",)
        assert len(result.context["health_checks"]) == 4

    def test_extra_phase_reads_manifest(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        stats = FunctionPhase(
            "stats",
            lambda c: {"file_total": c.require("manifest").total_files},
            depends_on=("manifest",),
            outputs=("file_total",),
        )
        result = _generate(SchemaGenerator(blog_config, extra_phases=[stats]), blog_schema)
        assert result.manifest is not None
        assert result.context["file_total"] == result.manifest.total_files
        assert result.run.order[-1] == "stats"


# ===========================================================================
# Plugin validation strictness
# ===========================================================================


class TestPluginStrictness:
    def test_strict_blocks_generation(self, no_user_schema: SchemaDefinition) -> None:
        generator = SchemaGenerator(_config("jwt-service", "usage-tracker"))
        with pytest.raises(PluginValidationError) as exc_info:
            _generate(generator, no_user_schema)

        error = exc_info.value
        assert [d.code for d in error.diagnostics] == ["PLUGIN_MISSING_ENTITY"]
        result: GenerationResult = error.result
        assert not result.success
        assert result.manifest is None
        assert result.run.state is RunState.COMPLETED
        for phase_id in ("plugin_generation", "merge", "manifest"):
            assert result.run.state_of(phase_id) is PhaseState.SKIPPED

    def test_strict_reports_every_failing_plugin(self, no_user_schema: SchemaDefinition) -> None:
        generator = SchemaGenerator(_config("jwt-service", "google-auth"))
        with pytest.raises(PluginValidationError) as exc_info:
            _generate(generator, no_user_schema)
        assert exc_info.value.context["plugins"] == ["google-auth", "jwt-service"]
        assert exc_info.value.result.plugin_report.failed == ["jwt-service", "google-auth"]

    def test_non_strict_excludes_failing_plugins(self, no_user_schema: SchemaDefinition) -> None:
        generator = SchemaGenerator(
            _config("jwt-service", "usage-tracker", strict_plugin_validation=False)
        )
        result = _generate(generator, no_user_schema)

        assert result.success
        assert result.manifest is not None
        assert result.manifest.plugins == ("usage-tracker",)
        assert result.plugin_report is not None
        assert result.plugin_report.failed == ["jwt-service"]

    def test_warnings_surface_as_python_warnings(self, blog_schema: SchemaDefinition) -> None:
        with pytest.warns(PluginValidationWarning):
            result = SchemaGenerator(_config("usage-tracker")).generate(blog_schema)
        assert result.success


# ===========================================================================
# Failures
# ===========================================================================


class TestFailures:
    def test_unresolved_relation_before_any_phase(
        self,
        input_dict: Dict[str, Any],
        captured_log: Tuple[StructuredLogger, LogCapture],
    ) -> None:
        log, capture = captured_log
        post: Dict[str, Any] = input_dict["schema"]["entities"][1]
        assert post["relations"][0]["name"] == "author"
        post["relations"][0]["target"] = "Writer"
        broken = SchemaDefinition.model_validate(input_dict["schema"])

        with pytest.raises(SchemaError) as exc_info:
            SchemaGenerator(_config(), logger=log).generate(broken)

        assert [i.target for i in exc_info.value.issues] == ["Writer"]
        assert "run.started" not in capture.events()

    def test_conflict_reraised_with_phase_cause(
        self,
        blog_schema: SchemaDefinition,
        static_plugin: Callable[..., StaticPlugin],
    ) -> None:
        registry = PluginRegistry()
        registry.register(static_plugin("plugin-a", files={"app/main.py": "a\n"}))
        registry.register(static_plugin("plugin-b", files={"app/main.py": "b\n"}))

        with pytest.raises(GenerationConflictError) as exc_info:
            _generate(SchemaGenerator(registry=registry), blog_schema)

        error = exc_info.value
        assert (error.first, error.second) == ("plugin-a", "plugin-b")
        assert isinstance(error.__cause__, PhaseExecutionError)
        assert error.__cause__.phase_id == "merge"

    def test_failing_extra_phase(self, blog_schema: SchemaDefinition) -> None:
        def _explode(context: Any) -> Mapping[str, Any]:
            raise RuntimeError("disk full")

        boom = FunctionPhase("boom", _explode, depends_on=("manifest",))
        with pytest.raises(PhaseExecutionError) as exc_info:
            _generate(SchemaGenerator(_config(), extra_phases=[boom]), blog_schema)
        assert exc_info.value.phase_id == "boom"
        assert exc_info.value.run.state is RunState.FAILED

    def test_cancellation_after_analysis(self, blog_schema: SchemaDefinition) -> None:
        token = CancellationToken()
        hooks = {"analysis": [PhaseHook(after=lambda c, out: token.cancel("shutdown"))]}
        generator = SchemaGenerator(_config("usage-tracker"), hooks=hooks)

        with pytest.raises(GenerationCancelledError) as exc_info:
            _generate(generator, blog_schema, token)

        run = exc_info.value.run
        assert exc_info.value.phase_id == "entity_order"
        assert run.state is RunState.FAILED
        assert run.executed == ["analysis"]
        assert run.state_of("manifest") is PhaseState.SCHEDULED

    def test_unknown_plugin_id(self, blog_schema: SchemaDefinition) -> None:
        with pytest.raises(PluginRegistrationError):
            SchemaGenerator(_config("telemetry")).generate(blog_schema)


# ===========================================================================
# Input loading
# ===========================================================================


class TestInputLoading:
    def test_generate_from_file_uses_embedded_config(self, input_yaml_path: pathlib.Path) -> None:
        generator = SchemaGenerator()
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", PluginValidationWarning)
            result = generator.generate_from_file(input_yaml_path)
        assert result.context.config.project_name == "blog-api"
        assert generator.config.project_name == "schemagen-project"
        assert result.manifest is not None
        assert len(result.manifest.plugins) == 4

    def test_file_config_does_not_stick_to_generator(
        self,
        input_dict: Dict[str, Any],
        input_yaml_path: pathlib.Path,
        write_yaml: Callable[[str, Mapping[str, Any]], pathlib.Path],
    ) -> None:
        generator = SchemaGenerator(GeneratorConfig(project_name="mine"))
        bare_path = write_yaml("bare.yaml", {"schema": input_dict["schema"]})

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", PluginValidationWarning)
            first = generator.generate_from_file(input_yaml_path)
            second = generator.generate_from_file(bare_path)

        assert first.manifest is not None and second.manifest is not None
        assert first.manifest.project_name == "blog-api"
        assert second.manifest.project_name == "mine"
        assert second.manifest.plugins == ()
        assert generator.config.project_name == "mine"

    def test_config_file_overrides_embedded(
        self,
        input_yaml_path: pathlib.Path,
        write_yaml: Callable[[str, Mapping[str, Any]], pathlib.Path],
    ) -> None:
        config_path = write_yaml(
            "override.yaml",
            {"config": {"project_name": "override", "plugins": [{"id": "usage-tracker"}]}},
        )
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", PluginValidationWarning)
            result = SchemaGenerator().generate_from_file(input_yaml_path, config_path)
        assert result.manifest is not None
        assert result.manifest.project_name == "override"
        assert result.manifest.plugins == ("usage-tracker",)

    def test_json_input(self, input_dict: Dict[str, Any], tmp_path: pathlib.Path) -> None:
        path = tmp_path / "schema.json"
        path.write_text(json.dumps(input_dict), encoding="utf-8")
        assert load_schema_file(path) == input_dict

    def test_unknown_extension_falls_back(
        self, input_dict: Dict[str, Any], tmp_path: pathlib.Path
    ) -> None:
        path = tmp_path / "schema.txt"
        path.write_text(json.dumps(input_dict), encoding="utf-8")
        assert load_schema_file(path)["config"]["project_name"] == "blog-api"

    def test_missing_file(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_schema_file(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("schema: [unclosed\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_schema_file(path)

    def test_top_level_must_be_mapping(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_schema_file(path)

    def test_bare_entities_and_default_config(self) -> None:
        schema, config = parse_raw_input(
            {"entities": [{"name": "Note", "fields": [{"name": "id", "type": "Int", "id": True}]}]}
        )
        assert schema.entity_names == ["Note"]
        assert config.plugins == []
        assert config.strict_plugin_validation

    def test_missing_schema_key(self) -> None:
        with pytest.raises(ValueError, match="schema"):
            parse_raw_input({"config": {}})

    def test_invalid_config(self, input_dict: Dict[str, Any]) -> None:
        input_dict["config"]["max_write_workers"] = 0
        with pytest.raises(ValueError, match="Config validation failed"):
            parse_raw_input(input_dict)

    def test_duplicate_plugin_ids_rejected(self, input_dict: Dict[str, Any]) -> None:
        input_dict["config"]["plugins"].append({"id": "jwt-service"})
        with pytest.raises(ValueError, match="Duplicate plugin ids"):
            parse_raw_input(input_dict)


# ===========================================================================
# Reporting and writing
# ===========================================================================


class TestReportAndWrite:
    def test_report_summary(
        self, blog_schema: SchemaDefinition, blog_config: GeneratorConfig
    ) -> None:
        result = _generate(SchemaGenerator(blog_config), blog_schema)
        report = result.build_report()

        assert report.success
        assert report.total_entities == 6
        assert report.junction_tables == ["PostTag"]
        assert report.total_files == result.manifest.total_files  # type: ignore[union-attr]
        summary = report.summary()
        assert "SUCCESS" in summary
        assert "blog-api" in summary
        assert "RefreshToken" in summary

    def test_write_files_and_manifest(
        self,
        blog_schema: SchemaDefinition,
        blog_config: GeneratorConfig,
        tmp_path: pathlib.Path,
    ) -> None:
        generator = SchemaGenerator(blog_config)
        result = _generate(generator, blog_schema)
        written = generator.write(result, tmp_path / "out")

        assert written.success
        assert result.manifest is not None
        assert len(written.records) == result.manifest.total_files
        manifest_text = (tmp_path / "out" / "schemagen-manifest.json").read_text(encoding="utf-8")
        assert manifest_text == result.manifest.to_json()
        assert (tmp_path / "out" / "auth" / "jwt_utils.py").exists()
        assert result.build_report(written).output_directory == str(tmp_path / "out")

    def test_write_refuses_blocked_result(
        self, no_user_schema: SchemaDefinition, tmp_path: pathlib.Path
    ) -> None:
        generator = SchemaGenerator(_config("jwt-service"))
        with pytest.raises(PluginValidationError) as exc_info:
            _generate(generator, no_user_schema)
        with pytest.raises(ValueError, match="Nothing to write"):
            generator.write(exc_info.value.result, tmp_path)
        assert list(tmp_path.iterdir()) == []
