# File: schemagen/generator.py
"""
SchemaGen - Generation Pipeline (Orchestrator)
================================================

Connects every part of a run:

    Schema Input → Relation Check → Phases → Plugins → Merge → Manifest

Default phases (sorted by the ``PhaseRunner`` from their dependencies)::

    analysis           → analysis, schema_diagnostics
    entity_order       → entity_order
    plugin_validation  → plugin_validation
    plugin_generation  → plugin_outputs      (skipped when blocked)
    merge              → aggregate           (skipped without outputs)
    manifest           → manifest            (skipped without aggregate)

Error handling strategy:
    - Unresolved relation targets raise ``SchemaError`` before the runner
      starts.
    - Plugin validation collects every diagnostic of every plugin.  In
      strict mode any fatal diagnostic blocks generation and
      ``PluginValidationError`` is raised once the run is over.
    - Phase failures raise ``PhaseExecutionError``; a merge conflict is
      re-raised as the ``GenerationConflictError`` it wraps.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type

import yaml
from pydantic import ValidationError

from schemagen.analyzer import EntityAnalysis, RelationshipAnalyzer, resolve_relation_targets
from schemagen.config import GeneratorConfig
from schemagen.context import GenerationContext, StructuredLogger
from schemagen.errors import (
    GenerationConflictError,
    PhaseExecutionError,
    PluginValidationError,
)
from schemagen.manifest import Manifest, build_manifest
from schemagen.models import SchemaDefinition
from schemagen.phases import (
    CancellationToken,
    Phase,
    PhaseHook,
    PhaseRunner,
    PhaseState,
    PipelineRun,
)
from schemagen.plugins.base import FeaturePlugin, PluginOutput
from schemagen.plugins.builtin import BUILTIN_PLUGINS
from schemagen.plugins.merge import AggregateOutput, merge_outputs
from schemagen.plugins.registry import PluginRegistry, PluginValidationReport
from schemagen.validators import ValidationResult, validate_full
from schemagen.writer import WriteResult, write_outputs

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.generator")


# ---------------------------------------------------------------------------
# Default phases
# ---------------------------------------------------------------------------


class AnalysisPhase(Phase):
    id = "analysis"
    outputs = ("analysis", "schema_diagnostics")
    description = "Relationship analysis and schema diagnostics"

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        config: GeneratorConfig = context.config
        analyzer = RelationshipAnalyzer(
            junction_policy=config.junction,
            special_field_policy=config.special_fields,
            sensitive_patterns=config.sensitive_field_patterns,
        )
        analysis: Dict[str, EntityAnalysis] = analyzer.analyze(context.schema)
        for entry in analysis.values():
            context.logger.debug(
                "entity.analysed",
                entity=entry.name,
                junction=entry.is_junction_table,
                auto_include=entry.auto_include_labels,
                special=sorted(entry.special_field_tags),
            )
        return {
            "analysis": analysis,
            "schema_diagnostics": validate_full(context.schema),
        }


class EntityOrderPhase(Phase):
    id = "entity_order"
    depends_on = ("analysis",)
    outputs = ("entity_order",)
    description = "Dependency order of entities"

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        return {"entity_order": context.schema.topological_order()}


class PluginValidationPhase(Phase):
    id = "plugin_validation"
    depends_on = ("analysis",)
    outputs = ("plugin_validation",)
    description = "Validate enabled plugins against the schema"

    def __init__(self, registry: PluginRegistry) -> None:
        self.registry = registry

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        return {"plugin_validation": self.registry.validate(context)}


class PluginGenerationPhase(Phase):
    id = "plugin_generation"
    depends_on = ("plugin_validation", "entity_order")
    outputs = ("plugin_outputs", "health_checks")
    description = "Invoke plugins that passed validation"

    def __init__(self, registry: PluginRegistry) -> None:
        self.registry = registry

    def should_run(self, context: GenerationContext) -> bool:
        report: PluginValidationReport = context.require("plugin_validation")
        if report.has_errors and context.config.strict_plugin_validation:
            context.logger.warning(
                "plugins.blocked", failed=report.failed, errors=len(report.errors)
            )
            return False
        return True

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        report: PluginValidationReport = context.require("plugin_validation")
        return {
            "plugin_outputs": self.registry.generate(context, report),
            "health_checks": self.registry.health_checks(context, report),
        }


class MergePhase(Phase):
    id = "merge"
    depends_on = ("plugin_generation",)
    outputs = ("aggregate",)
    description = "Merge plugin outputs"

    def should_run(self, context: GenerationContext) -> bool:
        return "plugin_outputs" in context

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        outputs: List[Tuple[str, PluginOutput]] = context.require("plugin_outputs")
        return {"aggregate": merge_outputs(outputs)}


class ManifestPhase(Phase):
    id = "manifest"
    depends_on = ("merge",)
    outputs = ("manifest",)
    description = "Build the output manifest"

    def should_run(self, context: GenerationContext) -> bool:
        return "aggregate" in context

    def run(self, context: GenerationContext) -> Mapping[str, Any]:
        import schemagen

        config: GeneratorConfig = context.config
        return {
            "manifest": build_manifest(
                context.require("aggregate"),
                config.project_name,
                schemagen.__version__,
                health_checks=context.get("health_checks", []),
            )
        }


def default_phases(registry: PluginRegistry) -> List[Phase]:
    return [
        AnalysisPhase(),
        EntityOrderPhase(),
        PluginValidationPhase(registry),
        PluginGenerationPhase(registry),
        MergePhase(),
        ManifestPhase(),
    ]


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """
    Human-facing summary of one run, built from a ``GenerationResult``.
    """

    success: bool = False
    project_name: str = ""
    output_directory: str = ""

    # Metrics
    total_entities: int = 0
    junction_tables: List[str] = field(default_factory=list)
    plugins_generated: List[str] = field(default_factory=list)
    total_files: int = 0
    total_routes: int = 0
    total_env_vars: int = 0
    total_bytes: int = 0
    total_elapsed_seconds: float = 0.0

    # Sub-reports
    phase_lines: List[Tuple[str, str, float, str]] = field(default_factory=list)
    schema_warnings: List[str] = field(default_factory=list)
    plugin_errors: List[str] = field(default_factory=list)
    plugin_warnings: List[str] = field(default_factory=list)
    write_errors: List[str] = field(default_factory=list)

    def summary(self) -> str:
        """Return a human-readable summary string."""
        icons: Dict[str, str] = {
            PhaseState.COMPLETED.value: "✓",
            PhaseState.SKIPPED.value: "⊘",
            PhaseState.FAILED.value: "✗",
            PhaseState.SCHEDULED.value: "·",
            PhaseState.RUNNING.value: "…",
        }
        lines: List[str] = []
        status: str = "✅ SUCCESS" if self.success else "❌ FAILED"
        lines.append(f"{'='*60}")
        lines.append("  SchemaGen — Generation Report")
        lines.append(f"{'='*60}")
        lines.append(f"  Status:           {status}")
        lines.append(f"  Project:          {self.project_name}")
        if self.output_directory:
            lines.append(f"  Output:           {self.output_directory}")
        lines.append(f"  Entities:         {self.total_entities}")
        lines.append(
            f"  Junction tables:  {', '.join(self.junction_tables) or '-'}"
        )
        lines.append(
            f"  Plugins:          {', '.join(self.plugins_generated) or '-'}"
        )
        lines.append(f"  Files:            {self.total_files}")
        lines.append(f"  Routes:           {self.total_routes}")
        lines.append(f"  Env vars:         {self.total_env_vars}")
        lines.append(f"  Total bytes:      {self.total_bytes:,}")
        lines.append(f"  Total time:       {self.total_elapsed_seconds:.3f}s")
        lines.append(f"{'─'*60}")

        if self.phase_lines:
            lines.append("  Phases:")
            for phase_id, state, elapsed, detail in self.phase_lines:
                lines.append(
                    f"    {icons.get(state, '?')} {phase_id:<28s} "
                    f"{elapsed:>7.3f}s  {detail}"
                )

        for title, items, icon in (
            ("Plugin Errors", self.plugin_errors, "✗"),
            ("Plugin Warnings", self.plugin_warnings, "⚠"),
            ("Schema Warnings", self.schema_warnings, "⚠"),
            ("Write Errors", self.write_errors, "✗"),
        ):
            if items:
                lines.append(f"{'─'*60}")
                lines.append(f"  {title} ({len(items)}):")
                for item in items:
                    lines.append(f"    {icon} {item}")

        lines.append(f"{'='*60}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Generation result
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class GenerationResult:
    """Everything a run produced; read-only by convention."""

    context: GenerationContext
    run: PipelineRun

    @property
    def analysis(self) -> Dict[str, EntityAnalysis]:
        return self.context.get("analysis", {})

    @property
    def schema_diagnostics(self) -> ValidationResult:
        return self.context.get("schema_diagnostics") or ValidationResult()

    @property
    def entity_order(self) -> List[str]:
        return self.context.get("entity_order", [])

    @property
    def plugin_report(self) -> Optional[PluginValidationReport]:
        return self.context.get("plugin_validation")

    @property
    def aggregate(self) -> Optional[AggregateOutput]:
        return self.context.get("aggregate")

    @property
    def manifest(self) -> Optional[Manifest]:
        return self.context.get("manifest")

    @property
    def success(self) -> bool:
        """A manifest was built and no plugin failure blocked the run."""
        report = self.plugin_report
        blocked: bool = (
            report is not None
            and report.has_errors
            and self.context.config.strict_plugin_validation
        )
        return self.manifest is not None and not blocked

    def build_report(self, write: Optional[WriteResult] = None) -> GenerationReport:
        report = GenerationReport()
        report.project_name = self.context.config.project_name
        report.total_entities = len(self.analysis)
        report.junction_tables = [
            name for name, entry in self.analysis.items() if entry.is_junction_table
        ]
        report.total_elapsed_seconds = self.run.total_elapsed_seconds
        report.phase_lines = [
            (m.phase_id, m.state.value, m.elapsed_seconds, m.detail or ", ".join(m.keys_written))
            for m in (self.run.metrics[pid] for pid in self.run.order)
        ]
        report.schema_warnings = [str(d) for d in self.schema_diagnostics.warnings]

        plugin_report = self.plugin_report
        if plugin_report is not None:
            report.plugin_errors = [d.message for d in plugin_report.errors]
            report.plugin_warnings = [d.message for d in plugin_report.warnings]

        aggregate = self.aggregate
        if aggregate is not None:
            report.plugins_generated = list(aggregate.contributors)
            report.total_files = aggregate.file_count
            report.total_routes = len(aggregate.routes)
            report.total_env_vars = len(aggregate.env_vars)
            report.total_bytes = aggregate.total_bytes

        report.success = self.success
        if write is not None:
            report.output_directory = write.output_dir
            report.write_errors = list(write.errors)
            report.total_elapsed_seconds += write.elapsed_seconds
            report.success = report.success and write.success
        return report


# ---------------------------------------------------------------------------
# Input loading helpers
# ---------------------------------------------------------------------------


def _load_json_file(path: Path) -> Dict[str, Any]:
    """Load and parse a JSON file. Raises ValueError on parse errors."""
    try:
        data: Any = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a JSON object at top level, got {type(data).__name__}."
        )
    return data


def _load_yaml_file(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML file. Raises ValueError on parse errors."""
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a YAML mapping at top level, got {type(data).__name__}."
        )
    return data


def load_schema_file(path: Path) -> Dict[str, Any]:
    """
    Load an input document (JSON or YAML), dispatching on the extension.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the file can't be parsed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Input file not found: {path}")
    if not path.is_file():
        raise ValueError(f"Input path is not a file: {path}")

    suffix: str = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return _load_yaml_file(path)
    if suffix == ".json":
        return _load_json_file(path)

    logger.info("Unknown extension '%s'; trying JSON then YAML.", suffix)
    try:
        return _load_json_file(path)
    except ValueError:
        return _load_yaml_file(path)


def parse_config(raw: Mapping[str, Any]) -> GeneratorConfig:
    try:
        return GeneratorConfig.model_validate(dict(raw))
    except ValidationError as exc:
        raise ValueError(f"Config validation failed: {exc}") from exc


def parse_raw_input(raw: Mapping[str, Any]) -> Tuple[SchemaDefinition, GeneratorConfig]:
    """
    Parse a raw dictionary (from JSON/YAML) into validated models.

    Expected top-level keys:
        - "schema" (a mapping with "entities") or a bare "entities" list
        - optionally "config" or "generator": the generator settings

    Raises:
        ValueError: If required keys are missing or validation fails.
    """
    schema_data: Optional[Dict[str, Any]] = None
    if isinstance(raw.get("schema"), dict):
        schema_data = raw["schema"]
    elif isinstance(raw.get("entities"), list):
        schema_data = {
            "entities": raw["entities"],
            "metadata": raw.get("metadata", {}),
        }
    if schema_data is None:
        raise ValueError(
            "Cannot find schema definition in input. "
            "Expected top-level key: 'schema' or 'entities'."
        )

    config_data: Mapping[str, Any] = {}
    for key in ("config", "generator"):
        if key in raw:
            config_data = raw[key] or {}
            break
    else:
        logger.info("No generator config found in input — using defaults.")

    try:
        schema: SchemaDefinition = SchemaDefinition.model_validate(schema_data)
    except ValidationError as exc:
        raise ValueError(f"Schema validation failed: {exc}") from exc

    return schema, parse_config(config_data)


def load_config_file(path: Path) -> GeneratorConfig:
    """Load a standalone config file; a top-level ``config`` key is unwrapped."""
    raw: Dict[str, Any] = load_schema_file(path)
    for key in ("config", "generator"):
        if isinstance(raw.get(key), dict):
            raw = raw[key]
            break
    return parse_config(raw)


# ---------------------------------------------------------------------------
# SchemaGenerator — orchestrator
# ---------------------------------------------------------------------------


class SchemaGenerator:
    """
    Runs the generation pipeline for one configuration.

    Usage::

        generator = SchemaGenerator(config)
        result = generator.generate(schema)
        print(result.build_report().summary())
        print(result.manifest.to_json())

    The generator is reusable; each ``generate`` call builds a fresh
    context, registry and runner.
    """

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        *,
        registry: Optional[PluginRegistry] = None,
        catalog: Mapping[str, Type[FeaturePlugin]] = BUILTIN_PLUGINS,
        extra_phases: Sequence[Phase] = (),
        hooks: Optional[Mapping[str, Sequence[PhaseHook]]] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self.config: GeneratorConfig = config or GeneratorConfig()
        self._registry: Optional[PluginRegistry] = registry
        self._catalog: Mapping[str, Type[FeaturePlugin]] = catalog
        self._extra_phases: Tuple[Phase, ...] = tuple(extra_phases)
        self._hooks: Optional[Mapping[str, Sequence[PhaseHook]]] = hooks
        self._log: StructuredLogger = logger or StructuredLogger()

    def build_registry(self, config: Optional[GeneratorConfig] = None) -> PluginRegistry:
        if self._registry is not None:
            return self._registry
        plugins = (config or self.config).plugins
        return PluginRegistry.from_config(plugins, self._catalog)

    def build_runner(self, registry: PluginRegistry) -> PhaseRunner:
        phases: List[Phase] = default_phases(registry) + list(self._extra_phases)
        return PhaseRunner(phases, hooks=self._hooks)

    # -----------------------------------------------------------------
    # Public
    # -----------------------------------------------------------------

    def generate(
        self,
        schema: SchemaDefinition,
        cancellation: Optional[CancellationToken] = None,
        *,
        config: Optional[GeneratorConfig] = None,
    ) -> GenerationResult:
        """
        Run every phase over *schema*.

        *config* applies to this call only; ``self.config`` is used when it
        is omitted.

        Raises:
            SchemaError: unresolved relation targets (before any phase).
            PluginValidationError: fatal plugin diagnostics in strict mode.
            GenerationConflictError: two plugins claimed the same output.
            PhaseExecutionError: any other phase failure.
            GenerationCancelledError: *cancellation* was set.
        """
        resolve_relation_targets(schema)
        run_config: GeneratorConfig = config or self.config

        registry: PluginRegistry = self.build_registry(run_config)
        runner: PhaseRunner = self.build_runner(registry)
        context = GenerationContext(schema, run_config, logger=self._log)

        logger.info(
            "Generating %s: %d entities, plugins=%s.",
            run_config.project_name,
            len(schema.entities),
            registry.enabled_ids,
        )
        try:
            run: PipelineRun = runner.run(context, cancellation)
        except PhaseExecutionError as exc:
            if isinstance(exc.cause, GenerationConflictError):
                raise exc.cause from exc
            raise

        result = GenerationResult(context=context, run=run)
        plugin_report = result.plugin_report
        if (
            plugin_report is not None
            and plugin_report.has_errors
            and run_config.strict_plugin_validation
        ):
            error = PluginValidationError(plugin_report.errors)
            error.result = result
            raise error
        return result

    def generate_from_file(
        self,
        schema_path: Path,
        config_path: Optional[Path] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> GenerationResult:
        """
        Load an input document and run ``generate``.

        A config found in *config_path* is used for this run; otherwise a
        ``config`` section in the input document is; otherwise this
        generator's own config.  ``self.config`` is never changed.
        """
        raw: Dict[str, Any] = load_schema_file(schema_path)
        schema, file_config = parse_raw_input(raw)
        run_config: GeneratorConfig = self.config
        if config_path is not None:
            run_config = load_config_file(config_path)
        elif "config" in raw or "generator" in raw:
            run_config = file_config
        logger.info("Loaded %s: %d entities.", schema_path, len(schema.entities))
        return self.generate(schema, cancellation, config=run_config)

    def write(self, result: GenerationResult, output_dir: Path) -> WriteResult:
        """Write *result*'s files and manifest under *output_dir* using the run's config."""
        aggregate = result.aggregate
        run_config: GeneratorConfig = result.context.config
        if aggregate is None:
            raise ValueError("Nothing to write: the run produced no aggregate output.")
        return write_outputs(
            aggregate,
            output_dir,
            manifest=result.manifest,
            manifest_filename=run_config.manifest_filename,
            max_workers=run_config.max_write_workers,
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "AnalysisPhase",
    "EntityOrderPhase",
    "GenerationReport",
    "GenerationResult",
    "ManifestPhase",
    "MergePhase",
    "PluginGenerationPhase",
    "PluginValidationPhase",
    "SchemaGenerator",
    "default_phases",
    "load_config_file",
    "load_schema_file",
    "parse_config",
    "parse_raw_input",
]

logger.debug("schemagen.generator loaded.")
