# File: schemagen/__init__.py
"""
SchemaGen — Schema-Driven Generation Pipeline
===============================================

Turns an entity schema (JSON/YAML) into an analysed model and the merged
output of a set of feature plugins (authentication, usage tracking,
search), described by a deterministic manifest.

Architecture overview::

    ┌──────────────┐     ┌─────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│ SchemaGenerator │────▶│   PhaseRunner    │
    │   (cli.py)   │     │ (generator.py)  │     │   (phases.py)    │
    └──────────────┘     └────────┬────────┘     └────────┬─────────┘
                                  │                       │
                    ┌─────────────┼─────────────┐         ▼
                    ▼             ▼             ▼   ┌──────────────┐
             ┌──────────┐  ┌───────────┐  ┌────────┐│GenerationCtx │
             │ analyzer │  │  plugins  │  │manifest││ (context.py) │
             │  (.py)   │  │ registry  │  │ writer │└──────────────┘
             └──────────┘  │  merge    │  └────────┘
                           └───────────┘

Usage::

    # As a library
    from schemagen import SchemaGenerator, GeneratorConfig, SchemaDefinition
    gen = SchemaGenerator(config)
    result = gen.generate(schema)
    print(result.manifest.to_json())

    # From the command line
    python -m schemagen --schema blog.yaml --output ./generated --verbose

Public API:
    - SchemaGenerator       — Pipeline orchestrator
    - GeneratorConfig       — Run settings model
    - SchemaDefinition      — Entity schema model
    - RelationshipAnalyzer  — Junction / auto-include / special-field analysis
    - PhaseRunner           — Dependency-ordered phase execution
    - PluginRegistry        — Plugin registration and validation
    - merge_outputs         — Conflict-checked plugin output merge
    - build_manifest        — Deterministic output manifest
"""

from __future__ import annotations

__version__: str = "1.0.0"
__author__: str = "NexaFlow Team"
__license__: str = "MIT"

from schemagen.analyzer import (
    EntityAnalysis,
    JunctionPolicy,
    RelationshipAnalyzer,
    RelationshipKind,
    SpecialFieldPolicy,
    SpecialFieldTag,
    analyze,
)
from schemagen.config import GeneratorConfig
from schemagen.context import GenerationContext, LogCapture, StructuredLogger
from schemagen.errors import (
    ContextWriteError,
    GenerationCancelledError,
    GenerationConflictError,
    GeneratorError,
    PhaseExecutionError,
    PhaseRegistrationError,
    PluginRegistrationError,
    PluginValidationError,
    PluginValidationWarning,
    SchemaError,
)
from schemagen.generator import (
    GenerationReport,
    GenerationResult,
    SchemaGenerator,
    load_config_file,
    load_schema_file,
    parse_raw_input,
)
from schemagen.manifest import Manifest, build_manifest
from schemagen.models import (
    EntityInfo,
    FieldInfo,
    RelationDirection,
    RelationInfo,
    ScalarType,
    SchemaDefinition,
)
from schemagen.phases import (
    CancellationToken,
    FunctionPhase,
    Phase,
    PhaseHook,
    PhaseRunner,
    PhaseState,
    PipelineRun,
    RunState,
)
from schemagen.plugins import (
    BUILTIN_PLUGINS,
    AggregateOutput,
    FeaturePlugin,
    PluginOutput,
    PluginRegistry,
    PluginSettings,
    merge_outputs,
)
from schemagen.validators import Diagnostic, ValidationResult, validate_full
from schemagen.writer import WriteResult, write_outputs

# ---------------------------------------------------------------------------
# Public API surface
# ---------------------------------------------------------------------------

__all__: list[str] = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Core orchestrator
    "SchemaGenerator",
    "GenerationReport",
    "GenerationResult",
    "load_config_file",
    "load_schema_file",
    "parse_raw_input",
    # Models
    "EntityInfo",
    "FieldInfo",
    "GeneratorConfig",
    "RelationDirection",
    "RelationInfo",
    "ScalarType",
    "SchemaDefinition",
    # Analysis
    "EntityAnalysis",
    "JunctionPolicy",
    "RelationshipAnalyzer",
    "RelationshipKind",
    "SpecialFieldPolicy",
    "SpecialFieldTag",
    "analyze",
    # Phases & context
    "CancellationToken",
    "FunctionPhase",
    "GenerationContext",
    "LogCapture",
    "Phase",
    "PhaseHook",
    "PhaseRunner",
    "PhaseState",
    "PipelineRun",
    "RunState",
    "StructuredLogger",
    # Plugins
    "AggregateOutput",
    "BUILTIN_PLUGINS",
    "FeaturePlugin",
    "PluginOutput",
    "PluginRegistry",
    "PluginSettings",
    "merge_outputs",
    # Manifest & output
    "Manifest",
    "WriteResult",
    "build_manifest",
    "write_outputs",
    # Validation
    "Diagnostic",
    "ValidationResult",
    "validate_full",
    # Errors
    "ContextWriteError",
    "GenerationCancelledError",
    "GenerationConflictError",
    "GeneratorError",
    "PhaseExecutionError",
    "PhaseRegistrationError",
    "PluginRegistrationError",
    "PluginValidationError",
    "PluginValidationWarning",
    "SchemaError",
]
