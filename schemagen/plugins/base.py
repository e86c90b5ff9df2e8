# File: schemagen/plugins/base.py
"""
SchemaGen - Feature Plugin Base
=================================
Data contracts shared by every feature plugin and the abstract
``FeaturePlugin`` class.

A plugin declares what it needs from the entity model
(``PluginRequirements``), validates itself against a
``GenerationContext`` and contributes a ``PluginOutput``: files, route
and middleware descriptors, environment variables and dependencies.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from schemagen.context import GenerationContext
from schemagen.validators import ValidationResult

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.plugins.base")

_SHARED_CONFIG: ConfigDict = ConfigDict(
    populate_by_name=True,
    extra="forbid",
)

_FROZEN_CONFIG: ConfigDict = ConfigDict(
    populate_by_name=True,
    extra="forbid",
    frozen=True,
)

_HTTP_METHODS: Tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

DEFAULT_FALLBACK: str = "the feature runs with reduced functionality"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class PluginSettings(BaseModel):
    """Per-plugin entry of the generator configuration."""

    model_config = _SHARED_CONFIG

    id: str = Field(..., min_length=1, description="Plugin identifier.")
    enabled: bool = Field(default=True)
    options: Dict[str, Any] = Field(default_factory=dict)


class PluginOptions(BaseModel):
    """Base model for plugin options; plugins subclass it."""

    model_config = _SHARED_CONFIG


# ---------------------------------------------------------------------------
# Requirements
# ---------------------------------------------------------------------------


class EntityRequirements(BaseModel):
    model_config = _SHARED_CONFIG

    required: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)


class FieldRequirements(BaseModel):
    """Entity name → field names."""

    model_config = _SHARED_CONFIG

    required: Dict[str, List[str]] = Field(default_factory=dict)
    optional: Dict[str, List[str]] = Field(default_factory=dict)


class EnvRequirements(BaseModel):
    model_config = _SHARED_CONFIG

    required: List[str] = Field(default_factory=list)
    optional: List[str] = Field(default_factory=list)
    descriptions: Dict[str, str] = Field(default_factory=dict)


class DependencyRequirements(BaseModel):
    """Package name → version constraint."""

    model_config = _SHARED_CONFIG

    runtime: Dict[str, str] = Field(default_factory=dict)
    dev: Dict[str, str] = Field(default_factory=dict)


class PluginRequirements(BaseModel):
    """
    What a plugin needs from the entity model and the generated project.

    ``fallbacks`` maps an optional ``"Entity"`` or ``"Entity.field"`` to a
    sentence describing the reduced behaviour when it is absent.
    """

    model_config = _SHARED_CONFIG

    entities: EntityRequirements = Field(default_factory=EntityRequirements)
    fields: FieldRequirements = Field(default_factory=FieldRequirements)
    env: EnvRequirements = Field(default_factory=EnvRequirements)
    dependencies: DependencyRequirements = Field(default_factory=DependencyRequirements)
    fallbacks: Dict[str, str] = Field(default_factory=dict)

    def fallback_for(self, key: str) -> str:
        return self.fallbacks.get(key, DEFAULT_FALLBACK)


# ---------------------------------------------------------------------------
# Output descriptors
# ---------------------------------------------------------------------------


class RouteDescriptor(BaseModel):
    """An HTTP route the generated application must mount."""

    model_config = _FROZEN_CONFIG

    method: str = Field(..., description="HTTP method, upper-case.")
    path: str = Field(..., description="URL path, starting with '/'.")
    handler: str = Field(..., min_length=1, description="Import path of the handler.")
    description: str = Field(default="")
    middleware: Tuple[str, ...] = Field(
        default=(), description="Names of per-route middleware, applied in order."
    )

    @field_validator("method")
    @classmethod
    def _normalise_method(cls, v: str) -> str:
        method: str = v.strip().upper()
        if method not in _HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method {v!r}.")
        return method

    @field_validator("path")
    @classmethod
    def _normalise_path(cls, v: str) -> str:
        path: str = v.strip()
        if not path.startswith("/"):
            raise ValueError(f"Route path must start with '/': {v!r}")
        if len(path) > 1:
            path = path.rstrip("/")
        return path

    @property
    def key(self) -> str:
        return f"{self.method} {self.path}"


class MiddlewareDescriptor(BaseModel):
    """A middleware the generated application must install."""

    model_config = _FROZEN_CONFIG

    name: str = Field(..., min_length=1)
    import_path: str = Field(..., min_length=1)
    global_: bool = Field(default=False, alias="global")


class EnvVarDescriptor(BaseModel):
    model_config = _FROZEN_CONFIG

    description: str = Field(default="")
    required: bool = Field(default=True)
    default: Optional[str] = Field(default=None)


class HealthCheck(BaseModel):
    """One check of a generated health page; *endpoint* is requested when set."""

    model_config = _FROZEN_CONFIG

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    endpoint: Optional[str] = Field(default=None)
    requires_server: bool = Field(default=True)


class HealthCheckSection(BaseModel):
    """The checks one plugin contributes to the generated health page."""

    model_config = _FROZEN_CONFIG

    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    checks: Tuple[HealthCheck, ...] = Field(default=())


class PluginOutput(BaseModel):
    """Everything one plugin contributes to a generation run."""

    model_config = _SHARED_CONFIG

    files: Dict[str, str] = Field(default_factory=dict)
    routes: List[RouteDescriptor] = Field(default_factory=list)
    middleware: List[MiddlewareDescriptor] = Field(default_factory=list)
    env_vars: Dict[str, EnvVarDescriptor] = Field(default_factory=dict)
    dependencies: Dict[str, str] = Field(default_factory=dict)
    dev_dependencies: Dict[str, str] = Field(default_factory=dict)
    scripts: Dict[str, str] = Field(
        default_factory=dict, description="Script name → command line."
    )

    @property
    def is_empty(self) -> bool:
        return not (
            self.files
            or self.routes
            or self.middleware
            or self.env_vars
            or self.dependencies
            or self.dev_dependencies
            or self.scripts
        )


# ---------------------------------------------------------------------------
# Requirement checks
# ---------------------------------------------------------------------------


def check_requirements(
    plugin_id: str,
    requirements: PluginRequirements,
    context: GenerationContext,
) -> ValidationResult:
    """
    Compare *requirements* with the schema held by *context*.

    Missing required entities / fields are errors; missing optional ones
    are warnings carrying the fallback description.
    """
    result = ValidationResult()
    schema = context.schema

    for name in requirements.entities.required:
        if schema.get_entity(name) is None:
            result.add_error(
                "PLUGIN_MISSING_ENTITY",
                f"Plugin '{plugin_id}' requires entity '{name}' which is not in the schema.",
                {"plugin": plugin_id, "entity": name},
            )

    for entity_name, field_names in requirements.fields.required.items():
        entity = schema.get_entity(entity_name)
        if entity is None:
            if entity_name not in requirements.entities.required:
                result.add_error(
                    "PLUGIN_MISSING_ENTITY",
                    f"Plugin '{plugin_id}' requires entity '{entity_name}' "
                    f"(fields {field_names}) which is not in the schema.",
                    {"plugin": plugin_id, "entity": entity_name},
                )
            continue
        for field_name in field_names:
            if entity.get_field(field_name) is None:
                result.add_error(
                    "PLUGIN_MISSING_FIELD",
                    f"Plugin '{plugin_id}' requires field '{entity_name}.{field_name}'.",
                    {"plugin": plugin_id, "entity": entity_name, "field": field_name},
                )

    for name in requirements.entities.optional:
        if schema.get_entity(name) is None:
            fallback: str = requirements.fallback_for(name)
            result.add_warning(
                "PLUGIN_OPTIONAL_ENTITY_MISSING",
                f"Plugin '{plugin_id}': optional entity '{name}' not found; {fallback}.",
                {"plugin": plugin_id, "entity": name, "fallback": fallback},
            )

    for entity_name, field_names in requirements.fields.optional.items():
        entity = schema.get_entity(entity_name)
        for field_name in field_names:
            if entity is not None and entity.get_field(field_name) is not None:
                continue
            key: str = f"{entity_name}.{field_name}"
            fallback = requirements.fallback_for(key)
            result.add_warning(
                "PLUGIN_OPTIONAL_FIELD_MISSING",
                f"Plugin '{plugin_id}': optional field '{key}' not found; {fallback}.",
                {
                    "plugin": plugin_id,
                    "entity": entity_name,
                    "field": field_name,
                    "fallback": fallback,
                },
            )

    return result


# ---------------------------------------------------------------------------
# Plugin base class
# ---------------------------------------------------------------------------


class FeaturePlugin(ABC):
    """
    Base class for feature plugins.

    Subclasses set the class attributes, optionally an ``Options`` model,
    and implement ``generate``.  Override ``validate`` (calling ``super()``)
    to add plugin-specific checks.
    """

    id: ClassVar[str] = ""
    name: ClassVar[str] = ""
    version: ClassVar[str] = "1.0.0"
    description: ClassVar[str] = ""
    requirements: ClassVar[PluginRequirements] = PluginRequirements()
    requires_plugins: ClassVar[Tuple[str, ...]] = ()
    Options: ClassVar[Type[PluginOptions]] = PluginOptions

    def __init__(self, options: Optional[Mapping[str, Any]] = None) -> None:
        self.options: PluginOptions = self.Options()
        self.option_errors: List[str] = []
        if options:
            self.configure(options)

    def configure(self, options: Mapping[str, Any]) -> None:
        """Validate *options* through ``Options``; errors are kept for ``validate``."""
        try:
            self.options = self.Options.model_validate(dict(options))
            self.option_errors = []
        except ValidationError as exc:
            self.option_errors = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            ]
            logger.debug("Plugin %s rejected options: %s", self.id, self.option_errors)

    def validate(self, context: GenerationContext) -> ValidationResult:
        result = check_requirements(self.id, self.requirements, context)
        for message in self.option_errors:
            result.add_error(
                "PLUGIN_INVALID_OPTIONS",
                f"Plugin '{self.id}' has invalid options: {message}",
                {"plugin": self.id},
            )
        return result

    @abstractmethod
    def generate(self, context: GenerationContext) -> PluginOutput:
        """Produce this plugin's contribution."""

    # -- Lifecycle (no-ops unless overridden) -------------------------------

    def before_generation(self, context: GenerationContext) -> None:
        """Called once per run, before any plugin generates."""

    def after_generation(self, context: GenerationContext, output: PluginOutput) -> None:
        """Called with this plugin's own output right after ``generate``."""

    def on_error(self, context: GenerationContext, error: BaseException, stage: str) -> None:
        """
        Observe a failure of any plugin during *stage*.

        *stage* is ``"before_generation"``, ``"generate"`` or
        ``"after_generation"``.  The error is re-raised after every plugin
        has been notified.
        """

    def health_check(self, context: GenerationContext) -> Optional[HealthCheckSection]:
        """Section of the generated health page, or None for no section."""
        return None

    # -- Helpers for subclasses ---------------------------------------------

    def has_entity(self, context: GenerationContext, name: str) -> bool:
        return context.schema.get_entity(name) is not None

    def module_header(self, title: str) -> List[str]:
        """Docstring lines opening every file this plugin generates."""
        return [
            '"""',
            title,
            "",
            f"Auto-generated by SchemaGen ({self.id} {self.version}).",
            '"""',
            "",
        ]

    def declared_env_vars(self) -> Dict[str, EnvVarDescriptor]:
        env = self.requirements.env
        declared: Dict[str, EnvVarDescriptor] = {}
        for name in env.required:
            declared[name] = EnvVarDescriptor(
                description=env.descriptions.get(name, ""), required=True
            )
        for name in env.optional:
            declared[name] = EnvVarDescriptor(
                description=env.descriptions.get(name, ""), required=False
            )
        return declared

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}@{self.version}>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "DEFAULT_FALLBACK",
    "DependencyRequirements",
    "EntityRequirements",
    "EnvRequirements",
    "EnvVarDescriptor",
    "FeaturePlugin",
    "FieldRequirements",
    "HealthCheck",
    "HealthCheckSection",
    "MiddlewareDescriptor",
    "PluginOptions",
    "PluginOutput",
    "PluginRequirements",
    "PluginSettings",
    "RouteDescriptor",
    "check_requirements",
]

logger.debug("schemagen.plugins.base loaded.")
