# File: schemagen/plugins/registry.py
"""
SchemaGen - Plugin Registry & Validation
==========================================
Holds the feature plugins of a run in registration order, validates every
enabled plugin against the entity model and invokes generation on the
plugins that passed.

Plugins come from an explicit catalog (``{plugin_id: plugin_class}``);
there is no dynamic discovery, so registration order, and therefore
merge order, is fully determined by configuration.

Disabled plugins are kept for introspection but never validated,
generated or merged.
"""

from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Type

from schemagen.context import GenerationContext
from schemagen.errors import (
    PluginRegistrationError,
    PluginValidationError,
    PluginValidationWarning,
)
from schemagen.plugins.base import (
    FeaturePlugin,
    HealthCheckSection,
    PluginOutput,
    PluginSettings,
)
from schemagen.validators import Diagnostic, ValidationResult

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.plugins.registry")

_SEMVER_RE: re.Pattern[str] = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class RegisteredPlugin:
    plugin: FeaturePlugin
    settings: PluginSettings

    @property
    def id(self) -> str:
        return self.plugin.id

    @property
    def enabled(self) -> bool:
        return self.settings.enabled


@dataclass(slots=True)
class PluginValidationReport:
    """
    Outcome of validating every enabled plugin.

    ``result`` holds all diagnostics of all plugins in registration order;
    ``per_plugin`` splits them by plugin id.
    """

    result: ValidationResult = field(default_factory=ValidationResult)
    per_plugin: Dict[str, ValidationResult] = field(default_factory=dict)
    passed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return self.result.all_items

    @property
    def errors(self) -> List[Diagnostic]:
        return self.result.errors

    @property
    def warnings(self) -> List[Diagnostic]:
        return self.result.warnings

    @property
    def has_errors(self) -> bool:
        return self.result.has_errors

    def raise_for_errors(self) -> None:
        if self.result.has_errors:
            raise PluginValidationError(self.result.errors)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class PluginRegistry:
    """
    Ordered collection of feature plugins.

    Usage::

        registry = PluginRegistry.from_config(config.plugins, BUILTIN_PLUGINS)
        report = registry.validate(context)
        outputs = registry.generate(context, report)
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RegisteredPlugin] = {}

    # -----------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------

    def register(
        self,
        plugin: FeaturePlugin,
        settings: Optional[PluginSettings] = None,
    ) -> RegisteredPlugin:
        if not plugin.id:
            raise PluginRegistrationError(f"Plugin {plugin!r} has no id.")
        if not _SEMVER_RE.match(plugin.version or ""):
            raise PluginRegistrationError(
                f"Plugin '{plugin.id}' has version {plugin.version!r}; "
                f"expected MAJOR.MINOR.PATCH.",
                context={"plugin": plugin.id, "version": plugin.version},
            )
        if plugin.id in self._entries:
            raise PluginRegistrationError(
                f"Plugin '{plugin.id}' is already registered.",
                context={"plugin": plugin.id},
            )
        if settings is None:
            settings = PluginSettings(id=plugin.id)
        elif settings.id != plugin.id:
            raise PluginRegistrationError(
                f"Settings for '{settings.id}' passed with plugin '{plugin.id}'.",
                context={"plugin": plugin.id},
            )
        entry = RegisteredPlugin(plugin=plugin, settings=settings)
        self._entries[plugin.id] = entry
        logger.debug(
            "Registered plugin %s (enabled=%s)", plugin.id, settings.enabled
        )
        return entry

    @classmethod
    def from_config(
        cls,
        settings: Iterable[PluginSettings],
        catalog: Mapping[str, Type[FeaturePlugin]],
    ) -> "PluginRegistry":
        """Instantiate configured plugins from *catalog*, preserving order."""
        registry = cls()
        for entry in settings:
            plugin_cls: Optional[Type[FeaturePlugin]] = catalog.get(entry.id)
            if plugin_cls is None:
                raise PluginRegistrationError(
                    f"Unknown plugin '{entry.id}'. Available: {sorted(catalog)}.",
                    context={"plugin": entry.id},
                )
            registry.register(plugin_cls(entry.options), entry)
        return registry

    # -----------------------------------------------------------------
    # Query
    # -----------------------------------------------------------------

    @property
    def plugins(self) -> List[RegisteredPlugin]:
        return list(self._entries.values())

    @property
    def enabled(self) -> List[FeaturePlugin]:
        return [e.plugin for e in self._entries.values() if e.enabled]

    @property
    def enabled_ids(self) -> List[str]:
        return [e.id for e in self._entries.values() if e.enabled]

    def get(self, plugin_id: str) -> Optional[FeaturePlugin]:
        entry: Optional[RegisteredPlugin] = self._entries.get(plugin_id)
        return entry.plugin if entry is not None else None

    def is_enabled(self, plugin_id: str) -> bool:
        entry: Optional[RegisteredPlugin] = self._entries.get(plugin_id)
        return entry is not None and entry.enabled

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, plugin_id: object) -> bool:
        return plugin_id in self._entries

    # -----------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------

    def validate(self, context: GenerationContext) -> PluginValidationReport:
        """
        Validate every enabled plugin and collect all diagnostics.

        Never stops at the first failing plugin.  Missing optional items
        are additionally issued as ``PluginValidationWarning``.
        """
        report = PluginValidationReport()
        enabled_ids: List[str] = self.enabled_ids

        for plugin in self.enabled:
            plugin_log = context.logger.bind(plugin=plugin.id)
            try:
                result: ValidationResult = plugin.validate(context)
            except Exception as exc:
                result = ValidationResult()
                result.add_error(
                    "PLUGIN_VALIDATE_FAILED",
                    f"Plugin '{plugin.id}' raised during validation: "
                    f"{type(exc).__name__}: {exc}",
                    {"plugin": plugin.id},
                )
                logger.exception("Plugin %s raised during validation.", plugin.id)

            for dependency in plugin.requires_plugins:
                if dependency not in enabled_ids:
                    result.add_error(
                        "PLUGIN_DEPENDENCY_MISSING",
                        f"Plugin '{plugin.id}' requires plugin '{dependency}' to be enabled.",
                        {"plugin": plugin.id, "dependency": dependency},
                    )

            for diag in result.warnings:
                plugin_log.warning(diag.code.lower(), message=diag.message)
                warnings.warn(diag.message, PluginValidationWarning, stacklevel=2)
            for diag in result.errors:
                plugin_log.error(diag.code.lower(), message=diag.message)

            report.per_plugin[plugin.id] = result
            report.result.merge(result)
            if result.has_errors:
                report.failed.append(plugin.id)
            else:
                report.passed.append(plugin.id)

        logger.info(
            "Plugin validation: %d passed, %d failed, %d warning(s).",
            len(report.passed),
            len(report.failed),
            report.result.warning_count,
        )
        return report

    # -----------------------------------------------------------------
    # Generation
    # -----------------------------------------------------------------

    def generate(
        self,
        context: GenerationContext,
        report: PluginValidationReport,
    ) -> List[Tuple[str, PluginOutput]]:
        """
        Run ``generate`` on every plugin that passed validation, in order.

        ``before_generation`` runs on every participating plugin first;
        ``after_generation`` follows each plugin's own ``generate``.  When
        any of these raises, every participating plugin's ``on_error`` is
        called with the stage name and the error propagates.
        """
        participants: List[FeaturePlugin] = []
        for plugin in self.enabled:
            if plugin.id not in report.passed:
                logger.info("Skipping plugin %s: failed validation.", plugin.id)
                continue
            participants.append(plugin)

        outputs: List[Tuple[str, PluginOutput]] = []
        stage: str = "before_generation"
        try:
            for plugin in participants:
                plugin.before_generation(context)
            for plugin in participants:
                stage = "generate"
                output = plugin.generate(context)
                if not isinstance(output, PluginOutput):
                    raise TypeError(
                        f"Plugin '{plugin.id}' returned {type(output).__name__}, "
                        f"expected PluginOutput."
                    )
                stage = "after_generation"
                plugin.after_generation(context, output)
                context.logger.bind(plugin=plugin.id).info(
                    "plugin.generated",
                    files=len(output.files),
                    routes=len(output.routes),
                )
                outputs.append((plugin.id, output))
        except Exception as exc:
            context.logger.error("plugin.failed", stage=stage, error=str(exc))
            for plugin in participants:
                plugin.on_error(context, exc, stage)
            raise
        return outputs

    def health_checks(
        self,
        context: GenerationContext,
        report: PluginValidationReport,
    ) -> List[Tuple[str, HealthCheckSection]]:
        """Health-page sections of the plugins that passed validation."""
        sections: List[Tuple[str, HealthCheckSection]] = []
        for plugin in self.enabled:
            if plugin.id not in report.passed:
                continue
            section: Optional[HealthCheckSection] = plugin.health_check(context)
            if section is not None:
                sections.append((plugin.id, section))
        return sections


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "PluginRegistry",
    "PluginValidationReport",
    "RegisteredPlugin",
]

logger.debug("schemagen.plugins.registry loaded.")
