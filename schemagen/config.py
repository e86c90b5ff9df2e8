# File: schemagen/config.py
"""
SchemaGen - Generator Configuration
=====================================
``GeneratorConfig`` gathers every knob of a generation run: the ordered
plugin list, the junction-detection and special-field policies, plugin
validation strictness and the writer settings.

Loaded from the ``config`` section of an input document or from a
separate YAML / JSON file (see ``schemagen.generator.load_config_file``).
"""

from __future__ import annotations

import logging
from typing import List, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemagen.analyzer import (
    DEFAULT_SENSITIVE_PATTERNS,
    JunctionPolicy,
    SpecialFieldPolicy,
)
from schemagen.plugins.base import PluginSettings

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.config")

_CONFIG: ConfigDict = ConfigDict(
    populate_by_name=True,
    validate_assignment=True,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Generator configuration
# ---------------------------------------------------------------------------


class GeneratorConfig(BaseModel):
    """
    Master configuration for one generation run.

    Combined with a ``SchemaDefinition`` it is all ``SchemaGenerator``
    needs.  ``plugins`` order is the plugin registration order, which is
    also the merge order.
    """

    model_config = _CONFIG

    # -- Project ------------------------------------------------------------
    project_name: str = Field(
        default="schemagen-project",
        min_length=1,
        max_length=128,
        description="Name recorded in the manifest.",
    )

    # -- Plugins ------------------------------------------------------------
    plugins: List[PluginSettings] = Field(
        default_factory=list,
        description="Ordered plugin list with per-plugin options.",
    )
    strict_plugin_validation: bool = Field(
        default=True,
        description=(
            "Block the whole run when any plugin has a fatal diagnostic. "
            "When False only the failing plugins are left out."
        ),
    )

    # -- Analysis policies --------------------------------------------------
    junction: JunctionPolicy = Field(default_factory=JunctionPolicy)
    special_fields: SpecialFieldPolicy = Field(default_factory=SpecialFieldPolicy)
    sensitive_field_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_PATTERNS),
        description="Name fragments never offered for search or filtering.",
    )

    # -- Output -------------------------------------------------------------
    manifest_filename: str = Field(
        default="schemagen-manifest.json",
        min_length=1,
        description="Manifest file name inside the output directory.",
    )
    max_write_workers: int = Field(
        default=4, ge=1, le=64, description="Parallel file writes."
    )

    # -- Validators ---------------------------------------------------------

    @field_validator("plugins")
    @classmethod
    def _unique_plugin_ids(cls, v: List[PluginSettings]) -> List[PluginSettings]:
        seen: Set[str] = set()
        dupes: List[str] = []
        for entry in v:
            if entry.id in seen:
                dupes.append(entry.id)
            seen.add(entry.id)
        if dupes:
            raise ValueError(f"Duplicate plugin ids in configuration: {dupes}")
        return v

    @field_validator("manifest_filename")
    @classmethod
    def _plain_filename(cls, v: str) -> str:
        if "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"manifest_filename must be a bare file name: {v!r}")
        return v

    # -- Helpers ------------------------------------------------------------

    def with_plugin_disabled(self, plugin_id: str) -> "GeneratorConfig":
        """Copy of this config with *plugin_id* switched off."""
        plugins: List[PluginSettings] = [
            p.model_copy(update={"enabled": False}) if p.id == plugin_id else p
            for p in self.plugins
        ]
        return self.model_copy(update={"plugins": plugins})


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = ["GeneratorConfig"]

logger.debug("schemagen.config loaded.")
