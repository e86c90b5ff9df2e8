# File: schemagen/plugins/__init__.py
"""
SchemaGen - Feature Plugins
=============================
Plugin contracts, the registry/validator and the output merge.
"""

from __future__ import annotations

from typing import List

from schemagen.plugins.base import (
    EnvVarDescriptor,
    FeaturePlugin,
    MiddlewareDescriptor,
    PluginOptions,
    PluginOutput,
    PluginRequirements,
    PluginSettings,
    RouteDescriptor,
)
from schemagen.plugins.builtin import BUILTIN_PLUGINS
from schemagen.plugins.merge import AggregateOutput, merge_outputs
from schemagen.plugins.registry import PluginRegistry, PluginValidationReport

__all__: List[str] = [
    "AggregateOutput",
    "BUILTIN_PLUGINS",
    "EnvVarDescriptor",
    "FeaturePlugin",
    "MiddlewareDescriptor",
    "PluginOptions",
    "PluginOutput",
    "PluginRegistry",
    "PluginRequirements",
    "PluginSettings",
    "PluginValidationReport",
    "RouteDescriptor",
    "merge_outputs",
]
