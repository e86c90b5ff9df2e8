# File: schemagen/plugins/builtin/__init__.py
"""
SchemaGen - Built-in Plugin Catalog
=====================================
``BUILTIN_PLUGINS`` is the static ``{plugin_id: plugin_class}`` mapping
the generator resolves configured plugin ids against.  Plugins are never
discovered at runtime.
"""

from __future__ import annotations

from typing import Dict, List, Type

from schemagen.plugins.base import FeaturePlugin
from schemagen.plugins.builtin.full_text_search import FullTextSearchPlugin
from schemagen.plugins.builtin.google_auth import GoogleAuthPlugin
from schemagen.plugins.builtin.jwt_service import JWTServicePlugin
from schemagen.plugins.builtin.usage_tracker import UsageTrackerPlugin

BUILTIN_PLUGINS: Dict[str, Type[FeaturePlugin]] = {
    UsageTrackerPlugin.id: UsageTrackerPlugin,
    JWTServicePlugin.id: JWTServicePlugin,
    GoogleAuthPlugin.id: GoogleAuthPlugin,
    FullTextSearchPlugin.id: FullTextSearchPlugin,
}

__all__: List[str] = [
    "BUILTIN_PLUGINS",
    "FullTextSearchPlugin",
    "GoogleAuthPlugin",
    "JWTServicePlugin",
    "UsageTrackerPlugin",
]
