# File: schemagen/plugins/builtin/full_text_search.py
"""
SchemaGen - Full-Text Search Plugin
=====================================
Text search across the entities listed in ``options.models``.

Searchable fields come from the relationship analysis (String fields that
are neither identifiers, foreign keys nor sensitive).  Listing an entity
that is not in the schema is fatal; listing one with no searchable field
is a warning and the entity is left out.  The generated endpoint ranks rows
from loaders the application attaches with ``register_source``.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from pydantic import Field

from schemagen.analyzer import EntityAnalysis
from schemagen.context import GenerationContext
from schemagen.plugins.base import (
    FeaturePlugin,
    HealthCheck,
    HealthCheckSection,
    PluginOptions,
    PluginOutput,
    PluginRequirements,
    RouteDescriptor,
)
from schemagen.utils import to_plural, to_snake_case
from schemagen.validators import ValidationResult

logger: logging.Logger = logging.getLogger("schemagen.plugins.builtin.full_text_search")

_INDENT: str = "    "


class FullTextSearchOptions(PluginOptions):
    models: List[str] = Field(default_factory=list)
    min_query_length: int = Field(default=2, ge=1)
    max_results: int = Field(default=50, ge=1, le=1000)


class FullTextSearchPlugin(FeaturePlugin):
    id = "full-text-search"
    name = "Full-Text Search"
    version = "1.0.0"
    description = "Ranked text search over configured entities."
    requirements = PluginRequirements()
    Options = FullTextSearchOptions

    def validate(self, context: GenerationContext) -> ValidationResult:
        result = super().validate(context)
        opts: FullTextSearchOptions = self.options  # type: ignore[assignment]
        if not opts.models:
            result.add_error(
                "SEARCH_NO_MODELS",
                f"Plugin '{self.id}' has no entities configured in options.models.",
                {"plugin": self.id},
            )
            return result

        analysis: Mapping[str, EntityAnalysis] = context.get("analysis", {})
        for name in opts.models:
            if context.schema.get_entity(name) is None:
                result.add_error(
                    "PLUGIN_MISSING_ENTITY",
                    f"Plugin '{self.id}' is configured to search entity '{name}' "
                    f"which is not in the schema.",
                    {"plugin": self.id, "entity": name},
                )
                continue
            entry = analysis.get(name)
            if entry is not None and not entry.search_fields:
                result.add_warning(
                    "SEARCH_NO_FIELDS",
                    f"Plugin '{self.id}': entity '{name}' has no searchable String "
                    f"fields; it is left out of search.",
                    {"plugin": self.id, "entity": name},
                )
        return result

    def searchable(self, context: GenerationContext) -> Dict[str, List[str]]:
        """Entity name → search fields, for configured entities that have any."""
        opts: FullTextSearchOptions = self.options  # type: ignore[assignment]
        analysis: Mapping[str, EntityAnalysis] = context.require("analysis")
        return {
            name: list(analysis[name].search_fields)
            for name in opts.models
            if name in analysis and analysis[name].search_fields
        }

    def generate(self, context: GenerationContext) -> PluginOutput:
        opts: FullTextSearchOptions = self.options  # type: ignore[assignment]
        targets: Dict[str, List[str]] = self.searchable(context)
        logger.debug("full-text-search over %s", sorted(targets))

        return PluginOutput(
            files={
                "search/__init__.py": '"""Full-text search generated by SchemaGen."""\n',
                "search/search_config.py": self._config(targets, opts),
                "search/search_routes.py": self._routes(),
            },
            routes=[
                RouteDescriptor(
                    method="GET",
                    path="/search",
                    handler="search.search_routes:search",
                    description="Search across "
                    + (", ".join(to_plural(n) for n in targets) or "no entities"),
                ),
            ],
        )

    def health_check(self, context: GenerationContext) -> Optional[HealthCheckSection]:
        return HealthCheckSection(
            id="full-text-search",
            title="Full-Text Search",
            checks=(
                HealthCheck(
                    id="search-query",
                    name="Search query",
                    description="/search ranks rows from every registered source.",
                    endpoint="/search?q=test",
                ),
            ),
        )

    def _config(self, targets: Dict[str, List[str]], opts: FullTextSearchOptions) -> str:
        lines: List[str] = self.module_header("Searchable entities and fields.")
        lines.extend(
            [
                "from typing import Dict, List",
                "",
                f"MIN_QUERY_LENGTH = {opts.min_query_length}",
                f"MAX_RESULTS = {opts.max_results}",
                "",
                "SEARCH_FIELDS: Dict[str, List[str]] = {",
            ]
        )
        for name, fields in targets.items():
            quoted: str = ", ".join(f'"{f}"' for f in fields)
            lines.append(f'{_INDENT}"{to_snake_case(name)}": [{quoted}],')
        lines.append("}")
        return "\n".join(lines) + "\n"

    def _routes(self) -> str:
        lines: List[str] = self.module_header("Search endpoint.")
        lines.extend(
            [
                "from typing import Any, Callable, Dict, Iterable, List, Optional",
                "",
                "from fastapi import APIRouter, HTTPException, Query",
                "",
                "from .search_config import MAX_RESULTS, MIN_QUERY_LENGTH, SEARCH_FIELDS",
                "",
                "RowLoader = Callable[[], Iterable[Dict[str, Any]]]",
                "",
                'router = APIRouter(tags=["search"])',
                "_SOURCES: Dict[str, RowLoader] = {}",
                "",
                "",
                "def register_source(entity: str, loader: RowLoader) -> None:",
                f'{_INDENT}"""Attach the row loader that feeds *entity* into search."""',
                f"{_INDENT}if entity not in SEARCH_FIELDS:",
                f'{_INDENT * 2}raise KeyError(f"{{entity}} is not searchable")',
                f"{_INDENT}_SOURCES[entity] = loader",
                "",
                "",
                "def score(text: str, query: str) -> int:",
                f"{_INDENT}lowered = text.lower()",
                f"{_INDENT}if lowered == query:",
                f"{_INDENT * 2}return 100",
                f"{_INDENT}if lowered.startswith(query):",
                f"{_INDENT * 2}return 50",
                f"{_INDENT}return 10 if query in lowered else 0",
                "",
                "",
                "def rank(entity: str, rows: Iterable[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:",
                f"{_INDENT}hits: List[Dict[str, Any]] = []",
                f"{_INDENT}for row in rows:",
                f"{_INDENT * 2}best = max(",
                f'{_INDENT * 3}(score(str(row.get(name) or ""), query) for name in SEARCH_FIELDS[entity]),',
                f"{_INDENT * 3}default=0,",
                f"{_INDENT * 2})",
                f"{_INDENT * 2}if best > 0:",
                f'{_INDENT * 3}hits.append({{"entity": entity, "score": best, "item": row}})',
                f"{_INDENT}return hits",
                "",
                "",
                '@router.get("/search")',
                "async def search(",
                f"{_INDENT}q: str = Query(..., min_length=1),",
                f"{_INDENT}entity: Optional[str] = None,",
                ") -> Dict[str, Any]:",
                f"{_INDENT}query = q.strip().lower()",
                f"{_INDENT}if len(query) < MIN_QUERY_LENGTH:",
                f'{_INDENT * 2}raise HTTPException(status_code=422, detail="Query too short")',
                f"{_INDENT}if entity is not None and entity not in SEARCH_FIELDS:",
                f'{_INDENT * 2}raise HTTPException(status_code=404, detail="Entity not searchable")',
                f"{_INDENT}scopes: List[str] = [entity] if entity else list(SEARCH_FIELDS)",
                f"{_INDENT}hits: List[Dict[str, Any]] = []",
                f"{_INDENT}for name in scopes:",
                f"{_INDENT * 2}loader = _SOURCES.get(name)",
                f"{_INDENT * 2}if loader is not None:",
                f"{_INDENT * 3}hits.extend(rank(name, loader(), query))",
                f'{_INDENT}hits.sort(key=lambda hit: hit["score"], reverse=True)',
                f'{_INDENT}return {{"query": q, "total": len(hits), "results": hits[:MAX_RESULTS]}}',
            ]
        )
        return "\n".join(lines) + "\n"


__all__: List[str] = ["FullTextSearchOptions", "FullTextSearchPlugin"]
