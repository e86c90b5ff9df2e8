# File: schemagen/plugins/merge.py
"""
SchemaGen - Plugin Output Merge
=================================
Folds the ``PluginOutput`` of every generated plugin into a single
``AggregateOutput``.

Rules:

- File paths are normalised first, so ``./auth/jwt.py`` and
  ``auth/jwt.py`` are the same file.  Two contributors claiming one path
  with different content is a conflict; identical content is kept once.
- Routes and middleware are concatenated in plugin order.  The same
  ``METHOD /path`` contributed twice is a conflict.
- Environment variables, dependencies and scripts are unioned.  The same
  name with a different value is a conflict; the same value is kept once.

Any conflict raises ``GenerationConflictError`` naming both contributors.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from schemagen.errors import GenerationConflictError
from schemagen.plugins.base import (
    EnvVarDescriptor,
    MiddlewareDescriptor,
    PluginOutput,
    RouteDescriptor,
)
from schemagen.utils import normalize_output_path, sha256_hex

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.plugins.merge")


# ---------------------------------------------------------------------------
# Contribution records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FileContribution:
    """A generated file and every plugin that contributed it."""

    path: str
    content: str
    sha256: str
    contributors: Tuple[str, ...]

    @property
    def plugin(self) -> str:
        return self.contributors[0]

    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8"))


@dataclass(frozen=True, slots=True)
class ContributedRoute:
    plugin: str
    route: RouteDescriptor


@dataclass(frozen=True, slots=True)
class ContributedMiddleware:
    plugin: str
    middleware: MiddlewareDescriptor


@dataclass(frozen=True, slots=True)
class ContributedEnvVar:
    name: str
    plugin: str
    descriptor: EnvVarDescriptor


@dataclass(frozen=True, slots=True)
class ContributedDependency:
    name: str
    constraint: str
    plugin: str


@dataclass(frozen=True, slots=True)
class ContributedScript:
    name: str
    command: str
    plugin: str


@dataclass(slots=True)
class AggregateOutput:
    """
    Union of every generated plugin's output.

    Created once per run by ``merge_outputs``; insertion order of every
    collection follows plugin order.
    """

    files: Dict[str, FileContribution] = field(default_factory=dict)
    routes: List[ContributedRoute] = field(default_factory=list)
    middleware: List[ContributedMiddleware] = field(default_factory=list)
    env_vars: Dict[str, ContributedEnvVar] = field(default_factory=dict)
    dependencies: Dict[str, ContributedDependency] = field(default_factory=dict)
    dev_dependencies: Dict[str, ContributedDependency] = field(default_factory=dict)
    scripts: Dict[str, ContributedScript] = field(default_factory=dict)
    contributors: List[str] = field(default_factory=list)

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files.values())

    def files_from(self, plugin_id: str) -> List[str]:
        return [p for p, f in self.files.items() if plugin_id in f.contributors]

    def routes_from(self, plugin_id: str) -> List[RouteDescriptor]:
        return [r.route for r in self.routes if r.plugin == plugin_id]


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def _merge_files(aggregate: AggregateOutput, plugin_id: str, output: PluginOutput) -> None:
    for raw_path, content in output.files.items():
        path: str = normalize_output_path(raw_path)
        digest: str = sha256_hex(content)
        existing = aggregate.files.get(path)
        if existing is None:
            aggregate.files[path] = FileContribution(
                path=path, content=content, sha256=digest, contributors=(plugin_id,)
            )
            continue
        if existing.sha256 != digest:
            raise GenerationConflictError("file", path, existing.plugin, plugin_id)
        if plugin_id not in existing.contributors:
            aggregate.files[path] = dataclasses.replace(
                existing, contributors=existing.contributors + (plugin_id,)
            )
        logger.debug("File %s contributed identically by %s; kept once.", path, plugin_id)


def _merge_routes(
    aggregate: AggregateOutput,
    plugin_id: str,
    output: PluginOutput,
    seen: Dict[str, str],
) -> None:
    for route in output.routes:
        owner = seen.get(route.key)
        if owner is not None:
            raise GenerationConflictError("route", route.key, owner, plugin_id)
        seen[route.key] = plugin_id
        aggregate.routes.append(ContributedRoute(plugin=plugin_id, route=route))
    for mw in output.middleware:
        aggregate.middleware.append(ContributedMiddleware(plugin=plugin_id, middleware=mw))


def _merge_env(aggregate: AggregateOutput, plugin_id: str, output: PluginOutput) -> None:
    for name, descriptor in output.env_vars.items():
        existing = aggregate.env_vars.get(name)
        if existing is None:
            aggregate.env_vars[name] = ContributedEnvVar(
                name=name, plugin=plugin_id, descriptor=descriptor
            )
        elif existing.descriptor != descriptor:
            raise GenerationConflictError("env_var", name, existing.plugin, plugin_id)


def _merge_dependency_map(
    target: Dict[str, ContributedDependency],
    kind: str,
    plugin_id: str,
    contributed: Dict[str, str],
) -> None:
    for name, constraint in contributed.items():
        existing = target.get(name)
        if existing is None:
            target[name] = ContributedDependency(
                name=name, constraint=constraint, plugin=plugin_id
            )
        elif existing.constraint != constraint:
            raise GenerationConflictError(kind, name, existing.plugin, plugin_id)


def _merge_scripts(aggregate: AggregateOutput, plugin_id: str, output: PluginOutput) -> None:
    for name, command in output.scripts.items():
        existing = aggregate.scripts.get(name)
        if existing is None:
            aggregate.scripts[name] = ContributedScript(
                name=name, command=command, plugin=plugin_id
            )
        elif existing.command != command:
            raise GenerationConflictError("script", name, existing.plugin, plugin_id)


def merge_outputs(outputs: Iterable[Tuple[str, PluginOutput]]) -> AggregateOutput:
    """
    Merge ``(plugin_id, PluginOutput)`` pairs, in the order given.

    Raises ``GenerationConflictError`` on the first conflict found.
    """
    aggregate = AggregateOutput()
    route_owners: Dict[str, str] = {}

    for plugin_id, output in outputs:
        aggregate.contributors.append(plugin_id)
        _merge_files(aggregate, plugin_id, output)
        _merge_routes(aggregate, plugin_id, output, route_owners)
        _merge_env(aggregate, plugin_id, output)
        _merge_dependency_map(
            aggregate.dependencies, "dependency", plugin_id, output.dependencies
        )
        _merge_dependency_map(
            aggregate.dev_dependencies, "dev_dependency", plugin_id, output.dev_dependencies
        )
        _merge_scripts(aggregate, plugin_id, output)

    logger.info(
        "Merged %d plugin output(s): %d file(s), %d route(s), %d env var(s).",
        len(aggregate.contributors),
        len(aggregate.files),
        len(aggregate.routes),
        len(aggregate.env_vars),
    )
    return aggregate


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "AggregateOutput",
    "ContributedDependency",
    "ContributedEnvVar",
    "ContributedMiddleware",
    "ContributedRoute",
    "ContributedScript",
    "FileContribution",
    "merge_outputs",
]

logger.debug("schemagen.plugins.merge loaded.")
