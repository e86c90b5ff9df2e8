# File: schemagen/manifest.py
"""
SchemaGen - Generation Manifest
=================================
Serialisable record of a run's aggregate output: every file with its
content hash, every route, environment variable, dependency and script
with the plugin that contributed it, and the health-page sections of the
plugins that ran.

The manifest must be byte-identical for identical inputs, so it carries
no timestamps and no absolute paths, and every list is sorted.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from schemagen.plugins.base import HealthCheck, HealthCheckSection
from schemagen.plugins.merge import AggregateOutput
from schemagen.utils import count_lines

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.manifest")

MANIFEST_FORMAT_VERSION: int = 1


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ManifestFile:
    path: str
    sha256: str
    size_bytes: int
    line_count: int
    plugins: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ManifestRoute:
    method: str
    path: str
    handler: str
    plugin: str
    middleware: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ManifestMiddleware:
    name: str
    import_path: str
    is_global: bool
    plugin: str


@dataclass(frozen=True, slots=True)
class ManifestEnvVar:
    name: str
    description: str
    required: bool
    default: Optional[str]
    plugin: str


@dataclass(frozen=True, slots=True)
class ManifestDependency:
    name: str
    constraint: str
    plugin: str
    dev: bool = False


@dataclass(frozen=True, slots=True)
class ManifestScript:
    name: str
    command: str
    plugin: str


@dataclass(frozen=True, slots=True)
class ManifestHealthSection:
    id: str
    title: str
    plugin: str
    checks: Tuple[HealthCheck, ...] = ()


@dataclass(frozen=True, slots=True)
class Manifest:
    """
    Deterministic description of one run's output.

    ``to_json`` is the persisted form; two runs over the same schema and
    configuration produce the same bytes.
    """

    project_name: str
    generator_version: str
    plugins: Tuple[str, ...] = ()
    files: Tuple[ManifestFile, ...] = ()
    routes: Tuple[ManifestRoute, ...] = ()
    middleware: Tuple[ManifestMiddleware, ...] = ()
    env_vars: Tuple[ManifestEnvVar, ...] = ()
    dependencies: Tuple[ManifestDependency, ...] = ()
    scripts: Tuple[ManifestScript, ...] = ()
    health_checks: Tuple[ManifestHealthSection, ...] = ()

    # -- Derived ------------------------------------------------------------

    @property
    def file_hashes(self) -> Dict[str, str]:
        return {f.path: f.sha256 for f in self.files}

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)

    @property
    def total_lines(self) -> int:
        return sum(f.line_count for f in self.files)

    # -- Serialisation ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format_version": MANIFEST_FORMAT_VERSION,
            "project_name": self.project_name,
            "generator_version": self.generator_version,
            "plugins": list(self.plugins),
            "totals": {
                "files": self.total_files,
                "bytes": self.total_bytes,
                "lines": self.total_lines,
            },
            "files": [
                {
                    "path": f.path,
                    "sha256": f.sha256,
                    "size_bytes": f.size_bytes,
                    "line_count": f.line_count,
                    "plugins": list(f.plugins),
                }
                for f in self.files
            ],
            "routes": [
                {
                    "method": r.method,
                    "path": r.path,
                    "handler": r.handler,
                    "middleware": list(r.middleware),
                    "plugin": r.plugin,
                }
                for r in self.routes
            ],
            "middleware": [
                {
                    "name": m.name,
                    "import_path": m.import_path,
                    "global": m.is_global,
                    "plugin": m.plugin,
                }
                for m in self.middleware
            ],
            "env_vars": [
                {
                    "name": e.name,
                    "description": e.description,
                    "required": e.required,
                    "default": e.default,
                    "plugin": e.plugin,
                }
                for e in self.env_vars
            ],
            "dependencies": [
                {"name": d.name, "constraint": d.constraint, "plugin": d.plugin, "dev": d.dev}
                for d in self.dependencies
            ],
            "scripts": [
                {"name": s.name, "command": s.command, "plugin": s.plugin}
                for s in self.scripts
            ],
            "health_checks": [
                {
                    "id": h.id,
                    "title": h.title,
                    "plugin": h.plugin,
                    "checks": [c.model_dump() for c in h.checks],
                }
                for h in self.health_checks
            ],
        }

    def to_json(self, indent_size: int = 2) -> str:
        """Sorted keys, fixed indent and a trailing newline."""
        return (
            json.dumps(self.to_dict(), indent=indent_size, sort_keys=True, ensure_ascii=False)
            + "\n"
        )


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def build_manifest(
    aggregate: AggregateOutput,
    project_name: str,
    generator_version: str,
    health_checks: Sequence[Tuple[str, HealthCheckSection]] = (),
) -> Manifest:
    """
    Build a ``Manifest`` from *aggregate* with every section sorted.

    *health_checks* are ``(plugin_id, section)`` pairs; sections are
    ordered by id, checks keep the order the plugin gave them.
    """
    files: List[ManifestFile] = [
        ManifestFile(
            path=f.path,
            sha256=f.sha256,
            size_bytes=f.size_bytes,
            line_count=count_lines(f.content),
            plugins=tuple(sorted(f.contributors)),
        )
        for f in aggregate.files.values()
    ]
    routes: List[ManifestRoute] = [
        ManifestRoute(
            method=r.route.method,
            path=r.route.path,
            handler=r.route.handler,
            plugin=r.plugin,
            middleware=r.route.middleware,
        )
        for r in aggregate.routes
    ]
    middleware: List[ManifestMiddleware] = [
        ManifestMiddleware(
            name=m.middleware.name,
            import_path=m.middleware.import_path,
            is_global=m.middleware.global_,
            plugin=m.plugin,
        )
        for m in aggregate.middleware
    ]
    env_vars: List[ManifestEnvVar] = [
        ManifestEnvVar(
            name=e.name,
            description=e.descriptor.description,
            required=e.descriptor.required,
            default=e.descriptor.default,
            plugin=e.plugin,
        )
        for e in aggregate.env_vars.values()
    ]
    dependencies: List[ManifestDependency] = [
        ManifestDependency(name=d.name, constraint=d.constraint, plugin=d.plugin)
        for d in aggregate.dependencies.values()
    ] + [
        ManifestDependency(name=d.name, constraint=d.constraint, plugin=d.plugin, dev=True)
        for d in aggregate.dev_dependencies.values()
    ]
    scripts: List[ManifestScript] = [
        ManifestScript(name=s.name, command=s.command, plugin=s.plugin)
        for s in aggregate.scripts.values()
    ]
    sections: List[ManifestHealthSection] = [
        ManifestHealthSection(
            id=section.id, title=section.title, plugin=plugin_id, checks=section.checks
        )
        for plugin_id, section in health_checks
    ]

    manifest = Manifest(
        project_name=project_name,
        generator_version=generator_version,
        plugins=tuple(aggregate.contributors),
        files=tuple(sorted(files, key=lambda f: f.path)),
        routes=tuple(sorted(routes, key=lambda r: (r.method, r.path))),
        middleware=tuple(sorted(middleware, key=lambda m: (m.name, m.import_path, m.plugin))),
        env_vars=tuple(sorted(env_vars, key=lambda e: e.name)),
        dependencies=tuple(sorted(dependencies, key=lambda d: (d.dev, d.name))),
        scripts=tuple(sorted(scripts, key=lambda s: s.name)),
        health_checks=tuple(sorted(sections, key=lambda h: (h.id, h.plugin))),
    )
    logger.debug(
        "Manifest built: %d files, %d routes, %d env vars.",
        len(manifest.files),
        len(manifest.routes),
        len(manifest.env_vars),
    )
    return manifest


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "MANIFEST_FORMAT_VERSION",
    "Manifest",
    "ManifestDependency",
    "ManifestEnvVar",
    "ManifestFile",
    "ManifestHealthSection",
    "ManifestMiddleware",
    "ManifestRoute",
    "ManifestScript",
    "build_manifest",
]

logger.debug("schemagen.manifest loaded.")
