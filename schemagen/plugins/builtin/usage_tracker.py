# File: schemagen/plugins/builtin/usage_tracker.py
"""
SchemaGen - Usage Tracker Plugin
==================================
Request logging and usage statistics for the generated API.

Both ``RequestLog`` and ``UsageMetric`` are optional: when ``RequestLog``
is absent the generated store keeps records in memory only.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import Field

from schemagen.context import GenerationContext
from schemagen.plugins.base import (
    EntityRequirements,
    EnvRequirements,
    EnvVarDescriptor,
    FeaturePlugin,
    HealthCheck,
    HealthCheckSection,
    MiddlewareDescriptor,
    PluginOptions,
    PluginOutput,
    PluginRequirements,
    RouteDescriptor,
)

logger: logging.Logger = logging.getLogger("schemagen.plugins.builtin.usage_tracker")

_INDENT: str = "    "


class UsageTrackerOptions(PluginOptions):
    sample_rate: float = Field(default=1.0, gt=0.0, le=1.0)
    retention_days: int = Field(default=90, ge=1)
    track_response_time: bool = Field(default=True)


class UsageTrackerPlugin(FeaturePlugin):
    id = "usage-tracker"
    name = "Usage Tracker"
    version = "1.0.0"
    description = "API usage tracking and statistics."
    requirements = PluginRequirements(
        entities=EntityRequirements(optional=["RequestLog", "UsageMetric"]),
        env=EnvRequirements(
            optional=["USAGE_TRACKER_ENABLED", "USAGE_SAMPLE_RATE"],
            descriptions={
                "USAGE_TRACKER_ENABLED": "Set to 'false' to disable request tracking.",
                "USAGE_SAMPLE_RATE": "Fraction of requests recorded (0 < rate <= 1).",
            },
        ),
        fallbacks={
            "RequestLog": "usage data is stored in memory only and lost on restart",
            "UsageMetric": "aggregates are computed on demand instead of stored",
        },
    )
    Options = UsageTrackerOptions

    def generate(self, context: GenerationContext) -> PluginOutput:
        opts: UsageTrackerOptions = self.options  # type: ignore[assignment]
        persistent: bool = self.has_entity(context, "RequestLog")

        env_vars: Dict[str, EnvVarDescriptor] = self.declared_env_vars()
        env_vars["USAGE_TRACKER_ENABLED"] = env_vars["USAGE_TRACKER_ENABLED"].model_copy(
            update={"default": "true"}
        )
        env_vars["USAGE_SAMPLE_RATE"] = env_vars["USAGE_SAMPLE_RATE"].model_copy(
            update={"default": str(opts.sample_rate)}
        )

        return PluginOutput(
            files={
                "monitoring/__init__.py": '"""Usage monitoring generated by SchemaGen."""\n',
                "monitoring/usage_store.py": self._store(persistent, opts),
                "monitoring/usage_middleware.py": self._middleware(opts),
                "monitoring/usage_routes.py": self._routes(),
            },
            routes=[
                RouteDescriptor(
                    method="GET",
                    path="/usage/stats",
                    handler="monitoring.usage_routes:stats",
                    description="Per-endpoint request counts and latency.",
                ),
                RouteDescriptor(
                    method="GET",
                    path="/usage/requests",
                    handler="monitoring.usage_routes:recent_requests",
                    description="Most recent recorded requests.",
                ),
            ],
            middleware=[
                MiddlewareDescriptor(
                    name="usage_tracker",
                    import_path="monitoring.usage_middleware",
                    global_=True,
                ),
            ],
            env_vars=env_vars,
        )

    def health_check(self, context: GenerationContext) -> Optional[HealthCheckSection]:
        storage: str = "database" if self.has_entity(context, "RequestLog") else "memory"
        return HealthCheckSection(
            id="usage-tracker",
            title="Usage Tracker",
            checks=(
                HealthCheck(
                    id="usage-stats",
                    name="Usage statistics",
                    description=f"/usage/stats answers from the {storage} store.",
                    endpoint="/usage/stats",
                ),
            ),
        )

    def _store(self, persistent: bool, opts: UsageTrackerOptions) -> str:
        lines: List[str] = self.module_header("Storage for recorded requests.")
        lines.extend(
            [
                "from collections import deque",
                "from typing import Any, Deque, Dict, List",
                "",
                f"RETENTION_DAYS = {opts.retention_days}",
                "",
            ]
        )
        if persistent:
            lines.extend(
                [
                    "from ..models.request_log import RequestLog",
                    "",
                    "",
                    "async def record(session, entry: Dict[str, Any]) -> None:",
                    f"{_INDENT}session.add(RequestLog(**entry))",
                    f"{_INDENT}await session.commit()",
                ]
            )
        else:
            lines.extend(
                [
                    "# In-memory ring buffer: records are lost on restart.",
                    "_RECORDS: Deque[Dict[str, Any]] = deque(maxlen=10_000)",
                    "",
                    "",
                    "async def record(session, entry: Dict[str, Any]) -> None:",
                    f"{_INDENT}_RECORDS.append(entry)",
                    "",
                    "",
                    "def recent(limit: int = 100) -> List[Dict[str, Any]]:",
                    f"{_INDENT}return list(_RECORDS)[-limit:]",
                ]
            )
        return "\n".join(lines) + "\n"

    def _middleware(self, opts: UsageTrackerOptions) -> str:
        lines: List[str] = self.module_header("Request-recording middleware.")
        lines.extend(
            [
                "import os",
                "import random",
                "import time",
                "",
                "from starlette.middleware.base import BaseHTTPMiddleware",
                "",
                "from . import usage_store",
                "",
                'ENABLED = os.environ.get("USAGE_TRACKER_ENABLED", "true").lower() != "false"',
                f'SAMPLE_RATE = float(os.environ.get("USAGE_SAMPLE_RATE", "{opts.sample_rate}"))',
                "",
                "",
                "class usage_tracker(BaseHTTPMiddleware):",
                f"{_INDENT}async def dispatch(self, request, call_next):",
                f"{_INDENT * 2}started = time.perf_counter()",
                f"{_INDENT * 2}response = await call_next(request)",
                f"{_INDENT * 2}if ENABLED and random.random() < SAMPLE_RATE:",
                f"{_INDENT * 3}entry = {{",
                f'{_INDENT * 4}"method": request.method,',
                f'{_INDENT * 4}"path": request.url.path,',
                f'{_INDENT * 4}"statusCode": response.status_code,',
            ]
        )
        if opts.track_response_time:
            lines.append(
                f'{_INDENT * 4}"responseTime": int((time.perf_counter() - started) * 1000),'
            )
        lines.extend(
            [
                f"{_INDENT * 3}}}",
                f"{_INDENT * 3}await usage_store.record(None, entry)",
                f"{_INDENT * 2}return response",
            ]
        )
        return "\n".join(lines) + "\n"

    def _routes(self) -> str:
        lines: List[str] = self.module_header("Usage statistics endpoints.")
        lines.extend(
            [
                "from collections import Counter",
                "from typing import Any, Dict, List",
                "",
                "from fastapi import APIRouter, Query",
                "",
                "from . import usage_store",
                "",
                'router = APIRouter(prefix="/usage", tags=["usage"])',
                "",
                "",
                '@router.get("/stats")',
                "async def stats() -> Dict[str, Any]:",
                f'{_INDENT}records = getattr(usage_store, "recent", lambda limit: [])(10_000)',
                f'{_INDENT}counts = Counter(f"{{r[\'method\']}} {{r[\'path\']}}" for r in records)',
                f'{_INDENT}return {{"total": len(records), "endpoints": dict(counts.most_common(20))}}',
                "",
                "",
                '@router.get("/requests")',
                "async def recent_requests(limit: int = Query(default=100, ge=1, le=1000)) -> List[Dict[str, Any]]:",
                f'{_INDENT}return getattr(usage_store, "recent", lambda limit: [])(limit)',
            ]
        )
        return "\n".join(lines) + "\n"


__all__: List[str] = ["UsageTrackerOptions", "UsageTrackerPlugin"]
