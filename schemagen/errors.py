# File: schemagen/errors.py
"""
SchemaGen - Error Taxonomy
============================
Every failure the generation core can surface derives from
``GeneratorError``.  Each exception carries a ``context`` dictionary of
identifiers (entity / field / phase / plugin / path) so callers can act
on it without inspecting internals.

Validation-time errors (``SchemaError``, ``PluginValidationError``) batch
every problem found; execution-time errors (``PhaseExecutionError``,
``GenerationConflictError``) fail fast.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from schemagen.validators import Diagnostic

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.errors")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class GeneratorError(Exception):
    """Base class for all schemagen errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": self.context,
        }


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UnresolvedRelation:
    """A relation whose target entity does not exist in the schema."""

    entity: str
    field: str
    target: str

    def __str__(self) -> str:
        return (
            f"{self.entity}.{self.field} references unknown entity "
            f"'{self.target}'"
        )


class SchemaError(GeneratorError):
    """One or more relations point at entities missing from the schema."""

    def __init__(self, issues: Sequence[UnresolvedRelation]) -> None:
        self.issues: Tuple[UnresolvedRelation, ...] = tuple(issues)
        lines: List[str] = [str(issue) for issue in self.issues]
        message: str = (
            f"{len(self.issues)} unresolved relation target(s): "
            + "; ".join(lines)
        )
        super().__init__(
            message,
            context={
                "unresolved": [
                    {"entity": i.entity, "field": i.field, "target": i.target}
                    for i in self.issues
                ]
            },
        )


# ---------------------------------------------------------------------------
# Phases
# ---------------------------------------------------------------------------


class PhaseRegistrationError(GeneratorError):
    """Duplicate id, unknown dependency or dependency cycle among phases."""


class PhaseExecutionError(GeneratorError):
    """A phase raised while running; the run halted at that phase."""

    def __init__(self, phase_id: str, cause: BaseException) -> None:
        self.phase_id: str = phase_id
        self.cause: BaseException = cause
        self.run: Optional[Any] = None
        super().__init__(
            f"Phase '{phase_id}' failed: {type(cause).__name__}: {cause}",
            context={"phase": phase_id, "cause": type(cause).__name__},
        )


class ContextWriteError(GeneratorError):
    """A phase wrote a key it did not declare, or a key already written."""


class GenerationCancelledError(GeneratorError):
    """Cancellation was requested; the run stopped before ``phase_id``."""

    def __init__(self, phase_id: str) -> None:
        self.phase_id: str = phase_id
        self.run: Optional[Any] = None
        super().__init__(
            f"Generation cancelled before phase '{phase_id}'.",
            context={"phase": phase_id},
        )


# ---------------------------------------------------------------------------
# Plugins
# ---------------------------------------------------------------------------


class PluginRegistrationError(GeneratorError):
    """Duplicate plugin id, a non-semver version or an unknown plugin id."""


class PluginValidationError(GeneratorError):
    """Fatal plugin diagnostics, reported together as one batch."""

    def __init__(self, diagnostics: Sequence["Diagnostic"]) -> None:
        self.diagnostics: Tuple["Diagnostic", ...] = tuple(diagnostics)
        self.result: Optional[Any] = None
        plugins: List[str] = sorted(
            {str(d.context.get("plugin", "?")) for d in self.diagnostics}
        )
        message: str = (
            f"{len(self.diagnostics)} plugin validation error(s) in "
            f"{', '.join(plugins)}:\n"
            + "\n".join(f"  - {d.message}" for d in self.diagnostics)
        )
        super().__init__(message, context={"plugins": plugins})


class PluginValidationWarning(UserWarning):
    """A plugin's optional entity or field is missing; a fallback applies."""


class GenerationConflictError(GeneratorError):
    """Two contributors claim the same file, route, env var or dependency."""

    def __init__(self, kind: str, key: str, first: str, second: str) -> None:
        self.kind: str = kind
        self.key: str = key
        self.first: str = first
        self.second: str = second
        super().__init__(
            f"Conflicting {kind} '{key}' contributed by '{first}' and '{second}'.",
            context={"kind": kind, "key": key, "contributors": [first, second]},
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
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
    "UnresolvedRelation",
]

logger.debug("schemagen.errors loaded.")
