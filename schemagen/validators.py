# File: schemagen/validators.py
"""
SchemaGen - Diagnostics & Schema Checks
=========================================
Diagnostic container shared by schema checks and plugin validation, plus
a **pure-function** schema lint pipeline.

Pydantic handles structural correctness of the entity model.  This module
adds cross-entity checks that never raise: unresolved relation targets
(reported as errors, the raising form lives in
``schemagen.analyzer.resolve_relation_targets``), missing identifiers,
naming-convention drift and relation/field name clashes.

Usage by downstream modules:
    from schemagen.validators import validate_full
    result = validate_full(schema)
    print(result.format_report())
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Set

from schemagen.models import SchemaDefinition

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.validators")

# ---------------------------------------------------------------------------
# Diagnostic container
# ---------------------------------------------------------------------------


class Diagnostic:
    """Lightweight diagnostic descriptor (no Pydantic overhead)."""

    __slots__ = ("level", "code", "message", "context")

    def __init__(
        self,
        level: str,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.level: str = level  # "error" | "warning" | "info"
        self.code: str = code
        self.message: str = message
        self.context: Dict[str, Any] = context or {}

    @property
    def is_error(self) -> bool:
        return self.level == "error"

    @property
    def is_warning(self) -> bool:
        return self.level == "warning"

    @property
    def plugin(self) -> Optional[str]:
        return self.context.get("plugin")

    def __repr__(self) -> str:
        return f"[{self.level.upper()}] {self.code}: {self.message}"

    def __str__(self) -> str:
        return self.__repr__()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Diagnostic):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((self.level, self.code, self.message))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class ValidationResult:
    """
    Accumulates ``Diagnostic`` instances.

    Provides O(1) appends and O(n) filtering.
    """

    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: List[Diagnostic] = []

    # -- Mutation -----------------------------------------------------------

    def add_error(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(Diagnostic("error", code, message, context))

    def add_warning(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(Diagnostic("warning", code, message, context))

    def add_info(
        self,
        code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._items.append(Diagnostic("info", code, message, context))

    def merge(self, other: "ValidationResult") -> None:
        """Merge another result into this one. O(k) in len(other)."""
        self._items.extend(other._items)

    # -- Query --------------------------------------------------------------

    @property
    def errors(self) -> List[Diagnostic]:
        return [e for e in self._items if e.is_error]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [e for e in self._items if e.is_warning]

    @property
    def all_items(self) -> List[Diagnostic]:
        return list(self._items)

    @property
    def has_errors(self) -> bool:
        return any(e.is_error for e in self._items)

    @property
    def has_warnings(self) -> bool:
        return any(e.is_warning for e in self._items)

    @property
    def error_count(self) -> int:
        return sum(1 for e in self._items if e.is_error)

    @property
    def warning_count(self) -> int:
        return sum(1 for e in self._items if e.is_warning)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    def by_code(self, code: str) -> List[Diagnostic]:
        return [e for e in self._items if e.code == code]

    def summary(self) -> str:
        return (
            f"Validation: {self.error_count} error(s), "
            f"{self.warning_count} warning(s), "
            f"{len(self._items)} total item(s)."
        )

    def __repr__(self) -> str:
        return f"<ValidationResult {self.summary()}>"

    def __bool__(self) -> bool:
        """Truthy when there are NO errors (i.e. valid)."""
        return self.is_valid

    def __len__(self) -> int:
        return len(self._items)

    def format_report(self, include_info: bool = False) -> str:
        """Human-readable multi-line report."""
        lines: List[str] = [self.summary(), ""]
        for item in self._items:
            if not include_info and item.level == "info":
                continue
            prefix: str = {
                "error": "✗",
                "warning": "⚠",
                "info": "ℹ",
            }.get(item.level, "•")
            lines.append(f"  {prefix} [{item.code}] {item.message}")
            if item.context:
                for k, v in item.context.items():
                    lines.append(f"       {k}: {v}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Regex patterns (compiled once at module load)
# ---------------------------------------------------------------------------

_PASCAL_CASE_RE: re.Pattern[str] = re.compile(r"^[A-Z][a-zA-Z0-9]*$")
_IDENTIFIER_RE: re.Pattern[str] = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def validate_relation_targets(schema: SchemaDefinition) -> ValidationResult:
    """Every relation target must name an entity of the schema."""
    result = ValidationResult()
    known: Set[str] = set(schema.entity_names)
    for entity in schema.entities:
        for rel in entity.relations:
            if rel.target not in known:
                result.add_error(
                    "SCHEMA_UNRESOLVED_RELATION",
                    f"{entity.name}.{rel.name} references unknown entity '{rel.target}'.",
                    {"entity": entity.name, "field": rel.name, "target": rel.target},
                )
    return result


def validate_identifiers(schema: SchemaDefinition) -> ValidationResult:
    """Entity names should be PascalCase; field names must be identifiers."""
    result = ValidationResult()
    for entity in schema.entities:
        if not _PASCAL_CASE_RE.match(entity.name):
            result.add_warning(
                "SCHEMA_ENTITY_NAMING",
                f"Entity '{entity.name}' is not PascalCase.",
                {"entity": entity.name},
            )
        for fld in entity.fields:
            if not _IDENTIFIER_RE.match(fld.name):
                result.add_warning(
                    "SCHEMA_FIELD_IDENTIFIER",
                    f"Field '{entity.name}.{fld.name}' is not a valid identifier.",
                    {"entity": entity.name, "field": fld.name},
                )
    return result


def validate_identity_fields(schema: SchemaDefinition) -> ValidationResult:
    """Entities without an identifier get a warning (composite-key tables excepted)."""
    result = ValidationResult()
    for entity in schema.entities:
        if entity.id_fields:
            continue
        if len(entity.to_one_relations) >= 2:
            result.add_info(
                "SCHEMA_COMPOSITE_KEY",
                f"Entity '{entity.name}' has no id field; assuming a composite key "
                f"over its foreign keys.",
                {"entity": entity.name},
            )
        else:
            result.add_warning(
                "SCHEMA_NO_IDENTIFIER",
                f"Entity '{entity.name}' has no id field.",
                {"entity": entity.name},
            )
    return result


def validate_name_clashes(schema: SchemaDefinition) -> ValidationResult:
    """A relation must not share its name with a scalar field of the same entity."""
    result = ValidationResult()
    for entity in schema.entities:
        field_names: Set[str] = set(entity.field_names)
        for rel in entity.relations:
            if rel.name in field_names:
                result.add_warning(
                    "SCHEMA_RELATION_FIELD_CLASH",
                    f"Relation '{entity.name}.{rel.name}' shadows a field of the same name.",
                    {"entity": entity.name, "field": rel.name},
                )
    return result


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

_SCHEMA_CHECKS: List[Callable[[SchemaDefinition], ValidationResult]] = [
    validate_relation_targets,
    validate_identifiers,
    validate_identity_fields,
    validate_name_clashes,
]


def validate_full(schema: SchemaDefinition) -> ValidationResult:
    """Run every schema check and return the merged result."""
    result = ValidationResult()
    for check in _SCHEMA_CHECKS:
        result.merge(check(schema))
    logger.info(result.summary())
    return result


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "Diagnostic",
    "ValidationResult",
    "validate_full",
    "validate_identifiers",
    "validate_identity_fields",
    "validate_name_clashes",
    "validate_relation_targets",
]

logger.debug("schemagen.validators loaded.")
