# File: schemagen/analyzer.py
"""
SchemaGen - Relationship Analyzer
===================================
Derives per-entity metadata from a ``SchemaDefinition``:

- every relation, classified (one-to-one, many-to-one, one-to-many,
  many-to-many);
- which relations are eagerly included by generated read APIs;
- whether the entity is a pure junction (association) table;
- which scalar fields imply generable domain behaviour ("special fields");
- search / filter / sort capabilities.

The junction heuristic and the special-field table are both explicit,
overridable policy objects (``JunctionPolicy``, ``SpecialFieldPolicy``)
so callers can tune them from configuration instead of editing code.

Results are immutable ``EntityAnalysis`` records computed once per run.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from schemagen.errors import SchemaError, UnresolvedRelation
from schemagen.models import (
    NUMERIC_TYPES,
    EntityInfo,
    FieldInfo,
    RelationDirection,
    RelationInfo,
    ScalarType,
    SchemaDefinition,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.analyzer")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SpecialFieldTag(str, Enum):
    """Tags for scalar fields that imply extra generated behaviour."""

    SLUG = "slug"
    PUBLISHED_FLAG = "publishedFlag"
    VIEW_COUNTER = "viewCounter"
    APPROVAL_FLAG = "approvalFlag"
    SOFT_DELETE_MARKER = "softDeleteMarker"
    PARENT_REFERENCE = "parentReference"


class RelationshipKind(str, Enum):
    """Association cardinality as seen from the owning entity."""

    ONE_TO_ONE = "one_to_one"
    MANY_TO_ONE = "many_to_one"
    ONE_TO_MANY = "one_to_many"
    MANY_TO_MANY = "many_to_many"


DEFAULT_SYSTEM_FIELDS: Tuple[str, ...] = (
    "createdAt",
    "updatedAt",
    "deletedAt",
    "createdBy",
    "updatedBy",
    "deletedBy",
    "createdById",
    "updatedById",
    "deletedById",
    "version",
    "rowVersion",
)

DEFAULT_SENSITIVE_PATTERNS: Tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "hash",
    "salt",
    "apikey",
)

_POLICY_CONFIG: ConfigDict = ConfigDict(
    populate_by_name=True,
    validate_assignment=True,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Junction policy
# ---------------------------------------------------------------------------


class JunctionPolicy(BaseModel):
    """
    Heuristic for "pure association table" detection.

    An entity is a junction table iff it has at least
    ``min_to_one_relations`` to-one relations and at most
    ``max_data_fields`` data fields.  Data fields are scalar fields that are
    neither identifiers, foreign keys nor listed in ``ignored_fields``
    (compared case-insensitively).
    ``overrides`` pins the verdict for named entities.
    """

    model_config = _POLICY_CONFIG

    min_to_one_relations: int = Field(default=2, ge=1)
    max_data_fields: int = Field(default=2, ge=0)
    ignored_fields: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SYSTEM_FIELDS),
        description="Bookkeeping fields never counted as data.",
    )
    overrides: Dict[str, bool] = Field(
        default_factory=dict,
        description="Entity name → forced junction verdict.",
    )

    def data_fields(self, entity: EntityInfo) -> List[str]:
        id_names: Set[str] = {f.name for f in entity.id_fields}
        fk_names: FrozenSet[str] = entity.foreign_key_fields
        ignored: Set[str] = {name.lower() for name in self.ignored_fields}
        return [
            f.name
            for f in entity.fields
            if f.name not in id_names
            and f.name not in fk_names
            and f.name.lower() not in ignored
        ]

    def is_junction(self, entity: EntityInfo) -> bool:
        if entity.name in self.overrides:
            return self.overrides[entity.name]
        if len(entity.to_one_relations) < self.min_to_one_relations:
            return False
        return len(self.data_fields(entity)) <= self.max_data_fields


# ---------------------------------------------------------------------------
# Special-field policy
# ---------------------------------------------------------------------------


class SpecialFieldRule(BaseModel):
    """
    One row of the special-field table.

    ``None`` for ``name_pattern`` / ``unique`` / ``nullable`` means "any";
    an empty ``types`` list means any scalar type.
    """

    model_config = _POLICY_CONFIG

    tag: str = Field(..., min_length=1)
    name_pattern: Optional[str] = Field(default=None)
    types: List[ScalarType] = Field(default_factory=list)
    unique: Optional[bool] = Field(default=None)
    nullable: Optional[bool] = Field(default=None)
    self_reference: bool = Field(
        default=False,
        description="Field must be a foreign key of a to-one relation onto its own entity.",
    )

    @field_validator("name_pattern")
    @classmethod
    def _pattern_compiles(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"Invalid name_pattern {v!r}: {exc}") from exc
        return v


def default_special_field_rules() -> List[SpecialFieldRule]:
    """The built-in name + type table."""
    return [
        SpecialFieldRule(
            tag=SpecialFieldTag.SLUG.value,
            name_pattern=r"^slug$",
            types=[ScalarType.STRING],
            unique=True,
        ),
        SpecialFieldRule(
            tag=SpecialFieldTag.PUBLISHED_FLAG.value,
            name_pattern=r"^(is)?published$",
            types=[ScalarType.BOOLEAN],
        ),
        SpecialFieldRule(
            tag=SpecialFieldTag.VIEW_COUNTER.value,
            name_pattern=r"^views?(count)?$",
            types=[ScalarType.INT, ScalarType.BIGINT],
        ),
        SpecialFieldRule(
            tag=SpecialFieldTag.APPROVAL_FLAG.value,
            name_pattern=r"^(is)?approved$",
            types=[ScalarType.BOOLEAN],
        ),
        SpecialFieldRule(
            tag=SpecialFieldTag.SOFT_DELETE_MARKER.value,
            name_pattern=r"^deleted(at)?$",
            types=[ScalarType.DATETIME],
            nullable=True,
        ),
        SpecialFieldRule(
            tag=SpecialFieldTag.PARENT_REFERENCE.value,
            nullable=True,
            self_reference=True,
        ),
    ]


class SpecialFieldPolicy(BaseModel):
    """
    Ordered table of ``SpecialFieldRule`` rows.

    Field names are lower-cased (unless ``case_sensitive``) and stripped of
    underscores (when ``ignore_underscores``) before patterns are applied,
    so ``isPublished``, ``is_published`` and ``IsPublished`` all match
    ``^(is)?published$``.
    """

    model_config = _POLICY_CONFIG

    rules: List[SpecialFieldRule] = Field(default_factory=default_special_field_rules)
    case_sensitive: bool = Field(default=False)
    ignore_underscores: bool = Field(default=True)

    def normalize_name(self, name: str) -> str:
        result: str = name if self.case_sensitive else name.lower()
        if self.ignore_underscores:
            result = result.replace("_", "")
        return result

    def _matches(
        self,
        rule: SpecialFieldRule,
        fld: FieldInfo,
        self_reference_fks: FrozenSet[str],
    ) -> bool:
        if rule.types and fld.type not in rule.types:
            return False
        if rule.unique is not None and fld.unique != rule.unique:
            return False
        if rule.nullable is not None and fld.nullable != rule.nullable:
            return False
        if rule.self_reference and fld.name not in self_reference_fks:
            return False
        if rule.name_pattern is not None:
            flags: int = 0 if self.case_sensitive else re.IGNORECASE
            if not re.search(rule.name_pattern, self.normalize_name(fld.name), flags):
                return False
        return True

    def detect(self, entity: EntityInfo) -> List["SpecialFieldMatch"]:
        """Return one match per (rule, field) pair, in rule then field order."""
        self_reference_fks: FrozenSet[str] = frozenset(
            fk
            for rel in entity.to_one_relations
            if rel.target == entity.name
            for fk in rel.foreign_keys
        )
        matches: List[SpecialFieldMatch] = []
        for rule in self.rules:
            for fld in entity.fields:
                if self._matches(rule, fld, self_reference_fks):
                    matches.append(SpecialFieldMatch(tag=rule.tag, field=fld.name))
        return matches


# ---------------------------------------------------------------------------
# Analysis records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SpecialFieldMatch:
    """A detected special field: tag plus the originating field name."""

    tag: str
    field: str


@dataclass(frozen=True, slots=True)
class ClassifiedRelation:
    relation: RelationInfo
    kind: RelationshipKind
    is_self_reference: bool = False


@dataclass(frozen=True, slots=True)
class EntityAnalysis:
    """
    Derived, immutable metadata for one entity.

    Recomputed each run, never persisted; consumed read-only by later
    phases and by plugins.
    """

    entity: EntityInfo
    relationships: Tuple[ClassifiedRelation, ...] = ()
    auto_include: Tuple[RelationInfo, ...] = ()
    is_junction_table: bool = False
    special_fields: Tuple[SpecialFieldMatch, ...] = ()
    data_fields: Tuple[str, ...] = ()
    search_fields: Tuple[str, ...] = ()
    filter_fields: Tuple[str, ...] = ()
    sortable_fields: Tuple[str, ...] = ()
    sensitive_fields: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.entity.name

    @property
    def special_field_tags(self) -> FrozenSet[str]:
        return frozenset(m.tag for m in self.special_fields)

    def has_tag(self, tag: "SpecialFieldTag | str") -> bool:
        value: str = tag.value if isinstance(tag, SpecialFieldTag) else tag
        return value in self.special_field_tags

    def fields_for(self, tag: "SpecialFieldTag | str") -> List[str]:
        value: str = tag.value if isinstance(tag, SpecialFieldTag) else tag
        return [m.field for m in self.special_fields if m.tag == value]

    @property
    def auto_include_labels(self) -> List[str]:
        return [rel.label for rel in self.auto_include]

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serialisable view, used by the CLI's analysis output."""
        return {
            "entity": self.entity.name,
            "is_junction_table": self.is_junction_table,
            "auto_include": self.auto_include_labels,
            "relationships": [
                {
                    "name": c.relation.name,
                    "target": c.relation.target,
                    "kind": c.kind.value,
                    "self_reference": c.is_self_reference,
                }
                for c in self.relationships
            ],
            "special_fields": [
                {"tag": m.tag, "field": m.field} for m in self.special_fields
            ],
            "data_fields": list(self.data_fields),
            "search_fields": list(self.search_fields),
            "filter_fields": list(self.filter_fields),
            "sortable_fields": list(self.sortable_fields),
            "sensitive_fields": list(self.sensitive_fields),
        }


# ---------------------------------------------------------------------------
# Relation resolution
# ---------------------------------------------------------------------------


def resolve_relation_targets(schema: SchemaDefinition) -> None:
    """
    Check every relation's target names an entity in *schema*.

    Collects all offenders and raises a single ``SchemaError``.
    """
    known: Set[str] = set(schema.entity_names)
    issues: List[UnresolvedRelation] = []
    for entity in schema.entities:
        for rel in entity.relations:
            if rel.target not in known:
                field_label: str = rel.name
                if rel.foreign_keys:
                    field_label = f"{rel.name} ({', '.join(rel.foreign_keys)})"
                issues.append(
                    UnresolvedRelation(
                        entity=entity.name, field=field_label, target=rel.target
                    )
                )
    if issues:
        for issue in issues:
            logger.error("Unresolved relation: %s", issue)
        raise SchemaError(issues)


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class RelationshipAnalyzer:
    """
    Computes ``EntityAnalysis`` for every entity of a schema.

    Usage::

        analyzer = RelationshipAnalyzer(junction_policy=JunctionPolicy())
        analysis = analyzer.analyze(schema)
        analysis["Post"].auto_include
    """

    def __init__(
        self,
        junction_policy: Optional[JunctionPolicy] = None,
        special_field_policy: Optional[SpecialFieldPolicy] = None,
        sensitive_patterns: Optional[Sequence[str]] = None,
    ) -> None:
        self.junction_policy: JunctionPolicy = junction_policy or JunctionPolicy()
        self.special_field_policy: SpecialFieldPolicy = (
            special_field_policy or SpecialFieldPolicy()
        )
        patterns: Sequence[str] = (
            DEFAULT_SENSITIVE_PATTERNS if sensitive_patterns is None else sensitive_patterns
        )
        self.sensitive_patterns: Tuple[str, ...] = tuple(p.lower() for p in patterns)

    # -----------------------------------------------------------------
    # Public
    # -----------------------------------------------------------------

    def analyze(self, schema: SchemaDefinition) -> Dict[str, EntityAnalysis]:
        """Analyse *schema*; raises ``SchemaError`` before doing anything else."""
        resolve_relation_targets(schema)

        junctions: Set[str] = {
            e.name for e in schema.entities if self.junction_policy.is_junction(e)
        }
        if junctions:
            logger.info("Junction tables: %s", ", ".join(sorted(junctions)))

        result: Dict[str, EntityAnalysis] = {}
        for entity in schema.entities:
            result[entity.name] = self._analyze_entity(entity, schema, junctions)

        logger.info("Analysed %d entities.", len(result))
        return result

    # -----------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------

    def _analyze_entity(
        self,
        entity: EntityInfo,
        schema: SchemaDefinition,
        junctions: Set[str],
    ) -> EntityAnalysis:
        relationships: List[ClassifiedRelation] = [
            ClassifiedRelation(
                relation=rel,
                kind=self._classify(entity, rel, schema, junctions),
                is_self_reference=rel.target == entity.name,
            )
            for rel in entity.relations
        ]
        # A junction's own links are the association itself, never eager includes.
        auto_include: List[RelationInfo] = []
        if entity.name not in junctions:
            auto_include = [
                rel
                for rel in entity.relations
                if rel.direction == RelationDirection.TO_ONE
                and rel.target not in junctions
            ]
        sensitive: List[str] = [
            f.name for f in entity.fields if self._is_sensitive(f.name)
        ]
        id_names: Set[str] = {f.name for f in entity.id_fields}
        fk_names: FrozenSet[str] = entity.foreign_key_fields

        search: List[str] = [
            f.name
            for f in entity.fields
            if f.type == ScalarType.STRING
            and f.name not in id_names
            and f.name not in fk_names
            and f.name not in sensitive
        ]
        filterable: List[str] = [
            f.name
            for f in entity.fields
            if f.type not in (ScalarType.JSON, ScalarType.BYTES)
            and f.name not in sensitive
        ]
        sortable: List[str] = [
            f.name
            for f in entity.fields
            if (f.type in NUMERIC_TYPES or f.type in (ScalarType.DATETIME, ScalarType.STRING))
            and f.name not in sensitive
        ]

        analysis: EntityAnalysis = EntityAnalysis(
            entity=entity,
            relationships=tuple(relationships),
            auto_include=tuple(auto_include),
            is_junction_table=entity.name in junctions,
            special_fields=tuple(self.special_field_policy.detect(entity)),
            data_fields=tuple(self.junction_policy.data_fields(entity)),
            search_fields=tuple(search),
            filter_fields=tuple(filterable),
            sortable_fields=tuple(sortable),
            sensitive_fields=tuple(sensitive),
        )
        logger.debug(
            "Entity %s: junction=%s auto_include=%s special=%s",
            entity.name,
            analysis.is_junction_table,
            analysis.auto_include_labels,
            sorted(analysis.special_field_tags),
        )
        return analysis

    @staticmethod
    def _classify(
        entity: EntityInfo,
        rel: RelationInfo,
        schema: SchemaDefinition,
        junctions: Set[str],
    ) -> RelationshipKind:
        if rel.direction == RelationDirection.BACK_REFERENCE:
            return RelationshipKind.ONE_TO_ONE

        if rel.direction == RelationDirection.TO_MANY:
            if rel.target in junctions:
                return RelationshipKind.MANY_TO_MANY
            return RelationshipKind.ONE_TO_MANY

        # to-one: unique foreign key or a back-reference on the target → 1:1
        fk_fields: List[Optional[FieldInfo]] = [
            entity.get_field(fk) for fk in rel.foreign_keys
        ]
        if len(fk_fields) == 1 and fk_fields[0] is not None and fk_fields[0].unique:
            return RelationshipKind.ONE_TO_ONE
        target: Optional[EntityInfo] = schema.get_entity(rel.target)
        if target is not None and any(
            back.direction == RelationDirection.BACK_REFERENCE
            and back.target == entity.name
            for back in target.relations
        ):
            return RelationshipKind.ONE_TO_ONE
        return RelationshipKind.MANY_TO_ONE

    def _is_sensitive(self, name: str) -> bool:
        lowered: str = name.lower().replace("_", "")
        return any(p in lowered for p in self.sensitive_patterns)


# ---------------------------------------------------------------------------
# Functional entry point
# ---------------------------------------------------------------------------


def analyze(
    schema: SchemaDefinition,
    junction_policy: Optional[JunctionPolicy] = None,
    special_field_policy: Optional[SpecialFieldPolicy] = None,
    sensitive_patterns: Optional[Sequence[str]] = None,
) -> Dict[str, EntityAnalysis]:
    """``RelationshipAnalyzer(...).analyze(schema)`` in one call."""
    return RelationshipAnalyzer(
        junction_policy=junction_policy,
        special_field_policy=special_field_policy,
        sensitive_patterns=sensitive_patterns,
    ).analyze(schema)


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "ClassifiedRelation",
    "DEFAULT_SENSITIVE_PATTERNS",
    "DEFAULT_SYSTEM_FIELDS",
    "EntityAnalysis",
    "JunctionPolicy",
    "RelationshipAnalyzer",
    "RelationshipKind",
    "SpecialFieldMatch",
    "SpecialFieldPolicy",
    "SpecialFieldRule",
    "SpecialFieldTag",
    "analyze",
    "default_special_field_rules",
    "resolve_relation_targets",
]

logger.debug("schemagen.analyzer loaded.")
