# File: schemagen/models.py
"""
SchemaGen - Entity Model
==========================
Pydantic V2 models describing the relational data model handed to the
generator by a schema loader: entities, their scalar fields and their
relations.  These models form the single source of truth for the whole
pipeline: Schema Input → Analysis → Phases → Plugins → Manifest.

The models check *well-formedness* only (unique names, foreign keys that
exist on the owning entity).  Whether a relation's target entity exists is
deliberately left to ``schemagen.analyzer`` which reports every unresolved
target at once as a ``SchemaError``.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Set

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    computed_field,
    field_validator,
    model_validator,
)

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("schemagen.models")

# ---------------------------------------------------------------------------
# Enums — fixed sets used across the entire project
# ---------------------------------------------------------------------------


class ScalarType(str, Enum):
    """Scalar field types understood by the analyzer."""

    STRING = "String"
    INT = "Int"
    BIGINT = "BigInt"
    FLOAT = "Float"
    DECIMAL = "Decimal"
    BOOLEAN = "Boolean"
    DATETIME = "DateTime"
    JSON = "Json"
    BYTES = "Bytes"
    ENUM = "Enum"

    @classmethod
    def _missing_(cls, value: object) -> Optional["ScalarType"]:
        # Accept "string", "datetime", "BIGINT" ...
        if isinstance(value, str):
            lowered: str = value.lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return None


class RelationDirection(str, Enum):
    """Which side of an association a relation describes."""

    TO_ONE = "to-one"
    TO_MANY = "to-many"
    BACK_REFERENCE = "back-reference"


NUMERIC_TYPES: FrozenSet[ScalarType] = frozenset(
    {ScalarType.INT, ScalarType.BIGINT, ScalarType.FLOAT, ScalarType.DECIMAL}
)


# ---------------------------------------------------------------------------
# Mixin: shared model configuration
# ---------------------------------------------------------------------------

_SHARED_CONFIG: ConfigDict = ConfigDict(
    strict=False,
    populate_by_name=True,
    validate_assignment=True,
    frozen=False,
    extra="forbid",
)


# ---------------------------------------------------------------------------
# Low-level schema primitives
# ---------------------------------------------------------------------------


class FieldInfo(BaseModel):
    """
    A single scalar field of an entity.

    Every field in every entity of the parsed schema becomes exactly one
    ``FieldInfo`` instance, owned by its ``EntityInfo``.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Field name.")
    type: ScalarType = Field(..., description="Scalar type.")
    nullable: bool = Field(default=False, description="Whether NULL is allowed.")
    unique: bool = Field(default=False, description="Unique constraint flag.")
    has_default: bool = Field(
        default=False, alias="default", description="A default value exists."
    )
    is_id: bool = Field(
        default=False, alias="id", description="Part of the identifier."
    )
    description: str = Field(default="", description="Free-text description.")

    @computed_field  # type: ignore[misc]
    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES

    def __repr__(self) -> str:
        flags: List[str] = []
        if self.is_id:
            flags.append("id")
        if self.unique:
            flags.append("unique")
        if self.nullable:
            flags.append("nullable")
        suffix: str = f" [{', '.join(flags)}]" if flags else ""
        return f"<Field {self.name}: {self.type.value}{suffix}>"


class RelationInfo(BaseModel):
    """A typed reference from one entity to another."""

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Relation attribute name.")
    target: str = Field(..., min_length=1, description="Target entity name.")
    direction: RelationDirection = Field(..., description="Relation direction.")
    foreign_keys: List[str] = Field(
        default_factory=list,
        description="Foreign-key field names held by this entity (to-one only).",
    )
    references: List[str] = Field(
        default_factory=lambda: ["id"],
        description="Referenced field names on the target.",
    )
    on_delete: Optional[str] = Field(
        default=None, description="Referential action, e.g. 'Cascade'."
    )

    @model_validator(mode="after")
    def _validate_foreign_keys(self) -> "RelationInfo":
        if self.direction == RelationDirection.TO_ONE and not self.foreign_keys:
            raise ValueError(
                f"to-one relation '{self.name}' must name at least one foreign key."
            )
        if self.direction != RelationDirection.TO_ONE and self.foreign_keys:
            raise ValueError(
                f"{self.direction.value} relation '{self.name}' cannot hold "
                f"foreign keys {self.foreign_keys}."
            )
        return self

    @property
    def is_to_one(self) -> bool:
        return self.direction == RelationDirection.TO_ONE

    @property
    def label(self) -> str:
        """``authorId→Author`` for to-one relations, ``posts→Post`` otherwise."""
        source: str = ",".join(self.foreign_keys) if self.foreign_keys else self.name
        return f"{source}→{self.target}"

    def __repr__(self) -> str:
        return f"<Relation {self.name} {self.direction.value} {self.target}>"


class EntityInfo(BaseModel):
    """
    Complete description of a single entity (a schema "model").

    Invariant: ``_field_map`` is an O(1) lookup cache built automatically
    from ``fields`` upon construction.
    """

    model_config = _SHARED_CONFIG

    name: str = Field(..., min_length=1, description="Entity name.")
    fields: List[FieldInfo] = Field(
        default_factory=list, description="Ordered scalar fields."
    )
    relations: List[RelationInfo] = Field(
        default_factory=list, description="Relations to other entities."
    )
    description: str = Field(default="", description="Free-text description.")

    # -- Internal cache (not part of the serialised model) ------------------
    _field_map: Dict[str, FieldInfo] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._field_map = {f.name: f for f in self.fields}

    @field_validator("fields")
    @classmethod
    def _unique_field_names(cls, v: List[FieldInfo]) -> List[FieldInfo]:
        names: List[str] = [f.name for f in v]
        if len(names) != len(set(names)):
            dupes: List[str] = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate field names: {dupes}")
        return v

    @field_validator("relations")
    @classmethod
    def _unique_relation_names(cls, v: List[RelationInfo]) -> List[RelationInfo]:
        names: List[str] = [r.name for r in v]
        if len(names) != len(set(names)):
            dupes: List[str] = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate relation names: {dupes}")
        return v

    @model_validator(mode="after")
    def _validate_foreign_keys_exist(self) -> "EntityInfo":
        names: Set[str] = {f.name for f in self.fields}
        for rel in self.relations:
            for fk in rel.foreign_keys:
                if fk not in names:
                    raise ValueError(
                        f"Entity '{self.name}': relation '{rel.name}' uses "
                        f"foreign key '{fk}' which is not a field."
                    )
        return self

    def get_field(self, name: str) -> Optional[FieldInfo]:
        """O(1) field lookup."""
        return self._field_map.get(name)

    @property
    def id_fields(self) -> List[FieldInfo]:
        flagged: List[FieldInfo] = [f for f in self.fields if f.is_id]
        if flagged:
            return flagged
        fallback: Optional[FieldInfo] = self.get_field("id")
        return [fallback] if fallback is not None else []

    @property
    def to_one_relations(self) -> List[RelationInfo]:
        return [r for r in self.relations if r.is_to_one]

    @property
    def foreign_key_fields(self) -> FrozenSet[str]:
        return frozenset(fk for r in self.relations for fk in r.foreign_keys)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    def __repr__(self) -> str:
        return (
            f"<Entity {self.name} ({len(self.fields)} fields, "
            f"{len(self.relations)} relations)>"
        )


# ---------------------------------------------------------------------------
# Schema Definition — top-level container
# ---------------------------------------------------------------------------


class SchemaDefinition(BaseModel):
    """
    The root model: describes the **entire** entity model to be processed.

    Invariant: entity names are unique.  Relation targets are *not*
    checked here; see ``schemagen.analyzer.resolve_relation_targets``.
    """

    model_config = _SHARED_CONFIG

    entities: List[EntityInfo] = Field(
        ..., min_length=1, description="All entities in the schema."
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Arbitrary loader metadata."
    )
    source_file: Optional[str] = Field(
        default=None, description="Original schema file path."
    )

    # -- Internal cache (not part of the serialised model) ------------------
    _entity_map: Dict[str, EntityInfo] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        self._entity_map = {e.name: e for e in self.entities}

    @model_validator(mode="after")
    def _validate_unique_entity_names(self) -> "SchemaDefinition":
        names: List[str] = [e.name for e in self.entities]
        if len(names) != len(set(names)):
            dupes: List[str] = [n for n in names if names.count(n) > 1]
            raise ValueError(f"Duplicate entity names: {sorted(set(dupes))}")
        return self

    def get_entity(self, name: str) -> Optional[EntityInfo]:
        """O(1) entity lookup."""
        return self._entity_map.get(name)

    @computed_field  # type: ignore[misc]
    @property
    def entity_count(self) -> int:
        return len(self.entities)

    @computed_field  # type: ignore[misc]
    @property
    def total_fields(self) -> int:
        return sum(len(e.fields) for e in self.entities)

    @computed_field  # type: ignore[misc]
    @property
    def total_relations(self) -> int:
        return sum(len(e.relations) for e in self.entities)

    @computed_field  # type: ignore[misc]
    @property
    def entity_names(self) -> List[str]:
        return [e.name for e in self.entities]

    def topological_order(self) -> List[str]:
        """
        Return entity names in dependency order (entities without to-one
        relations first).

        Uses Kahn's algorithm — O(V + E) where V = entities, E = to-one
        relations.  Self references are ignored; entities caught in a
        cycle are appended in declaration order.
        """
        in_degree: Dict[str, int] = {e.name: 0 for e in self.entities}
        adjacency: Dict[str, List[str]] = {e.name: [] for e in self.entities}

        for entity in self.entities:
            for rel in entity.to_one_relations:
                if rel.target == entity.name or rel.target not in adjacency:
                    continue
                adjacency[rel.target].append(entity.name)
                in_degree[entity.name] += 1

        queue: List[str] = [n for n, d in in_degree.items() if d == 0]
        result: List[str] = []

        while queue:
            node: str = queue.pop(0)
            result.append(node)
            for neighbour in adjacency[node]:
                in_degree[neighbour] -= 1
                if in_degree[neighbour] == 0:
                    queue.append(neighbour)

        if len(result) != len(self.entities):
            logger.warning(
                "Circular to-one dependency detected — falling back to "
                "declaration order for %d entities.",
                len(self.entities) - len(result),
            )
            seen: Set[str] = set(result)
            result.extend(e.name for e in self.entities if e.name not in seen)

        return result

    def __repr__(self) -> str:
        return (
            f"<SchemaDefinition {self.entity_count} entities, "
            f"{self.total_fields} fields, "
            f"{self.total_relations} relations>"
        )


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "EntityInfo",
    "FieldInfo",
    "NUMERIC_TYPES",
    "RelationDirection",
    "RelationInfo",
    "ScalarType",
    "SchemaDefinition",
]

logger.debug("schemagen.models loaded.")
