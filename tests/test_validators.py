"""
tests/test_validators.py
Unit tests for schemagen.validators and the model-level checks of
schemagen.models.

Tests cover:
- ValidationResult accumulation and reporting
- Schema checks: relation targets, identifiers, identity fields, clashes
- Model validation: duplicate names, foreign-key references
- Full validation pipeline (validate_full)
"""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
from pydantic import ValidationError

from schemagen.models import EntityInfo, RelationInfo, ScalarType, SchemaDefinition
from schemagen.validators import (
    Diagnostic,
    ValidationResult,
    validate_full,
    validate_identifiers,
    validate_identity_fields,
    validate_name_clashes,
    validate_relation_targets,
)


# ===========================================================================
# Helpers
# ===========================================================================


def _schema(*entities: Dict[str, Any]) -> SchemaDefinition:
    return SchemaDefinition.model_validate({"entities": list(entities)})


def _entity(name: str, fields: List[Dict[str, Any]], relations: Any = ()) -> Dict[str, Any]:
    return {"name": name, "fields": fields, "relations": list(relations)}


_ID: Dict[str, Any] = {"name": "id", "type": "Int", "id": True}


# ===========================================================================
# ValidationResult
# ===========================================================================


class TestValidationResult:
    def test_empty_is_valid(self) -> None:
        result = ValidationResult()
        assert result.is_valid
        assert bool(result)
        assert len(result) == 0

    def test_levels_are_split(self) -> None:
        result = ValidationResult()
        result.add_error("E1", "broken", {"plugin": "jwt-service"})
        result.add_warning("W1", "odd")
        result.add_info("I1", "fyi")

        assert not result.is_valid
        assert not bool(result)
        assert (result.error_count, result.warning_count, len(result)) == (1, 1, 3)
        assert result.errors[0].plugin == "jwt-service"
        assert result.warnings[0].plugin is None
        assert [d.code for d in result.by_code("I1")] == ["I1"]

    def test_merge_preserves_order(self) -> None:
        first, second = ValidationResult(), ValidationResult()
        first.add_warning("A", "a")
        second.add_error("B", "b")
        first.merge(second)
        assert [d.code for d in first.all_items] == ["A", "B"]

    def test_format_report_hides_info_by_default(self) -> None:
        result = ValidationResult()
        result.add_error("E1", "broken", {"entity": "Post"})
        result.add_info("I1", "fyi")
        report = result.format_report()
        assert "[E1] broken" in report
        assert "entity: Post" in report
        assert "I1" not in report
        assert "I1" in result.format_report(include_info=True)

    def test_diagnostic_equality(self) -> None:
        a = Diagnostic("error", "X", "m", {"k": 1})
        b = Diagnostic("error", "X", "m", {"k": 1})
        assert a == b
        assert len({a, b}) == 1
        assert str(a) == "[ERROR] X: m"


# ===========================================================================
# Schema checks
# ===========================================================================


class TestSchemaChecks:
    def test_unresolved_targets_all_reported(self) -> None:
        schema = _schema(
            _entity(
                "Post",
                [_ID, {"name": "authorId", "type": "Int"}],
                [
                    {"name": "author", "target": "Writer", "direction": "to-one", "foreign_keys": ["authorId"]},
                    {"name": "tags", "target": "Label", "direction": "to-many"},
                ],
            )
        )
        result = validate_relation_targets(schema)
        assert [d.context["target"] for d in result.errors] == ["Writer", "Label"]

    def test_identifier_naming(self) -> None:
        schema = _schema(_entity("blog_post", [_ID, {"name": "2fa", "type": "String"}]))
        codes = [d.code for d in validate_identifiers(schema).warnings]
        assert codes == ["SCHEMA_ENTITY_NAMING", "SCHEMA_FIELD_IDENTIFIER"]

    def test_identity_fields(self, author_post_schema: SchemaDefinition) -> None:
        result = validate_identity_fields(author_post_schema)
        assert [d.code for d in result.all_items] == ["SCHEMA_COMPOSITE_KEY"]
        assert result.all_items[0].level == "info"

        lonely = _schema(_entity("Setting", [{"name": "key", "type": "String"}]))
        assert [d.code for d in validate_identity_fields(lonely).warnings] == [
            "SCHEMA_NO_IDENTIFIER"
        ]

    def test_implicit_id_field(self) -> None:
        schema = _schema(_entity("Setting", [{"name": "id", "type": "String"}]))
        assert len(validate_identity_fields(schema)) == 0

    def test_relation_field_clash(self) -> None:
        schema = _schema(
            _entity(
                "Post",
                [_ID, {"name": "author", "type": "String"}, {"name": "authorId", "type": "Int"}],
                [{"name": "author", "target": "Post", "direction": "to-one", "foreign_keys": ["authorId"]}],
            )
        )
        assert [d.code for d in validate_name_clashes(schema).warnings] == [
            "SCHEMA_RELATION_FIELD_CLASH"
        ]

    def test_full_pipeline_on_reference_schema(self, blog_schema: SchemaDefinition) -> None:
        result = validate_full(blog_schema)
        assert result.is_valid
        assert result.warning_count == 0


# ===========================================================================
# Model validation
# ===========================================================================


class TestModelValidation:
    def test_field_aliases(self) -> None:
        entity = EntityInfo.model_validate(
            _entity("Post", [_ID, {"name": "views", "type": "Int", "default": True}])
        )
        views = entity.get_field("views")
        assert views is not None and views.has_default and views.is_numeric
        assert entity.id_fields[0].is_id

    def test_type_is_case_insensitive(self) -> None:
        entity = EntityInfo.model_validate(_entity("Post", [{"name": "title", "type": "string"}]))
        assert entity.fields[0].type is ScalarType.STRING

    def test_duplicate_entities_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate entity names"):
            _schema(_entity("Post", [_ID]), _entity("Post", [_ID]))

    def test_duplicate_fields_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Duplicate field names"):
            EntityInfo.model_validate(_entity("Post", [_ID, _ID]))

    def test_foreign_key_must_be_a_field(self) -> None:
        with pytest.raises(ValidationError, match="not a field"):
            EntityInfo.model_validate(
                _entity(
                    "Post",
                    [_ID],
                    [{"name": "author", "target": "Author", "direction": "to-one", "foreign_keys": ["authorId"]}],
                )
            )

    def test_to_one_needs_foreign_key(self) -> None:
        with pytest.raises(ValidationError):
            RelationInfo(name="author", target="Author", direction="to-one")

    def test_to_many_cannot_hold_foreign_keys(self) -> None:
        with pytest.raises(ValidationError):
            RelationInfo(name="posts", target="Post", direction="to-many", foreign_keys=["postId"])

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            EntityInfo.model_validate({"name": "Post", "fields": [], "table": "posts"})

    def test_empty_schema_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SchemaDefinition.model_validate({"entities": []})
