"""
tests/test_analyzer.py
Unit tests for schemagen.analyzer.

Tests cover:
- Relation target resolution (SchemaError with every offender)
- Junction-table detection and the overridable policy
- Auto-include selection
- Relationship classification
- Special-field detection and matching policy
- Search / filter / sort capabilities and sensitive fields
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest

from schemagen.analyzer import (
    EntityAnalysis,
    JunctionPolicy,
    RelationshipAnalyzer,
    RelationshipKind,
    SpecialFieldPolicy,
    SpecialFieldRule,
    SpecialFieldTag,
    analyze,
    resolve_relation_targets,
)
from schemagen.errors import SchemaError
from schemagen.models import SchemaDefinition


# ===========================================================================
# Helpers
# ===========================================================================


def _schema(entities: List[Dict[str, Any]]) -> SchemaDefinition:
    return SchemaDefinition.model_validate({"entities": entities})


def _single(
    fields: List[Dict[str, Any]],
    relations: Optional[List[Dict[str, Any]]] = None,
) -> SchemaDefinition:
    return _schema([{"name": "Item", "fields": fields, "relations": relations or []}])


# ===========================================================================
# Relation resolution
# ===========================================================================


class TestResolveRelationTargets:
    def test_resolvable_schema_passes(self, blog_schema: SchemaDefinition) -> None:
        resolve_relation_targets(blog_schema)

    def test_all_unresolved_reported_together(self) -> None:
        schema = _schema(
            [
                {
                    "name": "Post",
                    "fields": [
                        {"name": "id", "type": "Int", "id": True},
                        {"name": "ghostId", "type": "Int"},
                    ],
                    "relations": [
                        {
                            "name": "ghost",
                            "target": "Ghost",
                            "direction": "to-one",
                            "foreign_keys": ["ghostId"],
                        },
                        {"name": "phantoms", "target": "Phantom", "direction": "to-many"},
                    ],
                }
            ]
        )
        with pytest.raises(SchemaError) as exc_info:
            resolve_relation_targets(schema)

        issues = exc_info.value.issues
        assert [(i.entity, i.target) for i in issues] == [
            ("Post", "Ghost"),
            ("Post", "Phantom"),
        ]
        assert issues[0].field == "ghost (ghostId)"
        assert "Ghost" in str(exc_info.value)
        assert exc_info.value.context["unresolved"][1]["field"] == "phantoms"

    def test_analyze_raises_before_analysis(self) -> None:
        schema = _single(
            [{"name": "id", "type": "Int", "id": True}],
            [{"name": "others", "target": "Missing", "direction": "to-many"}],
        )
        with pytest.raises(SchemaError):
            analyze(schema)


# ===========================================================================
# Reference scenarios
# ===========================================================================


class TestAuthorPostScenario:
    def test_post_analysis(self, author_post_schema: SchemaDefinition) -> None:
        result = analyze(author_post_schema)
        post: EntityAnalysis = result["Post"]

        assert post.auto_include_labels == ["authorId→Author"]
        assert post.is_junction_table is False
        assert post.special_field_tags == {"slug", "publishedFlag"}
        assert post.fields_for(SpecialFieldTag.SLUG) == ["slug"]
        assert post.fields_for("publishedFlag") == ["published"]

    def test_post_tag_is_junction_without_auto_include(
        self, author_post_schema: SchemaDefinition
    ) -> None:
        post_tag = analyze(author_post_schema)["PostTag"]
        assert post_tag.is_junction_table is True
        assert post_tag.auto_include == ()

    def test_result_follows_schema_order(self, author_post_schema: SchemaDefinition) -> None:
        assert list(analyze(author_post_schema)) == ["Author", "Post", "Tag", "PostTag"]

    def test_renaming_slug_removes_tag(self) -> None:
        fields = [
            {"name": "id", "type": "Int", "id": True},
            {"name": "permalink", "type": "String", "unique": True},
        ]
        assert not analyze(_single(fields))["Item"].has_tag(SpecialFieldTag.SLUG)

    def test_to_dict_is_json_serialisable(self, blog_schema: SchemaDefinition) -> None:
        payload = [entry.to_dict() for entry in analyze(blog_schema).values()]
        decoded = json.loads(json.dumps(payload))
        assert decoded[1]["entity"] == "Post"
        assert decoded[1]["auto_include"] == ["authorId→Author"]


# ===========================================================================
# Junction detection
# ===========================================================================


class TestJunctionDetection:
    def test_blog_junctions(self, blog_schema: SchemaDefinition) -> None:
        result = analyze(blog_schema)
        junctions = [name for name, entry in result.items() if entry.is_junction_table]
        assert junctions == ["PostTag"]

    def test_system_fields_not_counted(self) -> None:
        schema = _schema(
            [
                {"name": "A", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {"name": "B", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {
                    "name": "AB",
                    "fields": [
                        {"name": "id", "type": "Int", "id": True},
                        {"name": "aId", "type": "Int"},
                        {"name": "bId", "type": "Int"},
                        {"name": "role", "type": "String"},
                        {"name": "createdAt", "type": "DateTime"},
                        {"name": "updatedAt", "type": "DateTime"},
                    ],
                    "relations": [
                        {"name": "a", "target": "A", "direction": "to-one", "foreign_keys": ["aId"]},
                        {"name": "b", "target": "B", "direction": "to-one", "foreign_keys": ["bId"]},
                    ],
                },
            ]
        )
        entry = analyze(schema)["AB"]
        assert entry.data_fields == ("role",)
        assert entry.is_junction_table is True

    def test_system_fields_match_any_case(self) -> None:
        schema = _schema(
            [
                {"name": "A", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {"name": "B", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {
                    "name": "AB",
                    "fields": [
                        {"name": "aId", "type": "Int"},
                        {"name": "bId", "type": "Int"},
                        {"name": "CreatedAt", "type": "DateTime"},
                        {"name": "UPDATEDAT", "type": "DateTime"},
                        {"name": "role", "type": "String"},
                    ],
                    "relations": [
                        {"name": "a", "target": "A", "direction": "to-one", "foreign_keys": ["aId"]},
                        {"name": "b", "target": "B", "direction": "to-one", "foreign_keys": ["bId"]},
                    ],
                },
            ]
        )
        entry = analyze(schema)["AB"]
        assert entry.data_fields == ("role",)
        assert entry.is_junction_table is True

    def test_threshold_is_configurable(self, blog_schema: SchemaDefinition) -> None:
        # Comment has two to-one relations and three data fields.
        assert analyze(blog_schema)["Comment"].is_junction_table is False
        loose = JunctionPolicy(max_data_fields=3)
        assert analyze(blog_schema, junction_policy=loose)["Comment"].is_junction_table is True

    def test_override_beats_heuristic(self, blog_schema: SchemaDefinition) -> None:
        policy = JunctionPolicy(overrides={"PostTag": False, "Tag": True})
        result = analyze(blog_schema, junction_policy=policy)
        assert result["PostTag"].is_junction_table is False
        assert result["Tag"].is_junction_table is True

    def test_single_relation_is_never_junction(self) -> None:
        schema = _schema(
            [
                {"name": "A", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {
                    "name": "Link",
                    "fields": [{"name": "aId", "type": "Int"}],
                    "relations": [
                        {"name": "a", "target": "A", "direction": "to-one", "foreign_keys": ["aId"]}
                    ],
                },
            ]
        )
        assert analyze(schema)["Link"].is_junction_table is False


# ===========================================================================
# Auto-include
# ===========================================================================


class TestAutoInclude:
    def test_every_to_one_onto_non_junction(self, blog_schema: SchemaDefinition) -> None:
        result = analyze(blog_schema)
        assert result["Comment"].auto_include_labels == ["postId→Post", "parentId→Comment"]
        assert result["Author"].auto_include == ()

    def test_to_one_onto_junction_excluded(self) -> None:
        schema = _schema(
            [
                {"name": "A", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {"name": "B", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {
                    "name": "AB",
                    "fields": [
                        {"name": "id", "type": "Int", "id": True},
                        {"name": "aId", "type": "Int"},
                        {"name": "bId", "type": "Int"},
                    ],
                    "relations": [
                        {"name": "a", "target": "A", "direction": "to-one", "foreign_keys": ["aId"]},
                        {"name": "b", "target": "B", "direction": "to-one", "foreign_keys": ["bId"]},
                    ],
                },
                {
                    "name": "Audit",
                    "fields": [
                        {"name": "id", "type": "Int", "id": True},
                        {"name": "abId", "type": "Int"},
                        {"name": "note", "type": "String"},
                    ],
                    "relations": [
                        {"name": "ab", "target": "AB", "direction": "to-one", "foreign_keys": ["abId"]}
                    ],
                },
            ]
        )
        assert analyze(schema)["Audit"].auto_include == ()


# ===========================================================================
# Classification
# ===========================================================================


class TestClassification:
    def _kinds(self, entry: EntityAnalysis) -> Dict[str, RelationshipKind]:
        return {c.relation.name: c.kind for c in entry.relationships}

    def test_blog_kinds(self, blog_schema: SchemaDefinition) -> None:
        result = analyze(blog_schema)
        post = self._kinds(result["Post"])
        assert post["author"] is RelationshipKind.MANY_TO_ONE
        assert post["comments"] is RelationshipKind.ONE_TO_MANY
        assert post["tags"] is RelationshipKind.MANY_TO_MANY
        assert self._kinds(result["Author"])["posts"] is RelationshipKind.ONE_TO_MANY

    def test_self_reference_flagged(self, blog_schema: SchemaDefinition) -> None:
        comment = analyze(blog_schema)["Comment"]
        flags = {c.relation.name: c.is_self_reference for c in comment.relationships}
        assert flags == {"post": False, "parent": True, "replies": True}

    def test_unique_foreign_key_is_one_to_one(self) -> None:
        schema = _schema(
            [
                {"name": "User", "fields": [{"name": "id", "type": "Int", "id": True}]},
                {
                    "name": "Profile",
                    "fields": [
                        {"name": "id", "type": "Int", "id": True},
                        {"name": "userId", "type": "Int", "unique": True},
                    ],
                    "relations": [
                        {"name": "user", "target": "User", "direction": "to-one", "foreign_keys": ["userId"]}
                    ],
                },
            ]
        )
        profile = analyze(schema)["Profile"]
        assert profile.relationships[0].kind is RelationshipKind.ONE_TO_ONE

    def test_back_reference_makes_one_to_one(self) -> None:
        schema = _schema(
            [
                {
                    "name": "User",
                    "fields": [{"name": "id", "type": "Int", "id": True}],
                    "relations": [
                        {"name": "profile", "target": "Profile", "direction": "back-reference"}
                    ],
                },
                {
                    "name": "Profile",
                    "fields": [
                        {"name": "id", "type": "Int", "id": True},
                        {"name": "userId", "type": "Int"},
                    ],
                    "relations": [
                        {"name": "user", "target": "User", "direction": "to-one", "foreign_keys": ["userId"]}
                    ],
                },
            ]
        )
        result = analyze(schema)
        assert result["Profile"].relationships[0].kind is RelationshipKind.ONE_TO_ONE
        assert result["User"].relationships[0].kind is RelationshipKind.ONE_TO_ONE


# ===========================================================================
# Special fields
# ===========================================================================


class TestSpecialFields:
    def test_blog_tags(self, blog_schema: SchemaDefinition) -> None:
        result = analyze(blog_schema)
        assert result["Post"].special_field_tags == {
            "slug",
            "publishedFlag",
            "viewCounter",
            "softDeleteMarker",
        }
        assert result["Comment"].special_field_tags == {"approvalFlag", "parentReference"}
        assert result["Comment"].fields_for(SpecialFieldTag.PARENT_REFERENCE) == ["parentId"]

    @pytest.mark.parametrize("name", ["isPublished", "is_published", "IsPublished", "PUBLISHED"])
    def test_published_name_variants(self, name: str) -> None:
        entry = analyze(_single([{"name": name, "type": "Boolean"}]))["Item"]
        assert entry.has_tag(SpecialFieldTag.PUBLISHED_FLAG)

    def test_wrong_type_does_not_match(self) -> None:
        entry = analyze(_single([{"name": "slug", "type": "Int", "unique": True}]))["Item"]
        assert entry.special_fields == ()

    def test_non_unique_slug_does_not_match(self) -> None:
        entry = analyze(_single([{"name": "slug", "type": "String"}]))["Item"]
        assert not entry.has_tag("slug")

    def test_soft_delete_requires_nullable(self) -> None:
        entry = analyze(_single([{"name": "deletedAt", "type": "DateTime"}]))["Item"]
        assert not entry.has_tag(SpecialFieldTag.SOFT_DELETE_MARKER)

    def test_parent_reference_requires_nullable_self_fk(self) -> None:
        fields = [
            {"name": "id", "type": "Int", "id": True},
            {"name": "parentId", "type": "Int"},
        ]
        relations = [
            {"name": "parent", "target": "Item", "direction": "to-one", "foreign_keys": ["parentId"]}
        ]
        entry = analyze(_single(fields, relations))["Item"]
        assert not entry.has_tag(SpecialFieldTag.PARENT_REFERENCE)

    def test_case_sensitive_policy(self) -> None:
        schema = _single([{"name": "Slug", "type": "String", "unique": True}])
        assert analyze(schema)["Item"].has_tag("slug")
        strict = SpecialFieldPolicy(case_sensitive=True)
        assert not analyze(schema, special_field_policy=strict)["Item"].has_tag("slug")

    def test_underscores_kept_when_configured(self) -> None:
        schema = _single([{"name": "is_published", "type": "Boolean"}])
        policy = SpecialFieldPolicy(ignore_underscores=False)
        assert not analyze(schema, special_field_policy=policy)["Item"].has_tag("publishedFlag")

    def test_custom_rule(self) -> None:
        policy = SpecialFieldPolicy(
            rules=[SpecialFieldRule(tag="sortKey", name_pattern=r"^position$", types=["Int"])]
        )
        schema = _single([{"name": "position", "type": "Int"}, {"name": "slug", "type": "String", "unique": True}])
        entry = analyze(schema, special_field_policy=policy)["Item"]
        assert entry.special_field_tags == {"sortKey"}

    def test_invalid_pattern_rejected(self) -> None:
        with pytest.raises(ValueError):
            SpecialFieldRule(tag="broken", name_pattern="(unclosed")


# ===========================================================================
# Capabilities
# ===========================================================================


class TestCapabilities:
    def test_user_fields(self, blog_schema: SchemaDefinition) -> None:
        user = analyze(blog_schema)["User"]
        assert user.sensitive_fields == ("passwordHash",)
        assert user.search_fields == ("email", "googleId", "displayName")
        assert "passwordHash" not in user.filter_fields
        assert "passwordHash" not in user.sortable_fields

    def test_search_skips_ids_and_foreign_keys(self, blog_schema: SchemaDefinition) -> None:
        post = analyze(blog_schema)["Post"]
        assert post.search_fields == ("title", "slug", "content")
        assert "authorId" in post.filter_fields

    def test_json_and_bytes_not_filterable(self) -> None:
        entry = analyze(
            _single(
                [
                    {"name": "payload", "type": "Json"},
                    {"name": "blob", "type": "Bytes"},
                    {"name": "count", "type": "Int"},
                ]
            )
        )["Item"]
        assert entry.filter_fields == ("count",)
        assert entry.sortable_fields == ("count",)

    def test_custom_sensitive_patterns(self, blog_schema: SchemaDefinition) -> None:
        analyzer = RelationshipAnalyzer(sensitive_patterns=["email"])
        user = analyzer.analyze(blog_schema)["User"]
        assert user.sensitive_fields == ("email",)
        assert "passwordHash" in user.search_fields
