"""
tests/conftest.py
Shared fixtures for the schemagen test suite.

No external mocking libraries are used; real file I/O is performed
inside temporary directories managed by pytest's tmp_path fixtures.
Plugins used to exercise the registry and merge are real
``FeaturePlugin`` subclasses returning fixed output.
"""

from __future__ import annotations

import copy
import pathlib
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import pytest
import yaml

from schemagen.config import GeneratorConfig
from schemagen.context import GenerationContext, LogCapture, StructuredLogger
from schemagen.models import SchemaDefinition
from schemagen.plugins.base import (
    EnvVarDescriptor,
    FeaturePlugin,
    PluginOutput,
    PluginRequirements,
    RouteDescriptor,
)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

ROOT_DIR: pathlib.Path = pathlib.Path(__file__).resolve().parent.parent
SCHEMA_EXAMPLE_PATH: pathlib.Path = ROOT_DIR / "schema_example.yaml"


# ---------------------------------------------------------------------------
# Raw input fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def raw_input_dict() -> Dict[str, Any]:
    """Load the reference schema_example.yaml once per session and return as dict."""
    assert SCHEMA_EXAMPLE_PATH.exists(), (
        f"Reference schema not found at {SCHEMA_EXAMPLE_PATH}. "
        "Make sure schema_example.yaml is in the project root."
    )
    with open(SCHEMA_EXAMPLE_PATH, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    assert isinstance(data, dict), "Top-level YAML must be a mapping."
    return data


@pytest.fixture()
def input_dict(raw_input_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Return a deep copy so each test can mutate freely."""
    return copy.deepcopy(raw_input_dict)


@pytest.fixture()
def input_yaml_path(input_dict: Dict[str, Any], tmp_path: pathlib.Path) -> pathlib.Path:
    """Write the input dict to a temporary YAML file and return its path."""
    path = tmp_path / "schema.yaml"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(input_dict, fh, default_flow_style=False, allow_unicode=True)
    return path


@pytest.fixture()
def write_yaml(tmp_path: pathlib.Path) -> Callable[[str, Mapping[str, Any]], pathlib.Path]:
    """Factory writing an arbitrary mapping to ``tmp_path / name``."""

    def _write(name: str, data: Mapping[str, Any]) -> pathlib.Path:
        path = tmp_path / name
        with open(path, "w", encoding="utf-8") as fh:
            yaml.dump(dict(data), fh, default_flow_style=False, allow_unicode=True)
        return path

    return _write


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def blog_schema(input_dict: Dict[str, Any]) -> SchemaDefinition:
    """Author / Post / Tag / PostTag / Comment / User."""
    return SchemaDefinition.model_validate(input_dict["schema"])


@pytest.fixture()
def blog_config(input_dict: Dict[str, Any]) -> GeneratorConfig:
    """Config of the reference input: all four built-in plugins, strict."""
    return GeneratorConfig.model_validate(input_dict["config"])


def _field(name: str, type_: str = "String", **flags: Any) -> Dict[str, Any]:
    data: Dict[str, Any] = {"name": name, "type": type_}
    data.update(flags)
    return data


def _to_one(name: str, target: str, fk: str) -> Dict[str, Any]:
    return {"name": name, "target": target, "direction": "to-one", "foreign_keys": [fk]}


@pytest.fixture()
def author_post_schema() -> SchemaDefinition:
    """
    Author{id, name}; Post{id, title, slug(unique), authorId → Author,
    published}; Tag{id, label}; PostTag{postId → Post, tagId → Tag}.
    """
    return SchemaDefinition.model_validate(
        {
            "entities": [
                {
                    "name": "Author",
                    "fields": [_field("id", "Int", id=True), _field("name")],
                },
                {
                    "name": "Post",
                    "fields": [
                        _field("id", "Int", id=True),
                        _field("title"),
                        _field("slug", unique=True),
                        _field("authorId", "Int"),
                        _field("published", "Boolean"),
                    ],
                    "relations": [_to_one("author", "Author", "authorId")],
                },
                {
                    "name": "Tag",
                    "fields": [_field("id", "Int", id=True), _field("label")],
                },
                {
                    "name": "PostTag",
                    "fields": [_field("postId", "Int"), _field("tagId", "Int")],
                    "relations": [
                        _to_one("post", "Post", "postId"),
                        _to_one("tag", "Tag", "tagId"),
                    ],
                },
            ]
        }
    )


@pytest.fixture()
def no_user_schema() -> SchemaDefinition:
    """A schema without ``User`` — fatal for both auth plugins."""
    return SchemaDefinition.model_validate(
        {
            "entities": [
                {
                    "name": "Note",
                    "fields": [_field("id", "Int", id=True), _field("text")],
                }
            ]
        }
    )


# ---------------------------------------------------------------------------
# Logging fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def captured_log() -> Tuple[StructuredLogger, LogCapture]:
    """A ``StructuredLogger`` whose events land in an in-memory capture."""
    return StructuredLogger.capturing()


@pytest.fixture()
def make_context(
    captured_log: Tuple[StructuredLogger, LogCapture],
) -> Callable[..., GenerationContext]:
    """Factory for a ``GenerationContext`` sharing the captured logger."""
    log, _ = captured_log

    def _make(
        schema: Optional[SchemaDefinition] = None,
        config: Optional[GeneratorConfig] = None,
        initial: Optional[Mapping[str, Any]] = None,
    ) -> GenerationContext:
        return GenerationContext(
            schema, config or GeneratorConfig(), logger=log, initial=initial
        )

    return _make


# ---------------------------------------------------------------------------
# Static plugins
# ---------------------------------------------------------------------------


class StaticPlugin(FeaturePlugin):
    """Plugin returning a fixed ``PluginOutput``; ids are per instance."""

    def __init__(
        self,
        plugin_id: str,
        output: Optional[PluginOutput] = None,
        requirements: Optional[PluginRequirements] = None,
        requires_plugins: Sequence[str] = (),
    ) -> None:
        self.id = plugin_id  # type: ignore[misc]
        self.requirements = requirements or PluginRequirements()  # type: ignore[misc]
        self.requires_plugins = tuple(requires_plugins)  # type: ignore[misc]
        self._output: PluginOutput = output or PluginOutput()
        self.generate_calls: int = 0
        super().__init__()

    def generate(self, context: GenerationContext) -> PluginOutput:
        self.generate_calls += 1
        return self._output


@pytest.fixture()
def static_plugin() -> Callable[..., StaticPlugin]:
    """
    Factory for ``StaticPlugin``.

    ``files`` maps path → content, ``routes`` is a list of
    ``(method, path)`` pairs, ``env`` maps name → description.
    """

    def _make(
        plugin_id: str,
        files: Optional[Dict[str, str]] = None,
        routes: Sequence[Tuple[str, str]] = (),
        env: Optional[Dict[str, str]] = None,
        dependencies: Optional[Dict[str, str]] = None,
        dev_dependencies: Optional[Dict[str, str]] = None,
        requirements: Optional[PluginRequirements] = None,
        requires_plugins: Sequence[str] = (),
    ) -> StaticPlugin:
        route_list: List[RouteDescriptor] = [
            RouteDescriptor(method=m, path=p, handler=f"{plugin_id}:handler")
            for m, p in routes
        ]
        output = PluginOutput(
            files=dict(files or {}),
            routes=route_list,
            env_vars={
                name: EnvVarDescriptor(description=desc)
                for name, desc in (env or {}).items()
            },
            dependencies=dict(dependencies or {}),
            dev_dependencies=dict(dev_dependencies or {}),
        )
        return StaticPlugin(
            plugin_id,
            output,
            requirements=requirements,
            requires_plugins=requires_plugins,
        )

    return _make
