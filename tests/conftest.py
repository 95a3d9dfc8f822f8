"""Shared fixtures and fakes for configuration service tests."""

import json
from typing import Any

import pytest
import yaml


class FakeConnection:
    """Live connection stand-in with a fixed tool list."""

    def __init__(self, name: str, tools: list[dict[str, Any]]) -> None:
        self.name = name
        self.tools = tools
        self.icon_path = None
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Connector that opens fake connections and fails on demand."""

    def __init__(self, failing: tuple[str, ...] = ()) -> None:
        self.failing = set(failing)
        self.tools: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.opened: list[FakeConnection] = []

    async def __call__(self, name: str, definition: dict[str, Any]) -> FakeConnection:
        self.calls.append((name, definition))
        if name in self.failing:
            raise ConnectionError(f"cannot reach {name}")
        tools = self.tools.get(name, [{"name": "query", "description": f"Query {name}"}])
        connection = FakeConnection(name, tools)
        self.opened.append(connection)
        return connection


MANIFEST = [
    {
        "name": "Google",
        "pluginKey": "google",
        "description": "Search the web",
        "authConfig": [{"authField": "GOOGLE_CSE_ID||GOOGLE_SEARCH_ID", "label": "CSE ID"}],
    },
    {"name": "Calculator", "pluginKey": "calculator", "description": "Do math"},
    {"name": "Calculator (copy)", "pluginKey": "calculator", "description": "Duplicate"},
    {"name": "Weather", "pluginKey": "weather", "description": "Not installed"},
]


def write_document(path, document: dict[str, Any]) -> None:
    path.write_text(yaml.safe_dump(document, sort_keys=False))


def read_document(path) -> dict[str, Any]:
    return yaml.safe_load(path.read_text())


@pytest.fixture
def document_path(tmp_path):
    """Configuration document with one server and unrelated fields."""
    path = tmp_path / "config.yaml"
    write_document(path, {
        "version": "1.2.1",
        "cache": True,
        "serverDefinitions": {"search": {"url": "u1"}},
        "filteredTools": ["dalle"],
        "interface": {"privacyPolicy": {"externalUrl": "https://example.com"}},
    })
    return path


@pytest.fixture
def manifest_path(tmp_path):
    """Plugin manifest with a duplicate and an unavailable plugin."""
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps(MANIFEST))
    return path


@pytest.fixture
def tools_directory(tmp_path):
    """Static tool definitions: two kept, one filtered by the document."""
    directory = tmp_path / "tools"
    directory.mkdir()
    (directory / "calculator.json").write_text(json.dumps({"pluginKey": "calculator"}))
    (directory / "google.yaml").write_text("name: google\ndescription: Google search\n")
    (directory / "dalle.json").write_text(json.dumps([{"pluginKey": "dalle"}]))
    (directory / "README.md").write_text("not a tool")
    return directory


@pytest.fixture
def connector():
    return FakeConnector()


@pytest.fixture
def pipeline(document_path, manifest_path, tools_directory, connector):
    """Pipeline over temporary files with a fake connector."""
    from config_service.cache import DerivedCache
    from config_service.reconcile import ReconciliationPipeline
    from config_service.registry import ConnectionRegistry
    from config_service.store import ConfigStore
    from config_service.tools import ManifestLoader

    return ReconciliationPipeline(
        store=ConfigStore(document_path),
        cache=DerivedCache(ttl_seconds=60),
        registry=ConnectionRegistry(connector),
        manifest_loader=ManifestLoader(manifest_path),
        tools_directory=tools_directory,
        auth_check=lambda plugin: plugin.pluginKey == "google",
    )
