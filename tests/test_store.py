"""Tests for the Config Document Store."""

import pytest

from conftest import read_document, write_document


class TestMergeDefinitions:
    """Tests for the shallow merge of server definitions."""

    def test_merge_preserves_untouched_fields(self):
        """Test that existing fields the incoming record omits survive."""
        from config_service.store import merge_definitions

        existing = {"search": {"a": 1, "b": 1, "c": 1}}
        merged = merge_definitions(existing, {"search": {"b": 2}})

        assert merged == {"search": {"a": 1, "b": 2, "c": 1}}

    def test_merge_is_per_name(self):
        """Test that servers not mentioned are left untouched."""
        from config_service.store import merge_definitions

        existing = {"y": {"url": "uy"}}
        merged = merge_definitions(existing, {"x": {"url": "ux"}})

        assert merged == {"y": {"url": "uy"}, "x": {"url": "ux"}}

    def test_merge_is_shallow(self):
        """Test that nested records are replaced, not merged."""
        from config_service.store import merge_definitions

        existing = {"s": {"headers": {"A": "1", "B": "2"}}}
        merged = merge_definitions(existing, {"s": {"headers": {"A": "3"}}})

        assert merged == {"s": {"headers": {"A": "3"}}}

    def test_merge_does_not_modify_arguments(self):
        """Test that inputs are left as they were."""
        from config_service.store import merge_definitions

        existing = {"s": {"url": "u1"}}
        incoming = {"s": {"timeout": 30}}
        merge_definitions(existing, incoming)

        assert existing == {"s": {"url": "u1"}}
        assert incoming == {"s": {"timeout": 30}}


class TestConfigStore:
    """Tests for ConfigStore read-modify-write operations."""

    @pytest.mark.asyncio
    async def test_get(self, document_path):
        """Test reading the server definitions."""
        from config_service.store import ConfigStore

        store = ConfigStore(document_path)

        assert await store.get() == {"search": {"url": "u1"}}

    @pytest.mark.asyncio
    async def test_get_without_definitions(self, tmp_path):
        """Test that a document without the field yields an empty map."""
        from config_service.store import ConfigStore

        path = tmp_path / "config.yaml"
        write_document(path, {"version": "1.0"})

        assert await ConfigStore(path).get() == {}

    @pytest.mark.asyncio
    async def test_get_missing_file(self, tmp_path):
        """Test that an unreadable file is reported as storage failure."""
        from config_service.errors import StorageUnavailable
        from config_service.store import ConfigStore

        with pytest.raises(StorageUnavailable):
            await ConfigStore(tmp_path / "missing.yaml").get()

    @pytest.mark.asyncio
    async def test_get_unparsable_file(self, tmp_path):
        """Test that invalid YAML is reported as storage failure."""
        from config_service.errors import StorageUnavailable
        from config_service.store import ConfigStore

        path = tmp_path / "config.yaml"
        path.write_text("serverDefinitions: {search: [unclosed\n")

        with pytest.raises(StorageUnavailable):
            await ConfigStore(path).get()

    @pytest.mark.asyncio
    async def test_get_non_mapping_document(self, tmp_path):
        """Test that a document that is not a mapping is rejected."""
        from config_service.errors import StorageUnavailable
        from config_service.store import ConfigStore

        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(StorageUnavailable):
            await ConfigStore(path).get()

    @pytest.mark.asyncio
    async def test_merge_into_empty_record(self, tmp_path):
        """Test that a server key left without fields merges like an empty record."""
        from config_service.store import ConfigStore

        path = tmp_path / "config.yaml"
        path.write_text("serverDefinitions:\n  search:\n")
        store = ConfigStore(path)

        assert await store.get() == {"search": {}}

        await store.merge({"search": {"timeout": 30}})

        assert read_document(path)["serverDefinitions"] == {"search": {"timeout": 30}}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("record", ["- a\n- b\n", "just text\n", "42\n"])
    async def test_non_mapping_record(self, tmp_path, record):
        """Test that a server record that is not a mapping is a storage failure."""
        from config_service.errors import StorageUnavailable
        from config_service.store import ConfigStore

        path = tmp_path / "config.yaml"
        path.write_text("serverDefinitions:\n  search:\n" + "".join(
            f"    {line}\n" for line in record.splitlines()
        ))

        with pytest.raises(StorageUnavailable):
            await ConfigStore(path).merge({"search": {"timeout": 30}})

    @pytest.mark.asyncio
    async def test_replace_is_total(self, document_path):
        """Test that replace drops servers missing from the input."""
        from config_service.store import ConfigStore

        store = ConfigStore(document_path)
        await store.merge({"other": {"url": "u2"}})

        await store.replace({"x": {"url": "ux"}})

        assert read_document(document_path)["serverDefinitions"] == {"x": {"url": "ux"}}

    @pytest.mark.asyncio
    async def test_merge_persists(self, document_path):
        """Test that merge overlays fields and persists the result."""
        from config_service.store import ConfigStore

        document = await ConfigStore(document_path).merge({"search": {"timeout": 30}})

        expected = {"search": {"url": "u1", "timeout": 30}}
        assert document["serverDefinitions"] == expected
        assert read_document(document_path)["serverDefinitions"] == expected

    @pytest.mark.asyncio
    async def test_unrelated_fields_preserved(self, document_path):
        """Test that fields the store does not own survive a rewrite in order."""
        from config_service.store import ConfigStore

        before = read_document(document_path)
        await ConfigStore(document_path).merge({"new": {"url": "u3"}})
        after = read_document(document_path)

        assert list(after) == list(before)
        for key in ("version", "cache", "filteredTools", "interface"):
            assert after[key] == before[key]

    @pytest.mark.asyncio
    async def test_remove(self, document_path):
        """Test removing a server definition."""
        from config_service.store import ConfigStore

        store = ConfigStore(document_path)
        await store.merge({"other": {"url": "u2"}})

        await store.remove("search")

        assert await store.get() == {"other": {"url": "u2"}}

    @pytest.mark.asyncio
    async def test_remove_last_keeps_empty_map(self, document_path):
        """Test that removing the last server persists an empty map."""
        from config_service.store import ConfigStore

        await ConfigStore(document_path).remove("search")

        assert read_document(document_path)["serverDefinitions"] == {}

    @pytest.mark.asyncio
    async def test_remove_absent_is_exact(self, document_path):
        """Test that removing an absent server raises and changes nothing."""
        from config_service.errors import NotFound
        from config_service.store import ConfigStore

        before = document_path.read_bytes()

        with pytest.raises(NotFound, match='Server "nonexistent" not found'):
            await ConfigStore(document_path).remove("nonexistent")

        assert document_path.read_bytes() == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("definitions", [
        None,
        "search",
        ["search"],
        {"search": "not-a-record"},
        {"search": ["url"]},
        {1: {"url": "u1"}},
    ])
    async def test_invalid_input_rejected(self, document_path, definitions):
        """Test that malformed definitions are rejected without writing."""
        from config_service.errors import InvalidInput
        from config_service.store import ConfigStore

        before = document_path.read_bytes()

        with pytest.raises(InvalidInput):
            await ConfigStore(document_path).replace(definitions)

        assert document_path.read_bytes() == before

    @pytest.mark.asyncio
    async def test_no_temporary_files_left(self, document_path):
        """Test that atomic writes clean up after themselves."""
        from config_service.store import ConfigStore

        await ConfigStore(document_path).merge({"search": {"timeout": 5}})

        assert [p.name for p in document_path.parent.iterdir() if p.suffix == ".tmp"] == []
