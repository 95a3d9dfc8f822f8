"""Config Document Store.

Owns read, merge and write of the YAML document that holds the server
definitions. Every operation re-reads the file so edits made by other means
are respected; writes go through a temporary file and an atomic rename so a
concurrent reader never sees a partial document.
"""

import uuid
from copy import deepcopy
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os
import yaml

from shared.logging import get_logger
from shared.models import SERVER_DEFINITIONS_KEY, ServerDefinitions
from shared.schema import SERVER_DEFINITIONS_SCHEMA, validate_schema
from config_service.errors import InvalidInput, NotFound, StorageUnavailable

logger = get_logger(__name__)


def merge_definitions(
    existing: ServerDefinitions,
    incoming: ServerDefinitions
) -> ServerDefinitions:
    """
    Shallow-merge incoming server definitions into existing ones.

    Precedence, per server name:
    - name only in ``existing``: kept as is
    - name only in ``incoming``: inserted verbatim
    - name in both: existing record overlaid field by field, incoming wins;
      existing fields the incoming record does not mention survive

    Neither argument is modified.
    """
    merged = deepcopy(existing)
    for name, definition in incoming.items():
        if name in merged:
            merged[name] = {**merged[name], **deepcopy(definition)}
        else:
            merged[name] = deepcopy(definition)
    return merged


def validate_definitions(definitions: Any) -> ServerDefinitions:
    """
    Check that ``definitions`` is a map of server name to record.

    Raises:
        InvalidInput: If the shape is wrong
    """
    if not isinstance(definitions, dict):
        raise InvalidInput()

    is_valid, errors = validate_schema(definitions, SERVER_DEFINITIONS_SCHEMA)
    if not is_valid or not all(isinstance(name, str) for name in definitions):
        logger.warning("Rejected server definitions", errors=errors)
        raise InvalidInput()

    return definitions


class ConfigStore:
    """
    Read-modify-write access to one configuration document.

    The document is a YAML mapping. ``serverDefinitions`` is the only field
    this store interprets; every other top-level field is carried through
    unchanged and in its original order.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def load(self) -> dict[str, Any]:
        """
        Load the whole document.

        Returns:
            The parsed document (empty dict for an empty file); a server
            record left empty is returned as an empty mapping

        Raises:
            StorageUnavailable: If the file cannot be read or parsed, or a
                server record is not a mapping
        """
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                contents = await f.read()
        except OSError as e:
            logger.error("Failed to read config document", path=str(self.path), error=str(e))
            raise StorageUnavailable() from e

        try:
            document = yaml.safe_load(contents)
        except yaml.YAMLError as e:
            logger.error("Failed to parse config document", path=str(self.path), error=str(e))
            raise StorageUnavailable() from e

        if document is None:
            return {}

        if not isinstance(document, dict):
            logger.error(
                "Config document is not a mapping",
                path=str(self.path),
                type=type(document).__name__
            )
            raise StorageUnavailable()

        definitions = document.get(SERVER_DEFINITIONS_KEY)
        if definitions is not None and not isinstance(definitions, dict):
            logger.error("serverDefinitions is not a mapping", path=str(self.path))
            raise StorageUnavailable()

        for name, definition in (definitions or {}).items():
            # A server key with no fields parses as null
            if definition is None:
                definitions[name] = {}
            elif not isinstance(definition, dict):
                logger.error("Server definition is not a mapping", path=str(self.path), server=name)
                raise StorageUnavailable()

        return document

    async def save(self, document: dict[str, Any]) -> None:
        """
        Persist the whole document atomically.

        Raises:
            StorageUnavailable: If the file cannot be written
        """
        contents = yaml.safe_dump(
            document,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
        tmp_path = self.path.with_name(f".{self.path.name}.{uuid.uuid4().hex}.tmp")

        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(contents)
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("Failed to write config document", path=str(self.path), error=str(e))
            await self._discard(tmp_path)
            raise StorageUnavailable() from e

    async def _discard(self, tmp_path: Path) -> None:
        try:
            await aiofiles.os.remove(tmp_path)
        except OSError as e:
            logger.debug("Temporary document not removed", path=str(tmp_path), error=str(e))

    async def get(self) -> ServerDefinitions:
        """Return the current server definitions (empty if absent)."""
        document = await self.load()
        return document.get(SERVER_DEFINITIONS_KEY) or {}

    async def replace(self, definitions: ServerDefinitions) -> dict[str, Any]:
        """
        Replace the server definitions wholesale and persist.

        Returns:
            The persisted document
        """
        definitions = validate_definitions(definitions)
        document = await self.load()
        document[SERVER_DEFINITIONS_KEY] = deepcopy(definitions)
        await self.save(document)

        logger.info("Server definitions replaced", servers=sorted(definitions))
        return document

    async def merge(self, definitions: ServerDefinitions) -> dict[str, Any]:
        """
        Merge partial server definitions into the document and persist.

        Returns:
            The persisted document
        """
        definitions = validate_definitions(definitions)
        document = await self.load()
        existing = document.get(SERVER_DEFINITIONS_KEY) or {}
        document[SERVER_DEFINITIONS_KEY] = merge_definitions(existing, definitions)
        await self.save(document)

        logger.info("Server definitions merged", servers=sorted(definitions))
        return document

    async def remove(self, server_name: str) -> dict[str, Any]:
        """
        Delete one server definition and persist.

        Returns:
            The persisted document

        Raises:
            NotFound: If no definition has that name
        """
        document = await self.load()
        existing: Optional[ServerDefinitions] = document.get(SERVER_DEFINITIONS_KEY)

        if not existing or server_name not in existing:
            logger.warning("Server definition not found", server=server_name)
            raise NotFound(server_name)

        del existing[server_name]
        document[SERVER_DEFINITIONS_KEY] = existing
        await self.save(document)

        logger.info("Server definition removed", server=server_name)
        return document
