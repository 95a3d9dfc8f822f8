"""Tool Assembler and manifest loader.

Static tools are declared as files in a directory and filtered by the
admin include/exclude lists of the configuration document. Plugin tools
are declared in a JSON manifest.
"""

import json
from pathlib import Path
from typing import Any, Optional

import aiofiles
import yaml
from pydantic import ValidationError

from shared.logging import get_logger
from shared.models import PluginDescriptor
from shared.schema import MANIFEST_SCHEMA, validate_schema
from config_service.errors import ManifestLoadFailure

logger = get_logger(__name__)

TOOL_FILE_SUFFIXES = {".json", ".yaml", ".yml"}


class ToolAssembler:
    """
    Loads statically declared tools from a directory.

    Each file holds one tool definition or a list of them. A tool's key is
    its ``pluginKey``, falling back to ``name``.
    """

    async def assemble(
        self,
        included: Optional[list[str]],
        filtered: Optional[list[str]],
        directory: str | Path
    ) -> dict[str, dict[str, Any]]:
        """
        Load and filter static tools.

        Args:
            included: When non-empty, only these tool keys are kept
            filtered: Tool keys to drop
            directory: Directory of tool definition files

        Returns:
            Tool definitions keyed by tool key
        """
        directory = Path(directory)
        if not directory.is_dir():
            logger.warning("Tool directory not found", directory=str(directory))
            return {}

        tools: dict[str, dict[str, Any]] = {}
        for path in sorted(directory.iterdir()):
            if path.suffix not in TOOL_FILE_SUFFIXES:
                continue
            for tool in await self._load_file(path):
                key = tool.get("pluginKey") or tool.get("name")
                if not key:
                    logger.warning("Tool without a key skipped", file=path.name)
                    continue
                tools.setdefault(key, tool)

        if included:
            tools = {k: v for k, v in tools.items() if k in included}
        if filtered:
            tools = {k: v for k, v in tools.items() if k not in filtered}

        logger.debug("Static tools assembled", count=len(tools))
        return tools

    async def _load_file(self, path: Path) -> list[dict[str, Any]]:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                contents = await f.read()
            data = json.loads(contents) if path.suffix == ".json" else yaml.safe_load(contents)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Failed to load tool file", file=str(path), error=str(e))
            return []

        items = data if isinstance(data, list) else [data]
        return [item for item in items if isinstance(item, dict)]


class ManifestLoader:
    """Reads the plugin manifest."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def read(self) -> list[PluginDescriptor]:
        """
        Read and validate the manifest.

        Returns:
            Plugin descriptors in manifest order

        Raises:
            ManifestLoadFailure: If the manifest cannot be read or parsed
        """
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                data = json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.error("Failed to read manifest", path=str(self.path), error=str(e))
            raise ManifestLoadFailure() from e

        is_valid, errors = validate_schema(data, MANIFEST_SCHEMA)
        if not is_valid:
            logger.error("Invalid manifest", path=str(self.path), errors=errors)
            raise ManifestLoadFailure()

        try:
            return [PluginDescriptor(**item) for item in data]
        except ValidationError as e:
            logger.error("Invalid manifest entry", path=str(self.path), error=str(e))
            raise ManifestLoadFailure() from e
