"""Plugin authentication filter.

Tags manifest plugins whose credentials resolve from the environment and
keeps only the plugins backed by an available tool.
"""

import os
from typing import Any, Callable, Iterable, Mapping

from shared.logging import get_logger
from shared.models import PluginDescriptor

logger = get_logger(__name__)

# Marker for credentials each user supplies at call time
USER_PROVIDED = "user_provided"

AuthPredicate = Callable[[PluginDescriptor], bool]


def check_plugin_auth(
    plugin: PluginDescriptor,
    environ: Mapping[str, str] = os.environ
) -> bool:
    """
    Check whether a plugin's credentials are configured.

    Every auth field must resolve: at least one of its ``||``-separated
    variable names is set to a non-blank value other than ``user_provided``.
    Plugins declaring no auth fields are not authenticated.
    """
    if not plugin.authConfig:
        return False

    for auth_field in plugin.authConfig:
        options = auth_field.authField.split("||")
        if not any(_is_configured(environ.get(option.strip())) for option in options):
            return False
    return True


def _is_configured(value: str | None) -> bool:
    return bool(value and value.strip() and value != USER_PROVIDED)


def filter_unique_plugins(plugins: Iterable[PluginDescriptor]) -> list[PluginDescriptor]:
    """Drop repeated plugin keys, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for plugin in plugins:
        if plugin.pluginKey in seen:
            continue
        seen.add(plugin.pluginKey)
        unique.append(plugin)
    return unique


def authenticate_plugins(
    plugins: Iterable[PluginDescriptor],
    predicate: AuthPredicate = check_plugin_auth
) -> list[PluginDescriptor]:
    """
    Deduplicate plugins and flag the authenticated ones.

    Authenticated plugins are returned as copies with ``authenticated`` set;
    the others are returned unmodified.
    """
    result = []
    for plugin in filter_unique_plugins(plugins):
        if predicate(plugin):
            plugin = plugin.model_copy(update={"authenticated": True})
        result.append(plugin)
    return result


def filter_available_plugins(
    plugins: Iterable[PluginDescriptor],
    available_tools: Mapping[str, Any]
) -> list[PluginDescriptor]:
    """
    Keep plugins backed by an available tool.

    A toolkit plugin is available when any available key is prefixed by its
    plugin key.
    """
    available = []
    for plugin in plugins:
        if plugin.pluginKey in available_tools:
            available.append(plugin)
        elif plugin.toolkit and any(
            key.startswith(f"{plugin.pluginKey}_") for key in available_tools
        ):
            available.append(plugin)
        else:
            logger.debug("Plugin not available", plugin=plugin.pluginKey)
    return available
