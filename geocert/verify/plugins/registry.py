"""
Plugin Registry
================

Name → plugin lookup for the verify path. A registry is an ordinary
object owned by whoever builds the service; tests create their own
instead of mutating shared state.
"""

from __future__ import annotations

import logging
from typing import Optional

from geocert.config import VerifyConfig
from geocert.errors import PluginNotFoundError
from geocert.schemas.verification import PluginMetadata
from geocert.verify.plugins.base import LocationProofPlugin

logger = logging.getLogger("geocert.verify.plugins.registry")


class PluginRegistry:
    """
    Registered location proof plugins, keyed by name.

    Usage:
        plugins = PluginRegistry.with_defaults(config.verify)
        plugin = plugins.get("proofmode")
    """

    def __init__(self) -> None:
        self._plugins: dict[str, LocationProofPlugin] = {}

    @classmethod
    def with_defaults(cls, config: Optional[VerifyConfig] = None) -> "PluginRegistry":
        """Registry holding the built-in plugins."""
        from geocert.verify.plugins.proofmode import ProofModePlugin

        registry = cls()
        registry.register(ProofModePlugin(config))
        logger.info(f"Plugin registry initialized with {len(registry)} plugin(s)")
        return registry

    def register(self, plugin: LocationProofPlugin) -> None:
        if self.has(plugin.name):
            logger.warning(f"Plugin '{plugin.name}' already registered, replacing")
        self._plugins[plugin.name] = plugin
        logger.debug(f"Registered plugin: {plugin.name} v{plugin.version}")

    def get(self, name: str) -> LocationProofPlugin:
        plugin = self._plugins.get(name)
        if plugin is None:
            raise PluginNotFoundError(name, self.names())
        return plugin

    def has(self, name: str) -> bool:
        return name in self._plugins

    def list(self) -> list[PluginMetadata]:
        return [p.metadata() for p in self._plugins.values()]

    def names(self) -> list[str]:
        return sorted(self._plugins)

    def clear(self) -> None:
        self._plugins.clear()

    def __len__(self) -> int:
        return len(self._plugins)
