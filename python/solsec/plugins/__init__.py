"""Plugin capability interface, registry and file store."""

from .interface import (
    PLUGIN_API_VERSION,
    CAPABILITY_RULES,
    CAPABILITY_STRATEGIES,
    Plugin,
    PluginDescriptor,
    RuleProvider,
    FuzzStrategyProvider,
    is_compatible,
)
from .registry import PluginRegistry
from .loader import PluginStore, PluginActionResult, load_plugin_file

__all__ = [
    "PLUGIN_API_VERSION",
    "CAPABILITY_RULES",
    "CAPABILITY_STRATEGIES",
    "Plugin",
    "PluginDescriptor",
    "RuleProvider",
    "FuzzStrategyProvider",
    "is_compatible",
    "PluginRegistry",
    "PluginStore",
    "PluginActionResult",
    "load_plugin_file",
]
