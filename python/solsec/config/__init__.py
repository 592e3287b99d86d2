"""Configuration components."""

from .settings import (
    Settings,
    ToolSettings,
    ScanConfig,
    FuzzConfig,
    RuleConfig,
    RuleSettings,
)
from .defaults import (
    DEFAULT_FORMATS,
    DEFAULT_JOB_COUNT,
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PLUGIN_DIR,
    SUPPORTED_FORMATS,
)

__all__ = [
    "Settings",
    "ToolSettings",
    "ScanConfig",
    "FuzzConfig",
    "RuleConfig",
    "RuleSettings",
    "DEFAULT_FORMATS",
    "DEFAULT_JOB_COUNT",
    "DEFAULT_JOB_TIMEOUT",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_PLUGIN_DIR",
    "SUPPORTED_FORMATS",
]
