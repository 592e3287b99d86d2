"""Plugin capability interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from ..analysis.rules.base import Rule
from ..fuzzing.strategies import FuzzStrategy


# Version of the capability interface this host implements
PLUGIN_API_VERSION = "1.0"

CAPABILITY_RULES = "rules"
CAPABILITY_STRATEGIES = "strategies"
KNOWN_CAPABILITIES = (CAPABILITY_RULES, CAPABILITY_STRATEGIES)


def parse_api_version(version: Any) -> Tuple[int, int]:
    """Parse ``"major.minor"`` into integers. Raises ValueError."""
    parts = str(version).strip().split(".")
    if len(parts) not in (1, 2) or not all(p.isdigit() for p in parts):
        raise ValueError(f"malformed api version {version!r}")
    major = int(parts[0])
    minor = int(parts[1]) if len(parts) == 2 else 0
    return major, minor


def is_compatible(api_version: Any, host_version: str = PLUGIN_API_VERSION) -> bool:
    """Same major version and a minor version the host already implements."""
    try:
        major, minor = parse_api_version(api_version)
    except ValueError:
        return False
    host_major, host_minor = parse_api_version(host_version)
    return major == host_major and minor <= host_minor


@dataclass(frozen=True)
class PluginDescriptor:
    """What a registered plugin declared about itself."""
    name: str
    version: str
    api_version: str
    capabilities: Tuple[str, ...]
    description: str = ""
    path: Optional[str] = None
    rule_ids: Tuple[str, ...] = ()
    strategy_names: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "api_version": self.api_version,
            "capabilities": list(self.capabilities),
            "description": self.description,
            "path": self.path,
            "rule_ids": list(self.rule_ids),
            "strategy_names": list(self.strategy_names),
        }


class RuleProvider(ABC):
    """Capability: supplies detection rules."""

    @abstractmethod
    def list_rules(self) -> Iterable[Rule]:
        """Rules contributed by this plugin."""
        pass


class FuzzStrategyProvider(ABC):
    """Capability: supplies fuzz strategies."""

    @abstractmethod
    def list_strategies(self) -> Iterable[FuzzStrategy]:
        """Strategies contributed by this plugin."""
        pass


class Plugin:
    """
    Convenience base for plugins.

    Subclass it together with RuleProvider and/or FuzzStrategyProvider and
    list the implemented capabilities in ``capabilities``.
    """

    name: str = "unnamed"
    version: str = "0.0.0"
    api_version: str = PLUGIN_API_VERSION
    description: str = ""
    capabilities: Tuple[str, ...] = ()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r} {self.version})"
