"""Exception hierarchy shared by all components."""

from typing import Optional


class SolsecError(Exception):
    """Base class for toolkit errors."""
    pass


class ConfigInvalid(SolsecError):
    """Malformed configuration. Fatal before any unit is scanned."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(f"{key}: {message}" if key else message)


class PluginLoadError(SolsecError):
    """A plugin failed capability validation and was excluded from the run."""

    def __init__(self, plugin_name: str, reason: str):
        self.plugin_name = plugin_name
        self.reason = reason
        super().__init__(f"plugin '{plugin_name}' rejected: {reason}")


class TargetUnreachable(SolsecError):
    """A fuzz target could not be invoked."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"target '{target}' unreachable: {reason}")


class StrategyFailure(SolsecError):
    """A fuzz strategy raised while producing an input."""

    def __init__(self, strategy: str, reason: str):
        self.strategy = strategy
        self.reason = reason
        super().__init__(f"strategy '{strategy}' failed: {reason}")


class CampaignTimeout(SolsecError):
    """The campaign-level deadline elapsed."""

    def __init__(self, campaign_id: str, deadline: float):
        self.campaign_id = campaign_id
        self.deadline = deadline
        super().__init__(f"campaign {campaign_id[:8]} exceeded its {deadline:.1f}s deadline")


class InvariantViolation(SolsecError):
    """Raised by in-process fuzz targets when a program invariant does not hold."""
    pass


class InvalidTransition(SolsecError):
    """Illegal fuzz job state change."""
    pass
