"""Fixed in-memory registry of validated plugin capabilities."""

from typing import Any, Iterable, List, Optional, Tuple
import logging

from ..analysis.rules.base import Rule
from ..audit import AuditLogger
from ..errors import PluginLoadError
from ..fuzzing.strategies import FuzzStrategy
from ..results import PLUGIN_LOAD_ERROR, Diagnostic
from .interface import (
    CAPABILITY_RULES,
    CAPABILITY_STRATEGIES,
    KNOWN_CAPABILITIES,
    PLUGIN_API_VERSION,
    FuzzStrategyProvider,
    PluginDescriptor,
    RuleProvider,
    is_compatible,
)

logger = logging.getLogger(__name__)


class PluginRegistry:
    """
    Validates plugins once at startup and exposes their capabilities.

    A plugin is accepted whole or not at all. Any violation (no declared
    capability, a declared capability it does not implement, an
    incompatible api version, a capability that raises or yields invalid
    objects, clashing rule ids) excludes it and records exactly one
    PluginLoadError. After ``freeze()`` the registry never changes.
    """

    def __init__(
        self,
        reserved_rule_ids: Iterable[str] = (),
        host_api_version: str = PLUGIN_API_VERSION,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.host_api_version = host_api_version
        self._reserved_rule_ids = {r.upper() for r in reserved_rule_ids}
        self._audit_logger = audit_logger
        self._descriptors: List[PluginDescriptor] = []
        self._rules: List[Rule] = []
        self._strategies: List[FuzzStrategy] = []
        self._errors: List[PluginLoadError] = []
        self._frozen = False

    def register(self, plugin: Any, path: Optional[str] = None) -> Optional[PluginDescriptor]:
        """
        Validate and register one plugin.

        Args:
            plugin: Plugin object
            path: Where the plugin came from (for reporting only)

        Returns:
            Descriptor if accepted, None if the plugin was excluded
        """
        if self._frozen:
            raise RuntimeError("plugin registry is frozen")

        name = getattr(plugin, "name", None)
        if not isinstance(name, str) or not name:
            name = type(plugin).__name__

        try:
            descriptor, rules, strategies = self._validate(plugin, name, path)
        except PluginLoadError as e:
            self.record_error(e)
            return None

        self._descriptors.append(descriptor)
        self._rules.extend(rules)
        self._strategies.extend(strategies)
        logger.info(
            f"Registered plugin {descriptor.name} {descriptor.version} "
            f"({len(rules)} rules, {len(strategies)} strategies)"
        )
        if self._audit_logger:
            self._audit_logger.log_plugin_event(descriptor.name, "registered", descriptor.to_dict())
        return descriptor

    def record_error(self, error: PluginLoadError) -> None:
        """Record a plugin that failed before or during registration."""
        self._errors.append(error)
        logger.warning(str(error))
        if self._audit_logger:
            self._audit_logger.log_failure({
                "kind": PLUGIN_LOAD_ERROR,
                "source": "plugins",
                "subject": error.plugin_name,
                "message": error.reason,
            })

    def _validate(
        self,
        plugin: Any,
        name: str,
        path: Optional[str]
    ) -> Tuple[PluginDescriptor, List[Rule], List[FuzzStrategy]]:
        if any(d.name == name for d in self._descriptors):
            raise PluginLoadError(name, "a plugin with this name is already registered")

        api_version = getattr(plugin, "api_version", None)
        if api_version is None:
            raise PluginLoadError(name, "no api_version declared")
        if not is_compatible(api_version, self.host_api_version):
            raise PluginLoadError(
                name,
                f"incompatible api version {api_version} (host implements {self.host_api_version})",
            )

        capabilities = tuple(getattr(plugin, "capabilities", ()) or ())
        if not capabilities:
            raise PluginLoadError(name, "declares no capability")
        unknown = [c for c in capabilities if c not in KNOWN_CAPABILITIES]
        if unknown:
            raise PluginLoadError(name, f"unknown capability {unknown[0]!r}")

        rules: List[Rule] = []
        strategies: List[FuzzStrategy] = []

        if CAPABILITY_RULES in capabilities:
            if not isinstance(plugin, RuleProvider):
                raise PluginLoadError(name, "declares 'rules' but is not a RuleProvider")
            rules = self._collect(name, "list_rules", plugin.list_rules, Rule)
            seen = set()
            taken = self._reserved_rule_ids | {r.rule_id.upper() for r in self._rules}
            for rule in rules:
                rule_id = rule.rule_id.upper()
                if rule_id in taken or rule_id in seen:
                    raise PluginLoadError(name, f"rule id {rule.rule_id} is already in use")
                seen.add(rule_id)

        if CAPABILITY_STRATEGIES in capabilities:
            if not isinstance(plugin, FuzzStrategyProvider):
                raise PluginLoadError(name, "declares 'strategies' but is not a FuzzStrategyProvider")
            strategies = self._collect(name, "list_strategies", plugin.list_strategies, FuzzStrategy)

        descriptor = PluginDescriptor(
            name=name,
            version=str(getattr(plugin, "version", "0.0.0")),
            api_version=str(api_version),
            capabilities=capabilities,
            description=str(getattr(plugin, "description", "") or ""),
            path=path,
            rule_ids=tuple(r.rule_id for r in rules),
            strategy_names=tuple(s.name for s in strategies),
        )
        return descriptor, rules, strategies

    @staticmethod
    def _collect(name: str, method: str, call, expected: type) -> list:
        try:
            items = list(call() or ())
        except Exception as e:
            raise PluginLoadError(name, f"{method}() raised {type(e).__name__}: {e}") from e
        for item in items:
            if not isinstance(item, expected):
                raise PluginLoadError(
                    name, f"{method}() returned {type(item).__name__}, expected {expected.__name__}"
                )
        return items

    def freeze(self) -> "PluginRegistry":
        """Close the registry; capabilities are never re-resolved mid-run."""
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def list_rules(self) -> List[Rule]:
        """Rules from every accepted plugin, in registration order."""
        return list(self._rules)

    def list_strategies(self) -> List[FuzzStrategy]:
        """Strategies from every accepted plugin, in registration order."""
        return list(self._strategies)

    def descriptors(self) -> List[PluginDescriptor]:
        return list(self._descriptors)

    @property
    def errors(self) -> Tuple[PluginLoadError, ...]:
        return tuple(self._errors)

    def diagnostics(self) -> List[Diagnostic]:
        """Plugin rejections as report diagnostics."""
        return [
            Diagnostic(
                kind=PLUGIN_LOAD_ERROR,
                source="plugins",
                subject=e.plugin_name,
                message=e.reason,
            )
            for e in self._errors
        ]

    def __len__(self) -> int:
        return len(self._descriptors)
