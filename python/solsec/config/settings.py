"""Configuration management."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from ..errors import ConfigInvalid
from ..results import Severity
from .defaults import (
    DEFAULT_CRASH_SEVERITY,
    DEFAULT_FORMATS,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_IGNORE_PATHS,
    DEFAULT_JOB_COUNT,
    DEFAULT_JOB_TIMEOUT,
    DEFAULT_LOG_DIR,
    DEFAULT_MAX_EXECUTIONS_PER_JOB,
    DEFAULT_MAX_WORKERS,
    DEFAULT_MIN_SEVERITY,
    DEFAULT_MODE,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PLUGIN_DIR,
    DEFAULT_TIMEOUT_SEVERITY,
    DEFAULT_VIOLATION_SEVERITY,
    RULE_CONFIG_KEYS,
    RULE_SETTINGS_KEYS,
    SUPPORTED_FORMATS,
)

_MODES = ("sequential", "parallel")


def _parse_severity(value: Any, key: str) -> Severity:
    try:
        return Severity.parse(value)
    except (ValueError, AttributeError):
        raise ConfigInvalid(f"unknown severity {value!r}", key=key) from None


def _string_list(value: Any, key: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigInvalid("expected a list of strings", key=key)
    return list(value)


@dataclass
class RuleSettings:
    """Per-rule configuration."""
    enabled: bool = True
    severity: Optional[Severity] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, rule_id: str, value: Any) -> "RuleSettings":
        """Parse ``true``/``false`` shorthand or a settings mapping."""
        key = f"rules.{rule_id}"
        if isinstance(value, bool):
            return cls(enabled=value)
        if value is None:
            return cls()
        if not isinstance(value, Mapping):
            raise ConfigInvalid("expected a mapping or a boolean", key=key)

        unknown = sorted(set(value) - set(RULE_SETTINGS_KEYS))
        if unknown:
            raise ConfigInvalid(f"unknown setting(s) {', '.join(map(str, unknown))}", key=key)

        enabled = value.get("enabled", True)
        if not isinstance(enabled, bool):
            raise ConfigInvalid("expected a boolean", key=f"{key}.enabled")

        severity = None
        if value.get("severity") is not None:
            severity = _parse_severity(value["severity"], f"{key}.severity")

        options = value.get("options") or {}
        if not isinstance(options, Mapping):
            raise ConfigInvalid("expected a mapping", key=f"{key}.options")

        return cls(enabled=enabled, severity=severity, options=dict(options))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"enabled": self.enabled}
        if self.severity:
            data["severity"] = self.severity.value
        if self.options:
            data["options"] = dict(self.options)
        return data


@dataclass
class RuleConfig:
    """
    Rule configuration, usually loaded from a YAML file.

    Example::

        rules:
          SOL-001:
            severity: high
            options:
              value_names: [collateral_ratio]
          SOL-008: false
        ignore_paths: ["programs/legacy/*"]
        min_severity: low
    """
    rules: Dict[str, RuleSettings] = field(default_factory=dict)
    ignore_paths: List[str] = field(default_factory=lambda: list(DEFAULT_IGNORE_PATHS))
    disabled_rules: List[str] = field(default_factory=list)
    min_severity: Severity = Severity.parse(DEFAULT_MIN_SEVERITY)

    def settings_for(self, rule_id: str) -> RuleSettings:
        return self.rules.get(rule_id.upper(), RuleSettings())

    def is_enabled(self, rule_id: str) -> bool:
        rule_id = rule_id.upper()
        if rule_id in {r.upper() for r in self.disabled_rules}:
            return False
        return self.settings_for(rule_id).enabled

    @classmethod
    def from_dict(cls, data: Any) -> "RuleConfig":
        """
        Build a RuleConfig from parsed YAML.

        Raises:
            ConfigInvalid: On unknown keys, wrong types or unknown severities
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigInvalid("rule configuration must be a mapping")

        unknown = sorted(str(k) for k in set(data) - set(RULE_CONFIG_KEYS))
        if unknown:
            raise ConfigInvalid("unknown key", key=unknown[0])

        rules_data = data.get("rules") or {}
        if not isinstance(rules_data, Mapping):
            raise ConfigInvalid("expected a mapping of rule ids", key="rules")
        rules = {
            str(rule_id).upper(): RuleSettings.from_value(str(rule_id).upper(), value)
            for rule_id, value in rules_data.items()
        }

        config = cls(rules=rules)
        if "ignore_paths" in data:
            config.ignore_paths = _string_list(data["ignore_paths"], "ignore_paths")
        config.disabled_rules = [
            r.upper() for r in _string_list(data.get("disabled_rules"), "disabled_rules")
        ]
        if data.get("min_severity") is not None:
            config.min_severity = _parse_severity(data["min_severity"], "min_severity")
        return config

    @classmethod
    def load(cls, filepath: str) -> "RuleConfig":
        """
        Load rule configuration from a YAML file.

        Args:
            filepath: Path to YAML config file

        Returns:
            Parsed RuleConfig
        """
        path = Path(filepath)
        if not path.is_file():
            raise ConfigInvalid(f"config file not found: {filepath}")
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigInvalid(f"invalid YAML in {filepath}: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigInvalid(f"cannot read {filepath}: {e}", key="config") from e
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rules": {rule_id: s.to_dict() for rule_id, s in sorted(self.rules.items())},
            "ignore_paths": list(self.ignore_paths),
            "disabled_rules": list(self.disabled_rules),
            "min_severity": self.min_severity.value,
        }


@dataclass
class ScanConfig:
    """Parameters of one scan invocation."""
    path: str = "."
    config: Optional[str] = None
    output: str = DEFAULT_OUTPUT_DIR
    formats: List[str] = field(default_factory=list)
    json_only: bool = False
    html_only: bool = False
    no_open: bool = False
    fail_on_critical: bool = False

    # Execution
    mode: str = DEFAULT_MODE
    max_workers: int = DEFAULT_MAX_WORKERS
    plugin_dir: Optional[str] = None

    # Pre-parsed rule configuration (takes precedence over ``config``)
    rules: Optional[RuleConfig] = None

    def resolve_formats(self) -> List[str]:
        """
        Requested report formats after applying the --json-only/--html-only flags.

        Raises:
            ConfigInvalid: Both flags set, or an unsupported format requested
        """
        if self.json_only and self.html_only:
            raise ConfigInvalid("--json-only and --html-only are mutually exclusive")
        if self.json_only:
            return ["json"]
        if self.html_only:
            return ["html"]

        resolved: List[str] = []
        for fmt in self.formats or DEFAULT_FORMATS:
            fmt = fmt.strip().lower()
            if fmt == "md":
                fmt = "markdown"
            if fmt not in SUPPORTED_FORMATS:
                raise ConfigInvalid(
                    f"unsupported format {fmt!r} (choose from {', '.join(SUPPORTED_FORMATS)})",
                    key="format",
                )
            if fmt not in resolved:
                resolved.append(fmt)
        return resolved

    def load_rules(self) -> RuleConfig:
        """Rule configuration for this scan."""
        if self.rules is not None:
            return self.rules
        if self.config:
            return RuleConfig.load(self.config)
        return RuleConfig()

    def validate(self) -> None:
        if self.mode not in _MODES:
            raise ConfigInvalid(f"unknown mode {self.mode!r}", key="mode")
        if self.max_workers < 1:
            raise ConfigInvalid("must be at least 1", key="max_workers")
        self.resolve_formats()


@dataclass
class FuzzConfig:
    """Parameters of one fuzz invocation."""
    path: str = "."
    timeout: float = DEFAULT_JOB_TIMEOUT
    jobs: int = DEFAULT_JOB_COUNT
    output: str = DEFAULT_OUTPUT_DIR
    campaign_timeout: Optional[float] = None
    timeouts_as_findings: bool = False
    timeout_severity: str = DEFAULT_TIMEOUT_SEVERITY
    crash_severity: str = DEFAULT_CRASH_SEVERITY
    violation_severity: str = DEFAULT_VIOLATION_SEVERITY
    grace_period: float = DEFAULT_GRACE_PERIOD
    max_executions_per_job: Optional[int] = DEFAULT_MAX_EXECUTIONS_PER_JOB
    execution_timeout: Optional[float] = None
    seed: Optional[int] = None
    seed_dir: Optional[str] = None
    formats: List[str] = field(default_factory=lambda: ["json"])
    plugin_dir: Optional[str] = None

    def validate(self) -> None:
        """
        Reject impossible fuzz parameters.

        Raises:
            ConfigInvalid: On the first invalid parameter
        """
        if self.jobs < 1:
            raise ConfigInvalid("must be at least 1", key="jobs")
        if self.timeout <= 0:
            raise ConfigInvalid("must be positive", key="timeout")
        if self.campaign_timeout is not None and self.campaign_timeout <= 0:
            raise ConfigInvalid("must be positive", key="campaign_timeout")
        if self.execution_timeout is not None and self.execution_timeout <= 0:
            raise ConfigInvalid("must be positive", key="execution_timeout")
        if self.grace_period < 0:
            raise ConfigInvalid("must not be negative", key="grace_period")
        if self.max_executions_per_job is not None and self.max_executions_per_job < 1:
            raise ConfigInvalid("must be at least 1", key="max_executions_per_job")

        timeout_severity = _parse_severity(self.timeout_severity, "timeout_severity")
        if timeout_severity not in (Severity.LOW, Severity.MEDIUM):
            raise ConfigInvalid("must be low or medium", key="timeout_severity")
        _parse_severity(self.crash_severity, "crash_severity")
        _parse_severity(self.violation_severity, "violation_severity")

        for fmt in self.formats:
            if fmt not in SUPPORTED_FORMATS:
                raise ConfigInvalid(f"unsupported format {fmt!r}", key="format")


@dataclass
class ToolSettings:
    """Tool-wide defaults, overridable per invocation."""
    mode: str = DEFAULT_MODE
    max_workers: int = DEFAULT_MAX_WORKERS
    job_count: int = DEFAULT_JOB_COUNT
    per_job_timeout: float = DEFAULT_JOB_TIMEOUT
    output_dir: str = DEFAULT_OUTPUT_DIR
    plugin_dir: str = DEFAULT_PLUGIN_DIR
    log_dir: Optional[str] = DEFAULT_LOG_DIR
    formats: List[str] = field(default_factory=lambda: list(DEFAULT_FORMATS))


class Settings:
    """
    Application settings manager.

    Handles configuration from:
    - Built-in defaults
    - YAML settings files
    - SOLSEC_* environment variables (applied last)

    Instances are passed explicitly to the components that need them.
    """

    ENV_PREFIX = "SOLSEC_"

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ
        self._config: Optional[ToolSettings] = None

    @property
    def config(self) -> ToolSettings:
        """Get current settings."""
        if self._config is None:
            self._config = self._load_defaults()
        return self._config

    def _load_defaults(self) -> ToolSettings:
        config = ToolSettings()
        self._apply_env_overrides(config)
        return config

    def _apply_env_overrides(self, config: ToolSettings) -> None:
        """Apply environment variable overrides."""
        env = self._environ

        if env.get("SOLSEC_JOBS"):
            try:
                config.job_count = int(env["SOLSEC_JOBS"])
            except ValueError:
                raise ConfigInvalid(f"not an integer: {env['SOLSEC_JOBS']!r}", key="SOLSEC_JOBS") from None
            if config.job_count < 1:
                raise ConfigInvalid("must be at least 1", key="SOLSEC_JOBS")

        if env.get("SOLSEC_TIMEOUT"):
            try:
                config.per_job_timeout = float(env["SOLSEC_TIMEOUT"])
            except ValueError:
                raise ConfigInvalid(f"not a number: {env['SOLSEC_TIMEOUT']!r}", key="SOLSEC_TIMEOUT") from None
            if config.per_job_timeout <= 0:
                raise ConfigInvalid("must be positive", key="SOLSEC_TIMEOUT")

        if env.get("SOLSEC_MODE"):
            mode = env["SOLSEC_MODE"].strip().lower()
            if mode not in _MODES:
                raise ConfigInvalid(f"unknown mode {mode!r}", key="SOLSEC_MODE")
            config.mode = mode

        if env.get("SOLSEC_PLUGIN_DIR"):
            config.plugin_dir = env["SOLSEC_PLUGIN_DIR"]

    def load_from_file(self, filepath: str) -> ToolSettings:
        """
        Load settings from a YAML file.

        Args:
            filepath: Path to YAML settings file

        Returns:
            Loaded settings
        """
        path = Path(filepath)
        if not path.exists():
            raise ConfigInvalid(f"settings file not found: {filepath}")

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigInvalid(f"invalid YAML in {filepath}: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigInvalid(f"cannot read {filepath}: {e}", key="settings") from e

        config = self._parse_config(data)
        self._apply_env_overrides(config)
        self._config = config
        return config

    def _parse_config(self, data: Any) -> ToolSettings:
        """Parse a settings mapping into ToolSettings."""
        if not isinstance(data, Mapping):
            raise ConfigInvalid("settings file must contain a mapping")

        config = ToolSettings()
        known = set(config.__dataclass_fields__)
        for key, value in data.items():
            if key not in known:
                raise ConfigInvalid("unknown key", key=str(key))
            expected = type(getattr(config, key))
            if key == "log_dir":
                if value is not None and not isinstance(value, str):
                    raise ConfigInvalid("expected a string", key=key)
            elif key == "per_job_timeout":
                if not isinstance(value, (int, float)) or isinstance(value, bool):
                    raise ConfigInvalid("expected a number", key=key)
                value = float(value)
            elif not isinstance(value, expected) or isinstance(value, bool) != (expected is bool):
                raise ConfigInvalid(f"expected {expected.__name__}", key=key)
            setattr(config, key, value)

        if config.mode not in _MODES:
            raise ConfigInvalid(f"unknown mode {config.mode!r}", key="mode")
        return config

    def save_to_file(self, filepath: str) -> None:
        """Save current settings to a YAML file."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self._config_to_dict(self.config), f, default_flow_style=False)

    def _config_to_dict(self, config: ToolSettings) -> Dict[str, Any]:
        """Convert settings to a dictionary."""
        return {
            "mode": config.mode,
            "max_workers": config.max_workers,
            "job_count": config.job_count,
            "per_job_timeout": config.per_job_timeout,
            "output_dir": config.output_dir,
            "plugin_dir": config.plugin_dir,
            "log_dir": config.log_dir,
            "formats": list(config.formats),
        }
