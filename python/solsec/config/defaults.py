"""Default configuration values."""

# Scan defaults
DEFAULT_MODE = "sequential"  # sequential, parallel
DEFAULT_MAX_WORKERS = 4
DEFAULT_OUTPUT_DIR = "./solsec-reports"
DEFAULT_FORMATS = ["json", "html"]
SUPPORTED_FORMATS = ["json", "html", "markdown", "csv"]
DEFAULT_MIN_SEVERITY = "info"

# Paths never worth scanning (build output, vendored code)
DEFAULT_IGNORE_PATHS = [
    "target/*",
    "node_modules/*",
    ".anchor/*",
]

# Fuzz defaults
DEFAULT_JOB_COUNT = 4
DEFAULT_JOB_TIMEOUT = 300.0  # 5 minutes per job
DEFAULT_GRACE_PERIOD = 5.0
DEFAULT_MAX_EXECUTIONS_PER_JOB = 10000
DEFAULT_TIMEOUT_SEVERITY = "low"
DEFAULT_CRASH_SEVERITY = "high"
DEFAULT_VIOLATION_SEVERITY = "critical"

# Plugins
DEFAULT_PLUGIN_DIR = "~/.solsec/plugins"

# Audit logging
DEFAULT_LOG_DIR = None  # no file logging unless configured
DEFAULT_MAX_EVIDENCE_LOG_LENGTH = 500

# Top-level keys accepted in a rule configuration file
RULE_CONFIG_KEYS = ("rules", "ignore_paths", "disabled_rules", "min_severity")
RULE_SETTINGS_KEYS = ("enabled", "severity", "options")
