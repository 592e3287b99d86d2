"""Tests for configuration loading and validation."""

import pytest
import yaml

from solsec.config import FuzzConfig, RuleConfig, RuleSettings, ScanConfig, Settings
from solsec.errors import ConfigInvalid
from solsec.results import Severity


class TestRuleConfig:
    """Tests for rule configuration files."""

    def test_defaults(self):
        """Test every rule is enabled by default."""
        config = RuleConfig()
        assert config.is_enabled("SOL-001")
        assert config.min_severity == Severity.INFO
        assert "target/*" in config.ignore_paths

    def test_from_dict(self):
        """Test rule settings, shorthands and lists are parsed."""
        config = RuleConfig.from_dict({
            "rules": {
                "sol-001": {"severity": "critical", "options": {"value_names": ["collateral"]}},
                "SOL-008": False,
            },
            "disabled_rules": ["sol-007"],
            "ignore_paths": ["programs/legacy/*"],
            "min_severity": "low",
        })

        assert config.settings_for("SOL-001").severity == Severity.CRITICAL
        assert config.settings_for("SOL-001").options == {"value_names": ["collateral"]}
        assert not config.is_enabled("SOL-008")
        assert not config.is_enabled("SOL-007")
        assert config.is_enabled("SOL-002")
        assert config.ignore_paths == ["programs/legacy/*"]
        assert config.min_severity == Severity.LOW

    def test_unknown_top_level_key(self):
        """Test an unrecognized key is a configuration error naming the key."""
        with pytest.raises(ConfigInvalid) as exc_info:
            RuleConfig.from_dict({"rules": {}, "rulez": {}})
        assert exc_info.value.key == "rulez"

    @pytest.mark.parametrize("data,key", [
        ({"rules": {"SOL-001": {"severity": "urgent"}}}, "rules.SOL-001.severity"),
        ({"rules": {"SOL-001": {"level": "high"}}}, "rules.SOL-001"),
        ({"rules": {"SOL-001": "yes"}}, "rules.SOL-001"),
        ({"rules": {"SOL-001": {"enabled": "no"}}}, "rules.SOL-001.enabled"),
        ({"ignore_paths": "target/*"}, "ignore_paths"),
        ({"min_severity": "extreme"}, "min_severity"),
    ])
    def test_invalid_values(self, data, key):
        """Test wrong types and unknown severities name the offending key."""
        with pytest.raises(ConfigInvalid) as exc_info:
            RuleConfig.from_dict(data)
        assert exc_info.value.key == key

    def test_load_yaml(self, tmp_path):
        """Test loading from a YAML file."""
        path = tmp_path / "solsec.yaml"
        path.write_text("rules:\n  SOL-003: false\nmin_severity: medium\n")
        config = RuleConfig.load(str(path))
        assert not config.is_enabled("SOL-003")
        assert config.min_severity == Severity.MEDIUM

    def test_load_errors(self, tmp_path):
        """Test missing files and malformed YAML are configuration errors."""
        with pytest.raises(ConfigInvalid):
            RuleConfig.load(str(tmp_path / "missing.yaml"))

        bad = tmp_path / "bad.yaml"
        bad.write_text("rules: [unclosed\n")
        with pytest.raises(ConfigInvalid):
            RuleConfig.load(str(bad))

        not_mapping = tmp_path / "list.yaml"
        not_mapping.write_text("- SOL-001\n")
        with pytest.raises(ConfigInvalid):
            RuleConfig.load(str(not_mapping))

    def test_load_undecodable_file(self, tmp_path):
        """Test a rule file that is not UTF-8 is a configuration error."""
        path = tmp_path / "binary.yaml"
        path.write_bytes(b"\xff\xfe\x00rules")
        with pytest.raises(ConfigInvalid) as exc_info:
            RuleConfig.load(str(path))
        assert exc_info.value.key == "config"

    def test_load_unreadable_file(self, tmp_path, monkeypatch):
        """Test an I/O error while reading is a configuration error."""
        path = tmp_path / "solsec.yaml"
        path.write_text("rules: {}\n")

        def refuse(*args, **kwargs):
            raise PermissionError("permission denied")

        monkeypatch.setattr("solsec.config.settings.open", refuse, raising=False)
        with pytest.raises(ConfigInvalid) as exc_info:
            RuleConfig.load(str(path))
        assert exc_info.value.key == "config"

    def test_to_dict(self):
        """Test serialization of rule settings."""
        config = RuleConfig(rules={"SOL-002": RuleSettings(severity=Severity.HIGH)})
        data = config.to_dict()
        assert data["rules"] == {"SOL-002": {"enabled": True, "severity": "high"}}
        assert data["min_severity"] == "info"


class TestScanConfig:
    """Tests for scan parameters."""

    def test_default_formats(self):
        """Test JSON and HTML are produced by default."""
        assert ScanConfig().resolve_formats() == ["json", "html"]

    def test_only_flags(self):
        """Test --json-only and --html-only select one format."""
        assert ScanConfig(json_only=True).resolve_formats() == ["json"]
        assert ScanConfig(html_only=True).resolve_formats() == ["html"]

    def test_both_only_flags(self):
        """Test requesting both single-format flags is rejected."""
        with pytest.raises(ConfigInvalid):
            ScanConfig(json_only=True, html_only=True).resolve_formats()

    def test_explicit_formats(self):
        """Test explicit formats are normalized and deduplicated."""
        config = ScanConfig(formats=["JSON", "md", "markdown", "csv"])
        assert config.resolve_formats() == ["json", "markdown", "csv"]
        with pytest.raises(ConfigInvalid):
            ScanConfig(formats=["pdf"]).resolve_formats()

    def test_validate(self):
        """Test execution parameters are checked."""
        with pytest.raises(ConfigInvalid):
            ScanConfig(mode="adaptive").validate()
        with pytest.raises(ConfigInvalid):
            ScanConfig(max_workers=0).validate()
        ScanConfig(mode="parallel", max_workers=2).validate()

    def test_load_rules_precedence(self, tmp_path):
        """Test a pre-parsed rule config wins over a file."""
        path = tmp_path / "rules.yaml"
        path.write_text("min_severity: high\n")
        assert ScanConfig(config=str(path)).load_rules().min_severity == Severity.HIGH

        rules = RuleConfig(min_severity=Severity.LOW)
        assert ScanConfig(config=str(path), rules=rules).load_rules() is rules


class TestFuzzConfig:
    """Tests for fuzz parameters."""

    def test_defaults_valid(self):
        """Test the defaults pass validation."""
        FuzzConfig().validate()

    @pytest.mark.parametrize("kwargs,key", [
        ({"jobs": 0}, "jobs"),
        ({"timeout": 0}, "timeout"),
        ({"campaign_timeout": -1}, "campaign_timeout"),
        ({"execution_timeout": 0}, "execution_timeout"),
        ({"grace_period": -0.5}, "grace_period"),
        ({"max_executions_per_job": 0}, "max_executions_per_job"),
        ({"timeout_severity": "high"}, "timeout_severity"),
        ({"crash_severity": "fatal"}, "crash_severity"),
        ({"formats": ["xml"]}, "format"),
    ])
    def test_invalid(self, kwargs, key):
        """Test each invalid parameter is reported by name."""
        with pytest.raises(ConfigInvalid) as exc_info:
            FuzzConfig(**kwargs).validate()
        assert exc_info.value.key == key


class TestSettings:
    """Tests for tool settings."""

    def test_defaults(self):
        """Test defaults without environment overrides."""
        config = Settings(environ={}).config
        assert config.mode == "sequential"
        assert config.job_count == 4
        assert config.log_dir is None

    def test_env_overrides(self):
        """Test SOLSEC_* variables override defaults."""
        config = Settings(environ={
            "SOLSEC_JOBS": "8",
            "SOLSEC_TIMEOUT": "12.5",
            "SOLSEC_MODE": "Parallel",
            "SOLSEC_PLUGIN_DIR": "/opt/solsec/plugins",
        }).config
        assert config.job_count == 8
        assert config.per_job_timeout == 12.5
        assert config.mode == "parallel"
        assert config.plugin_dir == "/opt/solsec/plugins"

    @pytest.mark.parametrize("environ", [
        {"SOLSEC_JOBS": "many"},
        {"SOLSEC_JOBS": "0"},
        {"SOLSEC_TIMEOUT": "-1"},
        {"SOLSEC_MODE": "adaptive"},
    ])
    def test_invalid_env(self, environ):
        """Test malformed environment overrides are configuration errors."""
        with pytest.raises(ConfigInvalid):
            Settings(environ=environ).config

    def test_save_and_load(self, tmp_path):
        """Test settings round-trip through YAML, env applied last."""
        path = tmp_path / "settings.yaml"
        Settings(environ={"SOLSEC_JOBS": "6"}).save_to_file(str(path))
        assert yaml.safe_load(path.read_text())["job_count"] == 6

        settings = Settings(environ={"SOLSEC_MODE": "parallel"})
        config = settings.load_from_file(str(path))
        assert config.job_count == 6
        assert config.mode == "parallel"
        assert settings.config is config

    def test_load_rejects_unknown_keys(self, tmp_path):
        """Test unknown and mistyped settings are rejected."""
        path = tmp_path / "settings.yaml"
        path.write_text("threads: 4\n")
        with pytest.raises(ConfigInvalid) as exc_info:
            Settings(environ={}).load_from_file(str(path))
        assert exc_info.value.key == "threads"

        path.write_text("job_count: true\n")
        with pytest.raises(ConfigInvalid):
            Settings(environ={}).load_from_file(str(path))

    def test_load_undecodable_file(self, tmp_path):
        """Test a settings file that is not UTF-8 is a configuration error."""
        path = tmp_path / "settings.yaml"
        path.write_bytes(b"\xff\xfe\x00jobs")
        with pytest.raises(ConfigInvalid) as exc_info:
            Settings(environ={}).load_from_file(str(path))
        assert exc_info.value.key == "settings"

    def test_load_missing_file(self, tmp_path):
        """Test a missing settings file is a configuration error."""
        with pytest.raises(ConfigInvalid):
            Settings(environ={}).load_from_file(str(tmp_path / "nope.yaml"))
