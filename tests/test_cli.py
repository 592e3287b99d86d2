"""Tests for the command-line interface."""

import json
import os
import signal
import sys
import threading

import pytest

from solsec import __version__
from solsec.cli import EXIT_CONFIG, EXIT_CRITICAL, EXIT_INTERRUPTED, EXIT_OK, build_parser, main

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="shell harnesses need a POSIX shell")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SOLSEC_JOBS", "SOLSEC_TIMEOUT", "SOLSEC_MODE", "SOLSEC_PLUGIN_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def plugin_dir(tmp_path):
    return str(tmp_path / "plugins")


def write_harness(root, name, body):
    path = root / "fuzz" / "bin" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\ncat > /dev/null\n" + body)
    path.chmod(0o755)
    return path


class TestParser:
    """Tests for argument parsing."""

    def test_scan_flags(self):
        """Test scan options are parsed."""
        args = build_parser().parse_args([
            "scan", "programs/vault", "--json-only", "--no-open", "--fail-on-critical", "-f", "csv"
        ])
        assert args.command == "scan"
        assert args.json_only and args.no_open and args.fail_on_critical
        assert args.formats == ["csv"]

    def test_timeout_severity_choices(self):
        """Test only low or medium timeout severities are accepted."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["fuzz", ".", "--timeout-severity", "high"])

    def test_version(self, capsys):
        """Test --version prints the tool version."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--version"])
        assert __version__ in capsys.readouterr().out


class TestScanCommand:
    """Tests for `solsec scan`."""

    def test_fail_on_critical(self, workspace, tmp_path, plugin_dir):
        """Test a critical finding gives exit status 1 and a JSON report."""
        out = tmp_path / "out"
        code = main([
            "scan", str(workspace), "--json-only", "--no-open", "--fail-on-critical",
            "-o", str(out), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_CRITICAL
        assert sorted(p.name for p in out.iterdir()) == ["scan-report.json"]
        data = json.loads((out / "scan-report.json").read_text())
        assert data["summary"]["critical"] >= 1

    def test_critical_without_flag(self, workspace, tmp_path, plugin_dir):
        """Test critical findings alone do not fail the run."""
        code = main([
            "scan", str(workspace), "--no-open", "-o", str(tmp_path / "out"), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_OK
        assert (tmp_path / "out" / "scan-report.html").is_file()
        assert (tmp_path / "out" / "scan-report.json").is_file()

    def test_clean_program_passes_gate(self, workspace, tmp_path, plugin_dir):
        """Test the gate passes when nothing critical is found."""
        code = main([
            "scan", str(workspace / "programs" / "counter"), "--json-only", "--fail-on-critical",
            "-o", str(tmp_path / "out"), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_OK

    def test_conflicting_only_flags(self, workspace, tmp_path, plugin_dir):
        """Test --json-only with --html-only is a configuration error."""
        code = main([
            "scan", str(workspace), "--json-only", "--html-only", "-o", str(tmp_path / "out"),
            "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_CONFIG
        assert not (tmp_path / "out").exists()

    def test_bad_rule_config(self, workspace, tmp_path, plugin_dir):
        """Test an unknown configuration key aborts before scanning."""
        config = tmp_path / "solsec.yaml"
        config.write_text("rules: {}\nseverity_floor: high\n")
        code = main([
            "scan", str(workspace), "-c", str(config), "--json-only",
            "-o", str(tmp_path / "out"), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_CONFIG
        assert not (tmp_path / "out").exists()

    def test_zero_workers_rejected(self, workspace, tmp_path, plugin_dir):
        """Test --workers 0 is a configuration error."""
        code = main([
            "scan", str(workspace), "--mode", "parallel", "--workers", "0",
            "-o", str(tmp_path / "out"), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_CONFIG
        assert not (tmp_path / "out").exists()

    def test_formats(self, workspace, tmp_path, plugin_dir):
        """Test repeatable --format flags pick the artifacts."""
        out = tmp_path / "out"
        code = main([
            "scan", str(workspace), "-f", "md", "-f", "csv", "-o", str(out), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_OK
        assert sorted(p.name for p in out.iterdir()) == ["scan-report.csv", "scan-report.md"]

    def test_audit_log(self, workspace, tmp_path, plugin_dir):
        """Test --log-dir writes a JSONL audit trail."""
        logs = tmp_path / "logs"
        main([
            "--log-dir", str(logs), "scan", str(workspace), "--json-only",
            "-o", str(tmp_path / "out"), "--plugin-dir", plugin_dir,
        ])
        files = list(logs.glob("audit_*.jsonl"))
        assert len(files) == 1
        entries = [json.loads(line) for line in files[0].read_text().splitlines()]
        assert entries[0]["event"] == "session_start"
        assert entries[-1]["event"] == "session_end"

    def test_settings_file(self, workspace, tmp_path, plugin_dir):
        """Test the settings file supplies default formats."""
        settings = tmp_path / "settings.yaml"
        settings.write_text("formats: [csv]\n")
        out = tmp_path / "out"
        code = main([
            "--settings", str(settings), "scan", str(workspace), "-o", str(out), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_OK
        assert [p.name for p in out.iterdir()] == ["scan-report.csv"]

    def test_installed_plugin_runs(self, tmp_path, plugin_dir, plugin_file):
        """Test rules from installed plugins contribute findings."""
        assert main(["plugin", "install", str(plugin_file()), "--plugin-dir", plugin_dir]) == EXIT_OK
        program = tmp_path / "program" / "src"
        program.mkdir(parents=True)
        (program / "lib.rs").write_text("pub fn f(x: u64) {\n    dbg!(x);\n}\n")

        out = tmp_path / "out"
        main(["scan", str(tmp_path / "program"), "--json-only", "-o", str(out), "--plugin-dir", plugin_dir])
        data = json.loads((out / "scan-report.json").read_text())
        assert "ACME-001" in data["by_rule"]


class TestPluginCommand:
    """Tests for `solsec plugin`."""

    def test_list_empty(self, plugin_dir, capsys):
        """Test listing an empty plugin directory."""
        assert main(["plugin", "list", "--plugin-dir", plugin_dir]) == EXIT_OK
        assert "0 plugin(s) installed" in capsys.readouterr().out

    def test_install_list_remove(self, plugin_dir, plugin_file, capsys):
        """Test the plugin lifecycle through the command line."""
        assert main(["plugin", "install", str(plugin_file()), "--plugin-dir", plugin_dir]) == EXIT_OK
        assert main(["plugin", "list", "--plugin-dir", plugin_dir]) == EXIT_OK
        out = capsys.readouterr().out
        assert "acme 1.2.0 (api 1.0) [rules]" in out
        assert "rule ACME-001" in out

        assert main(["plugin", "remove", "acme", "--plugin-dir", plugin_dir]) == EXIT_OK
        assert main(["plugin", "remove", "acme", "--plugin-dir", plugin_dir]) == EXIT_CONFIG

    def test_install_incompatible(self, plugin_dir, plugin_file, capsys):
        """Test an incompatible plugin is refused with a non-zero status."""
        code = main(["plugin", "install", str(plugin_file(api_version="2.0")), "--plugin-dir", plugin_dir])
        assert code == EXIT_CONFIG
        assert "incompatible api version" in capsys.readouterr().out


@posix_only
class TestFuzzCommand:
    """Tests for `solsec fuzz`."""

    def test_clean_campaign(self, tmp_path, plugin_dir):
        """Test a campaign over a clean harness writes a JSON report."""
        write_harness(tmp_path, "fuzz_ok", "exit 0\n")
        out = tmp_path / "out"
        code = main([
            "fuzz", str(tmp_path), "--jobs", "2", "--timeout", "30", "--max-executions", "3",
            "-o", str(out), "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_OK
        data = json.loads((out / "fuzz-report.json").read_text())
        assert data["findings"] == []
        assert data["metadata"]["kind"] == "fuzz"
        assert data["metadata"]["job_states"]["completed"] == 4

    def test_panicking_harness(self, tmp_path, plugin_dir):
        """Test a panic is reported as an invariant finding with its location."""
        write_harness(
            tmp_path,
            "fuzz_withdraw",
            "echo \"thread 'main' panicked at programs/vault/src/lib.rs:12:9:\" >&2\n"
            "echo 'attempt to subtract with overflow' >&2\n"
            "exit 101\n",
        )
        out = tmp_path / "out"
        code = main([
            "fuzz", str(tmp_path), "--timeout", "30", "--max-executions", "2", "--seed", "7",
            "-o", str(out), "-f", "json", "-f", "md", "--plugin-dir", plugin_dir,
        ])
        assert code == EXIT_OK
        data = json.loads((out / "fuzz-report.json").read_text())
        assert [f["rule_id"] for f in data["findings"]] == ["FUZZ-INVARIANT"]
        assert data["findings"][0]["location"]["path"] == "programs/vault/src/lib.rs"
        assert (out / "fuzz-report.md").is_file()

    def test_interrupt_writes_partial_report(self, tmp_path, plugin_dir):
        """Test Ctrl-C keeps crashes already found, writes the report and exits 130."""
        write_harness(tmp_path, "fuzz_crash", "echo 'assertion failed' >&2\nexit 3\n")
        write_harness(tmp_path, "fuzz_slow", "exec sleep 30\n")
        out = tmp_path / "out"
        timer = threading.Timer(1.0, os.kill, (os.getpid(), signal.SIGINT))
        timer.start()
        try:
            code = main([
                "fuzz", str(tmp_path), "--jobs", "2", "--timeout", "60",
                "-o", str(out), "--plugin-dir", plugin_dir,
            ])
        finally:
            timer.cancel()

        assert code == EXIT_INTERRUPTED
        data = json.loads((out / "fuzz-report.json").read_text())
        assert [f["rule_id"] for f in data["findings"]] == ["FUZZ-CRASH"]
        assert data["metadata"]["cancel_reason"] == "interrupted"
        assert data["metadata"]["job_states"]["running"] == 0

    @pytest.mark.parametrize("flag", [["--jobs", "0"], ["--timeout", "0"], ["--max-executions", "0"]])
    def test_zero_limits_rejected(self, tmp_path, plugin_dir, flag):
        """Test explicit zero limits are configuration errors, not defaults."""
        write_harness(tmp_path, "fuzz_ok", "exit 0\n")
        code = main(["fuzz", str(tmp_path), *flag, "-o", str(tmp_path / "out"), "--plugin-dir", plugin_dir])
        assert code == EXIT_CONFIG
        assert not (tmp_path / "out").exists()

    def test_no_harness(self, tmp_path, plugin_dir):
        """Test fuzzing a tree without harnesses is a configuration error."""
        code = main(["fuzz", str(tmp_path), "-o", str(tmp_path / "out"), "--plugin-dir", plugin_dir])
        assert code == EXIT_CONFIG
