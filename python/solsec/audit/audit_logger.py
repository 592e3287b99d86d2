"""Structured audit logging for scans and fuzz campaigns."""

import json
import logging
import sys
import threading
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
import uuid


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LogType(Enum):
    """Types of audit log entries."""
    SESSION = "session"
    RULE = "rule"
    FINDING = "finding"
    FAILURE = "failure"
    JOB = "job"
    PLUGIN = "plugin"


class AuditLogger:
    """
    Structured audit logger.

    Features:
    - JSONL format for machine parsing
    - Console output for human readability
    - Session tracking with correlation IDs
    - Thread-safe logging (rules may run on worker threads)
    """

    def __init__(
        self,
        log_dir: Optional[str] = None,
        session_id: Optional[str] = None,
        console_output: bool = False,
        log_level: int = logging.INFO,
        max_evidence_length: int = 500
    ):
        """
        Initialize audit logger.

        Args:
            log_dir: Directory for log files (None = no file logging)
            session_id: Session ID (auto-generated if not provided)
            console_output: Enable console output
            log_level: Logging level for the console logger
            max_evidence_length: Max length for evidence truncation
        """
        self.session_id = session_id or str(uuid.uuid4())
        self.console_output = console_output
        self.max_evidence_length = max_evidence_length

        self._log_dir = Path(log_dir) if log_dir else None
        self._log_file: Optional[Path] = None
        self._lock = threading.Lock()
        self._entries: List[Dict[str, Any]] = []
        self._stats = {
            "rules": 0,
            "findings": 0,
            "failures": 0,
            "jobs": 0,
            "plugins": 0,
        }

        self._console_logger = logging.getLogger(f"solsec.audit.{self.session_id[:8]}")
        self._console_logger.setLevel(log_level)

        if console_output and not self._console_logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(AuditFormatter())
            self._console_logger.addHandler(handler)
            self._console_logger.propagate = False

        if self._log_dir:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = _now().strftime("%Y%m%d_%H%M%S")
            self._log_file = self._log_dir / f"audit_{timestamp}_{self.session_id[:8]}.jsonl"

    def start_session(self, metadata: Optional[Dict[str, Any]] = None) -> None:
        """Log session start."""
        self._log_entry(LogType.SESSION, {
            "event": "session_start",
            "metadata": metadata or {},
        })

    def end_session(self, summary: Optional[Dict[str, Any]] = None) -> None:
        """Log session end with summary."""
        self._log_entry(LogType.SESSION, {
            "event": "session_end",
            "stats": dict(self._stats),
            "summary": summary or {},
        })

    def log_rule(self, rule_id: str, unit_path: str, findings: int) -> None:
        """Log one completed (rule, unit) evaluation."""
        self._log_entry(LogType.RULE, {
            "rule_id": rule_id,
            "unit": unit_path,
            "findings": findings,
        })

    def log_finding(self, finding: Dict[str, Any]) -> None:
        """Log a finding (as produced by Finding.to_dict)."""
        location = finding.get("location", {})
        self._log_entry(LogType.FINDING, {
            "finding_id": finding.get("id", ""),
            "rule_id": finding.get("rule_id", ""),
            "severity": finding.get("severity", ""),
            "path": location.get("path", ""),
            "line": location.get("start_line"),
            "message": finding.get("message", ""),
            "evidence": self._truncate(json.dumps(finding.get("evidence", []), sort_keys=True)),
        })

    def log_failure(self, data: Dict[str, Any]) -> None:
        """Log an isolated failure (rule fault, plugin rejection, unreachable target)."""
        self._log_entry(LogType.FAILURE, {
            "kind": data.get("kind", "unknown"),
            "source": data.get("source", ""),
            "subject": data.get("subject", ""),
            "message": data.get("message", ""),
        })

    def log_job_event(self, job_id: str, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Log a fuzz job lifecycle event."""
        self._log_entry(LogType.JOB, {
            "job_id": job_id,
            "event": event,
            "data": data or {},
        })

    def log_plugin_event(self, plugin: str, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Log a plugin registration event."""
        self._log_entry(LogType.PLUGIN, {
            "plugin": plugin,
            "event": event,
            "data": data or {},
        })

    def _log_entry(self, log_type: LogType, fields: Dict[str, Any]) -> None:
        """Write log entry to memory, file and console."""
        entry = {
            "type": log_type.value,
            "timestamp": _now().isoformat(),
            "session_id": self.session_id,
            **fields,
        }
        with self._lock:
            stat = {
                LogType.RULE: "rules",
                LogType.FINDING: "findings",
                LogType.FAILURE: "failures",
                LogType.JOB: "jobs",
                LogType.PLUGIN: "plugins",
            }.get(log_type)
            if stat:
                self._stats[stat] += 1
            self._entries.append(entry)

            if self._log_file:
                with open(self._log_file, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry, default=str) + "\n")

            if self.console_output:
                self._log_to_console(log_type, entry)

    def _log_to_console(self, log_type: LogType, entry: Dict[str, Any]) -> None:
        """Format and log entry to console."""
        if log_type == LogType.RULE:
            self._console_logger.debug(
                f"[{entry['rule_id']}] {entry['unit']} findings={entry['findings']}"
            )
        elif log_type == LogType.FINDING:
            self._console_logger.warning(
                f"[{entry['rule_id']}] FINDING severity={entry['severity']} "
                f"{entry['path']}:{entry['line']} {entry['message']}"
            )
        elif log_type == LogType.FAILURE:
            self._console_logger.error(
                f"[{entry['source']}] {entry['kind'].upper()} {entry['subject']}: {entry['message']}"
            )
        elif log_type == LogType.JOB:
            self._console_logger.info(f"[{entry['job_id']}] {entry['event']}")
        elif log_type == LogType.PLUGIN:
            self._console_logger.info(f"[plugin:{entry['plugin']}] {entry['event']}")
        elif log_type == LogType.SESSION:
            if entry.get("event") == "session_start":
                self._console_logger.info(f"=== Session Started: {self.session_id[:8]} ===")
            else:
                self._console_logger.info(
                    f"=== Session Ended: findings={self._stats['findings']} "
                    f"failures={self._stats['failures']} ==="
                )

    def _truncate(self, text: str) -> str:
        """Truncate text to max length."""
        if len(text) > self.max_evidence_length:
            return text[:self.max_evidence_length] + "..."
        return text

    def get_entries(self, log_type: Optional[LogType] = None) -> List[Dict[str, Any]]:
        """Get log entries, optionally filtered by type."""
        with self._lock:
            if log_type:
                return [e for e in self._entries if e.get("type") == log_type.value]
            return list(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get logging statistics."""
        with self._lock:
            return {
                **self._stats,
                "total_entries": len(self._entries),
                "session_id": self.session_id,
                "log_file": str(self._log_file) if self._log_file else None,
            }


class AuditFormatter(logging.Formatter):
    """Colouring formatter for audit console output."""

    COLORS = {
        logging.DEBUG: "\033[36m",    # Cyan
        logging.INFO: "\033[32m",     # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",    # Red
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, "")
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S")
        return f"{color}[{timestamp}] {record.getMessage()}{self.RESET}"
