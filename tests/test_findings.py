"""Tests for the finding model and severity taxonomy."""

import pytest

from solsec.results import (
    Diagnostic,
    Finding,
    Location,
    RuleFailure,
    Severity,
    RULE_FAILURE,
    content_fingerprint,
    normalize_path,
)


class TestSeverity:
    """Tests for severity ordering and parsing."""

    def test_total_order(self):
        """Test severities are ordered from info to critical."""
        assert Severity.INFO < Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
        assert max(Severity.MEDIUM, Severity.CRITICAL, Severity.LOW) == Severity.CRITICAL

    def test_descending(self):
        """Test descending order starts with critical."""
        assert Severity.descending()[0] == Severity.CRITICAL
        assert Severity.descending()[-1] == Severity.INFO

    def test_parse_names_and_aliases(self):
        """Test parsing is case-insensitive."""
        assert Severity.parse("HIGH") == Severity.HIGH
        assert Severity.parse(" medium ") == Severity.MEDIUM
        assert Severity.parse(Severity.LOW) == Severity.LOW

    def test_parse_unknown(self):
        """Test unknown severities are rejected."""
        with pytest.raises(ValueError):
            Severity.parse("catastrophic")


class TestLocation:
    """Tests for finding locations."""

    def test_single_line_range(self):
        """Test a start line alone becomes a one-line range."""
        loc = Location(path="src/lib.rs", start_line=7)
        assert loc.end_line == 7
        assert loc.has_range
        assert str(loc) == "src/lib.rs:7"

    def test_file_level(self):
        """Test locations without lines are file-level."""
        loc = Location(path="src/lib.rs", symbol="vault::withdraw")
        assert not loc.has_range
        assert str(loc) == "src/lib.rs (vault::withdraw)"

    def test_overlaps(self):
        """Test range intersection."""
        a = Location(path="a.rs", start_line=10, end_line=20)
        assert a.overlaps(Location(path="a.rs", start_line=20, end_line=25))
        assert not a.overlaps(Location(path="a.rs", start_line=21, end_line=25))
        assert not a.overlaps(Location(path="a.rs"))

    def test_normalize_path(self):
        """Test path normalization for comparison."""
        assert normalize_path("./src/lib.rs") == "src/lib.rs"
        assert normalize_path("src\\lib.rs") == "src/lib.rs"
        assert normalize_path("src/../src/lib.rs") == "src/lib.rs"
        assert normalize_path("") == ""


class TestFinding:
    """Tests for finding creation."""

    def test_deterministic_id(self, make_finding):
        """Test identical inputs produce identical ids."""
        assert make_finding().id == make_finding().id
        assert make_finding().id != make_finding(start_line=11).id

    def test_fingerprint_ignores_whitespace(self):
        """Test fingerprints survive reformatting."""
        assert content_fingerprint("a + b") == content_fingerprint("a+b")
        assert content_fingerprint("a + b") != content_fingerprint("a - b")
        assert content_fingerprint("   ") == ""

    def test_default_occurrence(self, make_finding):
        """Test a raw finding references its own location."""
        finding = make_finding()
        assert finding.occurrences == (finding.location,)

    def test_severity_coercion(self):
        """Test string severities are parsed."""
        finding = Finding.create(
            rule_id="SOL-001",
            severity="high",
            location=Location(path="a.rs", start_line=1),
            message="m",
        )
        assert finding.severity == Severity.HIGH

    def test_immutable(self, make_finding):
        """Test findings cannot be modified."""
        finding = make_finding()
        with pytest.raises(Exception):
            finding.severity = Severity.CRITICAL

    def test_to_dict(self, make_finding):
        """Test dictionary conversion."""
        data = make_finding(severity=Severity.HIGH, symbol="vault::withdraw").to_dict()
        assert data["severity"] == "high"
        assert data["location"]["symbol"] == "vault::withdraw"
        assert data["occurrences"] == [data["location"]]
        assert data["source"] == "static"


class TestRuleFailure:
    """Tests for rule failure diagnostics."""

    def test_to_diagnostic(self):
        """Test conversion keeps rule, unit and error kind."""
        failure = RuleFailure("SOL-003", "src/lib.rs", "ValueError", "bad input")
        diagnostic = failure.to_diagnostic()
        assert diagnostic == Diagnostic(
            kind=RULE_FAILURE,
            source="SOL-003",
            subject="src/lib.rs",
            message="ValueError: bad input",
        )
