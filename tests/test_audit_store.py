"""
Tests for the SQLite audit trail.
"""

import sqlite3
import time

import pytest

from extensions.audit import AuditTrail


class TestToolRuns:
    def test_record_and_list(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        trail.record_tool_run("slither", True, 1200, target="/c/A.sol", arguments=["/c/A.sol", "--json", "-"],
                              findings_count=3)
        trail.record_tool_run("solhint", False, 300, error="solhint failed")

        runs = trail.recent_tool_runs()

        assert [r["tool"] for r in runs] == ["solhint", "slither"]
        assert runs[0]["success"] is False
        assert runs[0]["error"] == "solhint failed"
        assert runs[1]["arguments"] == ["/c/A.sol", "--json", "-"]
        assert runs[1]["findings_count"] == 3

    def test_stats(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        trail.record_tool_run("slither", True, 1000)
        trail.record_tool_run("slither", False, 3000)
        trail.record_tool_run("solhint", True, 200)

        stats = trail.tool_run_stats()

        assert stats["totalRuns"] == 3
        assert stats["last24Hours"] == 3
        assert stats["byTool"]["slither"] == {"runs": 2, "avgDuration": 2000, "successRate": 50}
        assert stats["byTool"]["solhint"]["successRate"] == 100

    def test_empty_stats(self, tmp_path):
        stats = AuditTrail(tmp_path / "audit.db").tool_run_stats()
        assert stats == {"totalRuns": 0, "byTool": {}, "last24Hours": 0}

    def test_cleanup(self, tmp_path):
        db = tmp_path / "audit.db"
        trail = AuditTrail(db)
        old_id = trail.record_tool_run("slither", True, 10)
        trail.record_tool_run("solhint", True, 10)

        with sqlite3.connect(db) as conn:
            conn.execute("UPDATE tool_runs SET created_at = ? WHERE id = ?", (time.time() - 40 * 86400, old_id))
            conn.commit()

        assert trail.cleanup_old_runs(30) == 1
        assert [r["tool"] for r in trail.recent_tool_runs()] == ["solhint"]


class TestAnalyses:
    def test_record_analysis(self, tmp_path):
        trail = AuditTrail(tmp_path / "nested" / "audit.db")
        trail.record_analysis("/c/A.sol", {
            "riskAssessment": {"level": "HIGH", "score": 55},
            "summary": {"totalFindings": 4},
        })

        analyses = trail.recent_analyses()

        assert len(analyses) == 1
        assert analyses[0]["path"] == "/c/A.sol"
        assert analyses[0]["score"] == 55
        assert analyses[0]["total_findings"] == 4
        assert analyses[0]["summary"] == {"totalFindings": 4}

    def test_partial_report(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        trail.record_analysis("/c/A.sol", {})
        assert trail.recent_analyses()[0]["risk_level"] == "INFO"


class TestFindings:
    def _record(self, trail, title="Reentrancy in withdraw", severity="high", **kwargs):
        return trail.record_finding(title=title, vulnerability_type="reentrancy", severity=severity, **kwargs)

    def test_record_and_get(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        finding_id = self._record(trail, contract="Vault.sol", function="withdraw", line_number=12,
                                  tool="slither", confidence=0.8)

        finding = trail.get_finding(finding_id)

        assert finding["title"] == "Reentrancy in withdraw"
        assert finding["line_number"] == 12
        assert finding["confidence"] == 0.8
        assert finding["was_valid"] is None
        assert trail.get_finding("missing") is None

    def test_filters(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        first = self._record(trail, title="A", severity="critical")
        self._record(trail, title="B", severity="low")
        trail.update_finding_validation(first, True)

        assert [f["title"] for f in trail.list_findings(severity="critical")] == ["A"]
        assert [f["title"] for f in trail.list_findings(was_valid=True)] == ["A"]
        assert [f["title"] for f in trail.list_findings(pending=True)] == ["B"]
        assert [f["title"] for f in trail.list_findings(limit=1)] == ["B"]

    def test_validation(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        finding_id = self._record(trail)

        assert trail.update_finding_validation(finding_id, False, "guarded by nonReentrant")
        assert not trail.update_finding_validation("missing", True)

        finding = trail.get_finding(finding_id)
        assert finding["was_valid"] is False
        assert finding["notes"] == "guarded by nonReentrant"
        assert finding["reviewed_at"] is not None

    def test_stats_and_delete(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        valid = self._record(trail, severity="critical")
        invalid = self._record(trail)
        self._record(trail)
        trail.update_finding_validation(valid, True)
        trail.update_finding_validation(invalid, False)

        assert trail.finding_stats() == {
            "total": 3,
            "bySeverity": {"critical": 1, "high": 2},
            "validated": 1,
            "falsePositives": 1,
            "pending": 1,
        }

        assert trail.delete_finding(invalid)
        assert not trail.delete_finding(invalid)
        assert trail.finding_stats()["total"] == 2


class TestDetectionRules:
    def test_add_and_list(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        low = trail.add_rule("ecrecover-zero", "signatures", r"ecrecover\(", "high", confidence=0.3)
        high = trail.add_rule("selfdestruct", "lifecycle", r"selfdestruct\(", "critical", confidence=0.9)

        assert [r["id"] for r in trail.enabled_rules()] == [high, low]
        assert [r["id"] for r in trail.enabled_rules("signatures")] == [low]
        assert trail.get_rule(high)["enabled"] is True

        trail.set_rule_enabled(high, False)
        assert [r["id"] for r in trail.enabled_rules()] == [low]

    def test_hits_adjust_confidence(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        rule_id = trail.add_rule("tx-origin", "auth", r"tx\.origin", "critical")

        trail.record_rule_hit(rule_id)
        trail.record_rule_hit(rule_id, false_positive=True)

        rule = trail.get_rule(rule_id)
        assert rule["hits"] == 2
        assert rule["false_positives"] == 1
        assert rule["confidence"] == pytest.approx(0.47)

    def test_confidence_is_clamped(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        rule_id = trail.add_rule("noisy", "misc", "x", "low", confidence=0.02)

        trail.record_rule_hit(rule_id, false_positive=True)
        assert trail.get_rule(rule_id)["confidence"] == 0

    def test_stats(self, tmp_path):
        trail = AuditTrail(tmp_path / "audit.db")
        trail.add_rule("a", "auth", "a", "high", confidence=0.4)
        disabled = trail.add_rule("b", "auth", "b", "low", confidence=0.8)
        trail.add_rule("c", "dos", "c", "medium", confidence=0.6)
        trail.set_rule_enabled(disabled, False)

        assert trail.rule_stats() == {
            "total": 3,
            "enabled": 2,
            "byCategory": {"auth": 2, "dos": 1},
            "avgConfidence": 0.5,
        }
