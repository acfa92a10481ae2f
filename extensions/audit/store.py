"""
SQLite audit trail.

Records every external tool run and every completed analysis, plus the
findings auditors report and the custom detection rules they maintain.
Nothing here feeds back into scoring; it is a log for later review.
"""

import json
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Any


class AuditTrail:
    """SQLite-backed log of tool runs, analyses, findings and detection rules."""

    def __init__(self, db_path: Path | None = None):
        """Initialize the store.

        Args:
            db_path: SQLite file. Defaults to ~/.lestrade/audit.db
        """
        if db_path is None:
            db_path = Path.home() / ".lestrade" / "audit.db"
        db_path.parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tool_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tool TEXT NOT NULL,
                    target TEXT,
                    arguments TEXT,
                    success INTEGER NOT NULL,
                    findings_count INTEGER,
                    duration_ms INTEGER,
                    error TEXT,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS analyses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL,
                    risk_level TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    total_findings INTEGER NOT NULL,
                    summary TEXT,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS findings (
                    id TEXT PRIMARY KEY,
                    contract TEXT,
                    function TEXT,
                    vulnerability_type TEXT NOT NULL,
                    severity TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT,
                    code_snippet TEXT,
                    line_number INTEGER,
                    tool TEXT,
                    pattern TEXT,
                    confidence REAL,
                    was_valid INTEGER,
                    reviewed_at REAL,
                    notes TEXT,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS detection_rules (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    pattern TEXT NOT NULL,
                    description TEXT,
                    severity TEXT NOT NULL,
                    confidence REAL NOT NULL DEFAULT 0.5,
                    hits INTEGER NOT NULL DEFAULT 0,
                    false_positives INTEGER NOT NULL DEFAULT 0,
                    enabled INTEGER NOT NULL DEFAULT 1,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_findings_severity ON findings(severity)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_findings_valid ON findings(was_valid)")
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tool_runs_created
                ON tool_runs(created_at)
            """)
            conn.commit()

    def record_tool_run(
        self,
        tool: str,
        success: bool,
        duration_ms: int = 0,
        target: str | None = None,
        arguments: list[str] | None = None,
        findings_count: int | None = None,
        error: str | None = None,
    ) -> int:
        """Log one tool execution. Returns the row id."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO tool_runs
                    (tool, target, arguments, success, findings_count, duration_ms, error, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tool,
                    target,
                    json.dumps(arguments) if arguments is not None else None,
                    1 if success else 0,
                    findings_count,
                    duration_ms,
                    error,
                    time.time(),
                ),
            )
            conn.commit()
            return cursor.lastrowid

    def recent_tool_runs(self, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent tool runs, newest first."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM tool_runs ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()

        runs = []
        for row in rows:
            run = dict(row)
            run["success"] = bool(run["success"])
            run["arguments"] = json.loads(run["arguments"]) if run["arguments"] else None
            runs.append(run)
        return runs

    def tool_run_stats(self) -> dict[str, Any]:
        """Run counts, average duration and success rate per tool."""
        with sqlite3.connect(self.db_path) as conn:
            total = conn.execute("SELECT COUNT(*) FROM tool_runs").fetchone()[0]
            rows = conn.execute("""
                SELECT
                    tool,
                    COUNT(*),
                    AVG(duration_ms),
                    AVG(CASE WHEN success = 1 THEN 1.0 ELSE 0.0 END)
                FROM tool_runs
                GROUP BY tool
            """).fetchall()
            last_day = conn.execute(
                "SELECT COUNT(*) FROM tool_runs WHERE created_at > ?",
                (time.time() - 24 * 3600,),
            ).fetchone()[0]

        return {
            "totalRuns": total,
            "byTool": {
                tool: {
                    "runs": runs,
                    "avgDuration": round(avg_duration or 0),
                    "successRate": round((success_rate or 0) * 100),
                }
                for tool, runs, avg_duration, success_rate in rows
            },
            "last24Hours": last_day,
        }

    def record_analysis(self, path: str, report: dict[str, Any]) -> int:
        """Log the outcome of one comprehensive analysis."""
        risk = report.get("riskAssessment", {})
        summary = report.get("summary", {})
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO analyses (path, risk_level, score, total_findings, summary, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    path,
                    risk.get("level", "INFO"),
                    risk.get("score", 0),
                    summary.get("totalFindings", 0),
                    json.dumps(summary),
                    time.time(),
                ),
            )
            conn.commit()
            return cursor.lastrowid

    def recent_analyses(self, limit: int = 20) -> list[dict[str, Any]]:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM analyses ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()

        analyses = []
        for row in rows:
            entry = dict(row)
            entry["summary"] = json.loads(entry["summary"]) if entry["summary"] else {}
            analyses.append(entry)
        return analyses

    def cleanup_old_runs(self, days_to_keep: int = 30) -> int:
        """Delete tool runs older than the retention window. Returns rows removed."""
        cutoff = time.time() - days_to_keep * 24 * 3600
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM tool_runs WHERE created_at < ?", (cutoff,))
            conn.commit()
            return cursor.rowcount

    # Findings

    def record_finding(
        self,
        title: str,
        vulnerability_type: str,
        severity: str,
        description: str | None = None,
        contract: str | None = None,
        function: str | None = None,
        code_snippet: str | None = None,
        line_number: int | None = None,
        tool: str | None = None,
        pattern: str | None = None,
        confidence: float | None = None,
    ) -> str:
        """Store a reported finding. Returns its generated id."""
        finding_id = uuid.uuid4().hex
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO findings (
                    id, contract, function, vulnerability_type, severity, title, description,
                    code_snippet, line_number, tool, pattern, confidence, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    finding_id, contract, function, vulnerability_type, severity, title, description,
                    code_snippet, line_number, tool, pattern, confidence, time.time(),
                ),
            )
            conn.commit()
        return finding_id

    def get_finding(self, finding_id: str) -> dict[str, Any] | None:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM findings WHERE id = ?", (finding_id,)).fetchone()
        return _finding_row(row) if row else None

    def list_findings(
        self,
        severity: str | None = None,
        vulnerability_type: str | None = None,
        was_valid: bool | None = None,
        pending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Findings matching every given filter, newest first. `pending` keeps unreviewed ones."""
        sql = "SELECT * FROM findings WHERE 1=1"
        params: list[Any] = []
        if severity:
            sql += " AND severity = ?"
            params.append(severity)
        if vulnerability_type:
            sql += " AND vulnerability_type = ?"
            params.append(vulnerability_type)
        if was_valid is not None:
            sql += " AND was_valid = ?"
            params.append(1 if was_valid else 0)
        if pending:
            sql += " AND was_valid IS NULL"
        sql += " ORDER BY created_at DESC, rowid DESC"
        if limit:
            sql += " LIMIT ?"
            params.append(limit)

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(sql, params).fetchall()
        return [_finding_row(row) for row in rows]

    def update_finding_validation(self, finding_id: str, was_valid: bool, notes: str | None = None) -> bool:
        """Mark a finding as confirmed or a false positive. Returns False for unknown ids."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                "UPDATE findings SET was_valid = ?, reviewed_at = ?, notes = ? WHERE id = ?",
                (1 if was_valid else 0, time.time(), notes, finding_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    def delete_finding(self, finding_id: str) -> bool:
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM findings WHERE id = ?", (finding_id,))
            conn.commit()
            return cursor.rowcount > 0

    def finding_stats(self) -> dict[str, Any]:
        """Totals by severity and review state."""
        with sqlite3.connect(self.db_path) as conn:
            total = conn.execute("SELECT COUNT(*) FROM findings").fetchone()[0]
            by_severity = dict(conn.execute(
                "SELECT severity, COUNT(*) FROM findings GROUP BY severity"
            ).fetchall())
            validated = conn.execute("SELECT COUNT(*) FROM findings WHERE was_valid = 1").fetchone()[0]
            false_positives = conn.execute("SELECT COUNT(*) FROM findings WHERE was_valid = 0").fetchone()[0]

        return {
            "total": total,
            "bySeverity": by_severity,
            "validated": validated,
            "falsePositives": false_positives,
            "pending": total - validated - false_positives,
        }

    # Detection rules

    def add_rule(
        self,
        name: str,
        category: str,
        pattern: str,
        severity: str,
        description: str | None = None,
        confidence: float = 0.5,
    ) -> str:
        """Store a custom detection rule. Returns its generated id."""
        rule_id = uuid.uuid4().hex
        now = time.time()
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO detection_rules
                    (id, name, category, pattern, description, severity, confidence, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (rule_id, name, category, pattern, description, severity, confidence, now, now),
            )
            conn.commit()
        return rule_id

    def get_rule(self, rule_id: str) -> dict[str, Any] | None:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM detection_rules WHERE id = ?", (rule_id,)).fetchone()
        return _rule_row(row) if row else None

    def enabled_rules(self, category: str | None = None) -> list[dict[str, Any]]:
        """Enabled rules, most confident first."""
        sql = "SELECT * FROM detection_rules WHERE enabled = 1"
        params: list[Any] = []
        if category:
            sql += " AND category = ?"
            params.append(category)
        sql += " ORDER BY confidence DESC"

        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(sql, params).fetchall()
        return [_rule_row(row) for row in rows]

    def record_rule_hit(self, rule_id: str, false_positive: bool = False) -> None:
        """Count a rule hit and nudge its confidence (-0.05 for a false positive, +0.02 otherwise)."""
        if false_positive:
            sql = """
                UPDATE detection_rules
                SET hits = hits + 1, false_positives = false_positives + 1,
                    confidence = MAX(0, confidence - 0.05), updated_at = ?
                WHERE id = ?
            """
        else:
            sql = """
                UPDATE detection_rules
                SET hits = hits + 1, confidence = MIN(1, confidence + 0.02), updated_at = ?
                WHERE id = ?
            """
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(sql, (time.time(), rule_id))
            conn.commit()

    def set_rule_enabled(self, rule_id: str, enabled: bool) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "UPDATE detection_rules SET enabled = ?, updated_at = ? WHERE id = ?",
                (1 if enabled else 0, time.time(), rule_id),
            )
            conn.commit()

    def rule_stats(self) -> dict[str, Any]:
        with sqlite3.connect(self.db_path) as conn:
            total = conn.execute("SELECT COUNT(*) FROM detection_rules").fetchone()[0]
            enabled = conn.execute("SELECT COUNT(*) FROM detection_rules WHERE enabled = 1").fetchone()[0]
            by_category = dict(conn.execute(
                "SELECT category, COUNT(*) FROM detection_rules GROUP BY category"
            ).fetchall())
            avg_confidence = conn.execute(
                "SELECT AVG(confidence) FROM detection_rules WHERE enabled = 1"
            ).fetchone()[0]

        return {
            "total": total,
            "enabled": enabled,
            "byCategory": by_category,
            "avgConfidence": round(avg_confidence or 0, 2),
        }


def _finding_row(row: sqlite3.Row) -> dict[str, Any]:
    finding = dict(row)
    if finding["was_valid"] is not None:
        finding["was_valid"] = bool(finding["was_valid"])
    return finding


def _rule_row(row: sqlite3.Row) -> dict[str, Any]:
    rule = dict(row)
    rule["enabled"] = bool(rule["enabled"])
    return rule
