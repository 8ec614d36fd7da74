"""
Registry maintenance routines.

Integrity audit over persisted registry state: SQLite's own consistency check
plus the registry invariants (fingerprint uniqueness, dense bounded revision
log, bounded grants and tag sets, allocator ahead of every id).
"""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional
from dataclasses import dataclass

from .config import MAX_VERSIONS, MAX_PERMISSIONS, MAX_TAGS, VALID_STATUSES
from .db import get_db, REQUIRED_TABLES
from .registry import CaptureRegistry
from util.logging import logger


@dataclass
class MaintenanceReport:
    """Maintenance operation report."""
    operation: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    issues_found: int = 0
    recommendations: List[str] = None
    errors: List[str] = None
    metadata: Dict[str, Any] = None

    def __post_init__(self):
        if self.recommendations is None:
            self.recommendations = []
        if self.errors is None:
            self.errors = []
        if self.metadata is None:
            self.metadata = {}

    @property
    def passed(self) -> bool:
        return self.issues_found == 0 and not self.errors

    def add_issue(self, message: str) -> None:
        self.issues_found += 1
        self.errors.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for serialization."""
        data = {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "issues_found": self.issues_found,
            "passed": self.passed,
            "recommendations": self.recommendations,
            "errors": self.errors,
            "metadata": self.metadata
        }
        if self.completed_at:
            data["completed_at"] = self.completed_at.isoformat()
        return data


def _check_fingerprint_index(cursor: sqlite3.Cursor, report: MaintenanceReport) -> None:
    cursor.execute('''
        SELECT r.id FROM records r
        LEFT JOIN fingerprint_index f ON f.record_id = r.id AND f.fingerprint = r.fingerprint
        WHERE f.record_id IS NULL
    ''')
    for (record_id,) in cursor.fetchall():
        report.add_issue(f"Record {record_id} has no fingerprint index entry")

    cursor.execute('''
        SELECT f.record_id FROM fingerprint_index f
        LEFT JOIN records r ON r.id = f.record_id
        WHERE r.id IS NULL OR r.fingerprint != f.fingerprint
    ''')
    for (record_id,) in cursor.fetchall():
        report.add_issue(f"Fingerprint index entry points at missing or mismatched record {record_id}")

    cursor.execute("SELECT record_id, COUNT(*) FROM fingerprint_index GROUP BY record_id HAVING COUNT(*) > 1")
    for record_id, count in cursor.fetchall():
        report.add_issue(f"Record {record_id} owns {count} fingerprint index entries")


def _check_statuses(cursor: sqlite3.Cursor, report: MaintenanceReport) -> None:
    cursor.execute('''
        SELECT r.id FROM records r
        LEFT JOIN statuses s ON s.record_id = r.id
        WHERE s.record_id IS NULL
    ''')
    for (record_id,) in cursor.fetchall():
        report.add_issue(f"Record {record_id} has no status entry")

    placeholders = ", ".join("?" for _ in VALID_STATUSES)
    cursor.execute(
        f"SELECT record_id, status FROM statuses WHERE status NOT IN ({placeholders})",
        VALID_STATUSES
    )
    for record_id, status in cursor.fetchall():
        report.add_issue(f"Record {record_id} has invalid status '{status}'")


def _check_revisions(cursor: sqlite3.Cursor, report: MaintenanceReport) -> None:
    cursor.execute("SELECT record_id, COUNT(*), MIN(revision), MAX(revision) FROM revisions GROUP BY record_id")
    for record_id, count, low, high in cursor.fetchall():
        if count > MAX_VERSIONS:
            report.add_issue(f"Record {record_id} has {count} revisions (max {MAX_VERSIONS})")
        if low != 1 or high != count:
            report.add_issue(f"Record {record_id} revisions are not dense from 1 (min {low}, max {high}, count {count})")


def _check_bounded_lists(cursor: sqlite3.Cursor, report: MaintenanceReport) -> None:
    cursor.execute("SELECT record_id, collaborator, permissions FROM collaborators")
    for record_id, collaborator, permissions in cursor.fetchall():
        if len(json.loads(permissions)) > MAX_PERMISSIONS:
            report.add_issue(f"Grant for '{collaborator}' on record {record_id} exceeds {MAX_PERMISSIONS} permissions")

    cursor.execute("SELECT record_id, tags FROM tags")
    for record_id, tags in cursor.fetchall():
        if len(json.loads(tags)) > MAX_TAGS:
            report.add_issue(f"Record {record_id} has more than {MAX_TAGS} tags")


def check_registry_integrity(registry: CaptureRegistry) -> MaintenanceReport:
    """
    Check SQLite integrity and the registry invariants.

    Returns:
        MaintenanceReport: Detailed integrity check results
    """
    report = MaintenanceReport(
        operation="registry_integrity_check",
        started_at=datetime.now()
    )

    db_path = Path(registry.db_path)
    if not db_path.exists():
        report.add_issue(f"Database file not found: {registry.db_path}")
        report.completed_at = datetime.now()
        return report

    report.metadata["file_size"] = db_path.stat().st_size

    try:
        with get_db(registry.db_path) as conn:
            cursor = conn.cursor()

            cursor.execute("PRAGMA integrity_check")
            integrity_result = cursor.fetchone()
            if integrity_result and integrity_result[0] == "ok":
                report.metadata["integrity_status"] = "passed"
            else:
                report.add_issue(f"Integrity check failed: {integrity_result}")
                report.recommendations.append("Restore the registry database from a known good copy")

            cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row[0] for row in cursor.fetchall()}
            missing = [t for t in REQUIRED_TABLES if t not in tables]
            if missing:
                report.add_issue(f"Missing tables: {missing}")
                report.completed_at = datetime.now()
                return report

            _check_fingerprint_index(cursor, report)
            _check_statuses(cursor, report)
            _check_revisions(cursor, report)
            _check_bounded_lists(cursor, report)

            cursor.execute("SELECT next_id, sequence FROM registry_state WHERE id = 1")
            next_id, sequence = cursor.fetchone()
            cursor.execute("SELECT COALESCE(MAX(id), 0), COUNT(*) FROM records")
            max_id, record_count = cursor.fetchone()
            if next_id <= max_id:
                report.add_issue(f"Allocator next_id {next_id} is not ahead of highest record id {max_id}")
                report.recommendations.append("Advance registry_state.next_id past the highest record id")

            cursor.execute("SELECT COUNT(*) FROM revisions")
            revision_count = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM collaborators")
            grant_count = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM events")
            event_count = cursor.fetchone()[0]

            report.metadata.update({
                "record_count": record_count,
                "revision_count": revision_count,
                "grant_count": grant_count,
                "event_count": event_count,
                "next_id": next_id,
                "sequence": sequence,
            })

            if record_count == 0:
                report.recommendations.append("Registry is empty")

    except sqlite3.Error as e:
        report.errors.append(f"Registry integrity check failed: {e}")

    report.completed_at = datetime.now()
    logger.log_integrity_report("registry_integrity_check", report.issues_found, {
        "record_count": report.metadata.get("record_count", 0)
    })
    return report
