"""
Capture registry - content-addressed, access-controlled record of capture
report submissions.

State lives in SQLite:
    records            canonical registration per id
    fingerprint_index  fingerprint -> record id (uniqueness)
    revisions          append-only, at most MAX_VERSIONS per record
    collaborators      per-record grants (role + permission list)
    statuses           per-record lifecycle label and visibility
    tags               per-record tag set, replaced wholesale
    registry_state     id allocator and logical sequence counter

Every write runs in one BEGIN IMMEDIATE transaction under an in-process lock,
so each operation applies completely or not at all.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence

from .config import (
    get_db_path,
    event_log_enabled,
    FINGERPRINT_MAX_BYTES,
    MAX_METADATA_LEN,
    MAX_LABEL_LEN,
    MAX_NOTES_LEN,
    MAX_ROLE_LEN,
    MAX_PERMISSIONS,
    MAX_PERMISSION_LEN,
    MAX_TAGS,
    MAX_TAG_LEN,
    MAX_VERSIONS,
    MAX_VOLUME,
    VALID_STATUSES,
    DEFAULT_STATUS,
    PERMISSION_UPDATE,
)
from .db import get_db, init_db
from .errors import (
    RegistryError,
    AlreadyRegistered,
    Unauthorized,
    InvalidFingerprint,
    InvalidMethod,
    InvalidVolume,
    InvalidLocation,
    NotFound,
    MaxVersionsReached,
    InvalidStatus,
    MetadataTooLong,
    TooManyTags,
    InvalidTag,
    InvalidNotes,
    InvalidRole,
    TooManyPermissions,
    InvalidPermission,
)
from .schema import (
    CaptureRecord,
    Revision,
    CollaboratorGrant,
    StatusEntry,
    TagSet,
    RegistryEvent,
)
from util.logging import logger, sanitize_payload

_RECORD_FIELDS = ["id", "fingerprint", "owner", "created", "volume", "method", "location", "metadata"]
_RECORD_COLUMNS = ", ".join(_RECORD_FIELDS)
_JOINED_RECORD_COLUMNS = ", ".join("r." + name for name in _RECORD_FIELDS)


_SQLITE_INT_MIN = -2**63
_SQLITE_INT_MAX = 2**63 - 1


def _storable_id(value) -> bool:
    """True if value can be a stored key; anything else is simply absent."""
    return (isinstance(value, int) and not isinstance(value, bool)
            and _SQLITE_INT_MIN <= value <= _SQLITE_INT_MAX)


def _as_fingerprint(value) -> Optional[bytes]:
    """Return value as bytes, or None if it is not a byte sequence."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    return None


def _validate_fingerprint(value) -> bytes:
    fingerprint = _as_fingerprint(value)
    if not fingerprint:
        raise InvalidFingerprint("fingerprint must be a non-empty byte sequence")
    if len(fingerprint) > FINGERPRINT_MAX_BYTES:
        raise InvalidFingerprint(
            f"fingerprint exceeds {FINGERPRINT_MAX_BYTES} bytes",
            {"length": len(fingerprint)},
        )
    return fingerprint


def _validate_label(value, max_len: int, error_cls, name: str, required: bool = False) -> str:
    """Type and length checks; contents are not inspected."""
    if not isinstance(value, str):
        raise error_cls(f"{name} must be a string")
    if required and not value:
        raise error_cls(f"{name} cannot be empty")
    if len(value) > max_len:
        raise error_cls(f"{name} exceeds {max_len} characters", {"length": len(value)})
    return value


def _row_to_record(row) -> CaptureRecord:
    record_id, fingerprint, owner, created, volume, method, location, metadata = row
    return CaptureRecord(
        id=record_id,
        fingerprint=bytes(fingerprint),
        owner=owner,
        created=created,
        volume=volume,
        method=method,
        location=location,
        metadata=metadata,
    )


class CaptureRegistry:
    """Registry of capture events keyed by content fingerprint.

    Args:
        db_path: SQLite file backing the registry (defaults to DB_PATH).
        clock: optional callable returning the host's logical height. When
            given, writes are stamped with max(clock(), stored sequence).

    Usage:
        registry = CaptureRegistry()
        record_id = registry.register(fp, 1000, "DAC", "Site A", "", caller="alice")
        registry.set_status(record_id, "verified", True, caller="alice")
    """

    def __init__(self, db_path: Optional[str] = None, clock: Optional[Callable[[], int]] = None):
        self.db_path = db_path or get_db_path()
        self.clock = clock
        self._lock = threading.RLock()
        init_db(self.db_path)

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """One serialized write transaction; rolls back on any exception."""
        with self._lock, get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            try:
                yield cursor
            except BaseException:
                conn.rollback()
                raise
            conn.commit()

    @contextmanager
    def _rejections(self, operation: str, caller: str, record_id: Optional[int] = None):
        """Log registry errors raised by an operation, then propagate them."""
        try:
            yield
        except RegistryError as e:
            logger.log_registry_rejection(operation, e, caller, record_id)
            raise
        except sqlite3.Error as e:
            logger.error(f"Database error during {operation} for '{caller}': {e}")
            raise

    def _stamp(self, cursor: sqlite3.Cursor) -> int:
        """Take the sequence value for this write and advance the counter."""
        cursor.execute("SELECT sequence FROM registry_state WHERE id = 1")
        stored = cursor.fetchone()[0]
        sequence = stored
        if self.clock is not None:
            sequence = max(int(self.clock()), stored)
        cursor.execute("UPDATE registry_state SET sequence = ? WHERE id = 1", (sequence + 1,))
        return sequence

    def _next_id(self, cursor: sqlite3.Cursor) -> int:
        """Return the current allocator value and advance it by one."""
        cursor.execute("SELECT next_id FROM registry_state WHERE id = 1")
        record_id = cursor.fetchone()[0]
        cursor.execute("UPDATE registry_state SET next_id = ? WHERE id = 1", (record_id + 1,))
        return record_id

    def _record_event(self, cursor: sqlite3.Cursor, record_id: int, actor: str,
                      action: str, payload: dict, sequence: int) -> None:
        if not event_log_enabled():
            return
        cursor.execute(
            "INSERT INTO events (record_id, actor, action, payload, sequence) VALUES (?, ?, ?, ?, ?)",
            (record_id, actor, action, json.dumps(sanitize_payload(payload)), sequence)
        )

    @staticmethod
    def _owner_of(cursor: sqlite3.Cursor, record_id: int) -> Optional[str]:
        if not _storable_id(record_id):
            return None
        cursor.execute("SELECT owner FROM records WHERE id = ?", (record_id,))
        row = cursor.fetchone()
        return row[0] if row else None

    @classmethod
    def _authorized(cls, cursor: sqlite3.Cursor, record_id: int, actor: str, permission: str) -> bool:
        """Owner, or a collaborator whose grant lists the permission.

        A missing record is simply "not authorized".
        """
        owner = cls._owner_of(cursor, record_id)
        if owner is None:
            return False
        if actor == owner:
            return True
        cursor.execute(
            "SELECT permissions FROM collaborators WHERE record_id = ? AND collaborator = ?",
            (record_id, actor)
        )
        row = cursor.fetchone()
        return bool(row) and permission in json.loads(row[0])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register(self, fingerprint: bytes, volume: int, method: str, location: str,
                 metadata: str, caller: str) -> int:
        """Register a capture report and return its new record id.

        Raises:
            InvalidFingerprint, InvalidVolume, InvalidMethod, InvalidLocation,
            MetadataTooLong: input validation, in that order.
            AlreadyRegistered: the fingerprint is already indexed.
        """
        with self._rejections("register", caller):
            fingerprint = _validate_fingerprint(fingerprint)
            if isinstance(volume, bool) or not isinstance(volume, int) or volume <= 0:
                raise InvalidVolume("volume must be a positive integer")
            if volume > MAX_VOLUME:
                raise InvalidVolume(f"volume exceeds {MAX_VOLUME}")
            method = _validate_label(method, MAX_LABEL_LEN, InvalidMethod, "method", required=True)
            location = _validate_label(location, MAX_LABEL_LEN, InvalidLocation, "location", required=True)
            metadata = metadata or ""
            if not isinstance(metadata, str):
                raise MetadataTooLong("metadata must be a string")
            if len(metadata) > MAX_METADATA_LEN:
                raise MetadataTooLong(
                    f"metadata exceeds {MAX_METADATA_LEN} characters", {"length": len(metadata)}
                )

            with self._transaction() as cursor:
                cursor.execute(
                    "SELECT record_id FROM fingerprint_index WHERE fingerprint = ?", (fingerprint,)
                )
                existing = cursor.fetchone()
                if existing:
                    raise AlreadyRegistered(
                        "fingerprint already registered", {"record_id": existing[0]}
                    )

                record_id = self._next_id(cursor)
                sequence = self._stamp(cursor)
                cursor.execute(
                    f"INSERT INTO records ({_RECORD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (record_id, fingerprint, caller, sequence, volume, method, location, metadata)
                )
                try:
                    cursor.execute(
                        "INSERT INTO fingerprint_index (fingerprint, record_id) VALUES (?, ?)",
                        (fingerprint, record_id)
                    )
                except sqlite3.IntegrityError:
                    raise AlreadyRegistered("fingerprint already registered")
                cursor.execute(
                    "INSERT INTO statuses (record_id, status, visible, last_update) VALUES (?, ?, ?, ?)",
                    (record_id, DEFAULT_STATUS, True, sequence)
                )
                self._record_event(cursor, record_id, caller, "register", {
                    "fingerprint": fingerprint,
                    "volume": volume,
                    "method": method,
                    "location": location,
                }, sequence)

        logger.log_registry_operation("register", record_id, caller, {
            "fingerprint": fingerprint, "volume": volume, "sequence": sequence
        })
        return record_id

    def add_revision(self, record_id: int, new_fingerprint: bytes, notes: str, caller: str) -> int:
        """Append a revision and return its number (1..MAX_VERSIONS).

        The record's own fingerprint and the fingerprint index are left
        untouched; the revision log is a parallel audit trail.

        Raises:
            NotFound, Unauthorized, MaxVersionsReached, InvalidFingerprint,
            InvalidNotes
        """
        with self._rejections("add_revision", caller, record_id):
            with self._transaction() as cursor:
                if self._owner_of(cursor, record_id) is None:
                    raise NotFound(f"record {record_id} not found")
                if not self._authorized(cursor, record_id, caller, PERMISSION_UPDATE):
                    raise Unauthorized(f"'{caller}' may not revise record {record_id}")

                cursor.execute(
                    "SELECT COUNT(*) FROM revisions WHERE record_id = ? AND revision BETWEEN 1 AND ?",
                    (record_id, MAX_VERSIONS)
                )
                count = cursor.fetchone()[0]
                if count >= MAX_VERSIONS:
                    raise MaxVersionsReached(
                        f"record {record_id} already has {MAX_VERSIONS} revisions"
                    )

                fingerprint = _validate_fingerprint(new_fingerprint)
                notes = notes or ""
                if not isinstance(notes, str) or len(notes) > MAX_NOTES_LEN:
                    raise InvalidNotes(f"notes must be a string of at most {MAX_NOTES_LEN} characters")

                revision = count + 1
                sequence = self._stamp(cursor)
                cursor.execute(
                    "INSERT INTO revisions (record_id, revision, fingerprint, notes, created) VALUES (?, ?, ?, ?, ?)",
                    (record_id, revision, fingerprint, notes, sequence)
                )
                self._record_event(cursor, record_id, caller, "add_revision", {
                    "revision": revision, "fingerprint": fingerprint, "notes": notes
                }, sequence)

        logger.log_registry_operation("add_revision", record_id, caller, {"revision": revision})
        return revision

    def set_tags(self, record_id: int, tags: Sequence[str], caller: str) -> None:
        """Replace the record's full tag set.

        Authorization is checked before existence, so a missing record
        yields Unauthorized rather than NotFound.
        """
        with self._rejections("set_tags", caller, record_id):
            tags = list(tags or [])
            with self._transaction() as cursor:
                if not self._authorized(cursor, record_id, caller, PERMISSION_UPDATE):
                    raise Unauthorized(f"'{caller}' may not tag record {record_id}")
                if len(tags) > MAX_TAGS:
                    raise TooManyTags(f"at most {MAX_TAGS} tags allowed", {"count": len(tags)})
                for tag in tags:
                    _validate_label(tag, MAX_TAG_LEN, InvalidTag, "tag")

                sequence = self._stamp(cursor)
                cursor.execute(
                    "INSERT OR REPLACE INTO tags (record_id, tags) VALUES (?, ?)",
                    (record_id, json.dumps(tags))
                )
                self._record_event(cursor, record_id, caller, "set_tags", {"tags": tags}, sequence)

        logger.log_registry_operation("set_tags", record_id, caller, {"count": len(tags)})

    def add_collaborator(self, record_id: int, collaborator: str, role: str,
                         permissions: Sequence[str], caller: str) -> None:
        """Grant a collaborator a role and permission list. Owner only.

        Grants are additive; a second grant for the same collaborator fails
        with AlreadyRegistered whatever its role or permissions.
        """
        with self._rejections("add_collaborator", caller, record_id):
            permissions = list(permissions or [])
            with self._transaction() as cursor:
                owner = self._owner_of(cursor, record_id)
                if owner is None:
                    raise NotFound(f"record {record_id} not found")
                if caller != owner:
                    raise Unauthorized(f"only the owner may grant access to record {record_id}")
                cursor.execute(
                    "SELECT 1 FROM collaborators WHERE record_id = ? AND collaborator = ?",
                    (record_id, collaborator)
                )
                if cursor.fetchone():
                    raise AlreadyRegistered(
                        f"'{collaborator}' already holds a grant on record {record_id}"
                    )

                role = _validate_label(role, MAX_ROLE_LEN, InvalidRole, "role")
                if len(permissions) > MAX_PERMISSIONS:
                    raise TooManyPermissions(
                        f"at most {MAX_PERMISSIONS} permissions allowed", {"count": len(permissions)}
                    )
                for permission in permissions:
                    _validate_label(permission, MAX_PERMISSION_LEN, InvalidPermission, "permission")

                sequence = self._stamp(cursor)
                cursor.execute(
                    "INSERT INTO collaborators (record_id, collaborator, role, permissions, added) VALUES (?, ?, ?, ?, ?)",
                    (record_id, collaborator, role, json.dumps(permissions), sequence)
                )
                self._record_event(cursor, record_id, caller, "add_collaborator", {
                    "collaborator": collaborator, "role": role, "permissions": permissions
                }, sequence)

        logger.log_registry_operation("add_collaborator", record_id, caller, {
            "collaborator": collaborator, "role": role
        })

    def set_status(self, record_id: int, new_status: str, visibility: bool, caller: str) -> None:
        """Replace the record's status label and visibility flag.

        Same check ordering as set_tags: Unauthorized before NotFound.
        """
        with self._rejections("set_status", caller, record_id):
            with self._transaction() as cursor:
                if not self._authorized(cursor, record_id, caller, PERMISSION_UPDATE):
                    raise Unauthorized(f"'{caller}' may not change status of record {record_id}")
                if new_status not in VALID_STATUSES:
                    raise InvalidStatus(
                        f"status must be one of: {VALID_STATUSES}", {"status": new_status}
                    )

                sequence = self._stamp(cursor)
                cursor.execute(
                    "INSERT OR REPLACE INTO statuses (record_id, status, visible, last_update) VALUES (?, ?, ?, ?)",
                    (record_id, new_status, bool(visibility), sequence)
                )
                self._record_event(cursor, record_id, caller, "set_status", {
                    "status": new_status, "visible": bool(visibility)
                }, sequence)

        logger.log_registry_operation("set_status", record_id, caller, {
            "status": new_status, "visible": bool(visibility)
        })

    # ------------------------------------------------------------------
    # Reads: never raise for absent keys
    # ------------------------------------------------------------------

    def get_record(self, record_id: int) -> Optional[CaptureRecord]:
        if not _storable_id(record_id):
            return None
        with get_db(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_RECORD_COLUMNS} FROM records WHERE id = ?", (record_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def get_record_by_fingerprint(self, fingerprint: bytes) -> Optional[CaptureRecord]:
        fingerprint = _as_fingerprint(fingerprint)
        if not fingerprint:
            return None
        with get_db(self.db_path) as conn:
            row = conn.execute(
                f"SELECT {_JOINED_RECORD_COLUMNS} "
                "FROM fingerprint_index f JOIN records r ON r.id = f.record_id "
                "WHERE f.fingerprint = ?",
                (fingerprint,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def get_revision(self, record_id: int, revision: int) -> Optional[Revision]:
        if not (_storable_id(record_id) and _storable_id(revision)):
            return None
        with get_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT fingerprint, notes, created FROM revisions WHERE record_id = ? AND revision = ?",
                (record_id, revision)
            ).fetchone()
        if not row:
            return None
        return Revision(
            record_id=record_id,
            revision=revision,
            fingerprint=bytes(row[0]),
            notes=row[1],
            created=row[2],
        )

    def list_revisions(self, record_id: int) -> List[Revision]:
        if not _storable_id(record_id):
            return []
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                "SELECT revision, fingerprint, notes, created FROM revisions WHERE record_id = ? ORDER BY revision",
                (record_id,)
            ).fetchall()
        return [
            Revision(record_id=record_id, revision=r[0], fingerprint=bytes(r[1]), notes=r[2], created=r[3])
            for r in rows
        ]

    def get_revision_count(self, record_id: int) -> int:
        if not _storable_id(record_id):
            return 0
        with get_db(self.db_path) as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM revisions WHERE record_id = ?", (record_id,)
            ).fetchone()[0]

    def get_tags(self, record_id: int) -> Optional[TagSet]:
        if not _storable_id(record_id):
            return None
        with get_db(self.db_path) as conn:
            row = conn.execute("SELECT tags FROM tags WHERE record_id = ?", (record_id,)).fetchone()
        return TagSet(record_id=record_id, tags=json.loads(row[0])) if row else None

    def get_collaborator(self, record_id: int, collaborator: str) -> Optional[CollaboratorGrant]:
        if not _storable_id(record_id):
            return None
        with get_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT role, permissions, added FROM collaborators WHERE record_id = ? AND collaborator = ?",
                (record_id, collaborator)
            ).fetchone()
        if not row:
            return None
        return CollaboratorGrant(
            record_id=record_id,
            collaborator=collaborator,
            role=row[0],
            permissions=json.loads(row[1]),
            added=row[2],
        )

    def list_collaborators(self, record_id: int) -> List[CollaboratorGrant]:
        if not _storable_id(record_id):
            return []
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                "SELECT collaborator, role, permissions, added FROM collaborators WHERE record_id = ? ORDER BY added, collaborator",
                (record_id,)
            ).fetchall()
        return [
            CollaboratorGrant(record_id=record_id, collaborator=r[0], role=r[1],
                              permissions=json.loads(r[2]), added=r[3])
            for r in rows
        ]

    def get_status(self, record_id: int) -> Optional[StatusEntry]:
        if not _storable_id(record_id):
            return None
        with get_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT status, visible, last_update FROM statuses WHERE record_id = ?", (record_id,)
            ).fetchone()
        if not row:
            return None
        return StatusEntry(record_id=record_id, status=row[0], visible=bool(row[1]), last_update=row[2])

    def is_authorized(self, record_id: int, actor: str, permission: str) -> bool:
        with get_db(self.db_path) as conn:
            return self._authorized(conn.cursor(), record_id, actor, permission)

    def peek_next_id(self) -> int:
        with get_db(self.db_path) as conn:
            return conn.execute("SELECT next_id FROM registry_state WHERE id = 1").fetchone()[0]

    def current_sequence(self) -> int:
        """Sequence value the next successful write will be stamped with (absent a clock)."""
        with get_db(self.db_path) as conn:
            return conn.execute("SELECT sequence FROM registry_state WHERE id = 1").fetchone()[0]

    def get_record_count(self) -> int:
        with get_db(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    def list_records(self, owner: Optional[str] = None, status: Optional[str] = None,
                     limit: int = 100) -> List[CaptureRecord]:
        """List records in id order, optionally filtered by owner and status."""
        if limit <= 0:
            return []
        query = (
            f"SELECT {_JOINED_RECORD_COLUMNS} "
            "FROM records r LEFT JOIN statuses s ON s.record_id = r.id"
        )
        clauses, params = [], []
        if owner is not None:
            clauses.append("r.owner = ?")
            params.append(owner)
        if status is not None:
            clauses.append("s.status = ?")
            params.append(status)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY r.id LIMIT ?"
        params.append(min(limit, _SQLITE_INT_MAX))

        with get_db(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_record(row) for row in rows]

    def list_events(self, record_id: Optional[int] = None, limit: int = 100) -> List[RegistryEvent]:
        """List audit events, newest first."""
        if limit <= 0 or (record_id is not None and not _storable_id(record_id)):
            return []
        with get_db(self.db_path) as conn:
            if record_id is None:
                rows = conn.execute(
                    "SELECT id, record_id, actor, action, payload, sequence FROM events ORDER BY id DESC LIMIT ?",
                    (min(limit, _SQLITE_INT_MAX),)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT id, record_id, actor, action, payload, sequence FROM events WHERE record_id = ? ORDER BY id DESC LIMIT ?",
                    (record_id, min(limit, _SQLITE_INT_MAX))
                ).fetchall()
        return [
            RegistryEvent(id=r[0], record_id=r[1], actor=r[2], action=r[3],
                          payload=json.loads(r[4]) if r[4] else {}, sequence=r[5])
            for r in rows
        ]
