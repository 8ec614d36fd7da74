"""
SQLite foundation for the capture registry.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional
from .config import get_db_path, ensure_db_directory, get_sequence_start

REQUIRED_TABLES = [
    'records',
    'fingerprint_index',
    'revisions',
    'collaborators',
    'statuses',
    'tags',
    'registry_state',
    'events',
]


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection.

    Connections run in autocommit mode; writers open their own
    ``BEGIN IMMEDIATE`` transaction.
    """
    conn = sqlite3.connect(db_path or get_db_path(), isolation_level=None)
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    ensure_db_directory(db_path)
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS records (
                id INTEGER PRIMARY KEY,
                fingerprint BLOB NOT NULL,
                owner TEXT NOT NULL,
                created INTEGER NOT NULL,
                volume INTEGER NOT NULL CHECK (volume > 0),
                method TEXT NOT NULL,
                location TEXT NOT NULL,
                metadata TEXT NOT NULL DEFAULT ''
            )
        ''')

        # Single source of truth for "already registered"
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS fingerprint_index (
                fingerprint BLOB PRIMARY KEY,
                record_id INTEGER NOT NULL REFERENCES records(id)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS revisions (
                record_id INTEGER NOT NULL REFERENCES records(id),
                revision INTEGER NOT NULL CHECK (revision >= 1),
                fingerprint BLOB NOT NULL,
                notes TEXT NOT NULL DEFAULT '',
                created INTEGER NOT NULL,
                PRIMARY KEY (record_id, revision)
            )
        ''')

        # permissions is a JSON array
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS collaborators (
                record_id INTEGER NOT NULL REFERENCES records(id),
                collaborator TEXT NOT NULL,
                role TEXT NOT NULL,
                permissions TEXT NOT NULL,
                added INTEGER NOT NULL,
                PRIMARY KEY (record_id, collaborator)
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS statuses (
                record_id INTEGER PRIMARY KEY REFERENCES records(id),
                status TEXT NOT NULL,
                visible BOOLEAN NOT NULL DEFAULT TRUE,
                last_update INTEGER NOT NULL
            )
        ''')

        # tags is a JSON array
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS tags (
                record_id INTEGER PRIMARY KEY,
                tags TEXT NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS registry_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                next_id INTEGER NOT NULL,
                sequence INTEGER NOT NULL
            )
        ''')
        cursor.execute(
            "INSERT OR IGNORE INTO registry_state (id, next_id, sequence) VALUES (1, 1, ?)",
            (get_sequence_start(),)
        )

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                record_id INTEGER NOT NULL,
                actor TEXT NOT NULL,
                action TEXT NOT NULL,
                payload TEXT,
                sequence INTEGER NOT NULL
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_records_owner ON records(owner)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_events_record_id ON events(record_id, id DESC)')


def health_check(db_path: Optional[str] = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [table[0] for table in cursor.fetchall()]
            return all(table in table_names for table in REQUIRED_TABLES)
    except sqlite3.Error:
        return False
