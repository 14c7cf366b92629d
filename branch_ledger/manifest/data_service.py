"""
Data Service for manifests - branch_entries document store
Each row holds one ManifestEntry as a JSON document plus the columns needed
for lookups and for the optimistic version check on write.
"""
import json
import logging
from contextlib import contextmanager
from threading import local
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..db import get_db_engine
from .exceptions import ConcurrencyError, NotFoundError
from .models import Direction, ManifestEntry

logger = logging.getLogger(__name__)


CREATE_BRANCH_ENTRIES = text("""
    CREATE TABLE IF NOT EXISTS branch_entries (
        entry_id VARCHAR(64) NOT NULL PRIMARY KEY,
        manifest_number VARCHAR(64) NOT NULL UNIQUE,
        entry_type VARCHAR(16) NOT NULL,
        status VARCHAR(16) NOT NULL,
        version INTEGER NOT NULL,
        created_at VARCHAR(32),
        document TEXT NOT NULL
    )
""")


class ManifestDataService:
    """Reads and writes manifest entries in the branch_entries table"""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_db_engine()
        self._local = local()

    def ensure_schema(self):
        """Create the branch_entries table if it does not exist"""
        with self.engine.begin() as conn:
            conn.execute(CREATE_BRANCH_ENTRIES)
        logger.debug("branch_entries schema ensured")

    # ==================== TRANSACTION MANAGEMENT ====================
    @property
    def _current_transaction(self):
        """Get current transaction from thread local storage"""
        return getattr(self._local, 'transaction', None)

    @_current_transaction.setter
    def _current_transaction(self, value):
        """Set current transaction in thread local storage"""
        self._local.transaction = value

    @contextmanager
    def db_transaction(self):
        """Context manager for database transactions; nested use joins the outer one"""
        if self._current_transaction:
            yield self._current_transaction
            return

        conn = self.engine.connect()
        trans = conn.begin()
        self._current_transaction = conn
        try:
            yield conn
            trans.commit()
            logger.debug("Transaction committed successfully")
        except Exception as e:
            trans.rollback()
            logger.error(f"Transaction rolled back due to error: {e}")
            raise
        finally:
            self._current_transaction = None
            conn.close()

    # ==================== READ ====================
    def get_entry(self, entry_id: str) -> ManifestEntry:
        """
        Load one entry with the version observed at read time

        Raises:
            NotFoundError: if the entry does not exist
        """
        query = text("""
            SELECT document, version
            FROM branch_entries
            WHERE entry_id = :entry_id
        """)

        with self.engine.connect() as conn:
            row = conn.execute(query, {'entry_id': entry_id}).fetchone()

        if not row:
            raise NotFoundError(f"Entry {entry_id} not found")

        return ManifestEntry.from_dict(json.loads(row._mapping['document']), version=row._mapping['version'])

    def list_entries(self, direction: Optional[Direction] = None) -> List[ManifestEntry]:
        """All entries, newest first, optionally filtered by direction"""
        params = {}
        where = ""
        if direction is not None:
            where = "WHERE entry_type = :entry_type"
            params['entry_type'] = direction.value

        query = text(f"""
            SELECT document, version
            FROM branch_entries
            {where}
            ORDER BY created_at DESC, manifest_number DESC
        """)

        with self.engine.connect() as conn:
            rows = conn.execute(query, params).fetchall()

        return [
            ManifestEntry.from_dict(json.loads(row._mapping['document']), version=row._mapping['version'])
            for row in rows
        ]

    def find_latest_number(self, prefix: str) -> Optional[str]:
        """
        Highest manifest number starting with prefix

        Ordered by length first so numbers wider than the pad width still
        sort numerically. Numbers whose suffix is not all digits are skipped.
        """
        query = text("""
            SELECT manifest_number
            FROM branch_entries
            WHERE manifest_number LIKE :pattern
            ORDER BY LENGTH(manifest_number) DESC, manifest_number DESC
        """)

        with self.engine.connect() as conn:
            for row in conn.execute(query, {'pattern': f"{prefix}%"}):
                number = row[0]
                suffix = number[len(prefix):]
                if suffix.isascii() and suffix.isdigit():
                    return number
                logger.warning(f"Skipping malformed manifest number {number!r} while numbering {prefix}")

        return None

    # ==================== WRITE ====================
    def insert_entry(self, entry: ManifestEntry) -> ManifestEntry:
        """
        Insert a new entry at version 1

        Raises:
            ConcurrencyError: if the id or manifest number is already taken
        """
        query = text("""
            INSERT INTO branch_entries
            (entry_id, manifest_number, entry_type, status, version, created_at, document)
            VALUES (:entry_id, :manifest_number, :entry_type, :status, 1, :created_at, :document)
        """)

        try:
            with self.db_transaction() as conn:
                conn.execute(query, {
                    'entry_id': entry.entry_id,
                    'manifest_number': entry.manifest_number,
                    'entry_type': entry.direction.value,
                    'status': entry.status.value,
                    'created_at': entry.created_at.isoformat() if entry.created_at else None,
                    'document': json.dumps(entry.to_dict(), ensure_ascii=False),
                })
        except IntegrityError as e:
            logger.warning(f"Insert of {entry.manifest_number} collided with an existing entry: {e}")
            raise ConcurrencyError(
                f"Manifest number {entry.manifest_number} is already in use; reload and try again",
                entry_id=entry.entry_id,
            )

        entry.version = 1
        logger.info(f"Inserted entry {entry.entry_id} ({entry.manifest_number})")
        return entry

    def save_entry(self, entry: ManifestEntry) -> ManifestEntry:
        """
        Write an entry back if nobody else wrote it since it was read

        Raises:
            NotFoundError: if the entry was deleted
            ConcurrencyError: if the stored version moved on
        """
        with self.db_transaction() as conn:
            self._update_entry(conn, entry)

        entry.version += 1
        return entry

    def save_entries(self, entries: List[ManifestEntry]) -> List[ManifestEntry]:
        """Write several entries atomically; one conflict rolls back all of them"""
        with self.db_transaction() as conn:
            for entry in entries:
                self._update_entry(conn, entry)

        for entry in entries:
            entry.version += 1
        return entries

    def delete_entry(self, entry_id: str):
        """Hard delete, for explicit administrative action only"""
        with self.db_transaction() as conn:
            result = conn.execute(
                text("DELETE FROM branch_entries WHERE entry_id = :entry_id"),
                {'entry_id': entry_id}
            )
            if result.rowcount == 0:
                raise NotFoundError(f"Entry {entry_id} not found")

        logger.info(f"Deleted entry {entry_id}")

    def _update_entry(self, conn, entry: ManifestEntry):
        query = text("""
            UPDATE branch_entries
            SET
                status = :status,
                version = version + 1,
                document = :document
            WHERE entry_id = :entry_id
            AND version = :expected_version
        """)

        try:
            result = conn.execute(query, {
                'status': entry.status.value,
                'document': json.dumps(entry.to_dict(), ensure_ascii=False),
                'entry_id': entry.entry_id,
                'expected_version': entry.version,
            })
        except SQLAlchemyError as e:
            logger.error(f"Error writing entry {entry.entry_id}: {e}", exc_info=True)
            raise

        if result.rowcount == 0:
            exists = conn.execute(
                text("SELECT version FROM branch_entries WHERE entry_id = :entry_id"),
                {'entry_id': entry.entry_id}
            ).fetchone()
            if not exists:
                raise NotFoundError(f"Entry {entry.entry_id} not found")

            logger.warning(
                f"Stale write rejected for {entry.manifest_number}: "
                f"read version {entry.version}, stored version {exists[0]}"
            )
            raise ConcurrencyError(
                f"Entry {entry.manifest_number} was changed by someone else; reload and try again",
                entry_id=entry.entry_id,
                expected_version=entry.version,
            )
