"""
Document record store on PostgreSQL.

Every record is a JSONB document in one `records` table, addressed by
(collection, key) and exposed to callers as "collection:key" ids. Uses
psycopg2 with a ThreadedConnectionPool owned by the store instance.

The pool is created lazily on first use. Concurrent first callers wait on
the same attempt; a failed attempt is not remembered, so the next call
connects again instead of reusing a broken pool.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Tuple

import psycopg2
import psycopg2.errors
import psycopg2.extras
import psycopg2.pool

from utils.record_id import RecordId, generate_key

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS records (
    collection TEXT NOT NULL,
    key TEXT NOT NULL,
    data JSONB NOT NULL,
    PRIMARY KEY (collection, key)
);
CREATE UNIQUE INDEX IF NOT EXISTS records_user_email_key
    ON records (lower(data->>'email')) WHERE collection = 'user';
CREATE INDEX IF NOT EXISTS records_task_author_idx
    ON records ((data->>'author')) WHERE collection = 'task';
CREATE INDEX IF NOT EXISTS records_passkey_user_idx
    ON records ((data->>'userId')) WHERE collection = 'passkey';
CREATE INDEX IF NOT EXISTS records_passkey_credential_idx
    ON records ((data->>'credentialId')) WHERE collection = 'passkey';
"""


class RecordStoreError(Exception):
    """Record store operation failed."""


class StoreConnectionError(RecordStoreError):
    """Store is misconfigured or unreachable. Fatal for the current request."""


class DuplicateRecordError(RecordStoreError):
    """Write violated a uniqueness constraint (duplicate key or unique index)."""


def _to_record(row: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a (collection, key, data) row into a document with its id."""
    document = dict(row["data"])
    document["id"] = f"{row['collection']}:{row['key']}"
    return document


class RecordStore:
    """
    PostgreSQL-backed document store.

    Usage:
        store = RecordStore(database_url)
        store.init_schema()

        user = store.create("user", {"email": "a@x.com"})
        store.merge(RecordId.parse(user["id"], "user"), {"name": "A"})
        store.find("task", {"author": user["id"]}, order_by="createdAt", descending=True)

        store.close()
    """

    def __init__(
        self,
        database_url: str | None,
        minconn: int = 1,
        maxconn: int = 10,
        connect_timeout: int = 10,
    ):
        self._database_url = database_url
        self._minconn = minconn
        self._maxconn = maxconn
        self._connect_timeout = connect_timeout
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def connect(self) -> psycopg2.pool.ThreadedConnectionPool:
        """
        Return the connection pool, creating it on first use.

        Raises:
            StoreConnectionError: If no database URL is configured or the
                handshake fails. Nothing is memoized on failure.
        """
        pool = self._pool
        if pool is not None:
            return pool

        with self._pool_lock:
            if self._pool is not None:
                return self._pool

            if not self._database_url:
                raise StoreConnectionError("Record store configuration missing: database_url")

            try:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=self._minconn,
                    maxconn=self._maxconn,
                    dsn=self._database_url,
                    connect_timeout=self._connect_timeout,
                )
            except psycopg2.Error as e:
                logger.error(f"Record store connection failed: {e}")
                raise StoreConnectionError("Could not connect to record store") from e

            self._pool = pool
            logger.info("Record store connection pool created")
            return pool

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    def init_schema(self) -> None:
        """Create the records table and its indexes if missing."""
        self._execute(SCHEMA_SQL, None, fetch=False)
        logger.info("Record store schema ensured")

    def close(self) -> None:
        """Close the pool. A later call reconnects."""
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None
                logger.info("Record store connection pool closed")

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection for the duration of the block."""
        pool = self.connect()
        conn = None

        try:
            try:
                conn = pool.getconn()
            except psycopg2.Error as e:
                raise StoreConnectionError("Could not get connection from pool") from e
            yield conn
        finally:
            if conn is not None:
                # Broken connections are discarded, not handed to the next caller
                pool.putconn(conn, close=bool(conn.closed))

    @staticmethod
    def _rollback(conn) -> None:
        """Roll back the failed transaction if the connection is still open."""
        if conn.closed:
            return
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def _execute(
        self,
        sql: str,
        params: Tuple | Dict | None,
        fetch: bool = True,
    ) -> List[Dict[str, Any]]:
        """Run one statement in its own transaction and return rows as dicts."""
        with self.get_connection() as conn:
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    cur.execute(sql, params)
                    rows = [dict(row) for row in cur.fetchall()] if fetch and cur.description else []
                conn.commit()
                return rows
            except psycopg2.errors.UniqueViolation as e:
                self._rollback(conn)
                raise DuplicateRecordError(str(e).strip()) from e
            except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
                self._rollback(conn)
                logger.error(f"Record store connection lost: {e}")
                raise StoreConnectionError("Record store connection lost") from e
            except psycopg2.Error as e:
                self._rollback(conn)
                logger.error(f"Record store query failed: {e}")
                raise RecordStoreError(str(e).strip()) from e

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def query(self, sql: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Run a raw parameterized read. Empty list if no rows."""
        return self._execute(sql, params)

    def find(
        self,
        collection: str,
        filters: Dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        """
        Documents in `collection` whose top-level fields equal `filters`.

        Values are compared as text; `email` is compared case-insensitively.
        """
        conditions = ["collection = %s"]
        params: List[Any] = [collection]

        for field, value in (filters or {}).items():
            if field == "email":
                conditions.append("lower(data->>'email') = lower(%s)")
            else:
                conditions.append("data->>%s = %s")
                params.append(field)
            params.append(str(value))

        sql = f"SELECT collection, key, data FROM records WHERE {' AND '.join(conditions)}"

        if order_by:
            sql += f" ORDER BY data->>%s {'DESC' if descending else 'ASC'}"
            params.append(order_by)

        if limit is not None:
            sql += " LIMIT %s"
            params.append(limit)

        return [_to_record(row) for row in self._execute(sql, tuple(params))]

    def select(self, record_id: RecordId) -> Dict[str, Any] | None:
        """Fetch one document by id, or None."""
        rows = self._execute(
            "SELECT collection, key, data FROM records WHERE collection = %s AND key = %s",
            (record_id.collection, record_id.key),
        )
        return _to_record(rows[0]) if rows else None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def create(
        self,
        collection: str,
        data: Dict[str, Any],
        key: str | None = None,
    ) -> Dict[str, Any]:
        """
        Insert a document. Generates a key when none is supplied.

        Raises:
            DuplicateRecordError: Key or a unique field already exists.
        """
        record_id = RecordId(collection, key or generate_key())
        document = {k: v for k, v in data.items() if k != "id"}

        rows = self._execute(
            """INSERT INTO records (collection, key, data)
               VALUES (%s, %s, %s)
               RETURNING collection, key, data""",
            (record_id.collection, record_id.key, psycopg2.extras.Json(document)),
        )
        return _to_record(rows[0])

    def merge(self, record_id: RecordId, patch: Dict[str, Any]) -> Dict[str, Any] | None:
        """Shallow-merge `patch` into a document. Returns the result, or None if missing."""
        document = {k: v for k, v in patch.items() if k != "id"}

        rows = self._execute(
            """UPDATE records SET data = data || %s
               WHERE collection = %s AND key = %s
               RETURNING collection, key, data""",
            (psycopg2.extras.Json(document), record_id.collection, record_id.key),
        )
        return _to_record(rows[0]) if rows else None

    def delete(self, record_id: RecordId) -> bool:
        """Delete a document. True if it existed."""
        rows = self._execute(
            "DELETE FROM records WHERE collection = %s AND key = %s RETURNING key",
            (record_id.collection, record_id.key),
        )
        return len(rows) > 0
