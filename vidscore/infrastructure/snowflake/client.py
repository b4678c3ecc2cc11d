"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development.

Most code never touches this module directly - it goes through the
repositories, which handle the translation between domain models and rows.
"""

import copy
import json
import logging
import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Generator, Optional, Protocol

import snowflake.connector
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization

logger = logging.getLogger(__name__)


class SnowflakeConnection(Protocol):
    """
    Protocol for Snowflake connections.

    Tests provide the in-memory mock through this without needing a
    warehouse.
    """

    def cursor(self): ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def close(self) -> None: ...


@dataclass
class SnowflakeConfig:
    """Configuration for Snowflake connection."""
    account: str
    user: str
    password: Optional[str] = None
    private_key_path: Optional[str] = None
    database: str = "VIDSCORE"
    schema: str = "PUBLIC"
    warehouse: str = "COMPUTE_WH"
    role: Optional[str] = None


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(key_path: str) -> bytes:
    """
    Load private key from file for key-pair authentication.

    Snowflake wants the key as DER-encoded PKCS8 bytes, not a file path.
    """
    with open(key_path, 'rb') as key_file:
        private_key = serialization.load_pem_private_key(
            key_file.read(),
            password=None,
            backend=default_backend()
        )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If private_key_path is set, uses key-pair auth
    - Otherwise, uses password auth

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    connect_params = {
        'account': config.account,
        'user': config.user,
        'database': config.database,
        'schema': config.schema,
        'warehouse': config.warehouse,
        'role': config.role,
        'client_session_keep_alive': True,
    }

    if config.private_key_path:
        logger.info("Using key-pair authentication for Snowflake")
        connect_params['private_key'] = _load_private_key(config.private_key_path)
    elif config.password:
        logger.info("Using password authentication for Snowflake")
        connect_params['password'] = config.password
    else:
        raise SnowflakeConnectionError(
            "Either password or private_key_path must be provided"
        )

    try:
        conn = snowflake.connector.connect(**connect_params)
    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    logger.debug(
        "Established Snowflake connection",
        extra={
            "account": config.account,
            "database": config.database,
            "schema": config.schema,
        }
    )

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

_WORD = re.compile(r"[a-z0-9]+")


def _token_similarity(a: str, b: str) -> float:
    """Jaccard overlap of lowercase words. Stands in for Cortex embeddings."""
    left = set(_WORD.findall(a.lower()))
    right = set(_WORD.findall(b.lower()))
    if not left or not right:
        return 0.0
    return len(left & right) / len(left | right)


class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support the
    repositories without a real database. Statements are recognised by
    pattern matching and parameters are read positionally, so the mock
    follows the exact SQL the repositories issue.
    """

    def __init__(self, connection: "MockSnowflakeConnection") -> None:
        self._conn = connection
        self._storage = connection._storage
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        """Execute a query against mock storage."""
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        sql = " ".join(query.upper().split())
        params = params or ()
        self._results = []
        self._rowcount = 0

        with self._conn._lock:
            if self._conn.fail_on and self._conn.fail_on in sql:
                raise RuntimeError(f"Mock failure on {self._conn.fail_on}")

            if sql == 'BEGIN':
                self._conn._begin()
            elif sql == 'SELECT 1':
                self._results = [(1,)]
            elif sql.startswith('INSERT INTO VIDEOS'):
                self._insert_video(params)
            elif sql.startswith('UPDATE VIDEOS SET STORAGE_URL'):
                self._update_storage(params)
            elif sql.startswith('UPDATE VIDEOS SET STATUS'):
                self._update_status(params)
            elif sql.startswith('SELECT') and 'FROM VIDEOS' in sql and 'UPDATED_AT <' in sql:
                self._select_stale(params)
            elif sql.startswith('SELECT') and 'FROM VIDEOS' in sql:
                self._select_video(params)
            elif sql.startswith('INSERT INTO ANALYSES'):
                self._insert_analysis(params)
            elif sql.startswith('SELECT') and 'FROM ANALYSES' in sql:
                self._select_analysis(params)
            elif sql.startswith('MERGE INTO KNOWLEDGE_BASE'):
                self._merge_knowledge(params)
            elif sql.startswith('SELECT') and 'FROM KNOWLEDGE_BASE' in sql:
                self._search_knowledge(params)
            else:
                raise ValueError(f"Mock cursor does not support query: {sql[:80]}")

        return self

    def _insert_video(self, params: tuple) -> None:
        (video_id, filename, original_name, mime_type, size_bytes,
         storage_url, storage_key, status, created_at, updated_at) = params
        self._storage['videos'][video_id] = {
            'video_id': video_id,
            'filename': filename,
            'original_name': original_name,
            'mime_type': mime_type,
            'size_bytes': size_bytes,
            'storage_url': storage_url,
            'storage_key': storage_key,
            'status': status,
            'created_at': created_at,
            'updated_at': updated_at,
        }
        self._rowcount = 1

    def _update_storage(self, params: tuple) -> None:
        storage_url, storage_key, updated_at, video_id = params
        row = self._storage['videos'].get(video_id)
        if row:
            row.update(storage_url=storage_url, storage_key=storage_key, updated_at=updated_at)
            self._rowcount = 1

    def _update_status(self, params: tuple) -> None:
        new_status, updated_at, video_id, expected_status = params
        row = self._storage['videos'].get(video_id)
        if row and row['status'] == expected_status:
            row.update(status=new_status, updated_at=updated_at)
            self._rowcount = 1

    def _select_video(self, params: tuple) -> None:
        row = self._storage['videos'].get(params[0])
        if row:
            self._results = [(
                row['video_id'],
                row['filename'],
                row['original_name'],
                row['mime_type'],
                row['size_bytes'],
                row['storage_url'],
                row['storage_key'],
                row['status'],
                row['created_at'],
                row['updated_at'],
            )]

    def _select_stale(self, params: tuple) -> None:
        status, cutoff = params
        self._results = [
            (row['video_id'],)
            for row in self._storage['videos'].values()
            if row['status'] == status and row['updated_at'] < cutoff
        ]

    def _insert_analysis(self, params: tuple) -> None:
        analysis_id, video_id, overall_score, summary, details, created_at = params
        self._storage['analyses'][video_id] = {
            'analysis_id': analysis_id,
            'video_id': video_id,
            'overall_score': overall_score,
            'summary': summary,
            'details': details,
            'created_at': created_at,
        }
        self._rowcount = 1

    def _select_analysis(self, params: tuple) -> None:
        row = self._storage['analyses'].get(params[0])
        if row:
            self._results = [(
                row['analysis_id'],
                row['video_id'],
                row['overall_score'],
                row['summary'],
                row['details'],
                row['created_at'],
            )]

    def _merge_knowledge(self, params: tuple) -> None:
        document_id, title, content, metadata = params[:4]
        self._storage['knowledge_base'][document_id] = {
            'document_id': document_id,
            'title': title,
            'content': content,
            'metadata': metadata,
        }
        self._rowcount = 1

    def _search_knowledge(self, params: tuple) -> None:
        _model, query, limit = params
        scored = [
            (
                doc['document_id'],
                doc['title'],
                doc['content'],
                doc['metadata'],
                _token_similarity(query, f"{doc['title']} {doc['content']}"),
            )
            for doc in self._storage['knowledge_base'].values()
        ]
        scored.sort(key=lambda row: row[4], reverse=True)
        self._results = scored[:limit]

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return self._results

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores data in memory using a simple dictionary structure. BEGIN
    snapshots the tables and rollback restores them, so transactional
    repository code behaves as it would against Snowflake. A transaction
    belongs to the thread that began it and holds the connection lock
    until commit or rollback, so concurrent transactions run one after
    the other.

    Set `fail_on` to a SQL fragment (e.g. "INSERT INTO ANALYSES") to make
    matching statements raise, for exercising failure paths in tests.
    """

    def __init__(self) -> None:
        # In-memory storage: {table_name: {id: row_dict}}
        self._storage: dict[str, dict[str, dict]] = {
            'videos': {},
            'analyses': {},
            'knowledge_base': {},
        }
        self._lock = threading.RLock()
        self._tx = threading.local()
        self.fail_on: Optional[str] = None

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self)

    def _begin(self) -> None:
        if self._in_transaction():
            raise RuntimeError("Mock connection does not support nested transactions")
        self._lock.acquire()
        self._tx.snapshot = copy.deepcopy(self._storage)

    def _in_transaction(self) -> bool:
        return getattr(self._tx, "snapshot", None) is not None

    def _end_transaction(self) -> None:
        self._tx.snapshot = None
        self._lock.release()

    def commit(self) -> None:
        if self._in_transaction():
            self._end_transaction()
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        if self._in_transaction():
            for table, rows in self._tx.snapshot.items():
                self._storage[table] = rows
            self._end_transaction()
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock, data outlives the call)."""
        logger.debug("Mock connection close")

    # Helpers for tests
    def _rows(self, table: str) -> dict[str, dict]:
        return self._storage[table]

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()

    def _add_document(self, document_id: str, title: str, content: str, metadata: Optional[dict[str, Any]] = None) -> None:
        self._storage['knowledge_base'][document_id] = {
            'document_id': document_id,
            'title': title,
            'content': content,
            'metadata': json.dumps(metadata or {}),
        }


@lru_cache()
def get_shared_mock_connection() -> MockSnowflakeConnection:
    """
    Process-wide mock connection.

    Every request and every background run sees the same in-memory tables,
    which is what makes mock mode usable end to end.
    """
    return MockSnowflakeConnection()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Create Snowflake connection based on configuration.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, use the shared in-memory connection

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        yield get_shared_mock_connection()
        return

    if config is None:
        raise ValueError("config is required when not in mock mode")

    with get_snowflake_connection(config) as conn:
        yield conn
