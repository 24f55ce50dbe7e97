import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

import structlog

from agentmeter.errors import StorageError
from agentmeter.models import UsageRecord

logger = structlog.get_logger()

MEMORY_PATH = ":memory:"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    model TEXT NOT NULL,
    input_tokens INTEGER NOT NULL,
    output_tokens INTEGER NOT NULL,
    reasoning_tokens INTEGER NOT NULL DEFAULT 0,
    cache_creation_tokens INTEGER NOT NULL DEFAULT 0,
    cache_read_tokens INTEGER NOT NULL DEFAULT 0,
    cost REAL NOT NULL,
    timestamp INTEGER NOT NULL,
    date TEXT NOT NULL,
    created_at INTEGER DEFAULT (CAST(strftime('%s', 'now') AS INTEGER))
);

CREATE INDEX IF NOT EXISTS idx_messages_date ON messages(date);
CREATE INDEX IF NOT EXISTS idx_messages_provider ON messages(provider);
CREATE INDEX IF NOT EXISTS idx_messages_model ON messages(model);
CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);

CREATE TABLE IF NOT EXISTS sync_state (
    provider TEXT PRIMARY KEY,
    last_sync_timestamp INTEGER NOT NULL,
    last_message_id TEXT
);
"""

_COLUMNS = (
    "id, session_id, provider, model, input_tokens, output_tokens, "
    "reasoning_tokens, cache_creation_tokens, cache_read_tokens, "
    "cost, timestamp, date"
)


@dataclass(frozen=True, slots=True)
class SyncState:
    provider: "str"
    # epoch milliseconds of the last successful sync
    last_sync_timestamp: "int"
    last_record_id: "str | None"


def _to_row(record: "UsageRecord") -> "tuple[object, ...]":
    return (
        record.id,
        record.session_id,
        record.provider,
        record.model,
        record.input_tokens,
        record.output_tokens,
        record.reasoning_tokens,
        record.cache_creation_tokens,
        record.cache_read_tokens,
        record.cost,
        record.timestamp,
        record.date,
    )


def _from_row(row: "sqlite3.Row") -> "UsageRecord":
    return UsageRecord(
        id=row["id"],
        session_id=row["session_id"],
        provider=row["provider"],
        model=row["model"],
        input_tokens=row["input_tokens"],
        output_tokens=row["output_tokens"],
        reasoning_tokens=row["reasoning_tokens"],
        cache_creation_tokens=row["cache_creation_tokens"],
        cache_read_tokens=row["cache_read_tokens"],
        cost=row["cost"],
        timestamp=row["timestamp"],
        date=row["date"],
    )


class UsageStore:
    """
    UsageStore persists canonical usage records in a local SQLite
    file. It assumes exclusive access for the lifetime of one
    process: a single connection, no record-level locking.

    Writes that touch more than one row run inside transaction():
    either every row lands or none does.
    """

    def __init__(self, path: "str | Path" = MEMORY_PATH) -> "None":
        target = str(path)
        if target != MEMORY_PATH:
            resolved = Path(target).expanduser()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            target = str(resolved)

        self._path = target
        # autocommit; transactions are opened explicitly
        self._conn: "sqlite3.Connection" = sqlite3.connect(target, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._in_transaction = False

    @property
    def path(self) -> "str":
        return self._path

    def __enter__(self) -> "UsageStore":
        return self

    def __exit__(self, *exc_info: "object") -> "None":
        self.close()

    def close(self) -> "None":
        self._conn.close()

    @contextmanager
    def transaction(self) -> "Iterator[None]":
        """
        wraps the block in BEGIN/COMMIT, rolling back on any error.
        A nested call joins the outer transaction. SQLite errors are
        re-raised as StorageError.
        """
        if self._in_transaction:
            yield
            return

        self._conn.execute("BEGIN")
        self._in_transaction = True
        try:
            yield
        except sqlite3.Error as exc:
            self._conn.execute("ROLLBACK")
            logger.error("storage_transaction_rolled_back", path=self._path, error=str(exc))
            raise StorageError(f"storage transaction failed: {exc}") from exc
        except BaseException:
            self._conn.execute("ROLLBACK")
            logger.error("storage_transaction_rolled_back", path=self._path)
            raise
        else:
            self._conn.execute("COMMIT")
        finally:
            self._in_transaction = False

    def upsert(self, records: "Sequence[UsageRecord]") -> "int":
        """
        inserts or replaces records by identifier in one transaction.
        """
        with self.transaction():
            self._conn.executemany(
                f"INSERT OR REPLACE INTO messages ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [_to_row(record) for record in records],
            )
        return len(records)

    def query_by_date_range(self, start: "str", end: "str") -> "list[UsageRecord]":
        """
        returns records whose date lies in [start, end], oldest first.
        """
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM messages "
            "WHERE date >= ? AND date <= ? "
            "ORDER BY timestamp ASC",
            (start, end),
        ).fetchall()
        return [_from_row(row) for row in rows]

    def all_records(self) -> "list[UsageRecord]":
        rows = self._conn.execute(
            f"SELECT {_COLUMNS} FROM messages ORDER BY timestamp ASC"
        ).fetchall()
        return [_from_row(row) for row in rows]

    def update_cost(self, record_id: "str", cost: "float") -> "bool":
        cursor = self._conn.execute(
            "UPDATE messages SET cost = ? WHERE id = ?",
            (cost, record_id),
        )
        return cursor.rowcount > 0

    def get_sync_state(self, provider: "str") -> "SyncState | None":
        row = self._conn.execute(
            "SELECT provider, last_sync_timestamp, last_message_id "
            "FROM sync_state WHERE provider = ?",
            (provider,),
        ).fetchone()
        if row is None:
            return None

        return SyncState(
            provider=row["provider"],
            last_sync_timestamp=row["last_sync_timestamp"],
            last_record_id=row["last_message_id"],
        )

    def update_sync_state(
        self,
        provider: "str",
        timestamp: "int",
        last_record_id: "str | None",
    ) -> "None":
        self._conn.execute(
            "INSERT OR REPLACE INTO sync_state "
            "(provider, last_sync_timestamp, last_message_id) VALUES (?, ?, ?)",
            (provider, timestamp, last_record_id),
        )
