"""Database operations for the mint history."""
import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, Dict, Any
from contextlib import contextmanager

import psycopg2
from psycopg2 import errors
from psycopg2.extras import RealDictCursor
from psycopg2.pool import PoolError, ThreadedConnectionPool

from castmint.errors import HistoryStoreError, HistoryUnavailableError
from castmint.logging_conf import logger

# Lost or exhausted connections; worth another attempt on a fresh one
CONNECTION_ERRORS = (psycopg2.OperationalError, psycopg2.InterfaceError, PoolError)

SCHEMA = """
CREATE TABLE IF NOT EXISTS minted_casts (
    id BIGSERIAL PRIMARY KEY,
    cast_hash TEXT NOT NULL UNIQUE,
    zora_url TEXT NOT NULL,
    caster_username TEXT NOT NULL,
    minter_username TEXT NOT NULL,
    mint_hash TEXT NOT NULL,
    minted_at TIMESTAMPTZ NOT NULL,
    contract_address TEXT,
    token_id TEXT,
    split_address TEXT,
    metadata_uri TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS minted_casts_mint_hash_idx ON minted_casts (mint_hash);
CREATE INDEX IF NOT EXISTS minted_casts_minted_at_idx ON minted_casts (minted_at);
"""


@dataclass(frozen=True)
class MintRecord:
    """One completed mint. At most one per target."""

    target_hash: str
    collect_url: str
    owner_username: str
    requester_username: str
    work_hash: str
    minted_at: str
    contract_address: Optional[str] = None
    token_id: Optional[str] = None
    split_address: Optional[str] = None
    metadata_uri: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MintRecord":
        minted_at = row["minted_at"]
        if isinstance(minted_at, datetime):
            minted_at = minted_at.isoformat()
        return cls(
            target_hash=row["cast_hash"],
            collect_url=row["zora_url"],
            owner_username=row["caster_username"],
            requester_username=row["minter_username"],
            work_hash=row["mint_hash"],
            minted_at=minted_at,
            contract_address=row.get("contract_address"),
            token_id=row.get("token_id"),
            split_address=row.get("split_address"),
            metadata_uri=row.get("metadata_uri"),
        )


def _history_error(e: psycopg2.Error, message: str) -> Exception:
    if isinstance(e, CONNECTION_ERRORS):
        return HistoryUnavailableError(f"{message}: {e}")
    return HistoryStoreError(f"{message}: {e}")


class HistoryStore:
    """
    Postgres-backed record of completed mints.

    Webhook request threads and the worker thread use it at the same time,
    so every cursor runs on its own pooled connection and commits or rolls
    back only its own transaction. A connection that failed is discarded
    rather than returned to the pool.
    """

    def __init__(self, database_url: str, min_connections: int = 1, max_connections: int = 10):
        self.database_url = database_url
        self.min_connections = min_connections
        self.max_connections = max_connections
        self._pool: Optional[ThreadedConnectionPool] = None
        self._pool_lock = threading.Lock()

    @property
    def pool(self) -> ThreadedConnectionPool:
        """Get or create the connection pool."""
        with self._pool_lock:
            if self._pool is None or self._pool.closed:
                try:
                    self._pool = ThreadedConnectionPool(
                        self.min_connections, self.max_connections, self.database_url
                    )
                except psycopg2.Error as e:
                    raise _history_error(e, "Cannot connect to history database") from e
            return self._pool

    def close(self):
        """Close every pooled connection."""
        with self._pool_lock:
            if self._pool is not None and not self._pool.closed:
                self._pool.closeall()
            self._pool = None

    @contextmanager
    def cursor(self):
        """Cursor on a pooled connection, committed on success and rolled back on error."""
        pool = self.pool
        conn = pool.getconn()
        broken = False
        try:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cur
                conn.commit()
            except Exception:
                if not conn.closed:
                    conn.rollback()
                raise
            finally:
                cur.close()
        except CONNECTION_ERRORS:
            broken = True
            raise
        finally:
            pool.putconn(conn, close=broken or bool(conn.closed))

    def ensure_schema(self) -> None:
        """Create the minted_casts table if it does not exist."""
        try:
            with self.cursor() as cur:
                cur.execute(SCHEMA)
        except psycopg2.Error as e:
            raise _history_error(e, "Failed to create schema") from e

    def record_result(self, record: MintRecord) -> None:
        """Insert a mint record. A second record for the same target is rejected."""
        try:
            with self.cursor() as cur:
                cur.execute("""
                    INSERT INTO minted_casts (
                        cast_hash, zora_url, caster_username, minter_username,
                        mint_hash, minted_at, contract_address, token_id,
                        split_address, metadata_uri
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """, (
                    record.target_hash,
                    record.collect_url,
                    record.owner_username,
                    record.requester_username,
                    record.work_hash,
                    record.minted_at,
                    record.contract_address,
                    record.token_id,
                    record.split_address,
                    record.metadata_uri,
                ))
        except errors.UniqueViolation as e:
            raise HistoryStoreError(
                f"Mint already recorded for {record.target_hash}", code="DUPLICATE_MINT"
            ) from e
        except psycopg2.Error as e:
            raise _history_error(e, f"Failed to record mint for {record.target_hash}") from e
        logger.info(f"Recorded mint: {record.target_hash} -> {record.collect_url}")

    def lookup_result(self, target_hash: str) -> Optional[MintRecord]:
        """Return the mint record for a target, or None if it was never minted."""
        try:
            with self.cursor() as cur:
                cur.execute("""
                    SELECT cast_hash, zora_url, caster_username, minter_username,
                           mint_hash, minted_at, contract_address, token_id,
                           split_address, metadata_uri
                    FROM minted_casts
                    WHERE cast_hash = %s
                """, (target_hash,))
                row = cur.fetchone()
        except psycopg2.Error as e:
            raise _history_error(e, f"Failed to look up {target_hash}") from e
        return MintRecord.from_row(row) if row else None
