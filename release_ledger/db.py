"""
LevelDB persistence for a token deployment.

A snapshot is written as one atomic write batch, so the stored ledger and
the stored release state always come from the same committed point.
"""
import logging
from contextlib import contextmanager
from typing import Optional

import msgpack
import plyvel

from release_ledger.token import ReleaseToken

logger = logging.getLogger(__name__)

# Snapshot record keys
META_KEY = b'token:meta'
CURVE_KEY = b'token:curve'
LEDGER_KEY = b'token:ledger'
GATE_KEY = b'token:gate'
ALLOWANCES_KEY = b'token:allowances'
NONCES_KEY = b'token:nonces'

SNAPSHOT_KEYS = {
    'meta': META_KEY,
    'curve': CURVE_KEY,
    'ledger': LEDGER_KEY,
    'gate': GATE_KEY,
    'allowances': ALLOWANCES_KEY,
    'nonces': NONCES_KEY,
}


class DB:
    def __init__(self, db_path: str, create_if_missing: bool = True,
                 write_buffer_size: int = 4 * 1024 * 1024,
                 max_open_files: int = 100,
                 compression: Optional[str] = 'snappy'):
        """
        Args:
            db_path: Path to database directory
            create_if_missing: Create database if it doesn't exist
            write_buffer_size: Size of write buffer
            max_open_files: Maximum number of open files
            compression: 'snappy' or None
        """
        try:
            self._db = plyvel.DB(
                db_path,
                create_if_missing=create_if_missing,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
                compression=compression,
            )
            self._closed = False
            logger.info(f"Database opened at {db_path}")
        except Exception as e:
            logger.error(f"Failed to open database at {db_path}: {e}")
            raise

    @classmethod
    def from_config(cls, config) -> 'DB':
        """Open using a `release_ledger.config.DatabaseConfig`."""
        return cls(
            config.path,
            write_buffer_size=config.write_buffer_size,
            max_open_files=config.max_open_files,
            compression=config.compression or None,
        )

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Database is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        """Returns None if key doesn't exist."""
        self._check_open()
        try:
            return self._db.get(key)
        except Exception as e:
            logger.error(f"Error getting key {key!r}: {e}")
            raise

    def put(self, key: bytes, value: bytes):
        self._check_open()
        try:
            self._db.put(key, value)
        except Exception as e:
            logger.error(f"Error putting key {key!r}: {e}")
            raise

    def delete(self, key: bytes):
        self._check_open()
        try:
            self._db.delete(key)
        except Exception as e:
            logger.error(f"Error deleting key {key!r}: {e}")
            raise

    @contextmanager
    def write_batch(self):
        """
        Context manager for atomic batch writes. Nothing is written if the
        block raises.

        Example:
            with db.write_batch() as batch:
                batch.put(b'key1', b'value1')
                batch.put(b'key2', b'value2')
        """
        self._check_open()
        batch = self._db.write_batch(transaction=True)
        try:
            yield batch
            batch.write()
        except Exception as e:
            logger.error(f"Error in batch write: {e}")
            raise

    def close(self):
        if not self._closed:
            self._db.close()
            self._closed = True
            logger.info("Database closed")

    def is_closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class LedgerStore:
    """Saves and restores a ReleaseToken in a DB."""

    def __init__(self, db: DB):
        self.db = db

    def exists(self) -> bool:
        return self.db.get(META_KEY) is not None

    def save(self, token: ReleaseToken):
        snapshot = token.to_snapshot()
        with self.db.write_batch() as batch:
            for section, key in SNAPSHOT_KEYS.items():
                batch.put(key, msgpack.packb(snapshot[section], use_bin_type=True))
        logger.info(f"Saved {token.symbol} snapshot (released={token.released})")

    def load(self) -> ReleaseToken:
        """
        Raises:
            LookupError: nothing has been saved yet
            ValidationError: the stored snapshot is inconsistent
        """
        snapshot = {}
        for section, key in SNAPSHOT_KEYS.items():
            raw = self.db.get(key)
            if raw is None:
                raise LookupError(f"No stored token snapshot (missing {key.decode()})")
            snapshot[section] = msgpack.unpackb(raw, raw=False)
        return ReleaseToken.from_snapshot(snapshot)
