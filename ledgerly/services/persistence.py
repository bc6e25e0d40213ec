"""Key/value persistence backends for the ledger store."""

import json
import sqlite3
from typing import Any, Dict, List, Optional

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError

from ledgerly.models.entities import PersistenceError
from ledgerly.services import database
from ledgerly.utils import s3
from ledgerly.utils.config import get_config

logger = Logger(service="ledgerly-persistence")


class KeyValueStore:
    """Get/set/delete of raw string values."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self, prefix: str = '') -> List[str]:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Dict-backed store, used in tests and for throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self, prefix: str = '') -> List[str]:
        return sorted(k for k in self.data if k.startswith(prefix))


class SqliteStore(KeyValueStore):
    """Store backed by the kv_store table."""

    def get(self, key: str) -> Optional[str]:
        try:
            return database.kv_get(key)
        except sqlite3.Error as e:
            raise PersistenceError(f'Failed to read {key}: {e}') from e

    def set(self, key: str, value: str) -> None:
        try:
            database.kv_set(key, value)
        except sqlite3.Error as e:
            raise PersistenceError(f'Failed to write {key}: {e}') from e

    def delete(self, key: str) -> None:
        try:
            database.kv_delete(key)
        except sqlite3.Error as e:
            raise PersistenceError(f'Failed to delete {key}: {e}') from e

    def keys(self, prefix: str = '') -> List[str]:
        try:
            return database.kv_keys(prefix)
        except sqlite3.Error as e:
            raise PersistenceError(f'Failed to list keys: {e}') from e


def load_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    """Read and decode a JSON value.

    Missing, unreadable or corrupt values yield the default.

    Args:
        store: Backend
        key: Persistence key
        default: Value returned when the key is unusable

    Returns:
        Decoded value or default
    """
    try:
        raw = store.get(key)
    except PersistenceError as e:
        logger.warning("Persistence read failed", extra={"key": key, "error": str(e)})
        return default

    if raw is None:
        return default

    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Corrupt persisted value ignored", extra={"key": key})
        return default


def save_json(store: KeyValueStore, key: str, value: Any) -> None:
    """Encode and write a JSON value.

    Raises:
        PersistenceError: backend rejected the write
    """
    store.set(key, json.dumps(value))


class S3Store(KeyValueStore):
    """Store backed by objects in the data bucket, one object per key."""

    def get(self, key: str) -> Optional[str]:
        try:
            content = s3.download_bytes(key)
        except (BotoCoreError, ClientError) as e:
            raise PersistenceError(f'Failed to read {key}: {e}') from e
        if content is None:
            return None
        try:
            return content.decode('utf-8')
        except UnicodeDecodeError as e:
            raise PersistenceError(f'Object {key} is not UTF-8 text') from e

    def set(self, key: str, value: str) -> None:
        try:
            s3.upload_bytes(value.encode('utf-8'), key)
        except (BotoCoreError, ClientError) as e:
            raise PersistenceError(f'Failed to write {key}: {e}') from e

    def delete(self, key: str) -> None:
        try:
            s3.delete_object(key)
        except (BotoCoreError, ClientError) as e:
            raise PersistenceError(f'Failed to delete {key}: {e}') from e

    def keys(self, prefix: str = '') -> List[str]:
        try:
            return s3.list_keys(prefix)
        except (BotoCoreError, ClientError) as e:
            raise PersistenceError(f'Failed to list keys: {e}') from e


class PrefixedStore(KeyValueStore):
    """Namespaces every key of another store under a fixed prefix."""

    def __init__(self, backend: KeyValueStore, prefix: str):
        self.backend = backend
        self.prefix = prefix

    def get(self, key: str) -> Optional[str]:
        return self.backend.get(self.prefix + key)

    def set(self, key: str, value: str) -> None:
        self.backend.set(self.prefix + key, value)

    def delete(self, key: str) -> None:
        self.backend.delete(self.prefix + key)

    def keys(self, prefix: str = '') -> List[str]:
        return [k[len(self.prefix):] for k in self.backend.keys(self.prefix + prefix)]


def default_backend() -> KeyValueStore:
    """S3 when DATA_BUCKET is set, the local SQLite table otherwise."""
    if get_config().data_bucket:
        return S3Store()
    return SqliteStore()
