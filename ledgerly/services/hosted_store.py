"""Hosted key/value store used by the client for saves and backups.

Keys are namespaced under the configured prefix. Every write also stamps
the time of the save under LAST_SAVE_KEY.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from aws_lambda_powertools import Logger

from ledgerly.services.persistence import (
    KeyValueStore,
    PrefixedStore,
    default_backend,
    load_json,
    save_json,
)
from ledgerly.utils.config import get_config

logger = Logger(service="ledgerly-hosted")

LAST_SAVE_KEY = 'last_save_time'


class HostedStore:
    """JSON values under a key prefix, with a last-save timestamp."""

    def __init__(
        self,
        backend: Optional[KeyValueStore] = None,
        prefix: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        prefix = get_config().key_prefix if prefix is None else prefix
        self.store = PrefixedStore(backend or default_backend(), prefix)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _stamp(self) -> str:
        timestamp = self._clock().isoformat()
        save_json(self.store, LAST_SAVE_KEY, timestamp)
        return timestamp

    def save(self, key: str, data: Any) -> str:
        """Write one value and stamp the save time.

        Raises:
            PersistenceError: backend rejected the write

        Returns:
            ISO timestamp of the save
        """
        save_json(self.store, key, data)
        timestamp = self._stamp()
        logger.info("Hosted value saved", extra={"key": key})
        return timestamp

    def save_all(self, data: Dict[str, Any]) -> str:
        """Write every entry, then stamp the save time once."""
        for key, value in data.items():
            save_json(self.store, key, value)
        timestamp = self._stamp()
        logger.info("Hosted bulk save", extra={"key_count": len(data)})
        return timestamp

    def get(self, key: str) -> Any:
        return load_json(self.store, key, default=None)

    def delete(self, key: str) -> None:
        self.store.delete(key)
        logger.info("Hosted value deleted", extra={"key": key})

    def list(self, prefix: str = '') -> List[str]:
        """Unprefixed keys starting with prefix, excluding the timestamp key."""
        return [k for k in self.store.keys(prefix) if k != LAST_SAVE_KEY]

    def last_save_time(self) -> Optional[str]:
        return load_json(self.store, LAST_SAVE_KEY, default=None)
