"""Notification history: the local dedup store.

Remembers, per user, which booking events were already surfaced so a
refresh never alerts twice. Entries live under `<prefix>_<userId>` keys as
JSON objects and are replaced wholesale on every write.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict

from django.conf import settings
from django.core.cache import caches
from django.db import DatabaseError

from .exceptions import StorageReadFailure, StorageWriteFailure

logger = logging.getLogger(__name__)


class KeyValueBackend(ABC):
    """String-keyed, string-valued persistence"""

    @abstractmethod
    def get(self, key: str) -> str | None:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        pass


class DatabaseBackend(KeyValueBackend):
    """Rows of the StoredValue table; survives process and cache restarts"""

    def get(self, key: str) -> str | None:
        from .models import StoredValue

        try:
            return StoredValue.objects.filter(key=key).values_list("value", flat=True).first()
        except DatabaseError as e:
            raise StorageReadFailure(f"Could not read {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        from .models import StoredValue

        try:
            StoredValue.objects.update_or_create(key=key, defaults={"value": value})
        except DatabaseError as e:
            raise StorageWriteFailure(f"Could not write {key}: {e}") from e

    def remove(self, key: str) -> None:
        from .models import StoredValue

        try:
            StoredValue.objects.filter(key=key).delete()
        except DatabaseError as e:
            raise StorageWriteFailure(f"Could not remove {key}: {e}") from e


class CacheBackend(KeyValueBackend):
    """Django cache entries without expiry (durable with django-redis)"""

    def __init__(self, alias: str = "default"):
        self.alias = alias

    @property
    def cache(self):
        return caches[self.alias]

    def get(self, key: str) -> str | None:
        try:
            return self.cache.get(key)
        except Exception as e:  # noqa: BLE001 - backend specific connection errors
            raise StorageReadFailure(f"Could not read {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self.cache.set(key, value, None)
        except Exception as e:  # noqa: BLE001 - backend specific connection errors
            raise StorageWriteFailure(f"Could not write {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self.cache.delete(key)
        except Exception as e:  # noqa: BLE001 - backend specific connection errors
            raise StorageWriteFailure(f"Could not remove {key}: {e}") from e


BACKENDS = {
    "database": DatabaseBackend,
    "cache": CacheBackend,
}


def get_history_backend(name: str | None = None) -> KeyValueBackend:
    name = name or getattr(settings, "NOTIFICATION_HISTORY_BACKEND", "database")
    try:
        return BACKENDS[name]()
    except KeyError:
        raise ValueError(f"Unknown notification history backend: {name}") from None


class NotificationHistoryStore:
    """
    Per-user JSON mapping under a namespaced key.

    Reads return an empty mapping when nothing is stored; writes replace the
    whole mapping. Concurrent writers for one user are not expected; the
    last write wins.
    """

    def __init__(self, prefix: str, backend: KeyValueBackend | None = None):
        self.prefix = prefix
        self.backend = backend or get_history_backend()

    def key_for(self, user_id: str) -> str:
        return f"{self.prefix}_{user_id}"

    def exists(self, user_id: str) -> bool:
        return self.backend.get(self.key_for(user_id)) is not None

    def get(self, user_id: str) -> Dict[str, object]:
        key = self.key_for(user_id)
        raw = self.backend.get(key)
        if raw is None:
            return {}
        try:
            value = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise StorageReadFailure(f"Corrupt notification history under {key}: {e}") from e
        if not isinstance(value, dict):
            raise StorageReadFailure(
                f"Notification history under {key} is {type(value).__name__}, expected object"
            )
        return value

    def set(self, user_id: str, mapping: Dict[str, object]) -> None:
        key = self.key_for(user_id)
        try:
            raw = json.dumps(mapping)
        except (TypeError, ValueError) as e:
            raise StorageWriteFailure(f"Notification history for {key} is not serializable: {e}") from e
        self.backend.set(key, raw)

    def clear(self, user_id: str) -> None:
        self.backend.remove(self.key_for(user_id))
        logger.info(f"Cleared notification history {self.key_for(user_id)}")
