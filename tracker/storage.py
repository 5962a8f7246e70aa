# tracker/storage.py
"""
Die drei Speicher-Ebenen des Trackers.

- durable:   SQLAlchemy-Tabelle (überlebt Reloads)
- cookie:    Cookie-Jar mit 1 Jahr Laufzeit
- ephemeral: In-Memory, lebt so lange wie der Tab

Jeder Zugriff läuft über safe_get/safe_set/safe_remove: fällt eine Ebene aus,
arbeiten die anderen (und der Tracker) weiter.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from requests.cookies import RequestsCookieJar, create_cookie
from sqlalchemy.orm import sessionmaker

from .models import StoredValue

logger = logging.getLogger(__name__)

COOKIE_MAX_AGE_SECONDS = 365 * 24 * 3600


class KeyValueStore:
    name = "store"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """Flüchtiger Speicher pro Tab (entspricht sessionStorage)."""
    name = "ephemeral"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class CookieStore(KeyValueStore):
    name = "cookie"

    def __init__(self, jar: Optional[RequestsCookieJar] = None, domain: str = "", path: str = "/"):
        self.jar = jar if jar is not None else RequestsCookieJar()
        self.domain = domain
        self.path = path

    def get(self, key: str) -> Optional[str]:
        self.jar.clear_expired_cookies()
        return self.jar.get(key, domain=self.domain or None, path=self.path)

    def set(self, key: str, value: str) -> None:
        cookie = create_cookie(
            key,
            value,
            domain=self.domain,
            path=self.path,
            expires=int(time.time()) + COOKIE_MAX_AGE_SECONDS,
            rest={"SameSite": "Lax"},
        )
        self.jar.set_cookie(cookie)

    def remove(self, key: str) -> None:
        self.jar.set(key, None, domain=self.domain, path=self.path)


class DatabaseStore(KeyValueStore):
    """Dauerhafte Ebene (entspricht localStorage), eine Zeile pro Key."""
    name = "durable"

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            row = db.get(StoredValue, key)
            return row.value if row is not None else None
        finally:
            db.close()

    def set(self, key: str, value: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(StoredValue, key)
            if row is None:
                db.add(StoredValue(key=key, value=value))
            else:
                row.value = value
                row.updated_at = datetime.utcnow()
            db.commit()
        finally:
            db.close()

    def remove(self, key: str) -> None:
        db = self.session_factory()
        try:
            row = db.get(StoredValue, key)
            if row is not None:
                db.delete(row)
                db.commit()
        finally:
            db.close()


@dataclass
class StorageTiers:
    durable: KeyValueStore
    cookie: KeyValueStore = field(default_factory=CookieStore)
    ephemeral: KeyValueStore = field(default_factory=MemoryStore)


def safe_get(store: KeyValueStore, key: str) -> Optional[str]:
    try:
        return store.get(key)
    except Exception as e:
        logger.debug("%s storage not available (get %s): %s", store.name, key, e)
        return None


def safe_set(store: KeyValueStore, key: str, value: str) -> bool:
    try:
        store.set(key, value)
        return True
    except Exception as e:
        logger.debug("%s storage write failed (%s): %s", store.name, key, e)
        return False


def safe_remove(store: KeyValueStore, key: str) -> bool:
    try:
        store.remove(key)
        return True
    except Exception as e:
        logger.debug("%s storage remove failed (%s): %s", store.name, key, e)
        return False
