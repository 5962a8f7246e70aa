# tracker/identity.py
import logging
import random
from datetime import datetime, timezone
from typing import Optional

from .storage import StorageTiers, safe_get, safe_remove, safe_set

logger = logging.getLogger(__name__)

USER_ID_MIN = 10_000_000        # 8 Stellen
USER_ID_MAX = 9_999_999_999     # 10 Stellen

CONSENT_GRANTED = "granted"
CONSENT_DENIED = "denied"


def user_id_key(app_key: str) -> str:
    # app_key im Key: mehrere Apps auf derselben Domain bleiben getrennt
    return f"analytics_user_id_{app_key}"


def consent_key(app_key: str) -> str:
    return f"analytics_consent_{app_key}"


def generate_user_id() -> str:
    """Zufällige 8-10-stellige Ganzzahl als String."""
    try:
        rng = random.SystemRandom()
        value = rng.randint(USER_ID_MIN, USER_ID_MAX)
    except NotImplementedError:
        # kein OS-Zufall verfügbar
        value = random.randint(USER_ID_MIN, USER_ID_MAX)
    return str(value)


class UserIdentity:
    """Stabile User-ID pro app_key, redundant in allen drei Speicher-Ebenen."""

    def __init__(self, app_key: str, tiers: StorageTiers):
        self.app_key = app_key
        self.tiers = tiers
        self.storage_key = user_id_key(app_key)
        self.user_id: Optional[str] = None

    def init(self) -> str:
        self.user_id = self.get_or_create()
        return self.user_id

    def get_or_create(self) -> str:
        user_id = self.read()
        if not user_id:
            user_id = generate_user_id()
            self.save(user_id)
            logger.info("new user id created for %s", self.app_key)
        return user_id

    def read(self) -> Optional[str]:
        # durable -> cookie -> ephemeral
        for store in (self.tiers.durable, self.tiers.cookie, self.tiers.ephemeral):
            value = safe_get(store, self.storage_key)
            if value:
                return value
        return None

    def save(self, user_id: str):
        safe_set(self.tiers.durable, self.storage_key, user_id)
        safe_set(
            self.tiers.durable,
            self.storage_key + "_created",
            datetime.now(timezone.utc).isoformat(),
        )
        safe_set(self.tiers.cookie, self.storage_key, user_id)
        safe_set(self.tiers.ephemeral, self.storage_key, user_id)

    def identify(self, user_id: str) -> str:
        """Explizites Überschreiben der ID (z.B. nach Login)."""
        self.user_id = str(user_id)
        self.save(self.user_id)
        return self.user_id


class ConsentGate:
    """
    Entscheidet beim Start, ob der Tracker überhaupt laufen darf.

    Reihenfolge: Do-Not-Track -> gespeicherter Consent -> auto_consent.
    Bei Do-Not-Track wird der Speicher gar nicht erst angefasst.
    """

    def __init__(self, app_key: str, tiers: StorageTiers, *, auto_consent: bool = True):
        self.app_key = app_key
        self.tiers = tiers
        self.auto_consent = auto_consent
        self.storage_key = consent_key(app_key)

    def is_allowed(self, do_not_track: bool) -> bool:
        if do_not_track:
            logger.info("do-not-track active, tracker disabled")
            return False

        consent = safe_get(self.tiers.durable, self.storage_key)
        if consent is None:
            if not self.auto_consent:
                logger.info("no consent on record for %s, tracker disabled", self.app_key)
                return False
            # TODO: durch eine echte Opt-in-Abfrage der Host-App ersetzen
            self.grant()
            return True

        if consent != CONSENT_GRANTED:
            logger.info("consent denied for %s, tracker disabled", self.app_key)
            return False
        return True

    def grant(self):
        safe_set(self.tiers.durable, self.storage_key, CONSENT_GRANTED)

    def deny(self):
        safe_set(self.tiers.durable, self.storage_key, CONSENT_DENIED)

    def clear(self):
        safe_remove(self.tiers.durable, self.storage_key)
