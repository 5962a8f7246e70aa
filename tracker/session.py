# tracker/session.py
import random
import string
import time

from .storage import KeyValueStore, safe_get, safe_set

SESSION_KEY = "analytics_session_id"

_BASE36 = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    suffix = "".join(random.choice(_BASE36) for _ in range(9))
    return f"sess_{int(time.time() * 1000)}_{suffix}"


def get_or_create_session(store: KeyValueStore) -> str:
    """
    Session-ID pro Tab. Liegt nur im flüchtigen Speicher.
    Ist der Speicher kaputt, gibt es eine nicht gespeicherte ID - nie eine Exception.
    """
    session_id = safe_get(store, SESSION_KEY)
    if session_id:
        return session_id

    session_id = new_session_id()
    safe_set(store, SESSION_KEY, session_id)
    return session_id
