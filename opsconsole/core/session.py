from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple
import logging
import secrets
import time

from opsconsole.core.config import settings
from opsconsole.schemas.auth import AuthenticatedUser, SessionBlob

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore(ABC):
    @abstractmethod
    def save(self, token: str, blob: SessionBlob):
        pass

    @abstractmethod
    def load(self, token: str) -> Optional[SessionBlob]:
        pass

    @abstractmethod
    def delete(self, token: str):
        pass


class InMemorySessionStore(SessionStore):
    def __init__(self):
        self._storage: Dict[str, SessionBlob] = {}

    def save(self, token: str, blob: SessionBlob):
        self._storage[token] = blob

    def load(self, token: str) -> Optional[SessionBlob]:
        return self._storage.get(token)

    def delete(self, token: str):
        self._storage.pop(token, None)

    def clear(self):
        self._storage.clear()


def create_session(user: AuthenticatedUser, permissions: List[str], store: Optional[SessionStore] = None) -> Tuple[str, SessionBlob]:
    store = store or session_store
    token = secrets.token_urlsafe(32)
    blob = SessionBlob(user=user, timestamp=now_ms(), expiresIn=settings.SESSION_TTL_MS, permissions=permissions)
    store.save(token, blob)
    return token, blob


def resolve_session(token: Optional[str], now: Optional[int] = None, store: Optional[SessionStore] = None) -> Optional[SessionBlob]:
    """Return the live session for `token`; an expired blob is discarded and treated as logged out."""
    if not token:
        return None
    store = store or session_store
    blob = store.load(token)
    if blob is None:
        return None
    if blob.expired(now if now is not None else now_ms()):
        logger.info(f"Session expired for user {blob.user.id}; clearing stored blob")
        store.delete(token)
        return None
    return blob


# Global Accessor
session_store = InMemorySessionStore()
