"""
Rotating pool of marketplace session cookies with health tracking

Credentials are loaded once from AMAZON_COOKIES_1..N. Any adapter that sees a
block marks the credential it used as unhealthy for a cooldown window; the
cooldown lives in the shared TTL cache so it always expires on its own.
"""

import logging
import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from config.settings import SETTINGS
from data.models import Credential
from ingestion.errors import AdapterUnavailableError
from utils.cache import TTLCache

logger = logging.getLogger(__name__)

HEALTH_KEY_PREFIX = "credential_health:"


class CredentialPool:
    """Round-robin over credentials, skipping ones that are cooling down"""

    def __init__(self, credentials: List[Credential], cache: Optional[TTLCache] = None,
                 clock: Callable[[], float] = time.time):
        self._credentials = list(credentials)
        self._cache = cache if cache is not None else TTLCache(clock=clock)
        self._clock = clock
        self._index = 0
        self._lock = threading.Lock()
        logger.info(f"Credential pool initialized with {len(self._credentials)} sessions")

    @classmethod
    def from_env(cls, cache: Optional[TTLCache] = None, prefix: str = 'AMAZON_COOKIES_',
                 clock: Callable[[], float] = time.time) -> 'CredentialPool':
        credentials = []
        for i in range(1, SETTINGS['max_credentials'] + 1):
            payload = os.getenv(f"{prefix}{i}", '').strip()
            if payload:
                credentials.append(Credential(index=len(credentials), payload=payload, name=f"cookie_{i}"))
        if not credentials:
            logger.warning(f"No session cookies found ({prefix}1..{SETTINGS['max_credentials']})")
        return cls(credentials, cache=cache, clock=clock)

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def current_index(self) -> int:
        return self._index

    def _health_key(self, index: int) -> str:
        return f"{HEALTH_KEY_PREFIX}{index}"

    def _is_healthy(self, index: int) -> bool:
        return not self._cache.has(self._health_key(index))

    def next(self) -> Credential:
        """
        Return the next healthy credential in round-robin order.

        If every credential is cooling down, the next-in-line is returned
        anyway (degraded mode) and a warning is logged.
        """
        if not self._credentials:
            raise AdapterUnavailableError("No session credentials configured")

        with self._lock:
            total = len(self._credentials)
            for offset in range(total):
                index = (self._index + offset) % total
                if self._is_healthy(index):
                    self._index = (index + 1) % total
                    return self._checkout(index)

            index = self._index
            self._index = (index + 1) % total
            logger.warning(f"All {total} sessions are cooling down, using {self._credentials[index].name} anyway")
            return self._checkout(index)

    def _checkout(self, index: int) -> Credential:
        credential = self._credentials[index]
        credential.last_used = self._clock()
        credential.cooldown_until = self._cooldown_until(index)
        return credential

    def _cooldown_until(self, index: int) -> Optional[float]:
        remaining = self._cache.ttl(self._health_key(index))
        return self._clock() + remaining if remaining else None

    def mark_unhealthy(self, index: int, reason: str = "", cooldown_minutes: Optional[int] = None) -> None:
        if cooldown_minutes is None:
            cooldown_minutes = SETTINGS['credential_cooldown_minutes']
        if not 0 <= index < len(self._credentials):
            logger.error(f"Cannot mark unknown session index {index} unhealthy")
            return

        ttl = cooldown_minutes * 60
        with self._lock:
            self._cache.set(self._health_key(index), {'reason': reason, 'marked_at': self._clock()}, ttl=ttl)
            credential = self._credentials[index]
            credential.cooldown_until = self._clock() + ttl
            credential.last_reason = reason
        logger.warning(f"Session {credential.name} marked unhealthy for {cooldown_minutes} minutes: {reason}")

    def reset_all(self) -> None:
        with self._lock:
            for credential in self._credentials:
                self._cache.delete(self._health_key(credential.index))
                credential.cooldown_until = None
                credential.last_reason = ""
        logger.info("All session health flags reset")

    def health_snapshot(self) -> List[Dict[str, Any]]:
        """Per-session health for dashboards"""
        snapshot = []
        for credential in self._credentials:
            remaining = self._cache.ttl(self._health_key(credential.index))
            snapshot.append({
                'index': credential.index,
                'name': credential.name,
                'healthy': remaining is None,
                'next_in_line': credential.index == self.current_index,
                'cooldown_remaining_seconds': int(remaining) if remaining else 0,
                'last_used': credential.last_used,
                'last_reason': credential.last_reason,
            })
        return snapshot
