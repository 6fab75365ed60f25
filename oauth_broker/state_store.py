"""
One-time storage of pending authorization requests, keyed by a random state token.
Key: oauth_state:{state}. Value: JSON payload. TTL: STATE_TTL_SECONDS.
consume() is the single place a state token is spent; it must not be called speculatively.
"""
import json
import logging
import secrets
from typing import Any

from oauth_broker.config import STATE_TTL_SECONDS
from oauth_broker.errors import StateInvalidOrExpired
from oauth_broker.kv import KVStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "oauth_state:"


def generate_state() -> str:
    """Opaque state token, 256 bits of entropy."""
    return secrets.token_urlsafe(32)


class OAuthStateStore:
    def __init__(self, kv: KVStore, ttl_seconds: int = STATE_TTL_SECONDS):
        self.kv = kv
        self.ttl_seconds = ttl_seconds

    def create(self, payload: Any) -> str:
        """Store `payload` under a fresh state token and return the token."""
        state = generate_state()
        self.kv.put(KEY_PREFIX + state, json.dumps(payload), self.ttl_seconds)
        logger.debug("oauth state stored: %s... ttl=%s", state[:8], self.ttl_seconds)
        return state

    def consume(self, state: str) -> Any:
        """
        Return the payload for `state` and delete it. Raises StateInvalidOrExpired if the
        token was never issued, has expired, or was already consumed.
        """
        stored = self.kv.take(KEY_PREFIX + state)
        if stored is None:
            logger.warning("oauth state not found or already used: %s...", state[:8])
            raise StateInvalidOrExpired()
        return json.loads(stored)
