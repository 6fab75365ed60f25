"""
FastAPI dependencies wiring the flow controller to configuration, the KV store and the audit DB.
Tests replace get_flow (or get_kv_store) through app.dependency_overrides.
"""
from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from oauth_broker import config
from oauth_broker.audit import audit_recorder
from oauth_broker.database import get_db
from oauth_broker.flow import AuthorizationFlow
from oauth_broker.kv import KVStore, kv_store_from_url
from oauth_broker.provider import KVAuthorizationProvider
from oauth_broker.state_store import OAuthStateStore
from oauth_broker.upstream import UpstreamSettings


@lru_cache(maxsize=1)
def get_kv_store() -> KVStore:
    return kv_store_from_url(config.KV_URL)


def upstream_settings() -> UpstreamSettings:
    return UpstreamSettings(
        client_id=config.GITHUB_CLIENT_ID,
        client_secret=config.GITHUB_CLIENT_SECRET,
        authorize_url=config.UPSTREAM_AUTHORIZE_URL,
        token_url=config.UPSTREAM_TOKEN_URL,
        user_url=config.UPSTREAM_USER_URL,
        scope=config.UPSTREAM_SCOPE,
        timeout=config.UPSTREAM_TIMEOUT_SECONDS,
    )


def build_flow(kv: KVStore, **overrides) -> AuthorizationFlow:
    """AuthorizationFlow from configuration; keyword overrides replace individual settings."""
    settings = {
        "provider": KVAuthorizationProvider(kv, config.GRANT_TTL_SECONDS, config.REGISTERED_CLIENTS),
        "state_store": OAuthStateStore(kv, config.STATE_TTL_SECONDS),
        "upstream": upstream_settings(),
        "cookie_secret": config.COOKIE_ENCRYPTION_KEY,
        "allowed_logins": config.ALLOWED_LOGINS,
        "authorize_path": config.AUTHORIZE_PATH,
        "callback_path": config.CALLBACK_PATH,
        "public_url": config.PUBLIC_URL,
    }
    settings.update(overrides)
    return AuthorizationFlow(**settings)


def get_flow(
    request: Request,
    db: Session = Depends(get_db),
    kv: KVStore = Depends(get_kv_store),
) -> AuthorizationFlow:
    return build_flow(kv, on_event=audit_recorder(db, request))
