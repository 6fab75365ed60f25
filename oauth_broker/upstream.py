"""
Upstream identity provider (GitHub OAuth app): authorize URL, code exchange, user lookup, allow-list.
Single attempt per call; authorization codes are single-use so a retry could not succeed.
"""
import logging
from dataclasses import dataclass
from typing import Iterable
from urllib.parse import urlencode

import httpx

from oauth_broker.errors import IdentityFetchFailure, UpstreamRejected, UpstreamTransportFailure

logger = logging.getLogger(__name__)

USER_AGENT = "oauth-broker"


@dataclass(frozen=True)
class UpstreamIdentity:
    login: str
    name: str | None
    email: str | None

    @property
    def display_name(self) -> str:
        return self.name or self.login


def get_upstream_authorize_url(
    *,
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    state: str,
    scope: str,
) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "response_type": "code",
    }
    return f"{authorize_url}?{urlencode(params)}"


def fetch_upstream_auth_token(
    *,
    token_url: str,
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    timeout: float,
) -> str:
    """
    Exchange `code` for an upstream access token.
    Transport failure or non-2xx -> UpstreamTransportFailure (502);
    an error field or missing token in the body -> UpstreamRejected (400).
    """
    try:
        r = httpx.post(
            token_url,
            json={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
    except httpx.HTTPError as e:
        logger.warning("upstream token exchange failed: %s", e)
        raise UpstreamTransportFailure()
    if not r.is_success:
        logger.warning("upstream token exchange returned HTTP %s", r.status_code)
        raise UpstreamTransportFailure()

    try:
        data = r.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    access_token = data.get("access_token")
    if data.get("error") or not access_token:
        logger.info("upstream rejected code: %s", data.get("error"))
        raise UpstreamRejected(f"GitHub OAuth error: {data.get('error')}")
    return access_token


def fetch_upstream_user(*, user_url: str, access_token: str, timeout: float) -> UpstreamIdentity:
    """Fetch login, name and email for `access_token`. Any failure -> IdentityFetchFailure (502)."""
    try:
        r = httpx.get(
            user_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
            },
            timeout=timeout,
        )
    except httpx.HTTPError as e:
        logger.warning("upstream user fetch failed: %s", e)
        raise IdentityFetchFailure()
    if not r.is_success:
        logger.warning("upstream user fetch returned HTTP %s", r.status_code)
        raise IdentityFetchFailure()
    try:
        user = r.json()
    except ValueError:
        raise IdentityFetchFailure()
    if not isinstance(user, dict) or not user.get("login"):
        raise IdentityFetchFailure()
    return UpstreamIdentity(login=user["login"], name=user.get("name"), email=user.get("email"))


def parse_allowed_logins(raw: str | None) -> frozenset[str] | None:
    """Comma-separated logins -> lowercased set; None when unset or empty."""
    if raw is None:
        return None
    logins = frozenset(item.strip().lower() for item in raw.split(",") if item.strip())
    return logins or None


def is_login_allowed(login: str, allowed: str | Iterable[str] | None) -> bool:
    """Case-insensitive allow-list check. No allow-list configured = nobody is allowed."""
    if isinstance(allowed, str):
        allowed = parse_allowed_logins(allowed)
    if not allowed or not login:
        return False
    return login.lower() in allowed


@dataclass(frozen=True)
class UpstreamSettings:
    client_id: str
    client_secret: str
    authorize_url: str
    token_url: str
    user_url: str
    scope: str
    timeout: float
