"""
Binds a state token to the browser that started the flow: the cookie holds SHA-256(state) as hex.
SameSite=Lax so the cookie survives the top-level redirect back from the upstream provider.
"""
import hashlib
import hmac

from oauth_broker.config import STATE_TTL_SECONDS
from oauth_broker.cookies import host_cookie, read_cookie

SESSION_COOKIE = "__Host-CONSENTED_STATE"


def state_digest(state: str) -> str:
    return hashlib.sha256(state.encode("utf-8")).hexdigest()


def bind_state_to_session(state: str) -> str:
    """Set-Cookie value binding `state` to this browser session."""
    return host_cookie(SESSION_COOKIE, state_digest(state), same_site="Lax", max_age=STATE_TTL_SECONDS)


def verify_state_session(state: str, cookie_header: str | None) -> bool:
    """
    False only when the binding cookie is present and does not match `state`.
    A missing cookie passes: some clients drop cookies across cross-site redirects.
    """
    bound = read_cookie(cookie_header, SESSION_COOKIE)
    if bound is None:
        return True
    return hmac.compare_digest(bound.encode("utf-8"), state_digest(state).encode("utf-8"))
