"""
CSRF protection for the consent form (double-submit cookie).
The token lives in a session cookie and is echoed in a hidden form field; it is never stored server-side.
"""
import hmac
import secrets
from dataclasses import dataclass

from oauth_broker.cookies import host_cookie, read_cookie

CSRF_COOKIE = "__Host-CSRF_TOKEN"


@dataclass(frozen=True)
class CSRFProtection:
    token: str
    cookie: str


def generate_csrf_protection() -> CSRFProtection:
    """New random token plus the Set-Cookie value carrying it. Caller attaches the cookie."""
    token = secrets.token_urlsafe(32)
    return CSRFProtection(token=token, cookie=host_cookie(CSRF_COOKIE, token, same_site="Strict"))


def validate_csrf_token(form_token: str | None, cookie_header: str | None) -> bool:
    """True only if the submitted token equals the CSRF cookie value. Never raises."""
    if not form_token or not cookie_header:
        return False
    cookie_token = read_cookie(cookie_header, CSRF_COOKIE)
    if not cookie_token:
        return False
    return hmac.compare_digest(form_token.encode("utf-8"), cookie_token.encode("utf-8"))
