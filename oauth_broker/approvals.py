"""
Approved-clients ledger: a client-held list of client_ids the user already consented to.
Cookie value: urlquote(base64(json(list)) + "." + hex(HMAC-SHA256(secret, base64 part))).
A bad signature or unparsable value means "no approvals"; it never fails the request.
"""
import base64
import binascii
import hashlib
import hmac
import json
import logging
from urllib.parse import quote, unquote

from oauth_broker.cookies import host_cookie, read_cookie

logger = logging.getLogger(__name__)

APPROVED_COOKIE = "__Host-APPROVED_CLIENTS"
APPROVED_MAX_AGE = 30 * 24 * 3600


def _sign(secret: str, data: str) -> str:
    return hmac.new(secret.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()


def _encode(clients: list[str], secret: str) -> str:
    data = base64.b64encode(json.dumps(clients).encode("utf-8")).decode("ascii")
    return quote(f"{data}.{_sign(secret, data)}", safe="")


def _decode(cookie_header: str | None, secret: str) -> list[str] | None:
    """Verified client list from the cookie, or None if missing, malformed or forged."""
    raw = read_cookie(cookie_header, APPROVED_COOKIE)
    if not raw:
        return None
    data, sep, sig = unquote(raw).partition(".")
    if not sep or not hmac.compare_digest(sig.encode("utf-8"), _sign(secret, data).encode("utf-8")):
        logger.debug("approved clients cookie signature mismatch")
        return None
    try:
        clients = json.loads(base64.b64decode(data, validate=True))
    except (binascii.Error, ValueError):
        return None
    if not isinstance(clients, list) or not all(isinstance(c, str) for c in clients):
        return None
    return clients


def is_client_approved(cookie_header: str | None, client_id: str, secret: str) -> bool:
    clients = _decode(cookie_header, secret)
    return clients is not None and client_id in clients


def add_approved_client(cookie_header: str | None, client_id: str, secret: str) -> str:
    """Set-Cookie value for the ledger with `client_id` added (once). Invalid ledgers start empty."""
    clients = _decode(cookie_header, secret) or []
    if client_id not in clients:
        clients.append(client_id)
    return host_cookie(APPROVED_COOKIE, _encode(clients, secret), same_site="Lax", max_age=APPROVED_MAX_AGE)
