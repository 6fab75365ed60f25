"""
Outer authorization-provider abstraction: parses the client's authorization request and,
once the upstream leg succeeds, mints the broker's own authorization code for it.
Redeeming codes for tokens is handled outside this package.
"""
import base64
import binascii
import json
import logging
import secrets
from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Protocol
from urllib.parse import urlencode, urlsplit

from fastapi import Request

from oauth_broker.errors import BadRequest
from oauth_broker.kv import KVStore

logger = logging.getLogger(__name__)

GRANT_PREFIX = "grant:"


def parse_registered_clients(raw: str | None) -> dict[str, frozenset[str]]:
    """
    Registered clients from a JSON object mapping client_id to its list of redirect URIs.
    Unset or empty means no client is registered. Malformed input raises ValueError.
    """
    if not raw or not raw.strip():
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("registered clients must be a JSON object")
    clients = {}
    for client_id, uris in data.items():
        if not isinstance(uris, list) or not all(isinstance(u, str) for u in uris):
            raise ValueError(f"redirect URIs for {client_id!r} must be a list of strings")
        clients[client_id] = frozenset(uris)
    return clients


def is_absolute_http_uri(uri: str) -> bool:
    try:
        parts = urlsplit(uri)
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


@dataclass
class AuthRequest:
    """The client's original authorization request, carried through the upstream leg."""

    client_id: str
    redirect_uri: str
    response_type: str = "code"
    scope: list[str] = field(default_factory=list)
    state: str = ""
    code_challenge: str | None = None
    code_challenge_method: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Any) -> "AuthRequest":
        if not isinstance(data, dict):
            raise BadRequest("Malformed authorization request")
        scope = data.get("scope") or []
        if not isinstance(scope, list) or not all(isinstance(s, str) for s in scope):
            raise BadRequest("Malformed authorization request")
        return cls(
            client_id=str(data.get("client_id") or ""),
            redirect_uri=str(data.get("redirect_uri") or ""),
            response_type=str(data.get("response_type") or "code"),
            scope=scope,
            state=str(data.get("state") or ""),
            code_challenge=data.get("code_challenge"),
            code_challenge_method=data.get("code_challenge_method"),
        )

    def encode(self) -> str:
        """Base64 JSON blob for the consent form's hidden field."""
        return base64.b64encode(json.dumps(self.to_dict()).encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, blob: str | None) -> "AuthRequest":
        if not blob:
            raise BadRequest("Missing authorization request")
        try:
            data = json.loads(base64.b64decode(blob, validate=True))
        except (binascii.Error, ValueError):
            raise BadRequest("Malformed authorization request")
        return cls.from_dict(data)


class AuthorizationProvider(Protocol):
    def parse_auth_request(self, request: Request) -> AuthRequest: ...

    def complete_authorization(
        self,
        *,
        request: AuthRequest,
        user_id: str,
        metadata: dict[str, Any],
        scope: list[str],
        props: dict[str, Any],
    ) -> str: ...


class KVAuthorizationProvider:
    """
    Provider that stores each completed grant in the key/value store under a one-time code.
    Only registered clients are served, and codes go only to one of their registered redirect URIs.
    """

    def __init__(self, kv: KVStore, grant_ttl_seconds: int, clients: dict[str, Iterable[str]]):
        self.kv = kv
        self.grant_ttl_seconds = grant_ttl_seconds
        self.clients = {client_id: frozenset(uris) for client_id, uris in clients.items()}

    def redirect_uri_allowed(self, client_id: str, redirect_uri: str) -> bool:
        if not is_absolute_http_uri(redirect_uri):
            return False
        return redirect_uri in self.clients.get(client_id, frozenset())

    def check_client(self, client_id: str, redirect_uri: str) -> None:
        if client_id not in self.clients:
            logger.warning("authorization request for unknown client_id=%s", client_id)
            raise BadRequest("Unknown client_id")
        if not self.redirect_uri_allowed(client_id, redirect_uri):
            logger.warning("redirect_uri not registered for client_id=%s", client_id)
            raise BadRequest("redirect_uri not allowed")

    def parse_auth_request(self, request: Request) -> AuthRequest:
        q = request.query_params
        response_type = q.get("response_type") or "code"
        if response_type != "code":
            raise BadRequest("response_type must be 'code'")
        client_id = q.get("client_id") or ""
        redirect_uri = q.get("redirect_uri") or ""
        if client_id:
            if not redirect_uri:
                raise BadRequest("redirect_uri is required")
            self.check_client(client_id, redirect_uri)
        return AuthRequest(
            client_id=client_id,
            redirect_uri=redirect_uri,
            response_type=response_type,
            scope=(q.get("scope") or "").split(),
            state=q.get("state") or "",
            code_challenge=q.get("code_challenge") or None,
            code_challenge_method=q.get("code_challenge_method") or None,
        )

    def complete_authorization(
        self,
        *,
        request: AuthRequest,
        user_id: str,
        metadata: dict[str, Any],
        scope: list[str],
        props: dict[str, Any],
    ) -> str:
        """Mint a one-time code for the grant and return the client redirect carrying it."""
        self.check_client(request.client_id, request.redirect_uri)
        code = secrets.token_urlsafe(32)
        grant = {
            "client_id": request.client_id,
            "redirect_uri": request.redirect_uri,
            "user_id": user_id,
            "scope": scope,
            "metadata": metadata,
            "props": props,
            "code_challenge": request.code_challenge,
            "code_challenge_method": request.code_challenge_method,
        }
        self.kv.put(GRANT_PREFIX + code, json.dumps(grant), self.grant_ttl_seconds)
        logger.info("grant issued: client_id=%s user_id=%s", request.client_id, user_id)

        params = {"code": code}
        if request.state:
            params["state"] = request.state
        sep = "&" if "?" in request.redirect_uri else "?"
        return f"{request.redirect_uri}{sep}{urlencode(params)}"
