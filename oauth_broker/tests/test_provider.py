"""Tests for the authorization-provider abstraction (request parsing and grant minting)."""
import json
from urllib.parse import parse_qs, urlencode, urlsplit

import pytest
from starlette.requests import Request

from oauth_broker.errors import BadRequest
from oauth_broker.kv import MemoryKVStore
from oauth_broker.provider import GRANT_PREFIX, AuthRequest, KVAuthorizationProvider, parse_registered_clients


def _request(query: str) -> Request:
    return Request({"type": "http", "method": "GET", "path": "/authorize", "query_string": query.encode(), "headers": []})


@pytest.fixture
def kv():
    return MemoryKVStore()


@pytest.fixture
def provider(kv):
    return KVAuthorizationProvider(
        kv,
        grant_ttl_seconds=600,
        clients={"c1": ["https://c.example/cb"], "c": ["https://c.example/cb", "https://c.example/cb?tenant=1"]},
    )


def test_parse_auth_request(provider):
    req = provider.parse_auth_request(
        _request("response_type=code&client_id=c1&redirect_uri=https%3A%2F%2Fc.example%2Fcb&scope=read+write&state=xyz&code_challenge=ch&code_challenge_method=S256")
    )
    assert req.client_id == "c1"
    assert req.redirect_uri == "https://c.example/cb"
    assert req.scope == ["read", "write"]
    assert req.state == "xyz"
    assert req.code_challenge == "ch"
    assert req.code_challenge_method == "S256"


def test_parse_without_client_id_is_left_to_caller(provider):
    assert provider.parse_auth_request(_request("")).client_id == ""


def test_parse_rejects_other_response_types(provider):
    with pytest.raises(BadRequest):
        provider.parse_auth_request(_request("response_type=token&client_id=c&redirect_uri=https%3A%2F%2Fc%2Fcb"))


def test_parse_requires_redirect_uri(provider):
    with pytest.raises(BadRequest):
        provider.parse_auth_request(_request("client_id=c"))


def test_parse_rejects_unknown_client(provider):
    with pytest.raises(BadRequest) as exc:
        provider.parse_auth_request(_request("client_id=stranger&redirect_uri=https%3A%2F%2Fc.example%2Fcb"))
    assert exc.value.error == "invalid_request"


@pytest.mark.parametrize(
    "redirect_uri",
    [
        "https://attacker.example/steal",
        "https://c.example/cb/extra",
        "http://c.example/cb",
        "javascript:alert(1)",
        "/cb",
    ],
)
def test_parse_rejects_unregistered_redirect_uri(provider, redirect_uri):
    with pytest.raises(BadRequest):
        provider.parse_auth_request(_request(urlencode({"client_id": "c1", "redirect_uri": redirect_uri})))


def test_registered_javascript_uri_still_rejected(kv):
    provider = KVAuthorizationProvider(kv, 600, {"c1": ["javascript:alert(1)"]})
    assert not provider.redirect_uri_allowed("c1", "javascript:alert(1)")


def test_complete_authorization_refuses_unregistered_redirect(provider, kv):
    req = AuthRequest(client_id="c1", redirect_uri="https://attacker.example/steal", state="s")
    with pytest.raises(BadRequest):
        provider.complete_authorization(request=req, user_id="u", metadata={}, scope=[], props={"access_token": "gh_tok"})
    assert not [k for k in kv._data if k.startswith(GRANT_PREFIX)]


def test_parse_registered_clients():
    clients = parse_registered_clients('{"a": ["https://a.example/cb"], "b": []}')
    assert clients == {"a": frozenset({"https://a.example/cb"}), "b": frozenset()}
    assert parse_registered_clients(None) == {}
    assert parse_registered_clients("  ") == {}


@pytest.mark.parametrize("raw", ["[]", '{"a": "https://a.example/cb"}', "not json"])
def test_parse_registered_clients_rejects_malformed(raw):
    with pytest.raises(ValueError):
        parse_registered_clients(raw)


def test_encode_decode_blob():
    req = AuthRequest(client_id="c", redirect_uri="https://c/cb", scope=["a"], state="s")
    assert AuthRequest.decode(req.encode()) == req


@pytest.mark.parametrize("blob", [None, "", "not base64!", "W10=", "bnVsbA=="])
def test_decode_rejects_malformed_blob(blob):
    # W10= is "[]", bnVsbA== is "null"
    with pytest.raises(BadRequest):
        AuthRequest.decode(blob)


def test_complete_authorization_mints_one_grant(provider, kv):
    req = AuthRequest(client_id="c", redirect_uri="https://c.example/cb", scope=["read"], state="client-state")
    redirect_to = provider.complete_authorization(
        request=req,
        user_id="octocat",
        metadata={"label": "The Octocat"},
        scope=["read"],
        props={"login": "octocat", "access_token": "gh_tok"},
    )
    parts = urlsplit(redirect_to)
    assert redirect_to.startswith("https://c.example/cb?")
    q = parse_qs(parts.query)
    assert q["state"] == ["client-state"]
    grant = json.loads(kv.take(GRANT_PREFIX + q["code"][0]))
    assert grant["client_id"] == "c"
    assert grant["user_id"] == "octocat"
    assert grant["scope"] == ["read"]
    assert grant["props"]["access_token"] == "gh_tok"


def test_complete_authorization_keeps_existing_query(provider):
    req = AuthRequest(client_id="c", redirect_uri="https://c.example/cb?tenant=1")
    redirect_to = provider.complete_authorization(request=req, user_id="u", metadata={}, scope=[], props={})
    q = parse_qs(urlsplit(redirect_to).query)
    assert q["tenant"] == ["1"]
    assert "code" in q
    assert "state" not in q
