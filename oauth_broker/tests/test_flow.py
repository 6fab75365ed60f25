"""Tests for the authorization flow controller and its state transitions."""
import hashlib
import warnings
from pathlib import Path
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from oauth_broker.approvals import add_approved_client
from oauth_broker.errors import (
    BadRequest,
    ConsentDenied,
    CSRFInvalid,
    NotAllowed,
    StateInvalidOrExpired,
    StateSessionMismatch,
    UpstreamRejected,
)
from oauth_broker.flow import AuthorizationFlow
from oauth_broker.flow_state import FlowState, can_transition
from oauth_broker.kv import MemoryKVStore
from oauth_broker.provider import AuthRequest, KVAuthorizationProvider
from oauth_broker.state_store import OAuthStateStore
from oauth_broker.upstream import UpstreamSettings, parse_allowed_logins

SECRET = "flow-secret"
REQUEST_URL = "https://broker.example/authorize?client_id=c1"
UPSTREAM = UpstreamSettings(
    client_id="gh-client",
    client_secret="gh-secret",
    authorize_url="https://github.com/login/oauth/authorize",
    token_url="https://github.com/login/oauth/access_token",
    user_url="https://api.github.com/user",
    scope="read:user user:email",
    timeout=5.0,
)


@pytest.fixture
def events():
    return []


@pytest.fixture
def flow(events):
    kv = MemoryKVStore()
    return AuthorizationFlow(
        provider=KVAuthorizationProvider(kv, 600, {"c1": ["https://client.example/cb"]}),
        state_store=OAuthStateStore(kv),
        upstream=UPSTREAM,
        cookie_secret=SECRET,
        allowed_logins=parse_allowed_logins("alice,bob"),
        on_event=lambda event_type, **kw: events.append((event_type, kw.get("outcome"))),
    )


def _auth_request(client_id="c1"):
    return AuthRequest(client_id=client_id, redirect_uri="https://client.example/cb", scope=["tasks"], state="cs")


def _cookie(set_cookie: str) -> str:
    return set_cookie.split(";", 1)[0]


def _upstream_state(location: str) -> str:
    return parse_qs(urlsplit(location).query)["state"][0]


def test_transition_table():
    assert can_transition(FlowState.START, FlowState.AWAIT_CONSENT)
    assert can_transition(FlowState.START, FlowState.UPSTREAM_REDIRECT)
    assert can_transition(FlowState.AWAIT_CONSENT, FlowState.DENIED)
    assert can_transition(FlowState.AWAIT_CALLBACK, FlowState.COMPLETE)
    assert not can_transition(FlowState.START, FlowState.COMPLETE)
    assert not can_transition(FlowState.COMPLETE, FlowState.START)


def test_start_without_client_id(flow):
    with pytest.raises(BadRequest) as exc:
        flow.start(_auth_request(client_id=""), None, REQUEST_URL)
    assert exc.value.flow_state == FlowState.REJECTED


def test_start_unapproved_shows_consent(flow, events):
    step = flow.start(_auth_request(), None, REQUEST_URL)
    assert step.state == FlowState.AWAIT_CONSENT
    assert step.status_code == 200
    assert len(step.cookies) == 1 and step.cookies[0].startswith("__Host-CSRF_TOKEN=")
    body = step.page.body.decode()
    assert 'name="csrf_token"' in body
    assert f'value="{_auth_request().encode()}"' in body
    assert events == [("consent_shown", "success")]


def test_start_approved_skips_consent(flow, events):
    approved = _cookie(add_approved_client(None, "c1", SECRET))
    step = flow.start(_auth_request(), approved, REQUEST_URL)
    assert step.state == FlowState.UPSTREAM_REDIRECT
    assert step.status_code == 302
    assert step.location.startswith("https://github.com/login/oauth/authorize?")
    q = parse_qs(urlsplit(step.location).query)
    assert q["redirect_uri"] == ["https://broker.example/callback"]
    assert q["client_id"] == ["gh-client"]
    state = q["state"][0]
    assert step.cookies == [
        f"__Host-CONSENTED_STATE={hashlib.sha256(state.encode()).hexdigest()}; HttpOnly; Secure; SameSite=Lax; Path=/; Max-Age=600"
    ]
    assert flow.state_store.consume(state) == _auth_request().to_dict()
    assert events == [("consent_auto_approved", "success")]


def test_start_with_approval_for_other_client(flow):
    approved = _cookie(add_approved_client(None, "someone-else", SECRET))
    assert flow.start(_auth_request(), approved, REQUEST_URL).state == FlowState.AWAIT_CONSENT


def _consent(flow, **overrides):
    step = flow.start(_auth_request(), None, REQUEST_URL)
    csrf_cookie = _cookie(step.cookies[0])
    token = csrf_cookie.split("=", 1)[1]
    kwargs = {
        "action": "approve",
        "csrf_token": token,
        "state_encoded": _auth_request().encode(),
        "cookie_header": csrf_cookie,
        "request_url": "https://broker.example/authorize",
    }
    kwargs.update(overrides)
    return flow.submit_consent(**kwargs)


def test_submit_bad_csrf_is_denied(flow, events):
    with pytest.raises(CSRFInvalid) as exc:
        _consent(flow, csrf_token="forged")
    assert exc.value.status_code == 403
    assert exc.value.flow_state == FlowState.DENIED
    assert ("csrf_invalid", "fail") in events


def test_submit_deny_is_rejected(flow):
    with pytest.raises(ConsentDenied) as exc:
        _consent(flow, action="deny")
    assert exc.value.status_code == 403
    assert exc.value.flow_state == FlowState.REJECTED


def test_submit_malformed_blob(flow):
    with pytest.raises(BadRequest):
        _consent(flow, state_encoded="!!!")


def test_submit_approve_redirects_with_two_cookies(flow):
    step = _consent(flow)
    assert step.state == FlowState.UPSTREAM_REDIRECT
    assert step.status_code == 302
    assert step.cookies[0].startswith("__Host-CONSENTED_STATE=")
    assert step.cookies[1].startswith("__Host-APPROVED_CLIENTS=")
    # The new ledger approves c1 on the next GET /authorize
    assert flow.start(_auth_request(), _cookie(step.cookies[1]), REQUEST_URL).state == FlowState.UPSTREAM_REDIRECT


def _pending_state(flow):
    step = flow.start(_auth_request(), _cookie(add_approved_client(None, "c1", SECRET)), REQUEST_URL)
    return _upstream_state(step.location), _cookie(step.cookies[0])


def _callback(flow, state, cookie, login="alice", token_json=None):
    token_resp = httpx.Response(200, json=token_json or {"access_token": "gh_tok"})
    user_resp = httpx.Response(200, json={"login": login, "name": "Alice A", "email": None})
    with patch("oauth_broker.upstream.httpx.post", return_value=token_resp), patch(
        "oauth_broker.upstream.httpx.get", return_value=user_resp
    ):
        return flow.finish_callback(code="gh-code", state=state, cookie_header=cookie, request_url="https://broker.example/callback?code=gh-code")


def test_callback_missing_params(flow):
    with pytest.raises(BadRequest):
        flow.finish_callback(code=None, state="s", cookie_header=None, request_url="https://b/callback")
    with pytest.raises(BadRequest):
        flow.finish_callback(code="c", state="", cookie_header=None, request_url="https://b/callback")


def test_callback_unknown_state(flow, events):
    with pytest.raises(StateInvalidOrExpired) as exc:
        _callback(flow, "never-issued", None)
    assert exc.value.error == "invalid_request"
    assert ("state_invalid", "fail") in events


def test_callback_completes(flow, events):
    state, cookie = _pending_state(flow)
    step = _callback(flow, state, cookie)
    assert step.state == FlowState.COMPLETE
    assert step.status_code == 302
    q = parse_qs(urlsplit(step.location).query)
    assert step.location.startswith("https://client.example/cb?")
    assert q["state"] == ["cs"]
    assert "code" in q
    assert events[-1] == ("authorization_complete", "success")


def test_callback_state_is_single_use(flow):
    state, cookie = _pending_state(flow)
    _callback(flow, state, cookie)
    with pytest.raises(StateInvalidOrExpired):
        _callback(flow, state, cookie)


def test_callback_without_session_cookie_is_tolerated(flow):
    state, _ = _pending_state(flow)
    assert _callback(flow, state, None).state == FlowState.COMPLETE


def test_callback_session_mismatch(flow):
    state, _ = _pending_state(flow)
    _, other_cookie = _pending_state(flow)
    with pytest.raises(StateSessionMismatch):
        _callback(flow, state, other_cookie)


def test_callback_upstream_error(flow, events):
    state, cookie = _pending_state(flow)
    with pytest.raises(UpstreamRejected):
        _callback(flow, state, cookie, token_json={"error": "bad_verification_code"})
    assert ("upstream_error", "fail") in events


def test_callback_login_not_allowed(flow, events):
    state, cookie = _pending_state(flow)
    with pytest.raises(NotAllowed) as exc:
        _callback(flow, state, cookie, login="mallory")
    assert exc.value.status_code == 403
    assert exc.value.flow_state == FlowState.DENIED
    assert ("login_denied", "fail") in events


def test_callback_passes_identity_to_provider(flow):
    state, cookie = _pending_state(flow)
    with patch.object(flow.provider, "complete_authorization", return_value="https://client.example/cb?code=x") as complete:
        _callback(flow, state, cookie, login="Bob")
    kwargs = complete.call_args.kwargs
    assert kwargs["user_id"] == "Bob"
    assert kwargs["scope"] == ["tasks"]
    assert kwargs["metadata"] == {"label": "Alice A"}
    assert kwargs["props"] == {"login": "Bob", "name": "Alice A", "email": "", "access_token": "gh_tok"}
    assert kwargs["request"] == _auth_request()


def test_public_url_overrides_callback(flow):
    flow.public_url = "https://public.example"
    assert flow.callback_url("http://internal:8080/authorize") == "https://public.example/callback"
    flow.public_url = None
    assert flow.callback_url("http://internal:8080/authorize?x=1") == "http://internal:8080/callback"


def test_module_docstring_has_no_invalid_escapes():
    import oauth_broker.flow as flow_module

    source = Path(flow_module.__file__).read_text(encoding="utf-8")
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, flow_module.__file__, "exec")
