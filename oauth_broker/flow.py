"""
Authorization flow controller: GET /authorize, POST /authorize, GET /callback.

    START --approved--> UPSTREAM_REDIRECT ---> AWAIT_CALLBACK --> COMPLETE
      `--> AWAIT_CONSENT --approve--'
any step may end in DENIED or REJECTED (raised as BrokerError).

No state is kept between requests: the pending request sits in the state store,
the browser carries the CSRF, session-binding and approved-clients cookies.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable
from urllib.parse import urljoin

from fastapi.responses import HTMLResponse, RedirectResponse, Response

from oauth_broker.approvals import add_approved_client, is_client_approved
from oauth_broker.audit import (
    EVENT_AUTHORIZATION_COMPLETE,
    EVENT_CONSENT_ALLOW,
    EVENT_CONSENT_AUTO_APPROVED,
    EVENT_CONSENT_DENY,
    EVENT_CONSENT_SHOWN,
    EVENT_CSRF_INVALID,
    EVENT_LOGIN_DENIED,
    EVENT_STATE_INVALID,
    EVENT_UPSTREAM_ERROR,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
)
from oauth_broker.consent import render_approval_dialog
from oauth_broker.csrf import generate_csrf_protection, validate_csrf_token
from oauth_broker.errors import (
    BadRequest,
    BrokerError,
    ConsentDenied,
    CSRFInvalid,
    NotAllowed,
    StateInvalidOrExpired,
    StateSessionMismatch,
)
from oauth_broker.flow_state import FlowState, can_transition
from oauth_broker.provider import AuthorizationProvider, AuthRequest
from oauth_broker.session_binding import bind_state_to_session, verify_state_session
from oauth_broker.state_store import OAuthStateStore
from oauth_broker.upstream import (
    UpstreamSettings,
    fetch_upstream_auth_token,
    fetch_upstream_user,
    get_upstream_authorize_url,
    is_login_allowed,
)

logger = logging.getLogger(__name__)

EventHook = Callable[..., None]


def _no_event(event_type: str, **kwargs) -> None:
    pass


@dataclass
class FlowStep:
    """Outcome of one successful transition, convertible to an HTTP response."""

    state: FlowState
    status_code: int
    location: str | None = None
    cookies: list[str] = field(default_factory=list)
    page: HTMLResponse | None = None

    def to_response(self) -> Response:
        if self.page is not None:
            response = self.page
        else:
            response = RedirectResponse(url=self.location, status_code=self.status_code)
        for cookie in self.cookies:
            response.headers.append("set-cookie", cookie)
        return response


class AuthorizationFlow:
    def __init__(
        self,
        *,
        provider: AuthorizationProvider,
        state_store: OAuthStateStore,
        upstream: UpstreamSettings,
        cookie_secret: str,
        allowed_logins: Iterable[str] | None,
        authorize_path: str = "/authorize",
        callback_path: str = "/callback",
        public_url: str | None = None,
        on_event: EventHook | None = None,
    ):
        self.provider = provider
        self.state_store = state_store
        self.upstream = upstream
        self.cookie_secret = cookie_secret
        self.allowed_logins = allowed_logins
        self.authorize_path = authorize_path
        self.callback_path = callback_path
        self.public_url = public_url
        self.on_event = on_event or _no_event

    def _step(self, current: FlowState, target: FlowState, **kwargs) -> FlowStep:
        if not can_transition(current, target):
            raise RuntimeError(f"illegal flow transition {current.value} -> {target.value}")
        logger.debug("flow %s -> %s", current.value, target.value)
        return FlowStep(state=target, **kwargs)

    def callback_url(self, request_url: str) -> str:
        if self.public_url:
            return f"{self.public_url}{self.callback_path}"
        return urljoin(request_url, self.callback_path)

    def _upstream_redirect(
        self, current: FlowState, auth_request: AuthRequest, request_url: str, extra_cookies: list[str]
    ) -> FlowStep:
        state = self.state_store.create(auth_request.to_dict())
        location = get_upstream_authorize_url(
            authorize_url=self.upstream.authorize_url,
            client_id=self.upstream.client_id,
            redirect_uri=self.callback_url(request_url),
            state=state,
            scope=self.upstream.scope,
        )
        cookies = [bind_state_to_session(state), *extra_cookies]
        return self._step(current, FlowState.UPSTREAM_REDIRECT, status_code=302, location=location, cookies=cookies)

    def start(self, auth_request: AuthRequest, cookie_header: str | None, request_url: str) -> FlowStep:
        """GET /authorize: skip straight upstream for approved clients, else show the consent page."""
        if not auth_request.client_id:
            raise BadRequest("Missing client_id")
        client_id = auth_request.client_id

        if is_client_approved(cookie_header, client_id, self.cookie_secret):
            self.on_event(EVENT_CONSENT_AUTO_APPROVED, outcome=OUTCOME_SUCCESS, client_id=client_id)
            return self._upstream_redirect(FlowState.START, auth_request, request_url, [])

        csrf = generate_csrf_protection()
        page = render_approval_dialog(
            client_id,
            " ".join(auth_request.scope),
            csrf.token,
            auth_request.encode(),
            request_url,
            redirect_uri=auth_request.redirect_uri,
            form_action=self.authorize_path,
        )
        self.on_event(EVENT_CONSENT_SHOWN, outcome=OUTCOME_SUCCESS, client_id=client_id)
        return self._step(FlowState.START, FlowState.AWAIT_CONSENT, status_code=200, page=page, cookies=[csrf.cookie])

    def submit_consent(
        self,
        *,
        action: str | None,
        csrf_token: str | None,
        state_encoded: str | None,
        cookie_header: str | None,
        request_url: str,
    ) -> FlowStep:
        """POST /authorize: CSRF check, then deny or remember the approval and redirect upstream."""
        if not validate_csrf_token(csrf_token, cookie_header):
            self.on_event(EVENT_CSRF_INVALID, outcome=OUTCOME_FAIL)
            raise CSRFInvalid()
        if action != "approve":
            self.on_event(EVENT_CONSENT_DENY, outcome=OUTCOME_SUCCESS)
            raise ConsentDenied()

        auth_request = AuthRequest.decode(state_encoded)
        if not auth_request.client_id:
            raise BadRequest("Missing client_id")
        approved_cookie = add_approved_client(cookie_header, auth_request.client_id, self.cookie_secret)
        step = self._upstream_redirect(FlowState.AWAIT_CONSENT, auth_request, request_url, [approved_cookie])
        self.on_event(EVENT_CONSENT_ALLOW, outcome=OUTCOME_SUCCESS, client_id=auth_request.client_id)
        return step

    def finish_callback(
        self, *, code: str | None, state: str | None, cookie_header: str | None, request_url: str
    ) -> FlowStep:
        """GET /callback: spend the state, exchange the code upstream, check the allow-list, complete."""
        if not code or not state:
            raise BadRequest("Missing code or state")

        try:
            payload = self.state_store.consume(state)
        except StateInvalidOrExpired:
            self.on_event(EVENT_STATE_INVALID, outcome=OUTCOME_FAIL)
            raise
        auth_request = AuthRequest.from_dict(payload)
        client_id = auth_request.client_id
        if not verify_state_session(state, cookie_header):
            self.on_event(EVENT_STATE_INVALID, outcome=OUTCOME_FAIL, client_id=client_id)
            raise StateSessionMismatch()

        try:
            access_token = fetch_upstream_auth_token(
                token_url=self.upstream.token_url,
                client_id=self.upstream.client_id,
                client_secret=self.upstream.client_secret,
                code=code,
                redirect_uri=self.callback_url(request_url),
                timeout=self.upstream.timeout,
            )
            identity = fetch_upstream_user(
                user_url=self.upstream.user_url, access_token=access_token, timeout=self.upstream.timeout
            )
        except BrokerError:
            self.on_event(EVENT_UPSTREAM_ERROR, outcome=OUTCOME_FAIL, client_id=client_id)
            raise

        if not is_login_allowed(identity.login, self.allowed_logins):
            logger.info("login not on allow-list: %s", identity.login)
            self.on_event(EVENT_LOGIN_DENIED, outcome=OUTCOME_FAIL, client_id=client_id, login=identity.login)
            raise NotAllowed()

        redirect_to = self.provider.complete_authorization(
            request=auth_request,
            user_id=identity.login,
            metadata={"label": identity.display_name},
            scope=auth_request.scope,
            props={
                "login": identity.login,
                "name": identity.display_name,
                "email": identity.email or "",
                "access_token": access_token,
            },
        )
        self.on_event(EVENT_AUTHORIZATION_COMPLETE, outcome=OUTCOME_SUCCESS, client_id=client_id, login=identity.login)
        return self._step(FlowState.AWAIT_CALLBACK, FlowState.COMPLETE, status_code=302, location=redirect_to)
