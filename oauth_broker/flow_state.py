"""States of the authorization flow, shared by the controller and its errors."""
from enum import Enum


class FlowState(str, Enum):
    START = "start"
    AWAIT_CONSENT = "await_consent"
    UPSTREAM_REDIRECT = "upstream_redirect"
    AWAIT_CALLBACK = "await_callback"
    COMPLETE = "complete"
    DENIED = "denied"
    REJECTED = "rejected"


# Allowed transitions. Each HTTP entry point starts from one of the keys.
TRANSITIONS: dict[FlowState, frozenset[FlowState]] = {
    FlowState.START: frozenset({FlowState.AWAIT_CONSENT, FlowState.UPSTREAM_REDIRECT, FlowState.REJECTED}),
    FlowState.AWAIT_CONSENT: frozenset({FlowState.UPSTREAM_REDIRECT, FlowState.DENIED, FlowState.REJECTED}),
    FlowState.UPSTREAM_REDIRECT: frozenset({FlowState.AWAIT_CALLBACK}),
    FlowState.AWAIT_CALLBACK: frozenset({FlowState.COMPLETE, FlowState.DENIED, FlowState.REJECTED}),
}


def can_transition(current: FlowState, target: FlowState) -> bool:
    return target in TRANSITIONS.get(current, frozenset())
