"""
Terminal errors of the authorization flow. Each maps to a fixed HTTP status and an
OAuth-style error code; none is retried, the client restarts from /authorize.
"""
from fastapi import Request
from fastapi.responses import JSONResponse

from oauth_broker.flow_state import FlowState


class BrokerError(Exception):
    status_code = 400
    error = "invalid_request"
    description = "Invalid request"
    flow_state = FlowState.REJECTED

    def __init__(self, error_description: str | None = None):
        self.error_description = error_description or self.description
        super().__init__(self.error_description)

    def to_dict(self) -> dict:
        return {"error": self.error, "error_description": self.error_description}


class BadRequest(BrokerError):
    description = "Missing or malformed request parameter"


class CSRFInvalid(BrokerError):
    status_code = 403
    error = "invalid_csrf_token"
    description = "Invalid CSRF token"
    flow_state = FlowState.DENIED


class ConsentDenied(BrokerError):
    status_code = 403
    error = "access_denied"
    description = "Authorization denied by user"


class StateInvalidOrExpired(BrokerError):
    description = "Invalid or expired state"


class StateSessionMismatch(BrokerError):
    description = "State session mismatch"


class UpstreamTransportFailure(BrokerError):
    status_code = 502
    error = "upstream_unavailable"
    description = "Failed to exchange code for token"


class UpstreamRejected(BrokerError):
    error = "upstream_error"
    description = "Upstream provider rejected the authorization code"


class IdentityFetchFailure(BrokerError):
    status_code = 502
    error = "identity_fetch_failed"
    description = "Failed to fetch upstream user info"


class NotAllowed(BrokerError):
    status_code = 403
    error = "access_denied"
    description = "Forbidden"
    flow_state = FlowState.DENIED


def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    """Render a BrokerError as {"error", "error_description"} with its status."""
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)
