"""
Upstream callback (GET /callback). Validates state and session binding, exchanges the code,
checks the allow-list and redirects the client with the broker's own authorization code.
"""
from fastapi import APIRouter, Depends, Request

from oauth_broker.config import CALLBACK_PATH
from oauth_broker.dependencies import get_flow
from oauth_broker.flow import AuthorizationFlow

router = APIRouter()


@router.get(CALLBACK_PATH)
def callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    flow: AuthorizationFlow = Depends(get_flow),
):
    step = flow.finish_callback(
        code=code,
        state=state,
        cookie_header=request.headers.get("cookie"),
        request_url=str(request.url),
    )
    return step.to_response()
