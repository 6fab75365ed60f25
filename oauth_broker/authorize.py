"""
Authorization endpoint.
GET /authorize: parse the client request; approved clients go straight upstream, others see the consent page.
POST /authorize: consent form submission (CSRF-checked).
"""
from fastapi import APIRouter, Depends, Form, Request

from oauth_broker.config import AUTHORIZE_PATH
from oauth_broker.dependencies import get_flow
from oauth_broker.flow import AuthorizationFlow

router = APIRouter()


@router.get(AUTHORIZE_PATH)
def authorize_get(request: Request, flow: AuthorizationFlow = Depends(get_flow)):
    auth_request = flow.provider.parse_auth_request(request)
    step = flow.start(auth_request, request.headers.get("cookie"), str(request.url))
    return step.to_response()


@router.post(AUTHORIZE_PATH)
def authorize_post(
    request: Request,
    action: str = Form(""),
    csrf_token: str = Form(""),
    state: str = Form(""),
    flow: AuthorizationFlow = Depends(get_flow),
):
    step = flow.submit_consent(
        action=action,
        csrf_token=csrf_token,
        state_encoded=state,
        cookie_header=request.headers.get("cookie"),
        request_url=str(request.url),
    )
    return step.to_response()
