"""
OAuth consent broker.
Clients authorize against /authorize; the broker authorizes against GitHub and, on /callback,
issues its own authorization code bound to the original client request.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from oauth_broker.audit import router as audit_router
from oauth_broker.authorize import router as authorize_router
from oauth_broker.callback import router as callback_router
from oauth_broker.config import ALLOWED_LOGINS, COOKIE_KEY_EPHEMERAL, REGISTERED_CLIENTS
from oauth_broker.database import init_db
from oauth_broker.errors import BrokerError, broker_error_handler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create audit tables; warn about settings that make the broker unusable in production."""
    init_db()
    if COOKIE_KEY_EPHEMERAL:
        logger.warning("COOKIE_ENCRYPTION_KEY not set; client approvals will not survive a restart")
    if ALLOWED_LOGINS is None:
        logger.warning("GITHUB_ALLOWED_LOGINS not set; every login will be rejected")
    if not REGISTERED_CLIENTS:
        logger.warning("BROKER_CLIENTS not set; every authorization request will be rejected")
    yield


app = FastAPI(title="OAuth Broker", version="0.1.0", lifespan=lifespan)
app.add_exception_handler(BrokerError, broker_error_handler)
app.include_router(authorize_router, tags=["authorize"])
app.include_router(callback_router, tags=["callback"])
app.include_router(audit_router)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "oauth_broker"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "oauth_broker.main:app",
        host="127.0.0.1",
        port=8787,
        reload=True,
    )
