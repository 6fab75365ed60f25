"""
Audit logging for the authorization flow. Security-relevant events only; no tokens, codes or cookies.
GET /audit lists recent events (most recent first).
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from oauth_broker.database import get_db
from oauth_broker.models import AuditLog

EVENT_CONSENT_SHOWN = "consent_shown"
EVENT_CONSENT_AUTO_APPROVED = "consent_auto_approved"
EVENT_CONSENT_ALLOW = "consent_allow"
EVENT_CONSENT_DENY = "consent_deny"
EVENT_CSRF_INVALID = "csrf_invalid"
EVENT_STATE_INVALID = "state_invalid"
EVENT_UPSTREAM_ERROR = "upstream_error"
EVENT_LOGIN_DENIED = "login_denied"
EVENT_AUTHORIZATION_COMPLETE = "authorization_complete"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    client_id: str | None = None,
    login: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
) -> None:
    """Append one audit record."""
    db.add(
        AuditLog(
            event_type=event_type,
            client_id=client_id,
            login=login,
            ip=ip,
            outcome=outcome,
        )
    )
    db.commit()


def audit_recorder(db: Session, request: Request):
    """Bind log_audit to a DB session and the caller's IP, for AuthorizationFlow.on_event."""
    ip = get_client_ip(request)

    def record(event_type: str, *, outcome: str, client_id: str | None = None, login: str | None = None) -> None:
        log_audit(db, event_type, client_id=client_id, login=login, ip=ip, outcome=outcome)

    return record


router = APIRouter(tags=["audit"])


@router.get("/audit")
def list_audit_logs(
    limit: int = 100,
    event_type: str | None = None,
    outcome: str | None = None,
    client_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Recent audit events, most recent first. Filters are exact matches; empty = all."""
    q = db.query(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    if event_type:
        q = q.filter(AuditLog.event_type == event_type)
    if outcome:
        q = q.filter(AuditLog.outcome == outcome)
    if client_id:
        q = q.filter(AuditLog.client_id == client_id)
    rows = q.limit(min(max(1, limit), 500)).all()
    return [
        {
            "created_at": r.created_at.isoformat() if r.created_at else None,
            "event_type": r.event_type,
            "client_id": r.client_id,
            "login": r.login,
            "ip": r.ip,
            "outcome": r.outcome,
        }
        for r in rows
    ]
