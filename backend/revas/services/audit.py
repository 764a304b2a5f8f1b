import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from revas import models

logger = logging.getLogger("revas.audit")


def audit_event(
    action: str,
    user_id: Optional[int],
    payload: Dict[str, Any],
    *,
    db: Session | None = None,
    order_id: int | None = None,
    idempotency_key: str | None = None,
    request_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
) -> Optional[int]:
    """
    Persist an audit event in its own commit; on DB failure log it instead.

    Call after the business transaction has committed. Returns the audit log id
    when available.
    """
    created_session = False
    session: Session | None = db
    try:
        if session is None:
            from revas.database import SessionLocal

            session = SessionLocal()
            created_session = True

        if idempotency_key:
            existing = (
                session.query(models.AuditLog)
                .filter(models.AuditLog.idempotency_key == idempotency_key)
                .first()
            )
            if existing is not None:
                return existing.id

        log = models.AuditLog(
            action=action,
            user_id=user_id,
            order_id=order_id,
            payload_json=json.dumps(payload or {}, default=str),
            idempotency_key=idempotency_key,
            request_id=request_id,
            ip=ip,
            user_agent=user_agent,
        )
        session.add(log)
        session.commit()
        return log.id
    except SQLAlchemyError:
        if session is not None:
            session.rollback()
        logger.exception(
            "audit_write_failed",
            extra={"action": action, "user_id": user_id, "order_id": order_id},
        )
        return None
    finally:
        if created_session and session is not None:
            session.close()


def audit_request_context(request) -> dict[str, Any]:
    """Request metadata stored alongside audit rows."""

    if request is None:
        return {}
    return {
        "request_id": request.headers.get("x-request-id"),
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }
