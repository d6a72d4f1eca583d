from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from sqlalchemy.orm import Session

from workforce.models import AuditActorType, AuditLog

logger = logging.getLogger("workforce.audit")


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def record_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    entity_type: str | None = None,
    entity_id: str | int | None = None,
    success: bool = True,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> None:
    """Append an audit row in its own commit.

    Runs after the audited transition has committed; a failed audit write is
    rolled back and logged, never re-raised.
    """
    request_id = getattr(request.state, "request_id", None) if request is not None else None
    audit = AuditLog(
        ts_utc=datetime.now(timezone.utc),
        actor_type=actor_type,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=_client_ip(request) if request is not None else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
        success=success,
        details=details or {},
    )
    db.add(audit)
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "audit_log_write_failed",
            extra={
                "request_id": request_id,
                "action": action,
                "actor_type": actor_type.value,
                "actor_id": actor_id,
            },
        )
        return

    logger.info(
        "audit_event",
        extra={
            "request_id": request_id,
            "action": action,
            "actor_type": actor_type.value,
            "actor_id": actor_id,
            "entity_type": entity_type,
            "entity_id": audit.entity_id,
            "success": success,
            "details": details or {},
        },
    )
