from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce.models import Notification
from workforce.settings import get_settings

logger = logging.getLogger("workforce.notifications")


def notify_employee(
    db: Session,
    *,
    employee_id: int,
    title: str,
    body: str,
    meta: dict[str, Any] | None = None,
) -> Notification | None:
    """Queue a user-visible message for the notification collaborator.

    Must be called after the state transition it reports has committed. The
    write gets its own commit; on failure it is rolled back and logged, and
    the caller carries on.
    """
    if not get_settings().notifications_enabled:
        return None

    try:
        notification = Notification(
            employee_id=employee_id,
            title=title,
            body=body,
            meta=meta or {},
            read=False,
        )
        db.add(notification)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "notification_dispatch_failed",
            extra={"employee_id": employee_id, "title": title},
        )
        return None

    logger.info(
        "notification_queued",
        extra={"employee_id": employee_id, "title": title, "notification_id": notification.id},
    )
    return notification


def list_notifications(db: Session, *, employee_id: int, limit: int = 50) -> list[Notification]:
    return list(
        db.scalars(
            select(Notification)
            .where(Notification.employee_id == employee_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).all()
    )
