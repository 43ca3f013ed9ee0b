"""
Push notification service.
Stores a notification record per push and, when a webhook is configured,
hands the message to the push gateway. Delivery is best-effort.
"""
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import httpx
import structlog
from sqlalchemy.orm import Session

from ..config import settings
from ..models.models import Notification


logger = structlog.get_logger(__name__)


def _deliver(notification: Notification) -> None:
    """POST the notification to the push gateway."""
    with httpx.Client(timeout=settings.push_timeout_seconds) as client:
        response = client.post(
            settings.push_webhook_url,
            json={
                "to": str(notification.user_id),
                "title": notification.title,
                "body": notification.body,
                "data": notification.payload_json or {},
            },
        )
        response.raise_for_status()


def send_push_notification(
    db: Session,
    user_id,
    title: str,
    body: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[Notification]:
    """
    Create a push notification record and deliver it.

    Args:
        db: Database session
        user_id: Recipient user ID
        title: Notification title
        body: Notification text
        metadata: Extra payload (type, requestId, status, ...)

    Returns:
        Notification object if created, None if push is disabled
    """
    if not settings.enable_push:
        return None

    notification = Notification(
        user_id=user_id,
        channel="push",
        title=title,
        body=body,
        payload_json=metadata or {},
        status="pending",
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    if settings.push_webhook_url:
        try:
            _deliver(notification)
        except httpx.HTTPError as e:
            notification.status = "failed"
            notification.error_message = str(e)
            db.commit()
            raise
        notification.status = "sent"
        notification.sent_at = datetime.now(timezone.utc)
        db.commit()

    return notification


def notify_best_effort(
    db: Session,
    user_id,
    title: str,
    body: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[Notification]:
    """
    Send a push notification without ever failing the caller.
    Errors are logged and swallowed; the caller's state change has already
    been committed.
    """
    if not user_id:
        return None
    try:
        return send_push_notification(db, user_id, title, body, metadata)
    except Exception as e:
        db.rollback()
        logger.warning(
            "notification.failed",
            user_id=str(user_id),
            title=title,
            error=str(e),
        )
        return None
