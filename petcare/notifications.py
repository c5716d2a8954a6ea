"""Fire-and-forget user notifications.

Notifications are written after the triggering transaction has committed, in
their own transaction, so a failure here never undoes a booking or order
change.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import Notification


def send_notification(user_id: int, title: str, body: str, link: str | None = None) -> Notification | None:
    notification = Notification(user_id=user_id, title=title, body=body, link=link)
    try:
        db.session.add(notification)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning("Failed to send notification to user %s: %s", user_id, exc)
        return None
    return notification
