import os
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage

import structlog

from . import models
from .settings import DIGEST_FREQUENCY

EMAIL_OUTBOX: list[tuple[str, str, str]] = []

logger = structlog.get_logger()


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@campusconnect.local")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(server) as s:
        s.send_message(msg)


def _digest_body(user: models.User, notifications: list[models.Notification]) -> str:
    lines = [f"Hello {user.display_name},", "", "Here is what happened since your last digest:", ""]
    for notification in notifications:
        lines.append(f"- [{notification.type}] {notification.title}: {notification.message}")
    return "\n".join(lines)


def send_daily_digest(db) -> int:
    """Email every active user the unread notifications they have not had mailed yet."""

    if DIGEST_FREQUENCY != "daily":
        return 0
    now = datetime.now(timezone.utc)
    users = (
        db.query(models.User)
        .filter(models.User.visibility == models.VISIBILITY_VISIBLE)
        .all()
    )
    sent = 0
    for user in users:
        if not user.email:
            continue
        query = db.query(models.Notification).filter(
            models.Notification.recipient_id == user.id,
            models.Notification.is_read.is_(False),
            models.Notification.is_email_sent.is_(False),
        )
        if user.last_digest:
            query = query.filter(models.Notification.created_at > user.last_digest)
        notifs = query.order_by(models.Notification.created_at.asc()).all()
        if not notifs:
            continue
        try:
            send_email(user.email, "Daily Notification Digest", _digest_body(user, notifs))
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("digest_email_failed", user_id=str(user.id), error=str(exc))
            continue
        for notif in notifs:
            notif.is_email_sent = True
            notif.email_sent_at = now
        user.last_digest = now
        sent += 1
    db.commit()
    logger.info("daily_digest_sent", recipients=sent)
    return sent
