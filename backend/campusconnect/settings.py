"""Workflow tunables shared by services, routes and periodic tasks."""

import os

# purpose: centralise moderation, participation and notification knobs read from the environment
# status: active

TESTING = os.getenv("TESTING") == "1"

# Items with this many reports are expected to be hidden automatically once the
# threshold is wired into the moderation engine. Administrators act explicitly
# until then, so nothing reads this value for a state transition.
AUTO_HIDE_THRESHOLD = int(os.getenv("AUTO_HIDE_THRESHOLD", "5"))

MODERATION_QUEUE_LIMIT = int(os.getenv("MODERATION_QUEUE_LIMIT", "20"))
DEFAULT_EVENT_CAPACITY = int(os.getenv("DEFAULT_EVENT_CAPACITY", "50"))
EVENT_REMINDER_WINDOW_HOURS = int(os.getenv("EVENT_REMINDER_WINDOW_HOURS", "24"))
ITEM_LOCK_TIMEOUT_SECONDS = float(os.getenv("ITEM_LOCK_TIMEOUT_SECONDS", "10"))
NOTIFICATION_PAGE_SIZE = int(os.getenv("NOTIFICATION_PAGE_SIZE", "20"))
DIGEST_FREQUENCY = os.getenv("DIGEST_FREQUENCY", "daily")


def describe_settings() -> dict:
    """Return the settings surfaced on the admin settings view."""

    return {
        "content_moderation": {
            "auto_hide_threshold": AUTO_HIDE_THRESHOLD,
            "auto_hide_enabled": False,
            "queue_limit": MODERATION_QUEUE_LIMIT,
        },
        "item_approval": {
            "require_approval": True,
            "department_based": True,
            "auto_approve_admins": True,
        },
        "participation": {
            "default_event_capacity": DEFAULT_EVENT_CAPACITY,
        },
        "notifications": {
            "reminder_window_hours": EVENT_REMINDER_WINDOW_HOURS,
            "digest_frequency": DIGEST_FREQUENCY,
            "page_size": NOTIFICATION_PAGE_SIZE,
        },
    }
