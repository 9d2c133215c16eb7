import uuid

import pytest

from campusconnect import models
from campusconnect.errors import ValidationFailed
from campusconnect.services import fanout


def test_one_row_per_recipient_with_duplicates_collapsed(db, make_user):
    alice, bob = make_user(), make_user()

    result = fanout.notify(
        db,
        [alice.id, bob.id, alice.id],
        notification_type="system_announcement",
        title="Library hours",
        message="The library closes early on Friday.",
    )

    assert result.recipient_count == 2
    assert result.rejected == []
    rows = db.query(models.Notification).all()
    assert {row.recipient_id for row in rows} == {alice.id, bob.id}
    assert all(row.is_read is False for row in rows)
    assert all(row.priority == "medium" for row in rows)


def test_unknown_recipients_are_reported_not_fatal(db, make_user):
    alice = make_user()
    ghost = uuid.uuid4()

    result = fanout.notify(
        db,
        [ghost, alice.id, "not-a-uuid"],
        notification_type="event_reminder",
        title="Reminder",
        message="Hackathon starts tomorrow.",
    )

    assert result.recipient_count == 1
    assert result.rejected == [ghost]
    assert db.query(models.Notification).count() == 1


def test_repeated_calls_are_not_deduplicated(db, make_user):
    alice = make_user()
    for _ in range(2):
        fanout.notify(
            db,
            [alice.id],
            notification_type="system_announcement",
            title="Heads up",
            message="Same message twice.",
        )
    assert db.query(models.Notification).filter_by(recipient_id=alice.id).count() == 2


def test_all_active_users_skips_hidden_accounts(db, make_user):
    active = make_user()
    make_user(active=False)

    result = fanout.notify(
        db,
        fanout.ALL_ACTIVE_USERS,
        notification_type="system_announcement",
        title="Welcome",
        message="New semester, new portal.",
        priority="high",
    )

    assert [n.recipient_id for n in result.notifications] == [active.id]
    assert result.notifications[0].priority == "high"


def test_related_entity_round_trips(db, make_user):
    alice = make_user()
    event_id = uuid.uuid4()

    fanout.notify(
        db,
        [alice.id],
        notification_type="item_updated",
        title="Event Updated",
        message="Venue changed.",
        related=fanout.RelatedEntity(kind="event", id=event_id),
    )

    row = db.query(models.Notification).one()
    assert row.related_entity == {"kind": "event", "id": event_id}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"notification_type": "poke", "title": "t", "message": "m"},
        {"notification_type": "like", "title": " ", "message": "m"},
        {"notification_type": "like", "title": "t" * 101, "message": "m"},
        {"notification_type": "like", "title": "t", "message": "m" * 501},
        {"notification_type": "like", "title": "t", "message": "m", "priority": "urgent"},
    ],
)
def test_invalid_copy_is_rejected_before_any_insert(db, make_user, kwargs):
    alice = make_user()
    with pytest.raises(ValidationFailed):
        fanout.notify(db, [alice.id], **kwargs)
    assert db.query(models.Notification).count() == 0
