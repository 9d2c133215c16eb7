import pytest

from campusconnect import models
from campusconnect.errors import Conflict, Forbidden, NotFound, ValidationFailed, NOT_PENDING
from campusconnect.services import workflow

from .conftest import event_fields, post_fields, resource_fields


def _notifications(db, user, notification_type=None):
    query = db.query(models.Notification).filter(models.Notification.recipient_id == user.id)
    if notification_type:
        query = query.filter(models.Notification.type == notification_type)
    return query.all()


@pytest.fixture
def campus(make_user):
    return {
        "student": make_user(department="CS", name="Priya Student"),
        "cs_admin": make_user(admin=True, department="CS", name="Casey CS"),
        "ee_admin": make_user(admin=True, department="EE", name="Eli EE"),
        "global_admin": make_user(admin=True, name="Gale Global"),
    }


def test_student_item_starts_pending_and_alerts_covering_admins(db, campus):
    result = workflow.create_item(db, campus["student"], "event", event_fields())
    event = result.item

    assert event.approval == models.APPROVAL_PENDING
    assert event.owner_department == "CS"
    assert event.organizer_id == campus["student"].id
    assert len(_notifications(db, campus["cs_admin"], "item_created")) == 1
    assert len(_notifications(db, campus["global_admin"], "item_created")) == 1
    assert _notifications(db, campus["ee_admin"]) == []
    assert _notifications(db, campus["student"]) == []
    assert {n.recipient_id for n in result.notifications} == {
        campus["cs_admin"].id,
        campus["global_admin"].id,
    }


def test_admin_items_are_published_immediately(db, campus):
    event = workflow.create_item(db, campus["cs_admin"], "event", event_fields()).item

    assert event.approval == models.APPROVAL_APPROVED
    assert event.approved_by_id == campus["cs_admin"].id
    assert db.query(models.Notification).count() == 0


def test_out_of_department_admin_cannot_approve(db, campus):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item

    with pytest.raises(Forbidden) as exc:
        workflow.approve_item(db, campus["ee_admin"], "event", event.id)

    assert exc.value.message == "You can only moderate events from your department"
    db.refresh(event)
    assert event.approval == models.APPROVAL_PENDING
    assert _notifications(db, campus["student"]) == []


def test_department_admin_approval_notifies_owner_exactly_once(db, campus):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item

    result = workflow.approve_item(db, campus["cs_admin"], "event", event.id)

    assert result.item.approval == models.APPROVAL_APPROVED
    assert result.item.approved_by_id == campus["cs_admin"].id
    approved = _notifications(db, campus["student"], "item_approved")
    assert len(approved) == 1
    notice = approved[0]
    assert notice.message == 'Your event "Robotics Club Kickoff" has been approved by Casey CS'
    assert notice.related_entity == {"kind": "event", "id": event.id}
    assert notice.sender_id == campus["cs_admin"].id


def test_second_approval_is_a_conflict(db, campus):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item
    workflow.approve_item(db, campus["global_admin"], "event", event.id)

    with pytest.raises(Conflict) as exc:
        workflow.approve_item(db, campus["cs_admin"], "event", event.id)

    assert exc.value.code == NOT_PENDING
    assert len(_notifications(db, campus["student"], "item_approved")) == 1


def test_students_cannot_approve(db, campus, make_user):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item
    with pytest.raises(Forbidden):
        workflow.approve_item(db, make_user(department="CS"), "event", event.id)


def test_unknown_kind_is_a_validation_error(db, campus):
    with pytest.raises(ValidationFailed):
        workflow.approve_item(db, campus["global_admin"], "poll", campus["student"].id)


def test_reject_purges_item_and_second_reject_is_not_found(db, campus):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item
    event_id = event.id

    result = workflow.reject_item(db, campus["cs_admin"], "event", event_id, "Duplicate of an existing event")

    assert db.get(models.Event, event_id) is None
    assert result.item.title == "Robotics Club Kickoff"
    rejected = _notifications(db, campus["student"], "item_rejected")
    assert len(rejected) == 1
    assert rejected[0].message.endswith("Reason: Duplicate of an existing event")
    assert rejected[0].related_entity == {"kind": "event", "id": None}

    with pytest.raises(NotFound):
        workflow.reject_item(db, campus["cs_admin"], "event", event_id)
    assert len(_notifications(db, campus["student"], "item_rejected")) == 1


def test_approved_items_cannot_be_rejected(db, campus):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item
    workflow.approve_item(db, campus["cs_admin"], "event", event.id)

    with pytest.raises(Conflict):
        workflow.reject_item(db, campus["cs_admin"], "event", event.id)
    assert db.get(models.Event, event.id) is not None


def test_moderation_is_recorded_in_the_audit_log(db, campus):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item
    workflow.approve_item(db, campus["cs_admin"], "event", event.id)

    actions = [
        row.action
        for row in db.query(models.AuditLog).filter(models.AuditLog.target_id == event.id).all()
    ]
    assert sorted(actions) == ["approve", "create"]


def test_hide_unhide_and_clear_reports(db, campus):
    post = workflow.create_item(db, campus["student"], "post", post_fields()).item
    workflow.approve_item(db, campus["cs_admin"], "post", post.id)
    workflow.report_item(db, campus["global_admin"], "post", post.id)
    workflow.report_item(db, campus["ee_admin"], "post", post.id)
    assert db.get(models.ForumPost, post.id).report_count == 2

    hidden = workflow.moderate(db, campus["cs_admin"], "post", post.id, "hide", "spam")
    assert hidden.visibility == models.VISIBILITY_HIDDEN
    assert hidden.approval == models.APPROVAL_APPROVED
    # hiding twice is a no-op success
    assert workflow.moderate(db, campus["cs_admin"], "post", post.id, "hide").is_hidden

    with pytest.raises(NotFound):
        workflow.report_item(db, campus["student"], "post", post.id)

    shown = workflow.moderate(db, campus["global_admin"], "post", post.id, "unhide")
    assert shown.visibility == models.VISIBILITY_VISIBLE
    cleared = workflow.moderate(db, campus["cs_admin"], "post", post.id, "clear-reports")
    assert cleared.report_count == 0


def test_moderation_rejects_unknown_actions_and_foreign_scope(db, campus):
    post = workflow.create_item(db, campus["student"], "post", post_fields()).item
    with pytest.raises(ValidationFailed):
        workflow.moderate(db, campus["cs_admin"], "post", post.id, "delete")
    with pytest.raises(Forbidden):
        workflow.moderate(db, campus["ee_admin"], "post", post.id, "hide")


def test_hidden_accounts_stop_receiving_broadcasts(db, campus):
    workflow.moderate(db, campus["cs_admin"], "user", campus["student"].id, "hide")

    result = workflow.broadcast(db, campus["global_admin"], "Maintenance", "Portal offline at 2am")

    assert result.recipient_count == 3
    assert _notifications(db, campus["student"]) == []
    assert len(_notifications(db, campus["ee_admin"], "system_announcement")) == 1


def test_user_accounts_are_never_pending(db, campus):
    with pytest.raises(Conflict):
        workflow.approve_item(db, campus["global_admin"], "user", campus["student"].id)


def test_broadcast_requires_admin_and_valid_copy(db, campus):
    with pytest.raises(Forbidden):
        workflow.broadcast(db, campus["student"], "Hi", "Hello everyone")
    with pytest.raises(ValidationFailed):
        workflow.broadcast(db, campus["global_admin"], "", "Hello everyone")
    with pytest.raises(ValidationFailed):
        workflow.broadcast(db, campus["global_admin"], "Hi", "x" * 501)
    assert db.query(models.Notification).count() == 0


def test_update_notifies_participants_and_guards_capacity(db, campus, make_user):
    event = workflow.create_item(db, campus["cs_admin"], "event", event_fields(capacity=3)).item
    first, second = make_user(), make_user()
    workflow.join_event(db, first, event.id)
    workflow.join_event(db, second, event.id)

    with pytest.raises(ValidationFailed):
        workflow.update_item(db, campus["cs_admin"], "event", event.id, {"capacity": 1})

    result = workflow.update_item(db, campus["cs_admin"], "event", event.id, {"location": "Main Auditorium"})
    assert result.item.location == "Main Auditorium"
    assert len(_notifications(db, first, "item_updated")) == 1
    assert len(_notifications(db, second, "item_updated")) == 1


def test_only_owner_or_scoped_admin_can_update(db, campus, make_user):
    event = workflow.create_item(db, campus["student"], "event", event_fields()).item
    with pytest.raises(Forbidden):
        workflow.update_item(db, make_user(department="CS"), "event", event.id, {"location": "Lab 2"})
    with pytest.raises(Forbidden):
        workflow.update_item(db, campus["ee_admin"], "event", event.id, {"location": "Lab 2"})
    updated = workflow.update_item(db, campus["student"], "event", event.id, {"location": "Lab 2"}).item
    assert updated.location == "Lab 2"


def test_cancelling_an_event_notifies_participants(db, campus, make_user):
    event = workflow.create_item(db, campus["cs_admin"], "event", event_fields()).item
    attendee = make_user()
    workflow.join_event(db, attendee, event.id)

    workflow.set_event_status(db, campus["cs_admin"], event.id, "cancelled")
    workflow.set_event_status(db, campus["cs_admin"], event.id, "cancelled")

    assert len(_notifications(db, attendee, "item_cancelled")) == 1
    with pytest.raises(ValidationFailed):
        workflow.set_event_status(db, campus["cs_admin"], event.id, "postponed")


def test_deleting_an_event_cascades_participants(db, campus, make_user):
    event = workflow.create_item(db, campus["cs_admin"], "event", event_fields()).item
    event_id = event.id
    attendee = make_user()
    workflow.join_event(db, attendee, event_id)
    assert str(event_id) in attendee.joined_event_ids

    workflow.delete_event(db, campus["cs_admin"], event_id)

    assert db.get(models.Event, event_id) is None
    assert db.query(models.EventParticipant).filter_by(event_id=event_id).count() == 0
    cancelled = _notifications(db, attendee, "item_cancelled")
    assert len(cancelled) == 1
    assert cancelled[0].related_entity == {"kind": "event", "id": None}
    db.refresh(attendee)
    assert str(event_id) not in attendee.joined_event_ids


def test_replies_and_likes_notify_the_author(db, campus, make_user):
    post = workflow.create_item(db, campus["global_admin"], "post", post_fields()).item
    reader = make_user(name="Rae Reader")

    reply = workflow.reply_to_post(db, reader, post.id, {"content": "Count me in!"}).item
    assert reply.post_id == post.id
    liked = workflow.toggle_like(db, reader, post.id)
    assert liked.active is True
    unliked = workflow.toggle_like(db, reader, post.id)
    assert unliked.active is False
    assert unliked.notifications == []

    author = campus["global_admin"]
    assert len(_notifications(db, author, "reply")) == 1
    assert len(_notifications(db, author, "like")) == 1

    # acting on your own post stays silent
    workflow.reply_to_post(db, author, post.id, {"content": "Great, see you there"})
    assert len(_notifications(db, author, "reply")) == 1


def test_cannot_reply_to_pending_posts(db, campus, make_user):
    post = workflow.create_item(db, campus["student"], "post", post_fields()).item
    with pytest.raises(ValidationFailed):
        workflow.reply_to_post(db, make_user(), post.id, {"content": "Hello"})


def test_bookmarks_toggle(db, campus, make_user):
    resource = workflow.create_item(db, campus["cs_admin"], "resource", resource_fields()).item
    reader = make_user()

    assert workflow.toggle_bookmark(db, reader, resource.id).active is True
    assert db.query(models.ResourceBookmark).count() == 1
    assert workflow.toggle_bookmark(db, reader, resource.id).active is False
    assert db.query(models.ResourceBookmark).count() == 0


def test_resource_scope_uses_uploader_department(db, campus):
    resource = workflow.create_item(db, campus["student"], "resource", resource_fields(department="EE")).item
    assert resource.owner_department == "CS"
    with pytest.raises(Forbidden):
        workflow.approve_item(db, campus["ee_admin"], "resource", resource.id)
    workflow.approve_item(db, campus["cs_admin"], "resource", resource.id)


def test_pending_listing_is_scoped(db, campus, make_user):
    workflow.create_item(db, campus["student"], "event", event_fields())
    workflow.create_item(db, make_user(department="EE"), "event", event_fields(title="Circuits Workshop"))

    cs_items, cs_total, _ = workflow.list_pending(db, campus["cs_admin"], "event")
    all_items, all_total, scope = workflow.list_pending(db, campus["global_admin"], "event")

    assert cs_total == 1 and cs_items[0].title == "Robotics Club Kickoff"
    assert all_total == 2
    assert scope.is_global


def test_past_event_dates_are_rejected(db, campus):
    from datetime import datetime, timedelta, timezone

    with pytest.raises(ValidationFailed):
        workflow.create_item(
            db,
            campus["student"],
            "event",
            event_fields(date=datetime.now(timezone.utc) - timedelta(days=1)),
        )
    assert db.query(models.Event).count() == 0


def test_visibility_actions_need_an_approved_item(db, campus):
    post = workflow.create_item(db, campus["student"], "post", post_fields()).item

    with pytest.raises(Conflict) as exc:
        workflow.moderate(db, campus["cs_admin"], "post", post.id, "hide")

    assert exc.value.code == NOT_PENDING
    db.refresh(post)
    assert post.visibility == models.VISIBILITY_VISIBLE


def test_deleting_a_post_removes_its_replies_and_likes(db, campus, make_user):
    post_id = workflow.create_item(db, campus["global_admin"], "post", post_fields()).item.id
    reader = make_user()
    workflow.reply_to_post(db, reader, post_id, {"content": "Count me in"})
    workflow.toggle_like(db, reader, post_id)

    with pytest.raises(Forbidden):
        workflow.delete_item(db, reader, "post", post_id)

    workflow.delete_item(db, campus["global_admin"], "post", post_id)

    assert db.get(models.ForumPost, post_id) is None
    assert db.query(models.ForumReply).count() == 0
    assert db.query(models.PostLike).count() == 0
    deleted = db.query(models.AuditLog).filter_by(action="delete", target_id=post_id).one()
    assert deleted.actor_id == campus["global_admin"].id


def test_deleting_a_resource_drops_bookmarks(db, campus, make_user):
    resource_id = workflow.create_item(db, campus["cs_admin"], "resource", resource_fields()).item.id
    workflow.toggle_bookmark(db, make_user(), resource_id)

    with pytest.raises(Forbidden):
        workflow.delete_item(db, campus["ee_admin"], "resource", resource_id)

    workflow.delete_item(db, campus["cs_admin"], "resource", resource_id)

    assert db.get(models.Resource, resource_id) is None
    assert db.query(models.ResourceBookmark).count() == 0
    with pytest.raises(NotFound):
        workflow.delete_item(db, campus["cs_admin"], "resource", resource_id)


def test_reply_deletion_is_limited_to_author_and_scoped_admins(db, campus, make_user):
    post = workflow.create_item(db, campus["student"], "post", post_fields()).item
    workflow.approve_item(db, campus["cs_admin"], "post", post.id)
    reader = make_user()
    reply_id = workflow.reply_to_post(db, reader, post.id, {"content": "Me too"}).item.id

    with pytest.raises(Forbidden):
        workflow.delete_reply(db, campus["ee_admin"], post.id, reply_id)
    with pytest.raises(Forbidden):
        workflow.delete_reply(db, make_user(), post.id, reply_id)

    workflow.delete_reply(db, campus["cs_admin"], post.id, reply_id)

    assert db.get(models.ForumReply, reply_id) is None
    with pytest.raises(NotFound):
        workflow.delete_reply(db, reader, post.id, reply_id)


def test_locked_posts_refuse_replies_until_unlocked(db, campus, make_user):
    post = workflow.create_item(db, campus["global_admin"], "post", post_fields()).item
    reader = make_user()

    with pytest.raises(Forbidden):
        workflow.set_locked(db, reader, post.id, True)
    with pytest.raises(Forbidden):
        workflow.set_locked(db, campus["cs_admin"], post.id, True)

    assert workflow.set_locked(db, campus["global_admin"], post.id, True).is_locked is True
    with pytest.raises(ValidationFailed):
        workflow.reply_to_post(db, reader, post.id, {"content": "Too late?"})

    workflow.set_locked(db, campus["global_admin"], post.id, False)
    reply = workflow.reply_to_post(db, reader, post.id, {"content": "Back open"}).item
    assert reply.post_id == post.id


def test_pinning_is_admin_only_and_audited(db, campus):
    post = workflow.create_item(db, campus["cs_admin"], "post", post_fields()).item

    with pytest.raises(Forbidden):
        workflow.set_pinned(db, campus["student"], post.id, True)

    assert workflow.set_pinned(db, campus["cs_admin"], post.id, True).is_pinned is True
    actions = [row.action for row in db.query(models.AuditLog).filter_by(target_id=post.id).all()]
    assert "pin" in actions


def test_user_listing_and_stats_follow_admin_scope(db, campus, make_user):
    make_user(department="CS", active=False)
    make_user(department="EE")
    workflow.create_item(db, campus["student"], "post", post_fields())

    users, total, scope = workflow.list_users(db, campus["cs_admin"])
    assert scope.department == "CS"
    assert total == 3
    assert {user.department for user in users} == {"CS"}
    _, inactive, _ = workflow.list_users(db, campus["cs_admin"], status="inactive")
    assert inactive == 1
    _, everyone, _ = workflow.list_users(db, campus["global_admin"])
    assert everyone == 6

    stats, _ = workflow.dashboard_stats(db, campus["cs_admin"])
    assert stats["user"] == {"total": 3, "active": 2, "admins": 1}
    assert stats["post"]["pending"] == 1
    assert stats["event"]["upcoming"] == 0
    with pytest.raises(Forbidden):
        workflow.dashboard_stats(db, campus["student"])
