from campusconnect import models

from .conftest import headers_for, post_fields, resource_fields


def _post(client, author, **overrides):
    resp = client.post("/api/forum/posts", json=post_fields(**overrides), headers=headers_for(author))
    assert resp.status_code == 201
    return resp.json()


def test_pinned_posts_lead_the_listing(client, make_user):
    admin = make_user(admin=True)
    student = make_user()
    older = _post(client, admin, title="Library hours update")
    _post(client, admin, title="Lost and found desk")

    assert client.put(
        f"/api/forum/posts/{older['id']}/pin", json={"value": True}, headers=headers_for(student)
    ).status_code == 403

    pinned = client.put(f"/api/forum/posts/{older['id']}/pin", json={"value": True}, headers=headers_for(admin))
    assert pinned.status_code == 200
    assert pinned.json()["is_pinned"] is True

    listing = client.get("/api/forum/posts", headers=headers_for(student)).json()
    assert listing[0]["id"] == older["id"]


def test_locked_post_rejects_new_replies(client, make_user):
    admin = make_user(admin=True)
    student = make_user()
    post = _post(client, admin)

    locked = client.put(f"/api/forum/posts/{post['id']}/lock", json={"value": True}, headers=headers_for(admin))
    assert locked.json()["is_locked"] is True

    resp = client.post(
        f"/api/forum/posts/{post['id']}/replies",
        json={"content": "Is this still open?"},
        headers=headers_for(student),
    )
    assert resp.status_code == 400
    assert resp.json() == {"detail": "Cannot reply to locked post", "code": "validation"}


def test_reply_and_post_deletion(client, db, make_user):
    admin = make_user(admin=True)
    student = make_user()
    post = _post(client, admin)
    reply = client.post(
        f"/api/forum/posts/{post['id']}/replies",
        json={"content": "Great idea"},
        headers=headers_for(student),
    ).json()
    client.post(f"/api/forum/posts/{post['id']}/like", headers=headers_for(student))

    reply_path = f"/api/forum/posts/{post['id']}/replies/{reply['id']}"
    assert client.delete(reply_path, headers=headers_for(make_user())).status_code == 403
    assert client.delete(reply_path, headers=headers_for(student)).status_code == 200
    assert client.delete(reply_path, headers=headers_for(student)).status_code == 404

    assert client.delete(f"/api/forum/posts/{post['id']}", headers=headers_for(student)).status_code == 403
    resp = client.delete(f"/api/forum/posts/{post['id']}", headers=headers_for(admin))
    assert resp.json() == {"message": "Post deleted successfully"}
    assert client.get(f"/api/forum/posts/{post['id']}", headers=headers_for(student)).status_code == 404
    assert db.query(models.PostLike).count() == 0


def test_uploader_deletes_resource_and_bookmarks_follow(client, db, make_user):
    uploader = make_user(admin=True, department="CS")
    reader = make_user()
    resource = client.post("/api/resources", json=resource_fields(), headers=headers_for(uploader)).json()
    client.post(f"/api/resources/{resource['id']}/bookmark", headers=headers_for(reader))
    assert len(client.get("/api/resources/bookmarks", headers=headers_for(reader)).json()) == 1

    assert client.delete(f"/api/resources/{resource['id']}", headers=headers_for(reader)).status_code == 403
    resp = client.delete(f"/api/resources/{resource['id']}", headers=headers_for(uploader))
    assert resp.status_code == 200

    assert client.get("/api/resources/bookmarks", headers=headers_for(reader)).json() == []
    assert db.query(models.ResourceBookmark).count() == 0
