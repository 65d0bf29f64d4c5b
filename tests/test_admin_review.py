"""Tests for the admin review console."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from bonlog.db.content_tables import CommentRow, EventRow, ShopRow, ShopReviewRow
from bonlog.db.report_tables import AdminLogRow, AdminNotificationRow, ReportRow
from bonlog.db.tables import PostMediaRow, PostRow
from bonlog.db.user_tables import UserRow
from bonlog.errors import AuthenticationRequired, NotFound, PermissionDenied
from bonlog.services import admin_review, moderation

from conftest import TestSession, auth_headers, make_post, make_row, make_user

NOW = datetime(2026, 9, 1, 12, 0, 0)


@pytest.fixture
async def admin():
    return await make_user("admin@test.com", "Admin", admin=True)


@pytest.fixture
async def author():
    return await make_user("author@test.com", "Author")


async def _count(model, *where) -> int:
    async with TestSession() as s:
        return (await s.execute(select(func.count()).select_from(model).where(*where))).scalar()


async def _auto_hidden_post(author, reporters: int = 3) -> PostRow:
    post = await make_post(author.id)
    async with TestSession() as s:
        for i in range(reporters):
            r = await make_user(f"r{i}-{post.id[:6]}@test.com")
            await moderation.create_report(s, r.id, "post", post.id, "spam", threshold=reporters)
    return post


# ── Permissions ──────────────────────────────────────────────────────────

async def test_ensure_admin(session, admin, author, caplog):
    caplog.set_level(logging.INFO, logger="bonlog.security")
    grant = await admin_review.ensure_admin(session, admin.id)
    assert grant.user_id == admin.id

    with pytest.raises(PermissionDenied):
        await admin_review.ensure_admin(session, author.id)
    assert any('"UNAUTHORIZED_ACCESS"' in r.getMessage() for r in caplog.records)

    with pytest.raises(AuthenticationRequired):
        await admin_review.ensure_admin(session, None)
    with pytest.raises(AuthenticationRequired):
        await admin_review.ensure_admin(session, "ghost")


async def test_http_status_codes(client, admin, author):
    assert (await client.get("/api/v1/admin/hidden")).status_code == 401
    assert (await client.get("/api/v1/admin/hidden", headers=auth_headers(author))).status_code == 403
    assert (await client.get("/api/v1/admin/hidden", headers=auth_headers(admin))).status_code == 200
    resp = await client.post("/api/v1/admin/hidden/post/missing/restore", headers=auth_headers(admin))
    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"


# ── Hidden content listing ───────────────────────────────────────────────

async def test_hidden_content_merges_kinds_newest_first(session, admin, author):
    post = await make_post(author.id, is_hidden=True, hidden_at=NOW - timedelta(hours=3))
    shop = await make_row(ShopRow(
        name="Shunka-en", address="Edogawa, Tokyo", created_by=author.id,
        is_hidden=True, hidden_at=NOW - timedelta(hours=1),
    ))
    await make_row(ShopReviewRow(
        shop_id=shop.id, user_id=author.id, rating=1, content=None,
        is_hidden=True, hidden_at=NOW - timedelta(hours=2),
    ))
    await make_row(EventRow(
        title="Satsuki show", description="Annual azalea exhibition", start_date=NOW,
        created_by=author.id, is_hidden=True, hidden_at=NOW,
    ))
    await make_post(author.id, content="still visible")

    items = (await admin_review.get_hidden_content(session, admin.id))["items"]

    assert [i["type"] for i in items] == ["event", "shop", "review", "post"]
    assert items[0]["content"] == "Satsuki show: Annual azalea exhibition"
    assert items[1]["content"] == "Shunka-en (Edogawa, Tokyo)"
    assert items[2]["content"] == "Shunka-en review: (no comment)"
    assert items[3]["id"] == post.id
    assert items[3]["created_by"] == {"id": author.id, "display_name": "Author", "avatar_url": None}
    assert items[3]["hidden_at"] == (NOW - timedelta(hours=3)).isoformat()


async def test_hidden_content_report_counts(session, admin, author):
    post = await _auto_hidden_post(author, reporters=3)
    [item] = (await admin_review.get_hidden_content(session, admin.id, "post"))["items"]
    assert item["id"] == post.id
    assert item["report_count"] == 3


async def test_hidden_content_pagination_across_kinds(session, admin, author):
    for h in range(4):
        await make_post(author.id, content=f"p{h}", is_hidden=True, hidden_at=NOW - timedelta(hours=2 * h))
        await make_row(CommentRow(
            post_id=(await make_post(author.id)).id, user_id=author.id, content=f"c{h}",
            is_hidden=True, hidden_at=NOW - timedelta(hours=2 * h + 1),
        ))

    first = (await admin_review.get_hidden_content(session, admin.id, limit=3, offset=0))["items"]
    second = (await admin_review.get_hidden_content(session, admin.id, limit=3, offset=3))["items"]
    assert [i["content"] for i in first] == ["p0", "c0", "p1"]
    assert [i["content"] for i in second] == ["c1", "p2", "c2"]


async def test_hidden_content_type_filter(session, admin, author):
    await make_post(author.id, is_hidden=True, hidden_at=NOW)
    await make_row(EventRow(title="Show", start_date=NOW, created_by=author.id, is_hidden=True, hidden_at=NOW))

    items = (await admin_review.get_hidden_content(session, admin.id, "event"))["items"]
    assert [i["type"] for i in items] == ["event"]
    assert "error" in await admin_review.get_hidden_content(session, admin.id, "gallery")


# ── Restore ──────────────────────────────────────────────────────────────

async def test_restore_reverses_auto_hide(session, admin, author):
    post = await _auto_hidden_post(author)

    result = await admin_review.restore_content(session, admin.id, "post", post.id)
    assert result == {"success": True, "changed": True}

    async with TestSession() as s:
        restored = await s.get(PostRow, post.id)
        assert restored.is_hidden is False
        assert restored.hidden_at is None
        statuses = set((await s.execute(
            select(ReportRow.status).where(ReportRow.target_id == post.id)
        )).scalars().all())
        assert statuses == {"resolved"}
        [notification] = (await s.execute(select(AdminNotificationRow))).scalars().all()
        assert notification.is_resolved is True
        assert notification.resolved_at is not None
        logs = (await s.execute(select(AdminLogRow))).scalars().all()
    assert [(l.action, l.target_type, l.target_id, l.admin_id) for l in logs] == [
        ("restore_content", "post", post.id, admin.id),
    ]


async def test_restore_visible_content_is_noop(session, admin, author):
    post = await make_post(author.id)
    assert await admin_review.restore_content(session, admin.id, "post", post.id) == {
        "success": True, "changed": False,
    }
    assert await _count(AdminLogRow) == 0


async def test_restore_missing_raises(session, admin):
    with pytest.raises(NotFound):
        await admin_review.restore_content(session, admin.id, "comment", "missing")


async def test_hide_then_restore_via_api(client, admin, author):
    post = await make_post(author.id)
    headers = auth_headers(admin)

    resp = await client.post(f"/api/v1/admin/hidden/post/{post.id}/hide", headers=headers)
    assert resp.json() == {"success": True, "changed": True}
    resp = await client.get("/api/v1/admin/hidden?type=post", headers=headers)
    assert [i["id"] for i in resp.json()["items"]] == [post.id]

    resp = await client.post(f"/api/v1/admin/hidden/post/{post.id}/restore", headers=headers)
    assert resp.json()["changed"] is True
    resp = await client.get("/api/v1/admin/hidden", headers=headers)
    assert resp.json()["items"] == []


# ── Delete ───────────────────────────────────────────────────────────────

async def test_delete_post_removes_dependants(session, admin, author):
    post = await _auto_hidden_post(author)
    root = await make_row(CommentRow(post_id=post.id, user_id=author.id, content="root"))
    reply = await make_row(CommentRow(post_id=post.id, user_id=author.id, parent_id=root.id, content="reply"))
    await make_row(PostMediaRow(post_id=post.id, url="https://cdn.test/1.jpg", type="image"))
    reporter = await make_user("reporter@test.com")
    await moderation.create_report(session, reporter.id, "comment", reply.id, "harassment", threshold=1)
    await moderation.create_report(session, reporter.id, "comment", root.id, "spam", threshold=5)

    result = await admin_review.delete_hidden_content(session, admin.id, "post", post.id)
    assert result == {"success": True}

    assert await _count(PostRow, PostRow.id == post.id) == 0
    assert await _count(CommentRow) == 0
    assert await _count(PostMediaRow) == 0
    assert await _count(ReportRow) == 0
    assert await _count(AdminNotificationRow) == 2
    assert await _count(AdminNotificationRow, AdminNotificationRow.is_resolved == False) == 0  # noqa: E712
    assert await _count(AdminLogRow, AdminLogRow.action == "delete_hidden_content") == 1


async def test_delete_comment_removes_reply_tree(session, admin, author):
    post = await make_post(author.id)
    root = await make_row(CommentRow(post_id=post.id, user_id=author.id, content="root", is_hidden=True, hidden_at=NOW))
    child = await make_row(CommentRow(post_id=post.id, user_id=author.id, parent_id=root.id, content="child"))
    await make_row(CommentRow(post_id=post.id, user_id=author.id, parent_id=child.id, content="grandchild"))
    sibling = await make_row(CommentRow(post_id=post.id, user_id=author.id, content="unrelated"))

    await admin_review.delete_hidden_content(session, admin.id, "comment", root.id)

    async with TestSession() as s:
        remaining = (await s.execute(select(CommentRow.id))).scalars().all()
    assert remaining == [sibling.id]
    assert await _count(PostRow) == 1


async def test_delete_shop_removes_reviews(session, admin, author):
    shop = await make_row(ShopRow(name="Mansei-en", address="Omiya", created_by=author.id, is_hidden=True, hidden_at=NOW))
    review = await make_row(ShopReviewRow(shop_id=shop.id, user_id=author.id, rating=5, content="Great"))
    reporter = await make_user("reporter@test.com")
    await moderation.create_report(session, reporter.id, "review", review.id, "spam", threshold=1)

    await admin_review.delete_hidden_content(session, admin.id, "shop", shop.id)
    assert await _count(ShopRow) == 0
    assert await _count(ShopReviewRow) == 0
    assert await _count(ReportRow, ReportRow.target_id == review.id) == 0
    async with TestSession() as s:
        [notification] = (await s.execute(select(AdminNotificationRow))).scalars().all()
    assert notification.target_id == review.id
    assert notification.is_resolved is True


async def test_delete_via_api(client, admin, author):
    post = await make_post(author.id, is_hidden=True, hidden_at=NOW)
    resp = await client.delete(f"/api/v1/admin/hidden/post/{post.id}", headers=auth_headers(admin))
    assert resp.status_code == 200
    resp = await client.delete(f"/api/v1/admin/hidden/post/{post.id}", headers=auth_headers(admin))
    assert resp.status_code == 404


# ── Notifications ────────────────────────────────────────────────────────

async def test_notifications_read_flow(client, admin, author):
    await _auto_hidden_post(author)
    await _auto_hidden_post(author)
    headers = auth_headers(admin)

    resp = await client.get("/api/v1/admin/notifications", headers=headers)
    body = resp.json()
    assert body["unread_count"] == 2
    first_id = body["notifications"][0]["id"]

    resp = await client.post(f"/api/v1/admin/notifications/{first_id}/read", headers=headers)
    assert resp.json() == {"success": True}
    resp = await client.get("/api/v1/admin/notifications?unread_only=true", headers=headers)
    assert len(resp.json()["notifications"]) == 1
    assert resp.json()["unread_count"] == 1

    resp = await client.post("/api/v1/admin/notifications/read-all", headers=headers)
    assert resp.json() == {"success": True, "updated": 1}
    resp = await client.get("/api/v1/admin/notifications", headers=headers)
    assert resp.json()["unread_count"] == 0

    resp = await client.post("/api/v1/admin/notifications/missing/read", headers=headers)
    assert resp.status_code == 404


# ── Users ────────────────────────────────────────────────────────────────

async def test_suspend_and_activate(session, admin, author, caplog):
    caplog.set_level(logging.INFO, logger="bonlog.security")

    result = await admin_review.suspend_user(session, admin.id, author.id, reason="spam ring")
    assert result == {"success": True, "changed": True}
    assert (await admin_review.suspend_user(session, admin.id, author.id))["changed"] is False

    async with TestSession() as s:
        assert (await s.get(UserRow, author.id)).is_suspended is True

    result = await admin_review.activate_user(session, admin.id, author.id)
    assert result == {"success": True, "changed": True}
    async with TestSession() as s:
        user = await s.get(UserRow, author.id)
        assert user.is_suspended is False
        assert user.suspended_at is None

    logs = (await admin_review.get_admin_logs(session, admin.id))["logs"]
    assert {l["action"] for l in logs} == {"suspend_user", "activate_user"}
    assert logs[0]["admin"] == {"id": admin.id, "display_name": "Admin"}
    assert sum('"ADMIN_ACTION"' in r.getMessage() for r in caplog.records) == 2


async def test_cannot_suspend_self_or_admin(session, admin):
    other_admin = await make_user("mod@test.com", admin=True)
    assert "error" in await admin_review.suspend_user(session, admin.id, admin.id)
    assert "error" in await admin_review.suspend_user(session, admin.id, other_admin.id)
    with pytest.raises(NotFound):
        await admin_review.suspend_user(session, admin.id, "ghost")


async def test_suspended_user_is_locked_out_of_api(client, admin, author):
    resp = await client.post(
        f"/api/v1/admin/users/{author.id}/suspend", headers=auth_headers(admin), json={"reason": "spam"},
    )
    assert resp.json()["success"] is True
    resp = await client.get("/api/v1/reports/my", headers=auth_headers(author))
    assert resp.status_code == 403


async def test_admin_logs_filter(client, admin, author):
    post = await make_post(author.id)
    headers = auth_headers(admin)
    await client.post(f"/api/v1/admin/hidden/post/{post.id}/hide", headers=headers)
    await client.post(f"/api/v1/admin/users/{author.id}/suspend", headers=headers)

    resp = await client.get("/api/v1/admin/logs?action=hide_content", headers=headers)
    body = resp.json()
    assert body["total"] == 1
    assert body["logs"][0]["target_id"] == post.id
