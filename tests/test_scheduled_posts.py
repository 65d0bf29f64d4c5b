"""Tests for scheduled posts and the publish batch."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from bonlog.db.scheduled_post_tables import ScheduledPostGenreRow, ScheduledPostMediaRow, ScheduledPostRow
from bonlog.db.tables import GenreRow, PostGenreRow, PostMediaRow, PostRow, utcnow
from bonlog.errors import NotFound, PermissionDenied, TransientStorageError
from bonlog.services import scheduled_posts
from bonlog.services.scheduled_posts import publish_scheduled_posts
from config.settings import settings

from conftest import TestSession, auth_headers, make_row, make_user

NOW = datetime(2026, 10, 1, 8, 0, 0)


@pytest.fixture
async def premium():
    return await make_user("premium@test.com", "Premium", premium=True)


@pytest.fixture
async def genres():
    return [
        await make_row(GenreRow(name=name, category="conifer", sort_order=i))
        for i, name in enumerate(["Black pine", "Juniper", "Larch", "Hinoki"])
    ]


async def _scheduled(user_id: str, at: datetime, status: str = "pending", content: str = "Repotting day") -> ScheduledPostRow:
    return await make_row(ScheduledPostRow(user_id=user_id, content=content, scheduled_at=at, status=status))


async def _status(sp_id: str) -> ScheduledPostRow:
    async with TestSession() as s:
        return await s.get(ScheduledPostRow, sp_id)


# ── Publish batch ────────────────────────────────────────────────────────

async def test_publishes_due_posts_with_media_and_genres(session, premium, genres):
    sp = await _scheduled(premium.id, NOW - timedelta(minutes=1))
    await make_row(ScheduledPostMediaRow(scheduled_post_id=sp.id, url="https://cdn.test/b.jpg", type="image", sort_order=1))
    await make_row(ScheduledPostMediaRow(scheduled_post_id=sp.id, url="https://cdn.test/a.mp4", type="video", sort_order=0))
    await make_row(ScheduledPostGenreRow(scheduled_post_id=sp.id, genre_id=genres[0].id))

    result = await publish_scheduled_posts(session, now=NOW)
    assert result["published"] == 1
    assert result["failed"] == 0

    row = await _status(sp.id)
    assert row.status == "published"
    async with TestSession() as s:
        post = await s.get(PostRow, row.published_post_id)
        assert post.content == "Repotting day"
        assert post.user_id == premium.id
        media = (await s.execute(
            select(PostMediaRow).where(PostMediaRow.post_id == post.id).order_by(PostMediaRow.sort_order)
        )).scalars().all()
        assert [m.url for m in media] == ["https://cdn.test/a.mp4", "https://cdn.test/b.jpg"]
        genre_ids = (await s.execute(
            select(PostGenreRow.genre_id).where(PostGenreRow.post_id == post.id)
        )).scalars().all()
        assert genre_ids == [genres[0].id]


async def test_only_due_pending_rows_are_published(session, premium):
    future = await _scheduled(premium.id, NOW + timedelta(minutes=5))
    cancelled = await _scheduled(premium.id, NOW - timedelta(hours=1), status="cancelled")
    due = await _scheduled(premium.id, NOW)

    result = await publish_scheduled_posts(session, now=NOW)
    assert result["published"] == 1
    assert (await _status(due.id)).status == "published"
    assert (await _status(future.id)).status == "pending"
    assert (await _status(cancelled.id)).status == "cancelled"


async def test_one_failure_does_not_abort_batch(session, premium, monkeypatch):
    ids = [(await _scheduled(premium.id, NOW - timedelta(minutes=3 - i), content=f"post {i}")).id for i in range(3)]
    real = scheduled_posts._materialize

    async def flaky(sess, sp_id):
        if sp_id == ids[1]:
            raise RuntimeError("storage hiccup")
        return await real(sess, sp_id)

    monkeypatch.setattr(scheduled_posts, "_materialize", flaky)

    result = await publish_scheduled_posts(session, now=NOW)
    assert result["published"] == 2
    assert result["failed"] == 1
    assert result["errors"] == [f"{ids[1]}: RuntimeError"]
    assert [(await _status(i)).status for i in ids] == ["published", "failed", "published"]


async def test_claim_error_does_not_abort_batch(session, premium, monkeypatch):
    ids = [(await _scheduled(premium.id, NOW - timedelta(minutes=3 - i), content=f"post {i}")).id for i in range(3)]
    real = scheduled_posts._claim

    async def locked_claim(sess, sp_id):
        if sp_id == ids[1]:
            raise OperationalError("UPDATE scheduled_posts", {}, Exception("database is locked"))
        return await real(sess, sp_id)

    monkeypatch.setattr(scheduled_posts, "_claim", locked_claim)

    result = await publish_scheduled_posts(session, now=NOW)
    assert result["published"] == 2
    assert result["failed"] == 1
    assert result["errors"] == [f"{ids[1]}: OperationalError"]
    assert [(await _status(i)).status for i in ids] == ["published", "pending", "published"]

    monkeypatch.setattr(scheduled_posts, "_claim", real)
    assert (await publish_scheduled_posts(session, now=NOW))["published"] == 1
    assert (await _status(ids[1])).status == "published"


async def test_unreadable_queue_returns_error(session, premium, monkeypatch):
    sp = await _scheduled(premium.id, NOW - timedelta(minutes=1))

    async def unavailable(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection refused"))

    monkeypatch.setattr(session, "execute", unavailable)
    assert await publish_scheduled_posts(session, now=NOW) == {"error": "Could not load due scheduled posts"}
    assert (await _status(sp.id)).status == "pending"


async def test_publish_endpoint_reports_storage_error(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "cron-secret")

    async def unavailable(*args, **kwargs):
        raise TransientStorageError("Could not load due scheduled posts")

    monkeypatch.setattr(scheduled_posts, "_load_due", unavailable)
    resp = await client.post(
        "/api/v1/internal/scheduled-posts/publish", headers={"Authorization": "Bearer cron-secret"},
    )
    assert resp.status_code == 200
    assert resp.json() == {"error": "Could not load due scheduled posts"}


async def test_stale_claims_expire_to_failed(session, premium, monkeypatch):
    monkeypatch.setattr(settings, "SCHEDULED_CLAIM_TIMEOUT_MINUTES", 15)
    stuck = await make_row(ScheduledPostRow(
        user_id=premium.id, content="Crashed mid-publish", scheduled_at=NOW - timedelta(hours=2),
        status="processing", updated_at=NOW - timedelta(hours=1),
    ))
    in_flight = await make_row(ScheduledPostRow(
        user_id=premium.id, content="Being published", scheduled_at=NOW - timedelta(minutes=5),
        status="processing", updated_at=NOW - timedelta(minutes=2),
    ))

    result = await publish_scheduled_posts(session, now=NOW)
    assert result["expired"] == 1
    assert (await _status(stuck.id)).status == "failed"
    assert (await _status(in_flight.id)).status == "processing"

    assert await scheduled_posts.delete_scheduled_post(session, premium.id, stuck.id) == {"success": True}


async def test_suspended_author_fails_item(session):
    user = await make_user("gone@test.com", premium=True, suspended=True)
    sp = await _scheduled(user.id, NOW - timedelta(minutes=1))

    result = await publish_scheduled_posts(session, now=NOW)
    assert result == {
        "published": 0, "failed": 1, "skipped": 0, "expired": 0,
        "errors": [f"{sp.id}: author missing or suspended"],
    }
    assert (await _status(sp.id)).status == "failed"
    async with TestSession() as s:
        assert (await s.execute(select(PostRow))).scalars().all() == []


async def test_row_claimed_elsewhere_is_skipped(session, premium, monkeypatch):
    sp = await _scheduled(premium.id, NOW - timedelta(minutes=1))
    real_claim = scheduled_posts._claim

    async def racing_claim(sess, sp_id):
        # Another run claims it between our select and our claim
        async with TestSession() as other:
            await real_claim(other, sp_id)
        return await real_claim(sess, sp_id)

    monkeypatch.setattr(scheduled_posts, "_claim", racing_claim)

    result = await publish_scheduled_posts(session, now=NOW)
    assert result["skipped"] == 1
    assert result["published"] == 0
    assert (await _status(sp.id)).status == "processing"


async def test_batch_size_and_order(session, premium):
    late = await _scheduled(premium.id, NOW - timedelta(minutes=1))
    early = await _scheduled(premium.id, NOW - timedelta(minutes=10))

    result = await publish_scheduled_posts(session, now=NOW, batch_size=1)
    assert result["published"] == 1
    assert (await _status(early.id)).status == "published"
    assert (await _status(late.id)).status == "pending"


async def test_published_twice_is_impossible(session, premium):
    sp = await _scheduled(premium.id, NOW - timedelta(minutes=1))
    await publish_scheduled_posts(session, now=NOW)
    again = await publish_scheduled_posts(session, now=NOW)
    assert again["published"] == 0
    async with TestSession() as s:
        posts = (await s.execute(select(PostRow))).scalars().all()
    assert len(posts) == 1
    assert (await _status(sp.id)).published_post_id == posts[0].id


# ── User operations ──────────────────────────────────────────────────────

async def test_create_and_list(session, premium, genres):
    at = utcnow() + timedelta(days=2)
    result = await scheduled_posts.create_scheduled_post(
        session, premium.id, scheduled_at=at, content="  Winter silhouette  ",
        genre_ids=[genres[0].id, genres[0].id, genres[1].id],
        media=[{"url": "https://cdn.test/1.jpg", "type": "image"}, {"url": "https://cdn.test/2.mp4", "type": "video"}],
    )
    assert result["success"] is True

    [item] = (await scheduled_posts.list_scheduled_posts(session, premium.id))["scheduled_posts"]
    assert item["id"] == result["scheduled_post_id"]
    assert item["content"] == "Winter silhouette"
    assert item["status"] == "pending"
    assert [m["url"] for m in item["media"]] == ["https://cdn.test/1.jpg", "https://cdn.test/2.mp4"]
    assert {g["name"] for g in item["genres"]} == {"Black pine", "Juniper"}


async def test_create_accepts_aware_datetimes(session, premium):
    at = datetime.now(timezone(timedelta(hours=9))) + timedelta(hours=1)
    result = await scheduled_posts.create_scheduled_post(session, premium.id, scheduled_at=at, content="JST")
    assert result["success"] is True
    row = await _status(result["scheduled_post_id"])
    assert row.scheduled_at.tzinfo is None
    assert abs(row.scheduled_at - (utcnow() + timedelta(hours=1))) < timedelta(minutes=1)


@pytest.mark.parametrize("kwargs,message", [
    ({"scheduled_at": NOW - timedelta(minutes=1), "content": "x"}, "Scheduled time must be in the future"),
    ({"scheduled_at": NOW + timedelta(days=31), "content": "x"}, "Scheduled time must be within 30 days"),
    ({"scheduled_at": NOW + timedelta(hours=1)}, "Enter text or attach media"),
    ({"scheduled_at": NOW + timedelta(hours=1), "content": "x" * 2001}, "Posts are limited to 2000 characters"),
    ({"scheduled_at": NOW + timedelta(hours=1), "content": "x", "genre_ids": ["a", "b", "c", "d"]},
     "Select at most 3 genres"),
    ({"scheduled_at": NOW + timedelta(hours=1), "media": [{"url": f"u{i}", "type": "image"} for i in range(7)]},
     "At most 6 images per post"),
    ({"scheduled_at": NOW + timedelta(hours=1), "media": [{"url": f"u{i}", "type": "video"} for i in range(4)]},
     "At most 3 videos per post"),
    ({"scheduled_at": NOW + timedelta(hours=1), "media": [{"url": "u", "type": "gif"}]}, "Unsupported media type"),
])
async def test_create_validation(session, premium, kwargs, message):
    result = await scheduled_posts.create_scheduled_post(session, premium.id, now=NOW, **kwargs)
    assert result == {"error": message}


async def test_pending_limit(session, premium):
    for i in range(10):
        await _scheduled(premium.id, NOW + timedelta(hours=i + 1))
    result = await scheduled_posts.create_scheduled_post(
        session, premium.id, scheduled_at=NOW + timedelta(days=1), content="one more", now=NOW,
    )
    assert "at most 10 pending" in result["error"]


async def test_non_premium_rejected(session):
    free = await make_user("free@test.com")
    result = await scheduled_posts.create_scheduled_post(
        session, free.id, scheduled_at=NOW + timedelta(hours=1), content="x", now=NOW,
    )
    assert result == {"error": "Scheduled posts are a premium feature"}
    listed = await scheduled_posts.list_scheduled_posts(session, free.id)
    assert listed["scheduled_posts"] == []


async def test_update_replaces_payload(session, premium, genres):
    sp = await _scheduled(premium.id, NOW + timedelta(hours=1))
    await make_row(ScheduledPostMediaRow(scheduled_post_id=sp.id, url="old.jpg", type="image"))

    result = await scheduled_posts.update_scheduled_post(
        session, premium.id, sp.id, scheduled_at=NOW + timedelta(hours=5), content="Edited",
        genre_ids=[genres[2].id], media=[{"url": "new.jpg", "type": "image"}], now=NOW,
    )
    assert result == {"success": True}

    item = (await scheduled_posts.get_scheduled_post(session, premium.id, sp.id))["scheduled_post"]
    assert item["content"] == "Edited"
    assert item["scheduled_at"] == (NOW + timedelta(hours=5)).isoformat()
    assert [m["url"] for m in item["media"]] == ["new.jpg"]
    assert [g["id"] for g in item["genres"]] == [genres[2].id]


async def test_update_non_pending_rejected(session, premium):
    sp = await _scheduled(premium.id, NOW - timedelta(hours=1), status="published")
    result = await scheduled_posts.update_scheduled_post(
        session, premium.id, sp.id, scheduled_at=NOW + timedelta(hours=1), content="x", now=NOW,
    )
    assert result == {"error": "Only pending scheduled posts can be edited"}


async def test_cancel_only_pending(session, premium):
    sp = await _scheduled(premium.id, NOW + timedelta(hours=1))
    assert await scheduled_posts.cancel_scheduled_post(session, premium.id, sp.id) == {"success": True}
    assert (await _status(sp.id)).status == "cancelled"
    again = await scheduled_posts.cancel_scheduled_post(session, premium.id, sp.id)
    assert again == {"error": "Only pending scheduled posts can be cancelled"}


async def test_cancelled_post_never_publishes(session, premium):
    sp = await _scheduled(premium.id, NOW - timedelta(minutes=1))
    await scheduled_posts.cancel_scheduled_post(session, premium.id, sp.id)
    result = await publish_scheduled_posts(session, now=NOW)
    assert result["published"] == 0


async def test_delete_rules(session, premium):
    pending = await _scheduled(premium.id, NOW + timedelta(hours=1))
    published = await _scheduled(premium.id, NOW - timedelta(hours=1), status="published")
    failed = await _scheduled(premium.id, NOW - timedelta(hours=1), status="failed")

    assert await scheduled_posts.delete_scheduled_post(session, premium.id, pending.id) == {"success": True}
    assert await scheduled_posts.delete_scheduled_post(session, premium.id, failed.id) == {"success": True}
    result = await scheduled_posts.delete_scheduled_post(session, premium.id, published.id)
    assert result == {"error": "Published scheduled posts cannot be deleted"}
    assert await _status(pending.id) is None


async def test_ownership(session, premium):
    other = await make_user("other@test.com", premium=True)
    sp = await _scheduled(premium.id, NOW + timedelta(hours=1))
    with pytest.raises(PermissionDenied):
        await scheduled_posts.cancel_scheduled_post(session, other.id, sp.id)
    with pytest.raises(NotFound):
        await scheduled_posts.get_scheduled_post(session, premium.id, "missing")


# ── HTTP ─────────────────────────────────────────────────────────────────

async def test_scheduled_posts_api(client, premium):
    headers = auth_headers(premium)
    at = (utcnow() + timedelta(days=1)).isoformat()

    resp = await client.post("/api/v1/scheduled-posts", headers=headers, json={
        "content": "Maple defoliation", "scheduled_at": at,
        "media": [{"url": "https://cdn.test/m.jpg", "type": "image"}],
    })
    assert resp.status_code == 200
    sp_id = resp.json()["scheduled_post_id"]

    resp = await client.get("/api/v1/scheduled-posts", headers=headers)
    assert [p["id"] for p in resp.json()["scheduled_posts"]] == [sp_id]

    resp = await client.post(f"/api/v1/scheduled-posts/{sp_id}/cancel", headers=headers)
    assert resp.json() == {"success": True}

    resp = await client.delete(f"/api/v1/scheduled-posts/{sp_id}", headers=headers)
    assert resp.json() == {"success": True}

    resp = await client.get(f"/api/v1/scheduled-posts/{sp_id}", headers=headers)
    assert resp.status_code == 404


async def test_scheduled_posts_api_rejects_other_users(client, premium):
    other = await make_user("nosy@test.com", premium=True)
    sp = await _scheduled(premium.id, NOW + timedelta(hours=1))
    resp = await client.delete(f"/api/v1/scheduled-posts/{sp.id}", headers=auth_headers(other))
    assert resp.status_code == 403
