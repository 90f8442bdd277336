"""알림 API(검색/필터, 커서, 단건/일괄 변경, 수신 설정, 통계)를 검증하는 테스트입니다."""

import pytest
from sqlalchemy import event

from tests.conftest import auth_headers, engine


@pytest.fixture
def headers(client, seed_users):
    return auth_headers(client, "user001")


@pytest.fixture
def inbox(seed_users, make_notification):
    alice = seed_users["alice"]
    rows = [
        make_notification(alice, "Disk almost full", "warning", minutes=0),
        make_notification(alice, "Server down", "urgent", minutes=1),
        make_notification(alice, "urgent spam", "urgent", minutes=2),
        make_notification(alice, "Weekly summary", None, read=True, minutes=3),
        make_notification(alice, "Login from new device", "security", read=True, minutes=4),
    ]
    make_notification(seed_users["bob"], "Bob only", "urgent", minutes=5)
    return rows


def _ids(resp):
    return [item["id"] for item in resp.json()["notifications"]]


def test_list_requires_auth(client):
    assert client.get("/api/notifications").status_code in (401, 403)


def test_list_default_page(client, headers, inbox):
    resp = client.get("/api/notifications", headers=headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_count"] == 5
    assert data["has_more"] is False
    assert _ids(resp) == [row.id for row in reversed(inbox)]


def test_list_offset_paging(client, headers, inbox):
    resp = client.get("/api/notifications", params={"limit": 2, "offset": 2}, headers=headers)
    assert resp.json()["has_more"] is True
    assert _ids(resp) == [inbox[2].id, inbox[1].id]


def test_search_or(client, headers, inbox):
    resp = client.get("/api/notifications", params={"search": "urgent OR warning"}, headers=headers)
    assert sorted(_ids(resp)) == sorted([inbox[0].id, inbox[1].id, inbox[2].id])


def test_search_and_exclusion(client, headers, inbox):
    resp = client.get("/api/notifications", params={"search": "urgent AND -spam"}, headers=headers)
    assert _ids(resp) == [inbox[1].id]


def test_type_and_status_query_params(client, headers, inbox):
    resp = client.get(
        "/api/notifications",
        params=[("types", "urgent"), ("types", "security"), ("status", "unread")],
        headers=headers,
    )
    assert sorted(_ids(resp)) == sorted([inbox[1].id, inbox[2].id])


def test_date_range_query_params(client, headers, inbox):
    resp = client.get("/api/notifications", params={"date_from": "2026-03-02", "date_to": "2026-03-02"}, headers=headers)
    assert resp.json()["total_count"] == 5
    resp = client.get("/api/notifications", params={"date_from": "2026-03-03"}, headers=headers)
    assert resp.json()["total_count"] == 0


def test_midnight_datetime_bound_is_not_widened(client, headers, inbox):
    resp = client.get("/api/notifications", params={"date_to": "2026-03-02T00:00:00"}, headers=headers)
    assert resp.json()["total_count"] == 0
    resp = client.get("/api/notifications", params={"date_to": "2026-03-02T09:00:00"}, headers=headers)
    assert _ids(resp) == [inbox[0].id]


def test_invalid_date_bound_is_rejected(client, headers):
    resp = client.get("/api/notifications", params={"date_from": "2026-02-30"}, headers=headers)
    assert resp.status_code == 422


def test_invalid_status_is_rejected(client, headers):
    resp = client.get("/api/notifications", params={"status": "archived"}, headers=headers)
    assert resp.status_code == 422


def test_cursor_pages_do_not_overlap(client, headers, inbox):
    first = client.get("/api/notifications/cursor", params={"limit": 2, "sort": "type"}, headers=headers).json()
    assert first["has_more"] is True
    second = client.get(
        "/api/notifications/cursor",
        params={"limit": 2, "sort": "type", "cursor": first["next_cursor"]},
        headers=headers,
    ).json()
    third = client.get(
        "/api/notifications/cursor",
        params={"limit": 2, "sort": "type", "cursor": second["next_cursor"]},
        headers=headers,
    ).json()
    seen = [item["id"] for page in (first, second, third) for item in page["notifications"]]
    assert len(seen) == len(set(seen)) == 5
    assert third["has_more"] is False
    assert third["next_cursor"] is None


def test_recent_and_counts(client, headers, inbox):
    recent = client.get("/api/notifications/recent", params={"limit": 2}, headers=headers).json()
    assert [item["id"] for item in recent] == [inbox[4].id, inbox[3].id]
    assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 3}
    assert client.get("/api/notifications/counts", headers=headers).json() == {"total": 5, "unread": 3, "urgent": 2}


def test_stats(client, headers, inbox):
    stats = client.get("/api/notifications/stats", headers=headers).json()
    assert (stats["total"], stats["unread"], stats["read"]) == (5, 3, 2)
    by_type = {item["type"]: item["count"] for item in stats["by_type"]}
    assert by_type == {"unknown": 1, "security": 1, "urgent": 2, "warning": 1}


def test_analytics_on_fresh_notifications(client, headers):
    for message in ("a", "b", "c", "d"):
        client.post("/api/notifications", json={"message": message, "type": "info"}, headers=headers)
    created = client.get("/api/notifications", headers=headers).json()["notifications"]
    client.patch(f"/api/notifications/{created[0]['id']}/read", headers=headers)

    data = client.get("/api/notifications/analytics", params={"days": 7}, headers=headers).json()
    assert data["total_count"] == 4
    assert data["read_count"] == 1
    assert data["read_rate"] == 25.0
    assert data["type_distribution"] == [{"type": "info", "count": 4}]
    assert sum(day["count"] for day in data["daily_activity"]) == 4


def test_create_respects_in_app_preference(client, headers, channel):
    client.put("/api/notifications/preferences", json={"in_app_types": ["urgent"]}, headers=headers)
    blocked = client.post("/api/notifications", json={"message": "hi", "type": "info"}, headers=headers)
    allowed = client.post("/api/notifications", json={"message": "down", "type": "urgent"}, headers=headers)
    assert blocked.status_code == 201
    assert blocked.json() is None
    assert allowed.json()["type"] == "urgent"
    assert [event["data"]["id"] for event in channel.events("notification")] == [allowed.json()["id"]]


def test_batch_fetch_only_returns_own_rows(client, headers, seed_users, make_notification, inbox):
    other = make_notification(seed_users["bob"], "private")
    resp = client.post(
        "/api/notifications/batch",
        json={"notification_ids": [inbox[0].id, other.id]},
        headers=headers,
    )
    assert [item["id"] for item in resp.json()] == [inbox[0].id]


def test_batch_fetch_filters_ids_in_query(client, headers, inbox):
    statements = []

    def record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", record)
    try:
        resp = client.post(
            "/api/notifications/batch",
            json={"notification_ids": [inbox[3].id, inbox[1].id, inbox[3].id]},
            headers=headers,
        )
    finally:
        event.remove(engine, "before_cursor_execute", record)

    assert [item["id"] for item in resp.json()] == [inbox[3].id, inbox[1].id]
    selects = [sql for sql in statements if sql.lstrip().upper().startswith("SELECT") and "FROM notification" in sql]
    assert selects
    assert all("notification.id IN" in sql for sql in selects)


def test_single_read_unread_delete(client, headers, inbox, channel):
    target = inbox[1].id
    assert client.patch(f"/api/notifications/{target}/read", headers=headers).json()["read"] is True
    assert client.patch(f"/api/notifications/{target}/unread", headers=headers).json()["read"] is False
    assert client.delete(f"/api/notifications/{target}", headers=headers).status_code == 200
    assert client.delete(f"/api/notifications/{target}", headers=headers).status_code == 404
    assert [event["type"] for event in channel.events()] == [
        "notification_read",
        "notification_unread",
        "notification_delete",
    ]


def test_cannot_touch_other_users_notification(client, headers, seed_users, make_notification):
    other = make_notification(seed_users["bob"], "private")
    assert client.patch(f"/api/notifications/{other.id}/read", headers=headers).status_code == 404


def test_read_all_and_bulk_deletes(client, headers, inbox, channel):
    assert client.post("/api/notifications/read-all", headers=headers).json() == {"count": 3}
    assert client.delete("/api/notifications/type/urgent", headers=headers).json() == {"count": 2}
    assert client.delete("/api/notifications/read", headers=headers).json() == {"count": 3}
    assert client.delete("/api/notifications/all", headers=headers).json() == {"count": 0}
    assert channel.events("notification_bulk_delete_by_type")[0]["notification_type"] == "urgent"


def test_bulk_by_ids(client, headers, inbox, seed_users, make_notification, channel):
    other = make_notification(seed_users["bob"], "private")
    ids = [inbox[0].id, inbox[1].id, other.id]

    resp = client.post("/api/notifications/bulk/read", json={"notification_ids": ids}, headers=headers)
    assert resp.json() == {"count": 2}
    resp = client.post("/api/notifications/bulk/unread", json={"notification_ids": ids}, headers=headers)
    assert resp.json() == {"count": 2}
    resp = client.post(
        "/api/notifications/bulk/read-optimized",
        json={"notification_ids": ids, "batch_size": 1},
        headers=headers,
    )
    assert resp.json() == {"count": 2, "batches": 3}
    resp = client.post("/api/notifications/bulk/delete", json={"notification_ids": ids}, headers=headers)
    assert resp.json() == {"count": 2}

    assert client.get("/api/notifications", headers=headers).json()["total_count"] == 3
    assert all(user_id == seed_users["alice"].user_id for user_id, _ in channel.sent)


def test_bulk_read_optimized_rejects_zero_batch(client, headers, inbox):
    resp = client.post(
        "/api/notifications/bulk/read-optimized",
        json={"notification_ids": [inbox[0].id], "batch_size": 0},
        headers=headers,
    )
    assert resp.status_code == 422


def test_preferences_crud(client, headers):
    defaults = client.get("/api/notifications/preferences", headers=headers).json()
    assert defaults["email_types"] == ["welcome", "security", "billing"]
    assert defaults["in_app_types"] == ["all"]

    resp = client.put(
        "/api/notifications/preferences",
        json={"push_enabled": False, "quiet_hours_enabled": True, "quiet_hours_start": "22:00", "quiet_hours_end": "08:00"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["push_enabled"] is False
    assert resp.json()["quiet_hours_start"] == "22:00"
    assert resp.json()["email_enabled"] is True

    check = client.get("/api/notifications/preferences/check", params={"type": "urgent", "channel": "push"}, headers=headers)
    assert check.json()["allowed"] is False

    assert client.delete("/api/notifications/preferences", headers=headers).json()["deleted"] is True
    assert client.get("/api/notifications/preferences", headers=headers).json() == defaults


def test_preferences_reject_bad_time(client, headers):
    resp = client.put("/api/notifications/preferences", json={"quiet_hours_start": "25:00"}, headers=headers)
    assert resp.status_code == 422


def test_preference_check_rejects_unknown_channel(client, headers):
    resp = client.get("/api/notifications/preferences/check", params={"type": "urgent", "channel": "sms"}, headers=headers)
    assert resp.status_code == 422


def test_export_endpoint(client, headers, inbox, seed_users):
    resp = client.get("/api/notifications/export.csv", params={"status": "read"}, headers=headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/csv")
    assert f"notifications-{seed_users['alice'].user_id}-" in resp.headers["content-disposition"]
    assert len(resp.text.strip().splitlines()) == 3
