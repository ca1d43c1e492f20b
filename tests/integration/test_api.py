from uuid import uuid4

import pytest

from src.database.users import UserRole


@pytest.fixture
async def plan(make_plan):
    return await make_plan()


@pytest.fixture
async def viewer(make_user):
    return await make_user(email="viewer@example.com")


@pytest.fixture
async def admin(make_user):
    return await make_user(email="admin@example.com", role=UserRole.ADMIN.value)


async def subscribe(client, headers, plan_id):
    return await client.post("/subscriptions/subscribe", json={"planId": str(plan_id)}, headers=headers)


async def start_stream(client, headers, content_id, device_id):
    return await client.post(
        f"/content/{content_id}/stream",
        json={"deviceId": device_id, "deviceName": f"Device {device_id}", "deviceType": "tv"},
        headers=headers,
    )


async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200


async def test_register_and_login(client):
    response = await client.post(
        "/auth/register",
        json={"name": "New Viewer", "email": "New.Viewer@example.com", "password": "Sup3rSecret"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["email"] == "new.viewer@example.com"
    assert body["data"]["accessToken"]

    duplicate = await client.post(
        "/auth/register",
        json={"name": "Again", "email": "new.viewer@example.com", "password": "Sup3rSecret"},
    )
    assert duplicate.status_code == 409

    login = await client.post(
        "/auth/login", json={"email": "new.viewer@example.com", "password": "Sup3rSecret"}
    )
    assert login.status_code == 200
    token = login.json()["data"]["accessToken"]

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["data"]["name"] == "New Viewer"


async def test_login_with_wrong_password(client, viewer):
    response = await client.post("/auth/login", json={"email": viewer.email, "password": "Wr0ngPassword"})
    assert response.status_code == 401
    assert response.json()["success"] is False


async def test_weak_password_is_rejected(client):
    response = await client.post(
        "/auth/register",
        json={"name": "Weak", "email": "weak@example.com", "password": "alllowercase"},
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "password"


async def test_protected_routes_require_a_token(client):
    response = await client.get("/subscriptions/status")
    assert response.status_code == 401
    assert response.json()["errorCode"] == "AUTH_ERROR"


async def test_list_plans(client, make_plan):
    await make_plan(name="Ultimate", price=19.99)
    await make_plan(name="Basic", price=5.99)

    response = await client.get("/subscriptions/plans")

    plans = response.json()["data"]["plans"]
    assert [p["name"] for p in plans] == ["Basic", "Ultimate"]
    assert plans[0]["qualityLevel"] == "HD"
    assert plans[0]["accessLevel"] == "Premium"
    assert plans[0]["maxConcurrentStreams"] == 2


async def test_status_without_subscription(client, viewer, auth_headers):
    response = await client.get("/subscriptions/status", headers=auth_headers(viewer))

    assert response.status_code == 200
    assert response.json()["data"]["subscription"] is None


async def test_stream_without_subscription_is_forbidden(client, viewer, auth_headers, make_content):
    content = await make_content()

    response = await start_stream(client, auth_headers(viewer), content.id, "tv")

    assert response.status_code == 403
    assert "subscription" in response.json()["message"].lower()


async def test_subscribe_flow(client, viewer, plan, auth_headers):
    headers = auth_headers(viewer)

    created = await subscribe(client, headers, plan.id)
    assert created.status_code == 201
    subscription = created.json()["data"]["subscription"]
    assert subscription["status"] == "active"
    assert subscription["planName"] == "Premium"
    assert subscription["qualityLevel"] == "HD"

    duplicate = await subscribe(client, headers, plan.id)
    assert duplicate.status_code == 400
    assert duplicate.json()["errorCode"] == "DUPLICATE_ACTIVE_SUBSCRIPTION"

    status = await client.get("/subscriptions/status", headers=headers)
    assert status.json()["data"]["subscription"]["id"] == subscription["id"]

    profile = await client.get("/users/profile", headers=headers)
    assert profile.json()["data"]["subscription"]["id"] == subscription["id"]


async def test_subscribe_with_bad_plan(client, viewer, auth_headers):
    headers = auth_headers(viewer)

    malformed = await client.post("/subscriptions/subscribe", json={"planId": "not-a-uuid"}, headers=headers)
    assert malformed.status_code == 400
    assert malformed.json()["errors"][0]["field"] == "planId"

    unknown = await subscribe(client, headers, uuid4())
    assert unknown.status_code == 404


async def test_cancel_keeps_status_out_of_active(client, viewer, plan, auth_headers, make_content):
    headers = auth_headers(viewer)
    await subscribe(client, headers, plan.id)
    content = await make_content()

    cancelled = await client.put("/subscriptions/cancel", json={"reason": "Moving"}, headers=headers)
    assert cancelled.status_code == 200
    assert cancelled.json()["data"]["subscription"]["status"] == "cancelled"

    status = await client.get("/subscriptions/status", headers=headers)
    assert status.json()["data"]["subscription"] is None

    # Still streams until the paid period ends.
    stream = await start_stream(client, headers, content.id, "tv")
    assert stream.status_code == 200

    again = await client.put("/subscriptions/cancel", headers=headers)
    assert again.status_code == 404


async def test_history_pagination(client, viewer, plan, auth_headers):
    headers = auth_headers(viewer)
    await subscribe(client, headers, plan.id)
    await client.put("/subscriptions/cancel", headers=headers)

    response = await client.get("/subscriptions/history?page=1&limit=5", headers=headers)

    body = response.json()
    assert len(body["data"]["subscriptions"]) == 1
    assert body["pagination"] == {"page": 1, "limit": 5, "total": 1, "pages": 1}


async def test_concurrent_stream_limit(client, viewer, plan, auth_headers, make_content):
    headers = auth_headers(viewer)
    await subscribe(client, headers, plan.id)
    content = await make_content()

    first = await start_stream(client, headers, content.id, "A")
    assert first.status_code == 200
    grant = first.json()["data"]
    assert grant["quality"] == "HD"
    assert grant["sessionToken"] in grant["streamUrl"]

    assert (await start_stream(client, headers, content.id, "B")).status_code == 200

    rejected = await start_stream(client, headers, content.id, "C")
    assert rejected.status_code == 403
    assert rejected.json()["errorCode"] == "CONCURRENT_LIMIT_EXCEEDED"

    active = await client.get("/content/stream/active", headers=headers)
    assert active.json()["data"]["count"] == 2

    stopped = await client.delete(f"/content/stream/{grant['sessionId']}", headers=headers)
    assert stopped.json()["data"]["terminated"] is True

    assert (await start_stream(client, headers, content.id, "C")).status_code == 200
    assert (await start_stream(client, headers, content.id, "D")).status_code == 403


async def test_heartbeat(client, viewer, plan, auth_headers, make_content):
    headers = auth_headers(viewer)
    await subscribe(client, headers, plan.id)
    content = await make_content()
    grant = (await start_stream(client, headers, content.id, "tv")).json()["data"]

    beat = await client.post(
        "/content/stream/heartbeat",
        json={"sessionId": grant["sessionId"], "playbackPosition": 120},
        headers=headers,
    )
    assert beat.status_code == 200
    assert beat.json()["data"]["status"] == "active"
    assert beat.json()["data"]["playbackPosition"] == 120

    unknown = await client.post(
        "/content/stream/heartbeat", json={"sessionId": "session_missing"}, headers=headers
    )
    assert unknown.status_code == 404


async def test_stream_request_requires_device_id(client, viewer, plan, auth_headers, make_content):
    headers = auth_headers(viewer)
    await subscribe(client, headers, plan.id)
    content = await make_content()

    response = await client.post(f"/content/{content.id}/stream", json={}, headers=headers)

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "deviceId"


async def test_content_detail_hides_video_url(client, viewer, plan, auth_headers, make_content):
    content = await make_content()

    anonymous = await client.get(f"/content/{content.id}")
    detail = anonymous.json()["data"]["content"]
    assert "videoUrl" not in detail
    assert not detail.get("canStream")

    await subscribe(client, auth_headers(viewer), plan.id)
    signed_in = await client.get(f"/content/{content.id}", headers=auth_headers(viewer))
    assert signed_in.json()["data"]["content"]["canStream"] is True

    assert (await client.get(f"/content/{uuid4()}")).status_code == 404


async def test_admin_plan_management(client, admin, viewer, auth_headers):
    headers = auth_headers(admin)
    payload = {
        "name": "Family",
        "description": "Four screens",
        "price": 15.0,
        "durationDays": 30,
        "qualityLevel": "4K",
        "accessLevel": "Premium",
        "maxDevices": 6,
        "maxConcurrentStreams": 4,
    }

    forbidden = await client.post("/subscriptions/plans", json=payload, headers=auth_headers(viewer))
    assert forbidden.status_code == 403

    created = await client.post("/subscriptions/plans", json=payload, headers=headers)
    assert created.status_code == 201
    plan_id = created.json()["data"]["plan"]["id"]
    assert created.json()["data"]["plan"]["qualityLevel"] == "4K"

    invalid = await client.post(
        "/subscriptions/plans", json={**payload, "price": -5}, headers=headers
    )
    assert invalid.status_code == 400

    await subscribe(client, auth_headers(viewer), plan_id)
    blocked = await client.delete(f"/subscriptions/plans/{plan_id}", headers=headers)
    assert blocked.status_code == 400
    assert blocked.json()["errorCode"] == "PLAN_IN_USE"

    deactivated = await client.patch(f"/subscriptions/plans/{plan_id}/deactivate", headers=headers)
    assert deactivated.json()["data"]["plan"]["isActive"] is False

    plans = await client.get("/subscriptions/plans")
    assert plans.json()["data"]["plans"] == []


async def test_watch_progress(client, viewer, auth_headers, make_content):
    headers = auth_headers(viewer)
    content = await make_content(duration=10)

    halfway = await client.put(
        f"/watch-history/{content.id}/progress", json={"position": 300}, headers=headers
    )
    assert halfway.status_code == 200
    assert halfway.json()["data"]["watchHistory"]["progress"] == 50.0

    watching = await client.get("/watch-history/continue-watching", headers=headers)
    assert watching.json()["data"]["count"] == 1

    done = await client.put(
        f"/watch-history/{content.id}/progress", json={"position": 540}, headers=headers
    )
    assert done.json()["data"]["watchHistory"]["completed"] is True

    watching = await client.get("/watch-history/continue-watching", headers=headers)
    assert watching.json()["data"]["count"] == 0

    stats = await client.get("/watch-history/stats", headers=headers)
    assert stats.json()["data"]["titlesCompleted"] == 1

    missing = await client.put(f"/watch-history/{uuid4()}/progress", json={"position": 1}, headers=headers)
    assert missing.status_code == 404
