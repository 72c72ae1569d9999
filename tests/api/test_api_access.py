"""Authentication and subscription gating over HTTP."""

from datetime import datetime, timedelta, timezone

import pytest

from tutorug.db.models import User


@pytest.mark.asyncio
async def test_missing_token_is_401(client):
    resp = await client.get("/api/v1/reputation/me")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_garbage_token_is_401(client):
    resp = await client.get("/api/v1/reputation/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_trial_user_reaches_gated_routes(client, make_user, auth_headers):
    user = await make_user()

    resp = await client.post("/api/v1/chat/sessions", json={"subject": "Biology"}, headers=auth_headers(user))

    assert resp.status_code == 200
    assert resp.json()["title"] == "Biology chat"


@pytest.mark.asyncio
async def test_lapsed_trial_blocked_from_gated_routes(client, make_user, auth_headers):
    user = await make_user(now=datetime.now(timezone.utc) - timedelta(days=30))
    headers = auth_headers(user)

    gated = await client.get("/api/v1/chat/sessions", headers=headers)
    assert gated.status_code == 403
    assert gated.json()["code"] == "subscription_required"

    # Reputation stays readable after access lapses
    open_route = await client.get("/api/v1/reputation/me", headers=headers)
    assert open_route.status_code == 200
    assert open_route.json()["total_points"] == 0

    status = await client.get("/api/v1/subscriptions/me", headers=headers)
    assert status.json()["effective_status"] == "expired"
    assert status.json()["has_access"] is False


@pytest.mark.asyncio
async def test_banned_user_forbidden(client, session_factory, make_user, auth_headers):
    user = await make_user()
    async with session_factory() as db:
        async with db.begin():
            (await db.get(User, user.id)).is_banned = True

    resp = await client.get("/api/v1/reputation/me", headers=auth_headers(user))

    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"


@pytest.mark.asyncio
async def test_quiz_submission_awards_points(client, make_user, auth_headers):
    user = await make_user()
    headers = auth_headers(user)

    resp = await client.post(
        "/api/v1/quizzes/bio-cells/results",
        json={"quiz_title": "Cells", "score": 100},
        headers=headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["points_earned"] == 185
    assert body["award"]["new_total"] == 185
    assert body["streak_days"] == 1

    me = (await client.get("/api/v1/reputation/me", headers=headers)).json()
    assert me["total_points"] == 185
    assert me["leaderboard_position"] == 1


@pytest.mark.asyncio
async def test_quiz_score_out_of_range(client, make_user, auth_headers):
    user = await make_user()

    resp = await client.post("/api/v1/quizzes/q1/results", json={"score": 150}, headers=auth_headers(user))

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_chat_message_roundtrip(client, llm, make_user, auth_headers):
    user = await make_user()
    headers = auth_headers(user)
    session = (await client.post("/api/v1/chat/sessions", json={}, headers=headers)).json()

    resp = await client.post(
        f"/api/v1/chat/sessions/{session['id']}/messages",
        json={"content": "Explain osmosis"},
        headers=headers,
    )

    assert resp.status_code == 200
    assert resp.json()["reply"]["content"] == llm.reply
    assert resp.json()["points_earned"] == 1
    messages = (await client.get(f"/api/v1/chat/sessions/{session['id']}/messages", headers=headers)).json()
    assert len(messages) == 2


@pytest.mark.asyncio
async def test_leaderboard_rejects_unknown_timeframe(client, make_user, auth_headers):
    user = await make_user()

    resp = await client.get("/api/v1/reputation/leaderboard?timeframe=daily", headers=auth_headers(user))

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_levels_are_public(client):
    resp = await client.get("/api/v1/reputation/levels")
    assert resp.status_code == 200
    assert resp.json()["levels"][0] == {"level": 1, "points_required": 0}
