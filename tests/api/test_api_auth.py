"""Registration, token refresh and profile endpoints."""

import pytest

from tutorug.auth.jwt import create_access_token, create_refresh_token
from tutorug.db.models import User

REGISTRATION = {"phone_number": "0772 123 456", "first_name": "Amina", "last_name": "Nakato", "current_class": "S3"}


@pytest.mark.asyncio
async def test_register_starts_trial_and_welcomes(client, notifier):
    resp = await client.post("/api/v1/auth/register", json=REGISTRATION)

    assert resp.status_code == 201
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["phone_number"] == "+256772123456"
    assert body["user"]["display_name"] == "Amina Nakato"
    assert body["user"]["current_class"] == "S3"

    recipient, template_id, params = notifier.notify.await_args.args
    assert template_id == "welcome"
    assert params == {"trial_days": 7}
    assert recipient.phone_number == "+256772123456"
    assert recipient.first_name == "Amina"

    headers = {"Authorization": f"Bearer {body['access_token']}"}
    status = (await client.get("/api/v1/subscriptions/me", headers=headers)).json()
    assert status["status"] == "trial"
    assert status["has_access"] is True


@pytest.mark.asyncio
async def test_register_survives_notification_failure(client, notifier):
    notifier.notify.side_effect = RuntimeError("sms provider down")

    resp = await client.post("/api/v1/auth/register", json=REGISTRATION)

    assert resp.status_code == 201
    assert resp.json()["access_token"]


@pytest.mark.asyncio
async def test_register_duplicate_phone(client, make_user):
    await make_user()  # 0700000001

    resp = await client.post("/api/v1/auth/register", json={"phone_number": "+256700000001"})

    assert resp.status_code == 409
    assert resp.json()["code"] == "already_registered"


@pytest.mark.asyncio
async def test_register_duplicate_email(client, notifier):
    first = await client.post("/api/v1/auth/register", json={"phone_number": "0772000001", "email": "a@x.ug"})
    assert first.status_code == 201
    notifier.notify.reset_mock()

    resp = await client.post("/api/v1/auth/register", json={"phone_number": "0772000002", "email": "A@x.ug"})

    assert resp.status_code == 409
    assert resp.json()["code"] == "already_registered"
    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_invalid_phone(client, notifier):
    resp = await client.post("/api/v1/auth/register", json={"phone_number": "0612345678"})

    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_input"
    notifier.notify.assert_not_awaited()


@pytest.mark.asyncio
async def test_register_unknown_class(client):
    resp = await client.post("/api/v1/auth/register", json={"phone_number": "0772123456", "current_class": "S7"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_refresh_issues_new_pair(client, make_user):
    user = await make_user()
    token = create_refresh_token(user.id, user.phone_number)

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": token})

    assert resp.status_code == 200
    headers = {"Authorization": f"Bearer {resp.json()['access_token']}"}
    me = await client.get("/api/v1/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["id"] == user.id


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(client, make_user):
    user = await make_user()
    token = create_access_token(user.id, user.phone_number)

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": token})

    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthenticated"


@pytest.mark.asyncio
async def test_refresh_refused_for_banned_user(client, session_factory, make_user):
    user = await make_user()
    async with session_factory() as db:
        async with db.begin():
            (await db.get(User, user.id)).is_banned = True

    token = create_refresh_token(user.id, user.phone_number)

    resp = await client.post("/api/v1/auth/refresh", json={"refresh_token": token})

    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_refresh_token_not_accepted_as_bearer(client, make_user):
    user = await make_user()
    headers = {"Authorization": f"Bearer {create_refresh_token(user.id, user.phone_number)}"}

    resp = await client.get("/api/v1/auth/me", headers=headers)

    assert resp.status_code == 401
