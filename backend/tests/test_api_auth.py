"""End-to-end tests for the /auth and /admin routes."""

from models.auth import EmailVerification, LoginLog, Role, User
from sqlalchemy import func, select, update

from conftest import PASSWORD


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


async def register(client, email="a@x.com", **fields):
    return await client.post("/auth/register", json={"email": email, "password": PASSWORD, **fields})


async def login(client, email="a@x.com", password=PASSWORD):
    return await client.post("/auth/login", json={"email": email, "password": password})


async def login_tokens(client, email="a@x.com"):
    await register(client, email)
    return (await login(client, email)).json()["data"]["tokens"]


async def test_register_login_refresh_scenario(client):
    registered = await register(client, "a@x.com")
    assert registered.status_code == 201
    body = registered.json()
    assert body["success"] is True
    assert body["code"] == "REGISTRATION_SUCCESS"
    assert body["timestamp"].endswith("Z")
    user = body["data"]["user"]
    assert user["email"] == "a@x.com"
    assert user["isEmailVerified"] is False
    assert user["role"] == "USER"
    assert "password" not in user

    logged_in = await login(client, "a@x.com")
    assert logged_in.status_code == 200
    assert logged_in.json()["code"] == "LOGIN_SUCCESS"
    tokens = logged_in.json()["data"]["tokens"]
    assert tokens["accessToken"]
    assert tokens["refreshToken"]
    assert tokens["tokenType"] == "Bearer"
    assert tokens["expiresIn"] == 900

    refreshed = await client.post(
        "/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
    )
    assert refreshed.status_code == 200
    new_tokens = refreshed.json()["data"]["tokens"]
    assert new_tokens["refreshToken"] != tokens["refreshToken"]
    assert new_tokens["accessToken"] != tokens["accessToken"]

    replayed = await client.post(
        "/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
    )
    assert replayed.status_code == 401
    assert replayed.json()["success"] is False
    assert replayed.json()["code"] == "AUTH_TOKEN_INVALID"


async def test_three_wrong_logins_are_logged(client, database):
    await register(client, "a@x.com")

    for _ in range(3):
        response = await login(client, "a@x.com", "wrong")
        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_INVALID_CREDENTIALS"

    async with database.session() as session:
        failed = await session.scalar(
            select(func.count())
            .select_from(LoginLog)
            .join(User, User.id == LoginLog.user_id)
            .filter(
                User.email == "a@x.com",
                LoginLog.is_success.is_(False),
                LoginLog.fail_reason == "INVALID_PASSWORD",
            )
        )
    assert failed == 3


async def test_unknown_email_and_wrong_password_look_the_same(client):
    await register(client, "a@x.com")

    wrong_password = (await login(client, "a@x.com", "Wr0ngPassword")).json()
    unknown_email = (await login(client, "nobody@x.com")).json()

    assert wrong_password["code"] == unknown_email["code"] == "AUTH_INVALID_CREDENTIALS"
    assert wrong_password["message"] == unknown_email["message"]


async def test_register_conflict(client):
    await register(client, "a@x.com")

    response = await register(client, "A@X.COM")

    assert response.status_code == 409
    assert response.json()["code"] == "AUTH_USER_EXISTS"


async def test_register_validation(client):
    response = await client.post(
        "/auth/register",
        json={"email": "not-an-email", "password": "weak", "username": "a b"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    fields = {error["field"] for error in body["errors"]}
    assert {"email", "password", "username"} <= fields


async def test_password_requires_mixed_characters(client):
    response = await client.post(
        "/auth/register", json={"email": "a@x.com", "password": "alllowercase1"}
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "password"


async def test_verify_email_endpoint(client, database, email_service):
    user_id = (await register(client, "a@x.com")).json()["data"]["user"]["id"]
    async with database.session() as session:
        token = await session.scalar(
            select(EmailVerification.token).filter(EmailVerification.user_id == user_id)
        )

    first = await client.get(f"/auth/verify-email/{token}")
    second = await client.get(f"/auth/verify-email/{token}")
    invalid = await client.get("/auth/verify-email/not-a-token")

    assert first.status_code == 200
    assert first.json()["code"] == "EMAIL_VERIFICATION_SUCCESS"
    assert second.status_code == 200
    assert second.json()["code"] == "EMAIL_ALREADY_VERIFIED"
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "AUTH_INVALID_TOKEN"

    await email_service.drain()
    assert [message["subject"] for message in email_service.sent] == [
        "Verify Your Email Address",
        "Welcome to Arktos!",
    ]


async def test_resend_and_forgot_password_do_not_enumerate(client):
    await register(client, "a@x.com")

    for path in ("/auth/resend-verification", "/auth/forgot-password"):
        known = await client.post(path, json={"email": "a@x.com"})
        unknown = await client.post(path, json={"email": "nobody@x.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json()["message"] == unknown.json()["message"]


async def test_reset_password_endpoint(client, email_service):
    await register(client, "a@x.com")
    await client.post("/auth/forgot-password", json={"email": "a@x.com"})
    await email_service.drain()
    html = email_service.sent[-1]["html"]
    token = html.split("reset-password?token=")[1].split('"')[0]

    response = await client.post(
        "/auth/reset-password", json={"token": token, "newPassword": "N3wPassword"}
    )

    assert response.status_code == 200
    assert response.json()["code"] == "PASSWORD_RESET_SUCCESS"
    assert (await login(client, "a@x.com", "N3wPassword")).status_code == 200
    assert (await login(client, "a@x.com")).status_code == 401


async def test_profile_roundtrip(client):
    tokens = await login_tokens(client)

    profile = await client.get("/auth/profile", headers=bearer(tokens["accessToken"]))
    assert profile.status_code == 200
    assert profile.json()["data"]["user"]["email"] == "a@x.com"

    updated = await client.put(
        "/auth/profile",
        json={"firstName": "Ada", "avatar": "https://img.test/ada.png"},
        headers=bearer(tokens["accessToken"]),
    )
    assert updated.status_code == 200
    user = updated.json()["data"]["user"]
    assert user["firstName"] == "Ada"
    assert user["avatar"] == "https://img.test/ada.png"
    assert user["lastName"] is None

    invalid = await client.put(
        "/auth/profile", json={"avatar": "not a url"}, headers=bearer(tokens["accessToken"])
    )
    assert invalid.status_code == 400


async def test_change_password_revokes_refresh_tokens(client):
    tokens = await login_tokens(client)
    headers = bearer(tokens["accessToken"])

    same = await client.put(
        "/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": PASSWORD},
        headers=headers,
    )
    assert same.status_code == 400
    assert same.json()["code"] == "VALIDATION_ERROR"

    wrong = await client.put(
        "/auth/change-password",
        json={"currentPassword": "Wr0ngPassword", "newPassword": "N3wPassword"},
        headers=headers,
    )
    assert wrong.status_code == 400
    assert wrong.json()["code"] == "AUTH_INVALID_PASSWORD"

    changed = await client.put(
        "/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "N3wPassword"},
        headers=headers,
    )
    assert changed.status_code == 200

    refreshed = await client.post(
        "/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
    )
    assert refreshed.status_code == 401


async def test_logout(client):
    tokens = await login_tokens(client)

    without_body = await client.post("/auth/logout")
    assert without_body.status_code == 200

    response = await client.post("/auth/logout", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 200
    assert response.json()["code"] == "LOGOUT_SUCCESS"

    refreshed = await client.post(
        "/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
    )
    assert refreshed.status_code == 401


async def test_logout_all(client):
    first = await login_tokens(client)
    second = (await login(client)).json()["data"]["tokens"]

    response = await client.post("/auth/logout-all", headers=bearer(second["accessToken"]))
    assert response.status_code == 200

    for tokens in (first, second):
        refreshed = await client.post(
            "/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]}
        )
        assert refreshed.status_code == 401


async def test_login_history_is_paginated(client):
    tokens = await login_tokens(client)
    await login(client, "a@x.com", "wrong")

    response = await client.get(
        "/auth/login-history", params={"page": 1, "limit": 2}, headers=bearer(tokens["accessToken"])
    )

    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 2
    assert body["pagination"] == {
        "total": 3,
        "page": 1,
        "limit": 2,
        "totalPages": 2,
        "hasNext": True,
        "hasPrev": False,
    }
    assert {"isSuccess", "failReason", "ipAddress", "userAgent"} <= set(body["data"][0])


async def test_admin_users_requires_staff_role(client, database):
    tokens = await login_tokens(client)
    await register(client, "b@x.com")
    headers = bearer(tokens["accessToken"])

    denied = await client.get("/admin/users", headers=headers)
    assert denied.status_code == 403
    assert denied.json()["code"] == "AUTH_INSUFFICIENT_PERMISSIONS"

    async with database.session() as session:
        await session.execute(
            update(User).where(User.email == "a@x.com").values(role=Role.MODERATOR)
        )
        await session.commit()

    allowed = await client.get("/admin/users", headers=headers)
    assert allowed.status_code == 200
    assert allowed.json()["pagination"]["total"] == 2
    assert {user["email"] for user in allowed.json()["data"]} == {"a@x.com", "b@x.com"}
