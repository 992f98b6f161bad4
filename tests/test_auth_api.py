import pytest
from flask import Flask, url_for
from werkzeug.http import parse_cookie

from api import __main__ as dev_server
from api import create_app
from services.errors import ConfigurationError

from tests.conftest import ORIGIN

UNAUTHORIZED = {"error": "UNAUTHORIZED", "message": "Unauthorized", "status": 401}


@pytest.fixture
def zoe(app_service):
    return app_service.accounts.create_local_user(
        "zoe", "zoe-pass-1", email="zoe@example.com", name="Zoe", email_confirmed=True
    )


def login(client, username="zoe", password="zoe-pass-1"):
    return client.post("/api/v1/auth/login", json={"username": username, "password": password})


def web_login(client, origin=ORIGIN):
    return client.post(
        "/api/v1/auth/web-login",
        json={"username": "zoe", "password": "zoe-pass-1"},
        headers={"Origin": origin},
    )


def cookie_value(response, name="rt"):
    for header in response.headers.getlist("Set-Cookie"):
        if header.startswith(f"{name}="):
            return parse_cookie(header.split(";", 1)[0]).get(name)
    return None


def test_health(client):
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"


def test_login_returns_tokens(client, zoe):
    resp = login(client)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["token_type"] == "bearer"
    assert body["access_token"] and body["refresh_token"]
    assert body["expires_in"] == 900


def test_failures_share_one_response(client, zoe):
    wrong_password = login(client, password="not-her-pass")
    unknown_user = login(client, username="nobody")
    assert wrong_password.status_code == unknown_user.status_code == 401
    assert wrong_password.get_json() == unknown_user.get_json() == UNAUTHORIZED


def test_locked_account_gets_the_same_401(client, zoe):
    for _ in range(3):
        login(client, password="not-her-pass")
    resp = login(client)
    assert resp.status_code == 401
    assert resp.get_json() == UNAUTHORIZED


def test_malformed_login_body_is_422(client):
    resp = client.post("/api/v1/auth/login", json={"username": "zo"})
    assert resp.status_code == 422
    body = resp.get_json()
    assert body["error"] == "VALIDATION_ERROR"
    assert "password" in body["details"]


def test_me_requires_a_valid_bearer(client, zoe):
    assert client.get("/api/v1/auth/me").status_code == 401
    bad = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer nope"})
    assert bad.status_code == 401

    token = login(client).get_json()["access_token"]
    resp = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["username"] == "zoe"
    assert data["idp"] == "local"
    assert "password_hash" not in data


def test_refresh_rotates_and_old_token_dies(client, zoe):
    first = login(client).get_json()["refresh_token"]
    resp = client.post("/api/v1/auth/refresh", json={"refresh_token": first})
    assert resp.status_code == 200
    second = resp.get_json()["refresh_token"]
    assert second != first

    replay = client.post("/api/v1/auth/refresh", json={"refresh_token": first})
    assert replay.status_code == 401
    assert replay.get_json() == UNAUTHORIZED


def test_logout_all_ends_every_session(client, zoe):
    a = login(client).get_json()["refresh_token"]
    b = login(client).get_json()["refresh_token"]
    resp = client.post("/api/v1/auth/logout", json={"refresh_token": a, "logout_all": True})
    assert resp.status_code == 204
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": b}).status_code == 401


def test_logout_of_unknown_token_is_still_204(client):
    resp = client.post("/api/v1/auth/logout", json={"refresh_token": "unknown"})
    assert resp.status_code == 204


class TestWebFlow:
    def test_web_login_sets_sealed_cookie(self, client, zoe, app_service):
        resp = web_login(client)
        assert resp.status_code == 200
        body = resp.get_json()
        assert "refresh_token" not in body
        header = resp.headers.get("Set-Cookie")
        assert "HttpOnly" in header and "Secure" in header and "SameSite=Lax" in header

        sealed = cookie_value(resp)
        token = app_service.cookies.unprotect(sealed)
        assert app_service.refresh_tokens.get(token).user_id == zoe.id

    def test_untrusted_origin_is_forbidden(self, client, zoe):
        resp = web_login(client, origin="https://evil.example.com")
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "FORBIDDEN"

    def test_missing_origin_falls_back_to_referer(self, client, zoe):
        resp = client.post(
            "/api/v1/auth/web-login",
            json={"username": "zoe", "password": "zoe-pass-1"},
            headers={"Referer": f"{ORIGIN}/login"},
        )
        assert resp.status_code == 200
        no_headers = client.post("/api/v1/auth/web-login", json={"username": "zoe", "password": "zoe-pass-1"})
        assert no_headers.status_code == 403

    def test_web_refresh_rotates_cookie(self, client, zoe):
        sealed = cookie_value(web_login(client))
        headers = {"Origin": ORIGIN, "Cookie": f"rt={sealed}"}

        resp = client.post("/api/v1/auth/web-refresh", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["access_token"]
        rotated = cookie_value(resp)
        assert rotated and rotated != sealed

        assert client.post("/api/v1/auth/web-refresh", headers=headers).status_code == 401

    def test_web_refresh_with_tampered_cookie(self, client, zoe):
        sealed = cookie_value(web_login(client))
        tampered = ("B" if sealed[0] != "B" else "C") + sealed[1:]
        resp = client.post(
            "/api/v1/auth/web-refresh", headers={"Origin": ORIGIN, "Cookie": f"rt={tampered}"}
        )
        assert resp.status_code == 401
        assert resp.get_json() == UNAUTHORIZED

    def test_web_logout_clears_cookie(self, client, zoe, app_service):
        sealed = cookie_value(web_login(client))
        token = app_service.cookies.unprotect(sealed)
        resp = client.post(
            "/api/v1/auth/web-logout",
            json={},
            headers={"Origin": ORIGIN, "Cookie": f"rt={sealed}"},
        )
        assert resp.status_code == 204
        assert "Max-Age=0" in resp.headers.get("Set-Cookie")
        assert app_service.refresh_tokens.get(token) is None

    def test_federated_login_needs_a_validated_claim(self, client):
        resp = client.post("/api/v1/auth/web-federated-login", headers={"Origin": ORIGIN})
        assert resp.status_code == 401

        claim = {"external_id": "ms-1", "issuer": "https://login.microsoftonline.com/t/v2.0", "email": "m@example.com"}
        resp = client.post(
            "/api/v1/auth/web-federated-login",
            headers={"Origin": ORIGIN},
            environ_base={"auth.federated_claim": claim},
        )
        assert resp.status_code == 200
        assert cookie_value(resp)


class TestUsers:
    def test_change_password_revokes_sessions(self, client, zoe):
        tokens = login(client).get_json()
        auth = {"Authorization": f"Bearer {tokens['access_token']}"}

        weak = client.post(
            "/api/v1/users/me/password", json={"old_password": "zoe-pass-1", "new_password": "short"}, headers=auth
        )
        assert weak.status_code == 400
        assert weak.get_json()["error"] == "InvalidPasswordFormat"

        resp = client.post(
            "/api/v1/users/me/password",
            json={"old_password": "zoe-pass-1", "new_password": "Zoe-Pass-2!"},
            headers=auth,
        )
        assert resp.status_code == 204
        refresh = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refresh.status_code == 401
        assert login(client, password="Zoe-Pass-2!").status_code == 200

    def test_admin_revokes_another_users_sessions(self, client, zoe, app_service):
        app_service.accounts.create_local_user(
            "boss", "boss-pass-1", roles=["customer", "admin"], email_confirmed=True
        )
        zoe_refresh = login(client).get_json()["refresh_token"]
        admin_token = login(client, "boss", "boss-pass-1").get_json()["access_token"]

        resp = client.post(
            f"/api/v1/users/{zoe.id}/sessions/revoke", headers={"Authorization": f"Bearer {admin_token}"}
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["revoked"] == 1
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": zoe_refresh}).status_code == 401

    def test_customer_cannot_revoke(self, client, zoe):
        token = login(client).get_json()["access_token"]
        resp = client.post(
            f"/api/v1/users/{zoe.id}/sessions/revoke", headers={"Authorization": f"Bearer {token}"}
        )
        assert resp.status_code == 403


def test_bad_key_fails_at_startup():
    with pytest.raises(ConfigurationError):
        create_app("testing", overrides={"COOKIE_KEY": "c2hvcnQ="})


def test_sql_backend_app():
    app = create_app("testing", overrides={"STORAGE_BACKEND": "sql", "DATABASE_URL": "sqlite://"})
    app.extensions["auth"].accounts.create_local_user("zoe", "zoe-pass-1", email_confirmed=True)
    client = app.test_client(use_cookies=False)
    refresh_token = login(client).get_json()["refresh_token"]
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token}).status_code == 200


def test_cookie_path_covers_every_cookie_route(app, app_service, client, zoe):
    path = app_service.cookies.settings.path
    with app.test_request_context():
        for endpoint in ("auth.web_login", "auth.web_federated_login", "auth.web_refresh", "auth.web_logout"):
            assert url_for(endpoint).startswith(path + "/")

    header = web_login(client).headers.get("Set-Cookie")
    assert f"Path={path}" in header


class TestRegistration:
    def register(self, client, email="new@example.com", password="Str0ng!pass"):
        return client.post("/api/v1/auth/register", json={"email": email, "password": password})

    def test_register_confirm_then_login(self, client, outbox):
        resp = self.register(client)
        assert resp.status_code == 200
        assert "confirm" in resp.get_json()["message"]
        assert login(client, "new@example.com", "Str0ng!pass").status_code == 401

        confirm = client.post("/api/v1/auth/confirm-email", json={"token": outbox.last_token()})
        assert confirm.status_code == 200
        assert login(client, "new@example.com", "Str0ng!pass").status_code == 200

    def test_confirm_from_link(self, client, outbox):
        self.register(client)
        resp = client.get("/api/v1/auth/confirm-email", query_string={"token": outbox.last_token()})
        assert resp.status_code == 200

        again = client.get("/api/v1/auth/confirm-email", query_string={"token": outbox.last_token()})
        assert again.status_code == 400
        assert again.get_json()["error"] == "InvalidToken"

    def test_weak_password_is_400(self, client, outbox):
        resp = self.register(client, password="weakpassword")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "InvalidPasswordFormat"
        assert outbox.messages == []

    def test_bad_email_is_422(self, client):
        resp = self.register(client, email="not-an-email")
        assert resp.status_code == 422
        assert "email" in resp.get_json()["details"]

    def test_web_register_needs_the_trusted_origin(self, client):
        body = {"email": "new@example.com", "password": "Str0ng!pass"}
        assert client.post("/api/v1/auth/web-register", json=body).status_code == 403
        resp = client.post("/api/v1/auth/web-register", json=body, headers={"Origin": ORIGIN})
        assert resp.status_code == 200

    def test_send_endpoints_answer_the_same_for_unknown_addresses(self, client, zoe, outbox):
        for path in ("/api/v1/auth/send-registration-email", "/api/v1/auth/send-reset-password-email"):
            known = client.post(path, json={"email": "zoe@example.com"})
            unknown = client.post(path, json={"email": "ghost@example.com"})
            assert known.status_code == unknown.status_code == 200
            assert known.get_json() == unknown.get_json()
        # zoe is confirmed: only the reset mail goes out
        assert [m["subject"] for m in outbox.messages] == ["Reset your password"]

    def test_reset_password_ends_sessions(self, client, zoe, outbox):
        refresh_token = login(client).get_json()["refresh_token"]
        client.post("/api/v1/auth/send-reset-password-email", json={"email": "zoe@example.com"})

        resp = client.post(
            "/api/v1/auth/reset-password",
            json={"token": outbox.last_token(), "new_password": "Zoe-Pass-2!"},
        )
        assert resp.status_code == 200
        assert client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token}).status_code == 401
        assert login(client, password="Zoe-Pass-2!").status_code == 200

        reused = client.post(
            "/api/v1/auth/reset-password",
            json={"token": outbox.last_token(), "new_password": "Zoe-Pass-3!"},
        )
        assert reused.status_code == 400
        assert reused.get_json()["error"] == "InvalidToken"


def test_dev_server_entrypoint(monkeypatch):
    calls = []
    monkeypatch.setattr(Flask, "run", lambda self, **kwargs: calls.append(kwargs))

    app = dev_server.main("testing")
    assert app.config["TESTING"] is True
    assert calls == [{"host": app.config["HOST"], "port": app.config["PORT"], "debug": False, "threaded": True}]
