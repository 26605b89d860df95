"""Integration tests for login, token and user management endpoints"""

from datetime import datetime, timedelta, timezone
import pytest
from conftest import headers_for
from authgate.errors import OUTDATED_TOKEN_MESSAGE
from authgate.security.jwt import decode_token
from authgate.services.deletion_service import DeletionService

pytestmark = pytest.mark.integration


@pytest.fixture
def user(okta):
    return okta.add_user("user@example.com", name="User", password="secret")


@pytest.fixture
def admin(okta):
    return okta.add_user("admin@example.com", role="ADMIN", apps=["gfw"])


@pytest.fixture
def manager(okta):
    return okta.add_user("manager@example.com", role="MANAGER", apps=["gfw"])


class TestLogin:
    """Password login and token endpoints"""

    def test_login(self, client, user):
        response = client.post("/auth/login", json={"email": "user@example.com", "password": "secret"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["id"] == user.id
        assert data["email"] == "user@example.com"
        assert decode_token(data["token"])["id"] == user.id

    def test_wrong_password(self, client, user):
        response = client.post("/auth/login", json={"email": "user@example.com", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["errors"][0]["detail"] == "Invalid email or password"

    def test_check_logged(self, client, user):
        response = client.get("/auth/check-logged", headers=headers_for(user))

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == user.id
        assert body["provider"] == "local"
        assert body["extraUserData"] == {"apps": ["gfw"]}
        assert "providerId" in body

    def test_check_logged_anonymous(self, client):
        response = client.get("/auth/check-logged")

        assert response.status_code == 401
        assert response.json()["errors"][0]["detail"] == "Not authenticated"

    def test_invalid_token(self, client):
        response = client.get("/auth/check-logged", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    def test_generate_token_uses_live_record(self, client, okta, user):
        headers = headers_for(user)
        okta.find(user.id)["profile"]["displayName"] = "Renamed"

        response = client.get("/auth/generate-token", headers=headers)

        assert response.status_code == 200
        assert decode_token(response.json()["token"])["name"] == "Renamed"

    def test_provider_outcome_pages(self, client):
        assert client.get("/auth/success").json() == {"status": "success"}
        failure = client.get("/auth/fail")
        assert failure.status_code == 401
        assert failure.json()["errors"][0]["detail"] == "Authentication with the provider failed"


class TestTokenFreshness:
    """Old tokens are checked against the live identity record"""

    def test_outdated_token_after_role_change(self, client, okta, user):
        headers = headers_for(user, now=datetime.now(timezone.utc) - timedelta(hours=2))
        okta.find(user.id)["profile"]["role"] = "ADMIN"

        response = client.get("/auth/user/me", headers=headers)

        assert response.status_code == 401
        assert response.json()["errors"][0]["detail"] == OUTDATED_TOKEN_MESSAGE

    def test_old_token_still_matching(self, client, user):
        headers = headers_for(user, now=datetime.now(timezone.utc) - timedelta(hours=2))

        response = client.get("/auth/user/me", headers=headers)

        assert response.status_code == 200
        assert response.json()["id"] == user.id

    def test_young_token_is_trusted_without_lookup(self, client, okta, user):
        headers = headers_for(user)
        okta.find(user.id)["profile"]["role"] = "ADMIN"

        response = client.get("/auth/check-logged", headers=headers)

        assert response.status_code == 200


class TestPasswordRecovery:
    def test_email_required(self, client):
        response = client.post("/auth/reset-password", json={})

        assert response.status_code == 422
        assert response.json()["errors"][0]["detail"] == "Mail required"

    def test_unknown_email(self, client):
        response = client.post("/auth/reset-password", json={"email": "nobody@example.com"})

        assert response.status_code == 422
        assert response.json()["errors"][0]["detail"] == "User not found"

    def test_sent(self, client, okta, user):
        response = client.post("/auth/reset-password", json={"email": "user@example.com"})

        assert response.json() == {"message": "Email sent"}
        assert "send_password_recovery" in okta.calls

    def test_new_password(self, client, okta, user):
        token = okta.issue_recovery_token("user@example.com")

        response = client.post(
            f"/auth/reset-password/{token}", json={"password": "n3w-secret", "repeatPassword": "n3w-secret"}
        )

        assert response.status_code == 200
        assert response.json()["data"]["id"] == user.id
        login = client.post("/auth/login", json={"email": "user@example.com", "password": "n3w-secret"})
        assert login.status_code == 200

    @pytest.mark.parametrize(
        "body,detail",
        [
            ({"password": "n3w-secret"}, "Password and Repeat password are required"),
            ({"password": "n3w-secret", "repeatPassword": "other"}, "Password and Repeat password not equal"),
        ],
    )
    def test_new_password_validation(self, client, okta, user, body, detail):
        token = okta.issue_recovery_token("user@example.com")

        response = client.post(f"/auth/reset-password/{token}", json=body)

        assert response.status_code == 422
        assert response.json()["errors"][0]["detail"] == detail
        assert "reset_password" not in okta.calls

    def test_new_password_with_expired_token(self, client):
        response = client.post(
            "/auth/reset-password/expired", json={"password": "n3w-secret", "repeatPassword": "n3w-secret"}
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["detail"] == "Token expired"


class TestSignUp:
    """Self-service accounts"""

    def test_sign_up(self, client, okta):
        response = client.post("/auth/sign-up", json={"email": "new@example.com", "name": "New"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == "new@example.com"
        assert data["role"] == "USER"
        assert okta.activated == [okta.find(data["id"])["id"]]

    def test_email_required(self, client):
        response = client.post("/auth/sign-up", json={"name": "New"})

        assert response.status_code == 422
        assert response.json()["errors"][0]["detail"] == "Email is required"

    def test_existing_email(self, client, user):
        response = client.post("/auth/sign-up", json={"email": "user@example.com"})

        assert response.status_code == 422
        assert response.json()["errors"][0]["detail"] == "Email exists"


class TestLogout:
    def test_logout(self, client):
        response = client.get("/auth/logout")

        assert response.status_code == 200
        assert response.json() == {"message": "Logged out"}

    def test_logout_redirects_to_callback(self, client):
        response = client.get(
            "/auth/logout", params={"callbackUrl": "https://app.example.com"}, follow_redirects=False
        )

        assert response.status_code == 302
        assert response.headers["location"] == "https://app.example.com"


class TestCurrentUser:
    """Self-service profile endpoints"""

    @pytest.mark.parametrize("path", ["/auth/user/me", "/auth/user/from-token"])
    def test_me(self, client, user, path):
        response = client.get(path, headers=headers_for(user))

        assert response.status_code == 200
        assert response.json()["email"] == "user@example.com"

    def test_me_as_microservice(self, client, microservice_headers):
        response = client.get("/auth/user/me", headers=microservice_headers)
        assert response.json()["id"] == "microservice"

    def test_update_me_ignores_role_and_apps(self, client, okta, user):
        response = client.patch(
            "/auth/user/me",
            json={"name": "New name", "role": "ADMIN", "extraUserData": {"apps": ["rw"]}},
            headers=headers_for(user),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["name"] == "New name"
        assert data["role"] == "USER"
        assert data["extraUserData"] == {"apps": ["gfw"]}

    def test_update_me_evicts_cached_identity(self, client, cache, user):
        client.get("/auth/user/me", headers=headers_for(user))
        assert f"identity:{user.id}" in cache.data

        client.patch("/auth/user/me", json={"name": "New name"}, headers=headers_for(user))

        assert f"identity:{user.id}" not in cache.data
        assert client.get("/auth/user/me", headers=headers_for(user)).json()["name"] == "New name"


class TestUserAdministration:
    """ADMIN and MANAGER user management"""

    def test_list_scoped_to_admin_apps(self, client, okta, admin, user):
        okta.add_user("rw@example.com", apps=["rw"])

        response = client.get("/auth/user", headers=headers_for(admin))

        assert response.status_code == 200
        emails = {item["email"] for item in response.json()["data"]}
        assert emails == {"admin@example.com", "user@example.com"}

    def test_list_all_apps(self, client, okta, admin, user):
        okta.add_user("rw@example.com", apps=["rw"])

        response = client.get("/auth/user", params={"app": "all"}, headers=headers_for(admin))

        assert len(response.json()["data"]) == 3

    def test_list_filters(self, client, okta, admin, user):
        response = client.get("/auth/user", params={"role": "ADMIN"}, headers=headers_for(admin))
        assert [item["id"] for item in response.json()["data"]] == [admin.id]

    def test_list_cursor_pages(self, client, okta, admin, user):
        response = client.get(
            "/auth/user", params={"strategy": "cursor", "page[size]": 1}, headers=headers_for(admin)
        )

        body = response.json()
        assert len(body["data"]) == 1
        assert "page%5Bafter%5D=1" in body["links"]["next"]

    def test_list_requires_admin(self, client, user):
        assert client.get("/auth/user", headers=headers_for(user)).status_code == 403

    def test_admin_without_apps(self, client, okta):
        admin = okta.add_user("appless@example.com", role="ADMIN", apps=[])
        assert client.get("/auth/user", headers=headers_for(admin)).status_code == 403

    def test_get_user(self, client, admin, user):
        response = client.get(f"/auth/user/{user.id}", headers=headers_for(admin))

        assert response.status_code == 200
        assert response.json()["id"] == user.id

    def test_get_unknown_user(self, client, admin):
        response = client.get("/auth/user/nobody", headers=headers_for(admin))

        assert response.status_code == 404
        assert response.json()["errors"][0]["detail"] == "User not found"

    def test_admin_updates_role(self, client, admin, user):
        response = client.patch(f"/auth/user/{user.id}", json={"role": "MANAGER"}, headers=headers_for(admin))

        assert response.status_code == 200
        assert response.json()["data"]["role"] == "MANAGER"

    def test_create_user(self, client, okta, admin):
        response = client.post(
            "/auth/user",
            json={"email": "new@example.com", "name": "New", "extraUserData": {"apps": ["gfw"]}},
            headers=headers_for(admin),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["email"] == "new@example.com"
        assert data["role"] == "USER"
        assert data["provider"] == "local"
        assert okta.activated == [okta.find(data["id"])["id"]]

    def test_create_existing_email(self, client, admin, user):
        response = client.post(
            "/auth/user",
            json={"email": "user@example.com", "extraUserData": {"apps": ["gfw"]}},
            headers=headers_for(admin),
        )

        assert response.status_code == 400
        assert response.json()["errors"][0]["detail"] == "Email exists"

    def test_create_requires_apps(self, client, admin):
        response = client.post("/auth/user", json={"email": "new@example.com"}, headers=headers_for(admin))

        assert response.status_code == 400
        assert response.json()["errors"][0]["detail"] == "Apps required"

    def test_manager_cannot_create_admin(self, client, manager):
        response = client.post(
            "/auth/user",
            json={"email": "new@example.com", "role": "ADMIN", "extraUserData": {"apps": ["gfw"]}},
            headers=headers_for(manager),
        )
        assert response.status_code == 403

    def test_cannot_grant_foreign_apps(self, client, manager):
        response = client.post(
            "/auth/user",
            json={"email": "new@example.com", "extraUserData": {"apps": ["rw"]}},
            headers=headers_for(manager),
        )
        assert response.status_code == 403

    def test_manager_creates_user(self, client, manager):
        response = client.post(
            "/auth/user",
            json={"email": "new@example.com", "extraUserData": {"apps": ["gfw"]}},
            headers=headers_for(manager),
        )
        assert response.status_code == 200

    def test_user_cannot_create(self, client, user):
        response = client.post(
            "/auth/user",
            json={"email": "new@example.com", "extraUserData": {"apps": ["gfw"]}},
            headers=headers_for(user),
        )
        assert response.status_code == 403


class TestMicroserviceLookups:
    def test_find_by_ids(self, client, microservice_headers, admin, user):
        response = client.post(
            "/auth/user/find-by-ids", json={"ids": [admin.id, user.id]}, headers=microservice_headers
        )

        assert response.status_code == 200
        assert {item["id"] for item in response.json()["data"]} == {admin.id, user.id}

    def test_find_by_ids_requires_microservice(self, client, admin):
        response = client.post("/auth/user/find-by-ids", json={"ids": [admin.id]}, headers=headers_for(admin))
        assert response.status_code == 403

    def test_ids_by_role(self, client, microservice_headers, admin, user):
        response = client.get("/auth/user/ids/ADMIN", headers=microservice_headers)
        assert response.json() == {"data": [admin.id]}

    def test_ids_by_invalid_role(self, client, microservice_headers):
        response = client.get("/auth/user/ids/OVERLORD", headers=microservice_headers)

        assert response.status_code == 422
        assert response.json()["errors"][0]["detail"] == "Invalid role OVERLORD provided"


class TestDeleteUser:
    """Deleting a user runs the deletion workflow"""

    def test_self_delete(self, client, db, okta, resources, user):
        response = client.delete(f"/auth/user/{user.id}", headers=headers_for(user))

        assert response.status_code == 200
        assert response.json()["data"]["id"] == user.id
        assert okta.find(user.id) is None
        assert resources.calls
        deletion = DeletionService.get_deletion_by_user_id(db, user.id)
        assert deletion.status == "done"
        assert deletion.requestor_user_id == user.id

    def test_admin_deletes_user(self, client, db, admin, user):
        response = client.delete(f"/auth/user/{user.id}", headers=headers_for(admin))

        assert response.status_code == 200
        assert DeletionService.get_deletion_by_user_id(db, user.id).requestor_user_id == admin.id

    def test_microservice_deletes_user(self, client, microservice_headers, user):
        assert client.delete(f"/auth/user/{user.id}", headers=microservice_headers).status_code == 200

    def test_other_user_cannot_delete(self, client, okta, user):
        other = okta.add_user("other@example.com")

        response = client.delete(f"/auth/user/{user.id}", headers=headers_for(other))

        assert response.status_code == 403
        assert okta.find(user.id) is not None

    def test_partial_failure_still_returns_user(self, client, db, resources, user):
        resources.failing = {"widgets"}

        response = client.delete(f"/auth/user/{user.id}", headers=headers_for(user))

        assert response.status_code == 200
        assert DeletionService.get_deletion_by_user_id(db, user.id).status == "failed"
