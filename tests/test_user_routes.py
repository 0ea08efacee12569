"""
tests/test_user_routes.py -- HTTP tests for /api/v1/users.

Coverage:
  - admin-only listing: 401 without session, 403 for USER, 200 for ADMIN
  - self-update: credential changes re-issue the cookie, name-only does not
  - self-delete removes the caller's products and the account
  - admin update (incl. role) and delete of other accounts
  - role changes apply to the very next request

Tests that mutate or delete accounts register their own throwaway users so
the seeded admin/alice/bob accounts stay intact for the rest of the module.
"""

from __future__ import annotations

from uuid import uuid4

USERS = "/api/v1/users"
ME = "/api/v1/users/me"


def _cookie(token: str) -> dict[str, str]:
    return {"Cookie": f"jwt={token}"}


def _new_account(api_client, password: str = "temppass123") -> tuple[str, str, str]:
    """Register and log in a throwaway user. Returns (id, email, token)."""
    email = f"temp-{uuid4().hex[:8]}@acme.io"
    created = api_client.client.post(
        "/api/v1/auth/register", json={"name": "Temp User", "email": email, "password": password}
    )
    assert created.status_code == 201, created.text
    login = api_client.client.post("/api/v1/auth/login", json={"email": email, "password": password})
    return created.json()["id"], email, login.cookies.get("jwt")


class TestListUsers:
    def test_requires_session(self, api_client) -> None:
        assert api_client.client.get(USERS).status_code == 401

    def test_forbidden_for_user_role(self, api_client) -> None:
        resp = api_client.client.get(USERS, headers=api_client.alice.headers)
        assert resp.status_code == 403
        assert resp.json()["message"] == "Access denied."
        assert "bob@acme.io" not in resp.text

    def test_admin_sees_everyone(self, api_client) -> None:
        resp = api_client.client.get(USERS, headers=api_client.admin.headers)
        assert resp.status_code == 200
        emails = [u["email"] for u in resp.json()]
        assert {"admin@acme.io", "alice@acme.io", "bob@acme.io"} <= set(emails)
        assert emails == sorted(emails)
        assert all("hashed_password" not in u for u in resp.json())


class TestMe:
    def test_get_me(self, api_client) -> None:
        resp = api_client.client.get(ME, headers=api_client.bob.headers)
        assert resp.status_code == 200
        assert resp.json() == {"id": api_client.bob.id, "name": "Bob", "email": "bob@acme.io", "role": "USER"}

    def test_name_change_does_not_reissue_cookie(self, api_client) -> None:
        _, _, token = _new_account(api_client)
        resp = api_client.client.put(ME, json={"name": "Renamed User"}, headers=_cookie(token))
        assert resp.status_code == 200
        body = resp.json()
        assert body["user"]["name"] == "Renamed User"
        assert body["session_refreshed"] is False
        assert "set-cookie" not in resp.headers

    def test_password_change_reissues_cookie(self, api_client) -> None:
        user_id, email, token = _new_account(api_client)
        resp = api_client.client.put(ME, json={"password": "brand-new-pass"}, headers=_cookie(token))
        assert resp.status_code == 200
        assert resp.json()["session_refreshed"] is True

        fresh = resp.cookies.get("jwt")
        assert fresh
        assert api_client.client.get(ME, headers=_cookie(fresh)).json()["id"] == user_id

        old_login = api_client.client.post("/api/v1/auth/login", json={"email": email, "password": "temppass123"})
        new_login = api_client.client.post("/api/v1/auth/login", json={"email": email, "password": "brand-new-pass"})
        assert old_login.status_code == 401
        assert new_login.status_code == 200

    def test_updated_password_and_email_are_stored_verbatim(self, api_client) -> None:
        _, _, token = _new_account(api_client)
        new_email = f"Verbatim-{uuid4().hex[:8]}@ACME.io"
        resp = api_client.client.put(
            ME, json={"email": new_email, "password": " padded-pass "}, headers=_cookie(token)
        )
        assert resp.status_code == 200
        login = api_client.client.post("/api/v1/auth/login", json={"email": new_email, "password": " padded-pass "})
        assert login.status_code == 200, login.text

    def test_email_change_reissues_cookie(self, api_client) -> None:
        _, _, token = _new_account(api_client)
        new_email = f"moved-{uuid4().hex[:8]}@acme.io"
        resp = api_client.client.put(ME, json={"email": new_email}, headers=_cookie(token))
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == new_email
        assert resp.json()["session_refreshed"] is True
        assert "Max-Age=86400" in resp.headers["set-cookie"]

    def test_email_taken_by_someone_else(self, api_client) -> None:
        _, email, token = _new_account(api_client)
        resp = api_client.client.put(ME, json={"email": "alice@acme.io"}, headers=_cookie(token))
        assert resp.status_code == 400
        assert api_client.user_store.get_by_email(email) is not None

    def test_empty_update_is_400(self, api_client) -> None:
        _, _, token = _new_account(api_client)
        resp = api_client.client.put(ME, json={"name": "  ", "password": ""}, headers=_cookie(token))
        assert resp.status_code == 400
        assert resp.json()["message"] == "No fields to update."

    def test_role_cannot_be_self_assigned(self, api_client) -> None:
        user_id, _, token = _new_account(api_client)
        api_client.client.put(ME, json={"name": "Sneaky User", "role": "ADMIN"}, headers=_cookie(token))
        assert api_client.user_store.get_by_id(user_id).role.value == "USER"

    def test_short_password_rejected(self, api_client) -> None:
        _, _, token = _new_account(api_client)
        resp = api_client.client.put(ME, json={"password": "abc"}, headers=_cookie(token))
        assert resp.status_code == 400
        assert "password" in resp.json()["field_errors"]

    def test_delete_me_removes_products_and_account(self, api_client) -> None:
        user_id, _, token = _new_account(api_client)
        created = api_client.client.post(
            "/api/v1/products", json={"name": "Doomed", "price": 5.0}, headers=_cookie(token)
        )
        assert created.status_code == 201

        resp = api_client.client.delete(ME, headers=_cookie(token))
        assert resp.status_code == 200
        assert "Max-Age=0" in resp.headers["set-cookie"]
        assert api_client.user_store.get_by_id(user_id) is None
        assert api_client.product_store.list_by_owner(user_id) == []
        assert api_client.client.get(ME, headers=_cookie(token)).status_code == 401


class TestAdminManagement:
    def test_admin_updates_other_user(self, api_client) -> None:
        user_id, _, _ = _new_account(api_client)
        resp = api_client.client.put(
            f"{USERS}/{user_id}", json={"name": "Edited By Admin"}, headers=api_client.admin.headers
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Edited By Admin"
        assert "set-cookie" not in resp.headers

    def test_promotion_applies_to_next_request(self, api_client) -> None:
        user_id, _, token = _new_account(api_client)
        assert api_client.client.get(USERS, headers=_cookie(token)).status_code == 403

        resp = api_client.client.put(f"{USERS}/{user_id}", json={"role": "ADMIN"}, headers=api_client.admin.headers)
        assert resp.status_code == 200
        assert resp.json()["role"] == "ADMIN"
        assert api_client.client.get(USERS, headers=_cookie(token)).status_code == 200

    def test_user_cannot_update_others(self, api_client) -> None:
        resp = api_client.client.put(
            f"{USERS}/{api_client.bob.id}", json={"name": "Hijacked"}, headers=api_client.alice.headers
        )
        assert resp.status_code == 403
        assert api_client.user_store.get_by_id(api_client.bob.id).name == "Bob"

    def test_update_unknown_user_is_404(self, api_client) -> None:
        resp = api_client.client.put(f"{USERS}/missing", json={"name": "Nobody"}, headers=api_client.admin.headers)
        assert resp.status_code == 404

    def test_admin_deletes_user_and_products(self, api_client) -> None:
        user_id, _, token = _new_account(api_client)
        api_client.client.post("/api/v1/products", json={"name": "Orphan", "price": 1.0}, headers=_cookie(token))

        resp = api_client.client.delete(f"{USERS}/{user_id}", headers=api_client.admin.headers)
        assert resp.status_code == 200
        assert api_client.user_store.get_by_id(user_id) is None
        assert api_client.product_store.list_by_owner(user_id) == []

    def test_deleting_another_account_keeps_admin_cookie(self, api_client) -> None:
        user_id, _, _ = _new_account(api_client)
        resp = api_client.client.delete(f"{USERS}/{user_id}", headers=api_client.admin.headers)
        assert resp.status_code == 200
        assert "set-cookie" not in resp.headers

    def test_admin_deleting_self_by_id_clears_cookie(self, api_client) -> None:
        user_id, _, token = _new_account(api_client)
        promoted = api_client.client.put(
            f"{USERS}/{user_id}", json={"role": "ADMIN"}, headers=api_client.admin.headers
        )
        assert promoted.status_code == 200

        resp = api_client.client.delete(f"{USERS}/{user_id}", headers=_cookie(token))
        assert resp.status_code == 200
        set_cookie = resp.headers["set-cookie"]
        assert set_cookie.startswith("jwt=")
        assert "Max-Age=0" in set_cookie
        assert api_client.user_store.get_by_id(user_id) is None

    def test_user_cannot_delete_others(self, api_client) -> None:
        resp = api_client.client.delete(f"{USERS}/{api_client.bob.id}", headers=api_client.alice.headers)
        assert resp.status_code == 403
        assert api_client.user_store.get_by_id(api_client.bob.id) is not None

    def test_delete_unknown_user_is_404(self, api_client) -> None:
        assert api_client.client.delete(f"{USERS}/missing", headers=api_client.admin.headers).status_code == 404
