"""Login, organization listing and context switching over HTTP."""

from __future__ import annotations

from uuid import UUID, uuid4

import pytest

from src.infra.org.context import STORED_USER_KEY
from src.shared.errors import BackendError, ErrorKind
from src.shared.types import RoleDefinition, UserDetails


@pytest.fixture()
def buyer(gateway):
    return gateway.add_member("buyer@example.com", "Apple Barn", "Berry Fields")


def _login(gateway, email="buyer@example.com", password=None):
    password = gateway.password if password is None else password
    return gateway.client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestLogin:
    def test_login_returns_token_and_user(self, gateway, buyer):
        profile, orgs = buyer

        resp = _login(gateway)

        assert resp.status_code == 200
        body = resp.json()
        assert body["token"]
        assert body["user"]["id"] == str(profile.id)
        assert [o["name"] for o in body["user"]["organizations"]] == ["Apple Barn", "Berry Fields"]
        assert body["user"]["current_organization"]["id"] == str(orgs[0].id)

    def test_token_works_for_context(self, gateway, buyer):
        _, orgs = buyer
        token = _login(gateway).json()["token"]

        resp = gateway.client.get(
            "/api/v1/context", headers={"Authorization": f"Bearer {token}"}
        )

        assert resp.json() == {
            "organization_id": str(orgs[0].id),
            "is_set": True,
            "state": "set",
        }

    def test_wrong_password(self, gateway, buyer):
        resp = _login(gateway, password="wrong")
        assert resp.status_code == 401

    def test_invalid_email_rejected(self, gateway):
        resp = _login(gateway, email="not-an-email")
        assert resp.status_code == 422

    def test_no_organizations_forbidden(self, gateway):
        gateway.add_member("lonely@example.com")
        resp = _login(gateway, email="lonely@example.com")
        assert resp.status_code == 403
        assert resp.json()["error"] == "ACCESS_DENIED"

    def test_logout_clears_context(self, gateway, buyer):
        profile, _ = buyer
        _login(gateway)
        headers = gateway.auth_headers(profile.id)

        resp = gateway.client.post("/api/v1/auth/logout", headers=headers)

        assert resp.status_code == 200
        assert STORED_USER_KEY not in gateway.stores[profile.id].data
        assert gateway.client.get("/api/v1/context", headers=headers).json()["is_set"] is False


class TestOrganizations:
    def test_lists_memberships(self, gateway, buyer):
        profile, _ = buyer
        resp = gateway.client.get("/api/v1/organizations", headers=gateway.auth_headers(profile.id))
        assert resp.status_code == 200
        assert resp.json()["total"] == 2
        assert {o["role"] for o in resp.json()["organizations"]} == {"user"}

    def test_falls_back_when_joins_fail(self, gateway, buyer):
        profile, _ = buyer
        gateway.backend.list_errors = {
            True: BackendError("rls", kind=ErrorKind.RLS_DENIED),
            False: BackendError("rls", kind=ErrorKind.RLS_DENIED),
        }
        gateway.backend.add_organization("Citrus Co")

        resp = gateway.client.get("/api/v1/organizations", headers=gateway.auth_headers(profile.id))

        assert resp.status_code == 200
        assert resp.json()["total"] == 3

    def test_empty_for_user_without_memberships(self, gateway):
        resp = gateway.client.get("/api/v1/organizations", headers=gateway.auth_headers(uuid4()))
        assert resp.json() == {"organizations": [], "total": 0}


class TestContext:
    def test_unset_before_login(self, gateway):
        resp = gateway.client.get("/api/v1/context", headers=gateway.auth_headers(uuid4()))
        assert resp.json() == {"organization_id": None, "is_set": False, "state": "unset"}

    def test_switch(self, gateway, buyer):
        profile, orgs = buyer
        _login(gateway)
        headers = gateway.auth_headers(profile.id)

        resp = gateway.client.put(
            "/api/v1/context", json={"organization_id": str(orgs[1].id)}, headers=headers
        )

        assert resp.status_code == 200
        assert resp.json()["organization_id"] == str(orgs[1].id)
        stored = gateway.stores[profile.id].data[STORED_USER_KEY]
        assert UUID(stored["currentOrganization"]["id"]) == orgs[1].id

    def test_switch_to_foreign_organization(self, gateway, buyer):
        profile, orgs = buyer
        _login(gateway)
        headers = gateway.auth_headers(profile.id)

        resp = gateway.client.put(
            "/api/v1/context", json={"organization_id": str(uuid4())}, headers=headers
        )

        assert resp.status_code == 403
        context = gateway.client.get("/api/v1/context", headers=headers).json()
        assert context["organization_id"] == str(orgs[0].id)

    def test_switch_without_login(self, gateway):
        resp = gateway.client.put(
            "/api/v1/context",
            json={"organization_id": str(uuid4())},
            headers=gateway.auth_headers(uuid4()),
        )
        assert resp.status_code == 401

    def test_failed_bind_leaves_unset(self, gateway, buyer):
        profile, orgs = buyer
        _login(gateway)
        headers = gateway.auth_headers(profile.id)
        gateway.backend.bind_errors = [BackendError("boom", kind=ErrorKind.UNKNOWN)]

        resp = gateway.client.put(
            "/api/v1/context", json={"organization_id": str(orgs[1].id)}, headers=headers
        )

        assert resp.status_code == 500
        assert gateway.client.get("/api/v1/context", headers=headers).json()["state"] == "unset"

    @pytest.mark.parametrize(
        ("method", "kwargs"),
        [("put", {"json": {"organization_id": None}}), ("delete", {})],
    )
    def test_clear(self, gateway, buyer, method, kwargs):
        profile, _ = buyer
        _login(gateway)
        headers = gateway.auth_headers(profile.id)

        resp = getattr(gateway.client, method)("/api/v1/context", headers=headers, **kwargs)

        assert resp.status_code == 200
        assert resp.json()["is_set"] is False
        stored = gateway.stores[profile.id].data[STORED_USER_KEY]
        assert stored["currentOrganization"] is None
        members = gateway.client.get("/api/v1/context/members", headers=headers)
        assert members.status_code == 428


class TestScopedMembers:
    def test_lists_members_of_current_organization(self, gateway, buyer):
        profile, orgs = buyer
        _login(gateway)

        resp = gateway.client.get(
            "/api/v1/context/members", headers=gateway.auth_headers(profile.id)
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["organization_id"] == str(orgs[0].id)
        assert [m["user_id"] for m in body["members"]] == [str(profile.id)]
        assert gateway.backend.scoped_reads == [orgs[0].id]

    def test_guard_recovers_dropped_context(self, gateway, buyer):
        profile, orgs = buyer
        _login(gateway)
        gateway.registry.discard(profile.id)

        resp = gateway.client.get(
            "/api/v1/context/members", headers=gateway.auth_headers(profile.id)
        )

        assert resp.status_code == 200
        assert resp.json()["organization_id"] == str(orgs[0].id)
        assert gateway.backend.bound == [orgs[0].id, orgs[0].id]

    def test_rebinds_once_after_missing_session_setting(self, gateway, buyer):
        profile, orgs = buyer
        _login(gateway)
        gateway.backend.member_list_errors = [
            BackendError("unrecognized configuration parameter", kind=ErrorKind.CONTEXT_NOT_SET)
        ]

        resp = gateway.client.get(
            "/api/v1/context/members", headers=gateway.auth_headers(profile.id)
        )

        assert resp.status_code == 200
        assert gateway.backend.calls.count("list_organization_members") == 2
        assert gateway.backend.bound == [orgs[0].id, orgs[0].id]

    def test_denied_twice_is_forbidden(self, gateway, buyer):
        profile, _ = buyer
        _login(gateway)
        gateway.backend.member_list_errors = [
            BackendError("policy", kind=ErrorKind.RLS_DENIED),
            BackendError("policy", kind=ErrorKind.RLS_DENIED),
        ]

        resp = gateway.client.get(
            "/api/v1/context/members", headers=gateway.auth_headers(profile.id)
        )

        assert resp.status_code == 403
        assert resp.json()["kind"] == "rls_denied"

    def test_without_context_is_precondition_required(self, gateway):
        resp = gateway.client.get(
            "/api/v1/context/members", headers=gateway.auth_headers(uuid4())
        )
        assert resp.status_code == 428
        assert resp.json()["error"] == "CONTEXT_NOT_SET"
        assert gateway.backend.scoped_reads == []


class TestPermissions:
    def test_resolved_permissions(self, gateway):
        user_id = uuid4()
        gateway.backend.details[user_id] = UserDetails(
            id=user_id,
            email="clerk@example.com",
            full_name="Clerk",
            role_id="staff",
            role_name="Staff",
            permissions=frozenset({"sales:write", "dashboard:read"}),
        )
        gateway.backend.roles = [RoleDefinition(id="staff", name="Staff")]

        resp = gateway.client.get("/api/v1/me/permissions", headers=gateway.auth_headers(user_id))

        body = resp.json()
        assert body["role_id"] == "staff"
        assert body["permissions"] == ["dashboard:read", "sales:write"]
        assert [r["id"] for r in body["roles"]] == ["staff"]

    def test_unknown_user_has_no_permissions(self, gateway):
        gateway.backend.roles_error = ConnectionError("down")
        resp = gateway.client.get("/api/v1/me/permissions", headers=gateway.auth_headers(uuid4()))
        body = resp.json()
        assert body["role_id"] is None
        assert body["permissions"] == []
        assert len(body["roles"]) == 4
