"""
Tests for the feature admin API.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

pytestmark = pytest.mark.integration

BASE = "/api/v1/admin/features"


async def _create_flag(admin_client, key: str = "reports", **extra) -> dict:
    response = await admin_client.post(f"{BASE}/flags", json={"key": key, "name": key.title(), **extra})
    assert response.status_code == 201, response.text
    return response.json()


class TestAdminAccess:
    async def test_regular_user_forbidden(self, client):
        response = await client.get(f"{BASE}/flags")
        assert response.status_code == 403
        assert response.json()["detail"] == "Admin access required"

    async def test_admin_allowed(self, admin_client):
        response = await admin_client.get(f"{BASE}/flags")
        assert response.status_code == 200
        assert response.json() == []


class TestFlagAdmin:
    async def test_create_get_update(self, admin_client):
        created = await _create_flag(admin_client, description="Monthly reports")
        assert created["key"] == "reports"
        assert created["is_enabled"] is False

        response = await admin_client.patch(f"{BASE}/flags/reports", json={"is_enabled": True})
        assert response.status_code == 200
        assert response.json()["is_enabled"] is True
        assert response.json()["description"] == "Monthly reports"

        fetched = await admin_client.get(f"{BASE}/flags/reports")
        assert fetched.json()["id"] == created["id"]

    async def test_patch_null_clears_description(self, admin_client):
        await _create_flag(admin_client, description="Monthly reports")

        response = await admin_client.patch(f"{BASE}/flags/reports", json={"description": None})

        assert response.status_code == 200
        assert response.json()["description"] is None
        assert response.json()["name"] == "Reports"

    async def test_patch_null_name_rejected(self, admin_client):
        await _create_flag(admin_client)

        response = await admin_client.patch(f"{BASE}/flags/reports", json={"name": None})

        assert response.status_code == 422

    async def test_duplicate_key(self, admin_client):
        await _create_flag(admin_client)
        response = await admin_client.post(f"{BASE}/flags", json={"key": "reports", "name": "Again"})

        assert response.status_code == 409
        assert response.json()["error_code"] == "DUPLICATE_FEATURE"

    async def test_invalid_key(self, admin_client):
        response = await admin_client.post(f"{BASE}/flags", json={"key": "Bad Key!", "name": "Bad"})
        assert response.status_code == 422

    async def test_unknown_flag(self, admin_client):
        response = await admin_client.get(f"{BASE}/flags/missing")
        assert response.status_code == 404
        assert response.json()["error_code"] == "FEATURE_NOT_FOUND"

    async def test_delete_disables(self, admin_client):
        await _create_flag(admin_client, is_enabled=True)

        response = await admin_client.delete(f"{BASE}/flags/reports")
        assert response.status_code == 200
        assert response.json()["is_enabled"] is False

        listed = await admin_client.get(f"{BASE}/flags")
        assert [f["key"] for f in listed.json()] == ["reports"]


class TestOverrideAdmin:
    async def test_set_list_delete(self, admin_client):
        await _create_flag(admin_client)
        org_id = str(uuid4())
        body = {"scope_type": "organization", "scope_id": org_id, "is_enabled": True}

        response = await admin_client.put(f"{BASE}/flags/reports/overrides", json=body)
        assert response.status_code == 200
        assert response.json()["scope_type"] == "organization"

        body["is_enabled"] = False
        await admin_client.put(f"{BASE}/flags/reports/overrides", json=body)
        listed = (await admin_client.get(f"{BASE}/flags/reports/overrides")).json()
        assert len(listed) == 1
        assert listed[0]["is_enabled"] is False

        deleted = await admin_client.delete(f"{BASE}/flags/reports/overrides/organization/{org_id}")
        assert deleted.status_code == 204

        missing = await admin_client.delete(f"{BASE}/flags/reports/overrides/organization/{org_id}")
        assert missing.status_code == 404

    async def test_invalid_scope(self, admin_client):
        await _create_flag(admin_client)
        response = await admin_client.put(
            f"{BASE}/flags/reports/overrides",
            json={"scope_type": "planet", "scope_id": str(uuid4()), "is_enabled": True},
        )
        assert response.status_code == 422


class TestAccessAdmin:
    async def test_access_matrix_and_descriptor(self, admin_client, client):
        await _create_flag(admin_client, key="ai_suggestions")

        response = await admin_client.put(
            f"{BASE}/flags/ai_suggestions/access",
            json={"user_type": "tenant", "access_state": "optional", "default_enabled": False},
        )
        assert response.status_code == 200
        assert response.json()["access_state"] == "optional"

        listed = await admin_client.get(f"{BASE}/flags/ai_suggestions/access")
        assert [row["user_type"] for row in listed.json()] == ["tenant"]

        descriptor = await admin_client.put(
            f"{BASE}/flags/ai_suggestions/descriptor",
            json={"display_name": "AI Suggestions", "category": "assistant", "badge_text": "Beta"},
        )
        assert descriptor.status_code == 200
        assert descriptor.json()["badge_text"] == "Beta"

        resolved = (await client.get("/api/v1/features/resolved")).json()["features"]
        assert resolved[0]["key"] == "ai_suggestions"
        assert resolved[0]["descriptor"]["badge_text"] == "Beta"

        assert (await admin_client.delete(f"{BASE}/flags/ai_suggestions/descriptor")).status_code == 204
        assert (await admin_client.delete(f"{BASE}/flags/ai_suggestions/descriptor")).status_code == 404


class TestPackageAdmin:
    async def test_package_lifecycle(self, admin_client, client, org_id):
        await _create_flag(admin_client)
        await admin_client.put(
            f"{BASE}/flags/reports/access",
            json={"user_type": "tenant", "access_state": "included", "default_enabled": False},
        )

        created = await admin_client.post(
            f"{BASE}/packages", json={"name": "Pro", "slug": "pro", "price_monthly_cents": 1900}
        )
        assert created.status_code == 201
        package_id = created.json()["id"]

        added = await admin_client.put(f"{BASE}/packages/{package_id}/flags/reports")
        assert added.status_code == 204
        flags = await admin_client.get(f"{BASE}/packages/{package_id}/flags")
        assert [f["key"] for f in flags.json()] == ["reports"]

        subscribed = await admin_client.post(
            f"{BASE}/organizations/{org_id}/packages", json={"package_id": package_id}
        )
        assert subscribed.status_code == 201
        assert subscribed.json()["is_active"] is True

        check = await client.get("/api/v1/features/reports/check")
        assert check.json()["is_enabled"] is True

        unsubscribed = await admin_client.delete(f"{BASE}/organizations/{org_id}/packages/{package_id}")
        assert unsubscribed.status_code == 204

        check = await client.get("/api/v1/features/reports/check")
        assert check.json()["is_enabled"] is False

        listed = await admin_client.get(f"{BASE}/organizations/{org_id}/packages")
        assert [s["is_active"] for s in listed.json()] == [False]

    async def test_expired_subscription(self, admin_client, client, org_id):
        await _create_flag(admin_client)
        await admin_client.put(
            f"{BASE}/flags/reports/access",
            json={"user_type": "tenant", "access_state": "included", "default_enabled": False},
        )
        package_id = (await admin_client.post(f"{BASE}/packages", json={"name": "Pro", "slug": "pro"})).json()["id"]
        await admin_client.put(f"{BASE}/packages/{package_id}/flags/reports")

        expired = (datetime.now(UTC) - timedelta(minutes=1)).isoformat()
        await admin_client.post(
            f"{BASE}/organizations/{org_id}/packages",
            json={"package_id": package_id, "expires_at": expired},
        )

        check = await client.get("/api/v1/features/reports/check")
        assert check.json()["is_enabled"] is False

    async def test_update_and_list_packages(self, admin_client):
        package_id = (await admin_client.post(f"{BASE}/packages", json={"name": "Pro", "slug": "pro"})).json()["id"]

        response = await admin_client.patch(f"{BASE}/packages/{package_id}", json={"is_active": False})
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        assert (await admin_client.get(f"{BASE}/packages")).json() == []
        everything = await admin_client.get(f"{BASE}/packages", params={"include_inactive": "true"})
        assert [p["slug"] for p in everything.json()] == ["pro"]

    async def test_unknown_package(self, admin_client):
        response = await admin_client.patch(f"{BASE}/packages/{uuid4()}", json={"name": "x"})
        assert response.status_code == 404
        assert response.json()["error_code"] == "PACKAGE_NOT_FOUND"

    async def test_duplicate_slug(self, admin_client):
        await admin_client.post(f"{BASE}/packages", json={"name": "Pro", "slug": "pro"})
        response = await admin_client.post(f"{BASE}/packages", json={"name": "Pro 2", "slug": "pro"})
        assert response.status_code == 409

    async def test_remove_flag_from_unknown_package(self, admin_client):
        await _create_flag(admin_client)

        response = await admin_client.delete(f"{BASE}/packages/{uuid4()}/flags/reports")

        assert response.status_code == 404
        assert response.json()["error_code"] == "PACKAGE_NOT_FOUND"

    async def test_patch_null_clears_price(self, admin_client):
        created = await admin_client.post(
            f"{BASE}/packages", json={"name": "Pro", "slug": "pro", "price_monthly_cents": 1900}
        )
        package_id = created.json()["id"]

        response = await admin_client.patch(
            f"{BASE}/packages/{package_id}", json={"price_monthly_cents": None}
        )

        assert response.status_code == 200
        assert response.json()["price_monthly_cents"] is None

    async def test_remove_flag_not_in_package(self, admin_client):
        await _create_flag(admin_client)
        package_id = (await admin_client.post(f"{BASE}/packages", json={"name": "Pro", "slug": "pro"})).json()["id"]

        response = await admin_client.delete(f"{BASE}/packages/{package_id}/flags/reports")
        assert response.status_code == 404
