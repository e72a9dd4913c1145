"""
Tests for the feature API router.

Runs the routers against the test database with authentication overridden.
"""

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from ppt.platform.auth.core import create_access_token, get_current_user
from ppt.platform.features.models import FeatureAccessState, OverrideScope

INCLUDED = FeatureAccessState.INCLUDED
OPTIONAL = FeatureAccessState.OPTIONAL
EXCLUDED = FeatureAccessState.EXCLUDED

pytestmark = pytest.mark.integration


def _client_for(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver")


class TestResolvedFeatures:
    async def test_resolved(self, client, seed, user_id):
        await seed.flag("ai_suggestions", access={"tenant": (OPTIONAL, False)}, category="assistant")
        beta = await seed.flag("beta_features", access={"tenant": (EXCLUDED, True)})
        await seed.flags.set_override(beta.id, OverrideScope.USER, user_id, True)
        await seed.flag("reports", access={"tenant": (INCLUDED, True)})

        response = await client.get("/api/v1/features/resolved")

        assert response.status_code == 200
        features = response.json()["features"]
        assert [f["key"] for f in features] == ["ai_suggestions", "reports"]
        ai = features[0]
        assert ai["is_enabled"] is False
        assert ai["can_toggle"] is True
        assert ai["access_state"] == "optional"
        assert ai["source"] == "default"
        assert ai["descriptor"]["display_name"] == "Ai Suggestions"
        assert features[1]["descriptor"] is None

    async def test_resolved_filters(self, client, seed):
        await seed.flag("ai_suggestions", access={"tenant": (OPTIONAL, False)}, category="assistant")
        await seed.flag("ai_chat", access={"tenant": (INCLUDED, True)}, category="assistant")
        await seed.flag("reports", access={"tenant": (INCLUDED, True)}, category="analytics")

        response = await client.get(
            "/api/v1/features/resolved", params={"category": "assistant", "enabled_only": "true"}
        )

        assert response.status_code == 200
        assert [f["key"] for f in response.json()["features"]] == ["ai_chat"]

    async def test_missing_organization(self, build_app, make_user):
        async with _client_for(build_app(make_user(tenant_id=None))) as client:
            response = await client.get("/api/v1/features/resolved")

        assert response.status_code == 400
        assert response.json()["error_code"] == "MISSING_ORG"

    async def test_malformed_identifier(self, build_app, make_user):
        async with _client_for(build_app(make_user(tenant_id="not-a-uuid"))) as client:
            response = await client.get("/api/v1/features/reports/check")

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INVALID_IDENTIFIER"
        assert body["context"]["field"] == "organization_id"

    async def test_non_string_role_claim(self, build_app, make_user, user_id, org_id):
        app = build_app(make_user())
        del app.dependency_overrides[get_current_user]
        token = create_access_token(str(user_id), tenant_id=str(org_id), user_type="tenant", role_id=7)

        async with _client_for(app) as client:
            response = await client.get(
                "/api/v1/features/reports/check", headers={"Authorization": f"Bearer {token}"}
            )

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INVALID_IDENTIFIER"
        assert body["context"]["field"] == "role_id"


class TestCheck:
    async def test_check_enabled(self, client, seed):
        await seed.flag("reports", access={"tenant": (INCLUDED, True)})

        response = await client.get("/api/v1/features/reports/check")

        assert response.status_code == 200
        assert response.json() == {"key": "reports", "is_enabled": True}

    async def test_check_unknown_is_disabled(self, client):
        response = await client.get("/api/v1/features/missing/check")

        assert response.status_code == 200
        assert response.json() == {"key": "missing", "is_enabled": False}

    async def test_check_uses_role_override(self, build_app, make_user, seed):
        role_id = uuid4()
        reports = await seed.flag("reports", access={"tenant": (INCLUDED, False)})
        await seed.flags.set_override(reports.id, OverrideScope.ROLE, role_id, True)

        async with _client_for(build_app(make_user(role_id=str(role_id)))) as client:
            response = await client.get("/api/v1/features/reports/check")

        assert response.json()["is_enabled"] is True


class TestPreference:
    async def test_toggle_then_resolve(self, client, seed):
        await seed.flag("ai_suggestions", access={"tenant": (OPTIONAL, False)})

        response = await client.post(
            "/api/v1/features/ai_suggestions/preference", json={"is_enabled": True}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "is_enabled": True}

        check = await client.get("/api/v1/features/ai_suggestions/check")
        assert check.json()["is_enabled"] is True

    async def test_unknown_feature(self, client):
        response = await client.post(
            "/api/v1/features/missing/preference", json={"is_enabled": True}
        )
        assert response.status_code == 404
        assert response.json()["error_code"] == "FEATURE_NOT_FOUND"

    async def test_not_toggleable(self, client, seed):
        await seed.flag("reports", access={"tenant": (INCLUDED, True)})

        response = await client.post("/api/v1/features/reports/preference", json={"is_enabled": False})

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "NOT_TOGGLEABLE"
        assert body["message"] == "This feature cannot be toggled by the user"

    async def test_invalid_body(self, client):
        response = await client.post("/api/v1/features/reports/preference", json={})
        assert response.status_code == 422


class TestUpgradeOptions:
    async def test_upgrade_options(self, client, seed):
        reports = await seed.flag("reports")
        await seed.package_with("enterprise", reports, price_monthly_cents=9900)
        await seed.package_with("pro", reports, price_monthly_cents=1900)

        response = await client.get("/api/v1/features/reports/upgrade-options")

        assert response.status_code == 200
        body = response.json()
        assert body["feature_key"] == "reports"
        assert [p["slug"] for p in body["packages"]] == ["pro", "enterprise"]

    async def test_unknown_feature(self, client):
        response = await client.get("/api/v1/features/missing/upgrade-options")
        assert response.status_code == 200
        assert response.json() == {"feature_key": "missing", "packages": []}


class TestAnalytics:
    async def test_log_event_and_stats(self, client, admin_client, seed):
        reports = await seed.flag("reports")

        response = await client.post(
            "/api/v1/features/analytics/event",
            json={"feature_key": "reports", "event_type": "access", "metadata": {"page": "home"}},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

        stats = await admin_client.get(f"/api/v1/features/analytics/{reports.id}/stats")
        assert stats.status_code == 200
        assert stats.json()["access_count"] == 1
        assert stats.json()["unique_users"] == 1

        by_type = await admin_client.get(
            f"/api/v1/features/analytics/{reports.id}/stats/by-user-type"
        )
        assert by_type.status_code == 200
        assert by_type.json() == [
            {"user_type": "tenant", "access_count": 1, "blocked_count": 0, "unique_users": 1}
        ]

    async def test_unknown_feature_event_accepted(self, client):
        response = await client.post(
            "/api/v1/features/analytics/event",
            json={"feature_key": "missing", "event_type": "access"},
        )
        assert response.status_code == 200

    async def test_invalid_event_type(self, client):
        response = await client.post(
            "/api/v1/features/analytics/event",
            json={"feature_key": "reports", "event_type": "clicked_everything"},
        )
        assert response.status_code == 422

    async def test_stats_inverted_window(self, admin_client, seed):
        reports = await seed.flag("reports")

        response = await admin_client.get(
            f"/api/v1/features/analytics/{reports.id}/stats",
            params={"start_date": "2026-03-02T00:00:00Z", "end_date": "2026-03-01T00:00:00Z"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_TIME_WINDOW"

    async def test_stats_require_admin(self, client, seed):
        reports = await seed.flag("reports")
        response = await client.get(f"/api/v1/features/analytics/{reports.id}/stats")
        assert response.status_code == 403
