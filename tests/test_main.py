"""
Tests for the application factory.
"""

from fastapi.testclient import TestClient

from ppt.platform import get_version
from ppt.platform.features.exceptions import FeatureNotFoundError
from ppt.platform.main import create_app


class TestApplication:
    def test_health(self):
        response = TestClient(create_app()).get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == get_version()
        assert body["environment"] == "test"

    def test_routes_registered(self):
        paths = set(create_app().openapi()["paths"])

        assert "/api/v1/features/resolved" in paths
        assert "/api/v1/features/{key}/check" in paths
        assert "/api/v1/features/{key}/preference" in paths
        assert "/api/v1/features/{key}/upgrade-options" in paths
        assert "/api/v1/features/analytics/event" in paths
        assert "/api/v1/admin/features/flags" in paths
        assert "/api/v1/admin/features/packages" in paths
        assert "/api/v1/feature-packages" in paths
        assert "/api/v1/feature-packages/compare" in paths

    def test_feature_errors_rendered_as_json(self):
        app = create_app()

        @app.get("/boom")
        async def boom():
            raise FeatureNotFoundError("reports")

        response = TestClient(app).get("/boom")

        assert response.status_code == 404
        assert response.json()["error_code"] == "FEATURE_NOT_FOUND"
        assert response.json()["context"] == {"feature_key": "reports"}
