import pytest
from unittest.mock import patch
from backend.api.config import Settings

class TestSecurity:
    """Test security-related functionality"""

    @pytest.fixture
    def locked(self):
        """API configured with a bearer token"""
        with patch("backend.api.main.settings", Settings(api_token="secret")):
            yield

    def test_cors_headers(self, client):
        """Test CORS configuration"""
        allowed = client.get("/health/quick", headers={"Origin": "http://localhost:5173"})
        assert allowed.headers.get("access-control-allow-origin") == "http://localhost:5173"

        blocked = client.get("/health/quick", headers={"Origin": "https://malicious-site.com"})
        assert "access-control-allow-origin" not in blocked.headers

    def test_open_without_configured_token(self, client):
        assert client.get("/profiles").status_code == 200

    def test_authentication_required(self, client, locked):
        """Test that endpoints require authentication"""
        endpoints = [
            ("get", "/profiles"),
            ("post", "/profiles"),
            ("post", "/medicines"),
            ("get", "/profiles/profile-1/today"),
            ("get", "/profiles/profile-1/history"),
            ("post", "/schedules/schedule-1/resolve"),
        ]

        for method, endpoint in endpoints:
            # Test without Authorization header
            response = getattr(client, method)(endpoint)
            assert response.status_code == 401

            # Test with invalid Authorization header
            response = getattr(client, method)(endpoint, headers={"Authorization": "Bearer invalid-token"})
            assert response.status_code == 401

    def test_valid_token_accepted(self, client, locked):
        response = client.get("/profiles", headers={"Authorization": "Bearer secret"})
        assert response.status_code == 200

    def test_health_stays_public(self, client, locked):
        assert client.get("/health/quick").status_code == 200

    def test_input_validation_xss(self, client):
        """Test XSS protection in input validation"""
        response = client.post("/profiles", json={"name": "<script>alert('xss')</script>"})
        profile = client.get(f"/profiles/{response.json()['id']}").json()

        assert "<script>" not in profile["name"]
        assert profile["name"].startswith("&lt;script&gt;")

    def test_malicious_image_urls_rejected(self, client):
        response = client.post("/profiles", json={"name": "Sam", "picture": "javascript:alert('xss')"})
        assert response.status_code == 422
