from httpx import AsyncClient


class TestHealthEndpoints:
    """Integration tests for health check endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Test health check endpoint."""
        response = await client.get("/api/v1/health/")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "entitlements-service"}

    async def test_db_health_check(self, client: AsyncClient):
        """Test database health check endpoint."""
        response = await client.get("/api/v1/health/db")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    async def test_billing_health_check(self, client: AsyncClient, patch_gateway):
        """Test billing provider health check endpoint."""
        response = await client.get("/api/v1/health/billing")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "billing_provider": "reachable"}

    async def test_billing_health_check_unreachable(
        self, client: AsyncClient, patch_gateway
    ):
        patch_gateway.health_check.return_value = False

        response = await client.get("/api/v1/health/billing")
        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"
