"""Tests for health endpoints."""

from fastapi.testclient import TestClient

from consultancy_cms.main import create_app


def test_liveness(client: TestClient) -> None:
    """Test the liveness endpoint."""
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "alive"}


def test_readiness(client: TestClient) -> None:
    """Test the readiness endpoint."""
    response = client.get("/health/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["storage_backend"] == "memory"
    assert data["redis"] == "disabled"
    assert data["notifications"] == {"sent": 0, "failed": 0, "pending": 0}


def test_health(client: TestClient) -> None:
    """Test the general health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["app_name"] == "consultancy-cms"
    assert "version" in data


def test_root(client: TestClient) -> None:
    """Test the root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "Consultancy CMS" in data["message"]
    assert "version" in data


def test_request_id_header(client: TestClient) -> None:
    """Every response carries the request id."""
    response = client.get("/health/live", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_unknown_route_uses_error_body(client: TestClient) -> None:
    response = client.get("/v1/nowhere")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] is True
    assert body["status_code"] == 404


def test_readiness_before_startup(settings) -> None:
    """Without wired services readiness reports 503."""
    app = create_app(settings.model_copy(update={"storage_backend": "cassandra"}))

    # No context manager: the lifespan never runs
    response = TestClient(app).get("/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "starting"


def test_readiness_without_cassandra_session(settings, services) -> None:
    app = create_app(
        settings.model_copy(update={"storage_backend": "cassandra"}), services
    )

    with TestClient(app) as client:
        response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "storage_unavailable"
