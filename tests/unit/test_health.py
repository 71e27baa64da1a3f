"""Unit tests for health check module."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.liqshield.health import (
    ComponentHealth,
    HealthChecker,
    HealthStatus,
    create_health_endpoints,
    running_check,
)


def test_health_checker():
    """Test HealthChecker functionality."""
    checker = HealthChecker("test_service")
    checker.register_check(
        "kafka", lambda: ComponentHealth(name="kafka", status=HealthStatus.HEALTHY, message="Connected")
    )

    result = checker.check_health()
    assert result.service == "test_service"
    assert result.status == HealthStatus.HEALTHY
    assert len(result.components) == 1
    assert result.components[0].last_check is not None


def test_health_checker_degraded():
    """Degraded components degrade the service but keep it ready."""
    checker = HealthChecker("test_service")
    checker.register_check("db", lambda: ComponentHealth(name="db", status=HealthStatus.HEALTHY))
    checker.register_check("dispatcher", lambda: ComponentHealth(name="dispatcher", status=HealthStatus.DEGRADED))

    assert checker.check_health().status == HealthStatus.DEGRADED
    assert checker.is_ready()


def test_failing_check_is_unhealthy():
    checker = HealthChecker("test_service")

    def broken():
        raise RuntimeError("check crashed")

    checker.register_check("broken", broken)

    result = checker.check_health()
    assert result.status == HealthStatus.UNHEALTHY
    assert "check crashed" in result.components[0].message
    assert not checker.is_ready()


def test_running_check():
    state = {"running": False}
    check = running_check("worker", lambda: state["running"])

    assert check().status == HealthStatus.DEGRADED
    state["running"] = True
    assert check().status == HealthStatus.HEALTHY


def test_health_endpoints():
    app = FastAPI()
    checker = HealthChecker("test_service")
    create_health_endpoints(app, checker)
    client = TestClient(app)

    assert client.get("/healthz").json()["status"] == "healthy"
    assert client.get("/ready").json() == {"status": "ready"}

    checker.register_check("kafka", lambda: ComponentHealth(name="kafka", status=HealthStatus.UNHEALTHY))
    response = client.get("/ready")
    assert response.status_code == 503
