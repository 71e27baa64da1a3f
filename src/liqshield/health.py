"""
Health and readiness check utilities for both services.
"""

from enum import Enum
from typing import Dict, List, Optional, Callable, Any
from datetime import datetime
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field
from .logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    """Health check status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    """Health status of a single component."""
    name: str
    status: HealthStatus
    message: Optional[str] = None
    last_check: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ServiceHealth(BaseModel):
    """Overall service health status."""
    service: str
    status: HealthStatus
    timestamp: datetime
    components: List[ComponentHealth]
    version: str = "1.0.0"


class HealthChecker:
    """Manages health checks for a service."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.checks: Dict[str, Callable[[], ComponentHealth]] = {}
        self.last_results: Dict[str, ComponentHealth] = {}

    def register_check(self, name: str, check_func: Callable[[], ComponentHealth]):
        """Register a health check function."""
        self.checks[name] = check_func
        logger.info("Registered health check", check=name)

    def check_health(self) -> ServiceHealth:
        """Run all health checks and return overall status."""
        components = []
        overall_status = HealthStatus.HEALTHY

        for name, check_func in self.checks.items():
            try:
                result = check_func()
                result.last_check = datetime.utcnow()
                self.last_results[name] = result
                components.append(result)

                if result.status == HealthStatus.UNHEALTHY:
                    overall_status = HealthStatus.UNHEALTHY
                elif result.status == HealthStatus.DEGRADED and overall_status == HealthStatus.HEALTHY:
                    overall_status = HealthStatus.DEGRADED

            except Exception as e:
                logger.error("Health check failed", check=name, error=str(e))
                components.append(ComponentHealth(
                    name=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"Check failed: {str(e)}",
                    last_check=datetime.utcnow()
                ))
                overall_status = HealthStatus.UNHEALTHY

        return ServiceHealth(
            service=self.service_name,
            status=overall_status,
            timestamp=datetime.utcnow(),
            components=components
        )

    def is_ready(self) -> bool:
        """Check if service is ready to handle requests."""
        return self.check_health().status != HealthStatus.UNHEALTHY


def create_health_endpoints(app: FastAPI, health_checker: HealthChecker):
    """Add health, readiness and metrics endpoints to a FastAPI app."""

    @app.get("/healthz")
    async def health_check() -> ServiceHealth:
        return health_checker.check_health()

    @app.get("/ready")
    async def readiness_check(response: Response):
        if health_checker.is_ready():
            return {"status": "ready"}
        response.status_code = 503
        return {"status": "not ready"}

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def running_check(name: str, is_running: Callable[[], bool]) -> Callable[[], ComponentHealth]:
    """Build a check reporting whether a background service loop is up."""

    def check() -> ComponentHealth:
        if is_running():
            return ComponentHealth(name=name, status=HealthStatus.HEALTHY, message="Running")
        return ComponentHealth(name=name, status=HealthStatus.DEGRADED, message="Not running")

    return check
