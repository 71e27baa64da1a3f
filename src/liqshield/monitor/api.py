"""
Monitor administrative API.
"""

import asyncio
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException

from ..config import settings
from ..health import ComponentHealth, HealthChecker, HealthStatus, create_health_endpoints, running_check
from ..logging import get_logger
from ..shared.errors import DispatchStarvationError, ForceClearRefused
from .models import DispatchDecision
from .service import MonitorService

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(title="LiqShield Monitor")

# Global service instance
monitor_service: Optional[MonitorService] = None

health_checker = HealthChecker("liqshield-monitor")
create_health_endpoints(app, health_checker)


def _service() -> MonitorService:
    if not monitor_service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return monitor_service


def dispatcher_check() -> ComponentHealth:
    """Report a stuck in-flight flag as degraded."""
    try:
        _service().dispatcher.check_starvation()
    except DispatchStarvationError as e:
        return ComponentHealth(
            name="dispatcher",
            status=HealthStatus.DEGRADED,
            message=str(e),
            metadata={"code": e.code, "in_flight_seconds": e.in_flight_seconds},
        )
    return ComponentHealth(name="dispatcher", status=HealthStatus.HEALTHY, message="Dispatching")


@app.on_event("startup")
async def startup_event():
    """Initialize service on startup."""
    global monitor_service

    logger.info("Starting Monitor API...")
    monitor_service = MonitorService(settings)
    health_checker.register_check("dispatcher", dispatcher_check)
    health_checker.register_check("event_loop", running_check("event_loop", lambda: monitor_service.running))
    # start() runs forever
    asyncio.create_task(monitor_service.start())


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    if monitor_service:
        await monitor_service.stop()


@app.get("/")
async def root():
    return {
        "service": "Monitor",
        "version": "1.0.0",
        "status": "active",
        "description": "Event-driven dispatch of liquidation protection checks"
    }


@app.get("/status")
async def get_status():
    """Dispatcher status: in-flight flag, check timestamps, monitored markets."""
    service = _service()
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "service": "monitor",
        "status": "active" if service.running else "inactive",
        "current_state": service.get_current_state()
    }


@app.post("/markets/{market}")
async def add_market(market: str):
    added = _service().dispatcher.add_market(market)
    return {"market": market, "added": added}


@app.delete("/markets/{market}")
async def remove_market(market: str):
    removed = _service().dispatcher.remove_market(market)
    if not removed:
        raise HTTPException(status_code=404, detail=f"Market {market} is not monitored")
    return {"market": market, "removed": True}


@app.post("/cycle/force")
async def force_cycle():
    """Start a batch cycle now."""
    decision = await _service().dispatcher.force_cycle()
    if decision == DispatchDecision.IGNORED_IN_FLIGHT:
        raise HTTPException(status_code=409, detail="A cycle is already in flight")
    if decision == DispatchDecision.SEND_FAILED:
        raise HTTPException(status_code=502, detail="Command could not be queued")
    return {"timestamp": datetime.utcnow().isoformat(), "decision": decision.value}


@app.post("/cycle/clear")
async def force_clear():
    """Clear a stale in-flight flag."""
    try:
        cleared = _service().dispatcher.force_clear()
    except ForceClearRefused as e:
        raise HTTPException(status_code=409, detail={"code": e.code, "message": str(e)})
    return {"timestamp": datetime.utcnow().isoformat(), "cleared": cleared}
