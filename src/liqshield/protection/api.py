"""
Protection API endpoints: subscriptions and risk queries.
"""

import asyncio
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Query

from ..config import settings
from ..health import HealthChecker, create_health_endpoints, running_check
from ..logging import get_logger
from ..shared.errors import DataFetchError, NotSubscribed, SubscriptionValidationError
from .models import SubscribeRequest
from .orchestrator import MAX_EVENT_HISTORY
from .service import ProtectionService

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(title="LiqShield Protection")

# Global service instance
protection_service: Optional[ProtectionService] = None

health_checker = HealthChecker("liqshield-protection")
create_health_endpoints(app, health_checker)


def _service() -> ProtectionService:
    if not protection_service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return protection_service


@app.on_event("startup")
async def startup_event():
    """Initialize service on startup."""
    global protection_service

    logger.info("Starting Protection API...")
    protection_service = ProtectionService(settings)
    health_checker.register_check(
        "command_worker", running_check("command_worker", lambda: protection_service.running)
    )
    # start() runs forever
    asyncio.create_task(protection_service.start())


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    if protection_service:
        await protection_service.stop()


@app.get("/")
async def root():
    return {
        "service": "Protection",
        "version": "1.0.0",
        "status": "active",
        "description": "Liquidation protection for lending positions"
    }


@app.get("/status")
async def get_status():
    """Get service status and current state."""
    service = _service()
    return {
        "timestamp": datetime.utcnow().isoformat(),
        "service": "protection",
        "status": "active" if service.running else "inactive",
        "current_state": service.get_current_state()
    }


@app.post("/subscriptions", status_code=201)
async def subscribe(request: SubscribeRequest):
    """Create or update a protection subscription."""
    service = _service()
    try:
        subscription = await service.orchestrator.subscribe(request)
    except SubscriptionValidationError as e:
        raise HTTPException(status_code=400, detail={"code": e.code, "message": str(e)})
    except DataFetchError as e:
        raise HTTPException(status_code=503, detail={"code": e.code, "message": str(e)})

    return {
        "timestamp": datetime.utcnow().isoformat(),
        "subscription": subscription.model_dump(mode="json")
    }


@app.delete("/subscriptions/{user}/{market}")
async def unsubscribe(user: str, market: str):
    service = _service()
    try:
        await service.orchestrator.unsubscribe(user, market)
    except NotSubscribed as e:
        raise HTTPException(status_code=404, detail={"code": e.code, "message": str(e)})

    return {"timestamp": datetime.utcnow().isoformat(), "status": "unsubscribed", "user": user, "market": market}


@app.get("/subscriptions/{user}/{market}")
async def get_subscription(user: str, market: str):
    service = _service()
    subscription = service.orchestrator.get_subscription(user, market)
    if subscription is None:
        raise HTTPException(status_code=404, detail={"code": NotSubscribed.code, "message": "Not subscribed"})
    return subscription.model_dump(mode="json")


@app.get("/subscribers/count")
async def get_subscriber_count():
    service = _service()
    return {"active_subscribers": service.orchestrator.active_subscriber_count()}


@app.get("/risk/statistics")
async def get_risk_statistics():
    """Aggregate risk across all active subscriptions."""
    service = _service()
    stats = await service.orchestrator.risk_statistics()
    return {"timestamp": datetime.utcnow().isoformat(), **stats}


@app.get("/risk/{user}/{market}")
async def get_risk_explanation(user: str, market: str):
    """Detailed risk breakdown with a human-readable reason."""
    service = _service()
    try:
        return await service.orchestrator.explain_risk(user, market)
    except NotSubscribed as e:
        raise HTTPException(status_code=404, detail={"code": e.code, "message": str(e)})


@app.get("/events")
async def get_events(limit: int = Query(50, ge=1, le=MAX_EVENT_HISTORY)):
    service = _service()
    history = service.orchestrator.event_history[-limit:]
    return {
        "count": len(history),
        "events": [event.model_dump(mode="json") for event in history]
    }
