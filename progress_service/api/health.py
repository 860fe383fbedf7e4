"""Health and readiness endpoints.

  /health (liveness):  the process can answer; dependency status is
                       reported but never turns the response into an error,
                       so a database blip does not get the container restarted.
  /ready (readiness):  503 while the progress store is unreachable, so the
                       load balancer stops routing device syncs here until
                       it recovers.  Redis is optional; without it the
                       summary cache is simply slower.
"""

from __future__ import annotations

import redis
from fastapi import APIRouter, Request, Response, status

from progress_service.api.dependencies import Engine

router = APIRouter(tags=["health"])


def _redis_status(request: Request) -> str:
    client = getattr(request.app.state, "redis", None)
    if client is None:
        return "not_configured"
    try:
        client.ping()
    except redis.RedisError:
        return "degraded"
    return "ok"


@router.get("/health")
def health(request: Request, engine: Engine) -> dict:
    checks = {
        "database": "ok" if engine.store.ping() else "degraded",
        "redis": _redis_status(request),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
def ready(engine: Engine, response: Response) -> dict:
    if not engine.store.ping():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}
