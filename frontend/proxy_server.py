# File: frontend/proxy_server.py
#!/usr/bin/env python3
"""
Goals Frontend Proxy Server

Presentation tier. Serves the static single-page UI and forwards
/api/goals calls to the business logic tier at BACKEND_URL.
"""

import os
import time
import logging
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from metrics import METRICS, UNMATCHED_ENDPOINT

logger = logging.getLogger(__name__)

BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:3000")
BACKEND_TIMEOUT = float(os.getenv("BACKEND_TIMEOUT", 5))
STATIC_DIR = os.getenv("STATIC_DIR", os.path.join(os.path.dirname(__file__), "static"))

app = FastAPI(
    title="Goals Frontend",
    description="Presentation tier of the three-tier goals application",
    version="1.0.0",
)

_upstream: Optional[httpx.AsyncClient] = None


@app.on_event("startup")
async def open_upstream_client():
    global _upstream
    _upstream = httpx.AsyncClient(base_url=BACKEND_URL, timeout=BACKEND_TIMEOUT)
    logger.info(f"Forwarding /api/goals to {BACKEND_URL}")


@app.on_event("shutdown")
async def close_upstream_client():
    global _upstream
    if _upstream is not None:
        await _upstream.aclose()
        _upstream = None


def get_upstream() -> httpx.AsyncClient:
    if _upstream is None:
        raise HTTPException(status_code=503, detail="Proxy not initialized")
    return _upstream


async def forward(client: httpx.AsyncClient, method: str, path: str, json=None) -> Response:
    """Send one request upstream and relay its status code and body unchanged."""
    try:
        upstream = await client.request(method, path, json=json)
    except httpx.TimeoutException as e:
        METRICS["proxy_errors"].labels(reason="timeout").inc()
        logger.error(f"Backend timed out on {method} {path}: {e}")
        raise HTTPException(status_code=504, detail="Backend timed out")
    except httpx.TransportError as e:
        METRICS["proxy_errors"].labels(reason="unreachable").inc()
        logger.error(f"Backend unreachable on {method} {path}: {e}")
        raise HTTPException(status_code=502, detail="Backend unavailable")

    METRICS["proxy_requests"].labels(method=method, status=upstream.status_code).inc()
    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type", "application/json"),
    )


@app.middleware("http")
async def prometheus_middleware(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start) * 1000
    route = request.scope.get("route")
    endpoint = getattr(route, "path", UNMATCHED_ENDPOINT)
    METRICS["api_requests"].labels(
        method=request.method, endpoint=endpoint, status=response.status_code
    ).inc()
    METRICS["request_latency"].labels(method=request.method, endpoint=endpoint).observe(duration_ms)
    return response


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/api/goals")
async def list_goals(client: httpx.AsyncClient = Depends(get_upstream)):
    return await forward(client, "GET", "/goals")


@app.post("/api/goals")
async def create_goal(request: Request, client: httpx.AsyncClient = Depends(get_upstream)):
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"detail": "Request body must be JSON"})
    return await forward(client, "POST", "/goals", json=payload)


@app.delete("/api/goals/{goal_id}")
async def delete_goal(goal_id: int, client: httpx.AsyncClient = Depends(get_upstream)):
    return await forward(client, "DELETE", f"/goals/{goal_id}")


# Mounted last so the API routes above take precedence over the static tree
if os.path.isdir(STATIC_DIR):
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
