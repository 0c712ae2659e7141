# File: api/rest_api_server.py
#!/usr/bin/env python3
"""
Goals REST API Server

FastAPI-based business logic tier. Implements the Goals API covering:
- Listing goals
- Creating goals
- Deleting goals by id
- Health (database liveness) and Prometheus metrics
"""

import os
import time
import logging
from typing import List

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from metrics import METRICS, UNMATCHED_ENDPOINT
from .models import SessionLocal, engine, init_db
from . import shared_api_logic as services

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Goals API",
    description="Business logic tier of the three-tier goals application",
    version="1.0.0",
)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:8080")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.on_event("startup")
def initialize_database_and_metrics():
    init_db(engine)
    db = SessionLocal()
    try:
        services.refresh_goal_count(db)
    except SQLAlchemyError as e:
        logger.warning(f"Could not initialize metrics: {e}")
    finally:
        db.close()


def get_db():
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()


class GoalCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    goal_name: str = Field(..., min_length=1, max_length=services.GOAL_NAME_MAX_LENGTH)


class Goal(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    goal_name: str


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": "Database error"})


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
def health(db: Session = Depends(get_db)):
    if not services.check_database(db):
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected"},
        )
    return {"status": "healthy", "database": "connected"}


@app.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Goal endpoints
@app.get("/goals", response_model=List[Goal])
def list_goals(db: Session = Depends(get_db)):
    return services.list_goals(db)


@app.post("/goals", response_model=Goal, status_code=201)
def create_goal(goal: GoalCreate, db: Session = Depends(get_db)):
    try:
        return services.create_goal_logic(db, goal.goal_name)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@app.delete("/goals/{goal_id}")
def delete_goal(goal_id: int, db: Session = Depends(get_db)):
    goal = services.delete_goal_logic(db, goal_id)
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return {"message": "Goal deleted", "id": goal_id}
