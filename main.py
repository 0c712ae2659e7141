#!/usr/bin/env python3
"""
Goals Application - Main Entry Point

Starts one tier of the three-tier goals application:
- backend:  REST API over the goals table (business logic tier)
- frontend: static UI plus /api/goals proxy (presentation tier)
- diagnose: one-shot diagnostic run against the configured database
"""

import os
import sys
import logging
import argparse

import uvicorn

from api.diagnostic_logger import configure_logging, run_full_diagnostic

logger = logging.getLogger("main")

TIERS = ("backend", "frontend", "diagnose")


def start_rest_api():
    """Start the business logic REST API server."""
    from api.rest_api_server import app

    port = int(os.getenv("PORT", 3000))
    logger.info(f"Starting REST API on port {port}...")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


def start_frontend():
    """Start the presentation tier proxy server."""
    from frontend.proxy_server import app, BACKEND_URL

    port = int(os.getenv("PORT", 8080))
    logger.info(f"Starting frontend on port {port} (backend: {BACKEND_URL})...")
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")


def diagnose() -> int:
    from api.models import engine

    report = run_full_diagnostic(engine, os.getenv("DIAGNOSE_API_URL"))
    return 1 if report["total_errors"] else 0


def main(argv=None):
    parser = argparse.ArgumentParser(description="Run one tier of the goals application")
    parser.add_argument("tier", nargs="?", choices=TIERS, default=os.getenv("TIER", "backend"))
    args = parser.parse_args(argv)

    configure_logging()
    logger.info("=" * 60)
    logger.info(f"  Goals Application - {args.tier} tier")
    logger.info("=" * 60)

    if args.tier == "frontend":
        start_frontend()
    elif args.tier == "diagnose":
        return diagnose()
    else:
        start_rest_api()
    return 0


if __name__ == "__main__":
    sys.exit(main())
