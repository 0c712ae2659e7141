#!/usr/bin/env python3
"""
Diagnostic Logger for the goals application

Configures process-wide logging and provides diagnostic checks that help
troubleshoot a deployment: database reachability and API health.
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger("diagnostic")


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None, stream=None):
    """Configure root logging once for the process."""
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")

    handlers = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)


def mask_database_url(url) -> str:
    return make_url(str(url)).render_as_string(hide_password=True)


class DiagnosticLogger:
    """Centralized diagnostic logging for both service tiers."""

    def __init__(self):
        self.start_time = datetime.now()
        self.errors = []
        self.warnings = []

    def log_database_status(self, engine: Engine) -> bool:
        """Log database connectivity and the goals row count."""
        logger.info("DATABASE DIAGNOSTICS")
        logger.info("-" * 30)
        logger.info(f"Database URL: {mask_database_url(engine.url)}")
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
                count = conn.execute(text("SELECT COUNT(*) FROM goals")).scalar()
            logger.info(f"Table goals: {count} records")
            return True
        except SQLAlchemyError as e:
            self.log_error("Database diagnostic failed", {"exception": str(e)})
            logger.debug(traceback.format_exc())
            return False

    def log_api_status(self, api_url: str, timeout: float = 5.0) -> bool:
        """Log the health endpoint of a running service."""
        logger.info("API DIAGNOSTICS")
        logger.info("-" * 15)
        health_url = f"{api_url.rstrip('/')}/health"
        try:
            response = httpx.get(health_url, timeout=timeout)
        except httpx.HTTPError as e:
            self.log_error("API health check failed", {"url": health_url, "exception": str(e)})
            return False

        logger.info(f"API Health: {response.status_code} - {response.text}")
        if response.status_code != 200:
            self.log_warning("API reports unhealthy", {"url": health_url, "status": response.status_code})
            return False
        return True

    def log_error(self, error_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log an error with context."""
        self.errors.append({
            'timestamp': datetime.now().isoformat(),
            'error': error_msg,
            'context': context or {}
        })
        logger.error(f"ERROR: {error_msg}")
        if context:
            logger.error(f"Context: {json.dumps(context, indent=2)}")

    def log_warning(self, warning_msg: str, context: Optional[Dict[str, Any]] = None):
        """Log a warning with context."""
        self.warnings.append({
            'timestamp': datetime.now().isoformat(),
            'warning': warning_msg,
            'context': context or {}
        })
        logger.warning(f"WARNING: {warning_msg}")
        if context:
            logger.warning(f"Context: {json.dumps(context, indent=2)}")

    def log_success(self, success_msg: str):
        logger.info(f"SUCCESS: {success_msg}")

    def generate_report(self, report_path: Optional[str] = None) -> Dict[str, Any]:
        """Summarize collected errors and warnings, optionally saving them as JSON."""
        report = {
            'start_time': self.start_time.isoformat(),
            'end_time': datetime.now().isoformat(),
            'errors': self.errors,
            'warnings': self.warnings,
            'total_errors': len(self.errors),
            'total_warnings': len(self.warnings)
        }

        report_path = report_path or os.getenv("DIAGNOSTIC_REPORT")
        if report_path:
            with open(report_path, 'w') as f:
                json.dump(report, f, indent=2)
            logger.info(f"Report saved to: {report_path}")

        logger.info("=" * 60)
        logger.info("DIAGNOSTIC REPORT SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Total Errors: {len(self.errors)}")
        logger.info(f"Total Warnings: {len(self.warnings)}")
        logger.info("=" * 60)

        return report


def run_full_diagnostic(engine: Engine, api_url: Optional[str] = None) -> Dict[str, Any]:
    """Run a complete diagnostic check."""
    logger.info("Starting full diagnostic check...")
    diagnostics = DiagnosticLogger()

    if diagnostics.log_database_status(engine):
        diagnostics.log_success("Database reachable")
    if api_url and diagnostics.log_api_status(api_url):
        diagnostics.log_success(f"API at {api_url} healthy")

    return diagnostics.generate_report()
