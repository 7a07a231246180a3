"""
FM Readiness Audit API
FastAPI front for the readiness audit engine: checklist / preset profiles,
three-phase audits over posted asset payloads, per-asset field validation.
"""
import os
import sys
import time
import logging

from dotenv import load_dotenv
from fastapi import FastAPI

from fm_readiness.services.logging_config import setup_logging
from fm_readiness.services.middleware import RequestTimingMiddleware
from fm_readiness.services.perf_monitor import tracker as perf_tracker

# Load .env file automatically in dev (no-op when the file is missing)
load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("fm-readiness-api")

APP_VERSION = "1.0.0"

# Record process start time for uptime calculation
_PROCESS_START = time.monotonic()

app = FastAPI(
    title="FM Readiness Audit API",
    version=APP_VERSION,
    description="Facility-management handover readiness audits for BIM asset data",
)

# Request timing + X-Request-ID wraps every route
app.add_middleware(RequestTimingMiddleware)

from fm_readiness.api.audit_routes import router as audit_router  # noqa: E402

app.include_router(audit_router)


@app.get("/health")
async def health_check():
    snapshot = perf_tracker.get_metrics()
    return {
        "status": "active",
        "version": APP_VERSION,
        "audits_processed": snapshot["audits_processed"],
        "capability_error_count": snapshot["capability_error_count"],
    }


@app.get("/metrics")
async def metrics():
    """
    Performance metrics endpoint.

    Returns audit throughput, per-phase average durations, capability error
    counts and process memory. Sourced entirely from the in-process tracker.
    """
    uptime_seconds = round(time.monotonic() - _PROCESS_START, 1)

    memory_mb: float = 0.0
    try:
        import resource  # Unix only
        usage = resource.getrusage(resource.RUSAGE_SELF)
        # ru_maxrss is in kilobytes on Linux, bytes on macOS
        if sys.platform == "darwin":
            memory_mb = round(usage.ru_maxrss / (1024 * 1024), 2)
        else:
            memory_mb = round(usage.ru_maxrss / 1024, 2)
    except ImportError:
        memory_mb = 0.0

    return {
        "uptime_seconds": uptime_seconds,
        "memory_usage_mb": memory_mb,
        **perf_tracker.get_metrics(),
    }


logger.info(f"FM readiness API {APP_VERSION} ready")
