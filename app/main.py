"""
============================================================================
RaceFi Backend v1.0.0
FastAPI Application Entry Point
============================================================================

Reliability Level: L6 Critical
Input Constraints: JSON over HTTPS, Bearer JWT on protected routes
Side Effects: Database schema creation, vault deployment, execution worker

STARTUP:
    - Verify database connectivity and create tables
    - Deploy the vault client
    - Start the matured-withdrawal execution worker (if enabled)

SHUTDOWN:
    - Stop the execution worker
    - Close database connections

============================================================================
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from dotenv import load_dotenv
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from app.api import (
    audits_router,
    auth_router,
    users_router,
    vault_router,
    withdrawals_router,
)
from app.chain.vault_client import get_vault_client
from app.database.schema import init_schema
from app.database.session import check_database_connection, engine
from app.observability.metrics import update_vault_paused
from app.observability.request_logger import log_requests
from services.withdrawal_config import get_withdrawal_config
from services.withdrawal_execution_worker import get_execution_worker

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger("racefi")

API_VERSION = "1.0.0"
API_PREFIX = "/api/v1"


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup/shutdown events.

    Reliability Level: L6 Critical
    Side Effects: Schema creation, vault deployment, worker task
    """
    logger.info(f"[STARTUP] RaceFi Backend v{API_VERSION} starting")

    try:
        check_database_connection()
        init_schema(engine)
        logger.info("[STARTUP] Database connection verified, schema ready")
    except Exception as e:
        logger.critical(f"[SYS-001] Database unavailable, cannot start | error={e}")
        raise

    config = get_withdrawal_config()
    vault = get_vault_client()
    update_vault_paused(vault.is_paused())
    logger.info(
        f"[STARTUP] Vault ready | relayer={vault.relayer_address} | "
        f"daily_limit={config.daily_limit}"
    )

    worker = None
    if config.worker_enabled:
        worker = get_execution_worker()
        await worker.start()
    else:
        logger.info("[STARTUP] Execution worker disabled")

    yield

    logger.info("[SHUTDOWN] RaceFi Backend stopping")
    if worker is not None and worker.is_running:
        await worker.stop()
    engine.dispose()
    logger.info("[SHUTDOWN] Database connections closed")


# ============================================================================
# FASTAPI APPLICATION
# ============================================================================

app = FastAPI(
    title="RaceFi Backend",
    description=(
        "Smart-contract audit requests and multi-signature token withdrawals "
        "backed by the RaceFi withdrawal vault."
    ),
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)
app.middleware("http")(log_requests)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Global exception handler for unhandled errors.

    Side Effects: Logs the exception with traceback
    """
    error_code = "SYS-500"
    logger.exception(
        f"[{error_code}] Unhandled exception | path={request.url.path} | error={exc}"
    )
    return JSONResponse(
        status_code=500,
        content={
            "error_code": error_code,
            "message": "Internal server error. This incident has been logged.",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ============================================================================
# ROUTERS
# ============================================================================

app.include_router(auth_router, prefix=f"{API_PREFIX}/auth", tags=["Auth"])
app.include_router(users_router, prefix=f"{API_PREFIX}/users", tags=["Users"])
app.include_router(audits_router, prefix=f"{API_PREFIX}/audits", tags=["Audits"])
app.include_router(
    withdrawals_router, prefix=f"{API_PREFIX}/withdrawals", tags=["Withdrawals"]
)
app.include_router(vault_router, prefix=f"{API_PREFIX}/token", tags=["Vault"])


# ============================================================================
# SYSTEM ENDPOINTS
# ============================================================================

@app.get(API_PREFIX, summary="API welcome", tags=["System"])
async def root():
    return {
        "success": True,
        "message": "Welcome to the RaceFi API",
        "version": API_VERSION,
    }


@app.get(
    "/health",
    summary="Health Check",
    description="Lightweight health check for load balancers and monitoring.",
    tags=["System"],
)
async def health_check():
    try:
        check_database_connection()
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": "disconnected", "error": str(e)},
        )


@app.get("/metrics", summary="Prometheus Metrics", tags=["Observability"])
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
