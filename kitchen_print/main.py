"""
FastAPI Application Entry Point

Kitchen Receipt Printing Service
Turns queued orders into receipts on a network ESC/POS thermal printer.
Runs against a mock printer in development and the real one in production.

Endpoints:
    - POST /api/print/process-queue: Process a batch of pending print jobs
    - GET /api/print/process-queue: Printer connectivity probe
    - GET /api/printer/status: Printer and paper status (DLE EOT)
    - GET /api/print/queue-status: Queue statistics
    - POST /api/print/jobs: Enqueue a receipt
    - POST /api/print/jobs/{job_id}/requeue: Reprint a finished job
    - GET /api/print/jobs/{job_id}/preview: Plain-text receipt preview
    - POST /api/print/test: Direct test print (bypasses the queue)
    - GET /health: System health check

All /api routes require ``Authorization: Bearer <PRINT_PROCESSOR_SECRET>``.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import hmac
import sys
import logging
import time
from datetime import datetime
from typing import Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Request, Header
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import redis.asyncio as redis

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from kitchen_print.core.config import Settings, get_settings, setup_logging
from kitchen_print.core.exceptions import (
    ConfigurationError,
    EncodingError,
    InvalidJobStateError,
)
from kitchen_print.database import get_session_maker, init_db, engine
from kitchen_print.schemas import (
    ErrorResponse,
    HealthResponse,
    OrderTypeEnum,
    PendingJobSummary,
    PrintJobCreate,
    PrintJobResponse,
    PrinterConnectivityResponse,
    PrinterStatusResponse,
    PrintTestResponse,
    ProcessQueueResponse,
    ProcessResultResponse,
    QueueStatusResponse,
    ReceiptDocument,
    ReceiptItem,
)
from kitchen_print.services.escpos import EscPosEncoder
from kitchen_print.services.print_queue import PrintQueueRepository
from kitchen_print.services.printer import BasePrinterTransport, get_printer_transport
from kitchen_print.services.processor import PrintQueueProcessor, ProcessorConfig
from kitchen_print.services.receipt_formatter import format_receipt
from kitchen_print.services.status_monitor import PrinterStatusMonitor

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    # Initialize database
    await init_db()
    logger.info("✅ Database initialized")

    # Log service configuration
    transport = get_printer_transport()
    logger.info(f"✅ Printer Transport: {transport.provider_name}")
    if settings.printer_ip_address:
        logger.info(f"✅ Printer: {settings.printer_ip_address}:{settings.printer_port}")

    # Validate production config
    if settings.use_real_printer:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"⚠️ Missing production config: {missing}")

    logger.info("=" * 60)
    logger.info("✅ Application ready!")
    logger.info("=" * 60)

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Receipt printing for the kitchen. Drains a durable print queue to a "
        "network ESC/POS printer with bounded retries and status monitoring."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def verify_processor_token(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    Require ``Authorization: Bearer <secret>``.

    Rejects everything when no secret is configured.
    """
    expected = settings.print_processor_secret
    token = None
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):]

    if not expected or token is None or not hmac.compare_digest(token.encode(), expected.encode()):
        logger.warning("⚠️ Unauthorized print API access attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")


async def get_repository(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> PrintQueueRepository:
    return PrintQueueRepository(session_maker)


async def get_transport() -> BasePrinterTransport:
    return get_printer_transport()


def require_printer_host(settings: Settings) -> str:
    if not settings.printer_ip_address:
        raise ConfigurationError("PRINTER_IP_ADDRESS environment variable is required")
    return settings.printer_ip_address


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"🖨️ Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
    transport: BasePrinterTransport = Depends(get_transport),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        async with session_maker() as session:
            await session.execute(select(func.now()))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis
    redis_status = "healthy"
    try:
        r = redis.from_url(settings.redis_url, socket_timeout=2)
        try:
            await r.ping()
        finally:
            await r.aclose()
    except Exception as e:
        redis_status = f"unhealthy: {str(e)}"
        logger.error(f"Redis health check failed: {e}")

    # Check printer transport
    transport_status = "healthy" if await transport.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, redis_status, transport_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        printer_transport=f"{transport_status} ({transport.provider_name})",
        timestamp=datetime.now(),
    )


# =============================================================================
# PRINT QUEUE ENDPOINTS
# =============================================================================

@app.post(
    "/api/print/process-queue",
    response_model=ProcessQueueResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Print Queue"],
    summary="Process Pending Print Jobs",
    dependencies=[Depends(verify_processor_token)],
)
async def process_queue(
    repository: PrintQueueRepository = Depends(get_repository),
    transport: BasePrinterTransport = Depends(get_transport),
    settings: Settings = Depends(get_settings),
) -> ProcessQueueResponse:
    """
    Process one batch of pending print jobs.

    Called by cron, by a database webhook when a job is inserted, or by hand.
    """
    start = time.perf_counter()
    processor = PrintQueueProcessor(
        repository,
        transport,
        encoder=EscPosEncoder.from_settings(settings),
        monitor=PrinterStatusMonitor.from_settings(transport, settings),
    )
    result = await processor.process_batch(ProcessorConfig.from_settings(settings))
    duration_ms = int((time.perf_counter() - start) * 1000)

    logger.info(
        f"Queue run completed in {duration_ms}ms: {result.processed} processed, "
        f"{result.succeeded} succeeded, {result.failed} failed"
    )

    data = result.to_dict()
    data["errors"] = data["errors"] or None
    return ProcessQueueResponse(
        success=True,
        result=ProcessResultResponse(**data),
        duration_ms=duration_ms,
        timestamp=datetime.now(),
    )


@app.get(
    "/api/print/process-queue",
    response_model=PrinterConnectivityResponse,
    tags=["Print Queue"],
    summary="Printer Connectivity Probe",
    dependencies=[Depends(verify_processor_token)],
)
async def probe_printer(
    transport: BasePrinterTransport = Depends(get_transport),
    settings: Settings = Depends(get_settings),
) -> PrinterConnectivityResponse:
    """Open and close a connection to the printer."""
    if not settings.printer_ip_address:
        return PrinterConnectivityResponse(
            status="error",
            message="Printer not configured",
            timestamp=datetime.now(),
        )

    probe = await transport.test_connection(
        settings.printer_ip_address,
        settings.printer_port,
        settings.printer_timeout_ms / 1000,
    )
    return PrinterConnectivityResponse(
        status="online" if probe.success else "offline",
        message=probe.message,
        timestamp=datetime.now(),
    )


@app.get(
    "/api/print/queue-status",
    response_model=QueueStatusResponse,
    tags=["Print Queue"],
    summary="Queue Statistics",
    dependencies=[Depends(verify_processor_token)],
)
async def queue_status(
    repository: PrintQueueRepository = Depends(get_repository),
) -> QueueStatusResponse:
    """Job counts per status and the oldest pending jobs."""
    stats = await repository.stats(recent_limit=10)
    return QueueStatusResponse(
        success=True,
        pending=stats.pending,
        in_progress=stats.in_progress,
        printed=stats.printed,
        failed=stats.failed,
        total=stats.total,
        recent_pending=[
            PendingJobSummary(id=job.id, created_at=job.created_at, attempts=job.attempts)
            for job in stats.recent_pending
        ],
        timestamp=datetime.now(),
    )


@app.post(
    "/api/print/jobs",
    response_model=PrintJobResponse,
    status_code=201,
    responses={401: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    tags=["Print Queue"],
    summary="Enqueue Receipt",
    dependencies=[Depends(verify_processor_token)],
)
async def create_print_job(
    job_data: PrintJobCreate,
    repository: PrintQueueRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> PrintJobResponse:
    """
    Queue a receipt for printing.

    Accepts either the raw order (formatted here) or a pre-rendered
    receipt document.
    """
    if job_data.order is not None:
        document = format_receipt(job_data.order, settings.default_payment_method)
    else:
        document = job_data.print_data

    # Reject receipts the encoder cannot print before they reach the queue
    try:
        EscPosEncoder.from_settings(settings).layout(document)
    except EncodingError as e:
        raise HTTPException(status_code=422, detail=str(e))

    job = await repository.enqueue(job_data.order_id, document)
    return PrintJobResponse.model_validate(job)


@app.post(
    "/api/print/jobs/{job_id}/requeue",
    response_model=PrintJobResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Print Queue"],
    summary="Reprint a Finished Job",
    dependencies=[Depends(verify_processor_token)],
)
async def requeue_print_job(
    job_id: str,
    repository: PrintQueueRepository = Depends(get_repository),
) -> PrintJobResponse:
    """Insert a new pending copy of a printed or failed job."""
    try:
        job = await repository.requeue(job_id)
    except LookupError:
        raise HTTPException(status_code=404, detail=f"Print job {job_id} not found")
    except InvalidJobStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return PrintJobResponse.model_validate(job)


@app.get(
    "/api/print/jobs/{job_id}/preview",
    response_class=PlainTextResponse,
    tags=["Print Queue"],
    summary="Plain-Text Receipt Preview",
    dependencies=[Depends(verify_processor_token)],
)
async def preview_print_job(
    job_id: str,
    repository: PrintQueueRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> PlainTextResponse:
    """Render a queued receipt as it will look on paper."""
    job = await repository.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Print job {job_id} not found")

    try:
        document = ReceiptDocument.model_validate(job.print_data)
        text = EscPosEncoder.from_settings(settings).render_text(document)
    except (ValidationError, EncodingError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid print data: {e}")
    return PlainTextResponse(text)


# =============================================================================
# PRINTER ENDPOINTS
# =============================================================================

@app.get(
    "/api/printer/status",
    response_model=PrinterStatusResponse,
    tags=["Printer"],
    summary="Printer Status",
    dependencies=[Depends(verify_processor_token)],
)
async def printer_status(
    transport: BasePrinterTransport = Depends(get_transport),
    settings: Settings = Depends(get_settings),
) -> PrinterStatusResponse:
    """Online, cover, and paper state straight from the printer."""
    host = require_printer_host(settings)
    monitor = PrinterStatusMonitor.from_settings(transport, settings)
    status = await monitor.check_status(host, settings.printer_port)
    return PrinterStatusResponse(
        success=status.connected,
        timestamp=datetime.now(),
        **status.to_dict(),
    )


@app.post(
    "/api/print/test",
    response_model=PrintTestResponse,
    tags=["Printer"],
    summary="Test Print",
    dependencies=[Depends(verify_processor_token)],
)
async def test_print(
    transport: BasePrinterTransport = Depends(get_transport),
    settings: Settings = Depends(get_settings),
) -> PrintTestResponse:
    """Print a test receipt directly, without touching the queue."""
    host = require_printer_host(settings)
    now = datetime.now()
    document = ReceiptDocument(
        order_number=f"TEST-{int(now.timestamp())}",
        order_date=now.strftime("%d %b %Y"),
        order_time=now.strftime("%I:%M %p"),
        order_type=OrderTypeEnum.CARRYOUT,
        customer_name="System Test",
        customer_phone="000-000-0000",
        items=(ReceiptItem(name="Test Print Item", quantity=1, price=0),),
        payment_status="TEST",
        payment_method="test",
        special_instructions=("This is a test print",),
        is_test=True,
    )
    payload = EscPosEncoder.from_settings(settings).encode(document)

    logger.info(f"🧪 Test print: {len(payload)} bytes → {host}:{settings.printer_port}")
    sent = await transport.send(payload, host, settings.printer_port, settings.printer_timeout_ms / 1000)

    return PrintTestResponse(
        success=sent.success,
        message=sent.message,
        data_size=len(payload),
        timestamp=now,
    )


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """Printer settings missing: nothing was processed."""
    logger.error(f"✗ {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Printer not configured",
            "message": str(exc),
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "message": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


# =============================================================================
# DEVELOPMENT SERVER
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kitchen_print.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        log_level="debug" if settings.debug else "info",
    )
