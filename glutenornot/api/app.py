"""FastAPI application.

Routes:
    POST /api/analyze   label or menu photo
    POST /api/barcode   product barcode
    GET  /api/health    credential status of the upstream services
    GET  /api/metrics   in-process metrics snapshot
    GET  /version       deployed version

Run with ``glutenornot-api`` or ``uvicorn glutenornot.api.app:create_app --factory``.
"""

from __future__ import annotations

import asyncio
import math
import os
from contextlib import AsyncExitStack, asynccontextmanager, suppress
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from glutenornot.api.schemas import AnalyzeRequest, BarcodeRequest, ErrorResponse
from glutenornot.application.admission.rate_limiter import AdmissionController
from glutenornot.application.barcode.lookup_service import ProductLookupService
from glutenornot.application.scan.orchestrators import BarcodeOrchestrator, ScanOrchestrator
from glutenornot.config import Settings
from glutenornot.domain.admission.models import format_time_remaining
from glutenornot.domain.admission.ports import IRateStore
from glutenornot.domain.analysis.ports import ILLMProvider, IOCRProvider
from glutenornot.domain.barcode.ports import IProductProvider
from glutenornot.domain.shared.errors import (
    AdmissionDeniedError,
    ExternalServiceError,
    OCRFailedError,
    ProductNotFoundError,
    ValidationError,
)
from glutenornot.infrastructure.cache.in_memory_rate_store import InMemoryRateStore
from glutenornot.infrastructure.factory import (
    create_llm_provider,
    create_ocr_provider,
    create_product_providers,
)
from glutenornot.logging import configure_logging
from glutenornot.metrics import registry

logger = structlog.get_logger(__name__)

OCR_FAILED_MESSAGE = "Couldn't read the label. Try getting the ingredients list in focus."
NOT_FOUND_MESSAGE = "Product not found in our database. Try scanning the ingredient label instead."
UNAVAILABLE_MESSAGE = (
    "Our analysis service is temporarily unavailable. Please try again in a few minutes."
)
INTERNAL_ERROR_MESSAGE = "Something went wrong. Please try again."


def client_identifier(request: Request) -> str:
    """Admission key for a request.

    First ``X-Forwarded-For`` entry, then ``X-Real-IP``, then the socket
    peer, then ``unknown``.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _error(status_code: int, body: ErrorResponse, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.to_payload(), headers=headers)


# ═══════════════════════════════════════════════════════════
# EXCEPTION HANDLERS
# ═══════════════════════════════════════════════════════════


async def _handle_validation(request: Request, exc: ValidationError) -> JSONResponse:
    logger.info("Rejected request", path=request.url.path, reason=exc.message)
    return _error(400, ErrorResponse(error=exc.title, message=exc.message))


async def _handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.info("Malformed request body", path=request.url.path)
    return _error(400, ErrorResponse(error="Invalid request", message="Request body must be JSON"))


async def _handle_admission_denied(request: Request, exc: AdmissionDeniedError) -> JSONResponse:
    retry_after = math.ceil(exc.reset_in_s)
    message = (
        f"You've reached today's scan limit ({exc.limit}). "
        f"Resets in {format_time_remaining(exc.reset_in_s)}."
    )
    return _error(
        429,
        ErrorResponse(error="Rate limit exceeded", message=message, retry_after=retry_after),
        headers={"Retry-After": str(retry_after)},
    )


async def _handle_ocr_failed(request: Request, exc: OCRFailedError) -> JSONResponse:
    logger.info("OCR read no text", path=request.url.path)
    return _error(
        400,
        ErrorResponse(error="OCR failed", message=OCR_FAILED_MESSAGE, code="OCR_FAILED"),
    )


async def _handle_not_found(request: Request, exc: ProductNotFoundError) -> JSONResponse:
    logger.info("Product not found", path=request.url.path, detail=str(exc))
    return _error(404, ErrorResponse(error="Product not found", message=NOT_FOUND_MESSAGE))


async def _handle_external(request: Request, exc: ExternalServiceError) -> JSONResponse:
    """LLM and barcode-path failures are 503. OCR failures are a plain 500."""
    if exc.service == "ocr":
        logger.error("OCR service failed", path=request.url.path, error=str(exc), exc_info=exc)
        return _error(
            500, ErrorResponse(error="Internal server error", message=INTERNAL_ERROR_MESSAGE)
        )

    logger.error(
        "Upstream service unavailable",
        path=request.url.path,
        service=exc.service,
        error=str(exc),
        exc_info=exc,
    )
    return _error(
        503,
        ErrorResponse(error="Analysis service unavailable", message=UNAVAILABLE_MESSAGE),
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", path=request.url.path, exc_info=exc)
    return _error(500, ErrorResponse(error="Internal server error", message=INTERNAL_ERROR_MESSAGE))


# ═══════════════════════════════════════════════════════════
# APPLICATION FACTORY
# ═══════════════════════════════════════════════════════════


def create_app(
    settings: Optional[Settings] = None,
    *,
    ocr: Optional[IOCRProvider] = None,
    llm: Optional[ILLMProvider] = None,
    product_providers: Optional[Sequence[IProductProvider]] = None,
    rate_store: Optional[IRateStore] = None,
) -> FastAPI:
    """Build the application.

    Collaborators default to the real adapters built from ``settings``;
    tests pass fakes instead.

    Args:
        settings: Runtime settings (read from the environment when None)
        ocr: OCR provider
        llm: LLM provider
        product_providers: Barcode providers in waterfall order
        rate_store: Admission record storage
    """
    settings = settings or Settings.from_env()

    ocr_provider = ocr if ocr is not None else create_ocr_provider(settings)
    llm_provider = llm if llm is not None else create_llm_provider(settings)
    providers = (
        list(product_providers)
        if product_providers is not None
        else create_product_providers(settings)
    )

    admission = AdmissionController(
        store=rate_store if rate_store is not None else InMemoryRateStore(),
        limit=settings.rate_limit,
        window_s=settings.rate_limit_window_s,
    )
    lookup = ProductLookupService(providers, budget_s=settings.product_lookup_budget_s)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        # Adapters are entered here so their HTTP sessions live as long as the server
        async with AsyncExitStack() as stack:
            for resource in (ocr_provider, llm_provider, *providers):
                if hasattr(resource, "__aenter__"):
                    await stack.enter_async_context(resource)  # type: ignore[arg-type]

            sweeper = asyncio.create_task(
                admission.run_sweeper(settings.rate_limit_sweep_interval_s)
            )
            logger.info(
                "Application ready",
                version=settings.app_version,
                ocr_configured=settings.ocr_configured,
                llm_configured=settings.llm_configured,
                barcode_providers=lookup.provider_names,
                rate_limit=settings.rate_limit,
            )
            try:
                yield
            finally:
                sweeper.cancel()
                with suppress(asyncio.CancelledError):
                    await sweeper
                logger.info("Application shutdown")

    app = FastAPI(title="GlutenOrNot API", version=settings.app_version, lifespan=lifespan)

    app.state.settings = settings
    app.state.admission = admission
    app.state.lookup = lookup
    app.state.scan_orchestrator = ScanOrchestrator(
        ocr=ocr_provider,
        llm=llm_provider,
        admission=admission,
        upstream_timeout_s=settings.upstream_timeout_s,
    )
    app.state.barcode_orchestrator = BarcodeOrchestrator(
        lookup=lookup,
        llm=llm_provider,
        admission=admission,
        upstream_timeout_s=settings.upstream_timeout_s,
    )

    app.add_exception_handler(ValidationError, _handle_validation)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
    app.add_exception_handler(AdmissionDeniedError, _handle_admission_denied)
    app.add_exception_handler(OCRFailedError, _handle_ocr_failed)
    app.add_exception_handler(ProductNotFoundError, _handle_not_found)
    app.add_exception_handler(ExternalServiceError, _handle_external)
    app.add_exception_handler(Exception, _handle_unexpected)

    @app.post("/api/analyze")
    async def analyze(body: AnalyzeRequest, request: Request) -> JSONResponse:
        orchestrator: ScanOrchestrator = request.app.state.scan_orchestrator
        result = await orchestrator.analyze(body.image, client_id=client_identifier(request))
        return JSONResponse(result.to_payload())

    @app.post("/api/barcode")
    async def barcode(body: BarcodeRequest, request: Request) -> JSONResponse:
        orchestrator: BarcodeOrchestrator = request.app.state.barcode_orchestrator
        result = await orchestrator.analyze(body.barcode, client_id=client_identifier(request))
        return JSONResponse(result.to_payload())

    @app.get("/api/health")
    async def health(request: Request) -> JSONResponse:
        current: Settings = request.app.state.settings
        payload = health_payload(current)
        return JSONResponse(status_code=200 if payload["healthy"] else 503, content=payload)

    @app.get("/api/metrics")
    async def metrics() -> Dict[str, Any]:
        return dict(registry.snapshot())

    @app.get("/version")
    async def version(request: Request) -> Dict[str, str]:
        return {"version": request.app.state.settings.app_version}

    return app


def _status(configured: bool) -> Dict[str, str]:
    return {"status": "configured" if configured else "missing_key"}


def health_payload(settings: Settings) -> Dict[str, Any]:
    """Health body. Healthy only when both OCR and LLM keys are present."""
    healthy = settings.ocr_configured and settings.llm_configured
    return {
        "healthy": healthy,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "ocr": _status(settings.ocr_configured),
            "analysis": _status(settings.llm_configured),
            "barcode_providers": {
                "openfoodfacts": _status(True),
                "usda": _status(settings.usda_configured),
                "nutritionix": _status(settings.nutritionix_configured),
            },
        },
    }


def run() -> None:  # pragma: no cover
    """Console entry point."""
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_format)
    uvicorn.run(
        create_app(settings),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_config=None,
    )
