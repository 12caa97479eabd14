"""
Scan orchestrators.

One class per endpoint. Each call checks admission, runs the upstream steps,
normalizes the model reply and commits quota only after the result exists.
Every failure propagates as a domain exception; the API layer maps those to
HTTP responses.
"""

from __future__ import annotations

import asyncio
import re
import time
from typing import Any, Awaitable, Optional, TypeVar

import structlog

from glutenornot.application.admission.rate_limiter import AdmissionController
from glutenornot.application.barcode.lookup_service import ProductLookupService
from glutenornot.domain.analysis.models import AnalysisResult, Confidence, ScanMode, Verdict
from glutenornot.domain.analysis.parser import ResponseParser, barcode_parser, scan_parser
from glutenornot.domain.analysis.ports import ILLMProvider, IOCRProvider
from glutenornot.domain.analysis.prompts import build_barcode_messages, build_scan_messages
from glutenornot.domain.barcode.context import build_ingredient_context
from glutenornot.domain.barcode.models import ProductRecord
from glutenornot.domain.shared.errors import (
    AdmissionDeniedError,
    OCRFailedError,
    ProductNotFoundError,
    UpstreamTimeoutError,
    ValidationError,
)
from glutenornot.domain.shared.value_objects import BARCODE_PATTERN, Barcode
from glutenornot.metrics import registry

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_UPSTREAM_TIMEOUT_S = 25.0

_DATA_URL_MARKER = ";base64,"


def _record_outcome(endpoint: str, start: float, error: Optional[BaseException]) -> None:
    outcome = "ok" if error is None else type(error).__name__
    registry.record_scan(endpoint, outcome, (time.time() - start) * 1000)


def _strip_data_url(image: str) -> str:
    """Accept ``data:image/jpeg;base64,...`` as well as bare base64."""
    if image.startswith("data:") and _DATA_URL_MARKER in image:
        return image.split(_DATA_URL_MARKER, 1)[1]
    return image


async def _admit(admission: AdmissionController, client_id: str) -> None:
    decision = await admission.check(client_id)
    if not decision.allowed:
        raise AdmissionDeniedError(reset_in_s=decision.reset_in_s, limit=admission.limit)


async def _within(call: Awaitable[T], deadline_s: Optional[float], service: str) -> T:
    """Await one upstream call, failing with UpstreamTimeoutError past ``deadline_s``."""
    try:
        return await asyncio.wait_for(call, timeout=deadline_s)
    except asyncio.TimeoutError as e:
        logger.error("Upstream deadline exceeded", service=service, deadline_s=deadline_s)
        raise UpstreamTimeoutError(
            f"{service} call exceeded {deadline_s}s", service=service
        ) from e


class ScanOrchestrator:
    """
    Label/menu photo analysis.

    Flow:
    1. Validate the image payload
    2. Admission check
    3. OCR (empty text is OCRFailedError)
    4. LLM with the scan prompt
    5. Parse (SCAN flavor, never fails)
    6. Commit quota

    OCR and LLM calls each run under ``upstream_timeout_s``; overrunning it
    raises UpstreamTimeoutError and nothing is committed.

    Example:
        >>> orchestrator = ScanOrchestrator(ocr=vision, llm=openai, admission=controller)
        >>> result = await orchestrator.analyze(image_b64, client_id="203.0.113.7")
    """

    endpoint = "analyze"

    def __init__(
        self,
        ocr: IOCRProvider,
        llm: ILLMProvider,
        admission: AdmissionController,
        parser: ResponseParser = scan_parser,
        upstream_timeout_s: Optional[float] = DEFAULT_UPSTREAM_TIMEOUT_S,
    ) -> None:
        self.ocr = ocr
        self.llm = llm
        self.admission = admission
        self.parser = parser
        self.upstream_timeout_s = upstream_timeout_s

    async def analyze(self, image: Any, client_id: str) -> AnalysisResult:
        """Analyze one photographed label or menu.

        Args:
            image: Base64 JPEG (a data URL prefix is tolerated)
            client_id: Admission key (client IP)

        Returns:
            Normalized analysis result

        Raises:
            ValidationError: Image missing or empty
            AdmissionDeniedError: Quota exhausted
            OCRFailedError: No text read from the image
            ExternalServiceError: OCR or LLM unavailable or timed out
        """
        start = time.time()
        error: Optional[BaseException] = None
        try:
            result = await self._run(image, client_id)
        except Exception as e:
            error = e
            raise
        finally:
            _record_outcome(self.endpoint, start, error)

        logger.info(
            "Scan analyzed",
            client_id=client_id,
            mode=result.mode.value,
            verdict=result.verdict.value,
            confidence=result.confidence.value,
            language=result.detected_language,
            time_ms=round((time.time() - start) * 1000, 2),
        )
        return result

    async def _run(self, image: Any, client_id: str) -> AnalysisResult:
        if not isinstance(image, str) or not image.strip():
            raise ValidationError("No image provided", title="Missing image")

        await _admit(self.admission, client_id)

        text = await _within(
            self.ocr.extract_text(_strip_data_url(image.strip())), self.upstream_timeout_s, "ocr"
        )
        if not text or not text.strip():
            raise OCRFailedError("No text detected in image")

        raw = await _within(
            self.llm.complete_text(build_scan_messages(text)), self.upstream_timeout_s, "llm"
        )
        result = self.parser.parse(raw)

        await self.admission.commit(client_id)
        return result


class BarcodeOrchestrator:
    """
    Barcode product analysis.

    Flow:
    1. Validate the barcode (8-14 digits after trimming)
    2. Admission check
    3. Provider waterfall (nothing found is ProductNotFoundError)
    4. Build ingredient context; without one, answer "no ingredient data"
    5. LLM with the barcode prompt, parse (BARCODE flavor)
    6. Attach product metadata, commit quota
    """

    endpoint = "barcode"

    def __init__(
        self,
        lookup: ProductLookupService,
        llm: ILLMProvider,
        admission: AdmissionController,
        parser: ResponseParser = barcode_parser,
        upstream_timeout_s: Optional[float] = DEFAULT_UPSTREAM_TIMEOUT_S,
    ) -> None:
        self.lookup = lookup
        self.llm = llm
        self.admission = admission
        self.parser = parser
        self.upstream_timeout_s = upstream_timeout_s

    @staticmethod
    def validate_barcode(raw: Any) -> Barcode:
        """Trim and validate raw input.

        Raises:
            ValidationError: Missing, blank or not 8-14 digits
        """
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            raise ValidationError("No barcode provided", title="Missing barcode")
        if not isinstance(raw, str):
            raise ValidationError("Invalid barcode format", title="Invalid barcode")

        candidate = raw.strip()
        if not re.match(BARCODE_PATTERN, candidate):
            raise ValidationError("Invalid barcode format", title="Invalid barcode")
        return Barcode(value=candidate)

    async def analyze(self, raw_barcode: Any, client_id: str) -> AnalysisResult:
        """Analyze the product behind a barcode.

        Args:
            raw_barcode: Barcode as sent by the client
            client_id: Admission key (client IP)

        Returns:
            Normalized analysis result with product_name, barcode and
            data_source attached

        Raises:
            ValidationError: Barcode missing or malformed
            AdmissionDeniedError: Quota exhausted
            ProductNotFoundError: No provider knows the product
            ExternalServiceError: LLM unavailable or timed out
        """
        start = time.time()
        error: Optional[BaseException] = None
        try:
            result = await self._run(raw_barcode, client_id)
        except Exception as e:
            error = e
            raise
        finally:
            _record_outcome(self.endpoint, start, error)

        logger.info(
            "Barcode analyzed",
            client_id=client_id,
            barcode=result.barcode,
            source=result.data_source,
            verdict=result.verdict.value,
            confidence=result.confidence.value,
            time_ms=round((time.time() - start) * 1000, 2),
        )
        return result

    async def _run(self, raw_barcode: Any, client_id: str) -> AnalysisResult:
        barcode = self.validate_barcode(raw_barcode)

        await _admit(self.admission, client_id)

        product = await self.lookup.lookup(barcode)
        if product is None:
            raise ProductNotFoundError(f"Barcode {barcode.value} not found")

        context = build_ingredient_context(product)
        if context is None:
            result = self._no_ingredient_data(product)
        else:
            raw = await _within(
                self.llm.complete_text(build_barcode_messages(context)),
                self.upstream_timeout_s,
                "llm",
            )
            result = self.parser.parse(raw)

        result = result.with_product(
            product_name=product.product_name,
            barcode=barcode.value,
            data_source=product.source.value,
        )

        await self.admission.commit(client_id)
        return result

    @staticmethod
    def _no_ingredient_data(product: ProductRecord) -> AnalysisResult:
        name = product.product_name or "Unknown product"
        return AnalysisResult(
            mode=ScanMode.LABEL,
            verdict=Verdict.CAUTION,
            confidence=Confidence.LOW,
            explanation=(
                f'Found "{name}" but no ingredient data is available. '
                "Try scanning the ingredient label instead."
            ),
        )
