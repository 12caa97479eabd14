"""
Unit tests for the scan orchestrators.

Quota is committed only when a result is produced; every failure leaves the
counter untouched.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from glutenornot.application.admission.rate_limiter import AdmissionController
from glutenornot.application.barcode.lookup_service import ProductLookupService
from glutenornot.application.scan.orchestrators import BarcodeOrchestrator, ScanOrchestrator
from glutenornot.domain.analysis.models import Confidence, ScanMode, Verdict
from glutenornot.domain.barcode.models import ProductRecord, ProductSource
from glutenornot.domain.shared.errors import (
    AdmissionDeniedError,
    LLMUnavailableError,
    OCRFailedError,
    OCRUnavailableError,
    ProductNotFoundError,
    UpstreamTimeoutError,
    ValidationError,
)
from glutenornot.infrastructure.cache.in_memory_rate_store import InMemoryRateStore
from glutenornot.metrics import registry
from glutenornot.tests.fakes import FakeProductProvider, llm_reply

CLIENT = "203.0.113.7"


async def _count(store: InMemoryRateStore, client: str = CLIENT) -> int:
    record = await store.get(client)
    return record.count if record else 0


async def _exhaust(admission: AdmissionController, client: str = CLIENT) -> None:
    for _ in range(admission.limit):
        await admission.commit(client)


async def _hang(*args, **kwargs) -> str:
    await asyncio.sleep(5)
    return ""


# ═══════════════════════════════════════════════════════════
# SCAN ORCHESTRATOR
# ═══════════════════════════════════════════════════════════


class TestScanOrchestrator:
    """Label/menu flow."""

    @pytest.fixture
    def orchestrator(
        self, mock_ocr: AsyncMock, mock_llm: AsyncMock, admission: AdmissionController
    ) -> ScanOrchestrator:
        return ScanOrchestrator(ocr=mock_ocr, llm=mock_llm, admission=admission)

    async def test_success_commits_once(
        self,
        orchestrator: ScanOrchestrator,
        mock_ocr: AsyncMock,
        mock_llm: AsyncMock,
        rate_store: InMemoryRateStore,
    ) -> None:
        result = await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert result.verdict is Verdict.UNSAFE
        assert result.flagged_ingredients == ["barley malt extract"]
        assert result.confidence is Confidence.HIGH
        assert await _count(rate_store) == 1

        mock_ocr.extract_text.assert_awaited_once_with("aGVsbG8=")
        messages = mock_llm.complete_text.await_args.args[0]
        assert messages[1]["content"].endswith(
            "INGREDIENTS: Rice, sugar, salt, barley malt extract."
        )
        assert registry.counter_value("scan.requests", endpoint="analyze", outcome="ok") == 1

    async def test_data_url_prefix_stripped(
        self, orchestrator: ScanOrchestrator, mock_ocr: AsyncMock
    ) -> None:
        await orchestrator.analyze("data:image/jpeg;base64,aGVsbG8=", CLIENT)

        mock_ocr.extract_text.assert_awaited_once_with("aGVsbG8=")

    @pytest.mark.parametrize("image", [None, "", "   ", 42])
    async def test_missing_image(
        self,
        orchestrator: ScanOrchestrator,
        mock_ocr: AsyncMock,
        rate_store: InMemoryRateStore,
        image: object,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.analyze(image, CLIENT)

        assert exc_info.value.title == "Missing image"
        mock_ocr.extract_text.assert_not_awaited()
        assert await _count(rate_store) == 0

    async def test_denied_before_any_upstream_call(
        self,
        orchestrator: ScanOrchestrator,
        admission: AdmissionController,
        mock_ocr: AsyncMock,
        mock_llm: AsyncMock,
    ) -> None:
        await _exhaust(admission)

        with pytest.raises(AdmissionDeniedError) as exc_info:
            await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert exc_info.value.limit == 50
        assert exc_info.value.reset_in_s == pytest.approx(86400.0)
        mock_ocr.extract_text.assert_not_awaited()
        mock_llm.complete_text.assert_not_awaited()

    @pytest.mark.parametrize("text", ["", "   \n\t"])
    async def test_empty_ocr_text(
        self,
        orchestrator: ScanOrchestrator,
        mock_ocr: AsyncMock,
        mock_llm: AsyncMock,
        rate_store: InMemoryRateStore,
        text: str,
    ) -> None:
        mock_ocr.extract_text.return_value = text

        with pytest.raises(OCRFailedError):
            await orchestrator.analyze("aGVsbG8=", CLIENT)

        mock_llm.complete_text.assert_not_awaited()
        assert await _count(rate_store) == 0
        assert (
            registry.counter_value("scan.requests", endpoint="analyze", outcome="OCRFailedError")
            == 1
        )

    @pytest.mark.parametrize(
        "error",
        [
            OCRUnavailableError("Vision API error: 403", service="ocr"),
            UpstreamTimeoutError("Vision API timeout", service="ocr"),
        ],
    )
    async def test_ocr_failure_propagates_without_commit(
        self,
        orchestrator: ScanOrchestrator,
        mock_ocr: AsyncMock,
        rate_store: InMemoryRateStore,
        error: Exception,
    ) -> None:
        mock_ocr.extract_text.side_effect = error

        with pytest.raises(type(error)):
            await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert await _count(rate_store) == 0

    async def test_llm_failure_propagates_without_commit(
        self,
        orchestrator: ScanOrchestrator,
        mock_llm: AsyncMock,
        rate_store: InMemoryRateStore,
    ) -> None:
        mock_llm.complete_text.side_effect = LLMUnavailableError("OpenAI API error: 500")

        with pytest.raises(LLMUnavailableError):
            await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert await _count(rate_store) == 0

    async def test_unparseable_reply_is_fallback_and_consumes_quota(
        self,
        orchestrator: ScanOrchestrator,
        mock_llm: AsyncMock,
        rate_store: InMemoryRateStore,
    ) -> None:
        mock_llm.complete_text.return_value = "I'm sorry, I can't help with that."

        result = await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert result.verdict is Verdict.CAUTION
        assert result.confidence is Confidence.LOW
        assert await _count(rate_store) == 1

    async def test_menu_reply(
        self, orchestrator: ScanOrchestrator, mock_llm: AsyncMock
    ) -> None:
        mock_llm.complete_text.return_value = llm_reply(
            mode="menu",
            detected_language="es",
            verdict="caution",
            menu_items=[
                {"name": "Paella", "verdict": "safe"},
                {"name": "Croquetas", "verdict": "unsafe", "notes": "Breaded"},
            ],
        )

        result = await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert result.mode is ScanMode.MENU
        assert result.detected_language == "es"
        assert result.menu_items is not None
        assert [i.name for i in result.menu_items] == ["Paella", "Croquetas"]

    async def test_slow_ocr_hits_deadline_without_commit(
        self,
        mock_ocr: AsyncMock,
        mock_llm: AsyncMock,
        admission: AdmissionController,
        rate_store: InMemoryRateStore,
    ) -> None:
        mock_ocr.extract_text.side_effect = _hang
        orchestrator = ScanOrchestrator(
            ocr=mock_ocr, llm=mock_llm, admission=admission, upstream_timeout_s=0.05
        )

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert exc_info.value.service == "ocr"
        mock_llm.complete_text.assert_not_awaited()
        assert await _count(rate_store) == 0

    async def test_slow_llm_hits_deadline_without_commit(
        self,
        mock_ocr: AsyncMock,
        mock_llm: AsyncMock,
        admission: AdmissionController,
        rate_store: InMemoryRateStore,
    ) -> None:
        mock_llm.complete_text.side_effect = _hang
        orchestrator = ScanOrchestrator(
            ocr=mock_ocr, llm=mock_llm, admission=admission, upstream_timeout_s=0.05
        )

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await orchestrator.analyze("aGVsbG8=", CLIENT)

        assert exc_info.value.service == "llm"
        assert await _count(rate_store) == 0
        assert (
            registry.counter_value(
                "scan.requests", endpoint="analyze", outcome="UpstreamTimeoutError"
            )
            == 1
        )


# ═══════════════════════════════════════════════════════════
# BARCODE ORCHESTRATOR
# ═══════════════════════════════════════════════════════════


class TestBarcodeOrchestrator:
    """Barcode flow."""

    def _orchestrator(
        self,
        admission: AdmissionController,
        llm: AsyncMock,
        record: ProductRecord = None,
    ) -> BarcodeOrchestrator:
        provider = FakeProductProvider(ProductSource.OPENFOODFACTS, record=record)
        return BarcodeOrchestrator(
            lookup=ProductLookupService([provider]), llm=llm, admission=admission
        )

    async def test_success_attaches_product_metadata(
        self,
        admission: AdmissionController,
        mock_llm: AsyncMock,
        corn_flakes: ProductRecord,
        rate_store: InMemoryRateStore,
    ) -> None:
        orchestrator = self._orchestrator(admission, mock_llm, corn_flakes)

        result = await orchestrator.analyze(" 5053827154006 ", CLIENT)

        assert result.verdict is Verdict.UNSAFE
        assert result.mode is ScanMode.LABEL
        assert result.product_name == "Corn Flakes"
        assert result.barcode == "5053827154006"
        assert result.data_source == "openfoodfacts"
        assert await _count(rate_store) == 1

        messages = mock_llm.complete_text.await_args.args[0]
        assert "Product: Kellogg's - Corn Flakes" in messages[1]["content"]
        assert "Allergens: gluten" in messages[1]["content"]

    async def test_synonym_verdict_accepted(
        self, admission: AdmissionController, mock_llm: AsyncMock, corn_flakes: ProductRecord
    ) -> None:
        mock_llm.complete_text.return_value = llm_reply(verdict="not safe", confidence="high")
        orchestrator = self._orchestrator(admission, mock_llm, corn_flakes)

        result = await orchestrator.analyze("5053827154006", CLIENT)

        assert result.verdict is Verdict.UNSAFE

    @pytest.mark.parametrize(
        "raw, title",
        [
            (None, "Missing barcode"),
            ("", "Missing barcode"),
            ("   ", "Missing barcode"),
            ("1234567", "Invalid barcode"),
            ("123456789012345", "Invalid barcode"),
            ("12345abc", "Invalid barcode"),
            (12345678, "Invalid barcode"),
        ],
    )
    async def test_invalid_barcode(
        self,
        admission: AdmissionController,
        mock_llm: AsyncMock,
        rate_store: InMemoryRateStore,
        raw: object,
        title: str,
    ) -> None:
        orchestrator = self._orchestrator(admission, mock_llm)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.analyze(raw, CLIENT)

        assert exc_info.value.title == title
        assert await _count(rate_store) == 0

    async def test_not_found(
        self, admission: AdmissionController, mock_llm: AsyncMock, rate_store: InMemoryRateStore
    ) -> None:
        orchestrator = self._orchestrator(admission, mock_llm, record=None)

        with pytest.raises(ProductNotFoundError):
            await orchestrator.analyze("5053827154006", CLIENT)

        mock_llm.complete_text.assert_not_awaited()
        assert await _count(rate_store) == 0

    async def test_no_ingredient_data_skips_llm_and_commits(
        self,
        admission: AdmissionController,
        mock_llm: AsyncMock,
        nameless_product: ProductRecord,
        rate_store: InMemoryRateStore,
    ) -> None:
        orchestrator = self._orchestrator(admission, mock_llm, nameless_product)

        result = await orchestrator.analyze("5053827154006", CLIENT)

        mock_llm.complete_text.assert_not_awaited()
        assert result.verdict is Verdict.CAUTION
        assert result.confidence is Confidence.LOW
        assert result.explanation == (
            'Found "Mystery Snack" but no ingredient data is available. '
            "Try scanning the ingredient label instead."
        )
        assert result.flagged_ingredients == []
        assert result.product_name == "Mystery Snack"
        assert result.data_source == "openfoodfacts"
        assert await _count(rate_store) == 1

    async def test_denied(
        self, admission: AdmissionController, mock_llm: AsyncMock, corn_flakes: ProductRecord
    ) -> None:
        await _exhaust(admission)
        provider = FakeProductProvider(ProductSource.OPENFOODFACTS, record=corn_flakes)
        orchestrator = BarcodeOrchestrator(
            lookup=ProductLookupService([provider]), llm=mock_llm, admission=admission
        )

        with pytest.raises(AdmissionDeniedError):
            await orchestrator.analyze("5053827154006", CLIENT)

        assert provider.calls == []

    async def test_llm_timeout_no_commit(
        self,
        admission: AdmissionController,
        mock_llm: AsyncMock,
        corn_flakes: ProductRecord,
        rate_store: InMemoryRateStore,
    ) -> None:
        mock_llm.complete_text.side_effect = UpstreamTimeoutError("LLM timeout", service="llm")
        orchestrator = self._orchestrator(admission, mock_llm, corn_flakes)

        with pytest.raises(UpstreamTimeoutError):
            await orchestrator.analyze("5053827154006", CLIENT)

        assert await _count(rate_store) == 0

    async def test_shared_quota_with_scan(
        self,
        admission: AdmissionController,
        mock_ocr: AsyncMock,
        mock_llm: AsyncMock,
        corn_flakes: ProductRecord,
    ) -> None:
        scan = ScanOrchestrator(ocr=mock_ocr, llm=mock_llm, admission=admission)
        barcode = self._orchestrator(admission, mock_llm, corn_flakes)

        for _ in range(25):
            await scan.analyze("aGVsbG8=", CLIENT)
            await barcode.analyze("5053827154006", CLIENT)

        with pytest.raises(AdmissionDeniedError):
            await scan.analyze("aGVsbG8=", CLIENT)
        with pytest.raises(AdmissionDeniedError):
            await barcode.analyze("5053827154006", CLIENT)

    async def test_slow_llm_hits_deadline_without_commit(
        self,
        admission: AdmissionController,
        mock_llm: AsyncMock,
        corn_flakes: ProductRecord,
        rate_store: InMemoryRateStore,
    ) -> None:
        mock_llm.complete_text.side_effect = _hang
        provider = FakeProductProvider(ProductSource.OPENFOODFACTS, record=corn_flakes)
        orchestrator = BarcodeOrchestrator(
            lookup=ProductLookupService([provider]),
            llm=mock_llm,
            admission=admission,
            upstream_timeout_s=0.05,
        )

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await orchestrator.analyze("5053827154006", CLIENT)

        assert exc_info.value.service == "llm"
        assert await _count(rate_store) == 0
