"""
Shared fixtures for glutenornot tests.

Test doubles for the upstream ports live in ``fakes``; fixtures here wire
them up so orchestrator and API tests never touch the network.
"""

from __future__ import annotations

from typing import Dict, Iterator
from unittest.mock import AsyncMock

import pytest

from glutenornot.application.admission.rate_limiter import AdmissionController
from glutenornot.config import Settings
from glutenornot.domain.barcode.models import ProductRecord, ProductSource
from glutenornot.domain.shared.value_objects import Barcode
from glutenornot.infrastructure.cache.in_memory_rate_store import InMemoryRateStore
from glutenornot.metrics import registry
from glutenornot.tests.fakes import FakeClock, llm_reply


# ═══════════════════════════════════════════════════════════
# GLOBAL STATE
# ═══════════════════════════════════════════════════════════


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    """Each test starts with an empty metrics registry."""
    registry.reset()
    yield
    registry.reset()


# ═══════════════════════════════════════════════════════════
# DOMAIN FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def sample_barcode() -> Barcode:
    """Corn Flakes, EAN-13."""
    return Barcode(value="5053827154006")


@pytest.fixture
def corn_flakes() -> ProductRecord:
    """Product with barley malt: should come back unsafe."""
    return ProductRecord(
        source=ProductSource.OPENFOODFACTS,
        product_name="Corn Flakes",
        brand="Kellogg's",
        ingredients_text="Maize, sugar, barley malt flavouring, salt",
        allergens_tags=["en:gluten"],
        traces_tags=[],
        labels_tags=["en:vegetarian"],
        barcode="5053827154006",
    )


@pytest.fixture
def nameless_product() -> ProductRecord:
    """Identified by name only; no ingredients or allergens."""
    return ProductRecord(
        source=ProductSource.OPENFOODFACTS,
        product_name="Mystery Snack",
        barcode="5053827154006",
    )


# ═══════════════════════════════════════════════════════════
# APPLICATION FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_store() -> InMemoryRateStore:
    return InMemoryRateStore()


@pytest.fixture
def admission(rate_store: InMemoryRateStore, clock: FakeClock) -> AdmissionController:
    """Controller with the production quota and window on a fake clock."""
    return AdmissionController(store=rate_store, limit=50, window_s=86400.0, clock=clock)


@pytest.fixture
def mock_ocr() -> AsyncMock:
    ocr = AsyncMock()
    ocr.extract_text.return_value = "INGREDIENTS: Rice, sugar, salt, barley malt extract."
    return ocr


@pytest.fixture
def mock_llm() -> AsyncMock:
    llm = AsyncMock()
    llm.complete_text.return_value = llm_reply(
        verdict="unsafe",
        flagged_ingredients=["barley malt extract"],
        allergen_warnings=[],
        explanation="Barley malt contains gluten.",
        confidence="high",
    )
    return llm


@pytest.fixture
def configured_settings() -> Settings:
    return Settings(vision_api_key="vision-key", openai_api_key="sk-test")


@pytest.fixture
def scan_payload() -> Dict[str, str]:
    return {"image": "aGVsbG8gd29ybGQ="}
