"""Provider factory.

Builds the upstream adapters from ``Settings``. Clients come back
uninitialized; the API lifespan enters them with ``async with``.

Usage:
    from glutenornot.infrastructure.factory import (
        create_ocr_provider,
        create_llm_provider,
        create_product_providers,
    )

    settings = Settings.from_env()
    ocr = create_ocr_provider(settings)
    providers = create_product_providers(settings)  # OFF always, others by key
"""

from __future__ import annotations

from typing import List

from glutenornot.config import Settings
from glutenornot.domain.barcode.ports import IProductProvider
from glutenornot.infrastructure.ai.openai_client import OpenAIClient
from glutenornot.infrastructure.nutritionix.api_client import NutritionixClient
from glutenornot.infrastructure.ocr.google_vision_client import GoogleVisionClient
from glutenornot.infrastructure.openfoodfacts.api_client import OpenFoodFactsClient
from glutenornot.infrastructure.usda.api_client import USDAApiClient


def create_ocr_provider(settings: Settings) -> GoogleVisionClient:
    """Google Cloud Vision client. Without a key every call is a 500."""
    return GoogleVisionClient(
        api_key=settings.vision_api_key,
        timeout_seconds=settings.upstream_timeout_s,
    )


def create_llm_provider(settings: Settings) -> OpenAIClient:
    """OpenAI client. Without a key every call is 503."""
    return OpenAIClient(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout=settings.upstream_timeout_s,
        max_tokens=settings.llm_max_tokens,
        max_retries=settings.llm_max_retries,
    )


def create_product_providers(settings: Settings) -> List[IProductProvider]:
    """Barcode providers in waterfall order.

    Open Food Facts is always present. USDA needs ``USDA_API_KEY``;
    Nutritionix needs both ``NUTRITIONIX_APP_ID`` and ``NUTRITIONIX_APP_KEY``.
    """
    timeout = settings.product_lookup_timeout_s
    providers: List[IProductProvider] = [OpenFoodFactsClient(timeout_seconds=timeout)]

    if settings.usda_api_key is not None:
        providers.append(USDAApiClient(api_key=settings.usda_api_key, timeout_seconds=timeout))

    if settings.nutritionix_app_id is not None and settings.nutritionix_app_key is not None:
        providers.append(
            NutritionixClient(
                app_id=settings.nutritionix_app_id,
                app_key=settings.nutritionix_app_key,
                timeout_seconds=timeout,
            )
        )

    return providers
