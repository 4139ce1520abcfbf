"""
Unit tests for the model catalog.
"""

import pytest
from httpx import AsyncClient

from codeconnect.core.config import ModelSettings
from codeconnect.core.constants import DEFAULT_MODEL, DEFAULT_MODELS
from codeconnect.services.model_catalog import ModelCatalog, parse_models


def test_parse_models_formats() -> None:
    assert parse_models('["ibm/granite", " meta/llama "]') == ["ibm/granite", "meta/llama"]
    assert parse_models("ibm/granite, meta/llama,") == ["ibm/granite", "meta/llama"]
    assert parse_models(None) == DEFAULT_MODELS
    assert parse_models("[not json") == DEFAULT_MODELS


def test_fallback_model_order() -> None:
    catalog = ModelCatalog(
        ModelSettings(available_models="ibm/granite,meta/llama", default_model="meta/llama")
    )
    assert catalog.fallback_model("ibm/granite") == "ibm/granite"
    assert catalog.fallback_model("unknown/model") == "meta/llama"
    assert catalog.fallback_model(None) == "meta/llama"


def test_fallback_to_first_available_model() -> None:
    catalog = ModelCatalog(
        ModelSettings(available_models="ibm/granite,meta/llama", default_model="openai/gpt")
    )
    assert catalog.fallback_model("unknown/model") == "ibm/granite"


def test_model_options_and_api_shape() -> None:
    catalog = ModelCatalog(ModelSettings(available_models="ibm/granite", default_model=None))
    assert catalog.model_options() == [
        {"value": "ibm/granite", "label": "ibm/granite", "provider": "ibm"}
    ]
    assert catalog.to_api() == {"models": ["ibm/granite"], "defaultModel": DEFAULT_MODEL}


@pytest.mark.asyncio
async def test_models_endpoint(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/models")
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert data["data"]["models"]
    assert "defaultModel" in data["data"]
