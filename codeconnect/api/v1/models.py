"""
Model selector endpoint.
"""

from typing import Any

from fastapi import APIRouter, Depends

from codeconnect.api.deps import get_model_catalog
from codeconnect.services.model_catalog import ModelCatalog

router = APIRouter()


@router.get("/models")
async def list_models(catalog: ModelCatalog = Depends(get_model_catalog)) -> dict[str, Any]:
    """Models offered in the chat model selector."""
    return {"success": True, "data": catalog.to_api()}
