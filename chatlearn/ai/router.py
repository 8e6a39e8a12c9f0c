from fastapi import APIRouter

from . import catalog

router = APIRouter(tags=["models"])


@router.get("/models")
async def list_models():
    """Chat models users can pick from"""
    return {"models": [m.to_dict() for m in catalog.list_models()]}
