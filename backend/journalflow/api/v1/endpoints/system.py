from fastapi import APIRouter

from journalflow.core.config import app_config

router = APIRouter(tags=["System"])


@router.get("/system/health")
async def health():
    return {"status": "ok", "env": app_config.env}
