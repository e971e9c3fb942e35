from fastapi import APIRouter, Depends

from studybuddy.core.config import Settings
from studybuddy.core.deps import get_settings_dep

router = APIRouter(tags=["system"])


def _completion_backend(s: Settings) -> str:
    if s.COMPLETION_URL:
        return "endpoint"
    if s.OPENAI_API_KEY:
        return "openai"
    return "none"


@router.get("/health")
async def health(s: Settings = Depends(get_settings_dep)):
    return {
        "status": "ok",
        "version": s.APP_VERSION,
        "completion": _completion_backend(s),
        "extraction": "endpoint" if s.EXTRACTION_URL else "local-pdf",
    }


@router.get("/version")
async def version(s: Settings = Depends(get_settings_dep)):
    return {"name": s.APP_NAME, "version": s.APP_VERSION, "env": s.APP_ENV}
