from fastapi import APIRouter

from ..settings import settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
async def health():
	return {
		"status": "ok",
		"llm_configured": bool(settings.azure_openai_api_key and settings.azure_openai_endpoint),
		"storage_configured": bool(settings.r2_worker_url),
	}
