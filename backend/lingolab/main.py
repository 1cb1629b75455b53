import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .auth_provider import AuthProviderError
from .db import init_db
from .llm_client import LLMError
from .settings import settings
from .storage import StorageUploadError
from .routers import health
from .routers import auth
from .routers import listen
from .routers import read
from .routers import write
from .routers import conversation
from .routers import audio
from .routers import webhooks
from .routers import dashboard


def configure_logging() -> None:
	logger = logging.getLogger("lingolab")
	if not logger.handlers:
		handler = logging.StreamHandler()
		handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
		logger.addHandler(handler)
	logger.setLevel(settings.log_level.upper())


configure_logging()
logger = logging.getLogger("lingolab.app")

app = FastAPI(title="LingoLab API")
app.add_middleware(
	CORSMiddleware,
	allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
	allow_methods=["*"],
	allow_headers=["*"],
	expose_headers=["X-Conversation-Id"],
)
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(listen.router)
app.include_router(read.router)
app.include_router(write.router)
app.include_router(conversation.router)
app.include_router(audio.router)
app.include_router(webhooks.router)
app.include_router(dashboard.router)


@app.exception_handler(HTTPException)
async def http_error(request: Request, exc: HTTPException):
	# Dict details already carry "error" (and maybe "details"); strings become {"error": ...}
	body = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
	return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(LLMError)
@app.exception_handler(StorageUploadError)
@app.exception_handler(AuthProviderError)
async def upstream_error(request: Request, exc: Exception):
	logger.error("[upstream] %s %s failed: %s", request.method, request.url.path, exc)
	return JSONResponse(status_code=500, content={"error": "Upstream service failed", "details": str(exc)})


@app.on_event("startup")
async def startup_event():
	init_db()
