from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# Azure OpenAI (chat, structured evaluation and TTS deployments share one resource)
	azure_openai_endpoint: str | None = Field(default=None, validation_alias="AZURE_OPENAI_ENDPOINT")
	azure_openai_api_key: str | None = Field(default=None, validation_alias="AZURE_OPENAI_API_KEY")
	azure_openai_api_version: str = Field(default="2025-03-01-preview", validation_alias="AZURE_OPENAI_API_VERSION")
	azure_openai_chat_deployment: str = Field(default="gpt-5-chat", validation_alias="AZURE_OPENAI_CHAT_DEPLOYMENT")
	azure_openai_eval_deployment: str = Field(default="o4-mini", validation_alias="AZURE_OPENAI_EVAL_DEPLOYMENT")
	azure_openai_tts_deployment: str = Field(default="gpt-4o-mini-tts", validation_alias="AZURE_OPENAI_TTS_DEPLOYMENT")
	azure_openai_tts_voice: str = Field(default="alloy", validation_alias="AZURE_OPENAI_TTS_VOICE")
	llm_timeout_seconds: float = Field(default=60.0, validation_alias="LLM_TIMEOUT_SECONDS")

	# Audio storage worker (R2)
	r2_worker_url: str | None = Field(default=None, validation_alias="R2_WORKER_URL")
	r2_public_url: str | None = Field(default=None, validation_alias="R2_PUBLIC_URL")
	r2_api_token: str | None = Field(default=None, validation_alias="R2_API_TOKEN")
	# Rows written before full URLs were stored only hold a file name under this host
	legacy_audio_base_url: str = Field(default="https://examaudio.tslfiles.org", validation_alias="LEGACY_AUDIO_BASE_URL")

	# Auth provider (Clerk backend API + webhook signing secret)
	clerk_secret_key: str | None = Field(default=None, validation_alias="CLERK_SECRET_KEY")
	clerk_api_url: str = Field(default="https://api.clerk.com/v1", validation_alias="CLERK_API_URL")
	clerk_webhook_secret: str | None = Field(default=None, validation_alias="CLERK_WEBHOOK_SECRET")

	# Session tokens
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")

	# Shared secret for the WhatsApp bridge; unset disables the bypass
	whatsapp_service_token: str | None = Field(default=None, validation_alias="WHATSAPP_SERVICE_TOKEN")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
	cors_origins: str = Field(default="http://localhost:3000", validation_alias="CORS_ORIGINS")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
