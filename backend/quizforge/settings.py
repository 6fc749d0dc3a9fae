from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Provider can be "vertex" (Vertex AI Express) or "ai_studio" (Generative Language API)
	gemini_provider: str = Field(default="ai_studio", validation_alias="GEMINI_PROVIDER")
	# Default model when a caller does not name one
	gemini_model: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_MODEL")
	# Vertex configuration
	vertex_region: str = Field(default="us-central1", validation_alias="GEMINI_VERTEX_REGION")
	vertex_project: str | None = Field(default=None, validation_alias="GEMINI_VERTEX_PROJECT")

	# Local model fallback (Ollama HTTP API)
	local_fallback_enabled: bool = Field(default=True, validation_alias="LOCAL_FALLBACK_ENABLED")
	ollama_base_url: str = Field(default="http://localhost:11434", validation_alias="OLLAMA_BASE_URL")
	ollama_model: str = Field(default="llama3", validation_alias="OLLAMA_MODEL")

	# Quiz session security
	quiz_secret_key: str | None = Field(default=None, validation_alias="QUIZ_SECRET_KEY")
	quiz_grace_period_seconds: int = Field(default=5, validation_alias="QUIZ_GRACE_PERIOD_SECONDS")
	quiz_default_time_limit_seconds: int = Field(default=600, validation_alias="QUIZ_DEFAULT_TIME_LIMIT_SECONDS")

	# Transient-error retry policy
	retry_max_attempts: int = Field(default=3, validation_alias="RETRY_MAX_ATTEMPTS")
	retry_base_delay_seconds: float = Field(default=2.0, validation_alias="RETRY_BASE_DELAY_SECONDS")
	retry_max_delay_seconds: float = Field(default=30.0, validation_alias="RETRY_MAX_DELAY_SECONDS")
	retry_jitter: bool = Field(default=False, validation_alias="RETRY_JITTER")

	# Generation pipeline
	stage_max_retries: int = Field(default=2, validation_alias="STAGE_MAX_RETRIES")
	stage_retry_delay_seconds: float = Field(default=1.0, validation_alias="STAGE_RETRY_DELAY_SECONDS")
	fact_check_batch_size: int = Field(default=5, validation_alias="FACT_CHECK_BATCH_SIZE")
	request_timeout_seconds: float = Field(default=60.0, validation_alias="REQUEST_TIMEOUT_SECONDS")
	pipeline_timeout_seconds: float | None = Field(default=None, validation_alias="PIPELINE_TIMEOUT_SECONDS")

	# Session storage: "sql" or "memory"
	session_backend: str = Field(default="sql", validation_alias="SESSION_BACKEND")
	session_sweep_interval_seconds: int = Field(default=900, validation_alias="SESSION_SWEEP_INTERVAL_SECONDS")

	# Usage accounting
	usd_to_inr: float = Field(default=88.58, validation_alias="USD_TO_INR")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

settings = Settings()
