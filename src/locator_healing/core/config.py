from pydantic_settings import BaseSettings
from pydantic import Field, validator
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # AI backend (Ollama) configuration
    OLLAMA_BASE_URL: str = Field(default="http://localhost:11434", description="Base URL of the Ollama HTTP API")
    OLLAMA_MODEL: str = Field(default="llama3", description="Model used for selector suggestions")
    OLLAMA_TIMEOUT: int = Field(default=120, description="Timeout for generation calls (in seconds)")
    OLLAMA_HEALTH_TIMEOUT: int = Field(default=5, description="Timeout for the health probe (in seconds)")
    OLLAMA_MAX_RETRIES: int = Field(default=3, description="Retries for transient AI backend failures")
    OLLAMA_RETRY_DELAY_MS: int = Field(default=1000, description="Base delay for exponential backoff (in milliseconds)")

    # Self-healing configuration
    SELF_HEALING_ENABLED: bool = Field(default=True, description="Enable/disable healing between retries")
    SELF_HEALING_CONFIG_PATH: str = Field(default="config/self_healing.yaml", description="Path to the self-healing YAML file")

    # Persisted state
    LOCATOR_CACHE_PATH: str | None = Field(default=None, description="Overrides the strategy cache file from the YAML config")
    SELECTOR_REGISTRY_DIR: str | None = Field(default=None, description="Overrides the registry directory from the YAML config")

    LOG_LEVEL: str = Field(default="INFO", description="Log level for the healing loggers")

    @validator('OLLAMA_BASE_URL')
    def validate_base_url(cls, v):
        """Validate that OLLAMA_BASE_URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"OLLAMA_BASE_URL must start with http:// or https://, got '{v}'")
        return v.rstrip("/")

    @validator('OLLAMA_TIMEOUT', 'OLLAMA_HEALTH_TIMEOUT')
    def validate_timeouts(cls, v):
        """Validate that timeouts are positive."""
        if v <= 0:
            raise ValueError(f"Timeouts must be positive, got {v}")
        return v

    @validator('OLLAMA_MAX_RETRIES')
    def validate_max_retries(cls, v):
        """Validate that OLLAMA_MAX_RETRIES is between 0 and 10."""
        if v < 0 or v > 10:
            raise ValueError(f"OLLAMA_MAX_RETRIES must be between 0 and 10, got {v}")
        return v

    @validator('OLLAMA_RETRY_DELAY_MS')
    def validate_retry_delay(cls, v):
        """Validate that OLLAMA_RETRY_DELAY_MS is not negative."""
        if v < 0:
            raise ValueError(f"OLLAMA_RETRY_DELAY_MS must not be negative, got {v}")
        return v

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Validate that LOG_LEVEL is a standard logging level name."""
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got '{v}'")
        return v.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'allow'  # Allow extra fields from .env file

settings = Settings()
