from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # Rollout client credentials (fallback when the session has none)
    ROLLOUT_CLIENT_ID: str = ""
    ROLLOUT_CLIENT_SECRET: str = ""
    ROLLOUT_CONSUMER_KEY: str = "demo-consumer"
    ROLLOUT_TOKEN_TTL_SECS: int = 60 * 60

    # Rollout API endpoints
    ROLLOUT_API_BASE: str = "https://universal.rollout.com/api"
    ROLLOUT_CRM_API_BASE: str = "https://crm.universal.rollout.com/api"
    ROLLOUT_REQUEST_TIMEOUT: float = 30.0

    # =================================================================
    # PERSON LOOKUP BOUNDS
    # =================================================================
    PERSON_RECORDS_LIMIT: int = 25
    MAX_PAGINATED_REQUESTS: int = 5

    # Session cookie
    SESSION_SECRET: str = "rollout-demo-secret"
    SESSION_MAX_AGE_SECS: int = 60 * 60 * 12
    # Fernet key for secrets stored in the session; derived from SESSION_SECRET when unset
    SESSION_ENCRYPTION_KEY: str | None = None

    # Comma separated list of browser origins
    ALLOWED_ORIGINS: str = "http://localhost:5173"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def allowed_origins(self) -> list[str]:
        """Split ALLOWED_ORIGINS into a clean list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    def default_client_credentials(self) -> tuple[str, str] | None:
        """Environment client id/secret pair, or None if either is blank."""
        client_id = self.ROLLOUT_CLIENT_ID.strip()
        client_secret = self.ROLLOUT_CLIENT_SECRET.strip()
        if client_id and client_secret:
            return client_id, client_secret
        return None

    def session_cookie_secure(self) -> bool:
        return self.environment == "production"


settings = Settings()
