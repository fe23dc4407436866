from typing import Optional

from pydantic import field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from .secrets_manager import SecretsManager

_secrets_manager: Optional[SecretsManager] = None

def _secrets(region_name: Optional[str]) -> SecretsManager:
    global _secrets_manager
    if _secrets_manager is None:
        _secrets_manager = SecretsManager(region_name=region_name)
    return _secrets_manager

class Settings(BaseSettings):
    app_mode: str = "development"
    use_aws_secrets: bool = False
    aws_region: str = "us-east-1"
    log_level: str = "INFO"

    # Embedded store used in development; production builds a PostgreSQL URL
    local_database_url: str = "sqlite+aiosqlite:///./patent_explorer.db"
    host: Optional[str] = None
    db_username: Optional[str] = None
    db_password: Optional[SecretStr] = None
    database: Optional[str] = None
    port: int = 5432

    supabase_jwt_secret: Optional[SecretStr] = None
    dev_user_id: str = "00000000-0000-0000-0000-000000000001"
    dev_user_email: str = "dev@localhost"

    ai_gateway_api_key: Optional[SecretStr] = None
    ai_gateway_base_url: str = "https://ai-gateway.vercel.sh/v1"
    openai_api_key: Optional[SecretStr] = None
    hosted_model: str = "gpt-5"
    ollama_base_url: str = "http://localhost:11434"
    lmstudio_base_url: str = "http://localhost:1234"
    local_probe_timeout_seconds: float = 3.0

    valyu_api_key: Optional[SecretStr] = None
    valyu_base_url: str = "https://api.valyu.network/v1"
    daytona_api_key: Optional[SecretStr] = None
    daytona_api_url: str = "https://app.daytona.io/api"
    daytona_target: Optional[str] = None

    polar_access_token: Optional[SecretStr] = None
    polar_webhook_secret: Optional[SecretStr] = None
    polar_unlimited_product_id: Optional[str] = None
    polar_pay_per_use_product_id: Optional[str] = None
    polar_api_url: str = "https://api.polar.sh/v1"

    statsd_host: str = "localhost"
    statsd_port: int = 8125

    anonymous_daily_limit: int = 5
    free_daily_limit: int = 20
    chat_max_steps: int = 10
    chat_max_duration_seconds: int = 800

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("db_username", "db_password", "ai_gateway_api_key", "openai_api_key", "valyu_api_key", "daytona_api_key", "polar_access_token", mode="before")
    @classmethod
    def load_secrets(cls, v, info):
        if info.data.get("app_mode") == "production" and info.data.get("use_aws_secrets"):
            try:
                resolved = _secrets(info.data.get("aws_region")).resolve(info.field_name)
                return resolved if resolved is not None else v
            except Exception:
                # Secrets Manager unavailable, keep the environment value
                return v
        return v

    @property
    def is_development(self) -> bool:
        return self.app_mode == "development"

    @property
    def database_url(self) -> str:
        if self.is_development:
            return self.local_database_url
        password = self.db_password.get_secret_value() if self.db_password else ""
        return f"postgresql+psycopg://{self.db_username}:{password}@{self.host}:{self.port}/{self.database}"

    @staticmethod
    def secret(value: Optional[SecretStr]) -> Optional[str]:
        """Unwrap an optional secret, treating blank values as missing."""
        if value is None:
            return None
        raw = value.get_secret_value()
        return raw or None

settings = Settings()
