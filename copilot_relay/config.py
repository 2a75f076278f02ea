# Configuration for the Copilot chat-completions relay

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Settings loaded from environment variables only.
    In Docker: variables are injected via the container environment.
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    # Credential acquisition
    GH_TOKEN: Optional[str] = Field(None, description="GitHub token used to obtain the Copilot token", alias="GH_TOKEN")
    GITHUB_API_BASE_URL: str = Field("https://api.github.com", alias="GITHUB_API_BASE_URL")

    # Upstream Copilot API
    ACCOUNT_TYPE: str = Field("individual", description="individual, business or enterprise", alias="ACCOUNT_TYPE")
    VSCODE_VERSION: str = Field("1.99.3", alias="VSCODE_VERSION")
    UPSTREAM_TIMEOUT: int = Field(30, description="Connect/write/pool timeout in seconds", alias="UPSTREAM_TIMEOUT")

    # Admission control
    RATE_LIMIT_SECONDS: Optional[float] = Field(None, description="Minimum seconds between requests", alias="RATE_LIMIT_SECONDS")
    RATE_LIMIT_WAIT: bool = Field(False, description="Wait instead of rejecting when rate limited", alias="RATE_LIMIT_WAIT")
    MANUAL_APPROVE: bool = Field(False, description="Ask on the console before each request", alias="MANUAL_APPROVE")

    # Gateway auth (optional - if not set, client endpoints are open)
    RELAY_API_KEY: Optional[str] = Field(None, description="API key for the relay", alias="RELAY_API_KEY")

    # Logging
    LOG_LEVEL: str = Field("INFO", alias="LOG_LEVEL")
    LOG_REQUEST_BODY_MAX_LENGTH: int = Field(4000, alias="LOG_REQUEST_BODY_MAX_LENGTH")

    # Server
    HOST: str = Field("0.0.0.0", alias="HOST")
    PORT: int = Field(4141, alias="PORT")

    @property
    def copilot_base_url(self) -> str:
        if self.ACCOUNT_TYPE == "individual":
            return "https://api.githubcopilot.com"
        return f"https://api.{self.ACCOUNT_TYPE}.githubcopilot.com"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def check_gateway_api_key(auth_header: Optional[str], settings: Optional[Settings] = None) -> bool:
    """
    Validate Authorization: Bearer <key> header.
    Always passes when no RELAY_API_KEY is configured.
    """
    s = settings or get_settings()
    if not s.RELAY_API_KEY:
        return True
    if not auth_header:
        return False
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return False
    return parts[1] == s.RELAY_API_KEY
