from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    service_name: str = Field("clawdbot-proxy", alias="SERVICE_NAME")
    host: str = Field("0.0.0.0", alias="PROXY_HOST")
    port: int = Field(3002, alias="PROXY_PORT")

    # Browser origins allowed to open a session socket. An empty Origin
    # header (curl, server-side tooling) is always accepted.
    allowed_origins_raw: str = Field(
        "http://localhost:3000,http://localhost:3001",
        alias="ALLOWED_ORIGINS",
        description="Comma-separated list of allowed WebSocket origins",
    )

    # Subscription / usage store. Leave empty to disable managed mode.
    redis_url: str = Field(
        "redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Redis connection URL, e.g. 'redis://redis:6379/0'",
    )

    # HTTP timeouts (seconds). Each upstream call carries its own ceiling.
    upstream_timeout: float = Field(60.0, alias="UPSTREAM_TIMEOUT")
    search_timeout: float = Field(15.0, alias="SEARCH_TIMEOUT")
    max_output_tokens: int = Field(4096, alias="MAX_OUTPUT_TOKENS")

    # In-memory session lifecycle.
    session_idle_timeout: float = Field(30 * 60, alias="SESSION_IDLE_TIMEOUT")
    session_sweep_interval: float = Field(5 * 60, alias="SESSION_SWEEP_INTERVAL")
    session_max_messages: int = Field(100, alias="SESSION_MAX_MESSAGES", ge=1)

    # Server-held credentials for managed mode (2-key setup).
    managed_anthropic_key: Optional[str] = Field(None, alias="MANAGED_ANTHROPIC_KEY")
    managed_openrouter_key: Optional[str] = Field(None, alias="MANAGED_OPENROUTER_KEY")

    # Web search tool.
    brave_api_key: Optional[str] = Field(None, alias="BRAVE_API_KEY")
    search_result_count: int = Field(5, alias="SEARCH_RESULT_COUNT", ge=1, le=20)

    # Full upstream endpoint URLs (not SDK-style base URLs); overridable for
    # self-hosted gateways.
    anthropic_messages_url: str = Field(
        "https://api.anthropic.com/v1/messages", alias="ANTHROPIC_MESSAGES_URL"
    )
    openai_chat_url: str = Field(
        "https://api.openai.com/v1/chat/completions", alias="OPENAI_CHAT_URL"
    )
    openrouter_chat_url: str = Field(
        "https://openrouter.ai/api/v1/chat/completions", alias="OPENROUTER_CHAT_URL"
    )
    kimi_chat_url: str = Field(
        "https://api.moonshot.cn/v1/chat/completions", alias="KIMI_CHAT_URL"
    )
    deepseek_chat_url: str = Field(
        "https://api.deepseek.com/chat/completions", alias="DEEPSEEK_CHAT_URL"
    )
    brave_search_url: str = Field(
        "https://api.search.brave.com/res/v1/web/search", alias="BRAVE_SEARCH_URL"
    )

    # Application log level for our clawproxy logger.
    # Can be overridden via LOG_LEVEL env var, e.g. "DEBUG" while debugging.
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Application log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_timezone: Optional[str] = Field(
        default=None,
        alias="LOG_TIMEZONE",
        description="Timezone name for log timestamps, e.g. 'Asia/Shanghai'. Defaults to system local time.",
    )
    log_dir: str = Field("logs", alias="LOG_DIR")
    log_backup_count: int = Field(7, alias="LOG_BACKUP_COUNT", ge=0)

    def get_allowed_origins(self) -> List[str]:
        """
        Return configured origins from ALLOWED_ORIGINS.
        Whitespace is stripped and empty entries are ignored.
        """
        if not self.allowed_origins_raw:
            return []
        return [
            item.strip()
            for item in self.allowed_origins_raw.split(",")
            if item.strip()
        ]


settings = Settings()  # Reads from environment if available


__all__ = ["Settings", "settings"]
