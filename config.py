from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Founder Funding API"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./founder_funding.db"
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # Outreach email provider
    platform_name: str = "Sintracap"
    email_api_url: str | None = None
    email_api_key: str | None = None
    email_from: str = "Sintracap <support@sintracap.com>"
    email_timeout_seconds: float = 120.0
    email_send_delay_seconds: float = 1.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
