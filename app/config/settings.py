from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Background pollers write with this key (RLS bypass)

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_user_agent: str = "Shipdeck-Deploy/1.0.0"

    # Vercel
    vercel_api_url: str = "https://api.vercel.com"
    vercel_team_id: Optional[str] = None
    hosting_domain: str = "vercel.app"
    default_framework: str = "nextjs"

    # Deployments
    default_template_repo: str = "lacymorrow/shipkit"
    http_timeout_seconds: float = 30.0
    deployment_poll_attempts: int = 20
    deployment_poll_interval_seconds: float = 3.0
    stale_deployment_minutes: int = 10
    poller_max_workers: int = 8

    # App
    app_name: str = "shipdeck-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"
    deployment_create_rate_limit: str = "10/hour"  # per user, limits format
    rate_limit_storage_uri: str = "memory://"  # or redis://host:6379

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
