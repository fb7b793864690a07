from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Bypasses RLS for membership/catalog reads when set

    # Redis (decision cache backend)
    redis_url: Optional[str] = None

    # Auth (verified-token cache)
    auth_cache_ttl_seconds: int = 60
    auth_cache_max_size: int = 500

    # RBAC
    rbac_catalog_source: str = "supabase"  # supabase | config
    rbac_cache_backend: str = "memory"  # memory | redis | none
    rbac_cache_ttl_seconds: int = 300
    rbac_cache_prefix: str = "rbac"
    rbac_lookup_workers: int = 8

    # App
    app_name: str = "boards-rbac-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

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
