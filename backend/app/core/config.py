# app/core/config.py
import json
from pathlib import Path
from typing import List, Optional, Tuple, Union
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings

def _env_file_candidates() -> Tuple[Union[str, Path], ...]:
    """Build a prioritized list of .env files for cross-platform support."""
    base_dir = Path(__file__).resolve().parent.parent
    project_root = base_dir.parent
    candidates: List[Union[str, Path]] = [
        base_dir / ".env",
        base_dir / ".env.local",
        project_root / ".env",
        project_root / ".env.local",
        ".env",
    ]

    unique_candidates: List[Union[str, Path]] = []
    seen = set()
    for candidate in candidates:
        key = str(candidate)
        if key in seen:
            continue
        seen.add(key)
        unique_candidates.append(candidate)
    return tuple(unique_candidates)


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Fluid User Testing"
    APP_ENV: str = "dev"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    RELOAD: bool = True
    LOG_LEVEL: str = "info"
    PROXY_HEADERS: bool = True
    FORWARDED_ALLOW_IPS: str = "*"

    # Cron sweep bearer secret
    CRON_SECRET: str = ""

    # Base URL the scheduler uses to call back into this service.
    # Empty means scheduled runs execute in-process.
    APP_BASE_URL: str = Field(
        default="",
        validation_alias=AliasChoices("APP_BASE_URL", "NEXT_PUBLIC_APP_URL"),
    )

    # Fluid API
    FLUID_DOMAIN: str = "fluid.app"
    FLUID_PUBLIC_API_VERSION: str = "v2025-06"
    FLUID_REQUEST_TIMEOUT: float = 30.0
    FLUID_REFUND_MODE: str = "simulated"  # simulated | http
    FLUID_AUTH_MODE: str = "simulated"  # simulated | http
    SIMULATED_DELAY_SCALE: float = 1.0

    # Product purchase scenario
    PURCHASE_SDK_ENABLED: bool = False
    PURCHASE_SDK_WAIT_SECONDS: float = 5.0

    # Storage and catalog paging
    MAX_RESULTS_PER_COMPANY: int = 1000
    PRODUCT_PAGE_SIZE: int = 100
    PRODUCT_MAX_PAGES: int = 50

    # Scheduler
    SCHEDULER_TIMERS_ENABLED: bool = True
    SCHEDULER_REQUEST_TIMEOUT: float = 120.0

    # CORS
    CORS_ORIGINS: List[str] = []
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_MAX_AGE: int = 600
    CORS_EXPOSE_HEADERS: List[str] = ["X-Request-ID"]
    CORS_METHODS: List[str] = ["GET", "POST", "OPTIONS"]
    CORS_HEADERS: List[str] = ["Authorization", "Content-Type", "Accept", "Origin", "X-Requested-With"]

    @field_validator("CORS_ORIGINS", "CORS_EXPOSE_HEADERS", mode="before")
    @classmethod
    def parse_cors_list(cls, v):
        """Parse CORS-related list fields from string or list"""
        if v is None or v == "":
            return []
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    return json.loads(s)
                except json.JSONDecodeError:
                    return []
            return [p.strip() for p in s.split(",") if p.strip()]
        return v or []

    @field_validator("FLUID_REFUND_MODE", "FLUID_AUTH_MODE")
    @classmethod
    def check_gateway_mode(cls, v: str) -> str:
        mode = (v or "").strip().lower()
        if mode not in {"simulated", "http"}:
            raise ValueError("Gateway mode must be 'simulated' or 'http'")
        return mode

    @field_validator("APP_BASE_URL")
    @classmethod
    def strip_base_url(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @model_validator(mode="after")
    def enforce_production_security(self):
        env = (self.APP_ENV or "").lower()
        if env in {"prod", "production", "staging"}:
            if not self.CRON_SECRET:
                raise ValueError("CRON_SECRET must be set for production/staging.")
            if (self.FORWARDED_ALLOW_IPS or "").strip() == "*":
                raise ValueError("FORWARDED_ALLOW_IPS cannot be '*' in production/staging.")
        return self

    @property
    def is_production(self) -> bool:
        return (self.APP_ENV or "").lower() in {"prod", "production"}

    model_config = {
        "env_file": _env_file_candidates(),
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "ignore",
    }

settings = Settings()
__all__ = ["settings"]
