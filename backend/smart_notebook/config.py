"""smart_notebook/config.py

Runtime settings read from the environment (and an optional ``.env`` file).
"""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Settings(BaseModel):
    openai_api_key: Optional[str] = None
    openai_model_name: str = "gpt-4o-mini"
    api_url: str = "http://localhost:8001"

    analysis_interval_s: float = Field(default=10.0, gt=0)
    idle_threshold_s: float = Field(default=60.0, gt=0)
    dedup_radius: float = Field(default=150.0, ge=0)
    request_timeout_s: float = Field(default=30.0, gt=0)
    manual_trigger_only: bool = False
    fallback_extent: float = Field(default=500.0, gt=0)
    snapshot_padding: float = Field(default=20.0, ge=0)
    fix_math_markup: bool = True

    cors_origins: List[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.environ.get("NOTEBOOK_CORS_ORIGINS", "http://localhost:3000")
        return cls(
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            openai_model_name=os.environ.get("OPENAI_MODEL_NAME", "gpt-4o-mini"),
            api_url=os.environ.get("NOTEBOOK_API_URL", "http://localhost:8001"),
            analysis_interval_s=float(os.environ.get("NOTEBOOK_ANALYSIS_INTERVAL_S", 10)),
            idle_threshold_s=float(os.environ.get("NOTEBOOK_IDLE_THRESHOLD_S", 60)),
            dedup_radius=float(os.environ.get("NOTEBOOK_DEDUP_RADIUS", 150)),
            request_timeout_s=float(os.environ.get("NOTEBOOK_REQUEST_TIMEOUT_S", 30)),
            manual_trigger_only=_env_bool("NOTEBOOK_MANUAL_TRIGGER_ONLY", False),
            fallback_extent=float(os.environ.get("NOTEBOOK_FALLBACK_EXTENT", 500)),
            snapshot_padding=float(os.environ.get("NOTEBOOK_SNAPSHOT_PADDING", 20)),
            fix_math_markup=_env_bool("NOTEBOOK_FIX_MATH_MARKUP", True),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings.from_env()
