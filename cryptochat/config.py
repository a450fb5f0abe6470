from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from dotenv import load_dotenv

from cryptochat.derivation.engine import DerivationPolicy

load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(slots=True)
class Settings:
    """Central configuration driven by environment variables."""

    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    request_timeout_seconds: float = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))
    pause_ms_between_same_vendor: int = int(os.getenv("PAUSE_MS_BETWEEN_SAME_VENDOR", "15000"))

    data_dir: Path = field(default_factory=lambda: Path(os.getenv("DATA_DIR", "./data")))
    storage_prefix: str = os.getenv("STORAGE_PREFIX", "crypto")
    persist_fetched_data: bool = _env_flag("PERSIST_FETCHED_DATA", "true")
    include_data_in_response: bool = _env_flag("INCLUDE_DATA_IN_RESPONSE", "true")

    app_password: str | None = os.getenv("APP_PASSWORD")
    session_max_age_seconds: int = int(os.getenv("SESSION_MAX_AGE_SECONDS", str(7 * 24 * 60 * 60)))
    cookie_secure: bool = _env_flag("COOKIE_SECURE", "false")

    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    volatility_threshold_usd: float = float(os.getenv("VOLATILITY_THRESHOLD_USD", "50"))
    hype_rank_threshold: int = int(os.getenv("HYPE_RANK_THRESHOLD", "100"))
    moonshot_rank_threshold: int = int(os.getenv("MOONSHOT_RANK_THRESHOLD", "500"))

    def ensure_paths(self) -> None:
        """Create expected directories if they do not exist."""
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)

    @property
    def snapshot_dir(self) -> Path:
        return self.data_dir / self.storage_prefix

    @property
    def pause_seconds_between_same_vendor(self) -> float:
        return max(0, self.pause_ms_between_same_vendor) / 1000

    def derivation_policy(self) -> DerivationPolicy:
        return DerivationPolicy(
            volatility_threshold_usd=self.volatility_threshold_usd,
            hype_rank_threshold=self.hype_rank_threshold,
            moonshot_rank_threshold=self.moonshot_rank_threshold,
        )


# Singleton-style settings import
settings: Final[Settings] = Settings()
settings.ensure_paths()
