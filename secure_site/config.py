"""Server settings and environment loading utilities."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

INDEX_FILE = "index.html"

ALLOWED_FILES: Tuple[str, ...] = (
    "index.html",
    "emergency.html",
    "contact.html",
    "about.html",
    "services.html",
    "locations.html",
    "pricing.html",
    "booking.html",
    "careers.html",
    "mobile-fitting.html",
    "puncture-repair.html",
    "privacy.html",
    "terms.html",
    "sitemap.html",
    "emergency-service-worker.js",
)

ASSET_PREFIXES: Tuple[str, ...] = ("assets/", "images/")

PRODUCTION_ORIGINS: Tuple[str, ...] = ("https://tyrehero.com", "https://www.tyrehero.com")
DEVELOPMENT_ORIGINS: Tuple[str, ...] = ("http://localhost:3000", "http://127.0.0.1:3000")


def _load_dotenv() -> None:
    env_path = Path(".env")
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


_load_dotenv()


def _int_from_env(name: str, default: int) -> int:
    raw: Optional[str] = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"Environment variable {name} must be an integer, got: {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"Environment variable {name} must be positive, got: {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime configuration derived from environment variables."""

    document_root: Path
    host: str = "127.0.0.1"
    port: int = 3000
    environment: str = "development"
    index_file: str = INDEX_FILE
    allowed_files: Tuple[str, ...] = ALLOWED_FILES
    asset_prefixes: Tuple[str, ...] = ASSET_PREFIXES
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 60
    rate_limit_sweep_seconds: int = 60

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise RuntimeError(f"PORT must be in [1, 65535], got: {self.port}")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def allowed_origins(self) -> Tuple[str, ...]:
        return PRODUCTION_ORIGINS if self.is_production else DEVELOPMENT_ORIGINS

    @classmethod
    def from_env(cls) -> "Settings":
        root = Path(os.getenv("SITE_ROOT") or os.getcwd()).absolute()
        return cls(
            document_root=root,
            host=os.getenv("HOST") or "127.0.0.1",
            port=_int_from_env("PORT", 3000),
            environment=(os.getenv("NODE_ENV") or "development").strip().lower(),
            rate_limit_requests=_int_from_env("RATE_LIMIT_REQUESTS", 100),
            rate_limit_window_seconds=_int_from_env("RATE_LIMIT_WINDOW_SECONDS", 60),
            rate_limit_sweep_seconds=_int_from_env("RATE_LIMIT_SWEEP_SECONDS", 60),
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached server settings."""

    return Settings.from_env()
