# config/settings.py
"""
Runtime settings for the rankings service.

Everything is read from the environment (a local .env file is honoured via
python-dotenv). Defaults reproduce the public Binance deployment.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_PAGE_URL = "https://www.binance.com/es/markets/trading_data/rankings"
DEFAULT_PRICES_URL = "https://api.binance.com/api/v3/ticker/price"
DEFAULT_CHANGES_URL = "https://api.binance.com/api/v3/ticker/24hr"
DEFAULT_CATEGORY_LABELS = ("Populares", "Ganadores", "Perdedores", "MayorVolumen")

OVERFLOW_TRUNCATE = "truncate"
OVERFLOW_EXTRA = "extra"


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(_env_str(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env_str(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    items = tuple(part.strip() for part in raw.split(",") if part.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080

    # refresh loop
    refresh_interval_sec: float = 5.0
    refresh_timeout_sec: float = 60.0
    refresh_on_startup: bool = True

    # outbound fetches
    http_timeout_sec: float = 10.0
    page_url: str = DEFAULT_PAGE_URL
    allowed_domains: Tuple[str, ...] = ("www.binance.com",)
    prices_url: str = DEFAULT_PRICES_URL
    changes_url: str = DEFAULT_CHANGES_URL

    # image assets
    public_base_url: str = "http://localhost:8080"
    images_dir: str = "images"
    images_route: str = "/images"
    image_concurrency: int = 8

    # categorization
    category_labels: Tuple[str, ...] = DEFAULT_CATEGORY_LABELS
    bucket_size: int = 10
    overflow_policy: str = OVERFLOW_TRUNCATE
    overflow_label: str = "Otros"
    symbol_suffix: str = "USDT"

    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))

    def __post_init__(self) -> None:
        if self.bucket_size <= 0:
            raise ValueError("bucket_size must be positive")
        if self.refresh_interval_sec <= 0:
            raise ValueError("refresh_interval_sec must be positive")
        if self.overflow_policy not in (OVERFLOW_TRUNCATE, OVERFLOW_EXTRA):
            raise ValueError(f"unknown overflow_policy: {self.overflow_policy!r}")
        if not self.category_labels:
            raise ValueError("category_labels must not be empty")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            host=_env_str("HOST", cls.host),
            port=_env_int("PORT", cls.port),
            refresh_interval_sec=_env_float("REFRESH_INTERVAL_SEC", cls.refresh_interval_sec),
            refresh_timeout_sec=_env_float("REFRESH_TIMEOUT_SEC", cls.refresh_timeout_sec),
            refresh_on_startup=_env_bool("REFRESH_ON_STARTUP", cls.refresh_on_startup),
            http_timeout_sec=_env_float("HTTP_TIMEOUT_SEC", cls.http_timeout_sec),
            page_url=_env_str("RANKINGS_PAGE_URL", cls.page_url),
            allowed_domains=_env_list("RANKINGS_ALLOWED_DOMAINS", cls.allowed_domains),
            prices_url=_env_str("PRICES_URL", cls.prices_url),
            changes_url=_env_str("CHANGES_URL", cls.changes_url),
            public_base_url=_env_str("PUBLIC_BASE_URL", cls.public_base_url).rstrip("/"),
            images_dir=_env_str("IMAGES_DIR", cls.images_dir),
            images_route="/" + _env_str("IMAGES_ROUTE", cls.images_route).strip("/"),
            image_concurrency=max(1, _env_int("IMAGE_CONCURRENCY", cls.image_concurrency)),
            category_labels=_env_list("CATEGORY_LABELS", DEFAULT_CATEGORY_LABELS),
            bucket_size=_env_int("BUCKET_SIZE", cls.bucket_size),
            overflow_policy=_env_str("OVERFLOW_POLICY", cls.overflow_policy).lower(),
            overflow_label=_env_str("OVERFLOW_LABEL", cls.overflow_label),
            symbol_suffix=_env_str("SYMBOL_SUFFIX", cls.symbol_suffix).upper(),
            cors_origins=_env_list("CORS_ORIGINS", ("*",)),
        )
