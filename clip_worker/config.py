"""Configuration constants, service settings, and .env loading.

WHY: Centralizes every value an operator may want to change (storage
bucket, ffmpeg location, time budgets, port) so they are easy to find and
override without touching pipeline code. Boundary, caption and render
tunables live in their own dataclasses in the core; Settings only bundles
them for one process.

HOW: python-dotenv loads the .env file on import. Service values are
module-level constants read with os.getenv. load_settings() assembles a
Settings dataclass; load_storage_credentials() gives a clear error when
the storage credentials are missing.

RULES:
- Credentials are loaded from .env via python-dotenv, never hardcoded
- SUPABASE_URL / SUPABASE_SERVICE_KEY are required only for publishing;
  local renders and the CLI work without them
- All defaults can be overridden via environment variables
- Malformed numeric variables fall back to their default with a warning
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv

from clip_worker.core.boundary import DEFAULT_POLICY, BoundaryPolicy
from clip_worker.core.captions import DEFAULT_STYLE, CaptionStyle
from clip_worker.render.plan import DEFAULT_ENCODE, DEFAULT_RENDER, EncodeSettings, RenderSettings

logger = logging.getLogger(__name__)

# Load .env from the working directory
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


# ---------------------------------------------------------------------------
# Service defaults
# ---------------------------------------------------------------------------

STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "videos")
STORAGE_PREFIX = os.getenv("STORAGE_PREFIX", "cuts")
FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
ENGINE_TIMEOUT_S = _env_float("ENGINE_TIMEOUT_S", 600.0)
DOWNLOAD_TIMEOUT_S = _env_float("DOWNLOAD_TIMEOUT_S", 300.0)
WATERMARK_PATH = os.getenv("WATERMARK_PATH") or None
WATERMARK_CACHE_DIR = os.getenv("WATERMARK_CACHE_DIR", ".watermark-cache")
PORT = _env_int("PORT", 3000)
# Origins allowed to call the API from a browser; every origin by default
CORS_ORIGIN_REGEX = os.getenv("CORS_ORIGIN_REGEX", ".*")


@dataclass(frozen=True)
class Settings:
    """Everything one pipeline run needs besides the request itself.

    RULES:
    - policy/caption_style/render/encode default to the core defaults
    - watermark_path is the default watermark when a request asks for one
      without naming a file
    """

    storage_bucket: str = "videos"
    storage_prefix: str = "cuts"
    ffmpeg_path: str = "ffmpeg"
    engine_timeout_s: float = 600.0
    download_timeout_s: float = 300.0
    watermark_path: Optional[str] = None
    watermark_cache_dir: str = ".watermark-cache"
    policy: BoundaryPolicy = field(default=DEFAULT_POLICY)
    caption_style: CaptionStyle = field(default=DEFAULT_STYLE)
    render: RenderSettings = field(default=DEFAULT_RENDER)
    encode: EncodeSettings = field(default=DEFAULT_ENCODE)


def load_settings() -> Settings:
    """Build Settings from the environment (after .env loading)."""
    return Settings(
        storage_bucket=STORAGE_BUCKET,
        storage_prefix=STORAGE_PREFIX,
        ffmpeg_path=FFMPEG_PATH,
        engine_timeout_s=ENGINE_TIMEOUT_S,
        download_timeout_s=DOWNLOAD_TIMEOUT_S,
        watermark_path=WATERMARK_PATH,
        watermark_cache_dir=WATERMARK_CACHE_DIR,
    )


def load_storage_credentials() -> Tuple[str, str]:
    """Load the Supabase project URL and service key from the environment.

    WHY: Publishing needs both values. Loading them from the environment
    (via .env) keeps the service key out of source code.

    HOW: Reads SUPABASE_URL and SUPABASE_SERVICE_KEY from os.environ.

    RULES:
    - Raises ValueError naming every missing variable
    - Never returns a default/placeholder value
    """
    url = os.getenv("SUPABASE_URL", "").strip()
    key = os.getenv("SUPABASE_SERVICE_KEY", "").strip()
    missing = [
        name for name, value in (("SUPABASE_URL", url), ("SUPABASE_SERVICE_KEY", key))
        if not value
    ]
    if missing:
        raise ValueError(
            "Storage not configured. Add {} to the .env file.".format(" and ".join(missing))
        )
    return url, key
