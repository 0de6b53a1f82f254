"""Configuration objects and constants for the media-link engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from typing import Tuple

logger = logging.getLogger("media_links")

# Template tags occupy slots [0, 50); manual tags are numbered after them.
DEFAULT_RESERVED_TEMPLATE_SLOTS = 50
DEFAULT_MAX_COUNT = 50
DEFAULT_PREVIEW_COUNT = 4

DEFAULT_MIN_DIMENSION = 150
DEFAULT_MIN_SIZE_BYTES = 20 * 1024
DEFAULT_ESTIMATE_QUALITY = 80
DEFAULT_VALIDATION_TIMEOUT = 5.0
DEFAULT_FETCH_TIMEOUT = 15.0
DEFAULT_MAX_WORKERS = 32
MAX_IMAGE_BYTES = 10 * 1024 * 1024

PLACEHOLDER_URL_PATTERNS: Tuple[str, ...] = (
    "pics.dmm.com/mono/movie/n/now_printing/now_printing.jpg",
    "/n/now_printing/",
    "now_printing.jpg",
    "now_printing.png",
    "now_printing.jpeg",
    "now_printing.webp",
    "now_printing",
    "now-printing",
    "/now_printing/",
    "/nowprinting/",
    "nowprinting",
    "no-image",
    "placeholder",
    "404.not.found.svg",
    "404notfound",
    "404-not-found",
    "404_not_found",
    "/404/",
    "notfound",
    "not_found",
    "not-found",
    "e.ugj.net/404",
    ".svg",
)

PLACEHOLDER_FILENAMES: Tuple[str, ...] = (
    "now_printing.jpg",
    "now_printing.jpeg",
    "now_printing.png",
    "now_printing.webp",
    "nowprinting.jpg",
    "now-printing.jpg",
    "placeholder.jpg",
    "no-image.jpg",
)

_ENV_PREFIX = "MEDIA_LINKS_"


@dataclass
class EngineConfig:
    """Tunable thresholds and limits shared by the validator, merger and ledger."""

    reserved_template_slots: int = DEFAULT_RESERVED_TEMPLATE_SLOTS
    max_count: int = DEFAULT_MAX_COUNT
    preview_count: int = DEFAULT_PREVIEW_COUNT
    min_dimension: int = DEFAULT_MIN_DIMENSION
    min_size_bytes: int = DEFAULT_MIN_SIZE_BYTES
    estimate_quality: int = DEFAULT_ESTIMATE_QUALITY
    validation_timeout: float = DEFAULT_VALIDATION_TIMEOUT
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    max_image_bytes: int = MAX_IMAGE_BYTES
    placeholder_patterns: Tuple[str, ...] = PLACEHOLDER_URL_PATTERNS

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config, applying ``MEDIA_LINKS_<FIELD>`` overrides when present."""
        config = cls()
        for field in fields(cls):
            if field.name == "placeholder_patterns":
                continue
            env_var = _ENV_PREFIX + field.name.upper()
            raw = os.getenv(env_var)
            if not raw:
                continue
            caster = float if isinstance(getattr(config, field.name), float) else int
            try:
                value = caster(raw)
            except ValueError:
                logger.warning(
                    "%s is set to %r which is not a valid %s; keeping %s",
                    env_var,
                    raw,
                    caster.__name__,
                    getattr(config, field.name),
                )
                continue
            logger.debug("%s override detected: %s", env_var, value)
            setattr(config, field.name, value)
        return config


DEFAULT_CONFIG = EngineConfig()
