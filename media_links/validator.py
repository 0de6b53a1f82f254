"""Best-effort detection of placeholder ("now printing") gallery images."""

from __future__ import annotations

import asyncio
import io
import logging
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, List, Optional, Protocol, Sequence

import requests
from filetype import guess
from PIL import Image

from .config import DEFAULT_CONFIG, PLACEHOLDER_FILENAMES, EngineConfig
from .models import Dimensions, LoadedImage, TemplateContext, ValidationResult, Verdict
from .template import DIGIT_RUN_PATTERN, expand, find_digit_run, max_index

logger = logging.getLogger("media_links")

SizeEstimator = Callable[[LoadedImage], Optional[int]]


class ImageLoadError(Exception):
    """Raised by loaders when an image cannot be fetched or decoded."""


class ImageLoader(Protocol):
    def load(self, url: str) -> LoadedImage:
        ...


def match_placeholder_pattern(
    url: str,
    patterns: Sequence[str] = DEFAULT_CONFIG.placeholder_patterns,
) -> Optional[str]:
    """Return the first denylist pattern found in the lowercased URL."""
    lowered = (url or "").lower()
    for pattern in patterns:
        if pattern in lowered:
            return pattern
    return None


def is_placeholder_url(url: str) -> bool:
    return match_placeholder_pattern(url) is not None


def has_placeholder_filename(url: str) -> bool:
    filename = (url or "").rstrip("/").split("/")[-1].lower()
    return any(name in filename for name in PLACEHOLDER_FILENAMES)


def filter_valid_urls(urls: Sequence[str]) -> List[str]:
    """Drop URLs that the denylist already marks as placeholders."""
    return [url for url in urls if not is_placeholder_url(url)]


def template_is_entirely_placeholder(
    template: str,
    config: Optional[EngineConfig] = None,
) -> bool:
    """True when the raw template text (index runs removed) hits the denylist."""
    if not template or not template.strip():
        return False
    config = config or DEFAULT_CONFIG
    base = DIGIT_RUN_PATTERN.sub("", template)
    return match_placeholder_pattern(base, config.placeholder_patterns) is not None


def gallery_candidates(
    template: str,
    ctx: TemplateContext,
    target_count: int = 20,
    config: Optional[EngineConfig] = None,
) -> List[str]:
    """Over-generate gallery URLs so gaps left by placeholders can be skipped.

    Produces up to ``5 * target_count`` URLs and stops early once
    ``3 * target_count`` of them pass the denylist.
    """
    if not template or template_is_entirely_placeholder(template, config):
        return []
    run = find_digit_run(template)
    if run is None or target_count <= 0:
        return []
    limit = max_index(run.width, target_count * 5)
    candidates: List[str] = []
    clean = 0
    for url in expand(template, ctx, limit):
        if clean >= target_count * 3:
            break
        candidates.append(url)
        if not is_placeholder_url(url):
            clean += 1
    return candidates


def detect_image_format(data: bytes) -> Optional[str]:
    """Detect image type using filetype; returns lowercase extension."""
    kind = guess(data)
    if kind and kind.mime.startswith("image/"):
        ext = kind.extension.lower()
        if ext == "jpeg":
            return "jpg"
        return ext
    return None


class HttpImageLoader:
    """Fetch an image over HTTP and decode it with Pillow.

    Without an explicit ``session`` every ``load`` opens and closes its own
    ``requests.Session``, so concurrent loads share no connection state.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.session = session

    @property
    def timeout(self) -> float:
        return min(self.config.fetch_timeout, self.config.validation_timeout)

    def _get(self, url: str) -> requests.Response:
        if self.session is not None:
            return self.session.get(url, timeout=self.timeout)
        with requests.Session() as session:
            return session.get(url, timeout=self.timeout)

    def load(self, url: str) -> LoadedImage:
        try:
            resp = self._get(url)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ImageLoadError(f"Failed to fetch {url}: {exc}") from exc

        data = resp.content
        if not data:
            raise ImageLoadError(f"Empty response for {url}")
        if len(data) > self.config.max_image_bytes:
            raise ImageLoadError(
                f"Image larger than {self.config.max_image_bytes} bytes: {url}"
            )

        image_format = detect_image_format(data)
        if image_format is None:
            raise ImageLoadError(
                f"Unsupported image type (Content-Type={resp.headers.get('Content-Type', '')})"
            )

        try:
            with Image.open(io.BytesIO(data)) as raw_image:
                raw_image.load()
                image = raw_image.copy()
        except OSError as exc:
            raise ImageLoadError(f"Failed to decode {url}: {exc}") from exc

        width, height = image.size
        return LoadedImage(
            width=width,
            height=height,
            image=image,
            content_bytes=len(data),
            format=image_format,
        )


def estimate_jpeg_size(
    loaded: LoadedImage,
    quality: int = DEFAULT_CONFIG.estimate_quality,
) -> Optional[int]:
    """Re-encode the decoded image as JPEG and return the encoded length."""
    if loaded.image is None:
        return None
    image = loaded.image
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.tell()


class GalleryValidator:
    """Classify candidate URLs as valid images, placeholders, or unknown.

    Every call is independent: nothing is cached and no state is shared
    between concurrent ``classify`` calls.
    """

    def __init__(
        self,
        loader: Optional[ImageLoader] = None,
        size_estimator: Optional[SizeEstimator] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.loader = loader or HttpImageLoader(self.config)
        self.size_estimator = size_estimator or partial(
            estimate_jpeg_size, quality=self.config.estimate_quality
        )

    def check_url(self, url: str) -> Optional[ValidationResult]:
        """Stage A: denylist lookup, no I/O."""
        pattern = match_placeholder_pattern(url, self.config.placeholder_patterns)
        if pattern is None:
            return None
        return ValidationResult(
            verdict=Verdict.PLACEHOLDER,
            reason=f"URL contains placeholder pattern '{pattern}'",
        )

    def check_image(self, loaded: LoadedImage) -> ValidationResult:
        """Stage B: dimension and encoded-size heuristics on a decoded image."""
        dimensions = Dimensions(loaded.width, loaded.height)
        minimum = self.config.min_dimension
        if loaded.width < minimum or loaded.height < minimum:
            return ValidationResult(
                verdict=Verdict.PLACEHOLDER,
                reason=(
                    f"Dimensions too small: {loaded.width}x{loaded.height}px "
                    f"(min {minimum}px)"
                ),
                dimensions=dimensions,
            )

        try:
            size = self.size_estimator(loaded)
        except Exception as exc:  # noqa: BLE001
            logger.debug(
                "Size estimation failed for %sx%s image: %s",
                loaded.width,
                loaded.height,
                exc,
            )
            size = None
        if size is None:
            return ValidationResult(
                verdict=Verdict.VALID,
                reason="Dimensions OK, file size check unavailable",
                dimensions=dimensions,
            )

        if size < self.config.min_size_bytes:
            return ValidationResult(
                verdict=Verdict.PLACEHOLDER,
                reason=(
                    f"File size too small: {round(size / 1024)}KB "
                    f"(min {round(self.config.min_size_bytes / 1024)}KB)"
                ),
                dimensions=dimensions,
                approx_size_bytes=size,
            )
        return ValidationResult(
            verdict=Verdict.VALID,
            reason="Dimensions and file size OK",
            dimensions=dimensions,
            approx_size_bytes=size,
        )

    def _executor(self, size: int) -> ThreadPoolExecutor:
        workers = max(1, min(size, self.config.max_workers))
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="media-links")

    async def _classify(self, url: str, executor: ThreadPoolExecutor) -> ValidationResult:
        early = self.check_url(url)
        if early is not None:
            logger.debug("Placeholder by URL pattern: %s", url)
            return early

        loop = asyncio.get_running_loop()
        timeout = self.config.validation_timeout
        try:
            loaded = await asyncio.wait_for(
                loop.run_in_executor(executor, self.loader.load, url), timeout=timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Timed out after %ss loading %s", timeout, url)
            return ValidationResult(
                verdict=Verdict.UNKNOWN, reason=f"Timeout ({timeout:g}s)"
            )
        except ImageLoadError as exc:
            logger.warning("Failed to load image %s: %s", url, exc)
            return ValidationResult(verdict=Verdict.UNKNOWN, reason="Failed to load image")
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unexpected error loading %s", url)
            return ValidationResult(verdict=Verdict.UNKNOWN, reason="Failed to load image")

        result = await loop.run_in_executor(executor, self.check_image, loaded)
        logger.debug("Classified %s as %s (%s)", url, result.verdict.value, result.reason)
        return result

    async def classify(self, url: str) -> ValidationResult:
        executor = self._executor(1)
        try:
            return await self._classify(url, executor)
        finally:
            # Timed-out loads are abandoned rather than awaited.
            executor.shutdown(wait=False, cancel_futures=True)

    async def classify_many(self, urls: Sequence[str]) -> List[ValidationResult]:
        """Classify URLs concurrently; results follow the input order."""
        executor = self._executor(len(urls))
        try:
            results = await asyncio.gather(*(self._classify(url, executor) for url in urls))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return list(results)


async def classify(url: str, config: Optional[EngineConfig] = None) -> ValidationResult:
    """Classify a single URL with the default HTTP loader."""
    return await GalleryValidator(config=config).classify(url)
