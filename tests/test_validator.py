import io
import time

import pytest
import requests
from PIL import Image

from media_links.config import EngineConfig
from media_links.models import LoadedImage, TemplateContext, Verdict
from media_links.validator import (
    GalleryValidator,
    HttpImageLoader,
    ImageLoadError,
    estimate_jpeg_size,
    filter_valid_urls,
    gallery_candidates,
    has_placeholder_filename,
    is_placeholder_url,
    match_placeholder_pattern,
    template_is_entirely_placeholder,
)


class FakeLoader:
    def __init__(self, width=800, height=540, error=None, delay=0.0):
        self.width = width
        self.height = height
        self.error = error
        self.delay = delay
        self.calls = []

    def load(self, url):
        self.calls.append(url)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LoadedImage(width=self.width, height=self.height)


class FakeResponse:
    def __init__(self, content, status=200, content_type="image/png"):
        self.content = content
        self.status_code = status
        self.headers = {"Content-Type": content_type}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requested = []

    def get(self, url, timeout=None):
        self.requested.append((url, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def _png_bytes(size=(320, 200), color=(10, 120, 200)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "url",
    [
        "https://pics.dmm.co.jp/mono/movie/n/now_printing/now_printing.jpg",
        "https://example.com/assets/icon.svg",
        "https://example.com/img/NO-IMAGE-large.jpg",
    ],
)
async def test_denylisted_urls_never_reach_the_loader(url):
    loader = FakeLoader()
    result = await GalleryValidator(loader=loader).classify(url)
    assert result.verdict is Verdict.PLACEHOLDER
    assert "placeholder pattern" in result.reason
    assert loader.calls == []


@pytest.mark.asyncio
async def test_small_dimensions_are_placeholders():
    validator = GalleryValidator(loader=FakeLoader(100, 100), size_estimator=lambda _: 50_000)
    result = await validator.classify("https://example.com/a/01.jpg")
    assert result.is_placeholder
    assert result.reason.startswith("Dimensions too small: 100x100px")
    assert result.dimensions.width == 100


@pytest.mark.asyncio
async def test_large_image_goes_on_to_size_check():
    seen = []

    def estimator(loaded):
        seen.append((loaded.width, loaded.height))
        return 64_000

    validator = GalleryValidator(loader=FakeLoader(800, 540), size_estimator=estimator)
    result = await validator.classify("https://example.com/a/01.jpg")
    assert seen == [(800, 540)]
    assert result.is_valid
    assert result.approx_size_bytes == 64_000


@pytest.mark.asyncio
async def test_tiny_encoded_size_is_placeholder():
    validator = GalleryValidator(loader=FakeLoader(), size_estimator=lambda _: 4_096)
    result = await validator.classify("https://example.com/a/01.jpg")
    assert result.is_placeholder
    assert result.reason == "File size too small: 4KB (min 20KB)"
    assert result.approx_size_bytes == 4_096


@pytest.mark.asyncio
async def test_failed_size_estimate_falls_back_to_valid():
    def broken(_):
        raise RuntimeError("no encoder")

    for estimator in (broken, lambda _: None):
        validator = GalleryValidator(loader=FakeLoader(), size_estimator=estimator)
        result = await validator.classify("https://example.com/a/01.jpg")
        assert result.is_valid
        assert "file size check unavailable" in result.reason
        assert result.approx_size_bytes is None


@pytest.mark.asyncio
async def test_load_failure_is_unknown():
    loader = FakeLoader(error=ImageLoadError("boom"))
    result = await GalleryValidator(loader=loader).classify("https://example.com/a/01.jpg")
    assert result.verdict is Verdict.UNKNOWN
    assert result.reason == "Failed to load image"


@pytest.mark.asyncio
async def test_unexpected_loader_error_is_unknown():
    loader = FakeLoader(error=KeyError("weird"))
    result = await GalleryValidator(loader=loader).classify("https://example.com/a/01.jpg")
    assert result.verdict is Verdict.UNKNOWN


@pytest.mark.asyncio
async def test_slow_load_times_out_as_unknown():
    config = EngineConfig(validation_timeout=0.05)
    validator = GalleryValidator(loader=FakeLoader(delay=0.5), config=config)
    result = await validator.classify("https://example.com/a/01.jpg")
    assert result.verdict is Verdict.UNKNOWN
    assert result.reason.startswith("Timeout")


@pytest.mark.asyncio
async def test_thresholds_are_configurable():
    config = EngineConfig(min_dimension=50, min_size_bytes=1_000)
    validator = GalleryValidator(
        loader=FakeLoader(100, 100), size_estimator=lambda _: 2_000, config=config
    )
    result = await validator.classify("https://example.com/a/01.jpg")
    assert result.is_valid


@pytest.mark.asyncio
async def test_classify_many_keeps_input_order():
    validator = GalleryValidator(loader=FakeLoader(), size_estimator=lambda _: 50_000)
    results = await validator.classify_many(
        ["https://x/1.jpg", "https://x/icon.svg", "https://x/3.jpg"]
    )
    assert [r.verdict for r in results] == [Verdict.VALID, Verdict.PLACEHOLDER, Verdict.VALID]


def test_estimate_jpeg_size_tracks_image_content():
    flat = Image.new("RGB", (800, 540), (200, 200, 200))
    noisy = Image.effect_noise((800, 540), 100)
    flat_size = estimate_jpeg_size(LoadedImage(800, 540, image=flat))
    noisy_size = estimate_jpeg_size(LoadedImage(800, 540, image=noisy))
    assert flat_size < 20 * 1024 < noisy_size
    assert estimate_jpeg_size(LoadedImage(800, 540)) is None


def test_estimate_jpeg_size_converts_alpha_images():
    rgba = Image.new("RGBA", (200, 200), (0, 0, 0, 0))
    assert estimate_jpeg_size(LoadedImage(200, 200, image=rgba)) > 0


def test_http_loader_decodes_png():
    session = FakeSession(FakeResponse(_png_bytes()))
    loader = HttpImageLoader(EngineConfig(fetch_timeout=3.0), session=session)
    loaded = loader.load("https://example.com/a.png")
    assert (loaded.width, loaded.height) == (320, 200)
    assert loaded.format == "png"
    assert loaded.content_bytes > 0
    assert session.requested == [("https://example.com/a.png", 3.0)]


@pytest.mark.parametrize(
    "session",
    [
        FakeSession(error=requests.ConnectionError("down")),
        FakeSession(FakeResponse(b"", status=404)),
        FakeSession(FakeResponse(b"")),
        FakeSession(FakeResponse(b"<html>not an image</html>", content_type="text/html")),
    ],
)
def test_http_loader_raises_load_error(session):
    with pytest.raises(ImageLoadError):
        HttpImageLoader(session=session).load("https://example.com/a.png")


def test_http_loader_rejects_oversized_payload():
    session = FakeSession(FakeResponse(_png_bytes()))
    loader = HttpImageLoader(EngineConfig(max_image_bytes=10), session=session)
    with pytest.raises(ImageLoadError):
        loader.load("https://example.com/a.png")


@pytest.mark.asyncio
async def test_http_loader_end_to_end_small_png_is_placeholder():
    session = FakeSession(FakeResponse(_png_bytes(size=(120, 90))))
    validator = GalleryValidator(loader=HttpImageLoader(session=session))
    result = await validator.classify("https://example.com/a.png")
    assert result.is_placeholder
    assert result.dimensions.height == 90


def test_template_suppression_uses_raw_template():
    assert template_is_entirely_placeholder("https://host/n/now_printing/now_printing.jpg#")
    assert not template_is_entirely_placeholder("https://host/img##.jpg")
    assert not template_is_entirely_placeholder("")


def test_url_pattern_helpers():
    assert match_placeholder_pattern("https://X/NotFound.png") == "notfound"
    assert is_placeholder_url("https://e.ugj.net/404/a.jpg")
    assert not is_placeholder_url("https://pics.example.com/abc/abc-1.jpg")
    assert has_placeholder_filename("https://x/y/Now_Printing.JPG")
    assert not has_placeholder_filename("https://x/now_printing/real.jpg")
    assert filter_valid_urls(["https://x/1.jpg", "https://x/a.svg"]) == ["https://x/1.jpg"]


def test_gallery_candidates_overgenerates():
    urls = gallery_candidates("https://x/*-#.jpg", TemplateContext(code="abc"), target_count=4)
    assert len(urls) == 12
    assert urls[-1] == "https://x/abc-12.jpg"


def test_gallery_candidates_respects_width_and_suppression():
    ctx = TemplateContext(code="abc")
    assert len(gallery_candidates("https://x/#.jpg", ctx, target_count=1)) == 3
    assert len(gallery_candidates("https://x/###.jpg", ctx, target_count=100)) == 300
    assert gallery_candidates("https://x/now_printing/#.jpg", ctx) == []
    assert gallery_candidates("https://x/cover.jpg", ctx) == []


def test_http_loader_caps_fetch_at_validation_timeout():
    session = FakeSession(FakeResponse(_png_bytes()))
    config = EngineConfig(fetch_timeout=15.0, validation_timeout=0.5)
    HttpImageLoader(config, session=session).load("https://example.com/a.png")
    assert session.requested == [("https://example.com/a.png", 0.5)]


def test_http_loader_opens_a_session_per_load(monkeypatch):
    opened = []

    class RecordingSession(FakeSession):
        def __init__(self):
            super().__init__(FakeResponse(_png_bytes()))
            self.closed = False
            opened.append(self)

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            self.closed = True
            return False

    monkeypatch.setattr(requests, "Session", RecordingSession)
    loader = HttpImageLoader(EngineConfig(fetch_timeout=2.0, validation_timeout=5.0))
    loader.load("https://example.com/a.png")
    loader.load("https://example.com/b.png")
    assert len(opened) == 2
    assert opened[0] is not opened[1]
    assert all(session.closed for session in opened)
    assert [session.requested for session in opened] == [
        [("https://example.com/a.png", 2.0)],
        [("https://example.com/b.png", 2.0)],
    ]


@pytest.mark.asyncio
async def test_unexpected_loader_error_is_logged_with_traceback(caplog):
    loader = FakeLoader(error=KeyError("weird"))
    with caplog.at_level("WARNING", logger="media_links"):
        await GalleryValidator(loader=loader).classify("https://example.com/a/01.jpg")
    records = [r for r in caplog.records if "Unexpected error loading" in r.getMessage()]
    assert len(records) == 1
    assert records[0].levelname == "ERROR"
    assert records[0].exc_info is not None


@pytest.mark.asyncio
async def test_known_load_failure_is_logged_as_warning(caplog):
    loader = FakeLoader(error=ImageLoadError("boom"))
    with caplog.at_level("WARNING", logger="media_links"):
        await GalleryValidator(loader=loader).classify("https://example.com/a/01.jpg")
    assert [r.levelname for r in caplog.records] == ["WARNING"]


@pytest.mark.asyncio
async def test_classify_many_returns_without_waiting_for_slow_loads():
    config = EngineConfig(validation_timeout=0.1)
    validator = GalleryValidator(loader=FakeLoader(delay=1.0), config=config)
    started = time.perf_counter()
    results = await validator.classify_many(["https://x/1.jpg", "https://x/2.jpg"])
    assert time.perf_counter() - started < 0.8
    assert [r.verdict for r in results] == [Verdict.UNKNOWN, Verdict.UNKNOWN]
