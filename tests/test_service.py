"""Tests for ExtractionService wiring and the router factory."""

from unittest.mock import AsyncMock, patch

import pytest

from src.config import Config
from src.core.extraction_service import ExtractionService
from src.core.extractors import (
    AllExtractorsFailedError,
    ExtractionRouter,
    MetadataFetchError,
    PipedExtractor,
    PytubefixExtractor,
    YtDlpExtractor,
    create_extraction_router,
)
from src.core.monitor import AlertType
from conftest import FakeExtractor


def make_service(*extractors):
    return ExtractionService(ExtractionRouter(list(extractors), retry_base_delay=0))


class TestExtractionService:
    @pytest.mark.asyncio
    async def test_get_video_info_samples_metrics(self, video_url):
        service = make_service(FakeExtractor(name="a"), FakeExtractor(name="b"))

        info = await service.get_video_info(video_url)

        assert info.title == "a video"
        assert len(service.monitor.metrics) == 2

    @pytest.mark.asyncio
    async def test_failures_still_sample_and_alert(self, video_url):
        handler = AsyncMock()
        service = make_service(FakeExtractor(name="a", metadata_error=MetadataFetchError("down")))
        service.monitor.alert_handlers.append(handler)

        with pytest.raises(AllExtractorsFailedError):
            await service.get_video_info(video_url)

        assert len(service.monitor.metrics) == 1
        # 0.5 -> 0.35 after one failure
        assert [a.type for a in service.monitor.alerts] == [AlertType.DEGRADED]
        handler.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_audio_url(self, video_url):
        service = make_service(FakeExtractor(audio_url="https://cdn.example.com/251.webm"))
        assert await service.get_audio_url(video_url) == "https://cdn.example.com/251.webm"
        assert len(service.monitor.metrics) == 1

    @pytest.mark.asyncio
    async def test_download_audio_as_buffer(self, video_url):
        service = make_service(FakeExtractor(audio=b"opus-data"))
        assert await service.download_audio_as_buffer(video_url) == b"opus-data"

    def test_is_valid_url(self, video_url):
        service = make_service(FakeExtractor())
        assert service.is_valid_url(video_url) is True
        assert service.is_valid_url("https://vimeo.com/76979871") is False

    def test_get_extractor_health(self):
        service = make_service(FakeExtractor(name="a"), FakeExtractor(name="b"))
        health = service.get_extractor_health()
        assert [h["name"] for h in health] == ["a", "b"]
        assert health[0]["success_rate"] == 0.5

    @pytest.mark.asyncio
    async def test_perform_health_check(self, video_url):
        extractor = FakeExtractor()
        service = make_service(extractor)

        await service.perform_health_check(video_url)

        assert extractor.calls["metadata"] == 1
        assert service.get_health_summary()["last_health_check"] is not None

    def test_from_config_registers_telegram_handler(self):
        router = ExtractionRouter([FakeExtractor()])
        with patch("src.core.extraction_service.create_extraction_router", return_value=router), \
                patch("src.notifications.telegram_configured", return_value=True):
            service = ExtractionService.from_config()

        assert service.router is router
        assert len(service.monitor.alert_handlers) == 1

    def test_from_config_without_telegram(self):
        with patch("src.core.extraction_service.create_extraction_router",
                   return_value=ExtractionRouter([FakeExtractor()])), \
                patch("src.notifications.telegram_configured", return_value=False):
            service = ExtractionService.from_config()

        assert service.monitor.alert_handlers == []


class TestCreateExtractionRouter:
    def test_default_order(self, monkeypatch):
        monkeypatch.setattr(Config, "EXTRACTOR_ORDER", ["ytdlp", "pytubefix", "piped"])
        monkeypatch.setattr(Config, "DOWNLOAD_TIMEOUT", 120.0)
        monkeypatch.setattr(Config, "DOWNLOAD_MAX_RETRIES", 1)

        router = create_extraction_router()

        assert [type(e) for e in router.extractors] == [YtDlpExtractor, PytubefixExtractor, PipedExtractor]
        assert [e.name for e in router.extractors] == ["yt-dlp", "pytubefix", "piped"]
        assert router.extractors[0].download_timeout == 120.0
        assert router.max_retries == 1

    def test_explicit_names_and_instances(self):
        router = create_extraction_router(["piped"], piped_instances=["https://piped.example/"])

        assert len(router.extractors) == 1
        assert router.extractors[0].instances == ["https://piped.example"]

    def test_unknown_extractor(self):
        with pytest.raises(ValueError, match="Unknown extractor"):
            create_extraction_router(["invidious"])


class TestConfigValidate:
    def test_defaults_are_valid(self, monkeypatch):
        monkeypatch.setattr(Config, "EXTRACTOR_ORDER", ["ytdlp", "pytubefix", "piped"])
        monkeypatch.setattr(Config, "PIPED_INSTANCES", ["https://pipedapi.kavin.rocks"])
        Config.validate()

    def test_unknown_extractor(self, monkeypatch):
        monkeypatch.setattr(Config, "EXTRACTOR_ORDER", ["ytdlp", "invidious"])
        with pytest.raises(ValueError, match="invidious"):
            Config.validate()

    def test_piped_needs_instances(self, monkeypatch):
        monkeypatch.setattr(Config, "EXTRACTOR_ORDER", ["piped"])
        monkeypatch.setattr(Config, "PIPED_INSTANCES", [])
        with pytest.raises(ValueError, match="PIPED_INSTANCES"):
            Config.validate()

    def test_non_positive_timeout(self, monkeypatch):
        monkeypatch.setattr(Config, "EXTRACTOR_ORDER", ["ytdlp"])
        monkeypatch.setattr(Config, "DOWNLOAD_TIMEOUT", 0.0)
        with pytest.raises(ValueError, match="DOWNLOAD_TIMEOUT_SECONDS"):
            Config.validate()

    def test_negative_retries(self, monkeypatch):
        monkeypatch.setattr(Config, "EXTRACTOR_ORDER", ["ytdlp"])
        monkeypatch.setattr(Config, "DOWNLOAD_MAX_RETRIES", -1)
        with pytest.raises(ValueError, match="must not be negative"):
            Config.validate()
