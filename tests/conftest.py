import asyncio
from typing import Optional
from unittest.mock import MagicMock

import pytest

from src.core.extractors import BaseExtractor, ExtractionRouter, ExtractorHealth, VideoInfo


VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class FakeExtractor(BaseExtractor):
    """In-memory extractor with per-operation call counters."""

    def __init__(
        self,
        name: str = "fake",
        valid: bool = True,
        video_info: Optional[VideoInfo] = None,
        audio_url: str = "https://cdn.example.com/audio.webm",
        audio: bytes = b"audio-bytes",
        metadata_error: Optional[Exception] = None,
        audio_url_error: Optional[Exception] = None,
        download_error: Optional[Exception] = None,
        download_delay: float = 0,
        **kwargs,
    ):
        self.name = name
        super().__init__(**kwargs)
        self.valid = valid
        self.video_info = video_info or VideoInfo(title=f"{name} video", duration=212, author="Rick Astley")
        self.audio_url = audio_url
        self.audio = audio
        self.metadata_error = metadata_error
        self.audio_url_error = audio_url_error
        self.download_error = download_error
        self.download_delay = download_delay
        self.calls = {"metadata": 0, "audio_url": 0, "download": 0}

    def is_valid_url(self, url: str) -> bool:
        return self.valid

    async def fetch_metadata(self, url: str) -> VideoInfo:
        self.calls["metadata"] += 1
        if self.metadata_error:
            raise self.metadata_error
        return self.video_info

    async def resolve_audio_url(self, url: str) -> str:
        self.calls["audio_url"] += 1
        if self.audio_url_error:
            raise self.audio_url_error
        return self.audio_url

    async def _download_audio(self, url: str) -> bytes:
        self.calls["download"] += 1
        if self.download_delay:
            await asyncio.sleep(self.download_delay)
        if self.download_error:
            raise self.download_error
        return self.audio

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


def health_router(*rates_by_name):
    """Router stand-in whose get_extractor_health() returns fixed records."""
    router = MagicMock(spec=ExtractionRouter)
    router.get_extractor_health.return_value = [
        ExtractorHealth(name=name, success_rate=rate) for name, rate in rates_by_name
    ]
    return router


@pytest.fixture
def video_url() -> str:
    return VIDEO_URL


@pytest.fixture
def make_router():
    def _make(*extractors, **kwargs):
        kwargs.setdefault("retry_base_delay", 0)
        return ExtractionRouter(list(extractors), **kwargs)
    return _make
