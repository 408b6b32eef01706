"""
Base classes for YouTube extractors.

Every extractor wraps one independent way of talking to YouTube and owns a
rolling health record that the router uses to rank extractors.
"""

import asyncio
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger('Scribe.Extractors.Base')

YOUTUBE_DOMAINS = ('youtube.com', 'youtu.be')

DEFAULT_DOWNLOAD_TIMEOUT = 300.0  # 5 minutes
DEFAULT_REQUEST_TIMEOUT = 30.0

BROWSER_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'
)

# Single-video URLs only; channels, feeds and playlists do not match
VIDEO_URL_PATTERNS = [
    re.compile(r'^https?://(?:www\.|m\.|music\.)?youtube\.com/watch\?(?:.*&)?v=([\w-]{11})'),
    re.compile(r'^https?://youtu\.be/([\w-]{11})'),
    re.compile(r'^https?://(?:www\.)?youtube\.com/embed/([\w-]{11})'),
    re.compile(r'^https?://(?:www\.)?youtube\.com/shorts/([\w-]{11})'),
]


def extract_video_id(url: str) -> Optional[str]:
    for pattern in VIDEO_URL_PATTERNS:
        match = pattern.match(url)
        if match:
            return match.group(1)
    return None


class ExtractionError(Exception):
    """Base exception for extraction errors."""
    pass


class InvalidURLError(ExtractionError):
    """No registered extractor can handle the URL."""
    pass


class MetadataFetchError(ExtractionError):
    """Video metadata could not be fetched (unreachable, private, removed)."""
    pass


class NoAudioFormatError(ExtractionError):
    """No audio-only or combined format is available."""
    pass


class AudioDownloadError(ExtractionError):
    """Audio bytes could not be downloaded."""
    pass


class DownloadTimeoutError(AudioDownloadError):
    """Audio download exceeded the hard timeout."""
    pass


class AllExtractorsFailedError(ExtractionError):
    """Every capable extractor failed; carries the last underlying error."""

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error


@dataclass
class VideoInfo:
    """Video metadata, normalized across extractors."""
    title: str
    duration: int
    thumbnail_url: str = ''
    description: str = ''
    author: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'duration': self.duration,
            'thumbnail_url': self.thumbnail_url,
            'description': self.description,
            'author': self.author,
        }


@dataclass
class AudioFormat:
    """One downloadable stream as reported by a backend."""
    url: str
    audio_bitrate: float = 0.0
    has_audio: bool = True
    has_video: bool = False
    headers: Dict[str, str] = field(default_factory=dict)


def select_audio_format(formats: Iterable[AudioFormat]) -> AudioFormat:
    """
    Pick the best stream for audio extraction.

    Audio-only streams win over combined audio+video streams. Within the
    chosen group the highest audio bitrate wins; ties keep the first one seen.

    Raises:
        NoAudioFormatError: if no stream carries audio
    """
    formats = [f for f in formats if f.url and f.has_audio]
    candidates = [f for f in formats if not f.has_video] or formats
    if not candidates:
        raise NoAudioFormatError("No suitable audio formats available")
    return max(candidates, key=lambda f: f.audio_bitrate)


@dataclass
class ExtractorHealth:
    """
    Rolling reliability statistic for one extractor.

    success_rate starts at 0.5 as a neutral prior and is updated as
    rate * 0.7 + (success_count / total_attempts) * 0.3 on every attempt.
    """
    name: str
    success_rate: float = 0.5
    total_attempts: int = 0
    success_count: int = 0
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_success(self):
        with self._lock:
            self.total_attempts += 1
            self.success_count += 1
            self.last_success = datetime.now()
            self._update_success_rate()

    def record_failure(self):
        with self._lock:
            self.total_attempts += 1
            self.last_failure = datetime.now()
            self._update_success_rate()

    def _update_success_rate(self):
        # Blends the all-time ratio, not a recent window, so the rate gets
        # slower to move as total_attempts grows.
        if self.total_attempts == 0:
            self.success_rate = 0.5
        else:
            current_rate = self.success_count / self.total_attempts
            self.success_rate = self.success_rate * 0.7 + current_rate * 0.3

    def snapshot(self) -> 'ExtractorHealth':
        """Consistent point-in-time copy with its own lock."""
        with self._lock:
            return replace(self, _lock=threading.Lock())

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'name': self.name,
                'success_rate': self.success_rate,
                'total_attempts': self.total_attempts,
                'success_count': self.success_count,
                'last_success': self.last_success.isoformat() if self.last_success else None,
                'last_failure': self.last_failure.isoformat() if self.last_failure else None,
            }


@dataclass
class ExtractionResult:
    """Outcome of a single extractor run. Never persisted."""
    success: bool
    video_info: Optional[VideoInfo] = None
    audio_url: Optional[str] = None
    audio_buffer: Optional[bytes] = None
    error: Optional[str] = None
    extractor_used: Optional[str] = None


class BaseExtractor(ABC):
    """Abstract base class for YouTube extractors."""

    name: str = "base"
    domains = YOUTUBE_DOMAINS

    def __init__(
        self,
        download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ):
        self.download_timeout = download_timeout
        self.request_timeout = request_timeout
        self.health = ExtractorHealth(name=self.name)

    def can_handle(self, url: str) -> bool:
        """Cheap hostname check, no network I/O."""
        try:
            hostname = (urlparse(url).hostname or '').lower()
        except (TypeError, ValueError, AttributeError):
            return False
        return any(domain in hostname for domain in self.domains)

    @abstractmethod
    def is_valid_url(self, url: str) -> bool:
        """Stricter backend-specific validation. Must not raise."""
        pass

    @abstractmethod
    async def fetch_metadata(self, url: str) -> VideoInfo:
        """
        Fetch title, duration, thumbnail, description and author.

        Raises:
            MetadataFetchError: platform unreachable or video unavailable
        """
        pass

    @abstractmethod
    async def resolve_audio_url(self, url: str) -> str:
        """
        Resolve a direct URL for the best audio stream.

        Raises:
            NoAudioFormatError: no audio-carrying format exists
            MetadataFetchError: the stream list could not be fetched
        """
        pass

    @abstractmethod
    async def _download_audio(self, url: str) -> bytes:
        """Backend-specific download, bounded by fetch_audio_bytes."""
        pass

    async def fetch_audio_bytes(self, url: str) -> bytes:
        """
        Download the audio payload under the hard timeout.

        Raises:
            DownloadTimeoutError: the transfer exceeded download_timeout
            AudioDownloadError: every internal download option failed
        """
        try:
            return await asyncio.wait_for(self._download_audio(url), timeout=self.download_timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"[{self.name}] Download timed out after {self.download_timeout:.0f}s")
            raise DownloadTimeoutError(
                f"{self.name} download timed out after {self.download_timeout:.0f}s"
            ) from e

    async def _stream_bytes(self, audio_url: str, headers: Optional[Dict[str, str]] = None) -> bytes:
        """Stream a media URL into memory. Cancellation closes the connection."""
        request_headers = {'User-Agent': BROWSER_USER_AGENT}
        request_headers.update(headers or {})

        chunks: List[bytes] = []
        async with httpx.AsyncClient(timeout=self.request_timeout, follow_redirects=True) as client:
            async with client.stream('GET', audio_url, headers=request_headers) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    chunks.append(chunk)
        return b''.join(chunks)

    def _check_url(self, url: str):
        if not self.can_handle(url):
            raise InvalidURLError(f"{self.name} cannot handle this URL")
        if not self.is_valid_url(url):
            raise InvalidURLError(f"Invalid URL format for {self.name}")

    async def extract(self, url: str) -> ExtractionResult:
        """Validate, fetch metadata and resolve the audio URL. Never raises."""
        try:
            self._check_url(url)
            video_info = await self.fetch_metadata(url)
            audio_url = await self.resolve_audio_url(url)
        except Exception as e:
            logger.warning(f"[{self.name}] Extraction failed: {e}")
            self.health.record_failure()
            return ExtractionResult(success=False, error=str(e) or type(e).__name__, extractor_used=self.name)

        self.health.record_success()
        return ExtractionResult(success=True, video_info=video_info, audio_url=audio_url, extractor_used=self.name)

    async def extract_buffer(self, url: str) -> ExtractionResult:
        """Validate, fetch metadata and download the audio bytes. Never raises."""
        try:
            self._check_url(url)
            video_info = await self.fetch_metadata(url)
            audio_buffer = await self.fetch_audio_bytes(url)
            if not audio_buffer:
                raise AudioDownloadError(f"{self.name} returned an empty audio buffer")
        except Exception as e:
            logger.warning(f"[{self.name}] Buffer extraction failed: {e}")
            self.health.record_failure()
            return ExtractionResult(success=False, error=str(e) or type(e).__name__, extractor_used=self.name)

        self.health.record_success()
        return ExtractionResult(success=True, video_info=video_info, audio_buffer=audio_buffer, extractor_used=self.name)

    def get_health(self) -> ExtractorHealth:
        return self.health.snapshot()
