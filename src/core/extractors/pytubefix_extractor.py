"""
pytubefix Extractor - a second, independent YouTube client library.

pytubefix talks to the innertube API directly and can impersonate several
player clients, which often keeps working when yt-dlp is being blocked.
"""

import asyncio
import logging
import re
from typing import List, Optional

from pytubefix import YouTube

from .base import (
    AudioDownloadError,
    AudioFormat,
    BaseExtractor,
    ExtractionError,
    MetadataFetchError,
    VideoInfo,
    extract_video_id,
    select_audio_format,
)

logger = logging.getLogger('Scribe.Extractors.Pytubefix')

_BITRATE_PATTERN = re.compile(r'(\d+(?:\.\d+)?)')


def parse_bitrate(abr: Optional[str]) -> float:
    """'128kbps' -> 128.0; missing or unparsable -> 0."""
    if not abr:
        return 0.0
    match = _BITRATE_PATTERN.search(str(abr))
    return float(match.group(1)) if match else 0.0


def formats_from_streams(streams) -> List[AudioFormat]:
    formats = []
    for stream in streams:
        formats.append(AudioFormat(
            url=stream.url,
            audio_bitrate=parse_bitrate(getattr(stream, 'abr', None)),
            has_audio=bool(stream.includes_audio_track),
            has_video=bool(stream.includes_video_track),
        ))
    return formats


class PytubefixExtractor(BaseExtractor):
    """Extractor backed by pytubefix with player-client fallback on download."""

    name = "pytubefix"

    DEFAULT_CLIENT = "WEB"
    DOWNLOAD_CLIENTS = ("WEB", "IOS", "ANDROID")

    def is_valid_url(self, url: str) -> bool:
        try:
            return extract_video_id(url) is not None
        except Exception:
            return False

    async def _load(self, url: str, client: str = DEFAULT_CLIENT) -> YouTube:
        """Build a YouTube object and force its metadata fetch off the event loop."""

        def _fetch():
            yt = YouTube(url, client=client)
            # Raises for private, removed or age-gated videos
            yt.check_availability()
            return yt

        try:
            return await asyncio.to_thread(_fetch)
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"[{self.name}] Error loading video ({client}): {e}")
            raise MetadataFetchError(f"Failed to get video information: {e}") from e

    async def _formats(self, yt: YouTube) -> List[AudioFormat]:
        try:
            return await asyncio.to_thread(lambda: formats_from_streams(yt.streams))
        except Exception as e:
            raise MetadataFetchError(f"Failed to list streams: {e}") from e

    async def fetch_metadata(self, url: str) -> VideoInfo:
        yt = await self._load(url)

        def _read() -> VideoInfo:
            return VideoInfo(
                title=yt.title or 'Unknown Title',
                duration=int(yt.length or 0),
                thumbnail_url=yt.thumbnail_url or '',
                description=yt.description or '',
                author=yt.author or 'Unknown Author',
            )

        try:
            return await asyncio.to_thread(_read)
        except Exception as e:
            raise MetadataFetchError(f"Failed to get video information: {e}") from e

    async def resolve_audio_url(self, url: str) -> str:
        yt = await self._load(url)
        return select_audio_format(await self._formats(yt)).url

    async def _download_audio(self, url: str) -> bytes:
        last_error = None

        for client in self.DOWNLOAD_CLIENTS:
            try:
                yt = await self._load(url, client=client)
                audio_format = select_audio_format(await self._formats(yt))
                data = await self._stream_bytes(audio_format.url)
                if data:
                    logger.info(f"[{self.name}] Stream success with client {client}")
                    return data
                logger.warning(f"[{self.name}] No data received with client {client}")
                last_error = AudioDownloadError(f"Empty payload with client {client}")
            except Exception as e:
                logger.warning(f"[{self.name}] Client {client} failed: {e}")
                last_error = e

        raise AudioDownloadError(f"Failed to get audio stream with any client: {last_error}")
