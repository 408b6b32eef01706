"""
yt-dlp Extractor - metadata and streams via the yt-dlp YouTube extractor.

yt-dlp is blocking, so every call runs in a worker thread. Audio bytes are
streamed over httpx with the per-format headers yt-dlp reports, which keeps
downloads cancellable.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import yt_dlp
from yt_dlp.extractor.youtube import YoutubeIE

from .base import (
    AudioDownloadError,
    AudioFormat,
    BaseExtractor,
    ExtractionError,
    MetadataFetchError,
    VideoInfo,
    select_audio_format,
)

logger = logging.getLogger('Scribe.Extractors.YtDlp')


def _is_none(codec: Optional[str]) -> bool:
    return codec in (None, 'none')


def formats_from_info(info: Dict[str, Any]) -> List[AudioFormat]:
    """Map yt-dlp format dicts to AudioFormat entries."""
    formats = []
    for fmt in info.get('formats') or []:
        if not fmt.get('url'):
            continue
        acodec = fmt.get('acodec')
        vcodec = fmt.get('vcodec')
        # Formats without codec info are storyboards or manifests
        if _is_none(acodec) and _is_none(vcodec):
            continue
        formats.append(AudioFormat(
            url=fmt['url'],
            audio_bitrate=float(fmt.get('abr') or 0),
            has_audio=not _is_none(acodec),
            has_video=not _is_none(vcodec),
            headers=fmt.get('http_headers') or {},
        ))
    return formats


class YtDlpExtractor(BaseExtractor):
    """
    Extractor backed by yt-dlp.

    Downloads try several format selectors in order, smallest audio first,
    before giving up.
    """

    name = "yt-dlp"

    DOWNLOAD_FORMATS = (
        'worstaudio[acodec!=none]',
        'bestaudio[acodec!=none]',
        'best[acodec!=none]',
    )

    def __init__(self, extra_options: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(**kwargs)
        self.extra_options = extra_options or {}

    def is_valid_url(self, url: str) -> bool:
        try:
            return bool(YoutubeIE.suitable(url))
        except Exception:
            return False

    def _options(self, **overrides) -> Dict[str, Any]:
        options = {
            'quiet': True,
            'no_warnings': True,
            'noplaylist': True,
            'skip_download': True,
            'socket_timeout': self.request_timeout,
        }
        options.update(self.extra_options)
        options.update(overrides)
        return options

    def _extract_info_sync(self, url: str, options: Dict[str, Any]) -> Dict[str, Any]:
        with yt_dlp.YoutubeDL(options) as ydl:
            info = ydl.extract_info(url, download=False)
            if not info:
                raise MetadataFetchError("yt-dlp returned no video information")
            return ydl.sanitize_info(info)

    async def _extract_info(self, url: str, **overrides) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self._extract_info_sync, url, self._options(**overrides))
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"[{self.name}] Error getting video info: {e}")
            raise MetadataFetchError(f"Failed to get video information: {e}") from e

    async def fetch_metadata(self, url: str) -> VideoInfo:
        info = await self._extract_info(url)
        thumbnails = info.get('thumbnails') or []
        thumbnail_url = info.get('thumbnail') or (thumbnails[-1].get('url', '') if thumbnails else '')
        return VideoInfo(
            title=info.get('title') or 'Unknown Title',
            duration=int(info.get('duration') or 0),
            thumbnail_url=thumbnail_url,
            description=info.get('description') or '',
            author=info.get('uploader') or info.get('channel') or 'Unknown Author',
        )

    async def resolve_audio_url(self, url: str) -> str:
        info = await self._extract_info(url)
        return select_audio_format(formats_from_info(info)).url

    async def _download_audio(self, url: str) -> bytes:
        last_error = None

        for index, format_selector in enumerate(self.DOWNLOAD_FORMATS, start=1):
            logger.debug(f"[{self.name}] Trying download option {index}/{len(self.DOWNLOAD_FORMATS)}: {format_selector}")
            try:
                info = await self._extract_info(url, format=format_selector)
                # With a single selected format yt-dlp hoists its url/headers to the top level
                audio_url = info.get('url')
                if not audio_url:
                    raise AudioDownloadError(f"No stream matched format '{format_selector}'")

                data = await self._stream_bytes(audio_url, headers=info.get('http_headers'))
                if data:
                    logger.info(f"[{self.name}] Downloaded {len(data) / 1024 / 1024:.1f} MB with option {index}")
                    return data
                logger.warning(f"[{self.name}] No data received from option {index}")
                last_error = AudioDownloadError(f"Empty payload for format '{format_selector}'")
            except Exception as e:
                logger.warning(f"[{self.name}] Download option {index} failed: {e}")
                last_error = e

        raise AudioDownloadError(f"All download options failed: {last_error}")
