"""
Piped Extractor - YouTube through public Piped API instances.

Piped proxies YouTube behind a JSON API (GET /streams/{video_id}), so it keeps
working when direct YouTube clients are rate limited. Several instances are
tried in order.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .base import (
    AudioDownloadError,
    AudioFormat,
    BaseExtractor,
    MetadataFetchError,
    VideoInfo,
    extract_video_id,
    select_audio_format,
)

logger = logging.getLogger('Scribe.Extractors.Piped')

DEFAULT_INSTANCES = ('https://pipedapi.kavin.rocks',)


def formats_from_streams(data: Dict[str, Any]) -> List[AudioFormat]:
    """Audio streams first, then muxed (non video-only) video streams."""
    formats = []
    for stream in data.get('audioStreams') or []:
        if stream.get('url'):
            formats.append(AudioFormat(url=stream['url'], audio_bitrate=float(stream.get('bitrate') or 0)))
    for stream in data.get('videoStreams') or []:
        if stream.get('url') and not stream.get('videoOnly', True):
            formats.append(AudioFormat(
                url=stream['url'],
                audio_bitrate=float(stream.get('bitrate') or 0),
                has_video=True,
            ))
    return formats


class PipedExtractor(BaseExtractor):
    """Extractor backed by the Piped JSON API."""

    name = "piped"

    def __init__(self, instances: Optional[Sequence[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.instances = [i.rstrip('/') for i in (instances or DEFAULT_INSTANCES)]

    def is_valid_url(self, url: str) -> bool:
        try:
            return extract_video_id(url) is not None
        except Exception:
            return False

    async def _get_streams(self, instance: str, video_id: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.request_timeout) as client:
            response = await client.get(f"{instance}/streams/{video_id}")

        if response.status_code != 200:
            raise MetadataFetchError(f"{instance} returned HTTP {response.status_code}")

        data = response.json()
        if not isinstance(data, dict):
            raise MetadataFetchError(f"{instance} returned an unexpected payload")
        if data.get('error'):
            raise MetadataFetchError(f"{instance}: {data.get('message') or data['error']}")
        return data

    async def _fetch_streams(self, url: str) -> Dict[str, Any]:
        """Query instances in order until one answers."""
        video_id = extract_video_id(url)
        if not video_id:
            raise MetadataFetchError(f"Could not find a video id in {url}")

        last_error = None
        for instance in self.instances:
            try:
                return await self._get_streams(instance, video_id)
            except (httpx.HTTPError, ValueError, MetadataFetchError) as e:
                logger.warning(f"[{self.name}] Instance {instance} failed: {e}")
                last_error = e

        raise MetadataFetchError(f"Failed to get video information: {last_error}") from last_error

    async def fetch_metadata(self, url: str) -> VideoInfo:
        data = await self._fetch_streams(url)
        return VideoInfo(
            title=data.get('title') or 'Unknown Title',
            duration=int(data.get('duration') or 0),
            thumbnail_url=data.get('thumbnailUrl') or '',
            description=data.get('description') or '',
            author=data.get('uploader') or 'Unknown Author',
        )

    async def resolve_audio_url(self, url: str) -> str:
        data = await self._fetch_streams(url)
        return select_audio_format(formats_from_streams(data)).url

    async def _download_audio(self, url: str) -> bytes:
        video_id = extract_video_id(url)
        if not video_id:
            raise AudioDownloadError(f"Could not find a video id in {url}")

        last_error = None
        for instance in self.instances:
            try:
                data = await self._get_streams(instance, video_id)
                audio_format = select_audio_format(formats_from_streams(data))
                payload = await self._stream_bytes(audio_format.url)
                if payload:
                    logger.info(f"[{self.name}] Downloaded {len(payload) / 1024 / 1024:.1f} MB via {instance}")
                    return payload
                last_error = AudioDownloadError(f"Empty payload from {instance}")
            except Exception as e:
                logger.warning(f"[{self.name}] Download via {instance} failed: {e}")
                last_error = e

        raise AudioDownloadError(f"All Piped instances failed: {last_error}")
