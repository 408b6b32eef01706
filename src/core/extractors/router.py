"""
Extraction Router - health-aware extractor selection and failover.

Routes every request through the extractors that can handle the URL, best
success rate first:
1. Metadata and audio URL lookups fall through to the next extractor at once
2. Audio downloads retry each extractor with exponential backoff first
3. Only when every extractor failed does the caller see an error

Configuration:
    EXTRACTOR_ORDER: Registration order (ytdlp, pytubefix, piped)
    DOWNLOAD_MAX_RETRIES: Extra download attempts per extractor
    RETRY_BASE_DELAY_SECONDS: First backoff delay, doubled each retry
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .base import (
    AllExtractorsFailedError,
    AudioDownloadError,
    BaseExtractor,
    ExtractionError,
    ExtractionResult,
    ExtractorHealth,
    InvalidURLError,
    VideoInfo,
)

logger = logging.getLogger('Scribe.Extractors.Router')

DEFAULT_PROBE_URL = 'https://www.youtube.com/watch?v=dQw4w9WgXcQ'


class ExtractionRouter:
    """
    Routes extraction to the healthiest capable extractor.

    The order is computed once per request from the current health records
    and is not re-sorted while the request is in flight.
    """

    def __init__(
        self,
        extractors: Sequence[BaseExtractor],
        max_retries: int = 2,
        retry_base_delay: float = 1.0,
        probe_url: str = DEFAULT_PROBE_URL,
    ):
        """
        Initialize extraction router.

        Args:
            extractors: Extractors in registration order (tie-break order)
            max_retries: Extra download attempts per extractor
            retry_base_delay: Seconds before the first retry, doubled each time
            probe_url: Known-good URL for active health checks
        """
        self.extractors = list(extractors)
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.probe_url = probe_url
        self.last_health_check: Optional[datetime] = None

    def is_valid_url(self, url: str) -> bool:
        """True if at least one extractor can handle and validates the URL."""
        try:
            return any(e.can_handle(url) and e.is_valid_url(url) for e in self.extractors)
        except Exception as e:
            logger.error(f"Error validating URL: {e}")
            return False

    def get_sorted_extractors(self, url: str) -> List[BaseExtractor]:
        """Capable extractors, highest success rate first. sorted() is stable."""
        capable = [e for e in self.extractors if e.can_handle(url) and e.is_valid_url(url)]
        return sorted(capable, key=lambda e: e.get_health().success_rate, reverse=True)

    def _ordered_for(self, url: str) -> List[BaseExtractor]:
        if not self.is_valid_url(url):
            raise InvalidURLError(f"Invalid YouTube URL: {url}")
        return self.get_sorted_extractors(url)

    @staticmethod
    def _exhausted(operation: str, last_error: Optional[BaseException]) -> AllExtractorsFailedError:
        if last_error is None:
            return AllExtractorsFailedError(f"No extractor available to {operation}")
        return AllExtractorsFailedError(
            f"All extractors failed to {operation}. Last error: {last_error}",
            last_error=last_error,
        )

    async def extract(self, url: str) -> ExtractionResult:
        """
        Run extract() on each extractor in order until one returns metadata.

        Returns:
            ExtractionResult of the winning extractor (extractor_used set)
        """
        extractors = self._ordered_for(url)
        last_error = None

        for extractor in extractors:
            logger.info(f"Trying {extractor.name} for video info")
            result = await extractor.extract(url)

            if result.success and result.video_info:
                logger.info(f"Success with {extractor.name}")
                return result

            last_error = ExtractionError(result.error or 'Unknown extraction error')

        raise self._exhausted('get video information', last_error) from last_error

    async def get_video_info(self, url: str) -> VideoInfo:
        result = await self.extract(url)
        return result.video_info

    async def get_audio_url(self, url: str) -> str:
        """Resolve an audio URL, one attempt per extractor."""
        extractors = self._ordered_for(url)
        last_error = None

        for extractor in extractors:
            logger.info(f"Trying {extractor.name} for audio URL")
            try:
                audio_url = await extractor.resolve_audio_url(url)
                if not audio_url:
                    raise ExtractionError(f"{extractor.name} returned an empty audio URL")
            except Exception as e:
                logger.warning(f"{extractor.name} failed: {e}")
                extractor.health.record_failure()
                last_error = e
                continue

            logger.info(f"Success with {extractor.name}")
            extractor.health.record_success()
            return audio_url

        raise self._exhausted('get audio URL', last_error) from last_error

    async def download_audio_as_buffer(self, url: str) -> bytes:
        """
        Download audio bytes, retrying each extractor with backoff.

        Each extractor gets max_retries + 1 attempts; an empty payload counts
        as a failed attempt.
        """
        extractors = self._ordered_for(url)
        last_error = None

        for extractor in extractors:
            for attempt in range(self.max_retries + 1):
                retry_text = f" (retry {attempt})" if attempt > 0 else ""
                logger.info(f"Trying {extractor.name} for audio download{retry_text}")

                try:
                    audio_buffer = await extractor.fetch_audio_bytes(url)
                    if not audio_buffer:
                        raise AudioDownloadError(f"{extractor.name} returned an empty audio buffer")
                except Exception as e:
                    logger.warning(f"{extractor.name} failed{retry_text}: {e}")
                    extractor.health.record_failure()
                    last_error = e

                    if attempt < self.max_retries:
                        delay = self.retry_base_delay * (2 ** attempt)
                        logger.info(f"Retrying {extractor.name} in {delay:.1f}s")
                        await asyncio.sleep(delay)
                    continue

                logger.info(f"Success with {extractor.name}{retry_text}: {len(audio_buffer)} bytes")
                extractor.health.record_success()
                return audio_buffer

        raise self._exhausted('download audio', last_error) from last_error

    def get_extractor_health(self) -> List[ExtractorHealth]:
        return [extractor.get_health() for extractor in self.extractors]

    def get_health_summary(self) -> Dict[str, Any]:
        healths = self.get_extractor_health()

        best = None
        for health in healths:
            if best is None or health.success_rate > best.success_rate:
                best = health

        return {
            'extractors': [h.to_dict() for h in healths],
            'best_extractor': best.to_dict() if best else None,
            'overall_success_rate': sum(h.success_rate for h in healths) / len(healths) if healths else 0.0,
            'last_health_check': self.last_health_check.isoformat() if self.last_health_check else None,
            'total_extractors': len(self.extractors),
        }

    async def perform_health_check(self, probe_url: Optional[str] = None):
        """Fetch metadata for the probe URL once per capable extractor. Never raises."""
        url = probe_url or self.probe_url
        logger.info("Performing health check...")

        for extractor in self.extractors:
            try:
                if extractor.can_handle(url) and extractor.is_valid_url(url):
                    await extractor.fetch_metadata(url)
                    logger.info(f"Health check passed for {extractor.name}")
            except Exception as e:
                logger.warning(f"Health check failed for {extractor.name}: {e}")

        self.last_health_check = datetime.now()


def create_extraction_router(
    extractor_names: Optional[Sequence[str]] = None,
    piped_instances: Optional[Sequence[str]] = None,
) -> ExtractionRouter:
    """
    Build a router from configuration.

    Configuration via environment:
        EXTRACTOR_ORDER: Extractors to register, in order
        PIPED_INSTANCES: Piped API base URLs
        DOWNLOAD_TIMEOUT_SECONDS: Hard timeout per download attempt
        PROBE_URL: Health check URL
    """
    from src.config import Config
    from . import EXTRACTOR_CLASSES
    from .piped_extractor import PipedExtractor

    extractors = []
    for name in extractor_names or Config.EXTRACTOR_ORDER:
        if name not in EXTRACTOR_CLASSES:
            raise ValueError(f"Unknown extractor: {name}")

        kwargs = {
            'download_timeout': Config.DOWNLOAD_TIMEOUT,
            'request_timeout': Config.REQUEST_TIMEOUT,
        }
        if EXTRACTOR_CLASSES[name] is PipedExtractor:
            kwargs['instances'] = piped_instances or Config.PIPED_INSTANCES
        extractors.append(EXTRACTOR_CLASSES[name](**kwargs))

    logger.info(f"Registered extractors: {', '.join(e.name for e in extractors)}")

    return ExtractionRouter(
        extractors,
        max_retries=Config.DOWNLOAD_MAX_RETRIES,
        retry_base_delay=Config.RETRY_BASE_DELAY,
        probe_url=Config.PROBE_URL,
    )
