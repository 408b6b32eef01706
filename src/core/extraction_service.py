"""
Extraction service - the public face of the extractor router.

Wraps the router operations and samples health metrics after every call so
alerts follow real traffic, not only the scheduled probes.
"""

import logging
from typing import Any, Dict, List, Optional

from src.core.extractors import ExtractionRouter, VideoInfo, create_extraction_router
from src.core.monitor import HealthMonitor

logger = logging.getLogger('Scribe.Service')


class ExtractionService:
    """Owns one router and its health monitor."""

    def __init__(self, router: ExtractionRouter, monitor: Optional[HealthMonitor] = None):
        self.router = router
        self.monitor = monitor or HealthMonitor(router)

    @classmethod
    def from_config(cls) -> 'ExtractionService':
        from src.config import Config
        from src.notifications import send_health_alert, telegram_configured

        router = create_extraction_router()
        handlers = [send_health_alert] if telegram_configured() else []
        monitor = HealthMonitor(
            router,
            max_metrics=Config.METRICS_HISTORY_SIZE,
            max_alerts=Config.ALERTS_HISTORY_SIZE,
            alert_handlers=handlers,
        )
        return cls(router, monitor)

    def is_valid_url(self, url: str) -> bool:
        return self.router.is_valid_url(url)

    async def get_video_info(self, url: str) -> VideoInfo:
        logger.info("Getting video info with fallback system")
        try:
            return await self.router.get_video_info(url)
        finally:
            await self.monitor.sample()

    async def get_audio_url(self, url: str) -> str:
        logger.info("Extracting audio URL with fallback system")
        try:
            return await self.router.get_audio_url(url)
        finally:
            await self.monitor.sample()

    async def download_audio_as_buffer(self, url: str) -> bytes:
        logger.info("Downloading audio buffer with fallback system")
        try:
            return await self.router.download_audio_as_buffer(url)
        finally:
            await self.monitor.sample()

    def get_extractor_health(self) -> List[Dict[str, Any]]:
        return [health.to_dict() for health in self.router.get_extractor_health()]

    def get_health_summary(self) -> Dict[str, Any]:
        return self.monitor.get_health_summary()

    async def perform_health_check(self, probe_url: Optional[str] = None):
        await self.monitor.perform_health_check(probe_url)

    def start_monitoring(self, interval_minutes: float = 5):
        return self.monitor.start_monitoring(interval_minutes)

    async def stop_monitoring(self):
        await self.monitor.stop_monitoring()
