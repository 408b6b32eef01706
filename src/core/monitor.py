"""
Extractor health monitoring.

Samples the router's health records into a bounded history, raises
edge-triggered alerts when an extractor changes health band, derives trends
and runs periodic active health checks in the background.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from src.core.extractors import ExtractionRouter

logger = logging.getLogger('Scribe.Monitor')

DEGRADED_THRESHOLD = 0.7
CRITICAL_THRESHOLD = 0.3
TREND_WINDOW = 5
TREND_THRESHOLD = 0.05


class AlertType(str, Enum):
    DEGRADED = 'degraded'
    CRITICAL = 'critical'
    RECOVERED = 'recovered'


@dataclass(frozen=True)
class HealthMetric:
    timestamp: datetime
    extractor_name: str
    success_rate: float
    total_attempts: int
    success_count: int
    last_success: Optional[datetime]
    last_failure: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'extractor_name': self.extractor_name,
            'success_rate': self.success_rate,
            'total_attempts': self.total_attempts,
            'success_count': self.success_count,
            'last_success': self.last_success.isoformat() if self.last_success else None,
            'last_failure': self.last_failure.isoformat() if self.last_failure else None,
        }


@dataclass(frozen=True)
class HealthAlert:
    type: AlertType
    extractor_name: str
    message: str
    timestamp: datetime
    success_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type.value,
            'extractor_name': self.extractor_name,
            'message': self.message,
            'timestamp': self.timestamp.isoformat(),
            'success_rate': self.success_rate,
        }


AlertHandler = Callable[[HealthAlert], Awaitable[Any]]


class HealthMonitor:
    """Tracks extractor health over time and alerts on band changes."""

    # Bands ordered best to worst
    HEALTHY, DEGRADED, CRITICAL = 0, 1, 2

    def __init__(
        self,
        router: ExtractionRouter,
        max_metrics: int = 1000,
        max_alerts: int = 100,
        degraded_threshold: float = DEGRADED_THRESHOLD,
        critical_threshold: float = CRITICAL_THRESHOLD,
        alert_handlers: Optional[List[AlertHandler]] = None,
    ):
        self.router = router
        self.degraded_threshold = degraded_threshold
        self.critical_threshold = critical_threshold
        self.alert_handlers = list(alert_handlers or [])

        self.metrics: deque = deque(maxlen=max_metrics)
        self.alerts: deque = deque(maxlen=max_alerts)
        # Latest sampled rate per extractor; survives eviction from the ring
        self._last_rate: Dict[str, float] = {}
        self._task: Optional[asyncio.Task] = None

    def _band(self, success_rate: float) -> int:
        if success_rate < self.critical_threshold:
            return self.CRITICAL
        if success_rate < self.degraded_threshold:
            return self.DEGRADED
        return self.HEALTHY

    def record_metrics(self) -> List[HealthAlert]:
        """Snapshot every extractor's health and return the alerts this pass raised."""
        timestamp = datetime.now()
        new_alerts = []

        for health in self.router.get_extractor_health():
            self.metrics.append(HealthMetric(
                timestamp=timestamp,
                extractor_name=health.name,
                success_rate=health.success_rate,
                total_attempts=health.total_attempts,
                success_count=health.success_count,
                last_success=health.last_success,
                last_failure=health.last_failure,
            ))

            alert = self._check_for_alert(health.name, health.success_rate, timestamp)
            if alert:
                self._add_alert(alert)
                new_alerts.append(alert)

        return new_alerts

    def _check_for_alert(self, name: str, success_rate: float, timestamp: datetime) -> Optional[HealthAlert]:
        previous_rate = self._last_rate.get(name)
        self._last_rate[name] = success_rate

        # First sample compares against healthy
        previous = self.HEALTHY if previous_rate is None else self._band(previous_rate)
        current = self._band(success_rate)
        percent = round(success_rate * 100)

        if current == previous:
            return None
        if current == self.CRITICAL:
            alert_type, message = AlertType.CRITICAL, f"Critical failure: {percent}% success rate"
        elif current > previous:
            alert_type, message = AlertType.DEGRADED, f"Performance degraded: {percent}% success rate"
        else:
            alert_type, message = AlertType.RECOVERED, f"Performance recovered: {percent}% success rate"

        return HealthAlert(
            type=alert_type,
            extractor_name=name,
            message=message,
            timestamp=timestamp,
            success_rate=success_rate,
        )

    def _add_alert(self, alert: HealthAlert):
        self.alerts.append(alert)
        log = logger.info if alert.type == AlertType.RECOVERED else logger.warning
        log(f"{alert.type.value.upper()}: {alert.extractor_name} - {alert.message}")

    async def _notify(self, alerts: List[HealthAlert]):
        for alert in alerts:
            for handler in self.alert_handlers:
                try:
                    await handler(alert)
                except Exception as e:
                    logger.error(f"Alert handler failed for {alert.extractor_name}: {e}")

    async def sample(self) -> List[HealthAlert]:
        """record_metrics() plus delivery of new alerts to the handlers."""
        alerts = self.record_metrics()
        await self._notify(alerts)
        return alerts

    def get_recent_alerts(self, hours: float = 24) -> List[HealthAlert]:
        cutoff = datetime.now() - timedelta(hours=hours)
        return [alert for alert in self.alerts if alert.timestamp > cutoff]

    def get_extractor_metrics(self, extractor_name: str, hours: float = 24) -> List[HealthMetric]:
        cutoff = datetime.now() - timedelta(hours=hours)
        return [m for m in self.metrics if m.extractor_name == extractor_name and m.timestamp > cutoff]

    def get_performance_trends(self) -> Dict[str, Dict[str, Any]]:
        """
        Compare the mean of the last 5 samples with the 5 before them.

        Returns:
            {extractor_name: {'current': float, 'trend': improving|declining|stable}}
        """
        history: Dict[str, List[float]] = {}
        for metric in self.metrics:
            history.setdefault(metric.extractor_name, []).append(metric.success_rate)

        trends = {}
        for name, rates in history.items():
            if len(rates) < 2:
                trends[name] = {'current': rates[0] if rates else 0.0, 'trend': 'stable'}
                continue

            recent = rates[-TREND_WINDOW:]
            older = rates[-2 * TREND_WINDOW:-TREND_WINDOW]

            recent_avg = sum(recent) / len(recent)
            older_avg = sum(older) / len(older) if older else recent_avg
            difference = recent_avg - older_avg

            if difference > TREND_THRESHOLD:
                trend = 'improving'
            elif difference < -TREND_THRESHOLD:
                trend = 'declining'
            else:
                trend = 'stable'

            trends[name] = {'current': recent_avg, 'trend': trend}

        return trends

    def get_health_summary(self) -> Dict[str, Any]:
        summary = self.router.get_health_summary()
        recent_alerts = self.get_recent_alerts(24)

        return {
            **summary,
            'recent_alerts': [a.to_dict() for a in recent_alerts],
            'alert_counts': {
                alert_type.value: sum(1 for a in recent_alerts if a.type == alert_type)
                for alert_type in (AlertType.CRITICAL, AlertType.DEGRADED, AlertType.RECOVERED)
            },
            'trends': self.get_performance_trends(),
        }

    async def perform_health_check(self, probe_url: Optional[str] = None):
        """Active probe followed by a sampling pass. Errors are logged, not raised."""
        try:
            await self.router.perform_health_check(probe_url)
            await self.sample()
        except Exception as e:
            logger.error(f"Health check failed: {e}")

    async def _run(self, interval_minutes: float):
        while True:
            await self.perform_health_check()
            await asyncio.sleep(interval_minutes * 60)

    def start_monitoring(self, interval_minutes: float = 5) -> asyncio.Task:
        """
        Probe now and then every interval_minutes until stopped.

        Must be called with a running event loop. Calling it again while
        monitoring is active returns the existing task.
        """
        if self._task and not self._task.done():
            return self._task

        logger.info(f"Starting health monitoring every {interval_minutes} minutes")
        self._task = asyncio.get_running_loop().create_task(self._run(interval_minutes))
        return self._task

    async def stop_monitoring(self):
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Health monitoring stopped")

    @property
    def is_monitoring(self) -> bool:
        return self._task is not None and not self._task.done()

    def export_health_data(self) -> Dict[str, Any]:
        return {
            'metrics': [m.to_dict() for m in self.metrics],
            'alerts': [a.to_dict() for a in self.alerts],
            'summary': self.get_health_summary(),
            'exported_at': datetime.now().isoformat(),
        }
