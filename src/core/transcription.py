"""
Transcription client - HTTP API of the external transcription service.

The extraction service only passes audio bytes through; the transcription
engine itself lives elsewhere.

Configuration:
    TRANSCRIPTION_URL: Base URL of the transcription server
    TRANSCRIPTION_API_KEY: Optional bearer token
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger('Scribe.Transcription')


@dataclass
class TranscriptionResult:
    """Transcription returned by the external service."""
    text: str
    segments: List[Dict[str, Any]]
    language: str
    duration: float
    confidence: Optional[float] = None
    model: str = "unknown"
    processing_time: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'segments': self.segments,
            'language': self.language,
            'duration': self.duration,
            'confidence': self.confidence,
            'model': self.model,
            'processing_time': self.processing_time,
        }


class TranscriptionError(Exception):
    """Error during transcription."""
    pass


class TranscriptionUnavailableError(TranscriptionError):
    """Transcription service is not configured."""
    pass


def estimate_confidence(segments: List[Dict[str, Any]]) -> Optional[float]:
    """Mean per-segment probability from Whisper-style avg_logprob values."""
    logprobs = [s['avg_logprob'] for s in segments if isinstance(s.get('avg_logprob'), (int, float))]
    if not logprobs:
        return None
    return sum(math.exp(lp) for lp in logprobs) / len(logprobs)


class TranscriptionClient:
    """Client for the transcription server's POST /transcribe endpoint."""

    def __init__(
        self,
        server_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 600,
    ):
        self.server_url = server_url.rstrip('/') if server_url else None
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> 'TranscriptionClient':
        from src.config import Config
        return cls(
            server_url=Config.TRANSCRIPTION_URL,
            api_key=Config.TRANSCRIPTION_API_KEY,
            timeout=Config.TRANSCRIPTION_TIMEOUT,
        )

    def is_available(self) -> bool:
        return bool(self.server_url)

    def _get_headers(self) -> dict:
        """Get request headers including auth if configured."""
        headers = {}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        return headers

    def transcribe(
        self,
        audio_bytes: bytes,
        language: Optional[str] = None,
        filename: str = 'youtube-audio.webm',
    ) -> TranscriptionResult:
        """Send audio bytes to the transcription server. Blocking."""
        if not self.server_url:
            raise TranscriptionUnavailableError("TRANSCRIPTION_URL not configured")

        start_time = time.time()
        logger.info(f"Sending {len(audio_bytes) / 1024 / 1024:.1f} MB to transcription server...")

        try:
            response = requests.post(
                f"{self.server_url}/transcribe",
                files={'file': (filename, audio_bytes, 'audio/webm')},
                data={
                    'language': language or '',
                    'response_format': 'verbose_json',
                },
                headers=self._get_headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Transcription request failed: {e}")
            raise TranscriptionError(f"Transcription request failed: {e}") from e

        if response.status_code != 200:
            try:
                error_detail = response.json().get('detail', response.text)
            except ValueError:
                error_detail = response.text
            raise TranscriptionError(f"Server error: {error_detail}")

        result = response.json()
        processing_time = time.time() - start_time
        segments = result.get('segments', [])

        logger.info(f"Transcription complete in {processing_time:.1f}s")

        return TranscriptionResult(
            text=result.get('text', ''),
            segments=segments,
            language=result.get('language', language or 'unknown'),
            duration=float(result.get('duration') or 0),
            confidence=result.get('confidence', estimate_confidence(segments)),
            model=result.get('model', 'unknown'),
            processing_time=processing_time,
        )
