"""
Scribe Extraction Service - HTTP API
Exposes YouTube metadata, audio extraction and transcription hand-off.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from src.config import Config
from src.core.extraction_service import ExtractionService
from src.core.extractors import AllExtractorsFailedError, InvalidURLError
from src.core.transcription import TranscriptionClient, TranscriptionError

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)
logger = logging.getLogger('Scribe.API')

# Reduce noise
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('yt_dlp').setLevel(logging.WARNING)


class UrlRequest(BaseModel):
    url: str = ''


class TranscribeRequest(BaseModel):
    url: str = ''
    language: str = 'en'


class HealthCheckRequest(BaseModel):
    probe_url: Optional[str] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the extraction service on startup."""
    Config.validate()
    if getattr(app.state, 'service', None) is None:
        app.state.service = ExtractionService.from_config()
    if getattr(app.state, 'transcriber', None) is None:
        app.state.transcriber = TranscriptionClient.from_config()
    logger.info("Extraction service initialized")

    if Config.ENABLE_HEALTH_MONITORING:
        app.state.service.start_monitoring(Config.HEALTH_CHECK_INTERVAL_MINUTES)
    yield
    await app.state.service.stop_monitoring()
    logger.info("Shutting down")


app = FastAPI(
    title="Scribe Extraction Service",
    description="Resilient multi-backend YouTube audio extraction",
    lifespan=lifespan
)


def _require_url(service: ExtractionService, url: str) -> str:
    url = (url or '').strip()
    if not url:
        raise HTTPException(status_code=400, detail="YouTube URL is required")
    if not service.is_valid_url(url):
        raise HTTPException(status_code=400, detail="Invalid YouTube URL")
    return url


@app.get("/health")
async def health_check():
    """Liveness check."""
    service = app.state.service
    return {
        "status": "healthy",
        "monitoring": service.monitor.is_monitoring,
        "extractors": [e.name for e in service.router.extractors],
    }


@app.post("/youtube/info")
async def youtube_info(payload: UrlRequest):
    """Video metadata, rejecting videos longer than MAX_VIDEO_DURATION."""
    service = app.state.service
    url = _require_url(service, payload.url)

    try:
        video_info = await service.get_video_info(url)
    except InvalidURLError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AllExtractorsFailedError as e:
        logger.error(f"YouTube extraction error: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to extract video information: {e}")

    if video_info.duration > Config.MAX_VIDEO_DURATION:
        raise HTTPException(
            status_code=400,
            detail=f"Video is too long. Maximum duration is {Config.MAX_VIDEO_DURATION // 60} minutes."
        )

    return {"success": True, "video_info": video_info.to_dict()}


@app.post("/youtube/audio-url")
async def youtube_audio_url(payload: UrlRequest):
    service = app.state.service
    url = _require_url(service, payload.url)

    try:
        audio_url = await service.get_audio_url(url)
    except InvalidURLError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AllExtractorsFailedError as e:
        logger.error(f"Audio URL extraction error: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to extract audio URL: {e}")

    return {"success": True, "audio_url": audio_url}


@app.post("/youtube/transcribe")
async def youtube_transcribe(payload: TranscribeRequest):
    """Download the audio and hand it to the transcription service."""
    service = app.state.service
    transcriber = app.state.transcriber
    url = _require_url(service, payload.url)

    if not transcriber.is_available():
        raise HTTPException(status_code=503, detail="Transcription service not configured")

    try:
        audio_buffer = await service.download_audio_as_buffer(url)
    except InvalidURLError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AllExtractorsFailedError as e:
        logger.error(f"YouTube download error: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to download audio: {e}")

    try:
        result = await asyncio.to_thread(transcriber.transcribe, audio_buffer, payload.language or 'en')
    except TranscriptionError as e:
        logger.error(f"YouTube transcription error: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to transcribe audio: {e}")

    return {"success": True, "transcription": result.to_dict()}


@app.get("/extractors/health")
async def extractors_health():
    return app.state.service.get_health_summary()


@app.post("/extractors/health-check")
async def extractors_health_check(payload: HealthCheckRequest):
    service = app.state.service
    await service.perform_health_check(payload.probe_url)
    return service.get_health_summary()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.PORT)
