"""
YouTube Extractors - resilient multi-backend media extraction.

Supports multiple backends:
- yt-dlp: the yt-dlp YouTube extractor
- pytubefix: innertube client library with several player clients
- piped: public Piped API instances over HTTP

Usage:
    from src.core.extractors import create_extraction_router

    router = create_extraction_router()
    info = await router.get_video_info(url)
    audio = await router.download_audio_as_buffer(url)
"""

from .base import (
    AllExtractorsFailedError,
    AudioDownloadError,
    AudioFormat,
    BaseExtractor,
    DownloadTimeoutError,
    ExtractionError,
    ExtractionResult,
    ExtractorHealth,
    InvalidURLError,
    MetadataFetchError,
    NoAudioFormatError,
    VideoInfo,
    extract_video_id,
    select_audio_format,
)
from .piped_extractor import PipedExtractor
from .pytubefix_extractor import PytubefixExtractor
from .ytdlp_extractor import YtDlpExtractor
from .router import ExtractionRouter, create_extraction_router

# Names accepted in EXTRACTOR_ORDER
EXTRACTOR_CLASSES = {
    'ytdlp': YtDlpExtractor,
    'pytubefix': PytubefixExtractor,
    'piped': PipedExtractor,
}

__all__ = [
    'ExtractionRouter',
    'create_extraction_router',
    'BaseExtractor',
    'ExtractionResult',
    'ExtractorHealth',
    'VideoInfo',
    'AudioFormat',
    'select_audio_format',
    'extract_video_id',
    'YtDlpExtractor',
    'PytubefixExtractor',
    'PipedExtractor',
    'EXTRACTOR_CLASSES',
    # Errors
    'ExtractionError',
    'InvalidURLError',
    'MetadataFetchError',
    'NoAudioFormatError',
    'AudioDownloadError',
    'DownloadTimeoutError',
    'AllExtractorsFailedError',
]
