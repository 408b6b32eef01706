#!/usr/bin/env python3
"""
Scribe Extraction Service - Command line runner

Usage:
    python run_extractor.py info URL             # Print video metadata
    python run_extractor.py audio-url URL        # Print a direct audio stream URL
    python run_extractor.py download URL -o a.webm
    python run_extractor.py health               # Probe all extractors once
    python run_extractor.py monitor --interval 5 # Keep probing until Ctrl+C
"""

import asyncio
import json
import logging
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from src.config import Config
from src.core.extraction_service import ExtractionService
from src.core.extractors import ExtractionError

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('Scribe.CLI')

# Reduce noise from libraries
logging.getLogger('httpx').setLevel(logging.WARNING)
logging.getLogger('yt_dlp').setLevel(logging.WARNING)


async def run_info(service: ExtractionService, url: str) -> int:
    info = await service.get_video_info(url)
    print(json.dumps(info.to_dict(), indent=2, ensure_ascii=False))
    return 0


async def run_audio_url(service: ExtractionService, url: str) -> int:
    print(await service.get_audio_url(url))
    return 0


async def run_download(service: ExtractionService, url: str, output: Path) -> int:
    audio = await service.download_audio_as_buffer(url)
    output.write_bytes(audio)
    logger.info(f"✓ Saved {len(audio) / 1024 / 1024:.1f} MB to {output}")
    return 0


async def run_health(service: ExtractionService, probe_url: str = None) -> int:
    await service.perform_health_check(probe_url)
    print(json.dumps(service.get_health_summary(), indent=2, default=str))
    return 0


async def run_monitor(service: ExtractionService, interval_minutes: float) -> int:
    logger.info("Press Ctrl+C to stop")
    task = service.start_monitoring(interval_minutes)
    try:
        await task
    finally:
        await service.stop_monitoring()
    return 0


def main():
    parser = argparse.ArgumentParser(
        description='Scribe YouTube extraction service',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_extractor.py info https://youtu.be/dQw4w9WgXcQ
  python run_extractor.py download https://youtu.be/dQw4w9WgXcQ -o audio.webm
  python run_extractor.py monitor --interval 5
        """
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    info_parser = subparsers.add_parser('info', help='Print video metadata')
    info_parser.add_argument('url')

    audio_url_parser = subparsers.add_parser('audio-url', help='Print a direct audio stream URL')
    audio_url_parser.add_argument('url')

    download_parser = subparsers.add_parser('download', help='Download the audio track')
    download_parser.add_argument('url')
    download_parser.add_argument('-o', '--output', type=Path, default=Path('audio.webm'))

    health_parser = subparsers.add_parser('health', help='Run one active health check')
    health_parser.add_argument('--probe-url', default=None)

    monitor_parser = subparsers.add_parser('monitor', help='Run health checks periodically')
    monitor_parser.add_argument(
        '--interval',
        type=float,
        default=Config.HEALTH_CHECK_INTERVAL_MINUTES,
        help=f'Minutes between checks (default: {Config.HEALTH_CHECK_INTERVAL_MINUTES})'
    )

    args = parser.parse_args()

    # Validate config
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    service = ExtractionService.from_config()

    if args.command == 'info':
        coro = run_info(service, args.url)
    elif args.command == 'audio-url':
        coro = run_audio_url(service, args.url)
    elif args.command == 'download':
        coro = run_download(service, args.url, args.output)
    elif args.command == 'health':
        coro = run_health(service, args.probe_url)
    else:
        coro = run_monitor(service, args.interval)

    try:
        sys.exit(asyncio.run(coro))
    except ExtractionError as e:
        logger.error(f"✗ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    main()
