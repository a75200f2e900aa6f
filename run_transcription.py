#!/usr/bin/env python3
"""
TypeMyworDz - Command-line Runner
Transcribes a single audio/video file through the same router as the API.

Usage:
    python run_transcription.py interview.mp3
    python run_transcription.py memo.m4a --language fr --output memo.txt
    python run_transcription.py --status
"""

import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path

from typemywordz.config import Config
from typemywordz.core.transcription_backends import AudioUpload, TranscriptionRouter
from typemywordz.languages import LANGUAGES, DEFAULT_LANGUAGE
from typemywordz.notifications import Notifier
from typemywordz.usage import UsageLimitError, get_usage_gate

# Configure logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger('TypeMyworDz.Runner')

# Reduce noise from libraries
logging.getLogger('httpx').setLevel(logging.WARNING)


async def run(audio_path: Path, language: str, user_id: str = None, output: Path = None) -> bool:
    """Transcribe one file. Returns True if a transcript was produced."""
    usage_gate = None
    if user_id and Config.USAGE_BACKEND == 'memory':
        # Profiles only live as long as the process, so there is nobody to charge
        logger.warning("--user-id needs USAGE_BACKEND=supabase, running without plan limits")
        user_id = None
    elif user_id:
        usage_gate = get_usage_gate()

    router = TranscriptionRouter(usage_gate=usage_gate, notifier=Notifier())

    upload = AudioUpload.from_path(audio_path)
    logger.info(f"{'='*60}")
    logger.info(f"Transcribing: {upload.file_name} ({upload.size_mb:.1f} MB, ~{upload.estimated_minutes} min)")
    logger.info(f"{'='*60}")

    try:
        job = await router.transcribe(upload, language=language, user_id=user_id)
    except UsageLimitError as e:
        logger.error(f"Not allowed to transcribe: {e}")
        return False

    if job.status != 'completed':
        logger.error(f"Job {job.id} ended as {job.status}: {job.error or 'no details'}")
        return False

    logger.info(f"  ✓ Done via {job.source_provider}: {len(job.transcript)} chars")
    if output:
        output.write_text(job.transcript, encoding='utf-8')
        logger.info(f"  ✓ Saved to {output}")
    else:
        print(job.transcript)
    return True


def main():
    parser = argparse.ArgumentParser(
        description='TypeMyworDz transcription runner',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_transcription.py interview.mp3
  python run_transcription.py memo.m4a --language fr --output memo.txt
  python run_transcription.py --status
        """
    )

    parser.add_argument('audio', nargs='?', type=Path, help='Audio or video file to transcribe')
    parser.add_argument(
        '--language',
        default=DEFAULT_LANGUAGE,
        choices=sorted(LANGUAGES),
        help=f'Language code (default: {DEFAULT_LANGUAGE})'
    )
    parser.add_argument('--user-id', help='Charge usage to this user (enables plan limits)')
    parser.add_argument('--output', type=Path, help='Write the transcript here instead of stdout')
    parser.add_argument('--status', action='store_true', help='Print backend configuration and exit')

    args = parser.parse_args()

    # Validate config
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        logger.error("Please set required environment variables")
        sys.exit(1)

    if args.status:
        router = TranscriptionRouter()
        print(json.dumps(router.get_status(), indent=2))
        sys.exit(0)

    if args.audio is None:
        parser.error('an audio file is required')
    if not args.audio.exists():
        logger.error(f"Audio file not found: {args.audio}")
        sys.exit(1)

    success = asyncio.run(run(args.audio, args.language, args.user_id, args.output))
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
