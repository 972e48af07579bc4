#!/usr/bin/env python3
"""Run one recorded WAV through the voice-command pipeline and print the outcome."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from typing import Any, Dict, Optional, Sequence

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.logging_setup import setup_logging
from app.pipeline_wiring import build_pipeline
from app.settings import settings_from_env
from core.errors import ConfigurationError
from core.types import AudioSegment, UtteranceOutcome
from metrics import get_metrics_summary
from utils.wav_encoder import decode_wav

logger = logging.getLogger("recognize_command")


def outcome_to_dict(outcome: UtteranceOutcome) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "status": outcome.status,
        "command": outcome.command,
        "text": outcome.text,
        "language": outcome.language,
        "error": outcome.error,
        "elapsed_s": round(outcome.elapsed_s, 3),
    }
    if outcome.meta:
        out["meta"] = dict(outcome.meta)
    if outcome.match is not None:
        out["match"] = {
            "phase": outcome.match.phase,
            "similarity": round(outcome.match.similarity, 3),
            "variant": outcome.match.variant,
            "token": outcome.match.token,
        }
    return out


def load_segment(path: str) -> AudioSegment:
    with open(path, "rb") as fh:
        samples, rate, channels = decode_wav(fh.read())
    return AudioSegment.from_samples(samples, rate, channels)


async def _run(pipeline, segment: AudioSegment) -> UtteranceOutcome:
    try:
        return await pipeline.process(segment)
    finally:
        await pipeline.provider.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Recognize a voice command from a PCM16 WAV file")
    parser.add_argument('--wav', required=True, help='Canonical 16-bit PCM WAV file')
    parser.add_argument('--backend', choices=('remote', 'local'), help='Override VOICE_BACKEND')
    parser.add_argument('--gain', type=float, help='Override AUDIO_GAIN')
    parser.add_argument('--env-file', help='Path to a .env file')
    parser.add_argument('--metrics', action='store_true', help='Print metrics summary after the run')
    parser.add_argument('--debug', action='store_true')
    args = parser.parse_args(argv)

    setup_logging(debug=args.debug)

    try:
        settings = settings_from_env(args.env_file)
        if args.backend:
            settings = replace(settings, backend=args.backend)
        if args.gain is not None:
            settings = replace(settings, gain=args.gain)
        pipeline = build_pipeline(settings)
    except ConfigurationError as e:
        logger.error(f"Pipeline disabled: {e}")
        return 2

    try:
        segment = load_segment(args.wav)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read {args.wav}: {e}")
        return 1

    outcome = asyncio.run(_run(pipeline, segment))
    print(json.dumps(outcome_to_dict(outcome), ensure_ascii=False))
    if args.metrics:
        print(json.dumps(get_metrics_summary(), indent=2))
    return 0 if outcome.status in ("command", "no_command", "rejected", "skipped") else 1


if __name__ == '__main__':
    sys.exit(main())
