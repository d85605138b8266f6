"""
Extract timbre distributions from audio files.

Usage:
  # One file, JSON to stdout:
  timbre-extract song.wav

  # A folder (wav/flac/aiff/ogg/mp3), written to one JSON file:
  timbre-extract /path/to/music --output distributions.json

  # Custom model / trimming:
  timbre-extract song.flac --components 5 --skip-intro 10 --skip-outro 10 --min-length 20

  # Native sample rate, file-backed stream (no decode of the skipped intro):
  timbre-extract song.wav --native

Exit code 1 when any file could not be modelled.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

import soundfile as sf
import structlog

from timbre.config import settings
from timbre.core.audio import SoundFileStream, decode_stream
from timbre.core.errors import TimbreError
from timbre.core.extractor import ExtractionConfig, TimbreDistributionExtractor


def _stderr_logger(*args):
    # resolved per call so redirected or captured stderr is honoured
    return structlog.PrintLogger(sys.stderr)


def configure_logging() -> None:
    """Route structlog output to stderr; stdout carries only the JSON."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(20),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )


def collect_files(paths: list[str]) -> list[Path]:
    files: list[Path] = []
    for p in map(Path, paths):
        if p.is_dir():
            files.extend(sorted(
                f for f in p.rglob("*")
                if f.is_file() and f.suffix.lower() in settings.ALLOWED_AUDIO_EXTENSIONS
            ))
        else:
            files.append(p)
    return files


def extract_file(extractor: TimbreDistributionExtractor, path: Path,
                 native: bool = False, sample_rate: Optional[int] = None) -> dict:
    if native:
        with SoundFileStream(str(path)) as stream:
            td = extractor.extract(stream)
    else:
        stream = decode_stream(path.read_bytes(), path.name, sample_rate=sample_rate)
        td = extractor.extract(stream)
    return {"file": str(path), **td.to_dict()}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="timbre-extract",
        description="Fit MFCC Gaussian-mixture timbre distributions",
    )
    parser.add_argument("paths", nargs="+", help="Audio files or folders")
    parser.add_argument("--output", "-o", type=str, default=None,
                        help="Write JSON here instead of stdout")
    parser.add_argument("--components", type=int, default=settings.TIMBRE_COMPONENTS,
                        help=f"Gaussian components (default: {settings.TIMBRE_COMPONENTS})")
    parser.add_argument("--skip-intro", type=float, default=settings.SKIP_INTRO_SECONDS,
                        help=f"Seconds skipped at the start (default: {settings.SKIP_INTRO_SECONDS})")
    parser.add_argument("--skip-outro", type=float, default=settings.SKIP_OUTRO_SECONDS,
                        help=f"Seconds skipped at the end (default: {settings.SKIP_OUTRO_SECONDS})")
    parser.add_argument("--min-length", type=float, default=settings.MIN_STREAM_SECONDS,
                        help=f"Minimum seconds left after trimming (default: {settings.MIN_STREAM_SECONDS})")
    parser.add_argument("--sample-rate", type=int, default=settings.SAMPLE_RATE,
                        help=f"Resample to this rate before analysis (default: {settings.SAMPLE_RATE})")
    parser.add_argument("--native", action="store_true",
                        help="Analyse at the file's own sample rate via a seekable stream")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        config = ExtractionConfig(
            n_components=args.components,
            skip_intro_seconds=args.skip_intro,
            skip_outro_seconds=args.skip_outro,
            minimum_stream_seconds=args.min_length,
        )
    except TimbreError as e:
        print(f"ERROR {e}", file=sys.stderr)
        return 2

    files = collect_files(args.paths)
    if not files:
        print("ERROR No audio files found", file=sys.stderr)
        return 1

    extractor = TimbreDistributionExtractor.from_settings(settings, config=config)
    results, failed = [], 0

    for path in files:
        try:
            results.append(extract_file(extractor, path, native=args.native,
                                        sample_rate=args.sample_rate))
            print(f"OK   {path}", file=sys.stderr)
        except (TimbreError, ValueError, OSError, sf.SoundFileError) as e:
            failed += 1
            print(f"FAIL {path}: {e}", file=sys.stderr)

    payload = results[0] if len(files) == 1 and results else results
    text = json.dumps(payload, indent=2)
    if args.output:
        Path(args.output).write_text(text)
        print(f"OK {len(results)}/{len(files)} distributions written to {args.output}", file=sys.stderr)
    else:
        print(text)

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
