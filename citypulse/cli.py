"""
CityPulse Command Line

    citypulse serve [--host HOST] [--port PORT]
    citypulse analyze FILE [--mime TYPE] [--vision-only]
"""

import argparse
import json
import mimetypes
import sys
from dataclasses import replace
from typing import List, Optional

from citypulse.config import DEFAULT_CONFIG
from citypulse.errors import CityPulseError
from citypulse.observability import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="citypulse",
        description="CityPulse incident decision pipeline",
    )
    parser.add_argument(
        "--log-level",
        default=DEFAULT_CONFIG.log_level,
        help="Logging level (default: $CITYPULSE_LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=DEFAULT_CONFIG.api_host)
    serve.add_argument("--port", type=int, default=DEFAULT_CONFIG.api_port)

    analyze = subparsers.add_parser("analyze", help="Run the pipeline over a local file")
    analyze.add_argument("file", help="Image or video file")
    analyze.add_argument(
        "--mime",
        help="Media type (default: guessed from the file extension)",
    )
    analyze.add_argument(
        "--vision-only",
        action="store_true",
        help="Labels and hazard categories only; no OCR, decision or incident",
    )
    return parser


def _analyze(args) -> int:
    from citypulse.pipeline import IncidentPipeline

    mime_type = args.mime or mimetypes.guess_type(args.file)[0] or ""
    pipeline = IncidentPipeline(DEFAULT_CONFIG)

    try:
        if args.vision_only:
            result = pipeline.analyze_vision_only(args.file, mime_type, cleanup_source=False)
        else:
            result = pipeline.process_upload(
                args.file, args.file, mime_type, cleanup_source=False
            )
    except CityPulseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point"""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    if args.command == "serve":
        from citypulse.api import main as serve
        serve(replace(DEFAULT_CONFIG, api_host=args.host, api_port=args.port, log_level=args.log_level))
        return 0

    return _analyze(args)


if __name__ == "__main__":
    sys.exit(main())
