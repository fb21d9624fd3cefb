"""CLI entrypoint for lawn lapse."""

import argparse
import sys
from typing import Optional, Sequence

from lawn_lapse.app import LawnLapse, exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Capture lawn snapshots on a schedule and build timelapse videos.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Backfill and build videos for every camera, then exit.",
    )
    parser.add_argument(
        "--videos-only",
        action="store_true",
        help="Rebuild videos from stored frames without contacting the archive.",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Print frame and video status for every camera.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Instantiate the lawn lapse facade and run the requested action."""
    args = build_parser().parse_args(argv)
    app = LawnLapse(verbose=args.verbose)

    if args.status:
        print("\n\n".join(app.status_reports()))
        return 0

    if args.once or args.videos_only:
        results = app.run_all(videos_only=args.videos_only)
        return exit_code(results)

    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
