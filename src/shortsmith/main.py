"""Subcommand dispatcher for shortsmith.

Usage:
    shortsmith detect  [source.mp4] --manifest segments.yaml --output-dir shorts/
    shortsmith clip    source.mp4 --start 45 --end 75 --output-dir shorts/
    shortsmith -v detect ...
"""

import argparse
import logging
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="shortsmith",
        description="Turn time ranges of a video into vertical short-form clips.",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Log pipeline activity (-vv for debug output)",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("detect", help="Extract every segment listed in a YAML manifest")
    subparsers.add_parser("clip", help="Extract one manually selected range")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    level = logging.WARNING
    if parsed.verbose == 1:
        level = logging.INFO
    elif parsed.verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if parsed.command == "detect":
        from .detect_cli import main as detect_main
        detect_main(remaining)
    elif parsed.command == "clip":
        from .clip_cli import main as clip_main
        clip_main(remaining)


if __name__ == "__main__":
    main()
