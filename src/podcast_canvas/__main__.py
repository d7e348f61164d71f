"""cli entrypoint for podcast canvas."""

import argparse
import logging
import os

from .core.persistence import DATA_DIR_ENV_VAR
from .tui.app import run


def main():
    parser = argparse.ArgumentParser(
        description="podcast canvas - grow a podcast script as a branching tree"
    )
    parser.add_argument(
        "podcast",
        nargs="?",
        help="id of a saved podcast to open (starts a new one if omitted)",
    )
    parser.add_argument(
        "--data-dir",
        "-d",
        help=f"podcast storage directory (default: ${DATA_DIR_ENV_VAR} or ~/.podcast-canvas)",
    )
    parser.add_argument(
        "--mock",
        "-m",
        action="store_true",
        help="use mock generation service (no api calls, for testing)",
    )
    parser.add_argument(
        "--log-level",
        default="warning",
        choices=["debug", "info", "warning", "error"],
        help="logging level",
    )
    parser.add_argument(
        "--log-file",
        help="write logs here (the terminal belongs to the ui)",
    )

    args = parser.parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        filename=args.log_file or os.devnull,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    run(podcast_id=args.podcast, data_dir=args.data_dir, mock=args.mock)


if __name__ == "__main__":
    main()
