#!/usr/bin/env python
"""Main entry point for the findtags scraper.

Scrapes the information about Nimbus Note cards that does not get
transferred on an export, like tags, creation date and folders.

NB: note sub-folders are identified by their name together with their
parent path, so same-named notebooks at different depths stay apart.
"""
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from nimbus_tags import __version__
from nimbus_tags.config import NimbusTagsConfig, config, load_credentials
from nimbus_tags.exceptions import FATAL_ERRORS, NimbusTagsError
from nimbus_tags.models.db_models import reset_database
from nimbus_tags.models.schema import has_problem_characters
from nimbus_tags.observability import configure_logging, run_timer, timed_operation
from nimbus_tags.scraper.nimbus import NimbusScraper, create_driver
from nimbus_tags.services.reconciler import Reconciler
from nimbus_tags.services.traversal import TraversalController, TraversalResult
from nimbus_tags.storage.entity_store import EntityStore

logger = logging.getLogger("nimbus_tags.main")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="findtags",
        description=(
            "Scrapes some info about Nimbus Note cards that does not get "
            "transferred on an export, like tags and creation date."
        ),
    )
    parser.add_argument(
        "--dump",
        help="List the data from the database then exit",
        action="store_true",
    )
    parser.add_argument(
        "--skip",
        help=(
            "Skip over note cards until reaching one whose title matches this "
            "regex (case-insensitive). Used to restart an interrupted run"
        ),
        metavar="PATTERN",
        default="",
    )
    parser.add_argument(
        "--debug",
        help="Print status information as the program progresses",
        action="store_true",
    )
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NIMBUS_TAGS_DATABASE_PATH"),
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for the rotating log file",
        type=str,
        default=os.environ.get("NIMBUS_TAGS_LOG_DIR"),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def update_config(args: argparse.Namespace) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.log_dir:
        config.log_dir = Path(args.log_dir)


def print_database(store: EntityStore, folder_filter: str = "%", out: Optional[TextIO] = None) -> int:
    """Print every note with its folder and tags, then the risky titles.

    Returns:
        Number of notes printed.
    """
    out = out or sys.stdout
    listing = store.list_notes(folder_filter)

    print(
        " ========== List of all note titles, their folders, and their tags ========== \n",
        file=out,
    )
    for note in listing:
        print(note.title, file=out)
        print(" " * 4 + note.folder_name, file=out)
        print(" " * 4 + (", ".join(note.tags) if note.tags else "----"), file=out)
        print(file=out)

    print(
        "\n\n ========== List note titles with problematic characters ========== \n"
        " ========== Includes colon, forward-slash, and double-quote ========== \n"
        " ========== Nimbus changes the first 2 to an exclamation-mark ========== \n",
        file=out,
    )
    for note in listing:
        if has_problem_characters(note.title):
            print(f"  {note.title}", file=out)

    return len(listing)


def open_scraper(cfg: NimbusTagsConfig) -> NimbusScraper:
    """Start the browser and sign in to Nimbus Note."""
    credentials = load_credentials(cfg.get_absolute_path(cfg.credentials_path))
    scraper = NimbusScraper(create_driver(cfg.use_firefox()), settle_timeout=cfg.settle_timeout)
    try:
        scraper.open(cfg.nimbus_url, credentials)
    except Exception:
        scraper.close()
        raise
    return scraper


def run_traversal(store: EntityStore, scraper, skip_pattern: str, max_iterations: int) -> TraversalResult:
    """Walk the notes list, storing every note's metadata."""
    controller = TraversalController(
        scraper,
        Reconciler(store),
        skip_pattern=skip_pattern,
        max_iterations=max_iterations,
    )
    with timed_operation("traverse", skip=skip_pattern or None) as op:
        result = controller.run()
        op["processed"] = len(result.processed)
        op["failed"] = len(result.failed)

    logger.info(
        f"Stored {len(result.processed)} notes, skipped {len(result.skipped)}, "
        f"failed {len(result.failed)} ({result.stop_reason.value} after "
        f"{result.iterations} title cards)"
    )
    for title, error in result.failed:
        logger.warning(f"Not stored: '{title}': {error}")
    return result


def main(argv: Optional[List[str]] = None) -> int:
    """Run the findtags scraper."""
    args = parse_args(argv)
    update_config(args)

    log_level = logging.DEBUG if args.debug else logging.INFO
    try:
        configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning(f"Failed to configure file logging: {e}")

    with run_timer(config.app_name):
        try:
            if args.dump:
                with EntityStore(config.get_db_url()) as store:
                    print_database(store)
                return 0

            if args.skip:
                logger.info("Skipping down to the selected card.")
            else:
                # A fresh run starts from an empty database
                reset_database(config.get_db_path())

            with EntityStore(config.get_db_url()) as store:
                scraper = open_scraper(config)
                try:
                    run_traversal(store, scraper, args.skip, config.max_iterations)
                finally:
                    scraper.close()
        except FATAL_ERRORS as e:
            logger.critical(f"{e}", exc_info=True)
            logger.critical(
                "The database keeps every note stored so far; "
                "resume with --skip=<title of the failed note>"
            )
            return 1
        except NimbusTagsError as e:
            logger.critical(f"{e}", exc_info=True)
            return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
