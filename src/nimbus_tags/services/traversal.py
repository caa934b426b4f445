"""Walks the notes list once, storing the metadata of every note."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from nimbus_tags.exceptions import ScrapeReadError
from nimbus_tags.models.schema import ItemSummary, choose_creation_date
from nimbus_tags.scraper.base import ItemScraper
from nimbus_tags.services.reconciler import Reconciler

logger = logging.getLogger(__name__)

# Safety net for a scraper that never stops producing new title cards
DEFAULT_MAX_ITERATIONS = 500

SummaryTriple = Tuple[str, str, str]


class TraversalState(str, Enum):
    """Where the controller is in its walk over the list."""
    START = "start"
    SKIPPING = "skipping"
    PROCESSING = "processing"
    DONE = "done"


class StopReason(str, Enum):
    """Why a traversal ended."""
    END_OF_LIST = "end_of_list"
    ITERATION_CAP = "iteration_cap"


@dataclass
class TraversalResult:
    """Outcome of one traversal.

    Attributes:
        iterations: Number of title cards read, including the final repeat.
        processed: Titles whose metadata was stored, in list order.
        skipped: Titles passed over while looking for the resume point.
        failed: (title, error message) of notes whose views could not be read.
        stop_reason: END_OF_LIST or ITERATION_CAP.
        skip_matched: False when a skip pattern was given but never matched.
    """
    iterations: int = 0
    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)
    stop_reason: Optional[StopReason] = None
    skip_matched: bool = True


def is_repeat_of_previous(previous: Optional[SummaryTriple], current: SummaryTriple) -> bool:
    """Whether the current title card is the one read last time.

    The list exposes no length, and advancing past the last note leaves the
    cursor where it is, so seeing the same card twice means we are done.
    Two adjacent notes with identical title and dates end the walk early.
    """
    return previous is not None and previous == current


def compile_skip_pattern(pattern: str) -> Callable[[str], bool]:
    """Build a case-insensitive title matcher for a resume pattern.

    The pattern is a regular expression; if it does not compile it is
    matched as a plain substring instead.
    """
    try:
        regex = re.compile(pattern, re.IGNORECASE)
    except re.error:
        logger.debug(f"Skip pattern {pattern!r} is not a regex; matching it literally")
        regex = re.compile(re.escape(pattern), re.IGNORECASE)
    return lambda title: regex.search(title) is not None


class TraversalController:
    """Drives the scraper over the whole list exactly once.

    For every title card: stop if it repeats the previous one; pass it over
    while a skip pattern is still pending; otherwise read its info panel and
    tags and hand everything to the Reconciler. A note whose views cannot be
    read is logged and left out, nothing of it having been written. Errors
    raised by the Reconciler abort the traversal.
    """

    def __init__(
        self,
        scraper: ItemScraper,
        reconciler: Reconciler,
        skip_pattern: Optional[str] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.scraper = scraper
        self.reconciler = reconciler
        self.skip_pattern = skip_pattern or None
        self.max_iterations = max_iterations
        self.state = TraversalState.START
        self._matches_skip = compile_skip_pattern(skip_pattern) if skip_pattern else None

    def should_skip(self, title: str) -> bool:
        """Decide whether to pass over a note, leaving SKIPPING on a match."""
        if self.state is not TraversalState.SKIPPING:
            return False
        if self._matches_skip(title):
            logger.info(f"Found '{title}'; storing notes from here on")
            self.state = TraversalState.PROCESSING
            return False
        return True

    def run(self) -> TraversalResult:
        """Walk the list and return what happened."""
        result = TraversalResult()
        self.scraper.select_first()
        self.state = (
            TraversalState.SKIPPING if self._matches_skip else TraversalState.PROCESSING
        )

        previous: Optional[SummaryTriple] = None
        for iteration in range(1, self.max_iterations + 1):
            result.iterations = iteration

            try:
                summary = self.scraper.current_summary()
            except ScrapeReadError as e:
                logger.error(f"{iteration}  Cannot read the title card: {e}")
                result.failed.append(("", str(e)))
                self._advance(iteration)
                continue

            logger.info(
                f"{iteration}  Title: {summary.title}     "
                f"Date:{summary.modified_date}:{summary.legacy_creation_date}"
            )

            current = summary.as_triple()
            if is_repeat_of_previous(previous, current):
                result.stop_reason = StopReason.END_OF_LIST
                break
            previous = current

            if self.should_skip(summary.title):
                result.skipped.append(summary.title)
            else:
                try:
                    self.process_item(summary)
                except ScrapeReadError as e:
                    logger.error(f"{iteration}  Skipping '{summary.title}': {e}")
                    result.failed.append((summary.title, str(e)))
                else:
                    result.processed.append(summary.title)

            self._advance(iteration)
        else:
            logger.warning(
                f"Stopped after {self.max_iterations} title cards without "
                f"reaching the end of the list"
            )
            result.stop_reason = StopReason.ITERATION_CAP

        if self.state is TraversalState.SKIPPING:
            result.skip_matched = False
            logger.warning(f"No note title matched the skip pattern '{self.skip_pattern}'")
        self.state = TraversalState.DONE
        return result

    def process_item(self, summary: ItemSummary) -> int:
        """Read the views of the current note and store them. Returns the note ID.

        Both views are read before anything is written, so a read failure
        leaves no partial rows behind.
        """
        detail = self.scraper.current_detail()
        logger.debug(
            f"Folder:{detail.parent_path} ;; {detail.folder_name}     "
            f"Date:{detail.modified_date};{detail.creation_date}"
        )
        tags = self.scraper.current_tags()
        logger.debug(f"Tags: {tags}")

        if summary.legacy_creation_date:
            logger.debug("Using Phat Notes' date.")
        creation_date = choose_creation_date(summary, detail)

        note_id = self.reconciler.resolve_note(summary.title, creation_date)
        self.reconciler.resolve_folder(detail.folder_name, detail.parent_path, note_id)
        for tag_name in tags:
            self.reconciler.resolve_tag(tag_name, note_id)
        return note_id

    def _advance(self, iteration: int) -> None:
        """Move to the next note; a failure here shows up as a repeat next time."""
        try:
            self.scraper.advance()
        except ScrapeReadError as e:
            logger.error(f"{iteration}  Cannot move to the next note: {e}")
