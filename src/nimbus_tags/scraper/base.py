"""Scraping surface protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from nimbus_tags.models.schema import ItemDetail, ItemSummary


@runtime_checkable
class ItemScraper(Protocol):
    """A cursor over the rendered list of notes.

    Implementations own all waiting for the UI to settle. Every method may
    raise ScrapeReadError; the caller does not retry.
    """

    def select_first(self) -> None:
        """Make the first note of the list the current one."""
        ...

    def current_summary(self) -> ItemSummary:
        """Title, modified date and legacy creation date of the current note."""
        ...

    def current_detail(self) -> ItemDetail:
        """Folder, parent path and dates from the current note's info panel."""
        ...

    def current_tags(self) -> list[str]:
        """Names of the tags attached to the current note."""
        ...

    def advance(self) -> None:
        """Move the cursor to the next note. A no-op on the last note."""
        ...
