"""Scraping surface for the Nimbus Note web UI."""

from nimbus_tags.scraper.base import ItemScraper

__all__ = [
    "ItemScraper",
]
