"""Storage layer for Nimbus Tags."""

from nimbus_tags.storage.entity_store import EntityStore

__all__ = [
    "EntityStore",
]
