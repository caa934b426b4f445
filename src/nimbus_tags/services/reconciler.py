"""Maps scraped strings onto stable folder, note and tag IDs."""

import logging
import warnings

from nimbus_tags.exceptions import DuplicateTitleWarning
from nimbus_tags.storage.entity_store import EntityStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Look-up-or-create for the three entity kinds.

    Folders are identified by (name, parent path) and tags by name; both are
    reused when they exist. Notes are never reused: a second note with a
    known title gets its own row.

    Every resolve touches the ledger of each table it wrote to.
    """

    def __init__(self, store: EntityStore):
        self.store = store

    def resolve_note(self, title: str, creation_date: str) -> int:
        """Insert a note and return its ID.

        Emits a DuplicateTitleWarning listing the existing rows when the
        title is already stored.
        """
        existing = self.store.find_notes_by_title(title)
        if existing:
            rows = ", ".join(
                f"(nID={n.id}, nCreateDate='{n.creation_date}')" for n in existing
            )
            warnings.warn(
                f"There were {len(existing)} entries already in the database for "
                f"'{title}': {rows}. A new entry will be made, but this is a "
                f"problem when dealing with the new Note app.",
                DuplicateTitleWarning,
                stacklevel=2,
            )

        note = self.store.insert_note(title, creation_date)
        self.store.touch("Notes")
        return note.id

    def resolve_folder(self, name: str, parent_path: str, note_id: int) -> int:
        """Find or create the folder, then record the note's membership.

        Raises:
            IntegrityViolationError: If the folder is already stored twice.
        """
        folder = self.store.find_folder(name, parent_path)
        if folder is None:
            folder = self.store.insert_folder(name, parent_path)
            self.store.touch("Folders")
            logger.debug(f"Created folder '{folder.path}' (fID={folder.id})")

        self.store.link_folder_note(folder.id, note_id)
        self.store.touch("Folder2Notes")
        return folder.id

    def resolve_tag(self, name: str, note_id: int) -> int:
        """Find or create the tag, then record the note's membership.

        Raises:
            IntegrityViolationError: If the tag is already stored twice.
        """
        tag = self.store.find_tag_by_name(name)
        if tag is None:
            tag = self.store.insert_tag(name)
            self.store.touch("Tags")

        self.store.link_tag_note(tag.id, note_id)
        self.store.touch("Tag2Notes")
        return tag.id
