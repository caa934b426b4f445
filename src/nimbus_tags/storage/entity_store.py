"""Store for folders, notes, tags and their memberships."""
import logging
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import func, insert, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from nimbus_tags.config import config
from nimbus_tags.exceptions import IntegrityViolationError, WriteFailureError
from nimbus_tags.models.db_models import (
    DBFolder,
    DBFolderNote,
    DBNote,
    DBTag,
    DBTagNote,
    DBUtility,
    TIMESTAMPED_TABLES,
    get_session_factory,
    init_db,
)
from nimbus_tags.models.schema import Folder, Note, NoteListing, Tag

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class EntityStore:
    """Relational store of deduplicated folders, notes and tags.

    Every insert and link commits on its own, so a run interrupted at any
    point leaves only whole rows behind. Lookups are exact matches on the
    columns that identify an entity; a lookup that finds more than one row
    for a unique key raises IntegrityViolationError.

    The store holds no uniqueness constraints itself. The Reconciler is the
    only writer and keeps folders and tags unique by looking before inserting.
    """

    def __init__(self, db_url: Optional[str] = None, engine: Optional[Engine] = None):
        """Initialize the store.

        Args:
            db_url: SQLAlchemy URL of the database. If None, uses config.get_db_url().
                    Ignored when engine is provided.
            engine: Pre-configured SQLAlchemy engine whose tables already exist.
        """
        if engine is not None:
            self.engine = engine
        else:
            self.engine = init_db(db_url or config.get_db_url())
        self.session_factory = get_session_factory(self.engine)
        logger.debug(f"EntityStore opened: {self.engine.url}")

    def __enter__(self) -> "EntityStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        """Release all pooled connections."""
        self.engine.dispose()

    # Folders

    def find_folder(self, name: str, parent_path: str) -> Optional[Folder]:
        """Find the folder with exactly this name and parent path.

        Raises:
            IntegrityViolationError: If more than one folder matches.
        """
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBFolder).where(
                    (DBFolder.fName == name) & (DBFolder.fParent == parent_path)
                )
            ).all()

        if len(rows) > 1:
            raise IntegrityViolationError(
                "Folders",
                {"fName": name, "fParent": parent_path},
                len(rows),
                message=f"There are {len(rows)} matches of fName to '{name}'",
            )
        if not rows:
            return None
        return Folder(id=rows[0].fID, name=rows[0].fName, parent_path=rows[0].fParent or "")

    def insert_folder(self, name: str, parent_path: str) -> Folder:
        """Insert a new folder row."""
        folder_id = self._insert(
            "Folders", insert(DBFolder).values(fName=name, fParent=parent_path)
        )
        logger.debug(f"New Folder.fID: {folder_id}")
        return Folder(id=folder_id, name=name, parent_path=parent_path)

    # Notes

    def find_notes_by_title(self, title: str) -> List[Note]:
        """Find every note with exactly this title. Titles are not unique."""
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBNote).where(DBNote.nTitle == title).order_by(DBNote.nID)
            ).all()
            return [self._to_note(row) for row in rows]

    def insert_note(self, title: str, creation_date: str) -> Note:
        """Insert a new note row."""
        note_id = self._insert(
            "Notes", insert(DBNote).values(nTitle=title, nCreateDate=creation_date)
        )
        logger.debug(f"New Notes.nID: {note_id}")
        return Note(id=note_id, title=title, creation_date=creation_date)

    # Tags

    def find_tag_by_name(self, name: str) -> Optional[Tag]:
        """Find the tag with exactly this name.

        Raises:
            IntegrityViolationError: If more than one tag matches.
        """
        with self.session_factory() as session:
            rows = session.scalars(select(DBTag).where(DBTag.tName == name)).all()

        if len(rows) > 1:
            raise IntegrityViolationError(
                "Tags",
                {"tName": name},
                len(rows),
                message=f"There are {len(rows)} matches of tName to '{name}'",
            )
        if not rows:
            return None
        return Tag(id=rows[0].tID, name=rows[0].tName)

    def insert_tag(self, name: str) -> Tag:
        """Insert a new tag row."""
        tag_id = self._insert("Tags", insert(DBTag).values(tName=name))
        logger.debug(f"New Tags.tID: {tag_id}")
        return Tag(id=tag_id, name=name)

    # Memberships

    def link_folder_note(self, folder_id: int, note_id: int) -> int:
        """Record that a note lives in a folder. Returns the new fnID."""
        return self._insert(
            "Folder2Notes",
            insert(DBFolderNote).values(fnFolderID=folder_id, fnNoteID=note_id),
        )

    def link_tag_note(self, tag_id: int, note_id: int) -> int:
        """Record that a note carries a tag. Returns the new tnID."""
        return self._insert(
            "Tag2Notes",
            insert(DBTagNote).values(tnNoteID=note_id, tnTagID=tag_id),
        )

    # Utility ledger

    def touch(self, table_name: str) -> None:
        """Stamp table_name with the current local time in the Utility table."""
        if table_name not in TIMESTAMPED_TABLES:
            raise ValueError(f"Unknown table: {table_name}")
        now = time.strftime(TIMESTAMP_FORMAT)
        stmt = sqlite_insert(DBUtility).values(uKey=table_name, uValue=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["uKey"], set_={"uValue": now}
        )
        self._execute_write("Utility", stmt, operation="upsert")

    def table_timestamps(self) -> Dict[str, str]:
        """Last write time of every stamped table."""
        with self.session_factory() as session:
            rows = session.execute(select(DBUtility.uKey, DBUtility.uValue)).all()
            return {key: value for key, value in rows}

    # Read side, used by --dump and the export tools

    def tags_for_note(self, note_id: int) -> List[str]:
        """Names of the tags on a note, in the order they were recorded."""
        with self.session_factory() as session:
            rows = session.execute(
                select(DBTag.tName)
                .select_from(DBTagNote)
                .join(DBTag, DBTag.tID == DBTagNote.tnTagID)
                .where(DBTagNote.tnNoteID == note_id)
                .order_by(DBTagNote.tnID)
            ).all()
            return [row[0] for row in rows]

    def list_notes(self, folder_filter: str = "%") -> List[NoteListing]:
        """List notes with their folder and tags.

        Args:
            folder_filter: SQL LIKE pattern on the folder name. % is zero or
                more characters, _ is one; not case sensitive.
        """
        with self.session_factory() as session:
            rows = session.execute(
                select(DBNote, DBFolder)
                .select_from(DBNote)
                .outerjoin(DBFolderNote, DBFolderNote.fnNoteID == DBNote.nID)
                .outerjoin(DBFolder, DBFolder.fID == DBFolderNote.fnFolderID)
                .where(DBFolder.fName.like(folder_filter, escape="\\"))
                .order_by(DBNote.nID)
            ).all()
            listing = [
                (db_note.nID, db_note.nTitle, db_note.nCreateDate, db_folder.fName, db_folder.fParent)
                for db_note, db_folder in rows
            ]

        return [
            NoteListing(
                note_id=note_id,
                title=title,
                creation_date=creation_date or "",
                folder_name=folder_name or "",
                parent_path=parent_path or "",
                tags=self.tags_for_note(note_id),
            )
            for note_id, title, creation_date, folder_name, parent_path in listing
        ]

    def find_notes_in_folder(self, folder_name: str, title: str) -> List[Note]:
        """Find notes by exact (folder name, note title), as the export tools do."""
        with self.session_factory() as session:
            rows = session.scalars(
                select(DBNote)
                .join(DBFolderNote, DBFolderNote.fnNoteID == DBNote.nID)
                .join(DBFolder, DBFolder.fID == DBFolderNote.fnFolderID)
                .where((DBFolder.fName == folder_name) & (DBNote.nTitle == title))
                .order_by(DBNote.nID)
            ).all()
            return [self._to_note(row) for row in rows]

    def counts(self) -> Dict[str, int]:
        """Row count of every table."""
        models = {
            "Folders": DBFolder,
            "Notes": DBNote,
            "Tags": DBTag,
            "Folder2Notes": DBFolderNote,
            "Tag2Notes": DBTagNote,
        }
        with self.session_factory() as session:
            return {
                name: session.scalar(select(func.count()).select_from(model))
                for name, model in models.items()
            }

    # Internals

    @staticmethod
    def _to_note(row: DBNote) -> Note:
        return Note(id=row.nID, title=row.nTitle, creation_date=row.nCreateDate or "")

    def _insert(self, table: str, stmt) -> int:
        """Run a single-row insert and return the new primary key."""
        result = self._execute_write(table, stmt, operation="insert")
        return result.inserted_primary_key[0]

    def _execute_write(self, table: str, stmt, operation: str) -> Any:
        """Execute and commit one write that must affect exactly one row.

        Raises:
            WriteFailureError: If the database rejects the write or it did
                not affect exactly one row.
        """
        with self.session_factory() as session:
            try:
                result = session.execute(stmt)
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"{operation} into {table} failed: {e}")
                raise WriteFailureError(table, operation=operation, original_error=e) from e

            if result.rowcount != 1:
                session.rollback()
                raise WriteFailureError(table, operation=operation, rowcount=result.rowcount)

            try:
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise WriteFailureError(table, operation=operation, original_error=e) from e
        return result

