"""SQLAlchemy database models for Nimbus Tags.

Table and column names follow the layout that the export patching and
audit tools read, so they must not change.
"""
import logging
from pathlib import Path
from typing import Union

from sqlalchemy import Column, ForeignKey, Integer, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBFolder(Base):
    """A notebook. (fName, fParent) is unique; enforced by the reconciler."""
    __tablename__ = "Folders"
    fID = Column(Integer, primary_key=True)
    fName = Column(Text, nullable=False)
    fParent = Column(Text)

    def __repr__(self) -> str:
        """Return string representation of folder."""
        return f"<Folder(fID={self.fID}, fName='{self.fName}', fParent='{self.fParent}')>"


class DBNote(Base):
    """A scraped note. Titles are not unique."""
    __tablename__ = "Notes"
    nID = Column(Integer, primary_key=True)
    nTitle = Column(Text, nullable=False)
    # Scraped text such as "3/29/2007 9:10:16 PM", stored verbatim
    nCreateDate = Column(Text, default=None)

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(nID={self.nID}, nTitle='{self.nTitle}')>"


class DBTag(Base):
    """A tag. tName is unique; enforced by the reconciler."""
    __tablename__ = "Tags"
    tID = Column(Integer, primary_key=True)
    tName = Column(Text, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of tag."""
        return f"<Tag(tID={self.tID}, tName='{self.tName}')>"


class DBUtility(Base):
    """Key/value ledger; holds the last write time of every table."""
    __tablename__ = "Utility"
    uKey = Column(Text, primary_key=True)
    uValue = Column(Text, default="NULL")


class DBFolderNote(Base):
    """Folder membership of a note."""
    __tablename__ = "Folder2Notes"
    fnID = Column(Integer, primary_key=True)
    fnFolderID = Column(Integer, ForeignKey("Folders.fID"), nullable=False)
    fnNoteID = Column(Integer, ForeignKey("Notes.nID"), nullable=False)


class DBTagNote(Base):
    """Tag membership of a note."""
    __tablename__ = "Tag2Notes"
    tnID = Column(Integer, primary_key=True)
    tnNoteID = Column(Integer, ForeignKey("Notes.nID"), nullable=False)
    tnTagID = Column(Integer, ForeignKey("Tags.tID"), nullable=False)


# Tables whose writes are stamped in the Utility ledger
TIMESTAMPED_TABLES = ("Folders", "Notes", "Tags", "Folder2Notes", "Tag2Notes")


def init_db(db_url: str) -> Engine:
    """Create an engine for db_url and create any missing tables.

    Applies the same SQLite settings the scraper has always used:
    - WAL mode so an interrupted run leaves a readable database
    - NORMAL synchronous mode
    - foreign key enforcement
    """
    engine = create_engine(db_url)

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA temp_store=MEMORY")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine)


def reset_database(db_path: Union[str, Path]) -> None:
    """Remove the database file and its WAL/SHM companions.

    This is the whole-database reset done before a fresh (non-resumed) run.
    """
    db_path = Path(db_path)
    for candidate in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if candidate.exists():
            candidate.unlink()
            logger.debug(f"Removed {candidate}")
