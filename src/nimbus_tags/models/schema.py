"""Data models for Nimbus Tags."""

import re
from typing import List, Tuple

from pydantic import BaseModel, Field

# Breadcrumb text like "HWDreamer /  Alton Brown"; the last segment is the folder
FOLDER_PATH_PATTERN = re.compile(r"^(.+) /\s+(.+?)$")

# Title card text written by the old Phat Notes import
LEGACY_DATE_PATTERN = re.compile(r"PN Created:([ \d/:APM]+) PN Mod")

# Characters the service rewrites in exported file names
PROBLEM_TITLE_PATTERN = re.compile(r"[:/!\"]")


class Folder(BaseModel):
    """A notebook, identified by its name and the path of its ancestors."""

    id: int = Field(..., description="Store-assigned folder ID")
    name: str = Field(..., description="Display name, the last path segment")
    parent_path: str = Field(
        default="", description="Joined names of the ancestors, empty at root level"
    )

    model_config = {"frozen": True}

    @property
    def path(self) -> str:
        """Full breadcrumb path of the folder."""
        if not self.parent_path:
            return self.name
        return f"{self.parent_path} / {self.name}"


class Note(BaseModel):
    """A scraped note."""

    id: int = Field(..., description="Store-assigned note ID")
    title: str = Field(..., description="Title of the note, not unique")
    creation_date: str = Field(default="", description="Best-effort creation timestamp")

    model_config = {"frozen": True}


class Tag(BaseModel):
    """A tag for categorizing notes."""

    id: int = Field(..., description="Store-assigned tag ID")
    name: str = Field(..., description="Tag name, globally unique")

    model_config = {"frozen": True}

    def __str__(self) -> str:
        """Return string representation of tag."""
        return self.name


class ItemSummary(BaseModel):
    """What the title card in the notes list shows."""

    title: str
    modified_date: str = ""
    legacy_creation_date: str = ""

    model_config = {"frozen": True}

    def as_triple(self) -> Tuple[str, str, str]:
        """The values compared to detect the end of the list."""
        return (self.title, self.modified_date, self.legacy_creation_date)


class ItemDetail(BaseModel):
    """What the "Page info" popup of a note shows."""

    folder_name: str
    parent_path: str = ""
    modified_date: str = ""
    creation_date: str = ""

    model_config = {"frozen": True}


class NoteListing(BaseModel):
    """One row of the store dump: a note with its folder and tags."""

    note_id: int
    title: str
    creation_date: str = ""
    folder_name: str = ""
    parent_path: str = ""
    tags: List[str] = Field(default_factory=list)


def normalize_creation_date(value: str) -> str:
    """Drop the comma the info popup puts between date and time.

    "3/29/2007, 9:10:16 PM" becomes "3/29/2007 9:10:16 PM".
    """
    return value.replace(", ", " ", 1)


def choose_creation_date(summary: ItemSummary, detail: ItemDetail) -> str:
    """Pick the creation date to store for a note.

    The legacy date on the title card wins, verbatim, whenever present.
    Otherwise the info popup's creation date is used after normalizing.
    """
    if summary.legacy_creation_date:
        return summary.legacy_creation_date
    return normalize_creation_date(detail.creation_date)


def split_folder_path(text: str) -> Tuple[str, str]:
    """Split breadcrumb text into (parent_path, folder_name).

    Examples:
        "HWDreamer /  Alton Brown" -> ("HWDreamer", "Alton Brown")
        "A / B / C" -> ("A / B", "C")
        "Recipes" -> ("", "Recipes")
    """
    match = FOLDER_PATH_PATTERN.match(text)
    if not match:
        return "", text
    return match.group(1), match.group(2)


def parse_legacy_creation_date(text: str) -> str:
    """Extract the Phat Notes creation date from title card text, or ""."""
    match = LEGACY_DATE_PATTERN.search(text)
    if not match:
        return ""
    return match.group(1).strip()


def has_problem_characters(title: str) -> bool:
    """Whether the title holds characters the service rewrites on export."""
    return bool(PROBLEM_TITLE_PATTERN.search(title))
