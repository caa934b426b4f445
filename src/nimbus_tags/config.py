"""Configuration module for Nimbus Tags."""

import csv
import logging
import os
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from nimbus_tags import __version__
from nimbus_tags.exceptions import ConfigurationError, ErrorCode

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside the logs
_USER_ENV = Path.home() / ".nimbus_tags" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


class NimbusTagsConfig(BaseModel):
    """Configuration for a scraping run."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NIMBUS_TAGS_BASE_DIR", "."))
    )
    # SQLite database we are making
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NIMBUS_TAGS_DATABASE_PATH", "NimbusTags.db")
        )
    )
    # One line CSV file: login,password
    credentials_path: Path = Field(
        default_factory=lambda: Path(os.getenv("NIMBUS_TAGS_CREDENTIALS", "nimbus.cfg"))
    )
    # Public page for Nimbus Note
    nimbus_url: str = Field(
        default_factory=lambda: os.getenv("NIMBUS_TAGS_URL", "https://nimbusweb.me/")
    )
    # Anything starting with "f" selects Firefox, everything else Chrome
    browser: str = Field(default_factory=lambda: os.getenv("CN_BROWSER", "firefox"))
    # Hard cap on the traversal loop; a few hundred notes is typical
    max_iterations: int = Field(
        default_factory=lambda: int(os.getenv("NIMBUS_TAGS_MAX_ITERATIONS", "500"))
    )
    # Seconds to wait for a UI element to settle before giving up
    settle_timeout: float = Field(
        default_factory=lambda: float(os.getenv("NIMBUS_TAGS_SETTLE_TIMEOUT", "30"))
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NIMBUS_TAGS_LOG_DIR"))
            if os.getenv("NIMBUS_TAGS_LOG_DIR")
            else None
        )
    )
    app_name: str = Field(default="findtags")
    app_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_limits(self) -> "NimbusTagsConfig":
        """Reject limits that would make a run meaningless."""
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.settle_timeout <= 0:
            raise ValueError("settle_timeout must be > 0")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_path(self) -> Path:
        """Get the absolute path of the SQLite database file."""
        return self.get_absolute_path(self.database_path)

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_db_path()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def use_firefox(self) -> bool:
        """Whether the configured browser is Firefox."""
        return self.browser.strip().lower().startswith("f")


def load_credentials(path: Path) -> Tuple[str, str]:
    """Read the login and password from a one line CSV file.

    Args:
        path: Path to the credentials file, e.g. ``nimbus.cfg``.

    Returns:
        Tuple of (login, password).

    Raises:
        ConfigurationError: If the file is missing or malformed.
    """
    try:
        with open(path, newline="", encoding="utf-8") as fh:
            rows = [row for row in csv.reader(fh) if row]
    except OSError as e:
        raise ConfigurationError(
            f"Cannot read credentials file: {e}",
            config_key="credentials_path",
            code=ErrorCode.CONFIG_MISSING,
        ) from e

    if not rows or len(rows[0]) < 2:
        raise ConfigurationError(
            "Credentials file must hold one line: login,password",
            config_key="credentials_path",
        )
    login, password = rows[0][0].strip(), rows[0][1].strip()
    return login, password


# Create a global config instance
config = NimbusTagsConfig()
