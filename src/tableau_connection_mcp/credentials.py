# Tableau Connection Manager MCP Server
# File: credentials.py
# Version: v1

"""Optional on-disk cache for the last PAT used to sign in.

This is the only persistence the tool has.  The file holds a secret, so
it is written with owner-only permissions; a failure to read or write it
is never fatal.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

APP_FOLDER = "TableauConnectionManager"
FILE_NAME = "credentials.json"


def default_credentials_path() -> Path:
    """Per-user location: %APPDATA% on Windows, XDG config dir elsewhere."""
    appdata = os.getenv("APPDATA")
    if appdata:
        base = Path(appdata)
    else:
        base = Path(os.getenv("XDG_CONFIG_HOME") or Path.home() / ".config")
    return base / APP_FOLDER / FILE_NAME


@dataclass
class SavedCredentials:
    server_url: str
    token_name: str
    token_secret: str
    site_name: str = ""
    last_used: Optional[str] = None


class CredentialStore:
    """Save / load / clear a single ``SavedCredentials`` record."""

    def __init__(self, path: Optional[os.PathLike[str] | str] = None) -> None:
        self.path = Path(path) if path else default_credentials_path()

    def load(self) -> Optional[SavedCredentials]:
        """Return the saved credentials, or None if absent or unreadable."""
        if not self.path.is_file():
            return None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return SavedCredentials(
                server_url=str(data["server_url"]),
                token_name=str(data["token_name"]),
                token_secret=str(data["token_secret"]),
                site_name=str(data.get("site_name") or ""),
                last_used=data.get("last_used"),
            )
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Ignoring unreadable credential file %s: %s", self.path, exc)
            return None

    def save(
        self,
        server_url: str,
        token_name: str,
        token_secret: str,
        site_name: str = "",
    ) -> bool:
        """Persist credentials; returns False (and logs) if the write fails."""
        record = SavedCredentials(
            server_url=server_url,
            token_name=token_name,
            token_secret=token_secret,
            site_name=site_name or "",
            last_used=datetime.now(timezone.utc).isoformat(),
        )

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(asdict(record), fh, indent=2)
            os.chmod(self.path, 0o600)
        except OSError as exc:
            logger.warning("Could not save credentials to %s: %s", self.path, exc)
            return False

        return True

    def clear(self) -> None:
        """Delete the credential file if it exists."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
