"""Local credential store: the per-user JSON config document.

The document is an open mapping. Only one nested section is recognized
(``{section_key: {"access_key": str}}``); every other key, at the top level
or inside the section, survives each rewrite untouched.

Writes are atomic: the payload goes to a sibling ``.tmp`` file which is then
renamed over the destination, so a crash mid-write leaves the previous
version intact. There is no locking; one writer per process is assumed.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from ..errors import CredentialStoreError
from ..settings import ProvisionerSettings

logger = logging.getLogger(__name__)

ACCESS_KEY_FIELD = "access_key"

# Older releases wrote the section under this misspelled key.
LEGACY_SECTION_KEY = "truso"

_FILE_MODE = 0o600


class CredentialStore:
    """Read and atomically rewrite the config document."""

    def __init__(self, settings: ProvisionerSettings) -> None:
        self._settings = settings

    @property
    def path(self) -> Path:
        return self._settings.config_path

    @property
    def section_key(self) -> str:
        return self._settings.section_key

    def load(self) -> tuple[Path, dict[str, Any]]:
        """Ensure the config file exists, then return ``(path, data)``.

        An empty document is created on first use.

        Raises:
            CredentialStoreError: If the file is not valid JSON or not an object.
        """
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        if not path.exists():
            logger.info("Creating empty config document at %s", path)
            self.save(path, {})

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CredentialStoreError(f"Cannot read config file {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise CredentialStoreError(
                f"Config file {path} must contain a JSON object, got {type(data).__name__}"
            )
        return path, data

    def save(self, path: Path, data: dict[str, Any]) -> None:
        """Serialize with 4-space indentation and a trailing newline, atomically.

        The file holds a bearer token, so it is created owner-only (0600).
        """
        serialized = json.dumps(data, indent=4, ensure_ascii=False) + "\n"
        tmp_path = path.with_name(path.name + ".tmp")
        replaced = False
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _FILE_MODE)
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(serialized)
            os.chmod(tmp_path, _FILE_MODE)
            os.replace(tmp_path, path)
            replaced = True
        finally:
            if not replaced:
                tmp_path.unlink(missing_ok=True)

    def read_access_key(self, data: dict[str, Any]) -> str | None:
        """Return the stored access key (trimmed), or None when absent."""
        for key in (self.section_key, LEGACY_SECTION_KEY):
            section = data.get(key)
            if not isinstance(section, dict):
                continue
            value = section.get(ACCESS_KEY_FIELD)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    def with_access_key(self, data: dict[str, Any], token: str) -> dict[str, Any]:
        """Return a copy of ``data`` with the access key set.

        Other keys of the section, and every other top-level key, are kept.
        """
        section = data.get(self.section_key)
        updated_section = dict(section) if isinstance(section, dict) else {}
        updated_section[ACCESS_KEY_FIELD] = token
        return {**data, self.section_key: updated_section}
