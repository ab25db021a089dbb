from __future__ import annotations

import logging
import os

from msal_extensions import FilePersistence, FilePersistenceWithDataProtection
from msal_extensions.persistence import PersistenceNotFound

logger = logging.getLogger(__name__)


class SessionCookieStore:
    """Keeps the backend session cookie between runs of the console."""

    def __init__(self, path: str):
        self._persistence = self._build_persistence(path)

    @staticmethod
    def _build_persistence(path: str):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        try:
            return FilePersistenceWithDataProtection(path)
        except Exception:
            return FilePersistence(path)

    def load(self) -> str | None:
        try:
            value = self._persistence.load()
        except PersistenceNotFound:
            return None
        except OSError as exc:
            logger.warning("Could not read persisted session: %s", exc)
            return None
        return value.strip() or None

    def save(self, value: str) -> None:
        self._persistence.save(value)

    def clear(self) -> None:
        self._persistence.save("")
