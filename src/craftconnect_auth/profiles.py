"""Profile lookup for refresh-time identity re-resolution.

The marketplace keeps user profiles in a document database. The session core
only needs one read (uid -> email/username) and, at first login, one write
creating a basic profile. InMemoryProfileStore stands in for the document
store in development and tests.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

from .models import Identity


def default_username(email: str, display_name: str | None = None) -> str:
    """Username for a profile created at first login.

    The display name wins; otherwise the local part of the email is used.
    """
    if display_name and display_name.strip():
        return display_name.strip()
    return email.split("@", 1)[0]


class InMemoryProfileStore:
    """Dict-backed profile documents keyed by uid.

    Documents are plain mappings, as they would come out of a document
    database; only ``email`` and ``username`` are read by the session core.
    """

    def __init__(self, documents: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._docs: dict[str, dict[str, Any]] = {
            uid: dict(doc) for uid, doc in (documents or {}).items()
        }
        self._lock = threading.Lock()

    def get_profile(self, uid: str) -> Identity | None:
        with self._lock:
            doc = self._docs.get(uid)
        if doc is None:
            return None
        return Identity(
            uid=uid,
            email=str(doc.get("email", "")),
            username=str(doc.get("username", "")),
        )

    def upsert(self, uid: str, **fields: Any) -> None:
        """Merge ``fields`` into the document for ``uid``, creating it if needed."""
        with self._lock:
            self._docs.setdefault(uid, {}).update(fields)

    def ensure_profile(self, uid: str, email: str, display_name: str | None = None) -> Identity:
        """Return the profile for ``uid``, creating a basic one at first login."""
        existing = self.get_profile(uid)
        if existing is not None:
            return existing
        username = default_username(email, display_name)
        self.upsert(uid, uid=uid, email=email, username=username)
        return Identity(uid=uid, email=email, username=username)

    def delete(self, uid: str) -> None:
        with self._lock:
            self._docs.pop(uid, None)
