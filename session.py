"""
StudyGenius - Session Persistence
Key-value stores, a cancellable debouncer, and the session snapshot store
"""

from __future__ import annotations
import hashlib
import json
import logging
import os
import threading
from typing import Callable, Dict, Optional

from werkzeug.utils import secure_filename

from models import Document, Mode

logger = logging.getLogger(__name__)

SESSION_KEY = "study_session"
CHAT_KEY_PREFIX = "chat_history_"
THEME_KEY = "theme"
DEFAULT_SAVE_DELAY = 0.5  # seconds


def chat_key(document_name: str) -> str:
    return f"{CHAT_KEY_PREFIX}{document_name}"


class MemoryStore:
    """In-process key-value store. Used by tests and as a fallback."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self.writes = 0

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.writes += 1

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class JsonFileStore:
    """
    One file per key under a data directory.

    :param directory: Folder for the record files (created if missing).
    """

    def __init__(self, directory: str) -> None:
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, key: str) -> str:
        # secure_filename folds distinct names together; the digest keeps keys apart
        safe = secure_filename(key) or "record"
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:16]
        return os.path.join(self.directory, f"{safe}-{digest}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(value)
        os.replace(tmp, path)

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)

    def __contains__(self, key: str) -> bool:
        return os.path.exists(self._path(key))


class Debouncer:
    """
    Runs the most recently scheduled call once ``delay`` seconds pass
    without a new schedule. ``flush`` runs it now, ``cancel`` drops it.
    """

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[Callable[[], None]] = None

    def schedule(self, fn: Callable[[], None]) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = fn
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take(self) -> Optional[Callable[[], None]]:
        with self._lock:
            fn = self._pending
            self._pending = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            return fn

    def _fire(self) -> None:
        fn = self._take()
        if fn is not None:
            fn()

    def flush(self) -> bool:
        """Run the pending call immediately. Returns False if nothing was pending."""
        fn = self._take()
        if fn is None:
            return False
        fn()
        return True

    def cancel(self) -> None:
        self._take()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None


class SessionStore:
    """
    Persists the (document, mode, description) snapshot.

    Failures are logged and swallowed: a broken store behaves like an
    empty one.
    """

    def __init__(self, store, delay: float = DEFAULT_SAVE_DELAY) -> None:
        self.store = store
        self._debouncer = Debouncer(delay)

    def restore(self) -> Optional[Dict[str, object]]:
        try:
            raw = self.store.get(SESSION_KEY)
            if not raw:
                return None
            record = json.loads(raw)
            if not record.get("document"):
                return None
            return {
                "document": Document.from_dict(record["document"]),
                "mode": Mode.parse(record.get("mode", Mode.DASHBOARD.value)),
                "description": str(record.get("description", "")),
            }
        except Exception:
            logger.warning("Could not restore session, starting fresh", exc_info=True)
            return None

    def save(self, document: Document, mode: Mode, description: str) -> None:
        record = json.dumps({
            "document": document.to_dict(),
            "mode": mode.value,
            "description": description,
        })
        self._debouncer.schedule(lambda: self._write(record))

    def _write(self, record: str) -> None:
        try:
            self.store.set(SESSION_KEY, record)
        except Exception:
            logger.warning("Could not save session", exc_info=True)

    def flush(self) -> bool:
        return self._debouncer.flush()

    def cancel(self) -> None:
        self._debouncer.cancel()

    def clear(self) -> None:
        # Drop any queued write first so it cannot resurrect the record
        self._debouncer.cancel()
        try:
            self.store.delete(SESSION_KEY)
        except Exception:
            logger.warning("Could not clear session", exc_info=True)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending
