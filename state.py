"""
StudyGenius - Application State
Owns the active Document, the current Mode, the description and the
premium gate. Every mutation goes through this container.
"""

from __future__ import annotations
import logging
import threading
from concurrent.futures import Executor, Future
from typing import Dict, Optional

import gemini
from chat import ChatSession
from models import Document, Mode
from premium import PremiumGate
from session import THEME_KEY, SessionStore
from views import FeatureView, build_view

logger = logging.getLogger(__name__)


class NoDocument(Exception):
    """An action needs a loaded document and there is none."""


class StudyState:
    """
    :param client: Gemini client handed to every generator.
    :param session_store: Debounced snapshot store.
    :param store: Raw key-value store (chat transcripts, theme).
    :param executor: Background executor for description and suggestions.
    """

    def __init__(self, client, session_store: SessionStore, store, executor: Optional[Executor] = None,
                 gate: Optional[PremiumGate] = None, speech=None, clipboard=None) -> None:
        self.client = client
        self.session_store = session_store
        self.store = store
        self.executor = executor
        self.gate = gate or PremiumGate()
        self.speech = speech
        self.clipboard = clipboard

        self._lock = threading.RLock()
        self.document: Optional[Document] = None
        self._mode = Mode.UPLOAD
        self.description = ""
        self.restoring = True
        self.view: Optional[FeatureView] = None
        self.chat: Optional[ChatSession] = None
        self._description_future: Optional[Future] = None

    # Mode controller
    @property
    def mode(self) -> Mode:
        # No document always means the upload screen
        if self.document is None:
            return Mode.UPLOAD
        return self._mode

    def set_mode(self, target: Mode) -> Mode:
        with self._lock:
            if self.document is None:
                self._mode = Mode.UPLOAD
                return self._mode
            if target == self._mode:
                return self._mode
            self._mode = target
            self._mount(target)
            self._schedule_save()
            return self._mode

    def _unmount(self) -> None:
        if self.view is not None:
            self.view.unmount()
        self.view = None
        self.chat = None

    def _mount(self, mode: Mode) -> None:
        self._unmount()
        if mode == Mode.CHAT:
            self.chat = ChatSession(self.client, self.document, self.store, executor=self.executor)
        else:
            self.view = build_view(mode, self.client, self.document, self.gate,
                                   speech=self.speech, clipboard=self.clipboard)

    def _schedule_save(self) -> None:
        if self.document is not None:
            self.session_store.save(self.document, self._mode, self.description)

    # Session lifecycle
    def restore(self) -> bool:
        """Called once at startup. Any failure means "no session"."""
        try:
            snapshot = self.session_store.restore()
            if not snapshot:
                return False
            with self._lock:
                self.document = snapshot["document"]
                self.description = snapshot["description"]
                self._mode = snapshot["mode"]
                if self._mode == Mode.UPLOAD:
                    self._mode = Mode.DASHBOARD
                self._mount(self._mode)
            logger.info("Restored session for %s", self.document.name)
            return True
        finally:
            self.restoring = False

    def load_document(self, document: Document) -> None:
        """Replace the document, go to the dashboard and start describing it."""
        with self._lock:
            self._unmount()
            self.document = document
            self._mode = Mode.DASHBOARD
            self.description = ""
            self._schedule_save()

        if self.executor is not None:
            self._description_future = self.executor.submit(self._describe, document)
        else:
            self._describe(document)

    def _describe(self, document: Document) -> None:
        text = gemini.generate_file_description(self.client, document)
        with self._lock:
            # The user may have moved on to another file meanwhile
            if self.document is not document:
                logger.info("Discarding stale description for %s", document.name)
                return
            self.description = text
            self._schedule_save()

    def wait_for_description(self, timeout: Optional[float] = None) -> None:
        if self._description_future is not None:
            self._description_future.result(timeout=timeout)

    def close_document(self) -> None:
        """Clear the persisted session first, then forget the document."""
        with self._lock:
            # No save may land between clearing the record and dropping the document
            self.session_store.clear()
            self._unmount()
            self.document = None
            self._mode = Mode.UPLOAD
            self.description = ""

    def shutdown(self) -> None:
        self.session_store.cancel()
        self._unmount()

    # Active view access
    def active_view(self) -> FeatureView:
        if self.document is None:
            raise NoDocument("Please upload a PDF first.")
        if self.view is None:
            raise NoDocument(f"Mode {self.mode.value} has no feature view.")
        return self.view

    def active_chat(self) -> ChatSession:
        if self.document is None:
            raise NoDocument("Please upload a PDF first.")
        if self.chat is None:
            raise NoDocument(f"Mode {self.mode.value} is not the chat.")
        return self.chat

    # Theme
    def get_theme(self) -> str:
        try:
            return self.store.get(THEME_KEY) or "light"
        except Exception:
            logger.warning("Could not read theme", exc_info=True)
            return "light"

    def toggle_theme(self) -> str:
        theme = "light" if self.get_theme() == "dark" else "dark"
        try:
            self.store.set(THEME_KEY, theme)
        except Exception:
            logger.warning("Could not save theme", exc_info=True)
        return theme

    def to_dict(self) -> Dict[str, object]:
        data = {
            "restoring": self.restoring,
            "document": self.document.summary() if self.document else None,
            "mode": self.mode.value,
            "description": self.description,
            "description_pending": self.document is not None and not self.description,
            "theme": self.get_theme(),
        }
        data.update(self.gate.to_dict())
        return data
