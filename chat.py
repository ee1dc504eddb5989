"""
StudyGenius - Chat Session
Per-document transcript with optimistic appends, error entries with
recovery actions, a restore banner and suggested questions.
"""

from __future__ import annotations
import json
import logging
import threading
from concurrent.futures import Executor, Future
from typing import Dict, List, Optional

import gemini
from models import Document, Message
from session import chat_key
from utils import validate_input

logger = logging.getLogger(__name__)

IDLE = "IDLE"
AWAITING_RESPONSE = "AWAITING_RESPONSE"
ERROR_DISPLAYED = "ERROR_DISPLAYED"

CHAT_ERROR_TEXT = "A technical error occurred while contacting the AI."


class ChatBusy(Exception):
    """A chat request is already in flight."""


def greeting_for(document: Document) -> Message:
    return Message(role="model", text=f"Hello! I have analysed **{document.name}**. What would you like to know?")


class ChatSession:
    """
    One mount of the chat view for one document.

    :param client: Gemini client (or a fake with ``generate``).
    :param document: The active document.
    :param store: Key-value store for the transcript.
    :param executor: Optional executor for the suggested-question prefetch.
    """

    def __init__(self, client, document: Document, store, executor: Optional[Executor] = None) -> None:
        self.client = client
        self.document = document
        self.store = store
        self.storage_key = chat_key(document.name)

        self._lock = threading.Lock()
        self.messages: List[Message] = [greeting_for(document)]
        self.state = IDLE
        self.draft = ""
        self.can_restore = self._saved_history_available()

        self.suggestions: List[str] = []
        self._suggestions_future: Optional[Future] = None
        if executor is not None:
            self._suggestions_future = executor.submit(self._fetch_suggestions)
        else:
            self._fetch_suggestions()

    # Persistence
    def _load_saved(self) -> Optional[List[Message]]:
        try:
            raw = self.store.get(self.storage_key)
            if not raw:
                return None
            return [Message.from_dict(m) for m in json.loads(raw)]
        except Exception:
            logger.warning("Error parsing chat history for %s", self.document.name, exc_info=True)
            return None

    def _saved_history_available(self) -> bool:
        saved = self._load_saved()
        # Only worth offering if there is more than the greeting
        return bool(saved) and len(saved) > 1

    def _persist(self) -> None:
        if len(self.messages) <= 1:
            return
        try:
            self.store.set(self.storage_key, json.dumps([m.to_dict() for m in self.messages]))
        except Exception:
            logger.warning("Could not save chat history", exc_info=True)

    def _fetch_suggestions(self) -> None:
        self.suggestions = gemini.generate_suggested_questions(self.client, self.document)

    # Queries
    @property
    def has_history(self) -> bool:
        return len(self.messages) > 1

    @property
    def show_restore_banner(self) -> bool:
        return self.can_restore and not self.has_history

    @property
    def visible_suggestions(self) -> List[str]:
        return [] if self.has_history else list(self.suggestions)

    def wait_for_suggestions(self, timeout: Optional[float] = None) -> None:
        if self._suggestions_future is not None:
            self._suggestions_future.result(timeout=timeout)

    # Actions
    def submit(self, text: str) -> Message:
        """
        Send one user message.

        Returns the appended model message (which may be an error entry).
        :raises ValueError: for empty or over-long input.
        :raises ChatBusy: if a request is already awaiting a response.
        """
        validation = validate_input(text)
        if validation["error"]:
            raise ValueError(validation["message"])

        with self._lock:
            self._ensure_not_awaiting()
            history = list(self.messages)
            self.messages.append(Message(role="user", text=text))
            self.state = AWAITING_RESPONSE
            self.draft = ""
            self.can_restore = False
            self._persist()

        try:
            reply = Message(role="model", text=gemini.send_chat_message(self.client, self.document, history, text))
            next_state = IDLE
        except Exception:
            logger.exception("Chat request failed for %s", self.document.name)
            reply = Message(role="model", text=CHAT_ERROR_TEXT, is_error=True)
            next_state = ERROR_DISPLAYED

        with self._lock:
            self.messages.append(reply)
            self.state = next_state
            self._persist()
        return reply

    def retry_with_edit(self, index: int) -> str:
        """Put the user message that caused the error at ``index`` back in the input box."""
        with self._lock:
            if 0 < index < len(self.messages) and self.messages[index].is_error:
                previous = self.messages[index - 1]
                if previous.role == "user":
                    self.draft = previous.text
            return self.draft

    def _ensure_not_awaiting(self) -> None:
        if self.state == AWAITING_RESPONSE:
            raise ChatBusy("Please wait for the current answer.")

    def reset(self) -> None:
        """
        :raises ChatBusy: while a request is awaiting its response.
        """
        with self._lock:
            self._ensure_not_awaiting()
            self.messages = [greeting_for(self.document)]
            self.state = IDLE
            self.draft = ""
            self.can_restore = False
            try:
                self.store.delete(self.storage_key)
            except Exception:
                logger.warning("Could not delete chat history", exc_info=True)

    def restore_history(self) -> bool:
        with self._lock:
            self._ensure_not_awaiting()
            saved = self._load_saved()
            if not saved:
                return False
            self.messages = saved
            self.can_restore = False
            self.state = ERROR_DISPLAYED if saved[-1].is_error else IDLE
            return True

    def dismiss_restore(self) -> None:
        self.can_restore = False

    def snapshot(self) -> Dict[str, object]:
        return {
            "document": self.document.name,
            "status": self.state,
            "messages": [m.to_dict() for m in self.messages],
            "draft": self.draft,
            "can_submit": self.state != AWAITING_RESPONSE,
            "show_restore_banner": self.show_restore_banner,
            "suggestions": self.visible_suggestions,
        }
