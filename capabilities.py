"""
StudyGenius - Browser Capabilities
Speech synthesis and clipboard as injected interfaces. The server has
neither, so the defaults are no-ops; the in-memory versions back tests
and headless clients.
"""

from __future__ import annotations
from typing import Callable, List, Optional, Tuple


class SpeechSynthesizer:
    supported = False

    def speak(self, text: str, lang: str = "en-US", on_end: Optional[Callable[[], None]] = None) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError


class NullSpeech(SpeechSynthesizer):
    def speak(self, text, lang="en-US", on_end=None):
        pass

    def cancel(self):
        pass


class RecordingSpeech(SpeechSynthesizer):
    """Keeps utterances in memory; ``finish`` simulates the end event."""

    supported = True

    def __init__(self) -> None:
        self.spoken: List[Tuple[str, str]] = []
        self.cancelled = 0
        self._on_end: Optional[Callable[[], None]] = None

    def speak(self, text, lang="en-US", on_end=None):
        self.spoken.append((text, lang))
        self._on_end = on_end

    def cancel(self):
        self.cancelled += 1
        self._on_end = None

    def finish(self) -> None:
        callback, self._on_end = self._on_end, None
        if callback:
            callback()


class Clipboard:
    supported = False

    def write_text(self, text: str) -> None:
        raise NotImplementedError


class NullClipboard(Clipboard):
    def write_text(self, text):
        pass


class MemoryClipboard(Clipboard):
    supported = True

    def __init__(self) -> None:
        self.text = ""

    def write_text(self, text):
        self.text = text
