"""
StudyGenius - Core Data Model
Document, Mode and chat Message records shared by every layer
"""

from __future__ import annotations
import base64
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Dict, Optional

PDF_MIME_TYPE = "application/pdf"


class Mode(str, Enum):
    UPLOAD = "UPLOAD"
    DASHBOARD = "DASHBOARD"
    CHAT = "CHAT"
    QUIZ = "QUIZ"
    FLASHCARDS = "FLASHCARDS"
    GUIDE = "GUIDE"
    HIGHLIGHTS = "HIGHLIGHTS"
    STRATEGIC = "STRATEGIC"
    MINDMAP = "MINDMAP"
    QUOTES = "QUOTES"
    FAQ = "FAQ"
    METHODOLOGY = "METHODOLOGY"

    @classmethod
    def parse(cls, value: str) -> "Mode":
        """
        Look up a mode by name (case-insensitive).

        :raises ValueError: if the name is not one of the known modes.
        """
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            raise ValueError(f"Unknown mode: {value!r}")


@dataclass(frozen=True)
class Document:
    """An uploaded PDF. The payload is kept as base64 text."""

    name: str
    data: str
    mime_type: str = PDF_MIME_TYPE
    page_count: Optional[int] = field(default=None, compare=False)

    @classmethod
    def from_bytes(cls, name: str, payload: bytes, mime_type: str = PDF_MIME_TYPE,
                   page_count: Optional[int] = None) -> "Document":
        encoded = base64.b64encode(payload).decode("ascii")
        return cls(name=name, data=encoded, mime_type=mime_type, page_count=page_count)

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Document":
        return cls(
            name=str(data["name"]),
            data=str(data["data"]),
            mime_type=str(data.get("mime_type", PDF_MIME_TYPE)),
            page_count=data.get("page_count"),  # type: ignore[arg-type]
        )

    def summary(self) -> Dict[str, object]:
        # Metadata only, never the payload
        return {"name": self.name, "mime_type": self.mime_type, "page_count": self.page_count}


@dataclass
class Message:
    role: str  # "user" or "model"
    text: str
    is_error: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {"role": self.role, "text": self.text, "is_error": self.is_error}

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Message":
        role = data.get("role")
        if role not in ("user", "model"):
            raise ValueError(f"Invalid message role: {role!r}")
        return cls(role=str(role), text=str(data.get("text", "")), is_error=bool(data.get("is_error", False)))
