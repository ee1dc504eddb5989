import io
import json
import re

import pytest

from app import create_app
from models import Document
from schemas import (
    FLASHCARD_SCHEMA,
    QA_SCHEMA,
    QUIZ_SCHEMA,
    QUOTE_SCHEMA,
    STRING_LIST_SCHEMA,
    STUDY_GUIDE_SCHEMA,
    GenerationError,
)
from session import MemoryStore

PDF_BYTES = b"%PDF-1.4\n%fake test document\n%%EOF"


class FakeGemini:
    """
    Stands in for GeminiClient. Answers by feature, records each call,
    and fails on demand for the kinds listed in ``fail``.
    """

    def __init__(self):
        self.calls = []
        self.fail = set()
        self.chat_reply = "The main topic is photosynthesis."
        self.raw = {}

    def _kind(self, contents, system_instruction, response_schema):
        schema_kinds = [
            (QUIZ_SCHEMA, "quiz"), (FLASHCARD_SCHEMA, "flashcards"), (QA_SCHEMA, "faq"),
            (STUDY_GUIDE_SCHEMA, "guide"), (QUOTE_SCHEMA, "quotes"), (STRING_LIST_SCHEMA, "suggestions"),
        ]
        for schema, kind in schema_kinds:
            if response_schema is schema:
                return kind
        if len(contents) > 1:
            return "chat"
        prompt = contents[0]["parts"][-1]
        if "description" in prompt:
            return "description"
        if "Mermaid" in prompt:
            return "mindmap"
        return "highlights"

    def generate(self, contents, system_instruction=None, response_schema=None):
        kind = self._kind(contents, system_instruction, response_schema)
        self.calls.append(kind)
        if kind in self.fail:
            raise GenerationError(f"{kind} failed")
        if kind in self.raw:
            return self.raw[kind]
        if kind == "quiz":
            count = int(re.search(r"quiz of (\d+)", contents[0]["parts"][-1]).group(1))
            return json.dumps([
                {"question": f"Question {i}?", "options": ["A", "B", "C", "D"],
                 "correctAnswerIndex": i % 4, "explanation": "Because."}
                for i in range(count)
            ])
        if kind == "flashcards":
            return "```json\n" + json.dumps([{"front": f"Term {i}", "back": f"Definition {i}"} for i in range(3)]) + "\n```"
        if kind == "faq":
            return json.dumps([
                {"question": "What is Chlorophyll?", "answer": "A green pigment."},
                {"question": "Where does it happen?", "answer": "In the chloroplast."},
                {"question": "Are plants alive?", "answer": "Yes."},
            ])
        if kind == "guide":
            return json.dumps([
                {"title": "Summary", "content": "Short."},
                {"title": "Analysis", "content": "A much longer analysis section."},
                {"title": "Key Concepts", "content": "Medium text here."},
            ])
        if kind == "quotes":
            return json.dumps([{"text": "To be or not to be", "context": "Hamlet"}])
        if kind == "suggestions":
            return json.dumps(["What is it about?", "Who wrote it?", "Why does it matter?"])
        if kind == "description":
            return "A biology syllabus about photosynthesis."
        if kind == "mindmap":
            return "```mermaid\ngraph TD\n  A[Plants] --> B[Light]\n```"
        if kind == "chat":
            return self.chat_reply
        return "## Highlights\n\n- Point one"

    def count(self, kind):
        return self.calls.count(kind)


@pytest.fixture
def fake_gemini():
    return FakeGemini()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def app(fake_gemini, store, tmp_path):
    app = create_app(
        config={
            "TESTING": True,
            "BACKGROUND_TASKS": False,
            "SESSION_SAVE_DELAY": 0.3,
            "TELEMETRY_PATH": str(tmp_path / "telemetry.jsonl"),
        },
        client=fake_gemini,
        store=store,
    )
    yield app
    app.extensions["studygenius"].shutdown()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def state(app):
    return app.extensions["studygenius"]


@pytest.fixture
def document():
    return Document.from_bytes("syllabus.pdf", PDF_BYTES)


def upload(client, name="syllabus.pdf", mime_type="application/pdf", payload=PDF_BYTES):
    return client.post(
        "/upload",
        data={"file": (io.BytesIO(payload), name, mime_type)},
        content_type="multipart/form-data",
    )


@pytest.fixture
def upload_file(client):
    def _upload(**kwargs):
        return upload(client, **kwargs)
    return _upload
