"""
StudyGenius - Response Schemas
Pydantic models for structured generator output and the strict
strip-then-validate parsing pipeline
"""

from __future__ import annotations
import json
import re
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, model_validator


class GenerationError(Exception):
    """Raised when the model call fails or its output does not fit the schema."""


class QuizQuestion(BaseModel):
    question: str
    options: List[str] = Field(..., min_length=2)
    correct_answer_index: int = Field(..., alias="correctAnswerIndex", ge=0)
    explanation: str

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _idx_in_range(self):
        if not (0 <= self.correct_answer_index < len(self.options)):
            raise ValueError(
                f"correctAnswerIndex must be between 0 and {len(self.options) - 1}"
            )
        return self


class Flashcard(BaseModel):
    front: str
    back: str


class QAPair(BaseModel):
    question: str
    answer: str


class StudyGuideSection(BaseModel):
    title: str
    content: str


class Quote(BaseModel):
    text: str
    author: Optional[str] = None
    context: str


# Response schemas sent to Gemini alongside the prompt
QUIZ_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "question": {"type": "STRING"},
            "options": {"type": "ARRAY", "items": {"type": "STRING"}},
            "correctAnswerIndex": {"type": "INTEGER", "description": "Zero-based index of the correct option"},
            "explanation": {"type": "STRING", "description": "Short explanation of why the answer is correct"},
        },
        "required": ["question", "options", "correctAnswerIndex", "explanation"],
    },
}

FLASHCARD_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {"front": {"type": "STRING"}, "back": {"type": "STRING"}},
        "required": ["front", "back"],
    },
}

QA_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {"question": {"type": "STRING"}, "answer": {"type": "STRING"}},
        "required": ["question", "answer"],
    },
}

STUDY_GUIDE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING", "description": "Section title"},
            "content": {"type": "STRING", "description": "Section body in Markdown"},
        },
        "required": ["title", "content"],
    },
}

QUOTE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "text": {"type": "STRING", "description": "The exact quotation"},
            "author": {"type": "STRING", "description": "Author or speaker"},
            "context": {"type": "STRING", "description": "What the quotation is about"},
        },
        "required": ["text", "context"],
    },
}

STRING_LIST_SCHEMA = {"type": "ARRAY", "items": {"type": "STRING"}}

_JSON_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)
_MERMAID_FENCE = re.compile(r"```(?:mermaid)?\s*(.*?)\s*```", re.DOTALL)

M = TypeVar("M", bound=BaseModel)


def strip_json_fence(text: str) -> str:
    """Remove a ```json ... ``` (or bare ```) wrapper if present."""
    cleaned = (text or "").strip()
    match = _JSON_FENCE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def strip_mermaid_fence(text: str) -> str:
    """Extract Mermaid source from a fenced block, or tidy up raw/unclosed text."""
    if not text:
        return ""
    match = _MERMAID_FENCE.search(text)
    if match and match.group(1):
        return match.group(1).strip()
    cleaned = re.sub(r"^```(?:mermaid)?\s*", "", text.strip())
    return re.sub(r"\s*```$", "", cleaned).strip()


def _load_json(text: str) -> Any:
    cleaned = strip_json_fence(text)
    if not cleaned:
        raise GenerationError("Empty response from model")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Response is not valid JSON: {e}") from e


def parse_records(text: str, model: Type[M]) -> List[M]:
    """
    Parse a model response into a list of validated records.

    :param text: Raw response text, optionally fenced.
    :param model: Pydantic model every record must satisfy.
    :raises GenerationError: on unparsable or non-conforming output.
    """
    payload = _load_json(text)
    try:
        return TypeAdapter(List[model]).validate_python(payload)
    except ValidationError as e:
        raise GenerationError(f"Response does not match the {model.__name__} schema: {e.error_count()} error(s)") from e


def parse_string_list(text: str) -> List[str]:
    payload = _load_json(text)
    try:
        return TypeAdapter(List[str]).validate_python(payload)
    except ValidationError as e:
        raise GenerationError("Response is not a list of strings") from e


def dump_records(records: List[BaseModel]) -> List[Dict[str, Any]]:
    return [r.model_dump(by_alias=True) for r in records]
