"""
StudyGenius - Generators
One function per feature mode; every one sends the PDF inline to Gemini
"""

from __future__ import annotations
import logging
from typing import Dict, List, Optional, Sequence

import google.generativeai as genai

from models import Document, Message
from schemas import (
    FLASHCARD_SCHEMA,
    QA_SCHEMA,
    QUIZ_SCHEMA,
    QUOTE_SCHEMA,
    STRING_LIST_SCHEMA,
    STUDY_GUIDE_SCHEMA,
    Flashcard,
    GenerationError,
    QAPair,
    QuizQuestion,
    Quote,
    StudyGuideSection,
    parse_records,
    parse_string_list,
    strip_mermaid_fence,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"

DESCRIPTION_FALLBACK = "Description unavailable."
CHAT_FALLBACK = "Sorry, I could not generate an answer."
HIGHLIGHTS_FALLBACK = "Could not extract the key points."

SUMMARY_LENGTHS = (
    "SHORT", "MEDIUM", "LONG", "ANALYST", "TEACHER",
    "EXAM", "APPLICATIONS", "SIMPLE", "KEY_POINTS", "DESCRIPTIVE",
)
LANGUAGES = ("en", "fr", "ht")

LANGUAGE_INSTRUCTIONS = {
    "en": " Answer in English.",
    "fr": " Réponds en Français.",
    "ht": " REPONN TOUT AN KREYÒL AYISYEN SÈLMAN. Sèvi ak yon langaj klè ak natirèl.",
}

# length -> (prompt, system instruction)
SUMMARY_PROMPTS = {
    "SHORT": (
        "Write a short summary of this document in one or two paragraphs.",
        "You are a concise assistant.",
    ),
    "MEDIUM": (
        "Analyse this document and provide a structured synthesis.",
        "You are an expert assistant.",
    ),
    "LONG": (
        "Write a complete, detailed summary of this document, organised under headings with full paragraphs.",
        "You are an expert assistant.",
    ),
    "ANALYST": (
        "Acting as an analyst, produce a structured HIGHLIGHTS section for the attached document:\n"
        "1. **Main Thesis:** What is the central message? (Max. 2 sentences).\n"
        "2. **Purpose of the Document:** What is its goal and target audience?\n"
        "3. **Key Conclusions:** 3 action points or major findings.",
        "You are an expert analyst, precise and structured.",
    ),
    "TEACHER": (
        "Extract 5 to 7 fundamental concepts with a short definition based on the text. Use a Markdown table.",
        "You are a teacher focused on pedagogy.",
    ),
    "EXAM": (
        "List what a student must know for an exam on this document: definitions, formulas, dates and likely questions.",
        "You are an exam coach.",
    ),
    "APPLICATIONS": (
        "Explain how the ideas of this document can be applied in real situations, with concrete examples.",
        "You are a practitioner who turns theory into practice.",
    ),
    "SIMPLE": (
        "Write a very simple summary in plain language that a middle-school student can follow. A single flowing paragraph.",
        "You simplify complex concepts for a general audience.",
    ),
    "KEY_POINTS": (
        "List the 7 to 10 essential key points of the document as bullet points.",
        "You are synthetic and go straight to the point.",
    ),
    "DESCRIPTIVE": (
        "Write a descriptive summary of the document: the general subject, how it is organised and the author's approach. "
        "Use flowing paragraphs and avoid bullet lists.",
        "You are an expert librarian who describes the content of works.",
    ),
}


class GeminiClient:
    """
    Thin wrapper around google.generativeai so generators stay testable.

    Generators only depend on ``generate(contents, system_instruction, response_schema)``;
    tests swap in a fake with the same method.
    """

    def __init__(self, api_key: Optional[str] = None, model_name: str = DEFAULT_MODEL) -> None:
        if api_key:
            genai.configure(api_key=api_key)
        self.model_name = model_name

    def generate(self, contents, system_instruction: Optional[str] = None,
                 response_schema: Optional[Dict] = None) -> str:
        model = genai.GenerativeModel(self.model_name, system_instruction=system_instruction)
        generation_config = None
        if response_schema is not None:
            generation_config = genai.GenerationConfig(
                response_mime_type="application/json",
                response_schema=response_schema,
            )
        try:
            response = model.generate_content(contents, generation_config=generation_config)
            return response.text or ""
        except Exception as e:
            raise GenerationError(f"Gemini call failed: {e}") from e


def pdf_part(document: Document) -> Dict[str, object]:
    return {"mime_type": document.mime_type, "data": document.raw_bytes()}


def _single_turn(document: Document, prompt: str) -> List[Dict[str, object]]:
    return [{"role": "user", "parts": [pdf_part(document), prompt]}]


def generate_file_description(client, document: Document) -> str:
    """One or two sentences about the document; never raises."""
    try:
        text = client.generate(_single_turn(
            document,
            "Write a very concise description (1 to 2 sentences maximum) of the main subject and the type of this document.",
        ))
        return text.strip() or DESCRIPTION_FALLBACK
    except Exception:
        logger.exception("Description generation failed for %s", document.name)
        return DESCRIPTION_FALLBACK


def generate_suggested_questions(client, document: Document) -> List[str]:
    """Three conversation starters; returns [] on any failure."""
    try:
        text = client.generate(
            _single_turn(
                document,
                "Suggest 3 short, intriguing and relevant questions (max 12 words) the user could ask "
                "to start a conversation about this document.",
            ),
            response_schema=STRING_LIST_SCHEMA,
        )
        return parse_string_list(text)
    except Exception:
        logger.warning("Suggested questions unavailable for %s", document.name, exc_info=True)
        return []


def send_chat_message(client, document: Document, history: Sequence[Message], new_message: str) -> str:
    """
    Stateless chat turn: the PDF, a canned acknowledgement, the prior
    transcript and the new user message are sent on every call.
    """
    contents: List[Dict[str, object]] = [
        {"role": "user", "parts": [pdf_part(document), "Here is the reference document for our conversation."]},
        {"role": "model", "parts": ["Understood. I am ready to answer your questions about this document."]},
    ]
    for msg in history:
        # Error entries are local UI artefacts, not part of the conversation
        if msg.is_error:
            continue
        contents.append({"role": msg.role, "parts": [msg.text]})
    contents.append({"role": "user", "parts": [new_message]})

    text = client.generate(
        contents,
        system_instruction="Answer concisely and precisely, based on the provided document.",
    )
    return text.strip() or CHAT_FALLBACK


def generate_quiz(client, document: Document, num_questions: int = 5) -> List[QuizQuestion]:
    text = client.generate(
        _single_turn(document, f"Create a quiz of {num_questions} multiple-choice questions based on this document."),
        response_schema=QUIZ_SCHEMA,
    )
    return parse_records(text, QuizQuestion)


def generate_flashcards(client, document: Document) -> List[Flashcard]:
    text = client.generate(
        _single_turn(
            document,
            "Create 10 flashcards to study this document. Each card has a question or concept on the front "
            "and the answer or definition on the back.",
        ),
        response_schema=FLASHCARD_SCHEMA,
    )
    return parse_records(text, Flashcard)


def generate_faq(client, document: Document) -> List[QAPair]:
    text = client.generate(
        _single_turn(
            document,
            "Generate a list of 8 essential Questions and Answers (FAQ) for understanding this document. "
            "Answers must be complete but concise.",
        ),
        response_schema=QA_SCHEMA,
    )
    return parse_records(text, QAPair)


def generate_study_guide(client, document: Document) -> List[StudyGuideSection]:
    text = client.generate(
        _single_turn(
            document,
            "Generate a structured study guide for this document. Split it into logical sections "
            "(e.g. Executive Summary, Key Concepts, Analysis, Conclusion). For each section give a clear "
            "title and the content in Markdown.",
        ),
        system_instruction="You are a teaching expert. Build structured revision guides as JSON.",
        response_schema=STUDY_GUIDE_SCHEMA,
    )
    return parse_records(text, StudyGuideSection)


def generate_key_quotes(client, document: Document) -> List[Quote]:
    text = client.generate(
        _single_turn(
            document,
            "Extract 5 to 8 striking verbatim quotations from this document. For each one give the context "
            "(what it is about) and, where possible, the author or section.",
        ),
        response_schema=QUOTE_SCHEMA,
    )
    return parse_records(text, Quote)


def generate_mindmap(client, document: Document) -> str:
    text = client.generate(
        _single_turn(
            document,
            "Generate a Mermaid 'graph TD' diagram for this document.\n\n"
            "READABILITY:\n"
            "1. Use VERY SHORT labels (max 3-5 words per node).\n"
            "2. Avoid full sentences, use keywords.\n"
            "3. Clear hierarchical structure.\n\n"
            "TECHNICAL RULES:\n"
            "1. Start with 'graph TD'.\n"
            "2. NO 'classDef' before the graph.\n"
            "3. NO complex CSS styles, styling is handled client side.",
        ),
        system_instruction="You are an expert in visual synthesis. You create clear, readable, concise Mermaid mindmaps.",
    )
    code = strip_mermaid_fence(text)
    if not code:
        raise GenerationError("Empty mindmap returned")
    return code


def generate_highlights(client, document: Document, length: str = "MEDIUM", language: str = "en") -> str:
    """
    Free-form Markdown summary.

    :param length: One of SUMMARY_LENGTHS.
    :param language: One of LANGUAGES.
    """
    if length not in SUMMARY_LENGTHS:
        raise ValueError(f"Unknown summary length: {length}")
    if language not in LANGUAGES:
        raise ValueError(f"Unknown language: {language}")

    prompt, system = SUMMARY_PROMPTS[length]
    text = client.generate(
        _single_turn(document, prompt + " Format the result as clean Markdown."),
        system_instruction=system + LANGUAGE_INSTRUCTIONS[language],
    )
    return text.strip() or HIGHLIGHTS_FALLBACK
