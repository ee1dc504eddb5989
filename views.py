"""
StudyGenius - Feature Views
One view per mode. A view owns its generated content and its controls;
it is created fresh on every mode switch and loads lazily.
"""

from __future__ import annotations
import html
import logging
import random
import re
from typing import Any, Dict, List, Optional

import gemini
from capabilities import NullClipboard, NullSpeech
from models import Document, Mode
from premium import EXPORT, FREE_QUIZ_CAP, LARGE_QUIZ, LONG_SUMMARY, QUIZ_COUNTS
from schemas import GenerationError, StudyGuideSection, dump_records

logger = logging.getLogger(__name__)

SPEECH_LANGS = {"en": "en-US", "fr": "fr-FR", "ht": "ht-HT"}


class UnknownAction(Exception):
    pass


class FeatureView:
    """
    Base class. Subclasses implement ``_generate`` and ``_content``, and
    list the controls they expose in ``ACTIONS``.
    """

    mode: Mode
    ACTIONS: tuple = ("regenerate",)
    error_message = "Generation failed. Please try again."

    def __init__(self, client, document: Document, gate, speech=None, clipboard=None) -> None:
        self.client = client
        self.document = document
        self.gate = gate
        self.speech = speech or NullSpeech()
        self.clipboard = clipboard or NullClipboard()
        self.loaded = False
        self.error: Optional[str] = None

    def _generate(self) -> None:
        raise NotImplementedError

    def _on_failure(self) -> None:
        pass

    def _content(self) -> Dict[str, Any]:
        return {}

    def load(self) -> None:
        self.error = None
        try:
            self._generate()
        except GenerationError:
            logger.warning("%s generation failed for %s", self.mode.value, self.document.name, exc_info=True)
            self.error = self.error_message
            self._on_failure()
        self.loaded = True

    def ensure_loaded(self) -> None:
        if not self.loaded:
            self.load()

    def regenerate(self) -> None:
        self.load()

    def unmount(self) -> None:
        self.speech.cancel()

    def dispatch(self, action: str, params: Dict[str, Any]) -> Any:
        if action not in self.ACTIONS:
            raise UnknownAction(f"{self.mode.value} has no action '{action}'")
        return getattr(self, action)(**params)

    def snapshot(self) -> Dict[str, Any]:
        data = {"mode": self.mode.value, "error": self.error, "actions": list(self.ACTIONS)}
        data.update(self._content())
        return data


class HighlightsView(FeatureView):
    mode = Mode.HIGHLIGHTS
    ACTIONS = ("regenerate", "set_length", "set_language", "copy", "toggle_speech")
    error_message = "Error while generating the key points."

    def __init__(self, *args, initial_length: str = "MEDIUM", **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.length = initial_length
        self.language = "en"
        self.text = ""
        self.speaking = False
        if initial_length == "ANALYST":
            self.mode = Mode.STRATEGIC

    def _generate(self) -> None:
        # Stop any ongoing speech when regenerating
        self._stop_speech()
        self.text = gemini.generate_highlights(self.client, self.document, self.length, self.language)

    def _on_failure(self) -> None:
        self.text = self.error_message

    def set_length(self, length: str) -> None:
        length = str(length).upper()
        if length not in gemini.SUMMARY_LENGTHS:
            raise ValueError(f"Unknown summary length: {length}")
        if length == "LONG":
            self.gate.require(LONG_SUMMARY)
        self.length = length
        self.load()

    def set_language(self, language: str) -> None:
        if language not in gemini.LANGUAGES:
            raise ValueError(f"Unknown language: {language}")
        self.language = language
        self.load()

    def copy(self) -> None:
        self.clipboard.write_text(self.text)

    def _stop_speech(self) -> None:
        self.speech.cancel()
        self.speaking = False

    def _speech_done(self) -> None:
        self.speaking = False

    def toggle_speech(self) -> None:
        if self.speaking:
            self._stop_speech()
            return
        if not self.speech.supported or not self.text:
            return
        self.speech.speak(self.text, SPEECH_LANGS[self.language], on_end=self._speech_done)
        self.speaking = True

    def _content(self):
        return {
            "text": self.text,
            "length": self.length,
            "language": self.language,
            "speaking": self.speaking,
            "speech_supported": self.speech.supported,
            "long_locked": not self.gate.is_premium,
        }


class QuizView(FeatureView):
    mode = Mode.QUIZ
    ACTIONS = ("select_count", "start", "regenerate", "select_option", "submit_answer", "next", "set_filter", "back_to_setup")
    FILTERS = ("ALL", "CORRECT", "INCORRECT")

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.num_questions = FREE_QUIZ_CAP
        self.in_setup = True
        self._reset_progress()
        self.questions = []

    def _reset_progress(self) -> None:
        self.current_index = 0
        self.selected_option: Optional[int] = None
        self.answer_submitted = False
        self.score = 0
        self.show_results = False
        self.filter = "ALL"
        self.user_answers: List[Optional[int]] = []

    def ensure_loaded(self) -> None:
        # Nothing to generate until the user leaves the setup screen
        if not self.in_setup:
            super().ensure_loaded()

    def _generate(self) -> None:
        self._reset_progress()
        self.questions = []
        self.questions = gemini.generate_quiz(self.client, self.document, self.num_questions)
        self.user_answers = [None] * len(self.questions)

    def select_count(self, count: int) -> None:
        count = int(count)
        if count not in QUIZ_COUNTS:
            raise ValueError(f"Quiz size must be one of {QUIZ_COUNTS}")
        if count > FREE_QUIZ_CAP:
            self.gate.require(LARGE_QUIZ)
        self.num_questions = count

    def start(self) -> None:
        self.in_setup = False
        self.load()

    def select_option(self, index: int) -> None:
        if self.answer_submitted or not self.questions:
            return
        index = int(index)
        if not 0 <= index < len(self.questions[self.current_index].options):
            raise ValueError("Option out of range")
        self.selected_option = index

    def submit_answer(self) -> None:
        if self.selected_option is None or self.answer_submitted:
            return
        self.answer_submitted = True
        self.user_answers[self.current_index] = self.selected_option
        if self.selected_option == self.questions[self.current_index].correct_answer_index:
            self.score += 1

    def next(self) -> None:
        if not self.answer_submitted:
            return
        self.selected_option = None
        self.answer_submitted = False
        if self.current_index < len(self.questions) - 1:
            self.current_index += 1
        else:
            self.show_results = True

    def set_filter(self, value: str) -> None:
        value = str(value).upper()
        if value not in self.FILTERS:
            raise ValueError(f"Filter must be one of {self.FILTERS}")
        self.filter = value

    def back_to_setup(self) -> None:
        self.in_setup = True
        self.loaded = False
        self.questions = []
        self._reset_progress()

    def results(self) -> List[Dict[str, Any]]:
        rows = []
        for i, q in enumerate(self.questions):
            answer = self.user_answers[i] if i < len(self.user_answers) else None
            correct = answer == q.correct_answer_index
            if self.filter == "CORRECT" and not correct:
                continue
            if self.filter == "INCORRECT" and correct:
                continue
            rows.append({"index": i, "question": q.question, "user_answer": answer,
                         "correct_answer_index": q.correct_answer_index, "correct": correct,
                         "explanation": q.explanation})
        return rows

    def _content(self):
        data = {
            "in_setup": self.in_setup,
            "num_questions": self.num_questions,
            "counts": [{"count": c, "locked": c > FREE_QUIZ_CAP and not self.gate.is_premium} for c in QUIZ_COUNTS],
            "questions": dump_records(self.questions),
            "current_index": self.current_index,
            "selected_option": self.selected_option,
            "answer_submitted": self.answer_submitted,
            "score": self.score,
            "show_results": self.show_results,
            "filter": self.filter,
        }
        if self.show_results:
            data["results"] = self.results()
        return data


class FlashcardView(FeatureView):
    mode = Mode.FLASHCARDS
    ACTIONS = ("regenerate", "flip", "next", "prev", "shuffle", "speak")

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.cards = []
        self.current_index = 0
        self.flipped = False
        self.speaking_side: Optional[str] = None

    def _generate(self) -> None:
        self._stop_speech()
        self.cards = []
        self.current_index = 0
        self.flipped = False
        self.cards = gemini.generate_flashcards(self.client, self.document)

    def _stop_speech(self) -> None:
        self.speech.cancel()
        self.speaking_side = None

    def flip(self) -> None:
        self.flipped = not self.flipped

    def next(self) -> None:
        if not self.cards:
            return
        self._stop_speech()
        self.flipped = False
        self.current_index = (self.current_index + 1) % len(self.cards)

    def prev(self) -> None:
        if not self.cards:
            return
        self._stop_speech()
        self.flipped = False
        self.current_index = (self.current_index - 1) % len(self.cards)

    def shuffle(self) -> None:
        self._stop_speech()
        random.shuffle(self.cards)
        self.current_index = 0
        self.flipped = False

    def _speech_done(self) -> None:
        self.speaking_side = None

    def speak(self, side: str) -> None:
        if side not in ("front", "back"):
            raise ValueError("side must be 'front' or 'back'")
        if not self.speech.supported or not self.cards:
            return
        # Same side again stops playback
        if self.speaking_side == side:
            self._stop_speech()
            return
        self.speech.cancel()
        card = self.cards[self.current_index]
        self.speaking_side = side
        self.speech.speak(getattr(card, side), SPEECH_LANGS["en"], on_end=self._speech_done)

    def _content(self):
        return {
            "cards": dump_records(self.cards),
            "current_index": self.current_index,
            "flipped": self.flipped,
            "speaking_side": self.speaking_side,
            "speech_supported": self.speech.supported,
        }


class StudyGuideView(FeatureView):
    mode = Mode.GUIDE
    ACTIONS = ("regenerate", "set_sort", "copy", "export")
    SORTS = ("ORIGINAL", "TITLE", "LENGTH")
    error_message = "Error while generating the study guide."

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.sections = []
        self.sort = "ORIGINAL"

    def _generate(self) -> None:
        self.sections = gemini.generate_study_guide(self.client, self.document)

    def _on_failure(self) -> None:
        self.sections = [StudyGuideSection(title="Error", content=self.error_message)]

    def set_sort(self, value: str) -> None:
        value = str(value).upper()
        if value not in self.SORTS:
            raise ValueError(f"Sort must be one of {self.SORTS}")
        self.sort = value

    def sorted_sections(self):
        sections = list(self.sections)
        if self.sort == "TITLE":
            sections.sort(key=lambda s: s.title.lower())
        elif self.sort == "LENGTH":
            # Longest content first
            sections.sort(key=lambda s: len(s.content), reverse=True)
        return sections

    def full_markdown(self) -> str:
        return "\n\n".join(f"## {s.title}\n\n{s.content}" for s in self.sorted_sections())

    def copy(self) -> None:
        content = self.full_markdown()
        if content:
            self.clipboard.write_text(content)

    def export(self) -> str:
        """Printable HTML page of the guide (premium)."""
        self.gate.require(EXPORT)
        title = html.escape(f"Study guide - {self.document.name}")
        body = "\n".join(
            f"<h2>{html.escape(s.title)}</h2>\n<pre>{html.escape(s.content)}</pre>" for s in self.sorted_sections()
        )
        return (
            f"<html><head><title>{title}</title>"
            "<style>body { font-family: system-ui, sans-serif; line-height: 1.6; padding: 40px; "
            "max-width: 800px; margin: 0 auto; color: #333; } pre { white-space: pre-wrap; font-family: inherit; }</style>"
            f"</head><body><h1>{title}</h1>\n{body}</body></html>"
        )

    def _content(self):
        return {
            "sections": dump_records(self.sorted_sections()),
            "sort": self.sort,
            "export_locked": not self.gate.is_premium,
        }


class FAQView(FeatureView):
    mode = Mode.FAQ
    ACTIONS = ("regenerate", "search", "set_sort", "toggle")
    SORTS = ("ORIGINAL", "AZ")

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.pairs = []
        self.query = ""
        self.sort = "ORIGINAL"
        self.open_index: Optional[int] = None

    def _generate(self) -> None:
        self.pairs = gemini.generate_faq(self.client, self.document)

    def search(self, query: str) -> None:
        self.query = query or ""
        self.open_index = None

    def set_sort(self, value: str) -> None:
        value = str(value).upper()
        if value not in self.SORTS:
            raise ValueError(f"Sort must be one of {self.SORTS}")
        self.sort = value
        self.open_index = None

    def toggle(self, index: int) -> None:
        index = int(index)
        self.open_index = None if self.open_index == index else index

    def visible_pairs(self):
        needle = self.query.lower()
        result = [p for p in self.pairs if needle in p.question.lower() or needle in p.answer.lower()]
        if self.sort == "AZ":
            result.sort(key=lambda p: p.question.lower())
        return result

    def _content(self):
        return {
            "pairs": dump_records(self.visible_pairs()),
            "total": len(self.pairs),
            "query": self.query,
            "sort": self.sort,
            "open_index": self.open_index,
            "highlight": re.escape(self.query) if self.query.strip() else None,
        }


class MindmapView(FeatureView):
    mode = Mode.MINDMAP
    ACTIONS = ("regenerate", "zoom_in", "zoom_out", "reset_zoom")
    error_message = "Could not generate the mindmap. Try regenerating."
    MIN_ZOOM, MAX_ZOOM, ZOOM_STEP = 0.5, 2.0, 0.1

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.code = ""
        self.zoom = 1.0

    def _generate(self) -> None:
        self.code = ""
        self.code = gemini.generate_mindmap(self.client, self.document)

    def zoom_in(self) -> None:
        self.zoom = round(min(self.MAX_ZOOM, self.zoom + self.ZOOM_STEP), 2)

    def zoom_out(self) -> None:
        self.zoom = round(max(self.MIN_ZOOM, self.zoom - self.ZOOM_STEP), 2)

    def reset_zoom(self) -> None:
        self.zoom = 1.0

    def _content(self):
        return {"code": self.code, "zoom": self.zoom}


class QuotesView(FeatureView):
    mode = Mode.QUOTES

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.quotes = []

    def _generate(self) -> None:
        self.quotes = gemini.generate_key_quotes(self.client, self.document)

    def _content(self):
        return {"quotes": dump_records(self.quotes)}


METHODOLOGY_STEPS = [
    {
        "id": 1,
        "category": "Understanding & Context",
        "subtitle": "The Frame",
        "description": "Quickly identify the subject, the author's main goal and the publication context. "
                       "This level sets your knowledge base.",
        "key_questions": "Who? What? When? Why? (e.g. What is the central thesis? Who is the author writing for?)",
    },
    {
        "id": 2,
        "category": "Fact Extraction",
        "subtitle": "The Core",
        "description": "Isolate the facts, evidence and definitions you need to memorise. "
                       "This level produces the raw material for your flashcards.",
        "key_questions": "Which facts? Which definitions? (e.g. What are the three main arguments? List the technical terms.)",
    },
    {
        "id": 3,
        "category": "Structural Analysis",
        "subtitle": "The Evaluation",
        "description": "Assess the quality and logic of the argument, moving from reading to critical thinking "
                       "by finding strengths and weaknesses.",
        "key_questions": "How? Are there limits? (e.g. Is the argument consistent? Where is the evidence weak?)",
    },
    {
        "id": 4,
        "category": "Synthesis & Memorisation",
        "subtitle": "The Retention",
        "description": "Turn the extracted information into revision tools. This level produces your quizzes, "
                       "Q&A and final summaries.",
        "key_questions": "How do I test it? How do I summarise it? (e.g. Generate a quiz on section 2.)",
    },
    {
        "id": 5,
        "category": "Application & Projection",
        "subtitle": "The Added Value",
        "description": "Give the document practical meaning by applying its ideas to real situations "
                       "and anticipating future consequences.",
        "key_questions": "What next? How do I use it? (e.g. How can I apply this principle in my work?)",
    },
]


class MethodologyView(FeatureView):
    mode = Mode.METHODOLOGY
    ACTIONS = ()

    def _generate(self) -> None:
        pass

    def _content(self):
        return {"steps": METHODOLOGY_STEPS}


def build_view(mode: Mode, client, document: Document, gate, speech=None, clipboard=None) -> Optional[FeatureView]:
    """Mount the view for ``mode``. Dashboard, Upload and Chat are handled by the state container."""
    args = (client, document, gate)
    kwargs = {"speech": speech, "clipboard": clipboard}
    if mode == Mode.HIGHLIGHTS:
        return HighlightsView(*args, **kwargs)
    if mode == Mode.STRATEGIC:
        return HighlightsView(*args, initial_length="ANALYST", **kwargs)
    views = {
        Mode.QUIZ: QuizView,
        Mode.FLASHCARDS: FlashcardView,
        Mode.GUIDE: StudyGuideView,
        Mode.FAQ: FAQView,
        Mode.MINDMAP: MindmapView,
        Mode.QUOTES: QuotesView,
        Mode.METHODOLOGY: MethodologyView,
    }
    cls = views.get(mode)
    return cls(*args, **kwargs) if cls else None
