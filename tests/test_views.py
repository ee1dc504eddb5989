import pytest

from capabilities import MemoryClipboard, RecordingSpeech
from models import Mode
from premium import PremiumGate, UpgradeRequired
from views import (
    FAQView,
    FlashcardView,
    HighlightsView,
    MethodologyView,
    MindmapView,
    QuizView,
    QuotesView,
    StudyGuideView,
    build_view,
)


@pytest.fixture
def gate():
    return PremiumGate()


def test_quiz_scenario_free_tier(client, upload_file, fake_gemini):
    upload_file(name="syllabus.pdf")
    assert client.get("/api/state").get_json()["mode"] == "DASHBOARD"
    client.post("/api/mode", json={"mode": "QUIZ"})

    setup = client.get("/api/view").get_json()
    assert setup["in_setup"] is True
    assert "quiz" not in fake_gemini.calls

    client.post("/api/view/select_count", json={"count": 5})
    view = client.post("/api/view/start").get_json()["view"]

    assert len(view["questions"]) == 5
    for q in view["questions"]:
        assert 0 <= q["correctAnswerIndex"] < len(q["options"])


def test_large_quiz_needs_upgrade(client, upload_file, fake_gemini):
    upload_file()
    client.post("/api/mode", json={"mode": "QUIZ"})

    response = client.post("/api/view/select_count", json={"count": 10})
    body = response.get_json()

    assert response.status_code == 402
    assert body["upgrade_required"] is True
    assert body["state"]["upgrade_prompt_open"] is True
    assert client.get("/api/view").get_json()["num_questions"] == 5
    assert "quiz" not in fake_gemini.calls

    client.post("/api/upgrade/accept")
    state = client.get("/api/state").get_json()
    assert state["is_premium"] is True
    assert state["upgrade_prompt_open"] is False

    assert client.post("/api/view/select_count", json={"count": 10}).status_code == 200
    view = client.post("/api/view/start").get_json()["view"]
    assert len(view["questions"]) == 10


def test_long_summary_needs_upgrade(fake_gemini, document, gate):
    view = HighlightsView(fake_gemini, document, gate)
    view.ensure_loaded()
    calls = fake_gemini.count("highlights")

    with pytest.raises(UpgradeRequired):
        view.set_length("LONG")

    assert gate.prompt_open is True
    assert view.length == "MEDIUM"
    assert fake_gemini.count("highlights") == calls

    gate.accept_upgrade()
    view.set_length("LONG")
    assert view.length == "LONG"
    assert fake_gemini.count("highlights") == calls + 1


def test_strategic_mode_mounts_analyst_summary(fake_gemini, document, gate):
    view = build_view(Mode.STRATEGIC, fake_gemini, document, gate)
    assert view.mode == Mode.STRATEGIC
    assert view.length == "ANALYST"


def test_highlights_failure_shows_message(fake_gemini, document, gate):
    fake_gemini.fail.add("highlights")
    view = HighlightsView(fake_gemini, document, gate)
    view.ensure_loaded()

    snap = view.snapshot()
    assert snap["error"]
    assert snap["text"] == view.error_message


def test_highlights_speech_and_copy(fake_gemini, document, gate):
    speech, clipboard = RecordingSpeech(), MemoryClipboard()
    view = HighlightsView(fake_gemini, document, gate, speech=speech, clipboard=clipboard)
    view.ensure_loaded()

    view.copy()
    assert clipboard.text == view.text

    view.toggle_speech()
    assert view.speaking is True
    assert speech.spoken == [(view.text, "en-US")]
    speech.finish()
    assert view.speaking is False

    view.toggle_speech()
    view.set_language("ht")
    assert view.speaking is False
    assert view.language == "ht"


def test_speech_unsupported_is_noop(fake_gemini, document, gate):
    view = HighlightsView(fake_gemini, document, gate)
    view.ensure_loaded()
    view.toggle_speech()
    assert view.speaking is False


def test_quiz_answer_flow_and_filters(fake_gemini, document, gate):
    view = QuizView(fake_gemini, document, gate)
    view.select_count(3)
    view.start()

    # Answer the first right, the others wrong
    for i, q in enumerate(view.questions):
        choice = q.correct_answer_index if i == 0 else (q.correct_answer_index + 1) % len(q.options)
        view.select_option(choice)
        view.submit_answer()
        view.next()

    assert view.show_results is True
    assert view.score == 1
    view.set_filter("CORRECT")
    assert [r["index"] for r in view.results()] == [0]
    view.set_filter("INCORRECT")
    assert [r["index"] for r in view.results()] == [1, 2]

    view.back_to_setup()
    assert view.in_setup is True
    assert view.questions == []


def test_quiz_generation_failure_is_empty(fake_gemini, document, gate):
    fake_gemini.raw["quiz"] = '[{"question": "Q", "options": ["a", "b"], "correctAnswerIndex": 7, "explanation": ""}]'
    view = QuizView(fake_gemini, document, gate)
    view.start()

    assert view.questions == []
    assert view.error


def test_flashcards_navigation(fake_gemini, document, gate):
    speech = RecordingSpeech()
    view = FlashcardView(fake_gemini, document, gate, speech=speech)
    view.ensure_loaded()
    assert len(view.cards) == 3

    view.prev()
    assert view.current_index == 2
    view.next()
    assert view.current_index == 0

    view.flip()
    assert view.flipped is True
    view.next()
    assert view.flipped is False

    view.speak("back")
    assert view.speaking_side == "back"
    view.speak("back")
    assert view.speaking_side is None

    view.shuffle()
    assert sorted(c.front for c in view.cards) == ["Term 0", "Term 1", "Term 2"]


def test_study_guide_sort_copy_and_export(fake_gemini, document, gate):
    clipboard = MemoryClipboard()
    view = StudyGuideView(fake_gemini, document, gate, clipboard=clipboard)
    view.ensure_loaded()

    view.set_sort("TITLE")
    assert [s.title for s in view.sorted_sections()] == ["Analysis", "Key Concepts", "Summary"]
    view.set_sort("LENGTH")
    assert view.sorted_sections()[0].title == "Analysis"

    view.copy()
    assert clipboard.text.startswith("## Analysis")

    with pytest.raises(UpgradeRequired):
        view.export()
    gate.accept_upgrade()
    page = view.export()
    assert "<h2>Analysis</h2>" in page
    assert "syllabus.pdf" in page


def test_study_guide_failure_section(fake_gemini, document, gate):
    fake_gemini.fail.add("guide")
    view = StudyGuideView(fake_gemini, document, gate)
    view.ensure_loaded()
    assert [s.title for s in view.sections] == ["Error"]


def test_faq_search_and_sort(fake_gemini, document, gate):
    view = FAQView(fake_gemini, document, gate)
    view.ensure_loaded()
    view.toggle(1)
    assert view.open_index == 1

    view.search("CHLORO")
    assert view.open_index is None
    assert len(view.visible_pairs()) == 2

    view.search("")
    view.set_sort("AZ")
    assert [p.question for p in view.visible_pairs()][0] == "Are plants alive?"


def test_mindmap_strips_fences_and_zooms(fake_gemini, document, gate):
    view = MindmapView(fake_gemini, document, gate)
    view.ensure_loaded()
    assert view.code.startswith("graph TD")

    for _ in range(20):
        view.zoom_in()
    assert view.zoom == 2.0
    view.reset_zoom()
    assert view.zoom == 1.0


def test_quotes_and_methodology(fake_gemini, document, gate):
    quotes = QuotesView(fake_gemini, document, gate)
    quotes.ensure_loaded()
    assert quotes.snapshot()["quotes"][0]["author"] is None

    methodology = MethodologyView(fake_gemini, document, gate)
    methodology.ensure_loaded()
    assert len(methodology.snapshot()["steps"]) == 5
    assert fake_gemini.calls == ["quotes"]


def test_each_mount_regenerates(client, upload_file, fake_gemini):
    upload_file()
    client.post("/api/mode", json={"mode": "FAQ"})
    client.get("/api/view")
    client.post("/api/mode", json={"mode": "MINDMAP"})
    client.get("/api/view")
    client.post("/api/mode", json={"mode": "FAQ"})
    client.get("/api/view")

    assert fake_gemini.count("faq") == 2


def test_view_routes_errors(client, upload_file):
    assert client.get("/api/view").status_code == 409
    upload_file()
    assert client.get("/api/view").status_code == 409  # dashboard has no feature view
    client.post("/api/mode", json={"mode": "FAQ"})
    assert client.post("/api/view/explode").status_code == 404
    assert client.post("/api/view/set_sort", json={"value": "RANDOM"}).status_code == 400


def test_non_string_parameters_rejected(client, upload_file):
    upload_file()
    client.post("/api/mode", json={"mode": "HIGHLIGHTS"})
    assert client.post("/api/view/set_length", json={"length": 3}).status_code == 400

    client.post("/api/mode", json={"mode": "FAQ"})
    assert client.post("/api/view/set_sort", json={"value": ["AZ"]}).status_code == 400
