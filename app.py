"""
StudyGenius - PDF Study Assistant
Main Flask Application
"""

from flask import Flask, current_app, request, jsonify, render_template_string
import atexit
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dotenv import load_dotenv

from chat import ChatBusy
from gemini import DEFAULT_MODEL, GeminiClient
from models import Mode
from premium import UpgradeRequired
from session import DEFAULT_SAVE_DELAY, JsonFileStore, SessionStore
from state import NoDocument, StudyState
from utils import UploadRejected, log_request, read_upload
from views import UnknownAction

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(config=None, client=None, store=None):
    """
    Build the Flask app and its state container.

    :param config: Overrides for app.config (tests use this).
    :param client: Gemini client; defaults to the real one.
    :param store: Key-value store; defaults to JSON files in STUDY_DATA_DIR.
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 16 * 1024 * 1024  # 16MB max file size
    app.config["GEMINI_API_KEY"] = os.getenv("GEMINI_API_KEY")
    app.config["GEMINI_MODEL"] = os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
    app.config["STUDY_DATA_DIR"] = os.getenv("STUDY_DATA_DIR", "session_data")
    app.config["SESSION_SAVE_DELAY"] = float(os.getenv("SESSION_SAVE_DELAY", DEFAULT_SAVE_DELAY))
    app.config["TELEMETRY_PATH"] = os.getenv("TELEMETRY_PATH", "telemetry.jsonl")
    app.config["BACKGROUND_TASKS"] = True
    if config:
        app.config.update(config)

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if client is None:
        client = GeminiClient(api_key=app.config["GEMINI_API_KEY"], model_name=app.config["GEMINI_MODEL"])
    if store is None:
        store = JsonFileStore(app.config["STUDY_DATA_DIR"])
    executor = ThreadPoolExecutor(max_workers=4) if app.config["BACKGROUND_TASKS"] else None

    state = StudyState(
        client=client,
        session_store=SessionStore(store, delay=app.config["SESSION_SAVE_DELAY"]),
        store=store,
        executor=executor,
    )
    state.restore()
    app.extensions["studygenius"] = state
    atexit.register(state.shutdown)

    register_routes(app)
    return app


def _state() -> StudyState:
    return current_app.extensions["studygenius"]


def _telemetry(path, start_time, status="ok", metadata=None):
    log_request(path, _state().mode.value, start_time, status, metadata,
                telemetry_path=current_app.config["TELEMETRY_PATH"])


def register_routes(app):

    @app.errorhandler(UpgradeRequired)
    def upgrade_required(e):
        return jsonify({"error": str(e), "upgrade_required": True, "feature": e.feature,
                        "state": _state().to_dict()}), 402

    @app.errorhandler(NoDocument)
    def no_document(e):
        return jsonify({"error": str(e)}), 409

    @app.route("/")
    def home():
        """Serve the main HTML interface."""
        return render_template_string(HTML_TEMPLATE)

    @app.route("/status", methods=["GET"])
    def status():
        """Get system status."""
        state = _state()
        return jsonify({
            "document_loaded": state.document is not None,
            "mode": state.mode.value,
        })

    @app.route("/api/state", methods=["GET"])
    def get_state():
        return jsonify(_state().to_dict())

    @app.route("/upload", methods=["POST"])
    def upload_pdf():
        """Handle PDF upload."""
        start_time = time.time()
        if "file" not in request.files:
            return jsonify({"error": "No file provided"}), 400

        file = request.files["file"]
        if file.filename == "":
            return jsonify({"error": "No file selected"}), 400

        try:
            document = read_upload(file.filename, file.mimetype, file.read())
        except UploadRejected as e:
            _telemetry("/upload", start_time, "rejected", {"mime_type": file.mimetype})
            return jsonify({"error": str(e), "alert": True}), 400

        state = _state()
        state.load_document(document)
        _telemetry("/upload", start_time, metadata={"pages": document.page_count})
        return jsonify({"success": True, "message": f"Successfully uploaded {document.name}",
                        "state": state.to_dict()})

    @app.route("/api/close", methods=["POST"])
    def close_document():
        """Close the document and forget the saved session."""
        state = _state()
        state.close_document()
        return jsonify(state.to_dict())

    @app.route("/api/mode", methods=["POST"])
    def set_mode():
        data = request.get_json(force=True, silent=True) or {}
        try:
            target = Mode.parse(data.get("mode", ""))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        state = _state()
        state.set_mode(target)
        return jsonify(state.to_dict())

    @app.route("/api/view", methods=["GET"])
    def get_view():
        """Snapshot of the active feature view, generating its content on first access."""
        start_time = time.time()
        view = _state().active_view()
        view.ensure_loaded()
        _telemetry("/api/view", start_time, "error" if view.error else "ok")
        return jsonify(view.snapshot())

    @app.route("/api/view/<action>", methods=["POST"])
    def view_action(action):
        start_time = time.time()
        params = request.get_json(force=True, silent=True) or {}
        view = _state().active_view()
        try:
            result = view.dispatch(action, params)
        except UnknownAction as e:
            return jsonify({"error": str(e)}), 404
        except (TypeError, ValueError, AttributeError) as e:
            return jsonify({"error": f"Invalid parameters for '{action}': {e}"}), 400
        _telemetry(f"/api/view/{action}", start_time, "error" if view.error else "ok")
        body = {"view": view.snapshot()}
        if result is not None:
            body["result"] = result
        return jsonify(body)

    @app.route("/api/chat", methods=["GET"])
    def get_chat():
        return jsonify(_state().active_chat().snapshot())

    @app.route("/api/chat/send", methods=["POST"])
    def chat_send():
        """Send one chat message; failures come back as an error entry in the transcript."""
        start_time = time.time()
        data = request.get_json(force=True, silent=True) or {}
        chat = _state().active_chat()
        try:
            reply = chat.submit(data.get("message", ""))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        except ChatBusy as e:
            return jsonify({"error": str(e)}), 409
        _telemetry("/api/chat/send", start_time, "error" if reply.is_error else "ok",
                   {"messages": len(chat.messages)})
        return jsonify(chat.snapshot())

    @app.route("/api/chat/retry", methods=["POST"])
    def chat_retry():
        data = request.get_json(force=True, silent=True) or {}
        chat = _state().active_chat()
        try:
            chat.retry_with_edit(int(data.get("index", -1)))
        except (TypeError, ValueError):
            return jsonify({"error": "index must be an integer"}), 400
        return jsonify(chat.snapshot())

    @app.route("/api/chat/reset", methods=["POST"])
    def chat_reset():
        chat = _state().active_chat()
        try:
            chat.reset()
        except ChatBusy as e:
            return jsonify({"error": str(e)}), 409
        return jsonify(chat.snapshot())

    @app.route("/api/chat/restore", methods=["POST"])
    def chat_restore():
        chat = _state().active_chat()
        try:
            restored = chat.restore_history()
        except ChatBusy as e:
            return jsonify({"error": str(e)}), 409
        if not restored:
            return jsonify({"error": "No saved conversation to restore."}), 404
        return jsonify(chat.snapshot())

    @app.route("/api/chat/dismiss", methods=["POST"])
    def chat_dismiss():
        chat = _state().active_chat()
        chat.dismiss_restore()
        return jsonify(chat.snapshot())

    @app.route("/api/upgrade/request", methods=["POST"])
    def upgrade_request():
        state = _state()
        state.gate.request_upgrade()
        return jsonify(state.to_dict())

    @app.route("/api/upgrade/accept", methods=["POST"])
    def upgrade_accept():
        # No payment provider: accepting the offer is enough
        state = _state()
        state.gate.accept_upgrade()
        return jsonify(state.to_dict())

    @app.route("/api/upgrade/close", methods=["POST"])
    def upgrade_close():
        state = _state()
        state.gate.close()
        return jsonify(state.to_dict())

    @app.route("/api/theme", methods=["POST"])
    def toggle_theme():
        state = _state()
        state.toggle_theme()
        return jsonify(state.to_dict())


HTML_TEMPLATE = """
<!DOCTYPE html>
<html>
<head>
    <title>StudyGenius - Study any PDF</title>
    <style>
        :root {
            --bg: #0a0a0a;
            --card: #1a1a1a;
            --accent: #b8bcc8;
            --text: #f2f4ff;
            --muted: #a0a0a0;
            --border: rgba(255, 255, 255, 0.08);
            --error-bg: rgba(255, 99, 132, 0.12);
            --error-text: #ff708d;
        }
        body.light { --bg: #f8fafc; --card: #ffffff; --text: #1e293b; --muted: #64748b; --border: #e2e8f0; }
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: 'Inter', -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
            background: var(--bg);
            color: var(--text);
            min-height: 100vh;
            display: flex;
        }
        aside { width: 240px; padding: 20px; border-right: 1px solid var(--border); }
        main { flex: 1; padding: 32px; overflow-y: auto; height: 100vh; }
        .nav-btn, .btn {
            display: block; width: 100%; text-align: left; margin-bottom: 6px;
            padding: 10px 14px; border-radius: 10px; border: 1px solid var(--border);
            background: var(--card); color: var(--muted); cursor: pointer;
        }
        .nav-btn.active { color: var(--text); border-color: var(--accent); }
        .card { background: var(--card); border: 1px solid var(--border); border-radius: 16px; padding: 24px; margin-bottom: 18px; }
        .upload-zone { border: 2px dashed var(--accent); border-radius: 14px; padding: 42px; text-align: center; cursor: pointer; }
        .msg { margin: 8px 0; padding: 12px 16px; border-radius: 12px; background: var(--card); white-space: pre-wrap; }
        .msg.user { border: 1px solid var(--accent); }
        .msg.error { background: var(--error-bg); color: var(--error-text); }
        .error { background: var(--error-bg); color: var(--error-text); padding: 15px; border-radius: 12px; margin-top: 18px; }
        input[type=text] { width: 100%; padding: 14px; border-radius: 12px; border: 1px solid var(--border); background: var(--card); color: var(--text); }
        pre { white-space: pre-wrap; }
        .hidden { display: none; }
    </style>
</head>
<body>
    <aside id="sidebar" class="hidden">
        <h2>StudyGenius</h2>
        <div id="nav"></div>
        <button class="btn" id="upgradeBtn" onclick="post('/api/upgrade/request').then(render)">Go Premium</button>
        <button class="btn" onclick="post('/api/theme').then(render)">Toggle theme</button>
        <button class="btn" onclick="closeDocument()">Change file</button>
    </aside>
    <main>
        <div id="upload" class="card hidden">
            <div class="upload-zone" onclick="document.getElementById('fileInput').click()">
                <p>Click to upload a PDF</p>
                <input type="file" id="fileInput" accept="application/pdf" class="hidden">
            </div>
        </div>
        <div id="upgradeModal" class="card hidden">
            <h2>Upgrade to Pro</h2>
            <p>Unlock export, long summaries and larger quizzes.</p>
            <button class="btn" onclick="post('/api/upgrade/accept').then(render)">Upgrade</button>
            <button class="btn" onclick="post('/api/upgrade/close').then(render)">Not now</button>
        </div>
        <div id="content"></div>
    </main>
    <script>
        const MODES = ['DASHBOARD', 'HIGHLIGHTS', 'MINDMAP', 'QUOTES', 'STRATEGIC', 'CHAT', 'QUIZ',
                       'FLASHCARDS', 'GUIDE', 'FAQ', 'METHODOLOGY'];

        async function post(url, body) {
            const res = await fetch(url, {
                method: 'POST',
                headers: {'Content-Type': 'application/json'},
                body: JSON.stringify(body || {})
            });
            const data = await res.json();
            if (!res.ok && data.error && !data.upgrade_required) alert(data.error);
            return data.state || data;
        }

        function esc(text) {
            const div = document.createElement('div');
            div.textContent = text == null ? '' : String(text);
            return div.innerHTML;
        }

        async function render() {
            const state = await (await fetch('/api/state')).json();
            document.body.className = state.theme;
            document.getElementById('upload').classList.toggle('hidden', state.mode !== 'UPLOAD');
            document.getElementById('sidebar').classList.toggle('hidden', !state.document);
            document.getElementById('upgradeModal').classList.toggle('hidden', !state.upgrade_prompt_open);
            document.getElementById('upgradeBtn').classList.toggle('hidden', state.is_premium);
            document.getElementById('nav').innerHTML = MODES.map(m =>
                `<button class="nav-btn ${m === state.mode ? 'active' : ''}" onclick="setMode('${m}')">${m}</button>`
            ).join('');
            const content = document.getElementById('content');
            if (!state.document || state.mode === 'UPLOAD') { content.innerHTML = ''; return; }
            if (state.mode === 'DASHBOARD') {
                content.innerHTML = `<div class="card"><h2>${esc(state.document.name)}</h2>
                    <p>${state.description_pending ? 'Analysing the document...' : esc(state.description)}</p></div>`;
                if (state.description_pending) setTimeout(render, 1500);
                return;
            }
            if (state.mode === 'CHAT') return renderChat(await (await fetch('/api/chat')).json());
            content.innerHTML = '<div class="card">Generating...</div>';
            const view = await (await fetch('/api/view')).json();
            content.innerHTML = `<div class="card">${view.error ? `<div class="error">${esc(view.error)}</div>` : ''}
                <pre>${esc(JSON.stringify(view, null, 2))}</pre></div>`;
        }

        function renderChat(chat) {
            const content = document.getElementById('content');
            const banner = chat.show_restore_banner
                ? `<div class="card">A previous conversation was saved.
                     <button class="btn" onclick="post('/api/chat/restore').then(renderChat)">Restore</button>
                     <button class="btn" onclick="post('/api/chat/dismiss').then(renderChat)">Ignore</button></div>` : '';
            const messages = chat.messages.map((m, i) => `<div class="msg ${m.role} ${m.is_error ? 'error' : ''}">${esc(m.text)}
                ${m.is_error ? `<button class="btn" onclick="post('/api/chat/retry', {index: ${i}}).then(renderChat)">Edit and resend</button>
                <button class="btn" onclick="post('/api/chat/reset').then(renderChat)">New conversation</button>` : ''}</div>`).join('');
            const suggestions = chat.suggestions.map(s =>
                `<button class="btn" onclick="sendChat(${esc(JSON.stringify(s))})">${esc(s)}</button>`).join('');
            content.innerHTML = banner + messages + suggestions +
                `<input type="text" id="chatInput" value="${esc(chat.draft)}" placeholder="Ask a question...">
                 <button class="btn" ${chat.can_submit ? '' : 'disabled'} onclick="sendChat()">Send</button>`;
        }

        async function sendChat(text) {
            const message = text || document.getElementById('chatInput').value;
            renderChat(await post('/api/chat/send', {message}));
        }

        async function setMode(mode) {
            await post('/api/mode', {mode});
            render();
        }

        async function closeDocument() {
            if (confirm('Close this document and return to the start screen?')) {
                await post('/api/close');
                render();
            }
        }

        document.getElementById('fileInput').addEventListener('change', async (e) => {
            const file = e.target.files[0];
            if (!file) return;
            const formData = new FormData();
            formData.append('file', file);
            const res = await fetch('/upload', {method: 'POST', body: formData});
            const data = await res.json();
            if (!res.ok) alert(data.error);
            render();
        });

        render();
    </script>
</body>
</html>
"""


if __name__ == "__main__":
    create_app().run()
