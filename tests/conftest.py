"""Test configuration and fixtures for webbyt tests."""

import json
import os
import re
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import pexpect

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import webbyt


ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def chapter_text(chapter, count=30):
    """COUNT one-line paragraphs, each unique within the book."""
    return "\n".join("Line {}-{} of the book".format(chapter, n) for n in range(count))


class MemorySource:
    """In-memory content source recording every chapter request."""

    def __init__(self, texts, titles=None):
        self.texts = list(texts)
        self.titles = titles or ["Chapter {}".format(n + 1) for n in range(len(self.texts))]
        self.requests = []
        self.fail = set()
        self.fail_toc = False

    def fetch_toc(self, book_id):
        if self.fail_toc:
            raise webbyt.ApiError("toc unavailable", 500)
        return [webbyt.Chapter(n, "c{}".format(n), title) for n, title in enumerate(self.titles)]

    def fetch_chapter_text(self, book_id, chapter):
        self.requests.append(chapter)
        if chapter in self.fail:
            raise webbyt.ApiError("chapter unavailable", 500)
        return self.texts[chapter]


class MemoryPositions:
    def __init__(self, position=None, error=None):
        self.position = position
        self.error = error
        self.fail_save = False
        self.saved = []

    def load_position(self, book_id):
        if self.error is not None:
            raise self.error
        return self.position

    def save_position(self, book_id, chapter, fraction):
        if self.fail_save:
            raise webbyt.ApiError("server went away")
        self.saved.append((book_id, chapter, fraction))


def run(session, tasks):
    """Run TASKS in order on the calling thread, feeding results back."""
    for task in tasks:
        msg = task.func(*task.args)
        if msg is not None and not task.detached:
            run(session, session.update(msg))


@pytest.fixture
def book():
    return webbyt.Book("b1", "Test Book", "Test Author")


@pytest.fixture
def source():
    return MemorySource([chapter_text(n) for n in range(3)])


@pytest.fixture
def positions():
    return MemoryPositions()


@pytest.fixture
def config(tmp_path):
    return webbyt.Config(str(tmp_path / "config.json"))


@pytest.fixture
def session(book, source, positions, config):
    """Session opened at the start of the first chapter."""
    session = webbyt.ReadingSession(book, source, positions, config)
    run(session, session.open())
    return session


class ApiHandler(BaseHTTPRequestHandler):
    """Just enough of the webby server API for the client and the CLI."""

    def log_message(self, format, *args):
        pass

    def _send(self, status, payload):
        body = json.dumps(payload).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _body(self):
        length = int(self.headers.get("Content-Length") or 0)
        return json.loads(self.rfile.read(length) or b"{}")

    def do_GET(self):
        state = self.server.state
        state["authorization"] = self.headers.get("Authorization")
        path = self.path.split("?")[0]
        if path == "/api/books":
            self._send(200, {"books": [b for b in state["books"]]})
            return
        m = re.match(r"/api/books/([^/]+)(?:/(toc|position|text/(\d+)))?$", path)
        if m is None or m.group(1) not in state["content"]:
            self._send(404, {"error": "not found"})
            return
        book_id, what, chapter = m.group(1), m.group(2), m.group(3)
        chapters = state["content"][book_id]
        if what is None:
            self._send(200, [b for b in state["books"] if b["id"] == book_id][0])
        elif what == "toc":
            self._send(200, {"chapters": [{"index": n, "id": "c{}".format(n), "title": title}
                                          for n, (title, _) in enumerate(chapters)]})
        elif what == "position":
            if book_id not in state["positions"]:
                self._send(404, {"error": "no position"})
            else:
                chapter, fraction = state["positions"][book_id]
                self._send(200, {"position": {"chapter": chapter, "position": fraction}})
        elif int(chapter) < len(chapters):
            self._send(200, {"content": chapters[int(chapter)][1]})
        else:
            self._send(404, {"error": "no such chapter"})

    def do_POST(self):
        state = self.server.state
        body = self._body()
        if self.path == "/api/auth/login":
            if body.get("password") == "secret":
                self._send(200, {"token": "token-" + body.get("username", "")})
            else:
                self._send(401, {"error": "invalid credentials"})
            return
        m = re.match(r"/api/books/([^/]+)/position$", self.path)
        if m is None:
            self._send(404, {"error": "not found"})
            return
        state["saved"].append((m.group(1), int(body["chapter"]), body["position"]))
        state["positions"][m.group(1)] = (body["chapter"], body["position"])
        self._send(200, {})


@pytest.fixture
def api_server():
    """Local API server with two books; yields (url, state)."""
    state = {
        "books": [
            {"id": "b1", "title": "Aardvark Handbook", "author": "Ann Author"},
            {"id": "b2", "title": "Zebra Field Guide", "author": "Zed Writer"},
        ],
        "content": {
            "b1": [("Getting Started", "Aardvarks dig burrows.\n\nThey eat ants."),
                   ("Habitat", "Savanna and woodland.")],
            "b2": [("Stripes", "Every zebra is different.")],
        },
        "positions": {},
        "saved": [],
        "authorization": None,
    }
    server = ThreadingHTTPServer(("127.0.0.1", 0), ApiHandler)
    server.state = state
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield "http://127.0.0.1:{}".format(server.server_address[1]), state

    server.shutdown()
    server.server_close()


@pytest.fixture
def cli_env(tmp_path, api_server):
    """Environment for running webbyt against the local server."""
    url, _ = api_server
    env = dict(os.environ)
    for name in ("WEBBYT_TOKEN", "COLUMNS", "LINES"):
        env.pop(name, None)
    env.update(HOME=str(tmp_path), TERM="xterm", WEBBYT_SERVER=url)
    return env


@pytest.fixture
def webbyt_process(cli_env):
    """Start a webbyt reader on the first library book."""
    proc = pexpect.spawn(sys.executable, [os.path.join(ROOT, "webbyt.py"), "1"],
                         env=cli_env, cwd=ROOT, timeout=10, dimensions=(24, 80),
                         encoding="utf-8")

    yield proc

    if proc.isalive():
        proc.terminate(force=True)
