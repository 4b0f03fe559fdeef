#!/usr/bin/env python3
"""\
Usages:
    webbyt               read last opened book
    webbyt BOOKID        read book with id BOOKID
    webbyt NUMBER        read book from library with associated NUMBER
    webbyt STRINGS       read book whose title best matches STRINGS

Options:
    -l              print library
    -d              dump book as plain text
    -s, --server    use and remember server URL (e.g. -s http://host:8080)
    --login USER    log in as USER and remember the token
    --logout        forget the stored token
    -h, --help      print short, long help
    -v, --version   print version
    --clean         reset to fresh state (delete settings and bookmarks)
    --debug         write a debug log next to the config file

Key Binding:
    Scroll down      : j         DOWN
    Scroll up        : k         UP
    Half page down   : ^D        PGDN
    Half page up     : ^U        PGUP
    Page down        : SPC
    Beginning        : g         HOME
    End              : G         END
    Next chapter     : l         n
    Prev chapter     : p         h
    ToC              : t
    Search           : /
    Next Occurrence  : n
    Prev Occurrence  : N
    Clear search     : ESC
    Bigger text      : +         =
    Smaller text     : -         _
    Reset text size  : 0
    Save bookmark    : B
    Bookmarks        : b
    Continuous mode  : c
    Switch theme     : T
    Quit             : q
"""


__version__ = "0.4.0"
__build_time__ = "2026-10-18 09:12:40"
__license__ = "MIT"
__author__ = "webbyt contributors"
__url__ = "https://github.com/webbyt/webbyt"


import bisect
import curses
import datetime
import getpass
import json
import logging
import os
import queue
import re
import shutil
import sys
import threading
from collections import namedtuple
from difflib import SequenceMatcher as SM

import requests


logger = logging.getLogger("webbyt")
logger.addHandler(logging.NullHandler())


# key bindings
# keys are names, curses codes are translated by read_key()
SCROLL_DOWN = {"j", "down"}
SCROLL_UP = {"k", "up"}
HALF_PAGE_DOWN = {"ctrl+d", "pgdown"}
HALF_PAGE_UP = {"ctrl+u", "pgup"}
PAGE_DOWN = {" "}
CH_HOME = {"g", "home"}
CH_END = {"G", "end"}
NEXT = {"n"}
CH_NEXT = {"l"}
CH_PREV = {"p", "h"}
TOC = {"t"}
SEARCH = {"/"}
PREV_MATCH = {"N"}
ESCAPE = {"esc"}
SCALE_UP = {"+", "="}
SCALE_DOWN = {"-", "_"}
SCALE_RESET = {"0"}
SAVE_BOOKMARK = {"B"}
BOOKMARKS = {"b"}
CONTINUOUS = {"c"}
THEME_SWITCH = {"T"}
QUIT = {"q"}
SELECT = {"enter"}
DELETE = {"d", "x"}


DEFAULT_SERVER_URL = "http://localhost:8080"
DEFAULT_THEME = "dark"

DEFAULT_TEXT_SCALE = 1.0
MIN_TEXT_SCALE = 0.5
MAX_TEXT_SCALE = 2.0
TEXT_SCALE_STEP = 0.1

MIN_WRAP_WIDTH = 20
PAGE_PADDING = 4  # columns left free around the text
CHROME_LINES = 5  # header, footer and the blank lines around content
MAX_RECENTLY_READ = 10

MIN_COLS = 40
MIN_ROWS = 10

CHAPTER_HEADER = "━━━ {} ━━━"


# reading modes and overlays
NORMAL = "normal"
TABLE_OF_CONTENTS = "toc"
BOOKMARK_LIST = "bookmarks"
SEARCH_INPUT = "search"


# =============================================================================
# ERRORS
# =============================================================================

class WebbyError(Exception):
    """Base class for every error webbyt raises on purpose."""


class ApiError(WebbyError):
    """The server could not be reached or answered with an error."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class ContentFetchError(WebbyError):
    """Chapter text or the table of contents could not be fetched."""


class PositionLoadError(WebbyError):
    pass


class PositionSaveError(WebbyError):
    pass


class ConfigError(WebbyError):
    pass


# =============================================================================
# RECORDS AND MESSAGES
# =============================================================================

Book = namedtuple("Book", "id title author")
Chapter = namedtuple("Chapter", "index id title")
Bookmark = namedtuple("Bookmark", "id chapter fraction label")

Match = namedtuple("Match", "line start end")
Boundary = namedtuple("Boundary", "chapter first_line")

VisibleLine = namedtuple("VisibleLine", "text highlighted current spans")
HeaderMetrics = namedtuple(
    "HeaderMetrics",
    "book_title chapter_title chapter_index chapter_count chapter_progress book_progress")

# Everything the session reacts to. Loads carry the serial of the request
# that produced them so superseded results can be recognised.
TocLoaded = namedtuple("TocLoaded", "chapters error")
PositionLoaded = namedtuple("PositionLoaded", "position error")
ChapterLoaded = namedtuple("ChapterLoaded", "serial chapter content error")
AllChaptersLoaded = namedtuple("AllChaptersLoaded", "serial chapters error")
KeyPressed = namedtuple("KeyPressed", "key")
Resized = namedtuple("Resized", "width height")

# A side effect requested by the session. FUNC(*ARGS) runs off the event
# loop; unless DETACHED its return value is fed back as a message.
Task = namedtuple("Task", "func args detached")


# =============================================================================
# LINE WRAPPER
# =============================================================================

def wrap_text(text, width):
    """Greedy word wrap of TEXT into lines of at most WIDTH columns.

    Each newline separated paragraph is wrapped on its own and an empty or
    all-whitespace paragraph becomes exactly one empty line, so blank line
    separators survive unchanged. Words are never split: a word longer than
    WIDTH gets a line of its own and overflows it.
    """
    lines = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = words[0]
        for word in words[1:]:
            if len(current) + 1 + len(word) <= width:
                current += " " + word
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


def wrap_width(cols, scale):
    """Column count to wrap at for a terminal COLS wide at text SCALE."""
    base = max(1, cols - PAGE_PADDING)
    width = int(base / scale)
    if width < MIN_WRAP_WIDTH:
        width = MIN_WRAP_WIDTH
    if width > base:
        width = base
    return width


def visible_line_count(rows):
    return max(1, rows - CHROME_LINES)


# =============================================================================
# POSITION CODEC
# =============================================================================

def to_fraction(offset, visible, total):
    """Reading position in [0, 1] of a viewport starting at line OFFSET.

    A viewport that already shows the last line counts as finished (1.0).
    """
    if total <= 0:
        return 0.0
    if offset + visible >= total:
        return 1.0
    return offset / total


def from_fraction(fraction, total):
    return int(fraction * total)


def clamp_offset(offset, visible, total):
    return max(0, min(offset, total - visible))


def pgend(total, visible):
    if total - visible >= 0:
        return total - visible
    else:
        return 0


# =============================================================================
# SEARCH INDEX
# =============================================================================

def find_matches(lines, query):
    """Case-insensitive occurrences of QUERY in LINES, in reading order.

    After a hit the scan resumes one character past the start of the hit,
    so overlapping occurrences ("aa" in "aaa") are all reported.
    """
    if not query:
        return []
    needle = query.lower()
    matches = []
    for n, line in enumerate(lines):
        haystack = line.lower()
        start = haystack.find(needle)
        while start != -1:
            matches.append(Match(n, start, start + len(query)))
            start = haystack.find(needle, start + 1)
    return matches


def follow_line(offset, visible, line):
    """Viewport offset that brings LINE into view with minimal movement."""
    if line < offset:
        return line
    if line >= offset + visible:
        return line - visible + 1
    return offset


class SearchIndex:
    """Matches of one query against one line sequence plus a cyclic cursor."""

    def __init__(self, lines, query):
        self.query = query
        self.matches = find_matches(lines, query)
        self.current = 0 if self.matches else -1
        self._by_line = {}
        for n, match in enumerate(self.matches):
            self._by_line.setdefault(match.line, []).append(n)

    def __len__(self):
        return len(self.matches)

    def current_match(self):
        if self.current < 0:
            return None
        return self.matches[self.current]

    def next(self):
        if not self.matches:
            return None
        self.current = (self.current + 1) % len(self.matches)
        return self.matches[self.current]

    def prev(self):
        if not self.matches:
            return None
        self.current = (self.current - 1 + len(self.matches)) % len(self.matches)
        return self.matches[self.current]

    def on_line(self, line):
        """(start, end, is_current) for every match on LINE."""
        return [(self.matches[n].start, self.matches[n].end, n == self.current)
                for n in self._by_line.get(line, [])]


# =============================================================================
# CHAPTER STITCHER
# =============================================================================

def chapter_heading(title, index):
    return CHAPTER_HEADER.format(title or "Chapter {}".format(index + 1))


def stitch(chapters, width, titles=None):
    """Wrap (index, text) CHAPTERS into one line sequence.

    Every chapter starts with a blank line, its heading and another blank
    line. Returns the lines and the boundary table recording the first line
    of each chapter.
    """
    titles = titles or {}
    lines = []
    boundaries = []
    for index, text in chapters:
        boundaries.append(Boundary(index, len(lines)))
        lines += ["", chapter_heading(titles.get(index, ""), index), ""]
        lines += wrap_text(text, width)
    if not lines:
        lines = [""]
    return lines, boundaries


def chapter_at(boundaries, line):
    """Chapter owning LINE: the last boundary starting at or before it."""
    if not boundaries:
        return 0
    starts = [b.first_line for b in boundaries]
    n = bisect.bisect_right(starts, line) - 1
    return boundaries[max(n, 0)].chapter


def chapter_start(boundaries, chapter):
    for boundary in boundaries:
        if boundary.chapter == chapter:
            return boundary.first_line
    return 0


def chapter_span(boundaries, chapter, total):
    """(first, end) line range of CHAPTER, END exclusive."""
    for n, boundary in enumerate(boundaries):
        if boundary.chapter == chapter:
            if n + 1 < len(boundaries):
                return boundary.first_line, boundaries[n + 1].first_line
            return boundary.first_line, total
    return 0, total


# =============================================================================
# BACKGROUND TASKS
# =============================================================================

def fetch_toc(source, book_id):
    try:
        return TocLoaded(list(source.fetch_toc(book_id)), None)
    except WebbyError as e:
        return TocLoaded([], ContentFetchError("table of contents: {}".format(e)))


def fetch_chapter(source, book_id, serial, chapter):
    try:
        content = source.fetch_chapter_text(book_id, chapter)
    except WebbyError as e:
        return ChapterLoaded(serial, chapter, None,
                             ContentFetchError("chapter {}: {}".format(chapter + 1, e)))
    return ChapterLoaded(serial, chapter, content, None)


def fetch_all_chapters(source, book_id, serial, indices):
    # one request at a time; the list order is the reading order
    chapters = []
    for index in indices:
        try:
            chapters.append((index, source.fetch_chapter_text(book_id, index)))
        except WebbyError as e:
            return AllChaptersLoaded(serial, [],
                                     ContentFetchError("chapter {}: {}".format(index + 1, e)))
    return AllChaptersLoaded(serial, chapters, None)


def load_position(store, book_id):
    try:
        return PositionLoaded(store.load_position(book_id), None)
    except WebbyError as e:
        return PositionLoaded(None, PositionLoadError(str(e)))


def save_position(store, book_id, chapter, fraction):
    try:
        store.save_position(book_id, chapter, fraction)
    except WebbyError as e:
        logger.warning("could not save position of %s: %s", book_id, e)
    else:
        logger.debug("saved position of %s: chapter %d at %.3f", book_id, chapter, fraction)


class TaskRunner:
    """Runs session tasks on threads and queues their result messages.

    Tasks that report back run on daemon threads. Detached tasks run on
    ordinary threads so that the interpreter waits for them on exit.
    """

    def __init__(self):
        self.messages = queue.Queue()

    def submit(self, tasks):
        for task in tasks:
            thread = threading.Thread(target=self._run, args=(task,), daemon=not task.detached)
            thread.start()

    def _run(self, task):
        msg = task.func(*task.args)
        if msg is not None and not task.detached:
            self.messages.put(msg)

    def pending(self):
        while True:
            try:
                yield self.messages.get_nowait()
            except queue.Empty:
                return


# =============================================================================
# READING SESSION
# =============================================================================

class ReadingSession:
    """Everything the reader knows about one open book.

    The session never talks to the network or the screen itself. Handlers
    return lists of Task records for the host to run; results come back
    through update(). SOURCE provides fetch_toc/fetch_chapter_text,
    POSITIONS provides load_position/save_position and BOOKMARKS provides
    list_bookmarks/add_bookmark/delete_bookmark.
    """

    def __init__(self, book, source, positions, bookmarks,
                 text_scale=DEFAULT_TEXT_SCALE, width=80, height=24):
        self.book = book
        self.source = source
        self.positions = positions
        self.bookmarks = bookmarks

        self.text_scale = min(max(text_scale, MIN_TEXT_SCALE), MAX_TEXT_SCALE)
        self.width = width
        self.height = height

        self.chapters = []
        self.chapter = 0
        self.continuous = False
        self.overlay = NORMAL

        self.content = None
        self.lines = [""]
        self.offset = 0
        self.boundaries = []
        self._texts = []
        # chapter shown in continuous mode until the reader scrolls away
        self._pinned = None

        self.search = None
        self.search_input = ""
        self.pending_position = None

        self.loading = False
        self.error = None
        self.status = ""
        self.toc_cursor = 0
        self.bookmark_cursor = 0
        self.bookmark_items = []
        self.finished = False

        self._serial = 0
        self._expected = None
        self._toc_ready = False
        self._position_ready = False
        self._saved_position = None
        self._started = False
        self._closed = False

        self._dispatch = {
            TocLoaded: self._on_toc_loaded,
            PositionLoaded: self._on_position_loaded,
            ChapterLoaded: self._on_chapter_loaded,
            AllChaptersLoaded: self._on_all_chapters_loaded,
            KeyPressed: lambda msg: self.handle_key(msg.key),
            Resized: lambda msg: self.set_viewport_size(msg.width, msg.height),
        }

    # -- lifecycle ------------------------------------------------------------

    def open(self):
        """Tasks that fetch the table of contents and the saved position."""
        self.loading = True
        return [
            Task(fetch_toc, (self.source, self.book.id), False),
            Task(load_position, (self.positions, self.book.id), False),
        ]

    def close(self):
        """Tasks to run when the reader is left. Only the first call saves."""
        if self._closed:
            return []
        self._closed = True
        self.finished = True
        if not self.has_content():
            logger.debug("nothing was displayed for %s, position not saved", self.book.id)
            return []
        return [self._save_task()]

    def update(self, msg):
        handler = self._dispatch.get(type(msg))
        if handler is None:
            raise TypeError("unexpected message {!r}".format(msg))
        return handler(msg) or []

    def has_content(self):
        return self.content is not None or bool(self._texts)

    # -- completions ----------------------------------------------------------

    def _on_toc_loaded(self, msg):
        self._toc_ready = True
        if msg.error is None and not msg.chapters:
            msg = msg._replace(error=ContentFetchError("book has no readable content"))
        if msg.error is not None:
            logger.error("loading %s: %s", self.book.id, msg.error)
            self.error = msg.error
            self.loading = False
            return []
        self.chapters = list(msg.chapters)
        return self._start_reading()

    def _on_position_loaded(self, msg):
        self._position_ready = True
        if msg.error is not None:
            logger.warning("no saved position for %s: %s", self.book.id, msg.error)
        else:
            self._saved_position = msg.position
        return self._start_reading()

    def _start_reading(self):
        if self._started or not (self._toc_ready and self._position_ready) or not self.chapters:
            return []
        self._started = True
        if self._saved_position is not None:
            chapter, fraction = self._saved_position
            if 0 <= chapter < len(self.chapters):
                self.chapter = chapter
                self.pending_position = fraction
            else:
                logger.warning("saved chapter %d is not in %s", chapter, self.book.id)
        return [self._load_chapter(self.chapter)]

    def _load_chapter(self, chapter):
        self._serial += 1
        self._expected = (self._serial, chapter)
        self.loading = True
        return Task(fetch_chapter, (self.source, self.book.id, self._serial, chapter), False)

    def _on_chapter_loaded(self, msg):
        if self._expected != (msg.serial, msg.chapter):
            logger.debug("dropping stale chapter %d (request %d)", msg.chapter, msg.serial)
            return []
        self._expected = None
        self.loading = False
        pending, self.pending_position = self.pending_position, None
        if msg.error is not None:
            logger.error("loading %s: %s", self.book.id, msg.error)
            self.error = msg.error
            return []
        self.error = None
        if self.continuous:
            # back to paged mode now that the chapter is here
            self.continuous = False
            self._texts = []
            self.boundaries = []
            self._pinned = None
        self.content = msg.content
        self.chapter = msg.chapter
        self._rebuild()
        self.offset = 0
        if pending is not None:
            self.offset = from_fraction(pending, len(self.lines))
        self._clamp()
        return []

    def _on_all_chapters_loaded(self, msg):
        if self._expected != (msg.serial, None):
            logger.debug("dropping stale continuous load (request %d)", msg.serial)
            return []
        self._expected = None
        self.loading = False
        if msg.error is not None:
            logger.error("loading %s: %s", self.book.id, msg.error)
            self.error = msg.error
            return []
        self.error = None
        self.continuous = True
        self._texts = list(msg.chapters)
        self.content = None
        self._rebuild()
        self.seek(chapter_start(self.boundaries, self.chapter))
        self._pinned = self.chapter
        return []

    # -- content and viewport -------------------------------------------------

    @property
    def visible(self):
        return visible_line_count(self.height)

    def _rebuild(self):
        width = wrap_width(self.width, self.text_scale)
        if self.continuous:
            titles = {n: c.title for n, c in enumerate(self.chapters)}
            self.lines, self.boundaries = stitch(self._texts, width, titles)
        elif self.content is not None:
            self.lines = wrap_text(self.content, width)
        self.clear_search()

    def _clamp(self):
        self.offset = clamp_offset(self.offset, self.visible, len(self.lines))

    def scroll(self, delta):
        self.seek(self.offset + delta)

    def seek(self, line):
        self.offset = line
        self._clamp()
        self._pinned = None

    def set_viewport_size(self, width, height):
        old_width = wrap_width(self.width, self.text_scale)
        self.width = width
        self.height = height
        if self.has_content() and wrap_width(width, self.text_scale) != old_width:
            self._rebuild()
        self._clamp()
        return []

    def set_text_scale(self, scale):
        scale = round(min(max(scale, MIN_TEXT_SCALE), MAX_TEXT_SCALE), 2)
        if scale == self.text_scale:
            return
        self.text_scale = scale
        # the raw line offset is kept, only re-clamped
        if self.has_content():
            self._rebuild()
        self._clamp()

    def current_chapter(self):
        if not self.continuous or not self.boundaries:
            return self.chapter
        if self._pinned is not None:
            return self._pinned
        return chapter_at(self.boundaries, self.offset)

    # -- chapters and modes ---------------------------------------------------

    def go_to_chapter(self, chapter):
        if not 0 <= chapter < len(self.chapters):
            return []
        if self.continuous:
            if self.boundaries:
                self.seek(chapter_start(self.boundaries, chapter))
                self._pinned = chapter
            return []
        tasks = []
        if self.content is not None:
            tasks.append(self._save_task())
        self.offset = 0
        self.pending_position = None
        tasks.append(self._load_chapter(chapter))
        return tasks

    def next_chapter(self):
        if self.current_chapter() < len(self.chapters) - 1:
            return self.go_to_chapter(self.current_chapter() + 1)
        return []

    def prev_chapter(self):
        if self.current_chapter() > 0:
            return self.go_to_chapter(self.current_chapter() - 1)
        return []

    def toggle_continuous(self):
        if not self.chapters:
            return []
        self.clear_search()
        self.error = None
        self.pending_position = None
        if self._switching():
            # pressed again before the other mode arrived
            self._expected = None
            self.loading = False
            return []
        if not self.continuous:
            self._serial += 1
            self._expected = (self._serial, None)
            self.loading = True
            indices = list(range(len(self.chapters)))
            return [Task(fetch_all_chapters, (self.source, self.book.id, self._serial, indices), False)]
        return [self._load_chapter(self.current_chapter())]

    def _switching(self):
        """True while the load for a mode switch is in flight.

        The mode flag only flips when that load completes, so until then
        the lines, boundaries and content all belong to the old mode.
        """
        if self._expected is None:
            return False
        return self.continuous or self._expected[1] is None

    # -- progress -------------------------------------------------------------

    def chapter_progress(self):
        if self.continuous and self.boundaries:
            start, end = chapter_span(self.boundaries, self.current_chapter(), len(self.lines))
            return to_fraction(max(0, self.offset - start), self.visible, end - start)
        return to_fraction(self.offset, self.visible, len(self.lines))

    def book_progress(self):
        if not self.chapters:
            return 0.0
        total = len(self.chapters)
        return self.current_chapter() / total + self.chapter_progress() / total

    def _offset_in_chapter(self):
        if self.continuous and self.boundaries:
            start, end = chapter_span(self.boundaries, self.current_chapter(), len(self.lines))
            return max(0, self.offset - start) / max(1, end - start)
        return self.offset / max(1, len(self.lines))

    def _save_task(self):
        return Task(save_position,
                    (self.positions, self.book.id, self.current_chapter(), self.chapter_progress()),
                    True)

    # -- search ---------------------------------------------------------------

    def submit_search(self, query):
        self.search = SearchIndex(self.lines, query)
        self._follow(self.search.current_match())

    def next_match(self):
        if self.search is not None:
            self._follow(self.search.next())

    def prev_match(self):
        if self.search is not None:
            self._follow(self.search.prev())

    def clear_search(self):
        self.search = None
        self.search_input = ""

    def _follow(self, match):
        if match is not None:
            self.seek(follow_line(self.offset, self.visible, match.line))

    # -- bookmarks ------------------------------------------------------------

    def add_bookmark(self):
        chapter = self.current_chapter()
        label = self.chapters[chapter].title if chapter < len(self.chapters) else ""
        try:
            self.bookmarks.add_bookmark(self.book.id, chapter, self._offset_in_chapter(), label,
                                        self.book.title)
        except WebbyError as e:
            logger.warning("could not add bookmark: %s", e)
            self.status = "Failed to add bookmark"
        else:
            self.status = "Bookmark added"

    def open_bookmarks(self):
        try:
            self.bookmark_items = list(self.bookmarks.list_bookmarks(self.book.id))
        except WebbyError as e:
            logger.warning("could not list bookmarks: %s", e)
            self.status = "Failed to load bookmarks"
            return
        self.overlay = BOOKMARK_LIST
        self.bookmark_cursor = 0

    def delete_bookmark(self):
        if not self.bookmark_items:
            return
        bookmark = self.bookmark_items[self.bookmark_cursor]
        try:
            self.bookmarks.delete_bookmark(bookmark.id)
        except WebbyError as e:
            logger.warning("could not delete bookmark %s: %s", bookmark.id, e)
            self.status = "Failed to delete bookmark"
            return
        del self.bookmark_items[self.bookmark_cursor]
        self.bookmark_cursor = min(self.bookmark_cursor, max(0, len(self.bookmark_items) - 1))
        self.status = "Bookmark deleted"

    def jump_to_bookmark(self, bookmark):
        if not 0 <= bookmark.chapter < len(self.chapters):
            self.status = "Bookmark is outside this book"
            return []
        if self.continuous and self.boundaries:
            start, end = chapter_span(self.boundaries, bookmark.chapter, len(self.lines))
            self.seek(start + from_fraction(bookmark.fraction, end - start))
            return []
        task = self._load_chapter(bookmark.chapter)
        self.pending_position = bookmark.fraction
        return [task]

    # -- keys -----------------------------------------------------------------

    def handle_key(self, key):
        """Apply one key press to the state machine, return requested tasks."""
        self.status = ""
        if self.overlay == TABLE_OF_CONTENTS:
            return self._toc_key(key)
        if self.overlay == BOOKMARK_LIST:
            return self._bookmark_key(key)
        if self.overlay == SEARCH_INPUT:
            return self._search_key(key)
        return self._reader_key(key)

    def _reader_key(self, key):
        if key in SCROLL_DOWN:
            self.scroll(1)
        elif key in SCROLL_UP:
            self.scroll(-1)
        elif key in HALF_PAGE_DOWN:
            self.scroll(self.visible // 2)
        elif key in HALF_PAGE_UP:
            self.scroll(-(self.visible // 2))
        elif key in PAGE_DOWN:
            self.scroll(max(1, self.visible - 2))
        elif key in CH_HOME:
            self.seek(0)
        elif key in CH_END:
            self.seek(pgend(len(self.lines), self.visible))
        elif key in NEXT:
            if self.search and self.search.matches:
                self.next_match()
            else:
                return self.next_chapter()
        elif key in CH_NEXT:
            return self.next_chapter()
        elif key in CH_PREV:
            return self.prev_chapter()
        elif key in TOC:
            if self.chapters:
                self.overlay = TABLE_OF_CONTENTS
                self.toc_cursor = self.current_chapter()
        elif key in SEARCH:
            self.overlay = SEARCH_INPUT
            self.search_input = ""
        elif key in PREV_MATCH:
            if self.search and self.search.matches:
                self.prev_match()
        elif key in ESCAPE:
            if self.search is not None:
                self.clear_search()
            else:
                self.error = None
        elif key in SCALE_UP:
            self.set_text_scale(self.text_scale + TEXT_SCALE_STEP)
        elif key in SCALE_DOWN:
            self.set_text_scale(self.text_scale - TEXT_SCALE_STEP)
        elif key in SCALE_RESET:
            self.set_text_scale(DEFAULT_TEXT_SCALE)
        elif key in SAVE_BOOKMARK:
            if self.has_content():
                self.add_bookmark()
        elif key in BOOKMARKS:
            self.open_bookmarks()
        elif key in CONTINUOUS:
            return self.toggle_continuous()
        elif key in QUIT:
            return self.close()
        return []

    def _toc_key(self, key):
        if key in ESCAPE or key in TOC or key in QUIT:
            self.overlay = NORMAL
        elif key in SCROLL_DOWN:
            self.toc_cursor = min(self.toc_cursor + 1, len(self.chapters) - 1)
        elif key in SCROLL_UP:
            self.toc_cursor = max(self.toc_cursor - 1, 0)
        elif key in CH_HOME:
            self.toc_cursor = 0
        elif key in CH_END:
            self.toc_cursor = len(self.chapters) - 1
        elif key in SELECT:
            self.overlay = NORMAL
            return self.go_to_chapter(self.toc_cursor)
        return []

    def _bookmark_key(self, key):
        if key in ESCAPE or key in BOOKMARKS or key in QUIT:
            self.overlay = NORMAL
        elif key in SCROLL_DOWN:
            self.bookmark_cursor = min(self.bookmark_cursor + 1, max(0, len(self.bookmark_items) - 1))
        elif key in SCROLL_UP:
            self.bookmark_cursor = max(self.bookmark_cursor - 1, 0)
        elif key in CH_HOME:
            self.bookmark_cursor = 0
        elif key in CH_END:
            self.bookmark_cursor = max(0, len(self.bookmark_items) - 1)
        elif key in DELETE:
            self.delete_bookmark()
        elif key in SELECT:
            if self.bookmark_items:
                self.overlay = NORMAL
                return self.jump_to_bookmark(self.bookmark_items[self.bookmark_cursor])
        return []

    def _search_key(self, key):
        if key in ESCAPE:
            self.overlay = NORMAL
            self.search_input = ""
        elif key in SELECT:
            self.overlay = NORMAL
            if self.search_input:
                self.submit_search(self.search_input)
        elif key == "backspace":
            self.search_input = self.search_input[:-1]
        elif key == "ctrl+u":
            self.search_input = ""
        elif len(key) == 1 and key.isprintable():
            self.search_input += key
        return []

    # -- views for the presentation layer -------------------------------------

    def visible_lines(self):
        rows = []
        end = min(self.offset + self.visible, len(self.lines))
        for n in range(self.offset, end):
            spans = self.search.on_line(n) if self.search is not None else []
            rows.append(VisibleLine(self.lines[n], bool(spans),
                                    any(current for _, _, current in spans), spans))
        return rows

    def header_metrics(self):
        chapter = self.current_chapter()
        title = self.chapters[chapter].title if 0 <= chapter < len(self.chapters) else ""
        return HeaderMetrics(self.book.title, title, chapter, len(self.chapters),
                             self.chapter_progress(), self.book_progress())


# =============================================================================
# SERVER CLIENT
# =============================================================================

def book_from_json(data):
    return Book(str(data.get("id", "")), data.get("title") or "", data.get("author") or "")


class WebbyClient:
    """Blocking client for the webby server API.

    Serves as the content source and the position store of a reading
    session. Transport failures and error responses raise ApiError.
    """

    def __init__(self, base_url, token=None, timeout=30):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = requests.Session()
        self.http.headers["Content-Type"] = "application/json"
        self.set_token(token)

    def set_token(self, token):
        self.token = token
        if token:
            self.http.headers["Authorization"] = "Bearer " + token
        else:
            self.http.headers.pop("Authorization", None)

    def _request(self, method, path, body=None, params=None):
        url = self.base_url + path
        logger.debug("%s %s", method, url)
        try:
            resp = self.http.request(method, url, json=body, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError("cannot reach {}: {}".format(self.base_url, e)) from e
        if resp.status_code >= 400:
            try:
                message = resp.json()["error"]
            except (ValueError, KeyError, TypeError):
                message = "HTTP {}: {}".format(resp.status_code, resp.text.strip())
            raise ApiError(message, resp.status_code)
        return resp

    def _json(self, method, path, body=None, params=None):
        resp = self._request(method, path, body, params)
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError("invalid response from {}".format(path), resp.status_code) from e

    def login(self, username, password):
        data = self._json("POST", "/api/auth/login", {"username": username, "password": password})
        token = data.get("token")
        if not token:
            raise ApiError("server returned no token")
        self.set_token(token)
        return token

    def list_books(self, search="", page=1, limit=100):
        params = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        data = self._json("GET", "/api/books", params=params)
        return [book_from_json(b) for b in data.get("books") or []]

    def get_book(self, book_id):
        return book_from_json(self._json("GET", "/api/books/" + book_id))

    def fetch_toc(self, book_id):
        data = self._json("GET", "/api/books/{}/toc".format(book_id))
        return [Chapter(c.get("index", n), str(c.get("id", "")), c.get("title") or "")
                for n, c in enumerate(data.get("chapters") or [])]

    def fetch_chapter_text(self, book_id, chapter):
        data = self._json("GET", "/api/books/{}/text/{}".format(book_id, chapter))
        return data.get("content") or ""

    def load_position(self, book_id):
        """(chapter, fraction) saved on the server, None if there is none."""
        try:
            data = self._json("GET", "/api/books/{}/position".format(book_id))
        except ApiError as e:
            if e.status == 404:
                return None
            raise
        position = data.get("position")
        if not position:
            return None
        try:
            return int(position.get("chapter", 0)), float(position.get("position", 0.0))
        except (TypeError, ValueError) as e:
            raise ApiError("malformed position: {}".format(position)) from e

    def save_position(self, book_id, chapter, fraction):
        try:
            self._request("POST", "/api/books/{}/position".format(book_id),
                          {"chapter": str(chapter), "position": fraction})
        except ApiError as e:
            raise PositionSaveError(str(e)) from e


# =============================================================================
# CONFIG AND BOOKMARKS
# =============================================================================

def config_path():
    home = os.getenv("HOME") or os.getenv("USERPROFILE")
    if home is None:
        return os.devnull
    if os.path.isdir(os.path.join(home, ".config")):
        return os.path.join(home, ".config", "webbyt", "config.json")
    return os.path.join(home, ".webbyt.json")


class Config:
    """Settings file, doubling as the bookmark store."""

    def __init__(self, path, data=None):
        self.path = path
        self.data = data if data is not None else {}

    @classmethod
    def load(cls, path=None):
        path = path or config_path()
        if path == os.devnull or not os.path.exists(path):
            return cls(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError("cannot read {}: {}".format(path, e)) from e
        if not isinstance(data, dict):
            raise ConfigError("{} is not a settings file".format(path))
        return cls(path, data)

    def save(self):
        if self.path == os.devnull:
            return
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self.data, f, indent=2, ensure_ascii=False)
            os.chmod(self.path, 0o600)
        except OSError as e:
            raise ConfigError("cannot write {}: {}".format(self.path, e)) from e

    def server_url(self):
        return os.getenv("WEBBYT_SERVER") or self.data.get("server_url") or DEFAULT_SERVER_URL

    def set_server_url(self, url):
        self.data["server_url"] = url.rstrip("/")
        self.save()

    def token(self):
        return os.getenv("WEBBYT_TOKEN") or self.data.get("token")

    def set_token(self, token, username=None):
        self.data["token"] = token
        if username is not None:
            self.data["username"] = username
        self.save()

    def clear_token(self):
        self.data.pop("token", None)
        self.data.pop("username", None)
        self.save()

    def get_text_scale(self):
        scale = self.data.get("text_scale", DEFAULT_TEXT_SCALE)
        if not isinstance(scale, (int, float)) or not MIN_TEXT_SCALE <= scale <= MAX_TEXT_SCALE:
            return DEFAULT_TEXT_SCALE
        return float(scale)

    def set_text_scale(self, scale):
        self.data["text_scale"] = min(max(scale, MIN_TEXT_SCALE), MAX_TEXT_SCALE)
        self.save()

    def theme_name(self):
        return self.data.get("theme") or DEFAULT_THEME

    def set_theme_name(self, name):
        self.data["theme"] = name
        self.save()

    def recently_read(self):
        return list(self.data.get("recently_read") or [])

    def add_recently_read(self, book_id, title):
        entries = [e for e in self.recently_read() if e.get("book_id") != book_id]
        entries.insert(0, {
            "book_id": book_id,
            "title": title,
            "opened_at": datetime.datetime.now().isoformat(),
        })
        self.data["recently_read"] = entries[:MAX_RECENTLY_READ]
        self.save()

    def list_bookmarks(self, book_id):
        return [Bookmark(b["id"], int(b["chapter"]), float(b["position"]), b.get("label", ""))
                for b in self.data.get("bookmarks") or []
                if b.get("book_id") == book_id]

    def add_bookmark(self, book_id, chapter, fraction, label, book_title=""):
        bookmark_id = datetime.datetime.now().strftime("%Y%m%d%H%M%S.%f")
        self.data.setdefault("bookmarks", []).append({
            "id": bookmark_id,
            "book_id": book_id,
            "book_title": book_title,
            "chapter": chapter,
            "position": fraction,
            "label": label,
            "created": datetime.datetime.now().isoformat(),
        })
        self.save()
        return bookmark_id

    def delete_bookmark(self, bookmark_id):
        self.data["bookmarks"] = [b for b in self.data.get("bookmarks") or []
                                  if b.get("id") != bookmark_id]
        self.save()


# =============================================================================
# THEMES
# =============================================================================

# 256 colour indices; match colours are (fg, bg)
Theme = namedtuple("Theme", "name fg bg accent muted error match current_match")

THEMES = {
    "dark": Theme("dark", 252, 235, 141, 244, 203, (15, 240), (0, 220)),
    "light": Theme("light", 239, 223, 91, 245, 160, (0, 250), (0, 51)),
}

PAIR_TEXT = 1
PAIR_ACCENT = 2
PAIR_MUTED = 3
PAIR_ERROR = 4
PAIR_MATCH = 5
PAIR_CURRENT_MATCH = 6
PAIR_SELECTED = 7


def next_theme(theme):
    names = sorted(THEMES)
    return THEMES[names[(names.index(theme.name) + 1) % len(names)]]


def apply_theme(stdscr, theme):
    """Set up colour pairs for THEME, return curses attributes by role.

    Terminals without 256 colours get a monochrome set of attributes.
    """
    styles = {
        "text": curses.A_NORMAL,
        "accent": curses.A_BOLD,
        "muted": curses.A_DIM,
        "error": curses.A_BOLD,
        "match": curses.A_REVERSE,
        "current_match": curses.A_REVERSE | curses.A_BOLD,
        "selected": curses.A_REVERSE,
    }
    try:
        curses.start_color()
        curses.use_default_colors()
        if curses.COLORS < 256:
            return styles
        curses.init_pair(PAIR_TEXT, theme.fg, theme.bg)
        curses.init_pair(PAIR_ACCENT, theme.accent, theme.bg)
        curses.init_pair(PAIR_MUTED, theme.muted, theme.bg)
        curses.init_pair(PAIR_ERROR, theme.error, theme.bg)
        curses.init_pair(PAIR_MATCH, *theme.match)
        curses.init_pair(PAIR_CURRENT_MATCH, *theme.current_match)
        curses.init_pair(PAIR_SELECTED, theme.bg, theme.accent)
    except curses.error:
        return styles
    stdscr.bkgd(" ", curses.color_pair(PAIR_TEXT))
    styles.update(
        text=curses.color_pair(PAIR_TEXT),
        accent=curses.color_pair(PAIR_ACCENT) | curses.A_BOLD,
        muted=curses.color_pair(PAIR_MUTED),
        error=curses.color_pair(PAIR_ERROR) | curses.A_BOLD,
        match=curses.color_pair(PAIR_MATCH),
        current_match=curses.color_pair(PAIR_CURRENT_MATCH) | curses.A_BOLD,
        selected=curses.color_pair(PAIR_SELECTED) | curses.A_BOLD,
    )
    return styles


# =============================================================================
# CURSES PRESENTATION
# =============================================================================

KEY_NAMES = {
    curses.KEY_DOWN: "down",
    curses.KEY_UP: "up",
    curses.KEY_NPAGE: "pgdown",
    curses.KEY_PPAGE: "pgup",
    curses.KEY_RIGHT: "pgdown",
    curses.KEY_LEFT: "pgup",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    curses.KEY_BACKSPACE: "backspace",
    curses.KEY_ENTER: "enter",
    curses.KEY_RESIZE: "resize",
}

CONTROL_KEYS = {
    "\x04": "ctrl+d",
    "\x08": "backspace",
    "\n": "enter",
    "\r": "enter",
    "\x15": "ctrl+u",
    "\x1b": "esc",
    "\x7f": "backspace",
}

PROGRESS_FILLED = "█"
PROGRESS_EMPTY = "░"
PROGRESS_PARTIALS = "▏▎▍▌▋▊▉"


def read_key(stdscr):
    """Next key as a binding name, None on timeout or unknown keys."""
    try:
        ch = stdscr.get_wch()
    except curses.error:
        return None
    if isinstance(ch, str):
        if ch in CONTROL_KEYS:
            return CONTROL_KEYS[ch]
        return ch if ch.isprintable() else None
    return KEY_NAMES.get(ch)


def truncate_text(text, width):
    if width <= 0:
        return ""
    if len(text) > width:
        return text[:width - 1] + "…"
    return text


def progress_bar(width, progress):
    """Bar of WIDTH cells, eighth-block resolution on the last filled cell."""
    width = max(3, width)
    progress = min(max(progress, 0.0), 1.0)
    filled = progress * width
    full = int(filled)
    bar = PROGRESS_FILLED * full
    if full < width and filled - full > 0:
        partial = min(int((filled - full) * 8), 7)
        if partial > 0:
            bar += PROGRESS_PARTIALS[partial - 1]
            full += 1
    return bar + PROGRESS_EMPTY * (width - full)


def addstr(win, y, x, text, attr=0):
    """addstr clipped to the window; writing the last cell raises in curses."""
    rows, cols = win.getmaxyx()
    if y < 0 or y >= rows or x >= cols:
        return
    try:
        win.addstr(y, x, text[:max(0, cols - x)], attr)
    except curses.error:
        pass


def draw_hints(win, y, x, hints, styles, width):
    """Footer of (key, label) pairs with the keys emphasised."""
    col = x
    for key, label in hints:
        if col + len(key) + len(label) + 1 > x + width:
            break
        addstr(win, y, col, key, styles["accent"])
        addstr(win, y, col + len(key), " " + label, styles["muted"])
        col += len(key) + len(label) + 3


def draw_header(stdscr, metrics, cols, styles):
    title = truncate_text(metrics.book_title, max(10, cols // 3))
    chapter = " Ch {}/{}: {} ".format(metrics.chapter_index + 1, metrics.chapter_count,
                                      truncate_text(metrics.chapter_title, 20))
    left = " " + title + " "
    addstr(stdscr, 0, 0, left, styles["accent"])
    addstr(stdscr, 0, len(left), chapter, styles["muted"])

    right = "Ch:{} Book:{} {}%".format(progress_bar(10, metrics.chapter_progress),
                                       progress_bar(10, metrics.book_progress),
                                       int(metrics.book_progress * 100))
    if len(left) + len(chapter) + len(right) < cols:
        addstr(stdscr, 0, cols - len(right) - 1, right, styles["text"])


def draw_content(stdscr, session, styles, top, x):
    for n, row in enumerate(session.visible_lines()):
        addstr(stdscr, top + n, x, row.text, styles["text"])
        for start, end, current in row.spans:
            attr = styles["current_match"] if current else styles["match"]
            addstr(stdscr, top + n, x + start, row.text[start:end], attr)


def draw_footer(stdscr, session, rows, cols, styles):
    y = rows - 1
    if session.overlay == SEARCH_INPUT:
        addstr(stdscr, y, 0, "/", styles["accent"])
        addstr(stdscr, y, 1, session.search_input + "_", styles["text"])
        addstr(stdscr, y, len(session.search_input) + 4,
               "enter search | esc cancel", styles["muted"])
        return
    if session.status:
        addstr(stdscr, y, 1, session.status, styles["accent"])
        return
    if session.search is not None:
        addstr(stdscr, y, 1, "/" + session.search.query, styles["accent"])
        col = len(session.search.query) + 2
        if session.search.matches:
            info = " [{}/{}]".format(session.search.current + 1, len(session.search))
            addstr(stdscr, y, col, info, styles["text"])
        else:
            info = " [No matches]"
            addstr(stdscr, y, col, info, styles["error"])
        draw_hints(stdscr, y, col + len(info) + 2,
                   [("n/N", "next/prev"), ("esc", "clear")], styles, cols)
        return
    draw_hints(stdscr, y, 1, [
        ("j/k", "scroll"),
        ("t", "toc"),
        ("/", "find"),
        ("b/B", "marks"),
        ("c", "scroll" if session.continuous else "paged"),
        ("+/-", "{:.0f}%".format(session.text_scale * 100)),
        ("q", "quit"),
    ], styles, cols - 2)


def draw_centered(stdscr, y, text, attr, cols):
    text = truncate_text(text, cols - 2)
    addstr(stdscr, y, max(0, (cols - len(text)) // 2), text, attr)


def create_dialog(stdscr, width, height, title="", attr=0):
    """Centred, boxed window on top of STDSCR."""
    rows, cols = stdscr.getmaxyx()
    width = min(width, cols)
    height = min(height, rows)
    dialog = curses.newwin(height, width, (rows - height) // 2, (cols - width) // 2)
    dialog.bkgd(" ", attr)
    dialog.box()
    if title:
        addstr(dialog, 0, 2, " " + title + " ")
    return dialog


def draw_list_dialog(stdscr, title, items, cursor, hints, styles, empty_text=""):
    rows, cols = stdscr.getmaxyx()
    width = min(60, cols - 4)
    height = max(6, min(rows - 2, len(items) + 6))
    dialog = create_dialog(stdscr, width, height, title, styles["text"])

    display = height - 5
    start = max(0, cursor - display + 1)
    if not items:
        addstr(dialog, 2, 2, empty_text, styles["muted"])
    for n in range(start, min(len(items), start + display)):
        text, marked = items[n]
        line = ("▸ " if n == cursor else "  ") + text
        attr = styles["selected"] if n == cursor else (styles["accent"] if marked else styles["text"])
        addstr(dialog, 2 + n - start, 2, truncate_text(line, width - 4), attr)
    draw_hints(dialog, height - 2, 2, hints, styles, width - 4)
    dialog.noutrefresh()


def draw_toc(stdscr, session, styles):
    current = session.current_chapter()
    items = []
    for n, chapter in enumerate(session.chapters):
        text = "{}. {}".format(n + 1, chapter.title or "Chapter {}".format(n + 1))
        if n == current:
            text += " (current)"
        items.append((text, n == current))
    draw_list_dialog(stdscr, "Table of Contents", items, session.toc_cursor,
                     [("j/k", "move"), ("enter", "open"), ("esc", "close")], styles)


def draw_bookmarks(stdscr, session, styles):
    items = []
    for bookmark in session.bookmark_items:
        label = "Ch {}".format(bookmark.chapter + 1)
        if bookmark.label:
            label += ": " + truncate_text(bookmark.label, 20)
        items.append(("{} [{:.0f}%]".format(label, bookmark.fraction * 100), False))
    draw_list_dialog(stdscr, "Bookmarks", items, session.bookmark_cursor,
                     [("enter", "go"), ("d", "delete"), ("esc", "close")], styles,
                     "No bookmarks for this book. Press B to add one.")


def render(stdscr, session, styles):
    """Draw the whole reader screen for the current session state."""
    rows, cols = stdscr.getmaxyx()
    stdscr.erase()
    draw_header(stdscr, session.header_metrics(), cols, styles)

    width = wrap_width(cols, session.text_scale)
    x = max(0, (cols - width) // 2)
    if session.loading:
        draw_centered(stdscr, rows // 2, "Loading...", styles["muted"], cols)
    else:
        draw_content(stdscr, session, styles, 2, x)
    if session.error is not None:
        draw_centered(stdscr, rows // 2, " Error: {} (esc to dismiss) ".format(session.error),
                      styles["error"] | curses.A_REVERSE, cols)
    draw_footer(stdscr, session, rows, cols, styles)
    stdscr.noutrefresh()

    if session.overlay == TABLE_OF_CONTENTS:
        draw_toc(stdscr, session, styles)
    elif session.overlay == BOOKMARK_LIST:
        draw_bookmarks(stdscr, session, styles)
    curses.doupdate()


def reader(stdscr, session, runner, theme):
    """Event loop: feed keys and task results to SESSION until it finishes.

    Returns the theme in use when the reader was left.
    """
    styles = apply_theme(stdscr, theme)
    stdscr.keypad(True)
    stdscr.timeout(100)
    rows, cols = stdscr.getmaxyx()
    session.set_viewport_size(cols, rows)
    runner.submit(session.open())

    while not session.finished:
        for msg in runner.pending():
            runner.submit(session.update(msg))
        render(stdscr, session, styles)

        key = read_key(stdscr)
        if key is None:
            continue
        if key == "resize":
            rows, cols = stdscr.getmaxyx()
            runner.submit(session.update(Resized(cols, rows)))
        elif key in THEME_SWITCH and session.overlay == NORMAL:
            theme = next_theme(theme)
            styles = apply_theme(stdscr, theme)
        else:
            runner.submit(session.update(KeyPressed(key)))
    return theme


def preread(stdscr, client, config, book):
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    stdscr.clear()
    addstr(stdscr, 0, 0, "Loading...")
    stdscr.refresh()

    session = ReadingSession(book, client, client, config, text_scale=config.get_text_scale())
    runner = TaskRunner()
    theme = THEMES.get(config.theme_name(), THEMES[DEFAULT_THEME])
    theme = reader(stdscr, session, runner, theme)

    try:
        config.set_text_scale(session.text_scale)
        config.set_theme_name(theme.name)
    except ConfigError as e:
        logger.warning("settings not saved: %s", e)


# =============================================================================
# COMMAND LINE
# =============================================================================

def setup_logging(path):
    directory = os.path.dirname(path) if path != os.devnull else os.getcwd()
    os.makedirs(directory, exist_ok=True)
    logging.basicConfig(
        filename=os.path.join(directory, "debug.log"),
        level=logging.DEBUG,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def pop_option(args, names):
    """Remove an option and its value from ARGS, return the value."""
    for n, arg in enumerate(args):
        if arg in names:
            if n + 1 >= len(args):
                sys.exit("ERROR: {} needs a value.".format(arg))
            value = args[n + 1]
            del args[n:n + 2]
            return value
    return None


def print_library(books, last_read=None):
    print("Library:")
    dig = len(str(len(books) + 1))
    for n, book in enumerate(books):
        mark = "* " if book.id == last_read else "  "
        author = " - " + book.author if book.author else ""
        print(str(n + 1).rjust(dig) + mark + book.title + author + "  [" + book.id + "]")


def resolve_book(client, config, args):
    """Book named by ARGS: last read, id, library number or fuzzy title."""
    recent = config.recently_read()
    last_read = recent[0]["book_id"] if recent else None
    if not args:
        if last_read is None:
            print(__doc__)
            sys.exit("ERROR: Found no last read book.")
        return client.get_book(last_read)

    books = client.list_books()
    query = " ".join(args)
    for book in books:
        if book.id == query:
            return book
    if len(args) == 1 and re.match(r"[0-9]+$", args[0]) is not None:
        n = int(args[0])
        if 1 <= n <= len(books):
            return books[n - 1]

    val, cand = 0, None
    for book in books:
        match_val = sum([j.size for j in SM(None, book.title.lower(), query.lower()).get_matching_blocks()])
        if match_val > val:
            val, cand = match_val, book
    if cand is None:
        print_library(books, last_read)
        print()
        sys.exit("ERROR: Found no matching book.")
    return cand


def dump_book(client, book, cols):
    chapters = client.fetch_toc(book.id)
    texts = [(n, client.fetch_chapter_text(book.id, n)) for n in range(len(chapters))]
    titles = {n: c.title for n, c in enumerate(chapters)}
    lines, _ = stitch(texts, wrap_width(cols, DEFAULT_TEXT_SCALE), titles)
    for line in lines:
        sys.stdout.buffer.write((line + "\n").encode("utf-8"))


def clean():
    path = config_path()
    if path != os.devnull and os.path.exists(path):
        os.remove(path)
        print("Removed " + path)
        print("\nwebbyt has been reset to a fresh state.")
        print("Settings, login and bookmarks have been removed.")
    else:
        print("No settings found. webbyt is already in a fresh state.")


def main():
    termc, termr = shutil.get_terminal_size()

    args = sys.argv[1:]

    if len({"-h", "--help"} & set(args)) != 0:
        hlp = __doc__.rstrip()
        if "-h" in args:
            hlp = re.search("(\n|.)*(?=\n\nKey)", hlp).group()
        print(hlp)
        sys.exit()

    if len({"-v", "--version", "-V"} & set(args)) != 0:
        print(__version__)
        print(__license__, "License")
        print("Copyright (c) 2026", __author__)
        print(__url__)
        sys.exit()

    if len({"--clean", "--reset"} & set(args)) != 0:
        clean()
        sys.exit()

    path = config_path()
    if "--debug" in args:
        args.remove("--debug")
        setup_logging(path)

    try:
        config = Config.load(path)
    except ConfigError as e:
        sys.exit("ERROR: {}".format(e))

    try:
        server = pop_option(args, {"-s", "--server"})
        if server is not None:
            config.set_server_url(server)

        if "--logout" in args:
            config.clear_token()
            print("Logged out.")
            sys.exit()

        client = WebbyClient(config.server_url(), config.token())

        username = pop_option(args, {"--login"})
        if username is not None:
            token = client.login(username, getpass.getpass("Password: "))
            config.set_token(token, username)
            print("Logged in as " + username + ".")
            sys.exit()

        if "-l" in args:
            recent = config.recently_read()
            print_library(client.list_books(), recent[0]["book_id"] if recent else None)
            sys.exit()

        dump = "-d" in args
        if dump:
            args.remove("-d")

        book = resolve_book(client, config, args)

        if dump:
            dump_book(client, book, termc)
            sys.exit()

        if termc < MIN_COLS or termr < MIN_ROWS:
            sys.exit("ERR: Screen was too small (min {}cols x {}rows).".format(MIN_COLS, MIN_ROWS))
        config.add_recently_read(book.id, book.title)
    except WebbyError as e:
        sys.exit("ERROR: {}".format(e))

    os.environ.setdefault("ESCDELAY", "25")
    curses.wrapper(preread, client, config, book)


if __name__ == "__main__":
    main()
