"""
Root conftest.py for the liveblog test suite.
Shared fixtures: a manual timer scheduler, page and engine factories backed by a
scripted update feed, and an isolated sqlite database.
"""

import os
import tempfile
from typing import Callable, List, Optional
from unittest.mock import patch

import httpx
import pytest

# The server module initialises its database at import time
_fd, _SESSION_DB = tempfile.mkstemp(suffix='.db', prefix='liveblog_test_')
os.close(_fd)
os.environ.setdefault('DATABASE_PATH', _SESSION_DB)

from liveblog.view.bootstrap import LiveblogContext
from liveblog.view.client import UpdateFeedClient
from liveblog.view.page import Page
from liveblog.view.polling import PollingEngine
from liveblog.view.sanitize import HtmlSanitizer
from liveblog.view.scheduler import Scheduler, TimerHandle

REST_URL = 'http://liveblog.test/liveblog/v1/posts/1/updates'

PAGE_HTML = f"""<!DOCTYPE html>
<html><head><title>Match Day Live</title></head>
<body>
<div class="liveblog-container" data-post-id="1" data-rest-url="{REST_URL}">
<div class="liveblog-entry" data-update-id="server-1">Server rendered</div>
</div>
</body></html>"""


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: Tests that run the client engine against the in-process server"
    )


def pytest_sessionfinish(session, exitstatus):
    if os.path.exists(_SESSION_DB):
        os.unlink(_SESSION_DB)


class ManualScheduler(Scheduler):
    """Timers that only fire when the test advances the clock"""

    def __init__(self):
        self.now = 0
        self.timers: List[TimerHandle] = []

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(delay_ms, callback)
        handle.due = self.now + delay_ms
        self.timers.append(handle)
        return handle

    def pending(self) -> List[TimerHandle]:
        return [t for t in self.timers if not t.cancelled]

    def pending_delays(self) -> List[int]:
        return [t.delay_ms for t in self.pending()]

    def advance(self, ms: int) -> int:
        """Move the clock forward, firing due timers in order; returns how many fired"""
        target = self.now + ms
        fired = 0
        while True:
            due = sorted((t for t in self.pending() if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            self.now = timer.due
            timer.cancelled = True
            timer.callback()
            fired += 1
        self.now = target
        return fired


class ScriptedFeed:
    """httpx MockTransport handler replaying queued responses and recording requests"""

    def __init__(self):
        self.responses = []
        self.requests: List[httpx.Request] = []

    def queue(self, *responses):
        self.responses.extend(responses)
        return self

    def queue_error(self, exc_type=httpx.ConnectError):
        self.responses.append(exc_type)
        return self

    def params(self, index: int = -1) -> dict:
        return dict(self.requests[index].url.params)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return httpx.Response(200, json={'updates': [], 'last_modified': 0, 'has_more': False})
        response = self.responses.pop(0)
        if isinstance(response, type) and issubclass(response, Exception):
            raise response('connection refused', request=request)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def feed():
    return ScriptedFeed()


@pytest.fixture
def make_page() -> Callable[..., Page]:
    def _make(html: Optional[str] = None, url: str = 'http://liveblog.test/posts/1') -> Page:
        return Page(PAGE_HTML if html is None else html, url=url)
    return _make


@pytest.fixture
def make_context(scheduler, feed, make_page):
    """LiveblogContext wired to the manual scheduler and the scripted feed"""
    def _make(page: Optional[Page] = None) -> LiveblogContext:
        client = UpdateFeedClient(httpx.AsyncClient(transport=httpx.MockTransport(feed)))
        return LiveblogContext(
            page=page or make_page(),
            client=client,
            scheduler=scheduler,
            sanitizer=HtmlSanitizer(),
        )
    return _make


@pytest.fixture
def engine(make_context):
    return PollingEngine(make_context())


@pytest.fixture
def temp_db():
    """Isolated database file with the schema initialised"""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')
    os.close(db_fd)

    from liveblog import models

    with patch.object(models, 'DB_PATH', db_path):
        models.init_db()
        yield db_path

    if os.path.exists(db_path):
        os.unlink(db_path)
