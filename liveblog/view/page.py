"""In-memory document the client engine reconciles into.

A Page wraps a BeautifulSoup tree together with the bits of browser state the
engine depends on: viewport scroll position, tab visibility, the document
title and a small event target for page-level events.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Doctype

from .constants import Events

logger = logging.getLogger(__name__)


class PageEvent:
    def __init__(self, type: str, target=None, detail=None):
        self.type = type
        self.target = target
        self.detail = detail

    def __repr__(self):
        return f"PageEvent({self.type!r})"


class Page:
    """A document plus viewport and visibility state"""

    def __init__(self, html: str = '', url: str = '', features: str = 'html.parser'):
        self.soup = BeautifulSoup(html or '<html><head></head><body></body></html>', features)
        self.url = url
        self.scroll_y = 0
        self.visibility_state = 'visible'
        self._listeners: Dict[str, List[Callable]] = defaultdict(list)
        self._ensure_skeleton()

    def _ensure_skeleton(self):
        if self.soup.html is None:
            html = self.soup.new_tag('html')
            for child in list(self.soup.contents):
                if not isinstance(child, Doctype):
                    html.append(child.extract())
            self.soup.append(html)
        if self.soup.head is None:
            self.soup.html.insert(0, self.soup.new_tag('head'))
        if self.soup.body is None:
            body = self.soup.new_tag('body')
            for child in list(self.soup.html.contents):
                if child is not self.soup.head:
                    body.append(child.extract())
            self.soup.html.append(body)

    # -- document --------------------------------------------------------------

    @property
    def body(self):
        return self.soup.body

    @property
    def title(self) -> str:
        tag = self.soup.title
        return tag.get_text() if tag is not None else ''

    @title.setter
    def title(self, value: str):
        tag = self.soup.title
        if tag is None:
            tag = self.soup.new_tag('title')
            self.soup.head.append(tag)
        tag.string = value

    @property
    def origin(self) -> str:
        parts = urlsplit(self.url)
        if not parts.scheme or not parts.netloc:
            return ''
        return f"{parts.scheme}://{parts.netloc}"

    def new_tag(self, name: str, **attrs):
        return self.soup.new_tag(name, attrs=attrs)

    def select(self, selector: str):
        return self.soup.select(selector)

    def select_one(self, selector: str):
        return self.soup.select_one(selector)

    def __str__(self):
        return str(self.soup)

    # -- viewport ----------------------------------------------------------------

    @property
    def hidden(self) -> bool:
        return self.visibility_state != 'visible'

    def scroll_to(self, top: int = 0):
        self.scroll_y = max(int(top), 0)

    def set_visibility(self, visible: bool):
        """Flip tab visibility and notify visibilitychange listeners"""
        state = 'visible' if visible else 'hidden'
        if state == self.visibility_state:
            return
        self.visibility_state = state
        self.dispatch_event(Events.VISIBILITY_CHANGE)

    # -- events ------------------------------------------------------------------

    def add_event_listener(self, type: str, listener: Callable):
        self._listeners[type].append(listener)

    def remove_event_listener(self, type: str, listener: Callable):
        listeners = self._listeners.get(type, [])
        if listener in listeners:
            listeners.remove(listener)

    def dispatch_event(self, type: str, target=None, detail=None) -> PageEvent:
        event = PageEvent(type, target=target, detail=detail)
        for listener in list(self._listeners.get(type, [])):
            try:
                listener(event)
            except Exception as e:
                # A broken listener must not stop the remaining ones
                logger.error(f"Listener for {type} failed: {e}", exc_info=True)
        return event
