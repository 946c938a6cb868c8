"""Wire a Page up for live updates.

    page = Page(html, url='https://example.com/posts/1')
    liveblog = Liveblog(page)
    liveblog.start()          # inside a running event loop
    ...
    await liveblog.aclose()
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .client import UpdateFeedClient
from .constants import FRAME_DELAY_MS, Events, Selectors, get_config
from .page import Page
from .polling import ContainerRegistry, PollingEngine
from .sanitize import HtmlSanitizer, select_sanitizer
from .scheduler import AsyncioScheduler, Scheduler, TimerHandle
from .view_state import ViewState

logger = logging.getLogger(__name__)

LIVEBLOG_DATA = re.compile(r'var\s+liveblogData\s*=\s*(\{.*?\})\s*;', re.DOTALL)


@dataclass
class LiveblogContext:
    """Everything shared by the engine, the banner and the view state for one page"""
    page: Page
    client: UpdateFeedClient
    scheduler: Scheduler
    sanitizer: HtmlSanitizer
    view_state: Optional[ViewState] = None
    registry: Optional[ContainerRegistry] = None
    banner: Any = None

    def __post_init__(self):
        if self.view_state is None:
            self.view_state = ViewState(self.page)
        if self.registry is None:
            self.registry = ContainerRegistry(self.page)


def create_context(page: Page, client: Optional[UpdateFeedClient] = None,
                   scheduler: Optional[Scheduler] = None,
                   sanitizer: Optional[HtmlSanitizer] = None) -> LiveblogContext:
    return LiveblogContext(
        page=page,
        client=client or UpdateFeedClient(),
        scheduler=scheduler or AsyncioScheduler(),
        sanitizer=sanitizer or select_sanitizer(),
    )


def read_page_config(page: Page) -> Dict[str, Any]:
    """The liveblogData object from the page's inline scripts, or {}"""
    for script in page.soup.find_all('script'):
        text = script.string or script.get_text()
        if not text or 'liveblogData' not in text:
            continue
        match = LIVEBLOG_DATA.search(text)
        if not match:
            continue
        try:
            data = json.loads(match.group(1))
        except ValueError as e:
            logger.warning(f"Could not decode liveblogData: {e}")
            continue
        if isinstance(data, dict):
            return data
    return {}


class Liveblog:
    """Discovers containers on a page and keeps them polling"""

    def __init__(self, page: Optional[Page] = None, context: Optional[LiveblogContext] = None, **context_kwargs):
        if context is None:
            if page is None:
                raise ValueError('Liveblog needs a page or a context')
            context = create_context(page, **context_kwargs)
        self.context = context
        self.engine = PollingEngine(context)
        self.started = False
        self._retry_timer: Optional[TimerHandle] = None
        self._listening = False

    @property
    def page(self) -> Page:
        return self.context.page

    def discover(self) -> List[Any]:
        return self.page.select(Selectors.CONTAINER)

    def start(self, retry: bool = True) -> int:
        """Start polling every configured container; returns how many started"""
        self.engine.stopped = False
        self.context.registry.prune()
        data = read_page_config(self.page)
        started = 0
        for container in self.discover():
            if self.context.registry.get(container) is not None:
                continue
            config = get_config(data, container, origin=self.page.origin)
            if not config.startable:
                logger.debug(f"Skipping liveblog container without post id or rest url: {config}")
                continue
            self.engine.start(container, config)
            started += 1

        if started == 0 and retry and self._retry_timer is None and not self.context.registry.records():
            # Containers may not be in the tree yet; look again after one frame
            self._retry_timer = self.context.scheduler.schedule(FRAME_DELAY_MS, self._retry_start)

        if not self._listening:
            self.page.add_event_listener(Events.VISIBILITY_CHANGE, self.on_visibility_change)
            self._listening = True

        self.started = self.started or started > 0
        if started:
            logger.info(f"Liveblog started on {started} container(s)")
        return started

    def _retry_start(self):
        self._retry_timer = None
        if self.start(retry=False) == 0:
            logger.info('No liveblog containers found on page')

    def on_visibility_change(self, event=None):
        logger.debug(f"Visibility changed to {self.page.visibility_state}")
        self.engine.reschedule_all()

    def stop(self):
        """Cancel every pending timer and stop listening to the page"""
        self.engine.stop()
        if self._retry_timer is not None:
            self.context.scheduler.cancel(self._retry_timer)
            self._retry_timer = None
        if self._listening:
            self.page.remove_event_listener(Events.VISIBILITY_CHANGE, self.on_visibility_change)
            self._listening = False
        self.started = False

    async def aclose(self):
        self.stop()
        await self.context.client.aclose()
