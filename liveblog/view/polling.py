"""Polling engine: fetch update increments, reconcile them, schedule the next poll.

Each container on the page gets a ContainerState held in the ContainerRegistry.
A poll always ends by re-arming exactly one timer for its container, whether
the fetch succeeded or not, so there is a single scheduling path:

    backoff (after failures)  >  INACTIVE_INTERVAL (tab hidden)  >  configured interval

Responses are applied in the order they resolve. Overlapping polls are not
prevented; the cursor only ever moves forward, so a stale response cannot
rewind it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .client import CHANGE_MODIFIED, Update, UpdateFeedError
from .constants import (
    INACTIVE_INTERVAL, INITIAL_PAGE_SIZE, MAX_BACKOFF, MIN_BACKOFF, POLL_PAGE_SIZE,
    LiveblogConfig, Selectors, normalize_interval,
)
from .entry_dom import (
    apply_update_to_entry, build_new_entry_element, find_entry, insert_new_entry, trigger_embed_load,
)
from .load_more import LoadMoreController
from .notification_banner import update_banner
from .scheduler import TimerHandle
from .utils import is_at_top, is_attached, is_tab_visible

logger = logging.getLogger(__name__)


def next_backoff(current: int) -> int:
    """MIN_BACKOFF on the first failure, then doubling up to MAX_BACKOFF"""
    if not current:
        return MIN_BACKOFF
    return min(current * 2, MAX_BACKOFF)


def oldest_first(updates: List[Update]) -> List[Update]:
    """Ascending timestamp; ties keep the reverse of feed order (older first)"""
    return sorted(reversed(updates), key=lambda u: u.timestamp or 0)


@dataclass
class ContainerState:
    last_modified: int = 0
    backoff: int = 0
    timer: Optional[TimerHandle] = None
    queued_new: List[Update] = field(default_factory=list)
    oldest_timestamp: int = 0
    has_more: bool = False
    loading_more: bool = False
    initialized: bool = False


@dataclass
class ContainerRecord:
    key: str
    container: Any
    config: LiveblogConfig
    state: ContainerState = field(default_factory=ContainerState)
    load_more: Optional[LoadMoreController] = None


def replace_queued(state: ContainerState, update: Update) -> bool:
    """Swap in the edited version of an update still waiting in the queue"""
    if not update.has_content:
        return False
    for i, queued in enumerate(state.queued_new):
        if queued.id == update.id:
            state.queued_new[i] = update
            logger.debug(f"Modified update {update.id} replaced its queued copy")
            return True
    return False


class ContainerRegistry:
    """Container key -> state. Keys live on the element as data-liveblog-key."""

    def __init__(self, page):
        self.page = page
        self._records: Dict[str, ContainerRecord] = {}
        self._counter = 0

    def key_for(self, container) -> str:
        key = container.get(Selectors.CONTAINER_KEY_ATTR)
        if not key:
            self._counter += 1
            key = f"liveblog-{self._counter}"
            while key in self._records:
                self._counter += 1
                key = f"liveblog-{self._counter}"
            container[Selectors.CONTAINER_KEY_ATTR] = key
        return key

    def register(self, container, config: LiveblogConfig) -> ContainerRecord:
        key = self.key_for(container)
        record = self._records.get(key)
        if record is None:
            record = ContainerRecord(key=key, container=container, config=config)
            self._records[key] = record
        return record

    def get(self, container) -> Optional[ContainerRecord]:
        key = container.get(Selectors.CONTAINER_KEY_ATTR)
        return self._records.get(key) if key else None

    def record_for(self, container) -> ContainerRecord:
        record = self.get(container)
        if record is None:
            raise KeyError(f"Container is not registered: {container.get(Selectors.CONTAINER_KEY_ATTR)!r}")
        return record

    def state_for(self, container) -> ContainerState:
        return self.record_for(container).state

    def records(self) -> List[ContainerRecord]:
        return list(self._records.values())

    def queued_new_count(self) -> int:
        """Total queued new updates across every container on the page"""
        return sum(len(r.state.queued_new) for r in self._records.values())

    def remove(self, container):
        record = self.get(container)
        if record is None:
            return
        if record.state.timer is not None:
            record.state.timer.cancel()
            record.state.timer = None
        del self._records[record.key]

    def prune(self) -> int:
        """Forget containers that are no longer part of the page"""
        detached = [r for r in self._records.values() if not is_attached(r.container, self.page.soup)]
        for record in detached:
            self.remove(record.container)
        if detached:
            logger.info(f"Pruned {len(detached)} detached liveblog containers")
        return len(detached)


class PollingEngine:
    """Per-container poll loop over the shared LiveblogContext"""

    def __init__(self, context):
        self.context = context
        self.stopped = False
        self._tasks: Set[asyncio.Task] = set()

    # -- lifecycle ---------------------------------------------------------------

    def start(self, container, config: LiveblogConfig) -> asyncio.Task:
        self.context.registry.register(container, config)
        logger.info(f"Starting liveblog polling for post {config.post_id} at {config.rest_url}")
        return self.spawn_poll(container)

    def stop(self):
        self.stopped = True
        for record in self.context.registry.records():
            if record.state.timer is not None:
                self.context.scheduler.cancel(record.state.timer)
                record.state.timer = None

    def spawn_poll(self, container) -> asyncio.Task:
        task = asyncio.ensure_future(self.poll(container))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Liveblog poll task failed: {exc}", exc_info=exc)

    # -- poll --------------------------------------------------------------------

    async def poll(self, container, config: Optional[LiveblogConfig] = None):
        """Fetch one increment, apply it, and always schedule the next poll"""
        registry = self.context.registry
        record = registry.get(container)
        if record is None:
            if config is None:
                raise KeyError('poll() on an unregistered container needs a config')
            record = registry.register(container, config)
        state = record.state

        was_initial_sync = state.last_modified == 0
        per_page = INITIAL_PAGE_SIZE if was_initial_sync else POLL_PAGE_SIZE

        try:
            batch = await self.context.client.fetch_updates(
                record.config.rest_url, since=state.last_modified, per_page=per_page
            )
        except UpdateFeedError as e:
            state.backoff = next_backoff(state.backoff)
            logger.warning(f"Poll failed for post {record.config.post_id}: {e} (backoff {state.backoff}ms)")
        else:
            state.backoff = 0
            if batch.last_modified is not None:
                state.last_modified = max(state.last_modified, batch.last_modified)
            if was_initial_sync:
                self._initial_sync(record, batch)
            elif batch.updates:
                self.process_updates(record, batch.updates)
        finally:
            self.schedule_next(container)

    def _initial_sync(self, record: ContainerRecord, batch):
        """Replace the container's content with the first page of entries"""
        state = record.state
        container = record.container
        if not batch.updates:
            state.initialized = True
            return

        elements = []
        seen = set()
        min_ts = 0
        for update in batch.updates:
            if update.id in seen:
                continue
            el = build_new_entry_element(self.context, update)
            if el is None:
                continue
            seen.add(update.id)
            elements.append(el)
            ts = update.timestamp or 0
            if ts > 0 and (min_ts == 0 or ts < min_ts):
                min_ts = ts

        container.clear()
        for el in elements:
            container.append(el)
        record.load_more = None

        state.oldest_timestamp = min_ts
        state.has_more = batch.has_more
        if state.has_more:
            LoadMoreController.get_or_create(self.context, container).attach()
        state.initialized = True
        trigger_embed_load(self.context.page, container)
        logger.info(f"Initial sync for post {record.config.post_id}: {len(elements)} entries, has_more={state.has_more}")

    def process_updates(self, record: ContainerRecord, updates: List[Update]):
        """Route each update: patch modified entries, insert or queue new ones.

        The feed lists updates newest first. They are applied oldest first so
        that each prepend leaves the newest entry on top.
        """
        context = self.context
        page = context.page
        container = record.container
        state = record.state

        for update in oldest_first(updates):
            if update.change_type == CHANGE_MODIFIED:
                if apply_update_to_entry(context, container, update) is None:
                    replace_queued(state, update)
                continue

            if find_entry(container, update.id) is not None:
                continue
            if any(queued.id == update.id for queued in state.queued_new):
                continue

            if is_at_top(page):
                el = build_new_entry_element(context, update)
                if el is not None:
                    insert_new_entry(context, container, el)
                if is_tab_visible(page):
                    context.view_state.set_unread_count(0)
                else:
                    context.view_state.increment_unread_count()
            else:
                state.queued_new.append(update)
                context.view_state.increment_unread_count()
                update_banner(context)

    # -- scheduling --------------------------------------------------------------

    def get_interval(self, record: ContainerRecord) -> int:
        if record.state.backoff:
            return record.state.backoff
        if self.context.page.hidden:
            return INACTIVE_INTERVAL
        return normalize_interval(record.config.interval)

    def schedule_next(self, container) -> Optional[int]:
        """Cancel any pending timer for container and arm a fresh one; returns the delay"""
        registry = self.context.registry
        record = registry.get(container)
        if record is None or self.stopped:
            return None
        if not is_attached(container, self.context.page.soup):
            logger.info(f"Liveblog container {record.key} left the page, stopping its polling")
            registry.remove(container)
            return None

        state = record.state
        if state.timer is not None:
            self.context.scheduler.cancel(state.timer)
            state.timer = None

        delay = self.get_interval(record)

        def fire():
            state.timer = None
            self.spawn_poll(container)

        state.timer = self.context.scheduler.schedule(delay, fire)
        return delay

    def reschedule_all(self):
        """Re-arm every pending timer with a freshly computed interval"""
        for record in self.context.registry.records():
            if record.state.timer is None:
                continue
            self.context.scheduler.cancel(record.state.timer)
            record.state.timer = None
            self.schedule_next(record.container)
