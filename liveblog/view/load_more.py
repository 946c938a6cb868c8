"""'Load more' control: fetches older entries and inserts them above the button"""

import logging

from .client import UpdateFeedError
from .constants import LOAD_MORE_PAGE_SIZE, Selectors
from .entry_dom import build_new_entry_element, find_entry

logger = logging.getLogger(__name__)

LABEL = 'Load more'
LOADING_LABEL = 'Loading…'


class LoadMoreController:
    """One per container; owns the button and the pagination fetch"""

    def __init__(self, context, container, state, config):
        self.context = context
        self.container = container
        self.state = state
        self.config = config
        self.button = self._create_button()

    @classmethod
    def get_or_create(cls, context, container) -> 'LoadMoreController':
        record = context.registry.record_for(container)
        if record.load_more is None:
            record.load_more = cls(context, container, record.state, record.config)
        return record.load_more

    def _create_button(self):
        btn = self.container.select_one(f'.{Selectors.LOAD_MORE_CLASS}')
        if btn is None:
            btn = self.context.page.new_tag('button', type='button', **{'class': Selectors.LOAD_MORE_CLASS})
            btn.string = LABEL
        return btn

    @property
    def attached(self) -> bool:
        return self.button.parent is not None

    def attach(self):
        """Append the button to the bottom of the container"""
        self.container.append(self.button)

    def remove(self):
        if self.attached:
            self.button.extract()

    def _set_busy(self, busy: bool):
        if busy:
            self.button['disabled'] = ''
            self.button.string = LOADING_LABEL
        else:
            if self.button.has_attr('disabled'):
                del self.button['disabled']
            self.button.string = LABEL

    async def click(self):
        """Fetch the next page of older entries.

        Ignored while a request is in flight or once the server has said there
        is nothing older. Failures re-enable the button so the reader can retry.
        """
        state = self.state
        if state.loading_more or not state.has_more:
            return
        if not self.config.rest_url:
            return
        if state.oldest_timestamp <= 0:
            # before=0 means no before filter at all
            logger.info(f"No older entries to page from for post {self.config.post_id}")
            state.has_more = False
            self.remove()
            return

        state.loading_more = True
        self._set_busy(True)
        try:
            batch = await self.context.client.fetch_updates(
                self.config.rest_url,
                before=state.oldest_timestamp,
                per_page=LOAD_MORE_PAGE_SIZE,
            )
        except UpdateFeedError as e:
            logger.warning(f"Load more failed for post {self.config.post_id}: {e}")
            state.has_more = True
            self._set_busy(False)
        else:
            self._apply(batch)
        finally:
            state.loading_more = False
            if self.attached:
                self._set_busy(False)

    def _apply(self, batch):
        state = self.state
        if not batch.updates:
            state.has_more = False
            self.remove()
            return

        min_ts = state.oldest_timestamp
        for update in batch.updates:
            if find_entry(self.container, update.id) is None:
                el = build_new_entry_element(self.context, update)
                if el is None:
                    continue
                if self.attached:
                    self.button.insert_before(el)
                else:
                    self.container.append(el)
            ts = update.timestamp or 0
            if ts > 0 and (min_ts == 0 or ts < min_ts):
                min_ts = ts

        if min_ts > 0:
            state.oldest_timestamp = min_ts
        state.has_more = batch.has_more
        if not state.has_more:
            self.remove()
        logger.info(f"Loaded {len(batch.updates)} older entries for post {self.config.post_id}")
