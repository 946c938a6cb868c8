"""Page-wide banner announcing new updates queued while the reader is scrolled down"""

import logging

from .constants import BANNER_AUTO_DISMISS_MS, Selectors
from .entry_dom import build_new_entry_element, find_entry, insert_new_entry
from .utils import add_class, has_class, remove_class

logger = logging.getLogger(__name__)


def banner_text(count: int) -> str:
    return '1 new update available' if count == 1 else f"{count} new updates available"


class NotificationBanner:
    """Singleton per LiveblogContext; use get_banner() rather than constructing directly"""

    def __init__(self, context):
        self.context = context
        self._dismiss_timer = None
        page = context.page

        self.el = page.new_tag('div', role='status', **{'class': Selectors.BANNER_CLASS, 'aria-live': 'polite'})
        self.text_el = page.new_tag('span', **{'class': 'liveblog-notification__text'})
        self.show_button = page.new_tag('button', type='button', **{'class': 'liveblog-notification__show-btn'})
        self.show_button.string = 'Show Updates'
        self.dismiss_button = page.new_tag(
            'button', type='button', **{'class': 'liveblog-notification__dismiss-btn', 'aria-label': 'Dismiss'}
        )
        self.dismiss_button.string = '×'

        self.el.append(self.text_el)
        self.el.append(' ')
        self.el.append(self.show_button)
        self.el.append(' ')
        self.el.append(self.dismiss_button)
        page.body.append(self.el)

    @property
    def visible(self) -> bool:
        return has_class(self.el, Selectors.BANNER_VISIBLE_CLASS)

    @property
    def text(self) -> str:
        return self.text_el.get_text()

    def _cancel_timer(self):
        if self._dismiss_timer is not None:
            self.context.scheduler.cancel(self._dismiss_timer)
            self._dismiss_timer = None

    def show(self, count: int):
        self.text_el.string = banner_text(count)
        add_class(self.el, Selectors.BANNER_VISIBLE_CLASS)
        self._cancel_timer()
        self._dismiss_timer = self.context.scheduler.schedule(BANNER_AUTO_DISMISS_MS, self._auto_dismiss)

    def _auto_dismiss(self):
        self._dismiss_timer = None
        self.hide()

    def hide(self):
        remove_class(self.el, Selectors.BANNER_VISIBLE_CLASS)
        self._cancel_timer()

    def dismiss(self):
        """Hide only; queued updates stay queued and counted"""
        self.hide()

    def show_updates(self):
        """Scroll to top and flush every container's queue into the tree"""
        context = self.context
        context.page.scroll_to(0)
        flushed = 0
        for record in context.registry.records():
            state = record.state
            if not state.queued_new:
                continue
            # oldest first so the newest ends on top
            for update in sorted(state.queued_new, key=lambda u: u.timestamp or 0):
                if find_entry(record.container, update.id) is not None:
                    continue
                el = build_new_entry_element(context, update)
                if el is not None:
                    insert_new_entry(context, record.container, el)
                    flushed += 1
            state.queued_new = []
        logger.info(f"Showing {flushed} queued updates")
        context.view_state.set_unread_count(0)
        self.hide()


def get_banner(context) -> NotificationBanner:
    if context.banner is None:
        context.banner = NotificationBanner(context)
    return context.banner


def update_banner(context):
    """Sync title and banner with the number of queued updates across containers"""
    queued_count = context.registry.queued_new_count()
    context.view_state.update_tab_title(context.view_state.get_unread_count())
    if queued_count == 0:
        if context.banner is not None:
            context.banner.hide()
        return
    get_banner(context).show(queued_count)
