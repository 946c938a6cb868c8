"""Notification banner: show, dismiss, auto-dismiss and flushing queued updates"""

import pytest

from liveblog.view.client import Update
from liveblog.view.constants import BANNER_AUTO_DISMISS_MS, Selectors, get_config
from liveblog.view.notification_banner import banner_text, get_banner, update_banner


def queued(update_id, ts):
    return Update.from_dict({
        'id': update_id, 'timestamp': ts,
        'content': f'<div class="liveblog-entry" data-update-id="{update_id}">Entry {update_id}</div>',
    })


@pytest.fixture
def context(make_context):
    context = make_context()
    container = context.page.select_one(Selectors.CONTAINER)
    context.registry.register(container, get_config({}, container))
    return context


def record_of(context):
    return context.registry.records()[0]


class TestBannerText:

    def test_singular_and_plural(self):
        assert banner_text(1) == '1 new update available'
        assert banner_text(2) == '2 new updates available'


class TestNotificationBanner:

    def test_created_once_and_appended_to_body(self, context):
        banner = get_banner(context)

        assert get_banner(context) is banner
        assert banner.el.parent is context.page.body
        assert banner.el.get('role') == 'status'
        assert banner.el.get('aria-live') == 'polite'
        assert len(context.page.select(f'.{Selectors.BANNER_CLASS}')) == 1

    def test_show_and_hide(self, context, scheduler):
        banner = get_banner(context)

        banner.show(3)
        assert banner.visible
        assert banner.text == '3 new updates available'
        assert scheduler.pending_delays() == [BANNER_AUTO_DISMISS_MS]

        banner.hide()
        assert not banner.visible
        assert scheduler.pending() == []

    def test_auto_dismiss(self, context, scheduler):
        banner = get_banner(context)
        banner.show(1)

        scheduler.advance(BANNER_AUTO_DISMISS_MS - 1)
        assert banner.visible
        scheduler.advance(1)
        assert not banner.visible

    def test_show_rearms_auto_dismiss(self, context, scheduler):
        banner = get_banner(context)
        banner.show(1)
        scheduler.advance(20000)
        banner.show(2)

        scheduler.advance(20000)
        assert banner.visible
        assert len(scheduler.pending()) == 1

    def test_dismiss_keeps_queue(self, context):
        record = record_of(context)
        record.state.queued_new = [queued('u4', 400)]
        context.view_state.increment_unread_count()
        update_banner(context)

        context.banner.dismiss()

        assert not context.banner.visible
        assert [u.id for u in record.state.queued_new] == ['u4']
        assert context.view_state.get_unread_count() == 1

    def test_show_updates_flushes_queue(self, context, scheduler):
        record = record_of(context)
        context.page.scroll_to(900)
        record.state.queued_new = [queued('u5', 500), queued('server-1', 50), queued('u4', 400)]
        for _ in record.state.queued_new:
            context.view_state.increment_unread_count()
        update_banner(context)

        context.banner.show_updates()

        ids = [el.get('data-update-id') for el in record.container.select(f'.{Selectors.ENTRY_CLASS}')]
        assert ids == ['u5', 'u4', 'server-1']
        assert record.state.queued_new == []
        assert context.page.scroll_y == 0
        assert context.view_state.get_unread_count() == 0
        assert context.page.title == 'Match Day Live'
        assert not context.banner.visible


class TestUpdateBanner:

    def test_no_queue_does_not_create_banner(self, context):
        update_banner(context)

        assert context.banner is None

    def test_queue_emptied_hides_banner(self, context):
        record = record_of(context)
        record.state.queued_new = [queued('u4', 400)]
        update_banner(context)
        assert context.banner.visible

        record.state.queued_new = []
        update_banner(context)
        assert not context.banner.visible

    def test_title_follows_unread_count(self, context):
        record = record_of(context)
        record.state.queued_new = [queued('u4', 400)]
        context.view_state.unread_new_count = 4

        update_banner(context)

        assert context.page.title == '(4) Match Day Live'
