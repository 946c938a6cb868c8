"""End-to-end: the client engine following a post served by the FastHTML app in-process"""

import asyncio
import time

import httpx
import pytest

from liveblog.main import app
from liveblog.view.bootstrap import Liveblog, LiveblogContext
from liveblog.view.client import UpdateFeedClient
from liveblog.view.constants import ENTRY_ENTER_ANIMATION_MS, Selectors
from liveblog.view.page import Page
from liveblog.view.sanitize import HtmlSanitizer

pytestmark = pytest.mark.integration

BASE_URL = 'http://liveblog.test'


def ids(page):
    container = page.select_one(Selectors.CONTAINER)
    return [el.get(Selectors.UPDATE_ID_ATTR) for el in container.select(f'.{Selectors.ENTRY_CLASS}')]


def http_client():
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=BASE_URL)


async def create_post(http, title='Match Day'):
    response = await http.post('/liveblog/v1/posts', json={'title': title})
    assert response.status_code == 201
    return response.json()['id']


async def add_entry(http, post_id, update_id, ts, content=None, **fields):
    payload = {'update_id': update_id, 'timestamp': ts, 'content': content or f'<p>{update_id}</p>'}
    payload.update(fields)
    response = await http.post(f'/liveblog/v1/posts/{post_id}/entries', json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestRestApi:

    def test_updates_feed(self, temp_db):
        async def run():
            async with http_client() as http:
                post_id = await create_post(http)
                await add_entry(http, post_id, 'a', 100, author='Desk')
                await add_entry(http, post_id, 'b', 200)
                full = await http.get(f'/liveblog/v1/posts/{post_id}/updates', params={'since': 0})
                increment = await http.get(f'/liveblog/v1/posts/{post_id}/updates',
                                           params={'since': 100, 'per_page': 50, '_': 123})
                return full.json(), increment.json()
        full, increment = asyncio.run(run())

        assert [u['id'] for u in full['updates']] == ['b', 'a']
        assert full['last_modified'] == 200
        assert full['has_more'] is False
        assert full['updates'][1]['author'] == 'Desk'
        assert 'data-update-id="a"' in full['updates'][1]['content']
        assert [u['id'] for u in increment['updates']] == ['b']

    def test_edit_shows_up_as_modified(self, temp_db):
        async def run():
            async with http_client() as http:
                post_id = await create_post(http)
                await add_entry(http, post_id, 'a', 100)
                edited = await http.post(f'/liveblog/v1/posts/{post_id}/entries/a', json={'content': '<p>fixed</p>'})
                feed = await http.get(f'/liveblog/v1/posts/{post_id}/updates', params={'since': 100})
                counts = await http.get(f'/liveblog/v1/posts/{post_id}/updates/count', params={'since': 100})
                missing = await http.post(f'/liveblog/v1/posts/{post_id}/entries/nope', json={'content': 'x'})
                return edited, feed.json(), counts.json(), missing
        edited, feed, counts, missing = asyncio.run(run())

        assert edited.status_code == 200
        assert edited.json()['modified'] >= 100
        assert [(u['id'], u['change_type']) for u in feed['updates']] == [('a', 'modified')]
        assert 'fixed' in feed['updates'][0]['content']
        assert counts == {'count': 1, 'new_count': 0, 'modified_count': 1}
        assert missing.status_code == 404

    def test_unknown_post(self, temp_db):
        async def run():
            async with http_client() as http:
                return await http.get('/liveblog/v1/posts/999/updates')
        response = asyncio.run(run())

        assert response.status_code == 404
        assert response.json() == {'code': 'rest_post_invalid_id', 'message': 'Invalid post ID.', 'data': {'status': 404}}

    def test_bad_authoring_payloads(self, temp_db):
        async def run():
            async with http_client() as http:
                no_title = await http.post('/liveblog/v1/posts', json={})
                post_id = await create_post(http)
                not_json = await http.post(f'/liveblog/v1/posts/{post_id}/entries', content=b'{nope',
                                           headers={'Content-Type': 'application/json'})
                no_content = await http.post(f'/liveblog/v1/posts/{post_id}/entries', json={'author': 'x'})
                await add_entry(http, post_id, 'dup', 10)
                duplicate = await http.post(f'/liveblog/v1/posts/{post_id}/entries',
                                            json={'update_id': 'dup', 'content': 'x'})
                return no_title, not_json, no_content, duplicate
        no_title, not_json, no_content, duplicate = asyncio.run(run())

        assert no_title.status_code == 400
        assert no_title.json()['data'] == {'status': 400}
        assert not_json.status_code == 400
        assert no_content.status_code == 400
        assert duplicate.status_code == 409


class TestLiveFollow:
    """The engine bootstrapped from the host page keeps the local copy in sync"""

    def test_follow_post(self, temp_db, scheduler):
        async def run():
            async with http_client() as http:
                post_id = await create_post(http)
                for i, ts in enumerate([100, 200, 300, 400, 500, 600], start=1):
                    await add_entry(http, post_id, f'e{i}', ts)

                response = await http.get(f'/posts/{post_id}')
                assert response.status_code == 200
                page = Page(response.text, url=f'{BASE_URL}/posts/{post_id}')
                assert ids(page) == ['e6', 'e5', 'e4', 'e3', 'e2', 'e1']

                context = LiveblogContext(
                    page=page, client=UpdateFeedClient(http), scheduler=scheduler, sanitizer=HtmlSanitizer(),
                )
                liveblog = Liveblog(context=context)
                assert liveblog.start() == 1
                await asyncio.gather(*liveblog.engine._tasks)

                # initial sync keeps the newest page and offers older entries
                assert ids(page) == ['e6', 'e5', 'e4', 'e3', 'e2']
                record = context.registry.records()[0]
                assert record.state.has_more is True
                assert record.state.last_modified == 600

                await record.load_more.click()
                assert ids(page) == ['e6', 'e5', 'e4', 'e3', 'e2', 'e1']
                assert not record.load_more.attached

                # a new entry and an edit arrive on the next poll
                await add_entry(http, post_id, 'e7', 700)
                await http.post(f'/liveblog/v1/posts/{post_id}/entries/e3', json={'content': '<p>corrected</p>'})
                await liveblog.engine.poll(record.container)

                assert ids(page)[0] == 'e7'
                assert 'corrected' in page.select_one('[data-update-id="e3"]').get_text()
                assert ids(page).count('e7') == 1
                assert record.state.last_modified >= int(time.time()) - 60

                # reader scrolled away: the next entry waits behind the banner
                page.scroll_to(900)
                await add_entry(http, post_id, 'e8', int(time.time()) + 3600)
                await liveblog.engine.poll(record.container)
                assert 'e8' not in ids(page)
                assert context.banner.text == '1 new update available'
                assert page.title.startswith('(1) ')

                context.banner.show_updates()
                assert ids(page)[0] == 'e8'
                assert page.title == 'Match Day'

                liveblog.stop()
                assert all(t.delay_ms == ENTRY_ENTER_ANIMATION_MS for t in scheduler.pending())
        asyncio.run(run())

    def test_several_entries_in_one_poll_stay_newest_first(self, temp_db, scheduler):
        async def run():
            async with http_client() as http:
                post_id = await create_post(http)
                for i, ts in enumerate([100, 200, 300], start=1):
                    await add_entry(http, post_id, f'e{i}', ts)
                response = await http.get(f'/posts/{post_id}')
                page = Page(response.text, url=f'{BASE_URL}/posts/{post_id}')
                context = LiveblogContext(
                    page=page, client=UpdateFeedClient(http), scheduler=scheduler, sanitizer=HtmlSanitizer(),
                )
                liveblog = Liveblog(context=context)
                liveblog.start()
                await asyncio.gather(*liveblog.engine._tasks)
                record = context.registry.records()[0]
                assert ids(page) == ['e3', 'e2', 'e1']

                # reader at the top
                await add_entry(http, post_id, 'e4', 400)
                await add_entry(http, post_id, 'e5', 500)
                await liveblog.engine.poll(record.container)
                assert ids(page) == ['e5', 'e4', 'e3', 'e2', 'e1']

                # reader scrolled away, flushed through the banner
                page.scroll_to(900)
                await add_entry(http, post_id, 'e6', 600)
                await add_entry(http, post_id, 'e7', 700)
                await liveblog.engine.poll(record.container)
                assert ids(page)[0] == 'e5'
                context.banner.show_updates()
                assert ids(page) == ['e7', 'e6', 'e5', 'e4', 'e3', 'e2', 'e1']

                liveblog.stop()
        asyncio.run(run())
