"""FastHTML components for liveblog entries and the host page"""

from fasthtml.common import *
import json
from datetime import datetime, timezone
from typing import Dict, List

from .view.constants import Selectors
from .view.utils import format_timestamp


def iso_time(ts: int) -> str:
    if not ts:
        return ''
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def entry_classes(entry: Dict) -> str:
    classes = [Selectors.ENTRY_CLASS]
    if entry.get('is_pinned'):
        classes.append('is-pinned')
    if entry.get('modified') and entry['modified'] > entry.get('timestamp', 0):
        classes.append('has-modified')
    return ' '.join(classes)


def author_names(entry: Dict) -> List[str]:
    names = [c.get('display_name', '') for c in entry.get('coauthors') or [] if c.get('display_name')]
    if not names and entry.get('author'):
        names = [entry['author']]
    return names


def EntryHeader(entry: Dict):
    ts = entry.get('timestamp') or 0
    return Div(
        ft_hx('time', format_timestamp(ts), datetime=iso_time(ts), cls='liveblog-entry__time'),
        ' ',
        Span(*[Span(name, cls='liveblog-entry__author') for name in author_names(entry)],
             cls='liveblog-entry__authors'),
        cls='liveblog-entry__header'
    )


def Entry(entry: Dict):
    """One rendered entry; the body is stored markup and is emitted as-is"""
    return Div(
        EntryHeader(entry),
        Div(NotStr(entry.get('body') or ''), cls='liveblog-entry__content'),
        cls=entry_classes(entry),
        data_update_id=entry['update_id'],
        data_timestamp=str(entry.get('timestamp') or 0),
    )


def render_entry(entry: Dict) -> str:
    return to_xml(Entry(entry)).strip()


def LiveblogContainer(post: Dict, entries: List[Dict], rest_url: str):
    return Div(
        *[Entry(e) for e in entries],
        cls=Selectors.CONTAINER.lstrip('.'),
        data_post_id=str(post['id']),
        data_rest_url=rest_url,
    )


def LiveblogData(post: Dict, rest_url: str, interval: int):
    """Footer script carrying the polling config for the page"""
    data = {'restUrl': rest_url, 'postId': post['id'], 'interval': interval}
    return Script(f"var liveblogData = {json.dumps(data)};")


def PostPage(post: Dict, entries: List[Dict], rest_url: str, interval: int):
    return (
        Title(post['title']),
        Main(
            H1(post['title']),
            LiveblogContainer(post, entries, rest_url),
            LiveblogData(post, rest_url, interval),
        )
    )
