"""Pure helpers for the client engine (time, selector escaping, classes, scroll and visibility)"""

from datetime import datetime
from typing import Optional

import soupsieve
from dateutil import tz

from .constants import SCROLL_TOP_THRESHOLD


def format_timestamp(ts: Optional[int], tzinfo=None) -> str:
    """Format a unix timestamp as a short local time, e.g. '3:05 PM'"""
    if not ts:
        return ''
    dt = datetime.fromtimestamp(ts, tz=tzinfo or tz.tzlocal())
    return dt.strftime('%I:%M %p').lstrip('0')


def escape_selector_attr(value) -> str:
    """Escape a value for use inside an attribute selector [data-attr="VALUE"]"""
    return soupsieve.escape(str(value))


def update_id_selector(update_id) -> str:
    return f'[data-update-id="{escape_selector_attr(update_id)}"]'


def _classes(el) -> list:
    value = el.get('class') or []
    if isinstance(value, str):
        return value.split()
    return list(value)


def has_class(el, name: str) -> bool:
    return name in _classes(el)


def add_class(el, name: str):
    classes = _classes(el)
    if name not in classes:
        classes.append(name)
    el['class'] = classes


def remove_class(el, name: str):
    classes = [c for c in _classes(el) if c != name]
    if classes:
        el['class'] = classes
    elif el.has_attr('class'):
        del el['class']


def is_attached(el, root) -> bool:
    """True while el still hangs off root (removed nodes lose their parent chain)"""
    if el is None:
        return False
    if el is root:
        return True
    return any(parent is root for parent in el.parents)


def is_at_top(page) -> bool:
    return page.scroll_y < SCROLL_TOP_THRESHOLD


def is_tab_visible(page) -> bool:
    return page.visibility_state == 'visible'
