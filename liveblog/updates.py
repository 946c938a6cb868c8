"""Update feed selection: which entries a client polling with since/before receives.

Classification against the client's cursor ``since``:

* since == 0: everything is new (initial sync)
* new: created after the cursor (timestamp > since), or never stamped at all
* modified: existed at the cursor and was edited after it
  (timestamp <= since < modified)

The boundary is exclusive for new: an entry created exactly at ``since`` was
already seen by the client and can only come back as modified.
"""

import logging
from typing import Callable, Dict, List, Optional

from .view.client import CHANGE_MODIFIED, CHANGE_NEW

logger = logging.getLogger(__name__)

DEFAULT_PER_PAGE = 50
MAX_PER_PAGE = 100


def clamp_per_page(per_page) -> int:
    try:
        per_page = int(per_page)
    except (TypeError, ValueError):
        return DEFAULT_PER_PAGE
    return min(max(per_page, 1), MAX_PER_PAGE)


def classify(entry: Dict, since: int, include_modified: bool = True) -> Optional[str]:
    """'new', 'modified' or None (not part of the increment)"""
    ts = entry.get('timestamp') or 0
    modified = entry.get('modified') or 0
    if since <= 0:
        return CHANGE_NEW
    if ts > since or (ts == 0 and modified == 0):
        return CHANGE_NEW
    if include_modified and ts <= since < modified:
        return CHANGE_MODIFIED
    return None


def entry_last_modified(entry: Dict) -> int:
    return max(entry.get('modified') or 0, entry.get('timestamp') or 0)


def feed_last_modified(entries: List[Dict]) -> int:
    return max((entry_last_modified(e) for e in entries), default=0)


def to_update_record(entry: Dict, change_type: str, content: str) -> Dict:
    """Wire shape of one update"""
    coauthors = [
        {'id': c.get('id', ''), 'display_name': c.get('display_name', ''), 'avatar_url': c.get('avatar_url', '')}
        for c in entry.get('coauthors') or []
        if isinstance(c, dict)
    ]
    author = entry.get('author') or ''
    if not author and coauthors:
        author = coauthors[0]['display_name']
    ts = entry.get('timestamp') or 0
    return {
        'id': entry.get('update_id') or f"update-{ts}",
        'timestamp': ts,
        'modified': entry.get('modified') or 0,
        'author': author,
        'author_id': entry.get('author_id') or 0,
        'coauthors': coauthors,
        'content': content,
        'status': entry.get('status') or 'published',
        'change_type': change_type,
        'is_pinned': bool(entry.get('is_pinned')),
    }


def select_updates(entries: List[Dict], render: Callable[[Dict], str], since: int = 0,
                   per_page: int = DEFAULT_PER_PAGE, before: int = 0,
                   include_modified: bool = True) -> Dict:
    """Build the {updates, last_modified, has_more} response for a post.

    entries must be newest first. With before > 0 the cursor is ignored and the
    page holds older entries (0 < timestamp < before), all reported as new.
    """
    per_page = clamp_per_page(per_page)

    if before > 0:
        matching = [(e, CHANGE_NEW) for e in entries if 0 < (e.get('timestamp') or 0) < before]
    else:
        matching = []
        for entry in entries:
            change_type = classify(entry, since, include_modified)
            if change_type is not None:
                matching.append((entry, change_type))

    page = matching[:per_page]
    updates = [to_update_record(entry, change_type, render(entry)) for entry, change_type in page]
    logger.debug(f"Selected {len(updates)}/{len(matching)} updates (since={since}, before={before})")
    return {
        'updates': updates,
        'last_modified': feed_last_modified(entries),
        'has_more': len(matching) > len(page),
    }


def count_updates(entries: List[Dict], since: int = 0) -> Dict:
    """{count, new_count, modified_count} under the same classification"""
    new_count = 0
    modified_count = 0
    for entry in entries:
        change_type = classify(entry, since)
        if change_type == CHANGE_NEW:
            new_count += 1
        elif change_type == CHANGE_MODIFIED:
            modified_count += 1
    return {'count': new_count + modified_count, 'new_count': new_count, 'modified_count': modified_count}
