"""Client engine constants and per-page polling configuration"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

# =============================================================================
# POLLING - all timings in milliseconds
# =============================================================================

DEFAULT_INTERVAL = 10000
INACTIVE_INTERVAL = 10000
MIN_BACKOFF = 5000
MAX_BACKOFF = 20000

# =============================================================================
# VIEW
# =============================================================================

SCROLL_TOP_THRESHOLD = 200
BANNER_AUTO_DISMISS_MS = 30000
ENTRY_ENTER_ANIMATION_MS = 300
FRAME_DELAY_MS = 16

INITIAL_PAGE_SIZE = 5
POLL_PAGE_SIZE = 50
LOAD_MORE_PAGE_SIZE = 5

REQUEST_TIMEOUT = 30.0

REST_NAMESPACE = 'liveblog/v1'


class Selectors:
    """DOM contract shared with the server-rendered markup"""
    CONTAINER = '.liveblog-container'
    ENTRY_CLASS = 'liveblog-entry'
    ENTRY_ENTER_CLASS = 'liveblog-entry--enter'
    UPDATE_ID_ATTR = 'data-update-id'
    CONTAINER_KEY_ATTR = 'data-liveblog-key'
    LOAD_MORE_CLASS = 'liveblog-load-more'
    BANNER_CLASS = 'liveblog-notification'
    BANNER_VISIBLE_CLASS = 'liveblog-notification--visible'


class Events:
    """Names of events dispatched on the Page"""
    LOAD_EMBEDS = 'liveblog:load-embeds'
    VISIBILITY_CHANGE = 'visibilitychange'


@dataclass(frozen=True)
class LiveblogConfig:
    post_id: int
    rest_url: str
    interval: int = DEFAULT_INTERVAL

    @property
    def startable(self) -> bool:
        return bool(self.post_id) and bool(self.rest_url)


def normalize_interval(value: Any) -> int:
    """Positive numeric intervals pass through, anything else gets DEFAULT_INTERVAL"""
    if isinstance(value, bool):
        return DEFAULT_INTERVAL
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            return DEFAULT_INTERVAL
    if isinstance(value, (int, float)) and math.isfinite(value) and value > 0:
        return int(value)
    return DEFAULT_INTERVAL


def _to_post_id(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


def default_rest_url(origin: str, post_id: int) -> str:
    return f"{origin.rstrip('/')}/{REST_NAMESPACE}/posts/{post_id}/updates"


def get_config(data: Optional[Dict[str, Any]] = None, container=None, origin: str = '') -> LiveblogConfig:
    """Build the polling config from the page's liveblogData and container attributes.

    Container attributes (data-post-id, data-rest-url, data-interval) win over the
    page-level object. When no REST URL is known but an origin is, the standard
    updates route for the post is used.
    """
    data = data or {}
    post_id = _to_post_id(data.get('postId'))
    rest_url = data.get('restUrl') or ''
    interval = data.get('interval')

    if container is not None:
        attr_post_id = _to_post_id(container.get('data-post-id'))
        if attr_post_id:
            post_id = attr_post_id
        attr_rest_url = container.get('data-rest-url')
        if attr_rest_url:
            rest_url = attr_rest_url
        if container.get('data-interval') is not None:
            interval = container.get('data-interval')

    if not rest_url and origin and post_id:
        rest_url = default_rest_url(origin, post_id)

    return LiveblogConfig(
        post_id=post_id,
        rest_url=str(rest_url).rstrip('/'),
        interval=normalize_interval(interval),
    )
