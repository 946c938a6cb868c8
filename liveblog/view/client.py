"""HTTP client for the liveblog update feed and its wire records"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .constants import POLL_PAGE_SIZE, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

CHANGE_NEW = 'new'
CHANGE_MODIFIED = 'modified'


class UpdateFeedError(Exception):
    """Transport failure, non-2xx status or undecodable body from the feed"""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


@dataclass
class Coauthor:
    id: Any = ''
    display_name: str = ''
    avatar_url: str = ''

    @classmethod
    def from_dict(cls, data: Any) -> 'Coauthor':
        if not isinstance(data, dict):
            return cls()
        return cls(
            id=data.get('id', ''),
            display_name=str(data.get('display_name') or ''),
            avatar_url=str(data.get('avatar_url') or ''),
        )


@dataclass
class Update:
    """One entry as returned by the update feed"""
    id: str
    timestamp: int = 0
    modified: int = 0
    author: str = ''
    author_id: int = 0
    coauthors: List[Coauthor] = field(default_factory=list)
    content: str = ''
    status: str = 'published'
    change_type: str = CHANGE_NEW
    is_pinned: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Update':
        """Build an Update with defaults for anything missing or malformed"""
        timestamp = _as_int(data.get('timestamp'))
        update_id = data.get('id')
        if not update_id:
            update_id = f"update-{timestamp}"
        coauthors = data.get('coauthors')
        if not isinstance(coauthors, list):
            coauthors = []
        content = data.get('content')
        change_type = data.get('change_type')
        if change_type not in (CHANGE_NEW, CHANGE_MODIFIED):
            change_type = CHANGE_NEW
        return cls(
            id=str(update_id),
            timestamp=timestamp,
            modified=_as_int(data.get('modified')),
            author=str(data.get('author') or ''),
            author_id=_as_int(data.get('author_id')),
            coauthors=[Coauthor.from_dict(c) for c in coauthors],
            content=content if isinstance(content, str) else '',
            status=str(data.get('status') or 'published'),
            change_type=change_type,
            is_pinned=bool(data.get('is_pinned')),
        )

    @property
    def has_content(self) -> bool:
        return bool(self.content.strip())


@dataclass
class UpdateBatch:
    updates: List[Update] = field(default_factory=list)
    last_modified: Optional[int] = None
    has_more: bool = False

    @classmethod
    def from_dict(cls, data: Any) -> 'UpdateBatch':
        if not isinstance(data, dict):
            raise UpdateFeedError(f"Unexpected feed payload: {type(data).__name__}")
        raw_updates = data.get('updates')
        if not isinstance(raw_updates, list):
            raw_updates = []
        last_modified = data.get('last_modified')
        if isinstance(last_modified, bool) or not isinstance(last_modified, int) or last_modified < 0:
            last_modified = None
        return cls(
            updates=[Update.from_dict(u) for u in raw_updates if isinstance(u, dict)],
            last_modified=last_modified,
            has_more=bool(data.get('has_more')),
        )


class UpdateFeedClient:
    """Fetches update batches from the liveblog REST endpoint"""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = REQUEST_TIMEOUT):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
            headers={'Accept': 'application/json'},
        )

    async def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        # Cache buster, mirrors what a browser client sends
        params['_'] = int(time.time() * 1000)
        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpdateFeedError(f"Request to {url} failed: {e}") from e

        if not response.is_success:
            raise UpdateFeedError(f"HTTP {response.status_code} for {url}", status=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise UpdateFeedError(f"Invalid JSON from {url}: {e}", status=response.status_code) from e

    async def fetch_updates(self, rest_url: str, since: int = 0, per_page: int = POLL_PAGE_SIZE,
                            before: int = 0) -> UpdateBatch:
        """GET <rest_url>?since=&per_page= (or before= for pagination)"""
        params: Dict[str, Any] = {}
        if before > 0:
            params['before'] = before
        else:
            params['since'] = since
        params['per_page'] = per_page
        data = await self._get_json(rest_url, params)
        batch = UpdateBatch.from_dict(data)
        logger.debug(f"Fetched {len(batch.updates)} updates from {rest_url} ({params})")
        return batch

    async def fetch_count(self, rest_url: str, since: int = 0) -> Dict[str, int]:
        """GET <rest_url>/count?since= -> {count, new_count, modified_count}"""
        data = await self._get_json(f"{rest_url.rstrip('/')}/count", {'since': since})
        if not isinstance(data, dict):
            raise UpdateFeedError(f"Unexpected count payload: {type(data).__name__}")
        return {key: _as_int(data.get(key)) for key in ('count', 'new_count', 'modified_count')}

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()
