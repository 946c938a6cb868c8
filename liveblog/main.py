"""Liveblog reference server built with FastHTML: update feed REST routes and the host page"""

from fasthtml.common import *
import logging
import os
import sqlite3
import time
from datetime import datetime

from starlette.middleware.base import BaseHTTPMiddleware

from .models import EntryModel, PostModel, init_db
from .render import PostPage, render_entry
from .updates import count_updates, select_updates, to_update_record
from .view.client import CHANGE_MODIFIED, CHANGE_NEW
from .view.constants import DEFAULT_INTERVAL, REST_NAMESPACE, normalize_interval

logger = logging.getLogger(__name__)

# =============================================================================
# CONFIGURATION
# =============================================================================

LIVEBLOG_INTERVAL = normalize_interval(os.environ.get("LIVEBLOG_INTERVAL", DEFAULT_INTERVAL))
SECRET_KEY = os.environ.get("LIVEBLOG_SECRET", "liveblog-dev-secret")

REST_PREFIX = f"/{REST_NAMESPACE}"

init_db()


# Timing middleware for performance monitoring
class TimingMiddleware(BaseHTTPMiddleware):
    """Log request timing with timestamps"""

    async def dispatch(self, request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = (time.time() - start_time) * 1000
        timestamp = datetime.now().strftime('%H:%M:%S.%f')[:-3]
        logger.info(f"[{timestamp}] TIMING: {request.method} {request.url.path} - {response.status_code} {duration:.2f}ms")
        return response


app, rt = fast_app(
    title="Liveblog",
    pico=False,
    secret_key=SECRET_KEY,
)
app.add_middleware(TimingMiddleware)


# =============================================================================
# HELPERS
# =============================================================================

def rest_error(code: str, message: str, status: int) -> JSONResponse:
    return JSONResponse({'code': code, 'message': message, 'data': {'status': status}}, status_code=status)


def post_not_found() -> JSONResponse:
    return rest_error('rest_post_invalid_id', 'Invalid post ID.', 404)


def updates_url(req, post_id: int) -> str:
    return f"{str(req.base_url).rstrip('/')}{REST_PREFIX}/posts/{post_id}/updates"


async def read_json(req):
    """Request body as a dict, or None when it is not a JSON object"""
    try:
        data = await req.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def entry_response(entry, change_type: str) -> dict:
    return to_update_record(entry, change_type, render_entry(entry))


# =============================================================================
# UPDATE FEED
# =============================================================================

@rt(f'{REST_PREFIX}/posts/{{post_id}}/updates', methods=['get'])
def get_updates(post_id: int, since: int = 0, per_page: int = 50, before: int = 0,
                include_modified: bool = True):
    """Entries created or edited after `since`, or older than `before`"""
    if not PostModel.get_post(post_id):
        return post_not_found()
    entries = EntryModel.get_entries(post_id)
    return JSONResponse(select_updates(
        entries, render_entry,
        since=max(since, 0), per_page=per_page, before=max(before, 0),
        include_modified=include_modified,
    ))


@rt(f'{REST_PREFIX}/posts/{{post_id}}/updates/count', methods=['get'])
def get_updates_count(post_id: int, since: int = 0):
    """How many entries a poll with `since` would report"""
    if not PostModel.get_post(post_id):
        return post_not_found()
    return JSONResponse(count_updates(EntryModel.get_entries(post_id), since=max(since, 0)))


# =============================================================================
# AUTHORING
# =============================================================================

@rt(f'{REST_PREFIX}/posts', methods=['post'])
async def create_post(req):
    data = await read_json(req)
    if data is None or not str(data.get('title') or '').strip():
        return rest_error('rest_missing_callback_param', 'Missing parameter(s): title', 400)
    title = str(data['title']).strip()
    post_id = PostModel.create_post(title)
    logger.info(f"Created post {post_id}: {title}")
    return JSONResponse({'id': post_id, 'title': title}, status_code=201)


@rt(f'{REST_PREFIX}/posts/{{post_id}}/entries', methods=['post'])
async def create_entry(req, post_id: int):
    if not PostModel.get_post(post_id):
        return post_not_found()
    data = await read_json(req)
    if data is None or not isinstance(data.get('content'), str):
        return rest_error('rest_missing_callback_param', 'Missing parameter(s): content', 400)

    coauthors = data.get('coauthors') or []
    if not isinstance(coauthors, list):
        return rest_error('rest_invalid_param', 'Invalid parameter(s): coauthors', 400)

    try:
        entry = EntryModel.create_entry(
            post_id,
            data['content'],
            author=str(data.get('author') or ''),
            author_id=int(data.get('author_id') or 0),
            coauthors=[c for c in coauthors if isinstance(c, dict)],
            status=str(data.get('status') or 'published'),
            is_pinned=bool(data.get('is_pinned')),
            update_id=data.get('update_id') or None,
            timestamp=data.get('timestamp'),
        )
    except (TypeError, ValueError) as e:
        return rest_error('rest_invalid_param', f"Invalid parameter(s): {e}", 400)
    except sqlite3.IntegrityError:
        return rest_error('rest_entry_exists', 'An entry with this update_id already exists.', 409)

    logger.info(f"Created entry {entry['update_id']} on post {post_id}")
    return JSONResponse(entry_response(entry, CHANGE_NEW), status_code=201)


@rt(f'{REST_PREFIX}/posts/{{post_id}}/entries/{{update_id}}', methods=['post'])
async def edit_entry(req, post_id: int, update_id: str):
    if not PostModel.get_post(post_id):
        return post_not_found()
    data = await read_json(req)
    if data is None:
        return rest_error('rest_invalid_json', 'Request body must be a JSON object.', 400)
    content = data.get('content')
    if content is not None and not isinstance(content, str):
        return rest_error('rest_invalid_param', 'Invalid parameter(s): content', 400)

    entry = EntryModel.update_entry(
        post_id, update_id,
        body=content,
        status=data.get('status'),
        is_pinned=data.get('is_pinned'),
    )
    if entry is None:
        return rest_error('rest_entry_invalid_id', 'Invalid entry ID.', 404)
    logger.info(f"Edited entry {update_id} on post {post_id}")
    return JSONResponse(entry_response(entry, CHANGE_MODIFIED))


# =============================================================================
# HOST PAGE
# =============================================================================

@rt('/posts/{post_id}', methods=['get'])
def show_post(req, post_id: int):
    """Server-rendered post with the liveblog container and its polling config"""
    post = PostModel.get_post(post_id)
    if not post:
        return Response('Post not found', status_code=404)
    return PostPage(post, EntryModel.get_entries(post_id), updates_url(req, post_id), LIVEBLOG_INTERVAL)
