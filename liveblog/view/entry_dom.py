"""Build, patch and insert liveblog entry nodes in the live tree"""

import logging

from .constants import ENTRY_ENTER_ANIMATION_MS, Events, Selectors
from .sanitize import safe_parse_html
from .utils import add_class, format_timestamp, remove_class, update_id_selector

logger = logging.getLogger(__name__)

AVATAR_SIZE = 24


def find_entry(container, update_id):
    """Existing entry node for update_id inside container, or None"""
    if not update_id:
        return None
    return container.select_one(update_id_selector(update_id))


def trigger_embed_load(page, el):
    """Let embed widgets reprocess markup that was just patched into the page"""
    page.dispatch_event(Events.LOAD_EMBEDS, target=el)


def _is_safe_avatar_url(url: str) -> bool:
    return bool(url) and url.startswith(('https://', 'http://', '/'))


def _build_header(page, update):
    header = page.new_tag('div', **{'class': 'liveblog-entry__header'})
    time_el = page.new_tag('time', **{'class': 'liveblog-entry__time'})
    time_el.string = format_timestamp(update.timestamp)
    authors = page.new_tag('span', **{'class': 'liveblog-entry__authors'})

    if update.coauthors:
        avatars = page.new_tag('span', **{'class': 'liveblog-entry__author-avatars'})
        for coauthor in update.coauthors:
            if _is_safe_avatar_url(coauthor.avatar_url):
                avatars.append(page.new_tag(
                    'img', src=coauthor.avatar_url, alt='',
                    width=str(AVATAR_SIZE), height=str(AVATAR_SIZE),
                ))
        names = page.new_tag('span', **{'class': 'liveblog-entry__author-names'})
        names.string = ', '.join(c.display_name for c in update.coauthors)
        authors.append(avatars)
        authors.append(' ')
        authors.append(names)
    else:
        authors.string = update.author

    header.append(time_el)
    header.append(' ')
    header.append(authors)
    return header


def _build_fallback(page, update):
    """Minimal entry for updates that arrive without rendered markup"""
    attrs = {'class': Selectors.ENTRY_CLASS, Selectors.UPDATE_ID_ATTR: update.id}
    if update.timestamp:
        attrs['data-timestamp'] = str(update.timestamp)
    el = page.new_tag('div', **attrs)

    if update.author or update.coauthors:
        el.append(_build_header(page, update))

    body = page.new_tag('div', **{'class': 'liveblog-entry__content'})
    body.append(page.new_tag('p'))
    el.append(body)
    return el


def _parse_content(context, update):
    el = safe_parse_html(update.content, context.sanitizer)
    if el is not None and update.id and not el.get(Selectors.UPDATE_ID_ATTR):
        # Lookups and duplicate checks key off this attribute
        el[Selectors.UPDATE_ID_ATTR] = update.id
    return el


def build_new_entry_element(context, update):
    """Node for a new update: parsed content when present, structural fallback otherwise"""
    el = None
    if update.has_content:
        el = _parse_content(context, update)
    if el is None and update.id:
        el = _build_fallback(context.page, update)
    return el


def apply_update_to_entry(context, container, update):
    """Replace the node of a modified update with its new markup.

    Updates without an id or content, and ids not present in the container, are
    skipped: there is nothing sensible to render for an edit we cannot see.
    """
    if not update.id or not update.has_content:
        return None
    existing = find_entry(container, update.id)
    if existing is None or existing.parent is None:
        logger.debug(f"Modified update {update.id} not in container, skipping")
        return None
    new_el = _parse_content(context, update)
    if new_el is None:
        return None
    existing.replace_with(new_el)
    trigger_embed_load(context.page, new_el)
    return new_el


def insert_new_entry(context, container, el):
    """Prepend el (newest first, always above any load-more button) with the enter animation"""
    if el is None:
        return
    add_class(el, Selectors.ENTRY_ENTER_CLASS)
    container.insert(0, el)
    trigger_embed_load(context.page, el)
    context.scheduler.schedule(
        ENTRY_ENTER_ANIMATION_MS,
        lambda: remove_class(el, Selectors.ENTRY_ENTER_CLASS),
    )
