"""Sanitizing HTML parser for server-rendered entry markup.

Entry content is rendered by the server but embeds author-submitted text, so it
is scrubbed before it reaches the live tree: dangerous elements are dropped,
event-handler attributes removed, and script-capable URLs stripped.

Two parser backends exist. ``lxml`` is preferred when BeautifulSoup has a
builder for it; otherwise the bundled ``html.parser`` is used. The choice is
made once at startup by select_sanitizer(), never per call.
"""

import logging
import re
from typing import Optional

from bs4 import BeautifulSoup, Comment
from bs4.builder import builder_registry

logger = logging.getLogger(__name__)

DROPPED_TAGS = {
    'script', 'style', 'iframe', 'frame', 'frameset', 'object', 'embed', 'applet',
    'base', 'link', 'meta', 'noscript', 'template',
}

URL_ATTRIBUTES = {'href', 'src', 'action', 'formaction', 'xlink:href', 'poster', 'background', 'cite'}

DROPPED_ATTRIBUTES = {'srcdoc'}

# Control chars and whitespace are ignored by browsers inside the scheme
_SCHEME_NOISE = re.compile(r'[\x00-\x20]+')
_UNSAFE_SCHEMES = ('javascript:', 'vbscript:', 'data:')
_SAFE_DATA_PREFIX = 'data:image/'


def is_unsafe_url(value) -> bool:
    if isinstance(value, list):
        value = ' '.join(value)
    cleaned = _SCHEME_NOISE.sub('', value or '').lower()
    if cleaned.startswith(_SAFE_DATA_PREFIX) and not cleaned.startswith('data:image/svg'):
        return False
    return cleaned.startswith(_UNSAFE_SCHEMES)


class HtmlSanitizer:
    """Parse markup with a BeautifulSoup backend and scrub it in place"""

    def __init__(self, features: str = 'html.parser'):
        self.features = features

    def __repr__(self):
        return f"HtmlSanitizer(features={self.features!r})"

    def sanitize(self, html: str) -> BeautifulSoup:
        soup = BeautifulSoup(html, self.features)

        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

        for tag in soup.find_all(sorted(DROPPED_TAGS)):
            if not tag.decomposed:
                tag.decompose()

        for tag in soup.find_all(True):
            for attr in list(tag.attrs):
                name = attr.lower()
                if name.startswith('on') or name in DROPPED_ATTRIBUTES:
                    del tag[attr]
                elif name in URL_ATTRIBUTES and is_unsafe_url(tag.get(attr)):
                    del tag[attr]
                elif name == 'srcset' and is_unsafe_url(tag.get(attr)):
                    del tag[attr]
        return soup

    def parse_fragment(self, html: str):
        """Return the first top-level element of the sanitized markup, or None"""
        soup = self.sanitize(html)
        # lxml wraps fragments in <html><body>, html.parser does not
        root = soup.body if soup.body is not None else soup
        return root.find(True, recursive=False)


def select_sanitizer() -> HtmlSanitizer:
    """Pick the sanitizer backend once, based on which tree builders are installed"""
    if builder_registry.lookup('lxml') is not None:
        sanitizer = HtmlSanitizer('lxml')
    else:
        sanitizer = HtmlSanitizer('html.parser')
    logger.debug(f"Using {sanitizer}")
    return sanitizer


def safe_parse_html(html, sanitizer: Optional[HtmlSanitizer] = None):
    """Parse an HTML string into a single sanitized element, or None when empty"""
    text = html.strip() if isinstance(html, str) else ''
    if not text:
        return None
    return (sanitizer or HtmlSanitizer()).parse_fragment(text)
