"""Follow a liveblog page from the command line.

    python -m liveblog.watch http://localhost:8080/posts/1 --duration 60

Loads the host page, runs the client engine against it and logs every entry
that gets patched into the local copy of the page.
"""

import argparse
import asyncio
import logging
import os
from typing import List, Optional

import httpx
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_delay, wait_exponential

from .view.bootstrap import Liveblog
from .view.constants import Events, Selectors
from .view.page import Page

logger = logging.getLogger(__name__)

PAGE_LOAD_TIMEOUT_SECONDS = 30


@retry(
    stop=stop_after_delay(PAGE_LOAD_TIMEOUT_SECONDS),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(httpx.RequestError),
    before_sleep=before_sleep_log(logger, logging.DEBUG)
)
def load_page(url: str, timeout: float = 10.0) -> Page:
    """Fetch the host page, retrying while the server is unreachable"""
    response = httpx.get(url, timeout=timeout, follow_redirects=True)
    response.raise_for_status()
    return Page(response.text, url=str(response.url))


def entry_ids(page: Page) -> List[str]:
    return [el.get(Selectors.UPDATE_ID_ATTR) for el in page.select(f'.{Selectors.ENTRY_CLASS}')]


async def watch(page: Page, duration: Optional[float] = None) -> Liveblog:
    """Run the engine on page until duration elapses (forever when None)"""
    liveblog = Liveblog(page)

    def on_patch(event):
        target = event.target
        update_id = target.get(Selectors.UPDATE_ID_ATTR) if target is not None else None
        if update_id:
            logger.info(f"Entry {update_id}: {target.get_text(' ', strip=True)[:80]}")

    page.add_event_listener(Events.LOAD_EMBEDS, on_patch)
    liveblog.start()
    try:
        if duration is None:
            await asyncio.Event().wait()
        else:
            await asyncio.sleep(duration)
    finally:
        await liveblog.aclose()
    return liveblog


def main(argv=None):
    parser = argparse.ArgumentParser(description="Follow a liveblog page")
    parser.add_argument("url", help="URL of the post page")
    parser.add_argument("--duration", type=float, default=None, help="Seconds to watch (default: forever)")
    parser.add_argument("--scroll-y", type=int, default=0, help="Simulated reader scroll position")
    parser.add_argument("--hidden", action="store_true", help="Behave as a background tab")
    args = parser.parse_args(argv)

    log_level = getattr(logging, os.environ.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    logging.basicConfig(level=log_level)

    page = load_page(args.url)
    page.scroll_to(args.scroll_y)
    if args.hidden:
        page.set_visibility(False)

    try:
        asyncio.run(watch(page, args.duration))
    except KeyboardInterrupt:
        logger.info("Stopped")
    logger.info(f"{len(entry_ids(page))} entries on page, title: {page.title}")


if __name__ == "__main__":
    main()
