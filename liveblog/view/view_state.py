"""Per-page view state: unread count and the document title it drives"""

import re

TITLE_PREFIX = re.compile(r'^\(\d+\s*(?:new\s*)?\)\s*', re.IGNORECASE)


class ViewState:
    """Unread counter plus the original title it is prefixed onto"""

    def __init__(self, page):
        self.page = page
        self.unread_new_count = 0
        self._original_title = ''

    def get_original_title(self) -> str:
        """Capture the page title once, without any '(N) ' prefix from an earlier run"""
        if self._original_title:
            return self._original_title
        title = self.page.title
        self._original_title = TITLE_PREFIX.sub('', title).strip() or title
        return self._original_title

    def update_tab_title(self, new_count: int):
        base = self.get_original_title()
        self.page.title = f"({new_count}) {base}" if new_count > 0 else base

    def get_unread_count(self) -> int:
        return self.unread_new_count

    def set_unread_count(self, n: int):
        self.unread_new_count = max(int(n), 0)
        self.update_tab_title(self.unread_new_count)

    def increment_unread_count(self):
        self.unread_new_count += 1
        self.update_tab_title(self.unread_new_count)
