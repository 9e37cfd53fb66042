import time
import logging
from typing import Callable, Iterable, Optional, Tuple

from core.models import (
    Article, Page, PageCursor, EMPTY_PAGE,
    FeedSelection, FolderSelection, VirtualCollection, SearchQuery,
    LATEST, SAVED,
)

log = logging.getLogger(__name__)


class ArticleListCache:
    """Paginated, read-through projection of the article list for one selection.

    ``reload`` always starts from page 0 and replaces the held list. A newer
    ``reload`` supersedes any load still pending: results from an older
    generation are returned flagged as stale and never touch ``articles``.
    """

    def __init__(self, backend, page_size: int = 50, latest_window_hours: float = 24,
                 clock: Callable[[], float] = time.time):
        self.backend = backend
        self.page_size = max(1, int(page_size))
        self.latest_window_hours = float(latest_window_hours)
        self._clock = clock
        self.articles: Tuple[Article, ...] = ()
        self.cursor: Optional[PageCursor] = None
        self.has_more = False
        self.is_loading = False
        self._generation = 0

    @property
    def selection(self):
        return self.cursor.selection if self.cursor else None

    @property
    def page_index(self) -> int:
        return self.cursor.page_index if self.cursor else 0

    def __len__(self):
        return len(self.articles)

    def find(self, article_id: int) -> Optional[Article]:
        for article in self.articles:
            if article.id == article_id:
                return article
        return None

    def clear(self):
        self._generation += 1
        self.articles = ()
        self.cursor = None
        self.has_more = False
        self.is_loading = False

    async def reload(self, selection, sort_desc: bool = True, search: Optional[str] = None) -> Page:
        if isinstance(selection, SearchQuery) and not search:
            search = selection.text
        search = (search or "").strip() or None

        cursor = PageCursor(selection, 0, self.page_size, bool(sort_desc), search)
        self._generation += 1
        generation = self._generation

        # Never show the previous selection's list while the new one loads.
        self.cursor = cursor
        self.articles = ()
        self.has_more = False
        self.is_loading = True

        try:
            rows = await self._fetch(cursor)
        except Exception as e:
            if generation != self._generation:
                return Page(stale=True)
            log.error(f"Failed to load articles for {selection!r}: {e}")
            self.is_loading = False
            return EMPTY_PAGE

        if generation != self._generation:
            log.debug(f"Discarding stale page for {selection!r}")
            return Page(tuple(rows), 0, False, stale=True)

        articles = tuple(rows[:self.page_size])
        self.articles = articles
        self.has_more = len(articles) == self.page_size
        self.is_loading = False
        return Page(articles, 0, self.has_more)

    async def load_more(self) -> Page:
        cursor = self.cursor
        if cursor is None or not self._has_source(cursor):
            return EMPTY_PAGE
        if not self.has_more or self.is_loading:
            return EMPTY_PAGE

        next_cursor = cursor.next()
        generation = self._generation
        self.is_loading = True
        try:
            rows = await self._fetch(next_cursor)
        except Exception as e:
            if generation == self._generation:
                log.error(f"Failed to load more articles: {e}")
                self.is_loading = False
            return EMPTY_PAGE

        if generation != self._generation:
            log.debug("Discarding stale load-more page")
            return Page(tuple(rows), next_cursor.page_index, False, stale=True)

        rows = tuple(rows[:self.page_size])
        if rows:
            self.articles = self.articles + rows
            self.cursor = next_cursor
            self.has_more = len(rows) == self.page_size
        else:
            self.has_more = False
        self.is_loading = False
        return Page(rows, self.cursor.page_index, self.has_more)

    @staticmethod
    def _has_source(cursor: PageCursor) -> bool:
        return bool(cursor.search_query) or cursor.selection is not None

    async def _fetch(self, cursor: PageCursor) -> list:
        limit = cursor.page_size
        offset = cursor.offset
        desc = cursor.sort_desc
        sel = cursor.selection

        if cursor.search_query:
            rows = await self.backend.search_articles(cursor.search_query, limit, offset, desc)
        elif isinstance(sel, VirtualCollection) and sel.kind == LATEST:
            cutoff = int(self._clock() - self.latest_window_hours * 3600)
            rows = await self.backend.get_latest_articles(cutoff, limit, offset, desc)
        elif isinstance(sel, VirtualCollection) and sel.kind == SAVED:
            rows = await self.backend.get_saved_articles(limit, offset, desc)
        elif isinstance(sel, FeedSelection):
            rows = await self.backend.get_articles_for_feed(sel.feed_id, limit, offset, desc)
        elif isinstance(sel, FolderSelection):
            rows = await self.backend.get_articles_for_folder(sel.folder_id, limit, offset, desc)
        else:
            rows = []
        return _coerce(rows)


def _coerce(rows: Optional[Iterable]) -> list:
    return [r if isinstance(r, Article) else Article.from_dict(r) for r in (rows or [])]
