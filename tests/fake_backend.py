"""In-memory async backend used by the core tests.

Calls can be held open with ``hold(key)`` / ``release(key)`` to create the
overlaps the core has to cope with, and made to fail with ``fail``.
"""
import asyncio
from dataclasses import replace

from core.models import Article, Feed, Folder, AppSettings
from providers.base import BackendError


def make_articles(feed_id, count, start_id=1, base_ts=1_700_000_000, **overrides):
    return [
        Article(id=start_id + i, feed_id=feed_id, title=f"Feed {feed_id} item {i}",
                url=f"http://example.com/{feed_id}/{start_id + i}", timestamp=base_ts - i * 60, **overrides)
        for i in range(count)
    ]


class FakeBackend:
    def __init__(self, folders=None, articles=None):
        self.folders = list(folders or [])
        self.articles = list(articles or [])
        self.settings = AppSettings()
        self.calls = []
        self.failures = set()
        self.gates = {}
        self.refresh_active = 0
        self.refresh_peak = 0
        self.closed = False

    # --- test controls ---

    def fail(self, name, arg=None):
        self.failures.add((name, arg))

    def hold(self, key):
        self.gates[key] = asyncio.Event()

    def release(self, key):
        self.gates.pop(key).set()

    def called(self, name):
        return [c[1:] for c in self.calls if c[0] == name]

    async def _enter(self, name, *args):
        self.calls.append((name,) + args)
        first = args[0] if args else None
        try:
            hash(first)
        except TypeError:
            first = None  # unhashable args (e.g. AppSettings) can't key gates/failures
        key = (name, first) if args else (name,)
        gate = self.gates.get(key) or self.gates.get(name)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if (name, None) in self.failures or (name, first) in self.failures:
            raise BackendError(f"{name} failed")

    def _page(self, rows, limit, offset, sort_desc):
        rows = sorted(rows, key=lambda a: (a.timestamp, a.id), reverse=sort_desc)
        return [replace(a) for a in rows[offset:offset + limit]]

    def _article(self, article_id):
        for a in self.articles:
            if a.id == article_id:
                return a
        raise BackendError(f"Unknown article {article_id}")

    def _feed_ids(self, folder_id):
        return {f.id for folder in self.folders if folder.id == folder_id for f in folder.feeds}

    # --- backend commands ---

    def get_name(self):
        return "In-memory"

    async def get_folders_with_feeds(self):
        await self._enter("get_folders_with_feeds")
        result = []
        for folder in self.folders:
            feeds = [
                replace(f, unread_count=sum(1 for a in self.articles if a.feed_id == f.id and not a.is_read))
                for f in folder.feeds
            ]
            result.append(Folder(folder.id, folder.name, feeds))
        return result

    async def refresh_feed(self, feed_id):
        self.refresh_active += 1
        self.refresh_peak = max(self.refresh_peak, self.refresh_active)
        try:
            await self._enter("refresh_feed", feed_id)
        finally:
            self.refresh_active -= 1
        return 0

    async def get_articles_for_feed(self, feed_id, limit, offset, sort_desc=True):
        await self._enter("get_articles_for_feed", feed_id, limit, offset, sort_desc)
        return self._page([a for a in self.articles if a.feed_id == feed_id], limit, offset, sort_desc)

    async def get_articles_for_folder(self, folder_id, limit, offset, sort_desc=True):
        await self._enter("get_articles_for_folder", folder_id, limit, offset, sort_desc)
        feed_ids = self._feed_ids(folder_id)
        return self._page([a for a in self.articles if a.feed_id in feed_ids], limit, offset, sort_desc)

    async def get_latest_articles(self, cutoff_timestamp, limit, offset, sort_desc=True):
        await self._enter("get_latest_articles", cutoff_timestamp, limit, offset, sort_desc)
        return self._page([a for a in self.articles if a.timestamp >= cutoff_timestamp], limit, offset, sort_desc)

    async def get_saved_articles(self, limit, offset, sort_desc=True):
        await self._enter("get_saved_articles", limit, offset, sort_desc)
        return self._page([a for a in self.articles if a.is_saved], limit, offset, sort_desc)

    async def search_articles(self, query, limit, offset, sort_desc=True):
        await self._enter("search_articles", query, limit, offset, sort_desc)
        q = query.lower()
        return self._page([a for a in self.articles if q in a.title.lower()], limit, offset, sort_desc)

    async def mark_article_read(self, article_id, read):
        await self._enter("mark_article_read", article_id, read)
        self._article(article_id).is_read = read

    async def mark_article_saved(self, article_id, saved):
        await self._enter("mark_article_saved", article_id, saved)
        self._article(article_id).is_saved = saved

    async def mark_all_read(self, scope, target_id):
        await self._enter("mark_all_read", scope, target_id)
        feed_ids = {target_id} if scope == "feed" else self._feed_ids(target_id)
        for a in self.articles:
            if a.feed_id in feed_ids and not a.is_saved:
                a.is_read = True

    async def get_app_settings(self):
        await self._enter("get_app_settings")
        return replace(self.settings)

    async def save_app_settings(self, settings):
        await self._enter("save_app_settings", settings)
        self.settings = replace(settings)

    async def add_feed(self, url, folder_id=None):
        await self._enter("add_feed", url, folder_id)
        new_id = max([f.id for f in self._all_feeds()] + [0]) + 1
        target = folder_id or 1
        for folder in self.folders:
            if folder.id == target:
                folder.feeds.append(Feed(new_id, url, url, target))
        return new_id

    async def delete_feed(self, feed_id):
        await self._enter("delete_feed", feed_id)
        for folder in self.folders:
            folder.feeds = [f for f in folder.feeds if f.id != feed_id]
        self.articles = [a for a in self.articles if a.feed_id != feed_id]

    async def move_feed(self, feed_id, folder_id):
        await self._enter("move_feed", feed_id, folder_id)

    async def create_folder(self, name):
        await self._enter("create_folder", name)
        new_id = max([f.id for f in self.folders] + [0]) + 1
        self.folders.append(Folder(new_id, name, []))
        return new_id

    async def rename_folder(self, folder_id, new_name):
        await self._enter("rename_folder", folder_id, new_name)
        for folder in self.folders:
            if folder.id == folder_id:
                folder.name = new_name

    async def delete_folder(self, folder_id):
        await self._enter("delete_folder", folder_id)
        self.folders = [f for f in self.folders if f.id != folder_id]

    async def close(self):
        self.closed = True

    def _all_feeds(self):
        return [f for folder in self.folders for f in folder.feeds]


def sample_tree():
    return [
        Folder(1, "Uncategorized", [Feed(1, "Alpha", "http://a.example/rss", 1)]),
        Folder(2, "News", [Feed(2, "Beta", "http://b.example/rss", 2), Feed(3, "Gamma", "http://c.example/rss", 2)]),
    ]
