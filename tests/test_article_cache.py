import asyncio
import unittest

from core.article_cache import ArticleListCache
from core.models import FeedSelection, FolderSelection, VirtualCollection, SearchQuery, LATEST, SAVED
from fake_backend import FakeBackend, make_articles, sample_tree


async def settle(ticks=10):
    for _ in range(ticks):
        await asyncio.sleep(0)


class ArticleListCacheTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.backend = FakeBackend(
            folders=sample_tree(),
            articles=make_articles(1, 7, start_id=1) + make_articles(2, 3, start_id=100),
        )
        self.cache = ArticleListCache(self.backend, page_size=3, latest_window_hours=24, clock=lambda: 1_700_000_000)

    async def test_reload_returns_full_first_page(self):
        page = await self.cache.reload(FeedSelection(1))
        self.assertEqual(3, len(page))
        self.assertTrue(page.has_more)
        self.assertEqual(0, self.cache.page_index)
        self.assertEqual([1, 2, 3], [a.id for a in self.cache.articles])
        self.assertEqual([(1, 3, 0, True)], self.backend.called("get_articles_for_feed"))

    async def test_pages_until_short_page(self):
        await self.cache.reload(FeedSelection(1))
        second = await self.cache.load_more()
        self.assertEqual(1, second.page_index)
        self.assertTrue(second.has_more)
        third = await self.cache.load_more()
        self.assertEqual(1, len(third))
        self.assertFalse(self.cache.has_more)
        self.assertEqual(list(range(1, 8)), [a.id for a in self.cache.articles])
        self.assertEqual(2, self.cache.page_index)

        calls_before = len(self.backend.calls)
        nothing = await self.cache.load_more()
        self.assertEqual(0, len(nothing))
        self.assertEqual(2, self.cache.page_index)
        self.assertEqual(calls_before, len(self.backend.calls))

    async def test_exactly_full_last_page_costs_one_empty_fetch(self):
        page = await self.cache.reload(FeedSelection(2))
        self.assertEqual(3, len(page))
        self.assertTrue(page.has_more)
        empty = await self.cache.load_more()
        self.assertEqual(0, len(empty))
        self.assertFalse(self.cache.has_more)
        self.assertEqual(0, self.cache.page_index)

    async def test_reload_replaces_list_and_resets_cursor(self):
        await self.cache.reload(FeedSelection(1))
        await self.cache.load_more()
        page = await self.cache.reload(FeedSelection(1), sort_desc=False)
        self.assertEqual(0, self.cache.page_index)
        self.assertEqual([7, 6, 5], [a.id for a in page.articles])
        self.assertEqual(3, len(self.cache.articles))

    async def test_load_more_without_selection_is_noop(self):
        page = await self.cache.load_more()
        self.assertEqual(0, len(page))
        await self.cache.reload(None)
        self.assertEqual((), self.cache.articles)
        self.assertFalse(self.cache.has_more)
        self.assertEqual(0, len(await self.cache.load_more()))
        self.assertEqual([], self.backend.calls)

    async def test_load_more_is_not_reentrant(self):
        await self.cache.reload(FeedSelection(1))
        self.backend.hold("get_articles_for_feed")
        first = asyncio.ensure_future(self.cache.load_more())
        await settle()
        second = await self.cache.load_more()
        self.assertEqual(0, len(second))
        self.backend.release("get_articles_for_feed")
        self.assertEqual(3, len(await first))
        self.assertEqual(2, len(self.backend.called("get_articles_for_feed")))

    async def test_source_priority(self):
        await self.cache.reload(FeedSelection(1), search="item")
        self.assertEqual(1, len(self.backend.called("search_articles")))
        self.assertEqual(0, len(self.backend.called("get_articles_for_feed")))

        await self.cache.reload(SearchQuery("item 2"))
        self.assertEqual(("item 2", 3, 0, True), self.backend.called("search_articles")[-1])

        await self.cache.reload(VirtualCollection(LATEST))
        cutoff = self.backend.called("get_latest_articles")[0][0]
        self.assertEqual(1_700_000_000 - 24 * 3600, cutoff)

        await self.cache.reload(VirtualCollection(SAVED), sort_desc=False)
        self.assertEqual([(3, 0, False)], self.backend.called("get_saved_articles"))

        await self.cache.reload(FolderSelection(2))
        self.assertEqual([(2, 3, 0, True)], self.backend.called("get_articles_for_folder"))

    async def test_offset_follows_page_index(self):
        await self.cache.reload(FolderSelection(2))
        await self.cache.load_more()
        self.assertEqual((2, 3, 3, True), self.backend.called("get_articles_for_folder")[-1])

    async def test_stale_reload_is_discarded(self):
        self.backend.hold(("get_articles_for_feed", 1))
        slow = asyncio.ensure_future(self.cache.reload(FeedSelection(1)))
        await settle()
        await self.cache.reload(FeedSelection(2))
        self.backend.release(("get_articles_for_feed", 1))
        stale = await slow

        self.assertTrue(stale.stale)
        self.assertEqual(FeedSelection(2), self.cache.selection)
        self.assertTrue(all(a.feed_id == 2 for a in self.cache.articles))
        self.assertFalse(self.cache.is_loading)

    async def test_stale_load_more_is_discarded(self):
        await self.cache.reload(FeedSelection(1))
        self.backend.hold("get_articles_for_feed")
        more = asyncio.ensure_future(self.cache.load_more())
        await settle()
        self.backend.release("get_articles_for_feed")
        await self.cache.reload(FeedSelection(2))
        page = await more
        self.assertTrue(page.stale)
        self.assertTrue(all(a.feed_id == 2 for a in self.cache.articles))

    async def test_fetch_failure_clears_list(self):
        await self.cache.reload(FeedSelection(1))
        self.backend.fail("get_articles_for_folder")
        page = await self.cache.reload(FolderSelection(2))
        self.assertEqual(0, len(page))
        self.assertEqual((), self.cache.articles)
        self.assertFalse(self.cache.has_more)
        self.assertFalse(self.cache.is_loading)

    async def test_load_more_failure_keeps_loaded_pages(self):
        await self.cache.reload(FeedSelection(1))
        self.backend.fail("get_articles_for_feed")
        page = await self.cache.load_more()
        self.assertEqual(0, len(page))
        self.assertEqual(3, len(self.cache.articles))
        self.assertEqual(0, self.cache.page_index)
        self.assertFalse(self.cache.is_loading)


if __name__ == '__main__':
    unittest.main()
