import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Iterable, Optional

from core import utils
from core.article_cache import ArticleListCache
from core.debounce import DebounceGate, ALL_FEEDS, folder_subject
from core.folder_tree import FolderTree
from core.models import (
    Article, AppSettings, Page, EMPTY_PAGE,
    FeedSelection, FolderSelection, SearchQuery, selection_from_view,
)
from core.mutations import OptimisticMutationLedger, FEED_SCOPE, FOLDER_SCOPE
from core.refresh_pool import RefreshWorkerPool

log = logging.getLogger(__name__)

IDLE = "idle"
LOADING = "loading"


class SelectionController:
    """Owns the current selection and wires refresh work to the article list.

    One instance is created at startup and handed to whatever drives the UI.
    All state lives on this object and its collaborators; nothing is global.
    """

    def __init__(self, backend, config=None, gate: Optional[DebounceGate] = None,
                 pool: Optional[RefreshWorkerPool] = None, cache: Optional[ArticleListCache] = None,
                 tree: Optional[FolderTree] = None, ledger: Optional[OptimisticMutationLedger] = None,
                 alert: Optional[Callable[[str, str], None]] = None,
                 confirm: Optional[Callable[[str, str], Any]] = None):
        config = config if config is not None else {}
        self.backend = backend
        self.settings = AppSettings()
        self.gate = gate or DebounceGate(
            feed_window_seconds=self.settings.feed_refresh_debounce_minutes * 60,
            all_window_seconds=self.settings.refresh_all_debounce_minutes * 60,
        )
        self.pool = pool or RefreshWorkerPool(
            backend.refresh_feed, self.gate, int(config.get("max_concurrent_refreshes", 3) or 3)
        )
        self.cache = cache or ArticleListCache(
            backend,
            page_size=int(config.get("page_size", 50) or 50),
            latest_window_hours=float(config.get("latest_window_hours", 24) or 24),
        )
        self.tree = tree or FolderTree(backend)
        self._alert = alert or _log_alert
        self._confirm = confirm
        self.ledger = ledger or OptimisticMutationLedger(backend, self.cache, self.tree, self._alert)

        self.state = IDLE
        self.selection = None
        self.sort_desc = True
        self.search_text: Optional[str] = None
        self.selected_article: Optional[Article] = None
        self.updating_feed_ids = frozenset()
        self._before_search = None
        self._tasks = set()
        self._stop_event: Optional[asyncio.Event] = None

    # --- Lifecycle ---

    async def start(self):
        await self.load_settings()
        await self.tree.reload()
        default = selection_from_view(self.settings.default_view_type, self.settings.default_view_id)
        if default is not None:
            await self.select(default)

    async def load_settings(self):
        try:
            settings = await self.backend.get_app_settings()
        except Exception as e:
            log.error(f"Failed to load settings, keeping current values: {e}")
            settings = self.settings
        self.apply_settings(settings)

    def apply_settings(self, settings):
        if isinstance(settings, dict):
            settings = AppSettings.from_dict(settings)
        self.settings = settings
        self.gate.configure(
            feed_window_seconds=settings.feed_refresh_debounce_minutes * 60,
            all_window_seconds=settings.refresh_all_debounce_minutes * 60,
        )
        utils.set_log_level(settings.log_level)

    async def save_settings(self, settings: AppSettings) -> bool:
        try:
            await self.backend.save_app_settings(settings)
        except Exception as e:
            log.error(f"Failed to save settings: {e}")
            self._alert("Settings", f"Could not save settings: {e}")
            return False
        self.apply_settings(settings)
        return True

    def start_auto_refresh(self) -> asyncio.Task:
        self._stop_event = asyncio.Event()
        return self._spawn(self.run_auto_refresh(self._stop_event))

    async def run_auto_refresh(self, stop_event: asyncio.Event):
        """Refresh stale feeds every ``auto_update_interval_minutes`` until stopped."""
        while not stop_event.is_set():
            interval = int(self.settings.auto_update_interval_minutes or 0) * 60
            if interval <= 0:
                await stop_event.wait()
                break
            try:
                await self.refresh_all()
            except Exception as e:
                log.error(f"Auto refresh error: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    async def drain(self):
        """Wait for background work (auto refreshes, reloads) started so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.pool.wait()

    async def close(self):
        if self._stop_event is not None:
            self._stop_event.set()
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        await self.pool.close()
        await self.backend.close()

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.error(f"Background task failed: {task.exception()}")

    # --- Selection ---

    async def select(self, selection) -> Page:
        if selection is not None and selection == self.selection and self.cache.cursor is not None:
            return Page(self.cache.articles, self.cache.page_index, self.cache.has_more)

        if isinstance(selection, SearchQuery):
            self.search_text = selection.text
        else:
            self.search_text = None
            self._before_search = None
        self.selection = selection
        self.selected_article = None
        return await self._load(selection)

    async def select_feed(self, feed_id: int) -> Page:
        return await self.select(FeedSelection(int(feed_id)))

    async def select_folder(self, folder_id: int) -> Page:
        return await self.select(FolderSelection(int(folder_id)))

    async def search(self, text: str) -> Page:
        text = (text or "").strip()
        if not text:
            return await self.clear_search()
        if not isinstance(self.selection, SearchQuery):
            self._before_search = self.selection
        return await self.select(SearchQuery(text))

    async def clear_search(self) -> Page:
        if not isinstance(self.selection, SearchQuery):
            return Page(self.cache.articles, self.cache.page_index, self.cache.has_more)
        previous = self._before_search
        self._before_search = None
        if previous is None:
            self.selection = None
            self.search_text = None
            self.cache.clear()
            return EMPTY_PAGE
        return await self.select(previous)

    async def set_sort(self, sort_desc: bool) -> Page:
        self.sort_desc = bool(sort_desc)
        return await self.reload_current()

    async def load_more(self) -> Page:
        return await self.cache.load_more()

    async def _load(self, selection) -> Page:
        self.state = LOADING
        page = await self.cache.reload(selection, self.sort_desc, self.search_text)
        if self.selection is not selection:
            # A newer selection owns the view and the loading state now.
            log.debug(f"Selection changed while loading {selection!r}; result discarded")
            return page
        if page.stale:
            # A reload of this same selection started meanwhile and finishes the transition.
            return Page(self.cache.articles, self.cache.page_index, self.cache.has_more)
        self.state = IDLE

        if isinstance(selection, FeedSelection) and not self.gate.is_fresh(selection.feed_id):
            self._spawn(self._auto_refresh_feed(selection))
        return page

    async def reload_current(self) -> Page:
        selection = self.selection
        if selection is None and not self.search_text:
            return EMPTY_PAGE
        self.state = LOADING
        page = await self.cache.reload(selection, self.sort_desc, self.search_text)
        if self.selection is selection and not page.stale:
            self.state = IDLE
        return page

    async def _auto_refresh_feed(self, selection: FeedSelection):
        await self._run_refresh([selection.feed_id])
        if self.selection == selection:
            await self.reload_current()

    # --- Refresh ---

    def _set_updating(self, feed_ids: Iterable[int]):
        self.updating_feed_ids = frozenset(feed_ids)

    async def _run_refresh(self, feed_ids) -> Dict[object, bool]:
        feed_ids = list(dict.fromkeys(feed_ids))
        # Shown as refreshing before any network call starts.
        self._set_updating(self.updating_feed_ids | set(feed_ids))
        try:
            results = await self.pool.submit(feed_ids)
        finally:
            self._set_updating(self.updating_feed_ids - set(feed_ids))
        failed = [s for s, ok in results.items() if not ok]
        if failed:
            log.warning(f"{len(failed)} of {len(results)} feed(s) failed to refresh")
        await self.tree.reload()
        return results

    def _reload_after_refresh(self):
        return isinstance(self.selection, (FeedSelection, FolderSelection))

    async def refresh_feed(self, feed_id: int) -> Dict[object, bool]:
        if self.gate.is_fresh(feed_id):
            log.debug(f"Feed {feed_id} is fresh; refresh skipped")
            return {}
        results = await self._run_refresh([feed_id])
        if self.selection == FeedSelection(feed_id):
            await self.reload_current()
        return results

    async def refresh_all(self) -> Dict[object, bool]:
        if self.gate.is_fresh(ALL_FEEDS):
            log.debug("Refresh all is debounced")
            return {}
        if not self.tree.folders:
            await self.tree.reload()
        stale = self.gate.stale(self.tree.feed_ids())
        if not stale:
            return {}
        results = await self._run_refresh(stale)
        self.gate.mark_refreshed(ALL_FEEDS)
        if self._reload_after_refresh():
            await self.reload_current()
        return results

    async def refresh_folder(self, folder_id: int) -> Dict[object, bool]:
        subject = folder_subject(folder_id)
        if self.gate.is_fresh(subject):
            log.debug(f"Refresh of folder {folder_id} is debounced")
            return {}
        if not self.tree.folders:
            await self.tree.reload()
        stale = self.gate.stale(self.tree.feed_ids_in_folder(folder_id))
        if not stale:
            return {}
        results = await self._run_refresh(stale)
        self.gate.mark_refreshed(subject)
        if self._reload_after_refresh():
            await self.reload_current()
        return results

    # --- Article state ---

    async def select_article(self, article: Article) -> bool:
        self.selected_article = article
        return await self.ledger.select_article(article)

    async def set_read(self, article: Article, value: bool = True) -> bool:
        return await self.ledger.set_read(article, value)

    async def toggle_saved(self, article: Article) -> bool:
        return await self.ledger.toggle_saved(article)

    async def mark_all_read(self, scope: str, target_id: int) -> int:
        return await self.ledger.mark_all_read(scope, target_id)

    async def mark_selection_read(self) -> int:
        if isinstance(self.selection, FeedSelection):
            return await self.mark_all_read(FEED_SCOPE, self.selection.feed_id)
        if isinstance(self.selection, FolderSelection):
            return await self.mark_all_read(FOLDER_SCOPE, self.selection.folder_id)
        return 0

    # --- Structure (tree is always refetched wholesale afterwards) ---

    async def _structural(self, title: str, command: Callable[[], Any]):
        try:
            result = await command()
        except Exception as e:
            log.error(f"{title} failed: {e}")
            self._alert(title, f"{title} failed: {e}")
            return False, None
        await self.tree.reload()
        return True, result

    async def _ask(self, title: str, message: str) -> bool:
        if self._confirm is None:
            log.info(f"{title}: no confirmation handler, action skipped")
            return False
        answer = self._confirm(title, message)
        if inspect.isawaitable(answer):
            answer = await answer
        return bool(answer)

    async def add_feed(self, url: str, folder_id: Optional[int] = None) -> Optional[int]:
        ok, feed_id = await self._structural("Add feed", lambda: self.backend.add_feed(url, folder_id))
        return feed_id if ok else None

    async def delete_feed(self, feed_id: int) -> bool:
        feed = self.tree.find_feed(feed_id)
        name = feed.name if feed else str(feed_id)
        if not await self._ask("Delete feed", f"Delete '{name}' and all of its articles?"):
            return False
        ok, _ = await self._structural("Delete feed", lambda: self.backend.delete_feed(feed_id))
        if ok and self.selection == FeedSelection(feed_id):
            self._drop_selection()
        return ok

    async def move_feed(self, feed_id: int, folder_id: int) -> bool:
        ok, _ = await self._structural("Move feed", lambda: self.backend.move_feed(feed_id, folder_id))
        return ok

    async def create_folder(self, name: str) -> Optional[int]:
        ok, folder_id = await self._structural("Create folder", lambda: self.backend.create_folder(name))
        return folder_id if ok else None

    async def rename_folder(self, folder_id: int, new_name: str) -> bool:
        ok, _ = await self._structural("Rename folder", lambda: self.backend.rename_folder(folder_id, new_name))
        return ok

    async def delete_folder(self, folder_id: int) -> bool:
        folder = self.tree.find_folder(folder_id)
        name = folder.name if folder else str(folder_id)
        if not await self._ask("Delete folder", f"Delete folder '{name}'? Its feeds move to Uncategorized."):
            return False
        ok, _ = await self._structural("Delete folder", lambda: self.backend.delete_folder(folder_id))
        if ok and self.selection == FolderSelection(folder_id):
            self._drop_selection()
        return ok

    def _drop_selection(self):
        self.selection = None
        self.search_text = None
        self.selected_article = None
        self.state = IDLE
        self.cache.clear()


def _log_alert(title: str, message: str):
    log.warning(f"{title}: {message}")
