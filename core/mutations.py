import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from core.models import Article, FolderSelection

log = logging.getLogger(__name__)

FEED_SCOPE = "feed"
FOLDER_SCOPE = "folder"


class OptimisticUpdate:
    """Two-phase change of one attribute.

    ``apply`` snapshots the current value and writes the new one immediately.
    ``commit`` awaits the backend command and, if it fails, writes the snapshot
    back. The snapshot is restored as-is rather than inverting whatever the
    attribute holds by then, so an unrelated later change is not clobbered
    into the wrong state.
    """

    def __init__(self, target: Any, field: str, value: Any):
        self.target = target
        self.field = field
        self.value = value
        self.prior = None
        self.applied = False

    def apply(self) -> "OptimisticUpdate":
        self.prior = getattr(self.target, self.field)
        setattr(self.target, self.field, self.value)
        self.applied = True
        return self

    def restore(self):
        if self.applied:
            setattr(self.target, self.field, self.prior)

    async def commit(self, command: Callable[[], Awaitable[Any]]) -> bool:
        if not self.applied:
            self.apply()
        try:
            await command()
        except asyncio.CancelledError:
            self.restore()
            raise
        except Exception as e:
            log.warning(f"Rolling back {self.field}={self.value!r} on {getattr(self.target, 'id', self.target)!r}: {e}")
            self.restore()
            return False
        return True


class OptimisticMutationLedger:
    """Read/saved state changes applied locally first, backend second."""

    def __init__(self, backend, cache, tree=None, alert: Optional[Callable[[str, str], None]] = None):
        self.backend = backend
        self.cache = cache
        self.tree = tree
        self._alert = alert or _log_alert

    async def set_read(self, article: Article, value: bool = True) -> bool:
        value = bool(value)
        update = OptimisticUpdate(article, "is_read", value).apply()
        return await update.commit(lambda: self.backend.mark_article_read(article.id, value))

    async def toggle_saved(self, article: Article) -> bool:
        saving = not article.is_saved
        saved = OptimisticUpdate(article, "is_saved", saving).apply()
        if not saving:
            return await saved.commit(lambda: self.backend.mark_article_saved(article.id, False))

        # Saved for later means unread again. Both fields change before either command runs.
        unread = OptimisticUpdate(article, "is_read", False).apply()
        ok_saved, ok_read = await asyncio.gather(
            saved.commit(lambda: self.backend.mark_article_saved(article.id, True)),
            unread.commit(lambda: self.backend.mark_article_read(article.id, False)),
        )
        return ok_saved and ok_read

    async def select_article(self, article: Article) -> bool:
        if article.is_read:
            return True
        # Best-effort counter until the next full tree reload.
        adjusted = self.tree.adjust_unread(article.feed_id, -1) if self.tree else False
        snapshot = self.tree.folders if adjusted else None
        ok = await self.set_read(article, True)
        # A reload while the command ran already brought the backend's count.
        if not ok and adjusted and self.tree.folders is snapshot:
            self.tree.adjust_unread(article.feed_id, 1)
        return ok

    async def mark_all_read(self, scope: str, target_id: int) -> int:
        """Mark every article of a feed or folder read.

        The backend commits first; only then is the cached list mirrored.
        Saved articles keep their read flag. Returns the number of cached
        articles changed, or -1 when the backend command failed.
        """
        scope = (scope or "").lower()
        if scope not in (FEED_SCOPE, FOLDER_SCOPE):
            raise ValueError(f"Unknown mark-all-read scope: {scope!r}")

        try:
            await self.backend.mark_all_read(scope, target_id)
        except Exception as e:
            log.error(f"Mark all read failed for {scope} {target_id}: {e}")
            self._alert("Mark all as read", f"Could not mark this {scope} as read: {e}")
            return -1

        if scope == FEED_SCOPE:
            feed_ids = {target_id}
        else:
            feed_ids = set(self.tree.feed_ids_in_folder(target_id)) if self.tree else set()
        whole_view = scope == FOLDER_SCOPE and self.cache.selection == FolderSelection(target_id)

        changed = 0
        for article in self.cache.articles:
            if article.is_saved or article.is_read:
                continue
            if whole_view or article.feed_id in feed_ids:
                article.is_read = True
                changed += 1

        if self.tree is not None:
            await self.tree.reload()
        return changed


def _log_alert(title: str, message: str):
    log.warning(f"{title}: {message}")
