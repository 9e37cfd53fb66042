import abc
from typing import List, Dict, Any, Optional

from core.models import Article, Folder, AppSettings


class BackendError(Exception):
    """A backend command failed (network, parse, storage or bad arguments)."""


class FeedBackend(abc.ABC):
    """Abstract command boundary the client core talks to.

    Every command is a coroutine: the core awaits it on its event loop and
    treats each call as a suspension point. Implementations raise
    ``BackendError`` on failure.
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    @abc.abstractmethod
    def get_name(self) -> str:
        pass

    @abc.abstractmethod
    async def get_folders_with_feeds(self) -> List[Folder]:
        pass

    @abc.abstractmethod
    async def refresh_feed(self, feed_id: int) -> int:
        """Fetch one feed and store new articles. Returns the number inserted."""
        pass

    @abc.abstractmethod
    async def get_articles_for_feed(self, feed_id: int, limit: int, offset: int, sort_desc: bool = True) -> List[Article]:
        pass

    @abc.abstractmethod
    async def get_articles_for_folder(self, folder_id: int, limit: int, offset: int, sort_desc: bool = True) -> List[Article]:
        pass

    @abc.abstractmethod
    async def get_latest_articles(self, cutoff_timestamp: int, limit: int, offset: int, sort_desc: bool = True) -> List[Article]:
        pass

    @abc.abstractmethod
    async def get_saved_articles(self, limit: int, offset: int, sort_desc: bool = True) -> List[Article]:
        pass

    @abc.abstractmethod
    async def search_articles(self, query: str, limit: int, offset: int, sort_desc: bool = True) -> List[Article]:
        pass

    @abc.abstractmethod
    async def mark_article_read(self, article_id: int, read: bool) -> None:
        pass

    @abc.abstractmethod
    async def mark_article_saved(self, article_id: int, saved: bool) -> None:
        pass

    @abc.abstractmethod
    async def mark_all_read(self, scope: str, target_id: int) -> None:
        """scope is "feed" or "folder"."""
        pass

    @abc.abstractmethod
    async def get_app_settings(self) -> AppSettings:
        pass

    @abc.abstractmethod
    async def save_app_settings(self, settings: AppSettings) -> None:
        pass

    # --- Structural commands ---

    @abc.abstractmethod
    async def add_feed(self, url: str, folder_id: Optional[int] = None) -> int:
        pass

    @abc.abstractmethod
    async def delete_feed(self, feed_id: int) -> None:
        pass

    @abc.abstractmethod
    async def move_feed(self, feed_id: int, folder_id: int) -> None:
        pass

    @abc.abstractmethod
    async def create_folder(self, name: str) -> int:
        pass

    @abc.abstractmethod
    async def rename_folder(self, folder_id: int, new_name: str) -> None:
        pass

    @abc.abstractmethod
    async def delete_folder(self, folder_id: int) -> None:
        pass

    async def close(self) -> None:
        """Release resources. Default: nothing to do."""
        return None
