import logging
from dataclasses import replace
from typing import List, Optional, Tuple

from core.models import Feed, Folder

log = logging.getLogger(__name__)


class FolderTree:
    """Snapshot of folders and their feeds, always refetched wholesale.

    The snapshot is a tuple that is replaced, never edited in place, so a
    reader holding ``folders`` keeps a consistent view while a reload runs.
    """

    def __init__(self, backend):
        self.backend = backend
        self.folders: Tuple[Folder, ...] = ()

    async def reload(self) -> bool:
        try:
            result = await self.backend.get_folders_with_feeds()
        except Exception as e:
            log.error(f"Failed to load folders: {e}")
            return False
        self.folders = tuple(f if isinstance(f, Folder) else Folder.from_dict(f) for f in (result or []))
        return True

    def feeds(self) -> List[Feed]:
        return [feed for folder in self.folders for feed in folder.feeds]

    def feed_ids(self) -> List[int]:
        return [feed.id for feed in self.feeds()]

    def find_feed(self, feed_id: int) -> Optional[Feed]:
        for folder in self.folders:
            for feed in folder.feeds:
                if feed.id == feed_id:
                    return feed
        return None

    def find_folder(self, folder_id: int) -> Optional[Folder]:
        for folder in self.folders:
            if folder.id == folder_id:
                return folder
        return None

    def feed_ids_in_folder(self, folder_id: int) -> List[int]:
        folder = self.find_folder(folder_id)
        if folder is None:
            return []
        return [feed.id for feed in folder.feeds]

    def total_unread(self) -> int:
        return sum(feed.unread_count for feed in self.feeds())

    def adjust_unread(self, feed_id: int, delta: int) -> bool:
        """Locally nudge a feed's unread counter until the next full reload."""
        changed = False
        folders = []
        for folder in self.folders:
            if any(feed.id == feed_id for feed in folder.feeds):
                feeds = [
                    replace(feed, unread_count=max(0, feed.unread_count + delta)) if feed.id == feed_id else feed
                    for feed in folder.feeds
                ]
                folder = replace(folder, feeds=feeds)
                changed = True
            folders.append(folder)
        if changed:
            self.folders = tuple(folders)
        return changed
