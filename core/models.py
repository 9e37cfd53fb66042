from dataclasses import dataclass, field, fields
from typing import List, Dict, Any, Optional, Tuple


@dataclass
class Article:
    id: int
    feed_id: int
    title: str = ""
    summary: str = ""
    author: str = ""
    url: str = ""
    timestamp: int = 0
    is_read: bool = False
    is_saved: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        return cls(
            id=int(data["id"]),
            feed_id=int(data["feed_id"]),
            title=data.get("title") or "",
            summary=data.get("summary") or "",
            author=data.get("author") or "",
            url=data.get("url") or "",
            timestamp=int(data.get("timestamp") or 0),
            is_read=bool(data.get("is_read", False)),
            is_saved=bool(data.get("is_saved", False)),
        )


@dataclass
class Feed:
    id: int
    name: str
    url: str
    folder_id: int
    unread_count: int = 0
    has_error: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feed":
        return cls(
            id=int(data["id"]),
            name=data.get("name") or "",
            url=data.get("url") or "",
            folder_id=int(data.get("folder_id") or 0),
            unread_count=int(data.get("unread_count") or 0),
            has_error=bool(data.get("has_error", False)),
        )


@dataclass
class Folder:
    id: int
    name: str
    feeds: List[Feed] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Folder":
        feeds = [f if isinstance(f, Feed) else Feed.from_dict(f) for f in data.get("feeds") or []]
        return cls(id=int(data["id"]), name=data.get("name") or "", feeds=feeds)


@dataclass
class AppSettings:
    feed_refresh_debounce_minutes: int = 4
    refresh_all_debounce_minutes: int = 0
    auto_update_interval_minutes: int = 30
    log_level: str = "info"
    default_view_type: str = "latest"
    default_view_id: int = -1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# --- Selections ---
# Exactly one selection is active at a time (or none). Selections are frozen so
# they can be compared and used as cache keys.

LATEST = "latest"
SAVED = "saved"


@dataclass(frozen=True)
class FeedSelection:
    feed_id: int


@dataclass(frozen=True)
class FolderSelection:
    folder_id: int


@dataclass(frozen=True)
class VirtualCollection:
    kind: str  # LATEST or SAVED


@dataclass(frozen=True)
class SearchQuery:
    text: str


@dataclass(frozen=True)
class PageCursor:
    """Complete key for a single page fetch."""
    selection: Optional[object]
    page_index: int
    page_size: int
    sort_desc: bool
    search_query: Optional[str]

    @property
    def offset(self) -> int:
        return self.page_index * self.page_size

    def next(self) -> "PageCursor":
        return PageCursor(self.selection, self.page_index + 1, self.page_size, self.sort_desc, self.search_query)


@dataclass(frozen=True)
class Page:
    articles: Tuple[Article, ...] = ()
    page_index: int = 0
    has_more: bool = False
    stale: bool = False

    def __len__(self) -> int:
        return len(self.articles)


EMPTY_PAGE = Page()


def selection_from_view(view_type: str, view_id: int = -1):
    """Map a stored default-view setting to a selection."""
    view_type = (view_type or "").lower()
    if view_type == "feed" and view_id is not None and int(view_id) > 0:
        return FeedSelection(int(view_id))
    if view_type == "folder" and view_id is not None and int(view_id) > 0:
        return FolderSelection(int(view_id))
    if view_type == SAVED:
        return VirtualCollection(SAVED)
    if view_type == LATEST:
        return VirtualCollection(LATEST)
    return None
