import asyncio
import time
import logging
import sqlite3
from typing import List, Dict, Any, Optional

import feedparser
import requests

from .base import FeedBackend, BackendError
from core import utils
from core.db import get_connection, init_db, UNCATEGORIZED_ID
from core.discovery import find_feed_link, looks_like_html
from core.models import Article, Feed, Folder, AppSettings

log = logging.getLogger(__name__)

ARTICLE_COLUMNS = "a.id, a.feed_id, a.title, a.author, a.summary, a.url, a.timestamp, a.is_read, a.is_saved"


class LocalBackend(FeedBackend):
    """SQLite storage plus direct HTTP fetching.

    Blocking work (sqlite, requests) runs in worker threads so the caller's
    event loop never blocks. Each call opens its own connection.
    """

    def __init__(self, config: Dict[str, Any], db_path: Optional[str] = None, config_manager=None):
        super().__init__(config)
        self.db_path = db_path or config.get("db_file") or None
        self.config_manager = config_manager
        init_db(self.db_path)

    def get_name(self) -> str:
        return "Local RSS"

    def _connect(self):
        return get_connection(self.db_path)

    async def _call(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except BackendError:
            raise
        except (sqlite3.Error, requests.RequestException, ValueError, KeyError) as e:
            raise BackendError(str(e)) from e

    # --- Folders / feeds ---

    async def get_folders_with_feeds(self) -> List[Folder]:
        return await self._call(self._get_folders_with_feeds)

    def _get_folders_with_feeds(self) -> List[Folder]:
        conn = self._connect()
        try:
            c = conn.cursor()
            c.execute("SELECT id, name FROM folders ORDER BY name COLLATE NOCASE")
            folders = [Folder(id=row["id"], name=row["name"]) for row in c.fetchall()]
            by_id = {f.id: f for f in folders}

            c.execute("""
                SELECT f.id, f.name, f.url, f.folder_id, f.has_error,
                    (SELECT COUNT(*) FROM articles a WHERE a.feed_id = f.id AND a.is_read = 0) AS unread_count
                FROM feeds f
                ORDER BY f.name COLLATE NOCASE
            """)
            for row in c.fetchall():
                folder = by_id.get(row["folder_id"])
                if folder is None:
                    continue
                folder.feeds.append(Feed(
                    id=row["id"],
                    name=row["name"],
                    url=row["url"],
                    folder_id=row["folder_id"],
                    unread_count=int(row["unread_count"] or 0),
                    has_error=bool(row["has_error"]),
                ))
            return folders
        finally:
            conn.close()

    async def refresh_feed(self, feed_id: int) -> int:
        return await self._call(self._refresh_feed, feed_id)

    def _refresh_feed(self, feed_id: int) -> int:
        conn = self._connect()
        try:
            row = conn.execute("SELECT url FROM feeds WHERE id = ?", (feed_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            raise BackendError(f"Unknown feed {feed_id}")

        try:
            resp = self._fetch(row["url"])
            parsed = self._parse(resp.content)
        except BackendError:
            self._set_feed_error(feed_id, True)
            raise

        count = self._store_entries(feed_id, parsed.entries)
        self._set_feed_error(feed_id, False)
        log.info(f"Feed {feed_id}: {count} new article(s)")
        return count

    def _fetch(self, url: str):
        feed_timeout = max(1, int(self.config.get("feed_timeout_seconds", 15) or 15))
        retries = max(0, int(self.config.get("feed_retry_attempts", 1) or 0))
        last_exc = None
        for attempt in range(1, retries + 2):
            try:
                resp = utils.safe_requests_get(url, timeout=feed_timeout)
                resp.raise_for_status()
                return resp
            except requests.RequestException as e:
                last_exc = e
                if attempt <= retries:
                    time.sleep(min(4, attempt))  # simple backoff
        raise BackendError(f"Network error: {last_exc}")

    @staticmethod
    def _parse(content):
        parsed = feedparser.parse(content)
        if parsed.bozo and not parsed.entries and not parsed.feed.get("title"):
            raise BackendError(f"Parse error: {parsed.get('bozo_exception')}")
        return parsed

    def _store_entries(self, feed_id: int, entries) -> int:
        conn = self._connect()
        count = 0
        try:
            c = conn.cursor()
            for entry in entries:
                url = entry.get("link") or ""
                if not url:
                    continue
                summary = entry.get("summary") or ""
                if not summary and entry.get("content"):
                    summary = entry.content[0].get("value", "")
                timestamp = (
                    utils.struct_to_timestamp(entry.get("published_parsed") or entry.get("updated_parsed"))
                    or utils.parse_timestamp(entry.get("published") or entry.get("updated"))
                )
                c.execute(
                    "INSERT OR IGNORE INTO articles (feed_id, title, author, summary, url, timestamp) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (feed_id, entry.get("title") or "No Title", entry.get("author") or "", summary, url, timestamp),
                )
                count += c.rowcount if c.rowcount > 0 else 0
            conn.commit()
        finally:
            conn.close()
        return count

    def _set_feed_error(self, feed_id: int, has_error: bool):
        conn = self._connect()
        try:
            conn.execute("UPDATE feeds SET has_error = ? WHERE id = ?", (1 if has_error else 0, feed_id))
            conn.commit()
        finally:
            conn.close()

    # --- Article pages ---

    def _query_articles(self, where: str, params: tuple, limit: int, offset: int, sort_desc: bool) -> List[Article]:
        order = "DESC" if sort_desc else "ASC"
        sql = (
            f"SELECT {ARTICLE_COLUMNS} FROM articles a JOIN feeds f ON a.feed_id = f.id "
            f"WHERE {where} ORDER BY a.timestamp {order}, a.id {order} LIMIT ? OFFSET ?"
        )
        conn = self._connect()
        try:
            rows = conn.execute(sql, params + (int(limit), max(0, int(offset)))).fetchall()
        finally:
            conn.close()
        return [Article.from_dict(dict(row)) for row in rows]

    async def get_articles_for_feed(self, feed_id, limit, offset, sort_desc=True):
        return await self._call(self._query_articles, "a.feed_id = ?", (feed_id,), limit, offset, sort_desc)

    async def get_articles_for_folder(self, folder_id, limit, offset, sort_desc=True):
        return await self._call(self._query_articles, "f.folder_id = ?", (folder_id,), limit, offset, sort_desc)

    async def get_latest_articles(self, cutoff_timestamp, limit, offset, sort_desc=True):
        return await self._call(self._query_articles, "a.timestamp >= ?", (int(cutoff_timestamp),), limit, offset, sort_desc)

    async def get_saved_articles(self, limit, offset, sort_desc=True):
        return await self._call(self._query_articles, "a.is_saved = 1", (), limit, offset, sort_desc)

    async def search_articles(self, query, limit, offset, sort_desc=True):
        # The query is matched literally: LIKE wildcards in it are escaped.
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        return await self._call(
            self._query_articles,
            "(a.title LIKE ? ESCAPE '\\' OR a.summary LIKE ? ESCAPE '\\')",
            (pattern, pattern), limit, offset, sort_desc,
        )

    # --- Article state ---

    def _execute(self, sql: str, params: tuple) -> int:
        conn = self._connect()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    async def mark_article_read(self, article_id, read):
        if await self._call(self._execute, "UPDATE articles SET is_read = ? WHERE id = ?", (1 if read else 0, article_id)) == 0:
            raise BackendError(f"Unknown article {article_id}")

    async def mark_article_saved(self, article_id, saved):
        if await self._call(self._execute, "UPDATE articles SET is_saved = ? WHERE id = ?", (1 if saved else 0, article_id)) == 0:
            raise BackendError(f"Unknown article {article_id}")

    async def mark_all_read(self, scope, target_id):
        log.info(f"Mark all read: type={scope}, id={target_id}")
        if scope == "feed":
            sql = "UPDATE articles SET is_read = 1 WHERE feed_id = ? AND is_saved = 0"
        elif scope == "folder":
            sql = "UPDATE articles SET is_read = 1 WHERE is_saved = 0 AND feed_id IN (SELECT id FROM feeds WHERE folder_id = ?)"
        else:
            raise BackendError(f"Invalid type: {scope}")
        await self._call(self._execute, sql, (target_id,))

    # --- Settings ---

    async def get_app_settings(self) -> AppSettings:
        if self.config_manager is not None:
            return AppSettings.from_dict(self.config_manager.get_settings())
        return AppSettings.from_dict(self.config)

    async def save_app_settings(self, settings: AppSettings) -> None:
        data = settings.to_dict()
        if self.config_manager is not None:
            await self._call(self.config_manager.update_settings, data)
        else:
            self.config.update(data)

    # --- Structure ---

    async def add_feed(self, url: str, folder_id: Optional[int] = None) -> int:
        return await self._call(self._add_feed, url, folder_id)

    def _add_feed(self, url: str, folder_id: Optional[int]) -> int:
        resp = self._fetch(url)
        final_url = url
        parsed = None
        if not looks_like_html(resp.headers.get("Content-Type", ""), resp.text):
            parsed = feedparser.parse(resp.content)

        if parsed is None or not parsed.entries:
            discovered = find_feed_link(resp.url or url, resp.text)
            if discovered:
                final_url = discovered
                parsed = self._parse(self._fetch(discovered).content)
            elif parsed is None or (parsed.bozo and not parsed.feed.get("title")):
                raise BackendError("No feed found")

        title = parsed.feed.get("title") or "Untitled Feed"
        conn = self._connect()
        try:
            c = conn.cursor()
            c.execute(
                "INSERT OR IGNORE INTO feeds (name, url, folder_id) VALUES (?, ?, ?)",
                (title, final_url, folder_id or UNCATEGORIZED_ID),
            )
            conn.commit()
            feed_id = c.execute("SELECT id FROM feeds WHERE url = ?", (final_url,)).fetchone()["id"]
        finally:
            conn.close()

        self._store_entries(feed_id, parsed.entries)
        return feed_id

    async def delete_feed(self, feed_id):
        def delete():
            conn = self._connect()
            try:
                conn.execute("DELETE FROM articles WHERE feed_id = ?", (feed_id,))
                conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
                conn.commit()
            finally:
                conn.close()
        await self._call(delete)

    async def move_feed(self, feed_id, folder_id):
        await self._call(self._execute, "UPDATE feeds SET folder_id = ? WHERE id = ?", (folder_id, feed_id))

    async def create_folder(self, name: str) -> int:
        name = (name or "").strip()
        if not name:
            raise BackendError("Folder name is empty")

        def create():
            conn = self._connect()
            try:
                conn.execute("INSERT OR IGNORE INTO folders (name) VALUES (?)", (name,))
                conn.commit()
                return conn.execute("SELECT id FROM folders WHERE name = ?", (name,)).fetchone()["id"]
            finally:
                conn.close()
        return await self._call(create)

    async def rename_folder(self, folder_id, new_name):
        await self._call(self._execute, "UPDATE folders SET name = ? WHERE id = ?", (new_name, folder_id))

    async def delete_folder(self, folder_id):
        if folder_id == UNCATEGORIZED_ID:
            raise BackendError("The Uncategorized folder cannot be deleted")

        def delete():
            conn = self._connect()
            try:
                # Feeds move to Uncategorized rather than being deleted.
                conn.execute("UPDATE feeds SET folder_id = ? WHERE folder_id = ?", (UNCATEGORIZED_ID, folder_id))
                conn.execute("DELETE FROM folders WHERE id = ?", (folder_id,))
                conn.commit()
            finally:
                conn.close()
        await self._call(delete)
