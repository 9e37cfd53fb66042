import sqlite3
import os
import sys
import logging

log = logging.getLogger(__name__)

if getattr(sys, 'frozen', False):
    APP_DIR = os.path.dirname(sys.executable)
else:
    APP_DIR = os.getcwd()

DB_FILE = os.path.join(APP_DIR, "rss.db")

UNCATEGORIZED_ID = 1
UNCATEGORIZED = "Uncategorized"


def init_db(path: str = None):
    conn = get_connection(path)
    c = conn.cursor()

    c.execute('''CREATE TABLE IF NOT EXISTS folders (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL UNIQUE
    )''')

    c.execute('''CREATE TABLE IF NOT EXISTS feeds (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        folder_id INTEGER NOT NULL,
        FOREIGN KEY(folder_id) REFERENCES folders(id)
    )''')

    c.execute('''CREATE TABLE IF NOT EXISTS articles (
        id INTEGER PRIMARY KEY,
        feed_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        author TEXT,
        summary TEXT,
        url TEXT NOT NULL UNIQUE,
        timestamp INTEGER,
        FOREIGN KEY(feed_id) REFERENCES feeds(id)
    )''')

    c.execute("CREATE INDEX IF NOT EXISTS idx_articles_feed_id ON articles (feed_id)")
    c.execute("CREATE INDEX IF NOT EXISTS idx_articles_timestamp ON articles (timestamp)")

    # Migration: Add columns if they don't exist
    for ddl in (
        "ALTER TABLE articles ADD COLUMN is_read INTEGER NOT NULL DEFAULT 0",
        "ALTER TABLE articles ADD COLUMN is_saved INTEGER NOT NULL DEFAULT 0",
        "ALTER TABLE feeds ADD COLUMN has_error INTEGER NOT NULL DEFAULT 0",
    ):
        try:
            c.execute(ddl)
        except sqlite3.OperationalError:
            pass

    c.execute("CREATE INDEX IF NOT EXISTS idx_articles_is_read ON articles (is_read)")

    c.execute("INSERT OR IGNORE INTO folders (id, name) VALUES (?, ?)", (UNCATEGORIZED_ID, UNCATEGORIZED))

    conn.commit()
    conn.close()


def get_connection(path: str = None):
    conn = sqlite3.connect(path or DB_FILE)
    conn.row_factory = sqlite3.Row
    return conn
