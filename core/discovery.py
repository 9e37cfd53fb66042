import logging
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

FEED_TYPES = ("application/rss+xml", "application/atom+xml", "text/xml")


def looks_like_html(content_type: str, body: str = "") -> bool:
    content_type = (content_type or "").lower()
    if "text/html" in content_type or "application/xhtml" in content_type:
        return True
    head = (body or "")[:512].lstrip().lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


def find_feed_link(page_url: str, html: str) -> Optional[str]:
    """
    Return the first RSS/Atom URL advertised by an HTML page, resolved
    against the page URL. None if the page does not advertise one.
    """
    if not html:
        return None
    soup = BeautifulSoup(html, 'html.parser')

    # <link rel="alternate" type="application/rss+xml" href="...">
    for link in soup.find_all("link"):
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = [rel]
        if "alternate" not in [r.lower() for r in rel]:
            continue
        if (link.get("type") or "").lower() in FEED_TYPES:
            href = link.get("href")
            if href:
                return urljoin(page_url, href)
    return None
