import calendar
import logging
import requests
from datetime import datetime, timezone
from dateutil import parser as dateparser

log = logging.getLogger(__name__)

HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'application/rss+xml,application/xml,application/atom+xml,text/xml;q=0.9,*/*;q=0.8'
}

LOG_FORMAT = '%(asctime)s [%(name)s] %(levelname)s: %(message)s'

LOG_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def safe_requests_get(url, **kwargs):
    """Wrapper for requests.get with default browser headers."""
    headers = kwargs.pop("headers", {})
    final_headers = HEADERS.copy()
    final_headers.update(headers)
    return requests.get(url, headers=final_headers, **kwargs)


def parse_level(level_name: str) -> int:
    return LOG_LEVELS.get((level_name or "info").strip().lower(), logging.INFO)


def setup_logging(level_name: str = "info"):
    logging.basicConfig(level=parse_level(level_name), format=LOG_FORMAT, datefmt='%H:%M:%S')


def set_log_level(level_name: str):
    logging.getLogger().setLevel(parse_level(level_name))


# --- Date Parsing ---

def struct_to_timestamp(parsed) -> int:
    """feedparser's *_parsed values are UTC struct_time."""
    if not parsed:
        return 0
    try:
        return int(calendar.timegm(parsed))
    except (TypeError, ValueError, OverflowError):
        return 0


def parse_timestamp(raw) -> int:
    """Parse a feed date string into a UTC unix timestamp. Returns 0 when unknown."""
    if not raw:
        return 0
    try:
        dt = dateparser.parse(str(raw))
    except (ValueError, OverflowError) as e:
        log.debug(f"Unparseable date {raw!r}: {e}")
        return 0
    if dt is None:
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def format_timestamp(ts: int) -> str:
    if not ts:
        return ""
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
