import copy
import json
import logging
import os
import sys

log = logging.getLogger(__name__)

# When frozen (PyInstaller) use the exe directory; otherwise use the directory
# of the main script so config.json stays alongside the app regardless of
# where the user launches it from.
if getattr(sys, 'frozen', False):
    APP_DIR = os.path.dirname(sys.executable)
else:
    APP_DIR = os.path.dirname(os.path.abspath(sys.argv[0]))

CONFIG_FILE = os.path.join(APP_DIR, "config.json")

# Keys the backend exposes as AppSettings.
SETTINGS_KEYS = (
    "feed_refresh_debounce_minutes",
    "refresh_all_debounce_minutes",
    "auto_update_interval_minutes",
    "log_level",
    "default_view_type",
    "default_view_id",
)

DEFAULT_CONFIG = {
    "feed_refresh_debounce_minutes": 4,
    "refresh_all_debounce_minutes": 0,  # 0 disables the refresh-all debounce
    "auto_update_interval_minutes": 30,  # 0 disables the auto-refresh loop
    "log_level": "info",
    "default_view_type": "latest",  # latest, saved, feed or folder
    "default_view_id": -1,
    "max_concurrent_refreshes": 3,
    "page_size": 50,
    "latest_window_hours": 24,
    "feed_timeout_seconds": 15,
    "feed_retry_attempts": 1,
    "db_file": "",  # empty => rss.db next to the app
}


class ConfigManager:
    def __init__(self):
        self.config = self.load_config()

    def load_config(self):
        if os.path.exists(CONFIG_FILE):
            try:
                with open(CONFIG_FILE, 'r') as f:
                    loaded = json.load(f)
                    return self._apply_defaults(loaded)
            except (OSError, ValueError) as e:
                log.error(f"Error loading config: {e}")
        return copy.deepcopy(DEFAULT_CONFIG)

    def _apply_defaults(self, cfg: dict) -> dict:
        """
        Merge any missing default keys into an existing config without clobbering
        user settings. Ensures newly added options are present.
        """
        def merge(defaults, target):
            for key, val in defaults.items():
                if isinstance(val, dict):
                    if key not in target or not isinstance(target.get(key), dict):
                        target[key] = {}
                    merge(val, target[key])
                else:
                    target.setdefault(key, copy.deepcopy(val))
        merged = cfg if isinstance(cfg, dict) else {}
        merge(DEFAULT_CONFIG, merged)
        return merged

    def save_config(self):
        try:
            with open(CONFIG_FILE, 'w') as f:
                json.dump(self.config, f, indent=4)
        except OSError as e:
            log.error(f"Error saving config: {e}")

    def get(self, key, default=None):
        return self.config.get(key, default)

    def set(self, key, value):
        self.config[key] = value
        self.save_config()

    def get_settings(self) -> dict:
        return {key: self.config.get(key, DEFAULT_CONFIG[key]) for key in SETTINGS_KEYS}

    def update_settings(self, data: dict):
        for key in SETTINGS_KEYS:
            if key in data:
                self.config[key] = data[key]
        self.save_config()
