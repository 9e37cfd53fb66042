"""Keyboard shortcut registry.

Maps a normalized key combination ("ctrl+shift+r") to a registered command id.
Pure data: binding keys to widgets and invoking handlers is left to the UI.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

log = logging.getLogger(__name__)

MODIFIER_ORDER = ("ctrl", "alt", "shift", "meta")
MODIFIER_ALIASES = {
    "control": "ctrl",
    "cmd": "meta",
    "command": "meta",
    "super": "meta",
    "win": "meta",
    "option": "alt",
}
KEY_ALIASES = {
    " ": "space",
    "esc": "escape",
    "return": "enter",
    "del": "delete",
}


@dataclass(frozen=True)
class ShortcutDefinition:
    id: str
    command: str
    default_key: str
    description: str = ""
    category: str = "General"


def normalize_key_combo(combo: str) -> str:
    """Lower-case a combo and put modifiers in a fixed order.

    Bare modifier presses normalize to just the modifiers, so "shift" alone
    stays "shift".
    """
    if combo is None:
        return ""
    if combo == " ":
        return "space"
    parts = [p.strip().lower() for p in combo.split("+")]
    # "ctrl++" means ctrl plus the "+" key
    if combo.endswith("++"):
        parts = parts[:-2] + ["+"]
    modifiers = set()
    key = None
    for part in parts:
        if not part:
            continue
        part = MODIFIER_ALIASES.get(part, part)
        if part in MODIFIER_ORDER:
            modifiers.add(part)
        else:
            key = KEY_ALIASES.get(part, part)
    ordered = [m for m in MODIFIER_ORDER if m in modifiers]
    if key:
        ordered.append(key)
    return "+".join(ordered)


def key_combo(key: str, ctrl: bool = False, alt: bool = False, shift: bool = False, meta: bool = False) -> str:
    """Build a normalized combo from a key event's parts."""
    parts = [name for name, down in zip(MODIFIER_ORDER, (ctrl, alt, shift, meta)) if down]
    key = KEY_ALIASES.get((key or "").lower(), (key or "").lower())
    if key and key not in MODIFIER_ORDER and key not in MODIFIER_ALIASES:
        parts.append(key)
    return "+".join(parts)


class ShortcutRegistry:
    def __init__(self):
        self._definitions: Dict[str, ShortcutDefinition] = {}
        self._custom: Dict[str, str] = {}
        self.enabled = True

    def register(self, definition: ShortcutDefinition):
        self._definitions[definition.command] = definition

    def unregister(self, command: str):
        self._definitions.pop(command, None)

    def is_registered(self, command: str) -> bool:
        return command in self._definitions

    def set_custom_mappings(self, mappings: Dict[str, str]):
        self._custom = dict(mappings or {})

    def get_custom_mappings(self) -> Dict[str, str]:
        return dict(self._custom)

    def key_for(self, command: str) -> str:
        definition = self._definitions.get(command)
        if definition is None:
            return ""
        return normalize_key_combo(self._custom.get(command) or definition.default_key)

    def resolve(self, combo: str) -> Optional[str]:
        """Return the command bound to ``combo``, or None."""
        if not self.enabled:
            return None
        pressed = normalize_key_combo(combo)
        if not pressed:
            return None
        for command in self._definitions:
            if self.key_for(command) == pressed:
                return command
        return None

    def display(self, command: str) -> str:
        key = self.key_for(command)
        return "+".join(p[:1].upper() + p[1:] for p in key.split("+")) if key else ""

    def by_category(self) -> Dict[str, List[ShortcutDefinition]]:
        grouped: Dict[str, List[ShortcutDefinition]] = {}
        for definition in self._definitions.values():
            grouped.setdefault(definition.category, []).append(definition)
        return grouped

    def definitions(self) -> List[ShortcutDefinition]:
        return list(self._definitions.values())

    def conflicts(self) -> Dict[str, List[str]]:
        """Combos bound to more than one command."""
        seen: Dict[str, List[str]] = {}
        for command in self._definitions:
            seen.setdefault(self.key_for(command), []).append(command)
        return {k: v for k, v in seen.items() if len(v) > 1}

    def clear(self):
        self._definitions.clear()


DEFAULT_SHORTCUTS = (
    ShortcutDefinition("refresh-all", "refresh_all", "ctrl+r", "Refresh all feeds", "Feeds"),
    ShortcutDefinition("refresh-folder", "refresh_folder", "ctrl+shift+r", "Refresh the selected folder", "Feeds"),
    ShortcutDefinition("mark-all-read", "mark_selection_read", "shift+a", "Mark the selected feed or folder read", "Articles"),
    ShortcutDefinition("toggle-saved", "toggle_saved", "s", "Save or unsave the selected article", "Articles"),
    ShortcutDefinition("toggle-read", "toggle_read", "m", "Toggle read on the selected article", "Articles"),
    ShortcutDefinition("load-more", "load_more", "space", "Load the next page", "Articles"),
    ShortcutDefinition("search", "search", "ctrl+f", "Search articles", "Navigation"),
    ShortcutDefinition("clear-search", "clear_search", "escape", "Clear search", "Navigation"),
)


def default_registry() -> ShortcutRegistry:
    registry = ShortcutRegistry()
    for definition in DEFAULT_SHORTCUTS:
        registry.register(definition)
    return registry
