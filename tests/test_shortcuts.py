import pytest

from core.shortcuts import (
    ShortcutDefinition,
    ShortcutRegistry,
    default_registry,
    key_combo,
    normalize_key_combo,
)


@pytest.mark.parametrize(
    "combo, expected",
    [
        ("Ctrl+R", "ctrl+r"),
        ("shift+CTRL+r", "ctrl+shift+r"),
        ("Control+Alt+Delete", "ctrl+alt+delete"),
        ("cmd+f", "meta+f"),
        ("Esc", "escape"),
        (" ", "space"),
        ("ctrl++", "ctrl++"),
        ("shift", "shift"),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize_key_combo(combo, expected):
    assert normalize_key_combo(combo) == expected


def test_key_combo_from_event_parts():
    assert key_combo("R", ctrl=True, shift=True) == "ctrl+shift+r"
    assert key_combo("Return") == "enter"
    # A bare modifier press carries no key.
    assert key_combo("shift", shift=True) == "shift"


def test_resolve_default_bindings():
    registry = default_registry()
    assert registry.resolve("Ctrl+R") == "refresh_all"
    assert registry.resolve("shift+ctrl+r") == "refresh_folder"
    assert registry.resolve("ctrl+alt+r") is None
    assert registry.resolve("") is None


def test_custom_mapping_overrides_default():
    registry = default_registry()
    registry.set_custom_mappings({"refresh_all": "F5"})
    assert registry.resolve("f5") == "refresh_all"
    assert registry.resolve("ctrl+r") is None
    assert registry.key_for("refresh_all") == "f5"
    assert registry.get_custom_mappings() == {"refresh_all": "F5"}


def test_register_and_unregister():
    registry = ShortcutRegistry()
    registry.register(ShortcutDefinition("next", "next_article", "j", "Next article", "Navigation"))
    assert registry.is_registered("next_article")
    assert registry.resolve("J") == "next_article"

    registry.unregister("next_article")
    assert not registry.is_registered("next_article")
    assert registry.resolve("j") is None
    assert registry.key_for("next_article") == ""


def test_disabled_registry_resolves_nothing():
    registry = default_registry()
    registry.enabled = False
    assert registry.resolve("ctrl+r") is None


def test_display_and_categories():
    registry = default_registry()
    assert registry.display("refresh_folder") == "Ctrl+Shift+R"
    assert registry.display("missing") == ""

    grouped = registry.by_category()
    assert set(grouped) == {"Feeds", "Articles", "Navigation"}
    assert [d.command for d in grouped["Feeds"]] == ["refresh_all", "refresh_folder"]


def test_conflicts():
    registry = default_registry()
    assert registry.conflicts() == {}
    registry.set_custom_mappings({"search": "ctrl+r"})
    assert registry.conflicts() == {"ctrl+r": ["refresh_all", "search"]}
