"""Localized message lookup for user-facing sync messages."""

from __future__ import annotations

import logging

LOGGER = logging.getLogger("Sync.I18n")

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "webpanel.not-available": "n/a",
        "title.change.success": "Title was changed to: $title",
        "title.change.failed": "Title change failed, current title: $title",
        "game.change.success": "Game was changed to: $game",
        "game.change.failed": "Game change failed, current game: $game",
    },
    "zh-TW": {
        "webpanel.not-available": "無資料",
        "title.change.success": "標題已更改為：$title",
        "title.change.failed": "標題更改失敗，目前標題：$title",
        "game.change.success": "遊戲已更改為：$game",
        "game.change.failed": "遊戲更改失敗，目前遊戲：$game",
    },
}


class Translator:
    """``translator(key)`` → localized string; unknown keys fall back to English, then the key."""

    def __init__(self, locale: str = "en") -> None:
        if locale not in MESSAGES:
            LOGGER.warning(f"Unknown locale '{locale}', using 'en'")
            locale = "en"
        self.locale = locale

    def __call__(self, key: str) -> str:
        return MESSAGES[self.locale].get(key) or MESSAGES["en"].get(key) or key
