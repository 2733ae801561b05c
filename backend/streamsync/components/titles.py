"""Title templates: ``$_name`` tokens substituted from custom variables."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from streamsync.core.context import SyncContext

LOGGER = logging.getLogger("Sync.Titles")

_VARIABLE_PATTERN = re.compile(r"\$_[A-Za-z0-9_]+")


def find_variables(raw: str) -> list[str]:
    """Unique variable names in order of first appearance (without ``$_``)."""
    return list(dict.fromkeys(token[2:] for token in _VARIABLE_PATTERN.findall(raw)))


class TitleTemplateEngine:
    def __init__(self, ctx: SyncContext) -> None:
        self.ctx = ctx

    async def render(self, raw: str | None = None) -> str:
        """Expand every ``$_name`` in *raw* (default: the cached raw status).

        Unknown variables render as the localized "not available" text.
        """
        if raw is None:
            raw = await self.ctx.cache.raw_status()

        names = find_variables(raw)
        if not names:
            return raw

        values: dict[str, str] = {}
        for name in names:
            value = await self.ctx.variables.get_value(name)
            if value is None:
                LOGGER.debug(f"Title variable $_{name} is not defined")
                value = self.ctx.translate("webpanel.not-available")
            values[name] = value

        return _VARIABLE_PATTERN.sub(lambda m: values[m.group(0)[2:]], raw)
