"""Repository for the ``custom.variables`` collection."""

from __future__ import annotations

from shared.repositories.documents import DocumentStore

COLLECTION = "custom.variables"


class CustomVariableRepository:
    """Read access to user-defined ``$_name`` variables.

    Documents look like ``{"variableName": "game", "currentValue": "Chess"}``.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def get_value(self, name: str) -> str | None:
        """Return the current value of *name*, or ``None`` when undefined."""
        doc = await self.store.find_one(COLLECTION, {"variableName": name})
        if not doc:
            return None
        value = doc.get("currentValue")
        return None if value is None else str(value)
