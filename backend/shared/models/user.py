"""User directory record (follower-related subset)."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class UserRecord:
    """A chat user as seen by the follower reconciliation.

    Timestamps are epoch seconds; ``0`` means "never".
    """

    username: str
    external_id: str | None = None
    is_follower: bool = False
    is_subscriber: bool = False
    followed_at: float = 0.0
    last_follow_check: float = 0.0
    created_at: float | None = None

    @classmethod
    def from_document(cls, username: str, doc: dict | None) -> UserRecord:
        """Build a record from a stored ``users`` document, filling defaults."""
        doc = doc or {}
        flags = doc.get("is") or {}
        times = doc.get("time") or {}
        external_id = doc.get("id")
        return cls(
            username=doc.get("username", username),
            external_id=str(external_id) if external_id else None,
            is_follower=bool(flags.get("follower", False)),
            is_subscriber=bool(flags.get("subscriber", False)),
            followed_at=float(times.get("follow") or 0),
            last_follow_check=float(times.get("follow_check") or 0),
            created_at=times.get("created_at"),
        )
