"""Data models for the live stream snapshot and stats history."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class CurrentStats:
    """Current stream state published to the rest of the backend.

    Each field has exactly one writer (the poller that owns it);
    everything else only reads.
    """

    viewers: int = 0
    views: int = 0
    followers: int = 0
    hosts: int = 0
    subscribers: int = 0
    bits: int = 0
    tips: float = 0.0
    raw_status: str = ""
    status: str = ""
    game: str = ""

    def as_dict(self) -> dict:
        return {
            "viewers": self.viewers,
            "views": self.views,
            "followers": self.followers,
            "hosts": self.hosts,
            "subscribers": self.subscribers,
            "bits": self.bits,
            "tips": self.tips,
            "raw_status": self.raw_status,
            "status": self.status,
            "game": self.game,
        }


@dataclass
class StatsSnapshot:
    """One row of stream history, written on every online poll tick."""

    timestamp: float
    when_online: str | None
    viewers: int
    subscribers: int
    bits: int
    tips: float
    chat_messages: int
    followers: int
    views: int
    max_viewers: int
    new_chatters: int
    hosts: int
