"""Call-log entry written after every platform API attempt."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiCallRecord:
    timestamp: float
    call: str
    api: str
    endpoint: str
    code: str
    remaining: int | None = None
