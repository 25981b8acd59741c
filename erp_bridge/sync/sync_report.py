# erp_bridge/sync/sync_report.py
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from erp_bridge import config


class Outcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class SyncReport:
    job: str
    created: int = 0
    updated: int = 0
    skipped: int = 0
    error: int = 0
    failed: List[str] = field(default_factory=list)

    def add(self, key: str, outcome: Outcome):
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)
        if outcome is Outcome.ERROR:
            self.failed.append(key)

    @property
    def total(self) -> int:
        return self.created + self.updated + self.skipped + self.error

    def as_dict(self) -> dict:
        return {
            "status": "ok",
            "job": self.job,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "error": self.error,
            "failed": list(self.failed),
        }


async def pause(seconds: Optional[float] = None):
    """Fixed delay between records against the rate-limited remotes."""
    delay = config.SYNC_RECORD_DELAY_SECS if seconds is None else seconds
    if delay > 0:
        await asyncio.sleep(delay)
